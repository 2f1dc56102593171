"""Offline multisig transactions: propose, sign out of band, commit.

A transaction file is self-contained so it can be carried to an air-gapped
signer. Its status only moves forward::

    proposed -> partially-signed -> ready-to-commit -> committed

Every read goes back to the file; a partially signed artifact may have been
extended on another machine since it was last loaded.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from .constants import (
    NETWORK_LOCAL,
    NETWORKS,
    PUBLIC_NETWORKS,
    TX_ADD_PERMISSIONLESS_VALIDATOR,
    TX_ADD_VALIDATOR,
    TX_CHAIN_CREATION,
    TX_FILE_VERSION,
    TX_KINDS,
    TX_REMOVE_VALIDATOR,
    TX_STATUS_COMMITTED,
    TX_STATUS_PARTIALLY_SIGNED,
    TX_STATUS_PROPOSED,
    TX_STATUS_READY,
    TX_TRANSFORM_ELASTIC,
)
from .errors import (
    AlreadyDeployedError,
    AlreadyElasticError,
    AlreadyExistsError,
    AlreadySignedError,
    InsufficientSignaturesError,
    NotDeployedError,
    NotFoundError,
    TransactionStateError,
    UnauthorizedSignerError,
)
from .keys import KeyManager
from .models import ElasticConfig, Sidecar, ValidatorRecord
from .node import NodeControlPlane
from .sidecar import SidecarStore
from .util import atomic_write_text, canonical_json_bytes, dump_json, ensure_int, ensure_str

logger = logging.getLogger(__name__)

_STATUSES = (TX_STATUS_PROPOSED, TX_STATUS_PARTIALLY_SIGNED, TX_STATUS_READY, TX_STATUS_COMMITTED)


def signing_bytes(kind: str, network: str, subnet: str, payload: Dict[str, Any]) -> bytes:
    """The exact bytes every authorizer signs."""
    return canonical_json_bytes(
        {"kind": kind, "network": network, "subnet": subnet, "unsigned_payload": payload}
    )


def endpoint_network(network: str, simulate_public: bool) -> str:
    """Network the control plane is actually asked to talk to."""
    if simulate_public and network in PUBLIC_NETWORKS:
        return NETWORK_LOCAL
    return network


@dataclass
class TransactionArtifact:
    kind: str
    subnet: str
    network: str
    unsigned_payload: Dict[str, Any]
    required_authorizers: list[str]
    threshold: int
    collected_signatures: Dict[str, str] = field(default_factory=dict)
    status: str = TX_STATUS_PROPOSED
    result: Dict[str, Any] = field(default_factory=dict)
    created_at: str = ""
    version: int = TX_FILE_VERSION

    def payload_bytes(self) -> bytes:
        return signing_bytes(self.kind, self.network, self.subnet, self.unsigned_payload)

    @property
    def signatures_needed(self) -> int:
        return max(0, self.threshold - len(self.collected_signatures))

    def validate(self) -> None:
        if self.kind not in TX_KINDS:
            raise ValueError(f"unknown transaction kind: {self.kind!r}")
        if self.network not in NETWORKS:
            raise ValueError(f"unknown network: {self.network!r}")
        if self.status not in _STATUSES:
            raise ValueError(f"unknown transaction status: {self.status!r}")
        if not self.required_authorizers:
            raise ValueError("a transaction needs at least one authorizer")
        if len(set(self.required_authorizers)) != len(self.required_authorizers):
            raise ValueError("required authorizers must be distinct")
        if not 1 <= self.threshold <= len(self.required_authorizers):
            raise ValueError("threshold must be between 1 and the number of authorizers")
        stray = set(self.collected_signatures) - set(self.required_authorizers)
        if stray:
            raise ValueError(f"signatures from unknown authorizers: {sorted(stray)}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "kind": self.kind,
            "subnet": self.subnet,
            "network": self.network,
            "unsigned_payload": self.unsigned_payload,
            "required_authorizers": sorted(self.required_authorizers),
            "threshold": self.threshold,
            "collected_signatures": dict(self.collected_signatures),
            "status": self.status,
            "result": self.result,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "TransactionArtifact":
        if not isinstance(raw, dict):
            raise ValueError("transaction file must hold an object")
        version = ensure_int(raw.get("version"), "version")
        if version != TX_FILE_VERSION:
            raise ValueError(f"unsupported transaction file version {version}")
        payload = raw.get("unsigned_payload")
        if not isinstance(payload, dict):
            raise ValueError("unsigned_payload must be an object")
        authorizers = raw.get("required_authorizers")
        if not isinstance(authorizers, list):
            raise ValueError("required_authorizers must be a list")
        signatures = raw.get("collected_signatures") or {}
        if not isinstance(signatures, dict):
            raise ValueError("collected_signatures must be an object")
        artifact = cls(
            kind=ensure_str(raw.get("kind"), "kind"),
            subnet=ensure_str(raw.get("subnet"), "subnet"),
            network=ensure_str(raw.get("network"), "network"),
            unsigned_payload=payload,
            required_authorizers=[str(a) for a in authorizers],
            threshold=ensure_int(raw.get("threshold"), "threshold"),
            collected_signatures={str(k): str(v) for k, v in signatures.items()},
            status=ensure_str(raw.get("status"), "status"),
            result=raw.get("result") or {},
            created_at=str(raw.get("created_at") or ""),
            version=version,
        )
        artifact.validate()
        return artifact


def check_signer(artifact: TransactionArtifact, address: str) -> None:
    if artifact.status in (TX_STATUS_READY, TX_STATUS_COMMITTED):
        raise TransactionStateError(f"transaction is already {artifact.status}; no more signatures are accepted")
    if address not in artifact.required_authorizers:
        raise UnauthorizedSignerError(f"{address} is not an authorizer of this transaction")
    if address in artifact.collected_signatures:
        raise AlreadySignedError(f"{address} has already signed this transaction")


def add_signature(artifact: TransactionArtifact, address: str, signature: str) -> TransactionArtifact:
    """Record one authorizer's signature and advance the status."""
    check_signer(artifact, address)
    artifact.collected_signatures[address] = signature
    if len(artifact.collected_signatures) >= artifact.threshold:
        artifact.status = TX_STATUS_READY
    else:
        artifact.status = TX_STATUS_PARTIALLY_SIGNED
    return artifact


def check_preconditions(sidecar: Sidecar, network: str, kind: str) -> None:
    """Guard a network-state transition before anything is submitted."""
    state = sidecar.networks.get(network)
    if kind == TX_CHAIN_CREATION:
        if state is None:
            raise NotDeployedError(f"subnet {sidecar.name!r} has no subnet on {network} to create a chain in")
        if not state.chain_pending:
            raise AlreadyDeployedError(f"subnet {sidecar.name!r} is already deployed to {network}")
        return
    if state is None or state.chain_pending:
        raise NotDeployedError(f"subnet {sidecar.name!r} is not deployed to {network}")
    if kind == TX_TRANSFORM_ELASTIC and state.elastic:
        raise AlreadyElasticError(f"subnet {sidecar.name!r} is already elastic on {network}")
    if kind == TX_ADD_PERMISSIONLESS_VALIDATOR and not state.elastic:
        raise NotDeployedError(f"subnet {sidecar.name!r} is not elastic on {network}")


def apply_result(
    store: SidecarStore,
    subnet: str,
    network: str,
    kind: str,
    payload: Dict[str, Any],
    result: Dict[str, Any],
    tx_path: str = "",
) -> Sidecar:
    """Record a submitted transaction in the subnet's network state."""

    def update(state) -> None:
        if kind == TX_CHAIN_CREATION:
            state.chain_id = str(result.get("chain_id") or result["tx_id"])
            state.vm_id = str(result.get("vm_id") or state.vm_id)
        elif kind == TX_ADD_VALIDATOR:
            state.validators[payload["node_id"]] = ValidatorRecord(
                weight=int(payload["weight"]),
                start_time=str(payload["start_time"]),
                period_seconds=int(payload["period_seconds"]),
            )
        elif kind == TX_ADD_PERMISSIONLESS_VALIDATOR:
            state.validators[payload["node_id"]] = ValidatorRecord(
                weight=int(payload["stake_amount"]),
                start_time=str(payload["start_time"]),
                period_seconds=int(payload["period_seconds"]),
                stake_amount=int(payload["stake_amount"]),
            )
        elif kind == TX_REMOVE_VALIDATOR:
            state.validators.pop(payload["node_id"], None)
        elif kind == TX_TRANSFORM_ELASTIC:
            config = ElasticConfig.from_dict(payload["elastic_config"])
            config.tx_id = str(result["tx_id"])
            config.asset_id = str(result.get("asset_id") or "")
            state.elastic = True
            state.elastic_config = config
        else:
            raise ValueError(f"unknown transaction kind: {kind!r}")
        if tx_path and state.pending_tx == tx_path:
            state.pending_tx = ""

    sidecar = store.update_network_state(subnet, network, update)
    logger.info("recorded %s for %s on %s", kind, subnet, network)
    return sidecar


class TransactionWorkflow:
    def __init__(
        self,
        store: SidecarStore,
        keys: KeyManager,
        control_plane: NodeControlPlane,
    ) -> None:
        self.store = store
        self.keys = keys
        self.control_plane = control_plane

    def load(self, path: str | Path) -> TransactionArtifact:
        path = Path(path)
        try:
            text = path.read_text()
        except FileNotFoundError:
            raise NotFoundError(f"transaction file not found: {path}") from None
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"corrupt transaction file {path}: {exc}") from exc
        return TransactionArtifact.from_dict(raw)

    def save(self, artifact: TransactionArtifact, path: str | Path) -> None:
        artifact.validate()
        atomic_write_text(Path(path), dump_json(artifact.to_dict()))

    def propose(
        self,
        path: str | Path,
        kind: str,
        subnet: str,
        network: str,
        payload: Dict[str, Any],
        authorizers: list[str],
        threshold: int,
    ) -> TransactionArtifact:
        path = Path(path)
        if path.exists():
            raise AlreadyExistsError(f"transaction file already exists: {path}")
        artifact = TransactionArtifact(
            kind=kind,
            subnet=subnet,
            network=network,
            unsigned_payload=payload,
            required_authorizers=sorted(set(authorizers)),
            threshold=threshold,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        self.save(artifact, path)
        logger.info("wrote %s transaction for %s to %s", kind, subnet, path)
        return artifact

    def sign(self, path: str | Path, key_name: str) -> TransactionArtifact:
        """Sign the transaction at ``path`` with local key ``key_name``."""
        artifact = self.load(path)
        address = self.keys.address(key_name)
        check_signer(artifact, address)
        signature = self.keys.sign(key_name, artifact.payload_bytes())
        add_signature(artifact, address, signature)
        self.save(artifact, path)
        logger.info("%s signed %s (%d more needed)", address, path, artifact.signatures_needed)
        return artifact

    def status(self, path: str | Path) -> Dict[str, Any]:
        artifact = self.load(path)
        return {
            "kind": artifact.kind,
            "subnet": artifact.subnet,
            "network": artifact.network,
            "status": artifact.status,
            "threshold": artifact.threshold,
            "signed": sorted(artifact.collected_signatures),
            "missing": sorted(set(artifact.required_authorizers) - set(artifact.collected_signatures)),
            "signatures_needed": artifact.signatures_needed,
        }

    def commit(self, path: str | Path, simulate_public: bool = False) -> Dict[str, Any]:
        artifact = self.load(path)
        if artifact.status == TX_STATUS_COMMITTED:
            raise TransactionStateError(f"transaction {path} was already committed")
        if artifact.status != TX_STATUS_READY or artifact.signatures_needed:
            raise InsufficientSignaturesError(
                f"transaction needs {artifact.signatures_needed} more signature(s) before it can be committed"
            )
        check_preconditions(self.store.load(artifact.subnet), artifact.network, artifact.kind)
        result = self.control_plane.submit(
            endpoint_network(artifact.network, simulate_public),
            artifact.kind,
            artifact.unsigned_payload,
            dict(artifact.collected_signatures),
        )
        apply_result(
            self.store,
            artifact.subnet,
            artifact.network,
            artifact.kind,
            artifact.unsigned_payload,
            result,
            tx_path=str(Path(path).resolve()),
        )
        artifact.status = TX_STATUS_COMMITTED
        artifact.result = result
        self.save(artifact, path)
        return result

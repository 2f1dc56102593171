"""DeploymentOrchestrator — per-network lifecycle of a subnet.

States per (subnet, network)::

    undeployed -> deployed -> elastic

Operations that change chain state either run online, when the only required
authorizer's key is held locally, or produce a transaction file for
out-of-band signing (see ``txn``). The local network needs no authorization.

``simulate_public`` sends the control-plane traffic for testnet/mainnet to the
local network instead, while state is still recorded under the requested
network and every guard still applies.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

from .constants import (
    MIN_STAKING_PERIOD,
    NETWORK_LOCAL,
    NETWORK_MAINNET,
    NETWORKS,
    TX_ADD_PERMISSIONLESS_VALIDATOR,
    TX_ADD_VALIDATOR,
    TX_CHAIN_CREATION,
    TX_REMOVE_VALIDATOR,
    TX_SUBNET_CREATION,
    TX_TRANSFORM_ELASTIC,
)
from .errors import (
    AlreadyDeployedError,
    AlreadyExistsError,
    ExternalOperationError,
    IncompatibleVersionError,
    NotDeployedError,
    NotFoundError,
)
from .keys import KeyManager
from .layout import Layout
from .models import CustomVM, ElasticConfig, NetworkState, RegisteredVM, Sidecar, StandardVM, vm_to_dict
from .node import NodeControlPlane
from .sidecar import SidecarStore
from .txn import TransactionWorkflow, apply_result, check_preconditions, endpoint_network, signing_bytes
from .util import atomic_write_json, copy_file_atomic
from .versions import VersionResolver

logger = logging.getLogger(__name__)

TRACK_SUBNETS_KEY = "track-subnets"


@dataclass
class OperationResult:
    """Outcome of a chain-affecting operation.

    ``committed`` is False when a transaction file was written instead;
    ``tx_path`` then names it.
    """

    network: str
    committed: bool
    tx_path: Path | None = None
    details: Dict[str, Any] = field(default_factory=dict)


def _check_network(network: str) -> None:
    if network not in NETWORKS:
        raise ValueError(f"unknown network: {network!r}")


def _genesis_digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _verify_checksum(path: Path, checksum: str) -> None:
    """Drop an installed binary whose sha256 does not match ``checksum``."""
    if not checksum:
        return
    expected = checksum.lower().removeprefix("sha256:")
    actual = hashlib.sha256(path.read_bytes()).hexdigest()
    if actual != expected:
        path.unlink()
        raise ExternalOperationError(f"installed VM {path} has sha256 {actual}, expected {expected}")


class DeploymentOrchestrator:
    def __init__(
        self,
        layout: Layout,
        store: SidecarStore,
        resolver: VersionResolver | None,
        keys: KeyManager,
        control_plane: NodeControlPlane,
        workflow: TransactionWorkflow | None = None,
    ) -> None:
        self.layout = layout
        self.store = store
        self.resolver = resolver
        self.keys = keys
        self.control_plane = control_plane
        self.workflow = workflow or TransactionWorkflow(store, keys, control_plane)

    def network_status(self, name: str, network: str) -> str:
        _check_network(network)
        return self.store.load(name).status(network)

    # -- helpers ---------------------------------------------------------

    def _deployed_state(self, sidecar: Sidecar, network: str) -> NetworkState:
        state = sidecar.networks.get(network)
        if state is None:
            raise NotDeployedError(f"subnet {sidecar.name!r} is not deployed to {network}")
        if state.chain_pending:
            raise NotDeployedError(
                f"subnet {sidecar.name!r} chain creation on {network} is still pending"
                + (f" (transaction {state.pending_tx})" if state.pending_tx else "")
            )
        return state

    def _resolve_runtime(self, sidecar: Sidecar, override: str | None) -> str:
        if override:
            if self.resolver is not None and sidecar.rpc_version:
                proto = self.resolver.protocol_for_runtime(override)
                if proto is not None and proto != sidecar.rpc_version:
                    raise IncompatibleVersionError(
                        f"runtime {override} speaks VM protocol {proto}, "
                        f"but {sidecar.name} needs protocol {sidecar.rpc_version}"
                    )
            return override
        if self.resolver is None:
            raise ValueError("a version resolver is required to pick a runtime version")
        vm = sidecar.vm
        if isinstance(vm, StandardVM):
            return self.resolver.resolve_runtime_version(vm.version)
        if isinstance(vm, (CustomVM, RegisteredVM)):
            return self.resolver.resolve_runtime_for_protocol(sidecar.rpc_version)
        raise TypeError(f"unknown VM selection: {vm!r}")

    def _vm_binary(self, sidecar: Sidecar) -> Path | None:
        """Local VM binary for the subnet; None for standard VMs the node ships."""
        vm = sidecar.vm
        if isinstance(vm, CustomVM):
            path = self.layout.resolve(vm.binary)
            if not path.is_file():
                raise NotFoundError(f"VM binary for {sidecar.name} is missing: {path}")
            return path
        if isinstance(vm, RegisteredVM):
            dest = self.layout.vm_binary(sidecar.name)
            if not dest.is_file():
                logger.info("installing VM %s %s for %s", vm.name, vm.version, sidecar.name)
                self.control_plane.install_vm(vm_to_dict(vm), dest)
                _verify_checksum(dest, vm.checksum)
            return dest
        if isinstance(vm, StandardVM):
            return None
        raise TypeError(f"unknown VM selection: {vm!r}")

    def _genesis_path(self, name: str, network: str) -> Path:
        if network == NETWORK_MAINNET:
            mainnet = self.layout.genesis_mainnet(name)
            if mainnet.is_file():
                return mainnet
        path = self.layout.genesis(name)
        if not path.is_file():
            raise NotFoundError(f"genesis for {name} is missing: {path}")
        return path

    @staticmethod
    def _authorizers(control_keys: list[str], threshold: int, auth_keys: list[str] | None) -> list[str]:
        if not auth_keys:
            return sorted(control_keys)
        unknown = set(auth_keys) - set(control_keys)
        if unknown:
            raise ValueError(f"auth keys are not control keys of the subnet: {sorted(unknown)}")
        if len(set(auth_keys)) != threshold:
            raise ValueError(f"exactly {threshold} distinct auth key(s) are required")
        return sorted(set(auth_keys))

    def _online_signer(self, required: list[str]) -> str | None:
        if len(required) != 1:
            return None
        return self.keys.local_key_for(required[0])

    def _submit_signed(
        self,
        endpoint: str,
        kind: str,
        name: str,
        network: str,
        payload: Dict[str, Any],
        key_name: str,
    ) -> Dict[str, Any]:
        address = self.keys.address(key_name)
        signature = self.keys.sign(key_name, signing_bytes(kind, network, name, payload))
        return self.control_plane.submit(endpoint, kind, payload, {address: signature})

    @staticmethod
    def _check_tx_path(tx_path: str | Path | None) -> Path:
        if tx_path is None:
            raise ValueError("this operation needs offline signatures; pass a transaction file path")
        path = Path(tx_path).resolve()
        if path.exists():
            raise AlreadyExistsError(f"transaction file already exists: {path}")
        return path

    def _dispatch(
        self,
        sidecar: Sidecar,
        network: str,
        kind: str,
        payload: Dict[str, Any],
        simulate_public: bool,
        auth_keys: list[str] | None,
        tx_path: str | Path | None,
    ) -> OperationResult:
        """Run a transition that needs the subnet's control-key authorization."""
        check_preconditions(sidecar, network, kind)
        endpoint = endpoint_network(network, simulate_public)
        if network == NETWORK_LOCAL:
            result = self.control_plane.submit(endpoint, kind, payload, {})
            apply_result(self.store, sidecar.name, network, kind, payload, result)
            return OperationResult(network=network, committed=True, details=result)

        state = sidecar.networks[network]
        required = self._authorizers(state.control_keys, state.threshold, auth_keys)
        signer = self._online_signer(required)
        if signer is not None:
            result = self._submit_signed(endpoint, kind, sidecar.name, network, payload, signer)
            apply_result(self.store, sidecar.name, network, kind, payload, result)
            return OperationResult(network=network, committed=True, details=result)

        path = self._check_tx_path(tx_path)
        self.workflow.propose(path, kind, sidecar.name, network, payload, required, state.threshold)
        self.store.update_network_state(sidecar.name, network, lambda s: setattr(s, "pending_tx", str(path)))
        return OperationResult(network=network, committed=False, tx_path=path)

    # -- operations ------------------------------------------------------

    def deploy(
        self,
        name: str,
        network: str,
        simulate_public: bool = False,
        runtime_version: str | None = None,
        control_keys: list[str] | None = None,
        threshold: int = 1,
        auth_keys: list[str] | None = None,
        fee_key: str | None = None,
        tx_path: str | Path | None = None,
    ) -> OperationResult:
        """Deploy a subnet to ``network``.

        On a public network the subnet is created first and recorded at once
        as a pending entry, so its id survives any later failure. Chain
        creation then commits online or is written to ``tx_path`` for offline
        signing, and the entry's ``pending_tx`` is set only once that file
        exists. A pending entry without a transaction file (chain creation
        failed, or the file could not be written) is resumed by running
        ``deploy`` again: the recorded subnet and control keys are reused and
        only chain creation is repeated.
        """
        _check_network(network)
        sidecar = self.store.load(name)
        current = sidecar.networks.get(network)
        resume = current is not None and current.chain_pending and not current.pending_tx
        if current is not None and not resume:
            if current.chain_pending:
                detail = f"chain creation pending in {current.pending_tx}"
            else:
                detail = f"chain {current.chain_id}"
            raise AlreadyDeployedError(f"subnet {name!r} is already deployed to {network} ({detail})")
        runtime = self._resolve_runtime(sidecar, runtime_version)
        genesis = self._genesis_path(name, network)
        vm_binary = self._vm_binary(sidecar)
        endpoint = endpoint_network(network, simulate_public)

        if network == NETWORK_LOCAL:
            result = self.control_plane.deploy_local(name, vm_to_dict(sidecar.vm), genesis, vm_binary, runtime)
            state = NetworkState(
                subnet_id=result["subnet_id"],
                chain_id=result["chain_id"],
                vm_id=str(result.get("vm_id") or ""),
                runtime_version=runtime,
            )
            self.store.set_network_state(name, network, state)
            logger.info("deployed %s to %s (chain %s)", name, network, state.chain_id)
            return OperationResult(network=network, committed=True, details=state.to_dict())

        if resume:
            keys, threshold = list(current.control_keys), current.threshold
            if control_keys and sorted(set(control_keys)) != keys:
                raise ValueError(f"subnet {current.subnet_id} on {network} was created with control keys {keys}")
        else:
            keys = sorted(set(control_keys or []))
            if not keys:
                raise ValueError("deploying to a public network needs at least one control key")
            if not 1 <= threshold <= len(keys):
                raise ValueError(f"threshold must be between 1 and {len(keys)}")
            if not fee_key:
                raise ValueError("deploying to a public network needs a fee-paying key")
        required = self._authorizers(keys, threshold, auth_keys)
        signer = self._online_signer(required)
        offline_path = self._check_tx_path(tx_path) if signer is None else None

        if resume:
            subnet_id = current.subnet_id
            logger.info("resuming chain creation for %s in subnet %s on %s", name, subnet_id, network)
        else:
            subnet_payload = {"control_keys": keys, "threshold": threshold}
            created = self._submit_signed(endpoint, TX_SUBNET_CREATION, name, network, subnet_payload, fee_key)
            subnet_id = str(created.get("subnet_id") or created["tx_id"])
            logger.info("created subnet %s for %s on %s", subnet_id, name, network)
            self.store.set_network_state(
                name,
                network,
                NetworkState(subnet_id=subnet_id, runtime_version=runtime, control_keys=keys, threshold=threshold),
            )

        genesis_bytes = genesis.read_bytes()
        chain_payload = {
            "subnet_id": subnet_id,
            "chain_name": name,
            "vm": vm_to_dict(sidecar.vm),
            "genesis": base64.b64encode(genesis_bytes).decode(),
            "genesis_sha256": _genesis_digest(genesis_bytes),
        }
        if signer is not None:
            result = self._submit_signed(endpoint, TX_CHAIN_CREATION, name, network, chain_payload, signer)

            def _complete(state: NetworkState) -> None:
                state.chain_id = str(result.get("chain_id") or result["tx_id"])
                state.vm_id = str(result.get("vm_id") or "")
                state.runtime_version = runtime

            done = self.store.update_network_state(name, network, _complete).networks[network]
            logger.info("deployed %s to %s (chain %s)", name, network, done.chain_id)
            return OperationResult(network=network, committed=True, details=done.to_dict())

        self.workflow.propose(offline_path, TX_CHAIN_CREATION, name, network, chain_payload, required, threshold)
        pending = self.store.update_network_state(
            name, network, lambda s: setattr(s, "pending_tx", str(offline_path))
        ).networks[network]
        return OperationResult(network=network, committed=False, tx_path=offline_path, details=pending.to_dict())

    def join(
        self,
        name: str,
        network: str,
        node_config: str | Path,
        plugin_dir: str | Path,
        node_id: str | None = None,
        simulate_public: bool = False,
    ) -> Dict[str, Any]:
        """Configure a local node to track the subnet and run its VM."""
        _check_network(network)
        sidecar = self.store.load(name)
        state = self._deployed_state(sidecar, network)

        if node_id:
            endpoint = endpoint_network(network, simulate_public)
            known = {str(v.get("node_id")) for v in self.control_plane.validators(endpoint, state.subnet_id)}
            if node_id not in known:
                logger.warning("%s is not yet a validator of %s on %s", node_id, name, network)

        plugin = Path(plugin_dir).expanduser() / (state.vm_id or name)
        source = self._vm_binary(sidecar)
        if source is None:
            self.control_plane.install_vm(vm_to_dict(sidecar.vm), plugin)
        else:
            copy_file_atomic(source, plugin, executable=True)

        config_path = Path(node_config).expanduser()
        config: Dict[str, Any] = {}
        if config_path.is_file():
            try:
                config = json.loads(config_path.read_text())
            except json.JSONDecodeError as exc:
                raise ValueError(f"node config {config_path} is not valid JSON: {exc}") from exc
            if not isinstance(config, dict):
                raise ValueError(f"node config {config_path} must hold an object")
        tracked = [s for s in str(config.get(TRACK_SUBNETS_KEY) or "").split(",") if s]
        if state.subnet_id not in tracked:
            tracked.append(state.subnet_id)
        config[TRACK_SUBNETS_KEY] = ",".join(tracked)
        atomic_write_json(config_path, config)
        logger.info("node config %s now tracks %s", config_path, state.subnet_id)
        return {
            "subnet_id": state.subnet_id,
            "vm_id": state.vm_id,
            "plugin": str(plugin),
            "node_config": str(config_path),
        }

    def add_validator(
        self,
        name: str,
        network: str,
        node_id: str,
        weight: int,
        start_time: str,
        period_seconds: int,
        simulate_public: bool = False,
        auth_keys: list[str] | None = None,
        tx_path: str | Path | None = None,
    ) -> OperationResult:
        _check_network(network)
        if not node_id:
            raise ValueError("node id must not be empty")
        if weight <= 0:
            raise ValueError("weight must be positive")
        if network != NETWORK_LOCAL and period_seconds < MIN_STAKING_PERIOD:
            raise ValueError(f"staking period must be at least {MIN_STAKING_PERIOD} seconds")
        if period_seconds <= 0:
            raise ValueError("staking period must be positive")
        sidecar = self.store.load(name)
        state = self._deployed_state(sidecar, network)
        if node_id in state.validators:
            raise AlreadyExistsError(f"{node_id} is already a validator of {name} on {network}")
        payload = {
            "subnet_id": state.subnet_id,
            "node_id": node_id,
            "weight": weight,
            "start_time": start_time,
            "period_seconds": period_seconds,
        }
        return self._dispatch(sidecar, network, TX_ADD_VALIDATOR, payload, simulate_public, auth_keys, tx_path)

    def remove_validator(
        self,
        name: str,
        network: str,
        node_id: str,
        simulate_public: bool = False,
        auth_keys: list[str] | None = None,
        tx_path: str | Path | None = None,
    ) -> OperationResult:
        _check_network(network)
        sidecar = self.store.load(name)
        state = self._deployed_state(sidecar, network)
        if node_id not in state.validators:
            endpoint = endpoint_network(network, simulate_public)
            known = {str(v.get("node_id")) for v in self.control_plane.validators(endpoint, state.subnet_id)}
            if node_id not in known:
                raise NotFoundError(f"{node_id} is not a validator of {name} on {network}")
        payload = {"subnet_id": state.subnet_id, "node_id": node_id}
        return self._dispatch(sidecar, network, TX_REMOVE_VALIDATOR, payload, simulate_public, auth_keys, tx_path)

    def transform_elastic(
        self,
        name: str,
        network: str,
        config: ElasticConfig,
        simulate_public: bool = False,
        auth_keys: list[str] | None = None,
        tx_path: str | Path | None = None,
        transform_validators: bool = False,
        fee_key: str | None = None,
    ) -> OperationResult:
        """Convert a permissioned subnet to permissionless staking.

        With ``transform_validators`` the recorded permissioned validators are
        removed and re-added as stakers once the conversion is committed.
        """
        _check_network(network)
        sidecar = self.store.load(name)
        state = self._deployed_state(sidecar, network)
        check_preconditions(sidecar, network, TX_TRANSFORM_ELASTIC)
        config.validate()

        side_file = dict(config.to_dict(), subnet_id=state.subnet_id, network=network)
        atomic_write_json(self.layout.elastic_config(name), side_file)

        payload = {"subnet_id": state.subnet_id, "elastic_config": config.to_dict()}
        outcome = self._dispatch(
            sidecar, network, TX_TRANSFORM_ELASTIC, payload, simulate_public, auth_keys, tx_path
        )
        if transform_validators:
            if not outcome.committed:
                logger.warning("validators are not transformed until the elastic transaction is committed")
            else:
                outcome.details["transformed_validators"] = self._transform_validators(
                    name, network, config, simulate_public, auth_keys, fee_key
                )
        return outcome

    def _transform_validators(
        self,
        name: str,
        network: str,
        config: ElasticConfig,
        simulate_public: bool,
        auth_keys: list[str] | None,
        fee_key: str | None,
    ) -> list[str]:
        moved: list[str] = []
        recorded = self.store.load(name).networks[network].validators
        for node_id, record in sorted(recorded.items()):
            removed = self.remove_validator(name, network, node_id, simulate_public, auth_keys)
            if not removed.committed:
                raise ExternalOperationError(f"removing {node_id} needs offline signatures; transform it manually")
            period = min(max(record.period_seconds, config.min_stake_duration), config.max_stake_duration)
            self.join_elastic(
                name,
                network,
                node_id,
                stake_amount=config.min_stake,
                start_time=record.start_time,
                period_seconds=period,
                fee_key=fee_key,
                simulate_public=simulate_public,
            )
            moved.append(node_id)
        return moved

    def join_elastic(
        self,
        name: str,
        network: str,
        node_id: str,
        stake_amount: int,
        start_time: str,
        period_seconds: int,
        fee_key: str | None = None,
        delegation_fee: int | None = None,
        simulate_public: bool = False,
    ) -> OperationResult:
        """Add a permissionless validator with stake to an elastic subnet."""
        _check_network(network)
        sidecar = self.store.load(name)
        state = self._deployed_state(sidecar, network)
        check_preconditions(sidecar, network, TX_ADD_PERMISSIONLESS_VALIDATOR)
        config = state.elastic_config
        if config is not None:
            if not config.min_stake <= stake_amount <= config.max_stake:
                raise ValueError(f"stake must be between {config.min_stake} and {config.max_stake}")
            if not config.min_stake_duration <= period_seconds <= config.max_stake_duration:
                raise ValueError(
                    f"staking period must be between {config.min_stake_duration} "
                    f"and {config.max_stake_duration} seconds"
                )
            if delegation_fee is not None and delegation_fee < config.min_delegation_fee:
                raise ValueError(f"delegation fee must be at least {config.min_delegation_fee}")
        if node_id in state.validators:
            raise AlreadyExistsError(f"{node_id} is already a validator of {name} on {network}")

        payload: Dict[str, Any] = {
            "subnet_id": state.subnet_id,
            "node_id": node_id,
            "stake_amount": stake_amount,
            "start_time": start_time,
            "period_seconds": period_seconds,
            "asset_id": config.asset_id if config is not None else "",
        }
        if delegation_fee is not None:
            payload["delegation_fee"] = delegation_fee
        endpoint = endpoint_network(network, simulate_public)
        if network == NETWORK_LOCAL:
            result = self.control_plane.submit(endpoint, TX_ADD_PERMISSIONLESS_VALIDATOR, payload, {})
        else:
            if not fee_key:
                raise ValueError("staking on a public network needs a fee-paying key")
            result = self._submit_signed(endpoint, TX_ADD_PERMISSIONLESS_VALIDATOR, name, network, payload, fee_key)
        apply_result(self.store, name, network, TX_ADD_PERMISSIONLESS_VALIDATOR, payload, result)
        return OperationResult(network=network, committed=True, details=result)

    def list_validators(self, name: str, network: str, simulate_public: bool = False) -> list[Dict[str, Any]]:
        """Recorded validators merged with what the network reports."""
        _check_network(network)
        state = self._deployed_state(self.store.load(name), network)
        endpoint = endpoint_network(network, simulate_public)
        merged: Dict[str, Dict[str, Any]] = {}
        for node_id, record in state.validators.items():
            merged[node_id] = dict(record.to_dict(), node_id=node_id, recorded=True, on_network=False)
        for entry in self.control_plane.validators(endpoint, state.subnet_id):
            node_id = str(entry.get("node_id") or "")
            if not node_id:
                continue
            row = merged.setdefault(node_id, {"node_id": node_id, "recorded": False})
            for key, value in entry.items():
                row.setdefault(key, value)
            row["on_network"] = True
        return [merged[k] for k in sorted(merged)]

    def stats(self, name: str, network: str, simulate_public: bool = False) -> Dict[str, Any]:
        _check_network(network)
        state = self._deployed_state(self.store.load(name), network)
        return self.control_plane.stats(endpoint_network(network, simulate_public), state.subnet_id)

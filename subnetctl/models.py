"""Sidecar records: VM selection, per-network state, elastic config, validators."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from .constants import (
    ELASTIC_DEFAULTS,
    NETWORKS,
    STATE_DEPLOYED,
    STATE_ELASTIC,
    STATE_UNDEPLOYED,
    VM_TYPE_CUSTOM,
    VM_TYPE_REGISTERED,
    VM_TYPE_STANDARD,
)
from .util import ensure_int, ensure_str


@dataclass(frozen=True)
class CustomVM:
    """A VM supplied as a binary; ``binary`` is relative to the base dir."""

    binary: str


@dataclass(frozen=True)
class StandardVM:
    kind: str
    version: str


@dataclass(frozen=True)
class RegisteredVM:
    """A VM described by a published descriptor repository.

    ``binary_url`` and ``checksum`` (hex sha256) tell the node where to fetch
    the binary on install; both are optional.
    """

    name: str
    version: str
    repo: str
    binary_url: str = ""
    checksum: str = ""


VMSelection = Union[CustomVM, StandardVM, RegisteredVM]


def vm_to_dict(vm: VMSelection) -> Dict[str, Any]:
    if isinstance(vm, CustomVM):
        return {"type": VM_TYPE_CUSTOM, "binary": vm.binary}
    if isinstance(vm, StandardVM):
        return {"type": VM_TYPE_STANDARD, "kind": vm.kind, "version": vm.version}
    if isinstance(vm, RegisteredVM):
        out: Dict[str, Any] = {"type": VM_TYPE_REGISTERED, "name": vm.name, "version": vm.version, "repo": vm.repo}
        if vm.binary_url:
            out["binary_url"] = vm.binary_url
        if vm.checksum:
            out["checksum"] = vm.checksum
        return out
    raise TypeError(f"unknown VM selection: {vm!r}")


def vm_from_dict(raw: Any) -> VMSelection:
    if not isinstance(raw, dict):
        raise ValueError("sidecar.vm must be an object")
    vm_type = raw.get("type")
    if vm_type == VM_TYPE_CUSTOM:
        return CustomVM(binary=ensure_str(raw.get("binary"), "vm.binary"))
    if vm_type == VM_TYPE_STANDARD:
        return StandardVM(
            kind=ensure_str(raw.get("kind"), "vm.kind"),
            version=ensure_str(raw.get("version"), "vm.version"),
        )
    if vm_type == VM_TYPE_REGISTERED:
        return RegisteredVM(
            name=ensure_str(raw.get("name"), "vm.name"),
            version=ensure_str(raw.get("version"), "vm.version"),
            repo=ensure_str(raw.get("repo"), "vm.repo"),
            binary_url=str(raw.get("binary_url") or ""),
            checksum=str(raw.get("checksum") or ""),
        )
    raise ValueError(f"unknown vm.type: {vm_type!r}")


def vm_type_name(vm: VMSelection) -> str:
    if isinstance(vm, CustomVM):
        return VM_TYPE_CUSTOM
    if isinstance(vm, StandardVM):
        return VM_TYPE_STANDARD
    if isinstance(vm, RegisteredVM):
        return VM_TYPE_REGISTERED
    raise TypeError(f"unknown VM selection: {vm!r}")


@dataclass
class ElasticConfig:
    token_name: str
    token_symbol: str
    denomination: int
    initial_supply: int = ELASTIC_DEFAULTS["initial_supply"]
    max_supply: int = ELASTIC_DEFAULTS["max_supply"]
    min_stake: int = ELASTIC_DEFAULTS["min_stake"]
    max_stake: int = ELASTIC_DEFAULTS["max_stake"]
    min_stake_duration: int = ELASTIC_DEFAULTS["min_stake_duration"]
    max_stake_duration: int = ELASTIC_DEFAULTS["max_stake_duration"]
    min_delegation_fee: int = ELASTIC_DEFAULTS["min_delegation_fee"]
    min_delegator_stake: int = ELASTIC_DEFAULTS["min_delegator_stake"]
    max_validator_weight_factor: int = ELASTIC_DEFAULTS["max_validator_weight_factor"]
    uptime_requirement: int = ELASTIC_DEFAULTS["uptime_requirement"]
    asset_id: str = ""
    tx_id: str = ""

    def validate(self) -> None:
        if not self.token_name.strip():
            raise ValueError("token name must not be empty")
        symbol = self.token_symbol.strip()
        if not (3 <= len(symbol) <= 4) or not symbol.isalpha() or symbol.upper() != symbol:
            raise ValueError("token symbol must be 3-4 upper-case letters")
        if self.denomination < 0 or self.denomination > 32:
            raise ValueError("denomination must be within 0..32")
        if self.initial_supply <= 0 or self.max_supply < self.initial_supply:
            raise ValueError("max supply must be >= initial supply > 0")
        if self.min_stake <= 0 or self.max_stake < self.min_stake:
            raise ValueError("max stake must be >= min stake > 0")
        if self.max_stake > self.max_supply:
            raise ValueError("max stake must not exceed max supply")
        if self.min_stake_duration <= 0 or self.max_stake_duration < self.min_stake_duration:
            raise ValueError("max stake duration must be >= min stake duration > 0")
        if not 0 <= self.uptime_requirement <= 1_000_000:
            raise ValueError("uptime requirement must be within 0..1000000")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token_name": self.token_name,
            "token_symbol": self.token_symbol,
            "denomination": self.denomination,
            "initial_supply": self.initial_supply,
            "max_supply": self.max_supply,
            "min_stake": self.min_stake,
            "max_stake": self.max_stake,
            "min_stake_duration": self.min_stake_duration,
            "max_stake_duration": self.max_stake_duration,
            "min_delegation_fee": self.min_delegation_fee,
            "min_delegator_stake": self.min_delegator_stake,
            "max_validator_weight_factor": self.max_validator_weight_factor,
            "uptime_requirement": self.uptime_requirement,
            "asset_id": self.asset_id,
            "tx_id": self.tx_id,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "ElasticConfig":
        if not isinstance(raw, dict):
            raise ValueError("elastic_config must be an object")
        kwargs: Dict[str, Any] = {
            "token_name": ensure_str(raw.get("token_name"), "elastic_config.token_name"),
            "token_symbol": ensure_str(raw.get("token_symbol"), "elastic_config.token_symbol"),
            "denomination": ensure_int(raw.get("denomination"), "elastic_config.denomination"),
        }
        for key in ELASTIC_DEFAULTS:
            if key in raw:
                kwargs[key] = ensure_int(raw[key], f"elastic_config.{key}")
        for key in ("asset_id", "tx_id"):
            if key in raw:
                kwargs[key] = ensure_str(raw[key], f"elastic_config.{key}")
        return cls(**kwargs)


@dataclass
class ValidatorRecord:
    weight: int = 0
    start_time: str = ""
    period_seconds: int = 0
    stake_amount: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weight": self.weight,
            "start_time": self.start_time,
            "period_seconds": self.period_seconds,
            "stake_amount": self.stake_amount,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "ValidatorRecord":
        if not isinstance(raw, dict):
            raise ValueError("validator entry must be an object")
        return cls(
            weight=int(raw.get("weight", 0)),
            start_time=str(raw.get("start_time", "")),
            period_seconds=int(raw.get("period_seconds", 0)),
            stake_amount=int(raw.get("stake_amount", 0)),
        )


@dataclass
class NetworkState:
    subnet_id: str
    chain_id: str = ""
    vm_id: str = ""
    runtime_version: str = ""
    control_keys: list[str] = field(default_factory=list)
    threshold: int = 0
    elastic: bool = False
    elastic_config: Optional[ElasticConfig] = None
    validators: Dict[str, ValidatorRecord] = field(default_factory=dict)
    pending_tx: str = ""

    @property
    def chain_pending(self) -> bool:
        return not self.chain_id

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "subnet_id": self.subnet_id,
            "chain_id": self.chain_id,
            "vm_id": self.vm_id,
            "runtime_version": self.runtime_version,
            "control_keys": list(self.control_keys),
            "threshold": self.threshold,
            "elastic": self.elastic,
            "validators": {node: rec.to_dict() for node, rec in self.validators.items()},
            "pending_tx": self.pending_tx,
        }
        if self.elastic_config is not None:
            out["elastic_config"] = self.elastic_config.to_dict()
        return out

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "NetworkState":
        if not isinstance(raw, dict):
            raise ValueError("network state must be an object")
        validators_raw = raw.get("validators") or {}
        if not isinstance(validators_raw, dict):
            raise ValueError("network state validators must be an object")
        control_keys = raw.get("control_keys") or []
        if not isinstance(control_keys, list):
            raise ValueError("network state control_keys must be a list")
        elastic_raw = raw.get("elastic_config")
        return cls(
            subnet_id=ensure_str(raw.get("subnet_id"), "subnet_id"),
            chain_id=str(raw.get("chain_id") or ""),
            vm_id=str(raw.get("vm_id") or ""),
            runtime_version=str(raw.get("runtime_version") or ""),
            control_keys=[str(k) for k in control_keys],
            threshold=int(raw.get("threshold", 0)),
            elastic=bool(raw.get("elastic", False)),
            elastic_config=ElasticConfig.from_dict(elastic_raw) if elastic_raw is not None else None,
            validators={str(node): ValidatorRecord.from_dict(v) for node, v in validators_raw.items()},
            pending_tx=str(raw.get("pending_tx") or ""),
        )


@dataclass
class Sidecar:
    name: str
    vm: VMSelection
    vm_version: str = ""
    rpc_version: int = 0
    token_name: str = ""
    networks: Dict[str, NetworkState] = field(default_factory=dict)
    imported_from: str = ""

    def network_state(self, network: str) -> Optional[NetworkState]:
        return self.networks.get(network)

    def status(self, network: str) -> str:
        state = self.networks.get(network)
        if state is None:
            return STATE_UNDEPLOYED
        if state.elastic:
            return STATE_ELASTIC
        return STATE_DEPLOYED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "vm": vm_to_dict(self.vm),
            "vm_version": self.vm_version,
            "rpc_version": self.rpc_version,
            "token_name": self.token_name,
            "networks": {net: state.to_dict() for net, state in self.networks.items()},
            "imported_from": self.imported_from,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Sidecar":
        if not isinstance(raw, dict):
            raise ValueError("sidecar must be an object")
        networks_raw = raw.get("networks") or {}
        if not isinstance(networks_raw, dict):
            raise ValueError("sidecar.networks must be an object")
        networks: Dict[str, NetworkState] = {}
        for net, state in networks_raw.items():
            if net not in NETWORKS:
                raise ValueError(f"unknown network in sidecar: {net}")
            networks[net] = NetworkState.from_dict(state)
        rpc_version = raw.get("rpc_version", 0)
        return cls(
            name=ensure_str(raw.get("name"), "sidecar.name"),
            vm=vm_from_dict(raw.get("vm")),
            vm_version=str(raw.get("vm_version") or ""),
            rpc_version=ensure_int(rpc_version, "sidecar.rpc_version"),
            token_name=str(raw.get("token_name") or ""),
            networks=networks,
            imported_from=str(raw.get("imported_from") or ""),
        )

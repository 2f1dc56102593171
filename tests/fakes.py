"""In-memory stand-ins for the external collaborators used across tests."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Any

from subnetctl.layout import Layout
from subnetctl.sidecar import SidecarStore
from subnetctl.versions import CompatibilityTable, VersionResolver

GENESIS = b'{"config": {"chainId": 99999}, "alloc": {}}\n'


def make_table() -> CompatibilityTable:
    return CompatibilityTable(
        vm_protocols={"v0.4.9": 26, "v0.5.0": 26, "v0.5.1": 27},
        runtime_protocols={26: ["v1.9.9", "v1.10.0", "v1.10.1"], 27: ["v1.10.2"]},
    )


def make_resolver() -> VersionResolver:
    return VersionResolver.from_table(make_table())


def make_store(base: Path) -> tuple[Layout, SidecarStore]:
    layout = Layout(base)
    return layout, SidecarStore(layout)


class FakeKeys:
    def __init__(self, addresses: dict[str, str]) -> None:
        self.addresses = dict(addresses)
        self.signed: list[tuple[str, bytes]] = []

    def address(self, name: str) -> str:
        return self.addresses[name]

    def local_key_for(self, address: str) -> str | None:
        for name, addr in self.addresses.items():
            if addr == address:
                return name
        return None

    def sign(self, name: str, payload: bytes) -> str:
        self.signed.append((name, payload))
        return f"sig-{name}-{hashlib.sha256(payload).hexdigest()[:12]}"


class FakeControlPlane:
    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.remote_validators: list[dict[str, Any]] = []
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def deploy_local(self, subnet, vm, genesis, vm_binary, runtime_version):
        n = self._next()
        self.calls.append(("deploy_local", (subnet, vm, genesis, vm_binary, runtime_version)))
        return {"subnet_id": f"subnet-{n}", "chain_id": f"chain-{n}", "vm_id": f"vm-{subnet}"}

    def submit(self, network, kind, payload, signatures):
        n = self._next()
        self.calls.append(("submit", (network, kind, payload, dict(signatures))))
        result = {"tx_id": f"tx-{n}"}
        if kind == "subnet-creation":
            result["subnet_id"] = f"subnet-{n}"
        if kind == "chain-creation":
            result["chain_id"] = f"chain-{n}"
            result["vm_id"] = "vm-1"
        if kind == "transform-elastic":
            result["asset_id"] = f"asset-{n}"
        return result

    def validators(self, network, subnet_id):
        self.calls.append(("validators", (network, subnet_id)))
        return list(self.remote_validators)

    def stats(self, network, subnet_id):
        self.calls.append(("stats", (network, subnet_id)))
        return {"subnet_id": subnet_id, "blocks": 12}

    def install_vm(self, vm, dest: Path) -> None:
        self.calls.append(("install_vm", (vm, dest)))
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(b"vm-binary")

    def submitted(self) -> list[tuple[str, str, dict, dict]]:
        return [args for name, args in self.calls if name == "submit"]

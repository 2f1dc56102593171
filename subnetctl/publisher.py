"""Published subnet/VM descriptors.

A descriptor repository is a checkout with ``subnets/<name>.toml`` and
``vms/<vm>.toml``. How the checkout gets there (clone, pull) is not handled
here.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Protocol

from .errors import NotFoundError
from .util import ensure_str

try:
    import tomllib
except ImportError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]


@dataclass
class SubnetDescriptor:
    name: str
    vm_name: str
    genesis: bytes
    token_name: str = ""


@dataclass
class VMDescriptor:
    name: str
    version: str
    rpc_version: int
    binary_url: str = ""
    checksum: str = ""


@dataclass
class Descriptor:
    repo: str
    subnet: SubnetDescriptor
    vm: VMDescriptor


class Publisher(Protocol):
    def fetch(self, repo: str, subnet_name: str) -> Descriptor: ...


def _load_toml(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        raise NotFoundError(f"descriptor not found: {path}")
    return tomllib.loads(path.read_text())


def parse_subnet_descriptor(raw: Dict[str, Any]) -> SubnetDescriptor:
    subnet = raw.get("subnet") if isinstance(raw.get("subnet"), dict) else {}
    genesis_b64 = ensure_str(subnet.get("genesis"), "subnet.genesis")
    try:
        genesis = base64.b64decode(genesis_b64, validate=True)
    except ValueError as exc:
        raise ValueError(f"subnet.genesis is not valid base64: {exc}") from exc
    return SubnetDescriptor(
        name=ensure_str(subnet.get("name"), "subnet.name"),
        vm_name=ensure_str(subnet.get("vm"), "subnet.vm"),
        genesis=genesis,
        token_name=str(subnet.get("token_name") or ""),
    )


def parse_vm_descriptor(raw: Dict[str, Any]) -> VMDescriptor:
    vm = raw.get("vm") if isinstance(raw.get("vm"), dict) else {}
    rpc = vm.get("rpc_version")
    if not isinstance(rpc, int):
        raise ValueError("vm.rpc_version must be an integer")
    return VMDescriptor(
        name=ensure_str(vm.get("name"), "vm.name"),
        version=ensure_str(vm.get("version"), "vm.version"),
        rpc_version=rpc,
        binary_url=str(vm.get("binary_url") or ""),
        checksum=str(vm.get("checksum") or ""),
    )


class DirectoryPublisher:
    """Reads descriptors from repository checkouts under ``repos_dir``.

    ``repo`` is either an alias (a directory name under ``repos_dir``) or a
    path to a checkout.
    """

    def __init__(self, repos_dir: Path) -> None:
        self.repos_dir = repos_dir

    def repo_path(self, repo: str) -> Path:
        candidate = Path(repo).expanduser()
        if candidate.is_dir():
            return candidate
        aliased = self.repos_dir / repo
        if aliased.is_dir():
            return aliased
        raise NotFoundError(f"descriptor repository not found: {repo}")

    def fetch(self, repo: str, subnet_name: str) -> Descriptor:
        root = self.repo_path(repo)
        subnet = parse_subnet_descriptor(_load_toml(root / "subnets" / f"{subnet_name}.toml"))
        vm = parse_vm_descriptor(_load_toml(root / "vms" / f"{subnet.vm_name}.toml"))
        return Descriptor(repo=repo, subnet=subnet, vm=vm)

"""SubnetConfigManager — create, configure, import and delete subnet bundles.

Write-order contract for a subnet's files:

1. genesis (and the mainnet genesis variant, if any)
2. custom VM binary, if any
3. sidecar
4. chain config overlays (``configure``, only once the sidecar exists)

``exists`` looks at the sidecar alone, so a crash before step 3 leaves a
dangling genesis that is treated as "not created" and simply overwritten by
the next ``create``. Deletion runs in the reverse direction: the sidecar goes
first.
"""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from typing import Any, Callable

from .constants import LATEST, STANDARD_VM_KINDS
from .errors import AlreadyExistsError, NotFoundError
from .layout import Layout
from .models import CustomVM, RegisteredVM, Sidecar, StandardVM, VMSelection, vm_to_dict, vm_type_name
from .prompts import Confirmer, ask_confirmation
from .publisher import Publisher
from .sidecar import SidecarStore
from .util import atomic_write_bytes, is_semver, is_subnet_name, write_executable
from .versions import VersionResolver, extract_protocol_version

logger = logging.getLogger(__name__)


def _read_source(source: str | Path, what: str) -> bytes:
    path = Path(source).expanduser()
    try:
        return path.read_bytes()
    except FileNotFoundError:
        raise NotFoundError(f"{what} not found: {path}") from None


def _read_json_source(source: str | Path, what: str) -> bytes:
    data = _read_source(source, what)
    try:
        json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValueError(f"{what} is not valid JSON: {exc}") from exc
    return data


class SubnetConfigManager:
    def __init__(
        self,
        layout: Layout,
        store: SidecarStore,
        resolver: VersionResolver | None = None,
        publisher: Publisher | None = None,
        confirm: Confirmer = ask_confirmation,
        protocol_reader: Callable[[str | Path], int] = extract_protocol_version,
    ) -> None:
        self.layout = layout
        self.store = store
        self.resolver = resolver
        self.publisher = publisher
        self.confirm = confirm
        self.protocol_reader = protocol_reader

    def exists(self, name: str) -> bool:
        return self.store.exists(name)

    def _require_resolver(self) -> VersionResolver:
        if self.resolver is None:
            raise ValueError("a version resolver is required for this operation")
        return self.resolver

    def create(
        self,
        name: str,
        vm: VMSelection,
        genesis_source: str | Path,
        force: bool = False,
        genesis_mainnet_source: str | Path | None = None,
        token_name: str = "",
    ) -> Sidecar:
        """Create a subnet bundle.

        For ``CustomVM`` the ``binary`` field names the source binary, which
        is copied under the base dir. ``StandardVM`` may carry ``latest`` as
        its version. With ``force`` an existing bundle is replaced, but only
        once every input has been read and validated; a failure leaves it as
        it was.
        """
        if not is_subnet_name(name):
            raise ValueError("subnet name must start with a letter and contain only letters and digits")
        replacing = self.store.exists(name)
        if replacing and not force:
            raise AlreadyExistsError(f"subnet {name!r} already exists; use --force to overwrite")

        genesis = _read_source(genesis_source, "genesis file")
        genesis_mainnet = (
            _read_source(genesis_mainnet_source, "mainnet genesis file") if genesis_mainnet_source else None
        )

        custom_binary: bytes | None = None
        if isinstance(vm, CustomVM):
            source = Path(vm.binary).expanduser()
            rpc_version = self.protocol_reader(source)
            custom_binary = _read_source(source, "VM binary")
            vm_version = ""
            selection: VMSelection = CustomVM(binary=self.layout.relative(self.layout.vm_binary(name)))
        elif isinstance(vm, StandardVM):
            if vm.kind not in STANDARD_VM_KINDS:
                raise ValueError(f"unknown standard VM: {vm.kind}")
            resolver = self._require_resolver()
            vm_version = vm.version or LATEST
            if vm_version == LATEST:
                vm_version = resolver.latest_vm_version()
            elif not is_semver(vm_version):
                raise ValueError(f"VM version must look like vX.Y.Z, got {vm_version!r}")
            rpc_version = resolver.protocol_for_vm(vm_version)
            selection = StandardVM(kind=vm.kind, version=vm_version)
        elif isinstance(vm, RegisteredVM):
            raise ValueError("registered VMs are added with import, not create")
        else:
            raise TypeError(f"unknown VM selection: {vm!r}")

        # Nothing of an existing bundle is touched until every input has been read.
        if replacing:
            logger.info("overwriting existing subnet %s", name)
            self._remove_bundle(name)

        atomic_write_bytes(self.layout.genesis(name), genesis)
        if genesis_mainnet is not None:
            atomic_write_bytes(self.layout.genesis_mainnet(name), genesis_mainnet)
        if custom_binary is not None:
            write_executable(self.layout.vm_binary(name), custom_binary)

        sidecar = Sidecar(
            name=name,
            vm=selection,
            vm_version=vm_version,
            rpc_version=rpc_version,
            token_name=token_name,
        )
        self.store.save(sidecar)
        logger.info("created %s subnet %s", vm_type_name(selection), name)
        return sidecar

    def configure(
        self,
        name: str,
        chain_config_source: str | Path | None = None,
        per_node_chain_config_source: str | Path | None = None,
    ) -> list[Path]:
        if not self.store.exists(name):
            raise NotFoundError(f"subnet {name!r} does not exist")
        if chain_config_source is None and per_node_chain_config_source is None:
            raise ValueError("nothing to configure: pass a chain config and/or a per-node chain config")
        written: list[Path] = []
        if chain_config_source is not None:
            data = _read_json_source(chain_config_source, "chain config")
            dest = self.layout.chain_config(name)
            atomic_write_bytes(dest, data)
            written.append(dest)
        if per_node_chain_config_source is not None:
            data = _read_json_source(per_node_chain_config_source, "per-node chain config")
            dest = self.layout.per_node_chain_config(name)
            atomic_write_bytes(dest, data)
            written.append(dest)
        return written

    def delete(self, name: str, force: bool = False) -> bool:
        """Delete a subnet bundle; returns False when the user declines."""
        if not self.store.exists(name):
            raise NotFoundError(f"subnet {name!r} does not exist")
        if not force and not self.confirm(f"Are you sure you want to delete {name}?"):
            logger.info("delete of %s cancelled", name)
            return False
        self.store.delete(name)
        self._remove_bundle(name)
        logger.info("deleted subnet %s", name)
        return True

    def _remove_bundle(self, name: str) -> None:
        sidecar = self.layout.sidecar(name)
        if sidecar.exists():
            sidecar.unlink()
        subnet_dir = self.layout.subnet_dir(name)
        if subnet_dir.exists():
            shutil.rmtree(subnet_dir)
        binary = self.layout.vm_binary(name)
        if binary.exists():
            binary.unlink()

    def import_subnet(self, repo: str, subnet_name: str, name: str | None = None) -> Sidecar:
        if self.publisher is None:
            raise ValueError("no descriptor publisher configured")
        descriptor = self.publisher.fetch(repo, subnet_name)
        local_name = name or descriptor.subnet.name
        if not is_subnet_name(local_name):
            raise ValueError(f"descriptor names an invalid subnet: {local_name!r}")
        if self.store.exists(local_name):
            raise AlreadyExistsError(f"subnet {local_name!r} already exists")
        for other in self.store.list_names():
            vm = self.store.load(other).vm
            if isinstance(vm, RegisteredVM) and vm.name == descriptor.vm.name and vm.repo == repo:
                raise AlreadyExistsError(
                    f"VM {vm.name!r} from {repo} is already registered by subnet {other!r}"
                )

        atomic_write_bytes(self.layout.genesis(local_name), descriptor.subnet.genesis)
        sidecar = Sidecar(
            name=local_name,
            vm=RegisteredVM(
                name=descriptor.vm.name,
                version=descriptor.vm.version,
                repo=repo,
                binary_url=descriptor.vm.binary_url,
                checksum=descriptor.vm.checksum,
            ),
            vm_version=descriptor.vm.version,
            rpc_version=descriptor.vm.rpc_version,
            token_name=descriptor.subnet.token_name,
            imported_from=repo,
        )
        self.store.save(sidecar)
        logger.info("imported subnet %s from %s", local_name, repo)
        return sidecar

    def describe(self, name: str) -> dict[str, Any]:
        sidecar = self.store.load(name)
        files = {
            "genesis": self.layout.genesis(name),
            "genesis_mainnet": self.layout.genesis_mainnet(name),
            "chain_config": self.layout.chain_config(name),
            "per_node_chain_config": self.layout.per_node_chain_config(name),
            "elastic_config": self.layout.elastic_config(name),
        }
        if isinstance(sidecar.vm, CustomVM):
            files["vm_binary"] = self.layout.resolve(sidecar.vm.binary)
        return {
            "name": sidecar.name,
            "vm": vm_to_dict(sidecar.vm),
            "vm_version": sidecar.vm_version,
            "rpc_version": sidecar.rpc_version,
            "token_name": sidecar.token_name,
            "imported_from": sidecar.imported_from,
            "files": {key: str(path) for key, path in files.items() if path.exists()},
            "networks": {
                net: dict(state.to_dict(), status=sidecar.status(net))
                for net, state in sidecar.networks.items()
            },
        }

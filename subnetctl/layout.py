"""Paths of everything subnetctl keeps under its base directory."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .constants import (
    CHAIN_CONFIG_FILE,
    COMPATIBILITY_CACHE_FILE,
    ELASTIC_CONFIG_FILE,
    GENESIS_FILE,
    GENESIS_MAINNET_FILE,
    KEYS_DIR,
    PER_NODE_CHAIN_CONFIG_FILE,
    REPOS_DIR,
    SIDECAR_FILE,
    SUBNETS_DIR,
    VMS_DIR,
)


@dataclass(frozen=True)
class Layout:
    base_dir: Path

    @property
    def subnets_dir(self) -> Path:
        return self.base_dir / SUBNETS_DIR

    @property
    def vms_dir(self) -> Path:
        return self.base_dir / VMS_DIR

    @property
    def keys_dir(self) -> Path:
        return self.base_dir / KEYS_DIR

    @property
    def repos_dir(self) -> Path:
        return self.base_dir / REPOS_DIR

    @property
    def compatibility_cache(self) -> Path:
        return self.base_dir / COMPATIBILITY_CACHE_FILE

    def subnet_dir(self, name: str) -> Path:
        return self.subnets_dir / name

    def sidecar(self, name: str) -> Path:
        return self.subnet_dir(name) / SIDECAR_FILE

    def genesis(self, name: str) -> Path:
        return self.subnet_dir(name) / GENESIS_FILE

    def genesis_mainnet(self, name: str) -> Path:
        return self.subnet_dir(name) / GENESIS_MAINNET_FILE

    def chain_config(self, name: str) -> Path:
        return self.subnet_dir(name) / CHAIN_CONFIG_FILE

    def per_node_chain_config(self, name: str) -> Path:
        return self.subnet_dir(name) / PER_NODE_CHAIN_CONFIG_FILE

    def elastic_config(self, name: str) -> Path:
        return self.subnet_dir(name) / ELASTIC_CONFIG_FILE

    def vm_binary(self, name: str) -> Path:
        return self.vms_dir / name

    def relative(self, path: Path) -> str:
        return str(path.relative_to(self.base_dir))

    def resolve(self, relative: str) -> Path:
        candidate = Path(relative).expanduser()
        if candidate.is_absolute():
            return candidate
        return self.base_dir / candidate

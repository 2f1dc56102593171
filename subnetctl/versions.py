"""VM/runtime version compatibility and VM protocol inspection."""

from __future__ import annotations

import json
import logging
import subprocess
import time
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from .constants import LATEST
from .errors import ArtifactUnreadableError, ExternalOperationError, IncompatibleVersionError
from .util import atomic_write_json, version_key

logger = logging.getLogger(__name__)

VM_PROTOCOL_KEY = "rpcChainVMProtocolVersion"


@dataclass
class CompatibilityTable:
    """VM version -> protocol version, and protocol version -> runtime versions."""

    vm_protocols: dict[str, int] = field(default_factory=dict)
    runtime_protocols: dict[int, list[str]] = field(default_factory=dict)

    @classmethod
    def from_documents(cls, vm_doc: Any, runtime_doc: Any) -> "CompatibilityTable":
        if not isinstance(vm_doc, dict) or not isinstance(vm_doc.get(VM_PROTOCOL_KEY), dict):
            raise ValueError(f"VM compatibility document lacks {VM_PROTOCOL_KEY}")
        if not isinstance(runtime_doc, dict):
            raise ValueError("runtime compatibility document must be an object")
        vm_protocols = {str(k): int(v) for k, v in vm_doc[VM_PROTOCOL_KEY].items()}
        runtime_protocols: dict[int, list[str]] = {}
        for proto, versions in runtime_doc.items():
            if not isinstance(versions, list):
                raise ValueError(f"runtime versions for protocol {proto} must be a list")
            runtime_protocols[int(proto)] = [str(v) for v in versions]
        return cls(vm_protocols=vm_protocols, runtime_protocols=runtime_protocols)

    def to_dict(self) -> dict[str, Any]:
        return {
            "vm": dict(self.vm_protocols),
            "runtime": {str(k): list(v) for k, v in self.runtime_protocols.items()},
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "CompatibilityTable":
        return cls(
            vm_protocols={str(k): int(v) for k, v in raw.get("vm", {}).items()},
            runtime_protocols={int(k): [str(x) for x in v] for k, v in raw.get("runtime", {}).items()},
        )


def fetch_json(url: str, retries: int = 4) -> Any:
    req = urllib.request.Request(url, headers={"Accept": "application/json"})
    for attempt in range(retries + 1):
        try:
            with urllib.request.urlopen(req, timeout=30) as resp:
                return json.loads(resp.read().decode())
        except urllib.error.HTTPError as exc:
            if exc.code in {429, 500, 502, 503, 504} and attempt < retries:
                time.sleep(0.25 * (2**attempt))
                continue
            raise ExternalOperationError(f"HTTP error {exc.code} fetching {url}: {exc.reason}") from exc
        except urllib.error.URLError as exc:
            if attempt < retries:
                time.sleep(0.25 * (2**attempt))
                continue
            raise ExternalOperationError(f"transport error fetching {url}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ExternalOperationError(f"invalid JSON from {url}: {exc}") from exc
    raise ExternalOperationError(f"fetching {url} failed after retries")


def load_compatibility(
    vm_url: str,
    runtime_url: str,
    cache_path: Path,
    ttl_seconds: int,
    fetch: Callable[[str], Any] = fetch_json,
) -> CompatibilityTable:
    """Return the compatibility table, refreshing the on-disk cache when stale.

    A stale cache is still used when the refresh fails; with no cache at all
    the fetch error propagates.
    """
    cached: dict[str, Any] | None = None
    if cache_path.is_file():
        try:
            cached = json.loads(cache_path.read_text())
        except json.JSONDecodeError:
            logger.warning("ignoring corrupt compatibility cache %s", cache_path)
            cached = None
    if cached is not None and time.time() - float(cached.get("fetched_at", 0)) < ttl_seconds:
        return CompatibilityTable.from_dict(cached)

    try:
        table = CompatibilityTable.from_documents(fetch(vm_url), fetch(runtime_url))
    except (ExternalOperationError, ValueError) as exc:
        if cached is None:
            raise ExternalOperationError(f"unable to load version compatibility table: {exc}") from exc
        logger.warning("using stale compatibility cache: %s", exc)
        return CompatibilityTable.from_dict(cached)

    payload = table.to_dict()
    payload["fetched_at"] = time.time()
    atomic_write_json(cache_path, payload)
    return table


class VersionResolver:
    """Pairs VM versions with node runtime versions that speak the same protocol."""

    def __init__(self, table_source: Callable[[], CompatibilityTable]) -> None:
        self._table_source = table_source
        self._table: CompatibilityTable | None = None

    @classmethod
    def from_table(cls, table: CompatibilityTable) -> "VersionResolver":
        return cls(lambda: table)

    def table(self) -> CompatibilityTable:
        if self._table is None:
            self._table = self._table_source()
        return self._table

    def latest_vm_version(self) -> str:
        versions = list(self.table().vm_protocols)
        if not versions:
            raise IncompatibleVersionError("compatibility table lists no VM versions")
        return max(versions, key=version_key)

    def protocol_for_vm(self, vm_version: str) -> int:
        protocols = self.table().vm_protocols
        if vm_version not in protocols:
            raise IncompatibleVersionError(f"no known protocol version for VM {vm_version}")
        return protocols[vm_version]

    def resolve_runtime_for_protocol(self, rpc_version: int) -> str:
        runtimes = self.table().runtime_protocols.get(rpc_version) or []
        if not runtimes:
            raise IncompatibleVersionError(f"no runtime version supports VM protocol {rpc_version}")
        return max(runtimes, key=version_key)

    def resolve_runtime_version(self, vm_version: str) -> str:
        if not vm_version or vm_version == LATEST:
            vm_version = self.latest_vm_version()
        runtime = self.resolve_runtime_for_protocol(self.protocol_for_vm(vm_version))
        logger.debug("VM %s pairs with runtime %s", vm_version, runtime)
        return runtime

    def protocol_for_runtime(self, runtime_version: str) -> int | None:
        for proto, runtimes in self.table().runtime_protocols.items():
            if runtime_version in runtimes:
                return proto
        return None


def extract_protocol_version(vm_binary: str | Path) -> int:
    """Ask a VM binary which RPC protocol version it speaks."""
    path = Path(vm_binary).expanduser()
    if not path.is_file():
        raise ArtifactUnreadableError(f"VM binary not found: {path}")
    try:
        result = subprocess.run(
            [str(path), "--version-json"],
            capture_output=True,
            text=True,
        )
    except OSError as exc:
        raise ArtifactUnreadableError(f"unable to run VM binary {path}: {exc}") from exc
    if result.returncode != 0:
        msg = result.stderr.strip() or result.stdout.strip() or "VM binary exited with an error"
        raise ArtifactUnreadableError(f"unable to read protocol version of {path}: {msg}")
    try:
        parsed = json.loads(result.stdout)
    except json.JSONDecodeError as exc:
        raise ArtifactUnreadableError(f"unable to parse version output: {result.stdout.strip()}") from exc
    rpc = parsed.get("rpcchainvm") if isinstance(parsed, dict) else None
    if not isinstance(rpc, int) or isinstance(rpc, bool):
        raise ArtifactUnreadableError(f"version output missing rpcchainvm: {result.stdout.strip()}")
    return rpc

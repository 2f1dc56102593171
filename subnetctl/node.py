"""Node control plane client.

Each call is one JSON request handed to the control binary on the command
line; the binary prints one JSON object on stdout. Its own timeout and retry
policy governs; nothing here retries.
"""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path
from typing import Any, Protocol

from .errors import ExternalOperationError

logger = logging.getLogger(__name__)


class NodeControlPlane(Protocol):
    def deploy_local(
        self,
        subnet: str,
        vm: dict[str, Any],
        genesis: Path,
        vm_binary: Path | None,
        runtime_version: str,
    ) -> dict[str, Any]: ...

    def submit(
        self,
        network: str,
        kind: str,
        payload: dict[str, Any],
        signatures: dict[str, str],
    ) -> dict[str, Any]: ...

    def validators(self, network: str, subnet_id: str) -> list[dict[str, Any]]: ...

    def stats(self, network: str, subnet_id: str) -> dict[str, Any]: ...

    def install_vm(self, vm: dict[str, Any], dest: Path) -> None: ...


class CliControlPlane:
    def __init__(self, binary: str) -> None:
        self.binary = binary

    def _call(self, operation: str, request: dict[str, Any]) -> dict[str, Any]:
        cmd = [self.binary, operation, "--request", json.dumps(request, sort_keys=True)]
        logger.debug("running %s %s", self.binary, operation)
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as exc:
            raise ExternalOperationError(f"unable to run {self.binary}: {exc}") from exc
        output = "\n".join(part for part in (result.stdout.strip(), result.stderr.strip()) if part)
        if result.returncode != 0:
            raise ExternalOperationError(
                f"{self.binary} {operation} failed with exit code {result.returncode}",
                output=output,
            )
        try:
            parsed = json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise ExternalOperationError(f"unable to parse {operation} output", output=output) from exc
        if not isinstance(parsed, dict):
            raise ExternalOperationError(f"{operation} output must be a JSON object", output=output)
        return parsed

    def deploy_local(
        self,
        subnet: str,
        vm: dict[str, Any],
        genesis: Path,
        vm_binary: Path | None,
        runtime_version: str,
    ) -> dict[str, Any]:
        request = {
            "subnet": subnet,
            "vm": vm,
            "genesis": str(genesis),
            "vm_binary": str(vm_binary) if vm_binary else "",
            "runtime_version": runtime_version,
        }
        result = self._call("deploy-local", request)
        for key in ("subnet_id", "chain_id"):
            if not isinstance(result.get(key), str) or not result.get(key):
                raise ExternalOperationError(f"deploy-local output missing {key}", output=json.dumps(result))
        return result

    def submit(
        self,
        network: str,
        kind: str,
        payload: dict[str, Any],
        signatures: dict[str, str],
    ) -> dict[str, Any]:
        request = {
            "network": network,
            "kind": kind,
            "payload": payload,
            "signatures": signatures,
        }
        result = self._call("submit", request)
        if not isinstance(result.get("tx_id"), str) or not result.get("tx_id"):
            raise ExternalOperationError("submit output missing tx_id", output=json.dumps(result))
        return result

    def validators(self, network: str, subnet_id: str) -> list[dict[str, Any]]:
        result = self._call("validators", {"network": network, "subnet_id": subnet_id})
        entries = result.get("validators")
        if not isinstance(entries, list):
            raise ExternalOperationError("validators output missing list", output=json.dumps(result))
        return [entry for entry in entries if isinstance(entry, dict)]

    def stats(self, network: str, subnet_id: str) -> dict[str, Any]:
        return self._call("stats", {"network": network, "subnet_id": subnet_id})

    def install_vm(self, vm: dict[str, Any], dest: Path) -> None:
        self._call("install-vm", {"vm": vm, "dest": str(dest)})
        if not dest.is_file():
            raise ExternalOperationError(f"install-vm did not produce {dest}")

"""Signing keys: a directory of key files driven through an external key tool."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Protocol

from .constants import KEY_SUFFIX
from .errors import AlreadyExistsError, ExternalOperationError, NotFoundError
from .util import copy_file_atomic, is_subnet_name

logger = logging.getLogger(__name__)


class KeyManager(Protocol):
    def address(self, name: str) -> str: ...

    def local_key_for(self, address: str) -> str | None: ...

    def sign(self, name: str, payload: bytes) -> str: ...


def _run_keytool(cmd: list[str], stdin: str | None = None) -> str:
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, input=stdin)
    except OSError as exc:
        raise ExternalOperationError(f"unable to run {cmd[0]}: {exc}") from exc
    if result.returncode != 0:
        msg = result.stderr.strip() or result.stdout.strip() or f"{cmd[0]} failed"
        raise ExternalOperationError(f"{cmd[0]} {cmd[1]} failed", output=msg)
    lines = [line.strip() for line in result.stdout.splitlines() if line.strip()]
    if not lines:
        raise ExternalOperationError(f"{cmd[0]} {cmd[1]} produced no output")
    return lines[-1]


class KeyStore:
    """Key files live at ``<keys_dir>/<name>.pk``; crypto stays in the key tool."""

    def __init__(self, keys_dir: Path, keytool: str) -> None:
        self.keys_dir = keys_dir
        self.keytool = keytool
        self._addresses: dict[str, str] = {}

    def path(self, name: str) -> Path:
        return self.keys_dir / f"{name}{KEY_SUFFIX}"

    def exists(self, name: str) -> bool:
        return self.path(name).is_file()

    def list_names(self) -> list[str]:
        if not self.keys_dir.is_dir():
            return []
        return sorted(p.stem for p in self.keys_dir.glob(f"*{KEY_SUFFIX}") if p.is_file())

    def create(self, name: str, source_file: str | Path | None = None, force: bool = False) -> Path:
        if not is_subnet_name(name):
            raise ValueError("key name must start with a letter and contain only letters and digits")
        dest = self.path(name)
        if dest.exists() and not force:
            raise AlreadyExistsError(f"key {name!r} already exists; use --force to overwrite")
        self._addresses.pop(name, None)
        if source_file is None:
            dest.parent.mkdir(parents=True, exist_ok=True)
            _run_keytool([self.keytool, "generate", str(dest)])
            logger.info("generated key %s", name)
        else:
            src = Path(source_file).expanduser()
            if not src.is_file():
                raise NotFoundError(f"key file not found: {src}")
            copy_file_atomic(src, dest)
            logger.info("imported key %s from %s", name, src)
        return dest

    def delete(self, name: str) -> None:
        path = self.path(name)
        if not path.is_file():
            raise NotFoundError(f"key {name!r} does not exist")
        path.unlink()
        self._addresses.pop(name, None)

    def address(self, name: str) -> str:
        if name in self._addresses:
            return self._addresses[name]
        path = self.path(name)
        if not path.is_file():
            raise NotFoundError(f"key {name!r} does not exist")
        addr = _run_keytool([self.keytool, "address", str(path)])
        self._addresses[name] = addr
        return addr

    def local_key_for(self, address: str) -> str | None:
        for name in self.list_names():
            if self.address(name) == address:
                return name
        return None

    def sign(self, name: str, payload: bytes) -> str:
        path = self.path(name)
        if not path.is_file():
            raise NotFoundError(f"key {name!r} does not exist")
        return _run_keytool([self.keytool, "sign", str(path)], stdin=payload.hex())

"""Utility helpers for subnetctl."""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any


_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9]*$")
_SEMVER_RE = re.compile(r"^v?\d+\.\d+\.\d+$")


def is_subnet_name(value: str) -> bool:
    return bool(_NAME_RE.match(value))


def is_semver(value: str) -> bool:
    return bool(_SEMVER_RE.match(value))


def version_key(value: str) -> tuple[int, ...]:
    """Numeric sort key for ``vX.Y.Z`` strings; malformed parts sort first."""
    parts = []
    for piece in value.strip().lstrip("v").split("."):
        digits = re.match(r"\d+", piece)
        parts.append(int(digits.group(0)) if digits else -1)
    return tuple(parts)


def ensure_int(value, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"{name} must be an integer")
    return value


def ensure_str(value, name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string")
    return value


def atomic_write_bytes(path: Path, blob: bytes) -> None:
    """Replace ``path`` with ``blob`` so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    with tmp.open("wb") as f:
        f.write(blob)
        f.flush()
        os.fsync(f.fileno())
    os.replace(str(tmp), str(path))


def atomic_write_text(path: Path, text: str) -> None:
    atomic_write_bytes(path, text.encode("utf-8"))


def dump_json(data: Any) -> str:
    return json.dumps(data, indent=2, sort_keys=True) + "\n"


def atomic_write_json(path: Path, data: Any) -> None:
    atomic_write_text(path, dump_json(data))


def canonical_json_bytes(data: Any) -> bytes:
    return json.dumps(data, sort_keys=True, separators=(",", ":")).encode("utf-8")


def write_executable(dest: Path, blob: bytes) -> None:
    atomic_write_bytes(dest, blob)
    if os.name != "nt":
        dest.chmod(dest.stat().st_mode | 0o111)


def copy_file_atomic(src: Path, dest: Path, executable: bool = False) -> None:
    if executable:
        write_executable(dest, src.read_bytes())
    else:
        atomic_write_bytes(dest, src.read_bytes())

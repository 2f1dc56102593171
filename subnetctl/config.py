"""User configuration — persisted at $SUBNETCTL_HOME/config.toml."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from .constants import (
    CONFIG_FILE,
    DEFAULT_COMPATIBILITY_TTL,
    DEFAULT_HOME_DIRNAME,
    DEFAULT_KEYTOOL,
    DEFAULT_NODE_BINARY,
    DEFAULT_RUNTIME_COMPATIBILITY_URL,
    DEFAULT_VM_COMPATIBILITY_URL,
    ENV_HOME,
    ENV_KEYTOOL,
    ENV_NODE_BINARY,
    ENV_RUNTIME_COMPATIBILITY_URL,
    ENV_SIMULATE_PUBLIC,
    ENV_VM_COMPATIBILITY_URL,
)

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[no-redef]

import tomli_w

_DEFAULT_CONFIG: dict[str, Any] = {
    "subnetctl": {
        "version": 1,
        "base_dir": "",
        "default_key": "",
        "node_binary": DEFAULT_NODE_BINARY,
        "keytool": DEFAULT_KEYTOOL,
        "vm_compatibility_url": DEFAULT_VM_COMPATIBILITY_URL,
        "runtime_compatibility_url": DEFAULT_RUNTIME_COMPATIBILITY_URL,
        "compatibility_ttl": DEFAULT_COMPATIBILITY_TTL,
    },
}

SETTING_KEYS = tuple(key for key in _DEFAULT_CONFIG["subnetctl"] if key != "version")

_TRUTHY = {"1", "true", "yes", "on"}


def home_dir(env: Mapping[str, str] | None = None) -> Path:
    env = os.environ if env is None else env
    raw = _clean(env.get(ENV_HOME))
    return Path(raw).expanduser() if raw else Path.home() / DEFAULT_HOME_DIRNAME


def config_path(env: Mapping[str, str] | None = None) -> Path:
    return home_dir(env) / CONFIG_FILE


def _fresh_default_config() -> dict[str, Any]:
    return {"subnetctl": dict(_DEFAULT_CONFIG["subnetctl"])}


def load_config(path: Path) -> dict[str, Any]:
    """Load or create the config file."""
    if not path.exists():
        defaults = _fresh_default_config()
        save_config(path, defaults)
        return defaults
    return tomllib.loads(path.read_text())


def save_config(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(tomli_w.dumps(data).encode())


def set_defaults(path: Path, **values: Any) -> None:
    """Update config settings; ``None`` values are left untouched."""
    data = load_config(path)
    section = data.setdefault("subnetctl", {})
    for key, value in values.items():
        if key not in SETTING_KEYS:
            raise ValueError(f"unknown config key: {key}")
        if value is not None:
            section[key] = value
    save_config(path, data)


@dataclass(frozen=True)
class RuntimeContext:
    """Resolved settings for one invocation."""

    base_dir: Path
    default_key: str | None
    node_binary: str
    keytool: str
    vm_compatibility_url: str
    runtime_compatibility_url: str
    compatibility_ttl: int
    simulate_public: bool


def _clean(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped if stripped else None


def _flag(value: str | None) -> bool:
    return (value or "").strip().lower() in _TRUTHY


def resolve_context(env: Mapping[str, str] | None = None, simulate_public: bool = False) -> RuntimeContext:
    """Resolve settings: environment first, then config.toml, then built-in defaults."""
    env = os.environ if env is None else env
    home = home_dir(env)
    settings = load_config(home / CONFIG_FILE).get("subnetctl", {})

    base = _clean(settings.get("base_dir"))
    base_dir = Path(base).expanduser() if base else home

    ttl = settings.get("compatibility_ttl", DEFAULT_COMPATIBILITY_TTL)
    if not isinstance(ttl, int) or isinstance(ttl, bool) or ttl < 0:
        raise ValueError("compatibility_ttl must be a non-negative integer")

    return RuntimeContext(
        base_dir=base_dir,
        default_key=_clean(settings.get("default_key")),
        node_binary=_clean(env.get(ENV_NODE_BINARY))
        or _clean(settings.get("node_binary"))
        or DEFAULT_NODE_BINARY,
        keytool=_clean(env.get(ENV_KEYTOOL)) or _clean(settings.get("keytool")) or DEFAULT_KEYTOOL,
        vm_compatibility_url=_clean(env.get(ENV_VM_COMPATIBILITY_URL))
        or _clean(settings.get("vm_compatibility_url"))
        or DEFAULT_VM_COMPATIBILITY_URL,
        runtime_compatibility_url=_clean(env.get(ENV_RUNTIME_COMPATIBILITY_URL))
        or _clean(settings.get("runtime_compatibility_url"))
        or DEFAULT_RUNTIME_COMPATIBILITY_URL,
        compatibility_ttl=ttl,
        simulate_public=simulate_public or _flag(env.get(ENV_SIMULATE_PUBLIC)),
    )

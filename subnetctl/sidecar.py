"""SidecarStore — the persisted record of each subnet, keyed by name.

Every read goes to disk; callers are expected to ``load`` afresh at the start
of each operation instead of holding on to a Sidecar between steps, because a
transaction may have been signed or committed from another process meanwhile.
"""

from __future__ import annotations

import json
import logging
from typing import Callable

from .errors import AlreadyDeployedError, NotFoundError
from .layout import Layout
from .models import NetworkState, Sidecar
from .util import atomic_write_text, dump_json

logger = logging.getLogger(__name__)


class SidecarStore:
    def __init__(self, layout: Layout) -> None:
        self.layout = layout

    def exists(self, name: str) -> bool:
        return self.layout.sidecar(name).is_file()

    def list_names(self) -> list[str]:
        root = self.layout.subnets_dir
        if not root.is_dir():
            return []
        return sorted(p.name for p in root.iterdir() if self.layout.sidecar(p.name).is_file())

    def load(self, name: str) -> Sidecar:
        path = self.layout.sidecar(name)
        try:
            text = path.read_text()
        except FileNotFoundError:
            raise NotFoundError(f"subnet {name!r} does not exist") from None
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"corrupt sidecar for {name!r}: {exc}") from exc
        return Sidecar.from_dict(raw)

    def save(self, sidecar: Sidecar) -> None:
        atomic_write_text(self.layout.sidecar(sidecar.name), dump_json(sidecar.to_dict()))
        logger.debug("saved sidecar for %s", sidecar.name)

    def delete(self, name: str) -> None:
        path = self.layout.sidecar(name)
        if not path.is_file():
            raise NotFoundError(f"subnet {name!r} does not exist")
        path.unlink()
        logger.debug("deleted sidecar for %s", name)

    def set_network_state(
        self,
        name: str,
        network: str,
        state: NetworkState,
        force: bool = False,
    ) -> Sidecar:
        """Record ``state`` for ``network``.

        An existing entry, deployed or with chain creation still pending, is
        never replaced unless ``force`` is given (corrective admin use only).
        Commit-time bookkeeping goes through ``update_network_state``.
        """
        sidecar = self.load(name)
        current = sidecar.networks.get(network)
        if current is not None and not force:
            detail = f"chain {current.chain_id}" if current.chain_id else f"subnet {current.subnet_id}, chain pending"
            raise AlreadyDeployedError(f"subnet {name!r} is already deployed to {network} ({detail})")
        sidecar.networks[network] = state
        self.save(sidecar)
        return sidecar

    def update_network_state(
        self,
        name: str,
        network: str,
        fn: Callable[[NetworkState], None],
    ) -> Sidecar:
        sidecar = self.load(name)
        state = sidecar.networks.get(network)
        if state is None:
            raise NotFoundError(f"subnet {name!r} has no state for {network}")
        fn(state)
        self.save(sidecar)
        return sidecar

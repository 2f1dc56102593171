"""State containers for the subnet browser."""

from __future__ import annotations

from dataclasses import dataclass, field

from ..constants import NETWORKS
from ..models import Sidecar, vm_type_name
from ..sidecar import SidecarStore
from ..subnet import SubnetConfigManager


PENDING = "pending"


def _display_status(sidecar: Sidecar, network: str) -> str:
    state = sidecar.networks.get(network)
    if state is not None and state.chain_pending:
        return PENDING
    return sidecar.status(network)


@dataclass
class SubnetSummary:
    """One row of the subnet list."""

    name: str
    vm_type: str
    vm_version: str
    statuses: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_sidecar(cls, sidecar: Sidecar) -> "SubnetSummary":
        return cls(
            name=sidecar.name,
            vm_type=vm_type_name(sidecar.vm),
            vm_version=sidecar.vm_version,
            statuses={net: _display_status(sidecar, net) for net in NETWORKS},
        )


class AppState:
    """Central state container for the TUI application."""

    def __init__(self, store: SidecarStore, subnets: SubnetConfigManager) -> None:
        self.store = store
        self.subnets = subnets
        self.summaries: list[SubnetSummary] = []
        self.active: str | None = None
        self.errors: list[str] = []

    def refresh(self) -> list[SubnetSummary]:
        """Reload every sidecar; unreadable ones are reported, not fatal."""
        summaries: list[SubnetSummary] = []
        self.errors = []
        for name in self.store.list_names():
            try:
                summaries.append(SubnetSummary.from_sidecar(self.store.load(name)))
            except ValueError as exc:
                self.errors.append(f"{name}: {exc}")
        self.summaries = summaries
        if self.active not in {s.name for s in summaries}:
            self.active = summaries[0].name if summaries else None
        return summaries

"""subnetctl TUI — browse subnets and their per-network state."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..sidecar import SidecarStore
    from ..subnet import SubnetConfigManager


def launch_tui(store: "SidecarStore", subnets: "SubnetConfigManager") -> int:
    """Launch the subnet browser."""
    from .app import SubnetApp

    app = SubnetApp(store, subnets)
    app.run()
    return 0

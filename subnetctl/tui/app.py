"""SubnetApp — Textual browser over the sidecar store."""

from __future__ import annotations

from textual.app import App

from ..sidecar import SidecarStore
from ..subnet import SubnetConfigManager
from .screens.home import HomeScreen
from .state import AppState


class SubnetApp(App):
    TITLE = "subnetctl"

    CSS = """
    Screen {
        background: #0a0e17;
        color: #e0e6f0;
    }
    """

    BINDINGS = [("ctrl+q", "quit", "Quit")]

    def __init__(self, store: SidecarStore, subnets: SubnetConfigManager) -> None:
        super().__init__()
        self.app_state = AppState(store, subnets)
        self.sub_title = str(store.layout.base_dir)

    def on_mount(self) -> None:
        self.push_screen(HomeScreen())

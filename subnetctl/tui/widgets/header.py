"""SubnetHeader — tool name, base directory and subnet count."""

from __future__ import annotations

from textual.app import ComposeResult
from textual.css.query import NoMatches
from textual.reactive import reactive
from textual.widget import Widget
from textual.widgets import Static

from ... import __version__


class SubnetHeader(Widget):
    DEFAULT_CSS = """
    SubnetHeader {
        dock: top;
        height: 3;
        background: #111827;
        border-bottom: solid #1a3a4a;
        layout: horizontal;
        padding: 0 2;
    }
    SubnetHeader #header-title {
        color: #00ffcc;
        text-style: bold;
        width: auto;
        content-align: left middle;
        padding-right: 2;
    }
    SubnetHeader #header-base-dir {
        color: #8892a4;
        width: 1fr;
        content-align: right middle;
    }
    """

    base_dir: reactive[str] = reactive("")
    subnet_count: reactive[int] = reactive(0)

    def compose(self) -> ComposeResult:
        yield Static(f" subnetctl {__version__} ", id="header-title", markup=False)
        yield Static("", id="header-base-dir", markup=False)

    def _render_location(self) -> None:
        try:
            target = self.query_one("#header-base-dir", Static)
        except NoMatches:
            return
        noun = "subnet" if self.subnet_count == 1 else "subnets"
        target.update(f"{self.subnet_count} {noun} in {self.base_dir}")

    def watch_base_dir(self, value: str) -> None:
        self._render_location()

    def watch_subnet_count(self, value: int) -> None:
        self._render_location()

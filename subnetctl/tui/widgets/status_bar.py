"""StatusBar — bottom bar showing the selected subnet and per-network state."""

from __future__ import annotations

from rich.markup import escape
from textual.app import ComposeResult
from textual.css.query import NoMatches
from textual.reactive import reactive
from textual.widget import Widget
from textual.widgets import Static

from .log_panel import status_markup


class StatusBar(Widget):
    DEFAULT_CSS = """
    StatusBar {
        dock: bottom;
        height: 1;
        background: #111827;
        layout: horizontal;
        padding: 0 2;
    }
    StatusBar #sb-subnet {
        color: #ff00aa;
        text-style: bold;
        width: auto;
        padding-right: 2;
    }
    StatusBar #sb-networks {
        width: 1fr;
    }
    """

    subnet: reactive[str] = reactive("")
    statuses: reactive[dict[str, str]] = reactive(dict)

    def compose(self) -> ComposeResult:
        yield Static("", id="sb-subnet")
        yield Static("", id="sb-networks")

    def _set(self, widget_id: str, markup: str) -> None:
        # Reactives fire before compose on first mount.
        try:
            self.query_one(f"#{widget_id}", Static).update(markup)
        except NoMatches:
            return

    def watch_subnet(self, value: str) -> None:
        self._set("sb-subnet", escape(value) if value else "no subnet selected")

    def watch_statuses(self, value: dict[str, str]) -> None:
        self._set("sb-networks", "  ".join(status_markup(net, status) for net, status in value.items()))

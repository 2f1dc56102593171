"""SubnetCard — selectable tile in the subnet list."""

from __future__ import annotations

from rich.markup import escape
from textual.app import ComposeResult
from textual.message import Message
from textual.widget import Widget
from textual.widgets import Static

from ..state import SubnetSummary
from .log_panel import status_markup


class SubnetCard(Widget, can_focus=True):
    DEFAULT_CSS = """
    SubnetCard {
        layout: vertical;
        height: 4;
        background: #1a2332;
        border: solid #1a3a4a;
        padding: 0 1;
    }
    SubnetCard:focus, SubnetCard:hover {
        border: solid #00ffcc;
    }
    SubnetCard.-active {
        background: #22304a;
    }
    """

    BINDINGS = [("enter", "choose", "Show")]

    class Selected(Message):
        def __init__(self, summary: SubnetSummary) -> None:
            super().__init__()
            self.summary = summary

    def __init__(self, summary: SubnetSummary, **kwargs) -> None:
        super().__init__(**kwargs)
        self.summary = summary

    def compose(self) -> ComposeResult:
        vm = self.summary.vm_type
        if self.summary.vm_version:
            vm = f"{vm} {self.summary.vm_version}"
        yield Static(f"[bold #00ffcc]{escape(self.summary.name)}[/]  [#8892a4]{escape(vm)}[/]")
        yield Static("  ".join(status_markup(net, status) for net, status in self.summary.statuses.items()))

    def _choose(self) -> None:
        self.post_message(self.Selected(self.summary))

    def on_click(self) -> None:
        self._choose()

    def on_focus(self) -> None:
        self._choose()

    def action_choose(self) -> None:
        self._choose()

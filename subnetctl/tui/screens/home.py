"""HomeScreen — subnet list, details pane and operation log."""

from __future__ import annotations

import json
import logging

from rich.markup import escape
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, VerticalScroll
from textual.screen import Screen
from textual.widgets import Footer, Static

from ...errors import SubnetError
from ..state import AppState
from ..widgets.header import SubnetHeader
from ..widgets.log_panel import LogPanel, PanelHandler, status_markup
from ..widgets.status_bar import StatusBar
from ..widgets.subnet_card import SubnetCard


def details_markup(info: dict) -> str:
    """Render ``SubnetConfigManager.describe`` output for the details pane."""
    lines = [
        f"[bold #00ffcc]{escape(info['name'])}[/]",
        f"vm: {escape(json.dumps(info['vm'], sort_keys=True))}",
        f"vm version: {escape(info['vm_version'] or '-')}   protocol: {info['rpc_version']}",
    ]
    if info["token_name"]:
        lines.append(f"token: {escape(info['token_name'])}")
    if info["imported_from"]:
        lines.append(f"imported from: {escape(info['imported_from'])}")
    lines += ["", "[bold]files[/]"]
    lines += [f"  {key}: {escape(path)}" for key, path in sorted(info["files"].items())]
    lines += ["", "[bold]networks[/]"]
    if not info["networks"]:
        lines.append("  not deployed")
    for net, state in sorted(info["networks"].items()):
        lines.append(f"  {status_markup(net, state['status'])}")
        lines.append(f"    subnet {escape(state['subnet_id'])}  chain {escape(state['chain_id'] or 'pending')}")
        if state["pending_tx"]:
            lines.append(f"    pending transaction: {escape(state['pending_tx'])}")
        if state["validators"]:
            lines.append(f"    validators: {len(state['validators'])}")
    return "\n".join(lines)


class HomeScreen(Screen):
    BINDINGS = [
        Binding("r", "refresh", "Refresh"),
        Binding("q", "quit_app", "Quit"),
    ]

    DEFAULT_CSS = """
    #home-content {
        height: 1fr;
    }
    #subnet-list {
        width: 40%;
        border: solid #1a3a4a;
    }
    #subnet-details-area {
        width: 1fr;
        border: solid #1a3a4a;
        padding: 0 1;
    }
    """

    _saved_logging: tuple[list[logging.Handler], int] | None = None

    @property
    def browser(self) -> AppState:
        return self.app.app_state  # type: ignore[attr-defined]

    def compose(self) -> ComposeResult:
        yield SubnetHeader()
        with Horizontal(id="home-content"):
            yield VerticalScroll(id="subnet-list")
            with VerticalScroll(id="subnet-details-area"):
                yield Static("", id="subnet-details")
        yield LogPanel(id="home-log")
        yield StatusBar()
        yield Footer()

    async def on_mount(self) -> None:
        # The stderr handler would draw over the screen; route records to the panel instead.
        logger = logging.getLogger("subnetctl")
        self._saved_logging = (list(logger.handlers), logger.level)
        logger.handlers = [PanelHandler(self.query_one(LogPanel))]
        logger.setLevel(min(logger.level or logging.WARNING, logging.INFO))
        self.query_one(SubnetHeader).base_dir = str(self.browser.store.layout.base_dir)
        await self._load_subnets()

    def on_unmount(self) -> None:
        if self._saved_logging is not None:
            logger = logging.getLogger("subnetctl")
            logger.handlers, level = self._saved_logging
            logger.setLevel(level)
            self._saved_logging = None

    async def _load_subnets(self) -> None:
        log = self.query_one(LogPanel)
        summaries = self.browser.refresh()
        for err in self.browser.errors:
            log.log_error(err)
        self.query_one(SubnetHeader).subnet_count = len(summaries)
        listing = self.query_one("#subnet-list", VerticalScroll)
        await listing.remove_children()
        if not summaries:
            await listing.mount(Static("[#8892a4]No subnets yet. Create one with `subnetctl create`.[/]"))
            self._show_details(None)
            return
        await listing.mount_all([SubnetCard(s) for s in summaries])
        log.log_info(f"loaded {len(summaries)} subnet(s)")
        self._show_details(self.browser.active)

    def _show_details(self, name: str | None) -> None:
        details = self.query_one("#subnet-details", Static)
        status_bar = self.query_one(StatusBar)
        if name is None:
            details.update("")
            status_bar.subnet = ""
            status_bar.statuses = {}
            return
        try:
            info = self.browser.subnets.describe(name)
        except (SubnetError, ValueError) as exc:
            self.query_one(LogPanel).log_error(f"{name}: {exc}")
            return
        self.browser.active = name
        details.update(details_markup(info))
        summary = next((s for s in self.browser.summaries if s.name == name), None)
        status_bar.subnet = name
        status_bar.statuses = dict(summary.statuses) if summary else {}
        for card in self.query(SubnetCard):
            card.set_class(card.summary.name == name, "-active")

    def on_subnet_card_selected(self, event: SubnetCard.Selected) -> None:
        if event.summary.name != self.browser.active:
            self.query_one(LogPanel).log_status(event.summary.name, event.summary.statuses)
        self._show_details(event.summary.name)

    async def action_refresh(self) -> None:
        await self._load_subnets()

    def action_quit_app(self) -> None:
        self.app.exit()

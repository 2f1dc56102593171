"""LogPanel — operation log for the subnet browser, fed by the ``subnetctl`` logger."""

from __future__ import annotations

import logging

from rich.markup import escape
from textual.widgets import RichLog

from ...constants import STATE_DEPLOYED, STATE_ELASTIC, STATE_UNDEPLOYED
from ..state import PENDING

STATUS_COLOURS = {
    STATE_UNDEPLOYED: "#8892a4",
    STATE_DEPLOYED: "#39ff14",
    STATE_ELASTIC: "#00ffcc",
    PENDING: "#ffaa00",
}

_LEVEL_COLOURS = {
    logging.DEBUG: "#5c6680",
    logging.INFO: "#8892a4",
    logging.WARNING: "#ffaa00",
    logging.ERROR: "#ff3366",
}


def status_markup(network: str, status: str) -> str:
    colour = STATUS_COLOURS.get(status, "#e0e6f0")
    return f"{escape(network)}:[{colour}]{escape(status)}[/]"


class LogPanel(RichLog):
    DEFAULT_CSS = """
    LogPanel {
        background: #0a0e17;
        border: solid #1a3a4a;
        padding: 0 1;
        min-height: 6;
        max-height: 30%;
    }
    LogPanel:focus {
        border: solid #00ffcc;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(highlight=False, markup=True, wrap=True, **kwargs)

    def log_level(self, level: int, message: str) -> None:
        colour = _LEVEL_COLOURS.get(level, _LEVEL_COLOURS[logging.ERROR] if level > logging.ERROR else "#8892a4")
        self.write(f"[{colour}]{escape(message)}[/]")

    def log_info(self, message: str) -> None:
        self.log_level(logging.INFO, message)

    def log_error(self, message: str) -> None:
        self.log_level(logging.ERROR, message)

    def log_status(self, subnet: str, statuses: dict[str, str]) -> None:
        parts = "  ".join(status_markup(net, status) for net, status in statuses.items())
        self.write(f"[bold]{escape(subnet)}[/]  {parts}")


class PanelHandler(logging.Handler):
    """Mirror log records into a LogPanel while the browser is open."""

    def __init__(self, panel: LogPanel, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.panel = panel
        self.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.panel.log_level(record.levelno, self.format(record))
        except Exception:
            self.handleError(record)

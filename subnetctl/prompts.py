"""Interactive confirmation."""

from __future__ import annotations

from typing import Callable

from rich.prompt import Confirm

Confirmer = Callable[[str], bool]


def ask_confirmation(question: str) -> bool:
    return Confirm.ask(question, default=False)


def never_confirm(question: str) -> bool:
    return False

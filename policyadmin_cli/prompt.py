from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Protocol

from rich.console import Console
from rich.prompt import Confirm


class ConfirmationUI(Protocol):
    def ask_user_to_confirm(self, message: str) -> bool: ...


class InteractiveConfirmationUI:
    """Yes/no prompt on the terminal."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console

    def ask_user_to_confirm(self, message: str) -> bool:
        return bool(Confirm.ask(message, console=self.console, default=False))


@dataclass(frozen=True)
class FixedConfirmationUI:
    """Answers every prompt with ``confirm``; used for scripted runs and tests."""

    confirm: bool

    def ask_user_to_confirm(self, message: str) -> bool:
        sys.stdout.write(message + "\n")
        return self.confirm

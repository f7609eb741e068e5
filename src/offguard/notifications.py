"""User notification surface.

The subsystem hands user-facing messages to a ``Notifier``; delivery is
fire-and-forget from its point of view. Two notifiers ship with the
package: one that writes to the log and one that prints to a rich
console.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from .models import Severity

if TYPE_CHECKING:
    from rich.console import Console

logger = logging.getLogger(__name__)

SEVERITY_STYLES = {
    Severity.LOW: "dim",
    Severity.MEDIUM: "yellow",
    Severity.HIGH: "bold red",
    Severity.CRITICAL: "bold white on red",
}


class Notifier(Protocol):
    async def notify(self, user_message: str, severity: Severity) -> None: ...


class LoggingNotifier:
    """Write notifications to the log instead of a UI."""

    async def notify(self, user_message: str, severity: Severity) -> None:
        level = logging.WARNING if severity.at_least(Severity.HIGH) else logging.INFO
        logger.log(level, f"[notify:{severity.value}] {user_message}")


class ConsoleNotifier:
    """Print notifications to a rich console."""

    def __init__(self, console: Console):
        self.console = console

    async def notify(self, user_message: str, severity: Severity) -> None:
        style = SEVERITY_STYLES.get(severity, "")
        self.console.print(f"[{style}]{severity.value.upper()}[/{style}] {user_message}")

"""Telemetry integration.

The service receives a ``Telemetry`` implementation at construction;
deployments without an error tracking backend use ``NullTelemetry``.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class Telemetry(Protocol):
    def capture_exception(self, error: BaseException, context: dict[str, Any]) -> None: ...

    def add_breadcrumb(
        self,
        message: str,
        category: str,
        level: str = "info",
        data: dict[str, Any] | None = None,
    ) -> None: ...


class NullTelemetry:
    """Telemetry that discards everything."""

    def capture_exception(self, error: BaseException, context: dict[str, Any]) -> None:
        return None

    def add_breadcrumb(
        self,
        message: str,
        category: str,
        level: str = "info",
        data: dict[str, Any] | None = None,
    ) -> None:
        return None


@dataclass
class Breadcrumb:
    message: str
    category: str
    level: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)


class LoggingTelemetry:
    """Telemetry that logs captures and keeps the most recent breadcrumbs.

    Attributes:
        breadcrumbs: Most recent breadcrumbs, oldest first.
        captured: Number of exceptions captured.
    """

    def __init__(self, max_breadcrumbs: int = 50):
        self.breadcrumbs: deque[Breadcrumb] = deque(maxlen=max_breadcrumbs)
        self.captured = 0

    def capture_exception(self, error: BaseException, context: dict[str, Any]) -> None:
        self.captured += 1
        logger.error(f"Captured {type(error).__name__}: {error} context={context}")

    def add_breadcrumb(
        self,
        message: str,
        category: str,
        level: str = "info",
        data: dict[str, Any] | None = None,
    ) -> None:
        self.breadcrumbs.append(Breadcrumb(message, category, level, dict(data or {})))

"""Tests for notifiers and telemetry."""

from __future__ import annotations

import io
import logging

import pytest
from rich.console import Console

from offguard.models import Severity
from offguard.notifications import ConsoleNotifier, LoggingNotifier
from offguard.telemetry import LoggingTelemetry, NullTelemetry

pytestmark = pytest.mark.anyio


class TestNotifiers:
    async def test_console_notifier(self) -> None:
        string_io = io.StringIO()
        notifier = ConsoleNotifier(Console(file=string_io, width=200))

        await notifier.notify("Please check your input and try again.", Severity.MEDIUM)

        output = string_io.getvalue()
        assert "MEDIUM" in output
        assert "Please check your input" in output

    @pytest.mark.parametrize(
        "severity,level",
        [
            (Severity.LOW, logging.INFO),
            (Severity.MEDIUM, logging.INFO),
            (Severity.HIGH, logging.WARNING),
            (Severity.CRITICAL, logging.WARNING),
        ],
    )
    async def test_logging_notifier_levels(
        self, caplog: pytest.LogCaptureFixture, severity: Severity, level: int
    ) -> None:
        with caplog.at_level(logging.INFO, logger="offguard.notifications"):
            await LoggingNotifier().notify("hello", severity)

        assert caplog.records[-1].levelno == level
        assert "hello" in caplog.records[-1].getMessage()


class TestTelemetry:
    def test_null_telemetry_accepts_everything(self) -> None:
        telemetry = NullTelemetry()
        telemetry.capture_exception(RuntimeError("x"), {})
        telemetry.add_breadcrumb("msg", "category")

    def test_breadcrumbs_bounded(self) -> None:
        telemetry = LoggingTelemetry(max_breadcrumbs=2)
        for i in range(3):
            telemetry.add_breadcrumb(f"crumb {i}", "error_handling", data={"i": i})

        assert [b.message for b in telemetry.breadcrumbs] == ["crumb 1", "crumb 2"]
        assert telemetry.breadcrumbs[-1].data == {"i": 2}

    def test_capture_counts(self) -> None:
        telemetry = LoggingTelemetry()
        telemetry.capture_exception(RuntimeError("boom"), {"screen": "Home"})
        assert telemetry.captured == 1

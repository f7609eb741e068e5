"""Exceptions and error display helpers for offguard.

Provides:
- The package exception hierarchy
- Consistent CLI formatting with suggestions
- Hidden stack traces (unless debug mode)
"""

from __future__ import annotations

import os
import sys
import traceback
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rich.console import Console

# Debug mode enabled by OFFGUARD_DEBUG=1 or --debug flag
_debug_mode = os.environ.get("OFFGUARD_DEBUG", "0") == "1"


class OffguardError(Exception):
    """Base class for errors raised by the resilience subsystem itself."""


class OfflineModeDisabledError(OffguardError):
    """Offline mode was requested while the setting forbids it."""


class SettingsValidationError(OffguardError, ValueError):
    """A settings value has the wrong type or is out of range."""


class StorageError(OffguardError):
    """The durable store could not read or write a blob."""


@dataclass
class ErrorInfo:
    """Structured error information for consistent display."""

    message: str
    suggestion: str | None = None
    details: str | None = None
    original_error: Exception | None = None


def set_debug_mode(enabled: bool) -> None:
    """Enable or disable debug mode for verbose error output."""
    global _debug_mode
    _debug_mode = enabled


def is_debug_mode() -> bool:
    """Check if debug mode is enabled."""
    return _debug_mode


def format_error(error: ErrorInfo, console: Console) -> None:
    """Format and display an error with consistent styling.

    Args:
        error: Structured error information
        console: Rich console for output
    """
    console.print(f"[bold red]Error:[/bold red] {error.message}")

    if error.details:
        if _debug_mode or len(error.details) < 200:
            console.print(f"[dim]{error.details}[/dim]")

    if error.suggestion:
        console.print()
        console.print(f"[yellow]Suggestion:[/yellow] {error.suggestion}")

    if _debug_mode and error.original_error:
        console.print()
        console.print("[dim]Stack trace (debug mode):[/dim]")
        tb_lines = traceback.format_exception(
            type(error.original_error),
            error.original_error,
            error.original_error.__traceback__,
        )
        for line in tb_lines:
            console.print(f"[dim]{line.rstrip()}[/dim]")

    if not _debug_mode and error.original_error:
        console.print()
        console.print("[dim]Set OFFGUARD_DEBUG=1 or use --debug for more details[/dim]")


def describe_exception(exception: Exception, context: str = "operation") -> ErrorInfo:
    """Turn an exception raised by offguard into displayable ErrorInfo.

    Args:
        exception: The exception to describe
        context: Description of what was being done
    """
    if isinstance(exception, OfflineModeDisabledError):
        return ErrorInfo(
            message=str(exception),
            suggestion="Run 'offguard settings set enable_offline_mode true'",
            original_error=exception,
        )

    if isinstance(exception, SettingsValidationError):
        return ErrorInfo(
            message=f"Invalid setting: {exception}",
            suggestion="Run 'offguard settings show' to view current settings",
            original_error=exception,
        )

    if isinstance(exception, StorageError):
        return ErrorInfo(
            message=f"Storage error during {context}: {exception}",
            suggestion="Check that the store directory exists and is writable",
            original_error=exception,
        )

    if isinstance(exception, ValueError):
        return ErrorInfo(
            message=f"Invalid value: {exception}",
            original_error=exception,
        )

    return ErrorInfo(
        message=f"Internal error during {context}: {exception}",
        suggestion="This may be a bug in offguard",
        original_error=exception,
    )


def handle_exception(
    console: Console,
    exception: Exception,
    context: str = "operation",
    exit_code: int = 1,
    exit_on_error: bool = True,
) -> ErrorInfo:
    """Display a formatted error for an exception and optionally exit.

    Args:
        console: Rich console for output
        exception: The exception to handle
        context: Description of what was being done
        exit_code: Exit code to use if exit_on_error is True
        exit_on_error: Whether to exit after displaying the error

    Returns:
        ErrorInfo for the error (useful if not exiting)
    """
    error = describe_exception(exception, context)
    format_error(error, console)

    if exit_on_error:
        sys.exit(exit_code)

    return error

"""offguard command line interface."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

import click
from rich.console import Console

from . import __version__
from .config import coerce_value
from .models import ErrorType, Severity
from .notifications import ConsoleNotifier
from .recovery.classifier import ErrorContext, classify_error
from .service import ResilienceService
from .storage import FileStore, get_store_dir
from .utils.errors import handle_exception, set_debug_mode

console = Console()

T = TypeVar("T")

SEVERITY_COLORS = {
    Severity.LOW: "dim",
    Severity.MEDIUM: "yellow",
    Severity.HIGH: "red",
    Severity.CRITICAL: "bold red",
}

TYPE_CHOICES = click.Choice([t.value for t in ErrorType] + ["database"], case_sensitive=False)
SEVERITY_CHOICES = click.Choice([s.value for s in Severity], case_sensitive=False)


def _run(ctx: click.Context, action: Callable[[ResilienceService], Awaitable[T]], context: str) -> T:
    """Initialize a file-backed service, run ``action`` and clean up."""
    store_dir: Path = ctx.obj["store_dir"]

    async def runner() -> T:
        service = ResilienceService(FileStore(store_dir), notifier=ConsoleNotifier(console))
        await service.initialize()
        try:
            return await action(service)
        finally:
            await service.cleanup()

    try:
        return asyncio.run(runner())
    except Exception as e:
        handle_exception(console, e, context)
        raise  # unreachable, handle_exception exits


def _parse_datetime(value: str | None, option: str) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"expected an ISO date/time, got {value!r}", param_hint=option)


@click.group()
@click.option(
    "--store-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory for stored settings and history (default: $OFFGUARD_HOME or ~/.offguard)",
)
@click.option("--debug", "-d", is_flag=True, help="Enable debug mode with verbose error output")
@click.version_option(__version__, prog_name="offguard")
@click.pass_context
def main(ctx: click.Context, store_dir: Path | None, debug: bool) -> None:
    """offguard - error classification, recovery and offline mode.

    Inspect the error history, settings, offline features and
    recovery strategies kept in the local store.
    """
    if debug:
        set_debug_mode(True)
    ctx.ensure_object(dict)
    ctx.obj["store_dir"] = get_store_dir(store_dir)


@main.command()
@click.argument("message")
@click.option("--type", "-t", "error_type", type=TYPE_CHOICES, help="Assert the error type")
@click.option("--severity", "-s", type=SEVERITY_CHOICES, help="Assert the severity")
@click.option("--retryable", is_flag=True, help="Treat the error as retryable")
def classify(message: str, error_type: str | None, severity: str | None, retryable: bool) -> None:
    """Show how MESSAGE would be classified (nothing is stored).

    \b
    Examples:
        offguard classify "Network request failed"
        offguard classify "SQLite query failed" --retryable
    """
    record = classify_error(
        RuntimeError(message),
        ErrorContext(
            screen="cli",
            action="classify",
            type=error_type,
            severity=severity,
            retryable=retryable,
        ),
        max_retry_attempts=3,
    )
    _print_record(record, verbose=True)


@main.command()
@click.argument("message")
@click.option("--screen", default="cli", show_default=True, help="Screen the error came from")
@click.option("--action", "action_name", default="report", show_default=True, help="Action being performed")
@click.option("--type", "-t", "error_type", type=TYPE_CHOICES, help="Assert the error type")
@click.option("--severity", "-s", type=SEVERITY_CHOICES, help="Assert the severity")
@click.option("--retryable", is_flag=True, help="Treat the error as retryable")
@click.pass_context
def report(
    ctx: click.Context,
    message: str,
    screen: str,
    action_name: str,
    error_type: str | None,
    severity: str | None,
    retryable: bool,
) -> None:
    """Handle MESSAGE as an error and store it in the history."""
    context = ErrorContext(
        screen=screen,
        action=action_name,
        type=error_type,
        severity=severity,
        retryable=retryable,
    )
    record = _run(
        ctx,
        lambda service: service.handle_error(RuntimeError(message), context),
        "error report",
    )
    console.print()
    _print_record(record, verbose=True)


@main.command()
@click.option("--severity", "-s", type=SEVERITY_CHOICES, help="Only show this severity")
@click.option("--since", help="Only errors at or after this ISO date/time")
@click.option("--until", help="Only errors at or before this ISO date/time")
@click.option("--limit", "-n", type=int, default=20, show_default=True, help="Maximum errors to show")
@click.pass_context
def history(
    ctx: click.Context,
    severity: str | None,
    since: str | None,
    until: str | None,
    limit: int,
) -> None:
    """Show stored errors, newest first."""
    start = _parse_datetime(since, "--since")
    end = _parse_datetime(until, "--until")

    async def query(service: ResilienceService) -> list[Any]:
        return service.get_error_history(start, end, severity, limit=limit)

    records = _run(ctx, query, "history query")

    if not records:
        console.print("[yellow]No errors recorded.[/yellow]")
        return

    console.print(f"[bold cyan]Error history ({len(records)} shown):[/bold cyan]")
    console.print()
    for record in records:
        _print_record(record)


@main.group()
def settings() -> None:
    """View and change error handling settings."""


@settings.command("show")
@click.pass_context
def settings_show(ctx: click.Context) -> None:
    """Show current settings."""

    async def load(service: ResilienceService) -> dict[str, Any]:
        return service.get_settings().to_dict()

    values = _run(ctx, load, "settings load")
    console.print("[bold cyan]Settings:[/bold cyan]")
    for key, value in values.items():
        console.print(f"  {key} = {value}")


@settings.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def settings_set(ctx: click.Context, key: str, value: str) -> None:
    """Set KEY to VALUE and persist the settings.

    \b
    Examples:
        offguard settings set max_retry_attempts 5
        offguard settings set auto_recovery false
        offguard settings set disabled_strategies network_retry,audio_degrade
    """
    try:
        parsed = coerce_value(key, value)
    except ValueError as e:
        handle_exception(console, e, "settings update")
        return

    async def update(service: ResilienceService) -> Any:
        return await service.update_settings({key: parsed})

    updated = _run(ctx, update, "settings update")
    console.print(f"[green]✓[/green] {key} = {updated.to_dict()[key]}")


@main.command()
@click.pass_context
def features(ctx: click.Context) -> None:
    """Show which features work offline."""

    async def load(service: ResilienceService) -> list[Any]:
        return service.get_offline_capabilities()

    capabilities = _run(ctx, load, "capability listing")
    console.print("[bold cyan]Offline capabilities:[/bold cyan]")
    console.print()
    for capability in capabilities:
        marker = "[green]✓[/green]" if capability.is_offline_capable else "[red]✗[/red]"
        console.print(
            f"  {marker} [bold]{capability.feature}[/bold] "
            f"[dim](sync: {capability.sync_status.value}, "
            f"conflicts: {capability.conflict_resolution.value})[/dim]"
        )


@main.command()
@click.pass_context
def strategies(ctx: click.Context) -> None:
    """Show recovery strategies by error type and priority."""

    async def load(service: ResilienceService) -> list[Any]:
        return service.get_recovery_strategies()

    items = sorted(_run(ctx, load, "strategy listing"), key=lambda s: (s.error_type.value, s.priority))
    console.print("[bold cyan]Recovery strategies:[/bold cyan]")
    console.print()
    for strategy in items:
        state = "" if strategy.is_enabled else " [yellow](disabled)[/yellow]"
        console.print(
            f"  [bold]{strategy.id}[/bold]{state} "
            f"[dim]{strategy.error_type.value} · {strategy.strategy.value} · "
            f"priority {strategy.priority}[/dim]"
        )
        console.print(f"    {strategy.description}")


def _print_record(record: Any, verbose: bool = False) -> None:
    color = SEVERITY_COLORS.get(record.severity, "")
    status = "[green]resolved[/green]" if record.is_resolved else "[dim]open[/dim]"
    console.print(
        f"[{color}]{record.severity.value.upper():8}[/{color}] "
        f"[bold]{record.type.value}[/bold] {record.raw_message} {status}"
    )
    if verbose:
        console.print(f"  [dim]id:[/dim] {record.id}")
        console.print(f"  [dim]user message:[/dim] {record.user_message}")
        console.print(f"  [dim]max retries:[/dim] {record.max_retries}")
        if record.resolution:
            console.print(f"  [dim]resolution:[/dim] {record.resolution}")
    else:
        console.print(
            f"  [dim]{record.timestamp.strftime('%Y-%m-%d %H:%M:%S')} · "
            f"{record.screen}/{record.action}[/dim]"
        )


if __name__ == "__main__":
    main()

"""Recovery strategies and their orchestration.

Provides:
- RecoveryOrchestrator: runs the enabled strategies for an error's type
  in ascending priority order until one succeeds
- Built-in strategy actions (retry, offline, degrade)
- default_strategies(): the five strategies configured at startup
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Collection, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..config import Settings
from ..models import (
    ConnectivitySnapshot,
    ErrorRecord,
    ErrorType,
    RecoveryStrategy,
    StrategyAction,
    StrategyKind,
)

logger = logging.getLogger(__name__)

PersistCallback = Callable[[ErrorRecord], Awaitable[Any]]


@dataclass
class RecoveryOutcome:
    """Result of orchestrating recovery for one error.

    Attributes:
        resolved: Whether a strategy reported success.
        strategy_id: Id of the succeeding strategy, if any.
        attempted: Ids of the strategies that ran, in order.
        message: Summary for logging.
    """

    resolved: bool
    strategy_id: str | None = None
    attempted: list[str] = field(default_factory=list)
    message: str = ""


class RecoveryOrchestrator:
    """Selects and runs recovery strategies for classified errors.

    Strategies for one error run strictly one after another; the first
    success stops the run and later strategies never execute. An action
    raising counts as a failure.
    """

    def __init__(self, strategies: Iterable[RecoveryStrategy] = ()):
        self._strategies: list[RecoveryStrategy] = []
        self.attempt_history: list[dict[str, Any]] = []
        for strategy in strategies:
            self.register(strategy)

    def register(self, strategy: RecoveryStrategy) -> None:
        """Add a strategy at startup.

        Raises:
            ValueError: If a strategy with the same id is already registered.
        """
        if any(s.id == strategy.id for s in self._strategies):
            raise ValueError(f"Duplicate recovery strategy id: {strategy.id}")
        self._strategies.append(strategy)

    @property
    def strategies(self) -> list[RecoveryStrategy]:
        """All strategies in registration order."""
        return list(self._strategies)

    def get(self, strategy_id: str) -> RecoveryStrategy | None:
        return next((s for s in self._strategies if s.id == strategy_id), None)

    def apply_disabled(self, disabled_ids: Collection[str]) -> None:
        """Sync ``is_enabled`` flags with the ids disabled in settings."""
        for strategy in self._strategies:
            strategy.is_enabled = strategy.id not in disabled_ids

    def strategies_for(self, error_type: ErrorType) -> list[RecoveryStrategy]:
        """Enabled strategies for ``error_type``, lowest priority value first."""
        matching = [s for s in self._strategies if s.is_enabled and s.error_type == error_type]
        return sorted(matching, key=lambda s: s.priority)

    async def attempt_recovery(
        self,
        record: ErrorRecord,
        on_resolved: PersistCallback | None = None,
    ) -> RecoveryOutcome:
        """Run matching strategies until one succeeds.

        Args:
            record: The classified error; marked resolved in place on success.
            on_resolved: Awaited with the record after it is marked resolved.

        Returns:
            RecoveryOutcome describing what ran. Exhaustion is not an error.
        """
        candidates = self.strategies_for(record.type)
        outcome = RecoveryOutcome(resolved=False)

        if not candidates:
            outcome.message = f"No recovery strategy for {record.type.value} errors"
            logger.info(f"{outcome.message} ({record.id})")
            return outcome

        for strategy in candidates:
            outcome.attempted.append(strategy.id)
            success = await self._run(strategy, record)

            if success:
                record.mark_resolved(strategy.description)
                outcome.resolved = True
                outcome.strategy_id = strategy.id
                outcome.message = f"Resolved by {strategy.id}"
                logger.info(f"Error {record.id} resolved by strategy {strategy.id}")
                if on_resolved is not None:
                    await on_resolved(record)
                return outcome

        outcome.message = f"All {len(candidates)} recovery strategies failed"
        logger.warning(f"{outcome.message} for error {record.id}")
        return outcome

    async def _run(self, strategy: RecoveryStrategy, record: ErrorRecord) -> bool:
        try:
            success = bool(await strategy.action(record))
            message = "succeeded" if success else "failed"
        except Exception as e:
            logger.warning(f"Recovery strategy {strategy.id} raised: {e}")
            success = False
            message = f"raised {type(e).__name__}: {e}"

        self.attempt_history.append(
            {
                "error_id": record.id,
                "strategy": strategy.id,
                "kind": strategy.strategy.value,
                "success": success,
                "message": message,
                "timestamp": datetime.now().isoformat(),
            }
        )
        return success


# =============================================================================
# Built-in actions
# =============================================================================


def network_retry_action(
    fetch_snapshot: Callable[[], Awaitable[ConnectivitySnapshot]] | None,
    get_settings: Callable[[], Settings],
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> StrategyAction:
    """Wait for connectivity to return, within the record's retry budget.

    Each attempt counts against ``record.max_retries``, waits
    ``retry_delay`` milliseconds and re-checks connectivity.
    """

    async def action(record: ErrorRecord) -> bool:
        if fetch_snapshot is None:
            return False
        delay = get_settings().retry_delay / 1000
        while record.register_retry():
            await sleep(delay)
            snapshot = await fetch_snapshot()
            if snapshot.connected:
                return True
            logger.debug(
                f"Retry {record.retry_count}/{record.max_retries} for {record.id}: still offline"
            )
        return False

    return action


def offline_mode_action(
    enable_offline_mode: Callable[[], Awaitable[bool]],
    fetch_snapshot: Callable[[], Awaitable[ConnectivitySnapshot]] | None = None,
) -> StrategyAction:
    """Switch to offline mode; succeeds once the app is offline.

    Fails without changing mode when ``fetch_snapshot`` reports the
    device as connected. An unreadable snapshot does not block the switch.
    """

    async def action(record: ErrorRecord) -> bool:
        if fetch_snapshot is not None:
            try:
                snapshot = await fetch_snapshot()
            except Exception as e:
                logger.warning(f"Could not read connectivity before going offline: {e}")
            else:
                if snapshot.connected:
                    logger.debug(f"Device is connected, not going offline for {record.id}")
                    return False
        await enable_offline_mode()
        return True

    return action


def degrade_action(get_settings: Callable[[], Settings]) -> StrategyAction:
    """Keep running with reduced features when degradation is allowed."""

    async def action(record: ErrorRecord) -> bool:
        return get_settings().enable_graceful_degradation

    return action


def unavailable_action(strategy_id: str) -> StrategyAction:
    """Placeholder for strategies whose action a collaborator must supply."""

    async def action(record: ErrorRecord) -> bool:
        logger.debug(f"No action configured for recovery strategy {strategy_id}")
        return False

    return action


def default_strategies(
    *,
    get_settings: Callable[[], Settings],
    enable_offline_mode: Callable[[], Awaitable[bool]],
    fetch_snapshot: Callable[[], Awaitable[ConnectivitySnapshot]] | None = None,
    actions: dict[str, StrategyAction] | None = None,
) -> list[RecoveryStrategy]:
    """Build the strategies configured at startup.

    Args:
        get_settings: Returns the current settings.
        enable_offline_mode: Switches the app to offline mode.
        fetch_snapshot: Reads current connectivity, if a source exists.
        actions: Collaborator-supplied actions that replace built-ins by id.

    Returns:
        Strategies in registration order.
    """
    overrides = actions or {}

    def pick(strategy_id: str, builtin: StrategyAction) -> StrategyAction:
        return overrides.get(strategy_id, builtin)

    return [
        RecoveryStrategy(
            id="network_retry",
            error_type=ErrorType.NETWORK,
            strategy=StrategyKind.RETRY,
            description="Retry network request once connectivity returns",
            action=pick("network_retry", network_retry_action(fetch_snapshot, get_settings)),
            priority=1,
        ),
        RecoveryStrategy(
            id="network_offline",
            error_type=ErrorType.NETWORK,
            strategy=StrategyKind.OFFLINE,
            description="Switch to offline mode",
            action=pick(
                "network_offline", offline_mode_action(enable_offline_mode, fetch_snapshot)
            ),
            priority=2,
        ),
        RecoveryStrategy(
            id="storage_fallback",
            error_type=ErrorType.STORAGE,
            strategy=StrategyKind.FALLBACK,
            description="Use local backup storage",
            action=pick("storage_fallback", unavailable_action("storage_fallback")),
            priority=1,
        ),
        RecoveryStrategy(
            id="audio_degrade",
            error_type=ErrorType.AUDIO,
            strategy=StrategyKind.DEGRADE,
            description="Continue in text-only mode",
            action=pick("audio_degrade", degrade_action(get_settings)),
            priority=1,
        ),
        RecoveryStrategy(
            id="permission_request",
            error_type=ErrorType.PERMISSION,
            strategy=StrategyKind.USER_ACTION,
            description="Ask the user to grant the permission",
            action=pick("permission_request", unavailable_action("permission_request")),
            priority=1,
        ),
    ]

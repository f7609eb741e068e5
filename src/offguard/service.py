"""The resilience service.

ResilienceService wires the subsystem together and exposes the surface
callers use:

    service = ResilienceService(store, connectivity=source, notifier=notifier)
    await service.initialize(User(id="u1"))

    record = await service.handle_error(
        exc, ErrorContext(screen="Home", action="sync", retryable=True)
    )

handle_error classifies the failure, records it in the history,
optionally runs recovery strategies and notifies the user. Failures in
the subsystem's own logging, history and notification paths are logged
and swallowed so that a broken store can never break error handling.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from .config import LoggingLevel, Settings, SettingsManager
from .history import MAX_HISTORY, ErrorHistoryStore, HistoryFilter
from .models import (
    ConnectivitySnapshot,
    ErrorRecord,
    OfflineCapability,
    RecoveryStrategy,
    Severity,
    StrategyAction,
    User,
)
from .notifications import LoggingNotifier, Notifier
from .offline.network import ConnectivitySource, NetworkMonitor
from .offline.registry import OfflineCapabilityRegistry, OfflineHooks
from .recovery.classifier import Classifier, ErrorContext, KeywordClassifier, classify_error
from .recovery.strategies import RecoveryOrchestrator, RecoveryOutcome, default_strategies
from .storage import KeyValueStore, MemoryStore
from .telemetry import NullTelemetry, Telemetry
from .utils.errors import OfflineModeDisabledError

logger = logging.getLogger(__name__)


class ResilienceService:
    """Error handling, recovery and offline mode for one application.

    Attributes:
        store: Durable store for settings and error history.
        settings: Settings manager.
        history: Bounded error history.
        registry: Offline capabilities and connectivity mode.
        orchestrator: Recovery strategy orchestrator.
        monitor: Network monitor, when a connectivity source is given.
        current_user: User passed to initialize(), if any.
        last_recovery: Outcome of the most recent recovery run.
    """

    def __init__(
        self,
        store: KeyValueStore | None = None,
        *,
        connectivity: ConnectivitySource | None = None,
        notifier: Notifier | None = None,
        telemetry: Telemetry | None = None,
        offline_hooks: OfflineHooks | None = None,
        classifier: Classifier | None = None,
        capabilities: Iterable[OfflineCapability] | None = None,
        strategy_actions: dict[str, StrategyAction] | None = None,
        extra_strategies: Iterable[RecoveryStrategy] = (),
        history_capacity: int = MAX_HISTORY,
    ):
        self.store = store if store is not None else MemoryStore()
        self.settings = SettingsManager(self.store)
        self.history = ErrorHistoryStore(self.store, capacity=history_capacity)
        self.classifier = classifier or KeywordClassifier()
        self.notifier = notifier or LoggingNotifier()
        self.telemetry = telemetry or NullTelemetry()
        self.registry = OfflineCapabilityRegistry(
            lambda: self.settings.current,
            hooks=offline_hooks,
            capabilities=capabilities,
        )
        self.connectivity = connectivity
        self.monitor = (
            NetworkMonitor(connectivity, on_offline=self._go_offline, on_online=self._go_online)
            if connectivity is not None
            else None
        )

        strategies = default_strategies(
            get_settings=lambda: self.settings.current,
            enable_offline_mode=self.enable_offline_mode,
            fetch_snapshot=self._fetch_snapshot if connectivity is not None else None,
            actions=strategy_actions,
        )
        self.orchestrator = RecoveryOrchestrator([*strategies, *extra_strategies])

        self.current_user: User | None = None
        self.is_initialized = False
        self.last_recovery: RecoveryOutcome | None = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self, user: User | None = None) -> None:
        """Load settings and history, then start network monitoring.

        Raises:
            Exception: Any failure, after logging it, so the host can decide
                whether to continue startup degraded.
        """
        try:
            self.current_user = user
            await self.settings.load()
            self.orchestrator.apply_disabled(self.settings.current.disabled_strategies)
            await self.history.load()
            if self.monitor is not None:
                snapshot = await self.monitor.initialize()
                if not snapshot.connected:
                    await self._go_offline()
            self.is_initialized = True
            user_label = user.id if user else "anonymous"
            logger.info(f"Resilience service initialized for user {user_label}")
        except Exception as e:
            logger.error(f"Error initializing resilience service: {e}")
            raise

    async def cleanup(self) -> None:
        """Stop monitoring and forget the current user."""
        if self.monitor is not None:
            self.monitor.cleanup()
            await self.monitor.wait_idle()
        self.current_user = None
        self.is_initialized = False

    # -------------------------------------------------------------------------
    # Error handling
    # -------------------------------------------------------------------------

    async def handle_error(
        self,
        error: BaseException,
        context: ErrorContext | None = None,
        **context_fields: Any,
    ) -> ErrorRecord:
        """Classify, record, recover from and report one error.

        Args:
            error: The raised failure.
            context: Where it happened; alternatively pass ErrorContext
                fields (screen, action, type, ...) as keyword arguments.

        Returns:
            The ErrorRecord, resolved if a recovery strategy succeeded.
        """
        if context is None:
            context = ErrorContext(**context_fields)

        settings = self.settings.current
        record = classify_error(
            error,
            context,
            max_retry_attempts=settings.max_retry_attempts,
            classifier=self.classifier,
            user_id=self.current_user.id if self.current_user else None,
        )

        self._log_record(record, settings.error_logging_level)
        await self.history.add(record)
        self._report(error, record, settings)

        if settings.auto_recovery:
            self.last_recovery = await self.orchestrator.attempt_recovery(
                record, on_resolved=self.history.update
            )
            if not self.last_recovery.resolved and self.last_recovery.attempted:
                # Strategies may have spent retries on the record
                await self.history.update(record)

        if settings.user_notifications and record.severity.at_least(Severity.MEDIUM):
            try:
                await self.notifier.notify(record.user_message, record.severity)
            except Exception as e:
                logger.error(f"Failed to notify user about error {record.id}: {e}")

        return record

    def _log_record(self, record: ErrorRecord, level: LoggingLevel) -> None:
        message = f"{record.type.value} error on {record.screen}/{record.action}: {record.raw_message}"
        if record.severity.at_least(Severity.HIGH):
            if level != LoggingLevel.NONE:
                logger.error(message)
        elif record.severity == Severity.MEDIUM:
            if level in (LoggingLevel.WARNINGS, LoggingLevel.ALL):
                logger.warning(message)
        elif level == LoggingLevel.ALL:
            logger.info(message)

    def _report(self, error: BaseException, record: ErrorRecord, settings: Settings) -> None:
        if not settings.enable_error_reporting:
            return
        try:
            if record.severity.at_least(Severity.HIGH):
                self.telemetry.capture_exception(
                    error,
                    {
                        "error_id": record.id,
                        "screen": record.screen,
                        "action": record.action,
                        "type": record.type.value,
                        "severity": record.severity.value,
                    },
                )
            self.telemetry.add_breadcrumb(
                f"Error handled: {record.raw_message}",
                "error_handling",
                "error" if record.severity == Severity.CRITICAL else "warning",
                {
                    "error_type": record.type.value,
                    "severity": record.severity.value,
                    "screen": record.screen,
                    "action": record.action,
                },
            )
        except Exception as e:
            logger.error(f"Failed to report error {record.id} to telemetry: {e}")

    def get_error_history(
        self,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        severity: Severity | str | None = None,
        limit: int | None = None,
    ) -> list[ErrorRecord]:
        """Stored errors matching all given filters, newest first."""
        return self.history.query(
            HistoryFilter(
                start_date=start_date,
                end_date=end_date,
                severity=Severity.parse(severity) if severity is not None else None,
                limit=limit,
            )
        )

    def get_recovery_strategies(self) -> list[RecoveryStrategy]:
        return self.orchestrator.strategies

    # -------------------------------------------------------------------------
    # Offline mode
    # -------------------------------------------------------------------------

    async def enable_offline_mode(self) -> bool:
        """Switch to offline mode.

        Raises:
            OfflineModeDisabledError: If settings forbid offline mode.
        """
        return await self.registry.enable_offline_mode()

    async def disable_offline_mode(self) -> bool:
        return await self.registry.disable_offline_mode()

    def is_online_mode(self) -> bool:
        return self.registry.is_online

    def is_feature_available_offline(self, feature: str) -> bool:
        return self.registry.is_feature_available_offline(feature)

    def mark_feature_pending(self, feature: str) -> bool:
        return self.registry.mark_pending(feature)

    def get_offline_capabilities(self) -> list[OfflineCapability]:
        return self.registry.capabilities

    async def _go_offline(self) -> None:
        try:
            await self.registry.enable_offline_mode()
        except OfflineModeDisabledError:
            logger.warning("Connectivity lost but offline mode is disabled in settings")

    async def _go_online(self) -> None:
        await self.registry.disable_offline_mode()

    async def _fetch_snapshot(self) -> ConnectivitySnapshot:
        assert self.connectivity is not None
        return await self.connectivity.fetch_snapshot()

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    def get_settings(self) -> Settings:
        return self.settings.get()

    async def update_settings(
        self, partial: dict[str, Any] | None = None, **kwargs: Any
    ) -> Settings:
        """Merge and persist settings; persistence errors propagate."""
        updated = await self.settings.update(partial, **kwargs)
        self.orchestrator.apply_disabled(updated.disabled_strategies)
        return updated

    async def set_strategy_enabled(self, strategy_id: str, enabled: bool) -> Settings:
        """Toggle a recovery strategy through settings.

        Raises:
            KeyError: If no strategy has this id.
        """
        if self.orchestrator.get(strategy_id) is None:
            raise KeyError(f"Unknown recovery strategy: {strategy_id}")
        updated = await self.settings.set_strategy_enabled(strategy_id, enabled)
        self.orchestrator.apply_disabled(updated.disabled_strategies)
        return updated

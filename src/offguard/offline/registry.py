"""Offline capability tracking.

A fixed table of named features, established at construction, records
which features can operate without connectivity together with their
sync and conflict state. The registry owns the online/offline mode and
drives the per-feature offline hooks on each transition.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any, Protocol

from ..config import Settings
from ..models import ConflictResolution, OfflineCapability, SyncStatus
from ..utils.errors import OfflineModeDisabledError

logger = logging.getLogger(__name__)

# (feature, is_offline_capable)
DEFAULT_FEATURES: list[tuple[str, bool]] = [
    ("communication", True),
    ("symbols", True),
    ("settings", True),
    ("analytics", False),
    ("cloud_sync", False),
]


class OfflineHooks(Protocol):
    """Per-feature data hooks supplied by collaborators.

    Both hooks must be idempotent: transitions may invoke them again
    for a feature that is already loaded or synced.
    """

    async def load_offline_data(self, feature: str) -> Any: ...

    async def sync_offline_data(self, features: list[str]) -> None: ...


class NullOfflineHooks:
    """Hooks that load nothing and sync nothing."""

    async def load_offline_data(self, feature: str) -> Any:
        return None

    async def sync_offline_data(self, features: list[str]) -> None:
        return None


def default_capabilities(
    features: Iterable[tuple[str, bool]] = DEFAULT_FEATURES,
) -> list[OfflineCapability]:
    """Build capability rows for ``(feature, is_offline_capable)`` pairs."""
    return [
        OfflineCapability(
            feature=name,
            is_offline_capable=capable,
            conflict_resolution=(
                ConflictResolution.LOCAL if capable else ConflictResolution.REMOTE
            ),
        )
        for name, capable in features
    ]


class OfflineCapabilityRegistry:
    """Per-feature offline support and the current connectivity mode.

    Transitions are serialized by a dedicated lock, so a connectivity
    notification and an offline recovery strategy cannot interleave
    inside a transition.
    """

    def __init__(
        self,
        get_settings: Callable[[], Settings],
        hooks: OfflineHooks | None = None,
        capabilities: Iterable[OfflineCapability] | None = None,
    ):
        self._get_settings = get_settings
        self.hooks: OfflineHooks = hooks or NullOfflineHooks()
        rows = list(capabilities) if capabilities is not None else default_capabilities()
        self._capabilities: dict[str, OfflineCapability] = {}
        for row in rows:
            if row.feature in self._capabilities:
                raise ValueError(f"Duplicate offline feature: {row.feature}")
            self._capabilities[row.feature] = row
        self._is_online = True
        self._transition_lock = asyncio.Lock()

    @property
    def is_online(self) -> bool:
        return self._is_online

    @property
    def capabilities(self) -> list[OfflineCapability]:
        """Copies of the capability rows, in registration order."""
        return [c.model_copy() for c in self._capabilities.values()]

    def get(self, feature: str) -> OfflineCapability | None:
        return self._capabilities.get(feature)

    def is_feature_available_offline(self, feature: str) -> bool:
        """Whether ``feature`` works offline; unknown features do not."""
        capability = self._capabilities.get(feature)
        return capability is not None and capability.is_offline_capable

    def mark_pending(self, feature: str) -> bool:
        """Record that ``feature`` has local changes awaiting sync.

        Returns:
            False for unknown or non offline-capable features.
        """
        if not self.is_feature_available_offline(feature):
            return False
        self._capabilities[feature].sync_status = SyncStatus.PENDING
        return True

    async def enable_offline_mode(self) -> bool:
        """Switch to offline mode and load offline data for capable features.

        Returns:
            True if the mode changed, False if already offline.

        Raises:
            OfflineModeDisabledError: If settings forbid offline mode. The
                online state is left unchanged.
        """
        if not self._get_settings().enable_offline_mode:
            raise OfflineModeDisabledError("Offline mode is disabled in settings")

        async with self._transition_lock:
            changed = self._is_online
            self._is_online = False

            for capability in self._capabilities.values():
                if not capability.is_offline_capable:
                    continue
                try:
                    capability.offline_data = await self.hooks.load_offline_data(
                        capability.feature
                    )
                except Exception as e:
                    capability.sync_status = SyncStatus.FAILED
                    logger.error(f"Failed to load offline data for {capability.feature}: {e}")

        if changed:
            logger.info("Offline mode enabled")
        return changed

    async def disable_offline_mode(self) -> bool:
        """Return to online mode and sync features with pending changes.

        Returns:
            True if the mode changed, False if already online.
        """
        async with self._transition_lock:
            changed = not self._is_online
            self._is_online = True

            pending = [
                c for c in self._capabilities.values() if c.sync_status == SyncStatus.PENDING
            ]
            if pending:
                names = [c.feature for c in pending]
                try:
                    await self.hooks.sync_offline_data(names)
                except Exception as e:
                    logger.error(f"Failed to sync offline data for {', '.join(names)}: {e}")
                    for capability in pending:
                        capability.sync_status = SyncStatus.FAILED
                else:
                    now = datetime.now()
                    for capability in pending:
                        capability.sync_status = SyncStatus.SYNCED
                        capability.last_sync = now

        if changed:
            logger.info("Offline mode disabled")
        return changed

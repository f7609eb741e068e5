"""Tests for the offline capability registry."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError

from offguard.config import Settings
from offguard.models import ConflictResolution, OfflineCapability, SyncStatus
from offguard.offline.registry import (
    DEFAULT_FEATURES,
    OfflineCapabilityRegistry,
    default_capabilities,
)
from offguard.utils.errors import OfflineModeDisabledError

pytestmark = pytest.mark.anyio


class RecordingHooks:
    """Offline hooks that remember what they were asked to do."""

    def __init__(self, fail_load: set[str] | None = None, fail_sync: bool = False):
        self.loaded: list[str] = []
        self.synced: list[list[str]] = []
        self.fail_load = fail_load or set()
        self.fail_sync = fail_sync

    async def load_offline_data(self, feature: str):
        self.loaded.append(feature)
        if feature in self.fail_load:
            raise RuntimeError(f"cannot load {feature}")
        return {"feature": feature}

    async def sync_offline_data(self, features: list[str]) -> None:
        self.synced.append(list(features))
        if self.fail_sync:
            raise RuntimeError("sync failed")


def _registry(settings: Settings | None = None, hooks=None) -> OfflineCapabilityRegistry:
    settings = settings or Settings()
    return OfflineCapabilityRegistry(lambda: settings, hooks=hooks)


class TestCapabilities:
    """Tests for the capability table."""

    def test_default_features(self) -> None:
        registry = _registry()
        assert [c.feature for c in registry.capabilities] == [name for name, _ in DEFAULT_FEATURES]

    @pytest.mark.parametrize(
        "feature,expected",
        [
            ("communication", True),
            ("symbols", True),
            ("settings", True),
            ("analytics", False),
            ("cloud_sync", False),
            ("nonexistent", False),
        ],
    )
    def test_is_feature_available_offline(self, feature: str, expected: bool) -> None:
        assert _registry().is_feature_available_offline(feature) is expected

    def test_conflict_resolution_defaults(self) -> None:
        rows = {c.feature: c for c in default_capabilities()}
        assert rows["communication"].conflict_resolution == ConflictResolution.LOCAL
        assert rows["analytics"].conflict_resolution == ConflictResolution.REMOTE
        assert all(c.sync_status == SyncStatus.NEVER for c in rows.values())

    def test_capable_flag_is_frozen(self) -> None:
        capability = OfflineCapability(feature="x", is_offline_capable=True)
        with pytest.raises(ValidationError):
            capability.is_offline_capable = False

    def test_capabilities_are_copies(self) -> None:
        registry = _registry()
        registry.capabilities[0].sync_status = SyncStatus.FAILED
        assert registry.get("communication").sync_status == SyncStatus.NEVER

    def test_duplicate_feature_rejected(self) -> None:
        with pytest.raises(ValueError, match="Duplicate"):
            OfflineCapabilityRegistry(
                Settings,
                capabilities=[OfflineCapability(feature="a"), OfflineCapability(feature="a")],
            )

    def test_custom_capabilities(self) -> None:
        registry = OfflineCapabilityRegistry(
            Settings, capabilities=default_capabilities([("maps", True)])
        )
        assert registry.is_feature_available_offline("maps") is True
        assert registry.is_feature_available_offline("communication") is False

    def test_mark_pending(self) -> None:
        registry = _registry()
        assert registry.mark_pending("symbols") is True
        assert registry.get("symbols").sync_status == SyncStatus.PENDING
        assert registry.mark_pending("analytics") is False
        assert registry.mark_pending("nonexistent") is False


class TestEnableOfflineMode:
    """Tests for switching to offline mode."""

    async def test_refused_when_setting_off(self) -> None:
        hooks = RecordingHooks()
        registry = _registry(Settings(enable_offline_mode=False), hooks)

        with pytest.raises(OfflineModeDisabledError):
            await registry.enable_offline_mode()

        assert registry.is_online is True
        assert hooks.loaded == []

    async def test_loads_capable_features(self) -> None:
        hooks = RecordingHooks()
        registry = _registry(hooks=hooks)

        assert await registry.enable_offline_mode() is True

        assert registry.is_online is False
        assert hooks.loaded == ["communication", "symbols", "settings"]
        assert registry.get("symbols").offline_data == {"feature": "symbols"}
        assert registry.get("analytics").offline_data is None

    async def test_idempotent(self) -> None:
        registry = _registry(hooks=RecordingHooks())
        assert await registry.enable_offline_mode() is True
        assert await registry.enable_offline_mode() is False
        assert registry.is_online is False

    async def test_does_not_mark_pending(self) -> None:
        registry = _registry()
        await registry.enable_offline_mode()
        assert all(c.sync_status == SyncStatus.NEVER for c in registry.capabilities)

    async def test_load_failure_marks_feature_failed(self) -> None:
        hooks = RecordingHooks(fail_load={"symbols"})
        registry = _registry(hooks=hooks)

        await registry.enable_offline_mode()

        assert registry.is_online is False
        assert registry.get("symbols").sync_status == SyncStatus.FAILED
        assert registry.get("settings").offline_data == {"feature": "settings"}


class TestDisableOfflineMode:
    """Tests for returning to online mode."""

    async def test_syncs_pending_features(self) -> None:
        hooks = RecordingHooks()
        registry = _registry(hooks=hooks)
        await registry.enable_offline_mode()
        registry.mark_pending("communication")
        registry.mark_pending("settings")

        assert await registry.disable_offline_mode() is True

        assert registry.is_online is True
        assert hooks.synced == [["communication", "settings"]]
        communication = registry.get("communication")
        assert communication.sync_status == SyncStatus.SYNCED
        assert communication.last_sync is not None
        assert registry.get("symbols").sync_status == SyncStatus.NEVER

    async def test_nothing_pending_skips_sync(self) -> None:
        hooks = RecordingHooks()
        registry = _registry(hooks=hooks)
        await registry.enable_offline_mode()

        await registry.disable_offline_mode()

        assert hooks.synced == []

    async def test_already_online(self) -> None:
        registry = _registry()
        assert await registry.disable_offline_mode() is False
        assert registry.is_online is True

    async def test_sync_failure_marks_pending_failed(self) -> None:
        registry = _registry(hooks=RecordingHooks(fail_sync=True))
        await registry.enable_offline_mode()
        registry.mark_pending("symbols")

        await registry.disable_offline_mode()

        assert registry.is_online is True
        assert registry.get("symbols").sync_status == SyncStatus.FAILED
        assert registry.get("symbols").last_sync is None

    async def test_allowed_when_setting_off(self) -> None:
        """Going back online is never refused."""
        settings = Settings()
        registry = OfflineCapabilityRegistry(lambda: settings)
        await registry.enable_offline_mode()
        settings.enable_offline_mode = False

        assert await registry.disable_offline_mode() is True

    async def test_hooks_can_be_mocks(self) -> None:
        hooks = AsyncMock()
        registry = _registry(hooks=hooks)
        await registry.enable_offline_mode()
        registry.mark_pending("settings")
        await registry.disable_offline_mode()
        hooks.sync_offline_data.assert_awaited_once_with(["settings"])

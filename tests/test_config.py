"""Tests for settings management."""

from __future__ import annotations

import json

import pytest

from offguard.config import LoggingLevel, Settings, SettingsManager, coerce_value
from offguard.storage import SETTINGS_KEY, MemoryStore
from offguard.utils.errors import SettingsValidationError

pytestmark = pytest.mark.anyio


class TestSettings:
    """Tests for the Settings record."""

    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.enable_error_reporting is True
        assert settings.enable_offline_mode is True
        assert settings.enable_graceful_degradation is True
        assert settings.max_retry_attempts == 3
        assert settings.retry_delay == 1000
        assert settings.error_logging_level == LoggingLevel.ERRORS
        assert settings.auto_recovery is True
        assert settings.user_notifications is True
        assert settings.disabled_strategies == []

    def test_to_dict_from_dict(self) -> None:
        settings = Settings(max_retry_attempts=7, error_logging_level=LoggingLevel.ALL)
        data = settings.to_dict()
        assert data["error_logging_level"] == "all"
        assert Settings.from_dict(data) == settings

    def test_from_dict_ignores_unknown_keys(self) -> None:
        settings = Settings.from_dict({"retry_delay": 50, "theme": "dark"})
        assert settings.retry_delay == 50

    def test_merged_is_shallow(self) -> None:
        original = Settings()
        merged = original.merged({"max_retry_attempts": 5})
        assert merged.max_retry_attempts == 5
        assert merged.retry_delay == original.retry_delay
        assert original.max_retry_attempts == 3

    @pytest.mark.parametrize(
        "partial",
        [
            {"max_retry_attempts": -1},
            {"max_retry_attempts": "3"},
            {"retry_delay": True},
            {"auto_recovery": "yes"},
            {"error_logging_level": "verbose"},
            {"disabled_strategies": "network_retry"},
            {"disabled_strategies": [1, 2]},
            {"colour": "blue"},
        ],
    )
    def test_merged_rejects_invalid(self, partial: dict) -> None:
        with pytest.raises(SettingsValidationError):
            Settings().merged(partial)

    def test_disabled_strategies_deduplicated(self) -> None:
        merged = Settings().merged({"disabled_strategies": ["a", "b", "a"]})
        assert merged.disabled_strategies == ["a", "b"]


class TestCoerceValue:
    """Tests for parsing command-line values."""

    @pytest.mark.parametrize(
        "key,raw,expected",
        [
            ("auto_recovery", "false", False),
            ("auto_recovery", "YES", True),
            ("max_retry_attempts", "5", 5),
            ("error_logging_level", "Warnings", "warnings"),
            ("disabled_strategies", "network_retry, audio_degrade", ["network_retry", "audio_degrade"]),
            ("disabled_strategies", "", []),
        ],
    )
    def test_coerce(self, key: str, raw: str, expected) -> None:
        assert coerce_value(key, raw) == expected

    @pytest.mark.parametrize(
        "key,raw",
        [("auto_recovery", "maybe"), ("retry_delay", "fast"), ("nope", "1")],
    )
    def test_coerce_invalid(self, key: str, raw: str) -> None:
        with pytest.raises(SettingsValidationError):
            coerce_value(key, raw)


class TestSettingsManager:
    """Tests for SettingsManager."""

    async def test_load_without_blob_keeps_defaults(self, store: MemoryStore) -> None:
        manager = SettingsManager(store)
        assert await manager.load() == Settings()

    async def test_load_merges_partial_blob(self) -> None:
        store = MemoryStore({SETTINGS_KEY: json.dumps({"retry_delay": 250}).encode()})
        manager = SettingsManager(store)

        settings = await manager.load()

        assert settings.retry_delay == 250
        assert settings.max_retry_attempts == 3

    @pytest.mark.parametrize("blob", [b"{oops", b"[1, 2]", b'{"retry_delay": -5}'])
    async def test_load_rejects_bad_blob(self, blob: bytes) -> None:
        manager = SettingsManager(MemoryStore({SETTINGS_KEY: blob}))
        with pytest.raises(SettingsValidationError):
            await manager.load()
        assert manager.get() == Settings()

    async def test_load_read_error_propagates(self, unreadable_store) -> None:
        with pytest.raises(OSError):
            await SettingsManager(unreadable_store).load()

    async def test_update_changes_only_given_fields(self, store: MemoryStore) -> None:
        manager = SettingsManager(store)
        before = manager.get()

        after = await manager.update(max_retry_attempts=5)

        assert after.max_retry_attempts == 5
        for name in Settings.field_names():
            if name != "max_retry_attempts":
                assert getattr(after, name) == getattr(before, name)

    async def test_update_persists_whole_record(self, store: MemoryStore) -> None:
        manager = SettingsManager(store)
        await manager.update({"auto_recovery": False})

        stored = json.loads(store.data[SETTINGS_KEY])
        assert stored == manager.get().to_dict()
        assert stored["auto_recovery"] is False

    async def test_update_survives_reload(self, store: MemoryStore) -> None:
        await SettingsManager(store).update(error_logging_level="all")
        reloaded = SettingsManager(store)
        await reloaded.load()
        assert reloaded.get().error_logging_level == LoggingLevel.ALL

    async def test_persistence_failure_propagates(self, failing_store) -> None:
        manager = SettingsManager(failing_store)

        with pytest.raises(OSError, match="disk full"):
            await manager.update(max_retry_attempts=9)

        assert manager.get().max_retry_attempts == 3

    async def test_invalid_update_leaves_settings(self, store: MemoryStore) -> None:
        manager = SettingsManager(store)
        with pytest.raises(SettingsValidationError):
            await manager.update(retry_delay=-1)
        assert manager.get().retry_delay == 1000
        assert SETTINGS_KEY not in store.data

    async def test_get_returns_copy(self, store: MemoryStore) -> None:
        manager = SettingsManager(store)
        copy = manager.get()
        copy.disabled_strategies.append("network_retry")
        assert manager.get().disabled_strategies == []

    async def test_set_strategy_enabled(self, store: MemoryStore) -> None:
        manager = SettingsManager(store)

        settings = await manager.set_strategy_enabled("audio_degrade", False)
        assert settings.disabled_strategies == ["audio_degrade"]

        settings = await manager.set_strategy_enabled("audio_degrade", True)
        assert settings.disabled_strategies == []

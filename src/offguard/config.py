"""Runtime settings for the resilience subsystem.

Settings are a flat record persisted as a whole (replace, not patch)
under the ``settings`` key of the durable store on every change.

Loading priority:
1. Stored blob fields (shallow-merged)
2. Compiled-in defaults

Example:
    from offguard.config import SettingsManager
    from offguard.storage import MemoryStore

    manager = SettingsManager(MemoryStore())
    await manager.load()
    await manager.update(max_retry_attempts=5)
    print(manager.get().max_retry_attempts)
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .storage import SETTINGS_KEY, KeyValueStore
from .utils.errors import SettingsValidationError

logger = logging.getLogger(__name__)


class LoggingLevel(str, Enum):
    """How much of each handled error is written to the log."""

    NONE = "none"
    ERRORS = "errors"
    WARNINGS = "warnings"
    ALL = "all"


@dataclass
class Settings:
    """Error handling settings.

    Attributes:
        enable_error_reporting: Forward high severity errors to telemetry.
        enable_offline_mode: Allow switching to offline mode.
        enable_graceful_degradation: Allow degrade strategies to keep features running.
        max_retry_attempts: Retry budget given to retryable errors.
        retry_delay: Delay between retry attempts, in milliseconds.
        error_logging_level: Logging verbosity for handled errors.
        auto_recovery: Run recovery strategies after classification.
        user_notifications: Notify the user about medium+ severity errors.
        disabled_strategies: Ids of recovery strategies switched off.
    """

    enable_error_reporting: bool = True
    enable_offline_mode: bool = True
    enable_graceful_degradation: bool = True
    max_retry_attempts: int = 3
    retry_delay: int = 1000
    error_logging_level: LoggingLevel = LoggingLevel.ERRORS
    auto_recovery: bool = True
    user_notifications: bool = True
    disabled_strategies: list[str] = field(default_factory=list)

    @classmethod
    def field_names(cls) -> list[str]:
        return [f.name for f in dataclasses.fields(cls)]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Settings:
        """Create from dictionary, shallow-merging over defaults.

        Unknown keys are ignored so blobs written by other versions load.
        """
        known = {k: v for k, v in data.items() if k in cls.field_names()}
        return cls().merged(known)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "enable_error_reporting": self.enable_error_reporting,
            "enable_offline_mode": self.enable_offline_mode,
            "enable_graceful_degradation": self.enable_graceful_degradation,
            "max_retry_attempts": self.max_retry_attempts,
            "retry_delay": self.retry_delay,
            "error_logging_level": self.error_logging_level.value,
            "auto_recovery": self.auto_recovery,
            "user_notifications": self.user_notifications,
            "disabled_strategies": list(self.disabled_strategies),
        }

    def merged(self, partial: dict[str, Any]) -> Settings:
        """Return a new Settings with ``partial`` shallow-merged in.

        Raises:
            SettingsValidationError: On unknown keys or invalid values.
        """
        unknown = set(partial) - set(self.field_names())
        if unknown:
            raise SettingsValidationError(f"Unknown setting(s): {', '.join(sorted(unknown))}")

        values = self.to_dict()
        values.update(partial)
        return Settings(**_validate(values))


def _validate(values: dict[str, Any]) -> dict[str, Any]:
    result = dict(values)

    for name in (
        "enable_error_reporting",
        "enable_offline_mode",
        "enable_graceful_degradation",
        "auto_recovery",
        "user_notifications",
    ):
        if not isinstance(result[name], bool):
            raise SettingsValidationError(f"{name} must be a boolean, got {result[name]!r}")

    for name in ("max_retry_attempts", "retry_delay"):
        value = result[name]
        if isinstance(value, bool) or not isinstance(value, int):
            raise SettingsValidationError(f"{name} must be an integer, got {value!r}")
        if value < 0:
            raise SettingsValidationError(f"{name} must be >= 0, got {value}")

    try:
        result["error_logging_level"] = LoggingLevel(result["error_logging_level"])
    except ValueError:
        choices = ", ".join(level.value for level in LoggingLevel)
        raise SettingsValidationError(
            f"error_logging_level must be one of {choices}, got {result['error_logging_level']!r}"
        ) from None

    disabled = result["disabled_strategies"]
    if not isinstance(disabled, list) or not all(isinstance(s, str) for s in disabled):
        raise SettingsValidationError("disabled_strategies must be a list of strategy ids")
    result["disabled_strategies"] = list(dict.fromkeys(disabled))

    return result


def coerce_value(key: str, raw: str) -> Any:
    """Convert a command-line string into the type of setting ``key``.

    Raises:
        SettingsValidationError: If the key is unknown or the value does not parse.
    """
    if key not in Settings.field_names():
        raise SettingsValidationError(f"Unknown setting: {key}")

    default = getattr(Settings(), key)

    if isinstance(default, bool):
        lowered = raw.strip().lower()
        if lowered in ("true", "yes", "on", "1"):
            return True
        if lowered in ("false", "no", "off", "0"):
            return False
        raise SettingsValidationError(f"{key} expects true/false, got {raw!r}")
    if isinstance(default, int):
        try:
            return int(raw)
        except ValueError:
            raise SettingsValidationError(f"{key} expects an integer, got {raw!r}") from None
    if isinstance(default, list):
        return [item.strip() for item in raw.split(",") if item.strip()]
    return raw.strip().lower()


class SettingsManager:
    """Owns the in-memory settings and their durable copy.

    Merges are serialized with an asyncio lock so concurrent updates
    cannot interleave their read-modify-write.
    """

    def __init__(self, store: KeyValueStore, defaults: Settings | None = None):
        self.store = store
        self._settings = defaults or Settings()
        self._lock = asyncio.Lock()

    def get(self) -> Settings:
        """Return a copy of the current settings."""
        return dataclasses.replace(
            self._settings,
            disabled_strategies=list(self._settings.disabled_strategies),
        )

    @property
    def current(self) -> Settings:
        """The live settings object (read-only by convention)."""
        return self._settings

    async def load(self) -> Settings:
        """Read the stored blob once and merge it over the defaults.

        A missing blob keeps the defaults. Storage and validation errors
        propagate to the caller.
        """
        blob = await self.store.get(SETTINGS_KEY)
        if not blob:
            logger.debug("No stored settings, using defaults")
            return self.get()

        try:
            data = json.loads(blob)
        except json.JSONDecodeError as e:
            raise SettingsValidationError(f"Stored settings are not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise SettingsValidationError("Stored settings must be a JSON object")

        async with self._lock:
            self._settings = Settings.from_dict(data)
        logger.info("Loaded stored settings")
        return self.get()

    async def update(self, partial: dict[str, Any] | None = None, **kwargs: Any) -> Settings:
        """Shallow-merge ``partial`` into the settings and persist the result.

        Raises:
            SettingsValidationError: On unknown keys or invalid values.
            Exception: Whatever the store raises; persistence errors propagate.
        """
        changes = {**(partial or {}), **kwargs}
        async with self._lock:
            updated = self._settings.merged(changes)
            await self._persist(updated)
            self._settings = updated
        logger.info(f"Updated settings: {', '.join(sorted(changes)) or '(none)'}")
        return self.get()

    async def set_strategy_enabled(self, strategy_id: str, enabled: bool) -> Settings:
        """Enable or disable a recovery strategy by id."""
        disabled = [s for s in self._settings.disabled_strategies if s != strategy_id]
        if not enabled:
            disabled.append(strategy_id)
        return await self.update(disabled_strategies=disabled)

    async def _persist(self, settings: Settings) -> None:
        blob = json.dumps(settings.to_dict()).encode("utf-8")
        await self.store.set(SETTINGS_KEY, blob)

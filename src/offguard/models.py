"""Data models for the resilience subsystem.

This module defines the records the subsystem owns in memory:
error records, offline capabilities, recovery strategies and the
connectivity snapshot reported by the platform.
"""

from __future__ import annotations

import random
import string
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_serializer, field_validator, model_validator


class ErrorType(str, Enum):
    """Closed taxonomy of failure origins."""

    NETWORK = "network"
    STORAGE = "storage"
    AUDIO = "audio"
    NAVIGATION = "navigation"
    PERMISSION = "permission"
    VALIDATION = "validation"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | ErrorType) -> ErrorType:
        """Parse a type name, accepting the legacy ``database`` alias."""
        if isinstance(value, ErrorType):
            return value
        normalized = value.strip().lower()
        if normalized == "database":
            return cls.STORAGE
        return cls(normalized)


class Severity(str, Enum):
    """Ordinal urgency of an error."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def parse(cls, value: str | Severity) -> Severity:
        """Parse a severity name, ignoring case and surrounding whitespace."""
        if isinstance(value, Severity):
            return value
        return cls(value.strip().lower())

    @property
    def rank(self) -> int:
        return _SEVERITY_RANKS[self]

    def at_least(self, other: Severity) -> bool:
        return self.rank >= other.rank


_SEVERITY_RANKS = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class SyncStatus(str, Enum):
    SYNCED = "synced"
    PENDING = "pending"
    FAILED = "failed"
    NEVER = "never"


class ConflictResolution(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"
    MANUAL = "manual"


class StrategyKind(str, Enum):
    """Kinds of recovery strategies."""

    RETRY = "retry"  # Try the operation again
    FALLBACK = "fallback"  # Use an alternative source
    DEGRADE = "degrade"  # Keep going with reduced features
    OFFLINE = "offline"  # Switch to offline mode
    USER_ACTION = "user_action"  # Ask the user to intervene


def generate_error_id() -> str:
    """Generate an opaque error id from the current time and a random suffix."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"error_{int(time.time() * 1000)}_{suffix}"


def _json_safe(value: Any) -> Any:
    """Convert an opaque context value into something JSON can encode."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Enum):
        return _json_safe(value.value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_json_safe(v) for v in value]
    return repr(value)


class ErrorRecord(BaseModel):
    """A classified error.

    Records are created by the classifier, mutated in place when a
    recovery strategy succeeds, and only ever evicted in bulk by the
    history store.
    """

    id: str = Field(default_factory=generate_error_id)
    type: ErrorType = ErrorType.UNKNOWN
    severity: Severity = Severity.LOW
    raw_message: str = ""
    user_message: str = ""
    technical_detail: str = ""
    timestamp: datetime = Field(default_factory=datetime.now)
    user_id: str | None = None
    screen: str = ""
    action: str = ""
    stack_trace: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    is_resolved: bool = False
    resolution: str | None = None
    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=0, ge=0)

    @field_validator("type", mode="before")
    @classmethod
    def _accept_legacy_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return ErrorType.parse(value)
        return value

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_severity(cls, value: Any) -> Any:
        if isinstance(value, str):
            return Severity.parse(value)
        return value

    @field_serializer("context", when_used="json")
    def _serialize_context(self, context: dict[str, Any]) -> dict[str, Any]:
        return {str(key): _json_safe(value) for key, value in context.items()}

    @model_validator(mode="after")
    def _check_retry_bounds(self) -> ErrorRecord:
        if self.retry_count > self.max_retries:
            raise ValueError(
                f"retry_count ({self.retry_count}) exceeds max_retries ({self.max_retries})"
            )
        return self

    @property
    def retries_remaining(self) -> int:
        return max(0, self.max_retries - self.retry_count)

    def register_retry(self) -> bool:
        """Count one retry attempt.

        Returns:
            False (without counting) if the retry budget is already spent.
        """
        if self.retry_count >= self.max_retries:
            return False
        self.retry_count += 1
        return True

    def mark_resolved(self, resolution: str) -> None:
        self.is_resolved = True
        self.resolution = resolution

    def __str__(self) -> str:
        status = "resolved" if self.is_resolved else "open"
        return (
            f"{self.timestamp.strftime('%Y-%m-%d %H:%M:%S')} "
            f"[{self.severity.value}/{self.type.value}] {self.raw_message} ({status})"
        )


class OfflineCapability(BaseModel):
    """Offline support and sync state for one named feature."""

    feature: str
    is_offline_capable: bool = Field(default=False, frozen=True)
    offline_data: Any = None
    last_sync: datetime | None = None
    sync_status: SyncStatus = SyncStatus.NEVER
    conflict_resolution: ConflictResolution = ConflictResolution.REMOTE


StrategyAction = Callable[[ErrorRecord], Awaitable[bool]]


@dataclass
class RecoveryStrategy:
    """A prioritized remediation action for one error type.

    Attributes:
        id: Unique strategy identifier.
        error_type: The single error type this strategy applies to.
        strategy: Kind of remediation.
        description: Human readable description, used as the resolution text.
        action: Coroutine function returning True when recovery succeeded.
        priority: Lower values run first.
        is_enabled: Disabled strategies are skipped by the orchestrator.
    """

    id: str
    error_type: ErrorType
    strategy: StrategyKind
    description: str
    action: StrategyAction
    priority: int = 1
    is_enabled: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (the action is not serializable)."""
        return {
            "id": self.id,
            "error_type": self.error_type.value,
            "strategy": self.strategy.value,
            "description": self.description,
            "priority": self.priority,
            "is_enabled": self.is_enabled,
        }


@dataclass(frozen=True)
class ConnectivitySnapshot:
    """Connectivity state as reported by the platform."""

    connected: bool
    connection_type: str = "unknown"
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class User:
    """The user the subsystem is initialized for."""

    id: str
    name: str = ""

"""Error classification.

Turns a raised exception plus the caller's context into an ErrorRecord:
- type: which subsystem the failure came from
- severity: how urgent it is
- user_message: fixed, human-facing text per type

Inference is a deterministic keyword heuristic. The rules live in plain
tables and the matching sits behind the ``Classifier`` protocol, so a
deployment can swap either without touching recovery.
"""

from __future__ import annotations

import traceback
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..models import ErrorRecord, ErrorType, Severity

# Each rule is (keywords, result). Rules are checked in order and the
# first rule with a keyword contained in the message wins.
TYPE_RULES: list[tuple[tuple[str, ...], ErrorType]] = [
    (("network", "fetch", "timeout"), ErrorType.NETWORK),
    (("database", "sqlite", "query"), ErrorType.STORAGE),
    (("audio", "sound", "speech"), ErrorType.AUDIO),
    (("navigation", "route", "screen"), ErrorType.NAVIGATION),
    (("permission", "access", "denied"), ErrorType.PERMISSION),
    (("validation", "invalid", "format"), ErrorType.VALIDATION),
]

SEVERITY_RULES: list[tuple[tuple[str, ...], Severity]] = [
    (("critical", "fatal", "crash"), Severity.CRITICAL),
    (("error", "failed", "unable"), Severity.HIGH),
    (("warning", "caution", "notice"), Severity.MEDIUM),
]

USER_MESSAGES: dict[ErrorType, str] = {
    ErrorType.NETWORK: (
        "Unable to connect to the internet. Some features may be limited. "
        "Your data will sync when connection is restored."
    ),
    ErrorType.STORAGE: "There was a problem saving your data. Please try again.",
    ErrorType.AUDIO: (
        "Audio features are temporarily unavailable. "
        "You can still use the app without sound."
    ),
    ErrorType.NAVIGATION: "There was a problem navigating. Please try again.",
    ErrorType.PERMISSION: (
        "This feature requires permission. Please check your device settings."
    ),
    ErrorType.VALIDATION: "Please check your input and try again.",
    ErrorType.UNKNOWN: "Something went wrong. Please try again.",
}


@dataclass
class ErrorContext:
    """Where and how an error was raised.

    Attributes:
        screen: Screen (or component) the error was raised from.
        action: Action being performed.
        type: Caller-asserted error type; trusted as-is when given.
        severity: Caller-asserted severity; trusted as-is when given.
        user_message: Caller-supplied user-facing message.
        retryable: Whether the failed operation may be retried.
        extra: Additional opaque key/value context.
    """

    screen: str
    action: str
    type: ErrorType | str | None = None
    severity: Severity | str | None = None
    user_message: str | None = None
    retryable: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary for the record's context field."""
        data: dict[str, Any] = {
            "screen": self.screen,
            "action": self.action,
            "retryable": self.retryable,
        }
        if self.type is not None:
            data["type"] = ErrorType.parse(self.type).value
        if self.severity is not None:
            data["severity"] = Severity.parse(self.severity).value
        if self.user_message is not None:
            data["user_message"] = self.user_message
        data.update(self.extra)
        return data


class Classifier(Protocol):
    """Matching rules used to infer type, severity and user message."""

    def infer_type(self, message: str) -> ErrorType: ...

    def infer_severity(self, message: str) -> Severity: ...

    def user_message_for(self, error_type: ErrorType) -> str: ...


class KeywordClassifier:
    """Case-insensitive substring classifier driven by rule tables."""

    def __init__(
        self,
        type_rules: Sequence[tuple[Sequence[str], ErrorType]] | None = None,
        severity_rules: Sequence[tuple[Sequence[str], Severity]] | None = None,
        user_messages: dict[ErrorType, str] | None = None,
    ):
        self.type_rules = list(type_rules if type_rules is not None else TYPE_RULES)
        self.severity_rules = list(
            severity_rules if severity_rules is not None else SEVERITY_RULES
        )
        self.user_messages = {**USER_MESSAGES, **(user_messages or {})}

    def infer_type(self, message: str) -> ErrorType:
        return _first_match(message, self.type_rules, ErrorType.UNKNOWN)

    def infer_severity(self, message: str) -> Severity:
        return _first_match(message, self.severity_rules, Severity.LOW)

    def user_message_for(self, error_type: ErrorType) -> str:
        return self.user_messages.get(error_type, USER_MESSAGES[ErrorType.UNKNOWN])


def _first_match(message: str, rules: Sequence[tuple[Sequence[str], Any]], default: Any) -> Any:
    normalized = message.lower()
    for keywords, result in rules:
        if any(keyword.lower() in normalized for keyword in keywords):
            return result
    return default


def _technical_detail(error: BaseException) -> tuple[str, str | None]:
    """Return (technical detail, stack trace) for an exception."""
    if error.__traceback__ is not None:
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        return stack, stack
    return f"{type(error).__name__}: {error}", None


def classify_error(
    error: BaseException,
    context: ErrorContext,
    *,
    max_retry_attempts: int,
    classifier: Classifier | None = None,
    user_id: str | None = None,
) -> ErrorRecord:
    """Classify an exception into a fully populated ErrorRecord.

    Args:
        error: The raised failure.
        context: Where it was raised and any caller-asserted attributes.
        max_retry_attempts: Retry budget for retryable errors.
        classifier: Matching rules; defaults to KeywordClassifier.
        user_id: Id of the current user, if any.

    Returns:
        ErrorRecord with retry_count=0 and max_retries set from
        ``context.retryable``.
    """
    classifier = classifier or KeywordClassifier()
    message = str(error)

    error_type = (
        ErrorType.parse(context.type) if context.type is not None else classifier.infer_type(message)
    )
    severity = (
        Severity.parse(context.severity)
        if context.severity is not None
        else classifier.infer_severity(message)
    )
    technical_detail, stack_trace = _technical_detail(error)

    return ErrorRecord(
        type=error_type,
        severity=severity,
        raw_message=message,
        user_message=context.user_message or classifier.user_message_for(error_type),
        technical_detail=technical_detail,
        user_id=user_id,
        screen=context.screen,
        action=context.action,
        stack_trace=stack_trace,
        context=context.to_dict(),
        retry_count=0,
        max_retries=max_retry_attempts if context.retryable else 0,
    )

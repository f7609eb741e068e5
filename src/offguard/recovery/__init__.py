"""Error classification and recovery for offguard.

This module provides:
- Error classification into a closed type/severity taxonomy
- Pluggable classifier rules
- Prioritized recovery strategy orchestration
"""

from .classifier import (
    SEVERITY_RULES,
    TYPE_RULES,
    USER_MESSAGES,
    Classifier,
    ErrorContext,
    KeywordClassifier,
    classify_error,
)
from .strategies import (
    RecoveryOrchestrator,
    RecoveryOutcome,
    default_strategies,
    degrade_action,
    network_retry_action,
    offline_mode_action,
    unavailable_action,
)

__all__ = [
    # Classifier
    "Classifier",
    "ErrorContext",
    "KeywordClassifier",
    "classify_error",
    "TYPE_RULES",
    "SEVERITY_RULES",
    "USER_MESSAGES",
    # Strategies
    "RecoveryOrchestrator",
    "RecoveryOutcome",
    "default_strategies",
    "network_retry_action",
    "offline_mode_action",
    "degrade_action",
    "unavailable_action",
]

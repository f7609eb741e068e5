"""offguard - error classification, recovery and offline mode.

Classifies runtime failures, runs prioritized recovery strategies,
tracks which features work offline and reacts to connectivity changes.
"""

__version__ = "0.1.0"

from .config import LoggingLevel, Settings, SettingsManager
from .history import ErrorHistoryStore, HistoryFilter
from .models import (
    ConflictResolution,
    ConnectivitySnapshot,
    ErrorRecord,
    ErrorType,
    OfflineCapability,
    RecoveryStrategy,
    Severity,
    StrategyKind,
    SyncStatus,
    User,
)
from .recovery import ErrorContext, KeywordClassifier, RecoveryOrchestrator, classify_error
from .service import ResilienceService
from .storage import FileStore, KeyValueStore, MemoryStore
from .utils.errors import (
    OffguardError,
    OfflineModeDisabledError,
    SettingsValidationError,
    StorageError,
)

__all__ = [
    "__version__",
    # Service
    "ResilienceService",
    # Models
    "ErrorRecord",
    "ErrorType",
    "Severity",
    "OfflineCapability",
    "SyncStatus",
    "ConflictResolution",
    "RecoveryStrategy",
    "StrategyKind",
    "ConnectivitySnapshot",
    "User",
    # Components
    "ErrorContext",
    "KeywordClassifier",
    "classify_error",
    "RecoveryOrchestrator",
    "ErrorHistoryStore",
    "HistoryFilter",
    "Settings",
    "SettingsManager",
    "LoggingLevel",
    # Storage
    "KeyValueStore",
    "MemoryStore",
    "FileStore",
    # Errors
    "OffguardError",
    "OfflineModeDisabledError",
    "SettingsValidationError",
    "StorageError",
]

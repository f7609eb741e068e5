"""offguard utility modules."""

from .errors import (
    ErrorInfo,
    OffguardError,
    OfflineModeDisabledError,
    SettingsValidationError,
    StorageError,
    describe_exception,
    format_error,
    handle_exception,
    is_debug_mode,
    set_debug_mode,
)

__all__ = [
    # Exceptions
    "OffguardError",
    "OfflineModeDisabledError",
    "SettingsValidationError",
    "StorageError",
    # Display
    "ErrorInfo",
    "format_error",
    "handle_exception",
    "describe_exception",
    "set_debug_mode",
    "is_debug_mode",
]

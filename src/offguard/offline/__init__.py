"""Offline support for offguard.

Provides:
- OfflineCapabilityRegistry: per-feature offline support and mode switching
- NetworkMonitor: connectivity notifications to mode transitions
"""

from .network import (
    ConnectivitySource,
    NetworkMonitor,
    StaticConnectivitySource,
    Transition,
)
from .registry import (
    DEFAULT_FEATURES,
    NullOfflineHooks,
    OfflineCapabilityRegistry,
    OfflineHooks,
    default_capabilities,
)

__all__ = [
    # Registry
    "OfflineCapabilityRegistry",
    "OfflineHooks",
    "NullOfflineHooks",
    "DEFAULT_FEATURES",
    "default_capabilities",
    # Network
    "NetworkMonitor",
    "ConnectivitySource",
    "StaticConnectivitySource",
    "Transition",
]

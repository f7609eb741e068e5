"""Connectivity monitoring.

NetworkMonitor subscribes once to a connectivity source and turns its
raw notifications into online/offline transitions. A notification that
does not change the connected state never triggers a transition.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Protocol

from ..models import ConnectivitySnapshot

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[ConnectivitySnapshot], Any]
TransitionHandler = Callable[[], Awaitable[Any]]


class Transition(str, Enum):
    OFFLINE = "offline"
    ONLINE = "online"


class ConnectivitySource(Protocol):
    """Platform connectivity notifications."""

    async def fetch_snapshot(self) -> ConnectivitySnapshot: ...

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]: ...


class StaticConnectivitySource:
    """Connectivity source driven by hand.

    Used by the CLI (which has no platform notifications) and by tests.
    """

    def __init__(self, connected: bool = True):
        self.snapshot = ConnectivitySnapshot(connected=connected)
        self._subscribers: list[SnapshotCallback] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def fetch_snapshot(self) -> ConnectivitySnapshot:
        return self.snapshot

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def set_connected(self, connected: bool, connection_type: str = "unknown") -> None:
        """Report a new state to every subscriber, even if unchanged."""
        self.snapshot = ConnectivitySnapshot(connected=connected, connection_type=connection_type)
        for callback in list(self._subscribers):
            callback(self.snapshot)


class NetworkMonitor:
    """Drives offline/online transitions from connectivity notifications.

    Attributes:
        source: Connectivity source to observe.
        transitions: Number of transitions emitted so far.
    """

    def __init__(
        self,
        source: ConnectivitySource,
        on_offline: TransitionHandler,
        on_online: TransitionHandler,
    ):
        self.source = source
        self._handlers = {Transition.OFFLINE: on_offline, Transition.ONLINE: on_online}
        self._connected: bool | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._state_lock = threading.Lock()
        self._tasks: set[asyncio.Task[Any]] = set()
        self.transitions = 0

    @property
    def is_connected(self) -> bool | None:
        """Last known connectivity; None before initialize()."""
        return self._connected

    @property
    def is_subscribed(self) -> bool:
        return self._unsubscribe is not None

    async def initialize(self) -> ConnectivitySnapshot:
        """Record the current snapshot, then subscribe to changes once."""
        snapshot = await self.source.fetch_snapshot()
        with self._state_lock:
            self._connected = snapshot.connected
        self._loop = asyncio.get_running_loop()
        if self._unsubscribe is None:
            self._unsubscribe = self.source.subscribe(self._on_change)
        logger.debug(f"Network monitor started (connected={snapshot.connected})")
        return snapshot

    def cleanup(self) -> None:
        """Unsubscribe; safe to call repeatedly or without initialize()."""
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()
            logger.debug("Network monitor stopped")

    async def wait_idle(self) -> None:
        """Wait for scheduled transition handlers to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def record(self, snapshot: ConnectivitySnapshot) -> Transition | None:
        """Update the known state and return the transition it implies."""
        with self._state_lock:
            was_online = self._connected
            self._connected = snapshot.connected

        if was_online is None:
            return None
        if was_online and not snapshot.connected:
            return Transition.OFFLINE
        if not was_online and snapshot.connected:
            return Transition.ONLINE
        return None

    async def handle_snapshot(self, snapshot: ConnectivitySnapshot) -> Transition | None:
        """Process one notification and await its transition handler."""
        transition = self.record(snapshot)
        if transition is not None:
            await self._emit(transition)
        return transition

    def _on_change(self, snapshot: ConnectivitySnapshot) -> None:
        transition = self.record(snapshot)
        if transition is None or self._loop is None:
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._schedule(transition)
        else:
            self._loop.call_soon_threadsafe(self._schedule, transition)

    def _schedule(self, transition: Transition) -> None:
        task = asyncio.ensure_future(self._emit(transition))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _emit(self, transition: Transition) -> None:
        self.transitions += 1
        logger.info(f"Connectivity changed: {transition.value}")
        try:
            await self._handlers[transition]()
        except Exception as e:
            logger.error(f"Failed to handle {transition.value} transition: {e}")

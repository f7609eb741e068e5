"""Bounded history of classified errors.

The history is an append-only in-memory list capped at ``MAX_HISTORY``
entries; the oldest entries are evicted first. Every insert and every
resolution update serializes the whole list and writes it to the
durable store under the ``error_history`` key.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from .models import ErrorRecord, Severity
from .storage import ERROR_HISTORY_KEY, KeyValueStore

logger = logging.getLogger(__name__)

MAX_HISTORY = 100


def _as_naive(value: datetime) -> datetime:
    """Convert aware datetimes to naive local time for comparison."""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


@dataclass
class HistoryFilter:
    """Filter criteria for querying error history.

    All criteria are ANDed; dates are inclusive.

    Attributes:
        start_date: Only errors at or after this time.
        end_date: Only errors at or before this time.
        severity: Only errors with exactly this severity.
        limit: Maximum number of records to return.
    """

    start_date: datetime | None = None
    end_date: datetime | None = None
    severity: Severity | None = None
    limit: int | None = None

    def matches(self, record: ErrorRecord) -> bool:
        timestamp = _as_naive(record.timestamp)
        if self.start_date is not None and timestamp < _as_naive(self.start_date):
            return False
        if self.end_date is not None and timestamp > _as_naive(self.end_date):
            return False
        if self.severity is not None and record.severity != Severity.parse(self.severity):
            return False
        return True


class ErrorHistoryStore:
    """Keep-last-N log of ErrorRecords mirrored to a durable store.

    Mutations are serialized by an asyncio lock. Write failures are
    logged and never raised, so a broken store cannot break error
    handling.

    Attributes:
        store: Durable key-value store.
        capacity: Maximum number of records kept.
    """

    def __init__(self, store: KeyValueStore, capacity: int = MAX_HISTORY):
        if capacity < 1:
            raise ValueError("History capacity must be at least 1")
        self.store = store
        self.capacity = capacity
        self._records: list[ErrorRecord] = []
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> list[ErrorRecord]:
        """Records in insertion order (oldest first)."""
        return list(self._records)

    def get(self, record_id: str) -> ErrorRecord | None:
        return next((r for r in self._records if r.id == record_id), None)

    async def load(self) -> int:
        """Replace the in-memory history with the stored blob.

        A missing, empty or unreadable blob yields an empty history.
        Storage read errors propagate.

        Returns:
            Number of records loaded.
        """
        blob = await self.store.get(ERROR_HISTORY_KEY)
        records = _decode(blob)
        async with self._lock:
            self._records = records[-self.capacity :]
        logger.debug(f"Loaded {len(self._records)} errors from history")
        return len(self._records)

    async def add(self, record: ErrorRecord) -> None:
        """Append a record, evict the oldest beyond capacity and persist."""
        async with self._lock:
            self._records.append(record)
            overflow = len(self._records) - self.capacity
            if overflow > 0:
                del self._records[:overflow]
                logger.debug(f"Evicted {overflow} oldest error(s) from history")
            await self._persist()

    async def update(self, record: ErrorRecord) -> bool:
        """Persist changes made to a record already in the history.

        Returns:
            False if the record has been evicted (nothing is written).
        """
        async with self._lock:
            for index, existing in enumerate(self._records):
                if existing.id == record.id:
                    self._records[index] = record
                    await self._persist()
                    return True
        logger.debug(f"Error {record.id} no longer in history, skipping update")
        return False

    async def clear(self) -> None:
        async with self._lock:
            self._records = []
            await self._persist()

    def query(self, filter_: HistoryFilter | None = None) -> list[ErrorRecord]:
        """Return matching records, newest first."""
        filter_ = filter_ or HistoryFilter()
        matching = [r for r in self._records if filter_.matches(r)]
        matching.sort(key=lambda r: _as_naive(r.timestamp), reverse=True)
        if filter_.limit is not None:
            matching = matching[: filter_.limit]
        return matching

    async def _persist(self) -> None:
        try:
            blob = json.dumps([r.model_dump(mode="json") for r in self._records]).encode("utf-8")
            await self.store.set(ERROR_HISTORY_KEY, blob)
        except Exception as e:
            logger.error(f"Failed to persist error history: {e}")


def _decode(blob: bytes | None) -> list[ErrorRecord]:
    if not blob:
        return []

    try:
        data: Any = json.loads(blob)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Stored error history is unreadable, starting empty: {e}")
        return []

    if not isinstance(data, list):
        logger.warning("Stored error history is not a list, starting empty")
        return []

    records = []
    for item in data:
        try:
            records.append(ErrorRecord.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping invalid stored error record: {e.error_count()} issue(s)")
    return records

"""Durable key-value storage used for settings and error history.

The subsystem writes opaque serialized blobs under fixed string keys.
It consumes any object implementing ``KeyValueStore``; two
implementations ship with the package:

- MemoryStore: process-local dictionary, for tests and embedding
- FileStore: one JSON file per key inside a directory
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable

from .utils.errors import StorageError

logger = logging.getLogger(__name__)

SETTINGS_KEY = "settings"
ERROR_HISTORY_KEY = "error_history"

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


@runtime_checkable
class KeyValueStore(Protocol):
    """Durable store the subsystem writes to but does not own."""

    async def get(self, key: str) -> bytes | None: ...

    async def set(self, key: str, value: bytes) -> None: ...


class MemoryStore:
    """In-memory KeyValueStore.

    Attributes:
        data: Stored blobs by key.
        writes: Number of successful ``set`` calls, per key.
    """

    def __init__(self, initial: dict[str, bytes] | None = None):
        self.data: dict[str, bytes] = dict(initial or {})
        self.writes: dict[str, int] = {}

    async def get(self, key: str) -> bytes | None:
        return self.data.get(key)

    async def set(self, key: str, value: bytes) -> None:
        self.data[key] = bytes(value)
        self.writes[key] = self.writes.get(key, 0) + 1


class FileStore:
    """KeyValueStore backed by ``<directory>/<key>.json`` files.

    Writes go to a temporary file in the same directory which then
    replaces the target, so readers never observe a partial blob.
    """

    def __init__(self, directory: Path | str):
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise StorageError(f"Invalid storage key: {key!r}")
        return self.directory / f"{key}.json"

    async def get(self, key: str) -> bytes | None:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: bytes) -> None:
        await asyncio.to_thread(self._write, key, value)

    def _read(self, key: str) -> bytes | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

    def _write(self, key: str, value: bytes) -> None:
        path = self.path_for(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e
        logger.debug(f"Wrote {len(value)} bytes to {path}")


def get_store_dir(override: Path | str | None = None) -> Path:
    """Resolve the directory used by the file-backed store.

    Priority: explicit override, then ``OFFGUARD_HOME``, then ``~/.offguard``.
    """
    if override:
        return Path(override)
    if custom := os.environ.get("OFFGUARD_HOME"):
        return Path(custom)
    return Path.home() / ".offguard"

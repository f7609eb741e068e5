"""Shared fixtures for offguard tests."""

from __future__ import annotations

import pytest

from offguard.config import Settings
from offguard.storage import MemoryStore


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


class FailingStore(MemoryStore):
    """MemoryStore whose writes (and optionally reads) raise."""

    def __init__(self, fail_reads: bool = False):
        super().__init__()
        self.fail_reads = fail_reads
        self.set_attempts = 0

    async def get(self, key: str) -> bytes | None:
        if self.fail_reads:
            raise OSError("Storage error")
        return await super().get(key)

    async def set(self, key: str, value: bytes) -> None:
        self.set_attempts += 1
        raise OSError("disk full")


@pytest.fixture
def failing_store() -> FailingStore:
    return FailingStore()


@pytest.fixture
def unreadable_store() -> FailingStore:
    return FailingStore(fail_reads=True)


@pytest.fixture
def settings() -> Settings:
    return Settings()

"""Pytest configuration and fixtures."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

import pytest
import pytest_asyncio

from context_composer.admin.permissions import Actor, UserRole
from context_composer.config import Settings
from context_composer.db.database import Database
from context_composer.storage.kv_store import KeyValueStore, RetryPolicy
from context_composer.storage.medium import MemoryMedium


def pytest_configure(config):
    """Ensure asyncio_mode is auto so async fixtures work when pyproject is not in cwd."""
    if hasattr(config.option, "asyncio_mode") and config.option.asyncio_mode is None:
        config.option.asyncio_mode = "auto"
    logging.getLogger("httpcore").setLevel(logging.CRITICAL)


MEMORY_URL = "sqlite+aiosqlite:///:memory:"


class FlakyMedium(MemoryMedium):
    """In-memory medium whose failures and latency are scripted by the test.

    - ``fail_gets`` / ``fail_sets`` / ``fail_removes``: fail the next N calls.
    - ``fail_when(key, value)``: fail every matching ``set_item``.
    - ``hold_sets``: while set, ``set_item`` waits until the event fires.
    """

    def __init__(self, initial: dict[str, str] | None = None):
        super().__init__(initial)
        self.fail_gets = 0
        self.fail_sets = 0
        self.fail_removes = 0
        self.fail_when: Optional[Callable[[str, str], bool]] = None
        self.hold_sets: Optional[asyncio.Event] = None
        self.calls: list[tuple[str, str]] = []

    async def get_item(self, key: str) -> str | None:
        self.calls.append(("get", key))
        if self.fail_gets:
            self.fail_gets -= 1
            raise OSError("medium unavailable")
        return await super().get_item(key)

    async def set_item(self, key: str, value: str) -> None:
        self.calls.append(("set", key))
        if self.hold_sets is not None:
            await self.hold_sets.wait()
        if self.fail_sets:
            self.fail_sets -= 1
            raise OSError("disk full")
        if self.fail_when is not None and self.fail_when(key, value):
            raise OSError("write rejected")
        await super().set_item(key, value)

    async def remove_item(self, key: str) -> None:
        self.calls.append(("remove", key))
        if self.fail_removes:
            self.fail_removes -= 1
            raise OSError("medium unavailable")
        await super().remove_item(key)

    def count(self, op: str) -> int:
        return sum(1 for name, _ in self.calls if name == op)


@pytest.fixture
def medium() -> FlakyMedium:
    return FlakyMedium()


@pytest.fixture
def sleeps() -> list[float]:
    """Backoff delays requested by the key/value store (never actually slept)."""
    return []


@pytest.fixture
def kv(medium: FlakyMedium, sleeps: list[float]) -> KeyValueStore:
    async def _record_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return KeyValueStore(medium, RetryPolicy(), sleep=_record_sleep)


@pytest_asyncio.fixture
async def database():
    """In-memory SQLite database with every table created."""
    db = Database(MEMORY_URL)
    await db.connect()
    await db.create_schema()
    try:
        yield db
    finally:
        await db.close()


@pytest.fixture
def memory_settings() -> Settings:
    """Settings that keep everything in memory and disable remote sync."""
    return Settings(
        _env_file=None,
        database_url=MEMORY_URL,
        remote_database_url=None,
        supabase_url=None,
        storage_retry_delay_ms=0,
    )


@pytest.fixture
def admin() -> Actor:
    return Actor(id="admin-1", email="admin@example.com", role=UserRole.ADMIN)


@pytest.fixture
def reader() -> Actor:
    return Actor(id="user-1", email="user@example.com", role=UserRole.USER)

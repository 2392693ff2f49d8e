"""Storage media: the raw string key/value backends under ``KeyValueStore``.

A medium stores opaque strings and is allowed to fail; retries, JSON
encoding and defaults are the job of ``KeyValueStore``.
"""
from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy import delete

from context_composer.db.database import Database
from context_composer.db.models import KeyValueRecord

logger = logging.getLogger(__name__)


class StorageMedium(Protocol):
    """Asynchronous string key/value medium."""

    async def get_item(self, key: str) -> str | None: ...

    async def set_item(self, key: str, value: str) -> None: ...

    async def remove_item(self, key: str) -> None: ...

    async def clear(self) -> None: ...


class MemoryMedium:
    """Process-local medium. Contents vanish with the process."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._items: dict[str, str] = dict(initial or {})

    async def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    async def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    async def clear(self) -> None:
        self._items.clear()

    def keys(self) -> list[str]:
        return sorted(self._items)


class SqlMedium:
    """Durable medium backed by the ``kv_records`` table.

    Each call runs in its own transaction so a failed write leaves the
    previous value in place.
    """

    def __init__(self, database: Database):
        self._db = database

    async def get_item(self, key: str) -> str | None:
        async with self._db.session() as session:
            record = await session.get(KeyValueRecord, key)
            return record.value if record is not None else None

    async def set_item(self, key: str, value: str) -> None:
        async with self._db.transaction() as session:
            record = await session.get(KeyValueRecord, key)
            if record is None:
                session.add(KeyValueRecord(key=key, value=value))
            else:
                record.value = value
        logger.debug("✅ Stored %s (%d bytes)", key, len(value))

    async def remove_item(self, key: str) -> None:
        async with self._db.transaction() as session:
            await session.execute(delete(KeyValueRecord).where(KeyValueRecord.key == key))

    async def clear(self) -> None:
        async with self._db.transaction() as session:
            await session.execute(delete(KeyValueRecord))

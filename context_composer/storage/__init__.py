"""Key/value persistence: key registry, media and the retrying store."""
from __future__ import annotations

from context_composer.storage.keys import StorageKey
from context_composer.storage.kv_store import KeyValueStore, RetryPolicy
from context_composer.storage.medium import MemoryMedium, SqlMedium, StorageMedium

__all__ = [
    "KeyValueStore",
    "MemoryMedium",
    "RetryPolicy",
    "SqlMedium",
    "StorageKey",
    "StorageMedium",
]

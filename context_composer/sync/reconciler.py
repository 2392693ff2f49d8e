"""
Progress sync between the local ``ProgressStore`` and a remote row.

``push`` uploads the whole record (last-write-wins unless the caller
passes ``expected_revision``).  ``pull`` is a point read.  Neither touches
local state; ``pull_into_store`` lets the caller adopt pulled progress
with an explicit policy.  Fields are never merged.
"""
from __future__ import annotations

import logging
from enum import Enum

from context_composer.stores.progress import ProgressStore, UserProgress
from context_composer.sync.remote import ProgressRemote, RemoteProgress

logger = logging.getLogger(__name__)


class MergePolicy(str, Enum):
    """What to do with pulled progress."""
    REPLACE = "replace"
    IGNORE = "ignore"


def _require_user(user_id: str) -> str:
    if not user_id or not user_id.strip():
        raise ValueError("user_id is required for progress sync")
    return user_id


class SyncReconciler:
    def __init__(self, remote: ProgressRemote):
        self.remote = remote

    async def push(
        self,
        user_id: str,
        progress: UserProgress,
        expected_revision: int | None = None,
    ) -> RemoteProgress:
        """Upload ``progress``; raises ``SyncConflictError``/``SyncTransportError``."""
        written = await self.remote.upsert(_require_user(user_id), progress, expected_revision)
        logger.info("✅ Pushed progress for %s (revision %d)", user_id, written.revision)
        return written

    async def pull_record(self, user_id: str) -> RemoteProgress | None:
        record = await self.remote.fetch(_require_user(user_id))
        if record is None:
            logger.info("No remote progress for %s yet", user_id)
        return record

    async def pull(self, user_id: str) -> UserProgress | None:
        """Remote progress, or ``None`` when the user has never synced."""
        record = await self.pull_record(user_id)
        return record.progress if record is not None else None

    async def push_store(
        self,
        user_id: str,
        store: ProgressStore,
        expected_revision: int | None = None,
    ) -> RemoteProgress:
        await store.ensure_loaded()
        return await self.push(user_id, store.progress, expected_revision)

    async def pull_into_store(
        self,
        user_id: str,
        store: ProgressStore,
        policy: MergePolicy | str = MergePolicy.REPLACE,
    ) -> bool:
        """Pull and, under ``REPLACE``, adopt the remote record locally.

        Returns ``True`` when the store now holds the pulled progress.
        """
        policy = MergePolicy(policy)
        progress = await self.pull(user_id)
        if progress is None or policy is MergePolicy.IGNORE:
            return False
        adopted = await store.replace(progress)
        if not adopted:
            logger.warning("⚠️ Pulled progress for %s could not be saved locally", user_id)
        return adopted

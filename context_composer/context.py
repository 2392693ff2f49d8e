"""
Application context: every long-lived object the core needs, built once.

Usage::

    async with AppContext(get_settings()) as ctx:
        await ctx.favorites.toggle("bach", FavoriteType.COMPOSER)
        if ctx.reconciler is not None:
            await ctx.reconciler.push_store(user_id, ctx.progress)

Nothing here runs at import time.  ``start()`` connects databases and loads
all stores; ``close()`` disposes engines and HTTP clients.
"""
from __future__ import annotations

import asyncio
import logging
import types
from typing import Optional

from context_composer.admin.ledger import ContentAuditLedger
from context_composer.admin.permissions import PermissionOracle
from context_composer.config import Settings
from context_composer.db.database import Database
from context_composer.storage.kv_store import KeyValueStore, RetryPolicy
from context_composer.storage.medium import SqlMedium, StorageMedium
from context_composer.stores.favorites import FavoritesStore
from context_composer.stores.progress import ProgressStore
from context_composer.stores.quiz import QuizStore
from context_composer.stores.settings import SettingsStore
from context_composer.stores.streak import StreakStore
from context_composer.sync.reconciler import SyncReconciler
from context_composer.sync.remote import ProgressRemote, RestProgressRemote, SqlProgressRemote

logger = logging.getLogger(__name__)


class AppContext:
    """Owns the databases, key/value store, domain stores, reconciler and ledger.

    Args:
        settings: Explicit configuration; no global settings are consulted.
        medium: Storage medium override (tests pass ``MemoryMedium``).
            Defaults to ``SqlMedium`` on ``settings.local_database_url``.
        remote: Progress remote override.  Defaults to a SQL remote on
            ``remote_database_url``, else a REST remote on ``supabase_url``,
            else no sync at all (``reconciler`` is ``None``).
        oracle: Permission oracle for the ledger (role-based by default).
    """

    def __init__(
        self,
        settings: Settings,
        *,
        medium: StorageMedium | None = None,
        remote: ProgressRemote | None = None,
        oracle: PermissionOracle | None = None,
    ):
        self.settings = settings

        self.local_db = Database(settings.local_database_url)
        self.remote_db: Optional[Database] = (
            Database(settings.remote_database_url) if settings.remote_database_url else None
        )

        self._owns_medium = medium is None
        self.medium: StorageMedium = medium if medium is not None else SqlMedium(self.local_db)
        self.kv = KeyValueStore(self.medium, RetryPolicy.from_settings(settings))

        self.favorites = FavoritesStore(self.kv)
        self.user_settings = SettingsStore(self.kv)
        self.progress = ProgressStore(self.kv)
        self.quiz = QuizStore(self.kv)
        self.streak = StreakStore(self.kv, history_days=settings.streak_history_days)

        if remote is None:
            remote = self._default_remote()
        self.remote = remote
        self.reconciler: Optional[SyncReconciler] = SyncReconciler(remote) if remote else None

        # Content lives next to the remote progress rows; without a remote
        # database the local one is used (development).
        self.content_db = self.remote_db or self.local_db
        self.ledger = ContentAuditLedger(
            self.content_db,
            oracle,
            default_limit=settings.audit_log_default_limit,
        )
        self._started = False

    def _default_remote(self) -> ProgressRemote | None:
        if self.remote_db is not None:
            return SqlProgressRemote(self.remote_db)
        if self.settings.supabase_url:
            return RestProgressRemote(
                self.settings.supabase_url,
                self.settings.supabase_anon_key,
                timeout=self.settings.remote_timeout,
            )
        logger.info("Progress sync disabled: no remote configured")
        return None

    @property
    def stores(self) -> tuple[FavoritesStore, SettingsStore, ProgressStore, QuizStore, StreakStore]:
        return (self.favorites, self.user_settings, self.progress, self.quiz, self.streak)

    async def _connect(self, database: Database) -> None:
        await database.connect()
        # Server-side schemas come from Alembic; SQLite files are created here.
        if database.url.startswith("sqlite"):
            await database.create_schema()

    async def start(self) -> "AppContext":
        """Connect databases and load every store concurrently."""
        if self._started:
            return self
        if self._owns_medium or self.content_db is self.local_db:
            await self._connect(self.local_db)
        if self.remote_db is not None:
            await self._connect(self.remote_db)
        await asyncio.gather(*(store.load() for store in self.stores))
        self._started = True
        logger.info("✅ %s %s ready", self.settings.app_name, self.settings.app_version)
        return self

    async def close(self) -> None:
        if self.remote is not None:
            await self.remote.close()
        if self.remote_db is not None:
            await self.remote_db.close()
        await self.local_db.close()
        self._started = False

    async def __aenter__(self) -> "AppContext":
        return await self.start()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        await self.close()

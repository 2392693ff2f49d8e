"""
Async SQLAlchemy database setup.

Supports PostgreSQL (remote progress rows, content ledger) and SQLite
(on-device key/value medium, development, tests).

Each ``Database`` owns one engine and session factory.  Handles are created
by ``AppContext`` at process start and passed to the components that need
them; nothing is initialized at import time.
"""
from __future__ import annotations

import contextlib
import logging
from typing import Any, AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""
    pass


def _redact(url: str) -> str:
    return url.split("@")[-1] if "@" in url else url


class Database:
    """Engine + session factory for one database URL.

    Usage:
        db = Database("sqlite+aiosqlite:///./context_composer.db")
        await db.connect()
        async with db.transaction() as session:
            ...
        await db.close()
    """

    def __init__(self, url: str, *, echo: bool = False):
        self.url = url
        self._echo = echo
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database not initialized. Call connect() first.")
        return self._engine

    async def connect(self) -> None:
        """Create the async engine and session factory."""
        if self._engine is not None:
            return

        logger.info("Initializing database: %s", _redact(self.url))

        connect_args: dict[str, Any] = {}
        engine_kwargs: dict[str, Any] = {}
        if self.url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            if ":memory:" in self.url:
                # One shared connection, otherwise every session sees an empty DB.
                engine_kwargs["poolclass"] = StaticPool

        self._engine = create_async_engine(
            self.url,
            echo=self._echo,
            connect_args=connect_args,
            **engine_kwargs,
        )
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        # Import models so every table is registered on Base.metadata.
        from context_composer.db import models  # noqa: F401

        logger.info("Database initialized successfully")

    async def create_schema(self) -> None:
        """Create any missing tables.

        Used for the on-device SQLite medium and in tests.  Server-side
        schema is managed by Alembic (``alembic upgrade head``).
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Close database connections."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database connection closed: %s", _redact(self.url))

    def session(self) -> AsyncSession:
        """
        Get a new async session directly.

        Usage:
            async with db.session() as session:
                ...
        """
        if self._session_factory is None:
            raise RuntimeError("Database not initialized. Call connect() first.")
        return self._session_factory()

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """Open a session that commits on clean exit and rolls back on error."""
        async with self.session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

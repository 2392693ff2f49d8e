"""
Database module for Context Composer.

Provides async SQLAlchemy support with PostgreSQL and SQLite.
"""
from __future__ import annotations

from context_composer.db.database import Base, Database
from context_composer.db.models import (
    AppendOnlyViolation,
    AuditLogEntry,
    ContentEntity,
    ContentVersionRow,
    KeyValueRecord,
    UserProgressRow,
)

__all__ = [
    "Base",
    "Database",
    "AppendOnlyViolation",
    "AuditLogEntry",
    "ContentEntity",
    "ContentVersionRow",
    "KeyValueRecord",
    "UserProgressRow",
]

"""
SQLAlchemy ORM models for Context Composer.

Tables:
- kv_records: on-device key/value medium (one JSON document per storage key)
- user_progress: remote learning-progress row per user (sync target)
- content_entities: administrable content, one row per (entity_type, id)
- audit_logs: append-only record of every content mutation
- content_versions: pre-image snapshots linked to the audit entry that caused them
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from context_composer.db.database import Base


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


class KeyValueRecord(Base):
    """A single storage key and its JSON-encoded value."""
    __tablename__ = "kv_records"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<KeyValueRecord {self.key} ({len(self.value)} bytes)>"


class UserProgressRow(Base):
    """
    Remote copy of a user's learning progress.

    Keyed by user identity.  ``revision`` increases by one on every push so
    clients can detect that another device wrote in between; ``updated_at``
    is stamped by the database.
    """
    __tablename__ = "user_progress"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    kickstart_day: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    kickstart_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    viewed_composers: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    viewed_periods: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    viewed_forms: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    viewed_terms: Mapped[list[int]] = mapped_column(JSON, default=list, nullable=False)
    badges: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    first_launch: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    revision: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<UserProgressRow {self.user_id} rev={self.revision} day={self.kickstart_day}>"


class ContentEntity(Base):
    """
    Administrable content (composer, term, period, ...).

    ``fields`` holds the variant-specific record validated by
    ``context_composer.admin.entities``; ``name`` is denormalized for listing.
    """
    __tablename__ = "content_entities"

    entity_type: Mapped[str] = mapped_column(String(32), primary_key=True)
    entity_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    fields: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ContentEntity {self.entity_type}:{self.entity_id} {self.name!r}>"


class AuditLogEntry(Base):
    """
    One immutable audit record.

    ``id`` is auto-incremented so ordering by id is the append order, even
    when two entries share a timestamp.  ``changes`` is only set for updates
    and restores.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        CheckConstraint(
            "action IN ('create', 'update', 'delete', 'restore')",
            name="ck_audit_logs_action",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    entity_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    entity_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    action: Mapped[str] = mapped_column(String(16), nullable=False)
    changes: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    user_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<AuditLogEntry #{self.id} {self.action} {self.entity_type}:{self.entity_id}>"


class ContentVersionRow(Base):
    """A pre-image of an entity taken before update, delete or restore."""
    __tablename__ = "content_versions"
    __table_args__ = (
        UniqueConstraint(
            "entity_type", "entity_id", "version_number",
            name="uq_content_versions_entity_version",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    entity_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    audit_log_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("audit_logs.id"),
        nullable=False,
        index=True,
    )
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<ContentVersionRow #{self.id} {self.entity_type}:{self.entity_id} "
            f"v{self.version_number}>"
        )


class AppendOnlyViolation(RuntimeError):
    """Raised when code tries to rewrite or delete committed history."""


def _refuse_mutation(mapper: Any, connection: Any, target: Any) -> None:
    raise AppendOnlyViolation(f"{target!r} is append-only")


for _history_model in (AuditLogEntry, ContentVersionRow):
    event.listen(_history_model, "before_update", _refuse_mutation)
    event.listen(_history_model, "before_delete", _refuse_mutation)

"""
Audit-logged, versioned content mutations.

Every administrative change to content goes through ``ContentAuditLedger``:

1. Permission check (edit / delete / restore are separate capabilities).
2. Validation of the new field set against the entity's variant.
3. Entity write, then one ``audit_logs`` row, then (for update, delete and
   restore of an existing entity) a ``content_versions`` row holding the
   pre-image and pointing at that audit row.

Steps 3 run in a single transaction.  If anything after the entity write
fails, the transaction is rolled back and ``AuditWriteError`` is raised, so
an entity change never lands without its audit entry.  History rows are
append-only; restore adds new rows and never edits old ones.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from context_composer.admin.entities import (
    EntityType,
    apply_patch,
    coerce_entity_type,
    diff_fields,
    entity_name,
    validate_fields,
)
from context_composer.admin.permissions import (
    Actor,
    Capability,
    PermissionOracle,
    RolePermissionOracle,
    require,
)
from context_composer.db.database import Database
from context_composer.db.models import AuditLogEntry, ContentEntity, ContentVersionRow
from context_composer.errors import (
    AuditWriteError,
    EntityExistsError,
    EntityNotFoundError,
    LedgerStorageError,
    VersionNotFoundError,
)

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    RESTORE = "restore"


# =============================================================================
# Read models
# =============================================================================


@dataclass(frozen=True)
class ContentRecord:
    entity_type: EntityType
    entity_id: str
    name: str
    fields: dict[str, Any]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: ContentEntity) -> "ContentRecord":
        return cls(
            entity_type=EntityType(row.entity_type),
            entity_id=row.entity_id,
            name=row.name,
            fields=dict(row.fields),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


@dataclass(frozen=True)
class AuditEntry:
    id: int
    entity_type: EntityType
    entity_id: str
    entity_name: Optional[str]
    action: AuditAction
    changes: Optional[dict[str, Any]]
    user_id: Optional[str]
    user_email: Optional[str]
    created_at: datetime

    @classmethod
    def from_row(cls, row: AuditLogEntry) -> "AuditEntry":
        return cls(
            id=row.id,
            entity_type=EntityType(row.entity_type),
            entity_id=row.entity_id,
            entity_name=row.entity_name,
            action=AuditAction(row.action),
            changes=row.changes,
            user_id=row.user_id,
            user_email=row.user_email,
            created_at=row.created_at,
        )


@dataclass(frozen=True)
class ContentVersion:
    id: int
    entity_type: EntityType
    entity_id: str
    version_number: int
    content: dict[str, Any]
    audit_log_id: int
    created_by: Optional[str]
    created_at: datetime

    @classmethod
    def from_row(cls, row: ContentVersionRow) -> "ContentVersion":
        return cls(
            id=row.id,
            entity_type=EntityType(row.entity_type),
            entity_id=row.entity_id,
            version_number=row.version_number,
            content=dict(row.content),
            audit_log_id=row.audit_log_id,
            created_by=row.created_by,
            created_at=row.created_at,
        )


# =============================================================================
# Ledger
# =============================================================================


class ContentAuditLedger:
    """Permission-gated content writes with an append-only audit trail."""

    def __init__(
        self,
        database: Database,
        oracle: PermissionOracle | None = None,
        *,
        default_limit: int = 50,
    ):
        self._db = database
        self.oracle: PermissionOracle = oracle or RolePermissionOracle()
        self.default_limit = default_limit

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def create(
        self,
        actor: Actor,
        entity_type: EntityType | str,
        entity_id: str,
        fields: Mapping[str, Any],
    ) -> ContentRecord:
        require(self.oracle, actor, Capability.EDIT_CONTENT)
        entity_type = coerce_entity_type(entity_type)
        content = validate_fields(entity_type, fields).to_content()

        async with self._db.session() as session:
            if await self._get_entity(session, entity_type, entity_id) is not None:
                raise EntityExistsError(entity_type.value, entity_id)
            row = ContentEntity(
                entity_type=entity_type.value,
                entity_id=entity_id,
                name=entity_name(entity_type, content) or "",
                fields=content,
            )
            session.add(row)
            await self._write_entity(session, entity_type, entity_id)
            await self._commit_with_audit(
                session,
                actor,
                AuditAction.CREATE,
                entity_type,
                entity_id,
                name=row.name,
                changes=None,
                pre_image=None,
            )
            record = ContentRecord.from_row(row)

        logger.info("✅ %s created %s %s", actor.id, entity_type.value, entity_id)
        return record

    async def update(
        self,
        actor: Actor,
        entity_type: EntityType | str,
        entity_id: str,
        patch: Mapping[str, Any],
    ) -> ContentRecord:
        """Apply a partial update. A patch that changes nothing writes nothing."""
        require(self.oracle, actor, Capability.EDIT_CONTENT)
        entity_type = coerce_entity_type(entity_type)

        async with self._db.session() as session:
            row = await self._get_entity(session, entity_type, entity_id)
            if row is None:
                raise EntityNotFoundError(entity_type.value, entity_id)

            pre_image = dict(row.fields)
            content = apply_patch(entity_type, pre_image, patch).to_content()
            changes = diff_fields(pre_image, content)
            if not changes:
                logger.debug("Update of %s %s changed nothing", entity_type.value, entity_id)
                return ContentRecord.from_row(row)

            row.fields = content
            row.name = entity_name(entity_type, content) or ""
            await self._write_entity(session, entity_type, entity_id)
            await self._commit_with_audit(
                session,
                actor,
                AuditAction.UPDATE,
                entity_type,
                entity_id,
                name=row.name,
                changes=changes,
                pre_image=pre_image,
            )
            record = ContentRecord.from_row(row)

        logger.info(
            "✅ %s updated %s %s (%s)",
            actor.id,
            entity_type.value,
            entity_id,
            ", ".join(changes),
        )
        return record

    async def delete(self, actor: Actor, entity_type: EntityType | str, entity_id: str) -> None:
        require(self.oracle, actor, Capability.DELETE_CONTENT)
        entity_type = coerce_entity_type(entity_type)

        async with self._db.session() as session:
            row = await self._get_entity(session, entity_type, entity_id)
            if row is None:
                raise EntityNotFoundError(entity_type.value, entity_id)

            pre_image = dict(row.fields)
            name = row.name
            await session.delete(row)
            await self._write_entity(session, entity_type, entity_id)
            await self._commit_with_audit(
                session,
                actor,
                AuditAction.DELETE,
                entity_type,
                entity_id,
                name=name,
                changes=None,
                pre_image=pre_image,
            )

        logger.info("✅ %s deleted %s %s", actor.id, entity_type.value, entity_id)

    async def restore(self, actor: Actor, version_id: int) -> ContentRecord:
        """Bring an entity back to the content of ``version_id``.

        Recorded as a new ``restore`` change; re-creates the entity if it was
        deleted.  Existing history is left untouched.
        """
        require(self.oracle, actor, Capability.RESTORE_VERSIONS)

        async with self._db.session() as session:
            version = await self._read(session.get(ContentVersionRow, version_id))
            if version is None:
                raise VersionNotFoundError(version_id)

            entity_type = coerce_entity_type(version.entity_type)
            entity_id = version.entity_id
            content = validate_fields(entity_type, version.content).to_content()
            name = entity_name(entity_type, content) or ""

            row = await self._get_entity(session, entity_type, entity_id)
            if row is None:
                pre_image = None
                changes = diff_fields({}, content)
                row = ContentEntity(
                    entity_type=entity_type.value,
                    entity_id=entity_id,
                    name=name,
                    fields=content,
                )
                session.add(row)
            else:
                pre_image = dict(row.fields)
                changes = diff_fields(pre_image, content)
                row.fields = content
                row.name = name
            changes["version"] = {"old": "current", "new": version.version_number}

            await self._write_entity(session, entity_type, entity_id)
            await self._commit_with_audit(
                session,
                actor,
                AuditAction.RESTORE,
                entity_type,
                entity_id,
                name=name,
                changes=changes,
                pre_image=pre_image,
            )
            record = ContentRecord.from_row(row)

        logger.info(
            "✅ %s restored %s %s to version %d",
            actor.id,
            entity_type.value,
            entity_id,
            version.version_number,
        )
        return record

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get(self, entity_type: EntityType | str, entity_id: str) -> ContentRecord | None:
        entity_type = coerce_entity_type(entity_type)
        async with self._db.session() as session:
            row = await self._get_entity(session, entity_type, entity_id)
            return ContentRecord.from_row(row) if row is not None else None

    async def list_entities(self, entity_type: EntityType | str) -> list[ContentRecord]:
        """All entities of a type, newest first."""
        entity_type = coerce_entity_type(entity_type)
        stmt = (
            select(ContentEntity)
            .where(ContentEntity.entity_type == entity_type.value)
            .order_by(ContentEntity.created_at.desc(), ContentEntity.entity_id)
        )
        async with self._db.session() as session:
            result = await self._read(session.execute(stmt))
            return [ContentRecord.from_row(row) for row in result.scalars()]

    async def list_versions(
        self,
        actor: Actor,
        entity_type: EntityType | str,
        entity_id: str,
    ) -> list[ContentVersion]:
        """Versions of one entity, highest version number first."""
        require(self.oracle, actor, Capability.VIEW_AUDIT_LOGS)
        entity_type = coerce_entity_type(entity_type)
        stmt = (
            select(ContentVersionRow)
            .where(
                ContentVersionRow.entity_type == entity_type.value,
                ContentVersionRow.entity_id == entity_id,
            )
            .order_by(ContentVersionRow.version_number.desc())
        )
        async with self._db.session() as session:
            result = await self._read(session.execute(stmt))
            return [ContentVersion.from_row(row) for row in result.scalars()]

    async def list_audit_logs(
        self,
        actor: Actor,
        *,
        entity_type: EntityType | str | None = None,
        entity_id: str | None = None,
        user_id: str | None = None,
        action: AuditAction | str | None = None,
        limit: int | None = None,
    ) -> list[AuditEntry]:
        """Audit entries, most recent first, bounded by ``limit``."""
        require(self.oracle, actor, Capability.VIEW_AUDIT_LOGS)
        limit = self.default_limit if limit is None else limit
        if limit < 1:
            raise ValueError("limit must be at least 1")

        stmt = select(AuditLogEntry)
        if entity_type is not None:
            stmt = stmt.where(AuditLogEntry.entity_type == coerce_entity_type(entity_type).value)
        if entity_id is not None:
            stmt = stmt.where(AuditLogEntry.entity_id == entity_id)
        if user_id is not None:
            stmt = stmt.where(AuditLogEntry.user_id == user_id)
        if action is not None:
            stmt = stmt.where(AuditLogEntry.action == AuditAction(action).value)
        stmt = stmt.order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc()).limit(limit)

        async with self._db.session() as session:
            result = await self._read(session.execute(stmt))
            return [AuditEntry.from_row(row) for row in result.scalars()]

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @staticmethod
    async def _read(awaitable: Any) -> Any:
        try:
            return await awaitable
        except SQLAlchemyError as exc:
            raise LedgerStorageError(f"Content database read failed: {exc}") from exc

    async def _get_entity(
        self,
        session: AsyncSession,
        entity_type: EntityType,
        entity_id: str,
    ) -> ContentEntity | None:
        return await self._read(session.get(ContentEntity, (entity_type.value, entity_id)))

    @staticmethod
    async def _write_entity(session: AsyncSession, entity_type: EntityType, entity_id: str) -> None:
        try:
            await session.flush()
        except SQLAlchemyError as exc:
            await session.rollback()
            raise LedgerStorageError(
                f"Failed to write {entity_type.value} {entity_id}: {exc}"
            ) from exc

    async def _append_audit(
        self,
        session: AsyncSession,
        actor: Actor,
        action: AuditAction,
        entity_type: EntityType,
        entity_id: str,
        *,
        name: str | None,
        changes: dict[str, Any] | None,
        pre_image: dict[str, Any] | None,
    ) -> AuditLogEntry:
        entry = AuditLogEntry(
            entity_type=entity_type.value,
            entity_id=entity_id,
            entity_name=name or None,
            action=action.value,
            changes=changes,
            user_id=actor.id,
            user_email=actor.email,
        )
        session.add(entry)
        await session.flush()

        if pre_image is not None:
            latest = await session.scalar(
                select(func.max(ContentVersionRow.version_number)).where(
                    ContentVersionRow.entity_type == entity_type.value,
                    ContentVersionRow.entity_id == entity_id,
                )
            )
            session.add(ContentVersionRow(
                entity_type=entity_type.value,
                entity_id=entity_id,
                version_number=(latest or 0) + 1,
                content=pre_image,
                audit_log_id=entry.id,
                created_by=actor.id,
            ))
            await session.flush()
        return entry

    async def _commit_with_audit(
        self,
        session: AsyncSession,
        actor: Actor,
        action: AuditAction,
        entity_type: EntityType,
        entity_id: str,
        *,
        name: str | None,
        changes: dict[str, Any] | None,
        pre_image: dict[str, Any] | None,
    ) -> None:
        """Append the audit trail and commit; compensate the entity write on failure."""
        try:
            await self._append_audit(
                session,
                actor,
                action,
                entity_type,
                entity_id,
                name=name,
                changes=changes,
                pre_image=pre_image,
            )
            await session.commit()
        except Exception as exc:
            logger.error(
                "❌ Audit write failed for %s %s %s: %s",
                action.value,
                entity_type.value,
                entity_id,
                exc,
            )
            try:
                await session.rollback()
            except Exception as rollback_exc:
                logger.critical(
                    "❌ Rollback failed; %s %s changed without an audit entry: %s",
                    entity_type.value,
                    entity_id,
                    rollback_exc,
                )
                raise AuditWriteError(entity_type.value, entity_id, rolled_back=False) from exc
            raise AuditWriteError(entity_type.value, entity_id, rolled_back=True) from exc

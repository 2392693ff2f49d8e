"""Tests for the audit-logged, versioned content ledger."""
from __future__ import annotations

from typing import Any

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from context_composer.admin.entities import EntityType
from context_composer.admin.ledger import AuditAction, ContentAuditLedger
from context_composer.admin.permissions import Actor
from context_composer.db.database import Database
from context_composer.db.models import AppendOnlyViolation, AuditLogEntry, ContentVersionRow
from context_composer.errors import (
    AuditWriteError,
    EntityExistsError,
    EntityNotFoundError,
    InvalidContentError,
    PermissionDeniedError,
    VersionNotFoundError,
)

_BACH = {"name": "Bach", "years": "1685-1750"}


@pytest.fixture
def ledger(database: Database) -> ContentAuditLedger:
    return ContentAuditLedger(database)


async def _count(database: Database, model: Any) -> int:
    async with database.session() as session:
        return len((await session.execute(select(model))).scalars().all())


# =============================================================================
# Mutations
# =============================================================================


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_writes_entity_and_one_audit_entry(
        self,
        ledger: ContentAuditLedger,
        admin: Actor,
        database: Database,
    ) -> None:
        record = await ledger.create(admin, "composer", "bach", _BACH)
        assert record.name == "Bach"
        assert record.fields["years"] == "1685-1750"

        logs = await ledger.list_audit_logs(admin)
        assert len(logs) == 1
        entry = logs[0]
        assert entry.action is AuditAction.CREATE
        assert entry.entity_name == "Bach"
        assert entry.user_id == "admin-1"
        assert entry.user_email == "admin@example.com"
        assert entry.changes is None
        assert await _count(database, ContentVersionRow) == 0

    @pytest.mark.asyncio
    async def test_accepts_camel_and_snake_keys(self, ledger: ContentAuditLedger, admin: Actor) -> None:
        record = await ledger.create(
            admin,
            EntityType.WEEKLY_ALBUM,
            "w12",
            {"week": 12, "title": "Messiah", "why_listen": "Hallelujah", "spotifyUri": "spotify:x"},
        )
        assert record.fields["whyListen"] == "Hallelujah"
        assert record.fields["spotifyUri"] == "spotify:x"

    @pytest.mark.asyncio
    async def test_duplicate_id_is_rejected(self, ledger: ContentAuditLedger, admin: Actor) -> None:
        await ledger.create(admin, "composer", "bach", _BACH)
        with pytest.raises(EntityExistsError):
            await ledger.create(admin, "composer", "bach", _BACH)

    @pytest.mark.asyncio
    async def test_invalid_payloads(self, ledger: ContentAuditLedger, admin: Actor) -> None:
        with pytest.raises(InvalidContentError):
            await ledger.create(admin, "composer", "anon", {"years": "1900"})
        with pytest.raises(InvalidContentError):
            await ledger.create(admin, "weekly_album", "w54", {"week": 54, "title": "Too late"})
        with pytest.raises(InvalidContentError):
            await ledger.create(admin, "composer", "x", {"name": "X", "favouriteColour": "blue"})
        with pytest.raises(InvalidContentError):
            await ledger.create(admin, "podcast", "x", {"name": "X"})


class TestUpdate:
    @pytest.mark.asyncio
    async def test_update_records_diff_and_pre_image(self, ledger: ContentAuditLedger, admin: Actor) -> None:
        await ledger.create(admin, "composer", "bach", _BACH)
        record = await ledger.update(admin, "composer", "bach", {"period": "Baroque"})
        assert record.fields["period"] == "Baroque"

        entry = (await ledger.list_audit_logs(admin, action="update"))[0]
        assert entry.changes == {"period": {"old": "", "new": "Baroque"}}

        versions = await ledger.list_versions(admin, "composer", "bach")
        assert [v.version_number for v in versions] == [1]
        assert versions[0].content["period"] == ""
        assert versions[0].audit_log_id == entry.id
        assert versions[0].created_by == "admin-1"

    @pytest.mark.asyncio
    async def test_no_op_update_writes_nothing(
        self,
        ledger: ContentAuditLedger,
        admin: Actor,
        database: Database,
    ) -> None:
        await ledger.create(admin, "composer", "bach", _BACH)
        await ledger.update(admin, "composer", "bach", {"name": "Bach"})
        assert await _count(database, AuditLogEntry) == 1
        assert await _count(database, ContentVersionRow) == 0

    @pytest.mark.asyncio
    async def test_unknown_field_is_rejected(self, ledger: ContentAuditLedger, admin: Actor) -> None:
        await ledger.create(admin, "term", "1", {"term": "Allegro"})
        with pytest.raises(InvalidContentError):
            await ledger.update(admin, "term", "1", {"tempo": 120})

    @pytest.mark.asyncio
    async def test_missing_entity(self, ledger: ContentAuditLedger, admin: Actor) -> None:
        with pytest.raises(EntityNotFoundError):
            await ledger.update(admin, "composer", "nobody", {"name": "X"})


class TestDeleteAndRestore:
    @pytest.mark.asyncio
    async def test_restore_adds_entry_and_keeps_history(
        self,
        ledger: ContentAuditLedger,
        admin: Actor,
    ) -> None:

        """Restore appends a new change; earlier entries and versions are untouched."""
        await ledger.create(admin, "composer", "bach", _BACH)
        await ledger.update(admin, "composer", "bach", {"period": "Baroque"})
        await ledger.update(admin, "composer", "bach", {"name": "J. S. Bach"})
        before = await ledger.list_audit_logs(admin)
        versions = await ledger.list_versions(admin, "composer", "bach")
        assert [v.version_number for v in versions] == [2, 1]

        original = next(v for v in versions if v.version_number == 1)
        restored = await ledger.restore(admin, original.id)
        assert restored.name == "Bach"
        assert restored.fields["period"] == ""

        after = await ledger.list_audit_logs(admin)
        assert len(after) == len(before) + 1
        assert after[0].action is AuditAction.RESTORE
        assert after[0].changes["version"] == {"old": "current", "new": 1}
        assert after[0].changes["name"] == {"old": "J. S. Bach", "new": "Bach"}
        assert after[1:] == before

        latest = await ledger.list_versions(admin, "composer", "bach")
        assert [v.version_number for v in latest] == [3, 2, 1]
        assert latest[0].content["name"] == "J. S. Bach"

    @pytest.mark.asyncio
    async def test_delete_then_restore_recreates_entity(
        self,
        ledger: ContentAuditLedger,
        admin: Actor,
    ) -> None:
        await ledger.create(admin, "period", "baroque", {"name": "Baroque", "years": "1600-1750"})
        await ledger.delete(admin, "period", "baroque")
        assert await ledger.get("period", "baroque") is None

        versions = await ledger.list_versions(admin, "period", "baroque")
        assert len(versions) == 1
        restored = await ledger.restore(admin, versions[0].id)
        assert restored.fields["years"] == "1600-1750"
        assert (await ledger.get("period", "baroque")) is not None
        # Nothing existed to snapshot.
        assert len(await ledger.list_versions(admin, "period", "baroque")) == 1

        actions = [e.action for e in await ledger.list_audit_logs(admin, entity_id="baroque")]
        assert actions == [AuditAction.RESTORE, AuditAction.DELETE, AuditAction.CREATE]

    @pytest.mark.asyncio
    async def test_unknown_version(self, ledger: ContentAuditLedger, admin: Actor) -> None:
        with pytest.raises(VersionNotFoundError):
            await ledger.restore(admin, 999)

    @pytest.mark.asyncio
    async def test_delete_missing_entity(self, ledger: ContentAuditLedger, admin: Actor) -> None:
        with pytest.raises(EntityNotFoundError):
            await ledger.delete(admin, "form", "sonata")


# =============================================================================
# Reads
# =============================================================================


class TestAuditLog:
    @pytest.mark.asyncio
    async def test_limit_returns_most_recent_first(self, ledger: ContentAuditLedger, admin: Actor) -> None:
        await ledger.create(admin, "term", "1", {"term": "Allegro"})
        for tempo in ("fast", "faster", "fastest"):
            await ledger.update(admin, "term", "1", {"definition": tempo})

        logs = await ledger.list_audit_logs(admin, limit=2)
        assert [e.changes["definition"]["new"] for e in logs] == ["fastest", "faster"]
        all_logs = await ledger.list_audit_logs(admin)
        assert [e.id for e in all_logs] == sorted((e.id for e in all_logs), reverse=True)

    @pytest.mark.asyncio
    async def test_filters(self, ledger: ContentAuditLedger, admin: Actor) -> None:
        other = Actor(id="admin-2", role=admin.role)
        await ledger.create(admin, "composer", "bach", _BACH)
        await ledger.create(other, "term", "1", {"term": "Allegro"})

        assert [e.entity_id for e in await ledger.list_audit_logs(admin, user_id="admin-2")] == ["1"]
        assert [e.entity_id for e in await ledger.list_audit_logs(admin, entity_type="composer")] == ["bach"]
        assert await ledger.list_audit_logs(admin, action="delete") == []

    @pytest.mark.asyncio
    async def test_invalid_limit(self, ledger: ContentAuditLedger, admin: Actor) -> None:
        with pytest.raises(ValueError):
            await ledger.list_audit_logs(admin, limit=0)

    @pytest.mark.asyncio
    async def test_default_limit(self, database: Database, admin: Actor) -> None:
        ledger = ContentAuditLedger(database, default_limit=2)
        for i in range(3):
            await ledger.create(admin, "term", str(i), {"term": f"T{i}"})
        assert len(await ledger.list_audit_logs(admin)) == 2

    @pytest.mark.asyncio
    async def test_list_entities_newest_first(self, ledger: ContentAuditLedger, admin: Actor) -> None:
        await ledger.create(admin, "composer", "bach", _BACH)
        await ledger.create(admin, "composer", "mozart", {"name": "Mozart"})
        assert [r.entity_id for r in await ledger.list_entities("composer")] == ["mozart", "bach"]


# =============================================================================
# Permissions
# =============================================================================


class TestPermissions:
    @pytest.mark.asyncio
    async def test_reader_cannot_mutate_or_view_history(
        self,
        ledger: ContentAuditLedger,
        admin: Actor,
        reader: Actor,
        database: Database,
    ) -> None:
        await ledger.create(admin, "composer", "bach", _BACH)
        with pytest.raises(PermissionDeniedError):
            await ledger.create(reader, "composer", "handel", {"name": "Handel"})
        with pytest.raises(PermissionDeniedError):
            await ledger.update(reader, "composer", "bach", {"name": "X"})
        with pytest.raises(PermissionDeniedError):
            await ledger.delete(reader, "composer", "bach")
        with pytest.raises(PermissionDeniedError):
            await ledger.restore(reader, 1)
        with pytest.raises(PermissionDeniedError):
            await ledger.list_audit_logs(reader)
        assert await _count(database, AuditLogEntry) == 1

    @pytest.mark.asyncio
    async def test_reader_can_read_content(
        self,
        ledger: ContentAuditLedger,
        admin: Actor,
        reader: Actor,
    ) -> None:
        await ledger.create(admin, "composer", "bach", _BACH)
        assert (await ledger.get("composer", "bach")).name == "Bach"

    @pytest.mark.asyncio
    async def test_custom_oracle(self, database: Database, reader: Actor) -> None:
        from context_composer.admin.permissions import Permissions

        class EditorsOnly:
            def permissions_for(self, actor: Actor | None) -> Permissions:
                return Permissions(can_edit_content=actor is not None)

        ledger = ContentAuditLedger(database, EditorsOnly())
        await ledger.create(reader, "composer", "bach", _BACH)
        with pytest.raises(PermissionDeniedError):
            await ledger.delete(reader, "composer", "bach")


# =============================================================================
# Atomicity and append-only history
# =============================================================================


class TestAtomicity:
    @pytest.mark.asyncio
    async def test_failed_audit_write_rolls_back_update(
        self,
        ledger: ContentAuditLedger,
        admin: Actor,
        database: Database,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:

        """No entity change ever lands without its audit entry."""
        await ledger.create(admin, "composer", "bach", _BACH)

        async def failing_append(*args: Any, **kwargs: Any) -> None:
            raise OperationalError("INSERT INTO audit_logs", {}, Exception("disk I/O error"))

        monkeypatch.setattr(ledger, "_append_audit", failing_append)
        with pytest.raises(AuditWriteError) as info:
            await ledger.update(admin, "composer", "bach", {"name": "Changed"})
        assert info.value.rolled_back is True

        assert (await ledger.get("composer", "bach")).name == "Bach"
        assert await _count(database, AuditLogEntry) == 1

    @pytest.mark.asyncio
    async def test_failed_audit_write_rolls_back_create(
        self,
        ledger: ContentAuditLedger,
        admin: Actor,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        async def failing_append(*args: Any, **kwargs: Any) -> None:
            raise RuntimeError("audit table unavailable")

        monkeypatch.setattr(ledger, "_append_audit", failing_append)
        with pytest.raises(AuditWriteError):
            await ledger.create(admin, "composer", "bach", _BACH)
        assert await ledger.get("composer", "bach") is None

    @pytest.mark.asyncio
    async def test_failed_rollback_is_reported(
        self,
        ledger: ContentAuditLedger,
        admin: Actor,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        async def failing_append(*args: Any, **kwargs: Any) -> None:
            raise RuntimeError("audit table unavailable")

        async def failing_rollback(self: AsyncSession) -> None:
            raise RuntimeError("connection lost")

        monkeypatch.setattr(ledger, "_append_audit", failing_append)
        monkeypatch.setattr(AsyncSession, "rollback", failing_rollback)
        with caplog.at_level("CRITICAL"):
            with pytest.raises(AuditWriteError) as info:
                await ledger.create(admin, "composer", "bach", _BACH)
        assert info.value.rolled_back is False
        assert "without an audit entry" in caplog.text

    @pytest.mark.asyncio
    async def test_history_rows_are_append_only(
        self,
        ledger: ContentAuditLedger,
        admin: Actor,
        database: Database,
    ) -> None:
        await ledger.create(admin, "composer", "bach", _BACH)
        async with database.session() as session:
            entry = (await session.execute(select(AuditLogEntry))).scalar_one()
            entry.entity_name = "Tampered"
            with pytest.raises(AppendOnlyViolation):
                await session.flush()
            await session.rollback()

        async with database.session() as session:
            entry = (await session.execute(select(AuditLogEntry))).scalar_one()
            with pytest.raises(AppendOnlyViolation):
                await session.delete(entry)
                await session.flush()

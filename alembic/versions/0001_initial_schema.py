"""Initial schema — key/value records, remote progress, content ledger.

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates:

  On-device medium
  - kv_records (one JSON document per storage key)

  Progress sync
  - user_progress (one row per user; revision bumps on every push)

  Content ledger
  - content_entities (variant fields as JSON, keyed by entity type + id)
  - audit_logs (append-only)
  - content_versions (pre-images, each linked to the audit entry that caused it)

Fresh install:
  alembic upgrade head
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── Key/value medium ──────────────────────────────────────────────────
    op.create_table(
        "kv_records",
        sa.Column("key", sa.String(255), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.PrimaryKeyConstraint("key"),
    )

    # ── Progress sync ─────────────────────────────────────────────────────
    op.create_table(
        "user_progress",
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("kickstart_day", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("kickstart_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("viewed_composers", sa.JSON(), nullable=False),
        sa.Column("viewed_periods", sa.JSON(), nullable=False),
        sa.Column("viewed_forms", sa.JSON(), nullable=False),
        sa.Column("viewed_terms", sa.JSON(), nullable=False),
        sa.Column("badges", sa.JSON(), nullable=False),
        sa.Column("first_launch", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("revision", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.PrimaryKeyConstraint("user_id"),
    )

    # ── Content ledger ────────────────────────────────────────────────────
    op.create_table(
        "content_entities",
        sa.Column("entity_type", sa.String(32), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False, server_default=""),
        sa.Column("fields", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.PrimaryKeyConstraint("entity_type", "entity_id"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("entity_type", sa.String(32), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("entity_name", sa.String(255), nullable=True),
        sa.Column("action", sa.String(16), nullable=False),
        sa.Column("changes", sa.JSON(), nullable=True),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("user_email", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint(
            "action IN ('create', 'update', 'delete', 'restore')",
            name="ck_audit_logs_action",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"])
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"])
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])

    op.create_table(
        "content_versions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("entity_type", sa.String(32), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("content", sa.JSON(), nullable=False),
        sa.Column("audit_log_id", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["audit_log_id"], ["audit_logs.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("entity_type", "entity_id", "version_number", name="uq_content_versions_entity_version"),
    )
    op.create_index("ix_content_versions_entity_type", "content_versions", ["entity_type"])
    op.create_index("ix_content_versions_entity_id", "content_versions", ["entity_id"])
    op.create_index("ix_content_versions_audit_log_id", "content_versions", ["audit_log_id"])


def downgrade() -> None:
    # Drop in reverse creation order, respecting foreign-key dependencies.
    op.drop_index("ix_content_versions_audit_log_id", table_name="content_versions")
    op.drop_index("ix_content_versions_entity_id", table_name="content_versions")
    op.drop_index("ix_content_versions_entity_type", table_name="content_versions")
    op.drop_table("content_versions")

    op.drop_index("ix_audit_logs_created_at", table_name="audit_logs")
    op.drop_index("ix_audit_logs_user_id", table_name="audit_logs")
    op.drop_index("ix_audit_logs_entity_id", table_name="audit_logs")
    op.drop_index("ix_audit_logs_entity_type", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_table("content_entities")
    op.drop_table("user_progress")
    op.drop_table("kv_records")

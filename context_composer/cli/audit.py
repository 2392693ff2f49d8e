"""composer audit — inspect the content audit trail and restore versions.

Every subcommand acts as the actor given by ``--user-id/--email/--role``;
only admins may read the trail or restore.

Exit codes:
  0 — success
  1 — unknown entity type, version or bad arguments
  2 — actor not permitted
  3 — database error
"""
from __future__ import annotations

import json
import logging
from typing import Optional

import typer

from context_composer.admin.ledger import AuditEntry, ContentVersion
from context_composer.admin.permissions import Actor
from context_composer.cli._common import build_actor, run_command
from context_composer.context import AppContext

logger = logging.getLogger(__name__)

app = typer.Typer(no_args_is_help=True)

_USER_ID = typer.Option("cli", "--user-id", help="Actor id recorded on audit entries.")
_EMAIL = typer.Option(None, "--email", help="Actor email recorded on audit entries.")
_ROLE = typer.Option("admin", "--role", help="Actor role (user or admin).")


def _format_time(entry: AuditEntry | ContentVersion) -> str:
    return entry.created_at.strftime("%Y-%m-%d %H:%M:%S")


def render_entry(entry: AuditEntry) -> str:
    who = entry.user_email or entry.user_id or "<unknown>"
    name = f' "{entry.entity_name}"' if entry.entity_name else ""
    line = (
        f"#{entry.id} {_format_time(entry)} {entry.action.value:<7} "
        f"{entry.entity_type.value}:{entry.entity_id}{name} by {who}"
    )
    if entry.changes:
        line += f" [{', '.join(entry.changes)}]"
    return line


async def _audit_log_async(
    ctx: AppContext,
    actor: Actor,
    *,
    entity_type: Optional[str],
    entity_id: Optional[str],
    user_id: Optional[str],
    action: Optional[str],
    limit: Optional[int],
) -> list[AuditEntry]:
    entries = await ctx.ledger.list_audit_logs(
        actor,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        action=action,
        limit=limit,
    )
    if not entries:
        typer.echo("No audit entries.")
    for entry in entries:
        typer.echo(render_entry(entry))
    return entries


async def _versions_async(
    ctx: AppContext,
    actor: Actor,
    entity_type: str,
    entity_id: str,
) -> list[ContentVersion]:
    versions = await ctx.ledger.list_versions(actor, entity_type, entity_id)
    if not versions:
        typer.echo(f"No versions recorded for {entity_type}:{entity_id}.")
    for version in versions:
        typer.echo(
            f"id={version.id} v{version.version_number} {_format_time(version)} "
            f"by {version.created_by or '<unknown>'} (audit #{version.audit_log_id})"
        )
    return versions


async def _restore_async(ctx: AppContext, actor: Actor, version_id: int, show: bool) -> None:
    record = await ctx.ledger.restore(actor, version_id)
    typer.echo(f"✅ Restored {record.entity_type.value}:{record.entity_id} ({record.name}) from version id {version_id}")
    if show:
        typer.echo(json.dumps(record.fields, indent=2, ensure_ascii=False))


@app.command("log")
def log(
    entity_type: Optional[str] = typer.Option(None, "--entity-type", "-t", help="Only this entity type."),
    entity_id: Optional[str] = typer.Option(None, "--entity-id", "-i", help="Only this entity id."),
    by_user: Optional[str] = typer.Option(None, "--by", help="Only changes made by this user id."),
    action: Optional[str] = typer.Option(None, "--action", "-a", help="create, update, delete or restore."),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum entries (default from settings)."),
    user_id: str = _USER_ID,
    email: Optional[str] = _EMAIL,
    role: str = _ROLE,
) -> None:
    """Show audit entries, most recent first."""
    actor = build_actor(user_id, email, role)
    run_command(
        "audit log",
        lambda ctx: _audit_log_async(
            ctx,
            actor,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=by_user,
            action=action,
            limit=limit,
        ),
    )


@app.command("versions")
def versions(
    entity_type: str = typer.Argument(..., help="Entity type, e.g. composer."),
    entity_id: str = typer.Argument(..., help="Entity id."),
    user_id: str = _USER_ID,
    email: Optional[str] = _EMAIL,
    role: str = _ROLE,
) -> None:
    """List stored versions of one entity, newest first."""
    actor = build_actor(user_id, email, role)
    run_command("audit versions", lambda ctx: _versions_async(ctx, actor, entity_type, entity_id))


@app.command("restore")
def restore(
    version_id: int = typer.Argument(..., help="Version id (see `composer audit versions`)."),
    show: bool = typer.Option(False, "--show", help="Print the restored fields."),
    user_id: str = _USER_ID,
    email: Optional[str] = _EMAIL,
    role: str = _ROLE,
) -> None:
    """Restore an entity to a stored version (recorded as a new change)."""
    actor = build_actor(user_id, email, role)
    run_command("audit restore", lambda ctx: _restore_async(ctx, actor, version_id, show))

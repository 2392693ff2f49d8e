"""composer progress — inspect local progress and sync it with the remote."""
from __future__ import annotations

import logging
from typing import Optional

import typer

from context_composer.cli._common import run_command
from context_composer.context import AppContext
from context_composer.errors import ExitCode
from context_composer.stores.progress import UserProgress
from context_composer.sync.reconciler import SyncReconciler

logger = logging.getLogger(__name__)

app = typer.Typer(no_args_is_help=True)


def render_progress(progress: UserProgress) -> list[str]:
    lines = [
        f"Kickstart: day {progress.kickstart_day}/5" + (" (completed)" if progress.kickstart_completed else ""),
        f"Composers viewed: {len(progress.viewed_composers)}",
        f"Periods viewed:   {len(progress.viewed_periods)}",
        f"Forms viewed:     {len(progress.viewed_forms)}",
        f"Terms viewed:     {len(progress.viewed_terms)}",
        f"Badges: {', '.join(progress.badges) if progress.badges else '(none)'}",
    ]
    return lines


def _require_reconciler(ctx: AppContext) -> SyncReconciler:
    if ctx.reconciler is None:
        typer.echo(
            "❌ Progress sync is not configured. "
            "Set COMPOSER_REMOTE_DATABASE_URL or COMPOSER_SUPABASE_URL."
        )
        raise typer.Exit(code=int(ExitCode.USER_ERROR))
    return ctx.reconciler


async def _show_async(ctx: AppContext) -> None:
    for line in render_progress(ctx.progress.progress):
        typer.echo(line)


async def _push_async(ctx: AppContext, user_id: str, expected_revision: int | None) -> None:
    reconciler = _require_reconciler(ctx)
    written = await reconciler.push_store(user_id, ctx.progress, expected_revision)
    typer.echo(f"✅ Pushed progress for {user_id} (revision {written.revision})")


async def _pull_async(ctx: AppContext, user_id: str, replace: bool) -> None:
    reconciler = _require_reconciler(ctx)
    record = await reconciler.pull_record(user_id)
    if record is None:
        typer.echo(f"No remote progress for {user_id} yet.")
        return
    typer.echo(f"Remote revision {record.revision}")
    for line in render_progress(record.progress):
        typer.echo(line)
    if not replace:
        return
    if await ctx.progress.replace(record.progress):
        typer.echo(f"✅ Local progress replaced with remote revision {record.revision}")
    else:
        typer.echo("❌ Pulled progress could not be saved locally")
        raise typer.Exit(code=int(ExitCode.INTERNAL_ERROR))


@app.command("show")
def show() -> None:
    """Print the locally stored progress."""
    run_command("progress show", _show_async)


@app.command("push")
def push(
    user_id: str = typer.Argument(..., help="User whose remote row is written."),
    expected_revision: Optional[int] = typer.Option(
        None,
        "--expect-revision",
        help="Only write if the remote row is still at this revision (0 = no row yet).",
    ),
) -> None:
    """Upload local progress (last write wins unless --expect-revision is given)."""
    run_command("progress push", lambda ctx: _push_async(ctx, user_id, expected_revision))


@app.command("pull")
def pull(
    user_id: str = typer.Argument(..., help="User whose remote row is read."),
    replace: bool = typer.Option(False, "--replace", help="Replace local progress with the remote copy."),
) -> None:
    """Show remote progress; with --replace adopt it locally."""
    run_command("progress pull", lambda ctx: _pull_async(ctx, user_id, replace))

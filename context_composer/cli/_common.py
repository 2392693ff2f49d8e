"""Shared plumbing for CLI commands: context lifecycle and error mapping."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

import typer

from context_composer.admin.permissions import Actor, UserRole
from context_composer.config import get_settings
from context_composer.context import AppContext
from context_composer.errors import ComposerError, ExitCode

logger = logging.getLogger(__name__)

T = TypeVar("T")


def build_actor(user_id: str, email: str | None, role: str) -> Actor:
    try:
        return Actor(id=user_id, email=email, role=UserRole(role))
    except ValueError:
        typer.echo(f"❌ Unknown role {role!r} (expected one of: {', '.join(r.value for r in UserRole)})")
        raise typer.Exit(code=int(ExitCode.USER_ERROR))


async def _with_context(body: Callable[[AppContext], Awaitable[T]]) -> T:
    async with AppContext(get_settings()) as ctx:
        return await body(ctx)


def run_command(name: str, body: Callable[[AppContext], Awaitable[T]]) -> T:
    """Run ``body`` inside a started ``AppContext`` and map errors to exit codes."""
    try:
        return asyncio.run(_with_context(body))
    except typer.Exit:
        raise
    except ComposerError as exc:
        typer.echo(f"❌ {exc}")
        raise typer.Exit(code=int(exc.exit_code))
    except ValueError as exc:
        typer.echo(f"❌ {exc}")
        raise typer.Exit(code=int(ExitCode.USER_ERROR))
    except Exception as exc:
        typer.echo(f"❌ composer {name} failed: {exc}")
        logger.error("❌ composer %s unexpected error: %s", name, exc, exc_info=True)
        raise typer.Exit(code=int(ExitCode.INTERNAL_ERROR))

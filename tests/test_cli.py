"""Tests for the ``composer`` CLI.

CLI-level tests use ``typer.testing.CliRunner`` against the full ``composer``
app so argument parsing, exit codes and AppContext wiring are exercised
end-to-end against a temporary SQLite file.
"""
from __future__ import annotations

import asyncio
import pathlib

import pytest
from typer.testing import CliRunner

from context_composer.admin.permissions import Actor, UserRole
from context_composer.cli.app import cli
from context_composer.config import get_settings
from context_composer.context import AppContext
from context_composer.errors import ExitCode

runner = CliRunner()

_ADMIN = Actor(id="seed-admin", email="seed@example.com", role=UserRole.ADMIN)


@pytest.fixture
def sqlite_env(tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch):
    """Point the CLI at a fresh SQLite file with no remote configured."""
    monkeypatch.setenv("COMPOSER_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'composer.db'}")
    monkeypatch.delenv("COMPOSER_REMOTE_DATABASE_URL", raising=False)
    monkeypatch.delenv("COMPOSER_SUPABASE_URL", raising=False)
    monkeypatch.setenv("COMPOSER_STORAGE_RETRY_DELAY_MS", "0")
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


def _seed_history() -> None:
    async def _seed() -> None:
        async with AppContext(get_settings()) as ctx:
            await ctx.ledger.create(_ADMIN, "composer", "bach", {"name": "Bach"})
            await ctx.ledger.update(_ADMIN, "composer", "bach", {"period": "Baroque"})

    asyncio.run(_seed())


def test_help() -> None:
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "audit" in result.output
    assert "progress" in result.output


def test_audit_log_lists_recent_entries(sqlite_env: pathlib.Path) -> None:
    _seed_history()
    result = runner.invoke(cli, ["audit", "log"], catch_exceptions=False)
    assert result.exit_code == 0
    lines = [line for line in result.output.splitlines() if line.startswith("#")]
    assert len(lines) == 2
    assert "update" in lines[0] and "[period]" in lines[0]
    assert "composer:bach" in lines[1]


def test_audit_log_as_user_is_not_permitted(sqlite_env: pathlib.Path) -> None:
    result = runner.invoke(cli, ["audit", "log", "--role", "user"], catch_exceptions=False)
    assert result.exit_code == int(ExitCode.NOT_PERMITTED)


def test_unknown_role_is_user_error(sqlite_env: pathlib.Path) -> None:
    result = runner.invoke(cli, ["audit", "log", "--role", "owner"], catch_exceptions=False)
    assert result.exit_code == int(ExitCode.USER_ERROR)


def test_versions_and_restore(sqlite_env: pathlib.Path) -> None:
    _seed_history()
    result = runner.invoke(cli, ["audit", "versions", "composer", "bach"], catch_exceptions=False)
    assert result.exit_code == 0
    assert "v1" in result.output
    version_id = result.output.split("id=", 1)[1].split()[0]

    result = runner.invoke(cli, ["audit", "restore", version_id, "--show"], catch_exceptions=False)
    assert result.exit_code == 0
    assert "Restored composer:bach" in result.output
    assert '"period": ""' in result.output

    result = runner.invoke(cli, ["audit", "log", "--action", "restore"], catch_exceptions=False)
    assert result.output.count("restore") == 1


def test_restore_unknown_version(sqlite_env: pathlib.Path) -> None:
    result = runner.invoke(cli, ["audit", "restore", "404"], catch_exceptions=False)
    assert result.exit_code == int(ExitCode.USER_ERROR)


def test_progress_push_without_remote(sqlite_env: pathlib.Path) -> None:
    result = runner.invoke(cli, ["progress", "push", "u1"], catch_exceptions=False)
    assert result.exit_code == int(ExitCode.USER_ERROR)
    assert "not configured" in result.output


def test_progress_show(sqlite_env: pathlib.Path) -> None:
    async def _seed() -> None:
        async with AppContext(get_settings()) as ctx:
            await ctx.progress.complete_kickstart_day(2)
            await ctx.progress.earn_badge("first_listen")

    asyncio.run(_seed())
    result = runner.invoke(cli, ["progress", "show"], catch_exceptions=False)
    assert result.exit_code == 0
    assert "Kickstart: day 2/5" in result.output
    assert "first_listen" in result.output


def test_progress_push_and_pull_with_remote(sqlite_env: pathlib.Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("COMPOSER_REMOTE_DATABASE_URL", f"sqlite+aiosqlite:///{sqlite_env / 'remote.db'}")
    get_settings.cache_clear()

    result = runner.invoke(cli, ["progress", "push", "u1"], catch_exceptions=False)
    assert result.exit_code == 0
    assert "revision 1" in result.output

    result = runner.invoke(cli, ["progress", "push", "u1", "--expect-revision", "0"], catch_exceptions=False)
    assert result.exit_code == int(ExitCode.USER_ERROR)

    result = runner.invoke(cli, ["progress", "pull", "u1"], catch_exceptions=False)
    assert result.exit_code == 0
    assert "Remote revision 1" in result.output

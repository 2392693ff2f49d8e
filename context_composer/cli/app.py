"""Composer CLI — Typer application root.

Entry point for the ``composer`` console script.  Configuration comes from
``COMPOSER_*`` environment variables (see ``context_composer.config``).
"""
from __future__ import annotations

import logging

import typer

from context_composer.cli import audit, progress
from context_composer.config import get_settings

cli = typer.Typer(
    name="composer",
    help="Context Composer — local progress, sync and content audit tools.",
    no_args_is_help=True,
)


@cli.callback()
def _main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    level = logging.DEBUG if verbose or get_settings().debug else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


cli.add_typer(audit.app, name="audit", help="Inspect the content audit trail and restore versions.")
cli.add_typer(progress.app, name="progress", help="Show and sync learning progress.")


if __name__ == "__main__":
    cli()

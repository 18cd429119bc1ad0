"""Command-line entry points for maintenance jobs."""

from __future__ import annotations

import click

from vaultguard.adapters.store.factory import create_counter_store
from vaultguard.core.config import settings
from vaultguard.core.logging import configure_logging
from vaultguard.services.compaction import compact


@click.command("compact")
@click.option(
    "--retention-seconds",
    type=click.IntRange(min=1),
    default=None,
    help="Delete rows untouched for longer than this (default: APP_COMPACTION_RETENTION_SECONDS).",
)
def compact_command(retention_seconds: int | None) -> None:
    """Purge stale login-attempt and write-window rows."""
    configure_logging(settings.log)

    result = compact(create_counter_store(), retention_seconds=retention_seconds)
    click.echo(
        f"Deleted {result.login_attempts_deleted} login attempt row(s) "
        f"and {result.windows_deleted} window row(s)"
    )


if __name__ == "__main__":
    compact_command()

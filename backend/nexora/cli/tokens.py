"""Flask CLI commands for token maintenance."""

from __future__ import annotations

import click
from flask.cli import with_appcontext

from nexora.api.deps import get_auth_service
from nexora.services._shared.errors import StorageError


@click.group("tokens")
def tokens_cli() -> None:
    """Token store maintenance commands."""


@tokens_cli.command("purge")
@with_appcontext
def purge_command() -> None:
    """Delete token pairs whose refresh horizon has elapsed."""
    try:
        count = get_auth_service().tokens.purge_expired()
    except StorageError as exc:
        raise click.ClickException(f"Purge failed: {exc}") from exc
    click.echo(f"Purged {count} expired token pair(s).")

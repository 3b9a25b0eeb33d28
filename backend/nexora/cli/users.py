"""Flask CLI commands for account administration."""

from __future__ import annotations

import logging

import click
from flask.cli import with_appcontext

from nexora.api.deps import get_auth_service
from nexora.models.user import UserRole
from nexora.services._shared.errors import ServiceError

LOGGER = logging.getLogger(__name__)


@click.group("users")
def users_cli() -> None:
    """Account administration commands."""


@users_cli.command("create-admin")
@click.option("--email", required=True, help="Login email of the administrator.")
@click.option("--name", required=True, help="Display name.")
@click.option(
    "--password",
    prompt=True,
    hide_input=True,
    confirmation_prompt=True,
    help="Initial password (prompted when omitted).",
)
@click.option(
    "--force-change/--no-force-change",
    default=True,
    show_default=True,
    help="Require a password change at first login.",
)
@with_appcontext
def create_admin_command(email: str, name: str, password: str, force_change: bool) -> None:
    """Bootstrap an administrator account."""
    try:
        out = get_auth_service().create_account(
            email=email,
            name=name,
            password=password,
            role=UserRole.ADMIN,
            force_password_change=force_change,
        )
    except ServiceError as exc:
        raise click.ClickException(str(exc)) from exc
    LOGGER.info("users.create_admin", extra={"user_id": out.user.id})
    click.echo(f"Administrator {out.user.email} created (id={out.user.id}).")

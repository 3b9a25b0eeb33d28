"""Integration tests for the Flask CLI command groups."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from nexora.models import User, UserRole
from sqlalchemy import select
from tests.factories.auth_token import AuthTokenFactory


def test_create_admin(cli_runner, session) -> None:
    result = cli_runner.invoke(
        args=[
            "users",
            "create-admin",
            "--email",
            "Root@Example.com",
            "--name",
            "Root",
            "--password",
            "initial1",
        ]
    )

    assert result.exit_code == 0, result.output
    assert "root@example.com" in result.output
    admin = session.execute(select(User).where(User.email == "root@example.com")).scalar_one()
    assert admin.role is UserRole.ADMIN
    assert admin.force_password_change is True
    assert admin.verify_password("initial1")


def test_create_admin_without_forced_change(cli_runner, session) -> None:
    result = cli_runner.invoke(
        args=[
            "users",
            "create-admin",
            "--email",
            "ops@example.com",
            "--name",
            "Ops",
            "--password",
            "initial1",
            "--no-force-change",
        ]
    )

    assert result.exit_code == 0, result.output
    admin = session.execute(select(User).where(User.email == "ops@example.com")).scalar_one()
    assert admin.force_password_change is False


def test_create_admin_rejects_bad_email(cli_runner, session) -> None:
    result = cli_runner.invoke(
        args=["users", "create-admin", "--email", "nope", "--name", "N", "--password", "initial1"]
    )

    assert result.exit_code != 0
    assert "Format d'email invalide" in result.output


def test_purge_expired_tokens(cli_runner, session) -> None:
    now = datetime.now(UTC)
    AuthTokenFactory(created_at=now - timedelta(days=8))
    AuthTokenFactory(created_at=now)
    session.commit()

    result = cli_runner.invoke(args=["tokens", "purge"])

    assert result.exit_code == 0, result.output
    assert "Purged 1 expired token pair(s)." in result.output

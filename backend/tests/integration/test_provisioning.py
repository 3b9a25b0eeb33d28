"""Integration tests for administrative provisioning and the forced password change."""

from __future__ import annotations

from tests.factories.user import DEFAULT_PASSWORD, UserFactory
from tests.helpers.http import API, json_headers, login


def _provision(client, token, **payload):
    return client.post(f"{API}/auth/users", headers=json_headers(token), json=payload)


def test_admin_provisions_user_with_forced_change(client, session) -> None:
    admin = UserFactory(admin=True)
    session.commit()
    token = login(client, admin.email)["token"]

    resp = _provision(client, token, email="staff@example.com", name="Staff")

    assert resp.status_code == 201
    data = resp.get_json()
    assert data["user"]["mustChangePassword"] is True
    assert data["user"]["role"] == "user"
    assert data["temporaryPassword"]


def test_provisioned_user_is_blocked_until_password_changed(client, session) -> None:
    admin = UserFactory(admin=True)
    session.commit()
    admin_token = login(client, admin.email)["token"]
    created = _provision(
        client, admin_token, email="boss@example.com", name="Boss", password="initial1", role="admin"
    ).get_json()
    assert created["temporaryPassword"] is None

    body = login(client, "boss@example.com", "initial1")
    assert body["user"]["mustChangePassword"] is True
    token = body["token"]

    # me stays reachable, other authenticated endpoints are not
    assert client.get(f"{API}/auth/me", headers=json_headers(token)).status_code == 200
    blocked = _provision(client, token, email="x@example.com", name="X")
    assert blocked.status_code == 403
    assert blocked.get_json()["code"] == "password_change_required"

    changed = client.post(
        f"{API}/auth/change-password",
        headers=json_headers(token),
        json={"currentPassword": "initial1", "newPassword": "Br4nd-New!"},
    )
    assert changed.status_code == 200
    assert changed.get_json()["user"]["mustChangePassword"] is False

    allowed = _provision(client, token, email="x@example.com", name="X")
    assert allowed.status_code == 201


def test_regular_user_cannot_provision(client, session) -> None:
    user = UserFactory()
    session.commit()
    token = login(client, user.email, DEFAULT_PASSWORD)["token"]

    resp = _provision(client, token, email="x@example.com", name="X")

    assert resp.status_code == 403
    assert resp.get_json()["detail"] == "Acces reserve aux administrateurs"


def test_unknown_role_is_rejected(client, session) -> None:
    admin = UserFactory(admin=True)
    session.commit()
    token = login(client, admin.email)["token"]

    resp = _provision(client, token, email="x@example.com", name="X", role="root")

    assert resp.status_code == 400
    assert "role" in resp.get_json()["details"]["errors"]

"""HTTP helper utilities for tests."""

from __future__ import annotations

from tests.factories.user import DEFAULT_PASSWORD

API = "/api/v1"


def json_headers(auth_token: str | None = None) -> dict[str, str]:
    """Return standard JSON headers.

    Parameters
    ----------
    auth_token:
        Optional bearer token to include.
    """

    headers = {"Content-Type": "application/json", "Accept": "application/json"}
    if auth_token:
        headers["Authorization"] = f"Bearer {auth_token}"
    return headers


def login(client, email: str, password: str = DEFAULT_PASSWORD) -> dict:
    """Log ``email`` in through the API and return the session body.

    Raises
    ------
    AssertionError
        If the login is rejected.
    """

    resp = client.post(f"{API}/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()

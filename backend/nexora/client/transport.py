"""Thin HTTP wrapper around the ``/api/v1/auth`` endpoints."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import requests

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class TransportError(Exception):
    """The server could not be reached or answered with a non-JSON body."""


@dataclass(frozen=True)
class ApiResponse:
    """Status code plus the decoded JSON body (problem document on errors)."""

    status_code: int
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def error(self) -> str | None:
        """Human-readable message from a problem document."""
        if self.ok:
            return None
        return self.data.get("detail") or self.data.get("error")

    @property
    def code(self) -> str | None:
        return self.data.get("code")

    @property
    def expired(self) -> bool:
        return bool(self.data.get("expired", False))


class AuthApi:
    """
    Call the authentication API.

    :param base_url: Server root, e.g. ``"https://agenda.example.org"``.
    :param session: Optional :class:`requests.Session` to reuse connections.
    :param timeout: Per-request timeout in seconds.
    """

    prefix = "/api/v1"

    def __init__(
        self,
        base_url: str,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def url(self, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        if not path.startswith(self.prefix):
            path = self.prefix + path
        return self.base_url + path

    def send(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Issue a raw request; network failures raise :class:`TransportError`."""
        kwargs.setdefault("timeout", self.timeout)
        try:
            return self.session.request(method, self.url(path), **kwargs)
        except requests.RequestException as exc:
            log.warning("http.transport_error", extra={"endpoint": path, "outcome": type(exc).__name__})
            raise TransportError(str(exc)) from exc

    def _call(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        json: dict[str, Any] | None = None,
    ) -> ApiResponse:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        resp = self.send(method, path, json=json, headers=headers)
        try:
            body = resp.json() if resp.content else {}
        except ValueError as exc:
            raise TransportError(f"Non-JSON response ({resp.status_code})") from exc
        if not isinstance(body, dict):
            body = {}
        return ApiResponse(status_code=resp.status_code, data=body)

    def register(self, email: str, password: str, name: str) -> ApiResponse:
        return self._call("POST", "/auth/register", json={"email": email, "password": password, "name": name})

    def login(self, email: str, password: str) -> ApiResponse:
        return self._call("POST", "/auth/login", json={"email": email, "password": password})

    def me(self, token: str) -> ApiResponse:
        return self._call("GET", "/auth/me", token=token)

    def refresh(self, refresh_token: str) -> ApiResponse:
        return self._call("POST", "/auth/refresh", json={"refreshToken": refresh_token})

    def logout(self, token: str) -> ApiResponse:
        return self._call("POST", "/auth/logout", token=token)

    def change_password(self, token: str, current: str, new: str) -> ApiResponse:
        return self._call(
            "POST",
            "/auth/change-password",
            token=token,
            json={"currentPassword": current, "newPassword": new},
        )

    def close(self) -> None:
        self.session.close()

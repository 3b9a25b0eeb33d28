"""
Client-side session lifecycle.

:class:`SessionClient` keeps the active token pair in memory and in a
:class:`~nexora.client.storage.CredentialStorage`, refreshes it shortly before
the access token expires and exposes the login, registration, logout and
change-password flows as calls returning :class:`AuthResult`.

Lifecycle is explicit::

    client = SessionClient(AuthApi("https://agenda.example.org"), FileCredentialStorage(path))
    client.hydrate()
    ...
    client.close()
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import requests

from nexora.client.scheduler import ScheduledTask, Scheduler, ThreadingScheduler
from nexora.client.state import (
    AuthResult,
    NotAuthenticated,
    PasswordChangeRequired,
    SessionState,
)
from nexora.client.storage import CredentialStorage, MemoryCredentialStorage, StoredCredentials
from nexora.client.transport import ApiResponse, AuthApi, TransportError
from nexora.services._shared.policies.password import validate_password

log = logging.getLogger(__name__)

REFRESH_MARGIN = timedelta(minutes=2)

# 401 codes that point at the token rather than the submitted password
TOKEN_ERROR_CODES = frozenset({"token_invalid", "token_expired", "token_missing"})

MSG_LOGIN_FAILED = "Erreur de connexion"
MSG_REGISTER_FAILED = "Erreur d'inscription"
MSG_NOT_AUTHENTICATED = "Non authentifie"
MSG_CHANGE_FAILED = "Erreur lors du changement de mot de passe"
MSG_FIELDS_REQUIRED = "Tous les champs sont requis"
MSG_CONFIRMATION_MISMATCH = "Les mots de passe ne correspondent pas"
MSG_SAME_PASSWORD = "Le nouveau mot de passe doit etre different de l'ancien"
MSG_PASSWORD_CHANGE_REQUIRED = "Changement de mot de passe requis"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SessionClient:
    """
    Hold and maintain one authenticated session against the API.

    :param api: HTTP wrapper for the auth endpoints.
    :param storage: Durable store for the four credential keys.
    :param scheduler: Runs the proactive refresh; defaults to daemon timers.
    :param clock: Returns the current aware UTC datetime.
    :param refresh_margin: How long before access expiry to refresh.
    """

    def __init__(
        self,
        api: AuthApi,
        storage: CredentialStorage | None = None,
        *,
        scheduler: Scheduler | None = None,
        clock: Callable[[], datetime] = _utcnow,
        refresh_margin: timedelta = REFRESH_MARGIN,
    ) -> None:
        self.api = api
        self.storage = storage or MemoryCredentialStorage()
        self.scheduler = scheduler or ThreadingScheduler()
        self.clock = clock
        self.refresh_margin = refresh_margin

        self._lock = threading.RLock()
        self._refresh_lock = threading.Lock()
        self._credentials: StoredCredentials | None = None
        self._state = SessionState.UNAUTHENTICATED
        self._timer: ScheduledTask | None = None
        # Bumped whenever a session starts or ends; a refresh answer that
        # arrives under another generation is dropped.
        self._generation = 0
        self._closed = False

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def user(self) -> dict[str, Any] | None:
        creds = self._credentials
        return dict(creds.user) if creds else None

    @property
    def is_authenticated(self) -> bool:
        return self._state in (
            SessionState.AUTHENTICATED,
            SessionState.PASSWORD_CHANGE_REQUIRED,
            SessionState.REFRESHING,
        )

    @property
    def must_change_password(self) -> bool:
        creds = self._credentials
        return bool(creds and creds.must_change_password)

    def get_auth_header(self) -> dict[str, str]:
        """Return ``{"Authorization": "Bearer <token>"}`` or ``{}`` without a session."""
        creds = self._credentials
        if creds is None:
            return {}
        return {"Authorization": f"Bearer {creds.token}"}

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    def hydrate(self) -> bool:
        """
        Restore a session saved by a previous run.

        An access token whose stored expiry has passed is refreshed
        immediately; otherwise it is checked with ``GET /auth/me`` and
        refreshed when the server reports it expired. Any other failure wipes
        the stored credentials.

        :returns: ``True`` when a usable session was restored.
        """
        with self._lock:
            self._closed = False
        creds = self.storage.load()
        if creds is None:
            self._end_session(SessionState.UNAUTHENTICATED)
            return False

        with self._lock:
            self._credentials = creds

        if self._access_expired(creds):
            log.info("session.hydrate", extra={"outcome": "expired_locally"})
            return self.refresh()

        try:
            resp = self.api.me(creds.token)
        except TransportError:
            self._end_session(SessionState.UNAUTHENTICATED)
            return False

        if resp.ok:
            user = resp.data.get("user") or creds.user
            expires_at = resp.data.get("expiresAt") or creds.expires_at
            self._establish(
                StoredCredentials(
                    token=creds.token,
                    refresh_token=creds.refresh_token,
                    user=dict(user),
                    expires_at=expires_at,
                )
            )
            log.info("session.hydrate", extra={"outcome": "restored"})
            return True

        if resp.status_code == 401 and resp.expired:
            return self.refresh()

        log.info("session.hydrate", extra={"outcome": "rejected"})
        self._end_session(SessionState.UNAUTHENTICATED)
        return False

    def close(self) -> None:
        """
        Cancel the refresh timer and release the HTTP transport.

        Stored credentials are kept for the next :meth:`hydrate`. A refresh
        still in flight may update them but never re-arms the timer.
        """
        with self._lock:
            self._closed = True
            self._cancel_timer()
        self.api.close()

    # ------------------------------------------------------------------ #
    # Auth flows
    # ------------------------------------------------------------------ #
    def login(self, email: str, password: str) -> AuthResult:
        return self._authenticate(lambda: self.api.login(email, password), MSG_LOGIN_FAILED)

    def register(self, email: str, password: str, name: str) -> AuthResult:
        return self._authenticate(
            lambda: self.api.register(email, password, name), MSG_REGISTER_FAILED
        )

    def refresh(self) -> bool:
        """
        Swap the held refresh token for a new pair.

        Only one refresh runs at a time; a call made while another is in
        flight returns ``False`` and changes nothing. A rejected refresh ends
        the session.

        When a login or logout replaces the session while the request is on
        the wire, the answer is dropped. A pair rotated for a session that
        no longer exists is revoked on a best-effort basis.
        """
        if not self._refresh_lock.acquire(blocking=False):
            log.debug("session.refresh", extra={"outcome": "skipped"})
            return False
        try:
            with self._lock:
                creds = self._credentials
                if creds is None:
                    return False
                generation = self._generation
                self._state = SessionState.REFRESHING

            try:
                resp = self.api.refresh(creds.refresh_token)
            except TransportError:
                resp = None

            if resp is None or not resp.ok:
                with self._lock:
                    if generation != self._generation:
                        log.info("session.refresh", extra={"outcome": "superseded"})
                        return False
                    log.info("session.refresh", extra={"outcome": "failed"})
                    self._end_session(SessionState.UNAUTHENTICATED)
                return False

            fresh = StoredCredentials.from_response(resp.data)
            with self._lock:
                current = generation == self._generation
                if current:
                    self._establish(fresh)
            if not current:
                log.info("session.refresh", extra={"outcome": "superseded"})
                self._revoke_orphan(fresh)
                return False
            log.info("session.refresh", extra={"outcome": "ok"})
            return True
        finally:
            self._refresh_lock.release()

    def logout(self, force: bool = False) -> bool:
        """
        End the session.

        Unless ``force`` is set, one refresh is attempted first; when it
        succeeds the session is kept and ``False`` is returned. Otherwise the
        server pair is revoked on a best-effort basis and the local
        credentials are cleared regardless of the server's answer.

        :returns: ``True`` when the session was ended.
        """
        with self._lock:
            creds = self._credentials

        if creds is not None and not force and self.refresh():
            log.info("session.logout", extra={"outcome": "kept_after_refresh"})
            return False

        if creds is not None:
            try:
                resp = self.api.logout(creds.token)
                if not resp.ok:
                    log.warning("session.logout", extra={"outcome": f"server_{resp.status_code}"})
            except TransportError:
                log.warning("session.logout", extra={"outcome": "unreachable"})

        self._end_session(SessionState.LOGGED_OUT)
        log.info("session.logout", extra={"outcome": "ok"})
        return True

    def change_password(
        self, current: str, new: str, confirmation: str | None = None
    ) -> AuthResult:
        """
        Change the account password.

        Local checks (presence, policy, confirmation, same password) run
        before any network call. A 401 caused by the token triggers one
        refresh and one retry; a wrong current password is reported as is.
        """
        creds = self._credentials
        if creds is None or self._access_expired(creds):
            if not self.refresh():
                return AuthResult.fail(MSG_NOT_AUTHENTICATED)

        local = self._check_new_password(current, new, confirmation)
        if local is not None:
            return local

        resp = self._post_change_password(current, new)
        if resp is not None and resp.status_code == 401 and resp.code in TOKEN_ERROR_CODES:
            if not self.refresh():
                return AuthResult.fail(MSG_NOT_AUTHENTICATED)
            resp = self._post_change_password(current, new)

        if resp is None:
            return AuthResult.fail(MSG_CHANGE_FAILED)
        if not resp.ok:
            violations = (resp.data.get("details") or {}).get("violations") or []
            return AuthResult.fail(resp.error or MSG_CHANGE_FAILED, violations)

        with self._lock:
            held = self._credentials
            if held is not None:
                user = dict(resp.data.get("user") or held.user)
                user["mustChangePassword"] = False
                updated = StoredCredentials(
                    token=held.token,
                    refresh_token=held.refresh_token,
                    user=user,
                    expires_at=held.expires_at,
                )
                self.storage.save(updated)
                self._credentials = updated
                self._state = SessionState.AUTHENTICATED
        log.info("session.change_password", extra={"outcome": "ok"})
        return AuthResult.ok()

    def request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """
        Send an authenticated request to the API.

        A 401 answer triggers one refresh and one retry.

        :raises NotAuthenticated: No session is held.
        :raises PasswordChangeRequired: A forced password change is pending.
        :raises TransportError: The server could not be reached.
        """
        with self._lock:
            if self._credentials is None:
                raise NotAuthenticated(MSG_NOT_AUTHENTICATED)
            if self._state is SessionState.PASSWORD_CHANGE_REQUIRED:
                raise PasswordChangeRequired(MSG_PASSWORD_CHANGE_REQUIRED)

        headers = dict(kwargs.pop("headers", None) or {})
        resp = self.api.send(method, path, headers={**headers, **self.get_auth_header()}, **kwargs)
        if resp.status_code == 401 and self.refresh():
            resp = self.api.send(
                method, path, headers={**headers, **self.get_auth_header()}, **kwargs
            )
        return resp

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _authenticate(self, call: Callable[[], ApiResponse], fallback: str) -> AuthResult:
        with self._lock:
            self._state = SessionState.AUTHENTICATING
        try:
            resp = call()
        except TransportError:
            self._settle()
            return AuthResult.fail(fallback)

        if not resp.ok:
            self._settle()
            return AuthResult.fail(resp.error or fallback)

        self._establish(StoredCredentials.from_response(resp.data))
        log.info("session.authenticated", extra={"user_id": self._credentials.user.get("id")})
        return AuthResult.ok()

    def _check_new_password(
        self, current: str, new: str, confirmation: str | None
    ) -> AuthResult | None:
        if not current or not new:
            return AuthResult.fail(MSG_FIELDS_REQUIRED)
        policy = validate_password(new)
        if not policy.valid:
            return AuthResult.fail(
                f"Mot de passe non conforme: {', '.join(policy.violations)}", policy.violations
            )
        if confirmation is not None and confirmation != new:
            return AuthResult.fail(MSG_CONFIRMATION_MISMATCH)
        if new == current:
            return AuthResult.fail(MSG_SAME_PASSWORD)
        return None

    def _post_change_password(self, current: str, new: str) -> ApiResponse | None:
        creds = self._credentials
        if creds is None:
            return None
        try:
            return self.api.change_password(creds.token, current, new)
        except TransportError:
            return None

    def _access_expired(self, creds: StoredCredentials) -> bool:
        expires_at = creds.expires_at_dt
        return expires_at is None or self.clock() > expires_at

    def _resting_state(self) -> SessionState:
        creds = self._credentials
        if creds is None:
            return SessionState.UNAUTHENTICATED
        if creds.must_change_password:
            return SessionState.PASSWORD_CHANGE_REQUIRED
        return SessionState.AUTHENTICATED

    def _settle(self) -> None:
        with self._lock:
            self._state = self._resting_state()

    def _establish(self, creds: StoredCredentials) -> None:
        with self._lock:
            self._generation += 1
            self.storage.save(creds)
            self._credentials = creds
            self._state = self._resting_state()
            self._schedule_refresh(creds)

    def _end_session(self, state: SessionState) -> None:
        with self._lock:
            self._generation += 1
            self._cancel_timer()
            self._credentials = None
            self.storage.clear()
            self._state = state

    def _revoke_orphan(self, creds: StoredCredentials) -> None:
        try:
            resp = self.api.logout(creds.token)
        except TransportError:
            log.warning("session.revoke_orphan", extra={"outcome": "unreachable"})
            return
        if not resp.ok:
            log.warning("session.revoke_orphan", extra={"outcome": f"server_{resp.status_code}"})

    def _schedule_refresh(self, creds: StoredCredentials) -> None:
        self._cancel_timer()
        expires_at = creds.expires_at_dt
        if expires_at is None or self._closed:
            return
        delay = (expires_at - self.clock() - self.refresh_margin).total_seconds()
        self._timer = self.scheduler.schedule(max(delay, 0.0), self._on_timer)

    def _on_timer(self) -> None:
        with self._lock:
            self._timer = None
        self.refresh()

    def _cancel_timer(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

"""Unit tests for SessionClient driven by ``responses`` and a manual scheduler."""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta

import pytest
import requests
import responses
from freezegun import freeze_time
from nexora.client import (
    ApiResponse,
    AuthApi,
    MemoryCredentialStorage,
    NotAuthenticated,
    PasswordChangeRequired,
    SessionClient,
    SessionState,
    StoredCredentials,
)
from tests.helpers.scheduler import ManualScheduler

BASE = "http://agenda.test"
AUTH = f"{BASE}/api/v1/auth"


def session_body(tag: str = "1", *, must_change: bool = False, expires_in=timedelta(minutes=30)):
    now = datetime.now(UTC)
    return {
        "user": {
            "id": 1,
            "email": "alice@example.com",
            "name": "Alice",
            "avatar": None,
            "role": "user",
            "mustChangePassword": must_change,
            "createdAt": now.isoformat(),
            "updatedAt": now.isoformat(),
        },
        "token": f"access-{tag}",
        "refreshToken": f"refresh-{tag}",
        "expiresAt": (now + expires_in).isoformat(),
    }


def problem(status: int, detail: str, code: str, **extra):
    return {"status": status, "detail": detail, "code": code, **extra}


# ------------------------------ Fixtures ---------------------------------- #
@pytest.fixture()
def frozen():
    with freeze_time("2025-03-01 12:00:00") as ft:
        yield ft


@pytest.fixture()
def mocked():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


@pytest.fixture()
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture()
def storage() -> MemoryCredentialStorage:
    return MemoryCredentialStorage()


@pytest.fixture()
def session_client(frozen, storage, scheduler) -> SessionClient:
    sc = SessionClient(AuthApi(BASE), storage, scheduler=scheduler)
    yield sc
    sc.close()


@pytest.fixture()
def logged_in(session_client, mocked):
    mocked.post(f"{AUTH}/login", json=session_body("1"))
    assert session_client.login("alice@example.com", "Passw0rd!").success
    return session_client


def _auth_header(call) -> str | None:
    return call.request.headers.get("Authorization")


# ------------------------------ Login/Register ---------------------------- #
class TestLogin:
    def test_success_persists_and_schedules_refresh(self, logged_in, storage, scheduler):
        assert logged_in.state is SessionState.AUTHENTICATED
        assert logged_in.get_auth_header() == {"Authorization": "Bearer access-1"}

        stored = storage.load()
        assert stored.token == "access-1"
        assert stored.refresh_token == "refresh-1"
        assert stored.user["email"] == "alice@example.com"

        # 30 min access lifetime minus the 2 min margin
        assert scheduler.last.delay == pytest.approx(28 * 60)

    def test_forced_password_change(self, session_client, mocked):
        mocked.post(f"{AUTH}/login", json=session_body(must_change=True))
        assert session_client.login("a@example.com", "x").success
        assert session_client.state is SessionState.PASSWORD_CHANGE_REQUIRED

    def test_rejected_login_surfaces_server_message(self, session_client, mocked, storage):
        mocked.post(
            f"{AUTH}/login",
            status=401,
            json=problem(401, "Email ou mot de passe incorrect", "invalid_credentials"),
        )

        result = session_client.login("a@example.com", "bad")

        assert result.success is False
        assert result.error == "Email ou mot de passe incorrect"
        assert session_client.state is SessionState.UNAUTHENTICATED
        assert storage.load() is None

    def test_network_error_uses_generic_message(self, session_client, mocked):
        mocked.post(f"{AUTH}/login", body=requests.ConnectionError("down"))
        result = session_client.login("a@example.com", "x")
        assert result.error == "Erreur de connexion"

    def test_access_close_to_expiry_refreshes_immediately(
        self, session_client, mocked, scheduler
    ):
        mocked.post(f"{AUTH}/login", json=session_body(expires_in=timedelta(seconds=90)))

        assert session_client.login("a@example.com", "x").success

        assert scheduler.last.delay == 0

    def test_register(self, session_client, mocked):
        mocked.post(f"{AUTH}/register", status=201, json=session_body("r"))
        assert session_client.register("a@example.com", "secret", "Alice").success
        assert session_client.get_auth_header()["Authorization"] == "Bearer access-r"

    def test_register_network_error(self, session_client, mocked):
        mocked.post(f"{AUTH}/register", body=requests.Timeout())
        assert session_client.register("a@example.com", "secret", "A").error == (
            "Erreur d'inscription"
        )


# -------------------------------- Refresh --------------------------------- #
class TestRefresh:
    def test_timer_rotates_pair(self, logged_in, mocked, scheduler, storage, frozen):
        mocked.post(f"{AUTH}/refresh", json=session_body("2"))
        frozen.tick(timedelta(minutes=28))

        assert scheduler.run_pending() == 1

        assert logged_in.state is SessionState.AUTHENTICATED
        assert storage.load().token == "access-2"
        assert mocked.calls[-1].request.body == b'{"refreshToken": "refresh-1"}'
        assert scheduler.last is not None

    def test_failed_refresh_ends_session(self, logged_in, mocked, scheduler, storage):
        mocked.post(
            f"{AUTH}/refresh",
            status=401,
            json=problem(401, "Refresh token invalide ou expire", "token_invalid", expired=False),
        )

        scheduler.run_pending()

        assert logged_in.state is SessionState.UNAUTHENTICATED
        assert storage.load() is None
        assert logged_in.get_auth_header() == {}
        assert scheduler.pending == []

    def test_refresh_without_session(self, session_client):
        assert session_client.refresh() is False
        assert session_client.state is SessionState.UNAUTHENTICATED


# -------------------------------- Logout ---------------------------------- #
class TestLogout:
    def test_successful_refresh_keeps_session(self, logged_in, mocked):
        mocked.post(f"{AUTH}/refresh", json=session_body("2"))

        assert logged_in.logout() is False
        assert logged_in.state is SessionState.AUTHENTICATED
        assert not any(c.request.url.endswith("/logout") for c in mocked.calls)

    def test_logout_after_failed_refresh_uses_original_token(
        self, logged_in, mocked, storage, scheduler
    ):
        mocked.post(f"{AUTH}/refresh", status=401, json=problem(401, "x", "token_invalid"))
        mocked.post(f"{AUTH}/logout", json={"success": True})

        assert logged_in.logout() is True

        assert _auth_header(mocked.calls[-1]) == "Bearer access-1"
        assert logged_in.state is SessionState.LOGGED_OUT
        assert storage.load() is None
        assert scheduler.pending == []

    def test_forced_logout_clears_even_if_server_fails(self, logged_in, mocked, storage):
        mocked.post(f"{AUTH}/logout", status=500, json=problem(500, "boom", "internal_server_error"))

        assert logged_in.logout(force=True) is True

        assert [c.request.url for c in mocked.calls][-1].endswith("/logout")
        assert logged_in.state is SessionState.LOGGED_OUT
        assert storage.load() is None

    def test_forced_logout_when_unreachable(self, logged_in, mocked, storage):
        mocked.post(f"{AUTH}/logout", body=requests.ConnectionError())
        assert logged_in.logout(force=True) is True
        assert storage.load() is None


# -------------------------------- Hydrate --------------------------------- #
class TestHydrate:
    def test_nothing_stored(self, session_client):
        assert session_client.hydrate() is False
        assert session_client.state is SessionState.UNAUTHENTICATED

    def test_valid_stored_session(self, session_client, mocked, storage, scheduler):
        storage.save(StoredCredentials.from_response(session_body("s")))
        body = session_body("s")
        mocked.get(f"{AUTH}/me", json={"user": body["user"], "expiresAt": body["expiresAt"]})

        assert session_client.hydrate() is True

        assert session_client.state is SessionState.AUTHENTICATED
        assert _auth_header(mocked.calls[0]) == "Bearer access-s"
        assert scheduler.last is not None

    def test_restored_session_close_to_expiry_refreshes_immediately(
        self, session_client, mocked, storage, scheduler
    ):
        body = session_body("s", expires_in=timedelta(minutes=1))
        storage.save(StoredCredentials.from_response(body))
        mocked.get(f"{AUTH}/me", json={"user": body["user"], "expiresAt": body["expiresAt"]})

        assert session_client.hydrate() is True
        assert scheduler.last.delay == 0

    def test_server_reports_expired_then_refreshes(self, session_client, mocked, storage):
        storage.save(StoredCredentials.from_response(session_body("s")))
        mocked.get(
            f"{AUTH}/me",
            status=401,
            json=problem(401, "Token invalide ou expire", "token_expired", expired=True),
        )
        mocked.post(f"{AUTH}/refresh", json=session_body("n"))

        assert session_client.hydrate() is True
        assert storage.load().token == "access-n"

    def test_locally_expired_refreshes_without_me(self, session_client, mocked, storage):
        storage.save(
            StoredCredentials.from_response(session_body("s", expires_in=timedelta(minutes=-1)))
        )
        mocked.post(f"{AUTH}/refresh", json=session_body("n"))

        assert session_client.hydrate() is True
        assert [c.request.url for c in mocked.calls] == [f"{AUTH}/refresh"]

    def test_rejected_token_clears_storage(self, session_client, mocked, storage):
        storage.save(StoredCredentials.from_response(session_body("s")))
        mocked.get(
            f"{AUTH}/me",
            status=401,
            json=problem(401, "Token invalide ou expire", "token_invalid", expired=False),
        )

        assert session_client.hydrate() is False
        assert storage.load() is None
        assert session_client.state is SessionState.UNAUTHENTICATED


# ---------------------------- Change password ----------------------------- #
class TestChangePassword:
    def test_local_policy_runs_before_network(self, logged_in, mocked):
        result = logged_in.change_password("Passw0rd!", "weakpass", "weakpass")

        assert result.success is False
        assert result.violations == [
            "Au moins une majuscule",
            "Au moins un chiffre",
            "Au moins un caractere special",
        ]
        assert len(mocked.calls) == 1  # the login only

    def test_confirmation_mismatch(self, logged_in):
        result = logged_in.change_password("Passw0rd!", "N3w-Passw0rd!", "N3w-Passw0rd?")
        assert result.error == "Les mots de passe ne correspondent pas"

    def test_same_password(self, logged_in):
        result = logged_in.change_password("Passw0rd!", "Passw0rd!")
        assert result.error == "Le nouveau mot de passe doit etre different de l'ancien"

    def test_without_session(self, session_client):
        result = session_client.change_password("a", "N3w-Passw0rd!")
        assert result.error == "Non authentifie"

    def test_success_lifts_forced_change(self, session_client, mocked, storage):
        mocked.post(f"{AUTH}/login", json=session_body(must_change=True))
        session_client.login("alice@example.com", "Temp0rary!")
        user = session_body()["user"]
        mocked.post(f"{AUTH}/change-password", json={"success": True, "user": user})

        result = session_client.change_password("Temp0rary!", "Br4nd-New!", "Br4nd-New!")

        assert result.success is True
        assert session_client.state is SessionState.AUTHENTICATED
        assert storage.load().user["mustChangePassword"] is False

    def test_wrong_current_password_does_not_refresh(self, logged_in, mocked):
        mocked.post(
            f"{AUTH}/change-password",
            status=401,
            json=problem(401, "Mot de passe actuel incorrect", "incorrect_current_password"),
        )

        result = logged_in.change_password("wrong", "Br4nd-New!")

        assert result.error == "Mot de passe actuel incorrect"
        assert not any(c.request.url.endswith("/refresh") for c in mocked.calls)
        assert logged_in.state is SessionState.AUTHENTICATED

    def test_token_failure_refreshes_and_retries_once(self, logged_in, mocked):
        mocked.post(
            f"{AUTH}/change-password",
            status=401,
            json=problem(401, "Token invalide", "token_expired", expired=True),
        )
        mocked.post(f"{AUTH}/change-password", json={"success": True, "user": session_body()["user"]})
        mocked.post(f"{AUTH}/refresh", json=session_body("2"))

        result = logged_in.change_password("Passw0rd!", "Br4nd-New!")

        assert result.success is True
        urls = [c.request.url.rsplit("/", 1)[-1] for c in mocked.calls]
        assert urls == ["login", "change-password", "refresh", "change-password"]
        assert _auth_header(mocked.calls[-1]) == "Bearer access-2"

    def test_server_policy_violations_are_surfaced(self, logged_in, mocked):
        mocked.post(
            f"{AUTH}/change-password",
            status=400,
            json=problem(
                400,
                "Mot de passe non conforme: Au moins 8 caracteres",
                "policy_violation",
                details={"violations": ["Au moins 8 caracteres"]},
            ),
        )
        result = logged_in.change_password("Passw0rd!", "Br4nd-New!")
        assert result.violations == ["Au moins 8 caracteres"]

    def test_expired_access_is_refreshed_first(self, logged_in, mocked, frozen):
        frozen.tick(timedelta(minutes=31))
        mocked.post(f"{AUTH}/refresh", json=session_body("2"))
        mocked.post(f"{AUTH}/change-password", json={"success": True, "user": session_body()["user"]})

        assert logged_in.change_password("Passw0rd!", "Br4nd-New!").success
        assert _auth_header(mocked.calls[-1]) == "Bearer access-2"


# --------------------------- Authenticated calls -------------------------- #
class TestRequest:
    def test_requires_session(self, session_client):
        with pytest.raises(NotAuthenticated):
            session_client.request("GET", "/events")

    def test_blocked_while_password_change_pending(self, session_client, mocked):
        mocked.post(f"{AUTH}/login", json=session_body(must_change=True))
        session_client.login("a@example.com", "x")
        with pytest.raises(PasswordChangeRequired):
            session_client.request("GET", "/events")

    def test_attaches_bearer(self, logged_in, mocked):
        mocked.get(f"{BASE}/api/v1/events", json=[])
        resp = logged_in.request("GET", "/events", headers={"X-Request-ID": "abc"})

        assert resp.status_code == 200
        assert _auth_header(mocked.calls[-1]) == "Bearer access-1"
        assert mocked.calls[-1].request.headers["X-Request-ID"] == "abc"

    def test_close_cancels_timer(self, logged_in, scheduler):
        logged_in.close()
        assert scheduler.pending == []


# ------------------------- Refresh racing other calls ---------------------- #
class GatedRefreshApi(AuthApi):
    """AuthApi whose refresh call parks until the test releases it."""

    def __init__(self, answer: ApiResponse) -> None:
        super().__init__(BASE)
        self.answer = answer
        self.entered = threading.Event()
        self.release = threading.Event()
        self.refresh_calls = 0

    def refresh(self, refresh_token: str) -> ApiResponse:
        self.refresh_calls += 1
        self.entered.set()
        self.release.wait(5)
        return self.answer


class TestRefreshRaces:
    """A refresh on the wire must not undo or wipe a session changed meanwhile."""

    @pytest.fixture()
    def make_client(self, mocked, storage, scheduler):
        clients = []

        def _make(answer: ApiResponse):
            api = GatedRefreshApi(answer)
            client = SessionClient(api, storage, scheduler=scheduler)
            mocked.post(f"{AUTH}/login", json=session_body("1"))
            assert client.login("alice@example.com", "Passw0rd!").success
            clients.append(client)
            return client, api

        yield _make
        for client in clients:
            client.close()

    @staticmethod
    def _refresh_in_background(client, api):
        results: list[bool] = []
        worker = threading.Thread(target=lambda: results.append(client.refresh()))
        worker.start()
        assert api.entered.wait(5)
        return worker, results

    @staticmethod
    def _finish(api, worker):
        api.release.set()
        worker.join(5)
        assert not worker.is_alive()

    def test_second_refresh_is_skipped_while_first_runs(self, make_client, storage):
        client, api = make_client(ApiResponse(200, session_body("2")))
        worker, results = self._refresh_in_background(client, api)

        assert client.refresh() is False
        self._finish(api, worker)

        assert results == [True]
        assert api.refresh_calls == 1
        assert storage.load().token == "access-2"
        assert client.state is SessionState.AUTHENTICATED

    @pytest.mark.parametrize("force", [True, False])
    def test_logout_during_refresh_stays_logged_out(
        self, make_client, mocked, storage, scheduler, force
    ):
        mocked.post(f"{AUTH}/logout", json={"success": True})
        client, api = make_client(ApiResponse(200, session_body("2")))
        worker, results = self._refresh_in_background(client, api)

        assert client.logout(force=force) is True
        self._finish(api, worker)

        assert results == [False]
        assert client.state is SessionState.LOGGED_OUT
        assert storage.load() is None
        assert client.get_auth_header() == {}
        assert scheduler.pending == []
        # The pair rotated for the ended session is revoked as well
        logouts = [_auth_header(c) for c in mocked.calls if c.request.url.endswith("/logout")]
        assert logouts == ["Bearer access-1", "Bearer access-2"]

    def test_login_during_rejected_refresh_is_kept(self, make_client, mocked, storage, scheduler):
        client, api = make_client(
            ApiResponse(401, problem(401, "Refresh token invalide", "token_invalid"))
        )
        worker, results = self._refresh_in_background(client, api)

        mocked.post(f"{AUTH}/login", json=session_body("fresh"))
        assert client.login("alice@example.com", "Passw0rd!").success
        self._finish(api, worker)

        assert results == [False]
        assert client.state is SessionState.AUTHENTICATED
        assert storage.load().token == "access-fresh"
        assert client.get_auth_header() == {"Authorization": "Bearer access-fresh"}
        assert scheduler.last is not None
        assert not any(c.request.url.endswith("/logout") for c in mocked.calls)

    def test_close_during_refresh_does_not_rearm_timer(self, make_client, storage, scheduler):
        client, api = make_client(ApiResponse(200, session_body("2")))
        worker, results = self._refresh_in_background(client, api)

        client.close()
        self._finish(api, worker)

        assert results == [True]
        assert scheduler.pending == []
        # Rotated pair is kept so the next run can hydrate from it
        assert storage.load().token == "access-2"

"""Authentication endpoints using the service layer."""

from __future__ import annotations

from flask import Blueprint, g

from nexora.api.deps import (
    MSG_TOKEN_REQUIRED,
    bearer_token,
    get_auth_service,
    json_response,
    load_payload,
    require_auth,
    service_errors,
    timing,
)
from nexora.core.errors import BadRequest
from nexora.schemas import (
    ChangePasswordSchema,
    LoginSchema,
    MeSchema,
    ProvisionedUserSchema,
    ProvisionUserSchema,
    RefreshSchema,
    RegisterSchema,
    SessionSchema,
    UserSchema,
)
from nexora.services.auth.dto import ChangePasswordIn, LoginIn, ProvisionIn, RegisterIn

bp = Blueprint("auth", __name__)

register_schema = RegisterSchema()
login_schema = LoginSchema()
refresh_schema = RefreshSchema()
change_password_schema = ChangePasswordSchema()
provision_schema = ProvisionUserSchema()
session_schema = SessionSchema()
me_schema = MeSchema()
user_schema = UserSchema()
provisioned_schema = ProvisionedUserSchema()


@bp.post("/register")
@timing
@service_errors
def register():
    """Create an account and open its first session."""

    data = load_payload(register_schema, "Tous les champs sont requis")
    session = get_auth_service().register(RegisterIn(**data))
    return json_response(session_schema.dump(session), status=201)


@bp.post("/login")
@timing
@service_errors
def login():
    """Authenticate credentials and issue a token pair."""

    data = load_payload(login_schema, "Email et mot de passe requis")
    session = get_auth_service().login(LoginIn(**data))
    return json_response(session_schema.dump(session))


@bp.get("/me")
@timing
@require_auth(allow_pending_password_change=True)
@service_errors
def me():
    """Return the authenticated user and the access expiry of their pair."""

    result = get_auth_service().me(g.user_id)
    return json_response(me_schema.dump(result))


@bp.post("/refresh")
@timing
@service_errors
def refresh():
    """Swap a refresh token for a brand-new pair."""

    data = load_payload(refresh_schema, "Refresh token requis")
    session = get_auth_service().refresh(data["refresh_token"])
    return json_response(session_schema.dump(session))


@bp.post("/logout")
@timing
@service_errors
def logout():
    """Revoke the caller's pair; unknown tokens still succeed."""

    token = bearer_token()
    if not token:
        raise BadRequest(MSG_TOKEN_REQUIRED, code="token_missing")
    get_auth_service().logout(token)
    return json_response({"success": True})


@bp.post("/change-password")
@timing
@require_auth(invalid_message="Token invalide", allow_pending_password_change=True)
@service_errors
def change_password():
    """Replace the caller's password and lift a forced change."""

    data = load_payload(
        change_password_schema, "Mot de passe actuel et nouveau mot de passe requis"
    )
    user = get_auth_service().change_password(g.user_id, ChangePasswordIn(**data))
    return json_response({"success": True, "user": user_schema.dump(user)})


@bp.post("/users")
@timing
@require_auth()
@service_errors
def provision_user():
    """Create an account that must change its password at first login (admins only)."""

    data = load_payload(provision_schema, "Tous les champs sont requis")
    result = get_auth_service().provision_user(g.user_id, ProvisionIn(**data))
    return json_response(provisioned_schema.dump(result), status=201)

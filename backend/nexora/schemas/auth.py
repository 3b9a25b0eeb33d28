"""Authentication-related Marshmallow schemas.

Request schemas only check presence; content rules (email format, password
policy) belong to the service layer so their messages and order stay in one
place. Response schemas render camelCase keys for the SPA.
"""

from __future__ import annotations

from marshmallow import EXCLUDE, Schema, fields, validate

_present = validate.Length(min=1)


class _Payload(Schema):
    class Meta:
        unknown = EXCLUDE


class RegisterSchema(_Payload):
    """Input payload for account registration."""

    email = fields.String(required=True, validate=_present)
    password = fields.String(required=True, validate=_present)
    name = fields.String(required=True, validate=_present)


class LoginSchema(_Payload):
    """Input payload for authenticating a user."""

    email = fields.String(required=True, validate=_present)
    password = fields.String(required=True, validate=_present)


class RefreshSchema(_Payload):
    refresh_token = fields.String(required=True, data_key="refreshToken", validate=_present)


class ChangePasswordSchema(_Payload):
    current_password = fields.String(required=True, data_key="currentPassword", validate=_present)
    new_password = fields.String(required=True, data_key="newPassword", validate=_present)


class ProvisionUserSchema(_Payload):
    """Input payload for administrative account creation."""

    email = fields.String(required=True, validate=_present)
    name = fields.String(required=True, validate=_present)
    password = fields.String(load_default=None, allow_none=True)
    role = fields.String(load_default="user", validate=validate.OneOf(["user", "admin"]))


class UserSchema(Schema):
    """Public user representation (never includes the password hash)."""

    id = fields.Integer(required=True)
    email = fields.String(required=True)
    name = fields.String(required=True)
    avatar = fields.String(allow_none=True)
    role = fields.String(required=True)
    must_change_password = fields.Boolean(data_key="mustChangePassword")
    created_at = fields.DateTime(data_key="createdAt", allow_none=True)
    updated_at = fields.DateTime(data_key="updatedAt", allow_none=True)


class SessionSchema(Schema):
    """Response of login, register and refresh."""

    user = fields.Nested(UserSchema)
    token = fields.String(attribute="pair.access_token")
    refresh_token = fields.String(attribute="pair.refresh_token", data_key="refreshToken")
    expires_at = fields.DateTime(attribute="pair.access_expires_at", data_key="expiresAt")


class MeSchema(Schema):
    user = fields.Nested(UserSchema)
    expires_at = fields.DateTime(data_key="expiresAt", allow_none=True)


class ProvisionedUserSchema(Schema):
    user = fields.Nested(UserSchema)
    temporary_password = fields.String(data_key="temporaryPassword", allow_none=True)

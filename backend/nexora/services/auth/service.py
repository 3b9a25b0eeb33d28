"""Authentication use cases: register, login, refresh, logout, password change."""

from __future__ import annotations

import logging
import re
import secrets

from sqlalchemy.exc import IntegrityError

from nexora.models.user import User, UserRole
from nexora.services._shared.base import BaseService, ServiceContext
from nexora.services._shared.errors import (
    DuplicateEmailError,
    ForbiddenError,
    IncorrectCurrentPasswordError,
    InvalidCredentialsError,
    InvalidEmailFormatError,
    NotFoundError,
    PasswordChangeRequiredError,
    PolicyViolationError,
    SamePasswordError,
    TokenExpiredError,
    TokenInvalidError,
    ValidationError,
    WeakPasswordError,
    violates,
)
from nexora.services._shared.policies.password import (
    REGISTRATION_MIN_LENGTH,
    check_registration_password,
    validate_password,
)
from nexora.services.auth.dto import (
    AuthSession,
    ChangePasswordIn,
    LoginIn,
    MeOut,
    ProvisionIn,
    ProvisionOut,
    RegisterIn,
    UserView,
)
from nexora.services.tokens.service import TokenService

log = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MSG_FIELDS_REQUIRED = "Tous les champs sont requis"
MSG_TOKEN_INVALID = "Token invalide ou expire"
MSG_REFRESH_INVALID = "Refresh token invalide ou expire"


class AuthService(BaseService):
    """
    Authentication lifecycle service.

    Credential checks run in read-only units of work; user writes in
    read-write ones. Token state is delegated to :class:`TokenService`, so a
    store failure surfaces as
    :class:`~nexora.services._shared.errors.StorageError` and is never turned
    into an authentication failure.

    :param tokens: Token lifecycle service.
    :param registration_min_length: Minimum length at self-registration.
    """

    def __init__(
        self,
        tokens: TokenService,
        *,
        registration_min_length: int = REGISTRATION_MIN_LENGTH,
        ctx: ServiceContext | None = None,
    ) -> None:
        super().__init__(ctx=ctx)
        self.tokens = tokens
        self.registration_min_length = registration_min_length

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _normalize_email(email: str) -> str:
        return (email or "").strip().lower()

    def _check_registration_password(self, password: str) -> None:
        message = check_registration_password(password, self.registration_min_length)
        if message:
            raise WeakPasswordError(message)

    def _insert_user(
        self,
        *,
        email: str,
        name: str,
        password: str,
        role: UserRole,
        force_password_change: bool,
    ) -> UserView:
        """Persist a new user and return its snapshot.

        :raises DuplicateEmailError: When a concurrent insert took the email.
        """
        try:
            with self.rw_uow() as uow:
                user = User(
                    email=email,
                    name=name,
                    role=role,
                    force_password_change=force_password_change,
                )
                user.password = password
                uow.users.add(user)
                view = UserView.from_model(user)
        except IntegrityError as exc:
            if violates(exc, "uq_users_email") or violates(exc, "users.email"):
                raise DuplicateEmailError() from exc
            raise
        return view

    def _load_user(self, user_id: int) -> UserView:
        with self.ro_uow() as uow:
            user = uow.users.get(user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            return UserView.from_model(user)

    # ------------------------------------------------------------------ #
    # Register / Login
    # ------------------------------------------------------------------ #

    def register(self, dto: RegisterIn) -> AuthSession:
        """
        Create a ``user`` account and open its first session.

        Checks run in order: presence, email uniqueness, email format,
        registration length rule.

        :raises ValidationError: Missing field.
        :raises DuplicateEmailError: Email already registered.
        :raises InvalidEmailFormatError: Email does not look like ``a@b.c``.
        :raises WeakPasswordError: Password below the registration minimum.
        """
        email = self._normalize_email(dto.email)
        name = (dto.name or "").strip()
        if not email or not dto.password or not name:
            raise ValidationError(MSG_FIELDS_REQUIRED)

        with self.ro_uow() as uow:
            taken = uow.users.exists_by_email(email)
        if taken:
            raise DuplicateEmailError()
        if not EMAIL_RE.match(email):
            raise InvalidEmailFormatError()
        self._check_registration_password(dto.password)

        view = self._insert_user(
            email=email,
            name=name,
            password=dto.password,
            role=UserRole.USER,
            force_password_change=False,
        )
        pair = self.tokens.issue(view.id)
        log.info("auth.register", extra={"user_id": view.id})
        return AuthSession(user=view, pair=pair)

    def login(self, dto: LoginIn) -> AuthSession:
        """
        Verify credentials and issue a pair, replacing any previous session.

        :raises InvalidCredentialsError: Unknown email or wrong password (same
            message for both).
        """
        with self.ro_uow() as uow:
            user = uow.users.authenticate(self._normalize_email(dto.email), dto.password)
            if user is None:
                log.info("auth.login", extra={"outcome": "rejected"})
                raise InvalidCredentialsError()
            view = UserView.from_model(user)

        pair = self.tokens.issue(view.id)
        log.info("auth.login", extra={"user_id": view.id, "outcome": "ok"})
        return AuthSession(user=view, pair=pair)

    # ------------------------------------------------------------------ #
    # Bearer tokens
    # ------------------------------------------------------------------ #

    def authenticate_token(self, access_token: str, *, message: str = MSG_TOKEN_INVALID) -> int:
        """
        Resolve a bearer token to its owner.

        :param message: Client-facing message of the raised error.
        :returns: Owner user id.
        :raises TokenExpiredError: Known token past its access horizon.
        :raises TokenInvalidError: Unknown token.
        """
        validation = self.tokens.validate(access_token)
        if validation.valid and validation.user_id is not None:
            return validation.user_id
        if validation.expired:
            raise TokenExpiredError(message)
        raise TokenInvalidError(message)

    def ensure_password_current(self, user_id: int) -> UserView:
        """
        Return the user unless a forced password change is pending.

        :raises NotFoundError: User no longer exists.
        :raises PasswordChangeRequiredError: Provisioned password not yet changed.
        """
        view = self._load_user(user_id)
        if view.must_change_password:
            raise PasswordChangeRequiredError()
        return view

    def me(self, user_id: int) -> MeOut:
        view = self._load_user(user_id)
        pair = self.tokens.current(user_id)
        return MeOut(user=view, expires_at=pair.access_expires_at if pair else None)

    def refresh(self, refresh_token: str) -> AuthSession:
        """
        Exchange a refresh token for a brand-new pair.

        :raises TokenInvalidError: Unknown, consumed or expired refresh token.
        :raises NotFoundError: Owner deleted since issuance.
        """
        pair = self.tokens.refresh(refresh_token)
        if pair is None:
            raise TokenInvalidError(MSG_REFRESH_INVALID)
        view = self._load_user(pair.user_id)
        log.info("auth.refresh", extra={"user_id": view.id})
        return AuthSession(user=view, pair=pair)

    def logout(self, access_token: str) -> None:
        """Revoke the owner's pair when the token is known, even if expired."""
        validation = self.tokens.validate(access_token)
        if validation.user_id is not None:
            self.tokens.revoke(validation.user_id)
        log.info("auth.logout", extra={"user_id": validation.user_id})

    # ------------------------------------------------------------------ #
    # Password change
    # ------------------------------------------------------------------ #

    def change_password(self, user_id: int, dto: ChangePasswordIn) -> UserView:
        """
        Replace the password of ``user_id`` and clear the forced-change flag.

        Checks run in order: user exists, current password matches, policy
        (all violations reported together), new differs from current.

        :raises NotFoundError: Unknown user.
        :raises IncorrectCurrentPasswordError: Current password mismatch.
        :raises PolicyViolationError: New password breaks one or more rules.
        :raises SamePasswordError: New password equals the current one.
        """
        with self.rw_uow() as uow:
            user = uow.users.get(user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            if not user.verify_password(dto.current_password):
                raise IncorrectCurrentPasswordError()
            result = validate_password(dto.new_password)
            if not result.valid:
                raise PolicyViolationError(result.violations)
            if dto.current_password == dto.new_password:
                raise SamePasswordError()
            uow.users.set_password(user, dto.new_password, force_change=False)
            view = UserView.from_model(user)

        log.info("auth.change_password", extra={"user_id": user_id})
        return view

    # ------------------------------------------------------------------ #
    # Provisioning
    # ------------------------------------------------------------------ #

    def provision_user(self, actor_id: int, dto: ProvisionIn) -> ProvisionOut:
        """
        Create an account on behalf of an administrator.

        The account starts with ``must_change_password`` set. Without an
        explicit password a random one is generated and returned once.

        :raises PasswordChangeRequiredError: Actor has a pending forced change.
        :raises ForbiddenError: Actor is not an administrator.
        """
        actor = self.ensure_password_current(actor_id)
        if actor.role != UserRole.ADMIN.value:
            raise ForbiddenError()
        out = self.create_account(
            email=dto.email,
            name=dto.name,
            password=dto.password,
            role=UserRole(dto.role),
            force_password_change=True,
        )
        log.info("auth.provision", extra={"user_id": out.user.id})
        return out

    def create_account(
        self,
        *,
        email: str,
        name: str,
        password: str | None,
        role: UserRole,
        force_password_change: bool,
    ) -> ProvisionOut:
        """Validate and insert an account without opening a session."""
        email = self._normalize_email(email)
        name = (name or "").strip()
        if not email or not name:
            raise ValidationError(MSG_FIELDS_REQUIRED)
        if not EMAIL_RE.match(email):
            raise InvalidEmailFormatError()
        with self.ro_uow() as uow:
            taken = uow.users.exists_by_email(email)
        if taken:
            raise DuplicateEmailError()

        generated = None
        if password:
            self._check_registration_password(password)
        else:
            generated = password = secrets.token_urlsafe(12)

        view = self._insert_user(
            email=email,
            name=name,
            password=password,
            role=role,
            force_password_change=force_password_change,
        )
        return ProvisionOut(user=view, temporary_password=generated)

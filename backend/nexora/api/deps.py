"""Shared API helpers for request parsing and cross-cutting concerns."""

from __future__ import annotations

import functools
import time
from collections.abc import Callable
from typing import Any, TypeVar

from flask import Response, current_app, g, jsonify, request
from marshmallow import Schema
from marshmallow import ValidationError as MarshmallowValidationError

from nexora.core.errors import BadRequest, Unauthorized
from nexora.core.extensions import get_token_store
from nexora.services._shared.base import BaseService, ServiceContext
from nexora.services._shared.errors import ServiceError
from nexora.services.auth.service import MSG_TOKEN_INVALID, AuthService
from nexora.services.tokens.service import TokenService

F = TypeVar("F", bound=Callable[..., Any])

MSG_TOKEN_REQUIRED = "Token requis"


def get_auth_service() -> AuthService:
    """Build the request-scoped :class:`AuthService` over the app's token store."""
    tokens = TokenService(get_token_store(), policy=current_app.extensions["token_policy"])
    ctx = ServiceContext(actor_id=g.get("user_id"), request_id=g.get("request_id"))
    return AuthService(
        tokens,
        registration_min_length=current_app.config.get("REGISTRATION_MIN_PASSWORD_LENGTH", 6),
        ctx=ctx,
    )


def bearer_token() -> str | None:
    """Return the token of an ``Authorization: Bearer <token>`` header, if any."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def load_payload(schema: Schema, message: str) -> dict[str, Any]:
    """
    Load the JSON body with ``schema``.

    :param message: Client-facing message used when the payload is rejected.
    :raises BadRequest: With ``code=validation_error`` and the field errors.
    """
    try:
        return schema.load(request.get_json(silent=True) or {})
    except MarshmallowValidationError as exc:
        raise BadRequest(
            message, code="validation_error", details={"errors": exc.messages}
        ) from exc


def service_errors(func: F) -> F:
    """Translate service-layer errors raised by the handler into API errors."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        try:
            return func(*args, **kwargs)
        except ServiceError as exc:
            raise BaseService.translate_exceptions(exc) from exc

    return wrapper  # type: ignore[return-value]


def require_auth(
    *,
    invalid_message: str = MSG_TOKEN_INVALID,
    allow_pending_password_change: bool = False,
) -> Callable[[F], F]:
    """
    Ensure the request carries a live access token; stores its owner in ``g.user_id``.

    :param invalid_message: Message of the 401 for unknown or expired tokens.
    :param allow_pending_password_change: Let accounts with a forced password
        change through (``me`` and ``change-password`` need this).
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any):
            token = bearer_token()
            if not token:
                raise Unauthorized(MSG_TOKEN_REQUIRED, code="token_missing")
            try:
                service = get_auth_service()
                g.user_id = service.authenticate_token(token, message=invalid_message)
                if not allow_pending_password_change:
                    service.ensure_password_current(g.user_id)
            except ServiceError as exc:
                raise BaseService.translate_exceptions(exc) from exc
            return func(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator


def json_response(payload: Any, *, status: int = 200) -> Response:
    """Return a JSON response enforcing a consistent MIME type."""

    response = jsonify(payload)
    response.status_code = status
    return response


def timing(func: F) -> F:
    """Decorator capturing handler execution time in milliseconds."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            current_app.logger.debug(
                "request.elapsed",
                extra={"endpoint": request.endpoint, "elapsed_ms": round(elapsed_ms, 2)},
            )

    return wrapper  # type: ignore[return-value]

from __future__ import annotations

from dataclasses import dataclass
from http import HTTPStatus

from nexora.core import errors as api_errors
from nexora.services._shared.errors import (
    ForbiddenError,
    IncorrectCurrentPasswordError,
    InvalidCredentialsError,
    NotFoundError,
    PasswordChangeRequiredError,
    PolicyViolationError,
    ServiceError,
    StorageError,
    TokenInvalidError,
    ValidationError,
)
from nexora.uow.sqlalchemy_uow import (
    SQLAlchemyReadOnlyUnitOfWork,
    SQLAlchemyUnitOfWork,
)


@dataclass(slots=True)
class ServiceContext:
    """
    Carry cross-cutting request-scoped data.

    :param actor_id: Authenticated user identifier.
    :param request_id: Correlation id for logging/tracing.
    """

    actor_id: int | None = None
    request_id: str | None = None


class BaseService:
    """
    Base class for application services.

    Responsibilities
    ----------------
    * Provide helpers to run read-only and read-write units of work.
    * Centralize error translation.
    * Keep services thin, orchestration-only, no web/ORM leakage.
    """

    def __init__(self, *, ctx: ServiceContext | None = None) -> None:
        self.ctx = ctx or ServiceContext()

    # -------------------------- UoW helpers ---------------------------------

    def rw_uow(self) -> SQLAlchemyUnitOfWork:
        """
        Create a read-write Unit of Work.

        :returns: Read-write UoW instance.
        :rtype: SQLAlchemyUnitOfWork
        """
        return SQLAlchemyUnitOfWork()

    def ro_uow(self, *, enforce_db_readonly: bool = True) -> SQLAlchemyReadOnlyUnitOfWork:
        """
        Create a read-only Unit of Work.

        :param enforce_db_readonly: Apply ``SET TRANSACTION READ ONLY`` when supported.
        :returns: Read-only UoW instance.
        :rtype: SQLAlchemyReadOnlyUnitOfWork
        """
        return SQLAlchemyReadOnlyUnitOfWork(enforce_db_readonly=enforce_db_readonly)

    # -------------------------- Error handling ------------------------------

    @staticmethod
    def translate_exceptions(exc: Exception) -> Exception:
        """
        Map service-level errors to API-level (HTTP) errors.

        :param exc: Exception raised within the service.
        :type exc: Exception
        :returns: Translated exception ready to be re-raised; anything that is
            not a :class:`ServiceError` is returned untouched.
        :rtype: Exception
        """
        if not isinstance(exc, ServiceError):
            return exc

        message = str(exc)

        if isinstance(exc, PolicyViolationError):
            return api_errors.BadRequest(
                message, code=exc.code, details={"violations": exc.violations}
            )

        if isinstance(exc, ValidationError):
            # → 400 Bad Request
            return api_errors.BadRequest(message, code=exc.code)

        if isinstance(exc, TokenInvalidError):
            # → 401, clients key silent refresh off ``expired``
            return api_errors.Unauthorized(message, code=exc.code, extra={"expired": exc.expired})

        if isinstance(exc, InvalidCredentialsError | IncorrectCurrentPasswordError):
            return api_errors.Unauthorized(message, code=exc.code)

        if isinstance(exc, NotFoundError):
            # → 404 Not Found
            return api_errors.NotFound(message)

        if isinstance(exc, ForbiddenError | PasswordChangeRequiredError):
            return api_errors.Forbidden(message, code=exc.code)

        if isinstance(exc, StorageError):
            return api_errors.APIError(
                message,
                status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
                code=exc.code,
            )

        return api_errors.APIError(message, status_code=HTTPStatus.BAD_REQUEST, code=exc.code)

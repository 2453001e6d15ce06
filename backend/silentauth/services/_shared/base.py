# silentauth/services/_shared/base.py
from __future__ import annotations

from datetime import datetime

from silentauth.core import errors as api_errors
from silentauth.services._shared.errors import (
    AccessDeniedError,
    AntiForgeryError,
    AuthError,
    ConflictError,
    InsufficientRoleError,
    NotFoundError,
    ServiceError,
)
from silentauth.services._shared.ports.token_codec import Clock, utc_now
from silentauth.uow.sqlalchemy_uow import (
    SQLAlchemyReadOnlyUnitOfWork,
    SQLAlchemyUnitOfWork,
)


class BaseService:
    """
    Base class for application services.

    Responsibilities
    ----------------
    * Provide helpers to run read-only and read-write units of work.
    * Own the clock so time-dependent logic is testable.
    * Centralize error translation to HTTP problems.

    Notes
    -----
    - Services must never touch the global session; always use a Unit of Work.
    - Services never import Flask request state; the API layer passes values in.
    """

    def __init__(self, *, clock: Clock = utc_now) -> None:
        """
        :param clock: Source of the current UTC time.
        """
        self.clock = clock

    # -------------------------- UoW helpers ---------------------------------

    def rw_uow(self) -> SQLAlchemyUnitOfWork:
        """
        Create a read-write Unit of Work.

        :returns: Read-write UoW instance.
        :rtype: SQLAlchemyUnitOfWork
        """
        return SQLAlchemyUnitOfWork()

    def ro_uow(self) -> SQLAlchemyReadOnlyUnitOfWork:
        """
        Create a read-only Unit of Work.

        :returns: Read-only UoW instance.
        :rtype: SQLAlchemyReadOnlyUnitOfWork
        """
        return SQLAlchemyReadOnlyUnitOfWork()

    def now_utc(self) -> datetime:
        return self.clock()

    # -------------------------- Error handling ------------------------------

    def translate_exceptions(self, exc: Exception) -> Exception:
        """
        Map domain/service-level errors to API-level (HTTP) errors.

        Only an expired access token carries the renewal marker; every other
        authentication failure is a plain 401 with its kind as ``code``.

        :param exc: Exception raised within the service.
        :type exc: Exception
        :returns: Translated exception ready to be re-raised.
        :rtype: Exception
        """
        if isinstance(exc, AccessDeniedError):
            headers = api_errors.renewal_headers() if exc.renewable else None
            return api_errors.Unauthorized(str(exc), code=exc.kind.value, headers=headers)

        if isinstance(exc, (AntiForgeryError, InsufficientRoleError)):
            # → 403 Forbidden
            return api_errors.Forbidden(str(exc), code=exc.kind.value)

        if isinstance(exc, AuthError):
            # → 401 Unauthorized
            return api_errors.Unauthorized(str(exc), code=exc.kind.value)

        if isinstance(exc, NotFoundError):
            # → 404 Not Found
            return api_errors.NotFound(str(exc))

        if isinstance(exc, ConflictError):
            # → 409 Conflict
            return api_errors.Conflict(str(exc))

        # Any other ServiceError subclass → 400 Bad Request
        if isinstance(exc, ServiceError):
            return api_errors.APIError(
                message=str(exc),
                status_code=400,
                code="bad_request",
            )

        # Fallback: return untouched (will bubble up to Flask handler)
        return exc

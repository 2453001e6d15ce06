# silentauth/services/principals/service.py
from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy.exc import IntegrityError

from silentauth.models.principal import DEFAULT_ROLES, Principal
from silentauth.services._shared.base import BaseService
from silentauth.services._shared.errors import ConflictError, NotFoundError, violates
from silentauth.services.credentials.dto import PrincipalOut


class PrincipalService(BaseService):
    """Principal lookups and provisioning used by the CLI and the issuance flow."""

    def create(
        self,
        email: str,
        *,
        password: str | None = None,
        roles: Iterable[str] | None = None,
    ) -> PrincipalOut:
        """
        Provision a principal.

        :param email: Login email; normalized by the model.
        :param password: Optional local password (omit for federated-only).
        :param roles: Authorities; defaults to ``["user"]``.
        :raises ConflictError: If the email is already registered.
        """
        with self.rw_uow() as uow:
            if uow.principals.exists_by_email(email):
                raise ConflictError("Principal", "email already registered")
            principal = Principal(email=email, roles=list(roles or DEFAULT_ROLES))
            if password:
                principal.password = password
            try:
                uow.principals.add(principal)
            except IntegrityError as exc:
                if violates(exc, "uq_principals_email"):
                    raise ConflictError("Principal", "email already registered") from exc
                raise
            return PrincipalOut.from_model(principal)

    def get(self, principal_id: str) -> PrincipalOut | None:
        """Load a principal snapshot, or ``None`` when it no longer exists."""
        with self.ro_uow() as uow:
            principal = uow.principals.get(principal_id)
            return PrincipalOut.from_model(principal) if principal is not None else None

    def get_by_email(self, email: str) -> PrincipalOut:
        """
        :raises NotFoundError: When no principal has this email.
        """
        with self.ro_uow() as uow:
            principal = uow.principals.get_by_email(email)
            if principal is None:
                raise NotFoundError("Principal", email)
            return PrincipalOut.from_model(principal)

    def set_enabled(self, email: str, enabled: bool) -> PrincipalOut:
        """
        Enable or disable a principal.

        A disabled principal cannot log in, and its next refresh revokes the
        session. Access tokens already issued stay valid until they expire.

        :raises NotFoundError: When no principal has this email.
        """
        with self.rw_uow() as uow:
            principal = uow.principals.get_by_email(email)
            if principal is None:
                raise NotFoundError("Principal", email)
            principal.enabled = enabled
            uow.principals.flush()
            return PrincipalOut.from_model(principal)

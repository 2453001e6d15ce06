# silentauth/services/credentials/service.py
from __future__ import annotations

import logging
from functools import lru_cache
from typing import NoReturn

from werkzeug.security import check_password_hash, generate_password_hash

from silentauth.core.logger import log_event
from silentauth.models.principal import Principal
from silentauth.services._shared.base import BaseService
from silentauth.services._shared.errors import CredentialInvalidError
from silentauth.services._shared.ports.token_codec import Clock, utc_now
from silentauth.services.credentials.dto import FederatedIdentity, PrincipalOut
from silentauth.services.credentials.federation import FederatedAssertionVerifier

log = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    """Hash compared against for unknown emails so every path pays the same cost."""
    return generate_password_hash("silentauth-timing-equalizer")


class CredentialValidator(BaseService):
    """
    Turn a credential into a validated principal, or fail uniformly.

    Every failure raises :class:`CredentialInvalidError` with the same
    message, so callers cannot tell an unknown email from a wrong password.
    """

    def __init__(
        self,
        *,
        federation: FederatedAssertionVerifier | None = None,
        clock: Clock = utc_now,
    ) -> None:
        """
        :param federation: Verifier for provider assertions; ``None`` disables
            federated login.
        :param clock: Source of the login timestamp.
        """
        super().__init__(clock=clock)
        self.federation = federation or FederatedAssertionVerifier({})

    # ------------------------------------------------------------------ #
    # Password
    # ------------------------------------------------------------------ #

    def verify_password(self, email: str, password: str) -> PrincipalOut:
        """
        Validate an email/password pair.

        :param email: Login email (any case).
        :param password: Raw password.
        :returns: The authenticated principal.
        :raises CredentialInvalidError: Unknown email, disabled or
            federated-only principal, or wrong password.
        """
        with self.rw_uow() as uow:
            principal = uow.principals.get_by_email(email or "")
            if principal is None:
                check_password_hash(_dummy_hash(), password or "")
                self._reject("unknown_principal")
            if not principal.verify_password(password or "") or not principal.enabled:
                self._reject("bad_password_or_disabled", principal.id)

            uow.principals.touch_last_login(principal.id, self.now_utc())
            return PrincipalOut.from_model(principal)

    # ------------------------------------------------------------------ #
    # Federated
    # ------------------------------------------------------------------ #

    def verify_federated(self, provider: str, assertion: str) -> PrincipalOut:
        """
        Validate a provider-signed assertion and resolve the local principal.

        First login links the provider subject to an existing principal with
        the same email only when the provider marks the email as verified;
        otherwise a new principal is created.

        :raises CredentialInvalidError: Unknown provider, invalid assertion,
            missing email on first login, an unverified email colliding with
            an existing account, or a disabled principal.
        """
        identity = self.federation.verify(provider, assertion)

        with self.rw_uow() as uow:
            link = uow.identity_links.get_by_provider_subject(identity.provider, identity.subject)
            if link is not None:
                principal = uow.principals.get(link.principal_id)
            else:
                principal = self._resolve_first_login(uow, identity)
                uow.identity_links.link(
                    provider=identity.provider,
                    subject=identity.subject,
                    principal_id=principal.id,
                )

            if principal is None or not principal.enabled:
                self._reject("federated_principal_unavailable")

            uow.principals.touch_last_login(principal.id, self.now_utc())
            return PrincipalOut.from_model(principal)

    def _resolve_first_login(self, uow, identity: FederatedIdentity) -> Principal:
        if not identity.email:
            self._reject("federated_email_missing")
        existing = uow.principals.get_by_email(identity.email)
        if existing is not None:
            if not identity.email_verified:
                self._reject("federated_email_unverified", existing.id)
            return existing
        principal = Principal(email=identity.email)
        return uow.principals.add(principal)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _reject(reason: str, principal_id: str | None = None) -> NoReturn:
        log_event(
            log,
            "auth.login_failed",
            message=f"auth.login_failed reason={reason}",
            principal_id=principal_id,
        )
        raise CredentialInvalidError()

# silentauth/services/credentials/dto.py
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from silentauth.models.principal import Principal

# --------------------------- Output DTOs ---------------------------------- #


@dataclass(frozen=True, slots=True)
class PrincipalOut:
    """
    Validated principal handed to the issuance service.

    :param id: Principal identifier.
    :type id: str
    :param email: Normalized login email.
    :type email: str
    :param roles: Authority strings copied into access tokens.
    :type roles: tuple[str, ...]
    :param enabled: Whether the principal may authenticate.
    :type enabled: bool
    """

    id: str
    email: str
    roles: tuple[str, ...]
    enabled: bool = True
    last_login_at: datetime | None = None

    @classmethod
    def from_model(cls, principal: Principal) -> PrincipalOut:
        return cls(
            id=principal.id,
            email=principal.email,
            roles=tuple(principal.roles or ()),
            enabled=bool(principal.enabled),
            last_login_at=principal.last_login_at,
        )


@dataclass(frozen=True, slots=True)
class FederatedIdentity:
    """
    Identity asserted by a federated provider after signature checks.

    :param provider: Configured provider name.
    :param subject: Provider's stable ``sub``.
    :param email: Asserted email, if any.
    :param email_verified: Whether the provider vouches for the email.
    """

    provider: str
    subject: str
    email: str | None
    email_verified: bool


# ------------------------ Config DTO --------------------------------------- #


@dataclass(frozen=True, slots=True)
class FederatedProviderConfig:
    """
    Trust settings for one federated provider.

    :param name: Provider key used in the URL (``/auth/federated/<name>``).
    :param issuer: Expected ``iss`` of assertions.
    :param audience: Expected ``aud`` (this service's client id).
    :param jwks_uri: Where the provider publishes its signing keys.
    :param public_key: PEM public key, an alternative to ``jwks_uri``.
    :param algorithms: Accepted signing algorithms.
    """

    name: str
    issuer: str
    audience: str
    jwks_uri: str | None = None
    public_key: str | None = None
    algorithms: tuple[str, ...] = ("RS256",)

    @classmethod
    def from_mapping(cls, name: str, data: Mapping[str, Any]) -> FederatedProviderConfig:
        """
        Build from a ``FEDERATED_PROVIDERS`` entry.

        :raises ValueError: When required keys are missing or no key source is given.
        """
        try:
            issuer = str(data["issuer"])
            audience = str(data["audience"])
        except KeyError as exc:
            raise ValueError(f"Federated provider {name!r} is missing {exc.args[0]!r}") from exc
        if not data.get("jwks_uri") and not data.get("public_key"):
            raise ValueError(f"Federated provider {name!r} needs 'jwks_uri' or 'public_key'")
        return cls(
            name=name,
            issuer=issuer,
            audience=audience,
            jwks_uri=data.get("jwks_uri"),
            public_key=data.get("public_key"),
            algorithms=tuple(data.get("algorithms") or ("RS256",)),
        )

"""Verification of provider-signed identity assertions (OIDC ID tokens)."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import jwt
from jwt import PyJWKClient

from silentauth.services._shared.errors import CredentialInvalidError
from silentauth.services.credentials.dto import FederatedIdentity, FederatedProviderConfig

log = logging.getLogger(__name__)


class FederatedAssertionVerifier:
    """
    Validate ID tokens issued by configured providers.

    Signature, ``exp``, ``iss`` and ``aud`` are enforced by PyJWT. Keys come
    from the provider's JWKS endpoint (cached per provider by
    :class:`jwt.PyJWKClient`) or from a pinned PEM key.
    """

    def __init__(self, providers: Mapping[str, FederatedProviderConfig]) -> None:
        self.providers = dict(providers)
        self._jwk_clients: dict[str, PyJWKClient] = {}

    @classmethod
    def from_config(cls, raw: Mapping[str, Mapping[str, Any]]) -> FederatedAssertionVerifier:
        return cls({name: FederatedProviderConfig.from_mapping(name, data) for name, data in raw.items()})

    def _signing_key(self, cfg: FederatedProviderConfig, assertion: str) -> Any:
        if cfg.public_key:
            return cfg.public_key
        client = self._jwk_clients.get(cfg.name)
        if client is None:
            client = PyJWKClient(cfg.jwks_uri)  # type: ignore[arg-type]
            self._jwk_clients[cfg.name] = client
        return client.get_signing_key_from_jwt(assertion).key

    def verify(self, provider: str, assertion: str) -> FederatedIdentity:
        """
        Verify ``assertion`` for ``provider``.

        :raises CredentialInvalidError: Unknown provider or any verification failure.
        """
        cfg = self.providers.get(provider)
        if cfg is None or not assertion:
            raise CredentialInvalidError()
        try:
            claims = jwt.decode(
                assertion,
                self._signing_key(cfg, assertion),
                algorithms=list(cfg.algorithms),
                audience=cfg.audience,
                issuer=cfg.issuer,
                options={"require": ["exp", "iat", "iss", "aud", "sub"]},
            )
        except jwt.PyJWTError as exc:
            log.info("Federated assertion rejected: provider=%s reason=%s", provider, type(exc).__name__)
            raise CredentialInvalidError() from exc

        email = claims.get("email")
        verified = claims.get("email_verified")
        return FederatedIdentity(
            provider=provider,
            subject=str(claims["sub"]),
            email=email.strip().lower() if isinstance(email, str) and email.strip() else None,
            email_verified=verified is True or (isinstance(verified, str) and verified.lower() == "true"),
        )

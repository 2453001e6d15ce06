"""RSA key ring: one signing key plus verification-only keys, addressed by ``kid``."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

log = logging.getLogger(__name__)


def generate_private_key(key_size: int = 2048) -> rsa.RSAPrivateKey:
    """Generate a fresh RSA private key."""
    return rsa.generate_private_key(public_exponent=65537, key_size=key_size)


def private_key_to_pem(key: rsa.RSAPrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def public_key_to_pem(key: rsa.RSAPublicKey) -> bytes:
    return key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def _load_private(pem: str | bytes) -> rsa.RSAPrivateKey:
    data = pem.encode() if isinstance(pem, str) else pem
    key = serialization.load_pem_private_key(data, password=None)
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ValueError("Signing key must be an RSA private key")
    return key


def _load_public(pem: str | bytes) -> rsa.RSAPublicKey:
    data = pem.encode() if isinstance(pem, str) else pem
    key = serialization.load_pem_public_key(data)
    if not isinstance(key, rsa.RSAPublicKey):
        raise ValueError("Verification key must be an RSA public key")
    return key


def parse_previous_keys(raw: str) -> dict[str, Path]:
    """Parse ``kid=path,kid2=path2`` into a mapping.

    :raises ValueError: On an entry without ``=``.
    """
    result: dict[str, Path] = {}
    for entry in (item.strip() for item in raw.split(",")):
        if not entry:
            continue
        kid, sep, path = entry.partition("=")
        if not sep or not kid.strip() or not path.strip():
            raise ValueError(f"Invalid JWT_PREVIOUS_PUBLIC_KEYS entry: {entry!r}")
        result[kid.strip()] = Path(path.strip())
    return result


@dataclass(slots=True)
class KeyRing:
    """
    Keys used by the token codec.

    :ivar signing_kid: ``kid`` stamped on newly signed tokens, ``None`` for a
        verification-only ring (downstream guards).
    :ivar private_key: Current signing key.
    :ivar public_keys: Every key accepted for verification, current included.
    """

    signing_kid: str | None
    private_key: rsa.RSAPrivateKey | None
    public_keys: dict[str, rsa.RSAPublicKey] = field(default_factory=dict)

    # ---------------------------- constructors ----------------------------

    @classmethod
    def generate(cls, kid: str = "ephemeral") -> KeyRing:
        """Build a ring around a freshly generated in-memory key pair."""
        private = generate_private_key()
        return cls(signing_kid=kid, private_key=private, public_keys={kid: private.public_key()})

    @classmethod
    def from_pem(
        cls,
        kid: str,
        private_pem: str | bytes,
        previous: Mapping[str, str | bytes] | None = None,
    ) -> KeyRing:
        """
        Build a ring from PEM material.

        :param kid: Identifier of the signing key.
        :param private_pem: PEM-encoded RSA private key.
        :param previous: ``kid -> public PEM`` still accepted for verification.
        """
        private = _load_private(private_pem)
        public_keys = {k: _load_public(pem) for k, pem in (previous or {}).items()}
        public_keys[kid] = private.public_key()
        return cls(signing_kid=kid, private_key=private, public_keys=public_keys)

    @classmethod
    def from_jwks(cls, jwks: Mapping[str, Any]) -> KeyRing:
        """Build a verification-only ring from a published JWK Set."""
        public_keys: dict[str, rsa.RSAPublicKey] = {}
        for index, jwk in enumerate(jwks.get("keys", [])):
            if jwk.get("kty") != "RSA":
                continue
            key = RSAAlgorithm.from_jwk(jwk)
            if isinstance(key, rsa.RSAPublicKey):
                public_keys[str(jwk.get("kid") or f"key-{index}")] = key
        if not public_keys:
            raise ValueError("JWK Set contains no RSA public keys")
        return cls(signing_kid=None, private_key=None, public_keys=public_keys)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> KeyRing:
        """
        Build the ring from application config.

        Precedence: ``JWT_PRIVATE_KEY`` (PEM text), ``JWT_PRIVATE_KEY_FILE``,
        then an ephemeral pair when ``JWT_EPHEMERAL_KEYS`` allows it.

        :raises RuntimeError: When no key is configured and ephemeral keys are
            disabled.
        """
        kid = config.get("JWT_KEY_ID", "primary")
        previous = {
            prev_kid: path.read_bytes()
            for prev_kid, path in parse_previous_keys(config.get("JWT_PREVIOUS_PUBLIC_KEYS", "")).items()
        }

        pem: str | bytes | None = config.get("JWT_PRIVATE_KEY")
        key_file = config.get("JWT_PRIVATE_KEY_FILE")
        if not pem and key_file:
            pem = Path(key_file).read_bytes()
        if pem:
            return cls.from_pem(kid, pem, previous)

        if not config.get("JWT_EPHEMERAL_KEYS", False):
            raise RuntimeError(
                "No signing key configured. Set JWT_PRIVATE_KEY or JWT_PRIVATE_KEY_FILE."
            )
        log.warning("Using an ephemeral RSA signing key; tokens will not survive a restart.")
        ring = cls.generate(kid)
        for prev_kid, prev_pem in previous.items():
            ring.public_keys[prev_kid] = _load_public(prev_pem)
        return ring

    # ------------------------------ lookups ------------------------------

    @property
    def can_sign(self) -> bool:
        return self.private_key is not None and self.signing_kid is not None

    def verification_key(self, kid: str) -> rsa.RSAPublicKey | None:
        return self.public_keys.get(kid)

    def jwks(self, algorithm: str = "RS256") -> dict[str, Any]:
        """Publish every verification key as a JWK Set."""
        keys = []
        for kid, public in self.public_keys.items():
            jwk = RSAAlgorithm.to_jwk(public, as_dict=True)
            jwk.update({"kid": kid, "use": "sig", "alg": algorithm})
            keys.append(jwk)
        return {"keys": keys}

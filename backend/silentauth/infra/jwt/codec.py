"""PyJWT-backed implementation of the :class:`TokenCodec` port."""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import datetime
from typing import Any

import jwt
from jwt.api_jws import PyJWS

from silentauth.infra.jwt.keys import KeyRing
from silentauth.services._shared.claims import Claims, ClaimsT
from silentauth.services._shared.errors import AuthErrorKind, TokenVerificationError
from silentauth.services._shared.ports.token_codec import Clock, TokenCodec, utc_now


class JWTTokenCodec(TokenCodec):
    """
    Sign and verify RS256 JWS tokens with a :class:`KeyRing`.

    Verification reports the first failing check, in this order:

    1. structure (three base64url segments, JSON header) -> ``token_malformed``
    2. signature for the header's ``kid`` (every key when absent); unknown
       ``kid`` or an algorithm outside ``algorithms`` -> ``token_bad_signature``
    3. claim set parses into the expected variant -> ``token_malformed``
    4. ``exp <= now`` -> ``token_expired``
    5. ``nbf > now`` -> ``token_not_yet_valid``
    6. ``iss`` -> ``token_wrong_issuer``
    7. ``aud`` -> ``token_wrong_audience``

    Time-based checks run against the injected clock rather than PyJWT's own
    validation so the boundary (``exp == now`` is expired) is exact.
    ``allow_expired`` skips step 4 only; every other check still applies.
    """

    def __init__(
        self,
        keys: KeyRing,
        *,
        issuer: str,
        audience: str,
        algorithms: Sequence[str] = ("RS256",),
        clock: Clock = utc_now,
    ) -> None:
        self.keys = keys
        self.issuer = issuer
        self.audience = audience
        self.algorithms = tuple(algorithms)
        self.clock = clock
        self._jws = PyJWS(algorithms=list(self.algorithms))

    # ------------------------------- signing -------------------------------

    def sign(self, claims: Claims) -> str:
        if not self.keys.can_sign:
            raise RuntimeError("Key ring has no signing key; this codec can only verify.")
        payload = claims.to_payload()
        payload["iss"] = self.issuer
        payload["aud"] = self.audience
        return jwt.encode(
            payload,
            self.keys.private_key,
            algorithm=self.algorithms[0],
            headers={"kid": self.keys.signing_kid},
        )

    # ----------------------------- verification -----------------------------

    def verify(
        self,
        token: str,
        expected: type[ClaimsT],
        *,
        now: datetime | None = None,
        allow_expired: bool = False,
    ) -> ClaimsT:
        header = self._check_structure(token)
        raw_payload = self._check_signature(token, header)
        payload = self._parse_payload(raw_payload)
        try:
            claims = expected.from_payload(payload)
        except (ValueError, TypeError) as exc:
            raise TokenVerificationError(AuthErrorKind.TOKEN_MALFORMED, "Unexpected claim set") from exc
        if payload.get("typ") != expected.purpose.value:
            raise TokenVerificationError(AuthErrorKind.TOKEN_MALFORMED, "Wrong token purpose")

        current = (now or self.clock()).timestamp()
        if claims.exp <= current and not allow_expired:
            raise TokenVerificationError(AuthErrorKind.TOKEN_EXPIRED, "Token has expired")
        if claims.nbf is not None and claims.nbf > current:
            raise TokenVerificationError(AuthErrorKind.TOKEN_NOT_YET_VALID, "Token is not yet valid")
        if payload.get("iss") != self.issuer:
            raise TokenVerificationError(AuthErrorKind.TOKEN_WRONG_ISSUER, "Unexpected issuer")
        if not self._audience_matches(payload.get("aud")):
            raise TokenVerificationError(AuthErrorKind.TOKEN_WRONG_AUDIENCE, "Unexpected audience")
        return claims

    def jwks(self) -> dict[str, Any]:
        return self.keys.jwks(self.algorithms[0])

    # ------------------------------- helpers -------------------------------

    def _check_structure(self, token: str) -> dict[str, Any]:
        if not isinstance(token, str) or token.count(".") != 2:
            raise TokenVerificationError(AuthErrorKind.TOKEN_MALFORMED, "Token is not a compact JWS")
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as exc:
            raise TokenVerificationError(AuthErrorKind.TOKEN_MALFORMED, "Token is not a compact JWS") from exc
        return header

    def _check_signature(self, token: str, header: dict[str, Any]) -> bytes:
        alg = header.get("alg")
        if alg not in self.algorithms:
            raise TokenVerificationError(AuthErrorKind.TOKEN_BAD_SIGNATURE, "Algorithm not allowed")

        kid = header.get("kid")
        if kid is not None:
            key = self.keys.verification_key(kid)
            if key is None:
                raise TokenVerificationError(AuthErrorKind.TOKEN_BAD_SIGNATURE, "Unknown signing key")
            candidates = [key]
        else:
            candidates = list(self.keys.public_keys.values())

        for key in candidates:
            try:
                decoded = self._jws.decode_complete(token, key=key, algorithms=[alg])
            except jwt.InvalidSignatureError:
                continue
            except jwt.InvalidTokenError as exc:
                raise TokenVerificationError(AuthErrorKind.TOKEN_MALFORMED, "Token is not a compact JWS") from exc
            return decoded["payload"]
        raise TokenVerificationError(AuthErrorKind.TOKEN_BAD_SIGNATURE, "Signature verification failed")

    @staticmethod
    def _parse_payload(raw: bytes) -> dict[str, Any]:
        try:
            payload = json.loads(raw)
        except ValueError as exc:
            raise TokenVerificationError(AuthErrorKind.TOKEN_MALFORMED, "Payload is not JSON") from exc
        if not isinstance(payload, dict):
            raise TokenVerificationError(AuthErrorKind.TOKEN_MALFORMED, "Payload is not a JSON object")
        return payload

    def _audience_matches(self, aud: Any) -> bool:
        if isinstance(aud, str):
            return aud == self.audience
        if isinstance(aud, list):
            return self.audience in aud
        return False

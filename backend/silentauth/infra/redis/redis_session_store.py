"""Redis adapter for the session store port."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import redis  # type: ignore[import-untyped]
from redis.client import Pipeline  # type: ignore[import-untyped]

from silentauth.services._shared.errors import NotFoundError, SessionRevokedError
from silentauth.services._shared.ports.session_store import (
    ConsumeOutcome,
    ConsumeResult,
    RefreshTokenStatus,
    RefreshTokenView,
    RevocationReason,
    SessionStore,
    SessionView,
)

# Records outlive token expiry so late presentations classify as EXPIRED or
# REUSED instead of NOT_FOUND.
RETENTION_GRACE = timedelta(days=1)


def _b(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return value.decode() if isinstance(value, bytes | bytearray) else str(value)


def _ts(dt: datetime) -> str:
    return repr(dt.timestamp())


def _dt(raw: Any) -> datetime | None:
    text = _b(raw)
    return datetime.fromtimestamp(float(text), tz=UTC) if text else None


@dataclass(slots=True)
class RedisSessionStore(SessionStore):
    """
    Redis-backed session store with atomic consumption.

    Layout
    ------
    ``sess:{sid}``
        Hash: ``principal_id``, ``created_at``, ``current``, ``revoked``,
        ``revoked_at``, ``revoked_reason``.
    ``rt:{jti}``
        Hash: ``session_id``, ``principal_id``, ``issued_at``, ``expires_at``,
        ``status``, ``replaced_by``.
    ``sess:p:{principal_id}``
        Set of session ids.

    Every read-modify-write runs inside a ``WATCH``/``MULTI``/``EXEC`` retry
    loop, so concurrent consumers of the same token serialize and only one
    observes ``current``.

    :param r: A Redis client (already connected).
    """

    r: redis.Redis

    # -------------------- helpers --------------------

    @staticmethod
    def _ks(session_id: str) -> str:
        return f"sess:{session_id}"

    @staticmethod
    def _kt(jti: str) -> str:
        return f"rt:{jti}"

    @staticmethod
    def _kp(principal_id: str) -> str:
        return f"sess:p:{principal_id}"

    @staticmethod
    def _now(now: datetime | None) -> datetime:
        return now if now is not None else datetime.now(UTC)

    @staticmethod
    def _ttl(expires_at: datetime, now: datetime) -> int:
        return max(1, int((expires_at + RETENTION_GRACE - now).total_seconds()))

    def _revoke_watched(
        self,
        p: Pipeline,
        session_id: str,
        session: dict[bytes, bytes],
        reason: RevocationReason,
    ) -> None:
        """Queue and execute a revocation. ``p`` must already watch the session key."""
        current = _b(session.get(b"current"))
        current_status = None
        if current:
            p.watch(self._kt(current))
            current_status = _b(p.hget(self._kt(current), "status"))

        p.multi()
        p.hset(
            self._ks(session_id),
            mapping={
                "revoked": "1",
                "revoked_at": _ts(datetime.now(UTC)),
                "revoked_reason": reason.value,
            },
        )
        if current_status in (RefreshTokenStatus.CURRENT.value, RefreshTokenStatus.CONSUMED.value):
            p.hset(self._kt(current), "status", RefreshTokenStatus.REVOKED.value)
        p.execute()

    # -------------------- API ------------------------

    def create_session(self, principal_id: str, *, now: datetime | None = None) -> str:
        session_id = self.new_id()
        created = self._now(now)
        pipe = self.r.pipeline(transaction=True)
        pipe.hset(
            self._ks(session_id),
            mapping={
                "principal_id": principal_id,
                "created_at": _ts(created),
                "current": "",
                "revoked": "0",
            },
        )
        pipe.expire(self._ks(session_id), int(RETENTION_GRACE.total_seconds()))
        pipe.sadd(self._kp(principal_id), session_id)
        pipe.execute()
        return session_id

    def record_refresh_token(
        self,
        session_id: str,
        token_id: str,
        expires_at: datetime,
        *,
        now: datetime | None = None,
    ) -> None:
        """
        Insert the refresh record *before* the signed token reaches the client.

        The previous current (or consumed) token is marked ``rotated`` in the
        same transaction.
        """
        issued = self._now(now)
        ttl = self._ttl(expires_at, issued)
        k_sess = self._ks(session_id)
        k_new = self._kt(token_id)

        while True:
            try:
                with self.r.pipeline() as p:
                    p.watch(k_sess)
                    session = p.hgetall(k_sess)
                    if not session:
                        raise NotFoundError("Session", session_id)
                    if _b(session.get(b"revoked"), "0") == "1":
                        raise SessionRevokedError()

                    previous = _b(session.get(b"current"))
                    prev_exists = False
                    if previous:
                        p.watch(self._kt(previous))
                        prev_exists = bool(p.exists(self._kt(previous)))

                    p.multi()
                    if prev_exists:
                        p.hset(
                            self._kt(previous),
                            mapping={
                                "status": RefreshTokenStatus.ROTATED.value,
                                "replaced_by": token_id,
                            },
                        )
                    p.hset(
                        k_new,
                        mapping={
                            "session_id": session_id,
                            "principal_id": _b(session.get(b"principal_id")),
                            "issued_at": _ts(issued),
                            "expires_at": _ts(expires_at),
                            "status": RefreshTokenStatus.CURRENT.value,
                            "replaced_by": "",
                        },
                    )
                    p.expire(k_new, ttl)
                    p.hset(k_sess, "current", token_id)
                    p.expire(k_sess, ttl)
                    p.execute()
                return
            except redis.WatchError:
                # Concurrent modification detected; retry loop
                continue

    def consume_refresh_token(self, token_id: str, *, now: datetime | None = None) -> ConsumeOutcome:
        now_dt = self._now(now)
        k_rt = self._kt(token_id)

        while True:
            try:
                with self.r.pipeline() as p:
                    p.watch(k_rt)
                    token = p.hgetall(k_rt)
                    if not token:
                        return ConsumeOutcome(ConsumeResult.NOT_FOUND)

                    session_id = _b(token.get(b"session_id"))
                    k_sess = self._ks(session_id)
                    p.watch(k_sess)
                    session = p.hgetall(k_sess)
                    outcome = ConsumeOutcome(
                        ConsumeResult.OK,
                        session_id=session_id,
                        principal_id=_b(token.get(b"principal_id")),
                    )

                    status = _b(token.get(b"status"))
                    expires_at = _dt(token.get(b"expires_at"))
                    if expires_at is None or expires_at <= now_dt:
                        return ConsumeOutcome(ConsumeResult.EXPIRED, outcome.session_id, outcome.principal_id)
                    if (
                        not session
                        or _b(session.get(b"revoked"), "0") == "1"
                        or status == RefreshTokenStatus.REVOKED.value
                    ):
                        return ConsumeOutcome(ConsumeResult.REVOKED, outcome.session_id, outcome.principal_id)
                    if (
                        status == RefreshTokenStatus.ROTATED.value
                        or _b(session.get(b"current")) != token_id
                    ):
                        self._revoke_watched(p, session_id, session, RevocationReason.REUSE_DETECTED)
                        return ConsumeOutcome(ConsumeResult.REUSED, outcome.session_id, outcome.principal_id)
                    if status == RefreshTokenStatus.CONSUMED.value:
                        return ConsumeOutcome(
                            ConsumeResult.ALREADY_CONSUMED, outcome.session_id, outcome.principal_id
                        )

                    p.multi()
                    p.hset(k_rt, "status", RefreshTokenStatus.CONSUMED.value)
                    p.execute()
                return outcome
            except redis.WatchError:
                continue

    def revoke_session(self, session_id: str, reason: RevocationReason = RevocationReason.LOGOUT) -> bool:
        return self._revoke(session_id, reason) is not None

    def _revoke(self, session_id: str, reason: RevocationReason) -> bool | None:
        """Revoke one session. :returns: ``None`` if unknown, else whether it was newly revoked."""
        k_sess = self._ks(session_id)
        while True:
            try:
                with self.r.pipeline() as p:
                    p.watch(k_sess)
                    session = p.hgetall(k_sess)
                    if not session:
                        return None
                    if _b(session.get(b"revoked"), "0") == "1":
                        return False
                    self._revoke_watched(p, session_id, session, reason)
                return True
            except redis.WatchError:
                continue

    def revoke_all_for_principal(
        self, principal_id: str, reason: RevocationReason = RevocationReason.LOGOUT
    ) -> int:
        count = 0
        for session_id in sorted(_b(m) for m in self.r.smembers(self._kp(principal_id))):
            if self._revoke(session_id, reason):
                count += 1
        return count

    def is_session_valid(self, session_id: str) -> bool:
        revoked = self.r.hget(self._ks(session_id), "revoked")
        return revoked is not None and _b(revoked) == "0"

    def get_session(self, session_id: str) -> SessionView | None:
        h = self.r.hgetall(self._ks(session_id))
        if not h:
            return None
        created_at = _dt(h.get(b"created_at"))
        return SessionView(
            session_id=session_id,
            principal_id=_b(h.get(b"principal_id")),
            created_at=created_at or datetime.fromtimestamp(0, tz=UTC),
            current_refresh_jti=_b(h.get(b"current")) or None,
            revoked=_b(h.get(b"revoked"), "0") == "1",
            revoked_at=_dt(h.get(b"revoked_at")),
            revoked_reason=_b(h.get(b"revoked_reason")) or None,
        )

    def get_refresh_token(self, token_id: str) -> RefreshTokenView | None:
        h = self.r.hgetall(self._kt(token_id))
        if not h:
            return None
        return RefreshTokenView(
            jti=token_id,
            session_id=_b(h.get(b"session_id")),
            issued_at=_dt(h.get(b"issued_at")) or datetime.fromtimestamp(0, tz=UTC),
            expires_at=_dt(h.get(b"expires_at")) or datetime.fromtimestamp(0, tz=UTC),
            status=RefreshTokenStatus(_b(h.get(b"status"))),
            replaced_by_jti=_b(h.get(b"replaced_by")) or None,
        )

    def list_principal_sessions(self, principal_id: str) -> list[SessionView]:
        key_p = self._kp(principal_id)
        views: list[SessionView] = []
        stale: list[str] = []
        for session_id in sorted(_b(m) for m in self.r.smembers(key_p)):
            view = self.get_session(session_id)
            if view:
                views.append(view)
            else:
                # Underlying hash expired -> drop from the index
                stale.append(session_id)
        if stale:
            self.r.srem(key_p, *stale)
        return sorted(views, key=lambda v: v.created_at)


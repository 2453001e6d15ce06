"""Behavioural tests shared by every session store backend.

The same scenarios run against the in-memory, Redis (fakeredis) and SQL
stores so that rotation, reuse detection and revocation classify identically.
"""

from __future__ import annotations

import threading
from datetime import timedelta

import fakeredis
import pytest
from silentauth.core.extensions import metadata
from silentauth.infra.redis import RedisSessionStore
from silentauth.infra.sql import SqlSessionStore
from silentauth.models import Principal
from silentauth.repositories.auth_session import RefreshTokenRepository
from silentauth.services._shared.errors import NotFoundError, SessionRevokedError
from silentauth.services._shared.ports import (
    ConsumeResult,
    InMemorySessionStore,
    RefreshTokenStatus,
    RevocationReason,
)
from silentauth.uow import SQLAlchemyUnitOfWork
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from tests.factories.principal import PrincipalFactory
from tests.helpers.clock import T0

REFRESH_EXP = T0 + timedelta(days=14)


@pytest.fixture(params=["memory", "redis", "sql"])
def backend(request):
    return request.param


@pytest.fixture()
def store(backend, request):
    if backend == "memory":
        return InMemorySessionStore()
    if backend == "redis":
        return RedisSessionStore(fakeredis.FakeRedis(server=fakeredis.FakeServer()))
    request.getfixturevalue("factories")
    return SqlSessionStore()


@pytest.fixture()
def principal_id(backend, request) -> str:
    if backend != "sql":
        return "principal-1"
    session = request.getfixturevalue("session")
    principal = PrincipalFactory(password=False)
    session.commit()
    return principal.id


def _open(store, principal_id, jti="r1", *, expires_at=REFRESH_EXP, now=T0) -> str:
    session_id = store.create_session(principal_id, now=now)
    store.record_refresh_token(session_id, jti, expires_at, now=now)
    return session_id


# --------------------------------- Sessions --------------------------------- #


def test_create_session_is_live(store, principal_id):
    session_id = store.create_session(principal_id, now=T0)

    view = store.get_session(session_id)
    assert view.principal_id == principal_id
    assert view.revoked is False
    assert view.current_refresh_jti is None
    assert store.is_session_valid(session_id)


def test_unknown_session(store):
    assert store.get_session("missing") is None
    assert store.is_session_valid("missing") is False
    assert store.revoke_session("missing") is False
    with pytest.raises(NotFoundError):
        store.record_refresh_token("missing", "r1", REFRESH_EXP, now=T0)


# --------------------------------- Rotation --------------------------------- #


def test_consume_current_token(store, principal_id):
    session_id = _open(store, principal_id)

    outcome = store.consume_refresh_token("r1", now=T0)

    assert outcome.ok
    assert outcome.session_id == session_id
    assert outcome.principal_id == principal_id
    assert store.get_refresh_token("r1").status is RefreshTokenStatus.CONSUMED


def test_rotation_keeps_one_current_token(store, principal_id):
    session_id = _open(store, principal_id)
    assert store.consume_refresh_token("r1", now=T0).ok

    store.record_refresh_token(session_id, "r2", REFRESH_EXP, now=T0)

    previous = store.get_refresh_token("r1")
    assert previous.status is RefreshTokenStatus.ROTATED
    assert previous.replaced_by_jti == "r2"
    assert store.get_refresh_token("r2").status is RefreshTokenStatus.CURRENT
    assert store.get_session(session_id).current_refresh_jti == "r2"


def test_unknown_token_is_not_found(store):
    assert store.consume_refresh_token("nope", now=T0).result is ConsumeResult.NOT_FOUND


def test_second_consume_is_already_consumed(store, principal_id):
    _open(store, principal_id)
    assert store.consume_refresh_token("r1", now=T0).ok

    outcome = store.consume_refresh_token("r1", now=T0)

    assert outcome.result is ConsumeResult.ALREADY_CONSUMED
    assert store.get_session(outcome.session_id).revoked is False


def test_expiry_boundary(store, principal_id):
    _open(store, principal_id, expires_at=T0 + timedelta(seconds=10))

    assert store.consume_refresh_token("r1", now=T0 + timedelta(seconds=10)).result is ConsumeResult.EXPIRED
    assert store.consume_refresh_token("r1", now=T0 + timedelta(seconds=9)).ok


# ------------------------------ Reuse detection ------------------------------ #


def test_rotated_token_reuse_revokes_session(store, principal_id):
    session_id = _open(store, principal_id)
    store.consume_refresh_token("r1", now=T0)
    store.record_refresh_token(session_id, "r2", REFRESH_EXP, now=T0)

    outcome = store.consume_refresh_token("r1", now=T0)

    assert outcome.result is ConsumeResult.REUSED
    assert outcome.session_id == session_id
    view = store.get_session(session_id)
    assert view.revoked is True
    assert view.revoked_reason == RevocationReason.REUSE_DETECTED.value
    assert store.get_refresh_token("r2").status is RefreshTokenStatus.REVOKED
    assert store.consume_refresh_token("r2", now=T0).result is ConsumeResult.REVOKED


def test_expired_wins_over_reuse(store, principal_id):
    session_id = _open(store, principal_id, expires_at=T0 + timedelta(seconds=5))
    store.consume_refresh_token("r1", now=T0)
    store.record_refresh_token(session_id, "r2", REFRESH_EXP, now=T0)

    outcome = store.consume_refresh_token("r1", now=T0 + timedelta(seconds=5))

    assert outcome.result is ConsumeResult.EXPIRED
    assert store.is_session_valid(session_id)


# -------------------------------- Revocation --------------------------------- #


def test_revoked_session_rejects_consume_and_record(store, principal_id):
    session_id = _open(store, principal_id)

    assert store.revoke_session(session_id) is True

    assert store.consume_refresh_token("r1", now=T0).result is ConsumeResult.REVOKED
    with pytest.raises(SessionRevokedError):
        store.record_refresh_token(session_id, "r2", REFRESH_EXP, now=T0)


def test_revoke_is_idempotent_and_keeps_first_reason(store, principal_id):
    session_id = _open(store, principal_id)

    assert store.revoke_session(session_id, RevocationReason.LOGOUT) is True
    assert store.revoke_session(session_id, RevocationReason.ADMIN) is True

    view = store.get_session(session_id)
    assert view.revoked is True
    assert view.revoked_reason == RevocationReason.LOGOUT.value
    assert view.revoked_at is not None


def test_revoke_all_counts_only_live_sessions(store, principal_id):
    first = _open(store, principal_id, "r1", now=T0)
    _open(store, principal_id, "r2", now=T0 + timedelta(seconds=1))
    _open(store, principal_id, "r3", now=T0 + timedelta(seconds=2))
    store.revoke_session(first)

    assert store.revoke_all_for_principal(principal_id) == 2

    sessions = store.list_principal_sessions(principal_id)
    assert len(sessions) == 3
    assert all(view.revoked for view in sessions)
    assert [view.current_refresh_jti for view in sessions] == ["r1", "r2", "r3"]
    assert store.revoke_all_for_principal(principal_id) == 0


def test_sessions_are_isolated_per_principal(store, principal_id):
    _open(store, principal_id)

    assert store.list_principal_sessions("someone-else") == []
    assert store.revoke_all_for_principal("someone-else") == 0


def test_new_id_is_random_hex(store):
    first, second = store.new_id(), store.new_id()

    assert first != second
    assert len(first) == 32
    int(first, 16)


# -------------------------------- Concurrency -------------------------------- #


def _race(consume, attempts: int = 8):
    barrier = threading.Barrier(attempts)
    results = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        outcome = consume()
        with lock:
            results.append(outcome.result)

    threads = [threading.Thread(target=worker) for _ in range(attempts)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)
    return results


def test_memory_consume_race_has_single_winner():
    store = InMemorySessionStore()
    _open(store, "principal-1")

    results = _race(lambda: store.consume_refresh_token("r1", now=T0))

    assert results.count(ConsumeResult.OK) == 1
    assert results.count(ConsumeResult.ALREADY_CONSUMED) == len(results) - 1


def test_redis_consume_race_has_single_winner():
    server = fakeredis.FakeServer()
    _open(RedisSessionStore(fakeredis.FakeRedis(server=server)), "principal-1")
    local = threading.local()

    def consume():
        # one client per thread, all sharing the same server
        if not hasattr(local, "store"):
            local.store = RedisSessionStore(fakeredis.FakeRedis(server=server))
        return local.store.consume_refresh_token("r1", now=T0)

    results = _race(consume)

    assert results.count(ConsumeResult.OK) == 1
    assert results.count(ConsumeResult.ALREADY_CONSUMED) == len(results) - 1


@pytest.fixture()
def file_session_factory(tmp_path):
    """Sessions on a file-backed SQLite database, one connection per thread."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"timeout": 30, "check_same_thread": False},
    )
    metadata.create_all(engine)
    try:
        yield sessionmaker(bind=engine, expire_on_commit=False)
    finally:
        engine.dispose()


def test_sql_consume_race_has_single_winner(file_session_factory):
    store = SqlSessionStore(uow_factory=lambda: SQLAlchemyUnitOfWork(session_factory=file_session_factory))
    with file_session_factory() as seed:
        principal = Principal(email="racer@example.com")
        seed.add(principal)
        seed.commit()
    session_id = _open(store, principal.id)

    results = _race(lambda: store.consume_refresh_token("r1", now=T0))

    assert len(results) == 8
    assert results.count(ConsumeResult.OK) == 1
    assert results.count(ConsumeResult.ALREADY_CONSUMED) == len(results) - 1
    assert store.get_refresh_token("r1").status is RefreshTokenStatus.CONSUMED
    assert store.is_session_valid(session_id)


def test_sql_lost_compare_and_set_is_reclassified(session, factories, monkeypatch):
    principal = PrincipalFactory(password=False)
    session.commit()
    store = SqlSessionStore()
    _open(store, principal.id)

    original = RefreshTokenRepository.compare_and_set_status
    raced = {"done": False}
    competing = []

    def racing(self, jti, **kwargs):
        # a competing consumer wins between our read and our write
        if not raced["done"]:
            raced["done"] = True
            competing.append(store.consume_refresh_token(jti, now=T0))
        return original(self, jti, **kwargs)

    monkeypatch.setattr(RefreshTokenRepository, "compare_and_set_status", racing)

    outcome = store.consume_refresh_token("r1", now=T0)

    assert competing[0].result is ConsumeResult.OK
    assert outcome.result is ConsumeResult.ALREADY_CONSUMED
    assert store.get_refresh_token("r1").status is RefreshTokenStatus.CONSUMED

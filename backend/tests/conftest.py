"""Pytest fixtures configuring an isolated transactional database layer.

Each test runs inside a SAVEPOINT-backed transaction against an in-memory
SQLite database so data changes never leak between cases. Token fixtures share
one RSA key generated per test session.
"""

from __future__ import annotations

import os

import fakeredis
import pytest
from flask import has_app_context
from silentauth.core.extensions import db as _db  # Flask-SQLAlchemy instance
from silentauth.factory import create_app  # application factory under test
from silentauth.infra.jwt import JWTTokenCodec, KeyRing
from silentauth.infra.jwt.keys import generate_private_key, private_key_to_pem
from silentauth.services._shared.ports import InMemorySessionStore
from sqlalchemy import event
from sqlalchemy.orm import scoped_session, sessionmaker

from tests.helpers.clock import AUDIENCE, ISSUER, FrozenClock
from tests.helpers.config import make_config


@pytest.fixture(scope="session")
def signing_pem() -> bytes:
    """PEM of the RSA key shared by every test in the session."""
    return private_key_to_pem(generate_private_key())


@pytest.fixture(scope="session")
def key_ring(signing_pem) -> KeyRing:
    return KeyRing.from_pem("test", signing_pem)


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def codec(key_ring, clock) -> JWTTokenCodec:
    """Codec signing with the shared ring and reading the frozen clock."""
    return JWTTokenCodec(key_ring, issuer=ISSUER, audience=AUDIENCE, clock=clock)


@pytest.fixture()
def memory_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture()
def fake_redis():
    """Provide a fresh FakeRedis instance for each test."""
    r = fakeredis.FakeRedis(server=fakeredis.FakeServer())
    r.flushall()
    return r


@pytest.fixture(scope="session")
def app(signing_pem):
    """Create a Flask application configured for testing.

    Returns
    -------
    flask.Flask
        Application instance with :class:`TestingConfig` applied and logging
        noise reduced.
    """
    # Ensure env-based config does not leak into tests
    os.environ.pop("DATABASE_URL", None)
    os.environ.pop("TEST_DATABASE_URL", None)
    app = create_app(make_config(signing_pem), instance_relative_config=False)
    app.logger.setLevel("WARNING")
    return app


@pytest.fixture(autouse=True)
def app_context(request):
    """Push a fresh application context for every test that uses the app.

    Requests made inside a test reuse this context, so ``flask.g`` is reset
    between tests but not between the requests of one test.
    """
    if "app" not in request.fixturenames:
        yield None
        return
    with request.getfixturevalue("app").app_context() as ctx:
        yield ctx


@pytest.fixture(scope="session")
def db(app):
    """Create database tables once per test session.

    Yields
    ------
    flask_sqlalchemy.SQLAlchemy
        Database extension bound to the testing application.
    """
    with app.app_context():
        _db.create_all()
    yield _db
    with app.app_context():
        _db.session.remove()
        _db.drop_all()


@pytest.fixture(scope="session")
def connection(app, db):
    """Keep a dedicated DBAPI connection open for the whole session."""
    with app.app_context():
        conn = db.engine.connect()
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="function")
def session(app, db, connection):
    """Provide a SQLAlchemy session wrapped in a nested transaction.

    Notes
    -----
    The fixture mirrors the SQLAlchemy 2.0 pattern for transactional tests: it
    begins a top-level transaction, starts a SAVEPOINT per test, and reinstalls
    the SAVEPOINT whenever SQLAlchemy ends one. ``session.commit()`` inside a
    test only releases into the outer transaction, which is rolled back at the
    end, so committing is safe and needed before a unit of work may roll back.
    """
    # Fixtures pulled in via ``request.getfixturevalue`` miss the autouse
    # ``app_context``; push one here so ``db.session`` is usable.
    ctx = None if has_app_context() else app.app_context()
    if ctx is not None:
        ctx.push()

    # 1) Top-level transaction
    top_trans = connection.begin()

    # 2) Scoped session bound to the connection
    SessionFactory = sessionmaker(bind=connection, future=True)
    scoped = scoped_session(SessionFactory)

    # 3) SAVEPOINT per test
    nested = connection.begin_nested()

    # 4) Re-create SAVEPOINT when the previous nested transaction ends
    @event.listens_for(scoped(), "after_transaction_end")
    def _restart_savepoint(sess, trans):  # pragma: no cover
        if trans.nested and not trans._parent.nested:
            nonlocal nested
            nested = connection.begin_nested()

    # 5) Monkey-patch db.session so app code uses this scoped session
    original_session = db.session
    db.session.remove()
    db.session = scoped

    try:
        yield scoped
    finally:
        scoped.remove()
        db.session = original_session
        top_trans.rollback()
        if ctx is not None:
            ctx.pop()


@pytest.fixture()
def client(app, session):
    """Flask test client sharing the transactional session."""
    return app.test_client()


@pytest.fixture(scope="session")
def faker():
    """Provide a :class:`faker.Faker` instance seeded for deterministic tests."""
    from faker import Faker

    fk = Faker()
    Faker.seed(1337)
    return fk


# -- Hook up Factory Boy to pytest SQLAlchemy session --------------------------
@pytest.fixture()
def factories(session):
    """Wire Factory Boy's session helper to the transactional session fixture."""
    from tests.factories import SQLAlchemySession

    SQLAlchemySession.set(session)
    yield
    SQLAlchemySession.set(None)

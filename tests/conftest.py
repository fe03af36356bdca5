"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of huddle.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

from datetime import UTC, datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine, event  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from huddle.config import HuddleConfig  # noqa: E402
from huddle.database.models import Base, Network, User  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()

BASE_TIME = datetime(2020, 1, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Huddle tables.

    Uses StaticPool so all threads share the same in-memory database
    (route handlers run on the threadpool).  pysqlite's implicit
    transaction handling is switched off so SAVEPOINTs behave as on
    PostgreSQL.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def make_user(db_engine: Engine):
    """Factory inserting a user (and their network when new).

    ``joined_offset`` is minutes after :data:`BASE_TIME`, so tests control
    join order exactly.
    """

    def _make(
        user_id: int,
        *,
        username: str | None = None,
        network_id: str | None = None,
        joined_offset: int = 0,
        xp_total: int = 0,
        badges_visible: bool = False,
        last_active: datetime | None = None,
    ) -> int:
        network_id = network_id or f"net_{user_id}"
        with Session(db_engine) as session:
            if session.get(Network, network_id) is None:
                session.add(Network(id=network_id))
                session.flush()
            session.add(User(
                id=user_id,
                username=username or f"user{user_id}",
                network_id=network_id,
                network_joined_at=BASE_TIME + timedelta(minutes=joined_offset),
                xp_total=xp_total,
                badges_visible_in_search=badges_visible,
                last_active=last_active or datetime.now(UTC),
            ))
            session.commit()
        return user_id

    return _make


@pytest.fixture
def test_config() -> HuddleConfig:
    return HuddleConfig()


@pytest.fixture
def hub(db_engine: Engine):
    """A RealtimeHub resolving members against the test database."""
    from huddle.services.network_service import list_member_ids
    from huddle.services.realtime_service import RealtimeHub

    return RealtimeHub(member_resolver=lambda nid: list_member_ids(db_engine, nid))


@pytest.fixture
def client(db_engine: Engine, test_config: HuddleConfig, hub):
    """FastAPI TestClient wired to the SQLite engine, default config and test hub."""
    from fastapi.testclient import TestClient

    from huddle.api.deps import get_config, get_engine, get_hub
    from huddle.api.main import app

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = lambda: test_config
    app.dependency_overrides[get_hub] = lambda: hub
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


def make_token(user_id: int, token_version: int = 0) -> str:
    """Create a user JWT.  Usable as both a fixture helper and a factory."""
    from huddle.api.deps import issue_token

    return issue_token(user_id, f"user{user_id}", token_version, 3600)


@pytest.fixture
def auth_headers():
    """Factory: ``auth_headers(user_id)`` → Bearer header dict."""

    def _headers(user_id: int, token_version: int = 0) -> dict:
        return {"Authorization": f"Bearer {make_token(user_id, token_version)}"}

    return _headers

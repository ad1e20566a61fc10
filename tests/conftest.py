"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# friendzone.api.deps refuses to import without a strong JWT_SECRET, so one
# is planted before anything imports it.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

from datetime import UTC, datetime  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine, event  # noqa: E402

# ---------------------------------------------------------------------------
# Audit snapshots and badge configs are JSONB on PostgreSQL.  SQLite gets
# TEXT DDL for them; values still go through the generic JSON processors.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from friendzone.config import FriendZoneConfig  # noqa: E402
from friendzone.database.models import Base, Profile, Role  # noqa: E402
from friendzone.database.seed import seed_default_badges  # noqa: E402
from friendzone.engine.events import Actor  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Teach the SQLite DDL compiler about JSONB (once per process)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Friends Zone tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` in :func:`run_db`).  The pysqlite
    driver's own transaction handling is switched off so SAVEPOINTs behave
    like they do on PostgreSQL, and foreign keys are enforced.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    seed_default_badges(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """A bare session for calling session-level helpers directly."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def cfg() -> FriendZoneConfig:
    return FriendZoneConfig()


@pytest.fixture
def now() -> datetime:
    """A fixed Wednesday noon (UTC), 19:00 in Asia/Ho_Chi_Minh."""
    return datetime(2026, 10, 21, 12, 0, tzinfo=UTC)


def make_profile(
    engine: Engine,
    user_id: str,
    *,
    name: str | None = None,
    role: str = Role.MEMBER,
    level: int = 1,
    xp: int = 0,
    language: str = "en",
) -> Actor:
    """Insert a profile and return the matching :class:`Actor`."""
    with Session(engine) as session:
        profile = Profile(
            id=user_id,
            full_name=name or user_id.title(),
            role=role,
            level=level,
            xp=xp,
            language=language,
        )
        session.add(profile)
        session.commit()
        return Actor.from_profile(profile)


@pytest.fixture
def alice(db_engine) -> Actor:
    return make_profile(db_engine, "alice", name="Alice")


@pytest.fixture
def bob(db_engine) -> Actor:
    return make_profile(db_engine, "bob", name="Bob")


@pytest.fixture
def admin(db_engine) -> Actor:
    return make_profile(db_engine, "admin", name="Admin", role=Role.ADMIN, level=7, xp=1000)


def make_token(sub: str, name: str = "Test User", **claims) -> str:
    """Create an identity-provider JWT.  Usable as a factory in API tests."""
    import jwt

    from friendzone.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "name": name, "email": f"{sub}@example.com", **claims},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )

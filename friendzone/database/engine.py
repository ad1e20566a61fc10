"""
friendzone.database.engine — Engine, sessions and the async bridge
====================================================================

Every service is a synchronous function taking an :class:`Engine`.  Code
running on the event loop (the FastAPI lifespan, scheduled jobs) calls
them through :func:`run_db`, which hops to a worker thread with
``asyncio.to_thread``.

Usage::

    from friendzone.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # DATABASE_URL from the environment
    init_db(engine)                      # dev/test schema + badge catalogue

    result = await run_db(perform_daily_checkin, engine, cfg, actor)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session

from friendzone.database.models import Base
from friendzone.errors import ConflictError, TransientError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build the process-wide :class:`Engine`.

    *url* defaults to ``DATABASE_URL``.  PostgreSQL URLs get a bounded pool
    (``DB_POOL_SIZE`` persistent connections, twice that in overflow,
    10 s checkout timeout, hourly recycle); SQLite URLs use the driver
    defaults.

    Raises
    ------
    RuntimeError
        If no URL is given and ``DATABASE_URL`` is unset.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and point it at the Friends Zone database."
        )

    options: dict = {"echo": os.getenv("SQL_ECHO", "") == "1"}
    if not url.startswith("sqlite"):
        pool_size = int(os.getenv("DB_POOL_SIZE", "5"))
        options.update(
            pool_size=pool_size,
            max_overflow=pool_size * 2,
            pool_pre_ping=True,
            pool_timeout=10,
            pool_recycle=3600,
        )

    engine = create_engine(url, **options)
    logger.info("Database engine ready (%s)", engine.url.render_as_string(hide_password=True))
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create missing tables and seed the badge catalogue.  Idempotent.

    Production schemas are owned by Alembic (``alembic upgrade head``);
    this only fills gaps on a dev or test database.
    """
    Base.metadata.create_all(engine)
    logger.info("Schema checked (%d tables)", len(Base.metadata.tables))

    from friendzone.database.seed import seed_default_badges

    seed_default_badges(engine)


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine, **kwargs) -> Iterator[Session]:
    """Yield a :class:`Session` that commits on success and rolls back on
    exception.

    Connection-level failures surface as :class:`TransientError` so callers
    can tell "retry later" apart from a semantic failure.

    Usage::

        with get_session(engine) as session:
            session.add(Profile(id="abc", full_name="Lan"))
            # commit happens automatically on block exit
    """
    session = Session(engine, **kwargs)
    try:
        yield session
        session.commit()
    except OperationalError as exc:
        session.rollback()
        logger.warning("Store unavailable: %s", exc.orig)
        raise TransientError("The data store is temporarily unavailable") from exc
    except DBAPIError as exc:
        session.rollback()
        if exc.connection_invalidated:
            raise TransientError("Lost connection to the data store") from exc
        raise
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def insert_unique(session: Session, row: object, conflict: type[ConflictError]) -> None:
    """Insert *row* inside a SAVEPOINT.

    A unique-constraint violation rolls back only the SAVEPOINT (the outer
    transaction stays usable) and is re-raised as *conflict*.  This is the
    canonical "already done" signal for check-ins, votes, likes and
    memberships.
    """
    try:
        with session.begin_nested():
            session.add(row)
            session.flush()
    except IntegrityError as exc:
        raise conflict(f"{type(row).__name__} already exists") from exc


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** database function on a background thread.

    Under the hood it calls :func:`asyncio.to_thread`, which schedules
    *func* on the default ``ThreadPoolExecutor`` so the event loop is never
    blocked.
    """
    return await asyncio.to_thread(func, *args, **kwargs)

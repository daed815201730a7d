"""
harvester.database.engine — Database Connection & Async Helper
================================================================

**Why this file exists:**
The bot and the API run on an ``asyncio`` event loop, but SQLAlchemy +
psycopg2 is **synchronous**.  Every service in :mod:`harvester.services`
is written as a plain sync function that takes an :class:`Engine` (or a
:class:`Session`) and async callers hop onto a worker thread with
:func:`run_db`:

    1. A slash command or scheduled task fires (async world).
    2. It calls ``await run_db(some_service, engine, arg1, ...)``.
    3. ``run_db`` ships the sync function to the default thread pool via
       ``asyncio.to_thread()``.
    4. The event loop stays free while the query runs.

Usage::

    from harvester.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    # Inside an async context:
    view = await run_db(get_holdings, engine, identity_id)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from harvester.config import require_env
from harvester.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine() -> Engine:
    """Build a SQLAlchemy :class:`Engine` from the ``DATABASE_URL`` env var.

    The pool is sized for one bot process plus an operator CLI:
    * ``pool_size=5`` — five persistent connections.
    * ``max_overflow=10`` — up to 10 extra connections under load.
    * ``pool_timeout=10`` — fail after 10 s if no connection is available.
    * ``pool_recycle=3600`` — recycle connections after 1 hour.

    Raises
    ------
    MissingConfigurationError
        If ``DATABASE_URL`` is not set.
    """
    url = require_env("DATABASE_URL")

    engine = create_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,   # Reconnect stale connections automatically
        pool_timeout=10,
        pool_recycle=3600,
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`harvester.database.models`.

    Safe to call on every startup — ``CREATE TABLE IF NOT EXISTS`` under
    the hood.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is retained as a safety net for dev/test
        environments where Alembic may not have run.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """Yield a :class:`Session` that commits on success and rolls back
    on exception.

    Everything inside the ``with`` block is one transaction::

        with get_session(engine) as session:
            session.add(IdentityLink(identity_id=123, wallet_address="..."))
            recompute_holdings(session, 123)
            # commit happens automatically on block exit
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** database function on a background thread.

    Every DB call made from a cog, a route, or the bulk sync loop goes
    through this wrapper::

        result = await run_db(recompute_many, engine, identity_ids)
    """
    return await asyncio.to_thread(func, *args, **kwargs)

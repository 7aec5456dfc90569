"""
Module: bid_kernel.db.engine
Responsibility: Engine and session factory lifecycle, plus ``session_scope``,
    the commit-or-rollback unit the governance facade wraps around every
    operation.
Architecture position: Kernel > DB.  Imports db/base.py and db/immutability.py
    (and models/ inside create_tables so metadata is complete).  Nothing from
    services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - PostgreSQL connections run at READ COMMITTED; serialization of writers
      on one line item comes from ``SELECT ... FOR UPDATE`` plus the
      ``version`` column, not from the isolation level.
    - SQLite URLs share a single connection (StaticPool) so an in-memory
      database outlives the session that created it.
    - Initializing an engine always registers the ORM immutability listeners.

Failure modes:
    - RuntimeError from any accessor used before init_engine_from_url().
"""

import atexit
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from bid_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Engine not initialized. Call init_engine_from_url() first."


def _engine_options(dialect: str, pool_size: int, max_overflow: int) -> dict[str, Any]:
    if dialect == "sqlite":
        return {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }
    return {
        "poolclass": QueuePool,
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_pre_ping": True,
        "pool_recycle": 1800,
        "isolation_level": "READ COMMITTED",
    }


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
) -> Engine:
    """
    Build the module engine and session factory for ``database_url``.

    A second call disposes the previous engine first.  Sessions from the
    factory keep attribute values after commit (``expire_on_commit=False``)
    so DTOs can be built from committed rows without another round trip.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()

    dialect = make_url(database_url).get_backend_name()
    _engine = create_engine(
        database_url, echo=echo, **_engine_options(dialect, pool_size, max_overflow),
    )
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    from bid_kernel.db.immutability import register_immutability_listeners

    register_immutability_listeners()

    logger.info("engine_initialized", extra={"dialect": dialect, "echo": echo})
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    if _SessionFactory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _SessionFactory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope(
    factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    One transaction: commit on clean exit, roll back and re-raise on error.

    Usage:
        with session_scope(factory) as session:
            GovernanceService(session, classifier, auditor).set_governing(...)
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.debug("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def _metadata():
    from bid_kernel.db.base import Base
    import bid_kernel.models  # noqa: F401  (registers every table)

    return Base.metadata


def create_tables() -> None:
    _metadata().create_all(get_engine())


def drop_tables() -> None:
    """Drop every kernel table.  Test and tooling use only."""
    _metadata().drop_all(get_engine())


def reset_engine() -> None:
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()

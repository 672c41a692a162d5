"""
Process-wide SQLAlchemy engine and session factory.

``init_engine_from_url`` is the one place a database connection is
configured; everything else asks for sessions. In-memory SQLite shares a
single connection (``StaticPool``) so that every session sees the schema
created by ``create_tables``; server databases get a pre-pinged
``QueuePool``.

Calling any accessor before ``init_engine_from_url`` raises RuntimeError.
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from fieldwork_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _build_engine(database_url: str, echo: bool, pool_size: int, max_overflow: int) -> Engine:
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(
            url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
        )
    if url.database in (None, "", ":memory:"):
        return create_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_engine(url, echo=echo)


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
) -> Engine:
    """
    Create the engine for ``database_url`` and bind the session factory.

    A second call disposes of nothing and simply replaces the first engine;
    call ``reset_engine`` beforehand to release connections.
    """
    global _engine, _session_factory

    _engine = _build_engine(database_url, echo, pool_size, max_overflow)
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo},
    )
    return _engine


def _require_factory() -> sessionmaker[Session]:
    if _session_factory is None:
        raise RuntimeError("Database not initialized; call init_engine_from_url() first")
    return _session_factory


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Database not initialized; call init_engine_from_url() first")
    return _engine


def get_session() -> Session:
    return _require_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    One unit of work: commit on success, roll back and re-raise on error.

        with session_scope() as session:
            service = ScheduleService(SqlScheduleRepository(session), ...)
            service.advance(...)

    Kernel services only flush, so this is where work actually commits.
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create the schema for every model (idempotent)."""
    from fieldwork_kernel.db.base import Base
    import fieldwork_kernel.models  # noqa: F401  registers the tables

    Base.metadata.create_all(get_engine())


def reset_engine() -> None:
    """Dispose of the engine and forget the session factory."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()

"""
Module: custody_kernel.db.engine
Responsibility: building engines, holding the process-wide engine and
    session factory, and the commit-or-rollback ``session_scope``.
Architecture position: Kernel > DB.  Imports models only inside
    ``create_tables``/``drop_tables``.

Invariants enforced:
    - SQLite: ``PRAGMA foreign_keys=ON`` on every connection, and every
      transaction starts with ``BEGIN IMMEDIATE``.  Two orchestrators (or
      processes) sharing one file therefore take the write lock up front
      and queue on the busy timeout instead of failing at commit.
    - Other backends: READ COMMITTED; services take row locks with
      ``with_for_update``.

Failure modes:
    - RuntimeError when the process-wide engine is used before
      ``init_engine_from_url``.
    - OperationalError when the SQLite busy timeout elapses.
"""

import atexit
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from custody_kernel.logging_config import get_logger

logger = get_logger("db.engine")

SQLITE_BUSY_TIMEOUT_SECONDS = 30

_engine: Engine | None = None
_factory: sessionmaker[Session] | None = None


def _immediate_sqlite(engine: Engine) -> Engine:
    @event.listens_for(engine, "connect")
    def _connect(dbapi_connection, _record):
        # Hand BEGIN to SQLAlchemy; pysqlite would otherwise issue a deferred one.
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(engine, "begin")
    def _begin(connection):
        connection.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
) -> Engine:
    """Engine for ``database_url``; leaves the process-wide engine alone."""
    if database_url.startswith("sqlite"):
        return _immediate_sqlite(create_engine(
            database_url,
            echo=echo,
            connect_args={
                "check_same_thread": False,
                "timeout": SQLITE_BUSY_TIMEOUT_SECONDS,
            },
        ))
    return create_engine(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
) -> Engine:
    """Install the process-wide engine, disposing of any previous one."""
    global _engine, _factory
    reset_engine()
    _engine = build_engine(database_url, echo=echo, pool_size=pool_size, max_overflow=max_overflow)
    _factory = sessionmaker(bind=_engine, expire_on_commit=False)
    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "pool_size": pool_size, "echo": echo},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    if _factory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _factory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """
    One transaction: commit when the block exits normally, roll back and
    re-raise when it raises.  The session is closed either way.
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.debug("transaction_rolled_back")
        raise
    finally:
        session.close()


def _metadata():
    from custody_kernel.db.base import Base
    import custody_kernel.models  # noqa: F401  (registers every table)

    return Base.metadata


def create_tables(engine: Engine | None = None) -> None:
    _metadata().create_all(engine or get_engine())


def drop_tables(engine: Engine | None = None) -> None:
    """Drop every custody table.  Tests only."""
    _metadata().drop_all(engine or get_engine())


def reset_engine() -> None:
    """Dispose of the process-wide engine and forget its session factory."""
    global _engine, _factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _factory = None


atexit.register(reset_engine)

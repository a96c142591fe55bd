"""
Module: ledger_kernel.db.engine
Responsibility: Process-wide engine and session factory for the ledger
    database, and the commit-or-rollback ``session_scope()`` every
    LedgerAPI call runs in.
Architecture position: Kernel > DB.  May import from db/base.py.
    MUST NOT import from services/, selectors/, domain/, or outer layers
    (create_tables imports the models and the sequence service lazily).

Invariants enforced:
    - PostgreSQL runs READ COMMITTED; the services take row locks
      (FOR UPDATE / FOR SHARE) where they need more: entry number
      allocation, fiscal year close, posting into a year.
    - SQLite opens every transaction with BEGIN IMMEDIATE, so writers are
      serialized up front and row-lock clauses are no-ops.
    - SQLite enforces foreign keys (PRAGMA foreign_keys=ON).

Failure modes:
    - RuntimeError when a session is requested before init_engine_from_url().
    - OperationalError ("database is locked") when a SQLite writer waits
      past the 30 second busy timeout.
"""

import atexit
from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from ledger_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

SQLITE_BUSY_TIMEOUT = 30

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _sqlite_immediate_transactions(engine: Engine) -> None:
    """Replace pysqlite's deferred BEGIN with BEGIN IMMEDIATE."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _engine_options(dialect: str, **pool: Any) -> dict[str, Any]:
    if dialect == "sqlite":
        return {"connect_args": {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT}}
    return {"poolclass": QueuePool, "isolation_level": "READ COMMITTED", **pool}


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create the process-wide engine for a PostgreSQL or SQLite file URL.

    A second call replaces the first engine without disposing it; call
    reset_engine() first when the old pool should be closed.  The pool
    arguments apply to PostgreSQL only.
    """
    global _engine, _SessionFactory

    dialect = make_url(database_url).get_backend_name()
    _engine = create_engine(
        database_url,
        echo=echo,
        **_engine_options(
            dialect,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
        ),
    )
    if dialect == "sqlite":
        _sqlite_immediate_transactions(_engine)

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": dialect, "echo": echo})
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Session factory, for callers that manage sessions per thread."""
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    One transaction: commit on normal exit, roll back and re-raise otherwise.

    Usage:
        with session_scope() as session:
            AccountService(session).create_account(...)
    """
    session = get_session()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create every ledger table and a zeroed row for each known sequence."""
    from ledger_kernel.db.base import Base
    import ledger_kernel.models  # noqa: F401  (registers tables on Base.metadata)
    from ledger_kernel.services.sequence_service import SequenceService

    Base.metadata.create_all(get_engine())
    with session_scope() as session:
        SequenceService(session).initialize_sequences()


def drop_tables() -> None:
    """Drop every ledger table. Tests only."""
    from ledger_kernel.db.base import Base
    import ledger_kernel.models  # noqa: F401
    import ledger_kernel.services.sequence_service  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


def is_postgres() -> bool:
    return _engine is not None and _engine.dialect.name == "postgresql"


@atexit.register
def _dispose_at_exit() -> None:
    if _engine is not None:
        _engine.dispose()

"""
Module: stock_kernel.db.engine
Responsibility: SQLAlchemy engine initialization and session factory
    management.  This is the single point of database connection
    configuration for the stock kernel.
Architecture position: Kernel > DB.  May import from db/base.py.  MUST NOT
    import from services/, selectors/, domain/, or outer layers (except for
    create_tables which imports models so their tables are registered).

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED with a QueuePool and pre-ping.  A
      conditional UPDATE that waits on a concurrent writer re-evaluates its
      WHERE clause against the committed row, which is what the version
      check relies on.
    - SQLite (local runs and the test suite) is opened with
      check_same_thread=False and a busy timeout so that concurrent writers
      queue on the database lock instead of failing immediately.

Failure modes:
    - RuntimeError if get_engine/get_session_factory called before
      init_engine_from_url().
    - Connection pool exhaustion if pool_size + max_overflow is exceeded.
"""

import atexit

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stock_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

# Module-level engine and session factory
_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    busy_timeout: float = 30.0,
) -> Engine:
    """
    Initialize the SQLAlchemy engine from a database URL.

    Preconditions: database_url is a PostgreSQL or SQLite connection string.
    Postconditions: Module-level _engine and _SessionFactory are initialized.
        All subsequent get_engine/get_session_factory calls use this engine.

    Args:
        database_url: Connection URL (postgresql://... or sqlite:///path.db).
        echo: If True, log all SQL statements.
        pool_size: Number of connections to keep in the pool.
        max_overflow: Max connections beyond pool_size.
        pool_pre_ping: If True, test connections before use.
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.
        busy_timeout: SQLite only -- seconds a writer waits on the DB lock.

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    dialect = url.get_backend_name()

    if dialect == "sqlite" and url.database in (None, "", ":memory:"):
        # One shared connection, otherwise every pooled connection would
        # see its own empty in-memory database.
        _engine = create_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    elif dialect == "sqlite":
        _engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            connect_args={"check_same_thread": False, "timeout": busy_timeout},
        )
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": dialect,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "echo": echo,
        },
    )

    return _engine


def get_engine() -> Engine:
    """
    Get the current engine instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory for creating sessions.

    The concurrency controller opens one short-lived session per commit
    attempt from this factory.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


def create_tables() -> None:
    """
    Create all tables defined in the stock kernel models.

    Preconditions: Engine must be initialized via init_engine_from_url().
    Postconditions: stock_records, stock_reservations and stock_movements exist.
    """
    import stock_kernel.models  # noqa: F401  (registers tables on Base.metadata)
    from stock_kernel.db.base import Base

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    """
    Drop all tables. Use with caution - primarily for testing.
    """
    import stock_kernel.models  # noqa: F401
    from stock_kernel.db.base import Base

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """
    Reset the engine and session factory.

    Useful for test cleanup.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _SessionFactory = None


def _atexit_dispose():
    """Dispose the engine on process exit to release all pooled connections."""
    if _engine is not None:
        try:
            _engine.dispose()
        except SQLAlchemyError:
            logger.debug("engine_dispose_failed", exc_info=True)


atexit.register(_atexit_dispose)

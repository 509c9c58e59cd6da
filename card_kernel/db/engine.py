"""
Module: card_kernel.db.engine
Responsibility: SQLAlchemy engine construction and schema creation.  This is
    the single point of database connection configuration for the pipeline;
    callers own the engine and build their own session factories from it.
Architecture position: Kernel > DB.  May import from db/base.py.  MUST NOT
    import from services/, selectors/, domain/, or outer layers (except for
    create_tables, which imports models so their tables are registered).

Invariants enforced:
    - PostgreSQL is the production backend: READ COMMITTED isolation plus
      explicit row-level locking (SELECT ... FOR UPDATE) on the Account and
      CategoryBalance rows a posting touches.
    - SQLite is supported for tests.  pysqlite's own transaction handling
      defeats SAVEPOINTs, so the engine takes over BEGIN emission (the
      documented SQLAlchemy recipe) and nested transactions nest for real.
    - In-memory SQLite uses a StaticPool so every session sees one database.

Failure modes:
    - Connection pool exhaustion if pool_size + max_overflow is exceeded.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import QueuePool, StaticPool

from card_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create an engine for the given URL.

    PostgreSQL URLs get a QueuePool at READ COMMITTED.  SQLite URLs get the
    SAVEPOINT-safe transaction recipe (and a StaticPool when in-memory).
    """
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        kwargs: dict = {"echo": echo}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
            kwargs["connect_args"] = {"check_same_thread": False}
        engine = create_engine(url, **kwargs)
        _install_sqlite_transaction_recipe(engine)
        return engine

    return create_engine(
        url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


def _install_sqlite_transaction_recipe(engine: Engine) -> None:
    """Let SQLAlchemy, not pysqlite, decide when transactions begin."""

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_tables(engine: Engine) -> None:
    """Create all pipeline tables on ``engine``."""
    from card_kernel.db.base import Base
    import card_kernel.models  # noqa: F401
    import card_kernel.services.sequence_service  # noqa: F401
    import card_batch.models  # noqa: F401

    Base.metadata.create_all(engine)
    logger.info(
        "tables_created",
        extra={"dialect": engine.dialect.name, "tables": len(Base.metadata.tables)},
    )


def drop_tables(engine: Engine) -> None:
    """
    Drop all tables. Use with caution - primarily for testing.
    """
    from card_kernel.db.base import Base

    Base.metadata.drop_all(engine)

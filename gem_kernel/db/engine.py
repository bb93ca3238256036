"""
Module: gem_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope utilities.  This is the single point of database
    connection configuration for the kernel.
Architecture position: Kernel > DB.  May import from db/base.py.  MUST NOT
    import from services/, selectors/ or domain/ (create_tables imports
    models lazily so Base.metadata is complete).

Invariants enforced:
    - Writers on the same counter are serialized.  SQLite (and LibSQL, which
      speaks the same dialect) has no row locks, so every pysqlite
      transaction is opened with ``BEGIN IMMEDIATE``: the RESERVED lock is
      taken up front and a second writer waits on the busy timeout instead
      of reading a stale counter.  PostgreSQL runs READ COMMITTED with
      explicit ``SELECT ... FOR UPDATE`` row locks.
    - ``run_in_transaction`` gives every attempt a fresh session; a retried
      create-operation never reuses state from a failed attempt.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory is called
      before init_engine_from_url().
    - OperationalError ("database is locked") when the busy timeout elapses.
    - AllocationFailedError when run_in_transaction exhausts its attempts.
"""

import atexit
from contextlib import contextmanager
from typing import Callable, Generator, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from gem_kernel.exceptions import AllocationFailedError, DuplicateIdentifierError
from gem_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

T = TypeVar("T")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

# Substrings of driver messages that mean "try the whole transaction again".
_TRANSIENT_MARKERS = (
    "database is locked",
    "database table is locked",
    "deadlock detected",
    "could not serialize access",
)


def _install_sqlite_immediate_transactions(engine: Engine, busy_timeout: float) -> None:
    """Make pysqlite emit BEGIN IMMEDIATE instead of its deferred BEGIN."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Disable pysqlite's own transaction handling; the "begin" hook owns it.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute(f"PRAGMA busy_timeout = {int(busy_timeout * 1000)}")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


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

    Supports ``sqlite:///path.db`` (including ``sqlite://`` in-memory) and
    ``postgresql://`` URLs.  A second call replaces the first engine.

    Args:
        database_url: Database connection URL.
        echo: If True, log all SQL statements.
        pool_size: Number of pooled connections (PostgreSQL only).
        max_overflow: Max connections beyond pool_size (PostgreSQL only).
        pool_pre_ping: Test connections before use (PostgreSQL only).
        pool_timeout: Seconds to wait for a pooled connection (PostgreSQL only).
        pool_recycle: Seconds before a connection is recycled (PostgreSQL only).
        busy_timeout: Seconds a SQLite writer waits for the database lock.

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()

    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        kwargs: dict = {
            "echo": echo,
            "connect_args": {"timeout": busy_timeout, "check_same_thread": False},
        }
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        _engine = create_engine(url, **kwargs)
        if url.get_driver_name() == "pysqlite":
            _install_sqlite_immediate_transactions(_engine, busy_timeout)
    else:
        _engine = create_engine(
            url,
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
            "dialect": _engine.dialect.name,
            "driver": _engine.dialect.driver,
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


def get_session() -> Session:
    """
    Get a new session instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory for creating sessions.

    Each thread in a concurrent caller must create its own session.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Commits on normal exit; rolls back and re-raises on exception.

    Usage:
        with session_scope() as session:
            sku = SkuService(session).allocate_and_format_sku(...)
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


def _is_transient(exc: OperationalError) -> bool:
    message = str(exc.orig if exc.orig is not None else exc).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


def is_unique_violation(exc: IntegrityError, constraint: str, column: str) -> bool:
    """
    True when ``exc`` was raised by the unique constraint ``constraint``.

    PostgreSQL reports the constraint name (``diag.constraint_name``);
    SQLite only names the column, as ``UNIQUE constraint failed: table.col``.
    NOT NULL and other integrity failures return False.
    """
    orig = exc.orig
    diag = getattr(orig, "diag", None)
    if diag is not None and getattr(diag, "constraint_name", None):
        return diag.constraint_name == constraint
    message = str(orig if orig is not None else exc)
    return constraint in message or f"UNIQUE constraint failed: {column}" in message


def run_in_transaction(
    operation: Callable[[Session], T],
    *,
    max_attempts: int = 3,
    session_factory: Callable[[], Session] | None = None,
) -> T:
    """
    Run ``operation`` in its own transaction, retrying allocation races.

    Each attempt gets a fresh session.  The attempt is committed when
    ``operation`` returns.  A ``DuplicateIdentifierError`` or a transient
    lock/serialization ``OperationalError`` rolls the attempt back and
    starts over; any other exception rolls back and propagates.

    Args:
        operation: Callable receiving the attempt's session.
        max_attempts: Total attempts before giving up.
        session_factory: Session factory; defaults to the module factory.

    Returns:
        Whatever ``operation`` returned on the committed attempt.

    Raises:
        AllocationFailedError: All attempts hit a retryable failure.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    factory = session_factory or get_session_factory()
    last_error: Exception | None = None

    for attempt in range(1, max_attempts + 1):
        session = factory()
        try:
            result = operation(session)
            session.commit()
            return result
        except DuplicateIdentifierError as exc:
            session.rollback()
            last_error = exc
        except OperationalError as exc:
            session.rollback()
            if not _is_transient(exc):
                raise
            last_error = exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        logger.warning(
            "transaction_retry",
            extra={
                "attempt": attempt,
                "max_attempts": max_attempts,
                "error_type": type(last_error).__name__,
            },
        )

    logger.error(
        "transaction_retries_exhausted",
        extra={"attempts": max_attempts, "error": str(last_error)},
    )
    raise AllocationFailedError(max_attempts, str(last_error))


def create_tables() -> None:
    """
    Create all tables defined in the models.

    Raises:
        RuntimeError: If engine is not initialized.
    """
    from gem_kernel.db.base import Base
    import gem_kernel.models  # noqa: F401  (registers tables on Base.metadata)
    import gem_kernel.services.sequence_service  # noqa: F401

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    """Drop all tables. Use with caution - primarily for testing."""
    from gem_kernel.db.base import Base

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
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)


def is_sqlite() -> bool:
    """Check if the current engine is SQLite."""
    if _engine is None:
        return False
    return _engine.dialect.name == "sqlite"

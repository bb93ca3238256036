"""
Pytest fixtures for the gem kernel test suite.

Provides:
- A fresh SQLite database file per test (under tmp_path), with the
  BEGIN IMMEDIATE engine configuration used in production
- Sessions, a thread-safe session factory and wired services
- Role-specific SessionContext fixtures
- Structured log capture
"""

import json
import logging
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from gem_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from gem_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from gem_kernel.domain.clock import DeterministicClock
from gem_kernel.domain.permissions import Role
from gem_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from gem_kernel.services.activity_logger import ActivityLogger
from gem_kernel.services.kernel_container import KernelContainer
from gem_kernel.services.permission_gate import PermissionGate, SessionContext


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture gem_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, sku_service):
            sku_service.allocate_and_format_sku(...)
            logs = captured_logs()
            assert any(r["message"] == "sku_allocated" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("gem_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'gem_test.db'}"


@pytest.fixture
def db_engine(database_url):
    """
    Engine bound to a fresh database file.

    A file (not ``:memory:``) so that concurrency tests get one connection
    per thread against shared storage.
    """
    engine = init_engine_from_url(database_url, busy_timeout=30.0)
    create_tables()
    register_immutability_listeners()
    yield engine
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    """Session factory; each thread must create its own session."""
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """
    Provide a database session for testing.

    ``session.commit()`` really commits; isolation comes from the per-test
    database file.  The session holds the database write lock while its
    transaction is open, so tests that also call factory-based services
    must commit or roll back first.
    """
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def without_immutability():
    """Drop the append-only listeners for the duration of one test."""
    unregister_immutability_listeners()
    yield
    register_immutability_listeners()


# =============================================================================
# Clock, identity and service fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


def _context(role: Role | str | None, user_id: str = "user-1") -> SessionContext:
    name = str(role.value if isinstance(role, Role) else role).lower()
    return SessionContext(
        user_id=user_id,
        user_name=f"{name} user",
        user_email=f"{name}@example.com",
        role=role,
    )


@pytest.fixture
def super_admin_context() -> SessionContext:
    return _context(Role.SUPER_ADMIN, "super-1")


@pytest.fixture
def admin_context() -> SessionContext:
    return _context(Role.ADMIN, "admin-1")


@pytest.fixture
def sales_context() -> SessionContext:
    return _context(Role.SALES, "sales-1")


@pytest.fixture
def accounts_context() -> SessionContext:
    return _context(Role.ACCOUNTS, "accounts-1")


@pytest.fixture
def viewer_context() -> SessionContext:
    return _context(Role.VIEWER, "viewer-1")


@pytest.fixture
def activity_logger(session_factory, deterministic_clock) -> ActivityLogger:
    """Factory-mode audit sink: every entry commits on its own."""
    return ActivityLogger(session_factory=session_factory, clock=deterministic_clock)


@pytest.fixture
def permission_gate(activity_logger) -> PermissionGate:
    return PermissionGate(activity_logger)


@pytest.fixture
def kernel(session_factory, deterministic_clock) -> KernelContainer:
    """All workflows wired to the per-test database."""
    return KernelContainer(session_factory, clock=deterministic_clock)

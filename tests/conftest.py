"""
Pytest fixtures for the workflow core test suite.

Provides:
- A fresh SQLite database (aiosqlite) per test, with every table created
- Session factory and a per-test session for service-level tests
- A DeterministicClock and a RecordingNotifier
- Structured log capture

The database lives in the test's tmp_path so that jobs, which open one
session per record, see each other's commits exactly as they would on
PostgreSQL.
"""

import json
import logging
from datetime import datetime, timezone
from io import StringIO

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from taxflow_kernel.db.engine import create_tables, drop_tables, session_scope
from taxflow_kernel.domain.clock import DeterministicClock
from taxflow_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from taxflow_services.notifications import RecordingNotifier, StaticHandlerDirectory

# Monday 2026-03-02 09:02 UTC
DEFAULT_NOW = datetime(2026, 3, 2, 9, 2, tzinfo=timezone.utc)

TEST_HANDLERS = {
    "Associate": "associate@practice.test",
    "Manager": "manager@practice.test",
    "Director": "director@practice.test",
}


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
    Capture taxflow logs as parsed JSON dicts.

    Usage::

        async def test_something(captured_logs, ...):
            ...
            logs = captured_logs()
            assert any(r["message"] == "job_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("taxflow")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'taxflow.db'}")
    await create_tables(engine)
    yield engine
    await drop_tables(engine)
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    """A session for service-level tests.  Services only flush; tests may commit."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def in_tx(session_factory):
    """Run ``work(session)`` in its own committed transaction.

    Usage::

        filing = await in_tx(lambda s: ComplianceMonitoringWorkflow(s, ...).register_filing(...))
    """

    async def _run(work):
        async with session_scope(session_factory) as session:
            return await work(session)

    return _run


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(DEFAULT_NOW)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def directory():
    return StaticHandlerDirectory(TEST_HANDLERS)

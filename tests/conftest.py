"""
Pytest fixtures for the stock ledger test suite.

Provides:
- An in-memory SQLite engine shared by the whole run (tables created once)
- Per-test sessions isolated by an outer transaction that is rolled back
- A deterministic clock and a fully wired StockOrchestrator
- File-backed engines for tests that need real commits across threads
- Structured log capture

Environment Variables:
- DATABASE_URL: optional SQLAlchemy URL to run the suite against a server
  database instead of in-memory SQLite.
"""

import json
import logging
import os
from collections.abc import Generator
from datetime import UTC, datetime
from io import StringIO

import pytest
from sqlalchemy.orm import Session

from stock_kernel.db.engine import create_engine_from_url, create_tables, drop_tables
from stock_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from stock_kernel.domain.clock import DeterministicClock
from stock_kernel.domain.dtos import ResourceKind
from stock_kernel.domain.requests import RequestKind
from stock_kernel.domain.tasks import NewTask, TaskType
from stock_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from stock_kernel.models.service_request import ServiceRequestModel, ServiceRequestStatus
from stock_services.stock_orchestrator import StockOrchestrator

TEST_ACTOR = "test-operator"
FIXED_NOW = datetime(2024, 3, 15, 9, 30, 0, tzinfo=UTC)


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", "sqlite://")


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
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
    Capture stock_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, stock):
            stock.add_stock(1, 5, "restock", "alice")
            logs = captured_logs()
            assert any(r["message"] == "stock_added" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("stock_kernel")
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
# Session-scoped DB infrastructure (create engine + tables ONCE per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    eng = create_engine_from_url(get_database_url())
    yield eng
    eng.dispose()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session.  Listeners stay registered."""
    create_tables(db_engine)
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()
    drop_tables(db_engine)


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    The session joins an outer transaction on a dedicated connection.  Any
    ``session.commit()`` inside the test releases a savepoint only; the
    outer transaction is rolled back at teardown.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


# =============================================================================
# File-backed databases (real commits, one connection per thread)
# =============================================================================


@pytest.fixture
def file_engine(tmp_path):
    """Fresh SQLite file database with the schema created."""
    eng = create_engine_from_url(f"sqlite:///{tmp_path / 'stock.db'}")
    create_tables(eng)
    register_immutability_listeners()
    yield eng
    eng.dispose()


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(FIXED_NOW)


@pytest.fixture
def test_actor() -> str:
    return TEST_ACTOR


@pytest.fixture
def orchestrator(session, clock) -> StockOrchestrator:
    return StockOrchestrator(session, clock)


@pytest.fixture
def stock(orchestrator):
    return orchestrator.stock


@pytest.fixture
def requests_service(orchestrator):
    return orchestrator.requests


@pytest.fixture
def tasks(orchestrator):
    return orchestrator.tasks


@pytest.fixture
def stocked_part(stock, test_actor):
    """Spare part 501 with 20 units on hand."""
    stock.add_stock(
        501, 20, "Opening balance", test_actor, resource_kind=ResourceKind.SPARE_PART
    )
    return 501


@pytest.fixture
def make_import(requests_service, test_actor):
    def _make(resource_id: int = 101, quantity: int = 10, **kwargs):
        return requests_service.create(
            RequestKind.IMPORT, resource_id, quantity, "Restock", test_actor, **kwargs
        ).unwrap()

    return _make


@pytest.fixture
def make_task(tasks, test_actor):
    def _make(title: str = "Replace compressor", **kwargs):
        kwargs.setdefault("task_type", TaskType.MAINTENANCE)
        return tasks.create(NewTask(title=title, created_by=test_actor, **kwargs))

    return _make


@pytest.fixture
def service_request(session, clock):
    """An open customer service request for task linkage tests."""
    now = clock.now()
    row = ServiceRequestModel(
        request_number="SR-20240315-000001",
        customer_id=77,
        status=ServiceRequestStatus.IN_PROGRESS.value,
        created_at=now,
        updated_at=now,
    )
    session.add(row)
    session.flush()
    return row

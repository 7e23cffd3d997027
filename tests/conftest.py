"""
Pytest fixtures for the stock ledger test suite.

Provides:
- In-memory SQLite sessions (same init_engine_from_url entry point as
  production) with immutability listeners installed
- Deterministic clock and ledger service fixtures
- Builders for domain lots and removals
- Captured structured logs
"""

import json
import logging
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from ledger_config import get_active_config
from ledger_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.domain.ledger import Lot, Removal
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_services.stock_ledger import StockLedgerService

TEST_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")
T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


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
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            ...
            logs = captured_logs()
            assert any(r["message"] == "stock_added" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
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
def session() -> Generator[Session, None, None]:
    """Fresh in-memory database per test."""
    init_engine_from_url("sqlite://")
    create_tables()
    sess = get_session()
    try:
        yield sess
    finally:
        sess.rollback()
        sess.close()
        drop_tables()
        reset_engine()


# =============================================================================
# Clock, config and service fixtures
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(T0)


@pytest.fixture
def ledger_config():
    return get_active_config()


@pytest.fixture
def ledger_service(session, deterministic_clock, ledger_config):
    return StockLedgerService(session, deterministic_clock, ledger_config)


# =============================================================================
# Domain builders
# =============================================================================


@pytest.fixture
def material_id() -> UUID:
    return uuid4()


def build_lot(
    material_id: UUID,
    length_mm,
    *,
    pieces: int = 1,
    minutes: int = 0,
    sequence: int = 0,
    unit_price=None,
    price_unit=None,
    currency=None,
) -> Lot:
    """Lot at T0 + ``minutes``."""
    return Lot(
        lot_id=uuid4(),
        material_id=material_id,
        timestamp=T0 + timedelta(minutes=minutes),
        length_per_piece_mm=Decimal(str(length_mm)),
        pieces=pieces,
        sequence=sequence,
        unit_price=Decimal(str(unit_price)) if unit_price is not None else None,
        price_unit=price_unit,
        currency=currency,
    )


def build_removal(
    material_id: UUID,
    length_mm,
    *,
    pieces: int = 1,
    minutes: int = 0,
    sequence: int = 0,
) -> Removal:
    """Removal at T0 + ``minutes``."""
    return Removal(
        removal_id=uuid4(),
        material_id=material_id,
        timestamp=T0 + timedelta(minutes=minutes),
        length_per_piece_mm=Decimal(str(length_mm)),
        pieces=pieces,
        sequence=sequence,
    )


@pytest.fixture
def make_lot():
    return build_lot


@pytest.fixture
def make_removal():
    return build_removal

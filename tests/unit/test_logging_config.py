"""Tests for the structured logging system (ledger_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import InsufficientBalanceError
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


class TestStructuredFormatter:

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_all_logs(stream)[0]
        assert record["message"] == "hello"
        assert record["level"] == "INFO"
        assert record["logger"] == "ledger_kernel.test"
        assert "ts" in record

    def test_extra_fields_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        material_id = uuid4()
        get_logger("test").info("stock_added", extra={
            "material_id": material_id,
            "total_mm": Decimal("1500.5"),
        })

        record = _parse_all_logs(stream)[0]
        assert record["material_id"] == str(material_id)
        assert record["total_mm"] == "1500.5"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise InsufficientBalanceError("m-1", Decimal("10"), Decimal("5"))
        except InsufficientBalanceError:
            get_logger("test").exception("removal_failed")

        record = _parse_all_logs(stream)[0]
        assert record["exc_type"] == "InsufficientBalanceError"
        assert record["exc_code"] == "INSUFFICIENT_BALANCE"
        assert record["exc_available_mm"] == "5"
        assert "traceback" in record


class TestLogContext:

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(material_id="m-1", actor_id="a-1")
        get_logger("test").info("with_context")

        record = _parse_all_logs(stream)[0]
        assert record["material_id"] == "m-1"
        assert record["actor_id"] == "a-1"

    def test_bind_restores_previous(self):
        LogContext.set(material_id="outer")
        with LogContext.bind(material_id="inner", event_id="e-1"):
            assert LogContext.get_all() == {"material_id": "inner", "event_id": "e-1"}
        assert LogContext.get_all() == {"material_id": "outer"}

    def test_clear(self):
        LogContext.set(correlation_id="c-1")
        LogContext.clear()
        assert LogContext.get_all() == {}


class TestConfigureLogging:

    def test_idempotent(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        configure_logging(handler=handler)
        assert len(logging.getLogger("ledger_kernel").handlers) == 1

    def test_level_respected(self):
        handler, stream = _make_handler()
        configure_logging(level=logging.WARNING, handler=handler)
        logger = get_logger("test")
        logger.info("dropped")
        logger.warning("kept")

        messages = [r["message"] for r in _parse_all_logs(stream)]
        assert messages == ["kept"]

    def test_does_not_propagate(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler)
        assert logging.getLogger("ledger_kernel").propagate is False

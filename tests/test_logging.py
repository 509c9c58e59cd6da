"""Tests for the structured logging system (card_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from card_kernel.exceptions import RetryExhaustedError
from card_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite config."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "card_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("chunk_committed", extra={"chunk_index": 3, "attempts": 1})

        record = _parse_log(stream)
        assert record["chunk_index"] == 3
        assert record["attempts"] == 1

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(run_id="run-1", record_offset="17")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["run_id"] == "run-1"
        assert record["record_offset"] == "17"

    def test_money_date_and_uuid_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "typed",
            extra={"amount": Decimal("12.50"), "as_of": date(2024, 3, 15), "run": uid},
        )

        record = _parse_log(stream)
        assert record["amount"] == "12.50"
        assert record["as_of"] == "2024-03-15"
        assert record["run"] == str(uid)

    def test_kernel_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise RetryExhaustedError("run-9", 4, 4, "database is locked")
        except RetryExhaustedError:
            get_logger("test").error("run_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "RETRY_EXHAUSTED"
        assert record["exc_type"] == "RetryExhaustedError"
        assert record["exc_chunk_index"] == 4
        assert record["exc_last_error"] == "database is locked"
        assert "traceback" in record

    def test_debug_suppressed_at_info(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["first", "second"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(run_id="r", chunk_index="2")
        assert LogContext.get_all() == {"run_id": "r", "chunk_index": "2"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous_value(self):
        LogContext.set(chunk_index="0")
        with LogContext.bind(chunk_index=1):
            assert LogContext.get_all()["chunk_index"] == "1"
        assert LogContext.get_all()["chunk_index"] == "0"

    def test_bind_restores_none(self):
        with LogContext.bind(transaction_id="T1"):
            assert LogContext.get_all()["transaction_id"] == "T1"
        assert "transaction_id" not in LogContext.get_all()

    def test_bind_skips_none_values(self):
        with LogContext.bind(run_id="r", transaction_id=None):
            assert LogContext.get_all() == {"run_id": "r"}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        reset_logging()
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        assert len(logging.getLogger("card_kernel").handlers) == 1

    def test_get_logger_returns_child(self):
        assert get_logger("batch.controller").name == "card_kernel.batch.controller"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["logger"] == "card_kernel.deep.nested.module"

"""Tests for the structured logging system (settlement_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from settlement_kernel.exceptions import AlreadyAppliedError
from settlement_kernel.logging_config import (
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
        assert record["logger"] == "settlement_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("statement_created", extra={"count": 2, "status": "unpaid"})

        record = _parse_log(stream)
        assert record["count"] == 2
        assert record["status"] == "unpaid"

    def test_decimal_rendered_as_string(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("amount", extra={"total": Decimal("11400.00")})

        assert _parse_log(stream)["total"] == "11400.00"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", lease_id="lease-1")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["lease_id"] == "lease-1"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        try:
            raise ValueError("boom")
        except ValueError:
            logger.error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_settlement_exception_code_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        try:
            raise AlreadyAppliedError("pdc", "pdc-1", bound_to="bill-9")
        except AlreadyAppliedError:
            logger.error("credit_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == AlreadyAppliedError.code
        assert record["exc_type"] == "AlreadyAppliedError"
        assert record["exc_reference"] == "pdc-1"
        assert record["exc_bound_to"] == "bill-9"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "lease_id" not in record

    def test_uuid_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("with_uuid", extra={"billing_id": uid})

        assert _parse_log(stream)["billing_id"] == str(uid)

    def test_debug_filtered_at_default_level(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        assert [r["message"] for r in logs] == ["first", "second"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", pdc_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "pdc_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(lease_id="outer")
        with LogContext.bind(lease_id="inner"):
            assert LogContext.get_all()["lease_id"] == "inner"
        assert LogContext.get_all()["lease_id"] == "outer"

    def test_bind_restores_absent_field(self):
        assert "billing_id" not in LogContext.get_all()
        with LogContext.bind(billing_id="temp"):
            assert LogContext.get_all()["billing_id"] == "temp"
        assert "billing_id" not in LogContext.get_all()

    def test_bind_skips_none_values(self):
        with LogContext.bind(lease_id="l-1", actor_id=None):
            assert LogContext.get_all() == {"lease_id": "l-1"}

    def test_bind_stringifies_uuid(self):
        uid = uuid4()
        with LogContext.bind(actor_id=uid):
            assert LogContext.get_all()["actor_id"] == str(uid)

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(tenant_name="x")
        with pytest.raises(TypeError):
            with LogContext.bind(tenant_name="x"):
                pass


class TestConfigureLogging:

    def test_idempotent(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        configure_logging(handler=handler)
        get_logger("test").info("once")

        assert len(_parse_all_logs(stream)) == 1

    def test_reset_allows_reconfigure(self):
        first, first_stream = _make_handler()
        configure_logging(handler=first)
        reset_logging()
        second, second_stream = _make_handler()
        configure_logging(handler=second)
        get_logger("test").info("after_reset")

        assert first_stream.getvalue() == ""
        assert _parse_log(second_stream)["message"] == "after_reset"

"""Tests for ``LogProducer`` and ``SoraneLogHandler``."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

import pytest

from sorane.core.sanitize import TRUNCATION_SUFFIX
from sorane.producers.logs import LogProducer, SoraneLogHandler


@pytest.fixture
def producer(buffer, settings, clock):
    return LogProducer(buffer, settings, clock=clock)


@pytest.fixture
def app_logger(producer):
    logger = logging.getLogger("shop.checkout")
    handler = SoraneLogHandler(producer)
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    yield logger
    logger.removeHandler(handler)


def _entries(buffer) -> list[dict]:
    return [item.data for item in buffer.take("logs", 100)]


class TestCapture:
    def test_entry_shape(self, producer, buffer, clock):
        assert producer.capture("ERROR", "Payment failed", context={"order_id": 9}, channel="payments")

        [entry] = _entries(buffer)
        assert entry["level"] == "error"
        assert entry["message"] == "Payment failed"
        assert entry["context"] == {"order_id": 9}
        assert entry["channel"] == "payments"
        assert entry["timestamp"] == clock.now.isoformat()
        assert entry["extra"]["environment"] == "testing"
        assert "python_version" in entry["extra"]
        assert set(entry) <= LogProducer.allowed_fields

    def test_message_truncated(self, producer, buffer):
        producer.capture("info", "x" * 60_000)
        [entry] = _entries(buffer)
        assert entry["message"] == "x" * 50_000 + TRUNCATION_SUFFIX

    def test_oversized_context_replaced(self, producer, buffer):
        producer.capture("info", "big", context={"blob": "z" * 60_000})
        [entry] = _entries(buffer)
        assert entry["context"] == {"_truncated": "Context exceeded 50KB limit and was removed"}

    def test_oversized_extra_replaced(self, producer, buffer):
        producer.capture("info", "big", extra={"blob": "z" * 11_000})
        [entry] = _entries(buffer)
        assert entry["extra"] == {"_truncated": "Extra data exceeded 10KB limit and was removed"}

    def test_unserializable_context_is_sanitized(self, producer, buffer):
        producer.capture("info", "cb", context={"callback": lambda: None})
        [entry] = _entries(buffer)
        assert entry["context"] == {"callback": "[Callable]"}

    def test_internal_channel_excluded(self, producer, buffer):
        assert producer.capture("warning", "loop", channel="sorane.delivery.buffer") is False
        assert producer.capture("warning", "loop", channel="sorane") is False
        assert producer.capture("warning", "ok", channel="soraneish") is True
        assert buffer.count("logs") == 1

    def test_configured_exclusions(self, buffer, settings_factory, clock):
        settings = settings_factory(logs={"enabled": True, "excluded_channels": ["audit"]})
        producer = LogProducer(buffer, settings, clock=clock)
        assert producer.capture("info", "hidden", channel="audit") is False

    def test_disabled(self, buffer, settings_factory, clock):
        producer = LogProducer(buffer, settings_factory(logs={"enabled": False}), clock=clock)
        assert producer.capture("info", "x") is False


class TestHandler:
    def test_forwards_records(self, app_logger, buffer):
        app_logger.warning("Stock low for %s", "mug", extra={"sku": "mug-1"})

        [entry] = _entries(buffer)
        assert entry["level"] == "warning"
        assert entry["message"] == "Stock low for mug"
        assert entry["channel"] == "shop.checkout"
        assert entry["context"] == {"sku": "mug-1"}
        assert entry["extra"]["function"] == "test_forwards_records"
        assert entry["extra"]["module"] == "test_log_capture"

    def test_record_time_is_kept(self, producer, buffer):
        record = logging.LogRecord("shop", logging.INFO, __file__, 10, "hello", (), None)
        record.created = datetime(2024, 6, 1, 8, 30, tzinfo=UTC).timestamp()
        SoraneLogHandler(producer).emit(record)
        [entry] = _entries(buffer)
        assert entry["timestamp"] == "2024-06-01T08:30:00+00:00"

    def test_exception_info(self, app_logger, buffer):
        try:
            raise KeyError("sku")
        except KeyError:
            app_logger.exception("Lookup failed")

        [entry] = _entries(buffer)
        assert entry["level"] == "error"
        exc = entry["context"]["exception"]
        assert exc["type"] == "KeyError"
        assert "Traceback" in exc["trace"]

    def test_internal_records_skipped(self, producer, buffer):
        handler = SoraneLogHandler(producer)
        record = logging.LogRecord("sorane.delivery.gateway", logging.WARNING, __file__, 1, "x", (), None)
        handler.emit(record)
        assert buffer.count("logs") == 0

    def test_handler_level(self, producer, buffer):
        logger = logging.getLogger("shop.quiet")
        logger.setLevel(logging.DEBUG)
        handler = SoraneLogHandler(producer, level=logging.ERROR)
        logger.addHandler(handler)
        try:
            logger.info("ignored")
            logger.error("kept")
        finally:
            logger.removeHandler(handler)
        assert [e["message"] for e in _entries(buffer)] == ["kept"]

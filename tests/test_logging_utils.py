"""Tests for structured logging helpers."""

import io
import json
import logging
import sys

import pytest

from bot_session_storage.exceptions import QuotaExceededError
from bot_session_storage.logging_utils import (
    StorageLoggerAdapter,
    StructuredJsonFormatter,
    configure_structured_logging,
    get_storage_logger,
)

from helpers import SMALL_SESSION_COUNT


def make_record(msg: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="bot_session_storage.store",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredJsonFormatter:
    def test_standard_fields(self):
        output = json.loads(StructuredJsonFormatter().format(make_record()))
        assert output["level"] == "INFO"
        assert output["logger"] == "bot_session_storage.store"
        assert output["msg"] == "hello"
        assert output["ts"].endswith("+00:00")
        assert "context" not in output

    def test_extras_grouped_under_context(self):
        output = json.loads(StructuredJsonFormatter().format(make_record(tenant_id=42)))
        assert output["context"] == {"tenant_id": 42}

    def test_unserializable_extra_is_stringified(self):
        output = json.loads(StructuredJsonFormatter().format(make_record(obj=object())))
        assert output["context"]["obj"].startswith("<object object")

    def test_exception_included(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = make_record()
            record.exc_info = sys.exc_info()
        output = json.loads(StructuredJsonFormatter().format(record))
        assert "ValueError: boom" in output["exception"]


class TestLoggers:
    def test_get_storage_logger_name(self):
        assert get_storage_logger("store").name == "bot_session_storage.store"

    def test_adapter_binds_tenant(self, caplog):
        adapter = StorageLoggerAdapter.for_tenant(get_storage_logger("store"), 7)
        with caplog.at_level(logging.INFO, logger="bot_session_storage.store"):
            adapter.info("written", extra={"key": "settings", "tenant_id": 99})

        record = caplog.records[-1]
        assert record.tenant_id == 7
        assert record.key == "settings"

    def test_configure_writes_json_lines(self):
        name = "bot_session_storage.test_configure"
        stream = io.StringIO()
        logger = configure_structured_logging(logging.DEBUG, name, stream=stream)
        configure_structured_logging(logging.DEBUG, name, stream=stream)
        try:
            assert len(logger.handlers) == 1
            logger.debug("configured", extra={"tenant_id": 1})

            line = json.loads(stream.getvalue().strip())
            assert line["msg"] == "configured"
            assert line["context"] == {"tenant_id": 1}
        finally:
            logger.handlers.clear()


@pytest.mark.asyncio
async def test_store_logs_quota_rejection_with_tenant(small_store, caplog):
    for i in range(SMALL_SESSION_COUNT):
        await small_store.write_session(3, f"k{i}", b"v")

    with caplog.at_level(logging.INFO, logger="bot_session_storage.store"):
        with pytest.raises(QuotaExceededError):
            await small_store.write_session(3, "extra", b"v")

    assert any(getattr(r, "tenant_id", None) == 3 for r in caplog.records)

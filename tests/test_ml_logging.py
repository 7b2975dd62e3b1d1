"""
Tests for the logging helpers: formatters, correlation fields and the KEYINFO level.
"""

import json
import logging

from utils.ml_logging import (
    KEYINFO_LEVEL_NUM,
    JsonFormatter,
    PrettyFormatter,
    TraceLogFilter,
    get_logger,
)


def _record(msg="hello", **extra):
    record = logging.LogRecord("signaling.test", logging.INFO, __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_carries_signaling_fields():
    record = _record(call_id="call_1", event_type="incoming-call", transport_role="doctor")
    TraceLogFilter().filter(record)

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "hello"
    assert payload["call_id"] == "call_1"
    assert payload["user_id"] == "-"
    assert payload["event_type"] == "incoming-call"
    assert payload["transport_role"] == "doctor"


def test_pretty_formatter_appends_call_id():
    with_call = _record(call_id="call_9")
    without_call = _record()
    TraceLogFilter().filter(with_call)
    TraceLogFilter().filter(without_call)

    assert "[call_9]" in PrettyFormatter().format(with_call)
    assert "[" not in PrettyFormatter().format(without_call).split(": ", 1)[1]


def test_get_logger_is_idempotent():
    logger = get_logger("signaling.test.idempotent")
    again = get_logger("signaling.test.idempotent")

    assert logger is again
    assert sum(isinstance(h, logging.StreamHandler) for h in logger.handlers) == 1
    assert sum(isinstance(f, TraceLogFilter) for f in logger.filters) == 1


def test_keyinfo_level(caplog):
    logger = get_logger("signaling.test.keyinfo")
    with caplog.at_level(KEYINFO_LEVEL_NUM, logger="signaling.test.keyinfo"):
        logger.keyinfo("call connected")

    assert any(r.levelname == "KEYINFO" for r in caplog.records)

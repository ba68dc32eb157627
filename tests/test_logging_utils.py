"""Tests for structured logging and the error decorator."""
import json
import logging

import pytest

from utils.error_handling import (
    ErrorSeverity,
    EvalErrorCode,
    FileWriteError,
    InvalidConfigError,
    handle_errors,
)
from utils.logging_utils import (
    CorrelationIdFilter,
    CycleLogger,
    StructuredFormatter,
    correlation_id,
    set_correlation_id,
)


def make_record(**extra):
    record = logging.LogRecord("prompt_cycle", logging.INFO, __file__, 10, "Round completed", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_structured_formatter_includes_extras():
    set_correlation_id("session-123")
    record = make_record(round=2, score=71.5)
    CorrelationIdFilter().filter(record)

    data = json.loads(StructuredFormatter().format(record))
    assert data["message"] == "Round completed"
    assert data["level"] == "INFO"
    assert data["correlation_id"] == "session-123"
    assert data["round"] == 2
    assert data["score"] == 71.5
    assert "msg" not in data


def test_set_correlation_id_generates_when_missing():
    generated = set_correlation_id()
    assert correlation_id.get() == generated
    assert len(generated) == 36


def test_cycle_logger_fields_and_caller(caplog):
    caplog.set_level(logging.DEBUG, logger="prompt_cycle")
    logger = CycleLogger(logging.getLogger("prompt_cycle"))
    logger.debug("Rolled back", to_round=1)

    record = caplog.records[-1]
    assert record.levelno == logging.DEBUG
    assert record.to_round == 1
    assert record.funcName == "test_cycle_logger_fields_and_caller"


def test_error_wrap_and_to_dict():
    cause = OSError("disk full")
    error = FileWriteError.wrap(cause, context={"path": "out.json"})
    assert error.code is EvalErrorCode.FILE_WRITE_ERROR
    assert error.__cause__ is cause
    assert error.to_dict() == {
        "error_type": "FileWriteError",
        "message": "disk full",
        "code": "FILE_WRITE_ERROR",
        "context": {"path": "out.json"},
        "cause": "disk full",
    }
    # already-typed errors pass through
    original = InvalidConfigError("bad")
    assert FileWriteError.wrap(original) is original


def test_handle_errors_logs_and_reraises(caplog):
    caplog.set_level(logging.ERROR, logger="prompt_cycle")

    @handle_errors(severity=ErrorSeverity.HIGH)
    def explode():
        raise InvalidConfigError("no termination conditions")

    with pytest.raises(InvalidConfigError):
        explode()

    record = caplog.records[-1]
    assert record.getMessage() == "Error in explode: no termination conditions"
    assert record.severity == "high"
    assert record.error_code == "INVALID_CONFIG"


def test_handle_errors_can_swallow():
    @handle_errors(log_error=False, reraise=False)
    def explode():
        raise ValueError("ignored")

    assert explode() is None

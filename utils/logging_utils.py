"""
Structured logging for improvement cycles.

Records carry the running cycle's session id as ``correlation_id`` plus any
keyword fields passed to the logger, so JSON log lines can be filtered by
session and round.
"""
import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from config.cycle_config import CycleConfig

LOGGER_NAME = "prompt_cycle"
TEXT_FORMAT = "%(asctime)s %(levelname)s [%(correlation_id)s] %(message)s"

# Session id of the cycle running in this context
correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Attributes every LogRecord has; anything else arrived through ``extra``
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message", "asctime", "correlation_id",
}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: standard fields, correlation id, then extra fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        corr_id = getattr(record, "correlation_id", "-")
        if corr_id != "-":
            payload["correlation_id"] = corr_id

        payload.update(
            (key, value) for key, value in vars(record).items() if key not in _STANDARD_ATTRS
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class CorrelationIdFilter(logging.Filter):
    """Stamps every record with the current correlation ID."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id.get() or "-"
        return True


class CycleLogger:
    """Wraps a logger so keyword arguments become structured record fields."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def _log(self, level: int, message: str, fields: Dict[str, Any], exc_info: Any = None):
        # stacklevel 3 attributes the record to our caller, not this wrapper
        self.logger.log(level, message, extra=fields, exc_info=exc_info, stacklevel=3)

    def debug(self, message: str, **fields):
        self._log(logging.DEBUG, message, fields)

    def info(self, message: str, **fields):
        self._log(logging.INFO, message, fields)

    def warning(self, message: str, **fields):
        self._log(logging.WARNING, message, fields)

    def error(self, message: str, exc_info: Any = None, **fields):
        self._log(logging.ERROR, message, fields, exc_info)


def setup_logging(level: Optional[str] = None, format_type: Optional[str] = None) -> CycleLogger:
    """
    Configure the prompt_cycle logger.

    Args:
        level: Log level name; defaults to CycleConfig.LOG_LEVEL
        format_type: "json" or "text"; defaults to CycleConfig.LOG_FORMAT

    Returns:
        CycleLogger over the configured logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel((level or CycleConfig.LOG_LEVEL).upper())
    logger.handlers.clear()

    # stderr keeps stdout free for tqdm progress bars
    handler = logging.StreamHandler(sys.stderr)
    if (format_type or CycleConfig.LOG_FORMAT) == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    handler.addFilter(CorrelationIdFilter())
    logger.addHandler(handler)

    return CycleLogger(logger)


def get_logger() -> CycleLogger:
    """Shared logger, configured from CycleConfig on first use."""
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        return setup_logging()
    return CycleLogger(logger)


def set_correlation_id(corr_id: Optional[str] = None) -> str:
    """Set the correlation ID for this context, generating one if not given."""
    if corr_id is None:
        corr_id = str(uuid.uuid4())
    correlation_id.set(corr_id)
    return corr_id

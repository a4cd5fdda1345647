"""
Logging setup for wfpilot.

Fields bound with ``log_context`` (upload job, workflow step) are stamped on
every record logged inside the block, so lines from the shared browser helpers
can be traced back to the run that caused them.
"""
import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator

_bound_fields: ContextVar[Dict[str, Any]] = ContextVar("wfpilot_log_fields", default={})

TEXT_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


@contextmanager
def log_context(**fields) -> Iterator[Dict[str, Any]]:
    """Bind fields to every record logged in this block; None values are left out."""
    merged = {**_bound_fields.get(), **{k: v for k, v in fields.items() if v is not None}}
    token = _bound_fields.set(merged)
    try:
        yield merged
    finally:
        _bound_fields.reset(token)


def bound_fields() -> Dict[str, Any]:
    return dict(_bound_fields.get())


class ContextFilter(logging.Filter):
    """Captures the bound fields when the record is created."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "context_fields"):
            record.context_fields = bound_fields()
        return True


class TextFormatter(logging.Formatter):
    def __init__(self):
        super().__init__(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        fields = {**getattr(record, "context_fields", {}), **getattr(record, "extra_fields", {})}
        if fields:
            line += " [" + " ".join(f"{k}={v}" for k, v in fields.items()) + "]"
        return line


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        log_data.update(getattr(record, "context_fields", {}))
        log_data.update(getattr(record, "extra_fields", {}))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Workfront folder and file names are often accented.
        return json.dumps(log_data, ensure_ascii=False, default=str)


class StructuredLogger(logging.Logger):
    def _log_with_fields(self, level: int, msg: str, fields: Dict[str, Any] = None, **kwargs):
        if not self.isEnabledFor(level):
            return
        extra = kwargs.get("extra", {})
        extra["extra_fields"] = fields or {}
        kwargs["extra"] = extra
        super()._log(level, msg, (), **kwargs)

    def info_with(self, msg: str, **fields):
        self._log_with_fields(logging.INFO, msg, fields)

    def error_with(self, msg: str, **fields):
        self._log_with_fields(logging.ERROR, msg, fields)

    def warning_with(self, msg: str, **fields):
        self._log_with_fields(logging.WARNING, msg, fields)

    def debug_with(self, msg: str, **fields):
        self._log_with_fields(logging.DEBUG, msg, fields)


logging.setLoggerClass(StructuredLogger)


def setup_logging(level: str = None, json_format: bool = None, log_file: str = None):
    """
    Configure the root logger from arguments or the WFPILOT_LOG_LEVEL,
    WFPILOT_LOG_JSON and WFPILOT_LOG_FILE environment variables. The log file
    is always written as JSON lines.
    """
    level = level or os.environ.get("WFPILOT_LOG_LEVEL", "INFO")
    json_format = json_format if json_format is not None else os.environ.get("WFPILOT_LOG_JSON", "0") == "1"
    log_file = log_file or os.environ.get("WFPILOT_LOG_FILE")

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(JSONFormatter() if json_format else TextFormatter())
    handlers = [console_handler]

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        handlers.append(file_handler)

    for handler in handlers:
        handler.addFilter(ContextFilter())
        root_logger.addHandler(handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> StructuredLogger:
    return logging.getLogger(name)

"""Logging helpers for dblock.

Library modules only ever call `logging.getLogger(__name__)`; handlers are
installed by applications (or the `dblock` CLI) through `setup_logging`.
Lock modules attach a `lock_key` to their records with `with_log_context`,
and `JSONFormatter` emits it as a top-level field.
"""

import contextlib
import json
import logging
import os
import sys
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from dblock.core.constants import LOG_FILE_BACKUP_COUNT, LOG_FILE_MAX_BYTES, VALID_LOG_LEVELS

TEXT_LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(threadName)s] %(name)s - %(message)s"

# Attributes every LogRecord carries; anything else arrived through `extra=`.
_STANDARD_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with `extra=` context merged in at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        try:
            message = record.getMessage()
        except Exception:
            message = f"{record.msg} [log-message-format-error]"

        entry = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": message,
            "thread_name": record.threadName,
            "process": record.process,
        }
        entry.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _STANDARD_RECORD_ATTRS and not key.startswith("_")
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ContextLoggerAdapter(logging.LoggerAdapter):
    """Adapter whose fixed context is combined with any per-call `extra`."""

    def process(self, msg, kwargs):
        per_call = kwargs.get("extra")
        kwargs["extra"] = {**self.extra, **per_call} if isinstance(per_call, dict) else dict(self.extra)
        return msg, kwargs


def with_log_context(logger: logging.Logger | logging.LoggerAdapter, **context: object) -> ContextLoggerAdapter:
    """Wrap `logger` so every record carries `context`; None values are dropped.

    Wrapping an adapter again extends its context rather than nesting adapters.
    """
    merged: dict[str, object] = {}
    if isinstance(logger, logging.LoggerAdapter):
        merged.update(logger.extra or {})
        logger = logger.logger
    merged.update((key, value) for key, value in context.items() if value is not None)
    return ContextLoggerAdapter(logger, merged)


def _resolve_level(log_level: str | None) -> int:
    level = (log_level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    if level not in VALID_LOG_LEVELS:
        print(f"Warning: Invalid log level '{log_level}', using INFO", file=sys.stderr)
        level = "INFO"
    return getattr(logging, level)


def setup_logging(
    log_level: str | None = None,
    log_format: str = "text",
    log_file: str | Path | None = None,
) -> logging.Logger:
    """Replace the root logger's handlers with a stderr handler and an optional rotating file.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL; falls back to the
            LOG_LEVEL environment variable, then INFO
        log_format: "text" (default) or "json"
        log_file: Optional log file path, rotated at LOG_FILE_MAX_BYTES

    Returns:
        The `dblock` package logger
    """
    level = _resolve_level(log_level)
    root = logging.getLogger()

    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        path = Path(log_file)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(RotatingFileHandler(path, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUP_COUNT))
        except OSError as e:
            print(f"Warning: Cannot open log file {path}: {e}. Logging to console only.", file=sys.stderr)

    formatter = JSONFormatter() if log_format.lower() == "json" else logging.Formatter(TEXT_LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(level)
        root.addHandler(handler)
    root.setLevel(level)

    package_logger = logging.getLogger("dblock")
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True
    return package_logger


def flush_logging_handlers() -> None:
    """Flush root handlers, ignoring handlers that fail to flush."""
    for handler in logging.getLogger().handlers:
        with contextlib.suppress(Exception):
            handler.flush()

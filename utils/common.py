"""Common utilities for Phone Mirror.

This module centralises logging setup, trace identifier management and the
timestamp helpers shared by the mirroring services.
"""

from __future__ import annotations

import datetime as dt
import logging
import os
import platform
import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from pathlib import Path
from typing import Iterator, Optional


_TRACE_ID_DEFAULT = "-"
_TRACE_ID_VAR: ContextVar[str] = ContextVar("phone_mirror_trace_id", default=_TRACE_ID_DEFAULT)

_LOG_FILE_PREFIX = "phone_mirror_"

# Track whether log cleanup has already run for the current day.
_logs_cleaned_today = False


class TraceIdFilter(logging.Filter):
    """Augment log records with their active trace identifier."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = get_trace_id()
        return True


def generate_trace_id() -> str:
    """Return a new random trace identifier."""
    return uuid.uuid4().hex


def get_trace_id() -> str:
    """Return the current trace identifier ("-" when unset)."""
    return _TRACE_ID_VAR.get()


def set_trace_id(trace_id: Optional[str]) -> Token[str]:
    """Set the active trace identifier and return the context token."""
    value = trace_id or _TRACE_ID_DEFAULT
    return _TRACE_ID_VAR.set(value)


def reset_trace_id(token: Token[str]) -> None:
    """Reset the trace identifier to the previous context."""
    _TRACE_ID_VAR.reset(token)


@contextmanager
def trace_id_scope(trace_id: Optional[str]) -> Iterator[None]:
    """Context manager that temporarily sets the trace identifier."""
    token = set_trace_id(trace_id)
    try:
        yield
    finally:
        reset_trace_id(token)


def _resolve_logs_dir() -> Path:
    """Return the directory path where log files should be stored."""
    system = platform.system().lower()
    home_dir = Path.home()

    if system == "linux":
        xdg_data_home = os.environ.get("XDG_DATA_HOME")
        if xdg_data_home:
            return Path(xdg_data_home) / "phone_mirror" / "logs"
        return home_dir / ".local" / "share" / "phone_mirror" / "logs"

    return home_dir / ".phone_mirror_logs"


def _cleanup_old_logs(logs_dir: Path, bootstrap_logger: logging.Logger) -> int:
    """Remove log files that do not belong to today (runs at most once per day)."""
    global _logs_cleaned_today

    if _logs_cleaned_today:
        return 0

    try:
        today = dt.date.today().strftime("%Y%m%d")
        cleaned_count = 0
        prefix_len = len(_LOG_FILE_PREFIX)

        for filename in os.listdir(logs_dir):
            if not (filename.startswith(_LOG_FILE_PREFIX) and filename.endswith(".log")):
                continue

            date_part = filename[prefix_len:prefix_len + 8]
            if len(date_part) != 8 or not date_part.isdigit():
                continue

            if date_part == today:
                continue

            old_log_path = logs_dir / filename
            try:
                old_log_path.unlink()
                cleaned_count += 1
            except OSError:
                bootstrap_logger.exception("Error removing stale log file", extra={"stale_log": str(old_log_path)})

        _logs_cleaned_today = True
        return cleaned_count
    except OSError:
        bootstrap_logger.exception(
            "Unexpected failure while cleaning logs directory", extra={"logs_dir": str(logs_dir)}
        )
        return 0


def _ensure_logger_filters(logger: logging.Logger) -> None:
    """Attach the TraceIdFilter to the logger if not already present."""
    if any(isinstance(item, TraceIdFilter) for item in logger.filters):
        return
    logger.addFilter(TraceIdFilter())


def get_logger(name: str = "phone_mirror") -> logging.Logger:
    """Return a configured logger augmented with trace identifiers."""
    logger = logging.getLogger(name)
    _ensure_logger_filters(logger)

    if logger.handlers:
        return logger

    logs_dir = _resolve_logs_dir()
    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
    except OSError:
        logs_dir = Path.cwd() / "logs"
        logs_dir.mkdir(parents=True, exist_ok=True)

    bootstrap_logger = logging.getLogger("phone_mirror.bootstrap")
    if not any(isinstance(handler, logging.NullHandler) for handler in bootstrap_logger.handlers):
        bootstrap_logger.addHandler(logging.NullHandler())

    cleaned_count = _cleanup_old_logs(logs_dir, bootstrap_logger)

    current_time = dt.datetime.now().strftime("%Y%m%d_%H%M%S")
    log_filename = f"{_LOG_FILE_PREFIX}{current_time}.log"
    log_filepath = logs_dir / log_filename

    try:
        file_handler = logging.FileHandler(log_filepath, encoding="utf-8")
    except OSError:
        fallback_dir = Path.cwd() / "logs"
        fallback_dir.mkdir(parents=True, exist_ok=True)
        log_filepath = fallback_dir / log_filename
        file_handler = logging.FileHandler(log_filepath, encoding="utf-8")

    file_formatter = logging.Formatter(
        "%(asctime)s %(trace_id)s %(name)-20s %(levelname)-8s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(file_formatter)
    file_handler.addFilter(TraceIdFilter())

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_formatter = logging.Formatter("%(levelname)s [%(trace_id)s] %(message)s")
    console_handler.setFormatter(console_formatter)
    console_handler.addFilter(TraceIdFilter())

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)
    logger.setLevel(logging.INFO)

    if cleaned_count > 0:
        logger.info("Removed %s old log file(s)", cleaned_count)

    if name == "phone_mirror":
        logger.info("Log file created: %s", log_filepath)

    return logger


def set_log_level(level: str) -> None:
    """Apply a textual log level (e.g. 'DEBUG') to every Phone Mirror logger."""
    numeric = logging.getLevelName(str(level).upper())
    if not isinstance(numeric, int):
        return
    for logger in list(logging.Logger.manager.loggerDict.values()):
        if not isinstance(logger, logging.Logger):
            continue
        if not any(isinstance(item, TraceIdFilter) for item in logger.filters):
            continue
        logger.setLevel(numeric)
        for handler in logger.handlers:
            handler.setLevel(numeric)


def timestamp_time() -> str:
    """Return the current time formatted as YYYYMMDD_HHMMSS."""
    return dt.datetime.now().strftime("%Y%m%d_%H%M%S")


__all__ = [
    "TraceIdFilter",
    "generate_trace_id",
    "get_logger",
    "get_trace_id",
    "reset_trace_id",
    "set_log_level",
    "set_trace_id",
    "timestamp_time",
    "trace_id_scope",
]

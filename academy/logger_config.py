"""
Logging Configuration

Console and rotating-file logging for the academy API. Every record carries
the id of the HTTP request that produced it, so a student's failed upload or
webhook delivery can be traced across modules.
"""

import json
import logging
import logging.handlers
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pythonjsonlogger import jsonlogger

from .config import settings

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

NOISY_LOGGERS = ("httpx", "httpcore", "multipart", "mysql.connector", "passlib")


class RequestContextFilter(logging.Filter):
    """Stamps the current request id on each record"""

    def filter(self, record):
        record.request_id = request_id_var.get()
        return True


class AcademyJSONFormatter(jsonlogger.JsonFormatter):
    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["module"] = record.module
        log_record["line"] = record.lineno
        log_record["request_id"] = getattr(record, "request_id", "-")
        log_record["application"] = settings.APP_NAME
        log_record["environment"] = settings.ENVIRONMENT


class ColoredFormatter(logging.Formatter):
    """Level-coloured console output for local development"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record):
        levelname = record.levelname
        color = self.COLORS.get(levelname)
        if color:
            record.levelname = f"{color}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def _text_formatter(console: bool) -> logging.Formatter:
    pattern = "%(asctime)s [%(request_id)s] %(name)s %(levelname)s - %(message)s"
    if console:
        return ColoredFormatter(pattern, datefmt="%Y-%m-%d %H:%M:%S")
    return logging.Formatter(
        "%(asctime)s [%(request_id)s] %(name)s %(levelname)s %(module)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _rotating_handler(path: Path, level: int, max_bytes: int, backup_count: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        str(path), maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handler.setLevel(level)
    return handler


def setup_logging(
    log_level: str = "INFO",
    log_file: str = "logs/academy.log",
    log_format: str = "text",
    max_bytes: int = 10485760,
    backup_count: int = 5,
    enable_file: bool = False,
) -> logging.Logger:
    """
    Configure the root logger.

    Console output is always on. With ``enable_file`` the main log rotates at
    ``max_bytes`` and errors are duplicated into ``<name>_errors<ext>`` next to
    it. ``log_format`` is ``json`` or ``text``.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root.handlers = []
    context_filter = RequestContextFilter()

    console = logging.StreamHandler(sys.stdout)
    if log_format == "json":
        console.setFormatter(AcademyJSONFormatter("%(timestamp)s %(level)s %(name)s %(message)s"))
    else:
        console.setFormatter(_text_formatter(console=True))
    console.addFilter(context_filter)
    root.addHandler(console)

    if enable_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        if log_format == "json":
            file_formatter = AcademyJSONFormatter("%(timestamp)s %(level)s %(name)s %(module)s %(message)s")
        else:
            file_formatter = _text_formatter(console=False)

        errors_path = log_path.with_name(f"{log_path.stem}_errors{log_path.suffix}")
        for handler in (
            _rotating_handler(log_path, logging.DEBUG, max_bytes, backup_count),
            _rotating_handler(errors_path, logging.ERROR, max_bytes, backup_count),
        ):
            handler.setFormatter(file_formatter)
            handler.addFilter(context_filter)
            root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root.info(f"Logging initialized: level={log_level}, format={log_format}, file={log_file if enable_file else '-'}")
    return root


def setup_logging_from_settings() -> logging.Logger:
    return setup_logging(
        log_level=settings.LOG_LEVEL,
        log_file=settings.LOG_FILE,
        log_format=settings.LOG_FORMAT,
        max_bytes=settings.LOG_MAX_BYTES,
        backup_count=settings.LOG_BACKUP_COUNT,
        enable_file=settings.LOG_TO_FILE,
    )


class StructuredLogger:
    """Logger that appends bound key/value context to every message"""

    def __init__(self, name: str, context: Optional[dict] = None):
        self.logger = logging.getLogger(name)
        self.context = context or {}

    def _log(self, level: int, message: str, **kwargs):
        fields = {**self.context, **kwargs}
        if fields:
            message = f"{message} | {json.dumps(fields, default=str)}"
        self.logger.log(level, message)

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, **kwargs)

    def with_context(self, **kwargs) -> "StructuredLogger":
        return StructuredLogger(self.logger.name, {**self.context, **kwargs})


def get_logger(name: str, **context) -> StructuredLogger:
    return StructuredLogger(name, context)

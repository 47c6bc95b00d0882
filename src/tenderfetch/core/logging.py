"""
Logging setup.

The ``tenderfetch`` logger gets up to three handlers:

- console: rich, entity-scoped lines prefixed with the entity id
- system log: JSON lines, rotated at midnight, two weeks kept
- error log: plain text, WARNING and above, never rotated
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any

import orjson
from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "tenderfetch"
CONTEXT_FIELDS = ("run_id", "entity_id", "entity_name", "file_name", "url")
TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
SYSTEM_LOG_BACKUPS = 14


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with run and entity context when present."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, getattr(record, key)) for key in CONTEXT_FIELDS if hasattr(record, key)
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return orjson.dumps(payload, default=str).decode("utf-8")


class EntityConsoleHandler(RichHandler):
    """RichHandler that shows which entity a line belongs to."""

    def render_message(self, record: logging.LogRecord, message: str):
        entity_id = getattr(record, "entity_id", None)
        if entity_id:
            message = f"[{entity_id}] {message}"
        return super().render_message(record, message)


def _file_handler(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Path | str | None = None,
    error_file: Path | str | None = None,
    json_format: bool = True,
    rich_console: bool = True,
) -> logging.Logger:
    """Configure the ``tenderfetch`` logger, replacing earlier handlers.

    Args:
        level: Console and logger level
        log_file: System log, rotated daily; DEBUG and above
        error_file: Error log; WARNING and above
        json_format: Write the system log as JSON lines
        rich_console: Rich console output instead of a plain stderr stream

    Returns:
        The configured logger
    """
    numeric_level = getattr(logging, level.upper())
    text_formatter = logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    if rich_console:
        console: logging.Handler = EntityConsoleHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
    else:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(text_formatter)
    console.setLevel(numeric_level)
    handlers = [console]

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(_file_handler(
            TimedRotatingFileHandler(path, when="midnight", backupCount=SYSTEM_LOG_BACKUPS, encoding="utf-8"),
            logging.DEBUG,
            JSONFormatter() if json_format else text_formatter,
        ))

    if error_file:
        path = Path(error_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(_file_handler(
            logging.FileHandler(path, encoding="utf-8"),
            logging.WARNING,
            text_formatter,
        ))

    logger = logging.getLogger(ROOT_LOGGER)
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(min(numeric_level, logging.DEBUG if log_file else numeric_level))
    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    """Logger under the ``tenderfetch`` namespace."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}" if name else ROOT_LOGGER)


class ContextualLogger(logging.LoggerAdapter):
    """Adds run and entity identifiers to every record it emits.

    Usage:
        log = ContextualLogger(get_logger("runner"), run_id=report.run_id)
        log.with_context(entity_id=entity.entity_id).info("Downloaded")
    """

    def __init__(self, logger: logging.Logger, **context: Any):
        super().__init__(logger, {key: value for key, value in context.items() if value})

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs

    def with_context(self, **context: Any) -> "ContextualLogger":
        """Copy of this adapter with more (or overriding) context."""
        return ContextualLogger(self.logger, **{**self.extra, **context})

"""Logging configuration for AI Coding CLI."""

import logging
import sys
from datetime import date
from pathlib import Path
from typing import TextIO

import structlog

from ai_coding_cli.config import get_config

_log_file: TextIO | None = None


def log_file_path(directory: str | Path, day: date | None = None) -> Path:
    """Per-day debug log file inside ``directory``."""
    day = day or date.today()
    return Path(directory).expanduser() / f"debug-{day.isoformat()}.log"


def _open_log_file(directory: str | Path) -> TextIO:
    global _log_file
    path = log_file_path(directory)
    if _log_file is not None and not _log_file.closed and _log_file.name == str(path):
        return _log_file
    close_log_file()
    path.parent.mkdir(parents=True, exist_ok=True)
    _log_file = open(path, "a", encoding="utf-8", buffering=1)
    return _log_file


def close_log_file() -> None:
    global _log_file
    if _log_file is not None and not _log_file.closed:
        _log_file.close()
    _log_file = None


def configure_logging(level: str | None = None) -> None:
    """Configure structured logging.

    Logs go to stderr, or as JSON lines to the daily log file when
    ``logging.to_file`` is set.

    Args:
        level: Optional level override; defaults to ``config.logging.level``
    """
    config = get_config()

    level_name = (level or config.logging.level or "WARNING").upper()
    log_level = getattr(logging, level_name, logging.WARNING)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if config.logging.to_file:
        output: TextIO = _open_log_file(config.logging.directory)
        processors.append(structlog.processors.JSONRenderer())
    else:
        close_log_file()
        output = sys.stderr
        if config.logging.format == "console":
            processors.append(structlog.dev.ConsoleRenderer(colors=config.ui.colors))
        else:
            processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a logger instance, usually ``get_logger(__name__)``."""
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()


log = get_logger(__name__)

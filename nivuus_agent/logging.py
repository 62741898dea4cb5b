"""Logging configuration for Nivuus Agent."""

import logging
import sys
from pathlib import Path
from typing import TextIO

import structlog

from nivuus_agent.config import get_config

_log_file: TextIO | None = None


def _open_log_file(path: str) -> TextIO:
    """Open (append) the configured log file, creating its directory."""
    global _log_file
    if _log_file is not None and not _log_file.closed:
        _log_file.close()
    log_path = Path(path).expanduser()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    _log_file = open(log_path, "a", encoding="utf-8")
    return _log_file


def configure_logging(verbose: bool = False) -> None:
    """Configure structured logging for Nivuus Agent."""
    config = get_config()

    level_name = "DEBUG" if verbose else config.logging.level.upper()
    log_level = getattr(logging, level_name, logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if config.logging.format == "console":
        processors.append(structlog.dev.ConsoleRenderer(colors=not config.logging.path))
    else:
        processors.append(structlog.processors.JSONRenderer())

    sink = _open_log_file(config.logging.path) if config.logging.path.strip() else sys.stderr

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sink),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a logger instance.

    Args:
        name: Optional logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()


# Create module-level logger
log = get_logger(__name__)

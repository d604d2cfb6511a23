from __future__ import annotations

import logging
import sys

import structlog


_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Route structlog output through stdlib logging on stderr."""
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=_LEVELS.get(level.upper(), logging.INFO))
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def log_event(level: str, message: str, **fields) -> None:
    """Report one steering event.

    ``level`` is one of DEBUG, INFO, WARN, ERROR. Extra keyword fields are
    attached as structured context (upstream_id, gray_name, reason, error...).
    """
    structlog.get_logger("graysteer").log(_LEVELS.get(level.upper(), logging.INFO), message, **fields)

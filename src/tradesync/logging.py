"""Structured logging for tradesync, built on structlog over stdlib logging.

Every module does ``logger = get_logger(__name__)`` and logs snake_case
events with key/value context. The engine binds ``pair`` and ``table``
through structlog.contextvars, so every line of a run carries them.
"""

import logging
from typing import Literal

import structlog

LogFormat = Literal["console", "json"]

# Libraries that log every request at DEBUG
_NOISY_LOGGERS = ("ccxt", "aiosqlite", "asyncio")


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(log_level: str = "INFO", log_format: LogFormat = "console") -> None:
    """Route structlog and stdlib records through one stderr handler.

    Args:
        log_level: Root level name; unknown names fall back to INFO.
        log_format: "json" for machine-readable lines, "console" otherwise.
    """
    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            # Applied to records emitted by stdlib loggers (ccxt, psycopg2, ...)
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(log_format.lower()),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger named after the calling module."""
    return structlog.get_logger(name)

"""Structured logging singletons.

Intentionally reads os.environ directly: the logger must initialize before
pydantic Settings so config errors can still be logged.

``LOG_LEVEL`` sets the level for kmirror itself.  The sync worker's output goes
through ``worker_logger`` (stdout at debug, stderr at warning), whose level is
``WORKER_LOG_LEVEL``, so a transfer can be watched line by line without turning
on debug logging everywhere else.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog

WORKER_LOGGER_NAME = "kmirror.worker"


def _env_level(var: str, default: int) -> int:
    """Numeric level named by ``$var``; unset or unknown names give ``default``."""
    name = os.environ.get(var, "").strip().upper()
    level = logging.getLevelName(name) if name else default
    return level if isinstance(level, int) else default


def _setup_logging() -> structlog.stdlib.BoundLogger:
    level = _env_level("LOG_LEVEL", logging.INFO)

    # Configure stdlib root logger first so structlog's filter_by_level works
    logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr)
    logging.getLogger(WORKER_LOGGER_NAME).setLevel(_env_level("WORKER_LOG_LEVEL", level))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger("kmirror")


logger = _setup_logging()

worker_logger: structlog.stdlib.BoundLogger = structlog.get_logger(WORKER_LOGGER_NAME)


def _uncaught_exception_handler(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_tb: object,
) -> None:
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_tb)  # type: ignore[arg-type]
        return
    logger.critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_tb))
    sys.exit(1)


sys.excepthook = _uncaught_exception_handler

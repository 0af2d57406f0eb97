import sys
import logging
from typing import Optional

import structlog
from clioindex.config import settings

# Libraries that log per batch at INFO; kept at WARNING so CLI output stays readable
NOISY_LOGGERS = ("fastembed", "httpx", "urllib3", "bm25s")


def setup_logging(level: Optional[str] = None, json_logs: Optional[bool] = None):
    """
    Configures structured logging on stderr (stdout carries command output).
    - JSON when APP_ENV is production or json_logs is set
    - Console renderer otherwise
    """
    level = (level or settings.LOG_LEVEL).upper()
    if json_logs is None:
        json_logs = settings.APP_ENV == "production"

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, logging.getLevelName(level)))

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=shared_processors + [renderer],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str):
    """Return a logger bound with the module name"""
    return structlog.get_logger(name)

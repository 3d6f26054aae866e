"""
Logging Configuration for the Sales Star Schema

Routes structlog and stdlib loggers through one stderr handler so the
loader's JSON report on stdout stays machine-readable.
"""

import logging
import sys
from typing import Optional

import structlog
from structlog.stdlib import ProcessorFormatter

from starschema.config.settings import get_settings

SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def _renderer(log_format: str):
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def configure_logging(log_level: Optional[str] = None) -> None:
    """
    Configure structured logging for loaders and the CLI.

    Args:
        log_level: Override log level (DEBUG, INFO, WARNING, ERROR)
    """
    monitoring = get_settings().monitoring
    level = (log_level or monitoring.log_level).upper()
    numeric_level = getattr(logging, level, logging.INFO)

    structlog.configure(
        processors=SHARED_PROCESSORS + [ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ProcessorFormatter(
        processor=_renderer(monitoring.log_format),
        foreign_pre_chain=SHARED_PROCESSORS,
    ))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(numeric_level)

    # SQLAlchemy echo output shares the handler
    logging.getLogger("sqlalchemy.engine").propagate = True

    structlog.get_logger(__name__).debug(
        "Logging configured", level=level, format=monitoring.log_format
    )

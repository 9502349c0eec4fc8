"""
Structured logging setup.

Every module logs through ``structlog.get_logger()``; this module wires
structlog onto the standard library so client library output (aiokafka)
and our own events share one sink.
"""

import logging
import sys

import structlog

LOG_FORMATS = ("console", "json")


def configure_logging(
    level: str = "INFO",
    fmt: str = "console",
    library_level: str | None = None,
) -> None:
    """
    Configure stdlib logging and structlog.

    Args:
        level: Log level for application events.
        fmt: Renderer, ``console`` or ``json``.
        library_level: Optional separate level for the aiokafka loggers.
    """
    if fmt not in LOG_FORMATS:
        raise ValueError(f"Unknown log format: {fmt}")

    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    logging.basicConfig(
        format="%(message)s",
        level=numeric_level,
        stream=sys.stderr,
        force=True,
    )
    logging.getLogger("aiokafka").setLevel(
        logging.getLevelName(library_level.upper()) if library_level else numeric_level
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            (
                structlog.processors.JSONRenderer()
                if fmt == "json"
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

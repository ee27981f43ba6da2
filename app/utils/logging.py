"""structlog configuration shared by every ownables component.

Components never configure logging themselves; they only ask for a named
logger::

    from app.utils.logging import get_logger

    logger = get_logger("pipeline.schema_cache")
    logger.info("schema_cache_hit", kind="static-ownable")

The CLI calls :func:`configure_logging` once at start-up.  Library use and
the test-suite run with structlog's defaults.
"""

import logging
import sys

import structlog


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Configure structlog for CLI use.

    Args:
        level: Minimum level name (``DEBUG``, ``INFO``, ``WARNING`` ...).
        json_output: Render one JSON object per line instead of the
            human-readable console format.
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> structlog.typing.FilteringBoundLogger:
    """Return a structlog logger bound to component *name*."""
    return structlog.get_logger(name)

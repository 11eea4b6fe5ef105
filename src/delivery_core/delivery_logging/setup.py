"""Logging setup and configuration."""

import logging
import sys

from delivery_core.settings import LoggingSettings

from .context import ContextFilter
from .filters import DefaultCorrelationFilter, PIIFilter
from .formatters import DevFormatter, JSONFormatter

NOISY_LOGGERS = ("httpx", "httpcore", "redis")


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    environment: str = "development",
) -> None:
    """Configure the root logger with appropriate formatter and filters."""
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)

    if json_output:
        handler.setFormatter(JSONFormatter(environment))
    else:
        handler.setFormatter(DevFormatter())

    handler.addFilter(PIIFilter())
    # Context fields first so a bound correlation_id wins over the default
    handler.addFilter(ContextFilter())
    handler.addFilter(DefaultCorrelationFilter())

    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper()))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logging_from_settings(settings: LoggingSettings | None = None) -> None:
    """Configure logging from ``LOG_*`` settings."""
    settings = settings or LoggingSettings()
    setup_logging(
        level=settings.level,
        json_output=settings.format == "json",
        environment=settings.environment,
    )

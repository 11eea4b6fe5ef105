"""Logging setup with structured formatters, PII filtering, and context fields."""

from .context import ContextFilter, current_log_context, log_context, log_delivery_context
from .filters import DefaultCorrelationFilter, PIIFilter
from .formatters import DevFormatter, JSONFormatter
from .setup import setup_logging, setup_logging_from_settings

__all__ = [
    "setup_logging",
    "setup_logging_from_settings",
    "log_context",
    "log_delivery_context",
    "current_log_context",
    "JSONFormatter",
    "DevFormatter",
    "PIIFilter",
    "DefaultCorrelationFilter",
    "ContextFilter",
]

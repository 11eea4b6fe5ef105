"""Per-task logging context for adding fields to log records.

Trackers run as callbacks on a single asyncio loop, so the context lives in a
ContextVar rather than thread-local storage: each task sees its own fields.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

_context: ContextVar[dict[str, Any] | None] = ContextVar("delivery_log_context", default=None)


def current_log_context() -> dict[str, Any]:
    """Copy of the fields bound by the enclosing ``log_context`` blocks."""
    return dict(_context.get() or {})


class ContextFilter(logging.Filter):
    """Injects bound context fields into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in current_log_context().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Set logging context fields for the duration of the block.

    Fields are injected into log records via ContextFilter, which must
    be attached to the handler (see setup_logging). The previous context
    is restored on exit so blocks can nest.
    """
    token = _context.set({**current_log_context(), **kwargs})
    try:
        yield
    finally:
        _context.reset(token)


@contextmanager
def log_delivery_context(delivery_id: str, **kwargs: Any) -> Iterator[None]:
    """Convenience context manager for work on a single delivery."""
    correlation_id = kwargs.pop("correlation_id", delivery_id)
    with log_context(delivery_id=delivery_id, correlation_id=correlation_id, **kwargs):
        yield

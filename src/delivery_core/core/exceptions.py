"""Standardized exception hierarchy for the delivery core."""

from typing import Any


class DeliveryCoreError(Exception):
    """Base exception for all delivery core errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class TransientError(DeliveryCoreError):
    """Upstream failures that may clear up on their own (retry is the caller's call)."""

    pass


class NetworkError(TransientError):
    """Network-related transient errors (timeout, connection refused)."""

    pass


class ServiceUnavailableError(TransientError):
    """External service temporarily unavailable (5xx responses)."""

    pass


class PermanentError(DeliveryCoreError):
    """Errors that will not succeed on retry."""

    pass


class ValidationError(PermanentError):
    """Invalid input or data format."""

    pass


class NotFoundError(PermanentError):
    """Requested entity does not exist."""

    pass


class StateError(PermanentError):
    """Operation not allowed in the current state."""

    pass


class ConfigurationError(PermanentError):
    """Missing or invalid configuration."""

    pass

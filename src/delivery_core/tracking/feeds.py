"""Contracts for the live feeds a tracker consumes.

Feeds push full snapshots to a callback as ``(payload, None)`` or
``(None, error)`` and hand back a zero-argument unsubscribe function.
"""

from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from delivery_core.delivery import DeliveryRecord, DriverLocation, DriverProfile

Unsubscribe = Callable[[], None]

DeliveryCallback = Callable[[DeliveryRecord | dict[str, Any] | None, Exception | None], None]
LocationCallback = Callable[[DriverLocation | dict[str, Any] | None, Exception | None], None]


class DeliveryFeed(Protocol):
    def subscribe_delivery(self, delivery_id: str, callback: DeliveryCallback) -> Unsubscribe: ...


class DriverLocationFeed(Protocol):
    def subscribe_driver_location(
        self, driver_id: str, callback: LocationCallback
    ) -> Unsubscribe: ...


class DriverDirectory(Protocol):
    """One-shot driver profile lookup; may answer directly or with an awaitable."""

    def get_profile(
        self, driver_id: str
    ) -> DriverProfile | dict[str, Any] | Awaitable[DriverProfile | dict[str, Any]]: ...

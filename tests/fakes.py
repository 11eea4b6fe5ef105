"""In-process stand-ins for the live feeds a tracker consumes."""

from collections import defaultdict
from collections.abc import Callable
from typing import Any

from delivery_core.core.exceptions import NotFoundError


class FakeLiveFeed:
    """Delivers pushed snapshots synchronously and counts open subscriptions."""

    def __init__(self, profiles: dict[str, dict[str, Any]] | None = None) -> None:
        self.profiles = profiles or {}
        self.delivery_callbacks: dict[str, list[Callable]] = defaultdict(list)
        self.location_callbacks: dict[str, list[Callable]] = defaultdict(list)
        self.profile_requests: list[str] = []

    @property
    def open_subscriptions(self) -> int:
        return sum(len(cbs) for cbs in self.delivery_callbacks.values()) + sum(
            len(cbs) for cbs in self.location_callbacks.values()
        )

    def subscribe_delivery(self, delivery_id: str, callback: Callable) -> Callable[[], None]:
        return self._register(self.delivery_callbacks[delivery_id], callback)

    def subscribe_driver_location(self, driver_id: str, callback: Callable) -> Callable[[], None]:
        return self._register(self.location_callbacks[driver_id], callback)

    def get_profile(self, driver_id: str) -> dict[str, Any]:
        self.profile_requests.append(driver_id)
        if driver_id not in self.profiles:
            raise NotFoundError("Driver profile not found", details={"driver_id": driver_id})
        return {"id": driver_id, **self.profiles[driver_id]}

    def push_delivery(self, delivery_id: str, record: Any = None, error: Exception | None = None):
        for callback in list(self.delivery_callbacks[delivery_id]):
            callback(record, error)

    def push_location(self, driver_id: str, location: Any = None, error: Exception | None = None):
        for callback in list(self.location_callbacks[driver_id]):
            callback(location, error)

    @staticmethod
    def _register(callbacks: list[Callable], callback: Callable) -> Callable[[], None]:
        callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe


class AsyncProfileDirectory:
    """Profile lookup that answers with a coroutine, like a network-backed store."""

    def __init__(self, profiles: dict[str, dict[str, Any]]) -> None:
        self.profiles = profiles
        self.requests: list[str] = []

    def get_profile(self, driver_id: str):
        self.requests.append(driver_id)
        return self._fetch(driver_id)

    async def _fetch(self, driver_id: str) -> dict[str, Any]:
        if driver_id not in self.profiles:
            raise NotFoundError("Driver profile not found", details={"driver_id": driver_id})
        return {"id": driver_id, **self.profiles[driver_id]}

"""Live status and timeline tracking for a single delivery.

The tracker consumes full-record snapshots from a live feed that may deliver
them late, out of order or more than once. Status only moves along the
delivery state machine; anything else is logged and ignored so a stale
snapshot can never roll the displayed status back. The timeline is merged
from every snapshot, whether or not its status was accepted.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from delivery_core.core.exceptions import StateError
from delivery_core.delivery import (
    DeliveryRecord,
    DeliveryStatus,
    DriverLocation,
    DriverProfile,
    can_transition,
)
from delivery_core.delivery_logging import log_delivery_context
from delivery_core.settings import TrackingSettings
from delivery_core.tracking.feeds import (
    DeliveryFeed,
    DriverDirectory,
    DriverLocationFeed,
    Unsubscribe,
)
from delivery_core.tracking.timeline import TimelineEntry, TimelineFormatter, merge_timeline

logger = logging.getLogger(__name__)


class TrackerState(BaseModel):
    """What the UI renders for a tracked delivery."""

    status: DeliveryStatus | None = None
    timeline: list[TimelineEntry] = Field(default_factory=list)
    driver_profile: DriverProfile | None = None
    driver_location: DriverLocation | None = None


class DeliveryTimelineTracker:
    """Tracks one delivery's status, timeline and assigned driver."""

    def __init__(
        self,
        delivery_feed: DeliveryFeed,
        driver_feed: DriverLocationFeed,
        driver_directory: DriverDirectory,
        formatter: TimelineFormatter | None = None,
        settings: TrackingSettings | None = None,
    ) -> None:
        self.delivery_feed = delivery_feed
        self.driver_feed = driver_feed
        self.driver_directory = driver_directory
        self.settings = settings or TrackingSettings()
        self.formatter = formatter or TimelineFormatter.from_settings(self.settings)

        self.delivery_id: str | None = None
        self._attached = False
        self._reset_state()

        self._on_update: Callable[[TrackerState], None] | None = None
        self._unsubscribe_delivery: Unsubscribe | None = None
        self._unsubscribe_driver: Unsubscribe | None = None
        self._profile_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> TrackerState:
        return TrackerState(
            status=self._status.display_status if self._status else None,
            timeline=list(self._entries),
            driver_profile=self._driver_profile,
            driver_location=self._driver_location,
        )

    @property
    def is_attached(self) -> bool:
        return self._attached

    @property
    def is_tracking_driver(self) -> bool:
        return self._unsubscribe_driver is not None

    def attach(
        self, delivery_id: str, on_update: Callable[[TrackerState], None]
    ) -> Callable[[], None]:
        """Subscribe to a delivery's live updates; returns the detach function."""
        if self.is_attached:
            raise StateError(
                "Tracker is already attached",
                details={"delivery_id": self.delivery_id, "requested": delivery_id},
            )

        self._reset_state()
        self.delivery_id = delivery_id
        self._on_update = on_update
        # Set before subscribing: a feed may replay its current snapshot synchronously
        self._attached = True
        with log_delivery_context(delivery_id):
            logger.info("Subscribing to delivery updates")
            try:
                self._unsubscribe_delivery = self.delivery_feed.subscribe_delivery(
                    delivery_id, self.handle_snapshot
                )
            except Exception:
                self._attached = False
                raise
        return self.detach

    def detach(self) -> None:
        """Release every subscription this tracker holds. Safe to call twice.

        Callbacks still in flight afterwards are dropped. The tracker can then
        be attached again, starting from a clean state.
        """
        self._attached = False
        if self._unsubscribe_delivery is not None:
            self._unsubscribe_delivery()
            self._unsubscribe_delivery = None
        if self._unsubscribe_driver is not None:
            self._unsubscribe_driver()
            self._unsubscribe_driver = None
        if self._profile_task is not None and not self._profile_task.done():
            self._profile_task.cancel()
        self._profile_task = None
        self._on_update = None

    def _reset_state(self) -> None:
        self._status: DeliveryStatus | None = None
        self._entries: list[TimelineEntry] = []
        self._driver_profile: DriverProfile | None = None
        self._driver_location: DriverLocation | None = None
        self._driver_requested = False

    def __enter__(self) -> "DeliveryTimelineTracker":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.detach()

    def handle_snapshot(
        self,
        record: DeliveryRecord | dict[str, Any] | None,
        error: Exception | None = None,
    ) -> None:
        """Feed callback: fold one delivery snapshot into the tracked state."""
        if not self._attached:
            logger.debug("Snapshot arrived after detach, dropping it")
            return

        with log_delivery_context(self.delivery_id or "-"):
            if error is not None:
                logger.error(f"Delivery subscription error, keeping last known state: {error}")
                return
            if record is None:
                logger.debug("Empty delivery snapshot, keeping last known state")
                return

            if not isinstance(record, DeliveryRecord):
                try:
                    record = DeliveryRecord.model_validate(record)
                except PydanticValidationError as e:
                    logger.warning(
                        f"Discarding malformed delivery snapshot ({e.error_count()} errors)"
                    )
                    return

            if self.delivery_id is not None and record.id != self.delivery_id:
                logger.warning(f"Ignoring snapshot for another delivery: {record.id}")
                return

            status_changed = self._apply_status(record.status)
            self._entries = merge_timeline(self._entries, record.timeline, self.formatter)

            if status_changed and record.status.is_active and record.driver_id:
                self._start_driver_tracking(record.driver_id)

            self._notify()

    def estimate_arrival(self, now: datetime | None = None) -> str:
        """Rough arrival estimate counted from when a driver accepted."""
        accepted = [entry.timestamp for entry in self._entries if entry.status_key == "accepted"]
        if not accepted:
            return "Calculating..."

        now = now or datetime.now(UTC)
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        eta = min(accepted) + timedelta(minutes=self.settings.arrival_allowance_minutes)
        minutes_left = round((eta - now).total_seconds() / 60)
        return f"~{minutes_left} min" if minutes_left > 0 else "Arriving soon"

    def _apply_status(self, incoming: DeliveryStatus) -> bool:
        if self._status is None:
            self._status = incoming
            logger.info(f"Initial delivery status: {incoming.value}")
            return True
        if incoming == self._status:
            return False
        if not can_transition(self._status, incoming):
            logger.warning(
                f"Ignoring invalid status transition {self._status.value} -> {incoming.value}"
            )
            return False

        logger.info(f"Delivery status {self._status.value} -> {incoming.value}")
        self._status = incoming
        return True

    def _start_driver_tracking(self, driver_id: str) -> None:
        if self._driver_requested:
            return
        self._driver_requested = True

        logger.info(f"Driver {driver_id} assigned, loading profile and live location")
        self._unsubscribe_driver = self.driver_feed.subscribe_driver_location(
            driver_id, self._handle_driver_location
        )

        try:
            result = self.driver_directory.get_profile(driver_id)
        except Exception:
            logger.exception(f"Failed to load profile for driver {driver_id}")
            return

        if inspect.isawaitable(result):
            self._schedule_profile_load(driver_id, result)
        else:
            self._set_driver_profile(result)

    def _schedule_profile_load(self, driver_id: str, pending: Awaitable[Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error(f"No running event loop to load profile for driver {driver_id}")
            if inspect.iscoroutine(pending):
                pending.close()
            return
        self._profile_task = loop.create_task(self._load_driver_profile(driver_id, pending))

    async def _load_driver_profile(self, driver_id: str, pending: Awaitable[Any]) -> None:
        try:
            profile = await pending
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Failed to load profile for driver {driver_id}")
            return
        self._set_driver_profile(profile)

    def _set_driver_profile(self, profile: DriverProfile | dict[str, Any] | None) -> None:
        if not self._attached:
            return
        if profile is None:
            logger.warning("Driver profile lookup returned nothing")
            return
        try:
            self._driver_profile = DriverProfile.model_validate(profile)
        except PydanticValidationError as e:
            logger.warning(f"Discarding malformed driver profile ({e.error_count()} errors)")
            return
        self._notify()

    def _handle_driver_location(
        self,
        location: DriverLocation | dict[str, Any] | None,
        error: Exception | None = None,
    ) -> None:
        if not self._attached:
            return
        if error is not None:
            logger.warning(f"Driver location subscription error: {error}")
            return
        if location is None:
            return
        try:
            self._driver_location = DriverLocation.model_validate(location)
        except PydanticValidationError as e:
            logger.warning(f"Discarding malformed driver location ({e.error_count()} errors)")
            return
        self._notify()

    def _notify(self) -> None:
        if self._on_update is not None:
            self._on_update(self.state)

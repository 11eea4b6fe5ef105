"""Delivery status state machine and record models."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from delivery_core.geo.distance import Coordinates


class DeliveryStatus(str, Enum):
    """Delivery lifecycle states."""

    PENDING = "pending"
    SEARCHING = "searching"
    ACCEPTED = "accepted"
    ARRIVED_PICKUP = "arrived_pickup"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    ARRIVED_DROPOFF = "arrived_dropoff"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return not VALID_TRANSITIONS[self]

    @property
    def is_active(self) -> bool:
        """A driver is assigned and the delivery is still under way."""
        return self in DRIVER_ASSIGNED_STATUSES

    @property
    def display_status(self) -> "DeliveryStatus":
        """Status as shown to the customer; pending reads as searching."""
        if self is DeliveryStatus.PENDING:
            return DeliveryStatus.SEARCHING
        return self


VALID_TRANSITIONS: dict[DeliveryStatus, set[DeliveryStatus]] = {
    DeliveryStatus.PENDING: {DeliveryStatus.SEARCHING},
    DeliveryStatus.SEARCHING: {DeliveryStatus.ACCEPTED, DeliveryStatus.CANCELLED},
    DeliveryStatus.ACCEPTED: {DeliveryStatus.ARRIVED_PICKUP, DeliveryStatus.CANCELLED},
    DeliveryStatus.ARRIVED_PICKUP: {DeliveryStatus.PICKED_UP, DeliveryStatus.CANCELLED},
    DeliveryStatus.PICKED_UP: {DeliveryStatus.IN_TRANSIT, DeliveryStatus.CANCELLED},
    DeliveryStatus.IN_TRANSIT: {DeliveryStatus.ARRIVED_DROPOFF, DeliveryStatus.CANCELLED},
    DeliveryStatus.ARRIVED_DROPOFF: {DeliveryStatus.DELIVERED},
    DeliveryStatus.DELIVERED: set(),
    DeliveryStatus.CANCELLED: set(),
    DeliveryStatus.FAILED: set(),
}

DRIVER_ASSIGNED_STATUSES = frozenset(
    {
        DeliveryStatus.ACCEPTED,
        DeliveryStatus.ARRIVED_PICKUP,
        DeliveryStatus.PICKED_UP,
        DeliveryStatus.IN_TRANSIT,
        DeliveryStatus.ARRIVED_DROPOFF,
    }
)

# Lifecycle position, used to break timestamp ties in the timeline
STATUS_ORDER: dict[str, int] = {status.value: index for index, status in enumerate(DeliveryStatus)}

STATUS_LABELS: dict[str, str] = {
    "pending": "Pending",
    "searching": "Searching for Driver",
    "accepted": "Accepted",
    "arrived_pickup": "Arrived at Pickup",
    "picked_up": "Picked Up",
    "in_transit": "In Transit",
    "arrived_dropoff": "Arrived at Dropoff",
    "delivered": "Delivered",
    "cancelled": "Cancelled",
    "failed": "Failed",
    "driver_assigned": "Driver Assigned",
}


def can_transition(current: DeliveryStatus, new: DeliveryStatus) -> bool:
    return new in VALID_TRANSITIONS[current]


def status_label(status_key: str | None) -> str:
    """Human-readable label for a status key, including keys not in the table."""
    if not status_key:
        return "Unknown"
    if status_key in STATUS_LABELS:
        return STATUS_LABELS[status_key]
    return status_key[:1].upper() + status_key[1:].replace("_", " ")


def parse_timestamp(value: Any) -> datetime | None:
    """Convert a server timestamp into an aware datetime.

    Accepts datetimes (naive ones are taken as UTC), ISO-8601 strings, epoch
    milliseconds and ``{"seconds": ..., "nanoseconds": ...}`` mappings.
    Returns None for anything that cannot be placed on the time axis.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, bool):
        return None
    try:
        if isinstance(value, int | float):
            return datetime.fromtimestamp(value / 1000, tz=UTC)
        if isinstance(value, str):
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
        if isinstance(value, dict) and "seconds" in value:
            seconds = float(value["seconds"]) + float(value.get("nanoseconds", 0)) / 1e9
            return datetime.fromtimestamp(seconds, tz=UTC)
    except (ValueError, TypeError, OverflowError, OSError):
        return None
    return None


class Location(BaseModel):
    address: str = ""
    coordinates: Coordinates | None = None


class DriverLocation(BaseModel):
    """Live driver position pushed by the location feed."""

    model_config = ConfigDict(extra="ignore")

    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    heading: float | None = None


class DriverProfile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = "Driver"
    phone_number: str | None = None
    vehicle_class: str | None = None
    plate_number: str | None = None
    rating: float | None = Field(default=None, ge=0.0, le=5.0)


class DeliveryRecord(BaseModel):
    """One snapshot of a delivery document as pushed by the live feed.

    Timeline values that cannot be parsed into an instant are dropped here,
    before the record reaches the tracker.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(min_length=1)
    status: DeliveryStatus
    timeline: dict[str, datetime] = Field(default_factory=dict)
    driver_id: str | None = Field(default=None, alias="driverId")
    pickup_location: Location | None = Field(default=None, alias="pickupLocation")
    dropoff_location: Location | None = Field(default=None, alias="dropoffLocation")

    @field_validator("timeline", mode="before")
    @classmethod
    def drop_unparseable_timestamps(cls, v: Any) -> dict[str, datetime]:
        if not isinstance(v, dict):
            return {}
        parsed = {}
        for key, raw in v.items():
            timestamp = parse_timestamp(raw)
            if timestamp is not None:
                parsed[str(key)] = timestamp
        return parsed

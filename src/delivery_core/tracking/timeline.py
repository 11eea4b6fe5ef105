"""Timeline entries derived from a delivery's status timestamps.

Entries are keyed by status and timestamp, so a snapshot that repeats a
known transition collapses into the existing entry, while a corrected
timestamp for the same status shows up as a second entry.
"""

from collections.abc import Iterable, Mapping
from datetime import datetime, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel

from delivery_core.core.exceptions import ConfigurationError
from delivery_core.delivery import STATUS_ORDER, status_label
from delivery_core.settings import TrackingSettings


class TimelineEntry(BaseModel):
    id: str
    status_key: str
    display_label: str
    time: str
    timestamp: datetime
    description: str


class TimelineFormatter:
    """Renders entry times; re-applied on every merge."""

    def __init__(self, time_format: str = "%H:%M", timezone: tzinfo | None = None) -> None:
        self.time_format = time_format
        self.timezone = timezone

    @classmethod
    def from_settings(cls, settings: TrackingSettings) -> "TimelineFormatter":
        timezone = None
        if settings.timezone:
            try:
                timezone = ZoneInfo(settings.timezone)
            except (ZoneInfoNotFoundError, ValueError) as e:
                raise ConfigurationError(
                    f"Unknown timezone: {settings.timezone}",
                    details={"timezone": settings.timezone},
                ) from e
        return cls(time_format=settings.time_format, timezone=timezone)

    def format(self, timestamp: datetime) -> str:
        # astimezone(None) converts to the host's local zone
        return timestamp.astimezone(self.timezone).strftime(self.time_format)


def entry_id(status_key: str, timestamp: datetime) -> str:
    epoch_millis = round(timestamp.timestamp() * 1000)
    return f"{status_key}_{epoch_millis}"


def build_entry(status_key: str, timestamp: datetime, formatter: TimelineFormatter) -> TimelineEntry:
    label = status_label(status_key)
    return TimelineEntry(
        id=entry_id(status_key, timestamp),
        status_key=status_key,
        display_label=label,
        time=formatter.format(timestamp),
        timestamp=timestamp,
        description=f"Delivery status updated to {label}.",
    )


def _sort_key(entry: TimelineEntry) -> tuple[datetime, int, str]:
    return (entry.timestamp, STATUS_ORDER.get(entry.status_key, len(STATUS_ORDER)), entry.id)


def merge_timeline(
    existing: Iterable[TimelineEntry],
    timeline: Mapping[str, datetime],
    formatter: TimelineFormatter,
) -> list[TimelineEntry]:
    """Union existing entries with a snapshot's timeline map, oldest first."""
    merged: dict[str, TimelineEntry] = {entry.id: entry for entry in existing}
    for status_key, timestamp in timeline.items():
        candidate = build_entry(status_key, timestamp, formatter)
        merged.setdefault(candidate.id, candidate)

    return [
        entry.model_copy(update={"time": formatter.format(entry.timestamp)})
        for entry in sorted(merged.values(), key=_sort_key)
    ]

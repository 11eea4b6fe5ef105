from datetime import UTC

import pytest

from delivery_core.fare import FareEngine
from delivery_core.tracking import DeliveryTimelineTracker, TimelineFormatter
from tests.fakes import FakeLiveFeed


@pytest.fixture
def fare_engine() -> FareEngine:
    return FareEngine()


@pytest.fixture
def utc_formatter() -> TimelineFormatter:
    return TimelineFormatter(time_format="%H:%M", timezone=UTC)


@pytest.fixture
def live_feed() -> FakeLiveFeed:
    return FakeLiveFeed(
        profiles={"driver-7": {"name": "Juma Hassan", "vehicle_class": "boda", "rating": 4.8}}
    )


@pytest.fixture
def tracker(live_feed: FakeLiveFeed, utc_formatter: TimelineFormatter) -> DeliveryTimelineTracker:
    return DeliveryTimelineTracker(
        delivery_feed=live_feed,
        driver_feed=live_feed,
        driver_directory=live_feed,
        formatter=utc_formatter,
    )


@pytest.fixture
def updates() -> list:
    """Collects every state pushed to on_update."""
    return []

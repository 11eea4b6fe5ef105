"""Fare estimation and live delivery tracking for the courier app."""

from delivery_core.fare import FareEngine, FareQuote, PackageSize, VehicleClass
from delivery_core.tracking import DeliveryTimelineTracker, TimelineEntry, TrackerState

__version__ = "0.1.0"

__all__ = [
    "DeliveryTimelineTracker",
    "FareEngine",
    "FareQuote",
    "PackageSize",
    "TimelineEntry",
    "TrackerState",
    "VehicleClass",
]

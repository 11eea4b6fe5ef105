from delivery_core.tracking.timeline import TimelineEntry, TimelineFormatter, merge_timeline
from delivery_core.tracking.tracker import DeliveryTimelineTracker, TrackerState

__all__ = [
    "DeliveryTimelineTracker",
    "TimelineEntry",
    "TimelineFormatter",
    "TrackerState",
    "merge_timeline",
]

from .protocol import (
    DEFAULT_EPOCH,
    EventType,
    TripStatus,
    AlertType,
    Alert,
    TripEvent,
    TripState,
    parse_timestamp,
    format_timestamp,
)

__all__ = [
    "DEFAULT_EPOCH",
    "EventType",
    "TripStatus",
    "AlertType",
    "Alert",
    "TripEvent",
    "TripState",
    "parse_timestamp",
    "format_timestamp",
]

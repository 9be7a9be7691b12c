"""
Replay engine for trip telemetry.

Applies due events from the sorted log to the trips of a session.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, List, Optional
import logging

from fleet_replay.shared.protocol import (
    DEFAULT_EPOCH,
    Alert,
    AlertType,
    EventType,
    TripEvent,
    TripState,
    TripStatus,
    format_timestamp,
    parse_timestamp,
)
from .event_log import EventLog

logger = logging.getLogger(__name__)


VEHICLE_STOPPED_MESSAGE = "Vehicle stopped"
GPS_SIGNAL_LOST_MESSAGE = "GPS signal lost"
LOW_FUEL_MESSAGE = "Low fuel level"
REFUELING_MESSAGE = "Refueling in progress"


@dataclass
class TransitionPolicy:
    """How the engine treats out-of-range and post-terminal data."""
    # Completed or cancelled trips ignore later events when set
    freeze_terminal_trips: bool = False
    # Keep computed progress within 0-100 when set
    clamp_progress: bool = False


@dataclass
class SimulationSession:
    """Everything needed to resume a replay exactly where it stopped."""
    trips: List[TripState] = field(default_factory=list)
    applied_events: List[TripEvent] = field(default_factory=list)
    full_event_log: EventLog = field(default_factory=EventLog)
    cursor_index: int = 0
    virtual_clock: datetime = DEFAULT_EPOCH
    speed: float = 1.0
    is_playing: bool = False
    _trip_index: Dict[str, int] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self):
        self._trip_index = {trip.id: position for position, trip in enumerate(self.trips)}

    @property
    def is_exhausted(self) -> bool:
        return self.cursor_index >= len(self.full_event_log)

    def trip_position(self, trip_id: Optional[str]) -> Optional[int]:
        if trip_id is None:
            return None
        return self._trip_index.get(trip_id)

    def get_trip(self, trip_id: str) -> Optional[TripState]:
        position = self.trip_position(trip_id)
        return self.trips[position] if position is not None else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trips": [t.to_dict() for t in self.trips],
            "applied_events": [e.to_dict() for e in self.applied_events],
            "full_event_log": self.full_event_log.to_list(),
            "cursor_index": self.cursor_index,
            "virtual_clock": format_timestamp(self.virtual_clock),
            "speed": self.speed,
            "is_playing": self.is_playing,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SimulationSession":
        return cls(
            trips=[TripState.from_dict(t) for t in data["trips"]],
            applied_events=[TripEvent.from_dict(e) for e in data.get("applied_events", [])],
            full_event_log=EventLog.from_raw(data["full_event_log"]),
            cursor_index=int(data.get("cursor_index", 0)),
            virtual_clock=parse_timestamp(data["virtual_clock"]),
            speed=float(data.get("speed", 1.0)),
            is_playing=bool(data.get("is_playing", False)),
        )


def round1(value: float) -> float:
    """Round half-up to one decimal place."""
    return float(Decimal(value).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def compute_progress(distance: float, total: float, clamp: bool = False) -> float:
    if total <= 0:
        return 0.0
    progress = round1(distance / total * 100)
    if clamp:
        progress = max(0.0, min(100.0, progress))
    return progress


def _format_value(value: Optional[Any]) -> str:
    if value is None:
        return "unknown"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _remove_alerts(trip: TripState, predicate: Callable[[Alert], bool]):
    trip.alerts = [a for a in trip.alerts if not predicate(a)]


def _set_distance(trip: TripState, distance: float, policy: TransitionPolicy):
    trip.completed_distance = distance
    trip.progress = compute_progress(distance, trip.total_distance, policy.clamp_progress)


def _trip_started(trip, payload, policy):
    trip.status = TripStatus.IN_PROGRESS


def _telemetry(trip, payload, policy):
    if payload.distance_km is not None:
        _set_distance(trip, payload.distance_km, policy)
    if payload.speed_kmh is not None:
        trip.current_speed = payload.speed_kmh
    if payload.location is not None:
        trip.last_location = payload.location
    if payload.fuel_level_percent is not None:
        trip.fuel_level = payload.fuel_level_percent


def _vehicle_stopped(trip, payload, policy):
    trip.current_speed = 0
    trip.alerts.append(Alert(AlertType.INFO, VEHICLE_STOPPED_MESSAGE))


def _vehicle_moving(trip, payload, policy):
    _remove_alerts(trip, lambda a: a.message == VEHICLE_STOPPED_MESSAGE)
    if payload.speed_kmh is not None:
        trip.current_speed = payload.speed_kmh


def _speed_violation(trip, payload, policy):
    message = (
        f"Speed violation: {_format_value(payload.speed_kmh)} km/h "
        f"(limit {_format_value(payload.speed_limit_kmh)})"
    )
    trip.alerts.append(Alert(AlertType.WARNING, message))
    if payload.distance_km is not None:
        _set_distance(trip, payload.distance_km, policy)


def _signal_lost(trip, payload, policy):
    trip.alerts.append(Alert(AlertType.ERROR, GPS_SIGNAL_LOST_MESSAGE))


def _signal_recovered(trip, payload, policy):
    _remove_alerts(trip, lambda a: a.message == GPS_SIGNAL_LOST_MESSAGE)


def _fuel_level_low(trip, payload, policy):
    if payload.fuel_level_percent is not None:
        trip.fuel_level = payload.fuel_level_percent
    trip.alerts.append(Alert(AlertType.WARNING, LOW_FUEL_MESSAGE))


def _refueling_started(trip, payload, policy):
    trip.alerts.append(Alert(AlertType.INFO, REFUELING_MESSAGE))


def _refueling_completed(trip, payload, policy):
    if payload.fuel_level_after_refuel is not None:
        trip.fuel_level = payload.fuel_level_after_refuel
    _remove_alerts(
        trip,
        lambda a: "fuel" in a.message.lower() or a.message == REFUELING_MESSAGE,
    )


def _device_error(trip, payload, policy):
    trip.alerts.append(Alert(AlertType.ERROR, f"Device error: {_format_value(payload.error_type)}"))


def _trip_cancelled(trip, payload, policy):
    trip.status = TripStatus.CANCELLED
    if payload.distance_completed_km is not None:
        trip.completed_distance = payload.distance_completed_km
    trip.progress = compute_progress(trip.completed_distance, trip.total_distance, policy.clamp_progress)
    trip.current_speed = 0


def _trip_completed(trip, payload, policy):
    trip.status = TripStatus.COMPLETED
    trip.progress = 100.0
    if payload.total_distance_km is not None:
        trip.completed_distance = payload.total_distance_km
    else:
        trip.completed_distance = trip.total_distance
    trip.current_speed = 0
    trip.alerts = []


_TRANSITIONS = {
    EventType.TRIP_STARTED: _trip_started,
    EventType.LOCATION_PING: _telemetry,
    EventType.VEHICLE_TELEMETRY: _telemetry,
    EventType.VEHICLE_STOPPED: _vehicle_stopped,
    EventType.VEHICLE_MOVING: _vehicle_moving,
    EventType.SPEED_VIOLATION: _speed_violation,
    EventType.SIGNAL_LOST: _signal_lost,
    EventType.SIGNAL_RECOVERED: _signal_recovered,
    EventType.FUEL_LEVEL_LOW: _fuel_level_low,
    EventType.REFUELING_STARTED: _refueling_started,
    EventType.REFUELING_COMPLETED: _refueling_completed,
    EventType.DEVICE_ERROR: _device_error,
    EventType.TRIP_CANCELLED: _trip_cancelled,
    EventType.TRIP_COMPLETED: _trip_completed,
}


def apply_event(
    trip: TripState,
    event: TripEvent,
    policy: Optional[TransitionPolicy] = None,
) -> TripState:
    """
    Apply a single event to a trip.

    Returns an updated copy; the given trip is left untouched. Unknown
    event types return the trip unchanged.
    """
    policy = policy or TransitionPolicy()

    transition = _TRANSITIONS.get(event.kind)
    if transition is None:
        logger.debug(f"Ignoring unknown event type {event.event_type!r} for trip {trip.id}")
        return trip

    if policy.freeze_terminal_trips and trip.is_terminal:
        logger.debug(f"Trip {trip.id} is {trip.status.value}, ignoring {event.event_type}")
        return trip

    updated = replace(trip, alerts=list(trip.alerts))
    transition(updated, event.payload, policy)
    return updated


class ReplayEngine:
    """
    Applies the sorted event log to a session's trips.

    The engine holds no session state itself; the cursor, clock and
    trips all live on the SimulationSession it is given.
    """

    def __init__(self, policy: Optional[TransitionPolicy] = None, metrics_collector=None):
        self.policy = policy or TransitionPolicy()
        self.metrics = metrics_collector

    def advance_to(self, session: SimulationSession, target_time: datetime) -> List[TripEvent]:
        """
        Apply every not-yet-applied event with timestamp <= target_time.

        Args:
            session: Session to update in place
            target_time: Instant up to which events are due

        Returns:
            The newly applied events, in log order (possibly empty)
        """
        log = session.full_event_log
        applied: List[TripEvent] = []

        while session.cursor_index < len(log):
            event = log[session.cursor_index]
            if event.timestamp > target_time:
                break

            position = session.trip_position(event.trip_id)
            if position is None:
                if event.trip_id is None:
                    logger.warning(f"Event #{session.cursor_index} ({event.event_type}) has no trip_id, skipping")
                else:
                    logger.warning(f"Event #{session.cursor_index} references unknown trip {event.trip_id}, skipping")
                if self.metrics:
                    self.metrics.increment_unmatched_events()
            else:
                session.trips[position] = apply_event(session.trips[position], event, self.policy)
                if self.metrics:
                    self.metrics.increment_events_applied(event.event_type)

            session.cursor_index += 1
            applied.append(event)

        if applied:
            session.applied_events.extend(applied)
            logger.debug(
                f"Applied {len(applied)} events up to {format_timestamp(target_time)} "
                f"(cursor {session.cursor_index}/{len(log)})"
            )

        return applied

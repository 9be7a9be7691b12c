"""
Shared protocol definitions for Fleet Replay.
Defines trip events, their payloads, and the per-trip state record.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union


# Clock value used when an event log is empty
DEFAULT_EPOCH = datetime(2025, 11, 3, 10, 0, 0, tzinfo=timezone.utc)


class EventType(Enum):
    TRIP_STARTED = "trip_started"
    LOCATION_PING = "location_ping"
    VEHICLE_TELEMETRY = "vehicle_telemetry"
    VEHICLE_STOPPED = "vehicle_stopped"
    VEHICLE_MOVING = "vehicle_moving"
    SPEED_VIOLATION = "speed_violation"
    SIGNAL_LOST = "signal_lost"
    SIGNAL_RECOVERED = "signal_recovered"
    FUEL_LEVEL_LOW = "fuel_level_low"
    REFUELING_STARTED = "refueling_started"
    REFUELING_COMPLETED = "refueling_completed"
    DEVICE_ERROR = "device_error"
    TRIP_CANCELLED = "trip_cancelled"
    TRIP_COMPLETED = "trip_completed"


class TripStatus(Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = (TripStatus.COMPLETED, TripStatus.CANCELLED)


class AlertType(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


def parse_timestamp(value: Union[str, datetime]) -> datetime:
    """Parse an ISO-8601 timestamp. Naive values are taken as UTC."""
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_timestamp(dt: datetime) -> str:
    """Lossless ISO-8601 form used for checkpoints and API responses."""
    return dt.astimezone(timezone.utc).isoformat()


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


# Payloads, one per event type. Every field is optional.

@dataclass(frozen=True)
class TripStarted:
    pass


@dataclass(frozen=True)
class TelemetryReport:
    """location_ping and vehicle_telemetry share this payload."""
    distance_km: Optional[float] = None
    speed_kmh: Optional[float] = None
    location: Optional[Dict[str, Any]] = None
    fuel_level_percent: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TelemetryReport":
        return cls(
            distance_km=_number(data.get("distance_travelled_km")),
            speed_kmh=_number(_section(data, "movement").get("speed_kmh")),
            location=data.get("location"),
            fuel_level_percent=_number(_section(data, "telemetry").get("fuel_level_percent")),
        )


@dataclass(frozen=True)
class VehicleStopped:
    pass


@dataclass(frozen=True)
class VehicleMoving:
    speed_kmh: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VehicleMoving":
        return cls(speed_kmh=_number(_section(data, "movement").get("speed_kmh")))


@dataclass(frozen=True)
class SpeedViolation:
    speed_kmh: Optional[float] = None
    speed_limit_kmh: Optional[float] = None
    distance_km: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SpeedViolation":
        return cls(
            speed_kmh=_number(_section(data, "movement").get("speed_kmh")),
            speed_limit_kmh=_number(data.get("speed_limit_kmh")),
            distance_km=_number(data.get("distance_travelled_km")),
        )


@dataclass(frozen=True)
class SignalLost:
    pass


@dataclass(frozen=True)
class SignalRecovered:
    pass


@dataclass(frozen=True)
class FuelLevelLow:
    fuel_level_percent: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FuelLevelLow":
        return cls(fuel_level_percent=_number(data.get("fuel_level_percent")))


@dataclass(frozen=True)
class RefuelingStarted:
    pass


@dataclass(frozen=True)
class RefuelingCompleted:
    fuel_level_after_refuel: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RefuelingCompleted":
        return cls(fuel_level_after_refuel=_number(data.get("fuel_level_after_refuel")))


@dataclass(frozen=True)
class DeviceError:
    error_type: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeviceError":
        error_type = data.get("error_type")
        return cls(error_type=str(error_type) if error_type is not None else None)


@dataclass(frozen=True)
class TripCancelled:
    distance_completed_km: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TripCancelled":
        return cls(distance_completed_km=_number(data.get("distance_completed_km")))


@dataclass(frozen=True)
class TripCompleted:
    total_distance_km: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TripCompleted":
        return cls(total_distance_km=_number(data.get("total_distance_km")))


EventPayload = Union[
    TripStarted, TelemetryReport, VehicleStopped, VehicleMoving, SpeedViolation,
    SignalLost, SignalRecovered, FuelLevelLow, RefuelingStarted, RefuelingCompleted,
    DeviceError, TripCancelled, TripCompleted,
]

PAYLOAD_PARSERS: Dict[EventType, Callable[[Dict[str, Any]], EventPayload]] = {
    EventType.TRIP_STARTED: lambda data: TripStarted(),
    EventType.LOCATION_PING: TelemetryReport.from_dict,
    EventType.VEHICLE_TELEMETRY: TelemetryReport.from_dict,
    EventType.VEHICLE_STOPPED: lambda data: VehicleStopped(),
    EventType.VEHICLE_MOVING: VehicleMoving.from_dict,
    EventType.SPEED_VIOLATION: SpeedViolation.from_dict,
    EventType.SIGNAL_LOST: lambda data: SignalLost(),
    EventType.SIGNAL_RECOVERED: lambda data: SignalRecovered(),
    EventType.FUEL_LEVEL_LOW: FuelLevelLow.from_dict,
    EventType.REFUELING_STARTED: lambda data: RefuelingStarted(),
    EventType.REFUELING_COMPLETED: RefuelingCompleted.from_dict,
    EventType.DEVICE_ERROR: DeviceError.from_dict,
    EventType.TRIP_CANCELLED: TripCancelled.from_dict,
    EventType.TRIP_COMPLETED: TripCompleted.from_dict,
}


@dataclass(frozen=True)
class TripEvent:
    """A single entry of the telemetry event log."""
    trip_id: Optional[str]
    timestamp: datetime
    event_type: str
    payload: Optional[EventPayload] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> Optional[EventType]:
        """Known event type, or None for types the engine ignores."""
        try:
            return EventType(self.event_type)
        except ValueError:
            return None

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.raw)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TripEvent":
        """
        Build an event from its raw mapping.

        Raises:
            ValueError: If the timestamp is missing or unparsable
        """
        if data.get("timestamp") is None:
            raise ValueError("event has no timestamp")

        try:
            timestamp = parse_timestamp(data["timestamp"])
        except (TypeError, ValueError) as e:
            raise ValueError(f"invalid event timestamp {data['timestamp']!r}: {e}")

        trip_id = data.get("trip_id")
        event_type = str(data.get("event_type", ""))

        payload = None
        parser = None
        try:
            parser = PAYLOAD_PARSERS.get(EventType(event_type))
        except ValueError:
            pass
        if parser:
            payload = parser(data)

        return cls(
            trip_id=str(trip_id) if trip_id is not None else None,
            timestamp=timestamp,
            event_type=event_type,
            payload=payload,
            raw=dict(data),
        )


@dataclass(frozen=True)
class Alert:
    type: AlertType
    message: str

    def to_dict(self) -> dict:
        return {"type": self.type.value, "message": self.message}

    @classmethod
    def from_dict(cls, data: dict) -> "Alert":
        return cls(type=AlertType(data["type"]), message=data["message"])


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return default


# Keys that TripState maps onto its own fields; everything else lands in details
_TRIP_KEYS = {
    "id", "total_distance", "totalDistance", "completed_distance", "completedDistance",
    "progress", "status", "current_speed", "currentSpeed", "fuel_level", "fuelLevel",
    "last_location", "lastLocation", "alerts", "details",
}


@dataclass
class TripState:
    """Live state of a tracked trip."""
    id: str
    total_distance: float
    status: TripStatus = TripStatus.SCHEDULED
    completed_distance: float = 0.0
    progress: float = 0.0
    current_speed: float = 0.0
    fuel_level: Optional[float] = None
    last_location: Optional[Dict[str, Any]] = None
    alerts: List[Alert] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "total_distance": self.total_distance,
            "status": self.status.value,
            "completed_distance": self.completed_distance,
            "progress": self.progress,
            "current_speed": self.current_speed,
            "fuel_level": self.fuel_level,
            "last_location": self.last_location,
            "alerts": [a.to_dict() for a in self.alerts],
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TripState":
        """
        Build a trip from a dataset entry or a checkpoint.

        Accepts camelCase keys as found in exported trip datasets.
        """
        details = dict(data.get("details") or {})
        details.update({k: v for k, v in data.items() if k not in _TRIP_KEYS})

        return cls(
            id=str(data["id"]),
            total_distance=float(_pick(data, "total_distance", "totalDistance")),
            status=TripStatus(data.get("status") or TripStatus.SCHEDULED.value),
            completed_distance=_pick(data, "completed_distance", "completedDistance", default=0.0),
            progress=_pick(data, "progress", default=0.0),
            current_speed=_pick(data, "current_speed", "currentSpeed", default=0.0),
            fuel_level=_pick(data, "fuel_level", "fuelLevel"),
            last_location=_pick(data, "last_location", "lastLocation"),
            alerts=[Alert.from_dict(a) for a in data.get("alerts") or []],
            details=details,
        )

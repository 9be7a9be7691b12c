"""
Tests for the shared protocol module (events, payloads, trips).
"""

import pytest
from datetime import datetime, timedelta, timezone

from fleet_replay.shared.protocol import (
    Alert,
    AlertType,
    EventType,
    SpeedViolation,
    TelemetryReport,
    TripCompleted,
    TripEvent,
    TripState,
    TripStatus,
    format_timestamp,
    parse_timestamp,
)


class TestTimestamps:
    """Tests for timestamp parsing and formatting."""

    def test_parse_zulu(self):
        dt = parse_timestamp("2025-11-03T10:00:00.000Z")
        assert dt == datetime(2025, 11, 3, 10, 0, tzinfo=timezone.utc)

    def test_parse_offset(self):
        dt = parse_timestamp("2025-11-03T12:00:00+02:00")
        assert dt == datetime(2025, 11, 3, 10, 0, tzinfo=timezone.utc)

    def test_naive_is_utc(self):
        dt = parse_timestamp("2025-11-03T10:00:00")
        assert dt.tzinfo is not None
        assert dt.utcoffset() == timedelta(0)

    def test_format_roundtrip_keeps_microseconds(self):
        dt = datetime(2025, 11, 3, 10, 0, 0, 123456, tzinfo=timezone.utc)
        assert parse_timestamp(format_timestamp(dt)) == dt

    def test_parse_invalid(self):
        with pytest.raises(ValueError):
            parse_timestamp("yesterday")


class TestTripEvent:
    """Tests for TripEvent parsing."""

    def test_telemetry_payload(self):
        event = TripEvent.from_dict({
            "trip_id": "A",
            "timestamp": "2025-11-03T10:05:00Z",
            "event_type": "vehicle_telemetry",
            "distance_travelled_km": 12.5,
            "movement": {"speed_kmh": 80},
            "location": {"lat": 1.0, "lng": 2.0},
            "telemetry": {"fuel_level_percent": 55},
        })

        assert event.kind == EventType.VEHICLE_TELEMETRY
        assert event.payload == TelemetryReport(
            distance_km=12.5,
            speed_kmh=80,
            location={"lat": 1.0, "lng": 2.0},
            fuel_level_percent=55,
        )

    def test_missing_fields_are_none(self):
        event = TripEvent.from_dict({
            "trip_id": "A",
            "timestamp": "2025-11-03T10:05:00Z",
            "event_type": "speed_violation",
        })
        assert event.payload == SpeedViolation()

    def test_zero_distance_is_present(self):
        event = TripEvent.from_dict({
            "trip_id": "A",
            "timestamp": "2025-11-03T10:05:00Z",
            "event_type": "location_ping",
            "distance_travelled_km": 0,
        })
        assert event.payload.distance_km == 0

    def test_unknown_type(self):
        event = TripEvent.from_dict({
            "trip_id": "A",
            "timestamp": "2025-11-03T10:05:00Z",
            "event_type": "door_opened",
        })
        assert event.kind is None
        assert event.payload is None

    def test_missing_trip_id(self):
        event = TripEvent.from_dict({
            "timestamp": "2025-11-03T10:05:00Z",
            "event_type": "trip_completed",
        })
        assert event.trip_id is None
        assert event.payload == TripCompleted()

    def test_missing_timestamp_rejected(self):
        with pytest.raises(ValueError):
            TripEvent.from_dict({"trip_id": "A", "event_type": "trip_started"})

    def test_to_dict_returns_raw(self):
        raw = {
            "trip_id": "A",
            "timestamp": "2025-11-03T10:05:00.000Z",
            "event_type": "device_error",
            "error_type": "obd_timeout",
            "vendor": {"code": 17},
        }
        assert TripEvent.from_dict(raw).to_dict() == raw


class TestTripState:
    """Tests for TripState serialization."""

    def test_from_camel_case(self):
        trip = TripState.from_dict({
            "id": "A",
            "totalDistance": 120,
            "status": "scheduled",
            "driver": "J. Smith",
        })

        assert trip.total_distance == 120
        assert trip.status == TripStatus.SCHEDULED
        assert trip.progress == 0.0
        assert trip.alerts == []
        assert trip.details == {"driver": "J. Smith"}

    def test_status_defaults_to_scheduled(self):
        trip = TripState.from_dict({"id": 7, "total_distance": 10})
        assert trip.id == "7"
        assert trip.status == TripStatus.SCHEDULED

    def test_missing_total_distance(self):
        with pytest.raises(TypeError):
            TripState.from_dict({"id": "A"})

    def test_roundtrip(self):
        trip = TripState(
            id="A",
            total_distance=100,
            status=TripStatus.IN_PROGRESS,
            completed_distance=40,
            progress=40.0,
            current_speed=72,
            fuel_level=33,
            last_location={"lat": 1, "lng": 2},
            alerts=[Alert(AlertType.ERROR, "GPS signal lost")],
            details={"vehicle_id": "VH-1"},
        )
        assert TripState.from_dict(trip.to_dict()) == trip

    def test_terminal(self):
        assert TripState(id="A", total_distance=1, status=TripStatus.COMPLETED).is_terminal
        assert TripState(id="A", total_distance=1, status=TripStatus.CANCELLED).is_terminal
        assert not TripState(id="A", total_distance=1, status=TripStatus.IN_PROGRESS).is_terminal

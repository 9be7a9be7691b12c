"""
Shared test fixtures for Fleet Replay tests.
"""

import pytest
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from fleet_replay.server.replay.event_log import EventLog
from fleet_replay.shared.protocol import TripState


@pytest.fixture
def trip_a():
    return TripState(id="A", total_distance=100)


@pytest.fixture
def sample_dataset():
    """Small dataset with two trips and an interleaved event log."""
    return {
        "trips": [
            {"id": "T1", "totalDistance": 100, "status": "scheduled", "vehicle_id": "VH-1"},
            {"id": "T2", "totalDistance": 200, "status": "scheduled", "vehicle_id": "VH-2"},
        ],
        "events": [
            {"trip_id": "T2", "timestamp": "2025-11-03T10:02:00Z", "event_type": "trip_started"},
            {"trip_id": "T1", "timestamp": "2025-11-03T10:00:00Z", "event_type": "trip_started"},
            {"trip_id": "T1", "timestamp": "2025-11-03T10:00:00Z", "event_type": "location_ping",
             "distance_travelled_km": 5, "movement": {"speed_kmh": 60}},
            {"trip_id": "T1", "timestamp": "2025-11-03T10:05:00Z", "event_type": "vehicle_stopped"},
            {"trip_id": "T2", "timestamp": "2025-11-03T10:07:00Z", "event_type": "location_ping",
             "distance_travelled_km": 120, "location": {"lat": 52.1, "lng": 5.1}},
            {"trip_id": "T1", "timestamp": "2025-11-03T10:09:00Z", "event_type": "vehicle_moving",
             "movement": {"speed_kmh": 70}},
            {"trip_id": "T1", "timestamp": "2025-11-03T10:15:00Z", "event_type": "trip_completed"},
        ],
    }


@pytest.fixture
def sample_events(sample_dataset):
    return EventLog.from_raw(sample_dataset["events"])


@pytest.fixture
def sample_trips(sample_dataset):
    return [TripState.from_dict(t) for t in sample_dataset["trips"]]

"""
Fleet-wide aggregates over the current trip states.
"""

import math
from dataclasses import asdict, dataclass
from typing import Iterable

from fleet_replay.shared.protocol import TripState, TripStatus


@dataclass
class FleetMetrics:
    """Aggregated view of all trips in a session."""
    active: int = 0
    completed: int = 0
    total: int = 0
    avg_progress: int = 0
    total_alerts: int = 0
    progress_over_50: int = 0
    progress_over_80: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def compute_fleet_metrics(trips: Iterable[TripState]) -> FleetMetrics:
    """
    Scan trips and aggregate them.

    Progress figures only cover active (in progress) trips; the average
    is rounded half-up to a whole percentage and is 0 with no active trips.
    """
    trips = list(trips)
    active = [t for t in trips if t.status == TripStatus.IN_PROGRESS]

    avg_progress = 0
    if active:
        mean = sum(t.progress or 0 for t in active) / len(active)
        avg_progress = math.floor(mean + 0.5)

    return FleetMetrics(
        active=len(active),
        completed=sum(1 for t in trips if t.status == TripStatus.COMPLETED),
        total=len(trips),
        avg_progress=avg_progress,
        total_alerts=sum(len(t.alerts) for t in trips),
        progress_over_50=sum(1 for t in active if (t.progress or 0) >= 50),
        progress_over_80=sum(1 for t in active if (t.progress or 0) >= 80),
    )

"""
Event log for trip replay.

Holds the timestamp-ordered telemetry events of one session.
"""

from bisect import bisect_right
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Union, overload
import logging

from fleet_replay.shared.protocol import TripEvent

logger = logging.getLogger(__name__)


class EventLog(Sequence[TripEvent]):
    """
    Immutable, timestamp-sorted sequence of trip events.

    Events sharing a timestamp keep their arrival order, so every event
    at an instant is applied once the clock reaches it.
    """

    def __init__(self, events: Iterable[TripEvent] = ()):
        self._events = tuple(sorted(events, key=lambda e: e.timestamp))
        self._timestamps = [e.timestamp for e in self._events]

    @classmethod
    def from_raw(cls, raw_events: Iterable[Dict[str, Any]]) -> "EventLog":
        """
        Parse raw event mappings and sort them.

        Entries without a usable timestamp cannot be placed on the
        timeline and are dropped with a warning.
        """
        events = []
        dropped = 0
        for position, raw in enumerate(raw_events):
            if not isinstance(raw, dict):
                logger.warning(f"Skipping event #{position}: expected an object, got {type(raw).__name__}")
                dropped += 1
                continue
            try:
                events.append(TripEvent.from_dict(raw))
            except ValueError as e:
                logger.warning(f"Skipping event #{position}: {e}")
                dropped += 1

        if dropped:
            logger.warning(f"Dropped {dropped} unusable events while building event log")

        return cls(events)

    @overload
    def __getitem__(self, index: int) -> TripEvent: ...

    @overload
    def __getitem__(self, index: slice) -> List[TripEvent]: ...

    def __getitem__(self, index: Union[int, slice]) -> Union[TripEvent, List[TripEvent]]:
        if isinstance(index, slice):
            return list(self._events[index])
        return self._events[index]

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[TripEvent]:
        return iter(self._events)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, EventLog):
            return self._events == other._events
        return NotImplemented

    def __repr__(self) -> str:
        return f"EventLog({len(self)} events)"

    @property
    def first_timestamp(self) -> Optional[datetime]:
        return self._timestamps[0] if self._timestamps else None

    @property
    def last_timestamp(self) -> Optional[datetime]:
        return self._timestamps[-1] if self._timestamps else None

    def count_until(self, timestamp: datetime) -> int:
        """Number of events with timestamp <= the given instant."""
        return bisect_right(self._timestamps, timestamp)

    def to_list(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self._events]

"""
Session orchestration for trip replay.

Ties together the data source, replay engine, playback controller and
checkpoint manager behind the controls the presentation layer uses.
"""

import logging
from typing import Any, Dict, List, Optional

from fleet_replay.server.analytics.fleet_metrics import FleetMetrics, compute_fleet_metrics
from fleet_replay.server.data.data_source import DataFetchError, DataSource
from fleet_replay.server.storage.checkpoint import CheckpointManager
from fleet_replay.shared.protocol import DEFAULT_EPOCH, TripEvent, TripState, format_timestamp
from .event_log import EventLog
from .playback import PlaybackController, TickHook
from .replay_engine import ReplayEngine, SimulationSession

logger = logging.getLogger(__name__)


class SessionManager:
    """
    Owns the single live SimulationSession.

    Startup restores the last checkpoint when one is usable and falls
    back to building a fresh session from the data source. Every tick
    and every pause is checkpointed.
    """

    def __init__(
        self,
        data_source: DataSource,
        checkpoint_manager: CheckpointManager,
        engine: Optional[ReplayEngine] = None,
        playback: Optional[PlaybackController] = None,
        metrics_collector=None,
    ):
        self.data_source = data_source
        self.checkpoints = checkpoint_manager
        self.engine = engine or ReplayEngine(metrics_collector=metrics_collector)
        self.playback = playback or PlaybackController(self.engine, metrics_collector=metrics_collector)
        self.metrics = metrics_collector

        self.playback.add_tick_hook(self._on_tick)
        self.playback.add_pause_hook(self.checkpoints.save)

    @property
    def session(self) -> SimulationSession:
        return self.playback.session

    def add_tick_hook(self, hook: TickHook):
        """Register an extra observer called after every tick."""
        self.playback.add_tick_hook(hook)

    async def start(self) -> SimulationSession:
        """
        Restore the checkpointed session, or build a fresh one.

        Raises:
            DataFetchError: If there is no checkpoint and the dataset
                cannot be fetched
        """
        restored = self.checkpoints.load()
        if restored is not None:
            resume = restored.is_playing
            restored.is_playing = False
            self.playback.attach(restored)
            self._publish_metrics()
            logger.info(f"Resumed session at {format_timestamp(restored.virtual_clock)}")
            if resume:
                await self.playback.play()
            return restored

        session = await self._build_fresh_session()
        self.playback.attach(session)
        self._publish_metrics()
        return session

    async def reset(self) -> SimulationSession:
        """
        Discard all progress and rebuild the session from the data source.

        Raises:
            DataFetchError: If the dataset cannot be fetched; playback
                stays stopped and the previous state remains visible
        """
        self.playback.stop()
        self.checkpoints.clear()
        self.session.speed = 1.0
        self.session.is_playing = False

        session = await self._build_fresh_session()
        self.playback.attach(session)
        self.checkpoints.save(session)
        self._publish_metrics()
        logger.info("Session reset")
        return session

    async def play(self):
        await self.playback.play()

    async def pause(self):
        await self.playback.pause()

    async def toggle(self) -> bool:
        """Flip between playing and paused. Returns the new playing state."""
        if self.session.is_playing:
            await self.pause()
        else:
            await self.play()
        return self.session.is_playing

    def set_speed(self, speed: float):
        self.playback.set_speed(speed)

    async def shutdown(self):
        """Stop ticking and persist the session one last time."""
        self.playback.stop()
        self.checkpoints.save(self.session)
        await self.data_source.close()
        logger.info("Session manager stopped")

    def fleet_metrics(self) -> FleetMetrics:
        return compute_fleet_metrics(self.session.trips)

    def snapshot(self) -> Dict[str, Any]:
        """Read-only view of the session for presentation."""
        session = self.session
        return {
            "trips": [t.to_dict() for t in session.trips],
            "events": [e.to_dict() for e in session.applied_events],
            "current_time": format_timestamp(session.virtual_clock),
            "is_playing": session.is_playing,
            "simulation_speed": session.speed,
            "fleet_metrics": self.fleet_metrics().to_dict(),
            "cursor_index": session.cursor_index,
            "total_events": len(session.full_event_log),
        }

    async def _build_fresh_session(self) -> SimulationSession:
        dataset = await self.data_source.fetch()

        try:
            trips = [TripState.from_dict(t) for t in dataset["trips"]]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise DataFetchError(f"Dataset contains an invalid trip record: {e}") from e

        log = EventLog.from_raw(dataset["events"])
        clock = log.first_timestamp or DEFAULT_EPOCH

        session = SimulationSession(
            trips=trips,
            full_event_log=log,
            cursor_index=0,
            virtual_clock=clock,
            speed=1.0,
            is_playing=False,
        )
        primed = self.engine.advance_to(session, clock)

        logger.info(
            f"Built session: {len(trips)} trips, {len(log)} events, "
            f"{len(primed)} applied at {format_timestamp(clock)}"
        )
        return session

    def _on_tick(self, session: SimulationSession, applied: List[TripEvent]):
        self.checkpoints.save(session)
        self._publish_metrics()

    def _publish_metrics(self):
        if self.metrics:
            self.metrics.update_fleet_metrics(self.fleet_metrics())

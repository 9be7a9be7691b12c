"""
Playback controller for trip replay.

Drives the virtual clock forward at a fixed wall-clock cadence.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Awaitable, Callable, List, Optional, Set
import asyncio
import inspect
import logging
import time

from fleet_replay.shared.protocol import TripEvent, format_timestamp
from .replay_engine import ReplayEngine, SimulationSession

logger = logging.getLogger(__name__)


@dataclass
class PlaybackConfig:
    # Real seconds between ticks
    tick_interval_s: float = 1.0
    # Virtual seconds per tick at 1x speed
    virtual_step_s: float = 60.0


# Called after every tick with the session and the events that tick applied
TickHook = Callable[[SimulationSession, List[TripEvent]], Optional[Awaitable[None]]]

# Called whenever playback stops (pause or end of log)
PauseHook = Callable[[SimulationSession], None]


class PlaybackController:
    """
    Two-state (paused/playing) driver for a simulation session.

    Each tick is a single synchronous step: advance the clock, replay
    due events, stop at end of log, then run tick hooks. Ticks run on one
    asyncio task, so a tick never starts while another is in progress.
    """

    def __init__(self, engine: ReplayEngine, config: Optional[PlaybackConfig] = None, metrics_collector=None):
        self.engine = engine
        self.config = config or PlaybackConfig()
        self.metrics = metrics_collector
        self.session: SimulationSession = SimulationSession()

        self._task: Optional[asyncio.Task] = None
        self._tick_hooks: List[TickHook] = []
        self._pause_hooks: List[PauseHook] = []
        self._pending: Set[asyncio.Future] = set()

    def attach(self, session: SimulationSession):
        """Switch to another session. Playback must be stopped first."""
        if self.is_running:
            raise RuntimeError("Cannot attach a session while playback is running")
        self.session = session

    def add_tick_hook(self, hook: TickHook):
        if hook not in self._tick_hooks:
            self._tick_hooks.append(hook)

    def add_pause_hook(self, hook: PauseHook):
        if hook not in self._pause_hooks:
            self._pause_hooks.append(hook)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def play(self):
        """Start or resume playback."""
        if self.is_running:
            return

        if self.session.is_exhausted:
            logger.info("Event log exhausted, nothing to play")
            self.session.is_playing = False
            return

        self.session.is_playing = True
        self._task = asyncio.create_task(self._playback_loop())
        logger.info(
            f"Started playback at {format_timestamp(self.session.virtual_clock)} "
            f"({self.session.speed}x)"
        )

    async def pause(self):
        """Pause playback and persist the session."""
        was_playing = self.session.is_playing or self.is_running
        self.stop()
        self.session.is_playing = False

        if was_playing:
            self._run_pause_hooks()
            logger.info(f"Paused playback at {format_timestamp(self.session.virtual_clock)}")

    def stop(self):
        """Cancel the tick task without touching session state."""
        if self._task is not None:
            if self._task is not asyncio.current_task():
                self._task.cancel()
            self._task = None

    def set_speed(self, speed: float):
        """
        Set the speed factor used by future ticks.

        Raises:
            ValueError: speed is not positive, or one tick at this speed
                would move the clock past the representable range
        """
        if speed <= 0:
            raise ValueError(f"Speed must be positive, got {speed}")
        try:
            self.session.virtual_clock + self._step(speed)
        except OverflowError:
            raise ValueError(f"Speed {speed} is too large for a {self.config.virtual_step_s}s step")
        self.session.speed = speed
        logger.info(f"Set playback speed to {speed}x")

    def tick(self) -> List[TripEvent]:
        """Advance the clock by one step and replay due events."""
        session = self.session
        started = time.perf_counter()
        session.virtual_clock = session.virtual_clock + self._step(session.speed)

        applied = self.engine.advance_to(session, session.virtual_clock)

        if self.metrics:
            self.metrics.increment_ticks()
            self.metrics.record_tick_duration((time.perf_counter() - started) * 1000)
            self.metrics.update_cursor(session.cursor_index, len(session.full_event_log))

        if session.is_exhausted and session.is_playing:
            logger.info("Reached end of event log, stopping playback")
            self.stop()
            session.is_playing = False
            self._run_pause_hooks()

        self._run_tick_hooks(applied)
        return applied

    def _step(self, speed: float) -> timedelta:
        return timedelta(seconds=self.config.virtual_step_s * speed)

    async def _playback_loop(self):
        """Main playback loop."""
        try:
            while self.session.is_playing:
                await asyncio.sleep(self.config.tick_interval_s)
                self.tick()
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Playback error: {e}")
            if self.session.is_playing:
                # Checkpoint the stop so a restart comes back paused
                self.session.is_playing = False
                self._run_pause_hooks()

    def _run_tick_hooks(self, applied: List[TripEvent]):
        for hook in self._tick_hooks:
            try:
                result = hook(self.session, applied)
                if inspect.isawaitable(result):
                    future = asyncio.ensure_future(result)
                    self._pending.add(future)
                    future.add_done_callback(self._hook_done)
            except Exception as e:
                logger.error(f"Tick hook error: {e}")

    def _run_pause_hooks(self):
        for hook in self._pause_hooks:
            try:
                hook(self.session)
            except Exception as e:
                logger.error(f"Pause hook error: {e}")

    def _hook_done(self, future: asyncio.Future):
        self._pending.discard(future)
        if not future.cancelled() and future.exception() is not None:
            logger.error(f"Tick hook error: {future.exception()}")

# Event replay engine
from .event_log import EventLog
from .replay_engine import (
    ReplayEngine,
    SimulationSession,
    TransitionPolicy,
    apply_event,
    compute_progress,
)
from .playback import (
    PlaybackController,
    PlaybackConfig,
)
from .session import SessionManager

__all__ = [
    "EventLog",
    "ReplayEngine",
    "SimulationSession",
    "TransitionPolicy",
    "apply_event",
    "compute_progress",
    "PlaybackController",
    "PlaybackConfig",
    "SessionManager",
]

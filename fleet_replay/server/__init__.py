"""Fleet Replay Server Module"""

from fleet_replay.server.replay import (
    EventLog,
    ReplayEngine,
    SimulationSession,
    TransitionPolicy,
    PlaybackController,
    PlaybackConfig,
    SessionManager,
)
from fleet_replay.server.storage import CheckpointManager, CheckpointConfig
from fleet_replay.server.data import DataSource, DataFetchError
from fleet_replay.server.api import create_app

__all__ = [
    "EventLog", "ReplayEngine", "SimulationSession", "TransitionPolicy",
    "PlaybackController", "PlaybackConfig", "SessionManager",
    "CheckpointManager", "CheckpointConfig",
    "DataSource", "DataFetchError",
    "create_app",
]

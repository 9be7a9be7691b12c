"""
Shared fixtures for integration tests.
"""

import pytest
from fastapi.testclient import TestClient

from fleet_replay.server.api.server import create_app
from fleet_replay.server.data.data_source import StaticDataSource
from fleet_replay.server.replay.playback import PlaybackConfig, PlaybackController
from fleet_replay.server.replay.replay_engine import ReplayEngine
from fleet_replay.server.replay.session import SessionManager
from fleet_replay.server.storage.checkpoint import CheckpointManager
from fleet_replay.server.storage.kv_store import MemoryKeyValueStore

from factories import UnavailableDataSource


def build_session_manager(data_source, store=None):
    engine = ReplayEngine()
    playback = PlaybackController(engine, PlaybackConfig(tick_interval_s=0.05, virtual_step_s=60))
    return SessionManager(
        data_source,
        CheckpointManager(store or MemoryKeyValueStore()),
        engine=engine,
        playback=playback,
    )


@pytest.fixture
def checkpoint_store():
    return MemoryKeyValueStore()


@pytest.fixture
def session_manager(sample_dataset, checkpoint_store):
    return build_session_manager(StaticDataSource(sample_dataset), checkpoint_store)


@pytest.fixture
def client(session_manager):
    """Test client with the app lifespan (startup and shutdown) running."""
    app = create_app(session_manager)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def offline_client():
    """Test client whose dataset could not be fetched at startup."""
    app = create_app(build_session_manager(UnavailableDataSource()))
    with TestClient(app) as client:
        yield client

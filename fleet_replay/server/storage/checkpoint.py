"""
Checkpoint manager for replay sessions.

Saves and restores the full SimulationSession so a replay resumes
exactly where it left off. Persistence is best-effort: failures are
logged and never reach the caller.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fleet_replay.server.replay.replay_engine import SimulationSession
from .kv_store import KeyValueStore, MemoryKeyValueStore, SQLiteKeyValueStore

logger = logging.getLogger(__name__)


@dataclass
class CheckpointConfig:
    backend: str = "sqlite"  # "sqlite" or "memory"
    db_path: str = "data/checkpoints.db"
    key: str = "fleet_replay_session"


def create_store_from_config(config: CheckpointConfig) -> KeyValueStore:
    backend = config.backend.lower()

    if backend == "sqlite":
        return SQLiteKeyValueStore(Path(config.db_path))
    elif backend == "memory":
        return MemoryKeyValueStore()

    raise ValueError(f"Unknown checkpoint backend: {config.backend}")


class CheckpointManager:
    """Serializes sessions to a key-value store under one fixed key."""

    def __init__(self, store: KeyValueStore, key: str = "fleet_replay_session", metrics_collector=None):
        self.store = store
        self.key = key
        self.metrics = metrics_collector

    def save(self, session: SimulationSession) -> bool:
        """
        Persist the session.

        Returns:
            True if the checkpoint was written, False otherwise
        """
        try:
            payload = json.dumps(session.to_dict())
            self.store.set(self.key, payload)
            logger.debug(f"Saved checkpoint ({len(payload)} bytes, cursor {session.cursor_index})")
            return True
        except Exception as e:
            logger.error(f"Could not save checkpoint: {e}")
            self._count_failure("save")
            return False

    def load(self) -> Optional[SimulationSession]:
        """
        Restore the saved session.

        Returns:
            The session, or None if there is no usable checkpoint
        """
        try:
            payload = self.store.get(self.key)
        except Exception as e:
            logger.error(f"Could not read checkpoint: {e}")
            self._count_failure("load")
            return None

        if not payload:
            return None

        try:
            data = json.loads(payload)
        except ValueError as e:
            logger.warning(f"Discarding unparsable checkpoint: {e}")
            return None

        if not isinstance(data, dict) or data.get("trips") is None or data.get("full_event_log") is None:
            logger.warning("Discarding incomplete checkpoint (missing trips or event log)")
            return None

        try:
            session = SimulationSession.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding malformed checkpoint: {e}")
            return None

        problem = self._check_consistency(session, len(data["full_event_log"]))
        if problem:
            logger.warning(f"Discarding inconsistent checkpoint: {problem}")
            return None

        logger.info(
            f"Restored checkpoint: {len(session.trips)} trips, "
            f"cursor {session.cursor_index}/{len(session.full_event_log)}"
        )
        return session

    def clear(self):
        """Remove the stored checkpoint."""
        try:
            self.store.remove(self.key)
            logger.info("Cleared checkpoint")
        except Exception as e:
            logger.error(f"Could not clear checkpoint: {e}")
            self._count_failure("clear")

    def _check_consistency(self, session: SimulationSession, stored_log_size: int) -> Optional[str]:
        log = session.full_event_log
        if len(log) != stored_log_size:
            return f"event log lost {stored_log_size - len(log)} entries on restore"
        if not 0 <= session.cursor_index <= len(log):
            return f"cursor {session.cursor_index} outside log of {len(log)} events"
        if session.applied_events != log[:session.cursor_index]:
            return "applied events do not match the log prefix"
        if session.speed <= 0:
            return f"non-positive speed {session.speed}"
        return None

    def _count_failure(self, operation: str):
        if self.metrics:
            self.metrics.increment_checkpoint_failures(operation)

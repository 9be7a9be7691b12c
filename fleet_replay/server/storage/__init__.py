from .kv_store import KeyValueStore, MemoryKeyValueStore, SQLiteKeyValueStore
from .checkpoint import CheckpointManager, CheckpointConfig, create_store_from_config

__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SQLiteKeyValueStore",
    "CheckpointManager",
    "CheckpointConfig",
    "create_store_from_config",
]

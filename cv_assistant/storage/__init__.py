"""Persistence layer: key-value backends, history store and project store."""

from .history_store import HistoryStore
from .kv import InMemoryKeyValueStore, KeyValueStore, SQLiteKeyValueStore, dump_json, load_json
from .project_store import IntegrityReport, MigrationResult, ProjectData, ProjectStore

__all__ = [
    "HistoryStore",
    "InMemoryKeyValueStore",
    "IntegrityReport",
    "KeyValueStore",
    "MigrationResult",
    "ProjectData",
    "ProjectStore",
    "SQLiteKeyValueStore",
    "dump_json",
    "load_json",
]

"""Per-project version history persisted in the key-value store."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..domain.history import (
    INITIAL_VERSION_MESSAGE,
    RESET_VERSION_MESSAGE,
    HistoryEntry,
    append_entry,
    latest_entry,
    mark_latest,
    utc_now,
)
from ..errors import NotFoundError, StorageError
from . import keys
from .kv import KeyValueStore, dump_json, load_json

logger = logging.getLogger(__name__)


class HistoryStore:
    """Append-only snapshot history for one project.

    Every write persists the full entry sequence and then the project's live
    document, so the latest entry and the document never disagree for long.
    """

    def __init__(
        self,
        storage: KeyValueStore,
        project_id: str,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._storage = storage
        self.project_id = project_id
        self._clock = clock

    async def entries(self) -> List[HistoryEntry]:
        """Entries in insertion order (oldest first)."""
        key = keys.history_key(self.project_id)
        try:
            raw = load_json(await self._storage.get(key))
        except ValueError as e:
            raise StorageError(f"History for project '{self.project_id}' is not valid JSON") from e
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise StorageError(f"History for project '{self.project_id}' must be an array")
        try:
            return [HistoryEntry.from_dict(item) for item in raw]
        except (KeyError, TypeError) as e:
            raise StorageError(f"History for project '{self.project_id}' has malformed entries") from e

    async def latest(self) -> Optional[HistoryEntry]:
        return latest_entry(await self.entries())

    async def commit(self, snapshot: Dict[str, Any], message: str) -> HistoryEntry:
        """Append *snapshot* as the new latest entry and make it the live document."""
        updated = append_entry(await self.entries(), snapshot, message, clock=self._clock)
        await self._persist(updated)
        entry = updated[-1]
        logger.info("history commit project=%s timestamp=%s message=%r", self.project_id, entry.timestamp, message)
        return entry

    async def revert(self, timestamp: str) -> bool:
        """Make the entry with *timestamp* current. Later entries are kept."""
        updated = mark_latest(await self.entries(), timestamp)
        if updated is None:
            raise NotFoundError(
                f"History entry '{timestamp}' not found",
                {"project_id": self.project_id, "timestamp": timestamp},
            )
        await self._persist(updated)
        logger.info("history revert project=%s timestamp=%s", self.project_id, timestamp)
        return True

    async def seed(self, snapshot: Dict[str, Any], message: str = INITIAL_VERSION_MESSAGE) -> HistoryEntry:
        """Start a history with a single entry (project creation, reset)."""
        updated = append_entry([], snapshot, message, clock=self._clock)
        await self._persist(updated)
        return updated[0]

    async def reset(self, snapshot: Dict[str, Any]) -> HistoryEntry:
        return await self.seed(snapshot, RESET_VERSION_MESSAGE)

    async def _persist(self, entries: List[HistoryEntry]) -> None:
        current = latest_entry(entries)
        await self._storage.set(
            keys.history_key(self.project_id),
            dump_json([entry.to_dict() for entry in entries]),
        )
        if current is not None:
            await self._storage.set(keys.resume_key(self.project_id), dump_json(current.snapshot))

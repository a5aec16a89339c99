"""Version history entries and the pure functions that maintain them.

A history is a list in insertion order. Exactly one entry carries
``is_latest`` once the list is non-empty; that entry's snapshot is the live
document. Entries are never removed or reordered.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

INITIAL_VERSION_MESSAGE = "Initial version"
RESET_VERSION_MESSAGE = "Reset to initial version"
IMPORT_VERSION_MESSAGE = "Imported resume data"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC with microseconds, e.g. ``2024-05-01T10:00:00.000001Z``."""
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass(frozen=True)
class HistoryEntry:
    snapshot: Dict[str, Any]
    timestamp: str
    message: str
    is_latest: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "snapshot": self.snapshot,
            "timestamp": self.timestamp,
            "message": self.message,
            "isLatest": self.is_latest,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEntry":
        return cls(
            snapshot=data["snapshot"],
            timestamp=data["timestamp"],
            message=data.get("message", ""),
            is_latest=bool(data.get("isLatest", False)),
        )


def next_timestamp(entries: Sequence[HistoryEntry], clock: Callable[[], datetime] = utc_now) -> str:
    """Return a timestamp strictly greater than every existing one."""
    candidate = clock()
    if entries:
        newest = max(parse_timestamp(entry.timestamp) for entry in entries)
        if candidate <= newest:
            candidate = newest + timedelta(microseconds=1)
    return format_timestamp(candidate)


def append_entry(
    entries: Sequence[HistoryEntry],
    snapshot: Dict[str, Any],
    message: str,
    clock: Callable[[], datetime] = utc_now,
) -> List[HistoryEntry]:
    """Return a new list with *snapshot* appended as the only latest entry."""
    entry = HistoryEntry(
        snapshot=copy.deepcopy(snapshot),
        timestamp=next_timestamp(entries, clock),
        message=message,
        is_latest=True,
    )
    return [replace(e, is_latest=False) if e.is_latest else e for e in entries] + [entry]


def mark_latest(entries: Sequence[HistoryEntry], timestamp: str) -> Optional[List[HistoryEntry]]:
    """Re-mark the entry with *timestamp* as latest; ``None`` when absent."""
    if not any(entry.timestamp == timestamp for entry in entries):
        return None
    return [replace(entry, is_latest=entry.timestamp == timestamp) for entry in entries]


def latest_entry(entries: Sequence[HistoryEntry]) -> Optional[HistoryEntry]:
    for entry in entries:
        if entry.is_latest:
            return entry
    return None


def newest_first(entries: Sequence[HistoryEntry]) -> List[HistoryEntry]:
    """Display order for history panels."""
    return list(reversed(entries))


def normalize_latest(entries: Sequence[HistoryEntry]) -> List[HistoryEntry]:
    """Repair a loaded history so exactly one entry is latest.

    Keeps the last flagged entry when several are flagged and falls back to
    the newest entry when none is.
    """
    if not entries:
        return []
    flagged = [i for i, entry in enumerate(entries) if entry.is_latest]
    keep = flagged[-1] if flagged else len(entries) - 1
    return [replace(entry, is_latest=i == keep) for i, entry in enumerate(entries)]

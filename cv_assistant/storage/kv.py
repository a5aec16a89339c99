"""Key-value storage backends used by the project and history stores."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import aiosqlite
from typing_extensions import Protocol, runtime_checkable

from ..errors import StorageError

logger = logging.getLogger(__name__)

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value BLOB NOT NULL,
    updated_at TEXT NOT NULL
);
"""


def dump_json(value: Any) -> bytes:
    return json.dumps(value, ensure_ascii=False).encode("utf-8")


def load_json(raw: Optional[bytes]) -> Any:
    """Decode stored JSON; ``None`` passes through. Raises ``ValueError`` on junk."""
    if raw is None:
        return None
    return json.loads(raw.decode("utf-8"))


@runtime_checkable
class KeyValueStore(Protocol):
    """The only persistence surface the stores depend on."""

    async def get(self, key: str) -> Optional[bytes]: ...

    async def set(self, key: str, value: bytes) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def keys(self) -> List[str]: ...


class InMemoryKeyValueStore:
    """Dict-backed store for tests and ephemeral sessions.

    ``fail_on`` is an optional predicate ``(operation, key) -> bool``; when it
    returns true the write raises :class:`StorageError`, which lets tests
    exercise rollback paths.
    """

    def __init__(
        self,
        initial: Optional[Dict[str, bytes]] = None,
        fail_on: Optional[Callable[[str, str], bool]] = None,
    ) -> None:
        self.data: Dict[str, bytes] = dict(initial or {})
        self.fail_on = fail_on

    def _check(self, operation: str, key: str) -> None:
        if self.fail_on and self.fail_on(operation, key):
            raise StorageError(f"Simulated {operation} failure for '{key}'")

    async def get(self, key: str) -> Optional[bytes]:
        return self.data.get(key)

    async def set(self, key: str, value: bytes) -> None:
        self._check("set", key)
        self.data[key] = bytes(value)

    async def delete(self, key: str) -> None:
        self._check("delete", key)
        self.data.pop(key, None)

    async def keys(self) -> List[str]:
        return list(self.data)


class SQLiteKeyValueStore:
    """SQLite-backed store -- survives process restarts."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._db: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        if self._db is not None:
            return
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self._db_path))
        await self._db.executescript(_SCHEMA_SQL)
        await self._db.commit()
        logger.info("kv store opened path=%s", self._db_path)

    async def stop(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def __aenter__(self) -> "SQLiteKeyValueStore":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StorageError("Storage is not started")
        return self._db

    async def get(self, key: str) -> Optional[bytes]:
        async with self._lock:
            try:
                async with self._conn().execute("SELECT value FROM kv WHERE key = ?", (key,)) as cursor:
                    row = await cursor.fetchone()
            except aiosqlite.Error as e:
                raise StorageError(f"Failed to read '{key}': {e}") from e
        return bytes(row[0]) if row else None

    async def set(self, key: str, value: bytes) -> None:
        now = datetime.now(timezone.utc).isoformat()
        async with self._lock:
            try:
                await self._conn().execute(
                    "INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
                    (key, bytes(value), now),
                )
                await self._conn().commit()
            except aiosqlite.Error as e:
                raise StorageError(f"Failed to write '{key}': {e}") from e

    async def delete(self, key: str) -> None:
        async with self._lock:
            try:
                await self._conn().execute("DELETE FROM kv WHERE key = ?", (key,))
                await self._conn().commit()
            except aiosqlite.Error as e:
                raise StorageError(f"Failed to delete '{key}': {e}") from e

    async def keys(self) -> List[str]:
        async with self._lock:
            try:
                async with self._conn().execute("SELECT key FROM kv ORDER BY key") as cursor:
                    rows = await cursor.fetchall()
            except aiosqlite.Error as e:
                raise StorageError(f"Failed to list keys: {e}") from e
        return [row[0] for row in rows]

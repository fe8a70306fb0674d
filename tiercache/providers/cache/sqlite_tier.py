"""SQLite-backed persistent tier.

The slowest, largest and most durable level of the tiered cache: entries
survive process restarts.  Uses ``aiosqlite`` so every operation awaits the
database instead of blocking the event loop.

Rows are indexed by ``timestamp`` (write time) and ``category`` so that
oldest-first pruning and category-scoped deletion never need a full scan.
Pruning here is by write time, not by recency of use.

If the database cannot be opened during :meth:`initialize`, the tier marks
itself unavailable and every later operation is a no-op miss.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import aiosqlite
import structlog
from pydantic import TypeAdapter
from pydantic_core import PydanticSerializationError

from tiercache.interfaces.cache_tier import ICacheTier
from tiercache.models.cache import CacheEntry, PersistentTierStats, Tier
from tiercache.utils.errors import (
    SerializationError,
    StorageQuotaExceededError,
    StorageTierError,
)

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/cache.db")

# Must serialise values the way CacheEntry.model_dump_json does in the session tier.
_DATA_ADAPTER: TypeAdapter[Any] = TypeAdapter(Any)

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS cache_entries (
    key       TEXT    PRIMARY KEY,
    data      TEXT    NOT NULL,
    timestamp REAL    NOT NULL,
    category  TEXT    NOT NULL,
    size      INTEGER NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_cache_entries_timestamp ON cache_entries(timestamp);",
    "CREATE INDEX IF NOT EXISTS idx_cache_entries_category ON cache_entries(category);",
]

_UPSERT_SQL = """\
INSERT INTO cache_entries (key, data, timestamp, category, size)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT(key)
DO UPDATE SET data      = excluded.data,
              timestamp = excluded.timestamp,
              category  = excluded.category,
              size      = excluded.size;
"""

_SELECT_SQL = "SELECT data, timestamp, category FROM cache_entries WHERE key = ?;"

_DELETE_SQL = "DELETE FROM cache_entries WHERE key = ?;"

_DELETE_CATEGORY_SQL = "DELETE FROM cache_entries WHERE category = ?;"

_USAGE_EXCLUDING_SQL = (
    "SELECT COUNT(*), COALESCE(SUM(size), 0) FROM cache_entries WHERE key != ?;"
)

_STATS_SQL = "SELECT COUNT(*), COALESCE(SUM(size), 0) FROM cache_entries;"

_PRUNE_OLDEST_SQL = """\
DELETE FROM cache_entries
WHERE key IN (
    SELECT key FROM cache_entries ORDER BY timestamp ASC LIMIT ?
);
"""


class SQLiteTier(ICacheTier):
    """Durable tier stored in a single SQLite table.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.
    max_entries:
        Row quota; ``0`` disables it.  A write that would exceed the quota
        raises :class:`StorageQuotaExceededError`.
    max_bytes:
        Quota on the summed serialised size of all rows; ``0`` disables it.
    """

    tier = Tier.PERSISTENT

    def __init__(
        self,
        db_path: str | Path = _DEFAULT_DB_PATH,
        max_entries: int = 0,
        max_bytes: int = 0,
    ) -> None:
        self._db_path = Path(db_path)
        self._max_entries = max_entries
        self._max_bytes = max_bytes
        self._available = False

    @property
    def available(self) -> bool:
        return self._available

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Create the table and indices.  Degrades to a no-op tier on failure."""
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            async with self._connect() as db:
                await db.execute("PRAGMA journal_mode=WAL")
                await db.execute(_CREATE_TABLE_SQL)
                for idx_sql in _CREATE_INDICES_SQL:
                    await db.execute(idx_sql)
                await db.commit()
        except (OSError, aiosqlite.Error) as exc:
            self._available = False
            logger.warning(
                "persistent_tier_unavailable",
                db_path=str(self._db_path),
                error=str(exc),
            )
            return

        self._available = True
        logger.info("persistent_tier_initialized", db_path=str(self._db_path))

    # ------------------------------------------------------------------
    # ICacheTier implementation
    # ------------------------------------------------------------------

    async def get_entry(self, key: str) -> CacheEntry | None:
        if not self._available:
            return None

        try:
            async with self._connect() as db:
                cursor = await db.execute(_SELECT_SQL, (key,))
                row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise self._storage_error(exc, f"read of {key!r}") from exc

        if row is None:
            return None

        data, timestamp, category = row
        try:
            return CacheEntry(
                key=key,
                data=json.loads(data),
                timestamp=timestamp,
                category=category,
            )
        except (TypeError, ValueError) as exc:
            logger.warning(
                "persistent_entry_corrupt",
                key=key,
                error=str(exc)[:200],
            )
            return None

    async def set_entry(self, entry: CacheEntry) -> None:
        if not self._available:
            return

        try:
            data = _DATA_ADAPTER.dump_json(entry.data).decode("utf-8")
        except (PydanticSerializationError, TypeError, ValueError) as exc:
            raise SerializationError(
                message=f"Cannot serialise value for {entry.key!r}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        size = len(data.encode("utf-8"))

        try:
            async with self._connect() as db:
                if self._max_entries or self._max_bytes:
                    cursor = await db.execute(_USAGE_EXCLUDING_SQL, (entry.key,))
                    count, used = await cursor.fetchone()
                    self._check_quota(entry.key, count + 1, used + size)
                await db.execute(
                    _UPSERT_SQL,
                    (entry.key, data, entry.timestamp, entry.category, size),
                )
                await db.commit()
        except aiosqlite.Error as exc:
            raise self._storage_error(exc, f"write of {entry.key!r}") from exc

    async def delete(self, key: str) -> bool:
        if not self._available:
            return False
        try:
            async with self._connect() as db:
                cursor = await db.execute(_DELETE_SQL, (key,))
                await db.commit()
                return cursor.rowcount > 0
        except aiosqlite.Error as exc:
            raise self._storage_error(exc, f"delete of {key!r}") from exc

    async def clear_category(self, category: str) -> int:
        if not self._available:
            return 0
        try:
            async with self._connect() as db:
                cursor = await db.execute(_DELETE_CATEGORY_SQL, (category,))
                await db.commit()
                return cursor.rowcount
        except aiosqlite.Error as exc:
            raise self._storage_error(exc, f"clear of category {category!r}") from exc

    async def clear(self) -> None:
        if not self._available:
            return
        try:
            async with self._connect() as db:
                await db.execute("DELETE FROM cache_entries;")
                await db.commit()
        except aiosqlite.Error as exc:
            raise self._storage_error(exc, "clear") from exc

    async def prune(self, fraction: float = 0.25) -> int:
        """Delete the oldest-written *fraction* of all rows, across categories."""
        if not self._available:
            return 0
        try:
            async with self._connect() as db:
                cursor = await db.execute("SELECT COUNT(*) FROM cache_entries;")
                (count,) = await cursor.fetchone()
                if count == 0:
                    return 0
                limit = max(1, int(count * fraction))
                cursor = await db.execute(_PRUNE_OLDEST_SQL, (limit,))
                await db.commit()
                removed = cursor.rowcount
        except aiosqlite.Error as exc:
            raise self._storage_error(exc, "prune") from exc

        logger.info("persistent_tier_pruned", removed=removed, remaining=count - removed)
        return removed

    async def stats(self) -> PersistentTierStats:
        if not self._available:
            return PersistentTierStats(available=False)
        try:
            async with self._connect() as db:
                cursor = await db.execute(_STATS_SQL)
                count, size = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise self._storage_error(exc, "stats") from exc
        return PersistentTierStats(count=count, size=size)

    def get_provider_name(self) -> str:
        return "sqlite_tier"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _connect(self) -> aiosqlite.Connection:
        return aiosqlite.connect(str(self._db_path))

    def _check_quota(self, key: str, count: int, used: int) -> None:
        if self._max_entries and count > self._max_entries:
            raise StorageQuotaExceededError(
                message=f"Writing {key!r} would exceed {self._max_entries} entries",
                provider_name=self.get_provider_name(),
            )
        if self._max_bytes and used > self._max_bytes:
            raise StorageQuotaExceededError(
                message=f"Writing {key!r} would exceed {self._max_bytes} bytes",
                provider_name=self.get_provider_name(),
            )

    def _storage_error(self, exc: aiosqlite.Error, operation: str) -> StorageTierError:
        # SQLITE_FULL surfaces as OperationalError("database or disk is full").
        if "full" in str(exc).lower():
            return StorageQuotaExceededError(
                message=f"Disk full during {operation}: {exc}",
                provider_name=self.get_provider_name(),
            )
        return StorageTierError(
            message=f"SQLite error during {operation}: {exc}",
            provider_name=self.get_provider_name(),
        )

"""SQLite-backed durable response store.

Holds the named response stores used by
:class:`~tiercache.services.network_cache_strategy.NetworkCacheStrategy`.
Each row is one ``(store_name, url)`` pair; the autoincrement ``id`` records
insertion order, and replacing a response deletes and re-inserts its row,
so "oldest inserted first" eviction is simply ``ORDER BY id``.

Uses ``aiosqlite`` for async I/O, one short-lived connection per operation.
"""

from __future__ import annotations

import json
from pathlib import Path

import aiosqlite
import structlog

from tiercache.interfaces.response_store import IResponseStore
from tiercache.models.network import StoredResponse, StoreStats
from tiercache.utils.errors import StorageTierError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/responses.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS responses (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    store_name  TEXT    NOT NULL,
    url         TEXT    NOT NULL,
    status_code INTEGER NOT NULL,
    headers     TEXT    NOT NULL,
    content     BLOB    NOT NULL,
    stored_at   REAL    NOT NULL,
    UNIQUE(store_name, url)
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_responses_store ON responses(store_name, id);",
    "CREATE INDEX IF NOT EXISTS idx_responses_url ON responses(url);",
]

# REPLACE deletes the conflicting row first, so a re-stored URL gets a new id.
_PUT_SQL = """\
INSERT OR REPLACE INTO responses
    (store_name, url, status_code, headers, content, stored_at)
VALUES (?, ?, ?, ?, ?, ?);
"""

_COLUMNS = "store_name, url, status_code, headers, content, stored_at"

_MATCH_IN_STORE_SQL = f"SELECT {_COLUMNS} FROM responses WHERE store_name = ? AND url = ?;"

_MATCH_ANY_SQL = f"SELECT {_COLUMNS} FROM responses WHERE url = ? ORDER BY id DESC LIMIT 1;"

_TRIM_SQL = """\
DELETE FROM responses
WHERE id IN (
    SELECT id FROM responses WHERE store_name = ? ORDER BY id ASC LIMIT ?
);
"""

_STATS_SQL = """\
SELECT store_name, COUNT(*), COALESCE(SUM(LENGTH(content)), 0)
FROM responses
GROUP BY store_name
ORDER BY store_name;
"""


class SQLiteResponseStore(IResponseStore):
    """Named response stores persisted in one SQLite table."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the responses table and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("response_store_initialized", path=str(self._db_path))

    async def match(self, url: str, store_name: str | None = None) -> StoredResponse | None:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                if store_name is None:
                    cursor = await db.execute(_MATCH_ANY_SQL, (url,))
                else:
                    cursor = await db.execute(_MATCH_IN_STORE_SQL, (store_name, url))
                row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise self._error(exc, f"match of {url}") from exc

        if row is None:
            return None
        return self._row_to_response(row)

    async def put(self, response: StoredResponse) -> None:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(
                    _PUT_SQL,
                    (
                        response.store_name,
                        response.url,
                        response.status_code,
                        json.dumps(response.headers),
                        response.content,
                        response.stored_at,
                    ),
                )
                await db.commit()
        except aiosqlite.Error as exc:
            raise self._error(exc, f"put of {response.url}") from exc

    async def delete(self, store_name: str, url: str) -> bool:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute(
                    "DELETE FROM responses WHERE store_name = ? AND url = ?;",
                    (store_name, url),
                )
                await db.commit()
                return cursor.rowcount > 0
        except aiosqlite.Error as exc:
            raise self._error(exc, f"delete of {url}") from exc

    async def keys(self, store_name: str) -> list[str]:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute(
                    "SELECT url FROM responses WHERE store_name = ? ORDER BY id ASC;",
                    (store_name,),
                )
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise self._error(exc, f"keys of {store_name}") from exc
        return [row[0] for row in rows]

    async def store_names(self) -> list[str]:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute(
                    "SELECT DISTINCT store_name FROM responses ORDER BY store_name;"
                )
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise self._error(exc, "store listing") from exc
        return [row[0] for row in rows]

    async def delete_store(self, store_name: str) -> bool:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute(
                    "DELETE FROM responses WHERE store_name = ?;",
                    (store_name,),
                )
                await db.commit()
                return cursor.rowcount > 0
        except aiosqlite.Error as exc:
            raise self._error(exc, f"delete of store {store_name}") from exc

    async def trim(self, store_name: str, max_entries: int) -> int:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute(
                    "SELECT COUNT(*) FROM responses WHERE store_name = ?;",
                    (store_name,),
                )
                (count,) = await cursor.fetchone()
                excess = count - max_entries
                if excess <= 0:
                    return 0
                cursor = await db.execute(_TRIM_SQL, (store_name, excess))
                await db.commit()
                removed = cursor.rowcount
        except aiosqlite.Error as exc:
            raise self._error(exc, f"trim of {store_name}") from exc

        logger.info(
            "response_store_trimmed",
            store=store_name,
            removed=removed,
            max_entries=max_entries,
        )
        return removed

    async def stats(self) -> list[StoreStats]:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute(_STATS_SQL)
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise self._error(exc, "stats") from exc
        return [StoreStats(name=name, count=count, size=size) for name, count, size in rows]

    def get_provider_name(self) -> str:
        return "sqlite_response_store"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_response(row: tuple) -> StoredResponse:
        store_name, url, status_code, headers, content, stored_at = row
        return StoredResponse(
            store_name=store_name,
            url=url,
            status_code=status_code,
            headers=[tuple(pair) for pair in json.loads(headers)],
            content=bytes(content),
            stored_at=stored_at,
        )

    def _error(self, exc: aiosqlite.Error, operation: str) -> StorageTierError:
        return StorageTierError(
            message=f"SQLite error during {operation}: {exc}",
            provider_name=self.get_provider_name(),
        )

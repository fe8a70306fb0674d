"""Session tier: an LRU front backed by the per-session string store.

Writes go to both the :class:`BoundedRecencyCache` and the
:class:`SessionStorage` string store, the latter as a JSON envelope
``{"data": ..., "timestamp": ..., "category": ...}``.  Reads try the LRU
first and fall back to the string store, re-populating the LRU on success,
so entries evicted from the LRU can still be recovered for the rest of the
session.

The LRU front holds values by reference, like the memory tier; only the
string store keeps a serialised snapshot.

An envelope that cannot be decoded is reported as a miss; the next write
for the same key overwrites it.
"""

from __future__ import annotations

import json

import structlog
from pydantic_core import PydanticSerializationError

from tiercache.interfaces.cache_tier import ICacheTier
from tiercache.models.cache import CacheEntry, Tier, TierStats
from tiercache.providers.cache.lru_cache import BoundedRecencyCache
from tiercache.providers.storage.session_storage import SessionStorage
from tiercache.utils.errors import SerializationError

logger = structlog.get_logger(logger_name=__name__)


class SessionTier(ICacheTier):
    """LRU tier mirrored into a quota-limited string store.

    Parameters
    ----------
    storage:
        The backing string store.  A fresh 5 MiB store is created when
        omitted.
    max_size:
        Capacity of the in-process LRU front.
    """

    tier = Tier.SESSION

    def __init__(self, storage: SessionStorage | None = None, max_size: int = 200) -> None:
        self._storage = storage if storage is not None else SessionStorage()
        self._lru: BoundedRecencyCache[str, CacheEntry] = BoundedRecencyCache(
            max_size=max_size, name="session"
        )

    @property
    def storage(self) -> SessionStorage:
        return self._storage

    # ------------------------------------------------------------------
    # ICacheTier implementation
    # ------------------------------------------------------------------

    async def get_entry(self, key: str) -> CacheEntry | None:
        entry = self._lru.get(key)
        if entry is not None:
            return entry

        raw = self._storage.get(key)
        if raw is None:
            return None

        entry = self._decode(key, raw)
        if entry is not None:
            self._lru.set(key, entry)
        return entry

    async def set_entry(self, entry: CacheEntry) -> None:
        """Write to the LRU, then to the string store.

        The LRU write always succeeds; quota and serialisation failures of
        the string store propagate to the caller.
        """
        self._lru.set(entry.key, entry)
        self._storage[entry.key] = self._encode(entry)

    async def delete(self, key: str) -> bool:
        removed = self._lru.delete(key)
        if key in self._storage:
            del self._storage[key]
            removed = True
        return removed

    async def clear_category(self, category: str) -> int:
        doomed = {key for key, entry in self._lru.items() if entry.category == category}
        # Entries evicted from the LRU can still sit in the string store.
        for key in self._storage:
            entry = self._decode(key, self._storage[key], log_failures=False)
            if entry is not None and entry.category == category:
                doomed.add(key)

        for key in doomed:
            await self.delete(key)
        return len(doomed)

    async def clear(self) -> None:
        self._lru.clear()
        self._storage.clear()

    async def prune(self, fraction: float = 0.25) -> int:
        """Remove the oldest *fraction* of string-store entries.

        Undecodable envelopes sort as oldest and go first.
        """
        ages: list[tuple[float, str]] = []
        for key in self._storage:
            entry = self._decode(key, self._storage[key], log_failures=False)
            ages.append((entry.timestamp if entry is not None else 0.0, key))
        if not ages:
            return 0

        ages.sort()
        doomed = ages[: max(1, int(len(ages) * fraction))]
        for _, key in doomed:
            del self._storage[key]

        logger.info(
            "session_storage_pruned",
            removed=len(doomed),
            remaining=len(self._storage),
            used_bytes=self._storage.used_bytes,
        )
        return len(doomed)

    async def stats(self) -> TierStats:
        return TierStats(
            count=self._lru.size(),
            max_size=self._lru.max_size,
            evictions=self._lru.evictions,
        )

    def get_provider_name(self) -> str:
        return "session_tier"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _encode(self, entry: CacheEntry) -> str:
        try:
            return entry.model_dump_json(exclude={"key"})
        except (PydanticSerializationError, TypeError, ValueError) as exc:
            raise SerializationError(
                message=f"Cannot serialise value for {entry.key!r}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def _decode(self, key: str, raw: str, log_failures: bool = True) -> CacheEntry | None:
        try:
            payload = json.loads(raw)
            return CacheEntry.model_validate({**payload, "key": key})
        except (TypeError, ValueError) as exc:
            if log_failures:
                logger.warning(
                    "session_entry_corrupt",
                    key=key,
                    error=str(exc)[:200],
                )
            return None

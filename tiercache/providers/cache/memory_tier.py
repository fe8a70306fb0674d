"""Memory tier: the hot, smallest, least durable level of the tiered cache.

Entries are kept as :class:`CacheEntry` objects in a
:class:`BoundedRecencyCache`; nothing is serialised, and no operation ever
awaits, so reads and writes complete without suspending the caller.

Values are held by reference, not copied: a caller that mutates a value it
stored or read back mutates the cached copy too.  Treat cached values as
read-only.
"""

from __future__ import annotations

from tiercache.interfaces.cache_tier import ICacheTier
from tiercache.models.cache import CacheEntry, Tier, TierStats
from tiercache.providers.cache.lru_cache import BoundedRecencyCache


class MemoryTier(ICacheTier):
    """In-process LRU tier.

    Parameters
    ----------
    max_size:
        Maximum number of entries before the least recently used one is
        evicted.
    """

    tier = Tier.MEMORY

    def __init__(self, max_size: int = 50) -> None:
        self._lru: BoundedRecencyCache[str, CacheEntry] = BoundedRecencyCache(
            max_size=max_size, name="memory"
        )

    def peek(self, key: str) -> CacheEntry | None:
        """Return the entry for *key* without touching LRU order."""
        return self._lru.peek(key)

    # ------------------------------------------------------------------
    # ICacheTier implementation
    # ------------------------------------------------------------------

    async def get_entry(self, key: str) -> CacheEntry | None:
        return self._lru.get(key)

    async def set_entry(self, entry: CacheEntry) -> None:
        self._lru.set(entry.key, entry)

    async def delete(self, key: str) -> bool:
        return self._lru.delete(key)

    async def clear_category(self, category: str) -> int:
        doomed = [key for key, entry in self._lru.items() if entry.category == category]
        for key in doomed:
            self._lru.delete(key)
        return len(doomed)

    async def clear(self) -> None:
        self._lru.clear()

    async def prune(self, fraction: float = 0.25) -> int:
        """Drop the oldest-written *fraction* of entries."""
        entries = sorted(self._lru.items(), key=lambda item: item[1].timestamp)
        if not entries:
            return 0
        doomed = entries[: max(1, int(len(entries) * fraction))]
        for key, _ in doomed:
            self._lru.delete(key)
        return len(doomed)

    async def stats(self) -> TierStats:
        return TierStats(
            count=self._lru.size(),
            max_size=self._lru.max_size,
            evictions=self._lru.evictions,
        )

    def get_provider_name(self) -> str:
        return "memory_tier"

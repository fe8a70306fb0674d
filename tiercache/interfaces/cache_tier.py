"""Abstract base class for the storage tiers of the tiered cache.

Each tier (memory, session, persistent) stores :class:`CacheEntry`
envelopes under a cache key.  :class:`TieredCacheManager` walks the tiers
in :class:`Tier` order and owns the cross-tier policy (promotion,
write-through, prune-and-retry); a tier only knows how to store, find and
prune its own entries.

All operations are async so the persistent tier can await its database
without blocking the event loop.  The in-process tiers implement them
without awaiting anything, so they never suspend the calling task.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from tiercache.models.cache import CacheEntry, PersistentTierStats, Tier, TierStats


class ICacheTier(ABC):
    """Contract for one storage tier.

    Implementations may raise
    :class:`~tiercache.utils.errors.StorageTierError` (or its subclasses)
    from :meth:`get_entry` and :meth:`set_entry`; the manager absorbs those.
    Corrupt stored data is not an error: it is reported as a miss.
    """

    tier: Tier

    async def initialize(self) -> None:
        """Prepare backing storage.  In-process tiers need nothing."""

    async def close(self) -> None:
        """Release backing storage.  In-process tiers need nothing."""

    @abstractmethod
    async def get_entry(self, key: str) -> CacheEntry | None:
        """Return the entry stored under *key*, or ``None``.

        No staleness check happens here; TTL is applied by the caller.
        """

    @abstractmethod
    async def set_entry(self, entry: CacheEntry) -> None:
        """Store *entry* under ``entry.key``, replacing any previous entry.

        Raises
        ------
        StorageQuotaExceededError
            The tier is full.  The caller is expected to :meth:`prune` and
            retry once.
        StorageTierError
            Any other storage failure.
        """

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove *key*.  Returns ``True`` if something was removed."""

    @abstractmethod
    async def clear_category(self, category: str) -> int:
        """Remove every entry tagged with *category*.  Returns the count removed."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove every entry."""

    @abstractmethod
    async def prune(self, fraction: float = 0.25) -> int:
        """Free space by removing roughly *fraction* of the stored entries.

        Returns the number of entries removed.
        """

    @abstractmethod
    async def stats(self) -> TierStats | PersistentTierStats:
        """Return a statistics snapshot for this tier."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this tier implementation."""

"""Tiered cache data models.

Defines the entry envelope stored by every tier, the tier enum that fixes
the lookup order, and the statistics snapshot returned by
:meth:`TieredCacheManager.get_stats`.

``CacheEntry.timestamp`` is always the *write* time in epoch seconds.
Reads never refresh it; recency for LRU eviction is tracked separately by
:class:`~tiercache.providers.cache.lru_cache.BoundedRecencyCache`.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Tier(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """Storage tiers, listed in lookup order (fastest first)."""

    MEMORY = "memory"
    SESSION = "session"
    PERSISTENT = "persistent"


class CacheEntry(BaseModel):
    """A cached value plus the metadata every tier needs."""

    model_config = ConfigDict(frozen=True)

    key: str
    data: Any = None
    timestamp: float
    category: str = "default"

    def is_expired(self, ttl: float, now: float) -> bool:
        """Return ``True`` when the entry is older than *ttl* seconds at *now*.

        An entry whose age equals *ttl* exactly is still fresh.
        """
        return now - self.timestamp > ttl


class TierStats(BaseModel):
    """Counters for an LRU-backed tier (memory or session)."""

    count: int = 0
    max_size: int = 0
    hits: int = 0
    misses: int = 0
    evictions: int = 0


class PersistentTierStats(BaseModel):
    """Counters for the persistent tier.  ``size`` is total serialised bytes."""

    count: int = 0
    size: int = 0
    hits: int = 0
    misses: int = 0
    available: bool = True


class CacheStats(BaseModel):
    """Read-only diagnostic snapshot across all three tiers."""

    memory: TierStats = Field(default_factory=TierStats)
    session: TierStats = Field(default_factory=TierStats)
    persistent: PersistentTierStats = Field(default_factory=PersistentTierStats)

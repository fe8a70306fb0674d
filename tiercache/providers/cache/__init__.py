"""Cache tier providers.

Three tiers, checked in this order by the TieredCacheManager:

- MemoryTier   -- BoundedRecencyCache of entry objects, smallest and fastest.
- SessionTier  -- BoundedRecencyCache mirrored into a quota-limited
                  per-session string store.
- SQLiteTier   -- aiosqlite table that survives restarts.
"""

from tiercache.providers.cache.lru_cache import BoundedRecencyCache
from tiercache.providers.cache.memory_tier import MemoryTier
from tiercache.providers.cache.session_tier import SessionTier
from tiercache.providers.cache.sqlite_tier import SQLiteTier

__all__ = ["BoundedRecencyCache", "MemoryTier", "SQLiteTier", "SessionTier"]

"""tiercache domain models - re-exports all public model classes."""

from tiercache.models.cache import (
    CacheEntry,
    CacheStats,
    PersistentTierStats,
    Tier,
    TierStats,
)
from tiercache.models.network import (
    NetworkCacheConfig,
    StoredResponse,
    StoreStats,
    StrategyKind,
)

__all__ = [
    "CacheEntry",
    "CacheStats",
    "NetworkCacheConfig",
    "PersistentTierStats",
    "StoreStats",
    "StoredResponse",
    "StrategyKind",
    "Tier",
    "TierStats",
]

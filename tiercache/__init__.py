"""tiercache: multi-level client-side cache for the Dota 2 companion app.

Two independent layers:

- :class:`~tiercache.services.cache_manager.TieredCacheManager` caches
  application data across memory, session and persistent tiers.
- :class:`~tiercache.services.network_cache_strategy.NetworkCacheStrategy`
  caches HTTP responses per request class.

Build them with the factories in :mod:`tiercache.main`.
"""

__version__ = "0.1.0"

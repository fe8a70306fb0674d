"""Utility modules for tiercache.

- **errors** -- exception hierarchy rooted at TierCacheError; storage
  errors stay inside the tiers, network errors surface from the
  network cache strategy.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **cache_keys** -- canonical, collision-free cache key construction.
"""

# -- Cache key canonicalisation --------------------------------------------
from tiercache.utils.cache_keys import generate_key

# -- Domain exception hierarchy --------------------------------------------
from tiercache.utils.errors import (
    ConfigurationError,
    NetworkUnavailableError,
    SerializationError,
    StorageQuotaExceededError,
    StorageTierError,
    TierCacheError,
)

# -- Structured logging setup ----------------------------------------------
from tiercache.utils.logging import configure_logging, get_logger

__all__ = [
    "ConfigurationError",
    "NetworkUnavailableError",
    "SerializationError",
    "StorageQuotaExceededError",
    "StorageTierError",
    "TierCacheError",
    "configure_logging",
    "generate_key",
    "get_logger",
]

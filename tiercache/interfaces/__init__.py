"""Public interface definitions for tiercache storage backends.

Every store the cache layers touch is accessed through the abstract base
classes defined here.  Concrete adapters implement them and are injected
at construction time, so tests can substitute fakes and deployments can
swap backends without touching the manager or strategy logic.

CONCRETE PROVIDER MAP:
    Interface          →  Concrete implementations (in tiercache/providers/)
    ─────────────────────────────────────────────────────────────────────
    ICacheTier         →  MemoryTier, SessionTier, SQLiteTier
    IResponseStore     →  SQLiteResponseStore
"""

from tiercache.interfaces.cache_tier import ICacheTier
from tiercache.interfaces.response_store import IResponseStore

__all__ = [
    "ICacheTier",
    "IResponseStore",
]

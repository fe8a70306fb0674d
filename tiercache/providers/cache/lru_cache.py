"""Fixed-capacity least-recently-used cache backed by ``cachetools.LRUCache``.

Used as the in-process store of both the memory tier and the session tier.
``get`` and ``set`` count as accesses and move a key to the
most-recently-used position; ``has`` and ``peek`` never do, so category
scans and statistics cannot disturb eviction order.
"""

from __future__ import annotations

from typing import Any, Callable, Generic, Hashable, TypeVar

import structlog
from cachetools import Cache, LRUCache

_K = TypeVar("_K", bound=Hashable)
_V = TypeVar("_V")

logger = structlog.get_logger(logger_name=__name__)


class _EvictionTrackingLRU(LRUCache):
    """``LRUCache`` that reports every capacity eviction."""

    def __init__(self, maxsize: int, on_evict: Callable[[Any], None]) -> None:
        super().__init__(maxsize=maxsize)
        self._on_evict = on_evict

    def popitem(self) -> tuple[Any, Any]:
        key, value = super().popitem()
        self._on_evict(key)
        return key, value

    def peek(self, key: Any, default: Any = None) -> Any:
        # Cache.__getitem__ skips LRUCache's recency update.
        if key in self:
            return Cache.__getitem__(self, key)
        return default


class BoundedRecencyCache(Generic[_K, _V]):
    """Key/value store holding at most ``max_size`` entries.

    When a new key is inserted at capacity, the single least recently
    accessed key is evicted first.  Lookups on a missing key return
    ``None`` rather than raising.

    Parameters
    ----------
    max_size:
        Capacity in entries.  Must be at least 1.
    name:
        Label used in log events (e.g. ``"memory"``, ``"session"``).
    """

    def __init__(self, max_size: int = 100, name: str = "lru") -> None:
        if max_size < 1:
            msg = f"max_size must be at least 1, got {max_size}"
            raise ValueError(msg)
        self._max_size = max_size
        self._name = name
        self._evictions = 0
        self._store: _EvictionTrackingLRU = _EvictionTrackingLRU(max_size, self._record_eviction)

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def evictions(self) -> int:
        """Number of entries evicted for capacity since construction."""
        return self._evictions

    def get(self, key: _K) -> _V | None:
        """Return the value for *key* and mark it most recently used."""
        return self._store.get(key)

    def set(self, key: _K, value: _V) -> None:
        """Insert or refresh *key*, evicting the LRU entry if at capacity."""
        self._store[key] = value

    def has(self, key: _K) -> bool:
        """Return ``True`` if *key* is present.  Recency is unchanged."""
        return key in self._store

    def peek(self, key: _K) -> _V | None:
        """Return the value for *key* without changing recency."""
        return self._store.peek(key)

    def delete(self, key: _K) -> bool:
        """Remove *key*.  Returns ``True`` if it was present."""
        if key not in self._store:
            return False
        del self._store[key]
        return True

    def clear(self) -> None:
        # MutableMapping.clear() goes through popitem(), which would count
        # every removal as an eviction.
        for key in list(self._store):
            del self._store[key]

    def size(self) -> int:
        return len(self._store)

    def items(self) -> list[tuple[_K, _V]]:
        """Snapshot of all entries, taken without changing recency."""
        return [(key, self._store.peek(key)) for key in list(self._store)]

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: object) -> bool:
        return key in self._store

    def _record_eviction(self, key: Any) -> None:
        self._evictions += 1
        logger.debug("lru_evicted", cache=self._name, key=key)

"""Tiered cache manager: memory → session → persistent.

Coordinates the three :class:`ICacheTier` implementations behind one
read/write API:

- **get** walks the tiers in order and returns the first entry that is
  fresh under the caller's TTL, copying it into every faster tier on the
  way out (promotion is upward only and keeps the original write time).
- **set** writes through to every tier, each entry stamped with its own
  write time.
- **cache_api_call** wraps an async producer: cache hit → no call; miss →
  call, store, return.  Concurrent misses for the same key share one call.

Staleness is a read-time policy: ``now - timestamp > ttl`` is stale, and the
TTL is never stored with the entry.  Expired entries are left in place
rather than deleted, so a caller may deliberately read them back with a
larger TTL as a stale fallback when its upstream is failing.

Storage failures are absorbed at the tier boundary.  A failing write is
logged, the tier is pruned, and the write is retried once; if that also
fails the tier is skipped for this operation only.  A failing read is a
miss.  The only exceptions that reach callers are the ones raised by their
own fetch functions.

This layer is independent of
:class:`~tiercache.services.network_cache_strategy.NetworkCacheStrategy`:
the two share no entries and never coordinate invalidation.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from typing import Any, Awaitable, Callable, Mapping, TypeVar

import structlog

from tiercache.interfaces.cache_tier import ICacheTier
from tiercache.models.cache import CacheEntry, CacheStats, Tier
from tiercache.utils.cache_keys import generate_key
from tiercache.utils.errors import SerializationError
from tiercache.utils.logging import get_logger

_T = TypeVar("_T")

_DEFAULT_TTL_SECONDS = 300.0
_PRUNE_FRACTION = 0.25


class TieredCacheManager:
    """Three-tier cache with promotion, write-through and TTL-on-read.

    Construct one per application (see :func:`tiercache.main.build_cache_manager`)
    and inject it where needed; there is no module-level instance.

    Parameters
    ----------
    memory, session, persistent:
        The tier implementations, fastest first.
    default_ttl:
        TTL in seconds used when a caller passes ``ttl=None``.
    clock:
        Returns the current time in epoch seconds.  Injected by tests.
    """

    def __init__(
        self,
        memory: ICacheTier,
        session: ICacheTier,
        persistent: ICacheTier,
        default_ttl: float = _DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._memory = memory
        self._session = session
        self._persistent = persistent
        self._tiers: tuple[ICacheTier, ...] = (memory, session, persistent)
        self._default_ttl = default_ttl
        self._clock = clock
        self._hits: dict[Tier, int] = {tier: 0 for tier in Tier}
        self._misses: dict[Tier, int] = {tier: 0 for tier in Tier}
        self._inflight: dict[str, asyncio.Task] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def memory(self) -> ICacheTier:
        return self._memory

    @property
    def session(self) -> ICacheTier:
        return self._session

    @property
    def persistent(self) -> ICacheTier:
        return self._persistent

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Prepare every tier's backing storage.  Call once at startup."""
        for tier in self._tiers:
            await tier.initialize()
        self._logger.info(
            "cache_manager_initialized",
            tiers=[tier.get_provider_name() for tier in self._tiers],
        )

    async def close(self) -> None:
        """Cancel in-flight fetches and release tier resources."""
        for task in list(self._inflight.values()):
            task.cancel()
        self._inflight.clear()
        for tier in self._tiers:
            await tier.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @staticmethod
    def generate_key(
        category: str,
        identifier: str | int,
        params: Mapping[str, Any] | None = None,
    ) -> str:
        """Return the canonical cache key for ``(category, identifier, params)``."""
        return generate_key(category, identifier, params)

    async def get(self, key: str, ttl: float | None = None) -> Any | None:
        """Return the freshest cached data for *key*, or ``None`` on a miss.

        Parameters
        ----------
        key:
            A key from :meth:`generate_key`.
        ttl:
            Maximum acceptable age in seconds for this read.
        """
        found, data = await self._lookup(key, ttl)
        return data if found else None

    async def set(self, key: str, data: Any, category: str = "default") -> None:
        """Write *data* to every tier.  Never raises for storage failures."""
        for tier in self._tiers:
            entry = CacheEntry(key=key, data=data, timestamp=self._clock(), category=category)
            await self._write(tier, entry)

    async def cache_api_call(
        self,
        category: str,
        identifier: str | int,
        fetch_fn: Callable[[], Awaitable[_T] | _T],
        params: Mapping[str, Any] | None = None,
        ttl: float | None = None,
    ) -> _T:
        """Return cached data for the request, calling *fetch_fn* only on a miss.

        *fetch_fn* takes no arguments.  Its result is stored in every tier
        before being returned.  If it raises, the exception propagates
        unchanged and nothing is cached.  Callers that miss while another
        call for the same key is already fetching wait for that fetch
        instead of starting their own.
        """
        key = self.generate_key(category, identifier, params)

        found, data = await self._lookup(key, ttl)
        if found:
            return data

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_store(key, category, fetch_fn))
            self._inflight[key] = task
            task.add_done_callback(lambda done, k=key: self._forget_inflight(k, done))
        else:
            self._logger.debug("cache_fetch_joined", key=key)

        # Shielded so one cancelled caller does not cancel the fetch for the rest.
        return await asyncio.shield(task)

    async def clear_category(self, category: str) -> int:
        """Remove every entry tagged *category* from all tiers.

        Returns the total number of entries removed across tiers.
        """
        removed = 0
        for tier in self._tiers:
            try:
                removed += await tier.clear_category(category)
            except Exception as exc:
                self._logger.warning(
                    "cache_tier_clear_failed",
                    tier=tier.tier.value,
                    category=category,
                    error=str(exc),
                )
        self._logger.info("cache_category_cleared", category=category, removed=removed)
        return removed

    async def clear_all(self) -> None:
        """Remove every entry from all tiers."""
        for tier in self._tiers:
            try:
                await tier.clear()
            except Exception as exc:
                self._logger.warning("cache_tier_clear_failed", tier=tier.tier.value, error=str(exc))
        self._logger.info("cache_cleared")

    async def get_stats(self) -> CacheStats:
        """Return a snapshot of entry counts, capacities and hit/miss counters."""
        snapshots = {}
        for tier in self._tiers:
            try:
                snapshot = await tier.stats()
            except Exception as exc:
                self._logger.warning("cache_tier_stats_failed", tier=tier.tier.value, error=str(exc))
                continue
            snapshots[tier.tier.value] = snapshot.model_copy(
                update={"hits": self._hits[tier.tier], "misses": self._misses[tier.tier]}
            )
        return CacheStats(**snapshots)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _lookup(self, key: str, ttl: float | None) -> tuple[bool, Any]:
        """Walk the tiers; return ``(True, data)`` on a fresh hit.

        Uses a found-flag rather than ``None`` so cached falsy values
        (``None``, ``0``, ``[]``) are still hits.
        """
        ttl = self._default_ttl if ttl is None else ttl
        now = self._clock()

        for index, tier in enumerate(self._tiers):
            entry = await self._read(tier, key)
            if entry is None or entry.is_expired(ttl, now):
                self._misses[tier.tier] += 1
                continue

            self._hits[tier.tier] += 1
            for higher in reversed(self._tiers[:index]):
                await self._write(higher, entry)
            self._logger.debug("cache_hit", key=key, tier=tier.tier.value)
            return True, entry.data

        self._logger.debug("cache_miss", key=key)
        return False, None

    async def _fetch_and_store(
        self,
        key: str,
        category: str,
        fetch_fn: Callable[[], Awaitable[_T] | _T],
    ) -> _T:
        result = fetch_fn()
        if inspect.isawaitable(result):
            result = await result
        await self.set(key, result, category)
        return result

    def _forget_inflight(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _read(self, tier: ICacheTier, key: str) -> CacheEntry | None:
        try:
            return await tier.get_entry(key)
        except Exception as exc:
            self._logger.warning(
                "cache_tier_read_failed",
                tier=tier.tier.value,
                key=key,
                error=str(exc),
            )
            return None

    async def _write(self, tier: ICacheTier, entry: CacheEntry) -> bool:
        """Write *entry* to *tier*, pruning and retrying once on failure."""
        try:
            await tier.set_entry(entry)
            return True
        except SerializationError as exc:
            # Pruning cannot make an unserialisable value fit.
            self._logger.warning(
                "cache_tier_write_failed",
                tier=tier.tier.value,
                key=entry.key,
                error=str(exc),
            )
            return False
        except Exception as exc:
            self._logger.warning(
                "cache_tier_write_failed",
                tier=tier.tier.value,
                key=entry.key,
                error=str(exc),
            )

        try:
            removed = await tier.prune(_PRUNE_FRACTION)
            await tier.set_entry(entry)
        except Exception as exc:
            self._logger.warning(
                "cache_tier_write_abandoned",
                tier=tier.tier.value,
                key=entry.key,
                error=str(exc),
            )
            return False

        self._logger.info(
            "cache_tier_write_recovered",
            tier=tier.tier.value,
            key=entry.key,
            pruned=removed,
        )
        return True

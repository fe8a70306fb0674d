"""Abstract base class for durable HTTP response stores.

A response store holds any number of *named stores*, each mapping a
request URL to the last successful response for it.  This mirrors the
browser Cache Storage API the network cache strategy is modelled on:
named caches that survive restarts and are versioned by name, so a new
deployment can drop the stores of an old one.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from tiercache.models.network import StoredResponse, StoreStats


class IResponseStore(ABC):
    """Contract for a durable, named request/response store."""

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the backing storage.  Must be called once before use."""

    @abstractmethod
    async def match(self, url: str, store_name: str | None = None) -> StoredResponse | None:
        """Return the stored response for *url*.

        Parameters
        ----------
        url:
            The full request URL.
        store_name:
            Restrict the lookup to one named store.  ``None`` searches every
            store and returns the most recently stored match.
        """

    @abstractmethod
    async def put(self, response: StoredResponse) -> None:
        """Store *response* in ``response.store_name``, replacing any previous copy.

        A replaced entry counts as newly inserted for eviction order.
        """

    @abstractmethod
    async def delete(self, store_name: str, url: str) -> bool:
        """Remove one stored response.  Returns ``True`` if it existed."""

    @abstractmethod
    async def keys(self, store_name: str) -> list[str]:
        """Return the URLs in *store_name*, oldest insertion first."""

    @abstractmethod
    async def store_names(self) -> list[str]:
        """Return the names of all stores holding at least one response."""

    @abstractmethod
    async def delete_store(self, store_name: str) -> bool:
        """Drop a whole named store.  Returns ``True`` if it held anything."""

    @abstractmethod
    async def trim(self, store_name: str, max_entries: int) -> int:
        """Evict oldest-inserted entries until at most *max_entries* remain.

        Returns the number of entries removed.
        """

    @abstractmethod
    async def stats(self) -> list[StoreStats]:
        """Return per-store entry counts and sizes."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this store implementation."""

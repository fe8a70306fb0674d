"""Network cache strategy: per-request-class HTTP caching on durable stores.

Sits between the application and the network, in the role a service worker
plays for a web page, and answers each outbound request with one of three
strategies:

- **cache-first** (static assets): a stored copy is returned without any
  network round-trip; otherwise the network answers and 2xx responses are
  stored.  When the network is down, navigations get the stored offline
  document.
- **network-first** (upstream API hosts): the network is always tried
  first; on a request error or a non-2xx status any stored copy is
  returned regardless of age.
- **stale-while-revalidate with max age** (bulk data files): a stored copy
  younger than the freshness window (measured from its ``Date`` header) is
  returned as is; an older or missing copy triggers a fetch, and the stale
  copy is the fallback when that fetch fails.

Non-GET requests go straight to the network and are never stored.

The strategy owns its response stores exclusively and shares nothing with
:class:`~tiercache.services.cache_manager.TieredCacheManager`; the two
layers cache different things (HTTP responses vs. application data) and
never coordinate.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from email.utils import formatdate, parsedate_to_datetime
from typing import Callable

import httpx
import structlog

from tiercache.interfaces.response_store import IResponseStore
from tiercache.models.network import NetworkCacheConfig, StoredResponse, StrategyKind
from tiercache.utils.errors import NetworkUnavailableError, TierCacheError
from tiercache.utils.logging import get_logger

_DEFAULT_TIMEOUT = 10.0

# Stored bodies are already decoded, so these would describe the wrong bytes.
_UNSTORED_HEADERS = frozenset({"content-encoding", "content-length", "transfer-encoding"})


def _is_success(response: httpx.Response) -> bool:
    return 200 <= response.status_code < 300


def _is_navigation(request: httpx.Request) -> bool:
    return request.headers.get("sec-fetch-mode", "").lower() == "navigate"


class NetworkCacheStrategy:
    """Route requests through cache-first, network-first or stale-while-revalidate.

    Parameters
    ----------
    store:
        Durable named response store.  Must be initialised before use.
    config:
        Route lists, store names, size caps and freshness window.
    http_client:
        Client used for network fetches.  One with a default timeout is
        created (and closed by :meth:`close`) when omitted.
    clock:
        Returns the current time in epoch seconds.  Injected by tests.
    timeout:
        Seconds before a fetch on the self-created client gives up.
    """

    def __init__(
        self,
        store: IResponseStore,
        config: NetworkCacheConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
        timeout: float = _DEFAULT_TIMEOUT,
    ) -> None:
        self._store = store
        self._config = config or NetworkCacheConfig()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
        )
        self._clock = clock
        self._prune_task: asyncio.Task | None = None
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def config(self) -> NetworkCacheConfig:
        return self._config

    @property
    def store(self) -> IResponseStore:
        return self._store

    # ------------------------------------------------------------------
    # Request entry points
    # ------------------------------------------------------------------

    async def fetch(
        self,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Build a request for *url* (relative URLs resolve against ``base_url``) and handle it."""
        request = self._client.build_request(method, self._resolve(url), headers=headers)
        return await self.handle(request)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        """Answer *request* with the strategy its request class maps to.

        Raises
        ------
        NetworkUnavailableError
            The network failed and no stored copy (or offline document)
            could stand in.
        """
        kind = self.classify(request)
        self._logger.debug("network_request", url=str(request.url), strategy=kind.value)

        if kind is StrategyKind.NETWORK_FIRST:
            return await self._network_first(request)
        if kind is StrategyKind.STALE_WHILE_REVALIDATE:
            return await self._stale_while_revalidate(request)
        if kind is StrategyKind.CACHE_FIRST:
            return await self._cache_first(request)

        try:
            return await self._network(request)
        except httpx.RequestError as exc:
            raise self._unavailable(request, exc) from exc

    def classify(self, request: httpx.Request) -> StrategyKind:
        """Return the strategy for *request*'s class."""
        if request.method.upper() != "GET":
            return StrategyKind.NETWORK_ONLY
        if request.url.host in self._config.api_hosts:
            return StrategyKind.NETWORK_FIRST
        if any(prefix in request.url.path for prefix in self._config.data_path_prefixes):
            return StrategyKind.STALE_WHILE_REVALIDATE
        return StrategyKind.CACHE_FIRST

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Prepare the response store.  Call once at startup."""
        await self._store.initialize()

    async def install(self) -> int:
        """Pre-populate the static store with the configured assets.

        Assets that fail to download are logged and skipped.  Returns the
        number of assets stored.
        """
        stored = 0
        for asset in self._config.static_assets:
            request = self._client.build_request("GET", self._resolve(asset))
            try:
                response = await self._network(request)
            except httpx.RequestError as exc:
                self._logger.warning("precache_failed", url=str(request.url), error=str(exc))
                continue
            if not _is_success(response):
                self._logger.warning(
                    "precache_failed",
                    url=str(request.url),
                    status_code=response.status_code,
                )
                continue
            if await self._store_copy(self._config.static_store, request, response):
                stored += 1

        self._logger.info(
            "static_assets_precached",
            stored=stored,
            requested=len(self._config.static_assets),
        )
        return stored

    async def activate(self) -> list[str]:
        """Drop every store not recognised by the current deployment.

        Returns the names of the removed stores.
        """
        removed: list[str] = []
        for name in await self._store.store_names():
            if name in self._config.recognised_stores:
                continue
            await self._store.delete_store(name)
            removed.append(name)
            self._logger.info("response_store_deleted", store=name)
        return removed

    async def prune_stores(self) -> dict[str, int]:
        """Cap every store at its maximum entry count, oldest inserted first."""
        removed: dict[str, int] = {}
        for name, max_entries in self._config.store_max_entries.items():
            removed[name] = await self._store.trim(name, max_entries)
        return removed

    def start_periodic_pruning(self) -> asyncio.Task:
        """Run :meth:`prune_stores` every ``prune_interval_seconds`` in the background."""
        if self._prune_task is None or self._prune_task.done():
            self._prune_task = asyncio.ensure_future(self._prune_forever())
        return self._prune_task

    async def stop_periodic_pruning(self) -> None:
        if self._prune_task is None:
            return
        self._prune_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._prune_task
        self._prune_task = None

    async def background_sync(self) -> int:
        """Refresh the configured API endpoints into the data store.

        Returns the number of endpoints refreshed.  Failures are logged and
        leave the previously stored copy in place.
        """
        refreshed = 0
        for endpoint in self._config.api_endpoints:
            request = self._client.build_request("GET", self._resolve(endpoint))
            try:
                response = await self._network(request)
            except httpx.RequestError as exc:
                self._logger.warning("background_sync_failed", url=str(request.url), error=str(exc))
                continue
            if _is_success(response) and await self._store_copy(
                self._config.data_store, request, response
            ):
                refreshed += 1

        self._logger.info("background_sync_completed", refreshed=refreshed)
        return refreshed

    async def close(self) -> None:
        await self.stop_periodic_pruning()
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def _cache_first(self, request: httpx.Request) -> httpx.Response:
        cached = await self._match(request)
        if cached is not None:
            return cached

        try:
            response = await self._network(request)
        except httpx.RequestError as exc:
            if _is_navigation(request):
                offline = await self._match_url(self._resolve(self._config.offline_document), request)
                if offline is not None:
                    self._logger.info("offline_document_served", url=str(request.url))
                    return offline
            raise self._unavailable(request, exc) from exc

        if _is_success(response):
            await self._store_copy(self._config.static_store, request, response)
        return response

    async def _network_first(self, request: httpx.Request) -> httpx.Response:
        try:
            response = await self._network(request)
        except httpx.RequestError as exc:
            cached = await self._match(request)
            if cached is not None:
                self._logger.info("network_failed_serving_cache", url=str(request.url), error=str(exc))
                return cached
            raise self._unavailable(request, exc) from exc

        if _is_success(response):
            await self._store_copy(self._config.data_store, request, response)
            return response

        cached = await self._match(request)
        if cached is not None:
            self._logger.info(
                "network_error_status_serving_cache",
                url=str(request.url),
                status_code=response.status_code,
            )
            return cached
        return response

    async def _stale_while_revalidate(self, request: httpx.Request) -> httpx.Response:
        cached = await self._match(request)
        if cached is not None and self._age(cached) < self._config.data_max_age_seconds:
            return cached

        try:
            response = await self._network(request)
        except httpx.RequestError as exc:
            if cached is not None:
                self._logger.info("network_failed_serving_stale", url=str(request.url), error=str(exc))
                return cached
            raise self._unavailable(request, exc) from exc

        if _is_success(response):
            await self._store_copy(self._config.data_store, request, response)
            return response

        if cached is not None:
            self._logger.info(
                "network_error_status_serving_stale",
                url=str(request.url),
                status_code=response.status_code,
            )
            return cached
        return response

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _network(self, request: httpx.Request) -> httpx.Response:
        return await self._client.send(request)

    async def _match(self, request: httpx.Request) -> httpx.Response | None:
        return await self._match_url(str(request.url), request)

    async def _match_url(self, url: str, request: httpx.Request) -> httpx.Response | None:
        """Look *url* up in every store; store failures count as a miss."""
        try:
            stored = await self._store.match(url)
        except TierCacheError as exc:
            self._logger.warning("response_store_read_failed", url=url, error=str(exc))
            return None
        if stored is None:
            return None
        return httpx.Response(
            status_code=stored.status_code,
            headers=stored.headers,
            content=stored.content,
            request=request,
        )

    async def _store_copy(
        self,
        store_name: str,
        request: httpx.Request,
        response: httpx.Response,
    ) -> bool:
        headers = [
            (name, value)
            for name, value in response.headers.multi_items()
            if name.lower() not in _UNSTORED_HEADERS
        ]
        if "date" not in response.headers:
            headers.append(("date", formatdate(self._clock(), usegmt=True)))

        stored = StoredResponse(
            store_name=store_name,
            url=str(request.url),
            status_code=response.status_code,
            headers=headers,
            content=response.content,
            stored_at=self._clock(),
        )
        try:
            await self._store.put(stored)
        except TierCacheError as exc:
            self._logger.warning(
                "response_store_write_failed",
                store=store_name,
                url=stored.url,
                error=str(exc),
            )
            return False
        return True

    def _age(self, response: httpx.Response) -> float:
        """Seconds since the response's ``Date`` header; infinite if absent or invalid."""
        raw = response.headers.get("date")
        if not raw:
            return float("inf")
        try:
            return self._clock() - parsedate_to_datetime(raw).timestamp()
        except (TypeError, ValueError):
            return float("inf")

    def _resolve(self, url: str) -> str:
        return str(httpx.URL(self._config.base_url).join(url))

    def _unavailable(self, request: httpx.Request, exc: Exception) -> NetworkUnavailableError:
        return NetworkUnavailableError(
            message=f"{request.method} {request.url} failed and nothing is cached: {exc}",
            provider_name="network_cache_strategy",
        )

    async def _prune_forever(self) -> None:
        while True:
            await asyncio.sleep(self._config.prune_interval_seconds)
            try:
                removed = await self.prune_stores()
            except Exception as exc:
                self._logger.warning("periodic_prune_failed", error=str(exc), error_type=type(exc).__name__)
                continue
            self._logger.debug("periodic_prune_completed", removed=removed)

"""Unit tests for NetworkCacheStrategy.

The network is an ``httpx.MockTransport`` that counts requests per URL and
can be switched offline; responses are persisted in a real
SQLiteResponseStore on a temp file.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import pytest_asyncio

from tiercache.models.network import NetworkCacheConfig, StoredResponse, StrategyKind
from tiercache.providers.response_store.sqlite_response_store import SQLiteResponseStore
from tiercache.services.network_cache_strategy import NetworkCacheStrategy
from tiercache.utils.errors import NetworkUnavailableError, StorageTierError

STATIC = "dota2-static-v1.2"
DATA = "dota2-data-v1"
HERO_STATS = "https://api.opendota.com/api/heroStats"
HERO_CONSTANTS = "https://api.opendota.com/api/constants/heroes"

_CONFIG = NetworkCacheConfig(
    base_url="http://app.test",
    static_store=STATIC,
    data_store=DATA,
    recognised_stores=[STATIC, DATA],
    store_max_entries={STATIC: 3, DATA: 2},
    static_assets=["/", "/index.html", "/favicon.svg"],
    api_hosts=["api.opendota.com"],
    api_endpoints=[HERO_STATS, HERO_CONSTANTS],
    data_path_prefixes=["/data/"],
    data_max_age_seconds=300,
)


class _FakeNetwork:
    """MockTransport handler with per-URL call counts and an offline switch."""

    def __init__(self) -> None:
        self.calls: Counter[str] = Counter()
        self.offline = False
        self.failure: type[httpx.RequestError] | None = None
        self.status: dict[str, int] = {}
        self.version = 1

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.calls[url] += 1
        if self.offline:
            raise httpx.ConnectError("network down", request=request)
        if self.failure is not None:
            raise self.failure("request failed", request=request)
        return httpx.Response(
            self.status.get(url, 200),
            json={"url": url, "version": self.version},
        )


@pytest.fixture
def network() -> _FakeNetwork:
    return _FakeNetwork()


@pytest_asyncio.fixture
async def strategy(response_store: SQLiteResponseStore, network: _FakeNetwork, clock) -> NetworkCacheStrategy:
    client = httpx.AsyncClient(transport=httpx.MockTransport(network.handler))
    s = NetworkCacheStrategy(store=response_store, config=_CONFIG, http_client=client, clock=clock)
    yield s
    await s.close()
    await client.aclose()


# ======================================================================
# classify
# ======================================================================


class TestClassify:
    @pytest.mark.parametrize(
        ("method", "url", "expected"),
        [
            ("GET", HERO_STATS, StrategyKind.NETWORK_FIRST),
            ("GET", "http://app.test/data/meta/analysis.json", StrategyKind.STALE_WHILE_REVALIDATE),
            ("GET", "http://app.test/icon-192.png", StrategyKind.CACHE_FIRST),
            ("GET", "http://app.test/", StrategyKind.CACHE_FIRST),
            ("POST", HERO_STATS, StrategyKind.NETWORK_ONLY),
            ("DELETE", "http://app.test/data/x.json", StrategyKind.NETWORK_ONLY),
        ],
    )
    def test_request_classes(self, strategy: NetworkCacheStrategy, method: str, url: str, expected: StrategyKind) -> None:
        assert strategy.classify(httpx.Request(method, url)) is expected


# ======================================================================
# Cache-first
# ======================================================================


class TestCacheFirst:
    @pytest.mark.asyncio
    async def test_precached_asset_never_refetched(self, strategy: NetworkCacheStrategy, network: _FakeNetwork) -> None:
        assert await strategy.install() == 3

        first = await strategy.fetch("/favicon.svg")
        second = await strategy.fetch("/favicon.svg")

        assert first.status_code == second.status_code == 200
        assert second.json() == {"url": "http://app.test/favicon.svg", "version": 1}
        assert network.calls["http://app.test/favicon.svg"] == 1

    @pytest.mark.asyncio
    async def test_miss_fetches_and_stores(
        self,
        strategy: NetworkCacheStrategy,
        network: _FakeNetwork,
        response_store: SQLiteResponseStore,
    ) -> None:
        await strategy.fetch("/icon-192.png")
        await strategy.fetch("/icon-192.png")

        assert network.calls["http://app.test/icon-192.png"] == 1
        assert await response_store.keys(STATIC) == ["http://app.test/icon-192.png"]

    @pytest.mark.asyncio
    async def test_error_status_is_not_stored(
        self,
        strategy: NetworkCacheStrategy,
        network: _FakeNetwork,
        response_store: SQLiteResponseStore,
    ) -> None:
        network.status["http://app.test/missing.png"] = 404

        response = await strategy.fetch("/missing.png")
        await strategy.fetch("/missing.png")

        assert response.status_code == 404
        assert network.calls["http://app.test/missing.png"] == 2
        assert await response_store.keys(STATIC) == []

    @pytest.mark.asyncio
    async def test_offline_navigation_gets_offline_document(
        self,
        strategy: NetworkCacheStrategy,
        network: _FakeNetwork,
    ) -> None:
        await strategy.install()
        network.offline = True

        response = await strategy.fetch("/heroes/antimage", headers={"Sec-Fetch-Mode": "navigate"})

        assert response.status_code == 200
        assert response.json()["url"] == "http://app.test/index.html"

    @pytest.mark.asyncio
    async def test_offline_uncached_asset_raises(self, strategy: NetworkCacheStrategy, network: _FakeNetwork) -> None:
        network.offline = True
        with pytest.raises(NetworkUnavailableError) as exc_info:
            await strategy.fetch("/icon-512.png")
        assert exc_info.value.provider_name == "network_cache_strategy"

    @pytest.mark.asyncio
    async def test_offline_navigation_without_offline_document_raises(
        self,
        strategy: NetworkCacheStrategy,
        network: _FakeNetwork,
    ) -> None:
        network.offline = True
        with pytest.raises(NetworkUnavailableError):
            await strategy.fetch("/heroes", headers={"Sec-Fetch-Mode": "navigate"})

    @pytest.mark.asyncio
    async def test_store_read_failure_falls_through_to_network(
        self,
        strategy: NetworkCacheStrategy,
        network: _FakeNetwork,
        response_store: SQLiteResponseStore,
    ) -> None:
        await strategy.install()
        with patch.object(response_store, "match", AsyncMock(side_effect=StorageTierError("locked"))):
            response = await strategy.fetch("/favicon.svg")
        assert response.status_code == 200
        assert network.calls["http://app.test/favicon.svg"] == 2

    @pytest.mark.asyncio
    async def test_store_write_failure_still_returns_response(
        self,
        strategy: NetworkCacheStrategy,
        response_store: SQLiteResponseStore,
    ) -> None:
        with patch.object(response_store, "put", AsyncMock(side_effect=StorageTierError("full"))):
            response = await strategy.fetch("/icon-96.png")
        assert response.status_code == 200


# ======================================================================
# Network-first
# ======================================================================


class TestNetworkFirst:
    @pytest.mark.asyncio
    async def test_always_tries_network_when_online(self, strategy: NetworkCacheStrategy, network: _FakeNetwork) -> None:
        await strategy.fetch(HERO_STATS)
        network.version = 2
        response = await strategy.fetch(HERO_STATS)

        assert response.json()["version"] == 2
        assert network.calls[HERO_STATS] == 2

    @pytest.mark.asyncio
    async def test_offline_falls_back_to_stored_copy(
        self,
        strategy: NetworkCacheStrategy,
        network: _FakeNetwork,
        clock,
    ) -> None:
        await strategy.fetch(HERO_STATS)
        network.offline = True
        clock.advance(86_400)  # any age is acceptable

        response = await strategy.fetch(HERO_STATS)

        assert response.status_code == 200
        assert response.json() == {"url": HERO_STATS, "version": 1}

    @pytest.mark.asyncio
    async def test_error_status_falls_back_to_stored_copy(self, strategy: NetworkCacheStrategy, network: _FakeNetwork) -> None:
        await strategy.fetch(HERO_STATS)
        network.status[HERO_STATS] = 503

        response = await strategy.fetch(HERO_STATS)

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_error_status_without_copy_is_returned(self, strategy: NetworkCacheStrategy, network: _FakeNetwork) -> None:
        network.status[HERO_STATS] = 503
        response = await strategy.fetch(HERO_STATS)
        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_offline_without_copy_raises(self, strategy: NetworkCacheStrategy, network: _FakeNetwork) -> None:
        network.offline = True
        with pytest.raises(NetworkUnavailableError):
            await strategy.fetch(HERO_STATS)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failure", [httpx.TooManyRedirects, httpx.DecodingError, httpx.ReadTimeout])
    async def test_any_request_error_falls_back_to_stored_copy(
        self,
        strategy: NetworkCacheStrategy,
        network: _FakeNetwork,
        failure: type[httpx.RequestError],
    ) -> None:
        await strategy.fetch(HERO_STATS)
        network.failure = failure

        response = await strategy.fetch(HERO_STATS)

        assert response.json() == {"url": HERO_STATS, "version": 1}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failure", [httpx.TooManyRedirects, httpx.DecodingError])
    async def test_request_error_without_copy_raises_unavailable(
        self,
        strategy: NetworkCacheStrategy,
        network: _FakeNetwork,
        failure: type[httpx.RequestError],
    ) -> None:
        network.failure = failure
        with pytest.raises(NetworkUnavailableError) as exc_info:
            await strategy.fetch(HERO_STATS)
        assert isinstance(exc_info.value.__cause__, failure)

    @pytest.mark.asyncio
    async def test_undecodable_body_falls_back_to_stored_copy(
        self,
        strategy: NetworkCacheStrategy,
        response_store: SQLiteResponseStore,
        clock,
    ) -> None:
        await strategy.fetch(HERO_STATS)

        def corrupt_gzip(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                headers={"content-encoding": "gzip"},
                stream=httpx.ByteStream(b"not gzip at all"),
            )

        client = httpx.AsyncClient(transport=httpx.MockTransport(corrupt_gzip))
        s = NetworkCacheStrategy(store=response_store, config=_CONFIG, http_client=client, clock=clock)
        response = await s.fetch(HERO_STATS)
        await client.aclose()

        assert response.json() == {"url": HERO_STATS, "version": 1}

    @pytest.mark.asyncio
    async def test_stored_in_data_store_without_encoding_headers(
        self,
        strategy: NetworkCacheStrategy,
        response_store: SQLiteResponseStore,
    ) -> None:
        await strategy.fetch(HERO_STATS)

        stored = await response_store.match(HERO_STATS, store_name=DATA)
        assert stored is not None
        names = {name.lower() for name, _ in stored.headers}
        assert "content-length" not in names
        assert "date" in names
        assert "content-type" in names


# ======================================================================
# Stale-while-revalidate
# ======================================================================


class TestStaleWhileRevalidate:
    URL = "http://app.test/data/meta/analysis.json"

    @pytest.mark.asyncio
    async def test_fresh_copy_served_without_network(self, strategy: NetworkCacheStrategy, network: _FakeNetwork, clock) -> None:
        await strategy.fetch("/data/meta/analysis.json")
        clock.advance(299)
        await strategy.fetch("/data/meta/analysis.json")
        assert network.calls[self.URL] == 1

    @pytest.mark.asyncio
    async def test_aged_copy_is_revalidated(self, strategy: NetworkCacheStrategy, network: _FakeNetwork, clock) -> None:
        await strategy.fetch("/data/meta/analysis.json")
        network.version = 2
        clock.advance(301)

        response = await strategy.fetch("/data/meta/analysis.json")

        assert response.json()["version"] == 2
        assert network.calls[self.URL] == 2

        # The refreshed copy is fresh again.
        clock.advance(10)
        await strategy.fetch("/data/meta/analysis.json")
        assert network.calls[self.URL] == 2

    @pytest.mark.asyncio
    async def test_stale_copy_served_when_offline(self, strategy: NetworkCacheStrategy, network: _FakeNetwork, clock) -> None:
        await strategy.fetch("/data/meta/analysis.json")
        network.offline = True
        clock.advance(3600)

        response = await strategy.fetch("/data/meta/analysis.json")

        assert response.json()["version"] == 1

    @pytest.mark.asyncio
    async def test_stale_copy_served_on_error_status(self, strategy: NetworkCacheStrategy, network: _FakeNetwork, clock) -> None:
        await strategy.fetch("/data/meta/analysis.json")
        network.status[self.URL] = 500
        clock.advance(3600)

        response = await strategy.fetch("/data/meta/analysis.json")

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_offline_without_copy_raises(self, strategy: NetworkCacheStrategy, network: _FakeNetwork) -> None:
        network.offline = True
        with pytest.raises(NetworkUnavailableError):
            await strategy.fetch("/data/meta/analysis.json")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failure", [httpx.TooManyRedirects, httpx.DecodingError])
    async def test_stale_copy_served_on_request_error(
        self,
        strategy: NetworkCacheStrategy,
        network: _FakeNetwork,
        clock,
        failure: type[httpx.RequestError],
    ) -> None:
        await strategy.fetch("/data/meta/analysis.json")
        network.failure = failure
        clock.advance(3600)

        response = await strategy.fetch("/data/meta/analysis.json")

        assert response.json()["version"] == 1

    @pytest.mark.asyncio
    async def test_origin_date_header_drives_freshness(
        self,
        strategy: NetworkCacheStrategy,
        response_store: SQLiteResponseStore,
        network: _FakeNetwork,
        clock,
    ) -> None:
        await response_store.put(
            StoredResponse(
                store_name=DATA,
                url=self.URL,
                status_code=200,
                headers=[("date", "Mon, 01 Jan 2001 00:00:00 GMT")],
                content=b"{}",
                stored_at=clock(),
            )
        )
        await strategy.fetch("/data/meta/analysis.json")
        assert network.calls[self.URL] == 1


# ======================================================================
# Network-only
# ======================================================================


class TestNetworkOnly:
    @pytest.mark.asyncio
    async def test_post_is_never_stored(
        self,
        strategy: NetworkCacheStrategy,
        network: _FakeNetwork,
        response_store: SQLiteResponseStore,
    ) -> None:
        await strategy.fetch(HERO_STATS, method="POST")
        await strategy.fetch(HERO_STATS, method="POST")
        assert network.calls[HERO_STATS] == 2
        assert await response_store.store_names() == []

    @pytest.mark.asyncio
    async def test_post_offline_raises(self, strategy: NetworkCacheStrategy, network: _FakeNetwork) -> None:
        network.offline = True
        with pytest.raises(NetworkUnavailableError):
            await strategy.fetch("/api/feedback", method="POST")

    @pytest.mark.asyncio
    async def test_post_request_error_raises_unavailable(self, strategy: NetworkCacheStrategy, network: _FakeNetwork) -> None:
        network.failure = httpx.TooManyRedirects
        with pytest.raises(NetworkUnavailableError):
            await strategy.fetch("/api/feedback", method="POST")


# ======================================================================
# Lifecycle
# ======================================================================


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_install_skips_failed_assets(
        self,
        strategy: NetworkCacheStrategy,
        network: _FakeNetwork,
        response_store: SQLiteResponseStore,
    ) -> None:
        network.status["http://app.test/favicon.svg"] = 404
        assert await strategy.install() == 2
        assert await response_store.keys(STATIC) == ["http://app.test/", "http://app.test/index.html"]

    @pytest.mark.asyncio
    async def test_install_offline_stores_nothing(self, strategy: NetworkCacheStrategy, network: _FakeNetwork) -> None:
        network.offline = True
        assert await strategy.install() == 0

    @pytest.mark.asyncio
    async def test_install_and_sync_skip_on_request_error(self, strategy: NetworkCacheStrategy, network: _FakeNetwork) -> None:
        network.failure = httpx.DecodingError
        assert await strategy.install() == 0
        assert await strategy.background_sync() == 0

    @pytest.mark.asyncio
    async def test_activate_drops_unrecognised_stores(
        self,
        strategy: NetworkCacheStrategy,
        response_store: SQLiteResponseStore,
        clock,
    ) -> None:
        for store_name in ("dota2-companion-v1.0.0", STATIC, "dota2-static-v1.1"):
            await response_store.put(
                StoredResponse(store_name=store_name, url="http://app.test/", status_code=200, stored_at=clock())
            )

        removed = await strategy.activate()

        assert sorted(removed) == ["dota2-companion-v1.0.0", "dota2-static-v1.1"]
        assert await response_store.store_names() == [STATIC]

    @pytest.mark.asyncio
    async def test_prune_stores_caps_each_store(
        self,
        strategy: NetworkCacheStrategy,
        response_store: SQLiteResponseStore,
    ) -> None:
        for i in range(5):
            await strategy.fetch(f"/icon-{i}.png")
        await strategy.fetch(HERO_STATS)

        removed = await strategy.prune_stores()

        assert removed == {STATIC: 2, DATA: 0}
        assert await response_store.keys(STATIC) == [
            "http://app.test/icon-2.png",
            "http://app.test/icon-3.png",
            "http://app.test/icon-4.png",
        ]

    @pytest.mark.asyncio
    async def test_periodic_pruning(
        self,
        response_store: SQLiteResponseStore,
        network: _FakeNetwork,
        clock,
    ) -> None:
        config = _CONFIG.model_copy(update={"prune_interval_seconds": 0.01})
        client = httpx.AsyncClient(transport=httpx.MockTransport(network.handler))
        s = NetworkCacheStrategy(store=response_store, config=config, http_client=client, clock=clock)
        for i in range(5):
            await s.fetch(f"/icon-{i}.png")

        task = s.start_periodic_pruning()
        assert s.start_periodic_pruning() is task
        for _ in range(200):
            if len(await response_store.keys(STATIC)) <= 3:
                break
            await asyncio.sleep(0.01)

        await s.stop_periodic_pruning()
        await client.aclose()
        assert len(await response_store.keys(STATIC)) == 3
        assert task.cancelled()

    @pytest.mark.asyncio
    async def test_periodic_pruning_survives_unexpected_errors(
        self,
        response_store: SQLiteResponseStore,
        network: _FakeNetwork,
        clock,
    ) -> None:
        config = _CONFIG.model_copy(update={"prune_interval_seconds": 0.01})
        client = httpx.AsyncClient(transport=httpx.MockTransport(network.handler))
        s = NetworkCacheStrategy(store=response_store, config=config, http_client=client, clock=clock)
        for i in range(5):
            await s.fetch(f"/icon-{i}.png")

        real_trim = response_store.trim
        trim = AsyncMock(side_effect=[RuntimeError("disk hiccup"), RuntimeError("disk hiccup")])

        async def flaky_trim(store_name: str, max_entries: int) -> int:
            if trim.await_count < 2:
                return await trim(store_name, max_entries)
            return await real_trim(store_name, max_entries)

        with patch.object(response_store, "trim", side_effect=flaky_trim):
            task = s.start_periodic_pruning()
            for _ in range(200):
                if len(await response_store.keys(STATIC)) <= 3:
                    break
                await asyncio.sleep(0.01)
            assert not task.done()

        await s.stop_periodic_pruning()
        await client.aclose()
        assert trim.await_count == 2
        assert len(await response_store.keys(STATIC)) == 3

    @pytest.mark.asyncio
    async def test_background_sync_refreshes_api_endpoints(
        self,
        strategy: NetworkCacheStrategy,
        network: _FakeNetwork,
        response_store: SQLiteResponseStore,
    ) -> None:
        network.status[HERO_CONSTANTS] = 500

        assert await strategy.background_sync() == 1
        assert await response_store.keys(DATA) == [HERO_STATS]

    @pytest.mark.asyncio
    async def test_close_keeps_injected_client_open(self, response_store: SQLiteResponseStore, network: _FakeNetwork) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(network.handler))
        s = NetworkCacheStrategy(store=response_store, config=_CONFIG, http_client=client)
        await s.close()
        assert client.is_closed is False
        await client.aclose()

    @pytest.mark.asyncio
    async def test_close_closes_owned_client(self, response_store: SQLiteResponseStore) -> None:
        s = NetworkCacheStrategy(store=response_store)
        await s.close()
        assert s._client.is_closed is True

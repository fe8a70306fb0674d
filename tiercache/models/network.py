"""Network cache strategy models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class StrategyKind(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """How a request class is served."""

    CACHE_FIRST = "cache_first"
    NETWORK_FIRST = "network_first"
    STALE_WHILE_REVALIDATE = "stale_while_revalidate"
    NETWORK_ONLY = "network_only"


class StoredResponse(BaseModel):
    """A response persisted in a named response store.

    ``content`` is the decoded body; encoding headers are stripped before
    the response is stored.
    """

    model_config = ConfigDict(frozen=True)

    store_name: str
    url: str
    status_code: int
    headers: list[tuple[str, str]] = Field(default_factory=list)
    content: bytes = b""
    stored_at: float


class NetworkCacheConfig(BaseModel):
    """Routing and retention settings for the network cache strategy.

    ``static_assets`` and ``api_endpoints`` may be relative to ``base_url``.
    """

    model_config = ConfigDict(frozen=True)

    base_url: str = "http://localhost:5173"
    static_store: str = "dota2-static-v1.2"
    data_store: str = "dota2-data-v1"
    # Stores the current deployment owns; activate() drops all others.
    recognised_stores: list[str] = Field(
        default_factory=lambda: ["dota2-static-v1.2", "dota2-data-v1", "dota2-companion-v1.0.2"]
    )
    store_max_entries: dict[str, int] = Field(
        default_factory=lambda: {"dota2-static-v1.2": 100, "dota2-data-v1": 50}
    )
    static_assets: list[str] = Field(default_factory=lambda: ["/", "/index.html"])
    api_hosts: list[str] = Field(default_factory=lambda: ["api.opendota.com"])
    api_endpoints: list[str] = Field(default_factory=list)
    data_path_prefixes: list[str] = Field(default_factory=lambda: ["/data/"])
    offline_document: str = "/index.html"
    data_max_age_seconds: float = 300.0
    prune_interval_seconds: float = 600.0


class StoreStats(BaseModel):
    """Entry count and body bytes for one named store."""

    name: str
    count: int = 0
    size: int = 0

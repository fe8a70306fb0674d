"""tiercache composition root.

Wires settings, YAML configuration and providers into the two public
services: :class:`TieredCacheManager` for application data and
:class:`NetworkCacheStrategy` for HTTP responses.

Nothing is built at import time.  Callers construct one instance of each
service per application and inject it where it is needed.
"""

from __future__ import annotations

import time
from typing import Any, Callable

import httpx
import structlog
from pydantic import ValidationError

from tiercache.config.loader import load_config
from tiercache.config.settings import Settings
from tiercache.models.network import NetworkCacheConfig
from tiercache.providers.cache.memory_tier import MemoryTier
from tiercache.providers.cache.session_tier import SessionTier
from tiercache.providers.cache.sqlite_tier import SQLiteTier
from tiercache.providers.response_store.sqlite_response_store import SQLiteResponseStore
from tiercache.providers.storage.session_storage import SessionStorage
from tiercache.services.cache_manager import TieredCacheManager
from tiercache.services.network_cache_strategy import NetworkCacheStrategy
from tiercache.utils.errors import ConfigurationError
from tiercache.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Tiered cache
# ---------------------------------------------------------------------------


def build_cache_manager(
    app_settings: Settings | None = None,
    clock: Callable[[], float] = time.time,
) -> TieredCacheManager:
    """Construct a :class:`TieredCacheManager` from settings.

    The returned manager is not yet initialised; await
    :meth:`TieredCacheManager.initialize` before first use.
    """
    app_settings = app_settings or Settings()

    memory = MemoryTier(max_size=app_settings.memory_cache_size)
    session = SessionTier(
        storage=SessionStorage(quota_bytes=app_settings.session_storage_quota_bytes),
        max_size=app_settings.session_cache_size,
    )
    persistent = SQLiteTier(
        db_path=app_settings.cache_db_path,
        max_entries=app_settings.persistent_max_entries,
        max_bytes=app_settings.persistent_max_bytes,
    )

    _logger.debug(
        "cache_manager_built",
        memory_size=app_settings.memory_cache_size,
        session_size=app_settings.session_cache_size,
        db_path=app_settings.cache_db_path,
    )
    return TieredCacheManager(
        memory=memory,
        session=session,
        persistent=persistent,
        default_ttl=app_settings.default_ttl_seconds,
        clock=clock,
    )


# ---------------------------------------------------------------------------
# Network cache strategy
# ---------------------------------------------------------------------------


def network_config_from_dict(config: dict[str, Any]) -> NetworkCacheConfig:
    """Translate the ``app`` and ``network`` sections of a loaded config dict."""
    network = config.get("network", {})
    stores = network.get("stores", {})
    static = stores.get("static", {})
    data = stores.get("data", {})

    fields: dict[str, Any] = {
        "base_url": config.get("app", {}).get("base_url"),
        "static_store": static.get("name"),
        "data_store": data.get("name"),
        "recognised_stores": network.get("recognised_stores"),
        "static_assets": network.get("static_assets"),
        "api_hosts": network.get("api_hosts"),
        "api_endpoints": network.get("api_endpoints"),
        "data_path_prefixes": network.get("data_path_prefixes"),
        "offline_document": network.get("offline_document"),
        "data_max_age_seconds": network.get("data_max_age_seconds"),
        "prune_interval_seconds": network.get("prune_interval_seconds"),
    }
    if static.get("name") and data.get("name"):
        fields["store_max_entries"] = {
            static["name"]: static.get("max_entries", 100),
            data["name"]: data.get("max_entries", 50),
        }

    # Missing keys fall back to the model defaults.
    try:
        return NetworkCacheConfig(**{k: v for k, v in fields.items() if v is not None})
    except ValidationError as exc:
        raise ConfigurationError(
            message=f"Invalid network cache configuration: {exc}",
            provider_name="network_config",
        ) from exc


def build_network_strategy(
    app_settings: Settings | None = None,
    config: dict[str, Any] | None = None,
    http_client: httpx.AsyncClient | None = None,
    clock: Callable[[], float] = time.time,
) -> NetworkCacheStrategy:
    """Construct a :class:`NetworkCacheStrategy` backed by SQLite.

    The returned strategy is not yet initialised; await
    :meth:`NetworkCacheStrategy.initialize` before first use.  When
    *http_client* is omitted the strategy creates and owns one.
    """
    app_settings = app_settings or Settings()
    config = config if config is not None else load_config(settings=app_settings)

    return NetworkCacheStrategy(
        store=SQLiteResponseStore(db_path=app_settings.response_store_db_path),
        config=network_config_from_dict(config),
        http_client=http_client,
        clock=clock,
        timeout=app_settings.http_timeout_seconds,
    )

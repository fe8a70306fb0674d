"""Application settings loaded from environment variables via pydantic-settings.

Values are read from (in priority order):

  1. **Environment variables** - e.g. ``MEMORY_CACHE_SIZE=100``
  2. **.env file** - key=value lines in the project root ``.env`` file

Field names map to upper-cased environment variables.  Defaults are used
when neither source provides a value.  List-valued network settings
(asset URLs, API hosts) live in ``config/config.yaml`` and are merged by
:func:`tiercache.config.loader.load_config`.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """tiercache settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === Tiered cache ===
    memory_cache_size: int = 50
    session_cache_size: int = 200
    session_storage_quota_bytes: int = 5 * 1024 * 1024  # browser-like 5 MiB
    cache_db_path: str = "data/cache.db"
    # 0 = unlimited; the SQLite file is bounded only by the disk.
    persistent_max_entries: int = 0
    persistent_max_bytes: int = 0
    default_ttl_seconds: float = 300.0

    # === Network cache strategy ===
    response_store_db_path: str = "data/responses.db"
    static_store_name: str = "dota2-static-v1.2"
    data_store_name: str = "dota2-data-v1"
    legacy_store_name: str = "dota2-companion-v1.0.2"
    static_store_max_entries: int = 100
    data_store_max_entries: int = 50
    data_max_age_seconds: float = 300.0
    prune_interval_seconds: float = 600.0
    app_base_url: str = "http://localhost:5173"
    http_timeout_seconds: float = 10.0

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"

    def get_recognised_store_names(self) -> list[str]:
        """Return the response store names the current deployment owns."""
        return [self.static_store_name, self.data_store_name, self.legacy_store_name]

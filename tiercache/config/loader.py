"""YAML configuration loader with environment variable overrides.

Configuration is loaded in layers (later layers override earlier):

  1. config/config.yaml  - static defaults checked into the repo, including
                           the network route lists (asset URLs, API hosts)
  2. .env file           - local developer overrides (not committed)
  3. Environment vars    - set at deploy time

``load_config()`` reads the YAML file first, then deep-merges the
environment-based values on top.  The result holds only what the network
cache strategy consumes (``app.base_url`` and the ``network`` section); the
tiered cache, database paths and HTTP timeout are read from Settings directly.
"""

from pathlib import Path

import yaml

from tiercache.config.settings import Settings

_DEFAULT_NETWORK = {
    "static_assets": ["/", "/index.html"],
    "api_hosts": ["api.opendota.com"],
    "api_endpoints": [],
    "data_path_prefixes": ["/data/"],
}


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Environment variables (via Settings) override YAML values where keys overlap.

    Args:
        path: Path to the YAML configuration file.
        settings: Pre-built settings; a fresh ``Settings()`` is read when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "base_url": settings.app_base_url,
        },
        "network": {
            "stores": {
                "static": {
                    "name": settings.static_store_name,
                    "max_entries": settings.static_store_max_entries,
                },
                "data": {
                    "name": settings.data_store_name,
                    "max_entries": settings.data_store_max_entries,
                },
            },
            "recognised_stores": settings.get_recognised_store_names(),
            "data_max_age_seconds": settings.data_max_age_seconds,
            "prune_interval_seconds": settings.prune_interval_seconds,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    network = yaml_config["network"]
    for key, default in _DEFAULT_NETWORK.items():
        network.setdefault(key, list(default))
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value

"""Configuration module - exports Settings and load_config."""

from tiercache.config.loader import load_config
from tiercache.config.settings import Settings

__all__ = ["Settings", "load_config"]

"""Raw storage backends used underneath the cache tiers."""

from tiercache.providers.storage.session_storage import SessionStorage

__all__ = ["SessionStorage"]

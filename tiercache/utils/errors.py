"""Custom exception hierarchy for tiercache.

All library exceptions inherit from :class:`TierCacheError`, which carries
an optional ``provider_name`` so log handlers can tell which backend
(e.g. "session_tier", "sqlite_tier", "sqlite_response_store") raised it.

    TierCacheError  (base)
    +-- StorageTierError            (a cache tier could not read or write)
    |   +-- StorageQuotaExceededError  (tier is full; triggers pruning)
    |   +-- SerializationError         (value could not be encoded/decoded)
    +-- NetworkUnavailableError     (no response from network or store)
    +-- ConfigurationError          (invalid settings at startup)

Storage errors are raised *inside* the tier implementations and absorbed
by :class:`~tiercache.services.cache_manager.TieredCacheManager`; callers
of the manager only ever see the errors raised by their own fetch
functions.  ``NetworkUnavailableError`` is the one error the network cache
strategy raises when neither the network nor a stored copy can answer.
"""


class TierCacheError(Exception):
    """Base exception for all tiercache errors.

    The ``__str__`` method prefixes the provider name in brackets for
    structured log output, e.g. ``[sqlite_tier] database is locked``.
    """

    def __init__(
        self,
        message: str = "An unexpected cache error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Storage tier errors
# ---------------------------------------------------------------------------

class StorageTierError(TierCacheError):
    """Raised when a cache tier's backing store fails."""

    def __init__(
        self,
        message: str = "Cache tier storage operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StorageQuotaExceededError(StorageTierError):
    """Raised when a write would exceed a tier's storage quota.

    Tiers raise it to their caller.  ``TieredCacheManager`` catches it,
    prunes the failing tier's oldest entries and retries the write once.
    """

    def __init__(
        self,
        message: str = "Storage quota exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class SerializationError(StorageTierError):
    """Raised when a value cannot be serialised for a string-backed tier."""

    def __init__(
        self,
        message: str = "Value could not be serialised",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Network cache strategy errors
# ---------------------------------------------------------------------------

class NetworkUnavailableError(TierCacheError):
    """Raised when the network failed and no stored response can stand in."""

    def __init__(
        self,
        message: str = "Network is unavailable and no cached response exists",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------

class ConfigurationError(TierCacheError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)

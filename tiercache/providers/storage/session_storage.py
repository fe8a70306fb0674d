"""Per-session string key/value store with a byte quota.

The string store behind the session tier: it lives as long as the process
(the equivalent of one browser tab's session), holds only ``str`` values,
and refuses writes that would push it over its quota by raising
:class:`~tiercache.utils.errors.StorageQuotaExceededError`, the way a
browser's session storage raises ``QuotaExceededError``.

Implements :class:`~collections.abc.MutableMapping` so it behaves like a
plain ``dict[str, str]`` everywhere else.
"""

from __future__ import annotations

from collections.abc import Iterator, MutableMapping

from tiercache.utils.errors import StorageQuotaExceededError

_DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024


def _entry_bytes(key: str, value: str) -> int:
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


class SessionStorage(MutableMapping[str, str]):
    """Dict-like string store that enforces a total size quota.

    Parameters
    ----------
    quota_bytes:
        Maximum UTF-8 size of all keys plus values.
    """

    def __init__(self, quota_bytes: int = _DEFAULT_QUOTA_BYTES) -> None:
        self._quota_bytes = quota_bytes
        self._data: dict[str, str] = {}
        self._used_bytes = 0

    @property
    def quota_bytes(self) -> int:
        return self._quota_bytes

    @property
    def used_bytes(self) -> int:
        return self._used_bytes

    # ------------------------------------------------------------------
    # MutableMapping interface
    # ------------------------------------------------------------------

    def __setitem__(self, key: str, value: str) -> None:
        """Store *value*.  Raises StorageQuotaExceededError when over quota."""
        if not isinstance(value, str):
            msg = f"SessionStorage only holds strings, got {type(value).__name__}"
            raise TypeError(msg)

        new_size = _entry_bytes(key, value)
        old_size = _entry_bytes(key, self._data[key]) if key in self._data else 0
        if self._used_bytes - old_size + new_size > self._quota_bytes:
            raise StorageQuotaExceededError(
                message=(
                    f"Writing {new_size} bytes for {key!r} exceeds the "
                    f"{self._quota_bytes}-byte session quota"
                ),
                provider_name="session_storage",
            )

        self._data[key] = value
        self._used_bytes += new_size - old_size

    def __getitem__(self, key: str) -> str:
        return self._data[key]

    def __delitem__(self, key: str) -> None:
        value = self._data.pop(key)
        self._used_bytes -= _entry_bytes(key, value)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._data))

    def __len__(self) -> int:
        return len(self._data)

    def clear(self) -> None:
        self._data.clear()
        self._used_bytes = 0

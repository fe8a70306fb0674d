"""Unit tests for the quota-limited SessionStorage string store."""

from __future__ import annotations

import pytest

from tiercache.providers.storage.session_storage import SessionStorage
from tiercache.utils.errors import StorageQuotaExceededError, StorageTierError


class TestSessionStorage:
    def test_behaves_like_a_dict(self) -> None:
        storage = SessionStorage()
        storage["a"] = "1"
        assert storage["a"] == "1"
        assert storage.get("missing") is None
        assert "a" in storage
        assert len(storage) == 1
        del storage["a"]
        assert "a" not in storage

    def test_tracks_used_bytes(self) -> None:
        storage = SessionStorage()
        storage["ab"] = "cde"
        assert storage.used_bytes == 5
        storage["ab"] = "c"
        assert storage.used_bytes == 3
        del storage["ab"]
        assert storage.used_bytes == 0

    def test_counts_utf8_bytes(self) -> None:
        storage = SessionStorage()
        storage["k"] = "é"
        assert storage.used_bytes == 3

    def test_rejects_write_over_quota(self) -> None:
        storage = SessionStorage(quota_bytes=10)
        storage["k1"] = "12345678"
        with pytest.raises(StorageQuotaExceededError) as exc_info:
            storage["k2"] = "x"
        assert exc_info.value.provider_name == "session_storage"
        assert isinstance(exc_info.value, StorageTierError)
        # Failed write leaves the store unchanged.
        assert "k2" not in storage
        assert storage.used_bytes == 10

    def test_overwrite_counts_only_the_difference(self) -> None:
        storage = SessionStorage(quota_bytes=10)
        storage["k1"] = "12345678"
        storage["k1"] = "87654321"
        assert storage["k1"] == "87654321"

    def test_rejects_non_string_values(self) -> None:
        storage = SessionStorage()
        with pytest.raises(TypeError):
            storage["k"] = 42  # type: ignore[assignment]

    def test_clear_resets_usage(self) -> None:
        storage = SessionStorage()
        storage["a"] = "1"
        storage["b"] = "2"
        storage.clear()
        assert len(storage) == 0
        assert storage.used_bytes == 0

    def test_iteration_tolerates_deletes(self) -> None:
        storage = SessionStorage()
        for key in ("a", "b", "c"):
            storage[key] = key
        for key in storage:
            del storage[key]
        assert len(storage) == 0

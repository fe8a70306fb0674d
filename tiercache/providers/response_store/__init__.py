"""Durable response stores for the network cache strategy."""

from tiercache.providers.response_store.sqlite_response_store import SQLiteResponseStore

__all__ = ["SQLiteResponseStore"]

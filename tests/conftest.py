"""Shared pytest fixtures for the tiercache test suite."""

from __future__ import annotations

from pathlib import Path

import pytest
import pytest_asyncio

from tiercache.providers.cache.memory_tier import MemoryTier
from tiercache.providers.cache.session_tier import SessionTier
from tiercache.providers.cache.sqlite_tier import SQLiteTier
from tiercache.providers.response_store.sqlite_response_store import SQLiteResponseStore
from tiercache.providers.storage.session_storage import SessionStorage
from tiercache.services.cache_manager import TieredCacheManager


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_tier() -> MemoryTier:
    return MemoryTier(max_size=50)


@pytest.fixture
def session_tier() -> SessionTier:
    return SessionTier(storage=SessionStorage(), max_size=200)


@pytest_asyncio.fixture
async def sqlite_tier(tmp_path: Path) -> SQLiteTier:
    """Initialised persistent tier on a temp database."""
    tier = SQLiteTier(db_path=tmp_path / "cache.db")
    await tier.initialize()
    return tier


@pytest_asyncio.fixture
async def manager(
    memory_tier: MemoryTier,
    session_tier: SessionTier,
    sqlite_tier: SQLiteTier,
    clock: FakeClock,
) -> TieredCacheManager:
    """Initialised manager over fresh tiers and a fake clock."""
    mgr = TieredCacheManager(
        memory=memory_tier,
        session=session_tier,
        persistent=sqlite_tier,
        default_ttl=300.0,
        clock=clock,
    )
    await mgr.initialize()
    yield mgr
    await mgr.close()


@pytest_asyncio.fixture
async def response_store(tmp_path: Path) -> SQLiteResponseStore:
    store = SQLiteResponseStore(db_path=tmp_path / "responses.db")
    await store.initialize()
    return store

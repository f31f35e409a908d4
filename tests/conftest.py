"""Shared fixtures: in-memory SQLite catalog, fake channel, engine."""

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from catalog_sync.models import ChannelMapping, InventoryRecord, SyncLogEntry
from catalog_sync.services.leases import LocalLease
from catalog_sync.services.reconciliation import ReconciliationEngine
from catalog_sync.stores.catalog import CatalogStore
from catalog_sync.stores.postgres import create_session_factory, create_tables
from tests.fakes import FakeChannelClient


async def _memory_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(engine)
    return engine


@pytest.fixture
async def db_engine():
    engine = await _memory_engine()
    yield engine
    await engine.dispose()


@pytest.fixture
def store(db_engine) -> CatalogStore:
    return CatalogStore(create_session_factory(db_engine))


@pytest.fixture
async def fresh_store():
    """A second, empty catalog on its own database."""
    engine = await _memory_engine()
    yield CatalogStore(create_session_factory(engine))
    await engine.dispose()


@pytest.fixture
def channel() -> FakeChannelClient:
    return FakeChannelClient()


@pytest.fixture
def lease() -> LocalLease:
    return LocalLease()


@pytest.fixture
def reconciler(store: CatalogStore, channel: FakeChannelClient, lease: LocalLease) -> ReconciliationEngine:
    return ReconciliationEngine(store, channel, lease, batch_size=2, batch_delay_seconds=0)


# ============================================================
# Query helpers
# ============================================================


async def fetch_all(store: CatalogStore, model) -> list:
    async with store.transaction() as repo:
        res = await repo.session.execute(select(model).order_by(model.id))
        return list(res.scalars().all())


async def inventory_levels(store: CatalogStore) -> dict[tuple[int, str], tuple[int, int, int]]:
    """(variant_id, channel) -> (quantity, reserved, available)."""
    return {(r.variant_id, r.channel): r.levels() for r in await fetch_all(store, InventoryRecord)}


async def mapping_statuses(store: CatalogStore) -> dict[str, str]:
    """Remote variant id -> sync status."""
    return {m.channel_variant_id: m.sync_status for m in await fetch_all(store, ChannelMapping)}


async def sync_logs(store: CatalogStore) -> list[SyncLogEntry]:
    return await fetch_all(store, SyncLogEntry)

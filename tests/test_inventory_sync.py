"""Tests for read-only and bidirectional inventory syncs."""

import pytest
from sqlalchemy import select

from catalog_sync.errors import RemoteChannelError, SyncInProgressError
from catalog_sync.models import InventoryRecord, Variant
from catalog_sync.models.channel_mapping import SYNC_FAILED, SYNC_SYNCED
from catalog_sync.models.sync_log import LOG_PARTIAL, LOG_SUCCESS
from catalog_sync.services.leases import CancelToken
from catalog_sync.services.reconciliation import INVENTORY_SCOPE
from tests.conftest import fetch_all, inventory_levels, mapping_statuses, sync_logs
from tests.fakes import remote_product


async def _import(reconciler, channel, *quantities: int) -> None:
    """One remote product per quantity, imported locally."""
    for i, qty in enumerate(quantities, start=1):
        channel.add_product(
            remote_product(i, variants=[{"id": i * 10, "sku": f"SKU-{i}", "inventory_quantity": qty}])
        )
    await reconciler.import_bulk()


async def _set_internal(store, sku: str, quantity: int, reserved: int = 0) -> None:
    async with store.transaction() as repo:
        variant = next(v for v in await _variants(repo) if v.sku == sku)
        record = await repo.get_inventory(variant.id, "internal", for_update=True)
        record.set_levels(quantity, reserved)


async def _variants(repo) -> list[Variant]:
    return list((await repo.session.execute(select(Variant))).scalars().all())


# ============================================================
# Read-only
# ============================================================


@pytest.mark.asyncio
async def test_read_only_sync_pulls_remote_levels(reconciler, channel, store):
    await _import(reconciler, channel, 5, 8)
    channel.inventory["10"] = 2
    channel.inventory["20"] = 11

    result = await reconciler.sync_inventory_read_only()

    assert (result.synced, result.failed, result.skipped, result.total) == (2, 0, 0, 2)
    assert not result.cancelled
    by_channel = {(vid_channel[1], levels[2]) for vid_channel, levels in (await inventory_levels(store)).items()}
    assert by_channel == {("internal", 2), ("shopify", 2), ("internal", 11), ("shopify", 11)}
    assert channel.set_calls == []

    logs = await sync_logs(store)
    assert (logs[-1].operation, logs[-1].status) == ("inventory_sync_read_only", LOG_SUCCESS)


@pytest.mark.asyncio
async def test_read_only_sync_is_idempotent(reconciler, channel, store):
    await _import(reconciler, channel, 5, 8)

    await reconciler.sync_inventory_read_only()
    first = await inventory_levels(store)
    await reconciler.sync_inventory_read_only()

    assert await inventory_levels(store) == first


@pytest.mark.asyncio
async def test_read_only_sync_counts_missing_remote_inventory(reconciler, channel, store):
    await _import(reconciler, channel, 5, 8)
    channel.missing_inventory.add("20")

    result = await reconciler.sync_inventory_read_only()

    assert (result.synced, result.failed) == (1, 1)
    assert result.errors[0]["remote_variant_id"] == "20"
    assert (await mapping_statuses(store))["20"] == SYNC_FAILED
    assert (await sync_logs(store))[-1].status == LOG_PARTIAL


# ============================================================
# Bidirectional
# ============================================================


@pytest.mark.asyncio
async def test_bidirectional_sync_pushes_internal_levels(reconciler, channel, store):
    await _import(reconciler, channel, 5, 8)

    result = await reconciler.sync_inventory_bidirectional()

    assert result.synced_from_remote == 2
    assert result.synced_to_remote == 2
    assert (result.failed, result.skipped) == (0, 0)
    assert sorted(channel.set_calls) == [("10", 5), ("20", 8)]


@pytest.mark.asyncio
async def test_bidirectional_sync_skips_deleted_remote_variant(reconciler, channel, store):
    """A variant deleted remotely fails its mapping; the others still sync."""
    await _import(reconciler, channel, 5, 8, 3)
    channel.delete_variant("20")

    result = await reconciler.sync_inventory_bidirectional()

    assert result.skipped == 1
    assert result.failed == 0
    assert result.synced_to_remote == 2
    statuses = await mapping_statuses(store)
    assert statuses["20"] == SYNC_FAILED
    assert statuses["10"] == statuses["30"] == SYNC_SYNCED
    assert sorted(channel.set_calls) == [("10", 5), ("30", 3)]


@pytest.mark.asyncio
async def test_bidirectional_sync_counts_push_errors(reconciler, channel, store):
    await _import(reconciler, channel, 5, 8)
    channel.set_errors["10"] = RemoteChannelError("Shopify API error: 500", status_code=500)

    result = await reconciler.sync_inventory_bidirectional()

    assert (result.failed, result.synced_to_remote) == (1, 1)
    assert (await mapping_statuses(store))["10"] == SYNC_FAILED
    assert (await sync_logs(store))[-1].status == LOG_PARTIAL


@pytest.mark.asyncio
async def test_bidirectional_pull_overwrites_internal_from_mirror(reconciler, channel, store):
    """The pull phase runs first, so the mirror level wins over a local edit."""
    await _import(reconciler, channel, 5)
    await _set_internal(store, "SKU-1", 1)

    await reconciler.sync_inventory_bidirectional()

    assert channel.set_calls == [("10", 5)]


@pytest.mark.asyncio
async def test_bidirectional_sync_ignores_unpublished_variants(reconciler, channel, store):
    await _import(reconciler, channel, 5)
    async with store.transaction() as repo:
        product = await repo.create_product(sku="LOCAL", name="Local only")
        await repo.create_variant(product_id=product.id, sku="LOCAL-1")

    result = await reconciler.sync_inventory_bidirectional()

    assert result.synced_to_remote == 1
    assert result.skipped == 0


# ============================================================
# Leases, cancellation, provisioning
# ============================================================


@pytest.mark.asyncio
async def test_inventory_syncs_share_one_lease(reconciler, lease):
    async with lease.hold(INVENTORY_SCOPE, 60):
        with pytest.raises(SyncInProgressError):
            await reconciler.sync_inventory_read_only()
        with pytest.raises(SyncInProgressError):
            await reconciler.sync_inventory_bidirectional()


@pytest.mark.asyncio
async def test_cancel_token_stops_at_batch_boundary(reconciler, channel, store):
    await _import(reconciler, channel, 1, 2, 3, 4, 5)
    cancel = CancelToken()
    cancel.cancel()

    result = await reconciler.sync_inventory_read_only(cancel)

    assert result.cancelled
    assert result.synced == 0
    assert result.total == 5


def test_cancel_token_deadline():
    assert CancelToken(timeout_seconds=0).cancelled
    assert not CancelToken(timeout_seconds=60).cancelled
    assert not CancelToken().cancelled


@pytest.mark.asyncio
async def test_ensure_internal_inventory_exists(reconciler, store):
    async with store.transaction() as repo:
        product = await repo.create_product(sku="P", name="Plain")
        await repo.create_variant(product_id=product.id, sku="P-1")
        await repo.create_variant(product_id=product.id, sku="P-2")

    assert await reconciler.ensure_internal_inventory_exists() == 2
    assert await reconciler.ensure_internal_inventory_exists() == 0

    records = await fetch_all(store, InventoryRecord)
    assert [(r.channel, r.available) for r in records] == [("internal", 0), ("internal", 0)]

"""Tests for pushing local products to the remote channel."""

from decimal import Decimal

import pytest

from catalog_sync.errors import NotFoundError, RemoteChannelError, ValidationError
from catalog_sync.models import ChannelMapping, InventoryRecord, Variant
from catalog_sync.models.channel_mapping import SYNC_FAILED, SYNC_SYNCED
from catalog_sync.models.sync_log import LOG_FAILED, LOG_SUCCESS
from catalog_sync.services.reconciliation import ReconciliationEngine
from tests.conftest import fetch_all, sync_logs


async def _local_product(store, sku: str = "TEE", variant_skus: tuple[str, ...] = ("TEE-S", "TEE-M")) -> int:
    price = Decimal("9.99")
    async with store.transaction() as repo:
        product = await repo.create_product(sku=sku, name="Tee", brand="Acme", category="Tops", base_price=price)
        for variant_sku in variant_skus:
            await repo.create_variant(product_id=product.id, sku=variant_sku, name=variant_sku, price=price)
        return product.id


@pytest.mark.asyncio
async def test_deploy_records_mappings_and_remote_inventory(reconciler, channel, store):
    product_id = await _local_product(store)

    remote = await reconciler.deploy(product_id)

    assert remote.id in channel.products
    mappings = await fetch_all(store, ChannelMapping)
    assert len(mappings) == 2
    assert {m.channel_product_id for m in mappings} == {remote.id}
    assert {m.sync_status for m in mappings} == {SYNC_SYNCED}
    assert {m.channel_variant_id for m in mappings} == {v.id for v in remote.variants}

    records = await fetch_all(store, InventoryRecord)
    assert {(r.channel, r.available) for r in records} == {("shopify", 0)}

    logs = await sync_logs(store)
    assert [(e.operation, e.status) for e in logs] == [("export", LOG_SUCCESS)]


@pytest.mark.asyncio
async def test_deploy_twice_returns_existing_remote_product(reconciler, channel, store):
    product_id = await _local_product(store)
    first = await reconciler.deploy(product_id)

    second = await reconciler.deploy(product_id)

    assert second.id == first.id
    assert list(channel.products) == [first.id]
    assert len(await fetch_all(store, ChannelMapping)) == 2
    logs = await sync_logs(store)
    assert [(e.operation, e.status) for e in logs] == [("export", LOG_SUCCESS)]


@pytest.mark.asyncio
async def test_deploy_then_import_keeps_product_identity(reconciler, channel, store, fresh_store, lease):
    product_id = await _local_product(store)
    remote = await reconciler.deploy(product_id)

    importer = ReconciliationEngine(fresh_store, channel, lease, batch_delay_seconds=0)
    imported = await importer.import_one(remote.raw)

    assert (imported.sku, imported.name, imported.base_price) == ("TEE", "Tee", Decimal("9.99"))
    variants = await fetch_all(fresh_store, Variant)
    assert sorted(v.sku for v in variants) == ["TEE-M", "TEE-S"]


@pytest.mark.asyncio
async def test_deploy_failure_leaves_no_mapping(reconciler, channel, store):
    product_id = await _local_product(store)
    channel.create_error = RemoteChannelError("Shopify API error: 500", status_code=500)

    with pytest.raises(RemoteChannelError):
        await reconciler.deploy(product_id)

    assert await fetch_all(store, ChannelMapping) == []
    logs = await sync_logs(store)
    assert [(e.operation, e.status) for e in logs] == [("export", LOG_FAILED)]
    assert logs[0].product_id == product_id


@pytest.mark.asyncio
async def test_deploy_requires_variants(reconciler, store):
    product_id = await _local_product(store, variant_skus=())
    with pytest.raises(ValidationError):
        await reconciler.deploy(product_id)


@pytest.mark.asyncio
async def test_deploy_unknown_product(reconciler):
    with pytest.raises(NotFoundError):
        await reconciler.deploy(404)


@pytest.mark.asyncio
async def test_update_to_remote_pushes_fields(reconciler, channel, store):
    product_id = await _local_product(store)
    remote = await reconciler.deploy(product_id)

    await reconciler.update_to_remote(
        product_id,
        {"name": "Tee v2", "variants": [{"sku": "TEE-S", "price": "12.00"}]},
    )

    stored = channel.products[remote.id]
    assert stored["title"] == "Tee v2"
    assert "sku:TEE" in stored["tags"]
    prices = {v["sku"]: v["price"] for v in stored["variants"]}
    assert prices["TEE-S"] == "12.00"
    logs = await sync_logs(store)
    assert (logs[-1].operation, logs[-1].status) == ("update_to_remote", LOG_SUCCESS)


@pytest.mark.asyncio
async def test_update_to_remote_failure_marks_mappings_failed(reconciler, channel, store):
    product_id = await _local_product(store)
    await reconciler.deploy(product_id)
    channel.update_error = RemoteChannelError("Shopify API error: 502", status_code=502)

    with pytest.raises(RemoteChannelError):
        await reconciler.update_to_remote(product_id, {"name": "Tee v2"})

    assert {m.sync_status for m in await fetch_all(store, ChannelMapping)} == {SYNC_FAILED}
    logs = await sync_logs(store)
    assert (logs[-1].operation, logs[-1].status) == ("update_to_remote", LOG_FAILED)


@pytest.mark.asyncio
async def test_update_to_remote_without_mapping(reconciler, store):
    product_id = await _local_product(store)
    with pytest.raises(NotFoundError):
        await reconciler.update_to_remote(product_id, {"name": "Tee v2"})


@pytest.mark.asyncio
async def test_update_to_remote_rejects_invalid_update(reconciler, store):
    product_id = await _local_product(store)
    with pytest.raises(ValidationError):
        await reconciler.update_to_remote(product_id, {"description": "no name"})

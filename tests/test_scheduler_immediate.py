"""Tests for the job scheduler without a broker (jobs run inline)."""

from datetime import timedelta

import pytest

from catalog_sync.errors import NotFoundError, ValidationError
from catalog_sync.services.scheduler import JobScheduler
from catalog_sync.services.work_queue import QUEUE_NAMES, ImmediateWorkQueue, create_work_queue
from catalog_sync.settings import Settings
from tests.fakes import remote_product


@pytest.fixture
def scheduler(reconciler) -> JobScheduler:
    return JobScheduler(ImmediateWorkQueue(), reconciler)


@pytest.mark.asyncio
async def test_create_work_queue_without_redis_is_immediate():
    queue = await create_work_queue(Settings(REDIS_URL=""))
    assert isinstance(queue, ImmediateWorkQueue)
    assert not queue.is_available()


@pytest.mark.asyncio
async def test_product_import_runs_inline(scheduler):
    handle = await scheduler.enqueue_product_sync("import", {"product": remote_product(5)})

    assert handle.immediate
    assert handle.job_id == "immediate"
    assert handle.result["sku"] == "SKU-5"


@pytest.mark.asyncio
async def test_product_delete_result(scheduler):
    created = await scheduler.enqueue_product_sync("import", {"product": remote_product(5)})
    product_id = created.result["product_id"]

    handle = await scheduler.enqueue_product_sync("delete", {"product_id": product_id})

    assert handle.result == {"product_id": product_id, "status": "deleted"}


@pytest.mark.asyncio
async def test_inline_errors_propagate(scheduler):
    with pytest.raises(NotFoundError):
        await scheduler.enqueue_product_sync("delete", {"product_id": 404})


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "operation,data",
    [
        ("publish", {"product_id": 1}),
        ("delete", {}),
        ("create", {"product_id": "abc"}),
        ("import", {"product": None}),
        ("update", {"product_id": 1}),
    ],
)
async def test_product_sync_validation(scheduler, operation, data):
    with pytest.raises(ValidationError):
        await scheduler.enqueue_product_sync(operation, data)


@pytest.mark.asyncio
async def test_inventory_sync_returns_result(scheduler, channel):
    channel.add_product(remote_product(1))
    await scheduler.enqueue_shopify_import({"limit": 5000})

    read_only = await scheduler.enqueue_inventory_sync()
    bidirectional = await scheduler.enqueue_inventory_sync({"bidirectional": True})

    assert read_only.result["synced"] == 1
    assert bidirectional.result["synced_to_remote"] == 1


@pytest.mark.asyncio
async def test_shopify_import_result(scheduler, channel):
    channel.add_product(remote_product(1))
    channel.add_product(remote_product(2, title=""))

    handle = await scheduler.enqueue_shopify_import({"syncDeletions": True})

    assert handle.result["imported"] == 1
    assert handle.result["failed"] == 1


@pytest.mark.asyncio
async def test_schedule_recurring_replaces_existing(scheduler):
    await scheduler.schedule_recurring("recurring-inventory-sync", "*/6 * * * *")
    await scheduler.schedule_recurring("recurring-inventory-sync", "0 */6 * * *")

    definitions = await scheduler.list_recurring()
    assert [(d.name, d.cron) for d in definitions] == [("recurring-inventory-sync", "0 */6 * * *")]


@pytest.mark.asyncio
async def test_schedule_recurring_by_family_name(scheduler):
    await scheduler.schedule_recurring("inventory-sync", "*/6 * * * *")
    await scheduler.schedule_recurring("inventory-sync", "0 */6 * * *")

    definitions = await scheduler.list_recurring()
    assert [(d.name, d.cron) for d in definitions] == [("inventory-sync", "0 */6 * * *")]

    product = await scheduler.schedule_recurring("product-sync", "0 * * * *")
    assert product.payload == {"limit": 50, "sync_deletions": True}
    assert await scheduler.clear_recurring("inventory-sync") == 1
    assert [d.name for d in await scheduler.list_recurring()] == ["product-sync"]


@pytest.mark.asyncio
async def test_schedule_recurring_validation(scheduler):
    with pytest.raises(ValidationError):
        await scheduler.schedule_recurring("nightly-cleanup", "0 3 * * *")
    with pytest.raises(ValidationError):
        await scheduler.schedule_recurring("recurring-product-sync", "every day")
    assert await scheduler.list_recurring() == []


@pytest.mark.asyncio
async def test_clear_recurring(scheduler):
    await scheduler.schedule_recurring("shopify-inventory-sync", "0 * * * *")
    assert await scheduler.clear_recurring("shopify-inventory-sync") == 1
    assert await scheduler.clear_recurring("shopify-inventory-sync") == 0


@pytest.mark.asyncio
async def test_schedule_startup_jobs_skips_invalid(scheduler):
    scheduled = await scheduler.schedule_startup_jobs(
        {"recurring-inventory-sync": "*/30 * * * *", "recurring-product-sync": "bogus"}
    )
    assert [d.name for d in scheduled] == ["recurring-inventory-sync"]


@pytest.mark.asyncio
async def test_due_triggers_run_inline_once(scheduler, channel):
    channel.add_product(remote_product(1))
    definition = await scheduler.schedule_recurring("recurring-product-sync", "0 * * * *")
    due_at = definition.next_run_at + timedelta(seconds=1)

    assert await scheduler.queue.fire_due_triggers(due_at) == ["recurring-product-sync"]
    assert await scheduler.queue.fire_due_triggers(due_at) == []

    (advanced,) = await scheduler.list_recurring()
    assert advanced.next_run_at > due_at


@pytest.mark.asyncio
async def test_failing_recurring_job_keeps_schedule(scheduler, channel):
    async def boom(limit: int) -> list:
        raise RuntimeError("listing failed")

    channel.list_products = boom
    definition = await scheduler.schedule_recurring("recurring-product-sync", "0 * * * *")

    fired = await scheduler.queue.fire_due_triggers(definition.next_run_at)

    assert fired == ["recurring-product-sync"]
    assert len(await scheduler.list_recurring()) == 1


@pytest.mark.asyncio
async def test_stats_report_unavailable_queues(scheduler):
    await scheduler.schedule_recurring("recurring-inventory-sync", "*/30 * * * *")

    stats = await scheduler.get_stats()

    assert stats["mode"] == "immediate"
    assert set(stats["queues"]) == set(QUEUE_NAMES)
    for counts in stats["queues"].values():
        assert counts["status"] == "unavailable"
        assert counts["waiting"] == counts["failed"] == 0
    assert stats["recurring"][0]["name"] == "recurring-inventory-sync"


@pytest.mark.asyncio
async def test_cleanup_is_a_no_op(scheduler):
    assert await scheduler.cleanup_old_jobs() == 0
    with pytest.raises(ValidationError):
        await scheduler.cleanup_old_jobs(retention_hours=-1)

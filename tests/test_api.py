"""Tests for the HTTP API (immediate job mode, in-memory catalog)."""

import pytest
from httpx import ASGITransport, AsyncClient

from catalog_sync.container import Container, build_scheduler
from catalog_sync.main import create_app
from catalog_sync.schemas.common import NOT_FOUND, REMOTE_CHANNEL_ERROR, ErrorResponse
from catalog_sync.services.work_queue import ImmediateWorkQueue
from catalog_sync.settings import Settings
from tests.fakes import remote_product


@pytest.fixture
def container(db_engine, store, channel, lease, reconciler) -> Container:
    settings = Settings()
    queue = ImmediateWorkQueue()
    return Container(
        settings=settings,
        engine=db_engine,
        store=store,
        client=channel,
        lease=lease,
        reconciliation=reconciler,
        queue=queue,
        scheduler=build_scheduler(settings, queue, reconciler),
    )


@pytest.fixture
async def client(container: Container):
    """Create test client."""
    app = create_app()
    app.state.container = container
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Test health endpoint returns ok."""
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


@pytest.mark.asyncio
async def test_services_not_ready():
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        response = await ac.get("/v1/jobs/status")
    assert response.status_code == 503


@pytest.mark.asyncio
async def test_job_status_immediate_mode(client: AsyncClient):
    response = await client.get("/v1/jobs/status")
    assert response.status_code == 200
    assert response.json() == {"mode": "immediate", "queue_available": False, "recurring": 0}


@pytest.mark.asyncio
async def test_product_sync_runs_inline(client: AsyncClient):
    response = await client.post(
        "/v1/jobs/product-sync",
        json={"operation": "import", "product": remote_product(42, title="Lamp")},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["job_id"] == "immediate"
    assert data["immediate"] is True
    assert data["result"]["sku"] == "SKU-42"

    listing = (await client.get("/v1/products")).json()
    assert listing["total"] == 1
    assert listing["products"][0]["name"] == "Lamp"


@pytest.mark.asyncio
async def test_product_sync_validation_error(client: AsyncClient):
    response = await client.post("/v1/jobs/product-sync", json={"operation": "publish", "productId": 1})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_schedule_and_list_recurring(client: AsyncClient):
    response = await client.post(
        "/v1/jobs/schedule",
        json={"jobName": "recurring-inventory-sync", "cronExpression": "*/30 * * * *"},
    )
    assert response.status_code == 200
    assert response.json()["cron"] == "*/30 * * * *"

    recurring = (await client.get("/v1/jobs/recurring")).json()
    assert [r["name"] for r in recurring] == ["recurring-inventory-sync"]

    stats = (await client.get("/v1/jobs/stats")).json()
    assert stats["queues"]["inventory-sync"]["status"] == "unavailable"

    cleared = (await client.delete("/v1/jobs/recurring/recurring-inventory-sync")).json()
    assert cleared["cleared"] == 1


@pytest.mark.asyncio
async def test_schedule_rejects_bad_cron(client: AsyncClient):
    response = await client.post(
        "/v1/jobs/schedule",
        json={"job_name": "recurring-inventory-sync", "cron_expression": "whenever"},
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_import_and_inventory_endpoints(client: AsyncClient, channel):
    channel.add_product(remote_product(1, title="Mug"))

    imported = (await client.post("/v1/integrations/shopify/import-bulk", json={"limit": 5})).json()
    assert imported["imported"] == 1

    synced = (await client.post("/v1/integrations/shopify/inventory/sync-read-only")).json()
    assert synced["synced"] == 1

    inventory = (await client.get("/v1/inventory")).json()
    assert inventory["total"] == 1
    assert set(inventory["items"][0]["channels"]) == {"internal", "shopify"}

    logs = (await client.get("/v1/sync-logs", params={"operation": "import"})).json()
    assert [entry["status"] for entry in logs] == ["success"]


@pytest.mark.asyncio
async def test_product_detail_and_not_found(client: AsyncClient):
    created = await client.post(
        "/v1/integrations/shopify/import",
        json={"product": remote_product(7, title="Desk")},
    )
    product_id = created.json()["product_id"]

    detail = (await client.get(f"/v1/products/{product_id}")).json()
    assert detail["name"] == "Desk"
    assert len(detail["variants"]) == 1
    assert len(detail["inventory"]) == 2
    assert detail["mappings"][0]["sync_status"] == "synced"

    missing = await client.get("/v1/products/999")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_lease_conflict_maps_to_409(client: AsyncClient, lease):
    async with lease.hold("inventory", 60):
        response = await client.post("/v1/integrations/shopify/inventory/sync")
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "SYNC_IN_PROGRESS"


def test_error_response_body_shape():
    body = ErrorResponse.build(REMOTE_CHANNEL_ERROR, "Shopify returned 500", {"remote_id": "42"})
    assert body == {
        "error": {"code": "REMOTE_CHANNEL_ERROR", "message": "Shopify returned 500", "detail": {"remote_id": "42"}}
    }
    assert ErrorResponse.build(NOT_FOUND, "gone")["error"]["detail"] is None

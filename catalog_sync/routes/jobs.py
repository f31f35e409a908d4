"""Job endpoints: enqueue sync work, manage recurring schedules, inspect queues.

Every enqueue endpoint answers with a job handle. When the broker is
unavailable the job has already run and the handle carries its result.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends

from catalog_sync.container import Container
from catalog_sync.routes.deps import get_container
from catalog_sync.schemas.jobs import (
    CleanupRequest,
    InventorySyncRequest,
    JobHandleResponse,
    JobOptionsRequest,
    ProductSyncRequest,
    RecurringJobResponse,
    ScheduleRequest,
    ShopifyImportRequest,
)
from catalog_sync.services.work_queue import JobHandle

router = APIRouter()
logger = logging.getLogger("uvicorn.error")


def _handle_response(handle: JobHandle) -> JobHandleResponse:
    return JobHandleResponse(**handle.to_dict())


@router.get("/status")
async def queue_status(container: Container = Depends(get_container)) -> dict[str, Any]:
    """Queue mode and availability."""
    scheduler = container.scheduler
    return {
        "mode": scheduler.mode,
        "queue_available": scheduler.queue.is_available(),
        "recurring": len(await scheduler.list_recurring()),
    }


@router.get("/stats")
async def queue_stats(container: Container = Depends(get_container)) -> dict[str, Any]:
    return await container.scheduler.get_stats()


@router.post("/inventory-sync", response_model=JobHandleResponse)
async def enqueue_inventory_sync(
    request: InventorySyncRequest | None = None,
    container: Container = Depends(get_container),
) -> JobHandleResponse:
    request = request or InventorySyncRequest()
    options = request.options()
    options["bidirectional"] = request.bidirectional
    handle = await container.scheduler.enqueue_inventory_sync(options)
    return _handle_response(handle)


@router.post("/shopify-inventory-sync", response_model=JobHandleResponse)
async def enqueue_shopify_inventory_sync(
    request: JobOptionsRequest | None = None,
    container: Container = Depends(get_container),
) -> JobHandleResponse:
    request = request or JobOptionsRequest()
    handle = await container.scheduler.enqueue_shopify_sync(request.options())
    return _handle_response(handle)


@router.post("/product-sync", response_model=JobHandleResponse)
async def enqueue_product_sync(
    request: ProductSyncRequest,
    container: Container = Depends(get_container),
) -> JobHandleResponse:
    handle = await container.scheduler.enqueue_product_sync(
        request.operation,
        request.data(),
        request.options(),
    )
    return _handle_response(handle)


@router.post("/shopify-import", response_model=JobHandleResponse)
async def enqueue_shopify_import(
    request: ShopifyImportRequest | None = None,
    container: Container = Depends(get_container),
) -> JobHandleResponse:
    request = request or ShopifyImportRequest()
    options = request.options()
    options.update(limit=request.limit, sync_deletions=request.sync_deletions)
    handle = await container.scheduler.enqueue_shopify_import(options)
    return _handle_response(handle)


@router.post("/schedule", response_model=RecurringJobResponse)
async def schedule_recurring(
    request: ScheduleRequest,
    container: Container = Depends(get_container),
) -> RecurringJobResponse:
    """Schedule (or reschedule) a recurring job. Replaces any existing schedule."""
    definition = await container.scheduler.schedule_recurring(request.job_name, request.cron_expression)
    return RecurringJobResponse(**definition.to_dict())


@router.get("/recurring", response_model=list[RecurringJobResponse])
async def list_recurring(container: Container = Depends(get_container)) -> list[RecurringJobResponse]:
    return [RecurringJobResponse(**d.to_dict()) for d in await container.scheduler.list_recurring()]


@router.delete("/recurring/{job_name}")
async def clear_recurring(job_name: str, container: Container = Depends(get_container)) -> dict[str, Any]:
    cleared = await container.scheduler.clear_recurring(job_name)
    return {"success": True, "job_name": job_name, "cleared": cleared}


@router.post("/cleanup")
async def cleanup_jobs(
    request: CleanupRequest | None = None,
    container: Container = Depends(get_container),
) -> dict[str, Any]:
    request = request or CleanupRequest()
    removed = await container.scheduler.cleanup_old_jobs(request.retention_hours)
    return {"success": True, "removed": removed}

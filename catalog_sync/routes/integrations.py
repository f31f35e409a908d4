"""Shopify integration endpoints.

These run reconciliation operations inline (no queue). Use /v1/jobs for
background execution.
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends

from catalog_sync.container import Container
from catalog_sync.routes.deps import get_container
from catalog_sync.schemas.jobs import BulkImportRequest, CleanupMissingRequest
from catalog_sync.schemas.remote import ProductUpdate

router = APIRouter()
logger = logging.getLogger("uvicorn.error")


@router.post("/shopify/deploy/{product_id}")
async def deploy_product(product_id: int, container: Container = Depends(get_container)) -> dict[str, Any]:
    """Create a local product in Shopify."""
    remote = await container.reconciliation.deploy(product_id)
    return {"success": True, "product_id": product_id, "remote_id": remote.id, "remote": remote.model_dump()}


@router.put("/shopify/products/{product_id}")
async def update_product_in_shopify(
    product_id: int,
    update: ProductUpdate,
    container: Container = Depends(get_container),
) -> dict[str, Any]:
    remote = await container.reconciliation.update_to_remote(product_id, update)
    return {"success": True, "product_id": product_id, "remote_id": remote.id}


@router.post("/shopify/import")
async def import_product(
    product: dict[str, Any] = Body(..., embed=True),
    container: Container = Depends(get_container),
) -> dict[str, Any]:
    """Import one Shopify product payload."""
    created = await container.reconciliation.import_one(product)
    return {"success": True, "product_id": created.id, "sku": created.sku}


@router.post("/shopify/import-bulk")
async def import_products(
    request: BulkImportRequest | None = None,
    container: Container = Depends(get_container),
) -> dict[str, Any]:
    request = request or BulkImportRequest()
    result = await container.reconciliation.import_bulk(limit=request.limit, sync_deletions=request.sync_deletions)
    return {"success": True, **result.to_dict()}


@router.post("/shopify/inventory/sync-read-only")
async def sync_inventory_read_only(container: Container = Depends(get_container)) -> dict[str, Any]:
    """Pull Shopify inventory into the local ledger. Never writes to Shopify."""
    result = await container.reconciliation.sync_inventory_read_only()
    return {"success": True, **result.to_dict()}


@router.post("/shopify/inventory/sync")
async def sync_inventory_bidirectional(container: Container = Depends(get_container)) -> dict[str, Any]:
    """Bidirectional inventory sync. Overwrites Shopify levels with internal ones."""
    result = await container.reconciliation.sync_inventory_bidirectional()
    return {"success": True, **result.to_dict()}


@router.post("/shopify/cleanup-missing")
async def cleanup_missing_products(
    request: CleanupMissingRequest | None = None,
    container: Container = Depends(get_container),
) -> dict[str, Any]:
    """Soft-delete local products that no longer exist in Shopify."""
    request = request or CleanupMissingRequest()
    result = await container.reconciliation.cleanup_missing_remote_products(limit=request.limit)
    return {"success": True, **result.to_dict()}

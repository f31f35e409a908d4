"""Read-only catalog endpoints: products, inventory and sync logs."""

from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, Query

from catalog_sync.container import Container
from catalog_sync.models.inventory import CHANNEL_SHOPIFY
from catalog_sync.routes.deps import get_container
from catalog_sync.schemas.catalog import (
    ChannelMappingOut,
    InventoryOut,
    ProductDetail,
    ProductListResponse,
    ProductOut,
    SyncLogOut,
    VariantOut,
)

products_router = APIRouter()
inventory_router = APIRouter()
sync_logs_router = APIRouter()


@products_router.get("", response_model=ProductListResponse)
async def list_products(
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    search: str | None = None,
    category: str | None = None,
    brand: str | None = None,
    status: str | None = None,
    min_price: Decimal | None = Query(default=None, ge=0),
    max_price: Decimal | None = Query(default=None, ge=0),
    color: str | None = None,
    size: str | None = None,
    include_deleted: bool = False,
    container: Container = Depends(get_container),
) -> ProductListResponse:
    async with container.store.transaction() as repo:
        products, total = await repo.list_products(
            limit=limit,
            offset=offset,
            include_deleted=include_deleted,
            search=search,
            category=category,
            brand=brand,
            status=status,
            min_price=min_price,
            max_price=max_price,
            color=color,
            size=size,
        )
    return ProductListResponse(
        products=[ProductOut.model_validate(p) for p in products],
        total=total,
        limit=limit,
        offset=offset,
    )


@products_router.get("/{product_id}", response_model=ProductDetail)
async def get_product(product_id: int, container: Container = Depends(get_container)) -> ProductDetail:
    async with container.store.transaction() as repo:
        product = await repo.get_product(product_id)
        variants = await repo.get_variants(product_id)
        inventory = await repo.inventory_for_variants([v.id for v in variants])
        mappings = await repo.mappings_for_product(product_id, CHANNEL_SHOPIFY)
    return ProductDetail(
        **ProductOut.model_validate(product).model_dump(),
        variants=[VariantOut.model_validate(v) for v in variants],
        inventory=[InventoryOut.model_validate(r) for r in inventory],
        mappings=[ChannelMappingOut.model_validate(m) for m in mappings],
    )


@inventory_router.get("")
async def inventory_overview(container: Container = Depends(get_container)) -> dict[str, Any]:
    """Per-variant inventory across channels."""
    async with container.store.transaction() as repo:
        items = await repo.inventory_overview()
    return {"items": items, "total": len(items)}


@sync_logs_router.get("", response_model=list[SyncLogOut])
async def list_sync_logs(
    limit: int = Query(default=50, ge=1, le=500),
    operation: str | None = None,
    status: str | None = None,
    container: Container = Depends(get_container),
) -> list[SyncLogOut]:
    async with container.store.transaction() as repo:
        entries = await repo.list_sync_logs(limit=limit, operation=operation, status=status)
    return [SyncLogOut.model_validate(e) for e in entries]

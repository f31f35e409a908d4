"""API routes."""

from fastapi import APIRouter

from catalog_sync.routes import catalog, integrations, jobs

api_router = APIRouter()

# Background jobs and recurring schedules
api_router.include_router(jobs.router, prefix="/v1/jobs", tags=["jobs"])

# Inline Shopify operations
api_router.include_router(integrations.router, prefix="/v1/integrations", tags=["integrations"])

# Catalog reads
api_router.include_router(catalog.products_router, prefix="/v1/products", tags=["products"])
api_router.include_router(catalog.inventory_router, prefix="/v1/inventory", tags=["inventory"])
api_router.include_router(catalog.sync_logs_router, prefix="/v1/sync-logs", tags=["sync-logs"])

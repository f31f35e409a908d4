"""Service wiring.

`build_container(settings)` constructs every long-lived service once: the API
lifespan and the worker script both go through it, and tests build their own
from fakes.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from catalog_sync.services.channel import RemoteChannelClient
from catalog_sync.services.leases import LocalLease, RedisLease, SyncLease
from catalog_sync.services.reconciliation import ReconciliationEngine
from catalog_sync.services.scheduler import JobScheduler
from catalog_sync.services.shopify_client import ShopifyClient
from catalog_sync.services.work_queue import RedisWorkQueue, WorkQueue, create_work_queue
from catalog_sync.settings import Settings
from catalog_sync.stores.catalog import CatalogStore
from catalog_sync.stores.postgres import create_engine, create_session_factory

logger = logging.getLogger("uvicorn.error")


@dataclass
class Container:
    settings: Settings
    engine: AsyncEngine
    store: CatalogStore
    client: RemoteChannelClient
    lease: SyncLease
    reconciliation: ReconciliationEngine
    queue: WorkQueue
    scheduler: JobScheduler

    async def close(self) -> None:
        await self.scheduler.shutdown()
        await self.client.close()
        await self.engine.dispose()


def build_engine(
    settings: Settings,
    store: CatalogStore,
    client: RemoteChannelClient,
    lease: SyncLease,
) -> ReconciliationEngine:
    return ReconciliationEngine(
        store,
        client,
        lease,
        batch_size=settings.sync_batch_size,
        batch_delay_seconds=settings.sync_batch_delay_seconds,
        lease_ttl_seconds=settings.sync_lease_ttl_seconds,
    )


def build_scheduler(settings: Settings, queue: WorkQueue, reconciliation: ReconciliationEngine) -> JobScheduler:
    return JobScheduler(
        queue,
        reconciliation,
        attempts=settings.job_attempts,
        backoff_seconds=settings.job_backoff_seconds,
        retention_hours=settings.job_retention_hours,
    )


async def build_container(settings: Settings, client: RemoteChannelClient | None = None) -> Container:
    """Build all services. The queue mode is decided here, once."""
    engine = create_engine(settings)
    store = CatalogStore(create_session_factory(engine))
    client = client or ShopifyClient(
        settings.shopify_shop_name,
        settings.shopify_access_token,
        settings.shopify_api_version,
        timeout=settings.shopify_timeout_seconds,
        max_attempts=settings.shopify_rate_limit_retries,
    )

    queue = await create_work_queue(settings)
    lease: SyncLease = RedisLease(queue.client) if isinstance(queue, RedisWorkQueue) else LocalLease()
    reconciliation = build_engine(settings, store, client, lease)
    scheduler = build_scheduler(settings, queue, reconciliation)
    logger.info(f"Services ready (job mode: {queue.mode})")

    return Container(
        settings=settings,
        engine=engine,
        store=store,
        client=client,
        lease=lease,
        reconciliation=reconciliation,
        queue=queue,
        scheduler=scheduler,
    )

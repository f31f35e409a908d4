#!/usr/bin/env python3
"""Job worker: drains the Redis queues and fires recurring schedules.

Run (local / Railway worker service):
  python -m scripts.run_worker

Requires REDIS_URL. Without a broker the API runs jobs inline and there is
nothing for a worker to do, so the script exits.

Optional env vars:
  WORKER_CONCURRENCY=2
  WORKER_POLL_INTERVAL_SECONDS=1
  SCHEDULER_TICK_SECONDS=30
  RECURRING_INVENTORY_SYNC_CRON="*/30 * * * *"
  RECURRING_SHOPIFY_INVENTORY_SYNC_CRON="0 * * * *"
  RECURRING_PRODUCT_SYNC_CRON="0 3 * * *"
"""

import asyncio
import logging
import signal

from dotenv import load_dotenv

from catalog_sync.container import build_container
from catalog_sync.services.work_queue import RedisWorkQueue
from catalog_sync.settings import get_settings

load_dotenv()

logger = logging.getLogger("uvicorn.error")


async def main() -> int:
    settings = get_settings()
    container = await build_container(settings)
    queue = container.queue

    if not isinstance(queue, RedisWorkQueue):
        logger.error("Redis is not available; jobs run inline in the API process. Worker exiting.")
        await container.close()
        return 1

    await container.scheduler.schedule_startup_jobs(settings.startup_recurring_jobs)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda: asyncio.create_task(queue.shutdown()))

    print(
        f"Worker started: concurrency={settings.worker_concurrency} "
        f"poll={settings.worker_poll_interval_seconds}s tick={settings.scheduler_tick_seconds}s"
    )
    try:
        await queue.run_workers(
            concurrency=settings.worker_concurrency,
            poll_interval=settings.worker_poll_interval_seconds,
            trigger_interval=settings.scheduler_tick_seconds,
        )
    finally:
        await container.close()
    print("Worker stopped")
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    raise SystemExit(asyncio.run(main()))

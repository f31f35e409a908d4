"""Job scheduler: the public scheduling contract over the work queue.

Job families:
- inventory-sync queue: sync-inventory, shopify-inventory-sync,
  recurring-inventory-sync, inventory-sync
- product-sync queue: product-create, product-update, product-import,
  product-delete, shopify-import, recurring-product-sync, product-sync

Recurring schedules may use the family names ("inventory-sync",
"product-sync") or the explicit recurring job names.

Every enqueue returns a JobHandle. In immediate mode the handle carries the
handler's result and `job_id == "immediate"`; handler errors propagate.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from catalog_sync.errors import ValidationError
from catalog_sync.services.reconciliation import ReconciliationEngine
from catalog_sync.services.triggers import RecurringJobDefinition
from catalog_sync.services.work_queue import QUEUE_INVENTORY, QUEUE_PRODUCT, JobHandle, JobOptions, WorkQueue

logger = logging.getLogger("uvicorn.error")

PRODUCT_OPERATIONS = ("create", "update", "import", "delete")

# Recurring job name -> (queue, payload)
RECURRING_JOBS: dict[str, tuple[str, dict[str, Any]]] = {
    "inventory-sync": (QUEUE_INVENTORY, {}),
    "recurring-inventory-sync": (QUEUE_INVENTORY, {}),
    "shopify-inventory-sync": (QUEUE_INVENTORY, {}),
    "recurring-product-sync": (QUEUE_PRODUCT, {"limit": 50, "sync_deletions": True}),
    "product-sync": (QUEUE_PRODUCT, {"limit": 50, "sync_deletions": True}),
}

IMPORT_LIMIT_MIN = 1
IMPORT_LIMIT_MAX = 1000
PRIORITY_MIN = 0
PRIORITY_MAX = 10


def _int_option(options: dict[str, Any], key: str, default: int) -> int:
    value = options.get(key, default)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Option '{key}' must be an integer, got {value!r}") from None


def _product_id(data: dict[str, Any]) -> int:
    value = data.get("product_id")
    if value is None:
        raise ValidationError("product_id is required")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"product_id must be an integer, got {value!r}") from None


class JobScheduler:
    """Enqueues sync work and dispatches it to the reconciliation engine."""

    def __init__(
        self,
        queue: WorkQueue,
        engine: ReconciliationEngine,
        *,
        attempts: int = 3,
        backoff_seconds: float = 2.0,
        retention_hours: int = 24,
    ):
        self.queue = queue
        self.engine = engine
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds
        self.retention_hours = retention_hours
        self._register_handlers()

    @property
    def mode(self) -> str:
        return self.queue.mode

    def _register_handlers(self) -> None:
        q = self.queue
        q.register("sync-inventory", QUEUE_INVENTORY, self._handle_sync_inventory)
        q.register("shopify-inventory-sync", QUEUE_INVENTORY, self._handle_read_only_sync)
        q.register("recurring-inventory-sync", QUEUE_INVENTORY, self._handle_read_only_sync)
        q.register("inventory-sync", QUEUE_INVENTORY, self._handle_read_only_sync)
        q.register("product-create", QUEUE_PRODUCT, self._handle_product_create)
        q.register("product-update", QUEUE_PRODUCT, self._handle_product_update)
        q.register("product-import", QUEUE_PRODUCT, self._handle_product_import)
        q.register("product-delete", QUEUE_PRODUCT, self._handle_product_delete)
        q.register("shopify-import", QUEUE_PRODUCT, self._handle_bulk_import)
        q.register("recurring-product-sync", QUEUE_PRODUCT, self._handle_bulk_import)
        q.register("product-sync", QUEUE_PRODUCT, self._handle_bulk_import)

    def _options(self, options: dict[str, Any], default_priority: int) -> JobOptions:
        priority = _int_option(options, "priority", default_priority)
        delay = options.get("delay", options.get("delay_seconds", 0)) or 0
        try:
            delay = float(delay)
        except (TypeError, ValueError):
            raise ValidationError(f"Option 'delay' must be a number, got {delay!r}") from None
        return JobOptions(
            priority=min(max(priority, PRIORITY_MIN), PRIORITY_MAX),
            delay_seconds=max(delay, 0.0),
            attempts=self.attempts,
            backoff_seconds=self.backoff_seconds,
        )

    # ============================================================
    # Enqueue
    # ============================================================

    async def enqueue_inventory_sync(self, options: dict[str, Any] | None = None) -> JobHandle:
        options = options or {}
        payload = {"bidirectional": bool(options.get("bidirectional", False))}
        return await self.queue.enqueue("sync-inventory", payload, self._options(options, 0))

    async def enqueue_shopify_sync(self, options: dict[str, Any] | None = None) -> JobHandle:
        options = options or {}
        return await self.queue.enqueue("shopify-inventory-sync", {}, self._options(options, 0))

    async def enqueue_product_sync(
        self,
        operation: str,
        data: dict[str, Any],
        options: dict[str, Any] | None = None,
    ) -> JobHandle:
        """Queue a single-product operation: create, update, import or delete."""
        if operation not in PRODUCT_OPERATIONS:
            raise ValidationError(
                f"Unknown product operation '{operation}'. Expected one of: {', '.join(PRODUCT_OPERATIONS)}"
            )
        data = data or {}
        if operation == "import":
            product = data.get("product")
            if not isinstance(product, dict):
                raise ValidationError("product payload is required for import")
            payload: dict[str, Any] = {"product": product}
        elif operation == "update":
            update = data.get("update")
            if not isinstance(update, dict):
                raise ValidationError("update payload is required for product update")
            payload = {"product_id": _product_id(data), "update": update}
        else:
            payload = {"product_id": _product_id(data)}
        return await self.queue.enqueue(f"product-{operation}", payload, self._options(options or {}, 1))

    async def enqueue_shopify_import(self, options: dict[str, Any] | None = None) -> JobHandle:
        options = options or {}
        limit = _int_option(options, "limit", 50)
        payload = {
            "limit": min(max(limit, IMPORT_LIMIT_MIN), IMPORT_LIMIT_MAX),
            "sync_deletions": bool(options.get("sync_deletions", options.get("syncDeletions", False))),
        }
        return await self.queue.enqueue("shopify-import", payload, self._options(options, 1))

    # ============================================================
    # Recurring
    # ============================================================

    async def schedule_recurring(self, job_name: str, cron: str) -> RecurringJobDefinition:
        """Replace any schedule for `job_name` with `cron`."""
        if job_name not in RECURRING_JOBS:
            raise ValidationError(
                f"Unknown recurring job '{job_name}'. Expected one of: {', '.join(sorted(RECURRING_JOBS))}"
            )
        queue, payload = RECURRING_JOBS[job_name]
        definition = RecurringJobDefinition.create(job_name, queue, cron, payload)
        cleared = await self.queue.clear_recurring(job_name)
        await self.queue.schedule_recurring(definition)
        logger.info(
            f"Scheduled recurring job {job_name} ({definition.cron}), next run {definition.next_run_at.isoformat()}"
            + (" (replaced existing schedule)" if cleared else "")
        )
        return definition

    async def clear_recurring(self, job_name: str) -> int:
        cleared = await self.queue.clear_recurring(job_name)
        if cleared:
            logger.info(f"Cleared recurring job {job_name}")
        return cleared

    async def list_recurring(self) -> list[RecurringJobDefinition]:
        return await self.queue.list_recurring()

    async def schedule_startup_jobs(self, crons: dict[str, str]) -> list[RecurringJobDefinition]:
        """Register the recurring schedules configured for this deployment."""
        scheduled = []
        for name, cron in crons.items():
            try:
                scheduled.append(await self.schedule_recurring(name, cron))
            except ValidationError as e:
                logger.error(f"Skipping startup schedule for {name}: {e.message}")
        return scheduled

    async def run_due_recurring(self) -> list[str]:
        return await self.queue.fire_due_triggers()

    # ============================================================
    # Maintenance
    # ============================================================

    async def get_stats(self) -> dict[str, Any]:
        return await self.queue.stats()

    async def cleanup_old_jobs(self, retention_hours: int | None = None) -> int:
        hours = retention_hours if retention_hours is not None else self.retention_hours
        if hours < 0:
            raise ValidationError("retention_hours must be >= 0")
        return await self.queue.cleanup(timedelta(hours=hours))

    async def shutdown(self) -> None:
        await self.queue.shutdown()

    # ============================================================
    # Handlers
    # ============================================================

    async def _handle_sync_inventory(self, payload: dict[str, Any]) -> dict[str, Any]:
        if payload.get("bidirectional"):
            return (await self.engine.sync_inventory_bidirectional()).to_dict()
        return (await self.engine.sync_inventory_read_only()).to_dict()

    async def _handle_read_only_sync(self, payload: dict[str, Any]) -> dict[str, Any]:
        return (await self.engine.sync_inventory_read_only()).to_dict()

    async def _handle_product_create(self, payload: dict[str, Any]) -> dict[str, Any]:
        remote = await self.engine.deploy(int(payload["product_id"]))
        return {"product_id": int(payload["product_id"]), "remote_id": remote.id}

    async def _handle_product_update(self, payload: dict[str, Any]) -> dict[str, Any]:
        remote = await self.engine.update_to_remote(int(payload["product_id"]), payload["update"])
        return {"product_id": int(payload["product_id"]), "remote_id": remote.id}

    async def _handle_product_import(self, payload: dict[str, Any]) -> dict[str, Any]:
        product = await self.engine.import_one(payload["product"])
        return {"product_id": product.id, "sku": product.sku}

    async def _handle_product_delete(self, payload: dict[str, Any]) -> dict[str, Any]:
        product = await self.engine.mark_product_deleted(int(payload["product_id"]))
        return {"product_id": product.id, "status": product.status}

    async def _handle_bulk_import(self, payload: dict[str, Any]) -> dict[str, Any]:
        result = await self.engine.import_bulk(
            limit=int(payload.get("limit", 50)),
            sync_deletions=bool(payload.get("sync_deletions", False)),
        )
        return result.to_dict()

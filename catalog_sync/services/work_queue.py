"""Work queue: one interface, two implementations.

- RedisWorkQueue: jobs persisted in Redis and drained by worker processes
  (scripts/run_worker.py). Retries with exponential backoff.
- ImmediateWorkQueue: no broker; jobs run inline and the caller gets the result.

`create_work_queue(settings)` picks one at startup; the choice holds for the
process lifetime.

Redis layout (per queue name, prefix `queue:<name>:`):
- jobs       hash   job id -> JSON record
- waiting    zset   score = priority * 1e13 + enqueue ms (lowest pops first)
- delayed    zset   score = ready-at ms
- active     set    job ids being processed
- completed  zset   score = finished ms (trimmed to remove_on_complete)
- failed     zset   score = finished ms (trimmed to remove_on_fail)
- id         string INCR counter
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import redis.asyncio as redis

from catalog_sync.errors import QueueUnavailableError, SchedulerClosedError, ValidationError
from catalog_sync.services.triggers import (
    InMemoryTriggerRegistry,
    RecurringJobDefinition,
    RedisTriggerRegistry,
    utcnow,
)
from catalog_sync.settings import Settings
from catalog_sync.stores.redis import acquire_lock, connect_redis

logger = logging.getLogger("uvicorn.error")

QUEUE_INVENTORY = "inventory-sync"
QUEUE_PRODUCT = "product-sync"
QUEUE_NAMES = (QUEUE_INVENTORY, QUEUE_PRODUCT)

PRIORITY_FACTOR = 10_000_000_000_000  # > any epoch ms for the next few centuries

Handler = Callable[[dict[str, Any]], Awaitable[Any]]


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class JobOptions:
    priority: int = 0
    delay_seconds: float = 0.0
    attempts: int = 3
    backoff_seconds: float = 2.0


@dataclass
class JobHandle:
    job_id: str
    immediate: bool
    result: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"job_id": self.job_id, "immediate": self.immediate, "result": self.result}


class WorkQueue(ABC):
    """Scheduling surface shared by both modes."""

    mode: str

    def __init__(self) -> None:
        self._handlers: dict[str, tuple[str, Handler]] = {}

    def register(self, job_type: str, queue: str, handler: Handler) -> None:
        """Route `job_type` to `handler` on `queue`."""
        if queue not in QUEUE_NAMES:
            raise ValueError(f"Unknown queue: {queue}")
        self._handlers[job_type] = (queue, handler)

    def _route(self, job_type: str) -> tuple[str, Handler]:
        try:
            return self._handlers[job_type]
        except KeyError:
            raise ValidationError(f"Unknown job type: {job_type}") from None

    @abstractmethod
    def is_available(self) -> bool:
        ...

    @abstractmethod
    async def enqueue(self, job_type: str, payload: dict[str, Any], options: JobOptions) -> JobHandle:
        ...

    @abstractmethod
    async def schedule_recurring(self, definition: RecurringJobDefinition) -> None:
        ...

    @abstractmethod
    async def clear_recurring(self, name: str) -> int:
        ...

    @abstractmethod
    async def list_recurring(self) -> list[RecurringJobDefinition]:
        ...

    @abstractmethod
    async def fire_due_triggers(self, now: datetime | None = None) -> list[str]:
        """Run or enqueue every recurring job whose next run has passed."""
        ...

    @abstractmethod
    async def stats(self) -> dict[str, Any]:
        ...

    @abstractmethod
    async def cleanup(self, retention: timedelta) -> int:
        ...

    @abstractmethod
    async def shutdown(self) -> None:
        ...


# ============================================================
# Immediate mode
# ============================================================


class ImmediateWorkQueue(WorkQueue):
    """Runs jobs inline. Failures propagate to the caller; there are no retries."""

    mode = "immediate"

    def __init__(self) -> None:
        super().__init__()
        self._triggers = InMemoryTriggerRegistry()

    def is_available(self) -> bool:
        return False

    async def enqueue(self, job_type: str, payload: dict[str, Any], options: JobOptions) -> JobHandle:
        _, handler = self._route(job_type)
        if options.delay_seconds:
            logger.info(f"Queue unavailable: running {job_type} now (requested delay {options.delay_seconds}s)")
        else:
            logger.info(f"Queue unavailable: running {job_type} immediately")
        result = await handler(payload)
        return JobHandle(job_id="immediate", immediate=True, result=result)

    async def schedule_recurring(self, definition: RecurringJobDefinition) -> None:
        self._route(definition.name)
        await self._triggers.put(definition)

    async def clear_recurring(self, name: str) -> int:
        return await self._triggers.remove(name)

    async def list_recurring(self) -> list[RecurringJobDefinition]:
        return await self._triggers.definitions()

    async def fire_due_triggers(self, now: datetime | None = None) -> list[str]:
        now = now or utcnow()
        fired: list[str] = []
        for definition in await self._triggers.due(now):
            await self._triggers.advance(definition, now)
            _, handler = self._route(definition.name)
            try:
                await handler(definition.payload)
            except Exception as e:
                # A failing run must not stop the schedule.
                logger.error(f"Recurring job {definition.name} failed: {e}")
            fired.append(definition.name)
        return fired

    async def stats(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "queues": {
                name: {
                    "waiting": 0,
                    "active": 0,
                    "completed": 0,
                    "failed": 0,
                    "delayed": 0,
                    "status": "unavailable",
                }
                for name in QUEUE_NAMES
            },
            "recurring": [d.to_dict() for d in await self.list_recurring()],
        }

    async def cleanup(self, retention: timedelta) -> int:
        return 0

    async def shutdown(self) -> None:
        return None


# ============================================================
# Redis mode
# ============================================================


class RedisWorkQueue(WorkQueue):
    """Redis-backed queue with retrying workers."""

    mode = "queued"

    def __init__(
        self,
        client: redis.Redis,
        *,
        remove_on_complete: int = 100,
        remove_on_fail: int = 50,
        prefix: str = "queue:",
    ):
        super().__init__()
        self.client = client
        self.remove_on_complete = remove_on_complete
        self.remove_on_fail = remove_on_fail
        self._prefix = prefix
        self._triggers = RedisTriggerRegistry(client)
        self._closed = False
        self._stopping = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    def _key(self, queue: str, suffix: str) -> str:
        return f"{self._prefix}{queue}:{suffix}"

    def is_available(self) -> bool:
        return not self._closed

    # ------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------

    async def enqueue(self, job_type: str, payload: dict[str, Any], options: JobOptions) -> JobHandle:
        if self._closed:
            raise SchedulerClosedError(f"Queue is shut down; cannot enqueue {job_type}")
        queue, _ = self._route(job_type)

        job_id = str(await self.client.incr(self._key(queue, "id")))
        now = _now_ms()
        record = {
            "id": job_id,
            "type": job_type,
            "queue": queue,
            "payload": payload,
            "priority": options.priority,
            "attempts": max(options.attempts, 1),
            "attempts_made": 0,
            "backoff_seconds": options.backoff_seconds,
            "status": "waiting",
            "created_at": now,
            "processed_at": None,
            "finished_at": None,
            "result": None,
            "error": None,
        }
        async with self.client.pipeline(transaction=True) as pipe:
            if options.delay_seconds > 0:
                record["status"] = "delayed"
                pipe.zadd(self._key(queue, "delayed"), {job_id: now + int(options.delay_seconds * 1000)})
            else:
                pipe.zadd(self._key(queue, "waiting"), {job_id: options.priority * PRIORITY_FACTOR + now})
            pipe.hset(self._key(queue, "jobs"), job_id, json.dumps(record, default=str))
            await pipe.execute()

        logger.info(f"Enqueued {job_type} job {job_id} on {queue} (priority={options.priority})")
        return JobHandle(job_id=job_id, immediate=False)

    async def get_job(self, queue: str, job_id: str) -> dict[str, Any] | None:
        raw = await self.client.hget(self._key(queue, "jobs"), job_id)
        return json.loads(raw) if raw else None

    # ------------------------------------------------------------
    # Recurring
    # ------------------------------------------------------------

    async def schedule_recurring(self, definition: RecurringJobDefinition) -> None:
        self._route(definition.name)
        await self._triggers.put(definition)

    async def clear_recurring(self, name: str) -> int:
        return await self._triggers.remove(name)

    async def list_recurring(self) -> list[RecurringJobDefinition]:
        return await self._triggers.definitions()

    async def fire_due_triggers(self, now: datetime | None = None) -> list[str]:
        """Enqueue due recurring jobs; one SET NX lock per occurrence fires each once."""
        now = now or utcnow()
        fired: list[str] = []
        for definition in await self._triggers.due(now):
            occurrence = int(definition.next_run_at.timestamp())
            following = definition.advanced(now).next_run_at
            ttl = max(int((following - now).total_seconds()), 60)
            if await acquire_lock(self.client, f"trigger:{definition.name}:{occurrence}", ttl):
                await self.enqueue(definition.name, definition.payload, JobOptions())
                fired.append(definition.name)
            await self._triggers.advance(definition, now)
        return fired

    # ------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------

    async def promote_delayed(self) -> int:
        """Move delayed jobs whose time has come to the waiting set."""
        now = _now_ms()
        moved = 0
        for queue in QUEUE_NAMES:
            delayed_key = self._key(queue, "delayed")
            for job_id in await self.client.zrangebyscore(delayed_key, 0, now):
                # ZREM decides which worker promotes it.
                if not await self.client.zrem(delayed_key, job_id):
                    continue
                record = await self.get_job(queue, job_id)
                if record is None:
                    continue
                record["status"] = "waiting"
                async with self.client.pipeline(transaction=True) as pipe:
                    pipe.hset(self._key(queue, "jobs"), job_id, json.dumps(record, default=str))
                    pipe.zadd(self._key(queue, "waiting"), {job_id: record["priority"] * PRIORITY_FACTOR + now})
                    await pipe.execute()
                moved += 1
        return moved

    async def process_next(self) -> dict[str, Any] | None:
        """Run one waiting job if there is one. Returns its final record."""
        await self.promote_delayed()
        for queue in QUEUE_NAMES:
            popped = await self.client.zpopmin(self._key(queue, "waiting"), 1)
            if not popped:
                continue
            job_id = popped[0][0]
            await self.client.sadd(self._key(queue, "active"), job_id)
            return await self._run(queue, job_id)
        return None

    async def _run(self, queue: str, job_id: str) -> dict[str, Any] | None:
        record = await self.get_job(queue, job_id)
        if record is None:
            await self.client.srem(self._key(queue, "active"), job_id)
            return None

        record["attempts_made"] += 1
        record["processed_at"] = _now_ms()
        record["status"] = "active"
        await self.client.hset(self._key(queue, "jobs"), job_id, json.dumps(record, default=str))

        job_type = record["type"]
        logger.info(f"Processing {job_type} job {job_id} (attempt {record['attempts_made']}/{record['attempts']})")
        try:
            _, handler = self._route(job_type)
            result = await handler(record["payload"])
        except Exception as e:
            record["error"] = str(e)
            if record["attempts_made"] < record["attempts"]:
                backoff = record["backoff_seconds"] * 2 ** (record["attempts_made"] - 1)
                logger.warning(f"Job {job_id} ({job_type}) failed, retrying in {backoff}s: {e}")
                record["status"] = "delayed"
                await self._finish(queue, job_id, record, "delayed", score=_now_ms() + int(backoff * 1000))
            else:
                logger.error(f"Job {job_id} ({job_type}) failed after {record['attempts_made']} attempts: {e}")
                record["status"] = "failed"
                record["finished_at"] = _now_ms()
                await self._finish(queue, job_id, record, "failed", keep=self.remove_on_fail)
            return record

        record["status"] = "completed"
        record["result"] = result
        record["error"] = None
        record["finished_at"] = _now_ms()
        await self._finish(queue, job_id, record, "completed", keep=self.remove_on_complete)
        logger.info(f"Job {job_id} ({job_type}) completed")
        return record

    async def _finish(
        self,
        queue: str,
        job_id: str,
        record: dict[str, Any],
        target: str,
        *,
        score: int | None = None,
        keep: int | None = None,
    ) -> None:
        target_key = self._key(queue, target)
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.srem(self._key(queue, "active"), job_id)
            pipe.hset(self._key(queue, "jobs"), job_id, json.dumps(record, default=str))
            pipe.zadd(target_key, {job_id: score if score is not None else record["finished_at"]})
            await pipe.execute()
        if keep is not None:
            await self._trim(queue, target_key, keep)

    async def _trim(self, queue: str, key: str, keep: int) -> None:
        """Keep only the newest `keep` finished jobs in `key`."""
        stale = await self.client.zrange(key, 0, -(keep + 1))
        if not stale:
            return
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.zrem(key, *stale)
            pipe.hdel(self._key(queue, "jobs"), *stale)
            await pipe.execute()

    async def run_workers(
        self,
        *,
        concurrency: int = 2,
        poll_interval: float = 1.0,
        trigger_interval: float = 30.0,
    ) -> None:
        """Process jobs and fire recurring triggers until `shutdown()`."""
        self._tasks = [asyncio.create_task(self._worker_loop(i, poll_interval)) for i in range(concurrency)]
        self._tasks.append(asyncio.create_task(self._trigger_loop(trigger_interval)))
        logger.info(f"Workers started (concurrency={concurrency})")
        await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Workers stopped")

    async def _worker_loop(self, index: int, poll_interval: float) -> None:
        while not self._stopping.is_set():
            try:
                processed = await self.process_next()
            except Exception as e:
                logger.exception(f"Worker {index} error: {e}")
                processed = None
            if processed is None:
                await self._sleep(poll_interval)

    async def _trigger_loop(self, interval: float) -> None:
        while not self._stopping.is_set():
            try:
                fired = await self.fire_due_triggers()
                if fired:
                    logger.info(f"Recurring jobs enqueued: {', '.join(fired)}")
            except Exception as e:
                logger.exception(f"Recurring trigger error: {e}")
            await self._sleep(interval)

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    # ------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------

    async def stats(self) -> dict[str, Any]:
        queues: dict[str, dict[str, Any]] = {}
        for queue in QUEUE_NAMES:
            async with self.client.pipeline(transaction=False) as pipe:
                pipe.zcard(self._key(queue, "waiting"))
                pipe.scard(self._key(queue, "active"))
                pipe.zcard(self._key(queue, "completed"))
                pipe.zcard(self._key(queue, "failed"))
                pipe.zcard(self._key(queue, "delayed"))
                waiting, active, completed, failed, delayed = await pipe.execute()
            queues[queue] = {
                "waiting": waiting,
                "active": active,
                "completed": completed,
                "failed": failed,
                "delayed": delayed,
                "status": "available" if not self._closed else "closed",
            }
        return {
            "mode": self.mode,
            "queues": queues,
            "recurring": [d.to_dict() for d in await self.list_recurring()],
        }

    async def cleanup(self, retention: timedelta) -> int:
        """Drop completed and failed jobs that finished before now - retention."""
        cutoff = _now_ms() - int(retention.total_seconds() * 1000)
        removed = 0
        for queue in QUEUE_NAMES:
            for target in ("completed", "failed"):
                key = self._key(queue, target)
                old = await self.client.zrangebyscore(key, 0, cutoff)
                if not old:
                    continue
                async with self.client.pipeline(transaction=True) as pipe:
                    pipe.zrem(key, *old)
                    pipe.hdel(self._key(queue, "jobs"), *old)
                    await pipe.execute()
                removed += len(old)
        logger.info(f"Cleaned up {removed} finished jobs older than {retention}")
        return removed

    async def shutdown(self) -> None:
        """Stop accepting work, let workers exit, close the connection."""
        if self._closed:
            return
        self._closed = True
        self._stopping.set()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks = []
        await self.client.aclose()
        logger.info("Job queue shut down")


async def create_work_queue(settings: Settings) -> WorkQueue:
    """Redis queue when the broker answers, otherwise immediate mode."""
    try:
        client = await connect_redis(settings.redis_url)
    except QueueUnavailableError as e:
        logger.warning(f"Job queue not available, jobs will run immediately: {e}")
        return ImmediateWorkQueue()
    return RedisWorkQueue(
        client,
        remove_on_complete=settings.job_remove_on_complete,
        remove_on_fail=settings.job_remove_on_fail,
    )


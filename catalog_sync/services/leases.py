"""Sync leases and cancellation tokens.

A lease gives one run exclusive ownership of a sync scope (e.g. "inventory").
Both inventory syncs share the "inventory" scope, so a bidirectional run and a
read-only run can never interleave.

- RedisLease: SET NX with an owner token, shared by every process on the broker.
- LocalLease: per-scope asyncio.Lock, used when there is no broker.

Neither waits: a held lease raises SyncInProgressError right away and queued
jobs retry with backoff.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Protocol

import redis.asyncio as redis

from catalog_sync.errors import SyncInProgressError
from catalog_sync.stores.redis import acquire_lock, new_lock_token, release_lock

logger = logging.getLogger("uvicorn.error")

PREFIX_LEASE = "lease:"


class SyncLease(Protocol):
    def hold(self, scope: str, ttl_seconds: int) -> AsyncIterator[None]:
        ...


class RedisLease:
    """Lease backed by a Redis lock."""

    def __init__(self, client: redis.Redis):
        self._client = client

    @asynccontextmanager
    async def hold(self, scope: str, ttl_seconds: int) -> AsyncIterator[None]:
        key = f"{PREFIX_LEASE}{scope}"
        token = new_lock_token()
        if not await acquire_lock(self._client, key, ttl_seconds, token):
            raise SyncInProgressError(f"A '{scope}' sync is already running")
        logger.debug(f"Lease acquired: {scope}")
        try:
            yield
        finally:
            if not await release_lock(self._client, key, token):
                logger.warning(f"Lease '{scope}' expired before release (TTL {ttl_seconds}s)")


class LocalLease:
    """In-process lease: one asyncio.Lock per scope."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    @asynccontextmanager
    async def hold(self, scope: str, ttl_seconds: int) -> AsyncIterator[None]:
        lock = self._locks.setdefault(scope, asyncio.Lock())
        if lock.locked():
            raise SyncInProgressError(f"A '{scope}' sync is already running")
        async with lock:
            yield


class CancelToken:
    """Cooperative cancellation: explicit `cancel()` or a deadline.

    Long-running syncs check it between batches.
    """

    def __init__(self, timeout_seconds: float | None = None):
        self._cancelled = False
        self._deadline = time.monotonic() + timeout_seconds if timeout_seconds is not None else None

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        if self._cancelled:
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

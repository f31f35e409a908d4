"""Redis store for the job broker and distributed locks.

Handles:
- Client construction and connectivity checks
- Distributed locks (sync leases, recurring trigger occurrences)

Lock TTLs:
- Sync leases: settings.sync_lease_ttl_seconds (~15 minutes)
- Recurring trigger occurrence: until the next occurrence (min 60 seconds)
"""

import logging
import uuid

import redis.asyncio as redis
from redis.exceptions import RedisError, WatchError

from catalog_sync.errors import QueueUnavailableError

# Key prefixes
PREFIX_LOCK = "lock:"

logger = logging.getLogger("uvicorn.error")


def create_redis(url: str) -> redis.Redis:
    """Create a Redis client for `url` (not yet connected)."""
    return redis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
    )


async def connect_redis(url: str) -> redis.Redis:
    """Create a client and validate connectivity.

    Raises:
        QueueUnavailableError: if the URL is empty or the server does not answer PING.
    """
    if not url:
        raise QueueUnavailableError("No Redis URL configured")
    client = create_redis(url)
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        await client.aclose()
        raise QueueUnavailableError(f"Redis unavailable at {url}: {e}") from e
    logger.info("Redis connected")
    return client


# ============================================================
# Distributed locks
# ============================================================


def new_lock_token() -> str:
    """Random owner token for a lock."""
    return uuid.uuid4().hex


async def acquire_lock(client: redis.Redis, key: str, ttl: int, token: str = "1") -> bool:
    """Acquire a distributed lock.

    Args:
        client: Redis client.
        key: Lock key (e.g., sync scope).
        ttl: Lock timeout in seconds.
        token: Owner token; only the owner can release the lock.

    Returns:
        True if lock acquired, False if already locked.
    """
    lock_key = f"{PREFIX_LOCK}{key}"
    # SET NX (only if not exists) with TTL
    result = await client.set(lock_key, token, nx=True, ex=max(int(ttl), 1))
    return bool(result)


async def release_lock(client: redis.Redis, key: str, token: str = "1") -> bool:
    """Release a distributed lock if `token` still owns it.

    Returns:
        True if the lock was released, False if it expired or changed owner.
    """
    lock_key = f"{PREFIX_LOCK}{key}"
    async with client.pipeline(transaction=True) as pipe:
        try:
            await pipe.watch(lock_key)
            if await pipe.get(lock_key) != token:
                await pipe.unwatch()
                return False
            pipe.multi()
            pipe.delete(lock_key)
            await pipe.execute()
        except WatchError:
            return False
    return True


async def is_locked(client: redis.Redis, key: str) -> bool:
    """Check if a lock exists."""
    return await client.exists(f"{PREFIX_LOCK}{key}") > 0

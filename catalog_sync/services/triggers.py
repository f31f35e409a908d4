"""Recurring job triggers.

A trigger is a cron expression plus the next time it is due. Definitions are
keyed by job name, so registering a name again replaces the old schedule: at
most one active definition per name.

Registries:
- InMemoryTriggerRegistry: immediate mode (the API process ticks it)
- RedisTriggerRegistry: queued mode (shared by every worker)

Nothing here owns a timer; callers pass `now`, which keeps triggers testable.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import redis.asyncio as redis
from croniter import croniter

from catalog_sync.errors import ValidationError

PREFIX_RECURRING = "recurring:"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CronTrigger:
    """Cron expression evaluated in UTC."""

    def __init__(self, expression: str):
        expression = (expression or "").strip()
        if not expression or not croniter.is_valid(expression):
            raise ValidationError(f"Invalid cron expression: '{expression}'")
        self.expression = expression

    def next_after(self, moment: datetime) -> datetime:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return croniter(self.expression, moment).get_next(datetime)

    def __repr__(self) -> str:
        return f"<CronTrigger {self.expression}>"


@dataclass
class RecurringJobDefinition:
    name: str
    queue: str
    cron: str
    next_run_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        name: str,
        queue: str,
        cron: str,
        payload: dict[str, Any] | None = None,
        *,
        now: datetime | None = None,
    ) -> RecurringJobDefinition:
        trigger = CronTrigger(cron)
        return cls(
            name=name,
            queue=queue,
            cron=trigger.expression,
            next_run_at=trigger.next_after(now or utcnow()),
            payload=dict(payload or {}),
        )

    def is_due(self, now: datetime) -> bool:
        return self.next_run_at <= now

    def advanced(self, now: datetime) -> RecurringJobDefinition:
        """Copy scheduled for the first occurrence after `now`."""
        return RecurringJobDefinition(
            name=self.name,
            queue=self.queue,
            cron=self.cron,
            next_run_at=CronTrigger(self.cron).next_after(now),
            payload=self.payload,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "queue": self.queue,
            "cron": self.cron,
            "next_run_at": self.next_run_at.isoformat(),
            "payload": self.payload,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RecurringJobDefinition:
        return cls(
            name=data["name"],
            queue=data["queue"],
            cron=data["cron"],
            next_run_at=datetime.fromisoformat(data["next_run_at"]),
            payload=data.get("payload") or {},
        )


class InMemoryTriggerRegistry:
    """Process-local trigger registry."""

    def __init__(self) -> None:
        self._definitions: dict[str, RecurringJobDefinition] = {}

    async def put(self, definition: RecurringJobDefinition) -> None:
        self._definitions[definition.name] = definition

    async def remove(self, name: str) -> int:
        return 1 if self._definitions.pop(name, None) is not None else 0

    async def definitions(self) -> list[RecurringJobDefinition]:
        return sorted(self._definitions.values(), key=lambda d: d.name)

    async def due(self, now: datetime) -> list[RecurringJobDefinition]:
        return [d for d in await self.definitions() if d.is_due(now)]

    async def advance(self, definition: RecurringJobDefinition, now: datetime) -> None:
        current = self._definitions.get(definition.name)
        # A schedule replaced while firing keeps its own next run.
        if current is not None and current.cron == definition.cron:
            self._definitions[definition.name] = definition.advanced(now)


class RedisTriggerRegistry:
    """Trigger registry stored in one Redis hash (name -> JSON definition)."""

    def __init__(self, client: redis.Redis, key: str = f"{PREFIX_RECURRING}definitions"):
        self._client = client
        self._key = key

    async def put(self, definition: RecurringJobDefinition) -> None:
        await self._client.hset(self._key, definition.name, json.dumps(definition.to_dict()))

    async def remove(self, name: str) -> int:
        return int(await self._client.hdel(self._key, name))

    async def definitions(self) -> list[RecurringJobDefinition]:
        raw = await self._client.hgetall(self._key)
        definitions = [RecurringJobDefinition.from_dict(json.loads(v)) for v in raw.values()]
        return sorted(definitions, key=lambda d: d.name)

    async def due(self, now: datetime) -> list[RecurringJobDefinition]:
        return [d for d in await self.definitions() if d.is_due(now)]

    async def advance(self, definition: RecurringJobDefinition, now: datetime) -> None:
        raw = await self._client.hget(self._key, definition.name)
        if raw is None:
            return
        current = RecurringJobDefinition.from_dict(json.loads(raw))
        if current.cron == definition.cron and current.next_run_at <= definition.next_run_at:
            await self.put(definition.advanced(now))

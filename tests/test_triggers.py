"""Tests for cron triggers and recurring job registries."""

from datetime import datetime, timezone

import fakeredis
import pytest

from catalog_sync.errors import ValidationError
from catalog_sync.services.triggers import (
    CronTrigger,
    InMemoryTriggerRegistry,
    RecurringJobDefinition,
    RedisTriggerRegistry,
)

NOON = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("expression", ["", "not a cron", "61 * * * *", "* * *"])
def test_cron_trigger_rejects_invalid_expressions(expression):
    with pytest.raises(ValidationError):
        CronTrigger(expression)


def test_cron_trigger_next_after():
    trigger = CronTrigger("*/30 * * * *")
    assert trigger.next_after(NOON) == datetime(2026, 1, 1, 12, 30, tzinfo=timezone.utc)
    # Naive datetimes are read as UTC.
    assert trigger.next_after(datetime(2026, 1, 1, 12, 10)) == datetime(2026, 1, 1, 12, 30, tzinfo=timezone.utc)


def test_definition_due_and_advanced():
    definition = RecurringJobDefinition.create("recurring-inventory-sync", "inventory-sync", "0 * * * *", now=NOON)
    assert definition.next_run_at == datetime(2026, 1, 1, 13, 0, tzinfo=timezone.utc)
    assert not definition.is_due(NOON)

    later = datetime(2026, 1, 1, 13, 5, tzinfo=timezone.utc)
    assert definition.is_due(later)
    assert definition.advanced(later).next_run_at == datetime(2026, 1, 1, 14, 0, tzinfo=timezone.utc)


def test_definition_dict_round_trip():
    definition = RecurringJobDefinition.create(
        "recurring-product-sync", "product-sync", "0 3 * * *", {"limit": 50}, now=NOON
    )
    assert RecurringJobDefinition.from_dict(definition.to_dict()) == definition


@pytest.mark.asyncio
async def test_in_memory_registry_keeps_one_definition_per_name():
    registry = InMemoryTriggerRegistry()
    await registry.put(RecurringJobDefinition.create("job", "inventory-sync", "0 * * * *", now=NOON))
    await registry.put(RecurringJobDefinition.create("job", "inventory-sync", "*/5 * * * *", now=NOON))

    definitions = await registry.definitions()
    assert [(d.name, d.cron) for d in definitions] == [("job", "*/5 * * * *")]
    assert await registry.remove("job") == 1
    assert await registry.remove("job") == 0


@pytest.mark.asyncio
async def test_in_memory_registry_due_and_advance():
    registry = InMemoryTriggerRegistry()
    definition = RecurringJobDefinition.create("job", "inventory-sync", "0 * * * *", now=NOON)
    await registry.put(definition)

    assert await registry.due(NOON) == []
    at_one = datetime(2026, 1, 1, 13, 0, tzinfo=timezone.utc)
    assert await registry.due(at_one) == [definition]

    await registry.advance(definition, at_one)
    assert await registry.due(at_one) == []


@pytest.mark.asyncio
async def test_redis_registry_replaces_by_name():
    registry = RedisTriggerRegistry(fakeredis.FakeAsyncRedis(decode_responses=True))
    await registry.put(RecurringJobDefinition.create("job", "inventory-sync", "0 * * * *", now=NOON))
    await registry.put(RecurringJobDefinition.create("job", "inventory-sync", "30 * * * *", now=NOON))

    definitions = await registry.definitions()
    assert len(definitions) == 1
    assert definitions[0].cron == "30 * * * *"
    assert definitions[0].next_run_at == datetime(2026, 1, 1, 12, 30, tzinfo=timezone.utc)

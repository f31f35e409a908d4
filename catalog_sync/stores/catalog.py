"""Catalog store: transactional access to the catalog tables.

Usage:
    async with store.transaction() as repo:
        product = await repo.get_product(product_id)
        ...

Each `transaction()` block is one database transaction (commit on success,
rollback on error). Multi-table writes that must land together (product +
variants + inventory + mappings) go in a single block.

Only the invariants of the tables are enforced here; business rules live in
the reconciliation engine.
"""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync.errors import NotFoundError
from catalog_sync.models import ChannelMapping, InventoryRecord, Product, SyncLogEntry, Variant
from catalog_sync.models.channel_mapping import SYNC_FAILED, SYNC_PENDING, SYNC_SYNCED


def _dumps(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, default=str)


class CatalogRepository:
    """Queries and writes within one session/transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ============================================================
    # Products & variants
    # ============================================================

    async def get_product(self, product_id: int) -> Product:
        product = await self.session.get(Product, product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        return product

    async def get_variants(self, product_id: int) -> list[Variant]:
        res = await self.session.execute(
            select(Variant).where(Variant.product_id == product_id).order_by(Variant.id)
        )
        return list(res.scalars().all())

    async def get_variant(self, variant_id: int) -> Variant:
        variant = await self.session.get(Variant, variant_id)
        if variant is None:
            raise NotFoundError(f"Variant {variant_id} not found")
        return variant

    async def create_product(
        self,
        *,
        sku: str,
        name: str,
        description: str | None = None,
        category: str | None = None,
        brand: str | None = None,
        base_price: Decimal | None = None,
        status: str = "active",
    ) -> Product:
        product = Product(
            sku=sku,
            name=name,
            description=description,
            category=category,
            brand=brand,
            base_price=base_price,
            status=status,
        )
        self.session.add(product)
        await self.session.flush()
        return product

    async def create_variant(
        self,
        *,
        product_id: int,
        sku: str,
        name: str | None = None,
        size: str | None = None,
        color: str | None = None,
        price: Decimal | None = None,
        weight: Decimal | None = None,
        images: list[str] | None = None,
    ) -> Variant:
        variant = Variant(
            product_id=product_id,
            sku=sku,
            name=name,
            size=size,
            color=color,
            price=price,
            weight=weight,
            images_json=_dumps(images or []),
        )
        self.session.add(variant)
        await self.session.flush()
        return variant

    async def list_products(
        self,
        *,
        limit: int = 100,
        offset: int = 0,
        include_deleted: bool = False,
        search: str | None = None,
        category: str | None = None,
        brand: str | None = None,
        status: str | None = None,
        min_price: Decimal | None = None,
        max_price: Decimal | None = None,
        color: str | None = None,
        size: str | None = None,
    ) -> tuple[list[Product], int]:
        """Filtered, paginated products plus the total match count.

        `color` and `size` match products with at least one such variant.
        """
        conditions = []
        if status:
            conditions.append(Product.status == status)
        elif not include_deleted:
            conditions.append(Product.status != "deleted")
        if search:
            term = f"%{search}%"
            conditions.append(
                or_(
                    Product.name.ilike(term),
                    Product.description.ilike(term),
                    Product.sku.ilike(term),
                    Product.brand.ilike(term),
                    Product.category.ilike(term),
                )
            )
        if category:
            conditions.append(Product.category == category)
        if brand:
            conditions.append(Product.brand == brand)
        if min_price is not None:
            conditions.append(Product.base_price >= min_price)
        if max_price is not None:
            conditions.append(Product.base_price <= max_price)
        if color or size:
            variant_conditions = [Variant.product_id == Product.id]
            if color:
                variant_conditions.append(Variant.color == color)
            if size:
                variant_conditions.append(Variant.size == size)
            conditions.append(select(Variant.id).where(*variant_conditions).exists())

        where = and_(*conditions) if conditions else None
        count_q = select(func.count()).select_from(Product)
        list_q = select(Product).order_by(Product.id).limit(limit).offset(offset)
        if where is not None:
            count_q = count_q.where(where)
            list_q = list_q.where(where)

        total = int((await self.session.execute(count_q)).scalar_one())
        products = list((await self.session.execute(list_q)).scalars().all())
        return products, total

    async def set_product_status(self, product_id: int, status: str) -> Product:
        product = await self.get_product(product_id)
        product.status = status
        await self.session.flush()
        return product

    # ============================================================
    # Inventory
    # ============================================================

    async def get_inventory(
        self,
        variant_id: int,
        channel: str,
        *,
        for_update: bool = False,
    ) -> InventoryRecord | None:
        query = select(InventoryRecord).where(
            InventoryRecord.variant_id == variant_id,
            InventoryRecord.channel == channel,
        )
        if for_update:
            query = query.with_for_update()
        return (await self.session.execute(query)).scalar_one_or_none()

    async def create_inventory(
        self,
        *,
        variant_id: int,
        channel: str,
        quantity: int = 0,
        reserved: int = 0,
        channel_product_id: str | None = None,
    ) -> InventoryRecord:
        record = InventoryRecord(
            variant_id=variant_id,
            channel=channel,
            channel_product_id=channel_product_id,
        )
        record.set_levels(quantity, reserved)
        self.session.add(record)
        await self.session.flush()
        return record

    async def get_or_create_inventory(
        self,
        *,
        variant_id: int,
        channel: str,
        channel_product_id: str | None = None,
    ) -> InventoryRecord:
        """Locked inventory row for (variant, channel), created empty if missing."""
        record = await self.get_inventory(variant_id, channel, for_update=True)
        if record is None:
            record = await self.create_inventory(
                variant_id=variant_id,
                channel=channel,
                channel_product_id=channel_product_id,
            )
        return record

    async def list_inventory(self, channel: str) -> list[InventoryRecord]:
        res = await self.session.execute(
            select(InventoryRecord).where(InventoryRecord.channel == channel).order_by(InventoryRecord.variant_id)
        )
        return list(res.scalars().all())

    async def inventory_for_variants(self, variant_ids: list[int]) -> list[InventoryRecord]:
        if not variant_ids:
            return []
        res = await self.session.execute(
            select(InventoryRecord)
            .where(InventoryRecord.variant_id.in_(variant_ids))
            .order_by(InventoryRecord.variant_id, InventoryRecord.channel)
        )
        return list(res.scalars().all())

    async def variants_missing_inventory(self, channel: str) -> list[Variant]:
        """Variants that have no inventory record on `channel`."""
        has_record = (
            select(InventoryRecord.id)
            .where(
                InventoryRecord.variant_id == Variant.id,
                InventoryRecord.channel == channel,
            )
            .exists()
        )
        res = await self.session.execute(select(Variant).where(~has_record).order_by(Variant.id))
        return list(res.scalars().all())

    async def try_create_inventory(self, *, variant_id: int, channel: str) -> bool:
        """Create an empty record unless one appears concurrently.

        Runs in a savepoint so a unique-constraint race does not abort the
        surrounding transaction.
        """
        try:
            async with self.session.begin_nested():
                await self.create_inventory(variant_id=variant_id, channel=channel)
        except IntegrityError:
            return False
        return True

    async def inventory_overview(self) -> list[dict[str, Any]]:
        """Inventory grouped by variant with per-channel levels."""
        res = await self.session.execute(
            select(InventoryRecord, Variant.sku, Product.name)
            .join(Variant, InventoryRecord.variant_id == Variant.id)
            .join(Product, Variant.product_id == Product.id)
            .order_by(InventoryRecord.variant_id, InventoryRecord.channel)
        )
        grouped: dict[int, dict[str, Any]] = {}
        for record, sku, product_name in res.all():
            item = grouped.setdefault(
                record.variant_id,
                {"variant_id": record.variant_id, "sku": sku, "product_name": product_name, "channels": {}},
            )
            item["channels"][record.channel] = {
                "quantity": record.quantity,
                "reserved": record.reserved,
                "available": record.available,
                "last_sync_at": record.last_sync_at.isoformat() if record.last_sync_at else None,
            }
        return list(grouped.values())

    # ============================================================
    # Channel mappings
    # ============================================================

    async def create_mapping(
        self,
        *,
        product_id: int,
        variant_id: int,
        channel: str,
        channel_product_id: str | None,
        channel_variant_id: str | None,
        channel_data: dict[str, Any] | None = None,
        sync_status: str = SYNC_PENDING,
    ) -> ChannelMapping:
        mapping = ChannelMapping(
            product_id=product_id,
            variant_id=variant_id,
            channel=channel,
            channel_product_id=channel_product_id,
            channel_variant_id=channel_variant_id,
            channel_data_json=_dumps(channel_data),
            sync_status=sync_status,
        )
        if sync_status == SYNC_SYNCED:
            mapping.mark_synced()
        elif sync_status == SYNC_FAILED:
            mapping.mark_failed()
        self.session.add(mapping)
        await self.session.flush()
        return mapping

    async def get_mapping(self, variant_id: int, channel: str, *, for_update: bool = False) -> ChannelMapping | None:
        query = select(ChannelMapping).where(
            ChannelMapping.variant_id == variant_id,
            ChannelMapping.channel == channel,
        )
        if for_update:
            query = query.with_for_update()
        return (await self.session.execute(query)).scalar_one_or_none()

    async def get_mapping_by_id(self, mapping_id: int, *, for_update: bool = False) -> ChannelMapping:
        query = select(ChannelMapping).where(ChannelMapping.id == mapping_id)
        if for_update:
            query = query.with_for_update()
        mapping = (await self.session.execute(query)).scalar_one_or_none()
        if mapping is None:
            raise NotFoundError(f"Channel mapping {mapping_id} not found")
        return mapping

    async def find_mapping(
        self,
        *,
        product_id: int,
        channel: str,
        channel_variant_id: str,
    ) -> ChannelMapping | None:
        res = await self.session.execute(
            select(ChannelMapping).where(
                ChannelMapping.product_id == product_id,
                ChannelMapping.channel == channel,
                ChannelMapping.channel_variant_id == channel_variant_id,
            )
        )
        return res.scalars().first()

    async def mappings_for_product(self, product_id: int, channel: str) -> list[ChannelMapping]:
        res = await self.session.execute(
            select(ChannelMapping)
            .where(ChannelMapping.product_id == product_id, ChannelMapping.channel == channel)
            .order_by(ChannelMapping.id)
        )
        return list(res.scalars().all())

    async def mappings_by_channel(self, channel: str) -> list[ChannelMapping]:
        res = await self.session.execute(
            select(ChannelMapping).where(ChannelMapping.channel == channel).order_by(ChannelMapping.id)
        )
        return list(res.scalars().all())

    async def product_ids_by_remote_id(self, channel: str) -> dict[str, int]:
        """Remote product id -> local product id for every mapped product."""
        res = await self.session.execute(
            select(ChannelMapping.channel_product_id, ChannelMapping.product_id)
            .where(ChannelMapping.channel == channel, ChannelMapping.channel_product_id.is_not(None))
            .distinct()
        )
        return {str(remote_id): int(product_id) for remote_id, product_id in res.all()}

    # ============================================================
    # Sync logs (append-only)
    # ============================================================

    async def add_sync_log(
        self,
        *,
        channel: str,
        operation: str,
        status: str,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        product_id: int | None = None,
        variant_id: int | None = None,
    ) -> SyncLogEntry:
        entry = SyncLogEntry(
            channel=channel,
            operation=operation,
            status=status,
            message=message,
            details_json=_dumps(details),
            product_id=product_id,
            variant_id=variant_id,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def list_sync_logs(
        self,
        *,
        limit: int = 50,
        operation: str | None = None,
        status: str | None = None,
    ) -> list[SyncLogEntry]:
        query = select(SyncLogEntry).order_by(SyncLogEntry.id.desc()).limit(limit)
        if operation:
            query = query.where(SyncLogEntry.operation == operation)
        if status:
            query = query.where(SyncLogEntry.status == status)
        return list((await self.session.execute(query)).scalars().all())


class CatalogStore:
    """Hands out transactional repositories."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[CatalogRepository, None]:
        """One transaction: commit on success, rollback on error."""
        async with self._session_factory() as session:
            try:
                yield CatalogRepository(session)
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def log_sync(
        self,
        *,
        channel: str,
        operation: str,
        status: str,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        product_id: int | None = None,
        variant_id: int | None = None,
    ) -> None:
        """Write a sync log entry in its own transaction.

        Used on failure paths, where the operation's transaction has already
        been rolled back.
        """
        async with self.transaction() as repo:
            await repo.add_sync_log(
                channel=channel,
                operation=operation,
                status=status,
                message=message,
                details=details,
                product_id=product_id,
                variant_id=variant_id,
            )

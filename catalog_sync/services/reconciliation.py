"""Reconciliation engine: local catalog <-> remote sales channel.

Operations:
- deploy: push a local product to the channel and record the mappings
- import_one / import_bulk: pull remote products into the catalog
- update_from_remote / update_to_remote: refresh one side from the other
- sync_inventory_read_only / sync_inventory_bidirectional: inventory levels

Notes:
- Local multi-table writes happen in one transaction; the local/remote pair is
  not atomic. A remote write that succeeds followed by a failed local commit is
  reported as a failure and left for the next reconciliation.
- Every attempt leaves a SyncLogEntry. Failure logs are written in their own
  transaction so they survive the rollback of the failed one.
- Inventory syncs hold the "inventory" lease, run in fixed-size batches with a
  pause between batches, and check the cancel token at each batch boundary.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import asdict, dataclass, field
from typing import Any, TypeVar

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError

from catalog_sync.errors import NotFoundError, StaleReferenceError, ValidationError
from catalog_sync.models import ChannelMapping, InventoryRecord, Product, Variant
from catalog_sync.models.channel_mapping import SYNC_FAILED, SYNC_SYNCED
from catalog_sync.models.inventory import CHANNEL_INTERNAL, CHANNEL_SHOPIFY
from catalog_sync.models.sync_log import LOG_FAILED, LOG_PARTIAL, LOG_SUCCESS
from catalog_sync.schemas.remote import (
    ProductUpdate,
    RemoteProduct,
    RemoteVariant,
    build_create_payload,
    build_update_payload,
    parse_remote_product,
)
from catalog_sync.services.channel import RemoteChannelClient
from catalog_sync.services.leases import CancelToken, SyncLease
from catalog_sync.stores.catalog import CatalogRepository, CatalogStore

logger = logging.getLogger("uvicorn.error")

INVENTORY_SCOPE = "inventory"

T = TypeVar("T")


@dataclass
class BulkImportResult:
    imported: int = 0
    updated: int = 0
    deleted: int = 0
    failed: int = 0
    total: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ReadOnlySyncResult:
    synced: int = 0
    failed: int = 0
    skipped: int = 0
    total: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class BidirectionalSyncResult:
    synced_from_remote: int = 0
    synced_to_remote: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CleanupResult:
    deleted: int = 0
    checked: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _remote_id_of(payload: Any) -> str | None:
    if isinstance(payload, dict) and payload.get("id") not in (None, ""):
        return str(payload["id"])
    return None


def _pair_variants(
    local: Sequence[Variant],
    remote: Sequence[RemoteVariant],
) -> list[tuple[Variant, RemoteVariant | None]]:
    """Pair local variants with created remote variants: by SKU, then by position."""
    remaining = [rv for rv in remote if rv.id]
    by_sku = {rv.sku: rv for rv in remaining if rv.sku}
    paired: dict[int, RemoteVariant] = {}
    for lv in local:
        rv = by_sku.get(lv.sku)
        if rv is not None:
            paired[lv.id] = rv
            remaining.remove(rv)
    for lv in local:
        if lv.id not in paired and remaining:
            paired[lv.id] = remaining.pop(0)
    return [(lv, paired.get(lv.id)) for lv in local]


class ReconciliationEngine:
    """Keeps the local catalog and one remote channel consistent."""

    def __init__(
        self,
        store: CatalogStore,
        client: RemoteChannelClient,
        lease: SyncLease,
        *,
        channel: str = CHANNEL_SHOPIFY,
        batch_size: int = 10,
        batch_delay_seconds: float = 0.5,
        lease_ttl_seconds: int = 900,
    ):
        self.store = store
        self.client = client
        self.lease = lease
        self.channel = channel
        self.batch_size = max(int(batch_size), 1)
        self.batch_delay_seconds = batch_delay_seconds
        self.lease_ttl_seconds = lease_ttl_seconds

    # ============================================================
    # Export
    # ============================================================

    async def deploy(self, product_id: int) -> RemoteProduct:
        """Create a local product on the remote channel.

        On remote failure nothing is mapped locally; the error is logged and
        re-raised (retries belong to the job layer). A product that is already
        mapped is not created again; the mapped remote product is returned.
        """
        async with self.store.transaction() as repo:
            product = await repo.get_product(product_id)
            variants = await repo.get_variants(product_id)
            mappings = await repo.mappings_for_product(product_id, self.channel)
        deployed_as = next((m.channel_product_id for m in mappings if m.channel_product_id), None)
        if deployed_as is not None:
            logger.info(f"Product {product.sku} already deployed as {self.channel} product {deployed_as}")
            return parse_remote_product(await self.client.get_product(deployed_as))
        if not variants:
            raise ValidationError(f"Product {product_id} has no variants to deploy")

        logger.info(f"Deploying product {product.sku} ({len(variants)} variants) to {self.channel}")
        try:
            created = await self.client.create_product(build_create_payload(product, variants))
            remote = parse_remote_product(created)
        except Exception as e:
            logger.error(f"Failed to deploy product {product_id} to {self.channel}: {e}")
            await self.store.log_sync(
                channel=self.channel,
                operation="export",
                status=LOG_FAILED,
                message=f"Failed to deploy product {product.name}: {e}",
                details={"error": str(e)},
                product_id=product_id,
            )
            raise

        try:
            async with self.store.transaction() as repo:
                unpaired = 0
                for variant, remote_variant in _pair_variants(variants, remote.variants):
                    if remote_variant is None:
                        unpaired += 1
                    await repo.create_mapping(
                        product_id=product_id,
                        variant_id=variant.id,
                        channel=self.channel,
                        channel_product_id=remote.id,
                        channel_variant_id=remote_variant.id if remote_variant else None,
                        channel_data=remote_variant.raw if remote_variant else None,
                        sync_status=SYNC_SYNCED if remote_variant else SYNC_FAILED,
                    )
                    await repo.create_inventory(
                        variant_id=variant.id,
                        channel=self.channel,
                        channel_product_id=remote.id,
                    )
                await repo.add_sync_log(
                    channel=self.channel,
                    operation="export",
                    status=LOG_SUCCESS if unpaired == 0 else LOG_PARTIAL,
                    message=f"Deployed product {product.name} to {self.channel}",
                    details={"remote_id": remote.id, "variants": len(variants), "unpaired_variants": unpaired},
                    product_id=product_id,
                )
        except Exception as e:
            logger.error(f"Deployed product {product_id} as {remote.id} but failed to record mappings: {e}")
            await self.store.log_sync(
                channel=self.channel,
                operation="export",
                status=LOG_FAILED,
                message=f"Remote product {remote.id} created but local mappings were not saved: {e}",
                details={"remote_id": remote.id, "error": str(e)},
                product_id=product_id,
            )
            raise

        logger.info(f"Product {product.sku} deployed as {self.channel} product {remote.id}")
        return remote

    # ============================================================
    # Import
    # ============================================================

    async def import_one(self, payload: dict[str, Any]) -> Product:
        """Create a local product (variants, inventory, mappings) from a remote payload.

        A remote product that is already mapped is refreshed through
        update_from_remote instead of being imported twice.
        """
        remote_id = _remote_id_of(payload)
        try:
            remote = parse_remote_product(payload)
            async with self.store.transaction() as repo:
                existing_id = (await repo.product_ids_by_remote_id(self.channel)).get(remote.id)
                if existing_id is None:
                    product = await self._create_from_remote(repo, remote)
                    await repo.add_sync_log(
                        channel=self.channel,
                        operation="import",
                        status=LOG_SUCCESS,
                        message=f"Imported product {product.name} from {self.channel}",
                        details={"remote_id": remote.id, "variants": len(remote.variants)},
                        product_id=product.id,
                    )
        except IntegrityError as e:
            await self._log_import_failure(remote_id, e)
            raise ValidationError(
                f"Product {remote_id} conflicts with an existing catalog entry (duplicate SKU or mapping)",
                remote_id=remote_id,
                detail={"error": str(e.orig)},
            ) from e
        except Exception as e:
            await self._log_import_failure(remote_id, e)
            raise

        if existing_id is not None:
            logger.info(f"{self.channel} product {remote.id} already imported as product {existing_id}; refreshing")
            return await self.update_from_remote(existing_id, payload)

        logger.info(f"Imported {self.channel} product {remote.id} as {product.sku}")
        return product

    async def _log_import_failure(self, remote_id: str | None, error: Exception) -> None:
        logger.error(f"Failed to import {self.channel} product {remote_id}: {error}")
        await self.store.log_sync(
            channel=self.channel,
            operation="import",
            status=LOG_FAILED,
            message=f"Failed to import product {remote_id}: {error}",
            details={"remote_id": remote_id, "error": str(error)},
        )

    async def _create_from_remote(self, repo: CatalogRepository, remote: RemoteProduct) -> Product:
        product_sku = remote.resolved_sku(self.channel.upper())
        product = await repo.create_product(
            sku=product_sku,
            name=remote.resolved_name(),
            description=remote.description,
            category=remote.category,
            brand=remote.brand,
            base_price=remote.base_price,
            status="active",
        )
        for rv in remote.variants:
            if not rv.id:
                logger.warning(f"Skipping variant without id on {self.channel} product {remote.id}")
                continue
            variant = await repo.create_variant(
                product_id=product.id,
                sku=rv.resolved_sku(product_sku),
                name=rv.resolved_name(),
                size=rv.size,
                color=rv.color,
                price=rv.price_or_zero,
                weight=rv.weight,
                images=rv.image_refs(remote.images),
            )
            await repo.create_inventory(
                variant_id=variant.id,
                channel=self.channel,
                quantity=rv.quantity,
                channel_product_id=remote.id,
            )
            await repo.create_inventory(variant_id=variant.id, channel=CHANNEL_INTERNAL, quantity=rv.quantity)
            await repo.create_mapping(
                product_id=product.id,
                variant_id=variant.id,
                channel=self.channel,
                channel_product_id=remote.id,
                channel_variant_id=rv.id,
                channel_data=rv.raw,
                sync_status=SYNC_SYNCED,
            )
        return product

    async def import_bulk(self, limit: int = 50, sync_deletions: bool = False) -> BulkImportResult:
        """Import or refresh up to `limit` remote products.

        Per-item failures are collected in the result and never abort the run.
        """
        payloads = await self.client.list_products(limit)
        result = BulkImportResult(total=len(payloads))
        logger.info(f"Bulk import: {len(payloads)} {self.channel} products (sync_deletions={sync_deletions})")

        if sync_deletions:
            present = {rid for rid in (_remote_id_of(p) for p in payloads) if rid}
            result.deleted = (await self._delete_missing(present)).deleted

        async with self.store.transaction() as repo:
            known = await repo.product_ids_by_remote_id(self.channel)

        for payload in payloads:
            remote_id = _remote_id_of(payload)
            try:
                product_id = known.get(remote_id) if remote_id else None
                if product_id is not None:
                    await self.update_from_remote(product_id, payload)
                    result.updated += 1
                else:
                    await self.import_one(payload)
                    result.imported += 1
            except Exception as e:
                result.failed += 1
                result.errors.append(
                    {
                        "remote_id": remote_id,
                        "title": payload.get("title") if isinstance(payload, dict) else None,
                        "error": str(e),
                    }
                )

        logger.info(
            f"Bulk import done: imported={result.imported} updated={result.updated} "
            f"deleted={result.deleted} failed={result.failed} total={result.total}"
        )
        return result

    # ============================================================
    # Updates
    # ============================================================

    async def update_from_remote(self, product_id: int, payload: dict[str, Any]) -> Product:
        """Overwrite a local product, its mapped variants and inventory with remote state.

        Remote variants without a mapping are skipped.
        """
        try:
            remote = parse_remote_product(payload)
            async with self.store.transaction() as repo:
                product = await repo.get_product(product_id)
                product.name = remote.resolved_name()
                product.description = remote.description
                product.category = remote.category
                product.brand = remote.brand
                product.base_price = remote.base_price
                product.status = "active"

                updated = 0
                for rv in remote.variants:
                    if not rv.id:
                        continue
                    mapping = await repo.find_mapping(
                        product_id=product_id,
                        channel=self.channel,
                        channel_variant_id=rv.id,
                    )
                    if mapping is None:
                        logger.debug(f"No mapping for {self.channel} variant {rv.id} of product {product_id}")
                        continue
                    await self._apply_remote_variant(repo, remote, rv, mapping)
                    updated += 1

                await repo.add_sync_log(
                    channel=self.channel,
                    operation="update",
                    status=LOG_SUCCESS,
                    message=f"Updated product {product.name} from {self.channel}",
                    details={"remote_id": remote.id, "variants_updated": updated},
                    product_id=product_id,
                )
        except Exception as e:
            logger.error(f"Failed to update product {product_id} from {self.channel}: {e}")
            await self.store.log_sync(
                channel=self.channel,
                operation="update",
                status=LOG_FAILED,
                message=f"Failed to update product {product_id} from {self.channel}: {e}",
                details={"remote_id": _remote_id_of(payload), "error": str(e)},
                product_id=product_id if not isinstance(e, NotFoundError) else None,
            )
            raise
        return product

    async def _apply_remote_variant(
        self,
        repo: CatalogRepository,
        remote: RemoteProduct,
        rv: RemoteVariant,
        mapping: ChannelMapping,
    ) -> None:
        variant = await repo.get_variant(mapping.variant_id)
        variant.name = rv.resolved_name()
        variant.size = rv.size
        variant.color = rv.color
        variant.price = rv.price_or_zero
        variant.weight = rv.weight

        mirror = await repo.get_or_create_inventory(
            variant_id=variant.id,
            channel=self.channel,
            channel_product_id=remote.id,
        )
        mirror.channel_product_id = remote.id
        mirror.set_levels(rv.quantity)
        internal = await repo.get_or_create_inventory(variant_id=variant.id, channel=CHANNEL_INTERNAL)
        internal.set_levels(rv.quantity)

        mapping.channel_product_id = remote.id
        mapping.mark_synced(rv.raw)

    async def update_to_remote(self, product_id: int, update: ProductUpdate | dict[str, Any]) -> RemoteProduct:
        """Push local product fields to the mapped remote product."""
        if not isinstance(update, ProductUpdate):
            try:
                update = ProductUpdate.model_validate(update)
            except PydanticValidationError as e:
                raise ValidationError(
                    f"Invalid product update for product {product_id}",
                    detail={"errors": e.errors(include_url=False, include_context=False)},
                ) from e

        async with self.store.transaction() as repo:
            product = await repo.get_product(product_id)
            mappings = await repo.mappings_for_product(product_id, self.channel)
            variants = await repo.get_variants(product_id)
        remote_product_id = next((m.channel_product_id for m in mappings if m.channel_product_id), None)
        if remote_product_id is None:
            raise NotFoundError(f"Product {product_id} has no {self.channel} mapping")

        sku_by_variant = {v.id: v.sku for v in variants}
        variant_ids_by_sku = {
            sku_by_variant[m.variant_id]: m.channel_variant_id
            for m in mappings
            if m.channel_variant_id and m.variant_id in sku_by_variant
        }
        payload = build_update_payload(remote_product_id, update, variant_ids_by_sku, product.sku)
        mapping_ids = [m.id for m in mappings]

        try:
            response = await self.client.update_product(remote_product_id, payload)
            remote = parse_remote_product(response)
        except Exception as e:
            logger.error(f"Failed to update {self.channel} product {remote_product_id}: {e}")
            async with self.store.transaction() as repo:
                for mapping_id in mapping_ids:
                    (await repo.get_mapping_by_id(mapping_id, for_update=True)).mark_failed()
                await repo.add_sync_log(
                    channel=self.channel,
                    operation="update_to_remote",
                    status=LOG_FAILED,
                    message=f"Failed to update product {update.name} in {self.channel}: {e}",
                    details={"remote_id": remote_product_id, "error": str(e)},
                    product_id=product_id,
                )
            raise

        async with self.store.transaction() as repo:
            for mapping_id in mapping_ids:
                mapping = await repo.get_mapping_by_id(mapping_id, for_update=True)
                rv = remote.variant_by_id(mapping.channel_variant_id) if mapping.channel_variant_id else None
                mapping.mark_synced(rv.raw if rv else None)
            await repo.add_sync_log(
                channel=self.channel,
                operation="update_to_remote",
                status=LOG_SUCCESS,
                message=f"Updated product {update.name} in {self.channel}",
                details={"remote_id": remote.id, "variants_sent": len(payload["variants"])},
                product_id=product_id,
            )
        return remote

    # ============================================================
    # Deletions
    # ============================================================

    async def mark_product_deleted(self, product_id: int) -> Product:
        """Soft-delete a product. Idempotent."""
        async with self.store.transaction() as repo:
            product = await repo.get_product(product_id)
            if product.status != "deleted":
                product.status = "deleted"
                await repo.add_sync_log(
                    channel=self.channel,
                    operation="delete_sync",
                    status=LOG_SUCCESS,
                    message=f"Marked product {product.name} as deleted",
                    product_id=product_id,
                )
        return product

    async def cleanup_missing_remote_products(self, limit: int = 250) -> CleanupResult:
        """Soft-delete mapped products that are absent from the remote listing."""
        payloads = await self.client.list_products(limit)
        present = {rid for rid in (_remote_id_of(p) for p in payloads) if rid}
        return await self._delete_missing(present)

    async def _delete_missing(self, present_remote_ids: set[str]) -> CleanupResult:
        result = CleanupResult()
        async with self.store.transaction() as repo:
            known = await repo.product_ids_by_remote_id(self.channel)
            result.checked = len(known)
            for remote_id, product_id in known.items():
                if remote_id in present_remote_ids:
                    continue
                product = await repo.get_product(product_id)
                if product.status == "deleted":
                    continue
                product.status = "deleted"
                result.deleted += 1
                await repo.add_sync_log(
                    channel=self.channel,
                    operation="delete_sync",
                    status=LOG_SUCCESS,
                    message=f"Product {product.name} no longer exists in {self.channel}; marked deleted",
                    details={"remote_id": remote_id},
                    product_id=product_id,
                )
        if result.deleted:
            logger.info(f"Marked {result.deleted} products deleted (missing from {self.channel})")
        return result

    # ============================================================
    # Inventory
    # ============================================================

    async def ensure_internal_inventory_exists(self) -> int:
        """Create empty internal inventory records for variants lacking one."""
        async with self.store.transaction() as repo:
            missing = await repo.variants_missing_inventory(CHANNEL_INTERNAL)
            created = 0
            for variant in missing:
                if await repo.try_create_inventory(variant_id=variant.id, channel=CHANNEL_INTERNAL):
                    created += 1
        if created:
            logger.info(f"Created {created} missing internal inventory records")
        return created

    async def sync_inventory_read_only(self, cancel: CancelToken | None = None) -> ReadOnlySyncResult:
        """Pull remote inventory into the mirror and internal records. Never pushes."""
        async with self.lease.hold(INVENTORY_SCOPE, self.lease_ttl_seconds):
            await self.ensure_internal_inventory_exists()

            async with self.store.transaction() as repo:
                mappings = await repo.mappings_by_channel(self.channel)
            result = ReadOnlySyncResult(total=len(mappings))
            ready = [m for m in mappings if m.channel_product_id and m.channel_variant_id]
            result.skipped = len(mappings) - len(ready)
            logger.info(f"Read-only inventory sync: {len(ready)} mapped variants ({result.skipped} missing ids)")

            async def pull(mapping: ChannelMapping) -> None:
                try:
                    inventory = await self.client.get_inventory(mapping.channel_product_id, mapping.channel_variant_id)
                    if inventory is None:
                        raise NotFoundError(
                            f"No {self.channel} inventory for variant {mapping.channel_variant_id}"
                        )
                    async with self.store.transaction() as repo:
                        mirror = await repo.get_or_create_inventory(
                            variant_id=mapping.variant_id,
                            channel=self.channel,
                            channel_product_id=mapping.channel_product_id,
                        )
                        mirror.set_levels(inventory.quantity, inventory.reserved)
                        internal = await repo.get_or_create_inventory(
                            variant_id=mapping.variant_id,
                            channel=CHANNEL_INTERNAL,
                        )
                        internal.set_levels(inventory.quantity, inventory.reserved)
                        (await repo.get_mapping_by_id(mapping.id, for_update=True)).mark_synced()
                    result.synced += 1
                except Exception as e:
                    logger.warning(f"Inventory pull failed for variant {mapping.variant_id}: {e}")
                    result.failed += 1
                    result.errors.append(self._item_error(mapping, e))
                    await self._mark_mapping_failed(mapping.id)

            result.cancelled = await self._run_batched(ready, pull, cancel)

            await self.store.log_sync(
                channel=self.channel,
                operation="inventory_sync_read_only",
                status=LOG_SUCCESS if result.failed == 0 else LOG_PARTIAL,
                message=(
                    f"Read-only inventory sync: {result.synced} synced, {result.failed} failed, "
                    f"{result.skipped} skipped"
                ),
                details=result.to_dict(),
            )
        logger.info(f"Read-only inventory sync done: synced={result.synced} failed={result.failed}")
        return result

    async def sync_inventory_bidirectional(self, cancel: CancelToken | None = None) -> BidirectionalSyncResult:
        """Pull mirror levels into the internal ledger, then push internal levels to the channel.

        The pull phase completes before the push phase starts. Stale remote
        variants mark their mapping failed and count as skipped.
        """
        async with self.lease.hold(INVENTORY_SCOPE, self.lease_ttl_seconds):
            await self.ensure_internal_inventory_exists()
            result = BidirectionalSyncResult()

            # Pull: remote mirror -> internal
            async with self.store.transaction() as repo:
                mirrors = await repo.list_inventory(self.channel)

            async def pull(mirror: InventoryRecord) -> None:
                try:
                    async with self.store.transaction() as repo:
                        internal = await repo.get_or_create_inventory(
                            variant_id=mirror.variant_id,
                            channel=CHANNEL_INTERNAL,
                        )
                        internal.set_levels(mirror.quantity, mirror.reserved)
                    result.synced_from_remote += 1
                except Exception as e:
                    logger.warning(f"Inventory pull failed for variant {mirror.variant_id}: {e}")
                    result.failed += 1
                    result.errors.append({"variant_id": mirror.variant_id, "phase": "pull", "error": str(e)})

            result.cancelled = await self._run_batched(mirrors, pull, cancel, delay=0)

            # Push: internal -> remote
            if not result.cancelled:
                async with self.store.transaction() as repo:
                    internals = await repo.list_inventory(CHANNEL_INTERNAL)
                result.cancelled = await self._run_batched(
                    internals,
                    lambda record: self._push_one(record, result),
                    cancel,
                )

            await self.store.log_sync(
                channel=self.channel,
                operation="bidirectional_sync",
                status=LOG_SUCCESS if result.failed == 0 else LOG_PARTIAL,
                message=(
                    f"Bidirectional inventory sync: {result.synced_from_remote} pulled, "
                    f"{result.synced_to_remote} pushed, {result.failed} failed, {result.skipped} skipped"
                ),
                details=result.to_dict(),
            )
        logger.info(
            f"Bidirectional inventory sync done: pulled={result.synced_from_remote} "
            f"pushed={result.synced_to_remote} failed={result.failed} skipped={result.skipped}"
        )
        return result

    async def _push_one(self, internal: InventoryRecord, result: BidirectionalSyncResult) -> None:
        async with self.store.transaction() as repo:
            mirror = await repo.get_inventory(internal.variant_id, self.channel)
            mapping = await repo.get_mapping(internal.variant_id, self.channel)
        if mirror is None:
            # Variant never published to this channel.
            return
        if mapping is None or not mapping.channel_variant_id:
            logger.info(f"No {self.channel} mapping for variant {internal.variant_id}, skipping push")
            result.skipped += 1
            return

        try:
            if not await self.client.variant_exists(mapping.channel_variant_id):
                raise StaleReferenceError(
                    f"{self.channel} variant {mapping.channel_variant_id} no longer exists",
                    remote_id=mapping.channel_variant_id,
                )
            await self.client.set_inventory(mapping.channel_variant_id, internal.available)
            async with self.store.transaction() as repo:
                mirror = await repo.get_or_create_inventory(
                    variant_id=internal.variant_id,
                    channel=self.channel,
                    channel_product_id=mapping.channel_product_id,
                )
                mirror.set_levels(internal.quantity, internal.reserved)
                (await repo.get_mapping_by_id(mapping.id, for_update=True)).mark_synced()
            result.synced_to_remote += 1
        except StaleReferenceError as e:
            logger.warning(f"Skipping variant {internal.variant_id}: {e}")
            result.skipped += 1
            result.errors.append(self._item_error(mapping, e))
            await self._mark_mapping_failed(mapping.id)
        except Exception as e:
            logger.warning(f"Inventory push failed for variant {internal.variant_id}: {e}")
            result.failed += 1
            result.errors.append(self._item_error(mapping, e))
            await self._mark_mapping_failed(mapping.id)

    # ============================================================
    # Helpers
    # ============================================================

    async def _run_batched(
        self,
        items: Sequence[T],
        handle: Callable[[T], Awaitable[None]],
        cancel: CancelToken | None,
        *,
        delay: float | None = None,
    ) -> bool:
        """Process `items` in batches. Returns True if cancelled at a batch boundary."""
        delay = self.batch_delay_seconds if delay is None else delay
        for start in range(0, len(items), self.batch_size):
            if cancel is not None and cancel.cancelled:
                logger.warning(f"Sync cancelled after {start} of {len(items)} items")
                return True
            if start and delay > 0:
                await asyncio.sleep(delay)
            for item in items[start : start + self.batch_size]:
                await handle(item)
        return False

    async def _mark_mapping_failed(self, mapping_id: int) -> None:
        try:
            async with self.store.transaction() as repo:
                (await repo.get_mapping_by_id(mapping_id, for_update=True)).mark_failed()
        except Exception as e:
            logger.exception(f"Could not mark mapping {mapping_id} failed: {e}")

    @staticmethod
    def _item_error(mapping: ChannelMapping, error: Exception) -> dict[str, Any]:
        return {
            "mapping_id": mapping.id,
            "variant_id": mapping.variant_id,
            "remote_variant_id": mapping.channel_variant_id,
            "error": str(error),
        }

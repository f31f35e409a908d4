"""SQLAlchemy ORM models.

Models represent database tables:
- products / product_variants: Unified catalog
- inventory: Stock levels per (variant, channel)
- channel_mappings: Local variant <-> remote identifiers
- sync_logs: Append-only reconciliation audit trail
"""

from catalog_sync.models.channel_mapping import ChannelMapping
from catalog_sync.models.inventory import InventoryRecord
from catalog_sync.models.product import Product, Variant
from catalog_sync.models.sync_log import SyncLogEntry

__all__ = ["ChannelMapping", "InventoryRecord", "Product", "SyncLogEntry", "Variant"]

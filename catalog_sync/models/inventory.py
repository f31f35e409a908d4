"""InventoryRecord model.

One row per (variant, channel). The internal ledger and the remote channel
each keep their own row, so a variant synced to Shopify has exactly two.

Invariant: available = quantity - reserved, and available >= 0. All writers go
through `set_levels`, and the table carries CHECK constraints as a backstop.
"""

from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from catalog_sync.stores.postgres import Base

CHANNEL_INTERNAL = "internal"
CHANNEL_SHOPIFY = "shopify"


class InventoryRecord(Base):
    """Stock levels of one variant on one channel."""

    __tablename__ = "inventory"
    __table_args__ = (
        UniqueConstraint("variant_id", "channel", name="uq_inventory_variant_channel"),
        CheckConstraint("reserved >= 0", name="ck_inventory_reserved_non_negative"),
        CheckConstraint("available >= 0", name="ck_inventory_available_non_negative"),
        CheckConstraint("available = quantity - reserved", name="ck_inventory_available_balance"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    variant_id: Mapped[int] = mapped_column(ForeignKey("product_variants.id"), index=True)
    channel: Mapped[str] = mapped_column(String(50), index=True)  # internal, shopify
    channel_product_id: Mapped[str | None] = mapped_column(String(100))

    quantity: Mapped[int] = mapped_column(Integer, default=0)
    reserved: Mapped[int] = mapped_column(Integer, default=0)  # held for pending orders
    available: Mapped[int] = mapped_column(Integer, default=0)  # quantity - reserved

    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Optimistic locking: concurrent writers on the same row raise StaleDataError.
    version: Mapped[int] = mapped_column(Integer, default=1)
    __mapper_args__ = {"version_id_col": version}

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    def set_levels(self, quantity: int, reserved: int = 0) -> None:
        """Set stock levels, keeping available = quantity - reserved >= 0.

        Remote channels may report oversold (negative) stock; it is clamped to
        zero, and reservations can never exceed what is on hand.
        """
        quantity = max(int(quantity or 0), 0)
        reserved = min(max(int(reserved or 0), 0), quantity)
        self.quantity = quantity
        self.reserved = reserved
        self.available = quantity - reserved
        self.last_sync_at = datetime.now(timezone.utc)

    def levels(self) -> tuple[int, int, int]:
        """(quantity, reserved, available) snapshot."""
        return self.quantity, self.reserved, self.available

    def __repr__(self) -> str:
        return f"<InventoryRecord variant={self.variant_id} {self.channel} available={self.available}>"

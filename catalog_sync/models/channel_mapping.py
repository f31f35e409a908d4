"""ChannelMapping model.

Binds a local (product, variant) pair to its remote identifiers, caches the
last remote payload, and tracks the reconciliation status:

    pending --first successful push/pull--> synced
    synced  --stale remote / push error-->  failed
    failed  --next successful retry-->      synced

Mappings are never deleted; failed ones stay visible for retry and audit.
"""

import json
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from catalog_sync.stores.postgres import Base

SYNC_PENDING = "pending"
SYNC_SYNCED = "synced"
SYNC_FAILED = "failed"


class ChannelMapping(Base):
    """Local variant <-> remote variant binding."""

    __tablename__ = "channel_mappings"
    __table_args__ = (UniqueConstraint("variant_id", "channel", name="uq_channel_mapping_variant_channel"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), index=True)
    variant_id: Mapped[int] = mapped_column(ForeignKey("product_variants.id"), index=True)
    channel: Mapped[str] = mapped_column(String(50), index=True)

    channel_product_id: Mapped[str | None] = mapped_column(String(100), index=True)
    channel_variant_id: Mapped[str | None] = mapped_column(String(100), index=True)

    # Last remote payload for this variant (JSON-serialized text)
    channel_data_json: Mapped[str | None] = mapped_column(Text)

    sync_status: Mapped[str] = mapped_column(String(20), default=SYNC_PENDING)
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

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

    @property
    def channel_data(self) -> dict[str, Any] | None:
        if not self.channel_data_json:
            return None
        return json.loads(self.channel_data_json)

    def mark_synced(self, channel_data: dict[str, Any] | None = None) -> None:
        if channel_data is not None:
            self.channel_data_json = json.dumps(channel_data, ensure_ascii=False, default=str)
        self.sync_status = SYNC_SYNCED
        self.last_sync_at = datetime.now(timezone.utc)

    def mark_failed(self) -> None:
        self.sync_status = SYNC_FAILED
        self.last_sync_at = datetime.now(timezone.utc)

    def __repr__(self) -> str:
        return f"<ChannelMapping variant={self.variant_id} {self.channel}:{self.channel_variant_id} {self.sync_status}>"

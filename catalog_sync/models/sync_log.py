"""SyncLogEntry model.

Append-only audit trail: one row per reconciliation attempt. It is the only
durable record of why catalog or inventory state changed.
"""

import json
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from catalog_sync.stores.postgres import Base

LOG_SUCCESS = "success"
LOG_FAILED = "failed"
LOG_PARTIAL = "partial"


class SyncLogEntry(Base):
    """Immutable record of a reconciliation attempt."""

    __tablename__ = "sync_logs"

    id: Mapped[int] = mapped_column(primary_key=True)
    channel: Mapped[str] = mapped_column(String(50), index=True)
    operation: Mapped[str] = mapped_column(String(50), index=True)  # import, export, update, ...

    product_id: Mapped[int | None] = mapped_column(ForeignKey("products.id"), index=True)
    variant_id: Mapped[int | None] = mapped_column(ForeignKey("product_variants.id"))

    status: Mapped[str] = mapped_column(String(20), index=True)  # success, failed, partial
    message: Mapped[str | None] = mapped_column(Text)
    details_json: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        index=True,
    )

    @property
    def details(self) -> dict[str, Any] | None:
        if not self.details_json:
            return None
        return json.loads(self.details_json)

    def __repr__(self) -> str:
        return f"<SyncLogEntry {self.operation} {self.status}>"

"""Request/response schemas for job and integration endpoints."""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class JobOptionsRequest(BaseModel):
    """Options shared by every enqueue endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    priority: int | None = Field(default=None, ge=0, le=10)
    delay: float | None = Field(default=None, ge=0, description="Delay in seconds before the job runs")

    def options(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class InventorySyncRequest(JobOptionsRequest):
    bidirectional: bool = False


class ProductSyncRequest(JobOptionsRequest):
    operation: str = Field(description="create, update, import or delete")
    product_id: int | None = Field(default=None, validation_alias=AliasChoices("product_id", "productId"))
    product: dict[str, Any] | None = Field(default=None, description="Remote product payload (import)")
    update: dict[str, Any] | None = Field(default=None, description="Product fields to push (update)")

    def data(self) -> dict[str, Any]:
        return {"product_id": self.product_id, "product": self.product, "update": self.update}


class ShopifyImportRequest(JobOptionsRequest):
    limit: int = Field(default=50, ge=1, le=1000)
    sync_deletions: bool = Field(default=False, validation_alias=AliasChoices("sync_deletions", "syncDeletions"))


class ScheduleRequest(BaseModel):
    job_name: str = Field(validation_alias=AliasChoices("job_name", "jobName"))
    cron_expression: str = Field(validation_alias=AliasChoices("cron_expression", "cronExpression"))


class CleanupRequest(BaseModel):
    retention_hours: int | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("retention_hours", "retentionHours"),
    )


class JobHandleResponse(BaseModel):
    success: bool = True
    job_id: str
    immediate: bool
    result: Any = None


class RecurringJobResponse(BaseModel):
    name: str
    queue: str
    cron: str
    next_run_at: str
    payload: dict[str, Any] = Field(default_factory=dict)


class BulkImportRequest(BaseModel):
    limit: int = Field(default=50, ge=1, le=1000)
    sync_deletions: bool = Field(default=False, validation_alias=AliasChoices("sync_deletions", "syncDeletions"))


class CleanupMissingRequest(BaseModel):
    limit: int = Field(default=250, ge=1, le=1000)

"""Read schemas for catalog endpoints."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict


class VariantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    sku: str
    name: str | None = None
    size: str | None = None
    color: str | None = None
    price: Decimal | None = None
    weight: Decimal | None = None
    images: list[str] = []


class ProductOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sku: str
    name: str
    description: str | None = None
    category: str | None = None
    brand: str | None = None
    base_price: Decimal | None = None
    status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class InventoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    variant_id: int
    channel: str
    quantity: int
    reserved: int
    available: int
    last_sync_at: datetime | None = None


class ChannelMappingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    variant_id: int
    channel: str
    channel_product_id: str | None = None
    channel_variant_id: str | None = None
    sync_status: str
    last_sync_at: datetime | None = None


class ProductDetail(ProductOut):
    variants: list[VariantOut] = []
    inventory: list[InventoryOut] = []
    mappings: list[ChannelMappingOut] = []


class ProductListResponse(BaseModel):
    products: list[ProductOut]
    total: int
    limit: int
    offset: int


class SyncLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    channel: str
    operation: str
    product_id: int | None = None
    variant_id: int | None = None
    status: str
    message: str | None = None
    details: dict[str, Any] | None = None
    created_at: datetime | None = None

"""Pydantic schemas for API request/response validation and remote payloads."""

from catalog_sync.schemas.catalog import (
    ChannelMappingOut,
    InventoryOut,
    ProductDetail,
    ProductListResponse,
    ProductOut,
    SyncLogOut,
    VariantOut,
)
from catalog_sync.schemas.common import ErrorDetail, ErrorResponse
from catalog_sync.schemas.remote import (
    ProductUpdate,
    RemoteInventory,
    RemoteProduct,
    RemoteVariant,
    VariantUpdate,
    parse_remote_product,
)

__all__ = [
    "ChannelMappingOut",
    "ErrorDetail",
    "ErrorResponse",
    "InventoryOut",
    "ProductDetail",
    "ProductListResponse",
    "ProductOut",
    "ProductUpdate",
    "RemoteInventory",
    "RemoteProduct",
    "RemoteVariant",
    "SyncLogOut",
    "VariantOut",
    "VariantUpdate",
    "parse_remote_product",
]

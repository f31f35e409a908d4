"""Typed views of remote channel (Shopify) payloads.

The remote client returns wire dicts; everything the engine reads from them
goes through these models so required fields and fallback rules live in one
place:

Required:
- product `id` and `title` (a missing/empty value fails with ValidationError)

Optional, with fallbacks:
- product SKU: its "sku:<SKU>" tag (written on deploy), else first variant
  SKU, else "SHOPIFY-<product id>"
- product name: stripped title, else "Shopify Product <id>"
- variant SKU: its SKU, else "<product sku>-<variant id>"
- variant name: stripped title, else "Variant <id>"
- prices: "0.00"; size: "Standard"; color: "Default"
- category: "Uncategorized"; brand: "Unknown"
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from catalog_sync.errors import ValidationError

ZERO_PRICE = Decimal("0.00")
SKU_TAG_PREFIX = "sku:"


def _id_to_str(v: object) -> object:
    # Shopify ids are integers on the wire; we store them as strings.
    if isinstance(v, bool):
        return v
    if isinstance(v, int):
        return str(v)
    if isinstance(v, str):
        return v.strip() or None
    return v


def _to_decimal(v: object) -> Decimal | None:
    if v is None or v == "":
        return None
    try:
        return Decimal(str(v))
    except (InvalidOperation, ValueError):
        return None


def _clean(value: str | None) -> str:
    return (value or "").strip()


class RemoteImage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    src: str | None = None
    alt: str | None = None
    variant_ids: list[str] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: object) -> object:
        return _id_to_str(v)

    @field_validator("variant_ids", mode="before")
    @classmethod
    def _coerce_variant_ids(cls, v: object) -> object:
        if v is None:
            return []
        if isinstance(v, list):
            return [str(x) for x in v]
        return v


class RemoteVariant(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    sku: str | None = None
    title: str | None = None
    price: Decimal | None = None
    weight: Decimal | None = None
    inventory_quantity: int | None = None
    inventory_item_id: str | None = None
    option1: str | None = None
    option2: str | None = None
    image_id: str | None = None
    image: str | None = None

    raw: dict[str, Any] = Field(default_factory=dict, exclude=True, repr=False)

    @field_validator("id", "inventory_item_id", "image_id", mode="before")
    @classmethod
    def _coerce_ids(cls, v: object) -> object:
        return _id_to_str(v)

    @field_validator("price", "weight", mode="before")
    @classmethod
    def _coerce_decimal(cls, v: object) -> Decimal | None:
        return _to_decimal(v)

    def resolved_sku(self, product_sku: str) -> str:
        return _clean(self.sku) or f"{product_sku}-{self.id}"

    def resolved_name(self) -> str:
        return _clean(self.title) or f"Variant {self.id}"

    @property
    def size(self) -> str:
        return _clean(self.option1) or "Standard"

    @property
    def color(self) -> str:
        return _clean(self.option2) or "Default"

    @property
    def price_or_zero(self) -> Decimal:
        return self.price if self.price is not None else ZERO_PRICE

    @property
    def quantity(self) -> int:
        return int(self.inventory_quantity or 0)

    def image_refs(self, product_images: list[RemoteImage]) -> list[str]:
        """Image references for this variant.

        Order of preference: the variant's own image id, its image URL, then
        product images linked to it (or all product images when none are
        linked to specific variants).
        """
        if self.image_id:
            return [self.image_id]
        if self.image:
            return [self.image]
        matching = [img for img in product_images if not img.variant_ids or (self.id in img.variant_ids)]
        return [img.src or img.id or "" for img in matching if img.src or img.id]


class RemoteProduct(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    title: str
    body_html: str | None = None
    vendor: str | None = None
    product_type: str | None = None
    tags: str | None = None
    variants: list[RemoteVariant] = Field(default_factory=list)
    images: list[RemoteImage] = Field(default_factory=list)

    raw: dict[str, Any] = Field(default_factory=dict, exclude=True, repr=False)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: object) -> object:
        return _id_to_str(v)

    @field_validator("tags", mode="before")
    @classmethod
    def _join_tags(cls, v: object) -> object:
        if isinstance(v, list):
            return ", ".join(str(t) for t in v)
        return v

    @field_validator("variants", "images", mode="before")
    @classmethod
    def _none_to_list(cls, v: object) -> object:
        return [] if v is None else v

    @property
    def tagged_sku(self) -> str | None:
        for tag in (self.tags or "").split(","):
            tag = tag.strip()
            if tag.lower().startswith(SKU_TAG_PREFIX):
                sku = tag[len(SKU_TAG_PREFIX) :].strip()
                if sku:
                    return sku
        return None

    def resolved_sku(self, channel_prefix: str = "SHOPIFY") -> str:
        if self.tagged_sku:
            return self.tagged_sku
        first = self.variants[0].sku if self.variants else None
        return _clean(first) or f"{channel_prefix}-{self.id}"

    def resolved_name(self) -> str:
        return _clean(self.title) or f"Shopify Product {self.id}"

    @property
    def description(self) -> str:
        return _clean(self.body_html)

    @property
    def category(self) -> str:
        return _clean(self.product_type) or "Uncategorized"

    @property
    def brand(self) -> str:
        return _clean(self.vendor) or "Unknown"

    @property
    def base_price(self) -> Decimal:
        first = self.variants[0].price if self.variants else None
        return first if first is not None else ZERO_PRICE

    def variant_by_id(self, variant_id: str) -> RemoteVariant | None:
        for v in self.variants:
            if v.id == variant_id:
                return v
        return None


class RemoteInventory(BaseModel):
    """Inventory levels as reported by the remote channel."""

    quantity: int = 0
    available: int = 0
    reserved: int = 0


def parse_remote_product(payload: dict[str, Any] | None) -> RemoteProduct:
    """Validate a remote product payload.

    Raises:
        ValidationError: when the payload is not a dict or lacks id/title.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid remote product data: payload is not an object")

    remote_id = _id_to_str(payload.get("id"))
    if not remote_id:
        raise ValidationError("Invalid remote product data: missing product ID")
    title = payload.get("title")
    if not isinstance(title, str) or not title:
        raise ValidationError(
            f"Invalid remote product data: missing title for product {remote_id}",
            remote_id=str(remote_id),
        )

    try:
        product = RemoteProduct.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid remote product data for product {remote_id}: {e.error_count()} invalid field(s)",
            remote_id=str(remote_id),
            detail={"errors": e.errors(include_url=False, include_context=False)},
        ) from e

    product.raw = payload
    raw_variants = payload.get("variants") or []
    for variant, raw in zip(product.variants, raw_variants):
        if isinstance(raw, dict):
            variant.raw = raw
    return product


# ============================================================
# Outbound payloads (local -> remote)
# ============================================================


class VariantUpdate(BaseModel):
    """Local variant fields pushed to the remote channel."""

    sku: str
    name: str | None = None
    price: Decimal | None = None
    weight: Decimal | None = None


class ProductUpdate(BaseModel):
    """Local product fields pushed to the remote channel."""

    name: str
    description: str | None = None
    brand: str | None = None
    category: str | None = None
    variants: list[VariantUpdate] = Field(default_factory=list)


def _price_str(value: Decimal | None) -> str:
    return f"{(value if value is not None else ZERO_PRICE):.2f}"


def _tags(category: str | None, brand: str | None, sku: str | None = None) -> str:
    sku_tag = f"{SKU_TAG_PREFIX}{sku}" if sku else None
    return ", ".join(t for t in (category, brand, sku_tag) if t)


def build_create_payload(product: Any, variants: list[Any]) -> dict[str, Any]:
    """Shopify product-create body for a local product and its variants.

    Inventory is not sent here; it is provisioned by the inventory sync.
    """
    images = []
    for v in variants:
        refs = v.images
        if refs:
            images.append({"src": refs[0], "alt": v.name})
    return {
        "title": product.name,
        "body_html": product.description or "",
        "vendor": product.brand,
        "product_type": product.category,
        "tags": _tags(product.category, product.brand, product.sku),
        "variants": [
            {
                "title": v.name,
                "price": _price_str(v.price),
                "sku": v.sku,
                "inventory_quantity": 0,
                "weight": float(v.weight or 0),
                "weight_unit": "lb",
            }
            for v in variants
        ],
        "images": images,
    }


def build_update_payload(
    remote_product_id: str,
    update: ProductUpdate,
    variant_ids_by_sku: dict[str, str],
    product_sku: str | None = None,
) -> dict[str, Any]:
    """Shopify product-update body.

    Only variants with a known remote id are sent; each carries its own id.
    Tags are rewritten, so the product SKU tag is sent again.
    """
    return {
        "id": remote_product_id,
        "title": update.name,
        "body_html": update.description or "",
        "vendor": update.brand,
        "product_type": update.category,
        "tags": _tags(update.category, update.brand, product_sku),
        "variants": [
            {
                "id": variant_ids_by_sku[v.sku],
                "title": v.name,
                "price": _price_str(v.price),
                "sku": v.sku,
                "weight": float(v.weight or 0),
                "weight_unit": "lb",
            }
            for v in update.variants
            if v.sku in variant_ids_by_sku
        ],
    }

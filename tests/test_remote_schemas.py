"""Tests for remote payload parsing and outbound payload builders."""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from catalog_sync.errors import ValidationError
from catalog_sync.schemas.remote import (
    ProductUpdate,
    build_create_payload,
    build_update_payload,
    parse_remote_product,
)


def test_parse_requires_id():
    with pytest.raises(ValidationError) as exc:
        parse_remote_product({"title": "No id"})
    assert "missing product ID" in exc.value.message


def test_parse_requires_title():
    with pytest.raises(ValidationError) as exc:
        parse_remote_product({"id": 42, "title": ""})
    assert exc.value.remote_id == "42"


def test_parse_rejects_non_object():
    with pytest.raises(ValidationError):
        parse_remote_product(None)


def test_parse_applies_fallbacks():
    """Optional fields fall back to documented defaults."""
    remote = parse_remote_product(
        {
            "id": 7,
            "title": "  Mug  ",
            "variants": [{"id": 71, "sku": "", "price": None, "title": None}],
        }
    )
    assert remote.id == "7"
    assert remote.resolved_name() == "Mug"
    assert remote.resolved_sku("SHOPIFY") == "SHOPIFY-7"
    assert remote.category == "Uncategorized"
    assert remote.brand == "Unknown"
    assert remote.base_price == Decimal("0.00")

    variant = remote.variants[0]
    assert variant.id == "71"
    assert variant.resolved_sku("SHOPIFY-7") == "SHOPIFY-7-71"
    assert variant.resolved_name() == "Variant 71"
    assert variant.size == "Standard"
    assert variant.color == "Default"
    assert variant.price_or_zero == Decimal("0.00")
    assert variant.quantity == 0


def test_parse_keeps_raw_variant_payloads():
    raw_variant = {"id": 11, "sku": "A-1", "price": "12.50", "inventory_quantity": 4, "option1": "M"}
    remote = parse_remote_product({"id": 1, "title": "Tee", "variants": [raw_variant]})
    assert remote.variants[0].raw == raw_variant
    assert remote.variants[0].price == Decimal("12.50")
    assert remote.variants[0].size == "M"
    assert remote.resolved_sku() == "A-1"


def test_variant_image_refs_prefers_variant_image():
    remote = parse_remote_product(
        {
            "id": 1,
            "title": "Tee",
            "variants": [{"id": 11, "image_id": 500}, {"id": 12}],
            "images": [
                {"id": 500, "src": "https://cdn/a.png", "variant_ids": [11]},
                {"id": 501, "src": "https://cdn/b.png", "variant_ids": []},
            ],
        }
    )
    assert remote.variants[0].image_refs(remote.images) == ["500"]
    assert remote.variants[1].image_refs(remote.images) == ["https://cdn/b.png"]


@pytest.mark.parametrize(
    "tags,expected",
    [
        ("Tops, Acme, sku:TEE", "TEE"),
        (["Tops", "SKU: TEE-2"], "TEE-2"),
        ("Tops, sku:", "FIRST-1"),
        (None, "FIRST-1"),
    ],
)
def test_product_sku_prefers_sku_tag(tags, expected):
    remote = parse_remote_product(
        {"id": 9, "title": "Tee", "tags": tags, "variants": [{"id": 91, "sku": "FIRST-1"}]}
    )
    assert remote.resolved_sku() == expected


def test_build_create_payload():
    product = SimpleNamespace(sku="T", name="Tee", description=None, brand="Acme", category="Tops")
    variants = [
        SimpleNamespace(sku="T-S", name="Small", price=Decimal("9.5"), weight=None, images=["https://cdn/s.png"]),
        SimpleNamespace(sku="T-M", name="Medium", price=None, weight=Decimal("1.2"), images=[]),
    ]
    payload = build_create_payload(product, variants)
    assert payload["title"] == "Tee"
    assert payload["body_html"] == ""
    assert payload["tags"] == "Tops, Acme, sku:T"
    assert [v["price"] for v in payload["variants"]] == ["9.50", "0.00"]
    assert all(v["inventory_quantity"] == 0 for v in payload["variants"])
    assert payload["images"] == [{"src": "https://cdn/s.png", "alt": "Small"}]


def test_build_update_payload_only_sends_mapped_variants():
    update = ProductUpdate.model_validate(
        {
            "name": "Tee v2",
            "variants": [{"sku": "T-S", "price": "11"}, {"sku": "UNMAPPED", "price": "1"}],
        }
    )
    payload = build_update_payload("123", update, {"T-S": "9001"}, product_sku="T")
    assert payload["id"] == "123"
    assert payload["tags"] == "sku:T"
    assert payload["title"] == "Tee v2"
    assert payload["variants"] == [
        {"id": "9001", "title": None, "price": "11.00", "sku": "T-S", "weight": 0.0, "weight_unit": "lb"}
    ]

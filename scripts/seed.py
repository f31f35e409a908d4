#!/usr/bin/env python3
"""Seed the catalog with demo products.

Creates:
- A few apparel products with size/color variants
- Internal inventory records for each variant

Deploy them to Shopify afterwards with POST /v1/integrations/shopify/deploy/{id}
or the product-sync job ("create" operation).

The script is idempotent: products are matched by SKU and skipped if present.

Usage:
    python -m scripts.seed
"""

import asyncio
from decimal import Decimal

from dotenv import load_dotenv

from catalog_sync.models.inventory import CHANNEL_INTERNAL
from catalog_sync.settings import Settings
from catalog_sync.stores.catalog import CatalogStore
from catalog_sync.stores.postgres import create_engine, create_session_factory

load_dotenv()

# ============================================================
# Demo catalog
# ============================================================
# sku -> product fields plus (size, color, quantity) per variant

DEMO_PRODUCTS = {
    "TEE-CLASSIC": {
        "name": "Classic Cotton Tee",
        "description": "Heavyweight cotton t-shirt",
        "category": "Tops",
        "brand": "Acme",
        "price": Decimal("19.00"),
        "variants": [("S", "White", 12), ("M", "White", 20), ("L", "Black", 8)],
    },
    "HOODIE-ZIP": {
        "name": "Zip Hoodie",
        "description": "Brushed fleece zip hoodie",
        "category": "Outerwear",
        "brand": "Acme",
        "price": Decimal("54.00"),
        "variants": [("M", "Grey", 6), ("L", "Grey", 4)],
    },
    "CAP-LOGO": {
        "name": "Logo Cap",
        "description": None,
        "category": "Accessories",
        "brand": "Northwind",
        "price": Decimal("15.00"),
        "variants": [("Standard", "Navy", 30)],
    },
}


async def seed_database() -> None:
    settings = Settings()
    engine = create_engine(settings)
    store = CatalogStore(create_session_factory(engine))

    print("Seeding demo catalog...")
    try:
        async with store.transaction() as repo:
            existing, _ = await repo.list_products(limit=500, include_deleted=True)
            known = {p.sku for p in existing}

            for sku, data in DEMO_PRODUCTS.items():
                if sku in known:
                    print(f"  skip {sku} (exists)")
                    continue
                product = await repo.create_product(
                    sku=sku,
                    name=data["name"],
                    description=data["description"],
                    category=data["category"],
                    brand=data["brand"],
                    base_price=data["price"],
                )
                for size, color, quantity in data["variants"]:
                    variant = await repo.create_variant(
                        product_id=product.id,
                        sku=f"{sku}-{size}-{color}".upper(),
                        name=f"{size} / {color}",
                        size=size,
                        color=color,
                        price=data["price"],
                    )
                    await repo.create_inventory(variant_id=variant.id, channel=CHANNEL_INTERNAL, quantity=quantity)
                print(f"  added {sku} ({len(data['variants'])} variants)")
    finally:
        await engine.dispose()
    print("Done.")


if __name__ == "__main__":
    asyncio.run(seed_database())

"""Capability interface over the remote sales channel.

The reconciliation engine depends only on this protocol; `ShopifyClient` is
the production implementation and tests provide an in-memory fake.

Payload-returning methods hand back wire dicts; callers parse them with
`catalog_sync.schemas.remote.parse_remote_product`.
"""

from typing import Any, Protocol

from catalog_sync.schemas.remote import RemoteInventory


class RemoteChannelClient(Protocol):
    """What the engine needs from a remote channel."""

    name: str

    async def create_product(self, payload: dict[str, Any]) -> dict[str, Any]:
        ...

    async def update_product(self, remote_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        ...

    async def get_product(self, remote_id: str) -> dict[str, Any]:
        """Raises NotFoundError when the product does not exist."""
        ...

    async def list_products(self, limit: int) -> list[dict[str, Any]]:
        ...

    async def get_inventory(self, remote_product_id: str, remote_variant_id: str) -> RemoteInventory | None:
        """None when the product/variant or its inventory cannot be found."""
        ...

    async def set_inventory(self, remote_variant_id: str, available: int) -> dict[str, Any]:
        """Raises StaleReferenceError when the variant no longer exists."""
        ...

    async def variant_exists(self, remote_variant_id: str) -> bool:
        ...

    async def primary_location_id(self) -> str:
        ...

    async def close(self) -> None:
        ...

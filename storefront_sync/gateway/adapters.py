from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

from ..const import EntityKind
from ..models import CartRecord, EntityRecord
from .client import CommerceApiClient
from .normalise import has_collection, normalise_collection

_LOGGER = logging.getLogger(__name__)


def _segment(value: str) -> str:
    return quote(value, safe="")


class EntityGateway:
    """Per-entity view of the storefront API returning canonical collections."""

    kind: EntityKind
    base_path: str

    def __init__(self, client: CommerceApiClient) -> None:
        self.client = client

    async def _collection_from(self, body: Any) -> tuple[EntityRecord, ...]:
        # Some mutation routes only acknowledge; read back the server's view
        if has_collection(body):
            return normalise_collection(self.kind, body)
        _LOGGER.debug("%s mutation returned no collection; re-fetching", self.kind.value)
        return await self.async_fetch_all()

    async def async_fetch_all(self) -> tuple[EntityRecord, ...]:
        body = await self.client.async_request("GET", self.base_path)
        return normalise_collection(self.kind, body)

    async def async_clear(self) -> None:
        await self.client.async_request("DELETE", f"{self.base_path}/clear")

    async def async_add(self, record: EntityRecord) -> tuple[EntityRecord, ...]:
        raise NotImplementedError

    async def async_remove(self, record: EntityRecord) -> tuple[EntityRecord, ...]:
        raise NotImplementedError

    async def async_set_quantity(self, record: EntityRecord, quantity: int) -> tuple[EntityRecord, ...]:
        raise NotImplementedError(f"{self.kind.value} has no quantities")


class CartGateway(EntityGateway):
    kind = EntityKind.CART
    base_path = "/cart"

    @staticmethod
    def _line(record: EntityRecord) -> str:
        if isinstance(record, CartRecord) and record.line_id:
            return _segment(record.line_id)
        return _segment(record.identifier)

    async def async_add(self, record: EntityRecord) -> tuple[EntityRecord, ...]:
        quantity = record.quantity if isinstance(record, CartRecord) else 1
        payload = {
            "product": record.identifier,
            "quantity": quantity,
            "size": getattr(record, "size", None) or "",
            "color": getattr(record, "color", None) or "",
        }
        body = await self.client.async_request("POST", "/cart/add", payload=payload)
        return await self._collection_from(body)

    async def async_remove(self, record: EntityRecord) -> tuple[EntityRecord, ...]:
        body = await self.client.async_request("DELETE", f"/cart/remove/{self._line(record)}")
        return await self._collection_from(body)

    async def async_set_quantity(self, record: EntityRecord, quantity: int) -> tuple[EntityRecord, ...]:
        body = await self.client.async_request(
            "PUT", f"/cart/update/{self._line(record)}", payload={"quantity": quantity}
        )
        return await self._collection_from(body)


class WishlistGateway(EntityGateway):
    kind = EntityKind.WISHLIST
    base_path = "/wishlist"

    async def async_add(self, record: EntityRecord) -> tuple[EntityRecord, ...]:
        body = await self.client.async_request("POST", "/wishlist/add", payload={"productId": record.identifier})
        return await self._collection_from(body)

    async def async_remove(self, record: EntityRecord) -> tuple[EntityRecord, ...]:
        body = await self.client.async_request("DELETE", f"/wishlist/remove/{_segment(record.identifier)}")
        return await self._collection_from(body)

    async def async_toggle(self, identifier: str) -> tuple[EntityRecord, ...]:
        body = await self.client.async_request("POST", f"/wishlist/toggle/{_segment(identifier)}")
        return await self._collection_from(body)


def gateway_for(kind: EntityKind, client: CommerceApiClient) -> EntityGateway:
    if kind is EntityKind.CART:
        return CartGateway(client)
    return WishlistGateway(client)


__all__ = [
    "CartGateway",
    "EntityGateway",
    "WishlistGateway",
    "gateway_for",
]

"""Canonical cart and wishlist records shared by the gateway and synchronizers."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Any

from .const import EntityKind


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True, slots=True)
class ProductSnapshot:
    """Product fields captured when an item is added, for offline display."""

    name: str | None = None
    brand: str | None = None
    price: float = 0.0
    image: str | None = None
    category: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"price": self.price}
        for key in ("name", "brand", "image", "category"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ProductSnapshot:
        try:
            price = float(payload.get("price") or 0.0)
        except (TypeError, ValueError):
            price = 0.0
        return cls(
            name=_clean_text(payload.get("name")),
            brand=_clean_text(payload.get("brand")),
            price=price,
            image=_clean_text(payload.get("image")),
            category=_clean_text(payload.get("category")),
        )


CartKey = tuple[str, str | None, str | None]


@dataclass(frozen=True, slots=True)
class CartRecord:
    """A single cart line; the same product in two sizes is two lines."""

    identifier: str
    quantity: int = 1
    size: str | None = None
    color: str | None = None
    product: ProductSnapshot | None = None
    line_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "size", _clean_text(self.size))
        object.__setattr__(self, "color", _clean_text(self.color))

    @property
    def key(self) -> CartKey:
        return (self.identifier, self.size, self.color)

    @property
    def unit_price(self) -> float:
        return self.product.price if self.product else 0.0

    def with_quantity(self, quantity: int) -> CartRecord:
        return replace(self, quantity=quantity)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"identifier": self.identifier, "quantity": self.quantity}
        if self.size is not None:
            payload["size"] = self.size
        if self.color is not None:
            payload["color"] = self.color
        if self.product is not None:
            payload["product"] = self.product.to_dict()
        if self.line_id is not None:
            payload["line_id"] = self.line_id
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> CartRecord:
        identifier = _clean_text(payload.get("identifier"))
        if not identifier:
            raise ValueError("cart record missing identifier")
        try:
            quantity = int(payload.get("quantity", 1))
        except (TypeError, ValueError) as err:
            raise ValueError(f"invalid quantity for {identifier}") from err
        product_raw = payload.get("product")
        product = ProductSnapshot.from_dict(product_raw) if isinstance(product_raw, Mapping) else None
        return cls(
            identifier=identifier,
            quantity=quantity,
            size=payload.get("size"),
            color=payload.get("color"),
            product=product,
            line_id=_clean_text(payload.get("line_id")),
        )


@dataclass(frozen=True, slots=True)
class WishlistRecord:
    """Presence in the wishlist is the entire state of an item."""

    identifier: str

    @property
    def key(self) -> str:
        return self.identifier

    def to_dict(self) -> dict[str, Any]:
        return {"identifier": self.identifier}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | str) -> WishlistRecord:
        # Older app builds stored bare product ids
        raw = payload if isinstance(payload, str) else payload.get("identifier")
        identifier = _clean_text(raw)
        if not identifier:
            raise ValueError("wishlist record missing identifier")
        return cls(identifier=identifier)


EntityRecord = CartRecord | WishlistRecord


def record_from_dict(kind: EntityKind, payload: Any) -> EntityRecord:
    if kind is EntityKind.CART:
        if not isinstance(payload, Mapping):
            raise ValueError("cart record must be a mapping")
        return CartRecord.from_dict(payload)
    return WishlistRecord.from_dict(payload)


def dedupe_records(kind: EntityKind, records: Iterable[EntityRecord]) -> tuple[EntityRecord, ...]:
    """Return ``records`` unique by key, preserving first-seen order.

    Cart lines sharing a composite key are merged by summing quantities and
    lines that end up below one are dropped.
    """

    ordered: dict[Any, EntityRecord] = {}
    for record in records:
        existing = ordered.get(record.key)
        if existing is None:
            ordered[record.key] = record
        elif isinstance(existing, CartRecord) and isinstance(record, CartRecord):
            ordered[record.key] = existing.with_quantity(existing.quantity + record.quantity)
    if kind is EntityKind.CART:
        return tuple(rec for rec in ordered.values() if isinstance(rec, CartRecord) and rec.quantity >= 1)
    return tuple(ordered.values())


__all__ = [
    "CartKey",
    "CartRecord",
    "EntityRecord",
    "ProductSnapshot",
    "WishlistRecord",
    "dedupe_records",
    "record_from_dict",
]

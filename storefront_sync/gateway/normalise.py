"""Map the storefront API's assorted response shapes onto canonical records.

The backend answers with raw product ids in some places and populated product
documents in others, and wraps collections differently per endpoint. All of
that is absorbed here so the synchronizers only ever see
:class:`~storefront_sync.models.CartRecord` and
:class:`~storefront_sync.models.WishlistRecord`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from ..const import EntityKind
from ..models import (
    CartRecord,
    EntityRecord,
    ProductSnapshot,
    WishlistRecord,
    dedupe_records,
)

_LOGGER = logging.getLogger(__name__)

_CONTAINER_KEYS = ("wishlist", "cart", "products", "items")


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, str | bytes | bytearray)


def _text(value: Any) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


def product_identifier(value: Any) -> str | None:
    """Return the catalog id of a raw id or a populated product document."""

    if isinstance(value, Mapping):
        return _text(value.get("_id") or value.get("id"))
    return _text(value)


def _first_image(product: Mapping[str, Any]) -> str | None:
    images = product.get("images")
    if _is_sequence(images) and images:
        first = images[0]
        if isinstance(first, Mapping):
            return _text(first.get("url"))
        return _text(first)
    if isinstance(images, Mapping) and images:
        candidate = images.get("image1") or images.get("url") or next(iter(images.values()))
        return _text(candidate)
    return _text(product.get("image") or product.get("thumbnail"))


def product_snapshot(product: Any) -> ProductSnapshot | None:
    if not isinstance(product, Mapping):
        return None
    price_raw = product.get("finalPrice") or product.get("price") or product.get("mrp") or 0
    try:
        price = float(price_raw)
    except (TypeError, ValueError):
        price = 0.0
    return ProductSnapshot(
        name=_text(product.get("name")),
        brand=_text(product.get("brand")),
        price=price,
        image=_first_image(product),
        category=_text(product.get("category")),
    )


def _unwrap_items(payload: Any) -> list[Any]:
    if payload is None:
        return []
    if _is_sequence(payload):
        return list(payload)
    if isinstance(payload, Mapping):
        for key in _CONTAINER_KEYS:
            if key in payload:
                return _unwrap_items(payload[key])
        return []
    _LOGGER.debug("Ignoring unexpected collection payload of type %s", type(payload).__name__)
    return []


def _wishlist_record(item: Any) -> WishlistRecord | None:
    if isinstance(item, Mapping):
        identifier = _text(item.get("productId")) or product_identifier(item.get("product"))
        if identifier is None:
            identifier = product_identifier(item)
    else:
        identifier = _text(item)
    return WishlistRecord(identifier) if identifier else None


def _cart_record(item: Any) -> CartRecord | None:
    if not isinstance(item, Mapping):
        identifier = _text(item)
        return CartRecord(identifier) if identifier else None

    if "product" in item:
        product = item.get("product")
        identifier = product_identifier(product)
        line_id = _text(item.get("_id") or item.get("id"))
    else:
        product = item
        identifier = _text(item.get("productId")) or product_identifier(item)
        line_id = None
    if identifier is None:
        return None
    try:
        raw_quantity = item.get("quantity")
        quantity = 1 if raw_quantity is None else int(raw_quantity)
    except (TypeError, ValueError):
        quantity = 1
    return CartRecord(
        identifier=identifier,
        quantity=quantity,
        size=item.get("size"),
        color=item.get("color"),
        product=product_snapshot(product),
        line_id=line_id,
    )


def normalise_collection(kind: EntityKind, payload: Any) -> tuple[EntityRecord, ...]:
    """Return the canonical, de-duplicated collection contained in ``payload``.

    An empty or missing body is an empty collection.
    """

    builder = _cart_record if kind is EntityKind.CART else _wishlist_record
    records: list[EntityRecord] = []
    skipped = 0
    for item in _unwrap_items(payload):
        record = builder(item)
        if record is None:
            skipped += 1
            continue
        records.append(record)
    if skipped:
        _LOGGER.debug("Skipped %d %s entries without a product id", skipped, kind.value)
    return dedupe_records(kind, records)


def has_collection(payload: Any) -> bool:
    """Return ``True`` when ``payload`` carries a collection rather than an ack."""

    if _is_sequence(payload):
        return True
    if isinstance(payload, Mapping):
        return any(key in payload for key in _CONTAINER_KEYS)
    return False


__all__ = [
    "has_collection",
    "normalise_collection",
    "product_identifier",
    "product_snapshot",
]

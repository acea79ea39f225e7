"""Remote commerce gateway: HTTP client, error taxonomy and per-entity adapters."""

from .adapters import CartGateway, EntityGateway, WishlistGateway, gateway_for
from .client import CommerceApiClient
from .errors import (
    ErrorKind,
    GatewayAuthError,
    GatewayError,
    GatewayTransientError,
    GatewayUnavailableError,
    classify_status,
)
from .normalise import normalise_collection, product_snapshot

__all__ = [
    "CartGateway",
    "CommerceApiClient",
    "EntityGateway",
    "ErrorKind",
    "GatewayAuthError",
    "GatewayError",
    "GatewayTransientError",
    "GatewayUnavailableError",
    "WishlistGateway",
    "classify_status",
    "gateway_for",
    "normalise_collection",
    "product_snapshot",
]

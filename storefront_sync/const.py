from __future__ import annotations

from enum import Enum

DOMAIN = "storefront_sync"


class EntityKind(str, Enum):
    """Commerce collections kept in sync with the storefront API."""

    CART = "cart"
    WISHLIST = "wishlist"


CONF_API_BASE_URL = "api_base_url"
CONF_API_TIMEOUT = "api_timeout"
CONF_DATA_DIR = "data_dir"
CONF_STORE_FILENAME = "store_filename"
CONF_CREDENTIALS_FILENAME = "credentials_filename"

ENV_API_BASE_URL = "STOREFRONT_API_URL"
ENV_API_TIMEOUT = "STOREFRONT_API_TIMEOUT"
ENV_DATA_DIR = "STOREFRONT_DATA_DIR"

DEFAULT_API_BASE_URL = "https://api.styletrending.in/api"
DEFAULT_API_TIMEOUT = 30
DEFAULT_DATA_DIR = ".storefront"
DEFAULT_STORE_FILENAME = "storefront.db"
DEFAULT_CREDENTIALS_FILENAME = "credentials.json"

TOKEN_KEY = "token"

COLLECTION_SUFFIX = "collection"
REMOTE_DISABLED_SUFFIX = "remote_disabled"

# Wishlist names match what the mobile app already wrote to device storage
STORAGE_KEYS: dict[tuple[EntityKind, str], str] = {
    (EntityKind.WISHLIST, COLLECTION_SUFFIX): "local_wishlist_ids",
    (EntityKind.WISHLIST, REMOTE_DISABLED_SUFFIX): "wishlist_api_disabled",
    (EntityKind.CART, COLLECTION_SUFFIX): "local_cart_items",
    (EntityKind.CART, REMOTE_DISABLED_SUFFIX): "cart_api_disabled",
}


def storage_key(kind: EntityKind, suffix: str) -> str:
    """Return the persisted-store key for ``kind`` namespaced by ``suffix``."""

    try:
        return STORAGE_KEYS[(kind, suffix)]
    except KeyError:
        return f"{kind.value}_{suffix}"

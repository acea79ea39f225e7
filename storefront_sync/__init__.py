"""Client-side cart and wishlist synchronization for the fashion storefront."""

from .config import ConfigError, StorefrontConfig
from .const import EntityKind
from .models import CartRecord, ProductSnapshot, WishlistRecord
from .session import CustomerSession
from .state import Availability, CollectionSnapshot, StateContainer, SyncPhase
from .storage import CredentialStore, KeyValueStore
from .storefront import CheckoutSummary, Storefront
from .synchronizer import (
    EntitySynchronizer,
    NotAuthenticatedError,
    SyncError,
    TransientSyncError,
)

__all__ = [
    "Availability",
    "CartRecord",
    "CheckoutSummary",
    "CollectionSnapshot",
    "ConfigError",
    "CredentialStore",
    "CustomerSession",
    "EntityKind",
    "EntitySynchronizer",
    "KeyValueStore",
    "NotAuthenticatedError",
    "ProductSnapshot",
    "StateContainer",
    "Storefront",
    "StorefrontConfig",
    "SyncError",
    "SyncPhase",
    "TransientSyncError",
    "WishlistRecord",
]

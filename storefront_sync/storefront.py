"""Explicit wiring of the session, storage, API client and both synchronizers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from aiohttp import ClientSession

from .config import StorefrontConfig
from .const import EntityKind
from .gateway import CommerceApiClient, gateway_for
from .models import CartRecord
from .session import CustomerSession
from .storage import CredentialStore, KeyValueStore
from .synchronizer import EntitySynchronizer

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CheckoutSummary:
    """What checkout reads from the cart before taking payment."""

    lines: tuple[CartRecord, ...]
    item_count: int
    subtotal: float

    @property
    def is_empty(self) -> bool:
        return not self.lines


class Storefront:
    """Owns one cart and one wishlist synchronizer for the signed-in customer."""

    def __init__(
        self,
        config: StorefrontConfig,
        *,
        store: KeyValueStore,
        credentials: CredentialStore,
        client: CommerceApiClient,
    ) -> None:
        self.config = config
        self.store = store
        self.credentials = credentials
        self.client = client
        self.session = CustomerSession(credentials)
        self.cart = EntitySynchronizer(EntityKind.CART, store, gateway_for(EntityKind.CART, client), self.session)
        self.wishlist = EntitySynchronizer(
            EntityKind.WISHLIST, store, gateway_for(EntityKind.WISHLIST, client), self.session
        )

    @classmethod
    def from_config(cls, config: StorefrontConfig, *, session: ClientSession | None = None) -> Storefront:
        credentials = CredentialStore(config.credentials_path)
        return cls(
            config,
            store=KeyValueStore(config.store_path),
            credentials=credentials,
            client=CommerceApiClient(
                config.api_base_url,
                credentials,
                session=session,
                timeout=config.api_timeout,
            ),
        )

    def synchronizer(self, kind: EntityKind) -> EntitySynchronizer:
        return self.cart if kind is EntityKind.CART else self.wishlist

    async def async_setup(self) -> bool:
        """Resume a stored session; both collections load when one exists."""

        active = await self.session.async_restore()
        _LOGGER.debug("Storefront ready (signed in: %s)", active)
        return active

    async def async_close(self) -> None:
        self.cart.detach()
        self.wishlist.detach()
        await self.client.async_close()
        self.store.close()

    async def async_login(self, token: str) -> None:
        await self.session.async_begin(token)

    async def async_logout(self) -> None:
        await self.session.async_end()

    # ------------------------------------------------------------------
    def checkout_summary(self) -> CheckoutSummary:
        lines = tuple(record for record in self.cart.records if isinstance(record, CartRecord))
        return CheckoutSummary(lines=lines, item_count=self.cart.item_count(), subtotal=self.cart.total())

    async def async_complete_checkout(self) -> CheckoutSummary:
        """Return the purchased summary and empty the cart."""

        summary = self.checkout_summary()
        await self.cart.async_clear()
        return summary

    def status(self) -> dict[str, Any]:
        return {
            "signed_in": self.session.is_active,
            EntityKind.CART.value: self.cart.status(),
            EntityKind.WISHLIST.value: self.wishlist.status(),
        }

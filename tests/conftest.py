from __future__ import annotations

import asyncio
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from storefront_sync.const import EntityKind
from storefront_sync.models import CartRecord, EntityRecord, dedupe_records
from storefront_sync.session import CustomerSession
from storefront_sync.storage import CredentialStore, KeyValueStore
from storefront_sync.synchronizer import EntitySynchronizer
from storefront_sync.utils.logging import reset_warnings


class FakeGateway:
    """In-memory stand-in for the storefront API keyed on one entity kind."""

    def __init__(self, kind: EntityKind) -> None:
        self.kind = kind
        self.server: list[EntityRecord] = []
        self.errors: list[Exception] = []
        self.in_flight: dict[str, int] = {}
        self.max_in_flight = 0
        self.async_fetch_all = AsyncMock(side_effect=self._fetch_all)
        self.async_add = AsyncMock(side_effect=self._add)
        self.async_remove = AsyncMock(side_effect=self._remove)
        self.async_set_quantity = AsyncMock(side_effect=self._set_quantity)
        self.async_clear = AsyncMock(side_effect=self._clear)

    def fail_with(self, *errors: Exception) -> None:
        self.errors.extend(errors)

    def _maybe_fail(self) -> None:
        if self.errors:
            raise self.errors.pop(0)

    async def _track(self, identifier: str) -> None:
        self.in_flight[identifier] = self.in_flight.get(identifier, 0) + 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight[identifier])
        try:
            for _ in range(3):
                await asyncio.sleep(0)
        finally:
            self.in_flight[identifier] -= 1

    async def _fetch_all(self) -> tuple[EntityRecord, ...]:
        self._maybe_fail()
        return tuple(self.server)

    async def _add(self, record: EntityRecord) -> tuple[EntityRecord, ...]:
        await self._track(record.identifier)
        self._maybe_fail()
        self.server = list(dedupe_records(self.kind, [*self.server, record]))
        return tuple(self.server)

    async def _remove(self, record: EntityRecord) -> tuple[EntityRecord, ...]:
        await self._track(record.identifier)
        self._maybe_fail()
        self.server = [rec for rec in self.server if rec.key != record.key]
        return tuple(self.server)

    async def _set_quantity(self, record: EntityRecord, quantity: int) -> tuple[EntityRecord, ...]:
        await self._track(record.identifier)
        self._maybe_fail()
        assert isinstance(record, CartRecord)
        self.server = [rec.with_quantity(quantity) if rec.key == record.key else rec for rec in self.server]
        return tuple(self.server)

    async def _clear(self) -> None:
        self._maybe_fail()
        self.server = []

    @property
    def mutation_calls(self) -> int:
        return self.async_add.await_count + self.async_remove.await_count + self.async_set_quantity.await_count


@pytest.fixture(autouse=True)
def _reset_rate_limited_warnings() -> Iterator[None]:
    reset_warnings()
    yield
    reset_warnings()


@pytest.fixture
def store() -> Iterator[KeyValueStore]:
    kv = KeyValueStore()
    yield kv
    kv.close()


@pytest.fixture
def credentials(tmp_path: Path) -> CredentialStore:
    return CredentialStore(tmp_path / "credentials.json")


@pytest.fixture
def session(credentials: CredentialStore) -> CustomerSession:
    return CustomerSession(credentials)


@pytest.fixture
def cart_gateway() -> FakeGateway:
    return FakeGateway(EntityKind.CART)


@pytest.fixture
def wishlist_gateway() -> FakeGateway:
    return FakeGateway(EntityKind.WISHLIST)


@pytest.fixture
def cart(store: KeyValueStore, cart_gateway: FakeGateway, session: CustomerSession) -> EntitySynchronizer:
    return EntitySynchronizer(EntityKind.CART, store, cart_gateway, session)  # type: ignore[arg-type]


@pytest.fixture
def wishlist(store: KeyValueStore, wishlist_gateway: FakeGateway, session: CustomerSession) -> EntitySynchronizer:
    return EntitySynchronizer(EntityKind.WISHLIST, store, wishlist_gateway, session)  # type: ignore[arg-type]

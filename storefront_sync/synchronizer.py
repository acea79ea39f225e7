"""Optimistic, fallback-aware synchronizer for the cart and the wishlist.

One :class:`EntitySynchronizer` owns one collection. Mutations are applied to
memory first so the UI reacts at once, then confirmed with the storefront API:

* success replaces the collection with the server's copy;
* a missing route (HTTP 404 and friends) switches the entity kind to local
  storage for good and keeps the local change;
* any other failure rolls the touched item back and raises.

Mutations on the same product id are serialised so responses arriving out of
order cannot drop an update. Different ids proceed independently.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from .const import COLLECTION_SUFFIX, REMOTE_DISABLED_SUFFIX, EntityKind, storage_key
from .gateway.adapters import EntityGateway
from .gateway.errors import ErrorKind, GatewayError, GatewayUnavailableError
from .gateway.normalise import product_snapshot
from .models import (
    CartRecord,
    EntityRecord,
    ProductSnapshot,
    WishlistRecord,
    dedupe_records,
    record_from_dict,
)
from .session import CustomerSession
from .state import Availability, CollectionSnapshot, StateContainer, SyncPhase
from .storage import KeyValueStore

_LOGGER = logging.getLogger(__name__)


class SyncError(RuntimeError):
    """Raised by synchronizer mutations."""

    kind: ErrorKind = ErrorKind.TRANSIENT

    def __init__(self, message: str, *, reason: str | None = None) -> None:
        super().__init__(message)
        self.reason = reason


class NotAuthenticatedError(SyncError):
    """No customer session; the caller should send the user to sign in."""

    kind = ErrorKind.NOT_AUTHENTICATED


class TransientSyncError(SyncError):
    """The API call failed and the local change was rolled back."""

    kind = ErrorKind.TRANSIENT


@dataclass(slots=True)
class _LockEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class _IdentifierLocks:
    """Reference-counted ``asyncio.Lock`` per product id."""

    def __init__(self) -> None:
        self._entries: dict[str, _LockEntry] = {}

    @asynccontextmanager
    async def hold(self, identifier: str) -> AsyncIterator[None]:
        entry = self._entries.get(identifier)
        if entry is None:
            entry = self._entries[identifier] = _LockEntry()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._entries.pop(identifier, None)

    def __len__(self) -> int:
        return len(self._entries)


class EntitySynchronizer:
    """Single source of truth for one cart or wishlist collection."""

    def __init__(
        self,
        kind: EntityKind,
        store: KeyValueStore,
        gateway: EntityGateway,
        session: CustomerSession,
    ) -> None:
        self.kind = kind
        self._store = store
        self._gateway = gateway
        self._session = session
        self._collection_key = storage_key(kind, COLLECTION_SUFFIX)
        self._flag_key = storage_key(kind, REMOTE_DISABLED_SUFFIX)
        self._state: StateContainer[CollectionSnapshot] = StateContainer(CollectionSnapshot(kind=kind))
        self._locks = _IdentifierLocks()
        self._availability_restored = False
        self.last_error: str | None = None
        self.last_synced_at: datetime | None = None
        self._detach = [
            session.register_start_listener(self.async_load),
            session.register_end_listener(self._on_session_end),
        ]

    # ------------------------------------------------------------------
    # read API
    def snapshot(self) -> CollectionSnapshot:
        return self._state.get()

    def subscribe(self, callback: Callable[[CollectionSnapshot], None]) -> Callable[[], None]:
        return self._state.subscribe(callback)

    @property
    def records(self) -> tuple[EntityRecord, ...]:
        return self._state.get().records

    @property
    def loading(self) -> bool:
        return self._state.get().loading

    @property
    def phase(self) -> SyncPhase:
        return self._state.get().phase

    @property
    def availability(self) -> Availability:
        return self._state.get().availability

    def contains(self, identifier: str) -> bool:
        return any(record.identifier == identifier for record in self.records)

    def quantity_of(self, identifier: str) -> int:
        if self.kind is EntityKind.WISHLIST:
            return 1 if self.contains(identifier) else 0
        return sum(
            record.quantity
            for record in self.records
            if isinstance(record, CartRecord) and record.identifier == identifier
        )

    def total(self) -> float:
        """Cart subtotal from captured unit prices; item count for the wishlist."""

        if self.kind is EntityKind.WISHLIST:
            return float(len(self.records))
        return sum(record.unit_price * record.quantity for record in self.records if isinstance(record, CartRecord))

    def item_count(self) -> int:
        if self.kind is EntityKind.WISHLIST:
            return len(self.records)
        return sum(record.quantity for record in self.records if isinstance(record, CartRecord))

    def status(self) -> dict[str, Any]:
        snapshot = self.snapshot()
        return {
            "kind": self.kind.value,
            "phase": snapshot.phase.value,
            "loading": snapshot.loading,
            "availability": snapshot.availability.value,
            "records": len(snapshot.records),
            "item_count": self.item_count(),
            "in_flight": len(self._locks),
            "last_error": self.last_error,
            "last_synced_at": self.last_synced_at.isoformat() if self.last_synced_at else None,
        }

    def detach(self) -> None:
        """Stop following the customer session."""

        for unsubscribe in self._detach:
            unsubscribe()
        self._detach = []

    # ------------------------------------------------------------------
    # loading
    async def async_load(self) -> CollectionSnapshot:
        """Refresh the collection; never raises, degraded data beats a broken screen."""

        if not self._session.is_active:
            self._publish(records=(), loading=False)
            return self.snapshot()

        await self._async_restore_availability()
        if self.availability is Availability.LOCAL_ONLY:
            await self._async_load_local()
            return self.snapshot()

        previous_phase = self.phase
        loading_phase = SyncPhase.LOADING if previous_phase is SyncPhase.UNINITIALIZED else previous_phase
        self._publish(loading=True, phase=loading_phase)
        try:
            records = await self._gateway.async_fetch_all()
        except GatewayUnavailableError as err:
            await self._async_demote(err)
            await self._async_load_local()
            return self.snapshot()
        except GatewayError as err:
            self.last_error = str(err)
            _LOGGER.warning("Could not load %s, keeping last known items: %s", self.kind.value, err)
            self._publish(loading=False, phase=previous_phase)
            return self.snapshot()
        except Exception as err:
            self.last_error = str(err)
            _LOGGER.exception("Unexpected error loading %s", self.kind.value)
            self._publish(loading=False, phase=previous_phase)
            return self.snapshot()

        if not self._session.is_active:
            self._publish(records=(), loading=False)
            return self.snapshot()
        self._publish(records=records, loading=False, phase=SyncPhase.READY)
        self._mark_synced()
        await self._async_persist(records)
        return self.snapshot()

    async def _async_load_local(self) -> None:
        records = await self._async_read_cache()
        if not self._session.is_active:
            self._publish(records=(), loading=False)
            return
        self._publish(records=records, loading=False, phase=SyncPhase.READY)

    # ------------------------------------------------------------------
    # mutations
    async def async_add(
        self,
        identifier: str,
        *,
        quantity: int = 1,
        size: str | None = None,
        color: str | None = None,
        product: ProductSnapshot | Mapping[str, Any] | None = None,
    ) -> CollectionSnapshot:
        """Add ``identifier``; for the cart an existing line's quantity grows instead."""

        if self.kind is EntityKind.CART and quantity < 1:
            raise ValueError("quantity must be at least 1")
        self._require_session()
        async with self._locks.hold(identifier):
            self._require_session()
            return await self._async_add_locked(identifier, quantity, size, color, product)

    async def async_remove(
        self,
        identifier: str,
        *,
        size: str | None = None,
        color: str | None = None,
    ) -> CollectionSnapshot:
        """Remove ``identifier``; without a size or color every cart line for it goes."""

        self._require_session()
        async with self._locks.hold(identifier):
            self._require_session()
            return await self._async_remove_locked(identifier, size, color)

    async def async_toggle(self, identifier: str) -> CollectionSnapshot:
        if self.kind is not EntityKind.WISHLIST:
            raise TypeError("toggle is only supported for the wishlist")
        self._require_session()
        async with self._locks.hold(identifier):
            self._require_session()
            if self.contains(identifier):
                return await self._async_remove_locked(identifier, None, None)
            return await self._async_add_locked(identifier, 1, None, None, None)

    async def async_set_quantity(
        self,
        identifier: str,
        quantity: int,
        *,
        size: str | None = None,
        color: str | None = None,
    ) -> CollectionSnapshot:
        """Replace a cart line's quantity; zero or less removes the product."""

        if self.kind is not EntityKind.CART:
            raise TypeError("quantities only apply to the cart")
        self._require_session()
        async with self._locks.hold(identifier):
            self._require_session()
            if quantity <= 0:
                return await self._async_remove_locked(identifier, size, color)
            line = self._select_line(identifier, size, color)
            if line is None:
                _LOGGER.debug("No cart line for %s to update", identifier)
                return self.snapshot()
            if line.quantity == quantity:
                return self.snapshot()
            updated = line.with_quantity(quantity)
            optimistic = tuple(updated if rec.key == line.key else rec for rec in self.records)

            async def _remote() -> tuple[EntityRecord, ...]:
                return await self._gateway.async_set_quantity(line, quantity)

            return await self._async_commit(optimistic, _remote, {line.key})

    async def async_clear(self) -> CollectionSnapshot:
        """Empty the collection; local clearing is final whatever the API says."""

        self._require_session()
        self._publish(records=())
        await self._async_restore_availability()
        if self.availability is Availability.REMOTE_ACTIVE:
            try:
                await self._gateway.async_clear()
            except GatewayUnavailableError as err:
                await self._async_demote(err)
            except GatewayError as err:
                self.last_error = str(err)
                _LOGGER.warning("Remote %s clear failed, cleared locally: %s", self.kind.value, err)
            else:
                self._mark_synced()
        await self._async_persist(())
        return self.snapshot()

    # ------------------------------------------------------------------
    async def _async_add_locked(
        self,
        identifier: str,
        quantity: int,
        size: str | None,
        color: str | None,
        product: ProductSnapshot | Mapping[str, Any] | None,
    ) -> CollectionSnapshot:
        if self.kind is EntityKind.WISHLIST:
            request: EntityRecord = WishlistRecord(identifier)
            optimistic = self.records if self.contains(identifier) else (*self.records, request)
        else:
            snapshot = product_snapshot(product) if isinstance(product, Mapping) else product
            request = CartRecord(identifier, quantity, size, color, snapshot)
            existing = next((rec for rec in self.records if rec.key == request.key), None)
            if not isinstance(existing, CartRecord):
                optimistic = (*self.records, request)
            else:
                merged = replace(
                    existing,
                    quantity=existing.quantity + quantity,
                    product=snapshot or existing.product,
                )
                optimistic = tuple(merged if rec.key == existing.key else rec for rec in self.records)

        async def _remote() -> tuple[EntityRecord, ...]:
            return await self._gateway.async_add(request)

        return await self._async_commit(optimistic, _remote, {request.key})

    async def _async_remove_locked(
        self,
        identifier: str,
        size: str | None,
        color: str | None,
    ) -> CollectionSnapshot:
        if self.kind is EntityKind.CART and (size is not None or color is not None):
            wanted = CartRecord(identifier, 1, size, color)
            targets = [rec for rec in self.records if rec.key == wanted.key]
        else:
            targets = [rec for rec in self.records if rec.identifier == identifier]
        if not targets:
            return self.snapshot()
        keys = {rec.key for rec in targets}
        optimistic = tuple(rec for rec in self.records if rec.key not in keys)
        pending = set(keys)

        async def _remote() -> tuple[EntityRecord, ...]:
            result: tuple[EntityRecord, ...] = ()
            for target in targets:
                result = await self._gateway.async_remove(target)
                # A line the server already dropped must not come back on rollback
                pending.discard(target.key)
            return result

        return await self._async_commit(optimistic, _remote, pending)

    async def _async_commit(
        self,
        optimistic: tuple[EntityRecord, ...],
        remote: Callable[[], Awaitable[tuple[EntityRecord, ...]]],
        touched: set[Any],
    ) -> CollectionSnapshot:
        before = self.records
        self._publish(records=optimistic)
        await self._async_restore_availability()

        if self.availability is Availability.LOCAL_ONLY:
            await self._async_persist_current()
            return self.snapshot()

        try:
            server_records = await remote()
        except GatewayUnavailableError as err:
            await self._async_demote(err)
            await self._async_persist_current()
            return self.snapshot()
        except GatewayError as err:
            self.last_error = str(err)
            self._rollback(before, touched)
            _LOGGER.warning("Rolled back %s change after API failure: %s", self.kind.value, err)
            if err.kind is ErrorKind.NOT_AUTHENTICATED:
                raise NotAuthenticatedError(str(err), reason=err.reason) from err
            raise TransientSyncError(str(err), reason=err.reason) from err

        if not self._session.is_active:
            return self.snapshot()
        self._publish(records=server_records)
        self._mark_synced()
        self.last_error = None
        await self._async_persist(server_records)
        return self.snapshot()

    def _rollback(self, before: tuple[EntityRecord, ...], touched: set[Any]) -> None:
        if not self._session.is_active:
            return
        restored = [rec for rec in self.records if rec.key not in touched]
        prior = [(index, rec) for index, rec in enumerate(before) if rec.key in touched]
        for index, rec in prior:
            restored.insert(min(index, len(restored)), rec)
        self._publish(records=tuple(restored))

    def _select_line(self, identifier: str, size: str | None, color: str | None) -> CartRecord | None:
        wanted = CartRecord(identifier, 1, size, color)
        lines = [rec for rec in self.records if isinstance(rec, CartRecord) and rec.identifier == identifier]
        for line in lines:
            if line.key == wanted.key:
                return line
        if size is None and color is None and lines:
            return lines[0]
        return None

    def _require_session(self) -> None:
        if not self._session.is_active:
            raise NotAuthenticatedError(f"sign in to change your {self.kind.value}", reason="no_session")

    def _on_session_end(self) -> None:
        self._publish(records=(), loading=False)

    def _publish(self, **changes: Any) -> None:
        self._state.set(replace(self._state.get(), **changes))

    def _mark_synced(self) -> None:
        self.last_synced_at = datetime.now(tz=UTC)

    # ------------------------------------------------------------------
    # availability and local cache
    async def _async_restore_availability(self) -> None:
        if self._availability_restored:
            return
        self._availability_restored = True
        if await self._store.async_get(self._flag_key) is True:
            _LOGGER.debug("%s API previously unavailable; using local storage", self.kind.value)
            self._publish(availability=Availability.LOCAL_ONLY)

    async def _async_demote(self, err: GatewayError) -> None:
        if self.availability is Availability.LOCAL_ONLY:
            return
        _LOGGER.warning("%s API not available (%s); falling back to local storage", self.kind.value, err)
        self._publish(availability=Availability.LOCAL_ONLY)
        await self._store.async_set(self._flag_key, True)

    async def _async_read_cache(self) -> tuple[EntityRecord, ...]:
        raw = await self._store.async_get(self._collection_key)
        if not isinstance(raw, list):
            return ()
        return dedupe_records(self.kind, self._decode(raw))

    def _decode(self, raw: Iterable[Any]) -> Iterable[EntityRecord]:
        for item in raw:
            try:
                yield record_from_dict(self.kind, item)
            except ValueError as err:
                _LOGGER.debug("Dropping unreadable cached %s entry: %s", self.kind.value, err)

    async def _async_persist_current(self) -> None:
        if self._session.is_active:
            await self._async_persist(self.records)

    async def _async_persist(self, records: Iterable[EntityRecord]) -> None:
        if self.kind is EntityKind.WISHLIST:
            payload: list[Any] = [record.identifier for record in records]
        else:
            payload = [record.to_dict() for record in records]
        await self._store.async_set(self._collection_key, payload)


__all__ = [
    "EntitySynchronizer",
    "NotAuthenticatedError",
    "SyncError",
    "TransientSyncError",
]

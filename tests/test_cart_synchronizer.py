from __future__ import annotations

import asyncio

import pytest

from storefront_sync.const import EntityKind
from storefront_sync.gateway.errors import GatewayTransientError, GatewayUnavailableError
from storefront_sync.models import CartRecord, ProductSnapshot
from storefront_sync.state import Availability
from storefront_sync.synchronizer import EntitySynchronizer, NotAuthenticatedError, TransientSyncError

SHIRT = ProductSnapshot(name="Linen Shirt", brand="Loom", price=799.0)
JEANS = ProductSnapshot(name="Slim Jeans", brand="Denimco", price=1499.5)


async def _sign_in(session) -> None:
    await session.async_begin("token-1")


@pytest.mark.asyncio
async def test_add_creates_line_and_merges_quantity(cart, cart_gateway, session):
    await _sign_in(session)

    await cart.async_add("p1", product=SHIRT)
    await cart.async_add("p1", quantity=2)

    assert cart.quantity_of("p1") == 3
    assert len(cart.records) == 1
    assert cart_gateway.async_add.await_count == 2


@pytest.mark.asyncio
async def test_variants_are_separate_lines(cart, session):
    await _sign_in(session)

    await cart.async_add("p1", size="M", color="Blue")
    await cart.async_add("p1", size="L", color="Blue")
    await cart.async_add("p1", size=" M ", color="Blue")

    keys = [record.key for record in cart.records]
    assert keys == [("p1", "M", "Blue"), ("p1", "L", "Blue")]
    assert cart.quantity_of("p1") == 3


@pytest.mark.asyncio
async def test_add_rejects_non_positive_quantity(cart, cart_gateway, session):
    await _sign_in(session)
    with pytest.raises(ValueError):
        await cart.async_add("p1", quantity=0)
    cart_gateway.async_add.assert_not_awaited()


@pytest.mark.asyncio
async def test_rejected_add_rolls_back_to_previous_quantity(cart, cart_gateway, session):
    cart_gateway.server = [CartRecord("p1", 2, product=SHIRT)]
    await _sign_in(session)
    assert cart.quantity_of("p1") == 2
    observed: list[int] = []
    cart.subscribe(lambda snap: observed.append(cart.quantity_of("p1")))
    cart_gateway.fail_with(GatewayTransientError("server error", status=500))

    with pytest.raises(TransientSyncError):
        await cart.async_add("p1", quantity=1)

    assert observed == [3, 2]
    assert cart.quantity_of("p1") == 2
    assert cart.records == (CartRecord("p1", 2, product=SHIRT),)


@pytest.mark.asyncio
async def test_rejected_add_of_new_item_leaves_no_trace(cart, cart_gateway, session):
    cart_gateway.server = [CartRecord("p2", 1)]
    await _sign_in(session)
    before = cart.records
    cart_gateway.fail_with(GatewayTransientError("offline", reason="network"))

    with pytest.raises(TransientSyncError):
        await cart.async_add("p1")

    assert cart.records == before
    assert not cart.contains("p1")


@pytest.mark.asyncio
async def test_set_quantity_replaces_and_zero_removes(cart, cart_gateway, session):
    cart_gateway.server = [CartRecord("p1", 1, product=SHIRT), CartRecord("p2", 4)]
    await _sign_in(session)

    await cart.async_set_quantity("p1", 5)
    assert cart.quantity_of("p1") == 5
    assert cart_gateway.server[0].quantity == 5

    await cart.async_set_quantity("p1", 0)
    assert not cart.contains("p1")
    assert cart_gateway.async_remove.await_count == 1

    await cart.async_set_quantity("p2", -3)
    assert cart.records == ()
    assert all(record.quantity >= 1 for record in cart_gateway.server)


@pytest.mark.asyncio
async def test_set_quantity_unknown_or_unchanged_is_noop(cart, cart_gateway, session):
    cart_gateway.server = [CartRecord("p1", 2)]
    await _sign_in(session)

    await cart.async_set_quantity("missing", 3)
    await cart.async_set_quantity("p1", 2)

    cart_gateway.async_set_quantity.assert_not_awaited()


@pytest.mark.asyncio
async def test_set_quantity_rollback(cart, cart_gateway, session):
    cart_gateway.server = [CartRecord("p1", 2)]
    await _sign_in(session)
    cart_gateway.fail_with(GatewayTransientError("busy", status=503))

    with pytest.raises(TransientSyncError):
        await cart.async_set_quantity("p1", 7)

    assert cart.quantity_of("p1") == 2


@pytest.mark.asyncio
async def test_remove_without_variant_drops_every_line(cart, cart_gateway, session):
    cart_gateway.server = [CartRecord("p1", 1, "S"), CartRecord("p1", 1, "M"), CartRecord("p2", 1)]
    await _sign_in(session)

    await cart.async_remove("p1")

    assert [record.identifier for record in cart.records] == ["p2"]
    assert cart_gateway.async_remove.await_count == 2


@pytest.mark.asyncio
async def test_remove_with_variant_targets_one_line(cart, cart_gateway, session):
    cart_gateway.server = [CartRecord("p1", 1, "S"), CartRecord("p1", 1, "M")]
    await _sign_in(session)

    await cart.async_remove("p1", size="S")

    assert [record.key for record in cart.records] == [("p1", "M", None)]


@pytest.mark.asyncio
async def test_concurrent_adds_on_same_product_are_serialised(cart, cart_gateway, session):
    await _sign_in(session)

    await asyncio.gather(
        cart.async_add("p1", quantity=1),
        cart.async_add("p1", quantity=2),
    )

    assert cart.quantity_of("p1") == 3
    assert cart_gateway.max_in_flight == 1
    assert cart.status()["in_flight"] == 0


@pytest.mark.asyncio
async def test_different_products_proceed_independently(cart, cart_gateway, session):
    await _sign_in(session)
    release = asyncio.Event()
    original = cart_gateway.async_add.side_effect

    async def _gated_add(record):
        if record.identifier == "slow":
            await release.wait()
        return await original(record)

    cart_gateway.async_add.side_effect = _gated_add
    slow = asyncio.create_task(cart.async_add("slow"))
    await asyncio.sleep(0)
    await cart.async_add("fast")

    assert cart.contains("fast")
    assert not slow.done()
    release.set()
    await slow
    assert cart.contains("slow")


@pytest.mark.asyncio
async def test_total_uses_captured_prices(cart, cart_gateway, session):
    cart_gateway.server = [CartRecord("p1", 2, product=SHIRT), CartRecord("p2", 1, product=JEANS), CartRecord("p3", 4)]
    await _sign_in(session)

    assert cart.total() == pytest.approx(2 * 799.0 + 1499.5)
    assert cart.item_count() == 7


@pytest.mark.asyncio
async def test_add_accepts_raw_product_document(cart, session):
    await _sign_in(session)

    await cart.async_add("p1", product={"_id": "p1", "name": "Tee", "finalPrice": 399, "price": 499})

    record = cart.records[0]
    assert isinstance(record, CartRecord)
    assert record.unit_price == 399.0
    assert cart.total() == 399.0


@pytest.mark.asyncio
async def test_session_end_empties_cart_without_network(cart, cart_gateway, session):
    cart_gateway.server = [CartRecord("p1", 2), CartRecord("p2", 1)]
    await _sign_in(session)
    fetches = cart_gateway.async_fetch_all.await_count

    await session.async_end()

    assert cart.records == ()
    assert cart.total() == 0
    assert cart_gateway.async_fetch_all.await_count == fetches
    assert cart_gateway.mutation_calls == 0
    assert cart_gateway.async_clear.await_count == 0
    with pytest.raises(NotAuthenticatedError):
        await cart.async_add("p1")


@pytest.mark.asyncio
async def test_session_end_during_mutation_discards_response(cart, cart_gateway, session):
    await _sign_in(session)
    release = asyncio.Event()
    original = cart_gateway.async_add.side_effect

    async def _slow_add(record):
        await release.wait()
        return await original(record)

    cart_gateway.async_add.side_effect = _slow_add
    task = asyncio.create_task(cart.async_add("p1"))
    await asyncio.sleep(0)
    await session.async_end()
    release.set()
    await task

    assert cart.records == ()


@pytest.mark.asyncio
async def test_clear_is_final_even_when_remote_fails(cart, cart_gateway, session, store):
    cart_gateway.server = [CartRecord("p1", 2)]
    await _sign_in(session)
    cart_gateway.fail_with(GatewayTransientError("boom"))

    snapshot = await cart.async_clear()

    assert snapshot.records == ()
    assert await store.async_get("local_cart_items") == []
    assert cart.last_error == "boom"


@pytest.mark.asyncio
async def test_local_cart_round_trip(store, cart_gateway, session):
    cart_gateway.fail_with(GatewayUnavailableError("no cart route", status=404))
    await _sign_in(session)
    first = EntitySynchronizer(EntityKind.CART, store, cart_gateway, session)

    await first.async_load()
    await first.async_add("p1", quantity=2, size="M", product=SHIRT)
    first.detach()

    second = EntitySynchronizer(EntityKind.CART, store, cart_gateway, session)
    await second.async_load()

    assert second.availability is Availability.LOCAL_ONLY
    assert second.records == (CartRecord("p1", 2, "M", product=SHIRT),)
    assert cart_gateway.async_add.await_count == 0
    assert second.total() == pytest.approx(1598.0)


@pytest.mark.asyncio
async def test_toggle_is_wishlist_only(cart, session):
    await _sign_in(session)
    with pytest.raises(TypeError):
        await cart.async_toggle("p1")


@pytest.mark.asyncio
async def test_partial_remove_failure_keeps_lines_the_server_dropped(cart, cart_gateway, session):
    cart_gateway.server = [CartRecord("p1", 1, "S"), CartRecord("p1", 1, "M"), CartRecord("p2", 1)]
    await _sign_in(session)
    original = cart_gateway.async_remove.side_effect
    attempts = 0

    async def _second_delete_fails(record):
        nonlocal attempts
        attempts += 1
        if attempts == 2:
            raise GatewayTransientError("gateway timeout", status=504)
        return await original(record)

    cart_gateway.async_remove.side_effect = _second_delete_fails

    with pytest.raises(TransientSyncError):
        await cart.async_remove("p1")

    server_keys = [record.key for record in cart_gateway.server]
    assert server_keys == [("p1", "M", None), ("p2", None, None)]
    assert {record.key for record in cart.records} == set(server_keys)
    assert cart.quantity_of("p1") == 1

"""Unit tests for the order status and fulfillment state machines."""

import pytest
from services.commerce_service.models import (
    DeliveryMethod,
    FulfillmentStatus,
    OrderStatus,
)
from services.commerce_service.services import cart_lines
from services.commerce_service.services.order_ops import (
    can_transition_fulfillment,
    can_transition_status,
    cancel_order,
    create_order,
    transition_fulfillment,
    transition_status,
)
from services.commerce_service.services.results import ErrorKind
from tests.factories import add_cart

F = FulfillmentStatus


async def _place_order(db, variant, quantity=2, method="pickup", **kwargs):
    cart = await add_cart(db, lines=[(variant, quantity)])
    customer = {
        "email": "sam@example.com",
        "phone_number": "+96170111222",
        "shipping_address": {"city": "Beirut"},
        "delivery_method": method,
    }
    result = await create_order(db, cart, customer, **kwargs)
    assert result.success, result.errors
    return result.resource


# ---------------------------------------------------------------------------
# Transition tables
# ---------------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.parametrize(
    "current, target, allowed",
    [
        (OrderStatus.PENDING, OrderStatus.PROCESSING, True),
        (OrderStatus.PROCESSING, OrderStatus.SHIPPED, True),
        (OrderStatus.SHIPPED, OrderStatus.DELIVERED, True),
        (OrderStatus.SHIPPED, OrderStatus.CANCELLED, True),
        (OrderStatus.PENDING, OrderStatus.DELIVERED, False),
        (OrderStatus.DELIVERED, OrderStatus.CANCELLED, False),
        (OrderStatus.CANCELLED, OrderStatus.PENDING, False),
    ],
)
def test_order_status_transitions(current, target, allowed):
    assert can_transition_status(current, target) is allowed


@pytest.mark.unit
def test_courier_flow_steps_one_at_a_time():
    method = DeliveryMethod.COURIER
    assert can_transition_fulfillment(method, F.UNFULFILLED, F.PACKED)
    assert can_transition_fulfillment(method, F.PACKED, F.DISPATCHED)
    assert can_transition_fulfillment(method, F.DISPATCHED, F.DELIVERED)
    assert not can_transition_fulfillment(method, F.UNFULFILLED, F.DISPATCHED)
    assert not can_transition_fulfillment(method, F.PACKED, F.PICKED_UP)


@pytest.mark.unit
def test_pickup_flow_has_no_dispatch():
    method = DeliveryMethod.PICKUP
    assert can_transition_fulfillment(method, F.PACKED, F.PICKED_UP)
    assert not can_transition_fulfillment(method, F.PACKED, F.DISPATCHED)


@pytest.mark.unit
def test_fulfillment_cancellable_until_terminal():
    method = DeliveryMethod.COURIER
    assert can_transition_fulfillment(method, F.DISPATCHED, F.CANCELLED)
    assert not can_transition_fulfillment(method, F.DELIVERED, F.CANCELLED)
    assert not can_transition_fulfillment(method, F.CANCELLED, F.PACKED)


# ---------------------------------------------------------------------------
# Persisted transitions
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_order_walks_to_delivered(db_session, serum):
    order = await _place_order(db_session, serum)

    for status in (OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
        result = await transition_status(db_session, order, status)
        assert result.success, result.errors

    assert order.status == OrderStatus.DELIVERED
    assert order.delivered_at is not None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_invalid_status_change_is_rejected(db_session, serum):
    order = await _place_order(db_session, serum)

    result = await transition_status(db_session, order, OrderStatus.SHIPPED)

    assert result.error_kind == ErrorKind.VALIDATION
    assert order.status == OrderStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.unit
async def test_cancel_restocks_committed_stock(db_session, serum):
    order = await _place_order(db_session, serum, quantity=3)
    assert (await cart_lines.load_variant(db_session, serum.id)).stock_quantity == 7

    result = await cancel_order(db_session, order)

    assert result.success
    assert order.cancelled_at is not None
    assert order.fulfillment_status == F.CANCELLED
    assert order.stock_committed is False
    assert (await cart_lines.load_variant(db_session, serum.id)).stock_quantity == 10


@pytest.mark.asyncio
@pytest.mark.unit
async def test_cancel_without_committed_stock_leaves_stock(db_session, serum):
    order = await _place_order(db_session, serum, quantity=3, enforce_stock=False)

    await cancel_order(db_session, order)

    assert (await cart_lines.load_variant(db_session, serum.id)).stock_quantity == 10


@pytest.mark.asyncio
@pytest.mark.unit
async def test_cancelled_order_keeps_fulfillment_progress(db_session, serum):
    order = await _place_order(db_session, serum, method="courier")
    await transition_fulfillment(db_session, order, F.PACKED)
    await transition_fulfillment(db_session, order, F.DISPATCHED)

    await cancel_order(db_session, order)

    assert order.fulfillment_status == F.CANCELLED
    assert order.fulfillment_progress == F.DISPATCHED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_fulfillment_frozen_after_cancel(db_session, serum):
    order = await _place_order(db_session, serum)
    await cancel_order(db_session, order)

    result = await transition_fulfillment(db_session, order, F.PACKED)

    assert result.error_kind == ErrorKind.VALIDATION


@pytest.mark.asyncio
@pytest.mark.unit
async def test_pickup_order_completes_at_pickup(db_session, serum):
    order = await _place_order(db_session, serum)

    assert (await transition_fulfillment(db_session, order, F.PACKED)).success
    assert (await transition_fulfillment(db_session, order, F.DISPATCHED)).failure
    assert (await transition_fulfillment(db_session, order, F.PICKED_UP)).success
    assert order.fulfillment_progress == F.PICKED_UP

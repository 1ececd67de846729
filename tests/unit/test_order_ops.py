"""Unit tests for order creation: snapshots, totals, atomicity and stock."""

import pytest
from libs.common.datetime_utils import utc_now
from libs.common.money import format_money
from services.commerce_service.models import (
    Order,
    OrderLine,
    OrderStatus,
    PaymentStatus,
    ProductStatus,
)
from services.commerce_service.services import cart_lines
from services.commerce_service.services.order_ops import (
    CART_EMPTY_MESSAGE,
    calculate_totals,
    create_order,
    get_order_by_number,
)
from services.commerce_service.services.results import ErrorKind
from sqlalchemy import func, select
from tests.factories import add_cart, add_product

CUSTOMER = {
    "email": "layla@example.com",
    "phone_number": "+96171123456",
    "shipping_address": {"first_name": "Layla", "last_name": "Haddad", "city": "Beirut"},
    "delivery_method": "pickup",
    "payment_method": "cod",
}


async def _count(db, model) -> int:
    result = await db.execute(select(func.count()).select_from(model))
    return result.scalar_one()


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_order_copies_lines_and_computes_totals(db_session, serum, cream):
    cart = await add_cart(db_session, lines=[(serum, 2), (cream, 3)])

    result = await create_order(db_session, cart, CUSTOMER)

    assert result.success, result.errors
    order = result.resource
    assert order.number.startswith("ORD-")
    assert order.subtotal_minor == 3500
    assert order.total_minor == 3500
    assert format_money(order.total_minor, order.currency) == "$35.00"
    assert [(line.product_name, line.quantity) for line in order.lines] == [
        ("Rose Serum", 2),
        ("Night Cream", 3),
    ]
    assert order.status == OrderStatus.PENDING
    assert order.payment_status == PaymentStatus.COD_DUE
    assert order.shipping_address["city"] == "Beirut"
    assert order.billing_address == order.shipping_address


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_order_abandons_and_clears_cart(db_session, serum):
    cart = await add_cart(db_session, lines=[(serum, 1)])

    result = await create_order(db_session, cart, CUSTOMER)

    assert result.metadata["cart_cleared"] is True
    await db_session.refresh(cart)
    assert cart.abandoned_at is not None
    assert await cart_lines.list_lines(db_session, cart.id) == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_keep_cart_lines_when_clearing_disabled(db_session, serum):
    cart = await add_cart(db_session, lines=[(serum, 1)])

    result = await create_order(db_session, cart, CUSTOMER, clear_cart_after=False)

    assert result.metadata["cart_cleared"] is False
    assert len(await cart_lines.list_lines(db_session, cart.id)) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_adjustments_flow_into_total(db_session, serum):
    cart = await add_cart(db_session, lines=[(serum, 1)])

    result = await create_order(
        db_session,
        cart,
        CUSTOMER,
        tax_total_minor=110,
        shipping_total_minor=300,
        discount_total_minor=200,
    )

    assert result.resource.total_minor == 1000 + 110 + 300 - 200


@pytest.mark.unit
def test_calculate_totals_uses_line_copies():
    order = Order(tax_total_minor=0, shipping_total_minor=0, discount_total_minor=50)
    order.lines.append(
        OrderLine(quantity=2, unit_price_minor=700, total_price_minor=1400, currency="USD")
    )

    calculate_totals(order)

    assert (order.subtotal_minor, order.total_minor) == (1400, 1350)


# ---------------------------------------------------------------------------
# Immutability
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_catalog_edits_do_not_reach_placed_orders(db_session, serum):
    cart = await add_cart(db_session, lines=[(serum, 2)])
    number = (await create_order(db_session, cart, CUSTOMER)).metadata["order_number"]

    serum.price_minor = 5000
    serum.name = "100 ml"
    await db_session.commit()

    order = await get_order_by_number(db_session, number)
    await db_session.refresh(order, ["lines"])
    (line,) = order.lines
    assert line.unit_price_minor == 1000
    assert line.variant_name == "50 ml"
    assert order.total_minor == 2000


# ---------------------------------------------------------------------------
# Rejections
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_empty_cart_is_rejected(db_session):
    cart = await add_cart(db_session)

    result = await create_order(db_session, cart, CUSTOMER)

    assert result.error_kind == ErrorKind.VALIDATION
    assert result.errors == [CART_EMPTY_MESSAGE]
    assert await _count(db_session, Order) == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_checked_out_cart_is_a_conflict(db_session, serum):
    cart = await add_cart(db_session, lines=[(serum, 1)], abandoned_at=utc_now())

    result = await create_order(db_session, cart, CUSTOMER)

    assert result.error_kind == ErrorKind.CONFLICT


@pytest.mark.asyncio
@pytest.mark.unit
async def test_invalid_customer_info_is_rejected(db_session, serum):
    cart = await add_cart(db_session, lines=[(serum, 1)])

    result = await create_order(db_session, cart, {**CUSTOMER, "email": "nope"})

    assert result.error_kind == ErrorKind.VALIDATION
    assert any(error.startswith("email") for error in result.errors)
    assert (await create_order(db_session, cart, None)).failure


@pytest.mark.asyncio
@pytest.mark.unit
async def test_failure_while_writing_leaves_nothing_behind(db_session, serum, cream):
    """A line that breaks a table constraint aborts the whole order."""
    cart = await add_cart(db_session, lines=[(serum, 2), (cream, 1)])
    cart_id, serum_id = cart.id, serum.id
    lines = await cart_lines.list_lines(db_session, cart_id)
    lines[1].price_snapshot_minor = 0
    await db_session.commit()

    result = await create_order(db_session, cart, CUSTOMER)

    assert result.error_kind == ErrorKind.PERSISTENCE
    assert await _count(db_session, Order) == 0
    assert await _count(db_session, OrderLine) == 0
    variant = await cart_lines.load_variant(db_session, serum_id)
    assert variant.stock_quantity == 10
    cart = await cart_lines.lock_cart(db_session, cart_id)
    assert cart.abandoned_at is None
    assert len(await cart_lines.list_lines(db_session, cart_id)) == 2


# ---------------------------------------------------------------------------
# Stock at commit time
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_tracked_stock_is_decremented(db_session, serum):
    cart = await add_cart(db_session, lines=[(serum, 4)])

    result = await create_order(db_session, cart, CUSTOMER)

    assert result.resource.stock_committed is True
    variant = await cart_lines.load_variant(db_session, serum.id)
    assert variant.stock_quantity == 6


@pytest.mark.asyncio
@pytest.mark.unit
async def test_stock_sold_since_adding_rejects_order(db_session, serum):
    cart = await add_cart(db_session, lines=[(serum, 4)])
    cart_id, serum_id = cart.id, serum.id
    serum.stock_quantity = 3
    await db_session.commit()

    result = await create_order(db_session, cart, CUSTOMER)

    assert result.error_kind == ErrorKind.INSUFFICIENT_STOCK
    assert result.metadata["available"] == 3
    assert await _count(db_session, Order) == 0
    variant = await cart_lines.load_variant(db_session, serum_id)
    assert variant.stock_quantity == 3
    assert len(await cart_lines.list_lines(db_session, cart_id)) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_stock_check_can_be_disabled(db_session, serum):
    cart = await add_cart(db_session, lines=[(serum, 4)])
    serum_id = serum.id
    serum.stock_quantity = 3
    await db_session.commit()

    result = await create_order(db_session, cart, CUSTOMER, enforce_stock=False)

    assert result.success
    assert result.resource.stock_committed is False
    variant = await cart_lines.load_variant(db_session, serum_id)
    assert variant.stock_quantity == 3


@pytest.mark.asyncio
@pytest.mark.unit
async def test_unpublished_product_cannot_be_ordered(db_session):
    product, (variant,) = await add_product(db_session)
    cart = await add_cart(db_session, lines=[(variant, 1)])
    product.status = ProductStatus.ARCHIVED
    await db_session.commit()

    result = await create_order(db_session, cart, CUSTOMER)

    assert result.error_kind == ErrorKind.VALIDATION

"""Order creation and the order/fulfillment state machines.

``create_order`` converts an active cart into an immutable order in one
transaction: lines are copied by value from the cart snapshots, totals are
computed from those copies, the cart is marked abandoned, and (optionally)
tracked stock is re-validated and decremented under row locks. Either all of
that commits or none of it does. Clearing the converted cart happens after
the commit and never undoes a placed order.
"""

import uuid
from datetime import date
from typing import Any, Mapping, Optional, Union

from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from pydantic import BaseModel, EmailStr, Field, ValidationError
from services.commerce_service.configuration import get_store_configuration
from services.commerce_service.models import (
    Cart,
    DeliveryMethod,
    FulfillmentStatus,
    Order,
    OrderLine,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from services.commerce_service.services import cart_lines
from services.commerce_service.services.cart_ops import clear_cart
from services.commerce_service.services.quantity import QuantityMode, validate_quantity
from services.commerce_service.services.results import ErrorKind, ServiceResult
from services.commerce_service.services.stock_policy import enforces_stock_limit
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

logger = get_logger(__name__)

CART_EMPTY_MESSAGE = "Your cart is empty"
ORDER_NUMBER_ATTEMPTS = 10


class CustomerInfo(BaseModel):
    """Everything an order copies from checkout besides the cart lines."""

    email: EmailStr
    phone_number: str = Field(min_length=1)
    shipping_address: dict[str, Any] = Field(default_factory=dict)
    billing_address: Optional[dict[str, Any]] = None
    delivery_method: DeliveryMethod = DeliveryMethod.PICKUP
    delivery_date: Optional[date] = None
    delivery_time_slot: Optional[str] = None
    delivery_notes: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.CASH_ON_DELIVERY


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def initial_payment_status(method: PaymentMethod) -> PaymentStatus:
    if method == PaymentMethod.CASH_ON_DELIVERY:
        return PaymentStatus.COD_DUE
    return PaymentStatus.PENDING


def calculate_totals(order: Order) -> None:
    """Totals derive from the order's own line copies, never the live catalog."""
    order.subtotal_minor = sum(line.total_price_minor for line in order.lines)
    order.total_minor = (
        order.subtotal_minor
        + order.tax_total_minor
        + order.shipping_total_minor
        - order.discount_total_minor
    )


async def generate_unique_order_number(db: AsyncSession) -> str:
    for _ in range(ORDER_NUMBER_ATTEMPTS):
        number = Order.generate_number()
        result = await db.execute(select(Order.id).where(Order.number == number))
        if result.scalar_one_or_none() is None:
            return number
    raise RuntimeError("Could not generate a unique order number")


async def get_order_by_number(db: AsyncSession, number: str) -> Optional[Order]:
    result = await db.execute(select(Order).where(Order.number == number))
    return result.scalar_one_or_none()


async def _lock_order(db: AsyncSession, order_id: uuid.UUID) -> Optional[Order]:
    result = await db.execute(
        select(Order)
        .where(Order.id == order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Order creation
# ---------------------------------------------------------------------------


async def _reserve_stock(db: AsyncSession, lines) -> Optional[ServiceResult]:
    """Lock each variant, re-check the line quantity, decrement tracked stock.

    Returns a failed result for the first line that no longer fits.
    """
    for line in lines:
        variant = await cart_lines.lock_variant(db, line.variant_id)
        if variant is None or not variant.product.available:
            name = variant.name if variant is not None else "An item"
            return ServiceResult.fail(
                ErrorKind.VALIDATION,
                f"{name} is no longer available",
                line_id=str(line.id),
            )

        check = validate_quantity(line.quantity, variant, mode=QuantityMode.SET)
        if not check.ok:
            return ServiceResult.fail(
                check.error_kind,
                check.message,
                line_id=str(line.id),
                available=check.available,
            )

        if enforces_stock_limit(variant):
            variant.stock_quantity -= line.quantity
    return None


async def create_order(
    db: AsyncSession,
    cart: Optional[Cart],
    customer_info: Union[CustomerInfo, Mapping[str, Any], None],
    *,
    user_id: Optional[str] = None,
    tax_total_minor: int = 0,
    shipping_total_minor: int = 0,
    discount_total_minor: int = 0,
    enforce_stock: Optional[bool] = None,
    clear_cart_after: bool = True,
) -> ServiceResult:
    """Place an order from ``cart``.

    Failure kinds: VALIDATION (missing input, empty cart, unavailable item),
    stock kinds when commit-time enforcement rejects a line, CONFLICT when a
    concurrent writer wins, PERSISTENCE for anything else.
    """
    if cart is None:
        return ServiceResult.fail(ErrorKind.VALIDATION, "Cart is required")
    if customer_info is None:
        return ServiceResult.fail(
            ErrorKind.VALIDATION, "Customer information is required"
        )

    if not isinstance(customer_info, CustomerInfo):
        try:
            customer_info = CustomerInfo.model_validate(customer_info)
        except ValidationError as exc:
            return ServiceResult.fail(
                ErrorKind.VALIDATION,
                [f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in exc.errors()],
            )

    if enforce_stock is None:
        enforce_stock = get_store_configuration().enforce_stock_at_commit

    cart_id = cart.id
    try:
        locked_cart = await cart_lines.lock_cart(db, cart_id)
        if locked_cart is None:
            await cart_lines.release(db)
            return ServiceResult.fail(ErrorKind.VALIDATION, "Cart not found")
        if not locked_cart.is_active:
            await cart_lines.release(db)
            return ServiceResult.fail(
                ErrorKind.CONFLICT, "This cart has already been checked out"
            )

        lines = await cart_lines.list_lines(db, cart_id, for_update=True)
        if sum(line.quantity for line in lines) <= 0:
            await cart_lines.release(db)
            return ServiceResult.fail(ErrorKind.VALIDATION, CART_EMPTY_MESSAGE)

        currencies = {line.price_snapshot_currency for line in lines}
        if len(currencies) > 1:
            await cart_lines.release(db)
            return ServiceResult.fail(
                ErrorKind.VALIDATION, "Cart contains items in more than one currency"
            )

        if enforce_stock:
            rejected = await _reserve_stock(db, lines)
            if rejected is not None:
                await db.rollback()
                return rejected

        shipping_address = dict(customer_info.shipping_address)
        order = Order(
            number=await generate_unique_order_number(db),
            user_id=user_id or locked_cart.user_id,
            email=customer_info.email,
            phone_number=customer_info.phone_number,
            status=OrderStatus.PENDING,
            payment_status=initial_payment_status(customer_info.payment_method),
            fulfillment_status=FulfillmentStatus.UNFULFILLED,
            fulfillment_progress=FulfillmentStatus.UNFULFILLED,
            shipping_address=shipping_address,
            billing_address=dict(customer_info.billing_address or shipping_address),
            currency=currencies.pop(),
            tax_total_minor=tax_total_minor,
            shipping_total_minor=shipping_total_minor,
            discount_total_minor=discount_total_minor,
            delivery_method=customer_info.delivery_method,
            delivery_date=customer_info.delivery_date,
            delivery_time_slot=customer_info.delivery_time_slot,
            delivery_notes=customer_info.delivery_notes,
            source_cart_id=cart_id,
            stock_committed=enforce_stock,
        )
        for position, line in enumerate(lines):
            variant = line.variant
            order.lines.append(
                OrderLine(
                    variant_id=line.variant_id,
                    position=position,
                    product_name=variant.product.name,
                    variant_name=variant.name,
                    sku=variant.sku,
                    quantity=line.quantity,
                    unit_price_minor=line.price_snapshot_minor,
                    total_price_minor=line.price_snapshot_minor * line.quantity,
                    currency=line.price_snapshot_currency,
                )
            )
        calculate_totals(order)
        db.add(order)

        locked_cart.abandoned_at = utc_now()
        await db.flush()
        await db.commit()
    except StaleDataError:
        await db.rollback()
        logger.warning("Stock changed concurrently while placing order for cart %s", cart_id)
        return ServiceResult.fail(
            ErrorKind.CONFLICT, "Stock changed while placing your order. Please try again."
        )
    except (SQLAlchemyError, RuntimeError):
        await db.rollback()
        logger.exception("Order creation failed for cart %s", cart_id)
        return ServiceResult.persistence_failure(cart_id=str(cart_id))

    logger.info(
        "Created order %s from cart %s (lines=%d, total=%d %s)",
        order.number,
        cart_id,
        len(order.lines),
        order.total_minor,
        order.currency,
    )

    cart_cleared = False
    if clear_cart_after:
        cleared = await clear_cart(db, locked_cart)
        cart_cleared = cleared.success
        if cleared.failure:
            # The order stands; the abandoned cart keeps its lines
            logger.error(
                "Order %s placed but cart %s was not cleared: %s",
                order.number,
                cart_id,
                cleared.errors,
            )

    return ServiceResult.ok(order, order_number=order.number, cart_cleared=cart_cleared)


# ---------------------------------------------------------------------------
# State machines
# ---------------------------------------------------------------------------

ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

FULFILLMENT_FLOWS: dict[DeliveryMethod, tuple[FulfillmentStatus, ...]] = {
    DeliveryMethod.COURIER: (
        FulfillmentStatus.UNFULFILLED,
        FulfillmentStatus.PACKED,
        FulfillmentStatus.DISPATCHED,
        FulfillmentStatus.DELIVERED,
    ),
    DeliveryMethod.PICKUP: (
        FulfillmentStatus.UNFULFILLED,
        FulfillmentStatus.PACKED,
        FulfillmentStatus.PICKED_UP,
    ),
}

TERMINAL_FULFILLMENT = frozenset(
    {
        FulfillmentStatus.DELIVERED,
        FulfillmentStatus.PICKED_UP,
        FulfillmentStatus.CANCELLED,
    }
)


def can_transition_status(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS.get(current, frozenset())


def can_transition_fulfillment(
    method: DeliveryMethod, current: FulfillmentStatus, target: FulfillmentStatus
) -> bool:
    if current in TERMINAL_FULFILLMENT:
        return False
    if target == FulfillmentStatus.CANCELLED:
        return True
    flow = FULFILLMENT_FLOWS[method]
    if current not in flow or target not in flow:
        return False
    return flow.index(target) == flow.index(current) + 1


async def _restock(db: AsyncSession, order: Order) -> None:
    for line in order.lines:
        if line.variant_id is None:
            continue
        variant = await cart_lines.lock_variant(db, line.variant_id)
        if variant is not None and enforces_stock_limit(variant):
            variant.stock_quantity += line.quantity


async def transition_status(
    db: AsyncSession, order: Order, new_status: OrderStatus
) -> ServiceResult:
    """Move the order along pending -> processing -> shipped -> delivered.

    Cancelling is allowed from any non-terminal state; it closes fulfillment
    while ``fulfillment_progress`` keeps the furthest step reached.
    """
    order_id = order.id
    try:
        order = await _lock_order(db, order_id)
        if order is None:
            await cart_lines.release(db)
            return ServiceResult.fail(ErrorKind.VALIDATION, "Order not found")

        current = order.status
        if not can_transition_status(current, new_status):
            await cart_lines.release(db)
            return ServiceResult.fail(
                ErrorKind.VALIDATION,
                f"Cannot change order status from {current.value} to {new_status.value}",
                resource=order,
            )

        order.status = new_status
        now = utc_now()
        if new_status == OrderStatus.CANCELLED:
            order.cancelled_at = now
            if order.fulfillment_status not in TERMINAL_FULFILLMENT:
                order.fulfillment_status = FulfillmentStatus.CANCELLED
            if order.stock_committed:
                await _restock(db, order)
                order.stock_committed = False
        elif new_status == OrderStatus.DELIVERED:
            order.delivered_at = now

        await db.flush()
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Status change for order %s failed", order_id)
        return ServiceResult.persistence_failure()

    logger.info("Order %s status %s -> %s", order.number, current.value, new_status.value)
    return ServiceResult.ok(order, previous_status=current.value)


async def cancel_order(db: AsyncSession, order: Order) -> ServiceResult:
    return await transition_status(db, order, OrderStatus.CANCELLED)


async def transition_fulfillment(
    db: AsyncSession, order: Order, new_status: FulfillmentStatus
) -> ServiceResult:
    """Advance fulfillment one step along the delivery method's flow."""
    order_id = order.id
    try:
        order = await _lock_order(db, order_id)
        if order is None:
            await cart_lines.release(db)
            return ServiceResult.fail(ErrorKind.VALIDATION, "Order not found")

        current = order.fulfillment_status
        if order.status == OrderStatus.CANCELLED or not can_transition_fulfillment(
            order.delivery_method, current, new_status
        ):
            await cart_lines.release(db)
            return ServiceResult.fail(
                ErrorKind.VALIDATION,
                f"Cannot change fulfillment from {current.value} to {new_status.value}",
                resource=order,
            )

        order.fulfillment_status = new_status
        if new_status != FulfillmentStatus.CANCELLED:
            order.fulfillment_progress = new_status

        await db.flush()
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Fulfillment change for order %s failed", order_id)
        return ServiceResult.persistence_failure()

    logger.info(
        "Order %s fulfillment %s -> %s", order.number, current.value, new_status.value
    )
    return ServiceResult.ok(order, previous_status=current.value)

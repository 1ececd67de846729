"""Cart operations: find-or-create, add, set quantity, clear and summaries.

Every mutation runs as one transaction: lock the cart (and line) rows,
validate against the locked state, write, commit. Expected business
failures come back as ``ServiceResult`` values; the session is left clean
in both cases.
"""

import uuid
from dataclasses import dataclass, field
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from libs.common.money import Money
from services.commerce_service.configuration import get_store_configuration
from services.commerce_service.models import Cart, CartLine, ProductVariant
from services.commerce_service.services import cart_lines
from services.commerce_service.services.cart_merge import merge_carts
from services.commerce_service.services.quantity import QuantityMode, validate_quantity
from services.commerce_service.services.results import ErrorKind, ServiceResult
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

# One retry after losing the race to insert the same (cart, variant) line
ADD_ATTEMPTS = 2

CART_INACTIVE_MESSAGE = "This cart is no longer active"
CONCURRENT_UPDATE_MESSAGE = "Your cart was updated at the same time. Please try again."


# ---------------------------------------------------------------------------
# Lookup / creation
# ---------------------------------------------------------------------------


async def get_active_cart_for_user(
    db: AsyncSession, user_id: str
) -> Optional[Cart]:
    result = await db.execute(
        select(Cart)
        .where(Cart.user_id == user_id, Cart.abandoned_at.is_(None))
        .order_by(Cart.created_at.desc(), Cart.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_active_cart_by_token(
    db: AsyncSession, session_token: str
) -> Optional[Cart]:
    result = await db.execute(
        select(Cart).where(
            Cart.session_token == session_token, Cart.abandoned_at.is_(None)
        )
    )
    return result.scalar_one_or_none()


async def find_or_create_cart(
    db: AsyncSession,
    *,
    user_id: Optional[str] = None,
    session_token: Optional[str] = None,
) -> ServiceResult:
    """Resolve the shopper's active cart, creating one when none exists.

    A signed-in shopper who still carries a guest cart token gets the guest
    lines merged into their own cart (which is created if needed).
    """
    try:
        cart = None
        guest_cart = None

        if user_id:
            cart = await get_active_cart_for_user(db, user_id)
        if session_token:
            token_cart = await get_active_cart_by_token(db, session_token)
            if token_cart is not None:
                if token_cart.user_id is None and user_id:
                    guest_cart = token_cart
                elif token_cart.user_id == user_id and cart is None:
                    cart = token_cart

        created = False
        if cart is None:
            cart = Cart(user_id=user_id)
            db.add(cart)
            await db.flush()
            await db.commit()
            created = True
            logger.info("Created cart %s (user=%s)", cart.id, user_id or "guest")
        else:
            await cart_lines.release(db)
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Could not resolve cart (user=%s)", user_id)
        return ServiceResult.persistence_failure()

    metadata = {"created": created, "merged_count": 0, "dropped": []}
    errors: list[str] = []
    if guest_cart is not None and guest_cart.id != cart.id:
        cart_id, guest_cart_id = cart.id, guest_cart.id
        merge = await merge_carts(db, cart, guest_cart)
        if merge.failure:
            # The shopper keeps their own cart; the guest cart stays intact
            logger.warning(
                "Cart merge %s -> %s failed: %s", guest_cart_id, cart_id, merge.errors
            )
            try:
                # A failed merge may have rolled back, expiring the cart
                cart = await cart_lines.lock_cart(db, cart_id)
                await cart_lines.release(db)
            except SQLAlchemyError:
                await db.rollback()
                logger.exception("Could not reload cart %s after merge", cart_id)
                return ServiceResult.persistence_failure()
            if cart is None:
                return ServiceResult.persistence_failure()
        else:
            cart = merge.resource
            metadata["merged_count"] = merge.metadata.get("merged_count", 0)
            metadata["dropped"] = merge.metadata.get("dropped", [])
        errors = merge.errors

    return ServiceResult(success=True, resource=cart, errors=errors, metadata=metadata)


# ---------------------------------------------------------------------------
# Add
# ---------------------------------------------------------------------------


async def _add_once(
    db: AsyncSession, cart_id: uuid.UUID, variant_id: uuid.UUID, quantity: int
) -> ServiceResult:
    cart = await cart_lines.lock_cart(db, cart_id)
    if cart is None or not cart.is_active:
        return ServiceResult.fail(ErrorKind.CONFLICT, CART_INACTIVE_MESSAGE)

    variant = await cart_lines.load_variant(db, variant_id)
    if variant is None:
        return ServiceResult.fail(ErrorKind.VALIDATION, "Product variant not found")
    if not variant.product.available:
        return ServiceResult.fail(
            ErrorKind.VALIDATION, f"{variant.product.name} is not available"
        )

    line = await cart_lines.lock_line_for_variant(db, cart_id, variant_id)
    existing_quantity = line.quantity if line is not None else 0

    check = validate_quantity(quantity, variant, existing_quantity, QuantityMode.ADD)
    if not check.ok:
        return ServiceResult.fail(
            check.error_kind,
            check.message,
            available=check.available,
            variant_id=str(variant_id),
        )

    if line is None:
        line = await cart_lines.insert_line(db, cart_id, variant, check.quantity)
    else:
        line.quantity = check.quantity
        cart_lines.snapshot_price(line, variant)

    cart.updated_at = utc_now()
    await db.flush()
    return ServiceResult.ok(line, cart_id=str(cart_id), quantity=check.quantity)


async def add_item(
    db: AsyncSession,
    cart: Optional[Cart],
    variant: Optional[ProductVariant],
    quantity: int = 1,
) -> ServiceResult:
    """Add ``quantity`` of a variant, merging into the existing line if any."""
    if cart is None:
        return ServiceResult.fail(ErrorKind.VALIDATION, "Cart is required")
    if variant is None:
        return ServiceResult.fail(ErrorKind.VALIDATION, "Product variant is required")

    cart_id, variant_id = cart.id, variant.id

    for attempt in range(1, ADD_ATTEMPTS + 1):
        try:
            result = await _add_once(db, cart_id, variant_id, quantity)
            if result.success:
                await db.commit()
                logger.info(
                    "Added %d x variant %s to cart %s (line qty=%d)",
                    quantity,
                    variant_id,
                    cart_id,
                    result.resource.quantity,
                )
            else:
                await cart_lines.release(db)
            return result
        except IntegrityError as exc:
            await db.rollback()
            if not cart_lines.is_duplicate_line_error(exc):
                logger.exception("Add to cart %s failed", cart_id)
                return ServiceResult.persistence_failure()
            logger.warning(
                "Concurrent insert for cart %s variant %s (attempt %d)",
                cart_id,
                variant_id,
                attempt,
            )
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("Add to cart %s failed", cart_id)
            return ServiceResult.persistence_failure()

    return ServiceResult.fail(ErrorKind.CONFLICT, CONCURRENT_UPDATE_MESSAGE)


# ---------------------------------------------------------------------------
# Set quantity / remove
# ---------------------------------------------------------------------------


async def _set_quantity_in_transaction(
    db: AsyncSession, line_id: uuid.UUID, new_quantity: int
) -> ServiceResult:
    line = await cart_lines.lock_line(db, line_id)
    if line is None:
        return ServiceResult.fail(
            ErrorKind.CONFLICT, "This item is no longer in your cart"
        )

    if new_quantity <= 0:
        await cart_lines.delete_line(db, line)
        return ServiceResult.ok(None, removed=True, line_id=str(line_id))

    variant = await cart_lines.load_variant(db, line.variant_id)
    check = validate_quantity(new_quantity, variant, mode=QuantityMode.SET)
    if not check.ok:
        return ServiceResult.fail(
            check.error_kind,
            check.message,
            resource=line,
            available=check.available,
            line_id=str(line_id),
        )

    line.quantity = check.quantity
    cart_lines.snapshot_price(line, variant)
    await db.flush()
    return ServiceResult.ok(line, removed=False, line_id=str(line_id))


async def set_quantity(
    db: AsyncSession, line: Optional[CartLine], new_quantity: int
) -> ServiceResult:
    """Set a line's quantity; zero or less removes the line."""
    if line is None:
        return ServiceResult.fail(ErrorKind.VALIDATION, "Cart item is required")

    line_id = line.id
    try:
        result = await _set_quantity_in_transaction(db, line_id, new_quantity)
        if result.success:
            await db.commit()
        else:
            await cart_lines.release(db)
        return result
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Quantity update for cart line %s failed", line_id)
        return ServiceResult.persistence_failure(line_id=str(line_id))


async def increment_line(db: AsyncSession, line: CartLine) -> ServiceResult:
    return await set_quantity(db, line, line.quantity + 1)


async def decrement_line(db: AsyncSession, line: CartLine) -> ServiceResult:
    """Decrementing a single item removes the line."""
    return await set_quantity(db, line, line.quantity - 1)


# ---------------------------------------------------------------------------
# Clear
# ---------------------------------------------------------------------------


async def clear_cart(db: AsyncSession, cart: Optional[Cart]) -> ServiceResult:
    """Remove every line in one transaction: all lines go or none do.

    On failure the metadata reports which lines were processed before the
    error (all of them rolled back) and which line failed.
    """
    if cart is None:
        return ServiceResult.fail(ErrorKind.VALIDATION, "Cart is required")

    cart_id = cart.id
    cleared: list[str] = []
    current: Optional[uuid.UUID] = None
    try:
        locked = await cart_lines.lock_cart(db, cart_id)
        if locked is None:
            await cart_lines.release(db)
            return ServiceResult.fail(ErrorKind.VALIDATION, "Cart not found")

        lines = await cart_lines.list_lines(db, cart_id, for_update=True)
        for line in lines:
            current = line.id
            result = await _set_quantity_in_transaction(db, line.id, 0)
            if result.failure:
                await db.rollback()
                return ServiceResult.fail(
                    result.error_kind,
                    result.errors,
                    cleared_line_ids=cleared,
                    failed_line_id=str(current),
                )
            cleared.append(str(line.id))

        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception(
            "Clearing cart %s failed at line %s after %d lines", cart_id, current, len(cleared)
        )
        return ServiceResult.persistence_failure(
            cleared_line_ids=cleared,
            failed_line_id=str(current) if current else None,
        )

    logger.info("Cleared %d lines from cart %s", len(cleared), cart_id)
    return ServiceResult.ok(None, cleared_line_ids=cleared, cart_id=str(cart_id))


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------


@dataclass
class CartSummary:
    cart: Cart
    lines: list[CartLine] = field(default_factory=list)
    currency: str = field(default_factory=lambda: get_store_configuration().currency)

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def subtotal_minor(self) -> int:
        return sum(line.total_price_minor for line in self.lines)

    @property
    def subtotal(self) -> Money:
        return Money(self.subtotal_minor, self.currency)

    @property
    def is_empty(self) -> bool:
        return self.total_quantity == 0


async def summarize_cart(db: AsyncSession, cart: Cart) -> CartSummary:
    """Lines in creation order with snapshot-price totals."""
    lines = await cart_lines.list_lines(db, cart.id)
    if not lines:
        return CartSummary(cart=cart)
    return CartSummary(cart=cart, lines=lines, currency=lines[0].price_snapshot_currency)

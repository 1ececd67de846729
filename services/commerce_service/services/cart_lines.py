"""Cart line storage: row lookups, locking and the (cart, variant) uniqueness.

Locks use ``SELECT ... FOR UPDATE`` and ``populate_existing`` so the objects
a caller validates against reflect the locked row, not a stale identity-map
copy. SQLite ignores the clause and serialises writers at the database level.
"""

import uuid
from typing import Optional

from services.commerce_service.models import Cart, CartLine, ProductVariant
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

UNIQUE_LINE_CONSTRAINT = "uq_commerce_cart_variant"


async def lock_cart(db: AsyncSession, cart_id: uuid.UUID) -> Optional[Cart]:
    result = await db.execute(
        select(Cart)
        .where(Cart.id == cart_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def lock_variant(
    db: AsyncSession, variant_id: uuid.UUID
) -> Optional[ProductVariant]:
    result = await db.execute(
        select(ProductVariant)
        .where(ProductVariant.id == variant_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def load_variant(
    db: AsyncSession, variant_id: uuid.UUID
) -> Optional[ProductVariant]:
    result = await db.execute(
        select(ProductVariant)
        .where(ProductVariant.id == variant_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def lock_line(db: AsyncSession, line_id: uuid.UUID) -> Optional[CartLine]:
    result = await db.execute(
        select(CartLine)
        .where(CartLine.id == line_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def lock_line_for_variant(
    db: AsyncSession, cart_id: uuid.UUID, variant_id: uuid.UUID
) -> Optional[CartLine]:
    result = await db.execute(
        select(CartLine)
        .where(CartLine.cart_id == cart_id, CartLine.variant_id == variant_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_line(
    db: AsyncSession, line_id: uuid.UUID, cart_id: Optional[uuid.UUID] = None
) -> Optional[CartLine]:
    query = select(CartLine).where(CartLine.id == line_id)
    if cart_id is not None:
        query = query.where(CartLine.cart_id == cart_id)
    result = await db.execute(query.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def list_lines(
    db: AsyncSession, cart_id: uuid.UUID, for_update: bool = False
) -> list[CartLine]:
    """Lines in creation order, the order the shopper saw them."""
    query = (
        select(CartLine)
        .where(CartLine.cart_id == cart_id)
        .order_by(CartLine.created_at, CartLine.id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return list(result.scalars().all())


async def total_quantity(db: AsyncSession, cart_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(CartLine.quantity), 0)).where(
            CartLine.cart_id == cart_id
        )
    )
    return int(result.scalar_one())


def snapshot_price(line: CartLine, variant: ProductVariant) -> None:
    """Capture the variant's current price on the line."""
    line.price_snapshot_minor = variant.price_minor
    line.price_snapshot_currency = variant.currency


async def insert_line(
    db: AsyncSession, cart_id: uuid.UUID, variant: ProductVariant, quantity: int
) -> CartLine:
    """Insert a new line. A concurrent insert for the same pair surfaces as
    ``IntegrityError`` on flush."""
    line = CartLine(cart_id=cart_id, variant_id=variant.id, quantity=quantity)
    line.variant = variant
    snapshot_price(line, variant)
    db.add(line)
    await db.flush()
    return line


async def delete_line(db: AsyncSession, line: CartLine) -> None:
    await db.delete(line)
    await db.flush()


def reparent_line(line: CartLine, cart_id: uuid.UUID) -> None:
    """Move the row itself to another cart; id and created_at are kept."""
    line.cart_id = cart_id


def is_duplicate_line_error(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    return UNIQUE_LINE_CONSTRAINT in message or (
        "unique" in message and "commerce_cart_lines" in message
    )


async def release(db: AsyncSession) -> None:
    """End a transaction that flushed nothing, releasing its row locks.

    Commit keeps loaded objects usable (``expire_on_commit=False``) where a
    rollback would expire them.
    """
    await db.commit()

"""Merge a guest cart into a signed-in shopper's cart.

Runs as a single transaction. Lines for variants the user cart lacks are
reparented (the row moves, keeping its id and created_at); overlapping lines
are summed through the quantity validator. Whatever does not fit under the
line cap or stock is left behind on the guest cart and reported. The guest
cart is abandoned at the end, so running the merge again is a no-op.
"""

from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.commerce_service.models import Cart
from services.commerce_service.services import cart_lines
from services.commerce_service.services.quantity import (
    QuantityMode,
    max_addable_quantity,
    validate_quantity,
)
from services.commerce_service.services.results import ErrorKind, ServiceResult
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def merge_carts(
    db: AsyncSession, user_cart: Optional[Cart], guest_cart: Optional[Cart]
) -> ServiceResult:
    if user_cart is None or guest_cart is None or user_cart.id == guest_cart.id:
        return ServiceResult.ok(user_cart, merged_count=0, dropped=[])

    user_cart_id, guest_cart_id = user_cart.id, guest_cart.id
    merged_count = 0
    dropped: list[dict] = []
    errors: list[str] = []

    try:
        # Lock in a stable order so two concurrent merges cannot deadlock
        locked = {}
        for cart_id in sorted((user_cart_id, guest_cart_id), key=str):
            locked[cart_id] = await cart_lines.lock_cart(db, cart_id)
        user_cart, guest_cart = locked[user_cart_id], locked[guest_cart_id]

        if guest_cart is None or not guest_cart.is_active:
            await cart_lines.release(db)
            return ServiceResult.ok(user_cart, merged_count=0, dropped=[])
        if user_cart is None or not user_cart.is_active:
            await cart_lines.release(db)
            return ServiceResult.fail(
                ErrorKind.CONFLICT, "Your cart changed while signing in"
            )

        guest_lines = await cart_lines.list_lines(db, guest_cart_id, for_update=True)
        if not guest_lines:
            await cart_lines.release(db)
            return ServiceResult.ok(user_cart, merged_count=0, dropped=[])

        user_lines = {
            line.variant_id: line
            for line in await cart_lines.list_lines(db, user_cart_id, for_update=True)
        }

        for guest_line in guest_lines:
            variant = guest_line.variant
            existing = user_lines.get(guest_line.variant_id)

            if existing is None:
                cart_lines.reparent_line(guest_line, user_cart_id)
                user_lines[guest_line.variant_id] = guest_line
                merged_count += 1
                continue

            check = validate_quantity(
                guest_line.quantity, variant, existing.quantity, QuantityMode.ADD
            )
            if check.ok:
                accepted = guest_line.quantity
            else:
                accepted = max_addable_quantity(variant, existing.quantity)
                dropped.append(
                    {
                        "variant_id": str(guest_line.variant_id),
                        "requested": guest_line.quantity,
                        "merged": accepted,
                        "dropped": guest_line.quantity - accepted,
                        "reason": check.error_kind.value,
                    }
                )
                errors.append(check.message)

            if accepted > 0:
                existing.quantity += accepted
                cart_lines.snapshot_price(existing, variant)
                merged_count += 1

        guest_cart.abandoned_at = utc_now()
        user_cart.updated_at = utc_now()
        await db.flush()
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Merging cart %s into %s failed", guest_cart_id, user_cart_id)
        return ServiceResult.persistence_failure()

    logger.info(
        "Merged cart %s into %s (lines=%d, dropped=%d)",
        guest_cart_id,
        user_cart_id,
        merged_count,
        len(dropped),
    )
    for item in dropped:
        logger.warning(
            "Dropped %d of variant %s while merging cart %s: %s",
            item["dropped"],
            item["variant_id"],
            guest_cart_id,
            item["reason"],
        )

    return ServiceResult(
        success=True,
        resource=user_cart,
        errors=errors,
        metadata={"merged_count": merged_count, "dropped": dropped},
    )

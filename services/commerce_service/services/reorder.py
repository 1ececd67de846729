"""Copy a past order's lines back into the shopper's cart.

Each line goes through the normal add path, so caps and stock apply; a line
that only partly fits is added up to what fits. Unlike checkout this is not
atomic: lines that can be added are kept even if others fail.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from libs.common.logging import get_logger
from services.commerce_service.models import Cart, Order, OrderLine
from services.commerce_service.services import cart_lines
from services.commerce_service.services.cart_ops import add_item
from services.commerce_service.services.quantity import (
    QuantityMode,
    max_addable_quantity,
    validate_quantity,
)
from services.commerce_service.services.results import ErrorKind, ServiceResult
from services.commerce_service.services.stock_policy import in_stock
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass(frozen=True)
class _LineCopy:
    variant_id: Optional[uuid.UUID]
    product_name: str
    variant_name: Optional[str]
    quantity: int

    @classmethod
    def of(cls, line: OrderLine) -> "_LineCopy":
        return cls(line.variant_id, line.product_name, line.variant_name, line.quantity)


def _item(line: _LineCopy, quantity: int, status: str, **extra) -> dict:
    return {
        "product_name": line.product_name,
        "variant_name": line.variant_name,
        "quantity": quantity,
        "status": status,
        **extra,
    }


def _summary(success_items: list[dict], failed_items: list[dict]) -> str:
    full = sum(1 for item in success_items if item["status"] == "success")
    partial = sum(1 for item in success_items if item["status"] == "partial")
    parts = []
    if full:
        parts.append(f"{full} item(s) added to your cart")
    if partial:
        parts.append(f"{partial} item(s) partially added")
    if failed_items:
        parts.append(f"{len(failed_items)} item(s) unavailable")
    return ", ".join(parts)


async def _reorder_line(
    db: AsyncSession, cart: Cart, line: _LineCopy
) -> tuple[Optional[dict], Optional[dict]]:
    """Returns ``(success_item, failed_item)``; exactly one is set."""
    variant = (
        await cart_lines.load_variant(db, line.variant_id)
        if line.variant_id is not None
        else None
    )
    if variant is None or not variant.product.available:
        return None, _item(
            line, line.quantity, "failed", reason="This product is no longer available"
        )
    if not in_stock(variant):
        return None, _item(line, line.quantity, "failed", reason="Out of stock")

    existing = await cart_lines.lock_line_for_variant(db, cart.id, variant.id)
    existing_quantity = existing.quantity if existing is not None else 0
    await cart_lines.release(db)

    check = validate_quantity(
        line.quantity, variant, existing_quantity, QuantityMode.ADD
    )
    quantity = line.quantity if check.ok else max_addable_quantity(
        variant, existing_quantity
    )
    if quantity <= 0:
        return None, _item(
            line, line.quantity, "failed", reason="Cart limit reached for this item"
        )

    added = await add_item(db, cart, variant, quantity)
    if added.failure:
        return None, _item(line, line.quantity, "failed", reason=", ".join(added.errors))
    if quantity < line.quantity:
        return _item(line, quantity, "partial", requested_quantity=line.quantity), None
    return _item(line, quantity, "success"), None


async def reorder(db: AsyncSession, order: Order, cart: Cart) -> ServiceResult:
    if order is None:
        return ServiceResult.fail(ErrorKind.VALIDATION, "Order is required")
    if cart is None:
        return ServiceResult.fail(ErrorKind.VALIDATION, "Cart is required")

    lines = [_LineCopy.of(line) for line in order.lines]
    order_number, cart_id = order.number, cart.id
    if not lines:
        return ServiceResult.fail(
            ErrorKind.VALIDATION, "No items could be added to your cart", resource=cart
        )

    success_items: list[dict] = []
    failed_items: list[dict] = []
    for line in lines:
        succeeded, failed = await _reorder_line(db, cart, line)
        if succeeded:
            success_items.append(succeeded)
        else:
            failed_items.append(failed)

    logger.info(
        "Reorder of %s into cart %s: %d added, %d failed",
        order_number,
        cart_id,
        len(success_items),
        len(failed_items),
    )

    if not success_items:
        reasons = ", ".join(dict.fromkeys(item["reason"] for item in failed_items))
        return ServiceResult.fail(
            ErrorKind.VALIDATION,
            f"Could not add items: {reasons}",
            resource=cart,
            success_items=success_items,
            failed_items=failed_items,
        )

    return ServiceResult.ok(
        cart,
        success_items=success_items,
        failed_items=failed_items,
        message=_summary(success_items, failed_items),
    )

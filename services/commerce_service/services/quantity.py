"""Cart-line quantity validation.

Pure and side-effect free. Callers run it inside the same transaction that
performs the mutation, after locking the affected rows, so the quantity it
checks against cannot change underneath them.
"""

import enum
from dataclasses import dataclass
from typing import Optional

from services.commerce_service.configuration import get_store_configuration
from services.commerce_service.services.results import ErrorKind
from services.commerce_service.services.stock_policy import (
    VariantLike,
    enforces_stock_limit,
    in_stock,
)


class QuantityMode(str, enum.Enum):
    ADD = "add"  # final = existing + requested
    SET = "set"  # final = requested


@dataclass(frozen=True)
class QuantityCheck:
    ok: bool
    quantity: int = 0
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    available: Optional[int] = None


def max_line_quantity() -> int:
    return get_store_configuration().max_line_quantity


def _reject(kind: ErrorKind, message: str, available: Optional[int] = None) -> QuantityCheck:
    return QuantityCheck(ok=False, error_kind=kind, message=message, available=available)


def validate_quantity(
    requested: int,
    variant: VariantLike,
    existing_quantity: int = 0,
    mode: QuantityMode = QuantityMode.ADD,
    max_quantity: Optional[int] = None,
) -> QuantityCheck:
    """Resolve the final line quantity or explain why it is rejected.

    Checks run in a fixed order: stock state, positive request, per-request
    cap, resolved-quantity cap, then stock on hand.
    """
    cap = max_quantity if max_quantity is not None else max_line_quantity()
    label = getattr(variant, "name", None) or getattr(variant, "sku", "This item")

    if not in_stock(variant):
        return _reject(ErrorKind.OUT_OF_STOCK, f"{label} is out of stock", available=0)

    if requested <= 0:
        return _reject(ErrorKind.VALIDATION, "Quantity must be greater than 0")

    if requested > cap:
        return _reject(
            ErrorKind.EXCEEDS_SYSTEM_CAP, f"Quantity cannot exceed {cap}"
        )

    if mode == QuantityMode.ADD:
        final = existing_quantity + requested
    else:
        final = requested

    if final > cap:
        return _reject(
            ErrorKind.EXCEEDS_SYSTEM_CAP,
            f"Cannot add more items. Maximum quantity is {cap}",
            available=max(cap - existing_quantity, 0) if mode == QuantityMode.ADD else cap,
        )

    if enforces_stock_limit(variant) and final > variant.stock_quantity:
        if mode == QuantityMode.ADD:
            available = variant.stock_quantity - existing_quantity
        else:
            available = variant.stock_quantity
        if available <= 0:
            message = f"No more items available for {label}"
        else:
            message = f"Only {available} more items can be added for {label}"
            if mode == QuantityMode.SET:
                message = f"Only {available} items available for {label}"
        return _reject(ErrorKind.INSUFFICIENT_STOCK, message, available=max(available, 0))

    return QuantityCheck(ok=True, quantity=final)


def max_addable_quantity(
    variant: VariantLike,
    existing_quantity: int = 0,
    max_quantity: Optional[int] = None,
) -> int:
    """Largest quantity that can still be added on top of ``existing_quantity``."""
    if not in_stock(variant):
        return 0
    cap = max_quantity if max_quantity is not None else max_line_quantity()
    room = cap - existing_quantity
    if enforces_stock_limit(variant):
        room = min(room, variant.stock_quantity - existing_quantity)
    return max(room, 0)

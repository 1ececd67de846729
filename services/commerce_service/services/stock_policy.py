"""Stock predicates shared by the selector, the quantity validator and checkout."""

import uuid
from decimal import Decimal
from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class VariantLike(Protocol):
    """Everything the stock policy and default-variant cascade read.

    Implemented by ``ProductVariant`` and by lightweight in-memory doubles.
    """

    id: uuid.UUID
    position: int
    price_minor: int
    stock_quantity: int
    track_inventory: bool
    allow_backorder: bool
    is_default: bool
    canonical_variant: bool
    sales_count: int
    conversion_score: Decimal
    size_value: Optional[Decimal]
    size_type: Optional[str]
    color_hex: Optional[str]


def in_stock(variant: VariantLike) -> bool:
    """Purchasable as far as stock is concerned."""
    if not variant.track_inventory:
        return True
    return variant.stock_quantity > 0 or variant.allow_backorder


def is_available(variant) -> bool:
    """Product is sellable and the variant is in stock."""
    return variant.product.available and in_stock(variant)


def enforces_stock_limit(variant: VariantLike) -> bool:
    """Quantity is capped by stock only for tracked, non-backorder variants."""
    return variant.track_inventory and not variant.allow_backorder


def has_performance_data(variant: VariantLike) -> bool:
    return variant.sales_count > 0 or Decimal(variant.conversion_score) > 0

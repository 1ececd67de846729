"""Default variant selection.

Picks the variant to pre-select when a shopper has not chosen one. The
cascade is a pure function of the variant data; the first rule that yields
a variant wins:

1. admin override: in-stock variant flagged ``is_default``
2. nothing in stock: canonical variant, else first by display order
3. bestseller: highest ``0.7 * sales_count + 0.3 * conversion_score``
4. entry level: smallest size for size-only scopes, otherwise the cheapest
   of <= 2 price points or the second cheapest of >= 3
5. in-stock canonical variant, else first in-stock by display order

Rule 4 skips the absolute cheapest price point when there are three or
more.
"""

import hashlib
import time
import uuid
from collections import OrderedDict
from decimal import Decimal
from typing import Callable, Optional, Sequence, TypeVar

from libs.common.config import get_settings
from libs.common.logging import get_logger
from services.commerce_service.models import Product
from services.commerce_service.services.stock_policy import (
    VariantLike,
    has_performance_data,
    in_stock,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

V = TypeVar("V", bound=VariantLike)

SALES_WEIGHT = Decimal("0.7")
CONVERSION_WEIGHT = Decimal("0.3")

# volume < weight < quantity < anything else
SIZE_TYPE_RANK = {"volume": 1, "weight": 2, "quantity": 3}


# ---------------------------------------------------------------------------
# Ordering helpers
# ---------------------------------------------------------------------------


def display_key(variant: VariantLike) -> tuple:
    return (variant.position, variant.id)


def performance_score(variant: VariantLike) -> Decimal:
    return SALES_WEIGHT * variant.sales_count + CONVERSION_WEIGHT * Decimal(
        variant.conversion_score
    )


def size_key(variant: VariantLike) -> tuple:
    rank = SIZE_TYPE_RANK.get(variant.size_type or "", 4)
    return (rank, Decimal(variant.size_value), variant.position, variant.id)


def is_size_only(variants: Sequence[VariantLike]) -> bool:
    """Variants vary by size alone: at least one sized, none coloured."""
    has_size = any(v.size_value is not None for v in variants)
    has_color = any(bool(v.color_hex) for v in variants)
    return has_size and not has_color


def _first(variants: Sequence[V]) -> Optional[V]:
    return min(variants, key=display_key) if variants else None


# ---------------------------------------------------------------------------
# Cascade steps
# ---------------------------------------------------------------------------


def _admin_override(stocked: list[V]) -> Optional[V]:
    return _first([v for v in stocked if v.is_default])


def _out_of_stock_fallback(variants: Sequence[V], stocked: list[V]) -> Optional[V]:
    if stocked:
        return None
    return _first([v for v in variants if v.canonical_variant]) or _first(variants)


def _bestseller(stocked: list[V]) -> Optional[V]:
    performers = [v for v in stocked if has_performance_data(v)]
    if not performers:
        return None
    best_score = max(performance_score(v) for v in performers)
    return _first([v for v in performers if performance_score(v) == best_score])


def _entry_level(variants: Sequence[V], stocked: list[V]) -> Optional[V]:
    if is_size_only(variants):
        sized = [v for v in stocked if v.size_value is not None]
        return min(sized, key=size_key) if sized else None

    price_points = sorted({v.price_minor for v in stocked})
    if not price_points:
        return None
    target = price_points[0] if len(price_points) <= 2 else price_points[1]
    return _first([v for v in stocked if v.price_minor == target])


def _canonical_or_first(stocked: list[V]) -> Optional[V]:
    return _first([v for v in stocked if v.canonical_variant]) or _first(stocked)


def select_default_variant(variants: Sequence[V]) -> Optional[V]:
    """Run the cascade over a variant scope. Returns None for an empty scope."""
    if not variants:
        return None

    stocked = [v for v in variants if in_stock(v)]

    return (
        _admin_override(stocked)
        or _out_of_stock_fallback(variants, stocked)
        or _bestseller(stocked)
        or _entry_level(variants, stocked)
        or _canonical_or_first(stocked)
    )


# ---------------------------------------------------------------------------
# Content-keyed cache
# ---------------------------------------------------------------------------


def version_token(variants: Sequence[VariantLike]) -> str:
    """Digest of every field the cascade reads, for every variant in scope.

    Any change that can affect the selection (stock reaching zero, a flag
    flipping, a price edit) yields a different token.
    """
    digest = hashlib.sha256()
    for v in sorted(variants, key=lambda item: str(item.id)):
        digest.update(
            "|".join(
                str(part)
                for part in (
                    v.id,
                    v.position,
                    v.price_minor,
                    v.stock_quantity,
                    v.track_inventory,
                    v.allow_backorder,
                    v.is_default,
                    v.canonical_variant,
                    v.sales_count,
                    Decimal(v.conversion_score).normalize(),
                    v.size_value,
                    v.size_type,
                    v.color_hex,
                )
            ).encode()
        )
        digest.update(b"\n")
    return digest.hexdigest()


class VariantSelectionCache:
    """Time-boxed memo of selections keyed by ``version_token``.

    Entries expire after ``ttl_seconds``; since the key is derived from the
    data itself, a stale selection can never be returned for changed data.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, Optional[uuid.UUID]]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def select(self, variants: Sequence[V]) -> Optional[V]:
        if not variants:
            return None

        token = version_token(variants)
        now = self._clock()
        entry = self._entries.get(token)
        if entry and entry[0] > now:
            self.hits += 1
            return next((v for v in variants if v.id == entry[1]), None)

        self.misses += 1
        selected = select_default_variant(variants)
        self._entries[token] = (
            now + self.ttl_seconds,
            selected.id if selected else None,
        )
        self._entries.move_to_end(token)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
        return selected

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0


selection_cache = VariantSelectionCache(
    ttl_seconds=get_settings().VARIANT_CACHE_TTL_SECONDS
)


async def load_default_variant(
    db: AsyncSession,
    product_id: uuid.UUID,
    scope: Optional[Callable[[VariantLike], bool]] = None,
):
    """Load a product's variants and return ``(product, default_variant)``.

    ``scope`` narrows the candidate set (e.g. only one colour) before the
    cascade runs. Returns ``(None, None)`` for an unknown product.
    """
    result = await db.execute(
        select(Product)
        .where(Product.id == product_id)
        .execution_options(populate_existing=True)
    )
    product = result.scalar_one_or_none()
    if product is None:
        return None, None

    variants = list(product.variants)
    if scope is not None:
        variants = [v for v in variants if scope(v)]

    selected = selection_cache.select(variants)
    logger.debug(
        "Default variant for product %s: %s",
        product_id,
        selected.sku if selected is not None and hasattr(selected, "sku") else None,
    )
    return product, selected

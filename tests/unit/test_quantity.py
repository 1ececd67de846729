"""Unit tests for the stock policy and the quantity validator.

Pure functions over in-memory variant doubles; no database involved.
"""

import pytest
from libs.common.config import Settings
from services.commerce_service.configuration import build_store_configuration
from services.commerce_service.models import ProductStatus
from services.commerce_service.services import quantity
from services.commerce_service.services.quantity import (
    QuantityMode,
    max_addable_quantity,
    validate_quantity,
)
from services.commerce_service.services.results import ErrorKind
from services.commerce_service.services.stock_policy import (
    enforces_stock_limit,
    has_performance_data,
    in_stock,
    is_available,
)
from tests.factories import ProductFactory, VariantDouble, VariantFactory

# ---------------------------------------------------------------------------
# Stock policy
# ---------------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.parametrize(
    "track, stock, backorder, expected",
    [
        (False, 0, False, True),
        (True, 5, False, True),
        (True, 0, True, True),
        (True, 0, False, False),
    ],
)
def test_in_stock(track, stock, backorder, expected):
    variant = VariantDouble(
        track_inventory=track, stock_quantity=stock, allow_backorder=backorder
    )
    assert in_stock(variant) is expected


@pytest.mark.unit
def test_stock_limit_only_for_tracked_without_backorder():
    assert enforces_stock_limit(VariantDouble())
    assert not enforces_stock_limit(VariantDouble(allow_backorder=True))
    assert not enforces_stock_limit(VariantDouble(track_inventory=False))


@pytest.mark.unit
def test_performance_data_requires_sales_or_conversion():
    assert not has_performance_data(VariantDouble())
    assert has_performance_data(VariantDouble(sales_count=1))


@pytest.mark.unit
def test_available_needs_sellable_product_and_stock():
    live = ProductFactory.create()
    archived = ProductFactory.create(status=ProductStatus.ARCHIVED)

    assert is_available(VariantFactory.create(product=live))
    assert not is_available(VariantFactory.create(product=live, stock_quantity=0))
    assert not is_available(VariantFactory.create(product=archived))
    assert VariantFactory.create(product=live).available


# ---------------------------------------------------------------------------
# validate_quantity
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_add_mode_sums_existing_quantity():
    check = validate_quantity(3, VariantDouble(stock_quantity=10), existing_quantity=4)

    assert check.ok
    assert check.quantity == 7


@pytest.mark.unit
def test_set_mode_replaces_quantity():
    check = validate_quantity(
        3, VariantDouble(stock_quantity=10), existing_quantity=4, mode=QuantityMode.SET
    )

    assert check.ok
    assert check.quantity == 3


@pytest.mark.unit
def test_out_of_stock_is_checked_first():
    check = validate_quantity(0, VariantDouble(stock_quantity=0))

    assert not check.ok
    assert check.error_kind == ErrorKind.OUT_OF_STOCK


@pytest.mark.unit
@pytest.mark.parametrize("requested", [0, -2])
def test_non_positive_request_is_a_validation_error(requested):
    check = validate_quantity(requested, VariantDouble())

    assert check.error_kind == ErrorKind.VALIDATION


@pytest.mark.unit
def test_request_above_cap_rejected():
    check = validate_quantity(100, VariantDouble(track_inventory=False))

    assert check.error_kind == ErrorKind.EXCEEDS_SYSTEM_CAP


@pytest.mark.unit
def test_resolved_quantity_above_cap_rejected():
    check = validate_quantity(
        10, VariantDouble(track_inventory=False), existing_quantity=95
    )

    assert check.error_kind == ErrorKind.EXCEEDS_SYSTEM_CAP
    assert check.available == 4


@pytest.mark.unit
def test_cap_is_inclusive():
    check = validate_quantity(
        4, VariantDouble(track_inventory=False), existing_quantity=95
    )

    assert check.ok
    assert check.quantity == 99


@pytest.mark.unit
def test_insufficient_stock_reports_remaining_room():
    check = validate_quantity(3, VariantDouble(stock_quantity=5), existing_quantity=4)

    assert check.error_kind == ErrorKind.INSUFFICIENT_STOCK
    assert check.available == 1
    assert "Only 1 more" in check.message


@pytest.mark.unit
def test_backorder_ignores_stock_level():
    check = validate_quantity(
        50, VariantDouble(stock_quantity=0, allow_backorder=True)
    )

    assert check.ok
    assert check.quantity == 50


@pytest.mark.unit
def test_untracked_variant_only_bounded_by_cap():
    check = validate_quantity(99, VariantDouble(stock_quantity=0, track_inventory=False))

    assert check.ok


@pytest.mark.unit
def test_custom_cap():
    check = validate_quantity(6, VariantDouble(), max_quantity=5)

    assert check.error_kind == ErrorKind.EXCEEDS_SYSTEM_CAP


# ---------------------------------------------------------------------------
# max_addable_quantity
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_max_addable_is_smaller_of_stock_and_cap_room():
    assert max_addable_quantity(VariantDouble(stock_quantity=10), 7) == 3
    assert max_addable_quantity(VariantDouble(track_inventory=False), 97) == 2
    assert max_addable_quantity(VariantDouble(stock_quantity=0), 0) == 0
    assert max_addable_quantity(VariantDouble(stock_quantity=3), 5) == 0


@pytest.mark.unit
def test_cap_comes_from_store_configuration(monkeypatch):
    config = build_store_configuration(Settings(MAX_CART_LINE_QUANTITY=5))
    monkeypatch.setattr(quantity, "get_store_configuration", lambda: config)

    assert quantity.max_line_quantity() == 5
    check = validate_quantity(6, VariantDouble(stock_quantity=50))
    assert check.error_kind == ErrorKind.EXCEEDS_SYSTEM_CAP
    assert max_addable_quantity(VariantDouble(stock_quantity=50), 3) == 2

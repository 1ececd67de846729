"""Seeded catalog fixtures shared by the commerce tests."""

import pytest_asyncio

from tests.factories import add_product


@pytest_asyncio.fixture
async def serum(db_session):
    """A $10.00 serum with one tracked variant holding 10 units."""
    product, (variant,) = await add_product(
        db_session,
        name="Rose Serum",
        variants=[{"name": "50 ml", "price_minor": 1000, "stock_quantity": 10}],
    )
    return variant


@pytest_asyncio.fixture
async def cream(db_session):
    """A $5.00 cream with plenty of stock."""
    product, (variant,) = await add_product(
        db_session,
        name="Night Cream",
        variants=[{"name": "30 ml", "price_minor": 500, "stock_quantity": 200}],
    )
    return variant

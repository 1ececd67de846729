"""Commerce cart router: view, add, update, remove and clear."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request
from libs.common.rate_limit import cart_limit
from libs.db.session import get_async_db
from services.commerce_service.models import Cart
from services.commerce_service.routers._helpers import get_cart, raise_for_result
from services.commerce_service.schemas import CartItemCreate, CartItemUpdate, CartResponse
from services.commerce_service.services import cart_lines
from services.commerce_service.services.cart_ops import (
    add_item,
    clear_cart,
    decrement_line,
    increment_line,
    set_quantity,
    summarize_cart,
)
from services.commerce_service.services.variant_selector import load_default_variant
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["commerce"])


async def _cart_response(db: AsyncSession, cart: Cart, request: Request) -> CartResponse:
    summary = await summarize_cart(db, cart)
    return CartResponse.from_summary(
        summary, messages=getattr(request.state, "cart_messages", None)
    )


@router.get("/cart", response_model=CartResponse)
async def get_cart_contents(
    request: Request,
    cart: Annotated[Cart, Depends(get_cart)],
    db: Annotated[AsyncSession, Depends(get_async_db)],
):
    """Get the current cart (created on first visit)."""
    return await _cart_response(db, cart, request)


@router.post("/cart/items", response_model=CartResponse, status_code=201)
@cart_limit
async def add_cart_item(
    request: Request,
    payload: CartItemCreate,
    cart: Annotated[Cart, Depends(get_cart)],
    db: Annotated[AsyncSession, Depends(get_async_db)],
):
    """Add a variant to the cart.

    When only ``product_id`` is given, the product's default variant is used.
    """
    if payload.variant_id is not None:
        variant = await cart_lines.load_variant(db, payload.variant_id)
    elif payload.product_id is not None:
        _, variant = await load_default_variant(db, payload.product_id)
    else:
        raise HTTPException(
            status_code=422, detail="variant_id or product_id is required"
        )

    if variant is None:
        raise HTTPException(status_code=404, detail="Product variant not found")

    result = await add_item(db, cart, variant, payload.quantity)
    raise_for_result(result)
    return await _cart_response(db, cart, request)


@router.patch("/cart/items/{line_id}", response_model=CartResponse)
@cart_limit
async def update_cart_item(
    request: Request,
    line_id: uuid.UUID,
    payload: CartItemUpdate,
    cart: Annotated[Cart, Depends(get_cart)],
    db: Annotated[AsyncSession, Depends(get_async_db)],
):
    """Set a line's quantity, or step it with ``action``. Zero removes the line."""
    line = await cart_lines.get_line(db, line_id, cart_id=cart.id)
    if line is None:
        raise HTTPException(status_code=404, detail="Cart item not found")

    if payload.action == "increment":
        result = await increment_line(db, line)
    elif payload.action == "decrement":
        result = await decrement_line(db, line)
    elif payload.quantity is not None:
        result = await set_quantity(db, line, payload.quantity)
    else:
        raise HTTPException(status_code=422, detail="quantity or action is required")

    raise_for_result(result)
    return await _cart_response(db, cart, request)


@router.delete("/cart/items/{line_id}", response_model=CartResponse)
async def remove_cart_item(
    request: Request,
    line_id: uuid.UUID,
    cart: Annotated[Cart, Depends(get_cart)],
    db: Annotated[AsyncSession, Depends(get_async_db)],
):
    line = await cart_lines.get_line(db, line_id, cart_id=cart.id)
    if line is None:
        raise HTTPException(status_code=404, detail="Cart item not found")

    result = await set_quantity(db, line, 0)
    raise_for_result(result)
    return await _cart_response(db, cart, request)


@router.delete("/cart", response_model=CartResponse)
async def clear_cart_contents(
    request: Request,
    cart: Annotated[Cart, Depends(get_cart)],
    db: Annotated[AsyncSession, Depends(get_async_db)],
):
    """Remove every line; all or nothing."""
    result = await clear_cart(db, cart)
    raise_for_result(result, cleared_line_ids=result.metadata.get("cleared_line_ids"))
    return await _cart_response(db, cart, request)

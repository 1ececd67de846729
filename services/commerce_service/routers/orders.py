"""Commerce orders router: shopper-facing order lookup and reorder."""

from collections.abc import MutableMapping
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from libs.auth.dependencies import get_optional_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.commerce_service.models import Cart, Order
from services.commerce_service.routers._helpers import (
    get_cart,
    get_session,
    raise_for_result,
)
from services.commerce_service.schemas import (
    CartResponse,
    OrderResponse,
    ReorderResponse,
)
from services.commerce_service.services.cart_ops import summarize_cart
from services.commerce_service.services.checkout import RECENT_ORDERS_SESSION_KEY
from services.commerce_service.services.order_ops import get_order_by_number
from services.commerce_service.services.reorder import reorder
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["commerce"])


async def get_visible_order(
    order_number: str,
    session: Annotated[MutableMapping, Depends(get_session)],
    current_user: Annotated[Optional[AuthUser], Depends(get_optional_user)],
    db: Annotated[AsyncSession, Depends(get_async_db)],
) -> Order:
    """Owners see their orders; guests see orders placed from their session."""
    order = await get_order_by_number(db, order_number)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")

    if current_user and (current_user.is_admin or order.user_id == current_user.user_id):
        return order
    if order.user_id is None and order.number in session.get(
        RECENT_ORDERS_SESSION_KEY, []
    ):
        return order
    raise HTTPException(status_code=404, detail="Order not found")


@router.get("/orders/{order_number}", response_model=OrderResponse)
async def get_order(order: Annotated[Order, Depends(get_visible_order)]):
    return order


@router.post("/orders/{order_number}/reorder", response_model=ReorderResponse)
async def reorder_items(
    request: Request,
    order: Annotated[Order, Depends(get_visible_order)],
    cart: Annotated[Cart, Depends(get_cart)],
    db: Annotated[AsyncSession, Depends(get_async_db)],
):
    """Add a past order's items to the current cart, as far as stock allows."""
    result = await reorder(db, order, cart)
    raise_for_result(
        result,
        success_items=result.metadata.get("success_items", []),
        failed_items=result.metadata.get("failed_items", []),
    )

    summary = await summarize_cart(db, cart)
    return ReorderResponse(
        message=result.metadata["message"],
        success_items=result.metadata["success_items"],
        failed_items=result.metadata["failed_items"],
        cart=CartResponse.from_summary(summary),
    )

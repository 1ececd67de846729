"""Admin order management: status and fulfillment transitions."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.commerce_service.routers._helpers import raise_for_result
from services.commerce_service.schemas import (
    FulfillmentStatusUpdate,
    OrderResponse,
    OrderStatusUpdate,
)
from services.commerce_service.services.order_ops import (
    get_order_by_number,
    transition_fulfillment,
    transition_status,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["admin-commerce"])
logger = get_logger(__name__)


@router.post("/orders/{order_number}/status", response_model=OrderResponse)
async def update_order_status(
    order_number: str,
    payload: OrderStatusUpdate,
    admin: Annotated[AuthUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_async_db)],
):
    order = await get_order_by_number(db, order_number)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")

    result = await transition_status(db, order, payload.status)
    raise_for_result(result)
    logger.info(
        "Admin %s set order %s status to %s",
        admin.user_id,
        order_number,
        payload.status.value,
    )
    return result.resource


@router.post("/orders/{order_number}/fulfillment", response_model=OrderResponse)
async def update_fulfillment_status(
    order_number: str,
    payload: FulfillmentStatusUpdate,
    admin: Annotated[AuthUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_async_db)],
):
    order = await get_order_by_number(db, order_number)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")

    result = await transition_fulfillment(db, order, payload.fulfillment_status)
    raise_for_result(result)
    logger.info(
        "Admin %s set order %s fulfillment to %s",
        admin.user_id,
        order_number,
        payload.fulfillment_status.value,
    )
    return result.resource

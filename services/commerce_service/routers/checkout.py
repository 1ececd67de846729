"""Commerce checkout router: form state, delivery options and order placement."""

from collections.abc import MutableMapping
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from libs.auth.dependencies import get_optional_user
from libs.auth.models import AuthUser
from libs.common.rate_limit import checkout_limit
from libs.db.session import get_async_db
from services.commerce_service.models import Cart, DeliveryMethod, PaymentMethod
from services.commerce_service.routers._helpers import (
    ERROR_STATUS,
    get_cart,
    get_session,
)
from services.commerce_service.schemas import (
    CheckoutFormResponse,
    DeliveryOptionResponse,
    OrderResponse,
)
from services.commerce_service.services.checkout import process_checkout, restore_form
from services.commerce_service.services.delivery import delivery_options
from services.commerce_service.services.results import ErrorKind
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["commerce"])


@router.get("/checkout/form", response_model=CheckoutFormResponse)
async def get_checkout_form(
    session: Annotated[MutableMapping, Depends(get_session)],
):
    """Previously entered (possibly partial) checkout data for this session."""
    form = restore_form(session)
    return CheckoutFormResponse(
        form=form.persistable_data(),
        delivery_methods=[m.value for m in DeliveryMethod],
        payment_methods=[m.value for m in PaymentMethod],
    )


@router.get("/checkout/delivery-options", response_model=list[DeliveryOptionResponse])
async def list_delivery_options(
    method: DeliveryMethod = Query(DeliveryMethod.COURIER),
):
    return [
        DeliveryOptionResponse(
            date=option.date,
            time_slot=option.time_slot,
            value=option.value,
            disabled=option.disabled,
        )
        for option in delivery_options(method.value)
    ]


@router.post("/checkout", response_model=OrderResponse, status_code=201)
@checkout_limit
async def checkout(
    request: Request,
    form_data: Annotated[dict[str, Any], Body()],
    session: Annotated[MutableMapping, Depends(get_session)],
    cart: Annotated[Cart, Depends(get_cart)],
    current_user: Annotated[Optional[AuthUser], Depends(get_optional_user)],
    db: Annotated[AsyncSession, Depends(get_async_db)],
):
    """Place a cash-on-delivery order from the current cart."""
    result = await process_checkout(
        db,
        session=session,
        form_data=form_data,
        cart=cart,
        user_id=current_user.user_id if current_user else None,
    )
    if result.failure:
        kind = result.error_kind or ErrorKind.PERSISTENCE
        detail = {
            "kind": kind.value,
            "errors": result.errors,
            "error_type": result.metadata.get("error_type"),
            "form": result.metadata.get("form"),
        }
        if result.metadata.get("redirect"):
            detail["redirect_to"] = "/commerce/cart"
        raise HTTPException(status_code=ERROR_STATUS[kind], detail=detail)

    return result.resource

"""Shared helpers for commerce routers: session/cart resolution and error mapping."""

from collections.abc import MutableMapping
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from libs.auth.dependencies import get_optional_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.commerce_service.models import Cart
from services.commerce_service.services.cart_ops import find_or_create_cart
from services.commerce_service.services.checkout import CART_SESSION_KEY
from services.commerce_service.services.results import ErrorKind, ServiceResult
from sqlalchemy.ext.asyncio import AsyncSession

ERROR_STATUS = {
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.OUT_OF_STOCK: status.HTTP_409_CONFLICT,
    ErrorKind.INSUFFICIENT_STOCK: status.HTTP_409_CONFLICT,
    ErrorKind.EXCEEDS_SYSTEM_CAP: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.PERSISTENCE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def raise_for_result(result: ServiceResult, **extra) -> None:
    """Turn a failed service result into an HTTPException."""
    if result.success:
        return
    kind = result.error_kind or ErrorKind.PERSISTENCE
    detail = {"kind": kind.value, "errors": result.errors, **extra}
    if "available" in result.metadata:
        detail["available"] = result.metadata["available"]
    raise HTTPException(status_code=ERROR_STATUS[kind], detail=detail)


def get_session(request: Request) -> MutableMapping:
    """The signed cookie session installed by SessionMiddleware."""
    return request.session


async def get_cart(
    request: Request,
    session: Annotated[MutableMapping, Depends(get_session)],
    current_user: Annotated[Optional[AuthUser], Depends(get_optional_user)],
    db: Annotated[AsyncSession, Depends(get_async_db)],
) -> Cart:
    """Resolve the shopper's active cart and pin its token in the session."""
    user_id = current_user.user_id if current_user else None
    request.state.user = current_user

    result = await find_or_create_cart(
        db, user_id=user_id, session_token=session.get(CART_SESSION_KEY)
    )
    raise_for_result(result)

    cart = result.resource
    session[CART_SESSION_KEY] = cart.session_token
    request.state.cart_messages = result.errors
    return cart

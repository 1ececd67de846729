"""Commerce catalog router: default variant pre-selection."""

import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from libs.db.session import get_async_db
from services.commerce_service.schemas import DefaultVariantResponse, VariantResponse
from services.commerce_service.services.variant_selector import load_default_variant
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["commerce"])


@router.get(
    "/products/{product_id}/default-variant", response_model=DefaultVariantResponse
)
async def get_default_variant(
    product_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_async_db)],
    color: Optional[str] = Query(None, description="Limit the choice to one colour"),
):
    """Variant to pre-select on the product page."""
    scope = None
    if color:
        wanted = color.lower()
        scope = lambda v: (v.color_name or "").lower() == wanted  # noqa: E731

    product, variant = await load_default_variant(db, product_id, scope=scope)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")

    return DefaultVariantResponse(
        product_id=product.id,
        variant=VariantResponse.model_validate(variant) if variant else None,
    )

"""Pydantic schemas for the commerce service."""

import uuid
from datetime import date, datetime
from typing import Any, Optional

from libs.common.money import format_money
from pydantic import BaseModel, ConfigDict, Field, computed_field
from services.commerce_service.models import (
    DeliveryMethod,
    FulfillmentStatus,
    OrderStatus,
    PaymentStatus,
)

# ============================================================================
# CATALOG SCHEMAS
# ============================================================================


class VariantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: uuid.UUID
    sku: str
    name: str
    position: int
    price_minor: int
    currency: str
    compare_at_price_minor: Optional[int] = None
    in_stock: bool
    available: bool
    on_sale: bool
    discount_percentage: int
    size_key: Optional[str] = None
    color_name: Optional[str] = None
    color_hex: Optional[str] = None

    @computed_field
    @property
    def price_display(self) -> str:
        return format_money(self.price_minor, self.currency)


class DefaultVariantResponse(BaseModel):
    product_id: uuid.UUID
    variant: Optional[VariantResponse] = None


# ============================================================================
# CART SCHEMAS
# ============================================================================


class CartItemCreate(BaseModel):
    """Either a variant, or a product whose default variant is used."""

    variant_id: Optional[uuid.UUID] = None
    product_id: Optional[uuid.UUID] = None
    quantity: int = 1


class CartItemUpdate(BaseModel):
    quantity: Optional[int] = None
    action: Optional[str] = Field(None, pattern="^(increment|decrement)$")


class CartLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    variant_id: uuid.UUID
    quantity: int
    price_snapshot_minor: int
    price_snapshot_currency: str
    total_price_minor: int
    created_at: datetime
    variant: Optional[VariantResponse] = None

    @computed_field
    @property
    def total_display(self) -> str:
        return format_money(self.total_price_minor, self.price_snapshot_currency)


class CartResponse(BaseModel):
    id: uuid.UUID
    session_token: str
    user_id: Optional[str] = None
    lines: list[CartLineResponse] = []
    total_quantity: int = 0
    subtotal_minor: int = 0
    currency: str
    messages: list[str] = []

    @computed_field
    @property
    def subtotal_display(self) -> str:
        return format_money(self.subtotal_minor, self.currency)

    @classmethod
    def from_summary(cls, summary, messages: Optional[list[str]] = None) -> "CartResponse":
        return cls(
            id=summary.cart.id,
            session_token=summary.cart.session_token,
            user_id=summary.cart.user_id,
            lines=[CartLineResponse.model_validate(line) for line in summary.lines],
            total_quantity=summary.total_quantity,
            subtotal_minor=summary.subtotal_minor,
            currency=summary.currency,
            messages=messages or [],
        )


# ============================================================================
# CHECKOUT SCHEMAS
# ============================================================================


class CheckoutFormResponse(BaseModel):
    form: dict[str, Any]
    delivery_methods: list[str]
    payment_methods: list[str]


class DeliveryOptionResponse(BaseModel):
    date: date
    time_slot: str
    value: str
    disabled: bool


# ============================================================================
# ORDER SCHEMAS
# ============================================================================


class OrderLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    variant_id: Optional[uuid.UUID] = None
    position: int
    product_name: str
    variant_name: Optional[str] = None
    sku: Optional[str] = None
    quantity: int
    unit_price_minor: int
    total_price_minor: int
    currency: str


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    number: str
    user_id: Optional[str] = None
    email: str
    phone_number: str
    status: OrderStatus
    payment_status: PaymentStatus
    fulfillment_status: FulfillmentStatus
    fulfillment_progress: FulfillmentStatus
    shipping_address: dict[str, Any]
    billing_address: dict[str, Any]
    currency: str
    subtotal_minor: int
    tax_total_minor: int
    shipping_total_minor: int
    discount_total_minor: int
    total_minor: int
    delivery_method: DeliveryMethod
    delivery_date: Optional[date] = None
    delivery_time_slot: Optional[str] = None
    delivery_notes: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime
    lines: list[OrderLineResponse] = []

    @computed_field
    @property
    def total_display(self) -> str:
        return format_money(self.total_minor, self.currency)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class FulfillmentStatusUpdate(BaseModel):
    fulfillment_status: FulfillmentStatus


class ReorderItem(BaseModel):
    product_name: str
    variant_name: Optional[str] = None
    quantity: int
    status: str
    requested_quantity: Optional[int] = None
    reason: Optional[str] = None


class ReorderResponse(BaseModel):
    message: str
    success_items: list[ReorderItem] = []
    failed_items: list[ReorderItem] = []
    cart: CartResponse

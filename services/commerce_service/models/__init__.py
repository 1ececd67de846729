"""Commerce service models package."""

from services.commerce_service.models.catalog import Product, ProductVariant
from services.commerce_service.models.commerce import Cart, CartLine, Order, OrderLine
from services.commerce_service.models.enums import (
    DeliveryMethod,
    FulfillmentStatus,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ProductStatus,
    SizeType,
)

__all__ = [
    "Cart",
    "CartLine",
    "DeliveryMethod",
    "FulfillmentStatus",
    "Order",
    "OrderLine",
    "OrderStatus",
    "PaymentMethod",
    "PaymentStatus",
    "Product",
    "ProductStatus",
    "ProductVariant",
    "SizeType",
]

"""Enum definitions for commerce models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class ProductStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


class SizeType(str, enum.Enum):
    VOLUME = "volume"
    WEIGHT = "weight"
    QUANTITY = "quantity"


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COD_DUE = "cod_due"
    PAID = "paid"
    REFUNDED = "refunded"


class FulfillmentStatus(str, enum.Enum):
    UNFULFILLED = "unfulfilled"
    PACKED = "packed"
    DISPATCHED = "dispatched"
    DELIVERED = "delivered"
    PICKED_UP = "picked_up"
    CANCELLED = "cancelled"


class DeliveryMethod(str, enum.Enum):
    COURIER = "courier"
    PICKUP = "pickup"


class PaymentMethod(str, enum.Enum):
    CASH_ON_DELIVERY = "cod"

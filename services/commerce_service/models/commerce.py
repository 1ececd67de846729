"""Commerce models: carts, cart lines, orders and frozen order lines."""

import secrets
import uuid
from datetime import date, datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.common.money import Money
from libs.db.base import Base
from services.commerce_service.models.enums import (
    DeliveryMethod,
    FulfillmentStatus,
    OrderStatus,
    PaymentStatus,
    enum_values,
)
from sqlalchemy import JSON, Boolean, CheckConstraint, Date, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import (
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

# JSONB on PostgreSQL, plain JSON elsewhere
AddressJSON = JSON().with_variant(JSONB(), "postgresql")


def generate_session_token() -> str:
    return secrets.token_urlsafe(24)


# ============================================================================
# CART MODELS
# ============================================================================


class Cart(Base):
    """Shopping carts. Never deleted; closed by setting abandoned_at."""

    __tablename__ = "commerce_carts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Opaque token carried in the shopper's session
    session_token: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, default=generate_session_token
    )
    # Owner (None for guests)
    user_id: Mapped[Optional[str]] = mapped_column(
        String(255), index=True, nullable=True
    )

    abandoned_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        Index("ix_commerce_carts_user_id_abandoned_at", "user_id", "abandoned_at"),
    )

    @property
    def is_active(self) -> bool:
        return self.abandoned_at is None

    def __repr__(self):
        return f"<Cart {self.id} user={self.user_id} active={self.is_active}>"


class CartLine(Base):
    """One row per (cart, variant) with a price snapshot."""

    __tablename__ = "commerce_cart_lines"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    cart_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("commerce_carts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    variant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("commerce_product_variants.id", ondelete="CASCADE"),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    # Price captured at add/update time; cart totals sum this, not the live price
    price_snapshot_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    price_snapshot_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        UniqueConstraint("cart_id", "variant_id", name="uq_commerce_cart_variant"),
        CheckConstraint("quantity > 0", name="positive_quantity"),
        CheckConstraint("price_snapshot_minor >= 0", name="non_negative_snapshot"),
    )

    # Relationships
    variant = relationship("ProductVariant", lazy="selectin")

    @property
    def unit_price(self) -> Money:
        return Money(self.price_snapshot_minor, self.price_snapshot_currency)

    @property
    def total_price_minor(self) -> int:
        return self.price_snapshot_minor * self.quantity

    def __repr__(self):
        return f"<CartLine variant={self.variant_id} qty={self.quantity}>"


# ============================================================================
# ORDER MODELS
# ============================================================================


class Order(Base):
    """Orders. Only the status fields change after creation."""

    __tablename__ = "commerce_orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    number: Mapped[str] = mapped_column(
        String(20), unique=True, nullable=False, index=True
    )

    # Customer
    user_id: Mapped[Optional[str]] = mapped_column(
        String(255), index=True, nullable=True
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    # Independent state axes
    status: Mapped[OrderStatus] = mapped_column(
        SAEnum(
            OrderStatus,
            values_callable=enum_values,
            name="commerce_order_status_enum",
        ),
        default=OrderStatus.PENDING,
        server_default="pending",
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(
            PaymentStatus,
            values_callable=enum_values,
            name="commerce_payment_status_enum",
        ),
        default=PaymentStatus.PENDING,
        server_default="pending",
    )
    fulfillment_status: Mapped[FulfillmentStatus] = mapped_column(
        SAEnum(
            FulfillmentStatus,
            values_callable=enum_values,
            name="commerce_fulfillment_status_enum",
        ),
        default=FulfillmentStatus.UNFULFILLED,
        server_default="unfulfilled",
    )
    # Furthest fulfillment step reached; survives cancellation for support/audit
    fulfillment_progress: Mapped[FulfillmentStatus] = mapped_column(
        SAEnum(
            FulfillmentStatus,
            values_callable=enum_values,
            name="commerce_fulfillment_status_enum",
        ),
        default=FulfillmentStatus.UNFULFILLED,
        server_default="unfulfilled",
    )

    # Address snapshots (copied by value, never a live reference)
    shipping_address: Mapped[dict] = mapped_column(
        AddressJSON, nullable=False, default=dict
    )
    billing_address: Mapped[dict] = mapped_column(
        AddressJSON, nullable=False, default=dict
    )

    # Totals in minor units
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    subtotal_minor: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    tax_total_minor: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    shipping_total_minor: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    discount_total_minor: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    total_minor: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Delivery
    delivery_method: Mapped[DeliveryMethod] = mapped_column(
        SAEnum(
            DeliveryMethod,
            values_callable=enum_values,
            name="commerce_delivery_method_enum",
        ),
        default=DeliveryMethod.PICKUP,
        server_default="pickup",
        index=True,
    )
    delivery_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    delivery_time_slot: Mapped[Optional[str]] = mapped_column(
        String(50), nullable=True
    )
    delivery_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    source_cart_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("commerce_carts.id", ondelete="SET NULL"),
        nullable=True,
    )
    # Stock was decremented when the order was placed; restored on cancel
    stock_committed: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )

    # Timestamps
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    delivered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("subtotal_minor >= 0", name="non_negative_subtotal"),
    )

    # Relationships
    lines = relationship(
        "OrderLine",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLine.position",
        lazy="selectin",
    )

    @staticmethod
    def generate_number() -> str:
        """Generate an order number like ORD-1A2B3C4D."""
        return f"ORD-{secrets.token_hex(4).upper()}"

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def total(self) -> Money:
        return Money(self.total_minor, self.currency)

    def __repr__(self):
        return f"<Order {self.number}>"


class OrderLine(Base):
    """Order line snapshot. Denormalized so catalog edits never reach it."""

    __tablename__ = "commerce_order_lines"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("commerce_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    variant_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("commerce_product_variants.id", ondelete="SET NULL"),
        nullable=True,
    )
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Snapshot at order time (products may change or disappear)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    variant_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="positive_line_quantity"),
        CheckConstraint("unit_price_minor > 0", name="positive_unit_price"),
        CheckConstraint(
            "total_price_minor = unit_price_minor * quantity",
            name="line_total_matches",
        ),
    )

    # Relationships
    order = relationship("Order", back_populates="lines")

    def __repr__(self):
        return f"<OrderLine {self.product_name} qty={self.quantity}>"

"""Catalog models: products and their sellable variants.

The engine only reads catalog rows, apart from the commit-time stock
decrement in order creation.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import ensure_aware, utc_now
from libs.common.money import Money
from libs.db.base import Base
from services.commerce_service.models.enums import ProductStatus, enum_values
from services.commerce_service.services import stock_policy
from sqlalchemy import Boolean, CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship


class Product(Base):
    """Catalog entry. Price and stock always live on the variants."""

    __tablename__ = "commerce_products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[ProductStatus] = mapped_column(
        SAEnum(
            ProductStatus,
            values_callable=enum_values,
            name="commerce_product_status_enum",
        ),
        default=ProductStatus.DRAFT,
        server_default="draft",
    )
    published_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    # Relationships
    variants = relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="[ProductVariant.position, ProductVariant.id]",
        lazy="selectin",
    )

    @property
    def available(self) -> bool:
        """Active and published (publication date reached)."""
        if self.status != ProductStatus.ACTIVE or self.published_at is None:
            return False
        return ensure_aware(self.published_at) <= utc_now()

    def __repr__(self):
        return f"<Product {self.name}>"


class ProductVariant(Base):
    """The sellable unit (e.g. 'Rose Serum - 50 ml')."""

    __tablename__ = "commerce_product_variants"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("commerce_products.id", ondelete="CASCADE"),
        nullable=False,
    )

    sku: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    # Pricing in minor units
    price_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    compare_at_price_minor: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True
    )  # "was" price for sale display

    # Stock
    stock_quantity: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    track_inventory: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true"
    )
    allow_backorder: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false"
    )

    # Default selection signals
    is_default: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false"
    )  # Admin override
    canonical_variant: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false"
    )
    sales_count: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    conversion_score: Mapped[Decimal] = mapped_column(
        Numeric(8, 4), default=Decimal("0"), server_default="0", nullable=False
    )

    # Size (e.g. 50 / ml / volume) and colour
    size_value: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2), nullable=True
    )
    size_unit: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    size_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    color_name: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    color_hex: Mapped[Optional[str]] = mapped_column(String(7), nullable=True)

    # Optimistic concurrency token; bumped on every UPDATE
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("price_minor > 0", name="positive_price"),
        CheckConstraint("stock_quantity >= 0", name="non_negative_stock"),
        CheckConstraint("sales_count >= 0", name="non_negative_sales"),
        CheckConstraint("conversion_score >= 0", name="non_negative_conversion"),
        Index("ix_commerce_variants_product_default", "product_id", "is_default"),
        Index("ix_commerce_variants_size", "size_type", "size_value"),
    )
    __mapper_args__ = {"version_id_col": version}

    # Relationships
    product = relationship("Product", back_populates="variants", lazy="selectin")

    @property
    def price(self) -> Money:
        return Money(self.price_minor, self.currency)

    @property
    def in_stock(self) -> bool:
        return stock_policy.in_stock(self)

    @property
    def available(self) -> bool:
        return stock_policy.is_available(self)

    @property
    def on_sale(self) -> bool:
        return bool(
            self.compare_at_price_minor
            and self.price_minor > 0
            and self.compare_at_price_minor > self.price_minor
        )

    @property
    def discount_percentage(self) -> int:
        if not self.on_sale:
            return 0
        saved = self.compare_at_price_minor - self.price_minor
        return round(saved * 100 / self.compare_at_price_minor)

    @property
    def has_size(self) -> bool:
        return self.size_value is not None

    @property
    def has_color(self) -> bool:
        return bool(self.color_hex)

    @property
    def size_key(self) -> Optional[str]:
        """e.g. '50:ml:volume'; whole sizes drop the decimal part."""
        if not self.has_size:
            return None
        value = self.size_value
        formatted = str(int(value)) if value == int(value) else str(value)
        return ":".join(p for p in (formatted, self.size_unit, self.size_type) if p)

    def __repr__(self):
        return f"<ProductVariant {self.sku}>"

"""Checkout: the customer form, its session persistence, and the orchestrator
that turns a valid form plus the current cart into an order."""

import re
from collections.abc import MutableMapping
from datetime import date
from typing import Any, Optional

from libs.common.logging import get_logger
from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)
from services.commerce_service.configuration import (
    StoreConfiguration,
    get_store_configuration,
)
from services.commerce_service.models import Cart, DeliveryMethod, PaymentMethod
from services.commerce_service.services import cart_lines
from services.commerce_service.services.delivery import (
    validate_booking,
    validate_booking_slot,
)
from services.commerce_service.services.order_ops import (
    CART_EMPTY_MESSAGE,
    CustomerInfo,
    create_order,
)
from services.commerce_service.services.results import ErrorKind, ServiceResult
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

FORM_SESSION_KEY = "checkout_form_data"
CART_SESSION_KEY = "cart_token"
RECENT_ORDERS_SESSION_KEY = "recent_orders"

_email_adapter = TypeAdapter(EmailStr)


class CheckoutForm(BaseModel):
    """Raw checkout input. Fields stay loosely typed so a half-filled form can
    be kept and re-rendered; ``validation_errors`` reports what is missing."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    email: Optional[str] = None
    phone_number: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    address_line_1: Optional[str] = None
    address_line_2: Optional[str] = None
    city: Optional[str] = Field(
        default_factory=lambda: get_store_configuration().default_city
    )
    landmarks: Optional[str] = None
    delivery_method: str = DeliveryMethod.PICKUP.value
    delivery_notes: Optional[str] = None
    delivery_date: Optional[str] = None
    delivery_time_slot: Optional[str] = None
    payment_method: str = PaymentMethod.CASH_ON_DELIVERY.value

    @field_validator("delivery_method", mode="before")
    @classmethod
    def normalize_delivery_method(cls, value: Any) -> str:
        """Unknown methods fall back to pickup."""
        allowed = {m.value for m in DeliveryMethod}
        return value if value in allowed else DeliveryMethod.PICKUP.value

    @field_validator("delivery_date", mode="before")
    @classmethod
    def stringify_date(cls, value: Any) -> Optional[str]:
        if isinstance(value, date):
            return value.isoformat()
        return value

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def courier_delivery(self) -> bool:
        return self.delivery_method == DeliveryMethod.COURIER.value

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def parsed_delivery_date(self) -> Optional[date]:
        if not self.delivery_date:
            return None
        try:
            return date.fromisoformat(self.delivery_date)
        except ValueError:
            return None

    def formatted_phone(self, config: Optional[StoreConfiguration] = None) -> str:
        """Digits only, country code stripped, then re-prefixed: '+96170123456'."""
        prefix = (config or get_store_configuration()).phone_country_prefix
        number = re.sub(r"\D", "", self.phone_number or "")
        if number.startswith(prefix):
            number = number[len(prefix):]
        return f"+{prefix}{number}"

    def shipping_address(self, config: Optional[StoreConfiguration] = None) -> dict:
        return {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "address_line_1": self.address_line_1,
            "address_line_2": self.address_line_2,
            "city": self.city,
            "landmarks": self.landmarks,
            "phone": self.formatted_phone(config),
        }

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validation_errors(
        self,
        config: Optional[StoreConfiguration] = None,
        today: Optional[date] = None,
    ) -> list[str]:
        config = config or get_store_configuration()
        errors = []

        if not self.email:
            errors.append("Email is required")
        else:
            try:
                _email_adapter.validate_python(self.email)
            except ValidationError:
                errors.append("Email is invalid")

        phone = re.sub(r"[\s\-]", "", self.phone_number or "")
        if not phone:
            errors.append("Phone number is required")
        elif not re.fullmatch(config.phone_pattern, phone):
            errors.append("Phone number must be a valid Lebanese mobile number")

        if not self.first_name:
            errors.append("First name is required")
        if not self.last_name:
            errors.append("Last name is required")
        if not self.city:
            errors.append("City is required")

        if self.courier_delivery and not self.address_line_1:
            errors.append("Address is required for courier delivery")

        # Courier needs a date and slot; pickup ones are checked when given
        if self.delivery_date and self.parsed_delivery_date is None:
            errors.append("Delivery date is invalid")
            errors.extend(
                validate_booking_slot(
                    self.delivery_method, self.delivery_time_slot, config=config
                )
            )
        else:
            errors.extend(
                validate_booking(
                    self.delivery_method,
                    self.parsed_delivery_date,
                    self.delivery_time_slot,
                    config=config,
                    today=today,
                )
            )

        if self.payment_method not in {m.value for m in PaymentMethod}:
            errors.append("Payment method is not supported")

        return errors

    def to_customer_info(self, config: Optional[StoreConfiguration] = None) -> CustomerInfo:
        address = self.shipping_address(config)
        return CustomerInfo(
            email=self.email,
            phone_number=self.formatted_phone(config),
            shipping_address=address,
            billing_address=dict(address),
            delivery_method=DeliveryMethod(self.delivery_method),
            delivery_date=self.parsed_delivery_date,
            delivery_time_slot=self.delivery_time_slot or None,
            delivery_notes=self.delivery_notes,
            payment_method=PaymentMethod(self.payment_method),
        )

    def persistable_data(self) -> dict[str, str]:
        """Non-blank fields, JSON-safe for the session cookie."""
        return {
            key: value
            for key, value in self.model_dump().items()
            if value not in (None, "")
        }


# ---------------------------------------------------------------------------
# Session state
# ---------------------------------------------------------------------------


def restore_form(session: MutableMapping) -> CheckoutForm:
    return CheckoutForm.model_validate(session.get(FORM_SESSION_KEY) or {})


def persist_form(form: CheckoutForm, session: MutableMapping) -> None:
    session[FORM_SESSION_KEY] = form.persistable_data()


def clear_form(session: MutableMapping) -> None:
    session.pop(FORM_SESSION_KEY, None)


def remember_order(session: MutableMapping, number: str, keep: int = 10) -> None:
    """Order numbers placed from this session; lets guests view their orders."""
    recent = [n for n in session.get(RECENT_ORDERS_SESSION_KEY, []) if n != number]
    session[RECENT_ORDERS_SESSION_KEY] = ([number] + recent)[:keep]


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


async def process_checkout(
    db: AsyncSession,
    *,
    session: MutableMapping,
    form_data: dict[str, Any],
    cart: Optional[Cart],
    user_id: Optional[str] = None,
    config: Optional[StoreConfiguration] = None,
    today: Optional[date] = None,
) -> ServiceResult:
    """Validate the submitted form and place the order.

    ``metadata["error_type"]`` tells callers whether a failure came from the
    form ("validation") or from order creation ("service");
    ``metadata["redirect"]`` is set when the cart is empty.
    """
    config = config or get_store_configuration()

    if cart is None or await cart_lines.total_quantity(db, cart.id) <= 0:
        return ServiceResult.fail(
            ErrorKind.VALIDATION, CART_EMPTY_MESSAGE, error_type="cart", redirect=True
        )

    form = CheckoutForm.model_validate(form_data or {})
    persist_form(form, session)

    errors = form.validation_errors(config=config, today=today)
    if errors:
        logger.info("Checkout form rejected for cart %s: %s", cart.id, errors)
        return ServiceResult.fail(
            ErrorKind.VALIDATION,
            errors,
            error_type="validation",
            form=form.persistable_data(),
        )

    result = await create_order(
        db,
        cart,
        form.to_customer_info(config),
        user_id=user_id,
        enforce_stock=config.enforce_stock_at_commit,
    )
    if result.failure:
        return ServiceResult.fail(
            result.error_kind,
            result.errors,
            error_type="service",
            redirect=CART_EMPTY_MESSAGE in result.errors,
            form=form.persistable_data(),
        )

    order = result.resource
    clear_form(session)
    session.pop(CART_SESSION_KEY, None)
    remember_order(session, order.number)
    return ServiceResult.ok(
        order,
        order_number=order.number,
        cart_cleared=result.metadata.get("cart_cleared", False),
    )

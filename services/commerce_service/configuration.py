"""Immutable store configuration (currency, delivery windows, phone rules).

Built once from ``Settings`` and passed by reference; nothing mutates it at
runtime.
"""

from functools import lru_cache
from typing import Optional

from libs.common.config import Settings, get_settings
from pydantic import BaseModel, ConfigDict


class DeliveryWindow(BaseModel):
    """Bookable dates/slots for one delivery method."""

    model_config = ConfigDict(frozen=True)

    time_slots: tuple[str, ...]
    base_date_offset: int  # first bookable day, relative to today
    days_ahead: int  # additional days after the base date
    same_day_enabled: bool


COURIER_WINDOW = DeliveryWindow(
    time_slots=("09:00-12:00", "12:00-15:00", "15:00-18:00", "18:00-21:00"),
    base_date_offset=1,
    days_ahead=4,
    same_day_enabled=False,
)

PICKUP_WINDOW = DeliveryWindow(
    time_slots=("09:00-21:00",),
    base_date_offset=0,
    days_ahead=2,
    same_day_enabled=True,
)


class StoreConfiguration(BaseModel):
    model_config = ConfigDict(frozen=True)

    currency: str
    default_city: str
    max_line_quantity: int
    phone_pattern: str
    phone_country_prefix: str
    enforce_stock_at_commit: bool
    courier: DeliveryWindow = COURIER_WINDOW
    pickup: DeliveryWindow = PICKUP_WINDOW

    @property
    def store_hours(self) -> str:
        return self.pickup.time_slots[0]

    def window_for(self, method: Optional[str]) -> DeliveryWindow:
        return self.courier if method == "courier" else self.pickup


def build_store_configuration(settings: Settings) -> StoreConfiguration:
    return StoreConfiguration(
        currency=settings.DEFAULT_CURRENCY,
        default_city=settings.DEFAULT_CITY,
        max_line_quantity=settings.MAX_CART_LINE_QUANTITY,
        phone_pattern=settings.PHONE_PATTERN,
        phone_country_prefix=settings.PHONE_COUNTRY_PREFIX,
        enforce_stock_at_commit=settings.ENFORCE_STOCK_AT_COMMIT,
    )


@lru_cache
def get_store_configuration() -> StoreConfiguration:
    """Process-wide configuration, loaded on first use."""
    return build_store_configuration(get_settings())

"""Delivery date/slot rules for courier and pickup orders."""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional

from libs.common.datetime_utils import store_now
from services.commerce_service.configuration import (
    DeliveryWindow,
    StoreConfiguration,
    get_store_configuration,
)


@dataclass(frozen=True)
class DeliveryOption:
    date: date
    time_slot: str
    disabled: bool = False

    @property
    def value(self) -> str:
        return f"{self.date.isoformat()}|{self.time_slot}"


def parse_time_slot(slot: str) -> tuple[time, time]:
    """'09:00-12:00' -> (09:00, 12:00). Raises ValueError on bad input."""
    start, _, end = slot.partition("-")
    if not end:
        raise ValueError(f"Invalid time slot: {slot!r}")
    return time.fromisoformat(start.strip()), time.fromisoformat(end.strip())


def bookable_dates(window: DeliveryWindow, today: date) -> list[date]:
    base = today + timedelta(days=window.base_date_offset)
    dates = [base + timedelta(days=offset) for offset in range(window.days_ahead + 1)]
    if not window.same_day_enabled:
        dates = [day for day in dates if day != today]
    return dates


def _slot_passed(slot: str, on: date, now: datetime) -> bool:
    if on != now.date():
        return False
    _, end = parse_time_slot(slot)
    return now.time() >= end


def delivery_options(
    method: Optional[str],
    config: Optional[StoreConfiguration] = None,
    now: Optional[datetime] = None,
) -> list[DeliveryOption]:
    """Every (date, slot) pair for the method; slots already over are disabled."""
    config = config or get_store_configuration()
    now = now or store_now()
    window = config.window_for(method)
    return [
        DeliveryOption(day, slot, disabled=_slot_passed(slot, day, now))
        for day in bookable_dates(window, now.date())
        for slot in window.time_slots
    ]


def validate_booking_date(
    method: Optional[str],
    delivery_date: Optional[date],
    config: Optional[StoreConfiguration] = None,
    today: Optional[date] = None,
) -> list[str]:
    """A date is required for courier delivery and optional for pickup."""
    config = config or get_store_configuration()
    today = today or store_now().date()

    if delivery_date is None:
        if method == "courier":
            return ["Delivery date is required for courier delivery"]
        return []
    if delivery_date not in bookable_dates(config.window_for(method), today):
        return ["Delivery date is not available"]
    return []


def validate_booking_slot(
    method: Optional[str],
    time_slot: Optional[str],
    config: Optional[StoreConfiguration] = None,
) -> list[str]:
    config = config or get_store_configuration()

    if not time_slot:
        if method == "courier":
            return ["Delivery time slot is required for courier delivery"]
        return []
    if time_slot not in config.window_for(method).time_slots:
        return ["Delivery time slot is not available"]
    return []


def validate_booking(
    method: Optional[str],
    delivery_date: Optional[date],
    time_slot: Optional[str],
    config: Optional[StoreConfiguration] = None,
    today: Optional[date] = None,
) -> list[str]:
    """Error messages for a date/slot choice; empty when valid."""
    return validate_booking_date(
        method, delivery_date, config=config, today=today
    ) + validate_booking_slot(method, time_slot, config=config)

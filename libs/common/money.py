"""Money helpers for the commerce engine.

Internal storage unit: minor units (integer cents, 100 cents = $1).
API / display unit: major units (Decimal, e.g. Decimal("10.00") = $10.00).

Conversion chain
----------------
Major × 100 → Minor
Minor ÷ 100 → Major

Amounts are never stored as floats.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

# ─── constants ───────────────────────────────────────────────────────────────

MINOR_PER_MAJOR: int = 100

CURRENCY_SYMBOLS: dict[str, str] = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "LBP": "L£",
}


# ─── value type ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Money:
    """An amount in minor units tagged with an ISO-4217 currency code."""

    minor: int
    currency: str

    def __add__(self, other: Money) -> Money:
        self._check_currency(other)
        return Money(self.minor + other.minor, self.currency)

    def __sub__(self, other: Money) -> Money:
        self._check_currency(other)
        return Money(self.minor - other.minor, self.currency)

    def __mul__(self, factor: int) -> Money:
        return Money(self.minor * factor, self.currency)

    @property
    def major(self) -> Decimal:
        return minor_to_major(self.minor)

    def _check_currency(self, other: Money) -> None:
        if other.currency != self.currency:
            raise ValueError(
                f"Currency mismatch: {self.currency} vs {other.currency}"
            )


# ─── conversion helpers ───────────────────────────────────────────────────────


def major_to_minor(major: Decimal | int | str) -> int:
    """Convert major units to minor units (round half-up). $1 = 100 cents."""
    amount = Decimal(str(major)) * MINOR_PER_MAJOR
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def minor_to_major(minor: int) -> Decimal:
    """Convert minor units to a 2-place Decimal. 100 cents = $1.00."""
    return (Decimal(minor) / MINOR_PER_MAJOR).quantize(Decimal("0.01"))


def format_money(minor: int, currency: str) -> str:
    """Render an amount for display, e.g. ``format_money(3500, "USD") == "$35.00"``."""
    symbol = CURRENCY_SYMBOLS.get(currency)
    amount = f"{minor_to_major(minor):,.2f}"
    if symbol:
        return f"-{symbol}{amount[1:]}" if minor < 0 else f"{symbol}{amount}"
    return f"{amount} {currency}"

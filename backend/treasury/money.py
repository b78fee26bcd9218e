# Overview: Integer-cents arithmetic shared by the ledger and commission engine.

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

"""
All amounts are integer cents. Percentages are Decimal with two places.

Rounding is ROUND_HALF_UP to whole cents everywhere; nothing else in the
codebase rounds money.
"""

CENT = Decimal("1")
PERCENT_PLACES = Decimal("0.01")


def to_percentage(value) -> Decimal | None:
    """Normalize a stored/config percentage to Decimal(0.01), keeping None."""
    if value is None:
        return None
    return Decimal(str(value)).quantize(PERCENT_PLACES, rounding=ROUND_HALF_UP)


def percent_of(amount_cents: int, percentage) -> int:
    """amount * percentage / 100, rounded half-up to the cent."""
    pct = Decimal(str(percentage))
    raw = Decimal(amount_cents) * pct / Decimal(100)
    return int(raw.quantize(CENT, rounding=ROUND_HALF_UP))


def mean_percentage(percentages: Iterable[Decimal]) -> Decimal:
    """Arithmetic mean of the given percentages (0.00 when empty)."""
    values = list(percentages)
    if not values:
        return Decimal("0.00")
    total = sum(values, Decimal("0"))
    return (total / Decimal(len(values))).quantize(PERCENT_PLACES, rounding=ROUND_HALF_UP)


def format_cents(amount_cents: int | None) -> str:
    """Human display: 12345 -> '123.45', -500 -> '-5.00'."""
    if amount_cents is None:
        return "-"
    sign = "-" if amount_cents < 0 else ""
    whole, cents = divmod(abs(amount_cents), 100)
    return f"{sign}{whole}.{cents:02d}"

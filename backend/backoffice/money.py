"""
Currency helpers.

Stripe reports every amount as integer minor units (cents). Orders store major
units as Decimal quantized to two places so 12345 -> Decimal("123.45") and
formatting never shows float drift.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not parsed.is_finite():
        return None
    return parsed.quantize(CENT, rounding=ROUND_HALF_UP)


def to_major_units(minor: Any) -> Decimal | None:
    """12345 -> Decimal("123.45"); None / unparseable -> None."""
    if minor is None or isinstance(minor, bool):
        return None
    try:
        cents = Decimal(str(minor).strip())
    except (InvalidOperation, ValueError):
        return None
    if not cents.is_finite():
        return None
    return (cents / 100).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(major: Any) -> int | None:
    """Decimal("123.45") / 123.45 / "123.45" -> 12345."""
    amount = to_decimal(major)
    if amount is None:
        return None
    return int((amount * 100).to_integral_value(rounding=ROUND_HALF_UP))


def format_amount(amount: Any) -> str | None:
    """Display form with exactly two decimals."""
    value = to_decimal(amount)
    if value is None:
        return None
    return f"{value:.2f}"


def money_to_float(amount: Decimal | None) -> float | None:
    """JSON-friendly float for to_dict() payloads."""
    if amount is None:
        return None
    return float(to_decimal(amount))


def non_negative(amount: Decimal | None) -> Decimal | None:
    if amount is None:
        return None
    return amount if amount >= ZERO else ZERO

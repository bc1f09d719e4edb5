# Overview: Decimal <-> integer-cents conversion for prices and sale amounts.

"""
Money handling.

Amounts are stored as integer cents everywhere in the database. The HTTP API
speaks decimal currency units (15.50), so every amount crosses this module
exactly once on the way in and once on the way out.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .validation import MAX_PRICE_CENTS, ValidationError

CENT = Decimal("0.01")

MAX_AMOUNT_CENTS = MAX_PRICE_CENTS


def to_cents(value, field: str = "amount") -> int:
    """
    Convert a decimal amount (number or numeric string) to integer cents.

    Floats go through str() first so 15.5 becomes exactly 1550, not 1549.
    Booleans, NaN/Infinity, and negative values are rejected.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(str(value).strip()) if isinstance(value, str) else Decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0")

    cents = int((amount / CENT).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS / 100:,.2f}")
    return cents


def from_cents(cents: int | None) -> float | None:
    if cents is None:
        return None
    return float((Decimal(cents) * CENT).quantize(CENT))

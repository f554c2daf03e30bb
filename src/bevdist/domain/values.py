"""Parsing of caller-supplied money and quantity values.

Money is handled as ``Decimal`` with two places everywhere; floats are only
accepted at the boundary and converted through ``str`` so ``0.1`` stays
``0.10``.

Both kinds are capped well below what SQLite's 64-bit INTEGER and a 28-digit
Decimal context can hold, so sums of stored values never overflow either.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from bevdist.domain.errors import ValidationError

CENTS = Decimal("0.01")
MAX_MONEY = Decimal("1000000000000")  # 1e12
MAX_QUANTITY = 1_000_000_000


def to_money(value: object, *, field_name: str = "Amount") -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a number.")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
        if not amount.is_finite():
            raise ValidationError(f"{field_name} must be a number.")
        if abs(amount) > MAX_MONEY:
            raise ValidationError(f"{field_name} must not exceed {MAX_MONEY}.")
        return amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"{field_name} must be a number.") from e


def to_positive_money(value: object, *, field_name: str = "Amount") -> Decimal:
    amount = to_money(value, field_name=field_name)
    if amount <= 0:
        raise ValidationError(f"{field_name} must be > 0.")
    return amount


def to_quantity(value: object, *, field_name: str = "Quantity") -> int:
    """Positive whole number up to ``MAX_QUANTITY``; ``"5"`` and ``5.0`` are accepted, ``2.5`` is not."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a whole number.")
    try:
        as_decimal = Decimal(str(value).strip())
        if not as_decimal.is_finite() or as_decimal != as_decimal.to_integral_value():
            raise ValidationError(f"{field_name} must be a whole number.")
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"{field_name} must be a whole number.") from e
    if as_decimal <= 0:
        raise ValidationError(f"{field_name} must be > 0.")
    if as_decimal > MAX_QUANTITY:
        raise ValidationError(f"{field_name} must not exceed {MAX_QUANTITY}.")
    return int(as_decimal)


def money_from_db(raw: object) -> Decimal:
    return Decimal(str(raw)).quantize(CENTS, rounding=ROUND_HALF_UP)


def money_to_db(amount: Decimal) -> str:
    return str(amount.quantize(CENTS, rounding=ROUND_HALF_UP))

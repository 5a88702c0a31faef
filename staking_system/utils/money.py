# staking_system/utils/money.py
"""
Ledger primitives: fixed-point money helpers.

All balances are Decimal with 2-decimal settlement precision.
"""
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Number = Union[Decimal, int, str]


class Currency(Enum):
    USDT = "USDT"
    BLS = "BLS"


def toDecimal(value: Number) -> Decimal:
    """Convert to Decimal. Floats are refused: binary rounding must not reach balances."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Refusing to build money from {type(value).__name__} {value!r}")
    if value is None:
        return ZERO
    return Decimal(str(value))


def round2(value: Number) -> Decimal:
    """Round half-up to 2 decimals."""
    return toDecimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def normalizeZero(value: Number) -> Decimal:
    """Collapse -0.00 to 0.00."""
    value = toDecimal(value)
    if value == 0:
        return abs(value)
    return value


def settle(value: Number) -> Decimal:
    """round2 + normalizeZero, the form every stored balance takes."""
    return normalizeZero(round2(value))


def amountExceeds(a: Number, b: Number) -> bool:
    """True if a > b after rounding both to 2 decimals independently."""
    return round2(a) > round2(b)


def percentOf(amount: Number, percent: Number) -> Decimal:
    """amount * percent / 100, rounded to cents."""
    return round2(toDecimal(amount) * toDecimal(percent) / Decimal("100"))


def isPositive(value: Number) -> bool:
    return round2(value) > ZERO

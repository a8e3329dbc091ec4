# mlm_system/utils/money.py
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from mlm_system.errors import InvalidPurchaseError

ZERO = Decimal("0")
CENT = Decimal("0.01")


def toDecimal(value) -> Decimal:
    """Convert ints, floats and strings without binary float noise."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money(value) -> Decimal:
    """Round a currency amount to cents."""
    return toDecimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def percentOf(amount, percentage) -> Decimal:
    """percentOf(200, 10) -> 20.00"""
    return money(toDecimal(amount) * toDecimal(percentage) / Decimal("100"))


def purchaseAmount(value, name: str, allowZero: bool = False) -> Decimal:
    """Parse a purchase field; garbage, NaN and negatives raise InvalidPurchaseError."""
    try:
        amount = toDecimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidPurchaseError(f"{name} must be a number, got {value!r}")
    if not amount.is_finite() or amount < 0 or (amount == 0 and not allowZero):
        qualifier = "non-negative" if allowZero else "positive"
        raise InvalidPurchaseError(f"{name} must be {qualifier}, got {value!r}")
    return amount

"""
Module: windpark_kernel.db.types
Responsibility: Annotated column aliases and the rounding helpers used by
    every calculator and service.  Centralizes precision so that all money
    and percentage values are rounded the same way.
Architecture position: Kernel > DB.  Imported by engines, modules and billing.

Invariants enforced:
    - Money is Decimal end to end.  Floats are converted through str().
    - round_money() rounds half away from zero (ROUND_HALF_UP on Decimal),
      which is the commercial rounding rule for invoices.

Failure modes:
    - ValueError from to_decimal() on non-numeric input or booleans.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Any

from sqlalchemy import Numeric, String

# Monetary amount: 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Percentages and shares
Percent = Annotated[Decimal, Numeric(18, 9)]

# Short identifier strings
ShortCode = Annotated[str, String(50)]

# Long text for descriptions
LongText = Annotated[str, String(4000)]

MONEY_DECIMAL_PLACES = 2
PERCENT_DECIMAL_PLACES = 4
FACTOR_DECIMAL_PLACES = 6
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def _quantum(places: int) -> Decimal:
    return Decimal(1).scaleb(-places)


def round_money(amount: Decimal, places: int = MONEY_DECIMAL_PLACES) -> Decimal:
    """
    Round a monetary amount half away from zero.

    Preconditions: amount is a Decimal.
    Postconditions: Returns a Decimal with exactly ``places`` decimals.
    """
    return amount.quantize(_quantum(places), rounding=DEFAULT_ROUNDING)


def round_percent(value: Decimal, places: int = PERCENT_DECIMAL_PLACES) -> Decimal:
    """Round a percentage (default 4 decimals) half away from zero."""
    return value.quantize(_quantum(places), rounding=DEFAULT_ROUNDING)


def round_factor(value: Decimal, places: int = FACTOR_DECIMAL_PLACES) -> Decimal:
    """Round a proration factor (default 6 decimals)."""
    return value.quantize(_quantum(places), rounding=DEFAULT_ROUNDING)


def to_decimal(value: Any) -> Decimal:
    """
    Convert a number-like value to Decimal.

    Accepts Decimal, int, str and float (via str, so 0.1 stays 0.1).
    Booleans are rejected even though they are ints.

    Raises:
        ValueError: If the value is not numeric.
    """
    if isinstance(value, bool):
        raise ValueError(f"Expected a number, got boolean {value!r}")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation as exc:
            raise ValueError(f"Not a decimal number: {value!r}") from exc
    raise ValueError(f"Expected a number, got {type(value).__name__}")

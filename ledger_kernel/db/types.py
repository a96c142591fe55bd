"""
Module: ledger_kernel.db.types
Responsibility: Money column type and the rounding helpers every model and
    service uses for monetary amounts.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Amounts are decimal.Decimal in Python, quantized to MONEY_DECIMAL_PLACES
      with ROUND_HALF_UP by round_money() at intake.  round_money() is the
      ONLY sanctioned rounding function.
    - Amounts are persisted as integer minor units (cents).  SUM() over the
      column is integer arithmetic on every backend, so balance and
      trial-balance aggregates are exact.
    CRITICAL: No floats anywhere in the ledger kernel.

Failure modes:
    - ValueError from MoneyCents.process_bind_param when a value carries more
      precision than MONEY_DECIMAL_PLACES (it was not passed through
      round_money()).
    - decimal.InvalidOperation on non-numeric input to money_from_str().

Audit relevance:
    The stored integer is exactly what was validated at intake; there is no
    rounding between the posting check and the stored row.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import BigInteger, String
from sqlalchemy.types import TypeDecorator

# Rounding constants
MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0.00")

_MINOR_UNIT = Decimal(10) ** MONEY_DECIMAL_PLACES


class MoneyCents(TypeDecorator):
    """
    Decimal amount stored as BigInteger minor units.

    Contract:
        Binds a Decimal with at most MONEY_DECIMAL_PLACES fractional digits
        as its integer cent value and loads it back as a quantized Decimal.

    Guarantees:
        - process_bind_param: Decimal("12.34") -> 1234.
        - process_result_value: 1234 -> Decimal("12.34"); aggregate results
          (SUM, COALESCE) come back through the same conversion.
    """

    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        amount = Decimal(value)
        cents = amount * _MINOR_UNIT
        if cents != cents.to_integral_value():
            raise ValueError(
                f"Amount {amount} has more than {MONEY_DECIMAL_PLACES} decimal places"
            )
        return int(cents)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return money_from_int(int(value))


# Monetary amount in minor units
Money = Annotated[Decimal, MoneyCents()]

# Short identifier strings
ShortCode = Annotated[str, String(50)]

# Long text for descriptions
LongText = Annotated[str, String(1000)]


def money_from_str(value: str) -> Decimal:
    """
    Create a Money value from string, rounded to MONEY_DECIMAL_PLACES.

    Raises:
        decimal.InvalidOperation: If value cannot be converted to Decimal.
    """
    return round_money(Decimal(value))


def money_from_int(value: int, decimal_places: int = MONEY_DECIMAL_PLACES) -> Decimal:
    """
    Create a Money value from integer (minor units).

    Example:
        money_from_int(1050) -> Decimal("10.50")
    """
    divisor = Decimal(10) ** decimal_places
    return round_money(Decimal(value) / divisor, decimal_places)


def round_money(
    value,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to specified decimal places.

    Accepts Decimal, int, or str.  Floats are refused: their binary value is
    not the amount the caller typed.

    Raises:
        TypeError: If value is a float.
    """
    if isinstance(value, float):
        raise TypeError("Monetary amounts must not be floats; pass Decimal or str")
    if not isinstance(value, Decimal):
        value = Decimal(value)
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)

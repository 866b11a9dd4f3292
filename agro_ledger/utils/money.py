"""Two-decimal money arithmetic (ROUND_HALF_UP everywhere)"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Union

from agro_ledger.domain.exceptions import InvalidAmount

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# Largest magnitude a Numeric(14, 2) column holds
MAX_AMOUNT = Decimal("999999999999.99")

MoneyLike = Union[Decimal, int, float, str]


def round2(value: Decimal) -> Decimal:
    """Round a computed amount to cents, half-up"""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_money(value: MoneyLike, field: str = "amount") -> Decimal:
    """
    Normalize an input amount to a 2-decimal Decimal.

    Floats go through str() so 10.01 stays 10.01. Input with fractional
    cents is rejected instead of rounded: the engine never coerces money.

    Raises:
        InvalidAmount: non-numeric, non-finite, sub-cent or out-of-range input
    """
    if isinstance(value, bool):
        raise InvalidAmount(f"{field} must be a number", field=field, value=str(value))
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmount(f"{field} is not a number: {value!r}", field=field, value=str(value)) from e

    if not amount.is_finite():
        raise InvalidAmount(f"{field} must be finite", field=field, value=str(value))
    if abs(amount) > MAX_AMOUNT:
        raise InvalidAmount(
            f"{field} is out of range: {value}", field=field, value=str(value), maximum=str(MAX_AMOUNT)
        )
    try:
        quantized = amount.quantize(CENT)
    except InvalidOperation as e:
        raise InvalidAmount(f"{field} is out of range: {value}", field=field, value=str(value)) from e
    if amount != quantized:
        raise InvalidAmount(
            f"{field} has more than two decimals: {value}", field=field, value=str(value)
        )
    return quantized


def money_sum(amounts: Iterable[Decimal]) -> Decimal:
    return sum(amounts, ZERO)

"""Unit tests for two-decimal money helpers"""

from decimal import Decimal

import pytest

from agro_ledger.domain.exceptions import InvalidAmount
from agro_ledger.utils.money import MAX_AMOUNT, money_sum, round2, to_money


@pytest.mark.parametrize(
    "value,expected",
    [
        (10, Decimal("10.00")),
        (10.01, Decimal("10.01")),
        ("99.9", Decimal("99.90")),
        (Decimal("0.01"), Decimal("0.01")),
        (" 5 ", Decimal("5.00")),
    ],
)
def test_to_money_normalizes(value, expected):
    assert to_money(value) == expected
    assert to_money(value).as_tuple().exponent == -2


@pytest.mark.parametrize(
    "value", ["abc", "", "NaN", "Infinity", True, "10.001", 0.005, "1e30", "-1e30", "1000000000000.00"]
)
def test_to_money_rejects(value):
    with pytest.raises(InvalidAmount) as exc_info:
        to_money(value, "total_amount")
    assert exc_info.value.context["field"] == "total_amount"


def test_round2_is_half_up():
    assert round2(Decimal("5.005")) == Decimal("5.01")
    assert round2(Decimal("5.004")) == Decimal("5.00")
    assert round2(Decimal("-5.005")) == Decimal("-5.01")


def test_money_sum_of_nothing_is_zero():
    assert money_sum([]) == Decimal("0.00")
    assert money_sum([Decimal("0.10"), Decimal("0.20")]) == Decimal("0.30")


def test_to_money_accepts_largest_column_value():
    assert to_money("999999999999.99") == MAX_AMOUNT
    assert to_money("-999999999999.99") == -MAX_AMOUNT

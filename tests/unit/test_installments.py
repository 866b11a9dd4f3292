"""Unit tests for payment-terms parsing and purchase-order schedules"""

from datetime import date
from decimal import Decimal

import pytest

from agro_ledger.domain.exceptions import InvalidAmount
from agro_ledger.domain.installments import (
    PAYMENT_TERMS,
    SCHEDULED_EXPENSE_ALERT_DAYS,
    is_valid_payment_terms,
    iter_installments,
    parse_payment_terms,
    schedule_expenses_for_purchase_order,
)
from agro_ledger.domain.models import DocumentKind, DocumentStatus, PurchaseOrder

BASE = date(2025, 1, 1)


@pytest.mark.parametrize("code", sorted(PAYMENT_TERMS))
@pytest.mark.parametrize("total", ["0.01", "100", "99.99", "123456.78"])
def test_installments_sum_to_total(code, total):
    """Schedule always sums to the total, whatever the split"""
    installments = parse_payment_terms(code, Decimal(total), BASE)

    assert len(installments) == len(PAYMENT_TERMS[code])
    assert sum(inst.amount for inst in installments) == Decimal(total)
    assert [inst.sequence_number for inst in installments] == list(range(1, len(installments) + 1))


def test_33_33_34_split():
    installments = parse_payment_terms("33_33_34", Decimal("100.00"), BASE)

    assert [inst.amount for inst in installments] == [Decimal("33.00"), Decimal("33.00"), Decimal("34.00")]
    assert [inst.days_offset for inst in installments] == [30, 60, 90]
    # plain calendar days from the base date
    assert [inst.due_date for inst in installments] == [date(2025, 1, 31), date(2025, 3, 2), date(2025, 4, 1)]


def test_50_50_remainder_goes_to_last():
    """Test last installment absorbs the rounding remainder"""
    installments = parse_payment_terms("50_50", Decimal("10.01"), BASE)

    assert installments[0].amount == Decimal("5.01")  # 5.005 rounds half-up
    assert installments[1].amount == Decimal("5.00")
    assert sum(inst.amount for inst in installments) == Decimal("10.01")


def test_one_cent_over_three_installments():
    installments = parse_payment_terms("33_33_34", Decimal("0.01"), BASE)

    assert [inst.amount for inst in installments] == [Decimal("0.00"), Decimal("0.00"), Decimal("0.01")]


def test_advance_plus_balance():
    installments = parse_payment_terms("40_60", Decimal("250.00"), BASE)

    assert installments[0].due_date == BASE
    assert installments[0].amount == Decimal("100.00")
    assert installments[1].due_date == date(2025, 1, 31)
    assert installments[1].amount == Decimal("150.00")


def test_contado_is_single_installment_on_base_date():
    installments = parse_payment_terms("contado", Decimal("80.00"), BASE)

    assert len(installments) == 1
    assert installments[0].due_date == BASE
    assert installments[0].amount == Decimal("80.00")


def test_base_date_accepts_iso_string():
    installments = parse_payment_terms("30_dias", Decimal("10"), "2025-01-01T10:30:00")

    assert installments[0].due_date == date(2025, 1, 31)


@pytest.mark.parametrize("code", ["", None, "45_dias", "CONTADO"])
def test_unknown_code_yields_empty_schedule(code):
    assert parse_payment_terms(code, Decimal("100"), BASE) == []
    assert not is_valid_payment_terms(code)


@pytest.mark.parametrize("total", ["0", "-10.00"])
def test_non_positive_total_rejected(total):
    with pytest.raises(InvalidAmount):
        parse_payment_terms("30_dias", Decimal(total), BASE)


def test_sub_cent_total_rejected():
    with pytest.raises(InvalidAmount):
        parse_payment_terms("50_50", "10.005", BASE)


def test_iter_installments_is_lazy():
    generator = iter_installments("25_25_25_25", Decimal("100"), BASE)

    first = next(generator)
    assert first.amount == Decimal("25.00")
    assert first.due_date == date(2025, 1, 31)


def _purchase_order(**overrides) -> PurchaseOrder:
    fields = {
        "id": "po-1",
        "firm_id": "firm-1",
        "order_number": "OC-0001",
        "supplier_name": "Agroinsumos del Este",
        "currency": "USD",
        "total_amount": Decimal("1000.00"),
        "order_date": BASE,
        "payment_terms": "33_33_34",
    }
    fields.update(overrides)
    return PurchaseOrder(**fields)


def test_schedule_expenses_for_purchase_order():
    expenses = schedule_expenses_for_purchase_order(_purchase_order())

    assert len(expenses) == 3
    assert sum(e.total_amount for e in expenses) == Decimal("1000.00")
    assert [e.installment_number for e in expenses] == [1, 2, 3]
    for expense in expenses:
        assert expense.kind == DocumentKind.EXPENSE
        assert expense.status == DocumentStatus.REGISTERED
        assert expense.is_auto_generated
        assert expense.total_installments == 3
        assert expense.purchase_order_id == "po-1"
        assert expense.alert_days == SCHEDULED_EXPENSE_ALERT_DAYS
        assert expense.currency == "USD"
    assert expenses[-1].due_date == date(2025, 4, 1)


@pytest.mark.parametrize("terms", ["contado", None, ""])
def test_cash_purchase_orders_get_no_schedule(terms):
    assert schedule_expenses_for_purchase_order(_purchase_order(payment_terms=terms)) == []


def test_zero_amount_installments_are_skipped():
    expenses = schedule_expenses_for_purchase_order(_purchase_order(total_amount=Decimal("0.01")))

    assert len(expenses) == 1
    assert expenses[0].total_amount == Decimal("0.01")
    assert expenses[0].installment_number == 1
    assert expenses[0].total_installments == 1

"""Installment schedule generation from payment-terms codes"""

from datetime import date
from decimal import Decimal
from typing import Dict, Iterator, List, Optional, Tuple, Union

from agro_ledger.domain.exceptions import InvalidAmount
from agro_ledger.domain.models import (
    DocumentKind,
    DocumentStatus,
    Installment,
    MonetaryDocument,
    PurchaseOrder,
)
from agro_ledger.utils.date_utils import add_days, parse_date
from agro_ledger.utils.money import ZERO, MoneyLike, round2, to_money

# code -> ((percentage, days_offset), ...)
PAYMENT_TERMS: Dict[str, Tuple[Tuple[int, int], ...]] = {
    "contado": ((100, 0),),
    "30_dias": ((100, 30),),
    "60_dias": ((100, 60),),
    "90_dias": ((100, 90),),
    "50_50": ((50, 30), (50, 60)),
    "33_33_34": ((33, 30), (33, 60), (34, 90)),
    "25_25_25_25": ((25, 30), (25, 60), (25, 90), (25, 120)),
    "40_60": ((40, 0), (60, 30)),  # anticipo + saldo
}

SCHEDULED_EXPENSE_ALERT_DAYS = 7


def is_valid_payment_terms(code: Optional[str]) -> bool:
    return code in PAYMENT_TERMS


def iter_installments(
    code: Optional[str],
    total_amount: MoneyLike,
    base_date: Union[date, str],
) -> Iterator[Installment]:
    """
    Lazily yield the installments for a payment-terms code.

    Every installment but the last is round2(total * pct); the last one is
    total minus everything already yielded, so the schedule always sums to
    the total exactly.

    Raises:
        InvalidAmount: total_amount <= 0 for a known code
    """
    splits = PAYMENT_TERMS.get(code or "")
    if splits is None:
        return

    total = to_money(total_amount, "total_amount")
    if total <= ZERO:
        raise InvalidAmount("total_amount must be greater than zero", value=str(total))

    start = parse_date(base_date)
    allocated = ZERO
    last = len(splits)

    for number, (percentage, days_offset) in enumerate(splits, start=1):
        if number == last:
            amount = total - allocated
        else:
            amount = round2(total * Decimal(percentage) / Decimal(100))
            allocated += amount

        yield Installment(
            sequence_number=number,
            due_date=add_days(start, days_offset),
            amount=amount,
            percentage=percentage,
            days_offset=days_offset,
        )


def parse_payment_terms(
    code: Optional[str],
    total_amount: MoneyLike,
    base_date: Union[date, str],
) -> List[Installment]:
    """
    Split a total into dated installments according to a payment-terms code.

    Args:
        code: 'contado', '30_dias', '50_50', '33_33_34', ... (see PAYMENT_TERMS)
        total_amount: Total to split (2 decimals)
        base_date: Date offsets are counted from (date or ISO string)

    Returns:
        Ordered installments; empty when the code is unknown or empty

    Example:
        ('33_33_34', 100.00, 2025-01-01) ->
        [33.00 @ 2025-01-31, 33.00 @ 2025-03-02, 34.00 @ 2025-04-01]
    """
    return list(iter_installments(code, total_amount, base_date))


def schedule_expenses_for_purchase_order(purchase_order: PurchaseOrder) -> List[MonetaryDocument]:
    """
    Build one registered expense per installment of a purchase order.

    Cash ('contado') and orders without terms are paid on the spot and get
    no schedule. Zero-amount installments (tiny totals) are skipped.
    """
    if not purchase_order.payment_terms or purchase_order.payment_terms == "contado":
        return []

    installments = [
        inst
        for inst in parse_payment_terms(
            purchase_order.payment_terms, purchase_order.total_amount, purchase_order.order_date
        )
        if inst.amount > ZERO
    ]
    count = len(installments)

    return [
        MonetaryDocument(
            firm_id=purchase_order.firm_id,
            kind=DocumentKind.EXPENSE,
            party_name=purchase_order.supplier_name,
            party_tax_id=purchase_order.supplier_rut,
            currency=purchase_order.currency,
            total_amount=inst.amount,
            status=DocumentStatus.REGISTERED,
            invoice_date=purchase_order.order_date,
            due_date=inst.due_date,
            payment_terms=purchase_order.payment_terms,
            alert_days=SCHEDULED_EXPENSE_ALERT_DAYS,
            category="Otros gastos",
            purchase_order_id=purchase_order.id,
            is_auto_generated=True,
            installment_number=index,
            total_installments=count,
        )
        for index, inst in enumerate(installments, start=1)
    ]

"""Unit tests for alert rules and deduplication"""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from agro_ledger.domain import alerts
from agro_ledger.domain.exceptions import InvalidStateTransition
from agro_ledger.domain.models import (
    AlertPriority,
    AlertStatus,
    DocumentStatus,
    OrderStatus,
    PaymentOrder,
    PaymentOrderLine,
    ReferenceKind,
)

TODAY = date(2025, 3, 10)


class InMemoryAlerts:
    """Pending-alert lookup backed by a list"""

    def __init__(self):
        self.stored = []

    def has_pending(self, firm_id, rule_name, reference):
        return any(
            a.dedup_key == (firm_id, rule_name, reference) and a.status == AlertStatus.PENDING
            for a in self.stored
        )

    def emit(self, alert):
        if alert is not None and alerts.should_emit_alert(self, alert.firm_id, alert.rule_name, alert.reference):
            self.stored.append(alert)
            return True
        return False


def _order(status=OrderStatus.DRAFT, **overrides):
    fields = {
        "firm_id": "firm-1",
        "beneficiary_name": "Agroinsumos",
        "currency": "UYU",
        "funding_account_id": "acc-1",
        "lines": (PaymentOrderLine("exp-1", Decimal("100.00")),),
        "status": status,
        "order_number": "OP-2025-00001",
        "order_date": date(2025, 3, 1),
        "planned_payment_date": date(2025, 3, 5),
    }
    fields.update(overrides)
    return PaymentOrder(**fields)


def test_overdue_expense(make_expense):
    alert = alerts.evaluate_overdue(make_expense(due_date=date(2025, 3, 1)), TODAY)

    assert alert.rule_name == alerts.FACTURA_VENCIDA
    assert alert.priority == AlertPriority.HIGH
    assert alert.reference.kind == ReferenceKind.EXPENSE
    assert alert.metadata["dias_vencida"] == 9


def test_overdue_income_is_high_priority(make_income):
    alert = alerts.evaluate_overdue(make_income(due_date=date(2025, 3, 9)), TODAY)

    assert alert.rule_name == alerts.INGRESO_VENCIDO
    assert alert.priority == AlertPriority.HIGH


@pytest.mark.parametrize(
    "overrides",
    [
        {"due_date": TODAY},
        {"due_date": None},
        {"status": DocumentStatus.CANCELLED},
        {"paid_amount": Decimal("100.00"), "status": DocumentStatus.FULLY_PAID},
    ],
)
def test_no_overdue_alert(make_expense, overrides):
    fields = {"due_date": date(2025, 3, 1)}
    fields.update(overrides)
    assert alerts.evaluate_overdue(make_expense(**fields), TODAY) is None


@pytest.mark.parametrize(
    "days,priority",
    [(1, AlertPriority.HIGH), (3, AlertPriority.HIGH), (4, AlertPriority.MEDIUM), (5, AlertPriority.MEDIUM)],
)
def test_due_soon_priority(make_expense, days, priority):
    due = date.fromordinal(TODAY.toordinal() + days)
    alert = alerts.evaluate_due_soon(make_expense(due_date=due), TODAY)

    assert alert.rule_name == alerts.FACTURA_PROXIMO_VENCIMIENTO
    assert alert.priority == priority


@pytest.mark.parametrize("days", [0, 6, -1])
def test_due_soon_outside_window(make_expense, days):
    due = date.fromordinal(TODAY.toordinal() + days)
    assert alerts.evaluate_due_soon(make_expense(due_date=due), TODAY) is None


def test_due_soon_respects_document_alert_days(make_expense):
    due = date(2025, 3, 20)
    assert alerts.evaluate_due_soon(make_expense(due_date=due), TODAY) is None
    assert alerts.evaluate_due_soon(make_expense(due_date=due, alert_days=10), TODAY) is not None


def test_zero_alert_days_disables_due_soon(make_expense):
    tomorrow = date.fromordinal(TODAY.toordinal() + 1)
    assert alerts.evaluate_due_soon(make_expense(due_date=tomorrow, alert_days=0), TODAY) is None
    assert alerts.evaluate_due_soon(make_expense(due_date=tomorrow), TODAY) is not None


def test_due_soon_ignores_income(make_income):
    assert alerts.evaluate_due_soon(make_income(due_date=date(2025, 3, 12)), TODAY) is None


def test_scheduled_payment_alert(make_expense):
    installment = make_expense(
        due_date=TODAY,
        is_auto_generated=True,
        installment_number=2,
        total_installments=3,
        purchase_order_id="po-1",
    )

    alert = alerts.evaluate_scheduled_payment(installment, TODAY, window_days=7)

    assert alert.rule_name == alerts.PAGO_PROGRAMADO_PROXIMO
    assert alert.priority == AlertPriority.HIGH
    assert alert.metadata["purchase_order_id"] == "po-1"
    assert alerts.evaluate_scheduled_payment(replace(installment, is_auto_generated=False), TODAY, 7) is None
    assert alerts.evaluate_scheduled_payment(replace(installment, due_date=date(2025, 3, 18)), TODAY, 7) is None


def test_draft_order_pending_approval():
    alert = alerts.evaluate_payment_order(_order(), TODAY)

    assert alert.rule_name == alerts.ORDEN_PAGO_PENDIENTE
    assert alert.priority == AlertPriority.MEDIUM
    assert alert.reference.kind == ReferenceKind.PAYMENT_ORDER


def test_approved_order_pending_payment_priority():
    late = alerts.evaluate_payment_order(_order(OrderStatus.APPROVED), TODAY)
    assert late.rule_name == alerts.ORDEN_PAGO_PENDIENTE_PAGO
    assert late.priority == AlertPriority.HIGH  # 5 days late

    recent = alerts.evaluate_payment_order(_order(OrderStatus.APPROVED, planned_payment_date=date(2025, 3, 8)), TODAY)
    assert recent.priority == AlertPriority.MEDIUM

    future = alerts.evaluate_payment_order(_order(OrderStatus.APPROVED, planned_payment_date=date(2025, 3, 11)), TODAY)
    assert future is None


@pytest.mark.parametrize("status", [OrderStatus.EXECUTED, OrderStatus.CANCELLED])
def test_terminal_orders_raise_no_alert(status):
    assert alerts.evaluate_payment_order(_order(status), TODAY) is None


def test_same_check_twice_emits_once(make_expense):
    store = InMemoryAlerts()
    expense = make_expense(due_date=date(2025, 3, 1))

    assert store.emit(alerts.evaluate_overdue(expense, TODAY)) is True
    assert store.emit(alerts.evaluate_overdue(expense, TODAY)) is False
    assert len(store.stored) == 1


def test_dedup_key_is_per_rule_and_document(make_expense):
    store = InMemoryAlerts()
    first = make_expense(due_date=date(2025, 3, 1))
    second = make_expense(due_date=date(2025, 3, 1))

    assert store.emit(alerts.evaluate_overdue(first, TODAY))
    assert store.emit(alerts.evaluate_overdue(second, TODAY))
    assert store.emit(alerts.evaluate_due_soon(replace(first, due_date=date(2025, 3, 12)), TODAY))


def test_resolved_alert_frees_the_key(make_expense):
    store = InMemoryAlerts()
    expense = make_expense(due_date=date(2025, 3, 1))
    store.emit(alerts.evaluate_overdue(expense, TODAY))

    store.stored[0] = alerts.resolve_alert(store.stored[0])

    assert store.stored[0].status == AlertStatus.COMPLETED
    assert store.emit(alerts.evaluate_overdue(expense, TODAY)) is True


def test_resolve_completed_alert_rejected(make_expense):
    alert = alerts.evaluate_overdue(make_expense(due_date=date(2025, 3, 1)), TODAY)
    done = alerts.resolve_alert(alert)

    with pytest.raises(InvalidStateTransition):
        alerts.resolve_alert(done)

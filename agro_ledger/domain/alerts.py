"""Alert rules and deduplication

Rules only decide *what* should be alerted for a document on a given day.
Whether an alert is actually emitted is decided by ``should_emit_alert``
against the pending alerts already stored, keyed by
``(firm_id, rule_name, reference)``.
"""

from dataclasses import replace
from datetime import date
from typing import Optional, Protocol

from agro_ledger.domain.exceptions import InvalidStateTransition
from agro_ledger.domain.models import (
    Alert,
    AlertPriority,
    AlertStatus,
    DocumentKind,
    DocumentReference,
    MonetaryDocument,
    OrderStatus,
    PaymentOrder,
)
from agro_ledger.utils.date_utils import days_between

FACTURA_VENCIDA = "FACTURA_VENCIDA"
FACTURA_PROXIMO_VENCIMIENTO = "FACTURA_PROXIMO_VENCIMIENTO"
INGRESO_VENCIDO = "INGRESO_VENCIDO"
PAGO_PROGRAMADO_PROXIMO = "PAGO_PROGRAMADO_PROXIMO"
ORDEN_PAGO_PENDIENTE = "ORDEN_PAGO_PENDIENTE"
ORDEN_PAGO_PENDIENTE_PAGO = "ORDEN_PAGO_PENDIENTE_PAGO"

DEFAULT_ALERT_DAYS = 5
URGENT_DAYS = 3


class PendingAlertLookup(Protocol):
    def has_pending(self, firm_id: str, rule_name: str, reference: DocumentReference) -> bool:
        ...


def should_emit_alert(
    lookup: PendingAlertLookup,
    firm_id: str,
    rule_name: str,
    reference: DocumentReference,
) -> bool:
    """False when a pending alert already exists for the dedup key"""
    return not lookup.has_pending(firm_id, rule_name, reference)


def approaching_priority(days_until_due: int, urgent_days: int = URGENT_DAYS) -> AlertPriority:
    return AlertPriority.HIGH if days_until_due <= urgent_days else AlertPriority.MEDIUM


def _is_open(document: MonetaryDocument) -> bool:
    return not document.is_terminal and document.balance > 0 and document.due_date is not None


def evaluate_overdue(document: MonetaryDocument, today: date) -> Optional[Alert]:
    """FACTURA_VENCIDA for expenses, INGRESO_VENCIDO for income"""
    if not _is_open(document):
        return None
    days_overdue = days_between(document.due_date, today)
    if days_overdue <= 0:
        return None

    if document.kind == DocumentKind.EXPENSE:
        rule, title = FACTURA_VENCIDA, "Factura Vencida"
        description = (
            f"Factura {document.invoice_full} de {document.party_name} vencida hace {days_overdue} días. "
            f"Saldo pendiente: {document.currency} {document.balance}"
        )
    else:
        rule, title = INGRESO_VENCIDO, "Ingreso Vencido por Cobrar"
        description = (
            f"Ingreso de {document.party_name} vencido hace {days_overdue} días. "
            f"Saldo por cobrar: {document.currency} {document.balance}"
        )

    return Alert(
        firm_id=document.firm_id,
        rule_name=rule,
        reference=document.reference,
        priority=AlertPriority.HIGH,
        title=title,
        description=description,
        alert_date=today,
        metadata={
            "dias_vencida": days_overdue,
            "saldo": str(document.balance),
            "invoice_full": document.invoice_full,
            "party": document.party_name,
        },
    )


def evaluate_due_soon(document: MonetaryDocument, today: date) -> Optional[Alert]:
    """FACTURA_PROXIMO_VENCIMIENTO: 0 < days until due <= alert_days"""
    if document.kind != DocumentKind.EXPENSE or not _is_open(document):
        return None
    days_left = days_between(today, document.due_date)
    window = DEFAULT_ALERT_DAYS if document.alert_days is None else document.alert_days
    if not 0 < days_left <= window:
        return None

    return Alert(
        firm_id=document.firm_id,
        rule_name=FACTURA_PROXIMO_VENCIMIENTO,
        reference=document.reference,
        priority=approaching_priority(days_left),
        title="Factura Próxima a Vencer",
        description=(
            f"Factura {document.invoice_full} vence en {days_left} días. "
            f"Saldo pendiente: {document.currency} {document.balance}"
        ),
        alert_date=today,
        metadata={
            "dias_restantes": days_left,
            "saldo": str(document.balance),
            "invoice_full": document.invoice_full,
            "party": document.party_name,
        },
    )


def evaluate_scheduled_payment(document: MonetaryDocument, today: date, window_days: int) -> Optional[Alert]:
    """PAGO_PROGRAMADO_PROXIMO for installments generated from purchase orders"""
    if not document.is_auto_generated or not _is_open(document):
        return None
    days_left = days_between(today, document.due_date)
    if not 0 <= days_left <= window_days:
        return None

    plural = "" if days_left == 1 else "s"
    return Alert(
        firm_id=document.firm_id,
        rule_name=PAGO_PROGRAMADO_PROXIMO,
        reference=document.reference,
        priority=approaching_priority(days_left),
        title=f"Pago programado próximo ({days_left} día{plural})",
        description=(
            f"Cuota {document.installment_number}/{document.total_installments} - {document.party_name} "
            f"vence el {document.due_date.isoformat()}. Saldo pendiente: {document.currency} {document.balance}"
        ),
        alert_date=today,
        metadata={
            "purchase_order_id": document.purchase_order_id,
            "dias_restantes": days_left,
            "saldo": str(document.balance),
            "installment_number": document.installment_number,
            "total_installments": document.total_installments,
            "payment_terms": document.payment_terms,
        },
    )


def evaluate_payment_order(order: PaymentOrder, today: date, urgent_days: int = URGENT_DAYS) -> Optional[Alert]:
    """
    ORDEN_PAGO_PENDIENTE: draft order waiting for approval since its order date.
    ORDEN_PAGO_PENDIENTE_PAGO: approved order not executed by its planned date.
    """
    if order.status == OrderStatus.DRAFT:
        if order.order_date is None or order.order_date > today:
            return None
        return Alert(
            firm_id=order.firm_id,
            rule_name=ORDEN_PAGO_PENDIENTE,
            reference=order.reference,
            priority=AlertPriority.MEDIUM,
            title="Orden de Pago Pendiente de Aprobación",
            description=(
                f"Orden de pago #{order.order_number} por {order.currency} {order.amount} "
                f"pendiente de aprobación desde el {order.order_date.isoformat()}"
            ),
            alert_date=today,
            metadata={"order_number": order.order_number, "amount": str(order.amount), "currency": order.currency},
        )

    if order.status == OrderStatus.APPROVED:
        planned = order.planned_payment_date or order.order_date
        if planned is None:
            return None
        days_late = days_between(planned, today)
        if days_late < 0:
            return None
        return Alert(
            firm_id=order.firm_id,
            rule_name=ORDEN_PAGO_PENDIENTE_PAGO,
            reference=order.reference,
            priority=AlertPriority.HIGH if days_late > urgent_days else AlertPriority.MEDIUM,
            title="Orden de Pago Pendiente de Pago",
            description=(
                f"Orden de pago #{order.order_number} pendiente de pago desde el {planned.isoformat()}. "
                f"Días de atraso: {days_late}."
            ),
            alert_date=today,
            metadata={
                "order_number": order.order_number,
                "amount": str(order.amount),
                "currency": order.currency,
                "planned_payment_date": planned.isoformat(),
                "dias_atraso": days_late,
            },
        )

    return None


def resolve_alert(alert: Alert) -> Alert:
    """pending -> completed; the dedup key is free again afterwards"""
    if alert.status != AlertStatus.PENDING:
        raise InvalidStateTransition("Only pending alerts can be resolved", alert_id=alert.id, status=alert.status.value)
    return replace(alert, status=AlertStatus.COMPLETED)

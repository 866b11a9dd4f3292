"""Periodic alert checks

Each check scans one firm's open documents or payment orders, evaluates its
rules for ``today`` and stores the alerts that pass deduplication. Checks
are idempotent: running one twice on the same day creates nothing new, so
overlapping runs of the polling loop are harmless.
"""

import asyncio
import logging
from datetime import date
from typing import Callable, Dict, Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agro_ledger.config import settings
from agro_ledger.domain import alerts as rules
from agro_ledger.domain.models import Alert, DocumentKind, OrderStatus
from agro_ledger.infrastructure.database.repositories import (
    AlertRepository,
    DocumentRepository,
    PaymentOrderRepository,
)
from agro_ledger.infrastructure.observability.metrics import alert_check_failures_counter, record_alert

logger = logging.getLogger(__name__)


def _emit(db: Session, repo: AlertRepository, alert: Optional[Alert]) -> int:
    """Store one candidate alert unless a pending one already exists; returns 1 if stored"""
    if alert is None:
        return 0
    if not rules.should_emit_alert(repo, alert.firm_id, alert.rule_name, alert.reference):
        record_alert(alert.rule_name, emitted=False)
        return 0

    try:
        repo.add(alert)
        db.commit()
    except IntegrityError:
        # a concurrent run stored the same pending key first
        db.rollback()
        record_alert(alert.rule_name, emitted=False)
        return 0

    record_alert(alert.rule_name, emitted=True)
    return 1


def _apply_rule(
    db: Session,
    repo: AlertRepository,
    rule_name: str,
    evaluate: Callable[..., Optional[Alert]],
    subject,
    *args,
) -> int:
    """Evaluate one rule for one document or order; a failure skips only that pair"""
    try:
        return _emit(db, repo, evaluate(subject, *args))
    except Exception:
        db.rollback()
        alert_check_failures_counter.labels(check=rule_name).inc()
        logger.error(
            "Alert rule failed",
            exc_info=True,
            extra={"step": "alert_rule", "rule": rule_name, "firm_id": subject.firm_id, "subject_id": subject.id},
        )
        return 0


def check_invoice_alerts(db: Session, firm_id: str, today: Optional[date] = None) -> int:
    """FACTURA_VENCIDA and FACTURA_PROXIMO_VENCIMIENTO for open expenses"""
    today = today or date.today()
    repo = AlertRepository(db)
    created = 0
    for expense in DocumentRepository(db).list_open_with_due_date(firm_id, DocumentKind.EXPENSE):
        created += _apply_rule(db, repo, rules.FACTURA_VENCIDA, rules.evaluate_overdue, expense, today)
        created += _apply_rule(db, repo, rules.FACTURA_PROXIMO_VENCIMIENTO, rules.evaluate_due_soon, expense, today)
    return created


def check_income_alerts(db: Session, firm_id: str, today: Optional[date] = None) -> int:
    """INGRESO_VENCIDO for income past its due date"""
    today = today or date.today()
    repo = AlertRepository(db)
    created = 0
    for income in DocumentRepository(db).list_open_with_due_date(firm_id, DocumentKind.INCOME):
        created += _apply_rule(db, repo, rules.INGRESO_VENCIDO, rules.evaluate_overdue, income, today)
    return created


def check_scheduled_payments(
    db: Session,
    firm_id: str,
    today: Optional[date] = None,
    window_days: Optional[int] = None,
) -> int:
    """PAGO_PROGRAMADO_PROXIMO for installments generated from purchase orders"""
    today = today or date.today()
    window = settings.scheduled_payment_window_days if window_days is None else window_days
    repo = AlertRepository(db)
    created = 0
    for expense in DocumentRepository(db).list_open_with_due_date(firm_id, DocumentKind.EXPENSE):
        created += _apply_rule(
            db, repo, rules.PAGO_PROGRAMADO_PROXIMO, rules.evaluate_scheduled_payment, expense, today, window
        )
    return created


def check_payment_order_alerts(db: Session, firm_id: str, today: Optional[date] = None) -> int:
    """ORDEN_PAGO_PENDIENTE and ORDEN_PAGO_PENDIENTE_PAGO"""
    today = today or date.today()
    repo = AlertRepository(db)
    orders = PaymentOrderRepository(db).list_by_status(firm_id, [OrderStatus.DRAFT, OrderStatus.APPROVED])
    created = 0
    for order in orders:
        created += _apply_rule(
            db,
            repo,
            "payment_order",
            rules.evaluate_payment_order,
            order,
            today,
            settings.order_overdue_high_priority_days,
        )
    return created


CHECKS: Dict[str, Callable[[Session, str, Optional[date]], int]] = {
    "invoices": check_invoice_alerts,
    "income": check_income_alerts,
    "scheduled_payments": check_scheduled_payments,
    "payment_orders": check_payment_order_alerts,
}


def run_all_checks(db: Session, firm_id: str, today: Optional[date] = None) -> Dict[str, int]:
    """
    Run every check for one firm.

    A failing check is logged, counted and rolled back; the others still
    run. Returns the number of alerts created per check (0 for failures).
    """
    today = today or date.today()
    results: Dict[str, int] = {}
    for name, check in CHECKS.items():
        try:
            results[name] = check(db, firm_id, today)
        except Exception:
            db.rollback()
            alert_check_failures_counter.labels(check=name).inc()
            logger.error(
                "Alert check failed",
                exc_info=True,
                extra={"step": "alert_check", "check": name, "firm_id": firm_id},
            )
            results[name] = 0

    logger.info(
        "Alert checks completed",
        extra={"step": "alert_check", "firm_id": firm_id, "created": sum(results.values()), **results},
    )
    return results


def run_checks_for_firms(
    session_factory: Callable[[], Session],
    firm_ids: Optional[Iterable[str]] = None,
    today: Optional[date] = None,
) -> Dict[str, Dict[str, int]]:
    """Run all checks for the given firms (default: every firm with documents or orders)"""
    db = session_factory()
    try:
        firms = list(firm_ids) if firm_ids is not None else AlertRepository(db).firm_ids_with_activity()
        return {firm_id: run_all_checks(db, firm_id, today) for firm_id in firms}
    finally:
        db.close()


async def run_alert_polling(
    session_factory: Callable[[], Session],
    interval_seconds: Optional[float] = None,
    stop_event: Optional[asyncio.Event] = None,
) -> None:
    """
    Run the checks for every firm every ``interval_seconds`` until stopped.

    The checks use blocking database calls, so each pass runs in a worker
    thread.
    """
    interval = interval_seconds or settings.alert_check_interval_seconds
    stop_event = stop_event or asyncio.Event()
    logger.info("Alert polling started", extra={"step": "alert_polling", "interval_seconds": interval})

    while not stop_event.is_set():
        try:
            await asyncio.to_thread(run_checks_for_firms, session_factory)
        except Exception:
            logger.error("Alert polling pass failed", exc_info=True, extra={"step": "alert_polling"})

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass

    logger.info("Alert polling stopped", extra={"step": "alert_polling"})

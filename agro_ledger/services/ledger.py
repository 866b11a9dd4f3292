"""Ledger service: runs reconciler operations as single database transactions

Each public method re-reads the rows it touches inside the transaction
(locked where the backend supports it), re-verifies the operation through
the pure reconciler, writes every resulting update and commits. Any error
rolls the whole transaction back. Nothing is retried: a failed write
surfaces to the caller so money is never moved twice.
"""

import logging
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Dict, Iterator, List, Mapping, Optional

from sqlalchemy.orm import Session

from agro_ledger.domain import alerts as alert_rules
from agro_ledger.domain import reconciler
from agro_ledger.domain.exceptions import DomainException
from agro_ledger.domain.installments import schedule_expenses_for_purchase_order
from agro_ledger.domain.models import (
    AccountMovement,
    Alert,
    DocumentKind,
    DocumentStatus,
    FinancialAccount,
    MonetaryDocument,
    OrderStatus,
    PaymentOrder,
    PaymentRecord,
    PurchaseOrder,
)
from agro_ledger.infrastructure.database.repositories import (
    AccountRepository,
    AlertRepository,
    DocumentRepository,
    PaymentOrderRepository,
)
from agro_ledger.infrastructure.observability.logging import log_money_movement, log_transition
from agro_ledger.infrastructure.observability.metrics import (
    orders_executed_counter,
    record_payment,
    rejected_operations_counter,
)
from agro_ledger.utils.money import MoneyLike

logger = logging.getLogger(__name__)

ORDER_ALERT_RULES = (alert_rules.ORDEN_PAGO_PENDIENTE, alert_rules.ORDEN_PAGO_PENDIENTE_PAGO)
DOCUMENT_ALERT_RULES = (
    alert_rules.FACTURA_VENCIDA,
    alert_rules.FACTURA_PROXIMO_VENCIMIENTO,
    alert_rules.INGRESO_VENCIDO,
    alert_rules.PAGO_PROGRAMADO_PROXIMO,
)


class LedgerService:
    """Transactional entry points for every money movement and status change"""

    def __init__(self, db: Session):
        self.db = db
        self.documents = DocumentRepository(db)
        self.accounts = AccountRepository(db)
        self.orders = PaymentOrderRepository(db)
        self.alerts = AlertRepository(db)

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except DomainException as e:
            self.db.rollback()
            rejected_operations_counter.labels(error=e.code).inc()
            logger.warning(
                "Operation rejected: %s", e.message, extra={"step": operation, "error": e.code, **e.context}
            )
            raise
        except Exception:
            self.db.rollback()
            logger.exception("Operation failed, rolled back", extra={"step": operation})
            raise

    # Documents ---------------------------------------------------------

    def create_document(self, document: MonetaryDocument) -> MonetaryDocument:
        with self._transaction("create_document"):
            self.documents.add(document)
        return document

    def schedule_purchase_order(self, purchase_order: PurchaseOrder) -> List[MonetaryDocument]:
        """Persist one registered expense per installment of the order's payment terms"""
        expenses = schedule_expenses_for_purchase_order(purchase_order)
        with self._transaction("schedule_purchase_order"):
            for expense in expenses:
                self.documents.add(expense)
        logger.info(
            "Payment schedule generated",
            extra={
                "step": "schedule_purchase_order",
                "purchase_order_id": purchase_order.id,
                "payment_terms": purchase_order.payment_terms,
                "installments": len(expenses),
            },
        )
        return expenses

    def get_document(self, kind: DocumentKind, document_id: str) -> MonetaryDocument:
        return self.documents.get(kind, document_id)

    def list_documents(
        self,
        firm_id: str,
        kind: DocumentKind,
        statuses: Optional[List[DocumentStatus]] = None,
    ) -> List[MonetaryDocument]:
        return self.documents.list_for_firm(firm_id, kind, statuses)

    def record_payment(
        self,
        kind: DocumentKind,
        document_id: str,
        amount: MoneyLike,
        method: str,
        reference: Optional[str] = None,
        *,
        account_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> reconciler.PaymentOutcome:
        """Apply a partial payment/collection, moving the account when one is given"""
        with self._transaction("record_payment"):
            document = self.documents.get(kind, document_id, for_update=True)
            outcome = reconciler.apply_partial_payment(
                document,
                amount,
                method,
                reference,
                account_id=account_id,
                actor_id=actor_id,
                notes=notes,
            )
            account = None
            if account_id:
                account, movement = reconciler.post_payment_to_account(
                    self.accounts.get(account_id, for_update=True), outcome.document, outcome.record
                )
                self.accounts.save(account)
                self.accounts.add_movement(movement)

            self.documents.save(outcome.document)
            self.documents.add_payment_record(outcome.record)
            if outcome.document.is_terminal:
                self.alerts.resolve_pending_for(outcome.document.reference, DOCUMENT_ALERT_RULES)

        record_payment(document.kind.value)
        log_money_movement(
            "record_payment",
            document.firm_id,
            outcome.record.amount,
            document.currency,
            document_id=document.id,
            account_id=account.id if account else None,
            balance_after=outcome.record.balance_after,
        )
        if outcome.document.status != document.status:
            log_transition(kind.value, document.id, document.status.value, outcome.document.status.value, actor_id)
        return outcome

    def register_document(self, kind: DocumentKind, document_id: str, actor_id: Optional[str] = None) -> MonetaryDocument:
        with self._transaction("register_document"):
            document = self.documents.get(kind, document_id, for_update=True)
            updated = self.documents.save(reconciler.register(document))
        log_transition(kind.value, document_id, document.status.value, updated.status.value, actor_id)
        return updated

    def approve_document(self, kind: DocumentKind, document_id: str, approver_id: str) -> MonetaryDocument:
        with self._transaction("approve_document"):
            document = self.documents.get(kind, document_id, for_update=True)
            updated = self.documents.save(reconciler.approve(document, approver_id))
        log_transition(kind.value, document_id, document.status.value, updated.status.value, approver_id)
        return updated

    def cancel_document(
        self,
        kind: DocumentKind,
        document_id: str,
        actor_id: str,
        reason: Optional[str],
    ) -> MonetaryDocument:
        with self._transaction("cancel_document"):
            document = self.documents.get(kind, document_id, for_update=True)
            updated = self.documents.save(reconciler.cancel(document, actor_id, reason))
            self.alerts.resolve_pending_for(updated.reference, DOCUMENT_ALERT_RULES)
        log_transition(kind.value, document_id, document.status.value, updated.status.value, actor_id)
        return updated

    def payment_history(self, kind: DocumentKind, document_id: str) -> List[PaymentRecord]:
        self.documents.get(kind, document_id)
        return self.documents.payment_history(kind, document_id)

    def outstanding_balance(self, firm_id: str, kind: DocumentKind, currency: Optional[str] = None) -> Decimal:
        return reconciler.outstanding_balance(self.documents.list_for_firm(firm_id, kind), currency)

    # Payment orders ----------------------------------------------------

    def create_payment_order(
        self,
        firm_id: str,
        beneficiary_name: str,
        account_id: str,
        expense_amounts: Mapping[str, Optional[MoneyLike]],
        *,
        order_date: Optional[date] = None,
        planned_payment_date: Optional[date] = None,
        payment_method: str = "transfer",
        concept: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> PaymentOrder:
        """
        Create a DRAFT order. ``expense_amounts`` maps expense id to the
        amount to pay, or None to pay the whole balance.
        """
        order_date = order_date or date.today()
        with self._transaction("create_payment_order"):
            account = self.accounts.get(account_id)
            expenses = self.documents.get_expenses(list(expense_amounts))
            amounts = {key: value for key, value in expense_amounts.items() if value is not None}
            order = reconciler.create_payment_order(
                firm_id,
                beneficiary_name,
                account,
                expenses,
                amounts,
                order_number=self.orders.next_order_number(firm_id, order_date.year),
                order_date=order_date,
                planned_payment_date=planned_payment_date,
                payment_method=payment_method,
                concept=concept,
            )
            self.orders.add(order)
        logger.info(
            "Payment order created",
            extra={
                "step": "create_payment_order",
                "order_id": order.id,
                "order_number": order.order_number,
                "amount": str(order.amount),
                "expenses": len(order.lines),
                "actor_id": actor_id,
            },
        )
        return order

    def get_payment_order(self, order_id: str) -> PaymentOrder:
        return self.orders.get(order_id)

    def list_payment_orders(self, firm_id: str, statuses: Optional[List[OrderStatus]] = None) -> List[PaymentOrder]:
        return self.orders.list_by_status(firm_id, statuses or list(OrderStatus))

    def approve_payment_order(self, order_id: str, approver_id: str) -> PaymentOrder:
        with self._transaction("approve_payment_order"):
            order = self.orders.get(order_id, for_update=True)
            updated = self.orders.save(reconciler.approve_payment_order(order, approver_id))
            self.alerts.resolve_pending_for(updated.reference, [alert_rules.ORDEN_PAGO_PENDIENTE])
        log_transition("payment_order", order_id, order.status.value, updated.status.value, approver_id)
        return updated

    def cancel_payment_order(self, order_id: str, actor_id: str, reason: Optional[str]) -> PaymentOrder:
        with self._transaction("cancel_payment_order"):
            order = self.orders.get(order_id, for_update=True)
            updated = self.orders.save(reconciler.cancel_payment_order(order, actor_id, reason))
            self.alerts.resolve_pending_for(updated.reference, ORDER_ALERT_RULES)
        log_transition("payment_order", order_id, order.status.value, updated.status.value, actor_id)
        return updated

    def execute_payment_order(self, order_id: str, actor_id: Optional[str] = None) -> reconciler.OrderExecution:
        """
        Pay every expense of an approved order and debit its funding account.

        All rows are locked and re-read before the preconditions are checked;
        the order, account, expenses, history and movement are written in
        the same transaction or not at all.
        """
        with self._transaction("execute_payment_order"):
            order = self.orders.get(order_id, for_update=True)
            account = self.accounts.get(order.funding_account_id, for_update=True)
            expense_ids = list(dict.fromkeys(line.expense_id for line in order.lines))
            expenses = self.documents.get_expenses(expense_ids, for_update=True)

            execution = reconciler.execute_payment_order(order, account, expenses, actor_id=actor_id)

            for document in execution.documents:
                self.documents.save(document)
                if document.is_terminal:
                    self.alerts.resolve_pending_for(document.reference, DOCUMENT_ALERT_RULES)
            for record in execution.records:
                self.documents.add_payment_record(record)
            self.accounts.save(execution.account)
            self.accounts.add_movement(execution.movement)
            self.orders.save(execution.order)
            self.alerts.resolve_pending_for(execution.order.reference, ORDER_ALERT_RULES)

        orders_executed_counter.inc()
        for record in execution.records:
            record_payment(record.document_kind.value)
        log_money_movement(
            "execute_payment_order",
            order.firm_id,
            order.amount,
            order.currency,
            document_id=order.id,
            account_id=account.id,
            balance_after=execution.account.current_balance,
        )
        log_transition("payment_order", order_id, order.status.value, execution.order.status.value, actor_id)
        return execution

    # Financial accounts -----------------------------------------------

    def create_account(
        self,
        account: FinancialAccount,
        bank_name: Optional[str] = None,
        account_number: Optional[str] = None,
    ) -> FinancialAccount:
        with self._transaction("create_account"):
            self.accounts.add(account, bank_name=bank_name, account_number=account_number)
        return account

    def get_account(self, account_id: str) -> FinancialAccount:
        return self.accounts.get(account_id)

    def account_movements(self, account_id: str) -> List[AccountMovement]:
        self.accounts.get(account_id)
        return self.accounts.movements(account_id)

    def adjust_account(
        self,
        account_id: str,
        amount: MoneyLike,
        reason: Optional[str],
        actor_id: Optional[str] = None,
    ) -> FinancialAccount:
        with self._transaction("adjust_account"):
            account, movement = reconciler.adjust_account_balance(
                self.accounts.get(account_id, for_update=True), amount, reason, actor_id
            )
            self.accounts.save(account)
            self.accounts.add_movement(movement)
        log_money_movement(
            "adjust_account",
            account.firm_id,
            movement.amount,
            account.currency,
            account_id=account.id,
            balance_after=account.current_balance,
        )
        return account

    def set_initial_balance(self, account_id: str, amount: MoneyLike) -> FinancialAccount:
        with self._transaction("set_initial_balance"):
            account = reconciler.set_initial_balance(self.accounts.get(account_id, for_update=True), amount)
            self.accounts.save(account)
        return account

    def account_summary(self, firm_id: str) -> reconciler.AccountSummary:
        return reconciler.summarize_accounts(self.accounts.list_for_firm(firm_id))

    def account_balances(self, firm_id: str) -> Dict[str, Decimal]:
        return self.account_summary(firm_id).totals_by_currency

    # Alerts ------------------------------------------------------------

    def pending_alerts(self, firm_id: str) -> List[Alert]:
        return self.alerts.list_pending(firm_id)

    def resolve_alert(self, alert_id: str, actor_id: Optional[str] = None) -> Alert:
        with self._transaction("resolve_alert"):
            alert = self.alerts.get(alert_id)
            resolved = self.alerts.save(alert_rules.resolve_alert(alert))
        log_transition("alert", alert_id, alert.status.value, resolved.status.value, actor_id)
        return resolved

"""Data access layer: maps ORM rows to and from domain value objects"""

import uuid
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import case
from sqlalchemy.orm import Session

from agro_ledger.domain.exceptions import DocumentNotFound
from agro_ledger.domain.models import (
    AccountMovement,
    Alert,
    AlertPriority,
    AlertStatus,
    DocumentKind,
    DocumentReference,
    DocumentStatus,
    FinancialAccount,
    MonetaryDocument,
    OrderStatus,
    PaymentOrder,
    PaymentOrderLine,
    PaymentRecord,
    ReferenceKind,
    TERMINAL_STATUSES,
)
from agro_ledger.infrastructure.database.models import (
    AccountMovementRow,
    AlertRow,
    ExpenseRow,
    FinancialAccountRow,
    IncomeRow,
    PaymentHistoryRow,
    PaymentOrderLineRow,
    PaymentOrderRow,
)


def to_uuid(value: str, entity: str = "document") -> uuid.UUID:
    """Parse an id; a malformed id can never match a row"""
    try:
        return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
    except ValueError as e:
        raise DocumentNotFound(f"{entity} not found", **{f"{entity}_id": str(value)}) from e


def reference_key(reference: DocumentReference) -> str:
    return f"{reference.kind.value}:{reference.id}"


class DocumentRepository:
    """Repository for expenses and income"""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def _model(kind: DocumentKind):
        return ExpenseRow if DocumentKind(kind) == DocumentKind.EXPENSE else IncomeRow

    @staticmethod
    def to_domain(row) -> MonetaryDocument:
        if isinstance(row, ExpenseRow):
            specific: Dict[str, Any] = {
                "kind": DocumentKind.EXPENSE,
                "party_name": row.provider_name,
                "party_tax_id": row.provider_rut,
                "paid_amount": row.paid_amount,
                "purchase_order_id": row.purchase_order_id,
                "is_auto_generated": row.is_auto_generated,
                "installment_number": row.installment_number,
                "total_installments": row.total_installments,
            }
        else:
            specific = {
                "kind": DocumentKind.INCOME,
                "party_name": row.client_name,
                "party_tax_id": row.client_rut,
                "paid_amount": row.collected_amount,
            }

        return MonetaryDocument(
            id=str(row.id),
            firm_id=row.firm_id,
            currency=row.currency,
            total_amount=row.total_amount,
            status=DocumentStatus(row.status),
            invoice_series=row.invoice_series,
            invoice_number=row.invoice_number,
            invoice_date=row.invoice_date,
            due_date=row.due_date,
            payment_terms=row.payment_terms,
            alert_days=row.alert_days,
            category=row.category,
            tax_rate=row.tax_rate,
            approved_by=row.approved_by,
            approved_at=row.approved_at,
            cancelled_by=row.cancelled_by,
            cancelled_at=row.cancelled_at,
            cancellation_reason=row.cancellation_reason,
            **specific,
        )

    @staticmethod
    def _write(row, document: MonetaryDocument) -> None:
        row.firm_id = document.firm_id
        row.invoice_series = document.invoice_series
        row.invoice_number = document.invoice_number
        row.invoice_date = document.invoice_date
        row.category = document.category
        row.tax_rate = document.tax_rate
        row.currency = document.currency
        row.total_amount = document.total_amount
        row.balance = document.balance
        row.status = document.status.value
        row.due_date = document.due_date
        row.payment_terms = document.payment_terms
        row.alert_days = document.alert_days
        row.approved_by = document.approved_by
        row.approved_at = document.approved_at
        row.cancelled_by = document.cancelled_by
        row.cancelled_at = document.cancelled_at
        row.cancellation_reason = document.cancellation_reason

        if isinstance(row, ExpenseRow):
            row.provider_name = document.party_name
            row.provider_rut = document.party_tax_id
            row.paid_amount = document.paid_amount
            row.purchase_order_id = document.purchase_order_id
            row.is_auto_generated = document.is_auto_generated
            row.installment_number = document.installment_number
            row.total_installments = document.total_installments
        else:
            row.client_name = document.party_name
            row.client_rut = document.party_tax_id
            row.collected_amount = document.paid_amount

    def _get_row(self, kind: DocumentKind, document_id: str, for_update: bool = False):
        model = self._model(kind)
        query = self.db.query(model).filter(model.id == to_uuid(document_id))
        if for_update:
            query = query.with_for_update()
        row = query.first()
        if row is None:
            raise DocumentNotFound(f"{DocumentKind(kind).value} not found", document_id=str(document_id))
        return row

    def get(self, kind: DocumentKind, document_id: str, for_update: bool = False) -> MonetaryDocument:
        return self.to_domain(self._get_row(kind, document_id, for_update))

    def get_expenses(self, expense_ids: Sequence[str], for_update: bool = False) -> List[MonetaryDocument]:
        """Fetch expenses in id order; raises if any is missing"""
        return [self.get(DocumentKind.EXPENSE, expense_id, for_update) for expense_id in expense_ids]

    def add(self, document: MonetaryDocument) -> MonetaryDocument:
        row = self._model(document.kind)(id=to_uuid(document.id))
        self._write(row, document)
        self.db.add(row)
        self.db.flush()
        return document

    def save(self, document: MonetaryDocument) -> MonetaryDocument:
        row = self._get_row(document.kind, document.id)
        self._write(row, document)
        self.db.flush()
        return document

    def list_for_firm(
        self,
        firm_id: str,
        kind: DocumentKind,
        statuses: Optional[Iterable[DocumentStatus]] = None,
    ) -> List[MonetaryDocument]:
        model = self._model(kind)
        query = self.db.query(model).filter(model.firm_id == firm_id)
        if statuses is not None:
            query = query.filter(model.status.in_([DocumentStatus(s).value for s in statuses]))
        return [self.to_domain(row) for row in query.order_by(model.due_date.asc()).all()]

    def list_open_with_due_date(self, firm_id: str, kind: DocumentKind) -> List[MonetaryDocument]:
        """Non-terminal documents with a due date and something left to pay"""
        model = self._model(kind)
        rows = (
            self.db.query(model)
            .filter(model.firm_id == firm_id)
            .filter(model.status.notin_([s.value for s in TERMINAL_STATUSES]))
            .filter(model.due_date.isnot(None))
            .filter(model.balance > 0)
            .order_by(model.due_date.asc())
            .all()
        )
        return [self.to_domain(row) for row in rows]

    def add_payment_record(self, record: PaymentRecord) -> PaymentRecord:
        self.db.add(
            PaymentHistoryRow(
                id=to_uuid(record.id),
                document_kind=record.document_kind.value,
                document_id=to_uuid(record.document_id),
                payment_order_id=to_uuid(record.payment_order_id) if record.payment_order_id else None,
                payment_date=record.payment_date,
                amount=record.amount,
                payment_method=record.method,
                reference_number=record.reference,
                balance_before=record.balance_before,
                balance_after=record.balance_after,
                account_id=to_uuid(record.account_id, "account") if record.account_id else None,
                created_by=record.actor_id,
                notes=record.notes,
            )
        )
        self.db.flush()
        return record

    def payment_history(self, kind: DocumentKind, document_id: str) -> List[PaymentRecord]:
        rows = (
            self.db.query(PaymentHistoryRow)
            .filter(PaymentHistoryRow.document_kind == DocumentKind(kind).value)
            .filter(PaymentHistoryRow.document_id == to_uuid(document_id))
            # balance only goes down, so this is posting order
            .order_by(PaymentHistoryRow.balance_before.desc())
            .all()
        )
        return [
            PaymentRecord(
                id=str(row.id),
                document_id=str(row.document_id),
                document_kind=DocumentKind(row.document_kind),
                payment_date=row.payment_date,
                amount=row.amount,
                method=row.payment_method,
                reference=row.reference_number,
                account_id=str(row.account_id) if row.account_id else None,
                actor_id=row.created_by,
                payment_order_id=str(row.payment_order_id) if row.payment_order_id else None,
                balance_before=row.balance_before,
                balance_after=row.balance_after,
                notes=row.notes,
            )
            for row in rows
        ]


class AccountRepository:
    """Repository for financial accounts and their movements"""

    def __init__(self, db: Session):
        self.db = db

    def _has_movements(self, account_id: uuid.UUID) -> bool:
        return (
            self.db.query(AccountMovementRow.id).filter(AccountMovementRow.account_id == account_id).first()
            is not None
        )

    def to_domain(self, row: FinancialAccountRow) -> FinancialAccount:
        return FinancialAccount(
            id=str(row.id),
            firm_id=row.firm_id,
            name=row.name,
            account_type=row.account_type,
            currency=row.currency,
            initial_balance=row.initial_balance,
            current_balance=row.current_balance,
            is_active=row.is_active,
            has_movements=self._has_movements(row.id),
        )

    def _get_row(self, account_id: str, for_update: bool = False) -> FinancialAccountRow:
        query = self.db.query(FinancialAccountRow).filter(FinancialAccountRow.id == to_uuid(account_id, "account"))
        if for_update:
            query = query.with_for_update()
        row = query.first()
        if row is None:
            raise DocumentNotFound("Financial account not found", account_id=str(account_id))
        return row

    def get(self, account_id: str, for_update: bool = False) -> FinancialAccount:
        return self.to_domain(self._get_row(account_id, for_update))

    def add(
        self,
        account: FinancialAccount,
        bank_name: Optional[str] = None,
        account_number: Optional[str] = None,
    ) -> FinancialAccount:
        self.db.add(
            FinancialAccountRow(
                id=to_uuid(account.id, "account"),
                firm_id=account.firm_id,
                name=account.name,
                account_type=account.account_type.value,
                currency=account.currency,
                bank_name=bank_name,
                account_number=account_number,
                initial_balance=account.initial_balance,
                current_balance=account.current_balance,
                is_active=account.is_active,
            )
        )
        self.db.flush()
        return account

    def save(self, account: FinancialAccount) -> FinancialAccount:
        row = self._get_row(account.id)
        row.name = account.name
        row.initial_balance = account.initial_balance
        row.current_balance = account.current_balance
        row.is_active = account.is_active
        self.db.flush()
        return account

    def add_movement(self, movement: AccountMovement) -> AccountMovement:
        self.db.add(
            AccountMovementRow(
                id=to_uuid(movement.id),
                account_id=to_uuid(movement.account_id, "account"),
                movement_date=movement.movement_date,
                amount=movement.amount,
                balance_before=movement.balance_before,
                balance_after=movement.balance_after,
                reason=movement.reason,
                source_reference=movement.source_reference,
                created_by=movement.actor_id,
            )
        )
        self.db.flush()
        return movement

    def list_for_firm(self, firm_id: str) -> List[FinancialAccount]:
        rows = (
            self.db.query(FinancialAccountRow)
            .filter(FinancialAccountRow.firm_id == firm_id)
            .order_by(FinancialAccountRow.name.asc())
            .all()
        )
        return [self.to_domain(row) for row in rows]

    def movements(self, account_id: str) -> List[AccountMovement]:
        rows = (
            self.db.query(AccountMovementRow)
            .filter(AccountMovementRow.account_id == to_uuid(account_id, "account"))
            .order_by(AccountMovementRow.created_at.asc(), AccountMovementRow.movement_date.asc())
            .all()
        )
        return [
            AccountMovement(
                id=str(row.id),
                account_id=str(row.account_id),
                movement_date=row.movement_date,
                amount=row.amount,
                balance_before=row.balance_before,
                balance_after=row.balance_after,
                reason=row.reason,
                source_reference=row.source_reference,
                actor_id=row.created_by,
            )
            for row in rows
        ]


class PaymentOrderRepository:
    """Repository for payment orders and their expense lines"""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def to_domain(row: PaymentOrderRow) -> PaymentOrder:
        return PaymentOrder(
            id=str(row.id),
            firm_id=row.firm_id,
            order_number=row.order_number,
            beneficiary_name=row.beneficiary_name,
            currency=row.currency,
            funding_account_id=str(row.account_id),
            lines=tuple(
                PaymentOrderLine(expense_id=str(line.expense_id), amount=line.amount_paid) for line in row.lines
            ),
            status=OrderStatus(row.status),
            payment_method=row.payment_method,
            concept=row.concept,
            order_date=row.order_date,
            planned_payment_date=row.planned_payment_date,
            payment_date=row.payment_date,
            approved_by=row.approved_by,
            approved_at=row.approved_at,
            executed_by=row.executed_by,
            executed_at=row.executed_at,
            cancelled_by=row.cancelled_by,
            cancelled_at=row.cancelled_at,
            cancellation_reason=row.cancellation_reason,
        )

    def _get_row(self, order_id: str, for_update: bool = False) -> PaymentOrderRow:
        query = self.db.query(PaymentOrderRow).filter(PaymentOrderRow.id == to_uuid(order_id, "order"))
        if for_update:
            query = query.with_for_update()
        row = query.first()
        if row is None:
            raise DocumentNotFound("Payment order not found", order_id=str(order_id))
        return row

    def get(self, order_id: str, for_update: bool = False) -> PaymentOrder:
        return self.to_domain(self._get_row(order_id, for_update))

    def add(self, order: PaymentOrder) -> PaymentOrder:
        row = PaymentOrderRow(
            id=to_uuid(order.id, "order"),
            firm_id=order.firm_id,
            order_number=order.order_number,
            beneficiary_name=order.beneficiary_name,
            currency=order.currency,
            account_id=to_uuid(order.funding_account_id, "account"),
            amount=order.amount,
            status=order.status.value,
            payment_method=order.payment_method,
            concept=order.concept,
            order_date=order.order_date,
            planned_payment_date=order.planned_payment_date,
        )
        for position, line in enumerate(order.lines):
            row.lines.append(
                PaymentOrderLineRow(expense_id=to_uuid(line.expense_id), amount_paid=line.amount, position=position)
            )
        self.db.add(row)
        self.db.flush()
        return order

    def save(self, order: PaymentOrder) -> PaymentOrder:
        """Persist status fields; lines are fixed once the order exists"""
        row = self._get_row(order.id)
        row.status = order.status.value
        row.payment_date = order.payment_date
        row.approved_by = order.approved_by
        row.approved_at = order.approved_at
        row.executed_by = order.executed_by
        row.executed_at = order.executed_at
        row.cancelled_by = order.cancelled_by
        row.cancelled_at = order.cancelled_at
        row.cancellation_reason = order.cancellation_reason
        self.db.flush()
        return order

    def list_by_status(self, firm_id: str, statuses: Iterable[OrderStatus]) -> List[PaymentOrder]:
        rows = (
            self.db.query(PaymentOrderRow)
            .filter(PaymentOrderRow.firm_id == firm_id)
            .filter(PaymentOrderRow.status.in_([OrderStatus(s).value for s in statuses]))
            .order_by(PaymentOrderRow.order_date.asc())
            .all()
        )
        return [self.to_domain(row) for row in rows]

    def next_order_number(self, firm_id: str, year: int) -> str:
        """OP-YYYY-NNNNN, sequential per firm and year"""
        prefix = f"OP-{year}-"
        numbers = (
            self.db.query(PaymentOrderRow.order_number)
            .filter(PaymentOrderRow.firm_id == firm_id)
            .filter(PaymentOrderRow.order_number.like(f"{prefix}%"))
            .all()
        )
        sequence = 0
        for (number,) in numbers:
            suffix = number[len(prefix):]
            if suffix.isdigit():
                sequence = max(sequence, int(suffix))
        return f"{prefix}{sequence + 1:05d}"


class AlertRepository:
    """Repository for alerts; also the pending-alert lookup used for dedup"""

    _priority_rank = case(
        (AlertRow.priority == AlertPriority.HIGH.value, 0),
        (AlertRow.priority == AlertPriority.MEDIUM.value, 1),
        else_=2,
    )

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def to_domain(row: AlertRow) -> Alert:
        kind, _, ref_id = row.reference_key.partition(":")
        return Alert(
            id=str(row.id),
            firm_id=row.firm_id,
            rule_name=row.rule_name,
            reference=DocumentReference(ReferenceKind(kind), ref_id),
            priority=AlertPriority(row.priority),
            status=AlertStatus(row.status),
            title=row.title,
            description=row.description or "",
            alert_date=row.alert_date,
            metadata=row.details or {},
        )

    def has_pending(self, firm_id: str, rule_name: str, reference: DocumentReference) -> bool:
        return (
            self.db.query(AlertRow.id)
            .filter(AlertRow.firm_id == firm_id)
            .filter(AlertRow.rule_name == rule_name)
            .filter(AlertRow.reference_key == reference_key(reference))
            .filter(AlertRow.status == AlertStatus.PENDING.value)
            .first()
            is not None
        )

    def add(self, alert: Alert) -> Alert:
        ref = alert.reference
        row = AlertRow(
            firm_id=alert.firm_id,
            rule_name=alert.rule_name,
            reference_key=reference_key(ref),
            expense_id=to_uuid(ref.id) if ref.kind == ReferenceKind.EXPENSE else None,
            income_id=to_uuid(ref.id) if ref.kind == ReferenceKind.INCOME else None,
            payment_order_id=to_uuid(ref.id) if ref.kind == ReferenceKind.PAYMENT_ORDER else None,
            title=alert.title,
            description=alert.description,
            priority=alert.priority.value,
            status=alert.status.value,
            alert_date=alert.alert_date,
            details=alert.metadata,
        )
        self.db.add(row)
        self.db.flush()
        return self.to_domain(row)

    def _get_row(self, alert_id: str) -> AlertRow:
        row = self.db.query(AlertRow).filter(AlertRow.id == to_uuid(alert_id, "alert")).first()
        if row is None:
            raise DocumentNotFound("Alert not found", alert_id=str(alert_id))
        return row

    def get(self, alert_id: str) -> Alert:
        return self.to_domain(self._get_row(alert_id))

    def save(self, alert: Alert) -> Alert:
        row = self._get_row(alert.id)
        row.status = alert.status.value
        self.db.flush()
        return alert

    def list_pending(self, firm_id: str) -> List[Alert]:
        """Pending alerts, most urgent first"""
        rows = (
            self.db.query(AlertRow)
            .filter(AlertRow.firm_id == firm_id)
            .filter(AlertRow.status == AlertStatus.PENDING.value)
            .order_by(self._priority_rank, AlertRow.alert_date.asc())
            .all()
        )
        return [self.to_domain(row) for row in rows]

    def resolve_pending_for(self, reference: DocumentReference, rule_names: Iterable[str]) -> int:
        """Mark every pending alert of the given rules for a document as completed"""
        return (
            self.db.query(AlertRow)
            .filter(AlertRow.reference_key == reference_key(reference))
            .filter(AlertRow.rule_name.in_(list(rule_names)))
            .filter(AlertRow.status == AlertStatus.PENDING.value)
            .update({AlertRow.status: AlertStatus.COMPLETED.value}, synchronize_session=False)
        )

    def firm_ids_with_activity(self) -> List[str]:
        """Firms that own at least one expense, income or payment order"""
        firms = set()
        for model in (ExpenseRow, IncomeRow, PaymentOrderRow):
            firms.update(firm_id for (firm_id,) in self.db.query(model.firm_id).distinct().all())
        return sorted(firms)

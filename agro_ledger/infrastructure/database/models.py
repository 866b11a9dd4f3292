"""SQLAlchemy ORM models for the persisted ledger rows"""

import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

Money = Numeric(14, 2)


class MonetaryDocumentColumns:
    """Columns shared by expenses and income"""

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    firm_id = Column(Text, nullable=False, index=True)
    invoice_series = Column(Text, nullable=True)
    invoice_number = Column(Text, nullable=True)
    invoice_date = Column(Date, nullable=True)
    category = Column(Text, nullable=True)
    tax_rate = Column(Integer, nullable=True)
    currency = Column(Text, nullable=False)
    total_amount = Column(Money, nullable=False)
    # Written from total - paid on every save, never read back
    balance = Column(Money, nullable=False)
    status = Column(Text, nullable=False, default="DRAFT")
    due_date = Column(Date, nullable=True)
    payment_terms = Column(Text, nullable=True)
    alert_days = Column(Integer, nullable=False, default=5)
    approved_by = Column(Text, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())


class ExpenseRow(MonetaryDocumentColumns, Base):
    """Purchase invoice"""

    __tablename__ = "expenses"

    provider_name = Column(Text, nullable=False)
    provider_rut = Column(Text, nullable=True)
    paid_amount = Column(Money, nullable=False, default=0)
    purchase_order_id = Column(Text, nullable=True, index=True)
    is_auto_generated = Column(Boolean, nullable=False, default=False)
    installment_number = Column(Integer, nullable=True)
    total_installments = Column(Integer, nullable=True)


class IncomeRow(MonetaryDocumentColumns, Base):
    """Sales invoice"""

    __tablename__ = "income"

    client_name = Column(Text, nullable=False)
    client_rut = Column(Text, nullable=True)
    collected_amount = Column(Money, nullable=False, default=0)


class PaymentHistoryRow(Base):
    """Append-only payment/collection history"""

    __tablename__ = "document_payment_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    document_kind = Column(Text, nullable=False)
    document_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    payment_order_id = Column(UUID(as_uuid=True), nullable=True)
    payment_date = Column(Date, nullable=False)
    amount = Column(Money, nullable=False)
    payment_method = Column(Text, nullable=False)
    reference_number = Column(Text, nullable=True)
    balance_before = Column(Money, nullable=False)
    balance_after = Column(Money, nullable=False)
    account_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    created_by = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class FinancialAccountRow(Base):
    __tablename__ = "financial_accounts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    firm_id = Column(Text, nullable=False, index=True)
    name = Column(Text, nullable=False)
    account_type = Column(Text, nullable=False)
    currency = Column(Text, nullable=False)
    bank_name = Column(Text, nullable=True)
    account_number = Column(Text, nullable=True)
    initial_balance = Column(Money, nullable=False, default=0)
    current_balance = Column(Money, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    movements = relationship("AccountMovementRow", back_populates="account", cascade="all, delete-orphan")


class AccountMovementRow(Base):
    """Append-only change to an account's current balance"""

    __tablename__ = "account_movements"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account_id = Column(UUID(as_uuid=True), ForeignKey("financial_accounts.id", ondelete="CASCADE"), nullable=False)
    movement_date = Column(Date, nullable=False)
    amount = Column(Money, nullable=False)
    balance_before = Column(Money, nullable=False)
    balance_after = Column(Money, nullable=False)
    reason = Column(Text, nullable=False)
    source_reference = Column(Text, nullable=True)
    created_by = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    account = relationship("FinancialAccountRow", back_populates="movements")


class PaymentOrderRow(Base):
    __tablename__ = "payment_orders"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    firm_id = Column(Text, nullable=False, index=True)
    order_number = Column(Text, nullable=True)
    beneficiary_name = Column(Text, nullable=False)
    currency = Column(Text, nullable=False)
    account_id = Column(UUID(as_uuid=True), ForeignKey("financial_accounts.id"), nullable=False)
    amount = Column(Money, nullable=False)
    status = Column(Text, nullable=False, default="DRAFT")
    payment_method = Column(Text, nullable=False)
    concept = Column(Text, nullable=True)
    order_date = Column(Date, nullable=True)
    planned_payment_date = Column(Date, nullable=True)
    payment_date = Column(Date, nullable=True)
    approved_by = Column(Text, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    executed_by = Column(Text, nullable=True)
    executed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    lines = relationship(
        "PaymentOrderLineRow",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="PaymentOrderLineRow.position",
    )


class PaymentOrderLineRow(Base):
    """Amount an order allots to one expense"""

    __tablename__ = "payment_order_expenses"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    payment_order_id = Column(
        UUID(as_uuid=True), ForeignKey("payment_orders.id", ondelete="CASCADE"), nullable=False
    )
    expense_id = Column(UUID(as_uuid=True), ForeignKey("expenses.id"), nullable=False)
    amount_paid = Column(Money, nullable=False)
    position = Column(Integer, nullable=False, default=0)

    order = relationship("PaymentOrderRow", back_populates="lines")


class AlertRow(Base):
    """Alert with its dedup key

    ``reference_key`` is ``<kind>:<id>`` of the alerted document; the partial
    unique index keeps at most one pending alert per firm, rule and document.
    """

    __tablename__ = "alerts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    firm_id = Column(Text, nullable=False)
    rule_name = Column(Text, nullable=False)
    reference_key = Column(Text, nullable=False)
    expense_id = Column(UUID(as_uuid=True), nullable=True)
    income_id = Column(UUID(as_uuid=True), nullable=True)
    payment_order_id = Column(UUID(as_uuid=True), nullable=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(Text, nullable=False, default="medium")
    status = Column(Text, nullable=False, default="pending")
    alert_date = Column(Date, nullable=False)
    details = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index(
            "uq_alerts_pending_key",
            "firm_id",
            "rule_name",
            "reference_key",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

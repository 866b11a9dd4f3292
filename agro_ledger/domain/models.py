"""Domain models - immutable dataclasses representing ledger entities

All monetary fields are 2-decimal ``Decimal`` values. Constructors normalize
amounts through ``to_money`` and reject rows that break the balance
invariants, so a malformed row never reaches the reconciler.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from agro_ledger.domain.exceptions import InvalidAmount
from agro_ledger.utils.money import ZERO, money_sum, to_money


def new_id() -> str:
    return str(uuid.uuid4())


class DocumentKind(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"


class DocumentStatus(str, Enum):
    """Lifecycle of expenses and income. Income uses the CONFIRMED/COLLECTED names."""

    DRAFT = "DRAFT"
    REGISTERED = "REGISTERED"
    APPROVED = "APPROVED"
    CONFIRMED = "CONFIRMED"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    FULLY_PAID = "FULLY_PAID"
    PARTIALLY_COLLECTED = "PARTIALLY_COLLECTED"
    COLLECTED = "COLLECTED"
    CANCELLED = "CANCELLED"


class OrderStatus(str, Enum):
    DRAFT = "DRAFT"
    APPROVED = "APPROVED"
    EXECUTED = "EXECUTED"
    CANCELLED = "CANCELLED"


class AccountType(str, Enum):
    CASH = "CASH"
    BANK = "BANK"
    CREDIT_CARD = "CREDIT_CARD"


class PaymentMethod(str, Enum):
    TRANSFER = "transfer"
    CHECK = "check"
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"


class AlertStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class AlertPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ReferenceKind(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"
    PAYMENT_ORDER = "payment_order"


SETTLED_STATUSES = frozenset({DocumentStatus.FULLY_PAID, DocumentStatus.COLLECTED})
TERMINAL_STATUSES = SETTLED_STATUSES | {DocumentStatus.CANCELLED}
TERMINAL_ORDER_STATUSES = frozenset({OrderStatus.EXECUTED, OrderStatus.CANCELLED})


@dataclass(frozen=True)
class Installment:
    """Single scheduled portion of a total amount"""

    sequence_number: int
    due_date: date
    amount: Decimal
    percentage: int
    days_offset: int


@dataclass(frozen=True)
class MonetaryDocument:
    """
    Expense (purchase invoice) or income (sales invoice).

    ``balance`` is derived from ``total_amount - paid_amount`` and has no
    setter. For income, ``paid_amount`` is the collected amount.
    """

    firm_id: str
    kind: DocumentKind
    party_name: str
    currency: str
    total_amount: Decimal
    paid_amount: Decimal = ZERO
    status: DocumentStatus = DocumentStatus.DRAFT
    id: str = field(default_factory=new_id)
    invoice_series: Optional[str] = None
    invoice_number: Optional[str] = None
    party_tax_id: Optional[str] = None
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    payment_terms: Optional[str] = None
    alert_days: int = 5
    category: Optional[str] = None
    tax_rate: Optional[int] = None
    purchase_order_id: Optional[str] = None
    is_auto_generated: bool = False
    installment_number: Optional[int] = None
    total_installments: Optional[int] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    def __post_init__(self) -> None:
        total = to_money(self.total_amount, "total_amount")
        paid = to_money(self.paid_amount, "paid_amount")
        if total <= ZERO:
            raise InvalidAmount(
                "total_amount must be greater than zero", document_id=self.id, value=str(total)
            )
        if paid < ZERO or paid > total:
            raise InvalidAmount(
                "paid_amount must be between zero and total_amount",
                document_id=self.id,
                value=str(paid),
                total_amount=str(total),
            )
        object.__setattr__(self, "total_amount", total)
        object.__setattr__(self, "paid_amount", paid)
        object.__setattr__(self, "kind", DocumentKind(self.kind))
        object.__setattr__(self, "status", DocumentStatus(self.status))

    @property
    def balance(self) -> Decimal:
        return self.total_amount - self.paid_amount

    @property
    def collected_amount(self) -> Decimal:
        return self.paid_amount

    @property
    def invoice_full(self) -> str:
        return f"{self.invoice_series or ''}-{self.invoice_number or ''}"

    @property
    def is_cancelled(self) -> bool:
        return self.status == DocumentStatus.CANCELLED

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def reference(self) -> "DocumentReference":
        kind = ReferenceKind.EXPENSE if self.kind == DocumentKind.EXPENSE else ReferenceKind.INCOME
        return DocumentReference(kind, self.id)


@dataclass(frozen=True)
class PaymentRecord:
    """Append-only payment/collection history entry (the audit trail)"""

    document_id: str
    document_kind: DocumentKind
    payment_date: date
    amount: Decimal
    method: str
    balance_before: Decimal
    balance_after: Decimal
    reference: Optional[str] = None
    account_id: Optional[str] = None
    actor_id: Optional[str] = None
    payment_order_id: Optional[str] = None
    notes: Optional[str] = None
    id: str = field(default_factory=new_id)


@dataclass(frozen=True)
class PaymentOrderLine:
    """Amount a payment order allots to one expense"""

    expense_id: str
    amount: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_money(self.amount))


@dataclass(frozen=True)
class PaymentOrder:
    firm_id: str
    beneficiary_name: str
    currency: str
    funding_account_id: str
    lines: Tuple[PaymentOrderLine, ...]
    status: OrderStatus = OrderStatus.DRAFT
    id: str = field(default_factory=new_id)
    order_number: Optional[str] = None
    order_date: Optional[date] = None
    planned_payment_date: Optional[date] = None
    payment_date: Optional[date] = None
    payment_method: str = PaymentMethod.TRANSFER.value
    concept: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    executed_by: Optional[str] = None
    executed_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "lines", tuple(self.lines))
        object.__setattr__(self, "status", OrderStatus(self.status))

    @property
    def amount(self) -> Decimal:
        return money_sum(line.amount for line in self.lines)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ORDER_STATUSES

    @property
    def reference(self) -> "DocumentReference":
        return DocumentReference(ReferenceKind.PAYMENT_ORDER, self.id)


@dataclass(frozen=True)
class FinancialAccount:
    firm_id: str
    name: str
    currency: str
    initial_balance: Decimal
    current_balance: Decimal
    account_type: AccountType = AccountType.BANK
    has_movements: bool = False
    is_active: bool = True
    id: str = field(default_factory=new_id)

    def __post_init__(self) -> None:
        object.__setattr__(self, "initial_balance", to_money(self.initial_balance, "initial_balance"))
        object.__setattr__(self, "current_balance", to_money(self.current_balance, "current_balance"))
        object.__setattr__(self, "account_type", AccountType(self.account_type))


@dataclass(frozen=True)
class AccountMovement:
    """Append-only change to a financial account's current balance"""

    account_id: str
    movement_date: date
    amount: Decimal  # signed: negative debits the account
    balance_before: Decimal
    balance_after: Decimal
    reason: str
    source_reference: Optional[str] = None
    actor_id: Optional[str] = None
    id: str = field(default_factory=new_id)


@dataclass(frozen=True)
class DocumentReference:
    kind: ReferenceKind
    id: str


@dataclass(frozen=True)
class Alert:
    firm_id: str
    rule_name: str
    reference: DocumentReference
    priority: AlertPriority
    title: str
    description: str
    alert_date: date
    status: AlertStatus = AlertStatus.PENDING
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None

    @property
    def dedup_key(self) -> Tuple[str, str, DocumentReference]:
        return (self.firm_id, self.rule_name, self.reference)


@dataclass(frozen=True)
class PurchaseOrder:
    """Purchase order fields needed to derive a payment schedule"""

    id: str
    firm_id: str
    order_number: str
    supplier_name: str
    currency: str
    total_amount: Decimal
    order_date: date
    payment_terms: Optional[str] = None
    supplier_rut: Optional[str] = None

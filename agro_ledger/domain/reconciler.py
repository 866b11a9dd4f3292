"""Balance and status reconciliation - core money-movement rules

Every function here is pure: it validates the whole operation first and then
returns new value objects, leaving its inputs untouched. Invalid requests are
rejected as a whole, never clamped, so a caller that persists the returned
objects in one transaction cannot end up with a half-applied movement.
"""

from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from agro_ledger.domain.exceptions import (
    AmountExceedsBalance,
    CurrencyMismatch,
    DocumentNotFound,
    InsufficientFunds,
    InvalidAmount,
    InvalidStateTransition,
    MissingReason,
)
from agro_ledger.domain.models import (
    AccountMovement,
    DocumentKind,
    DocumentStatus,
    FinancialAccount,
    MonetaryDocument,
    OrderStatus,
    PaymentMethod,
    PaymentOrder,
    PaymentOrderLine,
    PaymentRecord,
)
from agro_ledger.utils.money import ZERO, MoneyLike, money_sum, to_money

APPROVED_STATUS = {
    DocumentKind.EXPENSE: DocumentStatus.APPROVED,
    DocumentKind.INCOME: DocumentStatus.CONFIRMED,
}
PARTIAL_STATUS = {
    DocumentKind.EXPENSE: DocumentStatus.PARTIALLY_PAID,
    DocumentKind.INCOME: DocumentStatus.PARTIALLY_COLLECTED,
}
SETTLED_STATUS = {
    DocumentKind.EXPENSE: DocumentStatus.FULLY_PAID,
    DocumentKind.INCOME: DocumentStatus.COLLECTED,
}
APPROVABLE_STATUSES = frozenset({DocumentStatus.DRAFT, DocumentStatus.REGISTERED})
PAYABLE_STATUSES = frozenset(
    {
        DocumentStatus.APPROVED,
        DocumentStatus.CONFIRMED,
        DocumentStatus.PARTIALLY_PAID,
        DocumentStatus.PARTIALLY_COLLECTED,
    }
)


@dataclass(frozen=True)
class PaymentOutcome:
    document: MonetaryDocument
    record: PaymentRecord


@dataclass(frozen=True)
class OrderExecution:
    """Everything that must be persisted together when an order executes"""

    order: PaymentOrder
    account: FinancialAccount
    documents: Tuple[MonetaryDocument, ...]
    records: Tuple[PaymentRecord, ...]
    movement: AccountMovement


@dataclass(frozen=True)
class AccountSummary:
    account_count: int
    totals_by_currency: Dict[str, Decimal] = field(default_factory=dict)
    count_by_type: Dict[str, int] = field(default_factory=dict)
    balance_by_type: Dict[str, Dict[str, Decimal]] = field(default_factory=dict)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_reason(reason: Optional[str], **context) -> str:
    if reason is None or not reason.strip():
        raise MissingReason("A reason is required", **context)
    return reason.strip()


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


def apply_partial_payment(
    document: MonetaryDocument,
    amount: MoneyLike,
    method: str,
    reference: Optional[str] = None,
    *,
    account_id: Optional[str] = None,
    actor_id: Optional[str] = None,
    paid_on: Optional[date] = None,
    payment_order_id: Optional[str] = None,
    notes: Optional[str] = None,
) -> PaymentOutcome:
    """
    Register a payment (expense) or collection (income) against a document.

    Raises:
        InvalidStateTransition: document is settled, cancelled or not yet approved
        InvalidAmount: amount <= 0 or not a valid 2-decimal amount
        AmountExceedsBalance: amount > outstanding balance
    """
    if document.is_terminal:
        raise InvalidStateTransition(
            f"Document is {document.status.value}; no further payments are allowed",
            document_id=document.id,
            status=document.status.value,
        )
    if document.status not in PAYABLE_STATUSES:
        raise InvalidStateTransition(
            f"Document must be {APPROVED_STATUS[document.kind].value} before it can be paid",
            document_id=document.id,
            status=document.status.value,
        )

    value = to_money(amount)
    if value <= ZERO:
        raise InvalidAmount("Amount must be greater than zero", document_id=document.id, value=str(value))
    if value > document.balance:
        raise AmountExceedsBalance(
            f"Amount {value} exceeds outstanding balance {document.balance}",
            document_id=document.id,
            amount=str(value),
            balance=str(document.balance),
        )

    paid = document.paid_amount + value
    status = SETTLED_STATUS[document.kind] if paid == document.total_amount else PARTIAL_STATUS[document.kind]
    updated = replace(document, paid_amount=paid, status=status)

    record = PaymentRecord(
        document_id=document.id,
        document_kind=document.kind,
        payment_date=paid_on or date.today(),
        amount=value,
        method=method,
        reference=reference,
        account_id=account_id,
        actor_id=actor_id,
        payment_order_id=payment_order_id,
        balance_before=document.balance,
        balance_after=updated.balance,
        notes=notes,
    )
    return PaymentOutcome(document=updated, record=record)


def settle(
    document: MonetaryDocument,
    method: str,
    reference: Optional[str] = None,
    **kwargs,
) -> PaymentOutcome:
    """Pay or collect the whole outstanding balance"""
    return apply_partial_payment(document, document.balance, method, reference, **kwargs)


def register(document: MonetaryDocument) -> MonetaryDocument:
    """DRAFT -> REGISTERED"""
    if document.status != DocumentStatus.DRAFT:
        raise InvalidStateTransition(
            f"Only DRAFT documents can be registered (current: {document.status.value})",
            document_id=document.id,
            status=document.status.value,
        )
    return replace(document, status=DocumentStatus.REGISTERED)


def approve(
    document: MonetaryDocument,
    approver_id: str,
    approved_at: Optional[datetime] = None,
) -> MonetaryDocument:
    """DRAFT/REGISTERED -> APPROVED (expense) or CONFIRMED (income)"""
    if document.status not in APPROVABLE_STATUSES:
        raise InvalidStateTransition(
            f"Cannot approve a document in status {document.status.value}",
            document_id=document.id,
            status=document.status.value,
        )
    return replace(
        document,
        status=APPROVED_STATUS[document.kind],
        approved_by=approver_id,
        approved_at=approved_at or _utcnow(),
    )


def cancel(
    document: MonetaryDocument,
    actor_id: str,
    reason: Optional[str],
    cancelled_at: Optional[datetime] = None,
) -> MonetaryDocument:
    """
    Cancel a non-terminal document.

    Amounts are left as they are for audit; prior payments are not reversed.
    """
    if document.is_terminal:
        raise InvalidStateTransition(
            f"Cannot cancel a document in status {document.status.value}",
            document_id=document.id,
            status=document.status.value,
        )
    text = _require_reason(reason, document_id=document.id)
    return replace(
        document,
        status=DocumentStatus.CANCELLED,
        cancelled_by=actor_id,
        cancelled_at=cancelled_at or _utcnow(),
        cancellation_reason=text,
    )


def outstanding_balance(documents: Iterable[MonetaryDocument], currency: Optional[str] = None) -> Decimal:
    """Sum of balances, cancelled documents excluded"""
    return money_sum(
        doc.balance
        for doc in documents
        if not doc.is_cancelled and (currency is None or doc.currency == currency)
    )


# ---------------------------------------------------------------------------
# Payment orders
# ---------------------------------------------------------------------------


def _check_currency(expected: str, actual: str, **context) -> None:
    if expected != actual:
        raise CurrencyMismatch(f"Currency {actual} does not match {expected}", expected=expected, actual=actual, **context)


def _check_firm(firm_id: str, owner_firm_id: str, **context) -> None:
    """Another firm's account or document is reported as missing"""
    if owner_firm_id != firm_id:
        raise DocumentNotFound(f"Not found in firm {firm_id}", firm_id=firm_id, **context)


def create_payment_order(
    firm_id: str,
    beneficiary_name: str,
    funding_account: FinancialAccount,
    expenses: Sequence[MonetaryDocument],
    amounts: Optional[Mapping[str, MoneyLike]] = None,
    *,
    order_number: Optional[str] = None,
    order_date: Optional[date] = None,
    planned_payment_date: Optional[date] = None,
    payment_method: str = PaymentMethod.TRANSFER.value,
    concept: Optional[str] = None,
) -> PaymentOrder:
    """
    Build a DRAFT order paying the given expenses from one account.

    ``amounts`` maps expense id to the amount to pay; expenses missing from
    it are paid in full.
    """
    if not expenses:
        raise InvalidAmount("Select at least one expense to pay")
    _check_firm(firm_id, funding_account.firm_id, account_id=funding_account.id)

    amounts = amounts or {}
    lines: List[PaymentOrderLine] = []
    seen = set()

    for expense in expenses:
        if expense.kind != DocumentKind.EXPENSE:
            raise InvalidStateTransition("Payment orders can only pay expenses", document_id=expense.id)
        _check_firm(firm_id, expense.firm_id, document_id=expense.id)
        if expense.id in seen:
            raise InvalidAmount("Expense selected more than once", document_id=expense.id)
        seen.add(expense.id)

        _check_currency(funding_account.currency, expense.currency, document_id=expense.id)
        if expense.status not in PAYABLE_STATUSES:
            raise InvalidStateTransition(
                f"Expense in status {expense.status.value} cannot be paid",
                document_id=expense.id,
                status=expense.status.value,
            )

        amount = to_money(amounts.get(expense.id, expense.balance))
        if amount <= ZERO:
            raise InvalidAmount("Amount must be greater than zero", document_id=expense.id, value=str(amount))
        if amount > expense.balance:
            raise AmountExceedsBalance(
                f"Amount {amount} exceeds outstanding balance {expense.balance}",
                document_id=expense.id,
                amount=str(amount),
                balance=str(expense.balance),
            )
        lines.append(PaymentOrderLine(expense_id=expense.id, amount=amount))

    today = order_date or date.today()
    return PaymentOrder(
        firm_id=firm_id,
        beneficiary_name=beneficiary_name,
        currency=funding_account.currency,
        funding_account_id=funding_account.id,
        lines=tuple(lines),
        order_number=order_number,
        order_date=today,
        planned_payment_date=planned_payment_date or today,
        payment_method=PaymentMethod(payment_method).value,
        concept=concept,
    )


def approve_payment_order(
    order: PaymentOrder,
    approver_id: str,
    approved_at: Optional[datetime] = None,
) -> PaymentOrder:
    if order.status != OrderStatus.DRAFT:
        raise InvalidStateTransition(
            f"Cannot approve a payment order in status {order.status.value}",
            order_id=order.id,
            status=order.status.value,
        )
    return replace(order, status=OrderStatus.APPROVED, approved_by=approver_id, approved_at=approved_at or _utcnow())


def cancel_payment_order(
    order: PaymentOrder,
    actor_id: str,
    reason: Optional[str],
    cancelled_at: Optional[datetime] = None,
) -> PaymentOrder:
    if order.is_terminal:
        raise InvalidStateTransition(
            f"Cannot cancel a payment order in status {order.status.value}",
            order_id=order.id,
            status=order.status.value,
        )
    text = _require_reason(reason, order_id=order.id)
    return replace(
        order,
        status=OrderStatus.CANCELLED,
        cancelled_by=actor_id,
        cancelled_at=cancelled_at or _utcnow(),
        cancellation_reason=text,
    )


def execute_payment_order(
    order: PaymentOrder,
    funding_account: FinancialAccount,
    documents: Sequence[MonetaryDocument],
    *,
    actor_id: Optional[str] = None,
    executed_on: Optional[date] = None,
    executed_at: Optional[datetime] = None,
) -> OrderExecution:
    """
    Pay every line of an approved order and debit the funding account.

    All checks run before any new value is built, so a failure leaves every
    input exactly as it was.

    Raises:
        InvalidStateTransition: order not APPROVED, or a referenced expense is not payable
        CurrencyMismatch: account or an expense is in another currency
        DocumentNotFound: wrong funding account, a line's expense was not supplied,
            or the account or an expense belongs to another firm
        InsufficientFunds: order total > account current balance
        AmountExceedsBalance: a line exceeds its expense's balance (names the expense)
    """
    if order.status != OrderStatus.APPROVED:
        raise InvalidStateTransition(
            f"Payment order must be APPROVED to execute (current: {order.status.value})",
            order_id=order.id,
            status=order.status.value,
        )
    if funding_account.id != order.funding_account_id:
        raise DocumentNotFound(
            "Funding account does not belong to this payment order",
            order_id=order.id,
            account_id=funding_account.id,
        )
    _check_firm(order.firm_id, funding_account.firm_id, order_id=order.id, account_id=funding_account.id)
    _check_currency(order.currency, funding_account.currency, order_id=order.id, account_id=funding_account.id)

    total = order.amount
    if total > funding_account.current_balance:
        raise InsufficientFunds(
            f"Insufficient funds in account {funding_account.name}: "
            f"available {funding_account.currency} {funding_account.current_balance}, required {total}",
            account_id=funding_account.id,
            available=str(funding_account.current_balance),
            required=str(total),
        )

    by_id = {doc.id: doc for doc in documents}
    remaining: Dict[str, Decimal] = {}
    for line in order.lines:
        doc = by_id.get(line.expense_id)
        if doc is None:
            raise DocumentNotFound("Expense referenced by payment order not found", document_id=line.expense_id)
        _check_firm(order.firm_id, doc.firm_id, order_id=order.id, document_id=doc.id)
        _check_currency(order.currency, doc.currency, document_id=doc.id)
        balance = remaining.get(doc.id, doc.balance)
        if line.amount > balance:
            raise AmountExceedsBalance(
                f"Amount {line.amount} exceeds outstanding balance {balance} of expense {doc.invoice_full}",
                document_id=doc.id,
                amount=str(line.amount),
                balance=str(balance),
            )
        remaining[doc.id] = balance - line.amount

    paid_on = executed_on or date.today()
    records = []
    for line in order.lines:
        outcome = apply_partial_payment(
            by_id[line.expense_id],
            line.amount,
            order.payment_method,
            order.order_number,
            account_id=funding_account.id,
            actor_id=actor_id,
            paid_on=paid_on,
            payment_order_id=order.id,
        )
        by_id[line.expense_id] = outcome.document
        records.append(outcome.record)

    new_balance = funding_account.current_balance - total
    movement = AccountMovement(
        account_id=funding_account.id,
        movement_date=paid_on,
        amount=-total,
        balance_before=funding_account.current_balance,
        balance_after=new_balance,
        reason=f"Orden de pago {order.order_number or order.id}",
        source_reference=order.id,
        actor_id=actor_id,
    )
    touched = dict.fromkeys(line.expense_id for line in order.lines)
    return OrderExecution(
        order=replace(
            order,
            status=OrderStatus.EXECUTED,
            payment_date=paid_on,
            executed_by=actor_id,
            executed_at=executed_at or _utcnow(),
        ),
        account=replace(funding_account, current_balance=new_balance, has_movements=True),
        documents=tuple(by_id[expense_id] for expense_id in touched),
        records=tuple(records),
        movement=movement,
    )


# ---------------------------------------------------------------------------
# Financial accounts
# ---------------------------------------------------------------------------


def post_payment_to_account(
    account: FinancialAccount,
    document: MonetaryDocument,
    record: PaymentRecord,
) -> Tuple[FinancialAccount, AccountMovement]:
    """
    Move a direct payment through the account it was made from.

    Income collections are deposited; expense payments are debited and need
    enough funds.
    """
    _check_firm(document.firm_id, account.firm_id, document_id=document.id, account_id=account.id)
    _check_currency(account.currency, document.currency, document_id=document.id, account_id=account.id)
    if document.kind == DocumentKind.INCOME:
        signed, label = record.amount, "Cobro"
    else:
        if record.amount > account.current_balance:
            raise InsufficientFunds(
                f"Insufficient funds in account {account.name}: "
                f"available {account.currency} {account.current_balance}, required {record.amount}",
                account_id=account.id,
                available=str(account.current_balance),
                required=str(record.amount),
            )
        signed, label = -record.amount, "Pago"

    new_balance = account.current_balance + signed
    movement = AccountMovement(
        account_id=account.id,
        movement_date=record.payment_date,
        amount=signed,
        balance_before=account.current_balance,
        balance_after=new_balance,
        reason=f"{label} {document.invoice_full} - {document.party_name}",
        source_reference=document.id,
        actor_id=record.actor_id,
    )
    return replace(account, current_balance=new_balance, has_movements=True), movement


def adjust_account_balance(
    account: FinancialAccount,
    amount: MoneyLike,
    reason: Optional[str],
    actor_id: Optional[str] = None,
    adjusted_on: Optional[date] = None,
) -> Tuple[FinancialAccount, AccountMovement]:
    """Manual signed adjustment, recorded as a movement"""
    value = to_money(amount)
    if value == ZERO:
        raise InvalidAmount("Adjustment amount cannot be zero", account_id=account.id)
    text = _require_reason(reason, account_id=account.id)

    new_balance = account.current_balance + value
    if new_balance < ZERO:
        raise InsufficientFunds(
            f"Adjustment would leave account {account.name} negative",
            account_id=account.id,
            available=str(account.current_balance),
            required=str(-value),
        )
    movement = AccountMovement(
        account_id=account.id,
        movement_date=adjusted_on or date.today(),
        amount=value,
        balance_before=account.current_balance,
        balance_after=new_balance,
        reason=text,
        actor_id=actor_id,
    )
    return replace(account, current_balance=new_balance, has_movements=True), movement


def set_initial_balance(account: FinancialAccount, amount: MoneyLike) -> FinancialAccount:
    """Initial balance is editable only until the first movement is posted"""
    if account.has_movements:
        raise InvalidStateTransition(
            "Initial balance cannot change once the account has movements",
            account_id=account.id,
        )
    value = to_money(amount, "initial_balance")
    if value < ZERO:
        raise InvalidAmount("Initial balance cannot be negative", account_id=account.id, value=str(value))
    return replace(account, initial_balance=value, current_balance=value)


def summarize_accounts(accounts: Iterable[FinancialAccount]) -> AccountSummary:
    """Active-account totals per currency and per account type"""
    totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: Dict[str, int] = defaultdict(int)
    by_type: Dict[str, Dict[str, Decimal]] = defaultdict(lambda: defaultdict(lambda: ZERO))
    active = [account for account in accounts if account.is_active]

    for account in active:
        account_type = account.account_type.value
        totals[account.currency] += account.current_balance
        counts[account_type] += 1
        by_type[account_type][account.currency] += account.current_balance

    return AccountSummary(
        account_count=len(active),
        totals_by_currency=dict(totals),
        count_by_type=dict(counts),
        balance_by_type={key: dict(value) for key, value in by_type.items()},
    )

"""Pydantic schemas for API request/response validation"""

import re
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Dict, List, Optional

from pydantic import AfterValidator, BaseModel, Field, field_validator, model_validator

from agro_ledger.domain.models import AccountType, PaymentMethod

CURRENCIES = ("UYU", "USD")
TAX_RATES = (0, 10, 22)

_RUT_SEPARATORS = re.compile(r"[.\-\s]")
_RUT_PATTERNS = (re.compile(r"^\d{11}[0-9K]$", re.IGNORECASE), re.compile(r"^\d{12}$"))


def is_valid_rut(rut: str) -> bool:
    """Uruguayan RUT: 11 digits plus a 0-9/K check character, or 12 digits"""
    cleaned = _RUT_SEPARATORS.sub("", rut.strip())
    return any(pattern.match(cleaned) for pattern in _RUT_PATTERNS)


def _check_currency(value: str) -> str:
    if value not in CURRENCIES:
        raise ValueError(f"currency must be one of {', '.join(CURRENCIES)}")
    return value


def _check_party_name(value: str) -> str:
    value = value.strip()
    if len(value) < 3:
        raise ValueError("name must have at least 3 characters")
    return value


def _check_rut(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    if not is_valid_rut(value):
        raise ValueError("invalid RUT, expected 12 digits (e.g. 123456789012)")
    return value.strip()


Currency = Annotated[str, AfterValidator(_check_currency)]
PartyName = Annotated[str, AfterValidator(_check_party_name)]
Rut = Annotated[Optional[str], AfterValidator(_check_rut)]


# Payment terms


class InstallmentSchema(BaseModel):
    """Single installment of a payment schedule"""

    sequence_number: int
    due_date: date
    amount: Decimal
    percentage: int
    days_offset: int


class PaymentTermsResponse(BaseModel):
    payment_terms: str
    total_amount: Decimal
    base_date: date
    installments: List[InstallmentSchema]


class PurchaseOrderScheduleRequest(BaseModel):
    """Request body for POST /v1/purchase-orders/schedule"""

    purchase_order_id: str = Field(..., min_length=1)
    firm_id: str = Field(..., min_length=1)
    order_number: str = Field(..., min_length=1)
    supplier_name: str = Field(..., min_length=1)
    supplier_rut: Rut = None
    currency: Currency = "UYU"
    total_amount: Decimal
    order_date: date
    payment_terms: Optional[str] = None


# Documents


class DocumentCreate(BaseModel):
    """Request body shared by expense and income creation"""

    firm_id: str = Field(..., min_length=1)
    party_name: PartyName = Field(..., description="Provider (expense) or client (income) name")
    party_tax_id: Rut = Field(None, description="RUT")
    currency: Currency = "UYU"
    total_amount: Decimal
    invoice_series: Optional[str] = None
    invoice_number: Optional[str] = None
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    payment_terms: Optional[str] = None
    alert_days: Optional[int] = Field(None, ge=0)
    category: Optional[str] = Field(None, min_length=2, max_length=100)
    tax_rate: Optional[int] = None
    status: str = Field("DRAFT", pattern="^(DRAFT|REGISTERED)$")

    @field_validator("invoice_number")
    @classmethod
    def invoice_number_digits(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip().isdigit():
            raise ValueError("invoice number must contain only digits")
        return value.strip() if value is not None else None

    @field_validator("tax_rate")
    @classmethod
    def known_tax_rate(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value not in TAX_RATES:
            raise ValueError("tax rate must be 0, 10 or 22")
        return value

    @model_validator(mode="after")
    def due_after_invoice_date(self) -> "DocumentCreate":
        if self.due_date and self.invoice_date and self.due_date < self.invoice_date:
            raise ValueError("due_date must not be before invoice_date")
        return self


class DocumentResponse(BaseModel):
    id: str
    firm_id: str
    kind: str
    party_name: str
    party_tax_id: Optional[str] = None
    invoice_full: str
    currency: str
    total_amount: Decimal
    paid_amount: Decimal
    balance: Decimal
    status: str
    due_date: Optional[date] = None
    payment_terms: Optional[str] = None
    category: Optional[str] = None
    tax_rate: Optional[int] = None
    purchase_order_id: Optional[str] = None
    installment_number: Optional[int] = None
    total_installments: Optional[int] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None


class PaymentRequest(BaseModel):
    """Request body for a payment (expense) or collection (income)"""

    amount: Decimal
    payment_method: PaymentMethod = PaymentMethod.TRANSFER
    reference: Optional[str] = None
    account_id: Optional[str] = None
    actor_id: Optional[str] = None
    notes: Optional[str] = None


class PaymentRecordSchema(BaseModel):
    id: str
    payment_date: date
    amount: Decimal
    method: str
    reference: Optional[str] = None
    balance_before: Decimal
    balance_after: Decimal
    account_id: Optional[str] = None
    payment_order_id: Optional[str] = None


class PaymentResponse(BaseModel):
    document: DocumentResponse
    payment: PaymentRecordSchema


class ApproveRequest(BaseModel):
    approver_id: str = Field(..., min_length=1)


class CancelRequest(BaseModel):
    """Reason is checked by the ledger so a blank one maps to missing_reason"""

    actor_id: str = Field(..., min_length=1)
    reason: Optional[str] = None


class OutstandingResponse(BaseModel):
    firm_id: str
    kind: str
    currency: Optional[str] = None
    outstanding: Decimal


# Payment orders


class PaymentOrderLineRequest(BaseModel):
    expense_id: str
    amount: Optional[Decimal] = Field(None, description="Defaults to the expense's full balance")


class PaymentOrderCreate(BaseModel):
    firm_id: str = Field(..., min_length=1)
    beneficiary_name: str = Field(..., min_length=1)
    account_id: str
    expenses: List[PaymentOrderLineRequest] = Field(..., min_length=1)
    payment_method: PaymentMethod = PaymentMethod.TRANSFER
    order_date: Optional[date] = None
    planned_payment_date: Optional[date] = None
    concept: Optional[str] = None
    actor_id: Optional[str] = None

    @field_validator("beneficiary_name")
    @classmethod
    def beneficiary_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("beneficiary name is required")
        return value.strip()

    @field_validator("expenses")
    @classmethod
    def expenses_listed_once(cls, value: List[PaymentOrderLineRequest]) -> List[PaymentOrderLineRequest]:
        seen = set()
        for line in value:
            if line.expense_id in seen:
                raise ValueError(f"expense {line.expense_id} is listed more than once")
            seen.add(line.expense_id)
        return value


class PaymentOrderLineSchema(BaseModel):
    expense_id: str
    amount: Decimal


class PaymentOrderResponse(BaseModel):
    id: str
    firm_id: str
    order_number: Optional[str] = None
    beneficiary_name: str
    currency: str
    account_id: str
    amount: Decimal
    status: str
    payment_method: str
    concept: Optional[str] = None
    order_date: Optional[date] = None
    planned_payment_date: Optional[date] = None
    payment_date: Optional[date] = None
    lines: List[PaymentOrderLineSchema]


class ExecuteRequest(BaseModel):
    actor_id: Optional[str] = None


class ExecutionResponse(BaseModel):
    order: PaymentOrderResponse
    account_balance: Decimal
    documents: List[DocumentResponse]


# Financial accounts


class AccountCreate(BaseModel):
    firm_id: str = Field(..., min_length=1)
    name: PartyName
    account_type: AccountType
    currency: Currency
    initial_balance: Decimal = Field(Decimal("0"), ge=0)
    bank_name: Optional[str] = None
    account_number: Optional[str] = None

    @model_validator(mode="after")
    def bank_details_for_bank_accounts(self) -> "AccountCreate":
        if self.account_type == AccountType.BANK:
            if not (self.bank_name and self.bank_name.strip()):
                raise ValueError("bank_name is required for bank accounts")
            if not (self.account_number and self.account_number.strip()):
                raise ValueError("account_number is required for bank accounts")
        return self


class AccountResponse(BaseModel):
    id: str
    firm_id: str
    name: str
    account_type: str
    currency: str
    initial_balance: Decimal
    current_balance: Decimal
    is_active: bool
    has_movements: bool


class AdjustmentRequest(BaseModel):
    amount: Decimal = Field(..., description="Signed: negative debits the account")
    reason: Optional[str] = None
    actor_id: Optional[str] = None


class InitialBalanceRequest(BaseModel):
    initial_balance: Decimal


class MovementSchema(BaseModel):
    id: str
    movement_date: date
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    reason: str
    source_reference: Optional[str] = None


class AccountSummaryResponse(BaseModel):
    firm_id: str
    account_count: int
    totals_by_currency: Dict[str, Decimal]
    count_by_type: Dict[str, int]
    balance_by_type: Dict[str, Dict[str, Decimal]]


# Alerts


class AlertSchema(BaseModel):
    id: Optional[str] = None
    rule_name: str
    reference_kind: str
    reference_id: str
    priority: str
    status: str
    title: str
    description: str
    alert_date: date


class AlertCheckRequest(BaseModel):
    firm_id: str = Field(..., min_length=1)
    today: Optional[date] = None


class AlertCheckResponse(BaseModel):
    firm_id: str
    created: Dict[str, int]


class AlertListResponse(BaseModel):
    firm_id: str
    alerts: List[AlertSchema]


# Domain -> response


def document_response(document) -> DocumentResponse:
    return DocumentResponse(
        id=document.id,
        firm_id=document.firm_id,
        kind=document.kind.value,
        party_name=document.party_name,
        party_tax_id=document.party_tax_id,
        invoice_full=document.invoice_full,
        currency=document.currency,
        total_amount=document.total_amount,
        paid_amount=document.paid_amount,
        balance=document.balance,
        status=document.status.value,
        due_date=document.due_date,
        payment_terms=document.payment_terms,
        category=document.category,
        tax_rate=document.tax_rate,
        purchase_order_id=document.purchase_order_id,
        installment_number=document.installment_number,
        total_installments=document.total_installments,
        approved_by=document.approved_by,
        approved_at=document.approved_at,
        cancellation_reason=document.cancellation_reason,
    )


def payment_record_schema(record) -> PaymentRecordSchema:
    return PaymentRecordSchema(
        id=record.id,
        payment_date=record.payment_date,
        amount=record.amount,
        method=record.method,
        reference=record.reference,
        balance_before=record.balance_before,
        balance_after=record.balance_after,
        account_id=record.account_id,
        payment_order_id=record.payment_order_id,
    )


def payment_order_response(order) -> PaymentOrderResponse:
    return PaymentOrderResponse(
        id=order.id,
        firm_id=order.firm_id,
        order_number=order.order_number,
        beneficiary_name=order.beneficiary_name,
        currency=order.currency,
        account_id=order.funding_account_id,
        amount=order.amount,
        status=order.status.value,
        payment_method=order.payment_method,
        concept=order.concept,
        order_date=order.order_date,
        planned_payment_date=order.planned_payment_date,
        payment_date=order.payment_date,
        lines=[PaymentOrderLineSchema(expense_id=line.expense_id, amount=line.amount) for line in order.lines],
    )


def account_response(account) -> AccountResponse:
    return AccountResponse(
        id=account.id,
        firm_id=account.firm_id,
        name=account.name,
        account_type=account.account_type.value,
        currency=account.currency,
        initial_balance=account.initial_balance,
        current_balance=account.current_balance,
        is_active=account.is_active,
        has_movements=account.has_movements,
    )


def alert_schema(alert) -> AlertSchema:
    return AlertSchema(
        id=alert.id,
        rule_name=alert.rule_name,
        reference_kind=alert.reference.kind.value,
        reference_id=alert.reference.id,
        priority=alert.priority.value,
        status=alert.status.value,
        title=alert.title,
        description=alert.description,
        alert_date=alert.alert_date,
    )

"""Expenses and income: creation, payments/collections, approval and cancellation

Both collections share one router; ``/v1/expenses`` and ``/v1/income`` only
differ in the document kind they act on.
"""

from enum import Enum
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from agro_ledger.api.dependencies import get_audit_client, get_ledger_service
from agro_ledger.api.v1.schemas import (
    ApproveRequest,
    CancelRequest,
    DocumentCreate,
    DocumentResponse,
    OutstandingResponse,
    PaymentRecordSchema,
    PaymentRequest,
    PaymentResponse,
    document_response,
    payment_record_schema,
)
from agro_ledger.config import settings
from agro_ledger.domain.models import DocumentKind, DocumentStatus, MonetaryDocument
from agro_ledger.infrastructure.clients.audit import AuditClient, audit_event
from agro_ledger.services.ledger import LedgerService

router = APIRouter()


class Collection(str, Enum):
    EXPENSES = "expenses"
    INCOME = "income"

    @property
    def kind(self) -> DocumentKind:
        return DocumentKind.EXPENSE if self == Collection.EXPENSES else DocumentKind.INCOME


# audit event type per (kind, action)
AUDIT_EVENTS = {
    (DocumentKind.EXPENSE, "create"): "factura_creada",
    (DocumentKind.INCOME, "create"): "ingreso_creado",
    (DocumentKind.EXPENSE, "payment"): "pago_registrado",
    (DocumentKind.INCOME, "payment"): "cobro_registrado",
    (DocumentKind.EXPENSE, "approve"): "factura_aprobada",
    (DocumentKind.INCOME, "approve"): "ingreso_confirmado",
    (DocumentKind.EXPENSE, "cancel"): "factura_anulada",
    (DocumentKind.INCOME, "cancel"): "ingreso_anulado",
}


def _audit(
    background_tasks: BackgroundTasks,
    audit: AuditClient,
    action: str,
    document: MonetaryDocument,
    actor_id: Optional[str],
    description: str,
    **metadata,
) -> None:
    background_tasks.add_task(
        audit.send_event,
        audit_event(
            AUDIT_EVENTS[(document.kind, action)],
            document.firm_id,
            document.id,
            actor_id,
            description,
            {"status": document.status.value, "balance": str(document.balance), **metadata},
        ),
    )


@router.post("/{collection}", response_model=DocumentResponse, status_code=201)
def create_document(
    collection: Collection,
    request_body: DocumentCreate,
    background_tasks: BackgroundTasks,
    ledger: LedgerService = Depends(get_ledger_service),
    audit: AuditClient = Depends(get_audit_client),
):
    document = ledger.create_document(
        MonetaryDocument(
            firm_id=request_body.firm_id,
            kind=collection.kind,
            party_name=request_body.party_name,
            party_tax_id=request_body.party_tax_id,
            currency=request_body.currency,
            total_amount=request_body.total_amount,
            status=DocumentStatus(request_body.status),
            invoice_series=request_body.invoice_series,
            invoice_number=request_body.invoice_number,
            invoice_date=request_body.invoice_date,
            due_date=request_body.due_date,
            payment_terms=request_body.payment_terms,
            alert_days=request_body.alert_days if request_body.alert_days is not None else settings.default_alert_days,
            category=request_body.category,
            tax_rate=request_body.tax_rate,
        )
    )
    _audit(
        background_tasks,
        audit,
        "create",
        document,
        None,
        f"{collection.kind.value} {document.invoice_full} de {document.party_name} por "
        f"{document.currency} {document.total_amount}",
    )
    return document_response(document)


@router.get("/{collection}", response_model=List[DocumentResponse])
def list_documents(
    collection: Collection,
    firm_id: str = Query(..., description="Firm identifier"),
    status: Optional[List[DocumentStatus]] = Query(None, description="Filter by status"),
    ledger: LedgerService = Depends(get_ledger_service),
):
    return [document_response(doc) for doc in ledger.list_documents(firm_id, collection.kind, status)]


@router.get("/{collection}/outstanding", response_model=OutstandingResponse)
def outstanding_balance(
    collection: Collection,
    firm_id: str = Query(..., description="Firm identifier"),
    currency: Optional[str] = Query(None),
    ledger: LedgerService = Depends(get_ledger_service),
):
    """Total still to pay (expenses) or collect (income); cancelled documents excluded"""
    return OutstandingResponse(
        firm_id=firm_id,
        kind=collection.kind.value,
        currency=currency,
        outstanding=ledger.outstanding_balance(firm_id, collection.kind, currency),
    )


@router.get("/{collection}/{document_id}", response_model=DocumentResponse)
def get_document(
    collection: Collection,
    document_id: str,
    ledger: LedgerService = Depends(get_ledger_service),
):
    return document_response(ledger.get_document(collection.kind, document_id))


@router.post("/{collection}/{document_id}/payments", response_model=PaymentResponse, status_code=201)
def record_payment(
    collection: Collection,
    document_id: str,
    request_body: PaymentRequest,
    background_tasks: BackgroundTasks,
    ledger: LedgerService = Depends(get_ledger_service),
    audit: AuditClient = Depends(get_audit_client),
):
    """
    Register a partial or full payment (expenses) or collection (income).

    With ``account_id`` the amount also moves through that financial account.
    """
    outcome = ledger.record_payment(
        collection.kind,
        document_id,
        request_body.amount,
        request_body.payment_method.value,
        request_body.reference,
        account_id=request_body.account_id,
        actor_id=request_body.actor_id,
        notes=request_body.notes,
    )
    _audit(
        background_tasks,
        audit,
        "payment",
        outcome.document,
        request_body.actor_id,
        f"{outcome.document.currency} {outcome.record.amount} aplicado a {outcome.document.invoice_full}",
        amount=str(outcome.record.amount),
        payment_method=outcome.record.method,
    )
    return PaymentResponse(
        document=document_response(outcome.document),
        payment=payment_record_schema(outcome.record),
    )


@router.get("/{collection}/{document_id}/payments", response_model=List[PaymentRecordSchema])
def payment_history(
    collection: Collection,
    document_id: str,
    ledger: LedgerService = Depends(get_ledger_service),
):
    return [payment_record_schema(record) for record in ledger.payment_history(collection.kind, document_id)]


@router.post("/{collection}/{document_id}/register", response_model=DocumentResponse)
def register_document(
    collection: Collection,
    document_id: str,
    ledger: LedgerService = Depends(get_ledger_service),
):
    return document_response(ledger.register_document(collection.kind, document_id))


@router.post("/{collection}/{document_id}/approve", response_model=DocumentResponse)
def approve_document(
    collection: Collection,
    document_id: str,
    request_body: ApproveRequest,
    background_tasks: BackgroundTasks,
    ledger: LedgerService = Depends(get_ledger_service),
    audit: AuditClient = Depends(get_audit_client),
):
    document = ledger.approve_document(collection.kind, document_id, request_body.approver_id)
    _audit(
        background_tasks,
        audit,
        "approve",
        document,
        request_body.approver_id,
        f"{document.invoice_full} aprobada",
    )
    return document_response(document)


@router.post("/{collection}/{document_id}/cancel", response_model=DocumentResponse)
def cancel_document(
    collection: Collection,
    document_id: str,
    request_body: CancelRequest,
    background_tasks: BackgroundTasks,
    ledger: LedgerService = Depends(get_ledger_service),
    audit: AuditClient = Depends(get_audit_client),
):
    document = ledger.cancel_document(collection.kind, document_id, request_body.actor_id, request_body.reason)
    _audit(
        background_tasks,
        audit,
        "cancel",
        document,
        request_body.actor_id,
        f"{document.invoice_full} anulada: {document.cancellation_reason}",
    )
    return document_response(document)

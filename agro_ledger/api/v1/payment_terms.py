"""Payment-terms preview and purchase-order schedule generation"""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from agro_ledger.api.dependencies import get_audit_client, get_ledger_service
from agro_ledger.api.v1.schemas import (
    DocumentResponse,
    InstallmentSchema,
    PaymentTermsResponse,
    PurchaseOrderScheduleRequest,
    document_response,
)
from agro_ledger.domain.installments import PAYMENT_TERMS, parse_payment_terms
from agro_ledger.domain.models import PurchaseOrder
from agro_ledger.infrastructure.clients.audit import AuditClient, audit_event
from agro_ledger.services.ledger import LedgerService

router = APIRouter()


@router.get("/payment-terms", response_model=List[str])
def list_payment_terms():
    """Known payment-terms codes"""
    return list(PAYMENT_TERMS)


@router.get("/payment-terms/{code}", response_model=PaymentTermsResponse)
def preview_payment_terms(
    code: str,
    total_amount: Decimal = Query(..., description="Total to split"),
    base_date: Optional[date] = Query(None, description="Defaults to today"),
):
    """
    Preview the installments a payment-terms code produces.

    Unknown codes yield an empty schedule.
    """
    base = base_date or date.today()
    installments = parse_payment_terms(code, total_amount, base)
    return PaymentTermsResponse(
        payment_terms=code,
        total_amount=total_amount,
        base_date=base,
        installments=[
            InstallmentSchema(
                sequence_number=inst.sequence_number,
                due_date=inst.due_date,
                amount=inst.amount,
                percentage=inst.percentage,
                days_offset=inst.days_offset,
            )
            for inst in installments
        ],
    )


@router.post("/purchase-orders/schedule", response_model=List[DocumentResponse], status_code=201)
def schedule_purchase_order(
    request_body: PurchaseOrderScheduleRequest,
    background_tasks: BackgroundTasks,
    ledger: LedgerService = Depends(get_ledger_service),
    audit: AuditClient = Depends(get_audit_client),
):
    """Generate one registered expense per installment of a purchase order"""
    purchase_order = PurchaseOrder(
        id=request_body.purchase_order_id,
        firm_id=request_body.firm_id,
        order_number=request_body.order_number,
        supplier_name=request_body.supplier_name,
        supplier_rut=request_body.supplier_rut,
        currency=request_body.currency,
        total_amount=request_body.total_amount,
        order_date=request_body.order_date,
        payment_terms=request_body.payment_terms,
    )
    expenses = ledger.schedule_purchase_order(purchase_order)

    if expenses:
        background_tasks.add_task(
            audit.send_event,
            audit_event(
                "pagos_programados_generados",
                purchase_order.firm_id,
                purchase_order.id,
                None,
                f"Se generaron {len(expenses)} pagos programados para la orden {purchase_order.order_number}",
                {"payment_terms": purchase_order.payment_terms, "expense_ids": [e.id for e in expenses]},
            ),
        )
    return [document_response(expense) for expense in expenses]

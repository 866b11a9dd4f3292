"""Payment orders: create, approve, cancel and execute"""

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request

from agro_ledger.api.dependencies import get_audit_client, get_ledger_service, get_request_id
from agro_ledger.api.v1.schemas import (
    ApproveRequest,
    CancelRequest,
    ExecuteRequest,
    ExecutionResponse,
    PaymentOrderCreate,
    PaymentOrderResponse,
    document_response,
    payment_order_response,
)
from agro_ledger.domain.models import OrderStatus, PaymentOrder
from agro_ledger.infrastructure.clients.audit import AuditClient, audit_event
from agro_ledger.services.ledger import LedgerService

router = APIRouter()


def _audit_order(
    background_tasks: BackgroundTasks,
    audit: AuditClient,
    event_type: str,
    order: PaymentOrder,
    actor_id: Optional[str],
    description: str,
) -> None:
    background_tasks.add_task(
        audit.send_event,
        audit_event(
            event_type,
            order.firm_id,
            order.id,
            actor_id,
            description,
            {
                "order_number": order.order_number,
                "amount": str(order.amount),
                "currency": order.currency,
                "status": order.status.value,
            },
        ),
    )


@router.post("/payment-orders", response_model=PaymentOrderResponse, status_code=201)
def create_payment_order(
    request_body: PaymentOrderCreate,
    background_tasks: BackgroundTasks,
    ledger: LedgerService = Depends(get_ledger_service),
    audit: AuditClient = Depends(get_audit_client),
):
    """Create a DRAFT order paying the selected expenses from one account"""
    order = ledger.create_payment_order(
        request_body.firm_id,
        request_body.beneficiary_name,
        request_body.account_id,
        {line.expense_id: line.amount for line in request_body.expenses},
        order_date=request_body.order_date,
        planned_payment_date=request_body.planned_payment_date,
        payment_method=request_body.payment_method.value,
        concept=request_body.concept,
        actor_id=request_body.actor_id,
    )
    _audit_order(
        background_tasks,
        audit,
        "orden_pago_creada",
        order,
        request_body.actor_id,
        f"Orden de pago {order.order_number} por {order.currency} {order.amount} a {order.beneficiary_name}",
    )
    return payment_order_response(order)


@router.get("/payment-orders", response_model=List[PaymentOrderResponse])
def list_payment_orders(
    firm_id: str = Query(..., description="Firm identifier"),
    status: Optional[List[OrderStatus]] = Query(None),
    ledger: LedgerService = Depends(get_ledger_service),
):
    return [payment_order_response(order) for order in ledger.list_payment_orders(firm_id, status)]


@router.get("/payment-orders/{order_id}", response_model=PaymentOrderResponse)
def get_payment_order(order_id: str, ledger: LedgerService = Depends(get_ledger_service)):
    return payment_order_response(ledger.get_payment_order(order_id))


@router.post("/payment-orders/{order_id}/approve", response_model=PaymentOrderResponse)
def approve_payment_order(
    order_id: str,
    request_body: ApproveRequest,
    background_tasks: BackgroundTasks,
    ledger: LedgerService = Depends(get_ledger_service),
    audit: AuditClient = Depends(get_audit_client),
):
    order = ledger.approve_payment_order(order_id, request_body.approver_id)
    _audit_order(
        background_tasks,
        audit,
        "orden_pago_aprobada",
        order,
        request_body.approver_id,
        f"Orden de pago {order.order_number} aprobada",
    )
    return payment_order_response(order)


@router.post("/payment-orders/{order_id}/cancel", response_model=PaymentOrderResponse)
def cancel_payment_order(
    order_id: str,
    request_body: CancelRequest,
    background_tasks: BackgroundTasks,
    ledger: LedgerService = Depends(get_ledger_service),
    audit: AuditClient = Depends(get_audit_client),
):
    order = ledger.cancel_payment_order(order_id, request_body.actor_id, request_body.reason)
    _audit_order(
        background_tasks,
        audit,
        "orden_pago_anulada",
        order,
        request_body.actor_id,
        f"Orden de pago {order.order_number} anulada: {order.cancellation_reason}",
    )
    return payment_order_response(order)


@router.post("/payment-orders/{order_id}/execute", response_model=ExecutionResponse)
def execute_payment_order(
    order_id: str,
    request_body: ExecuteRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    ledger: LedgerService = Depends(get_ledger_service),
    audit: AuditClient = Depends(get_audit_client),
):
    """
    Execute an approved order.

    Flow:
    1. Lock and re-read the order, its funding account and every expense
    2. Verify status, currency, funds and per-expense balances
    3. Apply one payment per expense and debit the account
    4. Commit everything together, then audit
    """
    execution = ledger.execute_payment_order(order_id, actor_id=request_body.actor_id)
    order = execution.order
    _audit_order(
        background_tasks,
        audit,
        "orden_pago_ejecutada",
        order,
        request_body.actor_id,
        f"Orden de pago {order.order_number} ejecutada por {order.currency} {order.amount} "
        f"(request {get_request_id(request)})",
    )
    return ExecutionResponse(
        order=payment_order_response(order),
        account_balance=execution.account.current_balance,
        documents=[document_response(doc) for doc in execution.documents],
    )

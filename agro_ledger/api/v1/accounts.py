"""Financial accounts: creation, manual adjustments and balance summary"""

from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from agro_ledger.api.dependencies import get_audit_client, get_ledger_service
from agro_ledger.api.v1.schemas import (
    AccountCreate,
    AccountResponse,
    AccountSummaryResponse,
    AdjustmentRequest,
    InitialBalanceRequest,
    MovementSchema,
    account_response,
)
from agro_ledger.domain.models import FinancialAccount
from agro_ledger.infrastructure.clients.audit import AuditClient, audit_event
from agro_ledger.services.ledger import LedgerService
from agro_ledger.utils.money import to_money

router = APIRouter()


@router.post("/accounts", response_model=AccountResponse, status_code=201)
def create_account(request_body: AccountCreate, ledger: LedgerService = Depends(get_ledger_service)):
    initial = to_money(request_body.initial_balance, "initial_balance")
    account = ledger.create_account(
        FinancialAccount(
            firm_id=request_body.firm_id,
            name=request_body.name,
            account_type=request_body.account_type,
            currency=request_body.currency,
            initial_balance=initial,
            current_balance=initial,
        ),
        bank_name=request_body.bank_name,
        account_number=request_body.account_number,
    )
    return account_response(account)


@router.get("/accounts/summary", response_model=AccountSummaryResponse)
def account_summary(
    firm_id: str = Query(..., description="Firm identifier"),
    ledger: LedgerService = Depends(get_ledger_service),
):
    """Active-account balances per currency and per account type"""
    summary = ledger.account_summary(firm_id)
    return AccountSummaryResponse(
        firm_id=firm_id,
        account_count=summary.account_count,
        totals_by_currency=summary.totals_by_currency,
        count_by_type=summary.count_by_type,
        balance_by_type=summary.balance_by_type,
    )


@router.get("/accounts/{account_id}", response_model=AccountResponse)
def get_account(account_id: str, ledger: LedgerService = Depends(get_ledger_service)):
    return account_response(ledger.get_account(account_id))


@router.get("/accounts/{account_id}/movements", response_model=List[MovementSchema])
def account_movements(account_id: str, ledger: LedgerService = Depends(get_ledger_service)):
    return [
        MovementSchema(
            id=movement.id,
            movement_date=movement.movement_date,
            amount=movement.amount,
            balance_before=movement.balance_before,
            balance_after=movement.balance_after,
            reason=movement.reason,
            source_reference=movement.source_reference,
        )
        for movement in ledger.account_movements(account_id)
    ]


@router.post("/accounts/{account_id}/adjustments", response_model=AccountResponse)
def adjust_account(
    account_id: str,
    request_body: AdjustmentRequest,
    background_tasks: BackgroundTasks,
    ledger: LedgerService = Depends(get_ledger_service),
    audit: AuditClient = Depends(get_audit_client),
):
    """Signed manual adjustment; a reason is required"""
    account = ledger.adjust_account(account_id, request_body.amount, request_body.reason, request_body.actor_id)
    background_tasks.add_task(
        audit.send_event,
        audit_event(
            "ajuste_cuenta",
            account.firm_id,
            account.id,
            request_body.actor_id,
            f"Ajuste de {account.currency} {request_body.amount} en {account.name}: {request_body.reason}",
            {"balance_after": str(account.current_balance)},
        ),
    )
    return account_response(account)


@router.put("/accounts/{account_id}/initial-balance", response_model=AccountResponse)
def set_initial_balance(
    account_id: str,
    request_body: InitialBalanceRequest,
    ledger: LedgerService = Depends(get_ledger_service),
):
    """Only allowed while the account has no movements"""
    return account_response(ledger.set_initial_balance(account_id, request_body.initial_balance))

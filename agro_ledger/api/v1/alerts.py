"""Alerts: run the checks on demand, list pending, resolve"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from agro_ledger.api.dependencies import get_ledger_service
from agro_ledger.api.v1.schemas import (
    AlertCheckRequest,
    AlertCheckResponse,
    AlertListResponse,
    AlertSchema,
    alert_schema,
)
from agro_ledger.infrastructure.database.session import get_db
from agro_ledger.services.alert_checks import run_all_checks
from agro_ledger.services.ledger import LedgerService

router = APIRouter()


@router.post("/alerts/check", response_model=AlertCheckResponse)
def check_alerts(request_body: AlertCheckRequest, db: Session = Depends(get_db)):
    """Run every alert check for a firm; safe to call repeatedly"""
    created = run_all_checks(db, request_body.firm_id, request_body.today or date.today())
    return AlertCheckResponse(firm_id=request_body.firm_id, created=created)


@router.get("/alerts", response_model=AlertListResponse)
def list_alerts(
    firm_id: str = Query(..., description="Firm identifier"),
    ledger: LedgerService = Depends(get_ledger_service),
):
    """Pending alerts, highest priority first"""
    return AlertListResponse(firm_id=firm_id, alerts=[alert_schema(a) for a in ledger.pending_alerts(firm_id)])


@router.post("/alerts/{alert_id}/resolve", response_model=AlertSchema)
def resolve_alert(alert_id: str, ledger: LedgerService = Depends(get_ledger_service)):
    return alert_schema(ledger.resolve_alert(alert_id))

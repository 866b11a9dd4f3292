"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from agro_ledger.infrastructure.clients.audit import AuditClient
from agro_ledger.infrastructure.database.session import get_db
from agro_ledger.services.ledger import LedgerService


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_ledger_service(db: Session = Depends(get_db)) -> LedgerService:
    """Ledger service bound to the request's database session"""
    return LedgerService(db)


def get_audit_client() -> AuditClient:
    """Provide audit webhook client instance"""
    return AuditClient()

"""Pytest fixtures for testing"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_agro_ledger.db")

from datetime import date
from decimal import Decimal
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from agro_ledger.api.main import create_app
from agro_ledger.domain.models import (
    AccountType,
    DocumentKind,
    DocumentStatus,
    FinancialAccount,
    MonetaryDocument,
)
from agro_ledger.infrastructure.database.models import Base
from agro_ledger.infrastructure.database.session import get_db

FIRM_ID = "firm-1"

# Test database
TEST_DATABASE_URL = "sqlite:///./test_agro_ledger.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def make_expense() -> Callable[..., MonetaryDocument]:
    """Factory for approved UYU expenses"""

    def _make(total="100.00", **overrides) -> MonetaryDocument:
        fields = {
            "firm_id": FIRM_ID,
            "kind": DocumentKind.EXPENSE,
            "party_name": "Agroinsumos del Este",
            "currency": "UYU",
            "total_amount": Decimal(total),
            "status": DocumentStatus.APPROVED,
            "invoice_series": "A",
            "invoice_number": "1001",
            "due_date": date(2025, 3, 1),
        }
        fields.update(overrides)
        return MonetaryDocument(**fields)

    return _make


@pytest.fixture
def make_income() -> Callable[..., MonetaryDocument]:
    """Factory for confirmed UYU income"""

    def _make(total="100.00", **overrides) -> MonetaryDocument:
        fields = {
            "firm_id": FIRM_ID,
            "kind": DocumentKind.INCOME,
            "party_name": "Frigorífico Tacuarembó",
            "currency": "UYU",
            "total_amount": Decimal(total),
            "status": DocumentStatus.CONFIRMED,
            "invoice_series": "B",
            "invoice_number": "2001",
            "due_date": date(2025, 3, 1),
        }
        fields.update(overrides)
        return MonetaryDocument(**fields)

    return _make


@pytest.fixture
def make_account() -> Callable[..., FinancialAccount]:
    """Factory for active UYU bank accounts"""

    def _make(balance="1000.00", **overrides) -> FinancialAccount:
        fields = {
            "firm_id": FIRM_ID,
            "name": "Cuenta BROU",
            "currency": "UYU",
            "initial_balance": Decimal(balance),
            "current_balance": Decimal(balance),
            "account_type": AccountType.BANK,
        }
        fields.update(overrides)
        return FinancialAccount(**fields)

    return _make

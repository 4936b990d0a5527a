from __future__ import annotations

import datetime as dt
import os
from decimal import Decimal

os.environ.setdefault("ENV", "test")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from taxcore.core.config import settings  # noqa: E402
from taxcore.db import session as db_session  # noqa: E402
from taxcore.db.base import Base  # noqa: E402
from taxcore.db.session import SessionLocal  # noqa: E402
from taxcore.models.expense import Expense  # noqa: E402
from taxcore.models.models import EmploymentDeduction, IncomeRecord, Invoice, TaxEntity  # noqa: E402
from taxcore.models.tax_models import (  # noqa: E402
    AccountType,
    EntityType,
    InvoiceStatus,
    RemittanceStatus,
    TaxKind,
    TaxRemittance,
    VATRemittance,
    WithholdingRemittance,
)
from taxcore.rules.loader import clear_rule_cache  # noqa: E402

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")


test_engine = create_engine(
    TEST_DATABASE_URL,
    future=True,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Ensure application code uses the test engine
settings.DATABASE_URL = TEST_DATABASE_URL  # type: ignore[attr-defined]
db_session.engine = test_engine  # type: ignore[assignment]
SessionLocal.configure(bind=test_engine)


@pytest.fixture(autouse=True)
def _reset_database_state():
    """Ensure each test sees a fresh database schema."""
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)
    yield


@pytest.fixture(autouse=True)
def _reset_rule_cache():
    clear_rule_cache()
    yield
    clear_rule_cache()


@pytest.fixture
def db_session():
    """Provide a database session for tests."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    finally:
        session.close()


@pytest.fixture
def entity_factory(db_session):
    """Factory to create taxpayer entities."""
    def _create(entity_type=EntityType.COMPANY, **overrides):
        data = {
            "entity_type": EntityType(entity_type).value,
            "name": f"Test {EntityType(entity_type).value.title()}",
            "fixed_assets": Decimal("0"),
        }
        data.update(overrides)
        entity = TaxEntity(**data)
        db_session.add(entity)
        db_session.commit()
        return entity
    return _create


@pytest.fixture
def invoice_factory(db_session):
    def _create(entity, subtotal, issue_date=dt.date(2026, 3, 15), status=InvoiceStatus.PAID, **overrides):
        data = {
            "entity_id": entity.id,
            "customer_name": "Customer",
            "status": InvoiceStatus(status).value,
            "issue_date": issue_date,
            "subtotal": None if subtotal is None else Decimal(str(subtotal)),
        }
        data.update(overrides)
        invoice = Invoice(**data)
        db_session.add(invoice)
        db_session.commit()
        return invoice
    return _create


@pytest.fixture
def expense_factory(db_session):
    def _create(entity, amount, account_type=AccountType.COMPANY, date=dt.date(2026, 4, 10), **overrides):
        data = {
            "entity_id": entity.id,
            "account_type": AccountType(account_type).value,
            "amount": None if amount is None else Decimal(str(amount)),
            "date": date,
            "is_tax_deductible": True,
        }
        data.update(overrides)
        expense = Expense(**data)
        db_session.add(expense)
        db_session.commit()
        return expense
    return _create


@pytest.fixture
def income_factory(db_session):
    def _create(entity, gross_amount, tax_year=2026, month=None, **overrides):
        record = IncomeRecord(
            entity_id=entity.id,
            tax_year=tax_year,
            month=month,
            gross_amount=None if gross_amount is None else Decimal(str(gross_amount)),
            **overrides,
        )
        db_session.add(record)
        db_session.commit()
        return record
    return _create


@pytest.fixture
def employment_deduction_factory(db_session):
    def _create(entity, tax_year=2026, **amounts):
        record = EmploymentDeduction(
            entity_id=entity.id,
            tax_year=tax_year,
            **{key: Decimal(str(value)) for key, value in amounts.items()},
        )
        db_session.add(record)
        db_session.commit()
        return record
    return _create


@pytest.fixture
def tax_remittance_factory(db_session):
    def _create(entity, amount, tax_kind=TaxKind.CIT, tax_year=2026, status=RemittanceStatus.REMITTED):
        remittance = TaxRemittance(
            entity_id=entity.id,
            tax_kind=TaxKind(tax_kind).value,
            tax_year=tax_year,
            amount=Decimal(str(amount)),
            reference="REF",
            remittance_date=dt.date(tax_year + 1, 1, 15),
            status=RemittanceStatus(status).value,
        )
        db_session.add(remittance)
        db_session.commit()
        return remittance
    return _create


@pytest.fixture
def wht_remittance_factory(db_session):
    def _create(entity, amount, year=2026, month=3, status=RemittanceStatus.REMITTED):
        remittance = WithholdingRemittance(
            entity_id=entity.id,
            month=month,
            year=year,
            amount=Decimal(str(amount)),
            reference="WHT-REF",
            status=RemittanceStatus(status).value,
        )
        db_session.add(remittance)
        db_session.commit()
        return remittance
    return _create


@pytest.fixture
def vat_remittance_factory(db_session):
    def _create(entity, amount, year=2026, month=3, status=RemittanceStatus.REMITTED):
        remittance = VATRemittance(
            entity_id=entity.id,
            month=month,
            year=year,
            amount=Decimal(str(amount)),
            reference="VAT-REF",
            status=RemittanceStatus(status).value,
        )
        db_session.add(remittance)
        db_session.commit()
        return remittance
    return _create


# FastAPI TestClient fixture
from fastapi.testclient import TestClient  # noqa: E402
from taxcore.api.main import app  # noqa: E402


@pytest.fixture
def client():
    """Provide a FastAPI TestClient bound to the application."""
    return TestClient(app)

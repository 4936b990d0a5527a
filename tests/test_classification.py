"""Tests for company classification and the self-heal path."""
import datetime as dt
from decimal import Decimal

import pytest

from taxcore.core.exceptions import EntityNotFoundError, InvariantViolationError, UnsupportedTaxYearError
from taxcore.models.models import TaxEntity
from taxcore.models.tax_models import EntityType, TaxClassification
from taxcore.services.tax_service import BusinessClassifier, ClassificationService


def test_turnover_at_threshold_is_small():
    assert BusinessClassifier.classify(Decimal("50000000"), Decimal("0"), 2026) == TaxClassification.SMALL


def test_turnover_above_threshold_is_large():
    assert BusinessClassifier.classify(Decimal("50000000.01"), Decimal("0"), 2026) == TaxClassification.LARGE


def test_small_class_rate_is_zero():
    assert BusinessClassifier.rate_percent(TaxClassification.SMALL, 2026) == Decimal("0")
    assert BusinessClassifier.rate_percent(TaxClassification.LARGE, 2026) == Decimal("30")


@pytest.mark.parametrize("turnover", [Decimal("-1"), Decimal("NaN"), Decimal("Infinity"), float("nan")])
def test_invalid_turnover_is_an_invariant_violation(turnover):
    with pytest.raises(InvariantViolationError) as exc:
        BusinessClassifier.classify(turnover, Decimal("0"), 2026)
    assert exc.value.code == "INV001"


def test_unsupported_year_is_rejected_before_classifying():
    with pytest.raises(UnsupportedTaxYearError):
        BusinessClassifier.classify(Decimal("1"), Decimal("0"), 2024)


def test_self_heal_updates_stale_classification(db_session, entity_factory, invoice_factory, caplog):
    company = entity_factory(EntityType.COMPANY, tax_classification=TaxClassification.SMALL.value)
    invoice_factory(company, 60_000_000)

    with caplog.at_level("INFO"):
        result = ClassificationService(db_session).reconcile_and_persist_classification(company.id, 2026)

    assert result.changed is True
    assert result.previous == "small"
    assert result.classification == TaxClassification.LARGE
    assert result.annual_turnover == Decimal("60000000.00")
    db_session.expire_all()
    assert db_session.get(TaxEntity, company.id).tax_classification == "large"
    assert "reclassified" in caplog.text


def test_self_heal_leaves_correct_classification_alone(db_session, entity_factory, invoice_factory):
    company = entity_factory(EntityType.COMPANY, tax_classification="small")
    invoice_factory(company, 10_000_000)

    result = ClassificationService(db_session).reconcile_and_persist_classification(company.id, 2026)

    assert result.changed is False
    assert result.classification == TaxClassification.SMALL


def test_self_heal_ignores_unpaid_and_out_of_year_invoices(db_session, entity_factory, invoice_factory):
    company = entity_factory(EntityType.COMPANY)
    invoice_factory(company, 40_000_000)
    invoice_factory(company, 40_000_000, status="pending")
    invoice_factory(company, 40_000_000, issue_date=dt.date(2027, 1, 1))

    result = ClassificationService(db_session).reconcile_and_persist_classification(company.id, 2026)

    assert result.classification == TaxClassification.SMALL
    assert result.annual_turnover == Decimal("40000000.00")


def test_self_heal_does_not_classify_individuals(db_session, entity_factory):
    person = entity_factory(EntityType.INDIVIDUAL)
    result = ClassificationService(db_session).reconcile_and_persist_classification(person.id, 2026)
    assert result.classification is None
    assert result.changed is False


def test_self_heal_unknown_entity(db_session):
    with pytest.raises(EntityNotFoundError):
        ClassificationService(db_session).reconcile_and_persist_classification(999, 2026)

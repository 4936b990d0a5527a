"""Tests for CIT/PIT liability summaries."""
import datetime as dt
from decimal import Decimal

import pytest

from taxcore.core.exceptions import (
    AggregationValidationError,
    EntityNotFoundError,
    OwnedBusinessAssessmentError,
    UnsupportedTaxYearError,
)
from taxcore.models.tax_models import (
    AccountType,
    EntityType,
    RemittanceStatus,
    TaxClassification,
    TaxKind,
    TransactionType,
    WHTCategory,
    WithholdingCredit,
)
from taxcore.services.credit_ledger import CreditLedger
from taxcore.services.liability_service import ExemptionReason, LiabilityService
from taxcore.services.withholding_service import WithholdingService

BEFORE_DEADLINES = dt.date(2027, 1, 15)


def _summary(db_session, entity, today=BEFORE_DEADLINES):
    return LiabilityService(db_session).compute_summary(entity.id, 2026, today=today)


@pytest.fixture
def large_company(entity_factory, invoice_factory):
    company = entity_factory(EntityType.COMPANY, name="Big Co")
    invoice_factory(company, 60_000_000)
    return company


def test_small_company_owes_no_cit(db_session, entity_factory, invoice_factory, expense_factory):
    company = entity_factory(EntityType.COMPANY)
    invoice_factory(company, 40_000_000)
    expense_factory(company, 10_000_000)

    summary = _summary(db_session, company)

    assert summary.tax_kind == TaxKind.CIT
    assert summary.classification == TaxClassification.SMALL
    assert summary.revenue == Decimal("40000000.00")
    assert summary.expenses == Decimal("10000000.00")
    assert summary.taxable_base == Decimal("30000000.00")
    assert summary.gross_liability == Decimal("0.00")
    assert summary.development_levy == Decimal("0")
    assert summary.pending == Decimal("0")
    assert summary.status == RemittanceStatus.COMPLIANT


def test_large_company_pays_thirty_percent_and_levy(db_session, entity_factory, invoice_factory, expense_factory):
    company = entity_factory(EntityType.COMPANY)
    invoice_factory(company, 100_000_000)
    expense_factory(company, 20_000_000)
    expense_factory(company, 5_000_000, account_type=AccountType.INDIVIDUAL)

    summary = _summary(db_session, company)

    assert summary.classification == TaxClassification.LARGE
    assert summary.rate == Decimal("30")
    assert summary.expenses == Decimal("20000000.00")
    assert summary.taxable_base == Decimal("80000000.00")
    assert summary.gross_liability == Decimal("24000000.00")
    assert summary.development_levy == Decimal("3200000.00")
    assert summary.net_liability == Decimal("24000000.00")
    assert summary.pending == Decimal("24000000.00")
    assert summary.deadline == dt.date(2027, 6, 30)
    assert summary.status == RemittanceStatus.PENDING


def test_expenses_above_revenue_floor_taxable_base_at_zero(db_session, entity_factory, invoice_factory, expense_factory):
    company = entity_factory(EntityType.COMPANY)
    invoice_factory(company, 60_000_000)
    expense_factory(company, 70_000_000)

    summary = _summary(db_session, company)

    assert summary.taxable_base == Decimal("0")
    assert summary.gross_liability == Decimal("0.00")
    assert summary.status == RemittanceStatus.COMPLIANT


def test_zero_income_individual(db_session, entity_factory):
    person = entity_factory(EntityType.INDIVIDUAL)

    summary = _summary(db_session, person)

    assert summary.tax_kind == TaxKind.PIT
    assert summary.gross_income == Decimal("0")
    assert summary.gross_liability == Decimal("0.00")
    assert summary.net_liability == Decimal("0")
    assert summary.pending == Decimal("0")
    assert summary.status == RemittanceStatus.COMPLIANT
    assert summary.exemption_reason == ExemptionReason.NO_INCOME
    assert summary.deadline == dt.date(2027, 3, 31)


def test_income_inside_zero_band_is_threshold_exempt(db_session, entity_factory, income_factory):
    person = entity_factory(EntityType.INDIVIDUAL)
    income_factory(person, 700_000)

    summary = _summary(db_session, person)

    assert summary.gross_liability == Decimal("0.00")
    assert summary.exemption_reason == ExemptionReason.THRESHOLD


def test_deductions_can_clear_taxable_income(
    db_session, entity_factory, income_factory, employment_deduction_factory
):
    person = entity_factory(EntityType.INDIVIDUAL)
    income_factory(person, 500_000)
    employment_deduction_factory(person, annual_pension=600_000)

    summary = _summary(db_session, person)

    assert summary.taxable_base == Decimal("0")
    assert summary.exemption_reason == ExemptionReason.DEDUCTIONS_ONLY


def test_pit_with_statutory_deductions_and_rent_relief(
    db_session, entity_factory, income_factory, employment_deduction_factory
):
    person = entity_factory(EntityType.INDIVIDUAL)
    income_factory(person, 5_000_000)
    employment_deduction_factory(person, annual_pension=240_000, annual_nhf=60_000, annual_rent=1_000_000)

    summary = _summary(db_session, person)

    # 300k statutory plus 20% of rent
    assert summary.statutory_deductions == Decimal("500000.00")
    assert summary.taxable_base == Decimal("4500000.00")
    # 2.2M at 15% plus 1.5M at 18%
    assert summary.gross_liability == Decimal("600000.00")
    assert summary.classification is None
    assert summary.exemption_reason is None


def test_individual_includes_owned_business(
    db_session, entity_factory, income_factory, invoice_factory, expense_factory
):
    person = entity_factory(EntityType.INDIVIDUAL)
    shop = entity_factory(EntityType.BUSINESS, owner_id=person.id)
    income_factory(person, 4_000_000)
    invoice_factory(shop, 1_000_000)
    expense_factory(shop, 1_000_000, account_type=AccountType.BUSINESS)

    summary = _summary(db_session, person)

    assert summary.revenue == Decimal("5000000.00")
    assert summary.expenses == Decimal("1000000.00")
    assert summary.taxable_base == Decimal("4000000.00")
    assert summary.gross_liability == Decimal("510000.00")


def test_business_is_assessed_for_pit(db_session, entity_factory, invoice_factory):
    shop = entity_factory(EntityType.BUSINESS)
    invoice_factory(shop, 2_000_000)

    summary = _summary(db_session, shop)

    assert summary.tax_kind == TaxKind.PIT
    assert summary.entity_type == EntityType.BUSINESS
    assert summary.gross_liability == Decimal("180000.00")


def test_owned_business_is_assessed_through_its_owner(db_session, entity_factory, invoice_factory):
    person = entity_factory(EntityType.INDIVIDUAL)
    shop = entity_factory(EntityType.BUSINESS, owner_id=person.id)
    invoice_factory(shop, 10_000_000)

    owner_summary = _summary(db_session, person)
    assert owner_summary.gross_income == Decimal("10000000.00")

    with pytest.raises(OwnedBusinessAssessmentError) as exc:
        _summary(db_session, shop)
    assert exc.value.code == "ENT002"
    assert exc.value.details == {"entity_id": shop.id, "owner_id": person.id}


def test_over_remittance_is_compliant_and_logged(
    db_session, large_company, tax_remittance_factory, caplog
):
    tax_remittance_factory(large_company, 20_000_000)

    with caplog.at_level("WARNING"):
        summary = _summary(db_session, large_company)

    assert summary.net_liability == Decimal("18000000.00")
    assert summary.total_remitted == Decimal("20000000.00")
    assert summary.pending == Decimal("0")
    assert summary.status == RemittanceStatus.COMPLIANT
    assert "over-remittance" in caplog.text


def test_only_remitted_payments_of_the_same_kind_count(db_session, large_company, tax_remittance_factory):
    tax_remittance_factory(large_company, 8_000_000)
    tax_remittance_factory(large_company, 1_000_000, status=RemittanceStatus.PENDING)
    tax_remittance_factory(large_company, 2_000_000, tax_kind=TaxKind.PIT)
    tax_remittance_factory(large_company, 3_000_000, tax_year=2027)

    summary = _summary(db_session, large_company)

    assert summary.total_remitted == Decimal("8000000.00")
    assert summary.pending == Decimal("10000000.00")


def test_status_turns_overdue_after_deadline(db_session, large_company):
    assert _summary(db_session, large_company, today=dt.date(2027, 6, 30)).status == RemittanceStatus.PENDING
    assert _summary(db_session, large_company, today=dt.date(2027, 7, 1)).status == RemittanceStatus.OVERDUE


def test_remitted_credits_reduce_net_liability_without_being_consumed(
    db_session, entity_factory, large_company, wht_remittance_factory
):
    payer = entity_factory(EntityType.COMPANY, name="Client Ltd")
    record = WithholdingService(db_session).record_withholding(
        entity_id=payer.id,
        transaction_type=TransactionType.EXPENSE,
        transaction_id=1,
        payment_amount=Decimal("100000"),
        wht_type=WHTCategory.PROFESSIONAL_SERVICES,
        payment_date=dt.date(2026, 3, 5),
        payee_name=large_company.name,
        payee_entity_id=large_company.id,
    )
    service = LiabilityService(db_session)

    before = service.compute_summary(large_company.id, 2026, today=BEFORE_DEADLINES)
    assert before.credits_applied == Decimal("0")

    wht_remittance_factory(payer, 5000, month=3)
    after = service.compute_summary(large_company.id, 2026, today=BEFORE_DEADLINES)

    assert after.credits_applied == Decimal("5000.00")
    assert after.net_liability == Decimal("17995000.00")
    db_session.expire_all()
    assert db_session.get(WithholdingCredit, record.credit.id).remaining_credit == Decimal("5000")


def test_summary_is_repeatable(db_session, large_company, tax_remittance_factory):
    tax_remittance_factory(large_company, 1_000_000)
    service = LiabilityService(db_session)

    first = service.compute_summary(large_company.id, 2026, today=BEFORE_DEADLINES)
    second = service.compute_summary(large_company.id, 2026, today=BEFORE_DEADLINES)

    assert first == second
    assert first.to_dict()["pending"] == Decimal("17000000.00")


def test_unknown_entity_raises(db_session):
    with pytest.raises(EntityNotFoundError):
        LiabilityService(db_session).compute_summary(4242, 2026)


def test_unsupported_year_raises(db_session, large_company):
    with pytest.raises(UnsupportedTaxYearError):
        LiabilityService(db_session).compute_summary(large_company.id, 2025)


def test_bad_source_record_fails_the_summary(db_session, large_company, invoice_factory):
    invoice_factory(large_company, None)

    with pytest.raises(AggregationValidationError):
        _summary(db_session, large_company)


def test_negative_remittance_fails_the_summary(db_session, large_company, tax_remittance_factory):
    tax_remittance_factory(large_company, 30_000_000)
    bad = tax_remittance_factory(large_company, -1_000_000)

    with pytest.raises(AggregationValidationError) as exc:
        _summary(db_session, large_company)

    assert exc.value.details["aggregate"] == "remitted"
    assert [(e["table"], e["id"], e["reason"]) for e in exc.value.details["records"]] == [
        ("tax_remittances", bad.id, "negative amount")
    ]


def _remitted_credit(db_session, entity_factory, payee, wht_remittance_factory):
    payer = entity_factory(EntityType.COMPANY, name="Client Ltd")
    WithholdingService(db_session).record_withholding(
        entity_id=payer.id,
        transaction_type=TransactionType.EXPENSE,
        transaction_id=1,
        payment_amount=Decimal("100000"),
        wht_type=WHTCategory.PROFESSIONAL_SERVICES,
        payment_date=dt.date(2026, 3, 5),
        payee_name=payee.name,
        payee_entity_id=payee.id,
    )
    wht_remittance_factory(payer, 5000, month=3)


def test_allocated_credits_keep_reducing_net_liability(
    db_session, entity_factory, large_company, wht_remittance_factory
):
    _remitted_credit(db_session, entity_factory, large_company, wht_remittance_factory)
    service = LiabilityService(db_session)
    before = service.compute_summary(large_company.id, 2026, today=BEFORE_DEADLINES)

    CreditLedger(db_session).allocate(large_company.id, 2026, before.gross_liability, TaxKind.CIT)
    after = service.compute_summary(large_company.id, 2026, today=BEFORE_DEADLINES)

    assert before.net_liability == Decimal("17995000.00")
    assert after.credits_applied == Decimal("5000.00")
    assert after.net_liability == before.net_liability
    assert after.pending == before.pending


def test_credits_allocated_to_pit_do_not_reduce_cit(
    db_session, entity_factory, large_company, wht_remittance_factory
):
    _remitted_credit(db_session, entity_factory, large_company, wht_remittance_factory)
    CreditLedger(db_session).allocate(large_company.id, 2026, Decimal("5000"), TaxKind.PIT)

    summary = _summary(db_session, large_company)

    assert summary.credits_applied == Decimal("0")
    assert summary.net_liability == Decimal("18000000.00")

"""
Liability Reconciliation Service.

Builds the CIT or PIT summary for an entity and tax year entirely from
source records: derive income and deductions, compute tax, take off usable
withholding credits, compare with what has been remitted, and grade the
result against the filing deadline. Nothing is written.
"""
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import asdict, dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from taxcore.core.exceptions import InvariantViolationError, OwnedBusinessAssessmentError
from taxcore.models.models import TaxEntity
from taxcore.models.tax_models import EntityType, RemittanceStatus, TaxClassification, TaxKind
from taxcore.rules.loader import get_rules, validate_tax_year
from taxcore.rules.schema import TaxRuleSet
from taxcore.services.credit_ledger import CreditLedger
from taxcore.services.tax_reporting.aggregation import AggregationService
from taxcore.services.tax_reporting.computations import (
    compute_company_income_tax,
    compute_development_levy,
    compute_personal_income_tax,
    compute_rent_relief,
)
from taxcore.services.tax_reporting.period_utils import determine_status, filing_deadline
from taxcore.services.tax_service import BusinessClassifier
from taxcore.utils.currency import ZERO, clamp_non_negative, round_money

logger = logging.getLogger(__name__)


class ExemptionReason(str, Enum):
    THRESHOLD = "threshold"              # Taxable income inside the 0% band
    NO_INCOME = "no_income"
    DEDUCTIONS_ONLY = "deductions_only"  # Deductions brought taxable income to zero


@dataclass(frozen=True)
class LiabilitySummary:
    entity_id: int
    entity_type: EntityType
    tax_kind: TaxKind
    tax_year: int
    revenue: Decimal
    expenses: Decimal
    gross_income: Decimal
    statutory_deductions: Decimal
    taxable_base: Decimal
    classification: Optional[TaxClassification]
    rate: Decimal                 # Percent; effective rate for PIT
    gross_liability: Decimal
    credits_applied: Decimal
    net_liability: Decimal
    total_remitted: Decimal
    pending: Decimal
    status: RemittanceStatus
    deadline: dt.date
    development_levy: Decimal = ZERO
    exemption_reason: Optional[ExemptionReason] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class _Assessment:
    revenue: Decimal
    expenses: Decimal
    gross_income: Decimal
    statutory_deductions: Decimal
    taxable_base: Decimal
    classification: Optional[TaxClassification]
    rate: Decimal
    gross_liability: Decimal
    development_levy: Decimal = ZERO
    exemption_reason: Optional[ExemptionReason] = None


class LiabilityService:
    """Computes liability summaries; read-only."""

    def __init__(self, db: Session):
        self.db = db
        self.aggregation = AggregationService(db)
        self.ledger = CreditLedger(db)
        self.classifier = BusinessClassifier()

    def compute_summary(self, entity_id: int, tax_year: int, today: Optional[dt.date] = None) -> LiabilitySummary:
        """
        Derive the liability summary for one entity and tax year.

        Companies are assessed for CIT; individuals and businesses for PIT.
        A business with an owner is assessed through its owner and rejected
        here, so its revenue is never taxed twice.
        Errors from any step propagate; no figure is ever defaulted to zero
        to hide a failure.
        """
        validate_tax_year(tax_year)
        rules = get_rules(tax_year)
        entity = self.aggregation.get_entity(entity_id)
        if entity.kind == EntityType.BUSINESS and entity.owner_id is not None:
            raise OwnedBusinessAssessmentError(entity_id, entity.owner_id)

        if entity.kind == EntityType.COMPANY:
            tax_kind = TaxKind.CIT
            assessment = self._assess_company(entity, tax_year, rules)
        else:
            tax_kind = TaxKind.PIT
            assessment = self._assess_individual(entity, tax_year, rules)

        # Credits already allocated to this year stay applied; unspent ones are offered on top
        available = self.ledger.get_available_credits(entity_id, tax_year)
        applied = self.ledger.get_applied_credits(entity_id, tax_year, tax_kind)
        credits_applied = min(available + applied, assessment.gross_liability)
        net_liability = clamp_non_negative(assessment.gross_liability - credits_applied)

        total_remitted = round_money(self.aggregation.derive_remitted(entity_id, tax_kind, tax_year))
        pending = clamp_non_negative(net_liability - total_remitted)
        if total_remitted > net_liability:
            logger.warning(
                "%s over-remittance entity=%s tax_year=%s liability=%s remitted=%s",
                tax_kind.value.upper(),
                entity_id,
                tax_year,
                net_liability,
                total_remitted,
            )

        deadline = filing_deadline(tax_kind, rules.deadlines, tax_year)
        status = determine_status(pending, deadline, today or dt.date.today())

        summary = LiabilitySummary(
            entity_id=entity_id,
            entity_type=entity.kind,
            tax_kind=tax_kind,
            tax_year=tax_year,
            revenue=assessment.revenue,
            expenses=assessment.expenses,
            gross_income=assessment.gross_income,
            statutory_deductions=assessment.statutory_deductions,
            taxable_base=assessment.taxable_base,
            classification=assessment.classification,
            rate=assessment.rate,
            gross_liability=assessment.gross_liability,
            credits_applied=credits_applied,
            net_liability=net_liability,
            total_remitted=total_remitted,
            pending=pending,
            status=status,
            deadline=deadline,
            development_levy=assessment.development_levy,
            exemption_reason=assessment.exemption_reason,
        )
        self._check_invariants(summary)
        logger.debug(
            "Liability summary entity=%s tax_year=%s kind=%s net=%s pending=%s status=%s",
            entity_id,
            tax_year,
            tax_kind.value,
            net_liability,
            pending,
            status.value,
        )
        return summary

    # ------------------------------------------------------------------
    # Assessment
    # ------------------------------------------------------------------

    def _assess_company(self, entity: TaxEntity, tax_year: int, rules: TaxRuleSet) -> _Assessment:
        revenue = self.aggregation.derive_revenue(entity.id, tax_year)
        expenses = self.aggregation.derive_deductible_expenses(
            entity.id, tax_year, rules.cit.deductible_account_types
        )
        taxable = clamp_non_negative(revenue - expenses)
        classification = self.classifier.classify(revenue, entity.fixed_assets, tax_year)
        company_class = rules.cit.find(classification)
        return _Assessment(
            revenue=revenue,
            expenses=expenses,
            gross_income=revenue,
            statutory_deductions=ZERO,
            taxable_base=taxable,
            classification=classification,
            rate=company_class.rate_percent,
            gross_liability=compute_company_income_tax(taxable, classification, rules.cit),
            development_levy=compute_development_levy(taxable, classification, tax_year, rules.development_levy),
        )

    def _assess_individual(self, entity: TaxEntity, tax_year: int, rules: TaxRuleSet) -> _Assessment:
        gross_income = self.aggregation.derive_gross_income(entity.id, tax_year)
        expenses = self.aggregation.derive_deductible_expenses(
            entity.id,
            tax_year,
            rules.pit.deductible_account_types,
            include_owned_businesses=entity.kind == EntityType.INDIVIDUAL,
        )
        declared = self.aggregation.derive_employment_deductions(entity.id, tax_year)
        statutory = round_money(declared.statutory_total + compute_rent_relief(declared.annual_rent, rules.pit))

        taxable = clamp_non_negative(gross_income - statutory - expenses)
        pit = compute_personal_income_tax(taxable, rules.pit)

        exemption_reason = None
        if gross_income <= 0:
            exemption_reason = ExemptionReason.NO_INCOME
        elif pit.tax <= 0:
            if 0 < taxable <= rules.pit.exemption_threshold:
                exemption_reason = ExemptionReason.THRESHOLD
            elif taxable <= 0:
                exemption_reason = ExemptionReason.DEDUCTIONS_ONLY

        return _Assessment(
            revenue=gross_income,
            expenses=expenses,
            gross_income=gross_income,
            statutory_deductions=statutory,
            taxable_base=taxable,
            classification=None,
            rate=pit.effective_rate,
            gross_liability=pit.tax,
            exemption_reason=exemption_reason,
        )

    @staticmethod
    def _check_invariants(summary: LiabilitySummary) -> None:
        problems = []
        for name in ("taxable_base", "gross_liability", "credits_applied", "net_liability", "pending"):
            if getattr(summary, name) < 0:
                problems.append(f"{name} is negative")
        if summary.net_liability > summary.gross_liability:
            problems.append("net liability exceeds gross liability")
        if summary.pending > summary.net_liability:
            problems.append("pending exceeds net liability")
        if problems:
            raise InvariantViolationError(
                "; ".join(problems),
                entity_id=summary.entity_id,
                tax_year=summary.tax_year,
                gross_liability=str(summary.gross_liability),
                credits_applied=str(summary.credits_applied),
                net_liability=str(summary.net_liability),
                total_remitted=str(summary.total_remitted),
                pending=str(summary.pending),
            )

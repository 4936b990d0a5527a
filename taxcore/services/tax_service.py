"""
Company Classification Service.

Handles:
- Company size classification (small/large, plus medium where a year defines it)
- Repair of stale stored classifications

Single Responsibility: Classification only. Liability calculations always
classify from derived turnover and never trust the stored value.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from taxcore.core.exceptions import InvariantViolationError
from taxcore.models.tax_models import EntityType, TaxClassification
from taxcore.rules.loader import get_rules
from taxcore.services.tax_reporting.aggregation import AggregationService
from taxcore.utils.currency import ZERO, to_decimal

logger = logging.getLogger(__name__)


class BusinessClassifier:
    """
    Company size classification (SRP: Classification logic only).

    Thresholds come from the tax-year rule set. For 2026:
    - Small: Turnover ≤ ₦50M (0% CIT, no development levy)
    - Large: everything else (30% CIT)
    """

    @classmethod
    def classify(cls, annual_turnover, fixed_assets, tax_year: int) -> TaxClassification:
        """
        Classify a company from its turnover and fixed assets.

        Args:
            annual_turnover: Derived annual turnover in Naira
            fixed_assets: Total fixed assets in Naira
            tax_year: Year whose thresholds apply

        Returns:
            TaxClassification of the first class the company fits
        """
        rules = get_rules(tax_year)
        turnover = cls._checked("annual_turnover", annual_turnover, tax_year)
        assets = cls._checked("fixed_assets", fixed_assets if fixed_assets is not None else ZERO, tax_year)

        for company_class in rules.cit.classes:
            if company_class.admits(turnover, assets):
                return company_class.classification
        # The final class is unbounded, so this is unreachable for a valid rule set
        raise InvariantViolationError(
            "No company class admitted the turnover",
            tax_year=tax_year,
            turnover=str(turnover),
            fixed_assets=str(assets),
        )

    @classmethod
    def rate_percent(cls, classification: TaxClassification, tax_year: int) -> Decimal:
        return get_rules(tax_year).cit.find(TaxClassification(classification)).rate_percent

    @staticmethod
    def _checked(name: str, value, tax_year: int) -> Decimal:
        try:
            amount = to_decimal(value)
        except ValueError as exc:
            raise InvariantViolationError(
                f"{name} is not a number", tax_year=tax_year, value=repr(value)
            ) from exc
        if not amount.is_finite() or amount < 0:
            raise InvariantViolationError(
                f"{name} must be finite and non-negative", tax_year=tax_year, value=str(amount)
            )
        return amount


@dataclass(frozen=True)
class ClassificationResult:
    entity_id: int
    tax_year: int
    annual_turnover: Decimal
    classification: Optional[TaxClassification]
    previous: Optional[str]
    changed: bool


class ClassificationService:
    """Keeps the stored classification of companies in line with derived turnover."""

    def __init__(self, db: Session):
        self.db = db
        self.aggregation = AggregationService(db)
        self.classifier = BusinessClassifier()

    def reconcile_and_persist_classification(self, entity_id: int, tax_year: int) -> ClassificationResult:
        """
        Recompute classification from derived turnover and store it if it changed.

        This is the only code path that writes ``TaxEntity.tax_classification``.
        Individuals and businesses are never classified.
        """
        get_rules(tax_year)
        entity = self.aggregation.get_entity(entity_id)
        previous = entity.tax_classification

        if entity.kind != EntityType.COMPANY:
            return ClassificationResult(entity_id, tax_year, ZERO, None, previous, False)

        turnover = self.aggregation.derive_revenue(entity_id, tax_year)
        classification = self.classifier.classify(turnover, entity.fixed_assets, tax_year)

        changed = previous != classification.value
        if changed:
            entity.tax_classification = classification.value
            self.db.commit()
            logger.info(
                "Entity %s reclassified %s -> %s for %s (turnover: ₦%s)",
                entity_id,
                previous,
                classification.value,
                tax_year,
                turnover,
            )
        return ClassificationResult(entity_id, tax_year, turnover, classification, previous, changed)

"""
Withholding Tax (WHT) Service.

Handles:
- Rate lookup from the tax-year WHT table
- Withholding computation with the small-payee exemption
- Recording deductions (idempotent per transaction) and creating the payee's credit
- Monthly deduction vs remittance summary

Single Responsibility: Withholding tax only. Credit consumption lives in
the credit ledger.
"""
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from taxcore.models.tax_models import (
    PASSIVE_WHT_CATEGORIES,
    EntityType,
    PayeeType,
    RemittanceStatus,
    TaxKind,
    TransactionType,
    WHTCategory,
    WHTCreditStatus,
    WithholdingCredit,
    WithholdingRecord,
)
from taxcore.rules.loader import get_rules, validate_tax_year
from taxcore.services.tax_reporting.aggregation import AggregationService
from taxcore.services.tax_reporting.period_utils import determine_status, filing_deadline
from taxcore.utils.currency import ZERO, clamp_non_negative, round_money, to_decimal

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class WithholdingComputation:
    rate: Decimal             # Percent
    withheld_amount: Decimal
    net_amount: Decimal
    exempt: bool


@dataclass(frozen=True)
class PrecomputedWithholding:
    """Amounts fixed by the caller; stored exactly as given."""

    rate: Decimal
    withheld_amount: Decimal
    net_amount: Decimal


class WithholdingRateResolver:
    """WHT rate table lookups (SRP: Rates and exemption only)."""

    @staticmethod
    def resolve_rate(
        payment_category: WHTCategory | str,
        payee_type: PayeeType | str,
        is_non_resident: bool,
        tax_year: int,
    ) -> Decimal:
        """Rate in percent for the category, payee column and residency."""
        rules = get_rules(tax_year)
        row = rules.wht.row(WHTCategory(payment_category))
        return row.for_payee(PayeeType(payee_type)).for_residency(is_non_resident)

    @staticmethod
    def is_service_category(payment_category: WHTCategory | str, tax_year: int) -> bool:
        return WHTCategory(payment_category) in get_rules(tax_year).wht.service_categories

    @classmethod
    def compute_withholding(
        cls,
        amount,
        payment_category: WHTCategory | str,
        payee_type: PayeeType | str,
        is_non_resident: bool,
        payee_is_small_entity: bool,
        is_service_payment: Optional[bool],
        tax_year: int,
        precomputed: Optional[PrecomputedWithholding] = None,
    ) -> WithholdingComputation:
        """
        Compute the withholding on one payment.

        The small-entity exemption is judged from the payee's side and only
        covers service payments; passive income (dividends, interest,
        royalties, rent) is always withheld.

        Args:
            amount: Gross payment amount (non-negative)
            payment_category: WHT category of the payment
            payee_type: Company or individual rate column
            is_non_resident: Use the non-resident rate
            payee_is_small_entity: Payee turnover is at or below the exemption threshold
            is_service_payment: None derives it from the category
            tax_year: Year whose table applies
            precomputed: Caller-fixed amounts, returned unmodified

        Returns:
            WithholdingComputation(rate, withheld_amount, net_amount, exempt)
        """
        validate_tax_year(tax_year)
        if precomputed is not None:
            return WithholdingComputation(
                rate=precomputed.rate,
                withheld_amount=precomputed.withheld_amount,
                net_amount=precomputed.net_amount,
                exempt=False,
            )

        gross = to_decimal(amount)
        if gross < 0:
            raise ValueError(f"Payment amount must be non-negative, got {gross}")

        category = WHTCategory(payment_category)
        if is_service_payment is None:
            is_service_payment = cls.is_service_category(category, tax_year)

        exempt = payee_is_small_entity and is_service_payment and category not in PASSIVE_WHT_CATEGORIES
        if exempt:
            return WithholdingComputation(rate=ZERO, withheld_amount=ZERO, net_amount=round_money(gross), exempt=True)

        rate = cls.resolve_rate(category, payee_type, is_non_resident, tax_year)
        withheld = round_money(gross * rate / HUNDRED)
        return WithholdingComputation(
            rate=rate,
            withheld_amount=withheld,
            net_amount=round_money(gross) - withheld,
            exempt=False,
        )


@dataclass(frozen=True)
class WithholdingSummary:
    entity_id: int
    year: int
    month: int
    record_count: int
    total_deducted: Decimal
    total_remitted: Decimal
    pending: Decimal
    status: RemittanceStatus
    deadline: dt.date


class WithholdingService:
    """Records withholding deductions and summarises them per month."""

    # Remittance statuses that count as paid in the monthly summary
    PAID_REMITTANCE_STATUSES = (RemittanceStatus.REMITTED.value, RemittanceStatus.OVERDUE.value)

    def __init__(self, db: Session):
        self.db = db
        self.aggregation = AggregationService(db)
        self.resolver = WithholdingRateResolver()

    def find_record(
        self, entity_id: int, transaction_type: TransactionType | str, transaction_id: Optional[int]
    ) -> Optional[WithholdingRecord]:
        if transaction_id is None:
            return None
        return self.db.scalar(
            select(WithholdingRecord).where(
                WithholdingRecord.entity_id == entity_id,
                WithholdingRecord.transaction_type == TransactionType(transaction_type).value,
                WithholdingRecord.transaction_id == transaction_id,
            )
        )

    def _payee_is_small(
        self,
        entity_id: int,
        transaction_type: TransactionType,
        tax_year: int,
        payee_annual_turnover,
    ) -> bool:
        threshold = get_rules(tax_year).wht.exemption_threshold
        if transaction_type == TransactionType.INVOICE:
            # Incoming payment: the recording entity is the payee
            entity = self.aggregation.get_entity(entity_id)
            if entity.kind == EntityType.INDIVIDUAL:
                turnover = self.aggregation.derive_gross_income(entity_id, tax_year)
            else:
                turnover = self.aggregation.derive_revenue(entity_id, tax_year)
            return turnover <= threshold
        # Outgoing payment: our own size says nothing about the supplier
        if payee_annual_turnover is None:
            return False
        return to_decimal(payee_annual_turnover) <= threshold

    def _resolve_payee_type(
        self,
        entity_id: int,
        transaction_type: TransactionType,
        payee_entity_id: Optional[int],
        payee_type: Optional[PayeeType | str],
    ) -> PayeeType:
        if transaction_type == TransactionType.INVOICE:
            return PayeeType.for_entity_type(self.aggregation.get_entity(entity_id).entity_type)
        if payee_type is not None:
            return PayeeType(payee_type)
        if payee_entity_id is not None:
            return PayeeType.for_entity_type(self.aggregation.get_entity(payee_entity_id).entity_type)
        raise ValueError("payee_type is required when the payee is not a tracked entity")

    def record_withholding(
        self,
        entity_id: int,
        transaction_type: TransactionType | str,
        payment_amount,
        wht_type: WHTCategory | str,
        payment_date: dt.date,
        payee_name: str,
        transaction_id: Optional[int] = None,
        payee_entity_id: Optional[int] = None,
        payee_type: Optional[PayeeType | str] = None,
        payee_tin: Optional[str] = None,
        is_non_resident: bool = False,
        payee_annual_turnover=None,
        description: str = "",
        precomputed: Optional[PrecomputedWithholding] = None,
    ) -> WithholdingRecord:
        """
        Record a withholding deduction and create the payee's credit.

        A second call for the same (entity, transaction type, transaction id)
        returns the existing record without creating anything.
        """
        tax_year = validate_tax_year(payment_date.year)
        kind = TransactionType(transaction_type)
        self.aggregation.get_entity(entity_id)

        existing = self.find_record(entity_id, kind, transaction_id)
        if existing is not None:
            logger.warning(
                "WHT record already exists for %s %s (entity %s); returning record %s",
                kind.value,
                transaction_id,
                entity_id,
                existing.id,
            )
            return existing

        if kind == TransactionType.INVOICE:
            payee_entity_id = entity_id
        resolved_payee_type = self._resolve_payee_type(entity_id, kind, payee_entity_id, payee_type)

        if precomputed is not None:
            payee_is_small = False
        else:
            payee_is_small = self._payee_is_small(entity_id, kind, tax_year, payee_annual_turnover)

        computation = self.resolver.compute_withholding(
            payment_amount,
            wht_type,
            resolved_payee_type,
            is_non_resident,
            payee_is_small,
            None,
            tax_year,
            precomputed=precomputed,
        )

        record = WithholdingRecord(
            entity_id=entity_id,
            payee_entity_id=payee_entity_id,
            payee_type=resolved_payee_type.value,
            payee_name=payee_name,
            payee_tin=payee_tin,
            transaction_type=kind.value,
            transaction_id=transaction_id,
            payment_amount=to_decimal(payment_amount),
            wht_type=WHTCategory(wht_type).value,
            wht_rate=computation.rate,
            wht_amount=computation.withheld_amount,
            net_amount=computation.net_amount,
            payment_date=payment_date,
            month=payment_date.month,
            year=payment_date.year,
            description=description,
        )
        if computation.withheld_amount > 0:
            record.credit = WithholdingCredit(
                entity_id=payee_entity_id,
                entity_type=resolved_payee_type.value,
                tax_year=tax_year,
                wht_amount=computation.withheld_amount,
                applied_to_pit=ZERO,
                applied_to_cit=ZERO,
                remaining_credit=computation.withheld_amount,
                status=WHTCreditStatus.AVAILABLE.value,
            )

        self.db.add(record)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent insert of the same transaction
            self.db.rollback()
            existing = self.find_record(entity_id, kind, transaction_id)
            if existing is None:
                raise
            logger.warning(
                "WHT record duplicate insert for %s %s (entity %s); using record %s",
                kind.value,
                transaction_id,
                entity_id,
                existing.id,
            )
            return existing

        logger.info(
            "WHT record created entity=%s type=%s amount=%s period=%s-%02d exempt=%s",
            entity_id,
            record.wht_type,
            record.wht_amount,
            record.year,
            record.month,
            computation.exempt,
        )
        return record

    def compute_withholding_summary(
        self, entity_id: int, year: int, month: int, today: Optional[dt.date] = None
    ) -> WithholdingSummary:
        """Tax withheld by ``entity_id`` in a month against what it has remitted."""
        validate_tax_year(year)
        if not 1 <= month <= 12:
            raise ValueError(f"month must be between 1 and 12, got {month}")
        self.aggregation.get_entity(entity_id)
        rules = get_rules(year)

        deducted = self.aggregation.derive_withholding_deducted(entity_id, year, month)
        total_deducted = round_money(deducted.total)
        total_remitted = round_money(
            self.aggregation.derive_withholding_remitted(entity_id, year, month, self.PAID_REMITTANCE_STATUSES)
        )
        pending = clamp_non_negative(total_deducted - total_remitted)
        if total_remitted > total_deducted:
            logger.warning(
                "WHT over-remittance entity=%s period=%s-%02d deducted=%s remitted=%s",
                entity_id,
                year,
                month,
                total_deducted,
                total_remitted,
            )

        deadline = filing_deadline(TaxKind.WHT, rules.deadlines, year, month)
        status = determine_status(pending, deadline, today or dt.date.today())
        return WithholdingSummary(
            entity_id=entity_id,
            year=year,
            month=month,
            record_count=deducted.count,
            total_deducted=total_deducted,
            total_remitted=total_remitted,
            pending=pending,
            status=status,
            deadline=deadline,
        )

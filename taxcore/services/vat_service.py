"""
VAT Period Service.

Handles:
- VAT on a single amount at the tax-year rate
- Monthly output VAT vs input VAT position
- Registration-threshold exemption from accrual turnover
- Remittance reconciliation and deadline status

Single Responsibility: VAT only. Amounts are re-derived from invoices,
expenses and VAT remittances on every call; nothing is written.
"""
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from taxcore.models.tax_models import AccountType, EntityType, RemittanceStatus, TaxKind
from taxcore.rules.loader import get_rules, validate_tax_year
from taxcore.rules.schema import VATRules
from taxcore.services.tax_reporting.aggregation import AggregationService
from taxcore.services.tax_reporting.period_utils import determine_status, filing_deadline
from taxcore.utils.currency import ZERO, clamp_non_negative, round_money, to_decimal

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


class VATPosition(str, Enum):
    PAYABLE = "payable"
    REFUNDABLE = "refundable"
    ZERO = "zero"


@dataclass(frozen=True)
class VATAmount:
    subtotal: Decimal
    rate: Decimal   # Percent
    vat_amount: Decimal
    total: Decimal


@dataclass(frozen=True)
class VATSummary:
    entity_id: int
    year: int
    month: int
    output_vat: Decimal
    input_vat: Decimal
    effective_input_vat: Decimal
    net_vat: Decimal                # Negative when refundable
    position: VATPosition
    annual_turnover: Decimal
    is_vat_exempt: bool
    total_remitted: Decimal
    pending: Decimal
    status: RemittanceStatus
    deadline: dt.date


class VATCalculationService:
    """VAT arithmetic (SRP: Calculations only)"""

    @staticmethod
    def calculate(amount, rules: VATRules) -> VATAmount:
        value = to_decimal(amount)
        if not value.is_finite() or value < 0:
            raise ValueError(f"Amount must be a finite non-negative number, got {value}")
        subtotal = round_money(value)
        vat_amount = round_money(subtotal * rules.rate_percent / HUNDRED)
        return VATAmount(
            subtotal=subtotal,
            rate=rules.rate_percent,
            vat_amount=vat_amount,
            total=subtotal + vat_amount,
        )

    @staticmethod
    def is_exempt(annual_turnover: Decimal, rules: VATRules) -> bool:
        return annual_turnover < rules.registration_threshold

    @staticmethod
    def net_position(output_vat: Decimal, input_vat: Decimal, exempt: bool) -> tuple[Decimal, Decimal, VATPosition]:
        """
        Net VAT for a period.

        An exempt supplier that charged no output VAT cannot recover input
        VAT, so its effective input is zero.

        Returns:
            (effective_input_vat, net_vat, position)
        """
        effective_input = ZERO if exempt and output_vat == 0 else input_vat
        net = round_money(output_vat - effective_input)
        if net > 0:
            position = VATPosition.PAYABLE
        elif net < 0:
            position = VATPosition.REFUNDABLE
        else:
            position = VATPosition.ZERO
        return effective_input, net, position


class VATService:
    """Monthly VAT summaries for companies and businesses."""

    PAID_REMITTANCE_STATUSES = (RemittanceStatus.REMITTED.value, RemittanceStatus.OVERDUE.value)

    def __init__(self, db: Session):
        self.db = db
        self.aggregation = AggregationService(db)
        self.calculator = VATCalculationService()

    def calculate_vat(self, amount, tax_year: int) -> VATAmount:
        validate_tax_year(tax_year)
        return self.calculator.calculate(amount, get_rules(tax_year).vat)

    def compute_vat_summary(
        self, entity_id: int, year: int, month: int, today: Optional[dt.date] = None
    ) -> VATSummary:
        """
        Output VAT on paid invoices against input VAT on deductible expenses.

        Individuals do not register for VAT and are rejected. Input VAT is
        read from the expense account that matches the entity type. A
        refundable position leaves nothing pending.

        Raises:
            ValueError: month out of range or an individual entity.
            AggregationValidationError: an invoice, expense or remittance
                carries an unusable amount.
        """
        validate_tax_year(year)
        if not 1 <= month <= 12:
            raise ValueError(f"month must be between 1 and 12, got {month}")
        entity = self.aggregation.get_entity(entity_id)
        if entity.kind == EntityType.INDIVIDUAL:
            raise ValueError(f"Entity {entity_id} is an individual; VAT applies to companies and businesses")
        rules = get_rules(year)
        account_type = AccountType.COMPANY if entity.kind == EntityType.COMPANY else AccountType.BUSINESS

        output_vat = round_money(self.aggregation.derive_output_vat(entity_id, year, month))
        input_vat = round_money(self.aggregation.derive_input_vat(entity_id, year, month, account_type))
        turnover = round_money(self.aggregation.derive_vat_turnover(entity_id, year))
        exempt = self.calculator.is_exempt(turnover, rules.vat)
        effective_input, net_vat, position = self.calculator.net_position(output_vat, input_vat, exempt)

        total_remitted = round_money(
            self.aggregation.derive_vat_remitted(entity_id, year, month, self.PAID_REMITTANCE_STATUSES)
        )
        pending = clamp_non_negative(net_vat - total_remitted)
        if total_remitted > clamp_non_negative(net_vat):
            logger.warning(
                "VAT over-remittance entity=%s period=%s-%02d net=%s remitted=%s",
                entity_id,
                year,
                month,
                net_vat,
                total_remitted,
            )

        deadline = filing_deadline(TaxKind.VAT, rules.deadlines, year, month)
        status = determine_status(pending, deadline, today or dt.date.today())
        logger.debug(
            "VAT summary entity=%s period=%s-%02d output=%s input=%s position=%s status=%s",
            entity_id,
            year,
            month,
            output_vat,
            effective_input,
            position.value,
            status.value,
        )
        return VATSummary(
            entity_id=entity_id,
            year=year,
            month=month,
            output_vat=output_vat,
            input_vat=input_vat,
            effective_input_vat=effective_input,
            net_vat=net_vat,
            position=position,
            annual_turnover=turnover,
            is_vat_exempt=exempt,
            total_remitted=total_remitted,
            pending=pending,
            status=status,
            deadline=deadline,
        )

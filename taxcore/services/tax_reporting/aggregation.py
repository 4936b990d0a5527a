"""Revenue, expense and income aggregates derived from transactional records.

Every figure, remittances included, is re-read from the database on each call; nothing is cached
and nothing is stored back. A record with a missing, non-finite or negative
amount fails the whole aggregate with AggregationValidationError rather than
being skipped, so a total is never silently under-counted.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, NamedTuple, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from taxcore.core.exceptions import AggregationValidationError, EntityNotFoundError
from taxcore.models.expense import Expense
from taxcore.models.models import EmploymentDeduction, IncomeRecord, Invoice, TaxEntity
from taxcore.models.tax_models import (
    AccountType,
    EntityType,
    InvoiceStatus,
    RemittanceStatus,
    TaxKind,
    TaxRemittance,
    TransactionType,
    VATRemittance,
    WithholdingRecord,
    WithholdingRemittance,
)
from taxcore.services.tax_reporting.period_utils import calculate_period_range
from taxcore.utils.currency import ZERO

logger = logging.getLogger(__name__)


@dataclass
class _Collector:
    """Running total plus every record that failed validation."""

    aggregate: str
    entity_id: int
    tax_year: int
    total: Decimal = ZERO
    errors: list[dict[str, Any]] = field(default_factory=list)

    def add(self, table: str, record_id: int, value: Any) -> None:
        reason = _invalid_reason(value)
        if reason:
            self.errors.append(
                {"table": table, "id": record_id, "value": None if value is None else str(value), "reason": reason}
            )
            return
        self.total += value

    def merge(self, other: _Collector) -> None:
        self.total += other.total
        self.errors.extend(other.errors)

    def result(self) -> Decimal:
        if self.errors:
            logger.error(
                "Aggregation failed aggregate=%s entity_id=%s tax_year=%s records=%s",
                self.aggregate,
                self.entity_id,
                self.tax_year,
                [(e["table"], e["id"]) for e in self.errors],
            )
            raise AggregationValidationError(self.aggregate, self.entity_id, self.tax_year, self.errors)
        return self.total


def _invalid_reason(value: Any) -> str | None:
    if value is None:
        return "missing amount"
    if not isinstance(value, Decimal):
        return "not a decimal amount"
    if not value.is_finite():
        return "non-finite amount"
    if value < 0:
        return "negative amount"
    return None


class PeriodTotal(NamedTuple):
    count: int
    total: Decimal


@dataclass(frozen=True)
class EmploymentDeductionTotals:
    pension: Decimal = ZERO
    nhf: Decimal = ZERO
    nhis: Decimal = ZERO
    housing_loan_interest: Decimal = ZERO
    life_insurance: Decimal = ZERO
    annual_rent: Decimal = ZERO

    @property
    def statutory_total(self) -> Decimal:
        return self.pension + self.nhf + self.nhis + self.housing_loan_interest + self.life_insurance


class AggregationService:
    """Derives revenue, deductible expenses and gross income for a tax year."""

    def __init__(self, db: Session):
        self.db = db

    def get_entity(self, entity_id: int) -> TaxEntity:
        entity = self.db.get(TaxEntity, entity_id)
        if entity is None:
            raise EntityNotFoundError(entity_id)
        return entity

    # ------------------------------------------------------------------
    # Revenue
    # ------------------------------------------------------------------

    def _revenue(self, entity_ids: Sequence[int], tax_year: int, aggregate: str, owner_id: int) -> _Collector:
        start, end = calculate_period_range("year", tax_year)
        collector = _Collector(aggregate, owner_id, tax_year)
        if not entity_ids:
            return collector
        invoices = self.db.execute(
            select(Invoice.id, Invoice.subtotal)
            .where(
                Invoice.entity_id.in_(entity_ids),
                Invoice.status == InvoiceStatus.PAID.value,
                Invoice.issue_date >= start,
                Invoice.issue_date <= end,
            )
            .order_by(Invoice.id)
        ).all()
        for invoice_id, subtotal in invoices:
            collector.add("invoices", invoice_id, subtotal)
        return collector

    def derive_revenue(self, entity_id: int, tax_year: int) -> Decimal:
        """Sum of pre-VAT subtotals of paid invoices issued in the tax year."""
        self.get_entity(entity_id)
        return self._revenue([entity_id], tax_year, "revenue", entity_id).result()

    # ------------------------------------------------------------------
    # Expenses
    # ------------------------------------------------------------------

    def derive_deductible_expenses(
        self,
        entity_id: int,
        tax_year: int,
        account_types: Iterable[AccountType | str],
        include_owned_businesses: bool = False,
    ) -> Decimal:
        """Deductible expenses dated in the tax year, limited to ``account_types``.

        With ``include_owned_businesses`` the expenses of businesses owned by
        the entity are added, matching the revenue folded into its gross income.
        """
        self.get_entity(entity_id)
        types = sorted({AccountType(t).value for t in account_types})
        start, end = calculate_period_range("year", tax_year)
        entity_ids = [entity_id]
        if include_owned_businesses:
            entity_ids.extend(self._owned_business_ids(entity_id))
        collector = _Collector("deductible_expenses", entity_id, tax_year)
        if types:
            rows = self.db.execute(
                select(Expense.id, Expense.amount)
                .where(
                    Expense.entity_id.in_(entity_ids),
                    Expense.is_tax_deductible.is_(True),
                    Expense.account_type.in_(types),
                    Expense.date >= start,
                    Expense.date <= end,
                )
                .order_by(Expense.id)
            ).all()
            for expense_id, amount in rows:
                collector.add("expenses", expense_id, amount)
        return collector.result()

    # ------------------------------------------------------------------
    # Gross income
    # ------------------------------------------------------------------

    def derive_gross_income(self, entity_id: int, tax_year: int) -> Decimal:
        """
        Gross income for PIT.

        Income records are summed as entered (never re-annualised). A business
        with no owner adds its own paid-invoice revenue; an individual adds the
        revenue of every business it owns. An owned business never counts its
        own revenue, which is already its owner's income.
        """
        entity = self.get_entity(entity_id)
        collector = _Collector("gross_income", entity_id, tax_year)

        records = self.db.execute(
            select(IncomeRecord.id, IncomeRecord.gross_amount)
            .where(IncomeRecord.entity_id == entity_id, IncomeRecord.tax_year == tax_year)
            .order_by(IncomeRecord.id)
        ).all()
        for record_id, amount in records:
            collector.add("income_records", record_id, amount)

        if entity.kind == EntityType.BUSINESS and entity.owner_id is None:
            collector.merge(self._revenue([entity_id], tax_year, "gross_income", entity_id))
        elif entity.kind == EntityType.INDIVIDUAL:
            business_ids = self._owned_business_ids(entity_id)
            collector.merge(self._revenue(business_ids, tax_year, "gross_income", entity_id))

        return collector.result()

    def _owned_business_ids(self, entity_id: int) -> list[int]:
        return list(
            self.db.scalars(
                select(TaxEntity.id).where(
                    TaxEntity.owner_id == entity_id,
                    TaxEntity.entity_type == EntityType.BUSINESS.value,
                )
            ).all()
        )

    def derive_employment_deductions(self, entity_id: int, tax_year: int) -> EmploymentDeductionTotals:
        """Declared employment deductions; no record means no deductions."""
        record = self.db.scalar(
            select(EmploymentDeduction).where(
                EmploymentDeduction.entity_id == entity_id,
                EmploymentDeduction.tax_year == tax_year,
            )
        )
        if record is None:
            return EmploymentDeductionTotals()

        collector = _Collector("employment_deductions", entity_id, tax_year)
        values = {
            "pension": record.annual_pension,
            "nhf": record.annual_nhf,
            "nhis": record.annual_nhis,
            "housing_loan_interest": record.annual_housing_loan_interest,
            "life_insurance": record.annual_life_insurance,
            "annual_rent": record.annual_rent,
        }
        for value in values.values():
            collector.add("employment_deductions", record.id, value)
        collector.result()
        return EmploymentDeductionTotals(**values)

    # ------------------------------------------------------------------
    # Remittances and withheld tax
    # ------------------------------------------------------------------

    def _sum_rows(self, aggregate: str, entity_id: int, tax_year: int, table: str, rows) -> PeriodTotal:
        collector = _Collector(aggregate, entity_id, tax_year)
        for row_id, amount in rows:
            collector.add(table, row_id, amount)
        return PeriodTotal(len(rows), collector.result())

    def derive_remitted(self, entity_id: int, tax_kind: TaxKind | str, tax_year: int) -> Decimal:
        """Remitted CIT or PIT payments for the tax year."""
        rows = self.db.execute(
            select(TaxRemittance.id, TaxRemittance.amount)
            .where(
                TaxRemittance.entity_id == entity_id,
                TaxRemittance.tax_kind == TaxKind(tax_kind).value,
                TaxRemittance.tax_year == tax_year,
                TaxRemittance.status == RemittanceStatus.REMITTED.value,
            )
            .order_by(TaxRemittance.id)
        ).all()
        return self._sum_rows("remitted", entity_id, tax_year, "tax_remittances", rows).total

    def derive_withholding_deducted(self, entity_id: int, year: int, month: int) -> PeriodTotal:
        """Tax the entity withheld from its own payments in a month.

        Invoice records are excluded: that tax was withheld by a customer and
        is the customer's to remit.
        """
        rows = self.db.execute(
            select(WithholdingRecord.id, WithholdingRecord.wht_amount)
            .where(
                WithholdingRecord.entity_id == entity_id,
                WithholdingRecord.year == year,
                WithholdingRecord.month == month,
                WithholdingRecord.transaction_type != TransactionType.INVOICE.value,
            )
            .order_by(WithholdingRecord.id)
        ).all()
        return self._sum_rows("withholding_deducted", entity_id, year, "withholding_records", rows)

    def derive_withholding_remitted(
        self, entity_id: int, year: int, month: int, statuses: Iterable[RemittanceStatus | str]
    ) -> Decimal:
        rows = self.db.execute(
            select(WithholdingRemittance.id, WithholdingRemittance.amount)
            .where(
                WithholdingRemittance.entity_id == entity_id,
                WithholdingRemittance.year == year,
                WithholdingRemittance.month == month,
                WithholdingRemittance.status.in_([RemittanceStatus(s).value for s in statuses]),
            )
            .order_by(WithholdingRemittance.id)
        ).all()
        return self._sum_rows("withholding_remitted", entity_id, year, "withholding_remittances", rows).total

    # ------------------------------------------------------------------
    # VAT
    # ------------------------------------------------------------------

    def derive_output_vat(self, entity_id: int, year: int, month: int) -> Decimal:
        """VAT charged on paid invoices issued in the month."""
        start, end = calculate_period_range("month", year, month)
        rows = self.db.execute(
            select(Invoice.id, Invoice.vat_amount)
            .where(
                Invoice.entity_id == entity_id,
                Invoice.status == InvoiceStatus.PAID.value,
                Invoice.issue_date >= start,
                Invoice.issue_date <= end,
            )
            .order_by(Invoice.id)
        ).all()
        return self._sum_rows("output_vat", entity_id, year, "invoices", rows).total

    def derive_input_vat(self, entity_id: int, year: int, month: int, account_type: AccountType | str) -> Decimal:
        """VAT paid on deductible expenses of ``account_type`` dated in the month."""
        start, end = calculate_period_range("month", year, month)
        rows = self.db.execute(
            select(Expense.id, Expense.vat_amount)
            .where(
                Expense.entity_id == entity_id,
                Expense.account_type == AccountType(account_type).value,
                Expense.is_tax_deductible.is_(True),
                Expense.date >= start,
                Expense.date <= end,
            )
            .order_by(Expense.id)
        ).all()
        return self._sum_rows("input_vat", entity_id, year, "expenses", rows).total

    def derive_vat_turnover(self, entity_id: int, year: int) -> Decimal:
        """Accrual turnover: subtotals of paid and pending invoices issued in the year."""
        start, end = calculate_period_range("year", year)
        rows = self.db.execute(
            select(Invoice.id, Invoice.subtotal)
            .where(
                Invoice.entity_id == entity_id,
                Invoice.status.in_([InvoiceStatus.PAID.value, InvoiceStatus.PENDING.value]),
                Invoice.issue_date >= start,
                Invoice.issue_date <= end,
            )
            .order_by(Invoice.id)
        ).all()
        return self._sum_rows("vat_turnover", entity_id, year, "invoices", rows).total

    def derive_vat_remitted(
        self, entity_id: int, year: int, month: int, statuses: Iterable[RemittanceStatus | str]
    ) -> Decimal:
        rows = self.db.execute(
            select(VATRemittance.id, VATRemittance.amount)
            .where(
                VATRemittance.entity_id == entity_id,
                VATRemittance.year == year,
                VATRemittance.month == month,
                VATRemittance.status.in_([RemittanceStatus(s).value for s in statuses]),
            )
            .order_by(VATRemittance.id)
        ).all()
        return self._sum_rows("vat_remitted", entity_id, year, "vat_remittances", rows).total

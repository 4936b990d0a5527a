"""Period date range and filing deadline utilities.

Provides functions for calculating date ranges for tax periods (month and
year) and the statutory deadline that applies to each kind of tax.
"""
from datetime import date, timedelta
from typing import Optional, Tuple

from taxcore.models.tax_models import RemittanceStatus, TaxKind
from taxcore.rules.schema import DeadlineRules


def calculate_period_range(
    period_type: str,
    year: Optional[int] = None,
    month: Optional[int] = None,
) -> Tuple[date, date]:
    """Calculate start_date and end_date for a given period type.

    Args:
        period_type: 'month' or 'year'
        year: Required for all period types
        month: Required for 'month'

    Returns:
        Tuple of (start_date, end_date) inclusive

    Raises:
        ValueError: If required parameters are missing or invalid
    """
    if not year:
        raise ValueError("year is required for all period types")

    if period_type == "month":
        if not month:
            raise ValueError("month required for monthly periods")
        try:
            start = date(year, month, 1)
        except ValueError as e:
            raise ValueError(f"Invalid month: {year}-{month}") from e
        if month == 12:
            end = date(year, 12, 31)
        else:
            end = date(year, month + 1, 1) - timedelta(days=1)
        return (start, end)

    elif period_type == "year":
        return (date(year, 1, 1), date(year, 12, 31))

    else:
        raise ValueError(f"Invalid period_type: {period_type}. Must be month/year")


def filing_deadline(tax_kind: TaxKind, deadlines: DeadlineRules, year: int, month: Optional[int] = None) -> date:
    """Deadline for a tax year (CIT, PIT) or a month (WHT, VAT)."""
    kind = TaxKind(tax_kind)
    if kind == TaxKind.CIT:
        return deadlines.cit.for_year(year)
    if kind == TaxKind.PIT:
        return deadlines.pit.for_year(year)
    if not month:
        raise ValueError(f"month required for {kind.value.upper()} deadlines")
    if kind == TaxKind.VAT:
        return deadlines.vat.for_period(year, month)
    return deadlines.wht.for_period(year, month)


def determine_status(pending, deadline: date, today: date) -> RemittanceStatus:
    """Nothing pending is compliant; anything pending past the deadline is overdue."""
    if pending <= 0:
        return RemittanceStatus.COMPLIANT
    if today > deadline:
        return RemittanceStatus.OVERDUE
    return RemittanceStatus.PENDING

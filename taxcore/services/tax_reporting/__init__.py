"""Tax Reporting Module.

Sub-modules:
- computations: bracket tax, PIT, CIT and development levy calculations (pure)
- period_utils: period date ranges, filing deadlines and remittance status
- aggregation: revenue, expense and income aggregates derived from records
"""
from .aggregation import AggregationService, EmploymentDeductionTotals
from .computations import (
    PersonalIncomeTax,
    compute_bracket_tax,
    compute_company_income_tax,
    compute_development_levy,
    compute_personal_income_tax,
    compute_rent_relief,
)
from .period_utils import calculate_period_range, determine_status, filing_deadline

__all__ = [
    # Computation functions
    "PersonalIncomeTax",
    "compute_bracket_tax",
    "compute_company_income_tax",
    "compute_development_levy",
    "compute_personal_income_tax",
    "compute_rent_relief",
    # Utilities
    "calculate_period_range",
    "determine_status",
    "filing_deadline",
    # Service class
    "AggregationService",
    "EmploymentDeductionTotals",
]

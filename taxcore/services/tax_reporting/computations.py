"""Tax computation functions.

Pure computation logic for Nigerian Personal Income Tax (PIT), Company
Income Tax (CIT) and the development levy. No database access here; every
statutory figure comes from the tax-year rule set passed in.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from taxcore.core.exceptions import MalformedRuleSetError
from taxcore.models.tax_models import TaxClassification
from taxcore.rules.schema import Bracket, CITRules, DevelopmentLevyRules, PITRules, check_bracket_table
from taxcore.utils.currency import ZERO, round_money, to_decimal

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class BandBreakdown:
    label: str
    taxable: Decimal
    rate_percent: Decimal
    tax: Decimal


@dataclass(frozen=True)
class PersonalIncomeTax:
    tax: Decimal
    effective_rate: Decimal   # Percent of taxable income
    band: str                 # Highest band reached
    breakdown: tuple[BandBreakdown, ...]


def _walk_brackets(taxable_amount, brackets: Sequence[Bracket]) -> tuple[Decimal, list[BandBreakdown]]:
    try:
        check_bracket_table(brackets)
    except ValueError as exc:
        raise MalformedRuleSetError("bracket table", str(exc)) from exc

    amount = to_decimal(taxable_amount)
    if not amount.is_finite():
        raise ValueError(f"Taxable amount must be finite, got {amount}")
    if amount < 0:
        raise ValueError(f"Taxable amount must be non-negative, got {amount}")

    total = ZERO
    remaining = amount
    breakdown: list[BandBreakdown] = []
    for bracket in brackets:
        if remaining <= 0:
            break
        if bracket.upper_bound is None:
            portion = remaining
        else:
            portion = min(bracket.upper_bound - bracket.lower_bound, remaining)
        band_tax = portion * bracket.rate_percent / HUNDRED
        total += band_tax
        remaining -= portion
        breakdown.append(BandBreakdown(bracket.display_label, portion, bracket.rate_percent, band_tax))
    return total, breakdown


def compute_bracket_tax(taxable_amount, brackets: Sequence[Bracket]) -> Decimal:
    """Progressive tax on ``taxable_amount``, rounded once to two decimals.

    Raises:
        ValueError: taxable amount is negative.
        MalformedRuleSetError: bracket table is not contiguous from zero.
    """
    total, _ = _walk_brackets(taxable_amount, brackets)
    return round_money(total)


def compute_personal_income_tax(taxable_income, rules: PITRules) -> PersonalIncomeTax:
    """
    Calculate Nigerian Personal Income Tax using the year's annual bands.

    Args:
        taxable_income: Annual taxable income after deductions (non-negative)
        rules: PIT section of the tax-year rule set

    Returns:
        PersonalIncomeTax with the total, effective rate, highest band reached
        and a per-band breakdown
    """
    total, breakdown = _walk_brackets(taxable_income, rules.brackets)
    tax = round_money(total)
    amount = to_decimal(taxable_income)
    effective_rate = round_money(tax / amount * HUNDRED) if amount > 0 else ZERO
    band = breakdown[-1].label if breakdown else rules.brackets[0].display_label
    return PersonalIncomeTax(tax=tax, effective_rate=effective_rate, band=band, breakdown=tuple(breakdown))


def compute_company_income_tax(taxable_profit, classification: TaxClassification, rules: CITRules) -> Decimal:
    """Flat CIT on taxable profit at the rate of the company's size class."""
    profit = to_decimal(taxable_profit)
    if profit <= 0:
        return ZERO
    company_class = rules.find(TaxClassification(classification))
    return round_money(profit * company_class.rate_percent / HUNDRED)


def compute_development_levy(
    assessable_profit,
    classification: TaxClassification,
    tax_year: int,
    rules: DevelopmentLevyRules,
) -> Decimal:
    """
    Development levy on assessable profit.

    Small companies are exempt. Everyone else pays the year's rate
    (4% in 2026 stepping down to 2% from 2030).
    """
    profit = to_decimal(assessable_profit)
    if profit <= 0 or TaxClassification(classification) in rules.exempt_classes:
        return ZERO
    return round_money(profit * rules.rate_percent_for(tax_year) / HUNDRED)


def compute_rent_relief(annual_rent, rules: PITRules) -> Decimal:
    """Rent relief is a share of annual rent, capped."""
    rent = to_decimal(annual_rent)
    if rent <= 0:
        return ZERO
    relief = rent * rules.rent_relief.rate_percent / HUNDRED
    return round_money(min(relief, rules.rent_relief.cap))

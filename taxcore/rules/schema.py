"""Pydantic models describing a tax-year rule set.

A rule set carries every statutory figure the engine needs for a range of
tax years: PIT brackets, CIT size classes, development levy rates, the WHT
rate table and exemption threshold, the VAT rate and registration
threshold, and filing deadlines. Models are frozen and reject unknown keys
so a typo in a YAML file fails at load time instead of silently falling
back to a default.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Iterable, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from taxcore.models.tax_models import (
    PASSIVE_WHT_CATEGORIES,
    AccountType,
    PayeeType,
    TaxClassification,
    WHTCategory,
)

HUNDRED = Decimal("100")


class ImmutableModel(BaseModel):
    """Base class that freezes instances and rejects unknown fields."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


# ============================================================================
# PROGRESSIVE BRACKETS
# ============================================================================

class Bracket(ImmutableModel):
    """One band of a progressive table. ``upper_bound`` None means unbounded."""

    lower_bound: Decimal = Field(alias="lower")
    upper_bound: Decimal | None = Field(default=None, alias="upper")
    rate_percent: Decimal = Field(alias="rate")
    label: str | None = None

    @model_validator(mode="after")
    def _validate_values(self) -> Bracket:
        if self.lower_bound < 0:
            raise ValueError("Bracket lower bounds must be non-negative")
        if self.upper_bound is not None and self.upper_bound <= self.lower_bound:
            raise ValueError(
                f"Bracket upper bound {self.upper_bound} must exceed lower bound {self.lower_bound}"
            )
        if not Decimal("0") <= self.rate_percent <= HUNDRED:
            raise ValueError("Bracket rates must be between 0 and 100 percent")
        return self

    @property
    def display_label(self) -> str:
        if self.label:
            return self.label
        if self.upper_bound is None:
            return f"Above ₦{self.lower_bound:,.0f} @ {self.rate_percent}%"
        return f"₦{self.lower_bound:,.0f} - ₦{self.upper_bound:,.0f} @ {self.rate_percent}%"


def check_bracket_table(brackets: Sequence[Bracket]) -> None:
    """Raise ValueError unless the table is contiguous from zero with one open top band."""
    if not brackets:
        raise ValueError("Bracket table must contain at least one bracket")
    if brackets[0].lower_bound != 0:
        raise ValueError("First bracket must start at 0")
    for index, (current, following) in enumerate(zip(brackets, brackets[1:])):
        if current.upper_bound is None:
            raise ValueError(f"Only the final bracket may be unbounded (bracket {index})")
        if following.lower_bound != current.upper_bound:
            raise ValueError(
                f"Brackets must be contiguous: bracket {index} ends at {current.upper_bound} "
                f"but bracket {index + 1} starts at {following.lower_bound}"
            )
    if brackets[-1].upper_bound is not None:
        raise ValueError("Final bracket must be unbounded")


# ============================================================================
# PERSONAL INCOME TAX
# ============================================================================

class RentRelief(ImmutableModel):
    rate_percent: Decimal = Field(alias="rate")
    cap: Decimal

    @model_validator(mode="after")
    def _validate_values(self) -> RentRelief:
        if self.rate_percent < 0 or self.cap < 0:
            raise ValueError("Rent relief rate and cap must be non-negative")
        return self


class PITRules(ImmutableModel):
    brackets: tuple[Bracket, ...]
    # Taxable income at or below this figure owes nothing (the 0% band)
    exemption_threshold: Decimal
    rent_relief: RentRelief
    deductible_account_types: tuple[AccountType, ...]

    @model_validator(mode="after")
    def _validate_table(self) -> PITRules:
        check_bracket_table(self.brackets)
        if self.exemption_threshold < 0:
            raise ValueError("PIT exemption threshold must be non-negative")
        if not self.deductible_account_types:
            raise ValueError("PIT requires at least one deductible account type")
        return self


# ============================================================================
# COMPANY INCOME TAX
# ============================================================================

class CompanyClass(ImmutableModel):
    """Size class; a company falls in the first class whose ceilings it fits."""

    classification: TaxClassification
    turnover_ceiling: Decimal | None = None
    asset_ceiling: Decimal | None = None
    rate_percent: Decimal = Field(alias="rate")

    def admits(self, turnover: Decimal, fixed_assets: Decimal) -> bool:
        if self.turnover_ceiling is not None and turnover > self.turnover_ceiling:
            return False
        if self.asset_ceiling is not None and fixed_assets > self.asset_ceiling:
            return False
        return True


class CITRules(ImmutableModel):
    classes: tuple[CompanyClass, ...]
    deductible_account_types: tuple[AccountType, ...]

    @model_validator(mode="after")
    def _validate_classes(self) -> CITRules:
        if not self.classes:
            raise ValueError("CIT requires at least one company class")
        seen = [c.classification for c in self.classes]
        if len(set(seen)) != len(seen):
            raise ValueError("CIT classes must be unique")
        bounded = self.classes[:-1]
        if any(c.turnover_ceiling is None for c in bounded):
            raise ValueError("Only the final CIT class may have no turnover ceiling")
        last = self.classes[-1]
        if last.turnover_ceiling is not None or last.asset_ceiling is not None:
            raise ValueError("Final CIT class must be unbounded")
        ceilings = [c.turnover_ceiling for c in bounded]
        if ceilings != sorted(ceilings) or len(set(ceilings)) != len(ceilings):
            raise ValueError("CIT turnover ceilings must be strictly ascending")
        for c in self.classes:
            if not Decimal("0") <= c.rate_percent <= HUNDRED:
                raise ValueError("CIT rates must be between 0 and 100 percent")
        return self

    def find(self, classification: TaxClassification) -> CompanyClass:
        for c in self.classes:
            if c.classification == classification:
                return c
        raise KeyError(classification)


class DevelopmentLevyRules(ImmutableModel):
    """Levy on assessable profit; the rate steps down by year of assessment."""

    rates_by_year: Mapping[int, Decimal]
    exempt_classes: tuple[TaxClassification, ...] = (TaxClassification.SMALL,)

    @field_validator("rates_by_year", mode="before")
    @classmethod
    def _coerce_years(cls, value):
        if isinstance(value, Mapping):
            return {int(year): rate for year, rate in value.items()}
        raise ValueError("Development levy rates must be a year -> rate mapping")

    @model_validator(mode="after")
    def _validate_rates(self) -> DevelopmentLevyRules:
        if not self.rates_by_year:
            raise ValueError("Development levy requires at least one rate")
        for rate in self.rates_by_year.values():
            if not Decimal("0") <= rate <= HUNDRED:
                raise ValueError("Development levy rates must be between 0 and 100 percent")
        return self

    def rate_percent_for(self, tax_year: int) -> Decimal:
        """Rate of the latest listed year not after ``tax_year``; 0 before the first."""
        eligible = [year for year in self.rates_by_year if year <= tax_year]
        if not eligible:
            return Decimal("0")
        return self.rates_by_year[max(eligible)]


# ============================================================================
# WITHHOLDING TAX
# ============================================================================

class ResidencyRates(ImmutableModel):
    resident: Decimal
    non_resident: Decimal

    @model_validator(mode="after")
    def _validate_rates(self) -> ResidencyRates:
        for rate in (self.resident, self.non_resident):
            if not Decimal("0") <= rate <= HUNDRED:
                raise ValueError("WHT rates must be between 0 and 100 percent")
        if self.non_resident < self.resident:
            raise ValueError(
                f"Non-resident WHT rate {self.non_resident}% is below resident rate {self.resident}%"
            )
        return self

    def for_residency(self, is_non_resident: bool) -> Decimal:
        return self.non_resident if is_non_resident else self.resident


class WHTRateRow(ImmutableModel):
    company: ResidencyRates
    individual: ResidencyRates

    def for_payee(self, payee_type: PayeeType) -> ResidencyRates:
        if payee_type == PayeeType.COMPANY:
            return self.company
        return self.individual


class WHTRules(ImmutableModel):
    # Payees with turnover at or below this figure are exempt on service payments
    exemption_threshold: Decimal
    service_categories: frozenset[WHTCategory]
    rates: Mapping[WHTCategory, WHTRateRow]

    @model_validator(mode="after")
    def _validate_table(self) -> WHTRules:
        if self.exemption_threshold < 0:
            raise ValueError("WHT exemption threshold must be non-negative")
        missing = sorted(c.value for c in WHTCategory if c not in self.rates)
        if missing:
            raise ValueError(f"WHT rate table is missing categories: {', '.join(missing)}")
        passive = sorted(c.value for c in self.service_categories & PASSIVE_WHT_CATEGORIES)
        if passive:
            raise ValueError(
                f"Passive income categories cannot be service categories: {', '.join(passive)}"
            )
        return self

    def row(self, category: WHTCategory) -> WHTRateRow:
        return self.rates[category]


# ============================================================================
# VALUE ADDED TAX
# ============================================================================

class VATRules(ImmutableModel):
    rate_percent: Decimal = Field(alias="rate")
    # Annual turnover below this figure makes the supplier VAT exempt
    registration_threshold: Decimal

    @model_validator(mode="after")
    def _validate_values(self) -> VATRules:
        if not Decimal("0") <= self.rate_percent <= HUNDRED:
            raise ValueError("VAT rate must be between 0 and 100 percent")
        if self.registration_threshold < 0:
            raise ValueError("VAT registration threshold must be non-negative")
        return self


# ============================================================================
# DEADLINES
# ============================================================================

class AnnualDeadline(ImmutableModel):
    """Fixed calendar day in a year following the tax year."""

    month: int = Field(ge=1, le=12)
    day: int = Field(ge=1, le=31)
    years_after: int = Field(default=1, ge=0)

    @model_validator(mode="after")
    def _validate_day(self) -> AnnualDeadline:
        # 2000 is a leap year, so Feb 29 stays valid
        dt.date(2000, self.month, self.day)
        return self

    def for_year(self, tax_year: int) -> dt.date:
        return dt.date(tax_year + self.years_after, self.month, self.day)


class MonthlyDeadline(ImmutableModel):
    """Day of the month following the period."""

    day: int = Field(ge=1, le=28)

    def for_period(self, year: int, month: int) -> dt.date:
        if month == 12:
            return dt.date(year + 1, 1, self.day)
        return dt.date(year, month + 1, self.day)


class DeadlineRules(ImmutableModel):
    cit: AnnualDeadline
    pit: AnnualDeadline
    wht: MonthlyDeadline
    vat: MonthlyDeadline


# ============================================================================
# RULE SET AND MANIFEST
# ============================================================================

class TaxRuleSet(ImmutableModel):
    name: str
    effective_from: int
    pit: PITRules
    cit: CITRules
    development_levy: DevelopmentLevyRules
    wht: WHTRules
    vat: VATRules
    deadlines: DeadlineRules


class ManifestEntry(ImmutableModel):
    effective_from: int
    file: str

    @field_validator("file")
    @classmethod
    def _require_yaml(cls, value: str) -> str:
        if not value.endswith((".yaml", ".yml")):
            raise ValueError(f"Rule set file must be YAML: {value}")
        return value


class RuleSetManifest(ImmutableModel):
    rule_sets: tuple[ManifestEntry, ...]

    @model_validator(mode="after")
    def _validate_entries(self) -> RuleSetManifest:
        if not self.rule_sets:
            raise ValueError("Manifest must list at least one rule set")
        years = [entry.effective_from for entry in self.rule_sets]
        if len(set(years)) != len(years):
            raise ValueError("Manifest effective_from years must be unique")
        return self

    def entry_for(self, tax_year: int) -> ManifestEntry | None:
        """Latest entry already in force for ``tax_year``."""
        eligible = [e for e in self.rule_sets if e.effective_from <= tax_year]
        if not eligible:
            return None
        return max(eligible, key=lambda e: e.effective_from)

    @property
    def files(self) -> Iterable[ManifestEntry]:
        return sorted(self.rule_sets, key=lambda e: e.effective_from)

"""
Shared Pydantic schemas for tax-related routes.
"""
from __future__ import annotations

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, Field

from taxcore.models.tax_models import (
    EntityType,
    PayeeType,
    RemittanceStatus,
    TaxClassification,
    TaxKind,
    WHTCategory,
)
from taxcore.services.liability_service import ExemptionReason
from taxcore.services.vat_service import VATPosition


class LiabilitySummaryOut(BaseModel):
    """Derived CIT or PIT liability for one entity and tax year."""

    entity_id: int
    entity_type: EntityType
    tax_kind: TaxKind
    tax_year: int
    revenue: Decimal
    expenses: Decimal
    gross_income: Decimal
    statutory_deductions: Decimal
    taxable_base: Decimal
    classification: TaxClassification | None
    rate: Decimal = Field(..., description="Rate in percent (effective rate for PIT)")
    gross_liability: Decimal
    credits_applied: Decimal
    net_liability: Decimal
    total_remitted: Decimal
    pending: Decimal
    status: RemittanceStatus
    deadline: dt.date
    development_levy: Decimal
    exemption_reason: ExemptionReason | None

    model_config = {"from_attributes": True}


class ClassificationOut(BaseModel):
    entity_id: int
    tax_year: int
    annual_turnover: Decimal
    classification: TaxClassification | None
    previous: str | None
    changed: bool

    model_config = {"from_attributes": True}


class BracketTaxRequest(BaseModel):
    """Bracket tax request; the year's PIT table is used."""

    tax_year: int
    taxable_amount: Decimal = Field(..., ge=0, description="Annual taxable amount in Naira")


class BandOut(BaseModel):
    label: str
    taxable: Decimal
    rate_percent: Decimal
    tax: Decimal

    model_config = {"from_attributes": True}


class BracketTaxOut(BaseModel):
    tax_year: int
    taxable_amount: Decimal
    tax: Decimal
    effective_rate: Decimal
    band: str
    breakdown: list[BandOut]


class WithholdingPreviewRequest(BaseModel):
    """Withholding computation request (nothing is saved)."""

    amount: Decimal = Field(..., ge=0, description="Gross payment in Naira")
    payment_category: WHTCategory
    payee_type: PayeeType
    is_non_resident: bool = False
    payee_is_small_entity: bool = Field(False, description="Payee turnover at or below the exemption threshold")
    is_service_payment: bool | None = Field(None, description="Derived from the category when omitted")
    tax_year: int


class WithholdingComputationOut(BaseModel):
    rate: Decimal
    withheld_amount: Decimal
    net_amount: Decimal
    exempt: bool

    model_config = {"from_attributes": True}


class WithholdingSummaryOut(BaseModel):
    entity_id: int
    year: int
    month: int
    record_count: int
    total_deducted: Decimal
    total_remitted: Decimal
    pending: Decimal
    status: RemittanceStatus
    deadline: dt.date

    model_config = {"from_attributes": True}


class AvailableCreditsOut(BaseModel):
    entity_id: int
    tax_year: int
    available_credit: Decimal


class CreditAllocationRequest(BaseModel):
    tax_year: int
    liability_amount: Decimal = Field(..., ge=0)
    tax_kind: TaxKind


class CreditAllocationOut(BaseModel):
    liability_after_credit: Decimal
    credit_applied: Decimal
    remaining_credit: Decimal

    model_config = {"from_attributes": True}


class VATAmountOut(BaseModel):
    subtotal: Decimal
    rate: Decimal
    vat_amount: Decimal
    total: Decimal

    model_config = {"from_attributes": True}


class VATSummaryOut(BaseModel):
    entity_id: int
    year: int
    month: int
    output_vat: Decimal
    input_vat: Decimal
    effective_input_vat: Decimal
    net_vat: Decimal
    position: VATPosition
    annual_turnover: Decimal
    is_vat_exempt: bool
    total_remitted: Decimal
    pending: Decimal
    status: RemittanceStatus
    deadline: dt.date

    model_config = {"from_attributes": True}

"""
Tax Liability Routes.

Liability summaries, classification repair and bracket tax calculation.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Query

from taxcore.api.dependencies import ClassificationServiceDep, LiabilityServiceDep
from taxcore.rules.loader import get_rules
from taxcore.services.tax_reporting.computations import compute_personal_income_tax

from .schemas import BandOut, BracketTaxOut, BracketTaxRequest, ClassificationOut, LiabilitySummaryOut

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/liability/{entity_id}", response_model=LiabilitySummaryOut)
def get_liability_summary(
    entity_id: int,
    service: LiabilityServiceDep,
    tax_year: int = Query(..., description="Tax year"),
):
    """Derive the CIT (companies) or PIT (individuals, businesses) summary."""
    return service.compute_summary(entity_id, tax_year)


@router.post("/liability/{entity_id}/classification", response_model=ClassificationOut)
def reconcile_classification(
    entity_id: int,
    service: ClassificationServiceDep,
    tax_year: int = Query(..., description="Tax year"),
):
    """Recompute a company's classification and store it if it changed."""
    return service.reconcile_and_persist_classification(entity_id, tax_year)


@router.post("/brackets/compute", response_model=BracketTaxOut)
def compute_bracket_tax(payload: BracketTaxRequest):
    """Progressive tax on an annual amount using the year's PIT bands."""
    rules = get_rules(payload.tax_year)
    result = compute_personal_income_tax(payload.taxable_amount, rules.pit)
    return BracketTaxOut(
        tax_year=payload.tax_year,
        taxable_amount=payload.taxable_amount,
        tax=result.tax,
        effective_rate=result.effective_rate,
        band=result.band,
        breakdown=[BandOut.model_validate(band) for band in result.breakdown],
    )

"""
VAT Routes.

Handles VAT on an amount and the monthly VAT summary.
"""
from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, HTTPException, Query

from taxcore.api.dependencies import VATServiceDep

from .schemas import VATAmountOut, VATSummaryOut

router = APIRouter(prefix="/vat")


@router.get("/calculate", response_model=VATAmountOut)
def calculate_vat(
    service: VATServiceDep,
    amount: Decimal = Query(..., ge=0, description="Amount in Naira before VAT"),
    tax_year: int = Query(..., description="Tax year whose VAT rate applies"),
):
    return service.calculate_vat(amount, tax_year)


@router.get("/{entity_id}/summary", response_model=VATSummaryOut)
def get_vat_summary(
    entity_id: int,
    service: VATServiceDep,
    year: int = Query(..., description="Year"),
    month: int = Query(..., ge=1, le=12, description="Month"),
):
    """
    Output VAT against input VAT for one month.

    Returns the net position (payable, refundable or zero), the amount
    still pending after remittances, and the filing status.
    """
    try:
        return service.compute_vat_summary(entity_id, year, month)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

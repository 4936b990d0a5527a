"""
Withholding Credit Routes.
"""
from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query

from taxcore.api.dependencies import CreditLedgerDep

from .schemas import AvailableCreditsOut, CreditAllocationOut, CreditAllocationRequest

router = APIRouter(prefix="/credits")


@router.get("/{entity_id}", response_model=AvailableCreditsOut)
def get_available_credits(
    entity_id: int,
    ledger: CreditLedgerDep,
    tax_year: int = Query(..., description="Tax year"),
):
    """Usable withholding credit balance for the tax year."""
    return AvailableCreditsOut(
        entity_id=entity_id,
        tax_year=tax_year,
        available_credit=ledger.get_available_credits(entity_id, tax_year),
    )


@router.post("/{entity_id}/allocate", response_model=CreditAllocationOut)
def allocate_credits(entity_id: int, payload: CreditAllocationRequest, ledger: CreditLedgerDep):
    """Apply credits to a liability, oldest first."""
    try:
        return ledger.allocate(entity_id, payload.tax_year, payload.liability_amount, payload.tax_kind)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

"""
Withholding Tax Routes.
"""
from __future__ import annotations

from fastapi import APIRouter, Query

from taxcore.api.dependencies import WithholdingServiceDep
from taxcore.services.withholding_service import WithholdingRateResolver

from .schemas import WithholdingComputationOut, WithholdingPreviewRequest, WithholdingSummaryOut

router = APIRouter(prefix="/withholding")


@router.post("/preview", response_model=WithholdingComputationOut)
def preview_withholding(payload: WithholdingPreviewRequest):
    """Compute the withholding on a payment without recording it."""
    return WithholdingRateResolver.compute_withholding(
        payload.amount,
        payload.payment_category,
        payload.payee_type,
        payload.is_non_resident,
        payload.payee_is_small_entity,
        payload.is_service_payment,
        payload.tax_year,
    )


@router.get("/{entity_id}/summary", response_model=WithholdingSummaryOut)
def get_withholding_summary(
    entity_id: int,
    service: WithholdingServiceDep,
    year: int = Query(..., description="Year"),
    month: int = Query(..., ge=1, le=12, description="Month"),
):
    """Tax withheld in a month against the amount remitted."""
    return service.compute_withholding_summary(entity_id, year, month)

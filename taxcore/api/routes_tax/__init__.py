"""
Tax API Routes Module.

All routes are prefixed with /tax.

Sub-modules:
- liability: Liability summaries, classification repair, bracket tax
- withholding: Withholding preview and monthly summary
- credits: Withholding credit balance and allocation
- vat: VAT on an amount and the monthly VAT summary
"""
from __future__ import annotations

from fastapi import APIRouter

from .credits import router as credits_router
from .liability import router as liability_router
from .vat import router as vat_router
from .withholding import router as withholding_router

# Main router with /tax prefix
router = APIRouter(prefix="/tax", tags=["tax"])

# Include all sub-routers
router.include_router(liability_router)
router.include_router(withholding_router)
router.include_router(credits_router)
router.include_router(vat_router)

__all__ = ["router"]

"""Common dependencies for the tax routes."""
from typing import Annotated, TypeAlias

from fastapi import Depends
from sqlalchemy.orm import Session

from taxcore.db.session import get_db
from taxcore.services.credit_ledger import CreditLedger
from taxcore.services.liability_service import LiabilityService
from taxcore.services.tax_service import ClassificationService
from taxcore.services.vat_service import VATService
from taxcore.services.withholding_service import WithholdingService

DbDep: TypeAlias = Annotated[Session, Depends(get_db)]


def get_liability_service(db: DbDep) -> LiabilityService:
    return LiabilityService(db)


def get_classification_service(db: DbDep) -> ClassificationService:
    return ClassificationService(db)


def get_withholding_service(db: DbDep) -> WithholdingService:
    return WithholdingService(db)


def get_credit_ledger(db: DbDep) -> CreditLedger:
    return CreditLedger(db)


def get_vat_service(db: DbDep) -> VATService:
    return VATService(db)


LiabilityServiceDep: TypeAlias = Annotated[LiabilityService, Depends(get_liability_service)]
ClassificationServiceDep: TypeAlias = Annotated[ClassificationService, Depends(get_classification_service)]
WithholdingServiceDep: TypeAlias = Annotated[WithholdingService, Depends(get_withholding_service)]
CreditLedgerDep: TypeAlias = Annotated[CreditLedger, Depends(get_credit_ledger)]
VATServiceDep: TypeAlias = Annotated[VATService, Depends(get_vat_service)]

"""
Expense records used as allowable deductions.

Only expenses flagged tax-deductible, dated within the tax year and booked
against the right account type count toward a liability calculation.
"""
from __future__ import annotations

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taxcore.db.base_class import Base
from taxcore.models.tax_models import utcnow

if TYPE_CHECKING:
    from taxcore.models.models import TaxEntity


class ExpenseCategory(str, Enum):
    """Business expense categories."""
    RENT = "rent"
    UTILITIES = "utilities"
    DATA_INTERNET = "data_internet"
    TRANSPORT = "transport"
    SUPPLIES = "supplies"
    EQUIPMENT = "equipment"
    MARKETING = "marketing"
    PROFESSIONAL_FEES = "professional_fees"
    STAFF_WAGES = "staff_wages"
    MAINTENANCE = "maintenance"
    OTHER = "other"


class Expense(Base):
    """
    Expense record.

    ``account_type`` keeps company expenses apart from individual and business
    expenses; the two must never be mixed into the same liability calculation.
    WHT columns are populated when tax was withheld on the payment.
    """
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(primary_key=True)
    entity_id: Mapped[int] = mapped_column(ForeignKey("tax_entities.id"), index=True)
    account_type: Mapped[str] = mapped_column(String(20), index=True)

    amount: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    date: Mapped[dt.date] = mapped_column(Date, index=True)
    category: Mapped[str] = mapped_column(String(50), default=ExpenseCategory.OTHER.value)
    description: Mapped[str] = mapped_column(String(500), default="")
    # Input VAT paid to the supplier; recoverable against output VAT
    vat_amount: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), default=Decimal("0"))
    is_tax_deductible: Mapped[bool] = mapped_column(Boolean, default=False)

    # Withholding metadata (outgoing payment)
    wht_type: Mapped[str | None] = mapped_column(String(40))
    wht_amount: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    payee_name: Mapped[str | None] = mapped_column(String(200))
    payee_tin: Mapped[str | None] = mapped_column(String(20))

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    entity: Mapped[TaxEntity] = relationship("TaxEntity", back_populates="expenses")

    def __repr__(self):
        return f"<Expense(id={self.id}, entity_id={self.entity_id}, amount={self.amount}, category={self.category}, date={self.date})>"

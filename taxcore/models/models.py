from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taxcore.db.base_class import Base
from taxcore.models.tax_models import EntityType, InvoiceStatus, utcnow

if TYPE_CHECKING:
    from taxcore.models.expense import Expense
else:
    # Import at runtime for SQLAlchemy relationship resolution
    from taxcore.models import expense  # noqa: F401
    from taxcore.models import tax_models  # noqa: F401
    Expense = "Expense"


class TaxEntity(Base):
    """Taxpayer: an individual, a company, or an unincorporated business.

    ``tax_classification`` is a stored copy for companies only. The liability
    engine always recomputes it from derived turnover; the stored value is
    corrected through the explicit self-heal path.
    """
    __tablename__ = "tax_entities"

    id: Mapped[int] = mapped_column(primary_key=True)
    entity_type: Mapped[str] = mapped_column(String(20), index=True)
    name: Mapped[str] = mapped_column(String(200))
    tin: Mapped[str | None] = mapped_column(String(20), index=True)
    tax_classification: Mapped[str | None] = mapped_column(String(20))
    fixed_assets: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"))
    is_non_resident: Mapped[bool] = mapped_column(Boolean, default=False)
    # A business is owned by an individual; its revenue feeds the owner's PIT
    owner_id: Mapped[int | None] = mapped_column(ForeignKey("tax_entities.id"), index=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    owner: Mapped[TaxEntity | None] = relationship(
        "TaxEntity", remote_side="TaxEntity.id", back_populates="businesses"
    )
    businesses: Mapped[list[TaxEntity]] = relationship("TaxEntity", back_populates="owner")
    invoices: Mapped[list[Invoice]] = relationship("Invoice", back_populates="entity")
    expenses: Mapped[list[Expense]] = relationship("Expense", back_populates="entity")  # type: ignore

    @property
    def kind(self) -> EntityType:
        return EntityType(self.entity_type)

    def __repr__(self):
        return f"<TaxEntity(id={self.id}, type={self.entity_type}, name={self.name!r})>"


class Invoice(Base):
    """Sales invoice. Paid invoices are the revenue source for the tax year."""
    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(primary_key=True)
    entity_id: Mapped[int] = mapped_column(ForeignKey("tax_entities.id"), index=True)
    customer_name: Mapped[str] = mapped_column(String(200), default="")
    status: Mapped[str] = mapped_column(String(20), default=InvoiceStatus.PENDING.value, index=True)
    issue_date: Mapped[dt.date] = mapped_column(Date, index=True)
    subtotal: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))   # Pre-VAT
    vat_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"))
    total: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    paid_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    entity: Mapped[TaxEntity] = relationship("TaxEntity", back_populates="invoices")


class IncomeRecord(Base):
    """Manually entered income; month None means an annual figure."""
    __tablename__ = "income_records"
    __table_args__ = (
        UniqueConstraint("entity_id", "tax_year", "month", name="uq_income_entity_period"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    entity_id: Mapped[int] = mapped_column(ForeignKey("tax_entities.id"), index=True)
    tax_year: Mapped[int] = mapped_column(Integer, index=True)
    month: Mapped[int | None] = mapped_column(Integer)
    gross_amount: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    source: Mapped[str] = mapped_column(String(100), default="")
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class EmploymentDeduction(Base):
    """Annual statutory and allowable deductions declared by an individual."""
    __tablename__ = "employment_deductions"
    __table_args__ = (
        UniqueConstraint("entity_id", "tax_year", name="uq_employment_deduction_year"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    entity_id: Mapped[int] = mapped_column(ForeignKey("tax_entities.id"), index=True)
    tax_year: Mapped[int] = mapped_column(Integer)
    annual_pension: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"))
    annual_nhf: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"))
    annual_nhis: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"))
    annual_housing_loan_interest: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"))
    annual_life_insurance: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"))
    annual_rent: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"))
    source: Mapped[str] = mapped_column(String(30), default="manual")

"""
Tax enums and the withholding / remittance models.

Models for:
- Withholding tax deductions (one per payer transaction)
- Withholding credits held by the payee (one per withholding record)
- Monthly withholding remittances made by the payer
- CIT / PIT remittances reported by the taxpayer

Liability summaries are never stored here; they are derived on every request.
"""
from __future__ import annotations

import datetime as dt
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taxcore.db.base_class import Base


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class EntityType(str, Enum):
    """Kind of taxpayer. Businesses are unincorporated sole proprietorships."""
    INDIVIDUAL = "individual"
    COMPANY = "company"
    BUSINESS = "business"


class AccountType(str, Enum):
    """Ledger an expense is booked against. Company books never mix with personal ones."""
    INDIVIDUAL = "individual"
    COMPANY = "company"
    BUSINESS = "business"


class TaxClassification(str, Enum):
    """Company size classes. The rule set decides which ones exist in a year."""
    SMALL = "small"      # Exempt (0% CIT, no development levy)
    MEDIUM = "medium"
    LARGE = "large"


class TaxKind(str, Enum):
    CIT = "cit"
    PIT = "pit"
    WHT = "wht"
    VAT = "vat"


class InvoiceStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"            # Only paid invoices count toward revenue
    CANCELLED = "cancelled"


class RemittanceStatus(str, Enum):
    """Status of a remittance record, and of a derived liability summary."""
    PENDING = "pending"
    REMITTED = "remitted"
    OVERDUE = "overdue"
    COMPLIANT = "compliant"  # Summary-only status


class TransactionType(str, Enum):
    """Where a withholding record came from."""
    INVOICE = "invoice"   # Incoming payment: the recording entity is the payee
    EXPENSE = "expense"   # Outgoing payment: the recording entity is the payer
    MANUAL = "manual"


class WHTCreditStatus(str, Enum):
    AVAILABLE = "available"
    CARRIED_FORWARD = "carried_forward"
    APPLIED = "applied"      # Terminal: remaining balance is zero


class WHTCategory(str, Enum):
    """Withholding tax payment categories."""
    PROFESSIONAL_SERVICES = "professional_services"
    TECHNICAL_SERVICES = "technical_services"
    MANAGEMENT_SERVICES = "management_services"
    OTHER_SERVICES = "other_services"
    DIVIDENDS = "dividends"
    INTEREST = "interest"
    ROYALTIES = "royalties"
    RENT = "rent"
    COMMISSION = "commission"
    CONSTRUCTION = "construction"
    DIRECTORS_FEES = "directors_fees"


# Passive income is never exempt from withholding, whatever the payee's size.
PASSIVE_WHT_CATEGORIES = frozenset(
    {WHTCategory.DIVIDENDS, WHTCategory.INTEREST, WHTCategory.ROYALTIES, WHTCategory.RENT}
)


class PayeeType(str, Enum):
    """Column of the WHT rate table. Businesses and individuals share a column."""
    COMPANY = "company"
    INDIVIDUAL = "individual"

    @classmethod
    def for_entity_type(cls, entity_type: EntityType | str) -> PayeeType:
        if EntityType(entity_type) == EntityType.COMPANY:
            return cls.COMPANY
        return cls.INDIVIDUAL


class WithholdingRecord(Base):
    """A single withholding deduction made by a payer on one payment."""
    __tablename__ = "withholding_records"
    __table_args__ = (
        UniqueConstraint(
            "entity_id", "transaction_id", "transaction_type",
            name="uq_wht_record_transaction",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    # Entity whose books hold the transaction: the payer for expenses, the
    # invoicing payee for invoices. Remittances are tracked against it.
    entity_id: Mapped[int] = mapped_column(ForeignKey("tax_entities.id"), index=True)
    # Beneficiary of the credit; None when the payee is not a tracked entity
    payee_entity_id: Mapped[int | None] = mapped_column(ForeignKey("tax_entities.id"), index=True)
    payee_type: Mapped[str] = mapped_column(String(20))
    payee_name: Mapped[str] = mapped_column(String(200))
    payee_tin: Mapped[str | None] = mapped_column(String(20))

    transaction_type: Mapped[str] = mapped_column(String(20))
    transaction_id: Mapped[int | None] = mapped_column(Integer)

    payment_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2))
    wht_type: Mapped[str] = mapped_column(String(40))
    wht_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2))
    wht_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2))
    net_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2))

    payment_date: Mapped[dt.date] = mapped_column(Date)
    month: Mapped[int] = mapped_column(Integer)
    year: Mapped[int] = mapped_column(Integer, index=True)
    description: Mapped[str] = mapped_column(String(500), default="")
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    credit: Mapped[WithholdingCredit | None] = relationship(
        "WithholdingCredit",
        back_populates="record",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return (
            f"<WithholdingRecord(id={self.id}, entity={self.entity_id}, "
            f"wht_type={self.wht_type}, wht_amount={self.wht_amount}, period={self.year}-{self.month:02d})>"
        )


class WithholdingCredit(Base):
    """Creditable balance of a withholding record, consumed FIFO against liability.

    ``version_id`` is SQLAlchemy's optimistic lock: a concurrent allocation that
    read a stale row fails its UPDATE instead of double-spending the balance.
    """
    __tablename__ = "withholding_credits"

    id: Mapped[int] = mapped_column(primary_key=True)
    withholding_record_id: Mapped[int] = mapped_column(
        ForeignKey("withholding_records.id"), unique=True, index=True
    )
    entity_id: Mapped[int | None] = mapped_column(ForeignKey("tax_entities.id"), index=True)
    entity_type: Mapped[str] = mapped_column(String(20))
    tax_year: Mapped[int] = mapped_column(Integer, index=True)

    wht_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2))
    applied_to_pit: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"))
    applied_to_cit: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"))
    remaining_credit: Mapped[Decimal] = mapped_column(Numeric(15, 2))
    status: Mapped[str] = mapped_column(String(20), default=WHTCreditStatus.AVAILABLE.value)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    record: Mapped[WithholdingRecord] = relationship("WithholdingRecord", back_populates="credit")

    __mapper_args__ = {"version_id_col": version_id}


class WithholdingRemittance(Base):
    """Monthly remittance of withheld tax by the payer to the revenue service."""
    __tablename__ = "withholding_remittances"
    __table_args__ = (
        UniqueConstraint("entity_id", "month", "year", name="uq_wht_remittance_period"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    entity_id: Mapped[int] = mapped_column(ForeignKey("tax_entities.id"), index=True)
    month: Mapped[int] = mapped_column(Integer)
    year: Mapped[int] = mapped_column(Integer)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2))
    reference: Mapped[str] = mapped_column(String(100), default="")
    remittance_date: Mapped[dt.date | None] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String(20), default=RemittanceStatus.PENDING.value)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class VATRemittance(Base):
    """Monthly VAT payment for one period; at most one per entity and month."""
    __tablename__ = "vat_remittances"
    __table_args__ = (
        UniqueConstraint("entity_id", "month", "year", name="uq_vat_remittance_period"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    entity_id: Mapped[int] = mapped_column(ForeignKey("tax_entities.id"), index=True)
    month: Mapped[int] = mapped_column(Integer)
    year: Mapped[int] = mapped_column(Integer)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2))
    reference: Mapped[str] = mapped_column(String(100), default="")
    remittance_date: Mapped[dt.date | None] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String(20), default=RemittanceStatus.PENDING.value)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class TaxRemittance(Base):
    """User-reported CIT or PIT payment to the revenue service.

    Several remittances may exist per year; they are summed, never netted here.
    """
    __tablename__ = "tax_remittances"

    id: Mapped[int] = mapped_column(primary_key=True)
    entity_id: Mapped[int] = mapped_column(ForeignKey("tax_entities.id"), index=True)
    tax_kind: Mapped[str] = mapped_column(String(10))
    tax_year: Mapped[int] = mapped_column(Integer, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2))
    reference: Mapped[str] = mapped_column(String(100), default="")
    remittance_date: Mapped[dt.date | None] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String(20), default=RemittanceStatus.PENDING.value)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

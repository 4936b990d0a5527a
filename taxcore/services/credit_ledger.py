"""
Withholding Credit Ledger.

Credits are consumed oldest first. A credit becomes usable only once the
withholding behind it has been remitted for its month. Allocation is the
only operation that mutates credits, so it is serialised per entity and tax
year in-process and protected by the credit's version counter across
processes.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from taxcore.core.config import get_settings
from taxcore.core.exceptions import CreditAllocationConflictError, InvariantViolationError
from taxcore.models.tax_models import (
    RemittanceStatus,
    TaxKind,
    WHTCreditStatus,
    WithholdingCredit,
    WithholdingRecord,
    WithholdingRemittance,
)
from taxcore.rules.loader import validate_tax_year
from taxcore.utils.currency import ZERO, round_money, to_decimal

logger = logging.getLogger(__name__)

OPEN_CREDIT_STATUSES = (WHTCreditStatus.AVAILABLE.value, WHTCreditStatus.CARRIED_FORWARD.value)


@dataclass(frozen=True)
class CreditAllocation:
    liability_after_credit: Decimal
    credit_applied: Decimal
    remaining_credit: Decimal


class _PeriodLocks:
    """Fixed pool of locks; each (entity, tax year) always maps to the same stripe.

    Unrelated periods may share a stripe and wait on each other, but the pool
    never grows with the number of entities.
    """

    def __init__(self, stripes: int = 64):
        self._locks = tuple(threading.Lock() for _ in range(stripes))

    def __len__(self) -> int:
        return len(self._locks)

    def get(self, entity_id: int, tax_year: int) -> threading.Lock:
        return self._locks[hash((entity_id, tax_year)) % len(self._locks)]


_period_locks = _PeriodLocks()


class CreditLedger:
    """Available WHT credits and FIFO allocation against a liability."""

    def __init__(self, db: Session, max_retries: Optional[int] = None):
        self.db = db
        self.max_retries = max_retries or get_settings().CREDIT_ALLOCATION_MAX_RETRIES

    def _usable_credits(self, entity_id: int, tax_year: int):
        """Open credits whose source month has a remitted withholding remittance."""
        return (
            select(WithholdingCredit)
            .join(WithholdingRecord, WithholdingCredit.withholding_record_id == WithholdingRecord.id)
            .join(
                WithholdingRemittance,
                and_(
                    WithholdingRemittance.entity_id == WithholdingRecord.entity_id,
                    WithholdingRemittance.month == WithholdingRecord.month,
                    WithholdingRemittance.year == WithholdingRecord.year,
                ),
            )
            .where(
                WithholdingCredit.entity_id == entity_id,
                WithholdingCredit.tax_year == tax_year,
                WithholdingCredit.status.in_(OPEN_CREDIT_STATUSES),
                WithholdingRemittance.status == RemittanceStatus.REMITTED.value,
            )
        )

    def get_available_credits(self, entity_id: int, tax_year: int) -> Decimal:
        validate_tax_year(tax_year)
        subquery = self._usable_credits(entity_id, tax_year).subquery()
        total = self.db.scalar(select(func.coalesce(func.sum(subquery.c.remaining_credit), 0)))
        return round_money(total)

    def get_applied_credits(self, entity_id: int, tax_year: int, tax_kind: TaxKind | str) -> Decimal:
        """Credit already consumed against the year's PIT or CIT by earlier allocations."""
        validate_tax_year(tax_year)
        kind = TaxKind(tax_kind)
        if kind not in (TaxKind.PIT, TaxKind.CIT):
            raise ValueError(f"Credits apply to PIT or CIT only, got {kind.value}")
        column = WithholdingCredit.applied_to_pit if kind == TaxKind.PIT else WithholdingCredit.applied_to_cit
        total = self.db.scalar(
            select(func.coalesce(func.sum(column), 0)).where(
                WithholdingCredit.entity_id == entity_id,
                WithholdingCredit.tax_year == tax_year,
            )
        )
        return round_money(total)

    def allocate(
        self,
        entity_id: int,
        tax_year: int,
        liability_amount,
        tax_kind: TaxKind | str,
    ) -> CreditAllocation:
        """
        Apply available credits to a liability, oldest credit first.

        Every credit touched is written in one transaction. A concurrent
        writer that changed a credit in the meantime makes the commit fail
        on its version check; the allocation then re-reads and retries.

        Raises:
            ValueError: negative liability or a tax kind other than PIT/CIT.
            CreditAllocationConflictError: retries exhausted.
        """
        validate_tax_year(tax_year)
        kind = TaxKind(tax_kind)
        if kind not in (TaxKind.PIT, TaxKind.CIT):
            raise ValueError(f"Credits apply to PIT or CIT only, got {kind.value}")
        liability = round_money(liability_amount)
        if liability < 0:
            raise ValueError(f"Liability must be non-negative, got {liability}")

        with _period_locks.get(entity_id, tax_year):
            for attempt in range(1, self.max_retries + 1):
                try:
                    allocation = self._allocate_once(entity_id, tax_year, liability, kind)
                    self.db.commit()
                except StaleDataError:
                    self.db.rollback()
                    logger.warning(
                        "Credit allocation conflict entity=%s tax_year=%s attempt=%s/%s",
                        entity_id,
                        tax_year,
                        attempt,
                        self.max_retries,
                    )
                    continue
                except Exception:
                    self.db.rollback()
                    raise

                if allocation.credit_applied > 0:
                    logger.info(
                        "Applied WHT credit entity=%s tax_year=%s kind=%s applied=%s liability_after=%s",
                        entity_id,
                        tax_year,
                        kind.value,
                        allocation.credit_applied,
                        allocation.liability_after_credit,
                    )
                return allocation

        raise CreditAllocationConflictError(entity_id, tax_year, self.max_retries)

    def _allocate_once(self, entity_id: int, tax_year: int, liability: Decimal, kind: TaxKind) -> CreditAllocation:
        credits = self.db.scalars(
            self._usable_credits(entity_id, tax_year).order_by(
                WithholdingCredit.created_at, WithholdingCredit.id
            )
        ).all()

        owed = liability
        applied_total = ZERO
        for credit in credits:
            if owed <= 0:
                break
            remaining = to_decimal(credit.remaining_credit)
            if remaining <= 0:
                continue
            take = min(remaining, owed)
            if kind == TaxKind.PIT:
                credit.applied_to_pit = to_decimal(credit.applied_to_pit) + take
            else:
                credit.applied_to_cit = to_decimal(credit.applied_to_cit) + take
            credit.remaining_credit = remaining - take
            if credit.remaining_credit == 0:
                credit.status = WHTCreditStatus.APPLIED.value
            self._check_conservation(credit)
            owed -= take
            applied_total += take

        self.db.flush()
        remaining_total = sum(
            (to_decimal(c.remaining_credit) for c in credits if c.status in OPEN_CREDIT_STATUSES),
            ZERO,
        )
        return CreditAllocation(
            liability_after_credit=round_money(owed),
            credit_applied=round_money(applied_total),
            remaining_credit=round_money(remaining_total),
        )

    @staticmethod
    def _check_conservation(credit: WithholdingCredit) -> None:
        total = to_decimal(credit.applied_to_pit) + to_decimal(credit.applied_to_cit) + to_decimal(
            credit.remaining_credit
        )
        if total != to_decimal(credit.wht_amount) or to_decimal(credit.remaining_credit) < 0:
            raise InvariantViolationError(
                "Withholding credit no longer balances",
                credit_id=credit.id,
                wht_amount=str(credit.wht_amount),
                applied_to_pit=str(credit.applied_to_pit),
                applied_to_cit=str(credit.applied_to_cit),
                remaining_credit=str(credit.remaining_credit),
            )

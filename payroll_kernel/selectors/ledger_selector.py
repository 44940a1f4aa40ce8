"""
Module: payroll_kernel.selectors.ledger_selector
Responsibility: Read access to a period's approval ledger in sequence order.
Architecture position: Kernel > Selectors.

Audit relevance:
    The ledger is the authoritative status history of a period; this is its
    read path for audit and reporting.
"""

from uuid import UUID

from sqlalchemy import select

from payroll_kernel.domain.dtos import LedgerEntryInfo
from payroll_kernel.models.ledger import ApprovalLedgerEntry
from payroll_kernel.selectors.base import BaseSelector


class LedgerSelector(BaseSelector[ApprovalLedgerEntry]):
    """Query approval ledger entries."""

    def entries(self, period_id: UUID) -> list[ApprovalLedgerEntry]:
        return list(
            self.session.execute(
                select(ApprovalLedgerEntry)
                .where(ApprovalLedgerEntry.period_id == period_id)
                .order_by(ApprovalLedgerEntry.seq)
            ).scalars()
        )

    def history(self, period_id: UUID) -> list[LedgerEntryInfo]:
        """All entries for the period, ``seq`` ascending."""
        return [LedgerEntryInfo.from_model(e) for e in self.entries(period_id)]

    def latest(self, period_id: UUID) -> LedgerEntryInfo | None:
        entry = self.session.execute(
            select(ApprovalLedgerEntry)
            .where(ApprovalLedgerEntry.period_id == period_id)
            .order_by(ApprovalLedgerEntry.seq.desc())
            .limit(1)
        ).scalar_one_or_none()
        return LedgerEntryInfo.from_model(entry) if entry is not None else None

"""
Module: payroll_kernel.models.ledger
Responsibility: ORM persistence for the approval ledger -- the append-only,
    hash-chained history of every period status change.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - UNIQUE(period_id, seq): one entry per sequence number per period.
    - Append-only: UPDATE and DELETE raise ImmutabilityViolationError
      (db/immutability.py).
    - ``hash`` chains to the previous entry of the same period via
      ``prev_hash`` (NULL for the first entry).

Failure modes:
    - IntegrityError on a duplicate seq.
    - ImmutabilityViolationError on any modification.

Audit relevance:
    The ledger is the authoritative record of who moved a period between
    statuses, when, and with what totals.  ``verify_chain`` on the approval
    ledger service detects tampering.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import Base, UUIDString


class ApprovalLedgerEntry(Base):
    """One immutable lifecycle event for a period."""

    __tablename__ = "payroll_approval_ledger"

    __table_args__ = (
        UniqueConstraint("period_id", "seq", name="uq_payroll_ledger_seq"),
        Index("idx_payroll_ledger_period", "period_id", "seq"),
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payroll_periods.id"),
        nullable=False,
    )

    seq: Mapped[int] = mapped_column(Integer, nullable=False)

    step: Mapped[str] = mapped_column(String(40), nullable=False)
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    status_from: Mapped[str] = mapped_column(String(30), nullable=False)
    status_to: Mapped[str] = mapped_column(String(30), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(30), nullable=False)

    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Period totals at the moment of the transition
    period_snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<ApprovalLedgerEntry #{self.seq} {self.step}: {self.status_from}->{self.status_to}>"

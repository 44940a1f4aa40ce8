"""
Module: payroll_kernel.models.period
Responsibility: ORM persistence for payroll periods -- the unit of calculation,
    review, approval, locking and payment.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - period_number is unique (uq_payroll_period_number).
    - row_version is SQLAlchemy's version_id_col: every UPDATE of a period
      row is a compare-and-set, so two writers that loaded the same version
      cannot both commit a status change.
    - status is only written by the approval ledger (services layer).
    - A period that owns calculations cannot be deleted (db/immutability.py).

Failure modes:
    - IntegrityError on duplicate period_number.
    - StaleDataError on a concurrent update (translated to
      LedgerConflictError by the approval ledger).

Audit relevance:
    The period row is the mutable head of the lifecycle; its full history is
    the approval ledger.  Aggregates are recomputed from current calculation
    versions whenever calculations change.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import Money, TrackedBase, UUIDString
from payroll_kernel.domain.period_lifecycle import PeriodStatus


class PayrollPeriod(TrackedBase):
    """
    A payroll period and its running totals.

    Contract:
        Created in ``draft``.  Every status change after creation is paired
        with an ApprovalLedgerEntry in the same transaction.

    Guarantees:
        - ``locked`` is True exactly while status is ``finalized`` or later
          (until an unlock).
        - ``calculation_run_id`` is non-null exactly while a run holds the
          calculation lease.

    Non-goals:
        - Does NOT validate transitions; see services/approval_ledger.py.
    """

    __tablename__ = "payroll_periods"

    __table_args__ = (
        UniqueConstraint("period_number", name="uq_payroll_period_number"),
        Index("idx_payroll_period_dates", "period_start", "period_end"),
        Index("idx_payroll_period_status", "status"),
    )

    # e.g. "2026-01-A", "2026-01", "2026-12-13M"
    period_number: Mapped[str] = mapped_column(String(30), nullable=False)

    period_name: Mapped[str] = mapped_column(String(100), nullable=False)

    period_type: Mapped[str] = mapped_column(String(30), nullable=False)

    pay_frequency: Mapped[str] = mapped_column(String(20), nullable=False)

    # Inclusive boundaries
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)

    timekeeping_cutoff_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    leave_cutoff_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    adjustment_deadline: Mapped[date | None] = mapped_column(Date, nullable=True)

    status: Mapped[str] = mapped_column(
        String(30),
        default=PeriodStatus.DRAFT.value,
        nullable=False,
    )

    locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Lease: id of the CalculationRun currently computing this period
    calculation_run_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    calculation_retries: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_calculation_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Last ledger sequence number issued for this period
    ledger_seq: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Aggregates over current calculation versions
    employee_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    exceptions_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    adjustments_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_gross_pay: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    total_deductions: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    total_net_pay: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    total_government_contributions: Mapped[Money] = mapped_column(
        default=Decimal("0"), nullable=False,
    )
    total_withholding_tax: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    total_loan_deductions: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    total_adjustments: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Soft archival
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    row_version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": row_version}

    def __repr__(self) -> str:
        return f"<PayrollPeriod {self.period_number}: {self.status}>"

    @property
    def status_enum(self) -> PeriodStatus:
        return PeriodStatus(self.status)

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    def contains_date(self, check_date: date) -> bool:
        """Check if a date falls within this period."""
        return self.period_start <= check_date <= self.period_end

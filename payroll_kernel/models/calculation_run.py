"""
Module: payroll_kernel.models.calculation_run
Responsibility: ORM persistence for calculation runs -- one batch
    computation over a period, with counters that callers poll for progress.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - run_number increases per period.
    - processed_employees == calculated_count + exception_count + failed_count
      is maintained by the run service.

Audit relevance:
    Each run is referenced by the calculations it produced and by the
    calculation log, so every version can be traced to the run that made it.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase, UUIDString
from payroll_kernel.domain.money import round_money
from payroll_kernel.domain.statuses import RunStatus


class CalculationRun(TrackedBase):
    """Progress and outcome of one calculation run."""

    __tablename__ = "payroll_calculation_runs"

    __table_args__ = (
        Index("idx_payroll_run_period", "period_id", "run_number"),
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payroll_periods.id"),
        nullable=False,
    )

    run_number: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(
        String(30),
        default=RunStatus.RUNNING.value,
        nullable=False,
    )

    total_employees: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    processed_employees: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    calculated_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    exception_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    rate_table_version: Mapped[str | None] = mapped_column(String(50), nullable=True)
    error_summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<CalculationRun #{self.run_number}: {self.status}>"

    @property
    def progress_percentage(self) -> Decimal:
        if not self.total_employees:
            return Decimal("100.00")
        return round_money(
            Decimal(self.processed_employees) * 100 / Decimal(self.total_employees)
        )

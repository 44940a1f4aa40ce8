"""
Module: payroll_kernel.models.calculation
Responsibility: ORM persistence for versioned employee calculations.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - UNIQUE(period_id, employee_id, version): versions are strictly
      increasing per employee and period.
    - Append-only: a calculation row is never deleted, and after insert only
      its ``status`` may change (db/immutability.py).  A recalculation
      inserts version N+1 and marks version N ``superseded``.
    - At most one non-superseded version per (period, employee); that row is
      the current version.

Failure modes:
    - IntegrityError on a duplicate version number.
    - ImmutabilityViolationError on any change to amounts, snapshot, result
      or hash after insert.

Audit relevance:
    The stored ``input_snapshot`` and ``rate_table_version`` make every
    version recomputable; ``result_hash`` fingerprints the stored result.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import Money, TrackedBase, UUIDString
from payroll_kernel.domain.statuses import CalculationStatus


class EmployeeCalculation(TrackedBase):
    """
    One calculation version for one employee in one period.

    Contract:
        Written once by the calculation run service (version 1 or a full
        recalculation) or the adjustment service (version N+1).  Afterwards
        only lifecycle status moves.

    Guarantees:
        - ``previous_version_id`` links version N+1 to version N.
        - Amount columns mirror ``result`` for querying and aggregation.
    """

    __tablename__ = "payroll_employee_calculations"

    __table_args__ = (
        UniqueConstraint(
            "period_id", "employee_id", "version",
            name="uq_payroll_calc_version",
        ),
        Index("idx_payroll_calc_period_employee", "period_id", "employee_id"),
        Index("idx_payroll_calc_status", "period_id", "status"),
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payroll_periods.id"),
        nullable=False,
    )

    run_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("payroll_calculation_runs.id"),
        nullable=True,
    )

    employee_id: Mapped[str] = mapped_column(String(50), nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    previous_version_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("payroll_employee_calculations.id"),
        nullable=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=CalculationStatus.CALCULATED.value,
        nullable=False,
    )

    # Frozen inputs and canonical output
    input_snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    result: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    result_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    rate_table_version: Mapped[str | None] = mapped_column(String(50), nullable=True)

    basic_pay: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    overtime_pay: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    allowances_total: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    bonuses_total: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    gross_pay: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    government_contributions: Mapped[Money] = mapped_column(
        default=Decimal("0"), nullable=False,
    )
    withholding_tax: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    loan_deductions: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    other_deductions: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    total_deductions: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    net_pay: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    adjustments_total: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)
    final_net_pay: Mapped[Money] = mapped_column(default=Decimal("0"), nullable=False)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<EmployeeCalculation {self.employee_id} v{self.version}: {self.status}>"
        )

    @property
    def is_current(self) -> bool:
        return self.status != CalculationStatus.SUPERSEDED.value

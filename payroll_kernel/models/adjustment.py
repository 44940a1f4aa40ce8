"""
Module: payroll_kernel.models.adjustment
Responsibility: ORM persistence for manual adjustments proposed against a
    specific calculation version.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Adjustments are never deleted.
    - Once ``applied`` the row is frozen (db/immutability.py).
    - ``resulting_calculation_id`` is set exactly when status is ``applied``.

Audit relevance:
    Requester, decider and applier are recorded with clock timestamps.  An
    applied adjustment names the calculation version it produced.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import Money, TrackedBase, UUIDString
from payroll_kernel.domain.statuses import AdjustmentStatus


class PayrollAdjustment(TrackedBase):
    """A manual change to one employee's pay, awaiting or past decision."""

    __tablename__ = "payroll_adjustments"

    __table_args__ = (
        Index("idx_payroll_adjustment_period", "period_id", "employee_id"),
        Index("idx_payroll_adjustment_status", "period_id", "status"),
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payroll_periods.id"),
        nullable=False,
    )

    employee_id: Mapped[str] = mapped_column(String(50), nullable=False)

    # The version the adjustment was proposed against
    calculation_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payroll_employee_calculations.id"),
        nullable=False,
    )

    adjustment_type: Mapped[str] = mapped_column(String(20), nullable=False)
    category: Mapped[str] = mapped_column(String(40), nullable=False)
    component: Mapped[str | None] = mapped_column(String(40), nullable=True)
    amount: Mapped[Money] = mapped_column(nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=AdjustmentStatus.PENDING.value,
        nullable=False,
    )

    requested_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    decided_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    decision_comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    applied_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    applied_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # Position among this employee's applied adjustments in the period
    application_order: Mapped[int | None] = mapped_column(Integer, nullable=True)
    resulting_calculation_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("payroll_employee_calculations.id"),
        nullable=True,
    )
    impact_on_net_pay: Mapped[Money | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<PayrollAdjustment {self.adjustment_type} {self.amount} "
            f"{self.employee_id}: {self.status}>"
        )

"""
Module: payroll_kernel.models.exception
Responsibility: ORM persistence for detected payroll exceptions (anomalies
    flagged on a specific calculation version).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Each exception references exactly one calculation version.
    - Exceptions are never deleted; only status and resolution fields change
      after insert (db/immutability.py).

Audit relevance:
    Resolution notes, resolver and timestamp are kept on the row; the
    calculation log records each resolution as well.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase, UUIDString
from payroll_kernel.domain.statuses import ExceptionStatus


class PayrollException(TrackedBase):
    """
    An anomaly detected on one calculation version.

    Guarantees:
        - ``status`` only moves forward along EXCEPTION_TRANSITIONS.
    """

    __tablename__ = "payroll_exceptions"

    __table_args__ = (
        Index("idx_payroll_exception_calc", "calculation_id"),
        Index("idx_payroll_exception_period", "period_id", "status"),
    )

    calculation_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payroll_employee_calculations.id"),
        nullable=False,
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payroll_periods.id"),
        nullable=False,
    )

    employee_id: Mapped[str] = mapped_column(String(50), nullable=False)
    calculation_version: Mapped[int] = mapped_column(Integer, nullable=False)

    exception_type: Mapped[str] = mapped_column(String(40), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    current_value: Mapped[Decimal | None] = mapped_column(nullable=True)
    expected_value: Mapped[Decimal | None] = mapped_column(nullable=True)
    variance: Mapped[Decimal | None] = mapped_column(nullable=True)
    variance_percentage: Mapped[Decimal | None] = mapped_column(nullable=True)

    detection_rule: Mapped[str] = mapped_column(String(60), nullable=False)
    is_auto_generated: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=ExceptionStatus.OPEN.value,
        nullable=False,
    )

    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<PayrollException {self.exception_type}/{self.severity} "
            f"{self.employee_id}: {self.status}>"
        )

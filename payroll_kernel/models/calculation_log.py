"""
Module: payroll_kernel.models.calculation_log
Responsibility: ORM persistence for the calculation log -- an append-only,
    human-readable trail of run, detection and adjustment activity.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: UPDATE and DELETE raise ImmutabilityViolationError.

Audit relevance:
    Complements the approval ledger: the ledger records status changes, the
    calculation log records the work done inside each status.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import Base, UUIDString


class CalculationLog(Base):
    """One log line attached to a period (and optionally a run/employee)."""

    __tablename__ = "payroll_calculation_logs"

    __table_args__ = (
        Index("idx_payroll_log_period", "period_id", "occurred_at"),
        Index("idx_payroll_log_employee", "period_id", "employee_id"),
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payroll_periods.id"),
        nullable=False,
    )

    run_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    calculation_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    employee_id: Mapped[str | None] = mapped_column(String(50), nullable=True)

    log_type: Mapped[str] = mapped_column(String(40), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<CalculationLog {self.log_type}/{self.severity}>"

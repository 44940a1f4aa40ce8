"""
Module: payroll_kernel.selectors.exception_selector
Responsibility: Read access to detected payroll exceptions, including the
    set that blocks submission for approval.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Blocking exceptions are evaluated only against current calculation
      versions; exceptions on superseded versions never block.
    - Which severities and statuses block comes from ``ApprovalGateConfig``.
"""

from uuid import UUID

from sqlalchemy import select

from payroll_config.schema import ApprovalGateConfig
from payroll_kernel.domain.dtos import ExceptionInfo
from payroll_kernel.domain.statuses import CalculationStatus, ExceptionStatus
from payroll_kernel.models.calculation import EmployeeCalculation
from payroll_kernel.models.exception import PayrollException
from payroll_kernel.selectors.base import BaseSelector


class ExceptionSelector(BaseSelector[PayrollException]):
    """Query payroll exceptions."""

    def for_period(
        self,
        period_id: UUID,
        *,
        status: ExceptionStatus | None = None,
        current_only: bool = True,
    ) -> list[ExceptionInfo]:
        query = select(PayrollException).where(PayrollException.period_id == period_id)
        if current_only:
            query = query.join(
                EmployeeCalculation,
                EmployeeCalculation.id == PayrollException.calculation_id,
            ).where(EmployeeCalculation.status != CalculationStatus.SUPERSEDED.value)
        if status is not None:
            query = query.where(PayrollException.status == status.value)
        query = query.order_by(
            PayrollException.employee_id,
            PayrollException.calculation_version,
            PayrollException.exception_type,
        )
        return [ExceptionInfo.from_model(e) for e in self.session.execute(query).scalars()]

    def for_calculation(self, calculation_id: UUID) -> list[ExceptionInfo]:
        rows = self.session.execute(
            select(PayrollException)
            .where(PayrollException.calculation_id == calculation_id)
            .order_by(PayrollException.exception_type)
        ).scalars()
        return [ExceptionInfo.from_model(e) for e in rows]

    def blocking(self, period_id: UUID, gate: ApprovalGateConfig) -> list[ExceptionInfo]:
        """Exceptions on current versions that block submission under ``gate``."""
        if not gate.blocking_severities:
            return []
        rows = self.session.execute(
            select(PayrollException)
            .join(
                EmployeeCalculation,
                EmployeeCalculation.id == PayrollException.calculation_id,
            )
            .where(
                PayrollException.period_id == period_id,
                EmployeeCalculation.status != CalculationStatus.SUPERSEDED.value,
                PayrollException.severity.in_(
                    [s.value for s in gate.blocking_severities]
                ),
                PayrollException.status.in_(
                    [s.value for s in gate.blocking_statuses()]
                ),
            )
            .order_by(PayrollException.employee_id)
        ).scalars()
        return [ExceptionInfo.from_model(e) for e in rows]

"""
Module: payroll_kernel.selectors.calculation_selector
Responsibility: Read access to calculation versions -- an employee's full
    version chain, the current version, and a period's current set.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - "Current" means not superseded; there is at most one such version per
      (period, employee).
    - Version chains are returned in ascending version order.

Audit relevance:
    Every version stays readable forever; this is the audit/reporting view
    of calculation history.
"""

from uuid import UUID

from sqlalchemy import select

from payroll_kernel.domain.dtos import CalculationInfo
from payroll_kernel.domain.statuses import CalculationStatus
from payroll_kernel.exceptions import CalculationNotFoundError
from payroll_kernel.models.calculation import EmployeeCalculation
from payroll_kernel.selectors.base import BaseSelector


class CalculationSelector(BaseSelector[EmployeeCalculation]):
    """Query calculation versions."""

    def get(self, calculation_id: UUID) -> CalculationInfo:
        """
        Raises:
            CalculationNotFoundError: no such calculation.
        """
        calc = self.session.get(EmployeeCalculation, calculation_id)
        if calc is None:
            raise CalculationNotFoundError(str(calculation_id))
        return CalculationInfo.from_model(calc)

    def versions(self, period_id: UUID, employee_id: str) -> list[CalculationInfo]:
        """Every version for one employee in one period, oldest first."""
        rows = self.session.execute(
            select(EmployeeCalculation)
            .where(
                EmployeeCalculation.period_id == period_id,
                EmployeeCalculation.employee_id == employee_id,
            )
            .order_by(EmployeeCalculation.version)
        ).scalars()
        return [CalculationInfo.from_model(c) for c in rows]

    def current(self, period_id: UUID, employee_id: str) -> CalculationInfo | None:
        calc = self.session.execute(
            select(EmployeeCalculation).where(
                EmployeeCalculation.period_id == period_id,
                EmployeeCalculation.employee_id == employee_id,
                EmployeeCalculation.status != CalculationStatus.SUPERSEDED.value,
            )
        ).scalar_one_or_none()
        return CalculationInfo.from_model(calc) if calc is not None else None

    def current_for_period(self, period_id: UUID) -> list[CalculationInfo]:
        """The current version of every employee in the period, by employee id."""
        rows = self.session.execute(
            select(EmployeeCalculation)
            .where(
                EmployeeCalculation.period_id == period_id,
                EmployeeCalculation.status != CalculationStatus.SUPERSEDED.value,
            )
            .order_by(EmployeeCalculation.employee_id)
        ).scalars()
        return [CalculationInfo.from_model(c) for c in rows]

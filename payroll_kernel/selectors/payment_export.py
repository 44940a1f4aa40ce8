"""
Module: payroll_kernel.selectors.payment_export
Responsibility: The read-only hand-off to payment execution -- net pay and
    deduction breakdown per employee for a locked period.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Only locked periods export; an unlocked period's numbers can still
      change.
    - One line per employee, taken from the current calculation version.
    - ``total_net_pay`` equals the sum of the lines' ``final_net_pay``.

Failure modes:
    - PeriodNotFoundError, PeriodNotLockedError.
"""

from uuid import UUID

from sqlalchemy import select

from payroll_kernel.domain.dtos import PaymentExport, PaymentExportLine
from payroll_kernel.domain.money import round_money, sum_money
from payroll_kernel.domain.statuses import CalculationStatus
from payroll_kernel.exceptions import PeriodNotFoundError, PeriodNotLockedError
from payroll_kernel.models.calculation import EmployeeCalculation
from payroll_kernel.models.period import PayrollPeriod
from payroll_kernel.selectors.base import BaseSelector


class PaymentExportSelector(BaseSelector[EmployeeCalculation]):
    """Build the payment export for a finalized period."""

    def export(self, period_id: UUID) -> PaymentExport:
        period = self.session.get(PayrollPeriod, period_id)
        if period is None:
            raise PeriodNotFoundError(str(period_id))
        if not period.locked:
            raise PeriodNotLockedError(period.period_number, period.status)

        calcs = self.session.execute(
            select(EmployeeCalculation)
            .where(
                EmployeeCalculation.period_id == period_id,
                EmployeeCalculation.status != CalculationStatus.SUPERSEDED.value,
            )
            .order_by(EmployeeCalculation.employee_id)
        ).scalars()

        lines = tuple(
            PaymentExportLine(
                employee_id=c.employee_id,
                calculation_id=c.id,
                version=c.version,
                final_net_pay=round_money(c.final_net_pay),
                gross_pay=round_money(c.gross_pay),
                government_contributions=round_money(c.government_contributions),
                withholding_tax=round_money(c.withholding_tax),
                loan_deductions=round_money(c.loan_deductions),
                total_deductions=round_money(c.total_deductions),
            )
            for c in calcs
        )
        return PaymentExport(
            period_id=period.id,
            period_number=period.period_number,
            payment_date=period.payment_date,
            lines=lines,
            total_net_pay=sum_money(line.final_net_pay for line in lines),
        )

"""
CalculationWriter -- insert calculation versions.

Responsibility:
    Turns an engine ``CalculationResult`` (or a per-employee engine error)
    into a new ``EmployeeCalculation`` row, superseding the employee's
    current version in the same flush.  Also supplies the two inputs every
    recomputation needs: the period context and the employee's applied
    adjustments in application order.

Architecture position:
    Kernel > Services -- shared by CalculationRunService (full runs) and
    AdjustmentService (version N+1 after an applied adjustment).

Invariants enforced:
    - Version numbers increase by one per (period, employee); the UNIQUE
      constraint rejects a concurrent writer that picked the same number.
    - The previous current version is marked ``superseded`` and linked via
      ``previous_version_id``; it is never modified otherwise.
    - Amount columns mirror the stored result exactly.

Failure modes:
    - IntegrityError on a duplicate version (concurrent writers).
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_engines.calculation import PeriodContext
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.money import ZERO, round_money
from payroll_kernel.domain.period_lifecycle import PayFrequency
from payroll_kernel.domain.results import AdjustmentInstruction, CalculationResult, PayComponent
from payroll_kernel.domain.snapshot import EmployeeSnapshot
from payroll_kernel.domain.statuses import AdjustmentStatus, AdjustmentType, CalculationStatus
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.adjustment import PayrollAdjustment
from payroll_kernel.models.calculation import EmployeeCalculation
from payroll_kernel.models.period import PayrollPeriod
from payroll_kernel.services.base import SYSTEM_ACTOR_ID, BaseService

logger = get_logger("services.calculation_writer")


def period_context(period: PayrollPeriod) -> PeriodContext:
    """The engine's view of a period row."""
    return PeriodContext(
        period_start=period.period_start,
        period_end=period.period_end,
        payment_date=period.payment_date,
        pay_frequency=PayFrequency(period.pay_frequency),
    )


class CalculationWriter(BaseService[EmployeeCalculation]):
    """Versioned insert of employee calculations."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def current_version(self, period_id: UUID, employee_id: str) -> EmployeeCalculation | None:
        return self.session.execute(
            select(EmployeeCalculation)
            .where(
                EmployeeCalculation.period_id == period_id,
                EmployeeCalculation.employee_id == employee_id,
                EmployeeCalculation.status != CalculationStatus.SUPERSEDED.value,
            )
            .order_by(EmployeeCalculation.version.desc())
            .limit(1)
        ).scalar_one_or_none()

    def applied_instructions(
        self, period_id: UUID, employee_id: str,
    ) -> list[AdjustmentInstruction]:
        """The employee's applied adjustments for the period, in application order."""
        rows = self.session.execute(
            select(PayrollAdjustment)
            .where(
                PayrollAdjustment.period_id == period_id,
                PayrollAdjustment.employee_id == employee_id,
                PayrollAdjustment.status == AdjustmentStatus.APPLIED.value,
            )
            .order_by(PayrollAdjustment.application_order)
        ).scalars()
        return [instruction_for(row) for row in rows]

    def write(
        self,
        period: PayrollPeriod,
        employee_id: str,
        *,
        snapshot: EmployeeSnapshot | None,
        result: CalculationResult | None,
        status: CalculationStatus,
        rate_table_version: str | None,
        run_id: UUID | None = None,
        error_message: str | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> EmployeeCalculation:
        """
        Insert the next version for ``employee_id`` and supersede the current one.

        Exactly one of ``result`` / ``error_message`` is expected.  An error
        version carries zero amounts and no result.
        """
        previous = self.current_version(period.id, employee_id)
        version = previous.version + 1 if previous is not None else 1
        if previous is not None:
            previous.status = CalculationStatus.SUPERSEDED.value
            previous.updated_by_id = actor_id

        calc = EmployeeCalculation(
            period_id=period.id,
            run_id=run_id,
            employee_id=employee_id,
            version=version,
            previous_version_id=previous.id if previous is not None else None,
            status=status.value,
            input_snapshot=(
                snapshot.to_dict() if snapshot is not None else {"employee_id": employee_id}
            ),
            rate_table_version=rate_table_version,
            error_message=error_message,
            calculated_at=self._clock.now(),
            created_by_id=actor_id,
            **_amount_columns(result),
        )
        if result is not None:
            calc.result = result.to_dict()
            calc.result_hash = result.result_hash
        self.session.add(calc)
        self.session.flush()

        logger.info(
            "calculation_version_written",
            extra={
                "employee_id": employee_id,
                "version": version,
                "status": status.value,
                "superseded_version": previous.version if previous is not None else None,
            },
        )
        return calc


def instruction_for(adjustment: PayrollAdjustment) -> AdjustmentInstruction:
    return AdjustmentInstruction(
        adjustment_id=str(adjustment.id),
        adjustment_type=AdjustmentType(adjustment.adjustment_type),
        amount=round_money(adjustment.amount),
        component=PayComponent(adjustment.component) if adjustment.component else None,
    )


def _amount_columns(result: CalculationResult | None) -> dict[str, Decimal]:
    if result is None:
        return {
            name: ZERO
            for name in (
                "basic_pay", "overtime_pay", "allowances_total", "bonuses_total",
                "gross_pay", "government_contributions", "withholding_tax",
                "loan_deductions", "other_deductions", "total_deductions",
                "net_pay", "adjustments_total", "final_net_pay",
            )
        }
    earnings, deductions = result.earnings, result.deductions
    return {
        "basic_pay": earnings.basic_pay,
        "overtime_pay": earnings.overtime_pay,
        "allowances_total": earnings.allowances_total,
        "bonuses_total": earnings.bonuses_total,
        "gross_pay": earnings.gross_pay,
        "government_contributions": deductions.government_contributions,
        "withholding_tax": deductions.withholding_tax,
        "loan_deductions": deductions.loan_deductions,
        "other_deductions": round_money(
            deductions.total_deductions
            - deductions.government_contributions
            - deductions.withholding_tax
            - deductions.loan_deductions
        ),
        "total_deductions": deductions.total_deductions,
        "net_pay": result.net_pay,
        "adjustments_total": result.adjustments_total,
        "final_net_pay": result.final_net_pay,
    }

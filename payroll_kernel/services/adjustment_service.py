"""
AdjustmentService -- propose, decide and apply manual pay adjustments.

Responsibility:
    Records an adjustment against one specific calculation version, takes
    the approve/reject decision, and on apply recomputes the employee from
    the stored input snapshot with every applied adjustment folded in,
    producing calculation version N+1.

Architecture position:
    Kernel > Services -- imperative shell.  Uses the pure
    ``PayrollCalculator`` for recomputation, CalculationWriter for the
    versioned insert, ExceptionService for re-detection and PeriodService
    for the lock check and aggregate refresh.

Invariants enforced:
    - An adjustment targets the current version; applying against a
      superseded version raises StaleCalculationVersionError.
    - Applying never edits version N: version N+1 is inserted and N is
      marked superseded.
    - Locked periods reject propose and apply; only ``calculated`` and
      ``under_review`` periods accept them, and only until the
      adjustment deadline.
    - Applied adjustments are frozen (db/immutability.py).
    - Recomputation uses the rate table version stored on the current
      calculation, so the delta reflects the adjustment alone.

Failure modes:
    - CalculationNotFoundError, AdjustmentNotFoundError.
    - PeriodLockedError, PeriodNotAdjustableError,
      AdjustmentDeadlinePassedError.
    - StaleCalculationVersionError.
    - RateTableNotFoundError: the table version the current calculation
      used is no longer served.
    - InvalidAdjustmentError: bad amount, component or reason.
    - InvalidAdjustmentTransitionError: decide/apply from the wrong status.

Audit relevance:
    Requester, decider and applier are stored on the row; proposal,
    decision and application are each written to the calculation log.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_config.schema import PayrollEngineConfig
from payroll_engines.calculation import PayrollCalculator
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.dtos import AdjustmentInfo, CalculationInfo
from payroll_kernel.domain.money import round_money, to_decimal
from payroll_kernel.domain.period_lifecycle import ADJUSTABLE_STATUSES, PeriodStatus
from payroll_kernel.domain.results import PayComponent
from payroll_kernel.domain.snapshot import EmployeeSnapshot
from payroll_kernel.domain.statuses import (
    ADJUSTMENT_TRANSITIONS,
    AdjustmentCategory,
    AdjustmentStatus,
    AdjustmentType,
    CalculationLogType,
    CalculationStatus,
    can_transition,
)
from payroll_kernel.exceptions import (
    AdjustmentDeadlinePassedError,
    AdjustmentNotFoundError,
    CalculationNotFoundError,
    InvalidAdjustmentError,
    InvalidAdjustmentTransitionError,
    PeriodNotAdjustableError,
    StaleCalculationVersionError,
)
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_kernel.models.adjustment import PayrollAdjustment
from payroll_kernel.models.calculation import EmployeeCalculation
from payroll_kernel.models.period import PayrollPeriod
from payroll_kernel.services.base import BaseService
from payroll_kernel.services.calculation_log_service import CalculationLogService
from payroll_kernel.services.calculation_writer import (
    CalculationWriter,
    instruction_for,
    period_context,
)
from payroll_kernel.services.exception_service import ExceptionService
from payroll_kernel.services.period_service import PeriodService
from payroll_kernel.services.rate_provider import RateTableProvider

logger = get_logger("services.adjustment")


class AdjustmentService(BaseService[PayrollAdjustment]):
    """
    Manual adjustment workflow.

    Contract:
        pending -> approved -> applied, or pending -> rejected.  Only
        ``apply`` creates a calculation version.

    Non-goals:
        - Does NOT require the decider to differ from the requester.
        - Does NOT reverse applied adjustments; a correcting adjustment is
          proposed instead.
    """

    def __init__(
        self,
        session: Session,
        rate_provider: RateTableProvider,
        clock: Clock | None = None,
        config: PayrollEngineConfig | None = None,
        calculator: PayrollCalculator | None = None,
        period_service: PeriodService | None = None,
        exception_service: ExceptionService | None = None,
        calculation_log: CalculationLogService | None = None,
        writer: CalculationWriter | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._config = config or PayrollEngineConfig()
        self._rates = rate_provider
        self._calculator = calculator or PayrollCalculator(self._config)
        self._periods = period_service or PeriodService(session, self._clock, self._config)
        self._log = calculation_log or CalculationLogService(session, self._clock)
        self._exceptions = exception_service or ExceptionService(
            session, self._clock, calculation_log=self._log,
            thresholds=self._config.thresholds,
        )
        self._writer = writer or CalculationWriter(session, self._clock)

    # ------------------------------------------------------------------
    # Propose
    # ------------------------------------------------------------------

    def propose(
        self,
        calculation_id: UUID,
        adjustment_type: AdjustmentType,
        amount: Decimal | int | str,
        reason: str,
        requested_by_id: UUID,
        *,
        category: AdjustmentCategory = AdjustmentCategory.OTHER,
        component: PayComponent | str | None = None,
    ) -> AdjustmentInfo:
        """
        Record a pending adjustment against the current calculation version.

        Additions and deductions move final net pay by ``amount``; an
        override sets ``component`` to ``amount`` and recomputes what
        depends on it.
        """
        calc = self.session.get(EmployeeCalculation, calculation_id)
        if calc is None:
            raise CalculationNotFoundError(str(calculation_id))
        period = self.session.get(PayrollPeriod, calc.period_id)

        with LogContext.bind(period_id=str(period.id), actor_id=str(requested_by_id)):
            self._check_period_accepts(period, "propose adjustment")
            self._check_current(calc)
            if calc.error_message is not None:
                raise InvalidAdjustmentError(
                    f"calculation v{calc.version} for {calc.employee_id} has no result to adjust"
                )

            adjustment_type = AdjustmentType(adjustment_type)
            value = self._validated_amount(adjustment_type, amount)
            resolved_component = self._validated_component(adjustment_type, component)
            if not reason or not reason.strip():
                raise InvalidAdjustmentError("a reason is required")

            adj = PayrollAdjustment(
                period_id=period.id,
                employee_id=calc.employee_id,
                calculation_id=calc.id,
                adjustment_type=adjustment_type.value,
                category=AdjustmentCategory(category).value,
                component=resolved_component.value if resolved_component else None,
                amount=value,
                reason=reason.strip(),
                status=AdjustmentStatus.PENDING.value,
                requested_by_id=requested_by_id,
                requested_at=self._clock.now(),
                created_by_id=requested_by_id,
            )
            self.session.add(adj)
            self.session.flush()

            self._log.log(
                period.id,
                CalculationLogType.ADJUSTMENT_PROPOSED,
                f"{adjustment_type.value} {value} proposed for {calc.employee_id}",
                details={
                    "adjustment_id": str(adj.id),
                    "calculation_version": calc.version,
                    "component": adj.component,
                },
                calculation_id=calc.id,
                employee_id=calc.employee_id,
                actor_id=requested_by_id,
            )
            logger.info(
                "adjustment_proposed",
                extra={
                    "adjustment_id": str(adj.id),
                    "employee_id": calc.employee_id,
                    "adjustment_type": adjustment_type.value,
                    "amount": str(value),
                },
            )
            return AdjustmentInfo.from_model(adj)

    # ------------------------------------------------------------------
    # Decide
    # ------------------------------------------------------------------

    def decide(
        self,
        adjustment_id: UUID,
        approve: bool,
        actor_id: UUID,
        comment: str | None = None,
    ) -> AdjustmentInfo:
        adj = self._get_orm(adjustment_id)
        current = AdjustmentStatus(adj.status)
        target = AdjustmentStatus.APPROVED if approve else AdjustmentStatus.REJECTED
        if not can_transition(ADJUSTMENT_TRANSITIONS, current, target):
            raise InvalidAdjustmentTransitionError(str(adjustment_id), current.value, target.value)

        adj.status = target.value
        adj.decided_by_id = actor_id
        adj.decided_at = self._clock.now()
        adj.decision_comment = comment
        adj.updated_by_id = actor_id
        self.session.flush()

        self._log.log(
            adj.period_id,
            CalculationLogType.ADJUSTMENT_DECIDED,
            f"adjustment {target.value}",
            details={"adjustment_id": str(adj.id), "comment": comment},
            calculation_id=adj.calculation_id,
            employee_id=adj.employee_id,
            actor_id=actor_id,
        )
        logger.info(
            "adjustment_decided",
            extra={"adjustment_id": str(adj.id), "status": target.value},
        )
        return AdjustmentInfo.from_model(adj)

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    def apply(self, adjustment_id: UUID, actor_id: UUID) -> CalculationInfo:
        """
        Recompute the employee with this adjustment folded in.

        Returns:
            The new current calculation version (N+1).
        """
        adj = self._get_orm(adjustment_id)
        status = AdjustmentStatus(adj.status)
        if not can_transition(ADJUSTMENT_TRANSITIONS, status, AdjustmentStatus.APPLIED):
            raise InvalidAdjustmentTransitionError(
                str(adjustment_id), status.value, AdjustmentStatus.APPLIED.value,
            )

        period = self.session.get(PayrollPeriod, adj.period_id)
        with LogContext.bind(
            period_id=str(period.id), actor_id=str(actor_id), employee_id=adj.employee_id,
        ):
            self._check_period_accepts(period, "apply adjustment")
            target = self.session.get(EmployeeCalculation, adj.calculation_id)
            current = self._check_current(target)

            snapshot = EmployeeSnapshot.from_dict(current.input_snapshot)
            if current.rate_table_version:
                rates = self._rates.tables_by_version(current.rate_table_version)
            else:
                rates = self._rates.tables_for(period.payment_date)

            instructions = self._writer.applied_instructions(period.id, adj.employee_id)
            application_order = len(instructions) + 1
            instructions.append(instruction_for(adj))

            result = self._calculator.compute(
                snapshot=snapshot,
                period=period_context(period),
                rates=rates,
                adjustments=instructions,
            )

            new_calc = self._writer.write(
                period,
                adj.employee_id,
                snapshot=snapshot,
                result=result,
                status=CalculationStatus.ADJUSTED,
                rate_table_version=rates.version,
                actor_id=actor_id,
            )

            impact = next(
                (line.impact_on_net_pay for line in result.adjustment_lines
                 if line.adjustment_id == str(adj.id)),
                None,
            )
            adj.status = AdjustmentStatus.APPLIED.value
            adj.applied_by_id = actor_id
            adj.applied_at = self._clock.now()
            adj.application_order = application_order
            adj.resulting_calculation_id = new_calc.id
            adj.impact_on_net_pay = impact
            adj.updated_by_id = actor_id
            self.session.flush()

            self._exceptions.detect_for_calculation(new_calc, period, snapshot, result)
            self._periods.recompute_aggregates(period.id)

            self._log.log(
                period.id,
                CalculationLogType.ADJUSTMENT_APPLIED,
                f"adjustment applied: v{current.version} -> v{new_calc.version}",
                details={
                    "adjustment_id": str(adj.id),
                    "from_version": current.version,
                    "to_version": new_calc.version,
                    "impact_on_net_pay": str(impact) if impact is not None else None,
                },
                calculation_id=new_calc.id,
                employee_id=adj.employee_id,
                actor_id=actor_id,
            )
            logger.info(
                "adjustment_applied",
                extra={
                    "adjustment_id": str(adj.id),
                    "from_version": current.version,
                    "to_version": new_calc.version,
                    "final_net_pay": str(result.final_net_pay),
                },
            )
            return CalculationInfo.from_model(new_calc)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, adjustment_id: UUID) -> AdjustmentInfo:
        return AdjustmentInfo.from_model(self._get_orm(adjustment_id))

    def list_for_period(
        self,
        period_id: UUID,
        status: AdjustmentStatus | None = None,
    ) -> list[AdjustmentInfo]:
        query = select(PayrollAdjustment).where(PayrollAdjustment.period_id == period_id)
        if status is not None:
            query = query.where(PayrollAdjustment.status == status.value)
        query = query.order_by(PayrollAdjustment.requested_at, PayrollAdjustment.employee_id)
        return [AdjustmentInfo.from_model(a) for a in self.session.execute(query).scalars()]

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _get_orm(self, adjustment_id: UUID) -> PayrollAdjustment:
        adj = self.session.get(PayrollAdjustment, adjustment_id)
        if adj is None:
            raise AdjustmentNotFoundError(str(adjustment_id))
        return adj

    def _check_period_accepts(self, period: PayrollPeriod, operation: str) -> None:
        self._periods.ensure_unlocked(period, operation)

        status = PeriodStatus(period.status)
        if status not in ADJUSTABLE_STATUSES:
            raise PeriodNotAdjustableError(period.period_number, status.value)

        today = self._clock.today()
        if period.adjustment_deadline is not None and today > period.adjustment_deadline:
            raise AdjustmentDeadlinePassedError(
                period.period_number,
                period.adjustment_deadline.isoformat(),
                today.isoformat(),
            )

    def _check_current(self, calc: EmployeeCalculation) -> EmployeeCalculation:
        current = self._writer.current_version(calc.period_id, calc.employee_id)
        if current is None or current.id != calc.id:
            current_version = current.version if current is not None else calc.version
            logger.warning(
                "stale_calculation_version",
                extra={
                    "employee_id": calc.employee_id,
                    "target_version": calc.version,
                    "current_version": current_version,
                },
            )
            raise StaleCalculationVersionError(calc.employee_id, calc.version, current_version)
        return current

    @staticmethod
    def _validated_amount(adjustment_type: AdjustmentType, amount) -> Decimal:
        try:
            value = round_money(to_decimal(amount))
        except (TypeError, ValueError) as exc:
            raise InvalidAdjustmentError(str(exc)) from exc
        if adjustment_type == AdjustmentType.OVERRIDE:
            if value < 0:
                raise InvalidAdjustmentError("override amount must not be negative")
        elif value <= 0:
            raise InvalidAdjustmentError(
                f"{adjustment_type.value} amount must be positive, got {value}"
            )
        return value

    @staticmethod
    def _validated_component(
        adjustment_type: AdjustmentType,
        component: PayComponent | str | None,
    ) -> PayComponent | None:
        if adjustment_type != AdjustmentType.OVERRIDE:
            if component is not None:
                raise InvalidAdjustmentError(
                    f"{adjustment_type.value} adjustments do not target a component"
                )
            return None
        if component is None:
            raise InvalidAdjustmentError("override requires a pay component")
        try:
            return PayComponent(component)
        except ValueError as exc:
            raise InvalidAdjustmentError(f"unknown pay component {component!r}") from exc

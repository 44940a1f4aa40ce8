"""
ExceptionService -- persist detected exceptions and drive their resolution.

Responsibility:
    Runs the pure ``ExceptionDetector`` for one calculation version,
    persists its findings as ``PayrollException`` rows, looks up the
    employee's history for the variance rule, and moves exceptions
    through acknowledge / resolve / ignore.

Architecture position:
    Kernel > Services -- imperative shell around
    ``payroll_engines.detection``.  Called by the run service after each
    employee and by the adjustment service after each applied adjustment,
    always scoped to one employee.

Invariants enforced:
    - Detection never mutates the calculation it inspects.
    - Exceptions are never deleted; status only moves along
      EXCEPTION_TRANSITIONS and every resolution appends a note.
    - History is the employee's current calculation in the most recent
      earlier period of the same type that reached ``calculated``.
      Cancelled periods and other period types never count.

Failure modes:
    - ExceptionNotFoundError, InvalidExceptionTransitionError.

Audit relevance:
    Detections and resolutions are written to the calculation log with the
    resolving actor.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_config.schema import DetectionThresholds
from payroll_engines.detection import (
    DetectedException,
    DetectionSubject,
    EmployeeHistory,
    ExceptionDetector,
)
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.dtos import ExceptionInfo
from payroll_kernel.domain.money import round_money
from payroll_kernel.domain.period_lifecycle import HISTORY_STATUSES
from payroll_kernel.domain.results import CalculationResult
from payroll_kernel.domain.snapshot import EmployeeSnapshot
from payroll_kernel.domain.statuses import (
    EXCEPTION_TRANSITIONS,
    CalculationLogType,
    CalculationStatus,
    ExceptionSeverity,
    ExceptionStatus,
    LogSeverity,
    can_transition,
)
from payroll_kernel.exceptions import (
    ExceptionNotFoundError,
    InvalidExceptionTransitionError,
)
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.calculation import EmployeeCalculation
from payroll_kernel.models.exception import PayrollException
from payroll_kernel.models.period import PayrollPeriod
from payroll_kernel.services.base import SYSTEM_ACTOR_ID, BaseService
from payroll_kernel.services.calculation_log_service import CalculationLogService

logger = get_logger("services.exception")

_LOG_SEVERITY = {
    ExceptionSeverity.CRITICAL: LogSeverity.CRITICAL,
    ExceptionSeverity.HIGH: LogSeverity.ERROR,
    ExceptionSeverity.MEDIUM: LogSeverity.WARNING,
    ExceptionSeverity.LOW: LogSeverity.INFO,
}


class ExceptionService(BaseService[PayrollException]):
    """Detection persistence and exception resolution."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        detector: ExceptionDetector | None = None,
        calculation_log: CalculationLogService | None = None,
        thresholds: DetectionThresholds | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._detector = detector or ExceptionDetector(thresholds)
        self._log = calculation_log or CalculationLogService(session, self._clock)

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def history_for(self, period: PayrollPeriod, employee_id: str) -> EmployeeHistory:
        """The employee's current calculation in the latest earlier period of the same type."""
        row = self.session.execute(
            select(PayrollPeriod.period_number, EmployeeCalculation.final_net_pay)
            .join(EmployeeCalculation, EmployeeCalculation.period_id == PayrollPeriod.id)
            .where(
                PayrollPeriod.period_start < period.period_start,
                PayrollPeriod.period_type == period.period_type,
                PayrollPeriod.status.in_([s.value for s in HISTORY_STATUSES]),
                EmployeeCalculation.employee_id == employee_id,
                EmployeeCalculation.status != CalculationStatus.SUPERSEDED.value,
                EmployeeCalculation.error_message.is_(None),
            )
            .order_by(PayrollPeriod.period_start.desc())
            .limit(1)
        ).first()
        if row is None:
            return EmployeeHistory()
        return EmployeeHistory(
            previous_period_number=row[0],
            previous_final_net_pay=round_money(row[1]),
        )

    def detect_for_calculation(
        self,
        calculation: EmployeeCalculation,
        period: PayrollPeriod,
        snapshot: EmployeeSnapshot | None,
        result: CalculationResult | None,
        error_message: str | None = None,
    ) -> list[ExceptionInfo]:
        """Run every rule against one version and persist what fires."""
        findings = self._detector.detect(
            subject=DetectionSubject(
                employee_id=calculation.employee_id,
                snapshot=snapshot,
                result=result,
                error_message=error_message,
            ),
            history=self.history_for(period, calculation.employee_id),
        )
        return self.record_findings(calculation, findings)

    def record_findings(
        self,
        calculation: EmployeeCalculation,
        findings: list[DetectedException],
    ) -> list[ExceptionInfo]:
        rows = []
        for finding in findings:
            row = PayrollException(
                calculation_id=calculation.id,
                period_id=calculation.period_id,
                employee_id=calculation.employee_id,
                calculation_version=calculation.version,
                exception_type=finding.exception_type.value,
                severity=finding.severity.value,
                title=finding.title,
                description=finding.description,
                current_value=finding.current_value,
                expected_value=finding.expected_value,
                variance=finding.variance,
                variance_percentage=finding.variance_percentage,
                detection_rule=finding.detection_rule,
                is_auto_generated=True,
                status=ExceptionStatus.OPEN.value,
                created_by_id=SYSTEM_ACTOR_ID,
            )
            self.session.add(row)
            rows.append(row)
        if not rows:
            return []

        self.session.flush()
        for finding in findings:
            self._log.log(
                calculation.period_id,
                CalculationLogType.EXCEPTION_DETECTED,
                finding.title,
                severity=_LOG_SEVERITY[finding.severity],
                details={
                    "exception_type": finding.exception_type.value,
                    "severity": finding.severity.value,
                    "version": calculation.version,
                },
                run_id=calculation.run_id,
                calculation_id=calculation.id,
                employee_id=calculation.employee_id,
            )
        return [ExceptionInfo.from_model(r) for r in rows]

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def acknowledge(
        self, exception_id: UUID, actor_id: UUID, notes: str | None = None,
    ) -> ExceptionInfo:
        return self._transition(exception_id, ExceptionStatus.ACKNOWLEDGED, actor_id, notes)

    def resolve(self, exception_id: UUID, actor_id: UUID, notes: str) -> ExceptionInfo:
        return self._transition(exception_id, ExceptionStatus.RESOLVED, actor_id, notes)

    def ignore(self, exception_id: UUID, actor_id: UUID, notes: str) -> ExceptionInfo:
        return self._transition(exception_id, ExceptionStatus.IGNORED, actor_id, notes)

    def _transition(
        self,
        exception_id: UUID,
        target: ExceptionStatus,
        actor_id: UUID,
        notes: str | None,
    ) -> ExceptionInfo:
        exc = self.session.get(PayrollException, exception_id)
        if exc is None:
            raise ExceptionNotFoundError(str(exception_id))

        current = ExceptionStatus(exc.status)
        if not can_transition(EXCEPTION_TRANSITIONS, current, target):
            raise InvalidExceptionTransitionError(str(exception_id), current.value, target.value)

        exc.status = target.value
        if notes:
            stamp = self._clock.now().isoformat()
            line = f"[{stamp}] {target.value}: {notes}"
            exc.resolution_notes = (
                f"{exc.resolution_notes}\n{line}" if exc.resolution_notes else line
            )
        if target in (ExceptionStatus.RESOLVED, ExceptionStatus.IGNORED):
            exc.resolved_at = self._clock.now()
            exc.resolved_by_id = actor_id
        exc.updated_by_id = actor_id
        self.session.flush()

        self._log.log(
            exc.period_id,
            CalculationLogType.EXCEPTION_RESOLVED,
            f"{exc.title}: {current.value} -> {target.value}",
            details={"exception_type": exc.exception_type, "status": target.value},
            calculation_id=exc.calculation_id,
            employee_id=exc.employee_id,
            actor_id=actor_id,
        )
        logger.info(
            "payroll_exception_transitioned",
            extra={
                "exception_id": str(exception_id),
                "exception_type": exc.exception_type,
                "from_status": current.value,
                "to_status": target.value,
            },
        )
        return ExceptionInfo.from_model(exc)

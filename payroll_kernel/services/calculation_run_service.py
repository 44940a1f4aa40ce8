"""
CalculationRunService -- batch calculation of a payroll period.

Responsibility:
    Takes the period's calculation lease through the approval ledger,
    computes every covered employee against one rate table set, persists
    one new calculation version per employee, runs exception detection,
    refreshes the period aggregates and releases the lease with
    ``calculation_completed`` (or ``calculation_failed``).

Architecture position:
    Kernel > Services -- imperative shell around the pure
    ``PayrollCalculator``.  Reads inputs through the RateTableProvider and
    EmployeeSnapshotProvider protocols; writes through CalculationWriter,
    ExceptionService, PeriodService and ApprovalLedger.

Invariants enforced:
    - At most one run per period: the lease is the ledger's
      ``calculation_started`` step, refused while one is held.
    - Rates are looked up once per run, by payment date; every version
      written by the run records that table version.
    - Engine computation runs on a worker pool; all database writes stay
      on the caller's session, in employee order.
    - A per-employee ``CalculationError``, from the snapshot provider or
      the engine, becomes an ``exception`` calculation and a
      ``calculation_error`` finding; it never aborts the run.
    - A configuration error (no rate table) fails the whole run, returns
      the period to ``active`` and counts toward the retry limit.
    - Locked periods are never calculated.
    - Any other error during ``execute`` fails the run and releases the
      lease before it propagates.

Failure modes:
    - PeriodNotFoundError, PeriodLockedError.
    - CalculationAlreadyRunningError: another run holds the lease.
    - CalculationRetriesExhaustedError: too many failed runs.
    - Failed and aborted runs are returned, not raised, so the caller can
      commit the failure record.

Audit relevance:
    Every run, employee outcome and failure is written to the calculation
    log and, for period transitions, to the approval ledger.
"""

from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from payroll_config.schema import PayrollEngineConfig
from payroll_engines.calculation import PayrollCalculator, PeriodContext
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.dtos import CalculationRunInfo
from payroll_kernel.domain.period_lifecycle import (
    ActorRole,
    ApprovalStep,
    LedgerAction,
    PeriodStatus,
)
from payroll_kernel.domain.rates import RateTableSet
from payroll_kernel.domain.results import AdjustmentInstruction, CalculationResult
from payroll_kernel.domain.snapshot import EmployeeSnapshot
from payroll_kernel.domain.statuses import (
    CalculationLogType,
    CalculationStatus,
    LogSeverity,
    RunStatus,
)
from payroll_kernel.exceptions import (
    CalculationAlreadyRunningError,
    CalculationError,
    CalculationRetriesExhaustedError,
    LedgerConflictError,
    PeriodNotFoundError,
    RateTableNotFoundError,
)
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_kernel.models.calculation_run import CalculationRun
from payroll_kernel.models.period import PayrollPeriod
from payroll_kernel.services.approval_ledger import ApprovalLedger
from payroll_kernel.services.base import SYSTEM_ACTOR_ID, BaseService
from payroll_kernel.services.calculation_log_service import CalculationLogService
from payroll_kernel.services.calculation_writer import CalculationWriter, period_context
from payroll_kernel.services.exception_service import ExceptionService
from payroll_kernel.services.period_service import PeriodService
from payroll_kernel.services.rate_provider import EmployeeSnapshotProvider, RateTableProvider

logger = get_logger("services.calculation_run")

# (result, error message); exactly one is set
_Outcome = tuple[CalculationResult | None, str | None]


@dataclass(frozen=True)
class _EmployeeInputs:
    employee_id: str
    snapshot: EmployeeSnapshot | None
    instructions: list[AdjustmentInstruction] = field(default_factory=list)
    # set when the snapshot could not be loaded; no computation runs
    load_error: str | None = None


class CalculationRunService(BaseService[CalculationRun]):
    """
    Start, execute and inspect calculation runs.

    Contract:
        ``calculate_period`` = ``start`` + ``execute``.  ``start`` takes the
        lease and creates the run; ``execute`` does the work and always
        releases the lease.

    Guarantees:
        - ``processed_employees`` equals calculated + exception + failed.
        - Re-running the same inputs yields the same ``result_hash`` per
          employee.

    Non-goals:
        - Does NOT commit; the caller owns the transaction.
        - Does NOT schedule runs in the background.
    """

    def __init__(
        self,
        session: Session,
        rate_provider: RateTableProvider,
        snapshot_provider: EmployeeSnapshotProvider,
        clock: Clock | None = None,
        config: PayrollEngineConfig | None = None,
        calculator: PayrollCalculator | None = None,
        ledger: ApprovalLedger | None = None,
        period_service: PeriodService | None = None,
        exception_service: ExceptionService | None = None,
        calculation_log: CalculationLogService | None = None,
        writer: CalculationWriter | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._config = config or PayrollEngineConfig()
        self._rates = rate_provider
        self._snapshots = snapshot_provider
        self._calculator = calculator or PayrollCalculator(self._config)
        self._ledger = ledger or ApprovalLedger(session, self._clock, self._config.gate)
        self._periods = period_service or PeriodService(
            session, self._clock, self._config, self._ledger,
        )
        self._log = calculation_log or CalculationLogService(session, self._clock)
        self._exceptions = exception_service or ExceptionService(
            session, self._clock, calculation_log=self._log,
            thresholds=self._config.thresholds,
        )
        self._writer = writer or CalculationWriter(session, self._clock)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def calculate_period(
        self,
        period_id: UUID,
        actor_id: UUID,
        actor_role: ActorRole = ActorRole.PAYROLL_OFFICER,
        *,
        should_abort: Callable[[], bool] | None = None,
        on_progress: Callable[[CalculationRunInfo], None] | None = None,
    ) -> CalculationRunInfo:
        """Start a run and execute it to completion, failure or abort."""
        run = self.start(period_id, actor_id, actor_role)
        return self.execute(run.id, should_abort=should_abort, on_progress=on_progress)

    def start(
        self,
        period_id: UUID,
        actor_id: UUID,
        actor_role: ActorRole = ActorRole.PAYROLL_OFFICER,
    ) -> CalculationRunInfo:
        """
        Take the calculation lease and create a ``running`` run.

        Raises:
            PeriodNotFoundError: unknown period.
            PeriodLockedError: the period is locked.
            CalculationRetriesExhaustedError: the retry limit is reached.
            CalculationAlreadyRunningError: another run holds the lease.
        """
        period = self.session.get(PayrollPeriod, period_id)
        if period is None:
            raise PeriodNotFoundError(str(period_id))
        period_number = period.period_number

        with LogContext.bind(period_id=str(period_id), actor_id=str(actor_id)):
            self._periods.ensure_unlocked(period, "calculate")

            max_retries = self._config.max_calculation_retries
            if period.calculation_retries >= max_retries:
                logger.warning(
                    "calculation_retries_exhausted",
                    extra={
                        "period_number": period_number,
                        "retries": period.calculation_retries,
                        "max_retries": max_retries,
                    },
                )
                raise CalculationRetriesExhaustedError(
                    period_number, period.calculation_retries, max_retries,
                )

            run_id = uuid4()
            try:
                self._ledger.append(
                    period_id,
                    ApprovalStep.CALCULATION_STARTED,
                    LedgerAction.START_CALCULATION,
                    actor_id,
                    actor_role,
                    comment=f"calculation run {run_id}",
                    run_id=run_id,
                )
            except LedgerConflictError as exc:
                if exc.current_status == PeriodStatus.CALCULATING.value:
                    raise CalculationAlreadyRunningError(period_number, None) from exc
                raise

            run_number = (
                self.session.execute(
                    select(func.max(CalculationRun.run_number)).where(
                        CalculationRun.period_id == period_id,
                    )
                ).scalar_one_or_none()
                or 0
            ) + 1
            run = CalculationRun(
                id=run_id,
                period_id=period_id,
                run_number=run_number,
                status=RunStatus.RUNNING.value,
                started_at=self._clock.now(),
                created_by_id=actor_id,
            )
            self.session.add(run)
            self.session.flush()

            self._log.log(
                period_id,
                CalculationLogType.CALCULATION_STARTED,
                f"Calculation run #{run_number} started",
                run_id=run_id,
                actor_id=actor_id,
            )
            logger.info(
                "calculation_run_started",
                extra={"period_number": period_number, "run_id": str(run_id), "run_number": run_number},
            )
            return CalculationRunInfo.from_model(run)

    def execute(
        self,
        run_id: UUID,
        *,
        should_abort: Callable[[], bool] | None = None,
        on_progress: Callable[[CalculationRunInfo], None] | None = None,
    ) -> CalculationRunInfo:
        """
        Compute and persist every covered employee for a started run.

        Args:
            run_id: A ``running`` run created by ``start``.
            should_abort: Polled between employees; returning True stops
                the run, keeps the versions already written and releases
                the lease.
            on_progress: Called with the run's counters after each
                employee.
        """
        run = self.session.get(CalculationRun, run_id)
        if run is None:
            raise ValueError(f"Calculation run {run_id} not found")
        if run.status != RunStatus.RUNNING.value:
            raise ValueError(f"Calculation run {run_id} is {run.status}, not running")
        period = self.session.get(PayrollPeriod, run.period_id)
        period_number = period.period_number

        with LogContext.bind(period_id=str(period.id), run_id=str(run_id)):
            try:
                return self._execute(run, period, should_abort, on_progress)
            except Exception as exc:
                logger.error(
                    "calculation_run_crashed",
                    extra={"period_number": period_number},
                    exc_info=True,
                )
                self._fail_after_crash(run_id, f"{type(exc).__name__}: {exc}")
                raise

    def _execute(
        self,
        run: CalculationRun,
        period: PayrollPeriod,
        should_abort: Callable[[], bool] | None,
        on_progress: Callable[[CalculationRunInfo], None] | None,
    ) -> CalculationRunInfo:
        try:
            rates = self._rates.tables_for(period.payment_date)
        except RateTableNotFoundError as exc:
            return self._fail(run, period, str(exc))

        run.rate_table_version = rates.version
        employee_ids = self._snapshots.employee_ids(period.period_start, period.period_end)
        run.total_employees = len(employee_ids)
        self.session.flush()

        context = period_context(period)
        inputs = [self._load_inputs(period, employee_id) for employee_id in employee_ids]

        with ThreadPoolExecutor(max_workers=self._config.max_workers) as pool:
            futures: list[Future[_Outcome] | None] = [
                pool.submit(self._compute_one, item.snapshot, context, rates, item.instructions)
                if item.load_error is None
                else None
                for item in inputs
            ]
            for index, item in enumerate(inputs):
                if should_abort is not None and should_abort():
                    for pending in futures[index:]:
                        if pending is not None:
                            pending.cancel()
                    return self._abort(run, period)

                future = futures[index]
                result, error = future.result() if future is not None else (None, item.load_error)
                self._persist_employee(
                    run, period, rates, item.employee_id, item.snapshot, result, error,
                )
                if on_progress is not None:
                    on_progress(CalculationRunInfo.from_model(run))

        return self._complete(run, period)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_run(self, run_id: UUID) -> CalculationRunInfo:
        run = self.session.get(CalculationRun, run_id)
        if run is None:
            raise ValueError(f"Calculation run {run_id} not found")
        return CalculationRunInfo.from_model(run)

    def runs_for_period(self, period_id: UUID) -> list[CalculationRunInfo]:
        runs = self.session.execute(
            select(CalculationRun)
            .where(CalculationRun.period_id == period_id)
            .order_by(CalculationRun.run_number)
        ).scalars()
        return [CalculationRunInfo.from_model(r) for r in runs]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_inputs(self, period: PayrollPeriod, employee_id: str) -> _EmployeeInputs:
        try:
            snapshot = self._snapshots.snapshot(employee_id, period.period_start, period.period_end)
        except CalculationError as exc:
            logger.warning(
                "employee_snapshot_unavailable",
                extra={"employee_id": employee_id, "error": str(exc)},
            )
            return _EmployeeInputs(employee_id, None, [], str(exc))
        return _EmployeeInputs(
            employee_id, snapshot, self._writer.applied_instructions(period.id, employee_id),
        )

    def _compute_one(
        self,
        snapshot: EmployeeSnapshot,
        context: PeriodContext,
        rates: RateTableSet,
        instructions: list[AdjustmentInstruction],
    ) -> _Outcome:
        try:
            return (
                self._calculator.compute(
                    snapshot=snapshot, period=context, rates=rates, adjustments=instructions,
                ),
                None,
            )
        except CalculationError as exc:
            return None, str(exc)

    def _persist_employee(
        self,
        run: CalculationRun,
        period: PayrollPeriod,
        rates: RateTableSet,
        employee_id: str,
        snapshot: EmployeeSnapshot | None,
        result: CalculationResult | None,
        error: str | None,
    ) -> None:
        status = CalculationStatus.CALCULATED if result is not None else CalculationStatus.EXCEPTION
        calc = self._writer.write(
            period,
            employee_id,
            snapshot=snapshot,
            result=result,
            status=status,
            rate_table_version=rates.version,
            run_id=run.id,
            error_message=error,
        )
        findings = self._exceptions.detect_for_calculation(
            calc, period, snapshot, result, error_message=error,
        )

        if error is not None:
            run.failed_count += 1
            self._log.log(
                period.id,
                CalculationLogType.EMPLOYEE_FAILED,
                error,
                severity=LogSeverity.ERROR,
                run_id=run.id,
                calculation_id=calc.id,
                employee_id=employee_id,
            )
        else:
            if findings:
                run.exception_count += 1
            else:
                run.calculated_count += 1
            self._log.log(
                period.id,
                CalculationLogType.EMPLOYEE_CALCULATED,
                f"{employee_id} v{calc.version}: final net pay {result.final_net_pay}",
                details={
                    "version": calc.version,
                    "final_net_pay": str(result.final_net_pay),
                    "exceptions": len(findings),
                },
                run_id=run.id,
                calculation_id=calc.id,
                employee_id=employee_id,
            )
        run.processed_employees += 1
        self.session.flush()

        logger.debug(
            "employee_calculated",
            extra={
                "employee_id": employee_id,
                "version": calc.version,
                "calc_status": status.value,
                "exceptions": len(findings),
            },
        )

    def _complete(self, run: CalculationRun, period: PayrollPeriod) -> CalculationRunInfo:
        totals = self._periods.recompute_aggregates(period.id)

        run.status = (
            RunStatus.COMPLETED_WITH_EXCEPTIONS.value
            if run.exception_count or run.failed_count
            else RunStatus.COMPLETED.value
        )
        run.completed_at = self._clock.now()
        period.calculation_retries = 0
        period.last_calculation_error = None
        self.session.flush()

        self._ledger.append(
            period.id,
            ApprovalStep.CALCULATION_COMPLETED,
            LedgerAction.COMPLETE_CALCULATION,
            SYSTEM_ACTOR_ID,
            ActorRole.SYSTEM,
            comment=f"run #{run.run_number}: {run.processed_employees} employee(s)",
        )
        self._log.log(
            period.id,
            CalculationLogType.CALCULATION_COMPLETED,
            f"Calculation run #{run.run_number} {run.status}",
            details={
                "processed": run.processed_employees,
                "calculated": run.calculated_count,
                "exceptions": run.exception_count,
                "failed": run.failed_count,
                "total_net_pay": str(totals.total_net_pay),
            },
            run_id=run.id,
        )
        logger.info(
            "calculation_run_completed",
            extra={
                "period_number": period.period_number,
                "run_number": run.run_number,
                "status": run.status,
                "processed": run.processed_employees,
                "failed": run.failed_count,
            },
        )
        return CalculationRunInfo.from_model(run)

    def _fail(self, run: CalculationRun, period: PayrollPeriod, reason: str) -> CalculationRunInfo:
        run.status = RunStatus.FAILED.value
        run.error_summary = reason
        run.completed_at = self._clock.now()
        period.calculation_retries += 1
        period.last_calculation_error = reason
        self.session.flush()

        self._ledger.append(
            period.id,
            ApprovalStep.CALCULATION_FAILED,
            LedgerAction.FAIL_CALCULATION,
            SYSTEM_ACTOR_ID,
            ActorRole.SYSTEM,
            comment=reason,
        )
        self._log.log(
            period.id,
            CalculationLogType.CALCULATION_FAILED,
            reason,
            severity=LogSeverity.ERROR,
            details={"retries": period.calculation_retries},
            run_id=run.id,
        )
        logger.error(
            "calculation_run_failed",
            extra={
                "period_number": period.period_number,
                "run_number": run.run_number,
                "reason": reason,
                "retries": period.calculation_retries,
            },
        )
        return CalculationRunInfo.from_model(run)

    def _fail_after_crash(self, run_id: UUID, reason: str) -> None:
        """
        Record an unexpected error as a failed run and release the lease.

        A failed flush leaves the session unusable, so it is rolled back
        first.  When ``start`` was never committed the rollback discards
        the run and the lease with it, and there is nothing left to fail.
        """
        if not self.session.is_active:
            self.session.rollback()
        run = self.session.get(CalculationRun, run_id)
        if run is None or run.status != RunStatus.RUNNING.value:
            return
        self._fail(run, self.session.get(PayrollPeriod, run.period_id), reason)

    def _abort(self, run: CalculationRun, period: PayrollPeriod) -> CalculationRunInfo:
        self._periods.recompute_aggregates(period.id)
        run.status = RunStatus.ABORTED.value
        run.error_summary = "aborted before completion"
        run.completed_at = self._clock.now()
        self.session.flush()

        self._ledger.append(
            period.id,
            ApprovalStep.CALCULATION_FAILED,
            LedgerAction.FAIL_CALCULATION,
            SYSTEM_ACTOR_ID,
            ActorRole.SYSTEM,
            comment=f"run #{run.run_number} aborted",
        )
        self._log.log(
            period.id,
            CalculationLogType.CALCULATION_FAILED,
            f"Calculation run #{run.run_number} aborted after "
            f"{run.processed_employees}/{run.total_employees} employee(s)",
            severity=LogSeverity.WARNING,
            run_id=run.id,
        )
        logger.warning(
            "calculation_run_aborted",
            extra={
                "period_number": period.period_number,
                "run_number": run.run_number,
                "processed": run.processed_employees,
                "total": run.total_employees,
            },
        )
        return CalculationRunInfo.from_model(run)

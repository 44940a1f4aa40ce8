"""
Tests for CalculationRunService.

Covers:
- A clean run over the standard roster: counters, status, period totals
- The calculation lease: one run per period at a time
- Recalculation writes a new version and supersedes the old one
- Rate table failures: failed run, period back to active, retry limit
- Aborting a run part-way keeps the versions already written
- Per-employee engine errors do not stop the run
- Snapshot lookups failing for one employee: recorded as an exception, or
  failing the run and releasing the lease when the error is unexpected
- Locked periods are never calculated
- Calculation log lines and structured log events
"""

from dataclasses import replace
from datetime import date

import pytest

from payroll_kernel.domain.period_lifecycle import PeriodStatus
from payroll_kernel.domain.statuses import (
    CalculationLogType,
    CalculationStatus,
    ExceptionType,
    RunStatus,
)
from payroll_kernel.exceptions import (
    CalculationAlreadyRunningError,
    CalculationRetriesExhaustedError,
    MissingSnapshotDataError,
    PeriodLockedError,
)
from payroll_kernel.selectors.calculation_selector import CalculationSelector
from payroll_kernel.selectors.exception_selector import ExceptionSelector
from payroll_kernel.services.calculation_run_service import CalculationRunService
from payroll_kernel.services.rate_provider import (
    InMemoryEmployeeSnapshotProvider,
    InMemoryRateTableProvider,
)
from tests.factories import E001_NET_PAY, monthly_snapshot, overdrawn_snapshot


@pytest.fixture
def failing_run_service(
    session,
    deterministic_clock,
    engine_config,
    rate_tables,
    snapshot_provider,
    ledger,
    period_service,
    exception_service,
    calculation_log,
) -> CalculationRunService:
    """A run service whose only rate table starts long after the payment date."""
    future_only = InMemoryRateTableProvider([
        replace(rate_tables, version="PH-2030.1", effective_from=date(2030, 1, 1), effective_to=None),
    ])
    return CalculationRunService(
        session,
        future_only,
        snapshot_provider,
        clock=deterministic_clock,
        config=engine_config,
        ledger=ledger,
        period_service=period_service,
        exception_service=exception_service,
        calculation_log=calculation_log,
    )


class TestCleanRun:
    """Standard roster, no findings."""

    def test_run_counters(self, active_period, run_service, test_actor_id):
        run = run_service.calculate_period(active_period.id, test_actor_id)

        assert run.status == RunStatus.COMPLETED
        assert run.run_number == 1
        assert run.total_employees == 2
        assert run.processed_employees == 2
        assert run.calculated_count == 2
        assert run.exception_count == 0
        assert run.failed_count == 0
        assert run.rate_table_version == "PH-2025.1"
        assert run.progress_percentage == 100

    def test_period_calculated_with_totals(self, calculated_period):
        assert calculated_period.status == PeriodStatus.CALCULATED
        assert calculated_period.calculation_run_id is None
        assert calculated_period.totals.employee_count == 2

    def test_versions_written(self, calculated_period, session):
        calcs = CalculationSelector(session).current_for_period(calculated_period.id)

        assert [c.employee_id for c in calcs] == ["E001", "E002"]
        assert all(c.version == 1 for c in calcs)
        assert all(c.status == CalculationStatus.CALCULATED for c in calcs)
        assert calcs[0].final_net_pay == E001_NET_PAY
        assert calcs[0].rate_table_version == "PH-2025.1"
        assert calcs[0].input_snapshot["employee_id"] == "E001"

    def test_progress_reported_per_employee(self, active_period, run_service, test_actor_id):
        seen = []

        run_service.calculate_period(active_period.id, test_actor_id, on_progress=seen.append)

        assert [r.processed_employees for r in seen] == [1, 2]

    def test_findings_counted(self, active_period, run_service, snapshot_provider, test_actor_id):
        snapshot_provider.put(overdrawn_snapshot())

        run = run_service.calculate_period(active_period.id, test_actor_id)

        assert run.status == RunStatus.COMPLETED_WITH_EXCEPTIONS
        assert run.calculated_count == 2
        assert run.exception_count == 1


class TestLease:
    """One run per period at a time."""

    def test_second_start_refused(self, active_period, run_service, test_actor_id):
        run = run_service.start(active_period.id, test_actor_id)

        with pytest.raises(CalculationAlreadyRunningError):
            run_service.start(active_period.id, test_actor_id)

        assert run.status == RunStatus.RUNNING

    def test_lease_held_until_execute_finishes(
        self, active_period, run_service, period_service, test_actor_id,
    ):
        run = run_service.start(active_period.id, test_actor_id)
        running = period_service.get_period(active_period.id)
        assert running.status == PeriodStatus.CALCULATING
        assert running.calculation_run_id == run.id

        run_service.execute(run.id)

        done = period_service.get_period(active_period.id)
        assert done.status == PeriodStatus.CALCULATED
        assert done.calculation_run_id is None

    def test_execute_twice_rejected(self, active_period, run_service, test_actor_id):
        run = run_service.start(active_period.id, test_actor_id)
        run_service.execute(run.id)

        with pytest.raises(ValueError, match="not running"):
            run_service.execute(run.id)


class TestRecalculation:
    """Recalculating writes a new version."""

    def test_new_version_supersedes_old(self, calculated_period, run_service, session, test_actor_id):
        run = run_service.calculate_period(calculated_period.id, test_actor_id)

        versions = CalculationSelector(session).versions(calculated_period.id, "E001")
        assert run.run_number == 2
        assert [v.version for v in versions] == [1, 2]
        assert versions[0].status == CalculationStatus.SUPERSEDED
        assert versions[1].status == CalculationStatus.CALCULATED
        assert versions[1].previous_version_id == versions[0].id

    def test_same_inputs_same_hash(self, calculated_period, run_service, session, test_actor_id):
        run_service.calculate_period(calculated_period.id, test_actor_id)

        first, second = CalculationSelector(session).versions(calculated_period.id, "E001")
        assert first.result_hash == second.result_hash

    def test_changed_inputs_picked_up(
        self, calculated_period, run_service, snapshot_provider, session, test_actor_id,
    ):
        snapshot_provider.put(monthly_snapshot(basic_salary="32000"))

        run_service.calculate_period(calculated_period.id, test_actor_id)

        current = CalculationSelector(session).current(calculated_period.id, "E001")
        assert current.version == 2
        assert current.gross_pay == 16000

    def test_runs_listed_in_order(self, calculated_period, run_service, test_actor_id):
        run_service.calculate_period(calculated_period.id, test_actor_id)

        runs = run_service.runs_for_period(calculated_period.id)

        assert [r.run_number for r in runs] == [1, 2]
        assert run_service.get_run(runs[1].id) == runs[1]


class TestRateTableFailure:
    """No rate table for the payment date fails the whole run."""

    def test_run_fails_and_period_returns_to_active(
        self, active_period, failing_run_service, period_service, session, test_actor_id,
    ):
        run = failing_run_service.calculate_period(active_period.id, test_actor_id)

        assert run.status == RunStatus.FAILED
        assert "2026-01-20" in run.error_summary
        period = period_service.get_period(active_period.id)
        assert period.status == PeriodStatus.ACTIVE
        assert period.calculation_retries == 1
        assert period.last_calculation_error == run.error_summary
        assert CalculationSelector(session).current_for_period(active_period.id) == []

    def test_retry_limit(self, active_period, failing_run_service, test_actor_id):
        for _ in range(3):
            failing_run_service.calculate_period(active_period.id, test_actor_id)

        with pytest.raises(CalculationRetriesExhaustedError) as exc_info:
            failing_run_service.start(active_period.id, test_actor_id)

        assert exc_info.value.retries == 3
        assert exc_info.value.max_retries == 3

    def test_success_resets_retries(
        self, active_period, failing_run_service, run_service, period_service, test_actor_id,
    ):
        failing_run_service.calculate_period(active_period.id, test_actor_id)

        run_service.calculate_period(active_period.id, test_actor_id)

        period = period_service.get_period(active_period.id)
        assert period.calculation_retries == 0
        assert period.last_calculation_error is None


class TestAbort:

    def test_abort_keeps_written_versions(
        self, active_period, run_service, period_service, session, test_actor_id,
    ):
        progress = []

        run = run_service.calculate_period(
            active_period.id,
            test_actor_id,
            should_abort=lambda: len(progress) >= 1,
            on_progress=progress.append,
        )

        assert run.status == RunStatus.ABORTED
        assert run.processed_employees == 1
        period = period_service.get_period(active_period.id)
        assert period.status == PeriodStatus.ACTIVE
        assert period.calculation_retries == 0
        assert period.totals.employee_count == 1
        calcs = CalculationSelector(session).current_for_period(active_period.id)
        assert [c.employee_id for c in calcs] == ["E001"]


class TestEmployeeErrors:
    """One bad employee does not stop the run."""

    def test_engine_error_recorded(
        self, active_period, run_service, snapshot_provider, session, test_actor_id,
    ):
        snapshot_provider.put(monthly_snapshot("E003", expected_days="0", present_days="0"))

        run = run_service.calculate_period(active_period.id, test_actor_id)

        assert run.status == RunStatus.COMPLETED_WITH_EXCEPTIONS
        assert run.processed_employees == 3
        assert run.failed_count == 1
        assert run.calculated_count == 2

        calc = CalculationSelector(session).current(active_period.id, "E003")
        assert calc.status == CalculationStatus.EXCEPTION
        assert "expected_days" in calc.error_message
        assert calc.result is None

        findings = ExceptionSelector(session).for_calculation(calc.id)
        assert [f.exception_type for f in findings] == [ExceptionType.CALCULATION_ERROR]


class FlakySnapshotProvider(InMemoryEmployeeSnapshotProvider):
    """Covers one extra employee whose snapshot lookup raises ``error``."""

    def __init__(self, snapshots, broken_id: str, error: Exception):
        super().__init__(snapshots)
        self._broken_id = broken_id
        self._error = error

    def employee_ids(self, period_start, period_end):
        return sorted([*super().employee_ids(period_start, period_end), self._broken_id])

    def snapshot(self, employee_id, period_start, period_end):
        if employee_id == self._broken_id:
            raise self._error
        return super().snapshot(employee_id, period_start, period_end)


class TestSnapshotErrors:
    """A snapshot lookup failing for one employee."""

    @pytest.fixture
    def build(self, session, deterministic_clock, engine_config, rate_provider, ledger,
              period_service, exception_service, calculation_log, standard_roster):
        def _build(error: Exception) -> CalculationRunService:
            provider = FlakySnapshotProvider(standard_roster, "E404", error)
            return CalculationRunService(
                session,
                rate_provider,
                provider,
                clock=deterministic_clock,
                config=engine_config,
                ledger=ledger,
                period_service=period_service,
                exception_service=exception_service,
                calculation_log=calculation_log,
            )
        return _build

    def test_missing_data_recorded_as_exception(
        self, build, active_period, period_service, session, test_actor_id,
    ):
        service = build(MissingSnapshotDataError("E404", "salary"))
        run = service.start(active_period.id, test_actor_id)
        session.commit()

        done = service.execute(run.id)

        assert done.status == RunStatus.COMPLETED_WITH_EXCEPTIONS
        assert done.processed_employees == 3
        assert done.calculated_count == 2
        assert done.failed_count == 1

        calc = CalculationSelector(session).current(active_period.id, "E404")
        assert calc.status == CalculationStatus.EXCEPTION
        assert "salary" in calc.error_message
        assert calc.result is None
        findings = ExceptionSelector(session).for_calculation(calc.id)
        assert [f.exception_type for f in findings] == [ExceptionType.CALCULATION_ERROR]

        period = period_service.get_period(active_period.id)
        assert period.status == PeriodStatus.CALCULATED
        assert period.calculation_run_id is None

    def test_unexpected_error_fails_run_and_releases_lease(
        self, build, active_period, run_service, period_service, session, test_actor_id,
    ):
        service = build(RuntimeError("snapshot store offline"))
        run = service.start(active_period.id, test_actor_id)
        session.commit()

        with pytest.raises(RuntimeError, match="snapshot store offline"):
            service.execute(run.id)

        failed = service.get_run(run.id)
        assert failed.status == RunStatus.FAILED
        assert "snapshot store offline" in failed.error_summary
        period = period_service.get_period(active_period.id)
        assert period.status == PeriodStatus.ACTIVE
        assert period.calculation_run_id is None
        assert period.calculation_retries == 1

        retry = run_service.start(active_period.id, test_actor_id)
        assert retry.status == RunStatus.RUNNING
        assert retry.run_number == 2



class TestLockedPeriod:

    def test_locked_period_not_calculated(self, finalized_period, run_service, test_actor_id):
        with pytest.raises(PeriodLockedError) as exc_info:
            run_service.calculate_period(finalized_period.id, test_actor_id)

        assert exc_info.value.operation == "calculate"


class TestLogging:
    """Calculation log lines and structured events."""

    def test_calculation_log_lines(self, calculated_period, calculation_log):
        started = calculation_log.entries(
            calculated_period.id, log_type=CalculationLogType.CALCULATION_STARTED,
        )
        per_employee = calculation_log.entries(
            calculated_period.id, log_type=CalculationLogType.EMPLOYEE_CALCULATED,
        )
        completed = calculation_log.entries(
            calculated_period.id, log_type=CalculationLogType.CALCULATION_COMPLETED,
        )

        assert len(started) == 1
        assert sorted(e.employee_id for e in per_employee) == ["E001", "E002"]
        assert completed[0].details["calculated"] == 2
        assert completed[0].details["total_net_pay"] == "33388.75"

    def test_structured_events(self, captured_logs, active_period, run_service, test_actor_id):
        run_service.calculate_period(active_period.id, test_actor_id)

        records = captured_logs()
        completed = [r for r in records if r["message"] == "calculation_run_completed"]
        assert len(completed) == 1
        assert completed[0]["processed"] == 2
        assert completed[0]["period_id"] == str(active_period.id)
        assert any(r["message"] == "calculation_run_started" for r in records)

"""
Concurrent ledger appends on one period.

Two sessions load the same period, the first appends and commits, the
second appends from its stale view.  The period row's version column must
turn the second append into a LedgerConflictError reporting the status the
first session committed, never a silent double transition.

Uses a file-backed SQLite database so the sessions hold separate
connections.  The same database checks that session_scope commits on a
clean exit and rolls back when the block raises.
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from payroll_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from payroll_kernel.domain.clock import DeterministicClock
from payroll_kernel.domain.period_lifecycle import (
    ActorRole,
    ApprovalStep,
    LedgerAction,
    PeriodStatus,
)
from payroll_kernel.exceptions import CalculationAlreadyRunningError, LedgerConflictError
from payroll_kernel.models.period import PayrollPeriod
from payroll_kernel.services.approval_ledger import ApprovalLedger
from payroll_kernel.services.calculation_run_service import CalculationRunService
from payroll_kernel.services.period_service import PeriodService
from payroll_kernel.services.rate_provider import (
    InMemoryEmployeeSnapshotProvider,
    InMemoryRateTableProvider,
)
from tests.factories import PAYMENT_DATE, PERIOD_END, PERIOD_START, monthly_snapshot


@pytest.fixture
def session_factory(tmp_path):
    init_engine_from_url(f"sqlite:///{tmp_path / 'payroll.db'}")
    create_tables()
    yield get_session_factory()
    reset_engine()


@pytest.fixture
def clock():
    return DeterministicClock(datetime(2026, 1, 16, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def period_id(session_factory, clock):
    """An active period, committed."""
    actor_id = uuid4()
    with session_factory() as setup:
        service = PeriodService(setup, clock)
        period = service.create_period(PERIOD_START, PERIOD_END, PAYMENT_DATE, actor_id)
        service.activate(period.id, actor_id)
        setup.commit()
    return period.id


def run_service_for(session, clock) -> CalculationRunService:
    return CalculationRunService(
        session,
        InMemoryRateTableProvider.from_yaml(),
        InMemoryEmployeeSnapshotProvider([monthly_snapshot()]),
        clock=clock,
    )


class TestStaleAppend:

    def test_second_cancel_conflicts(self, session_factory, clock, period_id):
        first = session_factory()
        second = session_factory()
        try:
            first.get(PayrollPeriod, period_id)
            second.get(PayrollPeriod, period_id)

            ApprovalLedger(first, clock).append(
                period_id, ApprovalStep.PERIOD_CANCELLED, LedgerAction.CANCEL,
                uuid4(), ActorRole.OFFICE_ADMIN, "duplicate period",
            )
            first.commit()

            with pytest.raises(LedgerConflictError) as exc_info:
                ApprovalLedger(second, clock).append(
                    period_id, ApprovalStep.PERIOD_CANCELLED, LedgerAction.CANCEL,
                    uuid4(), ActorRole.HR_MANAGER, "also a duplicate",
                )

            assert exc_info.value.current_status == PeriodStatus.CANCELLED.value
        finally:
            first.close()
            second.close()

        with session_factory() as check:
            history = ApprovalLedger(check, clock).history(period_id)
            assert [e.seq for e in history] == [1, 2]
            assert ApprovalLedger(check, clock).verify_chain(period_id)

    def test_second_run_start_refused(self, session_factory, clock, period_id):
        first = session_factory()
        second = session_factory()
        try:
            first.get(PayrollPeriod, period_id)
            second.get(PayrollPeriod, period_id)

            run_service_for(first, clock).start(period_id, uuid4())
            first.commit()

            with pytest.raises(CalculationAlreadyRunningError):
                run_service_for(second, clock).start(period_id, uuid4())
        finally:
            first.close()
            second.close()

        with session_factory() as check:
            period = check.get(PayrollPeriod, period_id)
            assert period.status == PeriodStatus.CALCULATING.value
            assert period.ledger_seq == 2


class TestSessionScope:

    def test_commits_on_exit(self, session_factory, clock, period_id):
        with session_scope() as session:
            ApprovalLedger(session, clock).append(
                period_id, ApprovalStep.PERIOD_CANCELLED, LedgerAction.CANCEL,
                uuid4(), ActorRole.OFFICE_ADMIN, "merged into next period",
            )

        with session_factory() as check:
            assert check.get(PayrollPeriod, period_id).status == PeriodStatus.CANCELLED.value

    def test_rolls_back_on_error(self, session_factory, clock, period_id):
        with pytest.raises(RuntimeError):
            with session_scope() as session:
                ApprovalLedger(session, clock).append(
                    period_id, ApprovalStep.PERIOD_CANCELLED, LedgerAction.CANCEL,
                    uuid4(), ActorRole.OFFICE_ADMIN, "merged into next period",
                )
                raise RuntimeError("bank file rejected")

        with session_factory() as check:
            assert check.get(PayrollPeriod, period_id).status == PeriodStatus.ACTIVE.value
            assert ApprovalLedger(check, clock).history(period_id)[-1].seq == 1

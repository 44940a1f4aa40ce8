"""
Pytest fixtures for the payroll kernel test suite.

Provides:
- In-memory SQLite database sessions (fresh schema per test)
- A deterministic clock shared by every service
- A standard employee roster (builders live in tests/factories.py)
- Wired services and helpers that walk a period through its lifecycle

Environment Variables:
- DATABASE_URL: optional SQLAlchemy URL.  Defaults to ``sqlite://``.
"""

import json
import logging
import os
from datetime import date, datetime, timezone
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from payroll_config.schema import PayrollEngineConfig
from payroll_engines.calculation import PayrollCalculator, PeriodContext
from payroll_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from payroll_kernel.domain.clock import DeterministicClock
from payroll_kernel.domain.period_lifecycle import (
    ActorRole,
    ApprovalStep,
    PayFrequency,
    transition_for,
)
from payroll_kernel.domain.snapshot import EmployeeSnapshot
from payroll_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from payroll_kernel.services.adjustment_service import AdjustmentService
from payroll_kernel.services.approval_ledger import ApprovalLedger
from payroll_kernel.services.calculation_log_service import CalculationLogService
from payroll_kernel.services.calculation_run_service import CalculationRunService
from payroll_kernel.services.exception_service import ExceptionService
from payroll_kernel.services.period_service import PeriodService
from payroll_kernel.services.rate_provider import (
    InMemoryEmployeeSnapshotProvider,
    InMemoryRateTableProvider,
)
from tests.factories import (
    PAYMENT_DATE,
    PERIOD_END,
    PERIOD_START,
    TO_FINALIZED,
    monthly_snapshot,
)

DEFAULT_DATABASE_URL = "sqlite://"

# Roles that may perform each approval step in the happy path
STEP_ROLES = {
    ApprovalStep.PAYROLL_OFFICER_REVIEW: ActorRole.PAYROLL_OFFICER,
    ApprovalStep.PAYROLL_OFFICER_SUBMIT: ActorRole.PAYROLL_OFFICER,
    ApprovalStep.HR_MANAGER_APPROVE: ActorRole.HR_MANAGER,
    ApprovalStep.HR_MANAGER_REJECT: ActorRole.HR_MANAGER,
    ApprovalStep.OFFICE_ADMIN_REJECT: ActorRole.OFFICE_ADMIN,
    ApprovalStep.OFFICE_ADMIN_LOCK: ActorRole.OFFICE_ADMIN,
    ApprovalStep.OFFICE_ADMIN_UNLOCK: ActorRole.OFFICE_ADMIN,
    ApprovalStep.PAYMENT_STARTED: ActorRole.OFFICE_ADMIN,
    ApprovalStep.PAYMENT_COMPLETED: ActorRole.SYSTEM,
}


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture payroll_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, run_service):
            run_service.calculate_period(...)
            logs = captured_logs()
            assert any(r["message"] == "calculation_run_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("payroll_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


@pytest.fixture
def db_engine():
    """Fresh engine and schema per test."""
    eng = init_engine_from_url(get_database_url())
    drop_tables()
    create_tables()
    yield eng
    drop_tables()
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    sess = get_session()
    try:
        yield sess
    finally:
        sess.rollback()
        sess.close()


# =============================================================================
# Actors, clock, configuration
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    return uuid4()


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(datetime(2026, 1, 16, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def engine_config() -> PayrollEngineConfig:
    return PayrollEngineConfig()


@pytest.fixture
def rate_provider() -> InMemoryRateTableProvider:
    return InMemoryRateTableProvider.from_yaml()


@pytest.fixture
def rate_tables(rate_provider):
    return rate_provider.tables_for(PAYMENT_DATE)


@pytest.fixture
def calculator(engine_config) -> PayrollCalculator:
    return PayrollCalculator(engine_config)


@pytest.fixture
def semi_monthly_period() -> PeriodContext:
    return PeriodContext(
        period_start=PERIOD_START,
        period_end=PERIOD_END,
        payment_date=PAYMENT_DATE,
        pay_frequency=PayFrequency.SEMI_MONTHLY,
    )


@pytest.fixture
def monthly_period() -> PeriodContext:
    return PeriodContext(
        period_start=date(2026, 1, 1),
        period_end=date(2026, 1, 31),
        payment_date=date(2026, 1, 31),
        pay_frequency=PayFrequency.MONTHLY,
    )


# =============================================================================
# Employees
# =============================================================================


@pytest.fixture
def standard_roster() -> list[EmployeeSnapshot]:
    """Two clean employees; E001 nets 13,607.08 per semi-monthly period."""
    return [
        monthly_snapshot("E001", "30000"),
        monthly_snapshot("E002", "44000"),
    ]


@pytest.fixture
def snapshot_provider(standard_roster) -> InMemoryEmployeeSnapshotProvider:
    return InMemoryEmployeeSnapshotProvider(standard_roster)


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def calculation_log(session, deterministic_clock) -> CalculationLogService:
    return CalculationLogService(session, deterministic_clock)


@pytest.fixture
def ledger(session, deterministic_clock, engine_config) -> ApprovalLedger:
    return ApprovalLedger(session, deterministic_clock, engine_config.gate)


@pytest.fixture
def period_service(session, deterministic_clock, engine_config, ledger) -> PeriodService:
    return PeriodService(session, deterministic_clock, engine_config, ledger)


@pytest.fixture
def exception_service(
    session, deterministic_clock, engine_config, calculation_log,
) -> ExceptionService:
    return ExceptionService(
        session,
        deterministic_clock,
        calculation_log=calculation_log,
        thresholds=engine_config.thresholds,
    )


@pytest.fixture
def run_service(
    session,
    deterministic_clock,
    engine_config,
    rate_provider,
    snapshot_provider,
    ledger,
    period_service,
    exception_service,
    calculation_log,
) -> CalculationRunService:
    return CalculationRunService(
        session,
        rate_provider,
        snapshot_provider,
        clock=deterministic_clock,
        config=engine_config,
        ledger=ledger,
        period_service=period_service,
        exception_service=exception_service,
        calculation_log=calculation_log,
    )


@pytest.fixture
def adjustment_service(
    session,
    deterministic_clock,
    engine_config,
    rate_provider,
    period_service,
    exception_service,
    calculation_log,
) -> AdjustmentService:
    return AdjustmentService(
        session,
        rate_provider,
        clock=deterministic_clock,
        config=engine_config,
        period_service=period_service,
        exception_service=exception_service,
        calculation_log=calculation_log,
    )


# =============================================================================
# Period helpers
# =============================================================================


@pytest.fixture
def create_period(period_service, test_actor_id):
    """Factory: create a draft semi-monthly period (defaults to Jan 1-15 2026)."""

    def _create(
        period_start: date = PERIOD_START,
        period_end: date = PERIOD_END,
        payment_date: date = PAYMENT_DATE,
        **kwargs,
    ):
        return period_service.create_period(
            period_start, period_end, payment_date, test_actor_id, **kwargs,
        )

    return _create


@pytest.fixture
def active_period(create_period, period_service, test_actor_id):
    period = create_period()
    return period_service.activate(period.id, test_actor_id)


@pytest.fixture
def calculated_period(active_period, run_service, period_service, test_actor_id):
    run_service.calculate_period(active_period.id, test_actor_id)
    return period_service.get_period(active_period.id)


@pytest.fixture
def advance(ledger, test_actor_id):
    """Apply approval steps in order with their happy-path roles."""

    def _advance(period_id: UUID, *steps: ApprovalStep, actor_id: UUID | None = None):
        entry = None
        for step in steps:
            entry = ledger.append(
                period_id,
                step,
                transition_for(step).action,
                actor_id or test_actor_id,
                STEP_ROLES[step],
                comment=f"{step.value} in test",
            )
        return entry

    return _advance


@pytest.fixture
def finalized_period(calculated_period, advance, period_service):
    advance(calculated_period.id, *TO_FINALIZED)
    return period_service.get_period(calculated_period.id)


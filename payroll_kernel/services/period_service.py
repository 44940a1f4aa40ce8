"""
PeriodService -- payroll period creation, lookup, aggregates and archival.

Responsibility:
    Creates periods in ``draft`` with a generated period number and
    default deadlines, answers period queries, recomputes the derived
    aggregate totals from current calculation versions, and soft-archives
    terminal periods.  Status changes (activation, cancellation) are
    delegated to the approval ledger; this service never writes
    ``status`` itself.

Architecture position:
    Kernel > Services -- imperative shell.  Called by the calculation run
    and adjustment services for aggregates and lock checks.

Invariants enforced:
    - period_number is unique.
    - Aggregates are recomputed from scratch over the current version of
      every employee calculation, never incrementally.
    - Only ``completed`` or ``cancelled`` periods may be archived.
    - Flush-only: never commits.

Failure modes:
    - InvalidPeriodError: dates out of order, deadline after payment.
    - DuplicatePeriodError: period number already taken.
    - PeriodNotFoundError, PeriodLockedError, PeriodArchiveError.

Audit relevance:
    Creation and archival are logged; every status change is a ledger
    entry written by ApprovalLedger.
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from payroll_config.schema import PayrollEngineConfig
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.dtos import PeriodInfo, PeriodTotals
from payroll_kernel.domain.money import round_money
from payroll_kernel.domain.period_lifecycle import (
    ARCHIVABLE_STATUSES,
    ActorRole,
    ApprovalStep,
    LedgerAction,
    PayFrequency,
    PeriodStatus,
    PeriodType,
)
from payroll_kernel.domain.statuses import (
    AdjustmentStatus,
    CalculationStatus,
    ExceptionStatus,
)
from payroll_kernel.exceptions import (
    DuplicatePeriodError,
    InvalidPeriodError,
    PeriodArchiveError,
    PeriodLockedError,
    PeriodNotFoundError,
)
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.adjustment import PayrollAdjustment
from payroll_kernel.models.calculation import EmployeeCalculation
from payroll_kernel.models.exception import PayrollException
from payroll_kernel.models.period import PayrollPeriod
from payroll_kernel.services.approval_ledger import ApprovalLedger
from payroll_kernel.services.base import BaseService

logger = get_logger("services.period")

_TYPE_SUFFIXES = {
    PeriodType.ADJUSTMENT: "ADJ",
    PeriodType.THIRTEENTH_MONTH: "13M",
    PeriodType.FINAL_PAY: "FP",
    PeriodType.OFF_CYCLE_BONUS: "BON",
}

_TYPE_LABELS = {
    PeriodType.ADJUSTMENT: "Adjustment",
    PeriodType.THIRTEENTH_MONTH: "13th Month Pay",
    PeriodType.FINAL_PAY: "Final Pay",
    PeriodType.OFF_CYCLE_BONUS: "Off-cycle Bonus",
}

# Open exceptions counted on the period (resolved/ignored ones are done).
_OUTSTANDING_EXCEPTION_STATUSES = (
    ExceptionStatus.OPEN.value,
    ExceptionStatus.ACKNOWLEDGED.value,
)


def generate_period_number(
    period_start: date,
    pay_frequency: PayFrequency,
    period_type: PeriodType = PeriodType.REGULAR,
) -> str:
    """
    Period number for a new period.

    Regular semi-monthly periods are ``YYYY-MM-A`` (starting on or before
    the 15th) or ``YYYY-MM-B``; regular monthly periods are ``YYYY-MM``.
    Other types replace the half-month letter with a type suffix, e.g.
    ``2026-12-13M``.
    """
    month = f"{period_start.year:04d}-{period_start.month:02d}"
    if period_type != PeriodType.REGULAR:
        return f"{month}-{_TYPE_SUFFIXES[period_type]}"
    if pay_frequency == PayFrequency.MONTHLY:
        return month
    half = "A" if period_start.day <= 15 else "B"
    return f"{month}-{half}"


def _default_period_name(
    period_start: date,
    period_end: date,
    pay_frequency: PayFrequency,
    period_type: PeriodType,
) -> str:
    name = period_start.strftime("%B %Y")
    if pay_frequency == PayFrequency.SEMI_MONTHLY:
        name = f"{name} ({period_start.day}-{period_end.day})"
    if period_type != PeriodType.REGULAR:
        name = f"{_TYPE_LABELS[period_type]} - {name}"
    return name


class PeriodService(BaseService[PayrollPeriod]):
    """
    Payroll period lifecycle outside the approval chain.

    Contract:
        Returns ``PeriodInfo`` DTOs.  Activation and cancellation go
        through the approval ledger so that they appear in the period's
        history like every other transition.

    Non-goals:
        - Does NOT validate approval transitions (ApprovalLedger).
        - Does NOT compute pay (CalculationRunService).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: PayrollEngineConfig | None = None,
        ledger: ApprovalLedger | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._config = config or PayrollEngineConfig()
        self._ledger = ledger or ApprovalLedger(session, self._clock, self._config.gate)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_period(
        self,
        period_start: date,
        period_end: date,
        payment_date: date,
        actor_id: UUID,
        *,
        period_type: PeriodType = PeriodType.REGULAR,
        pay_frequency: PayFrequency | None = None,
        period_number: str | None = None,
        period_name: str | None = None,
        timekeeping_cutoff_date: date | None = None,
        leave_cutoff_date: date | None = None,
        adjustment_deadline: date | None = None,
        notes: str | None = None,
    ) -> PeriodInfo:
        """
        Create a period in ``draft``.

        ``adjustment_deadline`` defaults to the payment date minus the
        configured number of days (never before ``period_end``).

        Raises:
            InvalidPeriodError: dates are inconsistent.
            DuplicatePeriodError: the period number is taken.
        """
        frequency = pay_frequency or self._config.default_pay_frequency

        if period_end < period_start:
            raise InvalidPeriodError(
                f"period_end ({period_end}) is before period_start ({period_start})"
            )
        if payment_date < period_start:
            raise InvalidPeriodError(
                f"payment_date ({payment_date}) is before period_start ({period_start})"
            )
        if adjustment_deadline is None:
            adjustment_deadline = max(
                payment_date - timedelta(
                    days=self._config.adjustment_deadline_days_before_payment,
                ),
                period_end,
            )
        if adjustment_deadline > payment_date:
            raise InvalidPeriodError(
                f"adjustment_deadline ({adjustment_deadline}) is after "
                f"payment_date ({payment_date})"
            )

        number = period_number or generate_period_number(period_start, frequency, period_type)
        existing = self.session.execute(
            select(PayrollPeriod.id).where(PayrollPeriod.period_number == number)
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicatePeriodError(number)

        period = PayrollPeriod(
            period_number=number,
            period_name=period_name or _default_period_name(
                period_start, period_end, frequency, period_type,
            ),
            period_type=period_type.value,
            pay_frequency=frequency.value,
            period_start=period_start,
            period_end=period_end,
            payment_date=payment_date,
            timekeeping_cutoff_date=timekeeping_cutoff_date,
            leave_cutoff_date=leave_cutoff_date,
            adjustment_deadline=adjustment_deadline,
            status=PeriodStatus.DRAFT.value,
            locked=False,
            notes=notes,
            created_by_id=actor_id,
        )
        self.session.add(period)
        try:
            self.session.flush()
        except IntegrityError:
            self.session.rollback()
            logger.warning("duplicate_period_conflict", extra={"period_number": number})
            raise DuplicatePeriodError(number)

        logger.info(
            "period_created",
            extra={
                "period_number": number,
                "period_type": period_type.value,
                "pay_frequency": frequency.value,
                "period_start": str(period_start),
                "period_end": str(period_end),
                "payment_date": str(payment_date),
            },
        )
        return PeriodInfo.from_model(period)

    # ------------------------------------------------------------------
    # Transitions delegated to the ledger
    # ------------------------------------------------------------------

    def activate(
        self,
        period_id: UUID,
        actor_id: UUID,
        actor_role: ActorRole = ActorRole.PAYROLL_OFFICER,
        comment: str | None = None,
    ) -> PeriodInfo:
        """Move a draft period to ``active`` via the approval ledger."""
        self._ledger.append(
            period_id, ApprovalStep.PERIOD_ACTIVATED, LedgerAction.ACTIVATE,
            actor_id, actor_role, comment,
        )
        return self.get_period(period_id)

    def cancel(
        self,
        period_id: UUID,
        actor_id: UUID,
        actor_role: ActorRole,
        comment: str | None = None,
    ) -> PeriodInfo:
        """Cancel a period that has not been finalized."""
        self._ledger.append(
            period_id, ApprovalStep.PERIOD_CANCELLED, LedgerAction.CANCEL,
            actor_id, actor_role, comment,
        )
        return self.get_period(period_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _get_period_orm(self, period_id: UUID) -> PayrollPeriod:
        period = self.session.get(PayrollPeriod, period_id)
        if period is None:
            raise PeriodNotFoundError(str(period_id))
        return period

    def _get_period_for_update(self, period_id: UUID) -> PayrollPeriod:
        period = self.session.execute(
            select(PayrollPeriod).where(PayrollPeriod.id == period_id).with_for_update()
        ).scalar_one_or_none()
        if period is None:
            raise PeriodNotFoundError(str(period_id))
        return period

    def get_period(self, period_id: UUID) -> PeriodInfo:
        return PeriodInfo.from_model(self._get_period_orm(period_id))

    def get_period_by_number(self, period_number: str) -> PeriodInfo | None:
        period = self.session.execute(
            select(PayrollPeriod).where(PayrollPeriod.period_number == period_number)
        ).scalar_one_or_none()
        return PeriodInfo.from_model(period) if period is not None else None

    def list_periods(
        self,
        status: PeriodStatus | None = None,
        include_archived: bool = False,
    ) -> list[PeriodInfo]:
        query = select(PayrollPeriod)
        if status is not None:
            query = query.where(PayrollPeriod.status == status.value)
        if not include_archived:
            query = query.where(PayrollPeriod.archived_at.is_(None))
        query = query.order_by(PayrollPeriod.period_start, PayrollPeriod.period_number)
        return [PeriodInfo.from_model(p) for p in self.session.execute(query).scalars()]

    def ensure_unlocked(self, period: PayrollPeriod, operation: str) -> None:
        """
        Raises:
            PeriodLockedError: the period is locked.
        """
        if period.locked:
            logger.warning(
                "locked_period_violation",
                extra={"period_number": period.period_number, "operation": operation},
            )
            raise PeriodLockedError(period.period_number, operation)

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def recompute_aggregates(self, period_id: UUID) -> PeriodTotals:
        """
        Recompute the period's totals from its current calculation versions.

        A full read-modify-write of the period row: every total is rebuilt
        from the current versions, so the stored figures cannot drift.
        """
        period = self._get_period_for_update(period_id)
        current = EmployeeCalculation.status != CalculationStatus.SUPERSEDED.value

        row = self.session.execute(
            select(
                func.count(EmployeeCalculation.id),
                func.coalesce(func.sum(EmployeeCalculation.gross_pay), 0),
                func.coalesce(func.sum(EmployeeCalculation.total_deductions), 0),
                func.coalesce(func.sum(EmployeeCalculation.final_net_pay), 0),
                func.coalesce(func.sum(EmployeeCalculation.government_contributions), 0),
                func.coalesce(func.sum(EmployeeCalculation.withholding_tax), 0),
                func.coalesce(func.sum(EmployeeCalculation.loan_deductions), 0),
                func.coalesce(func.sum(EmployeeCalculation.adjustments_total), 0),
            ).where(EmployeeCalculation.period_id == period_id, current)
        ).one()

        exceptions_count = self.session.execute(
            select(func.count(PayrollException.id))
            .join(EmployeeCalculation, EmployeeCalculation.id == PayrollException.calculation_id)
            .where(
                PayrollException.period_id == period_id,
                PayrollException.status.in_(_OUTSTANDING_EXCEPTION_STATUSES),
                current,
            )
        ).scalar_one()

        adjustments_count = self.session.execute(
            select(func.count(PayrollAdjustment.id)).where(
                PayrollAdjustment.period_id == period_id,
                PayrollAdjustment.status == AdjustmentStatus.APPLIED.value,
            )
        ).scalar_one()

        totals = PeriodTotals(
            employee_count=row[0],
            exceptions_count=exceptions_count,
            adjustments_count=adjustments_count,
            total_gross_pay=_sum(row[1]),
            total_deductions=_sum(row[2]),
            total_net_pay=_sum(row[3]),
            total_government_contributions=_sum(row[4]),
            total_withholding_tax=_sum(row[5]),
            total_loan_deductions=_sum(row[6]),
            total_adjustments=_sum(row[7]),
        )

        period.employee_count = totals.employee_count
        period.exceptions_count = totals.exceptions_count
        period.adjustments_count = totals.adjustments_count
        period.total_gross_pay = totals.total_gross_pay
        period.total_deductions = totals.total_deductions
        period.total_net_pay = totals.total_net_pay
        period.total_government_contributions = totals.total_government_contributions
        period.total_withholding_tax = totals.total_withholding_tax
        period.total_loan_deductions = totals.total_loan_deductions
        period.total_adjustments = totals.total_adjustments
        self.session.flush()

        logger.info(
            "period_aggregates_recomputed",
            extra={
                "period_number": period.period_number,
                "employee_count": totals.employee_count,
                "total_net_pay": str(totals.total_net_pay),
            },
        )
        return totals

    # ------------------------------------------------------------------
    # Archival
    # ------------------------------------------------------------------

    def archive_period(self, period_id: UUID, actor_id: UUID) -> PeriodInfo:
        """
        Soft-archive a completed or cancelled period.

        Raises:
            PeriodArchiveError: the period is in any other status.
        """
        period = self._get_period_for_update(period_id)
        if PeriodStatus(period.status) not in ARCHIVABLE_STATUSES:
            raise PeriodArchiveError(period.period_number, period.status)
        if period.archived_at is None:
            period.archived_at = self._clock.now()
            period.updated_by_id = actor_id
            self.session.flush()
            logger.info(
                "period_archived",
                extra={"period_number": period.period_number},
            )
        return PeriodInfo.from_model(period)


def _sum(value) -> Decimal:
    """SUM over Numeric may come back as int 0, float or Decimal by dialect."""
    if isinstance(value, float):
        value = Decimal(str(value))
    return round_money(value)

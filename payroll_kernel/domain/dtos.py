"""
DTOs -- read-side data transfer objects.

Responsibility:
    Frozen views of periods, calculations, exceptions, adjustments, ledger
    entries, calculation runs and the payment export.  Services and
    selectors return these instead of ORM instances.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ``from_model()`` class methods are
    boundary converters invoked only from services and selectors.

Invariants enforced:
    - Monetary fields are quantized to 2 places on the way out, whatever
      the backing column returns.
    - Enum-valued fields are returned as their enum members.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from payroll_kernel.domain.money import round_money
from payroll_kernel.domain.period_lifecycle import (
    ActorRole,
    ApprovalStep,
    LedgerAction,
    PayFrequency,
    PeriodStatus,
    PeriodType,
)
from payroll_kernel.domain.statuses import (
    AdjustmentCategory,
    AdjustmentStatus,
    AdjustmentType,
    CalculationStatus,
    ExceptionSeverity,
    ExceptionStatus,
    ExceptionType,
    RunStatus,
)

if TYPE_CHECKING:
    from payroll_kernel.models.adjustment import PayrollAdjustment
    from payroll_kernel.models.calculation import EmployeeCalculation
    from payroll_kernel.models.calculation_run import CalculationRun
    from payroll_kernel.models.exception import PayrollException
    from payroll_kernel.models.ledger import ApprovalLedgerEntry
    from payroll_kernel.models.period import PayrollPeriod


def _money(value: Decimal | None) -> Decimal:
    return round_money(value if value is not None else Decimal("0"))


def _opt_money(value: Decimal | None) -> Decimal | None:
    return round_money(value) if value is not None else None


@dataclass(frozen=True)
class PeriodTotals:
    """Aggregates over the current calculation versions of a period."""

    employee_count: int = 0
    exceptions_count: int = 0
    adjustments_count: int = 0
    total_gross_pay: Decimal = Decimal("0.00")
    total_deductions: Decimal = Decimal("0.00")
    total_net_pay: Decimal = Decimal("0.00")
    total_government_contributions: Decimal = Decimal("0.00")
    total_withholding_tax: Decimal = Decimal("0.00")
    total_loan_deductions: Decimal = Decimal("0.00")
    total_adjustments: Decimal = Decimal("0.00")

    def to_dict(self) -> dict[str, Any]:
        return {
            "employee_count": self.employee_count,
            "exceptions_count": self.exceptions_count,
            "adjustments_count": self.adjustments_count,
            "total_gross_pay": f"{self.total_gross_pay:.2f}",
            "total_deductions": f"{self.total_deductions:.2f}",
            "total_net_pay": f"{self.total_net_pay:.2f}",
            "total_government_contributions": f"{self.total_government_contributions:.2f}",
            "total_withholding_tax": f"{self.total_withholding_tax:.2f}",
            "total_loan_deductions": f"{self.total_loan_deductions:.2f}",
            "total_adjustments": f"{self.total_adjustments:.2f}",
        }


@dataclass(frozen=True)
class PeriodInfo:
    """Snapshot of a payroll period's state and totals."""

    id: UUID
    period_number: str
    period_name: str
    period_type: PeriodType
    pay_frequency: PayFrequency
    period_start: date
    period_end: date
    payment_date: date
    status: PeriodStatus
    locked: bool
    totals: PeriodTotals
    timekeeping_cutoff_date: date | None = None
    leave_cutoff_date: date | None = None
    adjustment_deadline: date | None = None
    locked_at: datetime | None = None
    locked_by_id: UUID | None = None
    calculation_run_id: UUID | None = None
    calculation_retries: int = 0
    last_calculation_error: str | None = None
    rejection_reason: str | None = None
    archived_at: datetime | None = None

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    @classmethod
    def from_model(cls, period: PayrollPeriod) -> PeriodInfo:
        return cls(
            id=period.id,
            period_number=period.period_number,
            period_name=period.period_name,
            period_type=PeriodType(period.period_type),
            pay_frequency=PayFrequency(period.pay_frequency),
            period_start=period.period_start,
            period_end=period.period_end,
            payment_date=period.payment_date,
            status=PeriodStatus(period.status),
            locked=period.locked,
            totals=PeriodTotals(
                employee_count=period.employee_count,
                exceptions_count=period.exceptions_count,
                adjustments_count=period.adjustments_count,
                total_gross_pay=_money(period.total_gross_pay),
                total_deductions=_money(period.total_deductions),
                total_net_pay=_money(period.total_net_pay),
                total_government_contributions=_money(period.total_government_contributions),
                total_withholding_tax=_money(period.total_withholding_tax),
                total_loan_deductions=_money(period.total_loan_deductions),
                total_adjustments=_money(period.total_adjustments),
            ),
            timekeeping_cutoff_date=period.timekeeping_cutoff_date,
            leave_cutoff_date=period.leave_cutoff_date,
            adjustment_deadline=period.adjustment_deadline,
            locked_at=period.locked_at,
            locked_by_id=period.locked_by_id,
            calculation_run_id=period.calculation_run_id,
            calculation_retries=period.calculation_retries,
            last_calculation_error=period.last_calculation_error,
            rejection_reason=period.rejection_reason,
            archived_at=period.archived_at,
        )


@dataclass(frozen=True)
class CalculationInfo:
    """One persisted calculation version for one employee."""

    id: UUID
    period_id: UUID
    employee_id: str
    version: int
    status: CalculationStatus
    is_current: bool
    gross_pay: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    adjustments_total: Decimal
    final_net_pay: Decimal
    government_contributions: Decimal
    withholding_tax: Decimal
    loan_deductions: Decimal
    rate_table_version: str | None
    result_hash: str | None
    previous_version_id: UUID | None = None
    run_id: UUID | None = None
    error_message: str | None = None
    calculated_at: datetime | None = None
    input_snapshot: dict[str, Any] = field(default_factory=dict)
    result: dict[str, Any] | None = None

    @classmethod
    def from_model(cls, calc: EmployeeCalculation) -> CalculationInfo:
        return cls(
            id=calc.id,
            period_id=calc.period_id,
            employee_id=calc.employee_id,
            version=calc.version,
            status=CalculationStatus(calc.status),
            is_current=calc.status != CalculationStatus.SUPERSEDED.value,
            gross_pay=_money(calc.gross_pay),
            total_deductions=_money(calc.total_deductions),
            net_pay=_money(calc.net_pay),
            adjustments_total=_money(calc.adjustments_total),
            final_net_pay=_money(calc.final_net_pay),
            government_contributions=_money(calc.government_contributions),
            withholding_tax=_money(calc.withholding_tax),
            loan_deductions=_money(calc.loan_deductions),
            rate_table_version=calc.rate_table_version,
            result_hash=calc.result_hash,
            previous_version_id=calc.previous_version_id,
            run_id=calc.run_id,
            error_message=calc.error_message,
            calculated_at=calc.calculated_at,
            input_snapshot=dict(calc.input_snapshot or {}),
            result=dict(calc.result) if calc.result is not None else None,
        )


@dataclass(frozen=True)
class ExceptionInfo:
    id: UUID
    calculation_id: UUID
    period_id: UUID
    employee_id: str
    calculation_version: int
    exception_type: ExceptionType
    severity: ExceptionSeverity
    status: ExceptionStatus
    title: str
    description: str
    detection_rule: str
    is_auto_generated: bool
    current_value: Decimal | None = None
    expected_value: Decimal | None = None
    variance: Decimal | None = None
    variance_percentage: Decimal | None = None
    resolution_notes: str | None = None
    resolved_at: datetime | None = None
    resolved_by_id: UUID | None = None

    @classmethod
    def from_model(cls, exc: PayrollException) -> ExceptionInfo:
        return cls(
            id=exc.id,
            calculation_id=exc.calculation_id,
            period_id=exc.period_id,
            employee_id=exc.employee_id,
            calculation_version=exc.calculation_version,
            exception_type=ExceptionType(exc.exception_type),
            severity=ExceptionSeverity(exc.severity),
            status=ExceptionStatus(exc.status),
            title=exc.title,
            description=exc.description,
            detection_rule=exc.detection_rule,
            is_auto_generated=exc.is_auto_generated,
            current_value=_opt_money(exc.current_value),
            expected_value=_opt_money(exc.expected_value),
            variance=_opt_money(exc.variance),
            variance_percentage=(
                exc.variance_percentage.quantize(Decimal("0.0001"))
                if exc.variance_percentage is not None
                else None
            ),
            resolution_notes=exc.resolution_notes,
            resolved_at=exc.resolved_at,
            resolved_by_id=exc.resolved_by_id,
        )


@dataclass(frozen=True)
class AdjustmentInfo:
    id: UUID
    period_id: UUID
    employee_id: str
    calculation_id: UUID
    adjustment_type: AdjustmentType
    category: AdjustmentCategory
    amount: Decimal
    reason: str
    status: AdjustmentStatus
    requested_by_id: UUID
    component: str | None = None
    decided_by_id: UUID | None = None
    decided_at: datetime | None = None
    decision_comment: str | None = None
    applied_at: datetime | None = None
    applied_by_id: UUID | None = None
    resulting_calculation_id: UUID | None = None
    impact_on_net_pay: Decimal | None = None

    @classmethod
    def from_model(cls, adj: PayrollAdjustment) -> AdjustmentInfo:
        return cls(
            id=adj.id,
            period_id=adj.period_id,
            employee_id=adj.employee_id,
            calculation_id=adj.calculation_id,
            adjustment_type=AdjustmentType(adj.adjustment_type),
            category=AdjustmentCategory(adj.category),
            amount=_money(adj.amount),
            reason=adj.reason,
            status=AdjustmentStatus(adj.status),
            requested_by_id=adj.requested_by_id,
            component=adj.component,
            decided_by_id=adj.decided_by_id,
            decided_at=adj.decided_at,
            decision_comment=adj.decision_comment,
            applied_at=adj.applied_at,
            applied_by_id=adj.applied_by_id,
            resulting_calculation_id=adj.resulting_calculation_id,
            impact_on_net_pay=_opt_money(adj.impact_on_net_pay),
        )


@dataclass(frozen=True)
class LedgerEntryInfo:
    id: UUID
    period_id: UUID
    seq: int
    step: ApprovalStep
    action: LedgerAction
    status_from: PeriodStatus
    status_to: PeriodStatus
    actor_id: UUID
    actor_role: ActorRole
    occurred_at: datetime
    period_snapshot: dict[str, Any]
    payload_hash: str
    prev_hash: str | None
    hash: str
    comment: str | None = None
    rejection_reason: str | None = None

    @classmethod
    def from_model(cls, entry: ApprovalLedgerEntry) -> LedgerEntryInfo:
        return cls(
            id=entry.id,
            period_id=entry.period_id,
            seq=entry.seq,
            step=ApprovalStep(entry.step),
            action=LedgerAction(entry.action),
            status_from=PeriodStatus(entry.status_from),
            status_to=PeriodStatus(entry.status_to),
            actor_id=entry.actor_id,
            actor_role=ActorRole(entry.actor_role),
            occurred_at=entry.occurred_at,
            period_snapshot=dict(entry.period_snapshot or {}),
            payload_hash=entry.payload_hash,
            prev_hash=entry.prev_hash,
            hash=entry.hash,
            comment=entry.comment,
            rejection_reason=entry.rejection_reason,
        )


@dataclass(frozen=True)
class CalculationRunInfo:
    """Pollable progress of one calculation run."""

    id: UUID
    period_id: UUID
    run_number: int
    status: RunStatus
    total_employees: int
    processed_employees: int
    calculated_count: int
    exception_count: int
    failed_count: int
    started_at: datetime
    completed_at: datetime | None = None
    rate_table_version: str | None = None
    error_summary: str | None = None

    @property
    def progress_percentage(self) -> Decimal:
        if self.total_employees == 0:
            return Decimal("100.00")
        return round_money(
            Decimal(self.processed_employees) * 100 / Decimal(self.total_employees)
        )

    @classmethod
    def from_model(cls, run: CalculationRun) -> CalculationRunInfo:
        return cls(
            id=run.id,
            period_id=run.period_id,
            run_number=run.run_number,
            status=RunStatus(run.status),
            total_employees=run.total_employees,
            processed_employees=run.processed_employees,
            calculated_count=run.calculated_count,
            exception_count=run.exception_count,
            failed_count=run.failed_count,
            started_at=run.started_at,
            completed_at=run.completed_at,
            rate_table_version=run.rate_table_version,
            error_summary=run.error_summary,
        )


@dataclass(frozen=True)
class PaymentExportLine:
    employee_id: str
    calculation_id: UUID
    version: int
    final_net_pay: Decimal
    gross_pay: Decimal
    government_contributions: Decimal
    withholding_tax: Decimal
    loan_deductions: Decimal
    total_deductions: Decimal


@dataclass(frozen=True)
class PaymentExport:
    """Net pay per employee for a locked period, ready for disbursement."""

    period_id: UUID
    period_number: str
    payment_date: date
    lines: tuple[PaymentExportLine, ...]
    total_net_pay: Decimal

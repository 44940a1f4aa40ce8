"""
Period lifecycle -- statuses, approval steps, and the static ledger table.

Responsibility:
    Declares the closed set of period statuses and the one static table
    (``LEDGER_TRANSITIONS``) that maps each approval step to its action,
    legal source statuses, target status, permitted actor roles, lock
    effect and guard.  The approval ledger consults this table for every
    append; nothing else changes a period's status.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Each step names exactly one action and one target status.  All steps
      except ``period_cancelled`` have exactly one source status.
    - ``locked`` is set only on entry to ``finalized`` and cleared only by
      ``office_admin_unlock``.
    - ``PERIOD_TRANSITIONS`` is derived from ``LEDGER_TRANSITIONS`` so the
      two can never disagree.

Failure modes:
    None here; the ledger raises InvalidTransitionError on a miss.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class PeriodStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    CALCULATING = "calculating"
    CALCULATED = "calculated"
    UNDER_REVIEW = "under_review"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    FINALIZED = "finalized"
    PROCESSING_PAYMENT = "processing_payment"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PeriodType(str, Enum):
    REGULAR = "regular"
    ADJUSTMENT = "adjustment"
    THIRTEENTH_MONTH = "thirteenth_month"
    FINAL_PAY = "final_pay"
    OFF_CYCLE_BONUS = "off_cycle_bonus"


class PayFrequency(str, Enum):
    MONTHLY = "monthly"
    SEMI_MONTHLY = "semi_monthly"

    @property
    def periods_per_month(self) -> int:
        return 1 if self is PayFrequency.MONTHLY else 2


class ActorRole(str, Enum):
    PAYROLL_OFFICER = "payroll_officer"
    HR_MANAGER = "hr_manager"
    OFFICE_ADMIN = "office_admin"
    SYSTEM = "system"


class LedgerAction(str, Enum):
    ACTIVATE = "activate"
    START_CALCULATION = "start_calculation"
    COMPLETE_CALCULATION = "complete_calculation"
    FAIL_CALCULATION = "fail_calculation"
    BEGIN_REVIEW = "begin_review"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    LOCK = "lock"
    UNLOCK = "unlock"
    START_PAYMENT = "start_payment"
    COMPLETE_PAYMENT = "complete_payment"
    CANCEL = "cancel"


class ApprovalStep(str, Enum):
    PERIOD_ACTIVATED = "period_activated"
    CALCULATION_STARTED = "calculation_started"
    CALCULATION_COMPLETED = "calculation_completed"
    CALCULATION_FAILED = "calculation_failed"
    PAYROLL_OFFICER_REVIEW = "payroll_officer_review"
    PAYROLL_OFFICER_SUBMIT = "payroll_officer_submit"
    HR_MANAGER_APPROVE = "hr_manager_approve"
    HR_MANAGER_REJECT = "hr_manager_reject"
    OFFICE_ADMIN_REJECT = "office_admin_reject"
    OFFICE_ADMIN_LOCK = "office_admin_lock"
    OFFICE_ADMIN_UNLOCK = "office_admin_unlock"
    PAYMENT_STARTED = "payment_started"
    PAYMENT_COMPLETED = "payment_completed"
    PERIOD_CANCELLED = "period_cancelled"


@dataclass(frozen=True)
class Guard:
    """A named precondition evaluated by the ledger before a step."""

    name: str
    description: str


NO_BLOCKING_EXCEPTIONS = Guard(
    name="no_blocking_exceptions",
    description="No open exceptions of a blocking severity on current calculations",
)


@dataclass(frozen=True)
class LedgerTransition:
    """One row of the static approval table."""

    step: ApprovalStep
    action: LedgerAction
    from_statuses: frozenset[PeriodStatus]
    to_status: PeriodStatus
    roles: frozenset[ActorRole]
    sets_lock: bool = False
    clears_lock: bool = False
    guard: Guard | None = None


_SYSTEM_OR_OFFICER = frozenset({ActorRole.SYSTEM, ActorRole.PAYROLL_OFFICER})

PRE_FINALIZED_STATUSES: frozenset[PeriodStatus] = frozenset({
    PeriodStatus.DRAFT,
    PeriodStatus.ACTIVE,
    PeriodStatus.CALCULATING,
    PeriodStatus.CALCULATED,
    PeriodStatus.UNDER_REVIEW,
    PeriodStatus.PENDING_APPROVAL,
    PeriodStatus.APPROVED,
})

LEDGER_TRANSITIONS: dict[ApprovalStep, LedgerTransition] = {
    t.step: t
    for t in (
        LedgerTransition(
            ApprovalStep.PERIOD_ACTIVATED, LedgerAction.ACTIVATE,
            frozenset({PeriodStatus.DRAFT}), PeriodStatus.ACTIVE,
            _SYSTEM_OR_OFFICER,
        ),
        LedgerTransition(
            ApprovalStep.CALCULATION_STARTED, LedgerAction.START_CALCULATION,
            frozenset({PeriodStatus.ACTIVE, PeriodStatus.CALCULATED}),
            PeriodStatus.CALCULATING,
            _SYSTEM_OR_OFFICER,
        ),
        LedgerTransition(
            ApprovalStep.CALCULATION_COMPLETED, LedgerAction.COMPLETE_CALCULATION,
            frozenset({PeriodStatus.CALCULATING}), PeriodStatus.CALCULATED,
            _SYSTEM_OR_OFFICER,
        ),
        LedgerTransition(
            ApprovalStep.CALCULATION_FAILED, LedgerAction.FAIL_CALCULATION,
            frozenset({PeriodStatus.CALCULATING}), PeriodStatus.ACTIVE,
            _SYSTEM_OR_OFFICER,
        ),
        LedgerTransition(
            ApprovalStep.PAYROLL_OFFICER_REVIEW, LedgerAction.BEGIN_REVIEW,
            frozenset({PeriodStatus.CALCULATED}), PeriodStatus.UNDER_REVIEW,
            frozenset({ActorRole.PAYROLL_OFFICER}),
        ),
        LedgerTransition(
            ApprovalStep.PAYROLL_OFFICER_SUBMIT, LedgerAction.SUBMIT,
            frozenset({PeriodStatus.UNDER_REVIEW}), PeriodStatus.PENDING_APPROVAL,
            frozenset({ActorRole.PAYROLL_OFFICER}),
            guard=NO_BLOCKING_EXCEPTIONS,
        ),
        LedgerTransition(
            ApprovalStep.HR_MANAGER_APPROVE, LedgerAction.APPROVE,
            frozenset({PeriodStatus.PENDING_APPROVAL}), PeriodStatus.APPROVED,
            frozenset({ActorRole.HR_MANAGER}),
        ),
        LedgerTransition(
            ApprovalStep.HR_MANAGER_REJECT, LedgerAction.REJECT,
            frozenset({PeriodStatus.PENDING_APPROVAL}), PeriodStatus.CALCULATED,
            frozenset({ActorRole.HR_MANAGER}),
        ),
        LedgerTransition(
            ApprovalStep.OFFICE_ADMIN_REJECT, LedgerAction.REJECT,
            frozenset({PeriodStatus.APPROVED}), PeriodStatus.CALCULATED,
            frozenset({ActorRole.OFFICE_ADMIN}),
        ),
        LedgerTransition(
            ApprovalStep.OFFICE_ADMIN_LOCK, LedgerAction.LOCK,
            frozenset({PeriodStatus.APPROVED}), PeriodStatus.FINALIZED,
            frozenset({ActorRole.OFFICE_ADMIN}),
            sets_lock=True,
        ),
        LedgerTransition(
            ApprovalStep.OFFICE_ADMIN_UNLOCK, LedgerAction.UNLOCK,
            frozenset({PeriodStatus.FINALIZED}), PeriodStatus.CALCULATED,
            frozenset({ActorRole.OFFICE_ADMIN}),
            clears_lock=True,
        ),
        LedgerTransition(
            ApprovalStep.PAYMENT_STARTED, LedgerAction.START_PAYMENT,
            frozenset({PeriodStatus.FINALIZED}), PeriodStatus.PROCESSING_PAYMENT,
            frozenset({ActorRole.SYSTEM, ActorRole.OFFICE_ADMIN}),
        ),
        LedgerTransition(
            ApprovalStep.PAYMENT_COMPLETED, LedgerAction.COMPLETE_PAYMENT,
            frozenset({PeriodStatus.PROCESSING_PAYMENT}), PeriodStatus.COMPLETED,
            frozenset({ActorRole.SYSTEM, ActorRole.OFFICE_ADMIN}),
        ),
        LedgerTransition(
            ApprovalStep.PERIOD_CANCELLED, LedgerAction.CANCEL,
            PRE_FINALIZED_STATUSES, PeriodStatus.CANCELLED,
            frozenset({ActorRole.HR_MANAGER, ActorRole.OFFICE_ADMIN}),
        ),
    )
}


def _derive_period_transitions() -> dict[PeriodStatus, frozenset[PeriodStatus]]:
    edges: dict[PeriodStatus, set[PeriodStatus]] = {s: set() for s in PeriodStatus}
    for transition in LEDGER_TRANSITIONS.values():
        for source in transition.from_statuses:
            edges[source].add(transition.to_status)
    return {status: frozenset(targets) for status, targets in edges.items()}


PERIOD_TRANSITIONS: dict[PeriodStatus, frozenset[PeriodStatus]] = _derive_period_transitions()

TERMINAL_PERIOD_STATUSES: frozenset[PeriodStatus] = frozenset(
    status for status, targets in PERIOD_TRANSITIONS.items() if not targets
)

# Statuses in which manual adjustments may be proposed and applied.
ADJUSTABLE_STATUSES: frozenset[PeriodStatus] = frozenset({
    PeriodStatus.CALCULATED,
    PeriodStatus.UNDER_REVIEW,
})

ARCHIVABLE_STATUSES: frozenset[PeriodStatus] = frozenset({
    PeriodStatus.COMPLETED,
    PeriodStatus.CANCELLED,
})

# Statuses whose current calculations count as an employee's pay history.
HISTORY_STATUSES: frozenset[PeriodStatus] = frozenset({
    PeriodStatus.CALCULATED,
    PeriodStatus.UNDER_REVIEW,
    PeriodStatus.PENDING_APPROVAL,
    PeriodStatus.APPROVED,
    PeriodStatus.FINALIZED,
    PeriodStatus.PROCESSING_PAYMENT,
    PeriodStatus.COMPLETED,
})


def transition_for(step: ApprovalStep) -> LedgerTransition:
    """Look up a step's row in the static table."""
    return LEDGER_TRANSITIONS[step]

"""
ApprovalLedger -- the only writer of a payroll period's status.

Responsibility:
    Validates an approval step against the static ``LEDGER_TRANSITIONS``
    table (action, source status, actor role, guard), then applies the
    status change, lock and lease effects, cascades calculation statuses,
    and appends a hash-chained ``ApprovalLedgerEntry`` -- all in one flush.

Architecture position:
    Kernel > Services -- imperative shell.  Called by PeriodService
    (activate, cancel), CalculationRunService (calculation steps) and
    directly by approval actors (review, submit, approve, reject, lock,
    unlock, payment steps).

Invariants enforced:
    - No ledger entry without its status change and vice versa: both are
      written by the same flush in the caller's transaction.
    - Appends are linearized per period by the period row's optimistic
      ``row_version``; the loser of a race gets LedgerConflictError with
      the now-current status.
    - ``seq`` is gapless per period; each entry's ``hash`` folds in the
      previous entry's hash.
    - ``locked`` is set only by ``office_admin_lock`` and cleared only by
      ``office_admin_unlock``.
    - The calculation lease (``calculation_run_id``) is taken on entering
      ``calculating`` and released on leaving it.

Failure modes:
    - PeriodNotFoundError: unknown period.
    - LedgerConflictError: ``expected_status`` mismatch or concurrent write.
    - CalculationAlreadyRunningError: a run already holds the lease.
    - InvalidTransitionError: step/action not legal from current status.
    - UnauthorizedStepError: role not permitted for the step.
    - OpenExceptionsBlockError: the submit guard found blocking exceptions.
    - LedgerChainBrokenError: ``verify_chain`` found a tampered entry.

Audit relevance:
    Each entry records actor, role, comment, rejection reason, the
    period's totals at that moment and the clock timestamp.  Rejections
    are entries, not errors; earlier approvals are never removed.
"""

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from payroll_config.schema import ApprovalGateConfig
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.dtos import LedgerEntryInfo, PeriodInfo
from payroll_kernel.domain.period_lifecycle import (
    NO_BLOCKING_EXCEPTIONS,
    ActorRole,
    ApprovalStep,
    LedgerAction,
    LedgerTransition,
    PeriodStatus,
    transition_for,
)
from payroll_kernel.domain.statuses import (
    CALCULATION_TRANSITIONS,
    CalculationStatus,
    can_transition,
)
from payroll_kernel.exceptions import (
    CalculationAlreadyRunningError,
    InvalidTransitionError,
    LedgerChainBrokenError,
    LedgerConflictError,
    OpenExceptionsBlockError,
    PeriodNotFoundError,
    UnauthorizedStepError,
)
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_kernel.models.calculation import EmployeeCalculation
from payroll_kernel.models.ledger import ApprovalLedgerEntry
from payroll_kernel.models.period import PayrollPeriod
from payroll_kernel.selectors.exception_selector import ExceptionSelector
from payroll_kernel.selectors.ledger_selector import LedgerSelector
from payroll_kernel.services.base import BaseService
from payroll_kernel.utils.hashing import hash_ledger_entry, hash_payload

logger = get_logger("services.approval_ledger")

# Calculation status cascade per action: (from statuses, to status)
_CALCULATION_CASCADE: dict[LedgerAction, tuple[frozenset[CalculationStatus], CalculationStatus]] = {
    LedgerAction.APPROVE: (
        frozenset({
            CalculationStatus.CALCULATED,
            CalculationStatus.EXCEPTION,
            CalculationStatus.ADJUSTED,
        }),
        CalculationStatus.APPROVED,
    ),
    LedgerAction.REJECT: (
        frozenset({CalculationStatus.APPROVED}),
        CalculationStatus.CALCULATED,
    ),
    LedgerAction.LOCK: (
        frozenset({CalculationStatus.APPROVED}),
        CalculationStatus.LOCKED,
    ),
    LedgerAction.UNLOCK: (
        frozenset({CalculationStatus.LOCKED}),
        CalculationStatus.CALCULATED,
    ),
}


def _timestamp(value: datetime) -> str:
    """UTC-naive ISO form, stable across dialects that drop tzinfo."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat()


def _entry_payload(
    actor_role: str,
    comment: str | None,
    rejection_reason: str | None,
    period_snapshot: dict[str, Any],
    occurred_at: datetime,
) -> dict[str, Any]:
    return {
        "actor_role": actor_role,
        "comment": comment,
        "rejection_reason": rejection_reason,
        "period_snapshot": period_snapshot,
        "occurred_at": _timestamp(occurred_at),
    }


class ApprovalLedger(BaseService[ApprovalLedgerEntry]):
    """
    Append-only approval ledger and period status writer.

    Contract:
        ``append`` either changes the period status and writes exactly one
        entry, or raises and writes nothing.

    Guarantees:
        - History is returned in ``seq`` order.
        - ``verify_chain`` recomputes every hash from stored fields.

    Non-goals:
        - Does NOT authenticate actors; the role is taken as asserted.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        gate: ApprovalGateConfig | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._gate = gate or ApprovalGateConfig()
        self._exceptions = ExceptionSelector(session)
        self._entries = LedgerSelector(session)

    def append(
        self,
        period_id: UUID,
        step: ApprovalStep,
        action: LedgerAction,
        actor_id: UUID,
        actor_role: ActorRole,
        comment: str | None = None,
        *,
        rejection_reason: str | None = None,
        expected_status: PeriodStatus | None = None,
        run_id: UUID | None = None,
    ) -> LedgerEntryInfo:
        """
        Perform one approval step.

        Args:
            period_id: Target period.
            step: Row of the static transition table.
            action: Must equal the step's action.
            actor_id: Who is acting.
            actor_role: Role asserted for the actor.
            comment: Free text recorded on the entry.
            rejection_reason: For reject steps; stored on the period.
                Defaults to ``comment``.
            expected_status: The status the caller last saw; a mismatch
                raises LedgerConflictError instead of acting on a state the
                caller never observed.
            run_id: For ``calculation_started``, the run taking the lease.

        Returns:
            The appended entry.
        """
        period = self.session.get(PayrollPeriod, period_id)
        if period is None:
            raise PeriodNotFoundError(str(period_id))

        current = PeriodStatus(period.status)
        period_number = period.period_number
        transition = transition_for(step)

        with LogContext.bind(period_id=str(period_id), actor_id=str(actor_id)):
            if expected_status is not None and current != expected_status:
                logger.warning(
                    "ledger_expected_status_mismatch",
                    extra={
                        "period_number": period_number,
                        "expected_status": expected_status.value,
                        "current_status": current.value,
                    },
                )
                raise LedgerConflictError(period_number, expected_status.value, current.value)

            self._validate(period, transition, action, actor_role)

            occurred_at = self._clock.now()
            seq = period.ledger_seq + 1
            latest = self._entries.latest(period_id)
            prev_hash = latest.hash if latest is not None else None

            # Must query before the period is touched; autoflush stays out of the try.
            cascaded = self._cascade_calculations(period_id, action)

            if action == LedgerAction.REJECT:
                period.rejection_reason = rejection_reason or comment
            if transition.sets_lock:
                period.locked = True
                period.locked_at = occurred_at
                period.locked_by_id = actor_id
            if transition.clears_lock:
                period.locked = False
                period.locked_at = None
                period.locked_by_id = None
            if transition.to_status == PeriodStatus.CALCULATING:
                period.calculation_run_id = run_id
            else:
                period.calculation_run_id = None

            period.status = transition.to_status.value
            period.ledger_seq = seq
            period.updated_by_id = actor_id

            snapshot = {
                "period_number": period_number,
                "status_from": current.value,
                "status_to": transition.to_status.value,
                "locked": period.locked,
                **PeriodInfo.from_model(period).totals.to_dict(),
            }
            stored_reason = period.rejection_reason if action == LedgerAction.REJECT else None
            payload_hash = hash_payload(
                _entry_payload(actor_role.value, comment, stored_reason, snapshot, occurred_at)
            )
            entry = ApprovalLedgerEntry(
                period_id=period_id,
                seq=seq,
                step=step.value,
                action=action.value,
                status_from=current.value,
                status_to=transition.to_status.value,
                actor_id=actor_id,
                actor_role=actor_role.value,
                comment=comment,
                rejection_reason=stored_reason,
                period_snapshot=snapshot,
                occurred_at=occurred_at,
                payload_hash=payload_hash,
                prev_hash=prev_hash,
                hash=hash_ledger_entry(
                    period_id=str(period_id),
                    seq=seq,
                    step=step.value,
                    action=action.value,
                    status_from=current.value,
                    status_to=transition.to_status.value,
                    actor_id=str(actor_id),
                    payload_hash=payload_hash,
                    prev_hash=prev_hash,
                ),
            )
            self.session.add(entry)

            try:
                self.session.flush()
            except (StaleDataError, IntegrityError):
                self.session.rollback()
                refreshed = self.session.get(PayrollPeriod, period_id)
                now_status = refreshed.status if refreshed is not None else "unknown"
                logger.warning(
                    "ledger_concurrent_append_conflict",
                    extra={
                        "period_number": period_number,
                        "step": step.value,
                        "loaded_status": current.value,
                        "current_status": now_status,
                    },
                )
                raise LedgerConflictError(
                    period_number,
                    (expected_status or current).value,
                    now_status,
                )

            logger.info(
                "period_transitioned",
                extra={
                    "period_number": period_number,
                    "step": step.value,
                    "ledger_action": action.value,
                    "status_from": current.value,
                    "status_to": transition.to_status.value,
                    "actor_role": actor_role.value,
                    "seq": seq,
                    "calculations_cascaded": cascaded,
                },
            )
            return LedgerEntryInfo.from_model(entry)

    def _validate(
        self,
        period: PayrollPeriod,
        transition: LedgerTransition,
        action: LedgerAction,
        actor_role: ActorRole,
    ) -> None:
        current = PeriodStatus(period.status)

        if transition.step == ApprovalStep.CALCULATION_STARTED and (
            current == PeriodStatus.CALCULATING or period.calculation_run_id is not None
        ):
            raise CalculationAlreadyRunningError(
                period.period_number,
                str(period.calculation_run_id) if period.calculation_run_id else None,
            )

        if action != transition.action or current not in transition.from_statuses:
            logger.warning(
                "invalid_transition_rejected",
                extra={
                    "period_number": period.period_number,
                    "current_status": current.value,
                    "step": transition.step.value,
                    "ledger_action": action.value,
                },
            )
            raise InvalidTransitionError(
                period.period_number, current.value, transition.step.value, action.value,
            )

        if actor_role not in transition.roles:
            raise UnauthorizedStepError(
                transition.step.value,
                actor_role.value,
                sorted(r.value for r in transition.roles),
            )

        if transition.guard == NO_BLOCKING_EXCEPTIONS:
            blocking = self._exceptions.blocking(period.id, self._gate)
            if blocking:
                logger.warning(
                    "submission_blocked_by_exceptions",
                    extra={
                        "period_number": period.period_number,
                        "blocking_count": len(blocking),
                    },
                )
                raise OpenExceptionsBlockError(
                    period.period_number,
                    len(blocking),
                    sorted({e.severity.value for e in blocking}),
                )

    def _cascade_calculations(self, period_id: UUID, action: LedgerAction) -> int:
        """Move current calculations along with the period. Returns the count moved."""
        cascade = _CALCULATION_CASCADE.get(action)
        if cascade is None:
            return 0
        sources, target = cascade
        calcs = self.session.execute(
            select(EmployeeCalculation).where(
                EmployeeCalculation.period_id == period_id,
                EmployeeCalculation.status.in_([s.value for s in sources]),
            )
        ).scalars()
        moved = 0
        for calc in calcs:
            if can_transition(CALCULATION_TRANSITIONS, CalculationStatus(calc.status), target):
                calc.status = target.value
                moved += 1
        return moved

    # ------------------------------------------------------------------
    # Reads and verification
    # ------------------------------------------------------------------

    def history(self, period_id: UUID) -> list[LedgerEntryInfo]:
        """Every entry for the period in ``seq`` order."""
        return self._entries.history(period_id)

    def verify_chain(self, period_id: UUID) -> bool:
        """
        Recompute every entry's payload hash and chained hash.

        Raises:
            LedgerChainBrokenError: at the first entry that does not match
                (gap in ``seq``, wrong ``prev_hash``, or altered content).
        """
        prev_hash: str | None = None
        for expected_seq, entry in enumerate(self._entries.entries(period_id), start=1):
            if entry.seq != expected_seq:
                raise LedgerChainBrokenError(str(entry.id), f"seq={expected_seq}", f"seq={entry.seq}")
            if entry.prev_hash != prev_hash:
                raise LedgerChainBrokenError(str(entry.id), prev_hash or "GENESIS", entry.prev_hash or "GENESIS")

            payload_hash = hash_payload(_entry_payload(
                entry.actor_role,
                entry.comment,
                entry.rejection_reason,
                entry.period_snapshot,
                entry.occurred_at,
            ))
            if payload_hash != entry.payload_hash:
                raise LedgerChainBrokenError(str(entry.id), payload_hash, entry.payload_hash)

            expected_hash = hash_ledger_entry(
                period_id=str(entry.period_id),
                seq=entry.seq,
                step=entry.step,
                action=entry.action,
                status_from=entry.status_from,
                status_to=entry.status_to,
                actor_id=str(entry.actor_id),
                payload_hash=entry.payload_hash,
                prev_hash=entry.prev_hash,
            )
            if expected_hash != entry.hash:
                raise LedgerChainBrokenError(str(entry.id), expected_hash, entry.hash)
            prev_hash = entry.hash

        logger.info("ledger_chain_verified", extra={"period_id": str(period_id)})
        return True

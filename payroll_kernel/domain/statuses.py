"""
Calculation, exception and adjustment lifecycles (``payroll_kernel.domain.statuses``).

Responsibility
--------------
Closed enums for every status-carrying payroll record and the explicit
transition tables that are the only source of truth for which status
changes are legal.  Services call ``can_transition`` (or the specific
helpers) instead of comparing status strings.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Every enum member appears as a key in its transition table; terminal
  states map to an empty frozenset.
* Calculations are created only in an entry status
  (``CALCULATION_ENTRY_STATUSES``); they are never deleted, only
  superseded.
* Exceptions are never deleted; resolution only moves forward.
* Applied adjustments are terminal.
"""

from __future__ import annotations

from enum import Enum


# =========================================================================
# Calculation lifecycle
# =========================================================================


class CalculationStatus(str, Enum):
    """Status of one employee calculation version."""

    PENDING = "pending"
    CALCULATING = "calculating"
    CALCULATED = "calculated"
    EXCEPTION = "exception"
    ADJUSTED = "adjusted"
    APPROVED = "approved"
    LOCKED = "locked"
    SUPERSEDED = "superseded"


CALCULATION_TRANSITIONS: dict[CalculationStatus, frozenset[CalculationStatus]] = {
    CalculationStatus.PENDING: frozenset({CalculationStatus.CALCULATING}),
    CalculationStatus.CALCULATING: frozenset({
        CalculationStatus.CALCULATED,
        CalculationStatus.EXCEPTION,
    }),
    CalculationStatus.CALCULATED: frozenset({
        CalculationStatus.EXCEPTION,
        CalculationStatus.APPROVED,
        CalculationStatus.SUPERSEDED,
    }),
    CalculationStatus.EXCEPTION: frozenset({
        CalculationStatus.CALCULATED,
        CalculationStatus.APPROVED,
        CalculationStatus.SUPERSEDED,
    }),
    CalculationStatus.ADJUSTED: frozenset({
        CalculationStatus.EXCEPTION,
        CalculationStatus.APPROVED,
        CalculationStatus.SUPERSEDED,
    }),
    CalculationStatus.APPROVED: frozenset({
        CalculationStatus.LOCKED,
        CalculationStatus.CALCULATED,
    }),
    CalculationStatus.LOCKED: frozenset({CalculationStatus.CALCULATED}),
    CalculationStatus.SUPERSEDED: frozenset(),
}

# Statuses a newly inserted calculation row may carry.
CALCULATION_ENTRY_STATUSES: frozenset[CalculationStatus] = frozenset({
    CalculationStatus.CALCULATED,
    CalculationStatus.EXCEPTION,
    CalculationStatus.ADJUSTED,
})


# =========================================================================
# Payroll exception (detected anomaly)
# =========================================================================


class ExceptionType(str, Enum):
    HIGH_VARIANCE = "high_variance"
    LOW_NET_PAY = "low_net_pay"
    HIGH_NET_PAY = "high_net_pay"
    NEGATIVE_NET_PAY = "negative_net_pay"
    MISSING_TIMEKEEPING = "missing_timekeeping"
    MISSING_GOVERNMENT_ID = "missing_government_id"
    EXCESSIVE_DEDUCTION = "excessive_deduction"
    MISSING_LEAVE_DATA = "missing_leave_data"
    CALCULATION_ERROR = "calculation_error"
    DATA_INCONSISTENCY = "data_inconsistency"


class ExceptionSeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ExceptionStatus(str, Enum):
    OPEN = "open"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    IGNORED = "ignored"


EXCEPTION_TRANSITIONS: dict[ExceptionStatus, frozenset[ExceptionStatus]] = {
    ExceptionStatus.OPEN: frozenset({
        ExceptionStatus.ACKNOWLEDGED,
        ExceptionStatus.RESOLVED,
        ExceptionStatus.IGNORED,
    }),
    ExceptionStatus.ACKNOWLEDGED: frozenset({
        ExceptionStatus.RESOLVED,
        ExceptionStatus.IGNORED,
    }),
    ExceptionStatus.RESOLVED: frozenset(),
    ExceptionStatus.IGNORED: frozenset(),
}


# =========================================================================
# Adjustment lifecycle
# =========================================================================


class AdjustmentType(str, Enum):
    ADDITION = "addition"
    DEDUCTION = "deduction"
    OVERRIDE = "override"


class AdjustmentCategory(str, Enum):
    RETROACTIVE_PAY = "retroactive_pay"
    CORRECTION = "correction"
    BONUS = "bonus"
    PENALTY = "penalty"
    REIMBURSEMENT = "reimbursement"
    LOAN_ADJUSTMENT = "loan_adjustment"
    GOVERNMENT_CORRECTION = "government_correction"
    ROUNDING = "rounding"
    OTHER = "other"


class AdjustmentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    APPLIED = "applied"


ADJUSTMENT_TRANSITIONS: dict[AdjustmentStatus, frozenset[AdjustmentStatus]] = {
    AdjustmentStatus.PENDING: frozenset({
        AdjustmentStatus.APPROVED,
        AdjustmentStatus.REJECTED,
    }),
    AdjustmentStatus.APPROVED: frozenset({AdjustmentStatus.APPLIED}),
    AdjustmentStatus.REJECTED: frozenset(),
    AdjustmentStatus.APPLIED: frozenset(),
}


# =========================================================================
# Calculation runs and logs
# =========================================================================


class RunStatus(str, Enum):
    """Outcome of one batch calculation run over a period."""

    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_EXCEPTIONS = "completed_with_exceptions"
    FAILED = "failed"
    ABORTED = "aborted"


class CalculationLogType(str, Enum):
    CALCULATION_STARTED = "calculation_started"
    CALCULATION_COMPLETED = "calculation_completed"
    CALCULATION_FAILED = "calculation_failed"
    EMPLOYEE_CALCULATED = "employee_calculated"
    EMPLOYEE_FAILED = "employee_failed"
    EXCEPTION_DETECTED = "exception_detected"
    EXCEPTION_RESOLVED = "exception_resolved"
    ADJUSTMENT_PROPOSED = "adjustment_proposed"
    ADJUSTMENT_DECIDED = "adjustment_decided"
    ADJUSTMENT_APPLIED = "adjustment_applied"
    RECALCULATION = "recalculation"


class LogSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


def can_transition(table: dict, from_status: Enum, to_status: Enum) -> bool:
    """True when ``to_status`` is a legal successor of ``from_status`` in ``table``."""
    return to_status in table.get(from_status, frozenset())

"""
Typed Exception Hierarchy for the Payroll Kernel.

Every failure the kernel can surface has its own class with a
machine-readable ``code`` and structured attributes, so callers catch by
type and report by code instead of matching message text:

    try:
        ledger.append(period_id, step, action, actor_id, role)
    except LedgerConflictError as e:
        respond(code=e.code, current_status=e.current_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PayrollKernelError (base)
    |
    +-- PeriodError
    |   +-- PeriodNotFoundError
    |   +-- DuplicatePeriodError
    |   +-- InvalidPeriodError
    |   +-- PeriodLockedError
    |   +-- PeriodNotLockedError
    |   +-- PeriodNotAdjustableError
    |   +-- AdjustmentDeadlinePassedError
    |   +-- PeriodArchiveError
    |
    +-- TransitionError
    |   +-- InvalidTransitionError
    |   +-- UnauthorizedStepError
    |   +-- OpenExceptionsBlockError
    |
    +-- ConcurrencyError
    |   +-- CalculationAlreadyRunningError
    |   +-- LedgerConflictError
    |   +-- StaleCalculationVersionError
    |
    +-- CalculationError               (per employee, never fatal to a run)
    |   +-- MissingSnapshotDataError
    |
    +-- CalculationNotFoundError
    |
    +-- ConfigurationError             (fatal to a run)
    |   +-- RateTableNotFoundError
    |   +-- CalculationRetriesExhaustedError
    |   +-- InvalidConfigurationError
    |
    +-- AdjustmentError
    |   +-- AdjustmentNotFoundError
    |   +-- InvalidAdjustmentError
    |   +-- InvalidAdjustmentTransitionError
    |
    +-- PayrollExceptionError
    |   +-- ExceptionNotFoundError
    |   +-- InvalidExceptionTransitionError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- AuditError
        +-- LedgerChainBrokenError

===============================================================================
ERROR CLASSES
===============================================================================

    Input errors     -- CalculationError and subclasses.  Scoped to one
                        employee; the run records them and continues.
    Conflict errors  -- ConcurrencyError, TransitionError.  Surfaced to the
                        caller immediately, never retried by the kernel.
    Config errors    -- ConfigurationError.  Fatal to the whole run; the
                        period returns to ``active`` and the retry counter
                        is incremented.

Approval rejections are NOT errors: they are ledger entries.
"""


class PayrollKernelError(Exception):
    """Base exception for all payroll kernel errors."""

    code: str = "PAYROLL_KERNEL_ERROR"


# Period-related exceptions


class PeriodError(PayrollKernelError):
    """Base exception for period-related errors."""

    code: str = "PERIOD_ERROR"


class PeriodNotFoundError(PeriodError):
    """No payroll period with the given id."""

    code: str = "PERIOD_NOT_FOUND"

    def __init__(self, period_id: str):
        self.period_id = period_id
        super().__init__(f"Payroll period not found: {period_id}")


class DuplicatePeriodError(PeriodError):
    """A period with the same period number already exists."""

    code: str = "DUPLICATE_PERIOD"

    def __init__(self, period_number: str):
        self.period_number = period_number
        super().__init__(f"Payroll period {period_number} already exists")


class InvalidPeriodError(PeriodError):
    """Period attributes are inconsistent (dates, type, frequency)."""

    code: str = "INVALID_PERIOD"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid payroll period: {reason}")


class PeriodLockedError(PeriodError):
    """Attempted to calculate or adjust a locked period."""

    code: str = "PERIOD_LOCKED"

    def __init__(self, period_number: str, operation: str):
        self.period_number = period_number
        self.operation = operation
        super().__init__(
            f"Cannot {operation}: payroll period {period_number} is locked"
        )


class PeriodNotLockedError(PeriodError):
    """Operation requires a locked (finalized) period."""

    code: str = "PERIOD_NOT_LOCKED"

    def __init__(self, period_number: str, status: str):
        self.period_number = period_number
        self.status = status
        super().__init__(
            f"Payroll period {period_number} is not locked (status: {status})"
        )


class PeriodNotAdjustableError(PeriodError):
    """Adjustments are not accepted in the period's current status."""

    code: str = "PERIOD_NOT_ADJUSTABLE"

    def __init__(self, period_number: str, status: str):
        self.period_number = period_number
        self.status = status
        super().__init__(
            f"Payroll period {period_number} does not accept adjustments "
            f"in status {status}"
        )


class AdjustmentDeadlinePassedError(PeriodError):
    """The period's adjustment deadline has passed."""

    code: str = "ADJUSTMENT_DEADLINE_PASSED"

    def __init__(self, period_number: str, deadline: str, today: str):
        self.period_number = period_number
        self.deadline = deadline
        self.today = today
        super().__init__(
            f"Adjustment deadline {deadline} for period {period_number} "
            f"has passed (today: {today})"
        )


class PeriodArchiveError(PeriodError):
    """Period cannot be archived in its current status."""

    code: str = "PERIOD_ARCHIVE_REJECTED"

    def __init__(self, period_number: str, status: str):
        self.period_number = period_number
        self.status = status
        super().__init__(
            f"Payroll period {period_number} cannot be archived in status {status}"
        )


# Transition-related exceptions


class TransitionError(PayrollKernelError):
    """Base exception for rejected period transitions."""

    code: str = "TRANSITION_ERROR"


class InvalidTransitionError(TransitionError):
    """The step/action is not legal from the period's current status."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, period_number: str, current_status: str, step: str, action: str):
        self.period_number = period_number
        self.current_status = current_status
        self.step = step
        self.action = action
        super().__init__(
            f"Step {step} ({action}) is not allowed for period {period_number} "
            f"in status {current_status}"
        )


class UnauthorizedStepError(TransitionError):
    """The actor role may not perform this approval step."""

    code: str = "UNAUTHORIZED_STEP"

    def __init__(self, step: str, actor_role: str, allowed_roles: list[str]):
        self.step = step
        self.actor_role = actor_role
        self.allowed_roles = allowed_roles
        super().__init__(
            f"Role {actor_role} may not perform step {step} "
            f"(allowed: {', '.join(allowed_roles)})"
        )


class OpenExceptionsBlockError(TransitionError):
    """Blocking payroll exceptions are still open on current calculations."""

    code: str = "OPEN_EXCEPTIONS_BLOCK"

    def __init__(self, period_number: str, blocking_count: int, severities: list[str]):
        self.period_number = period_number
        self.blocking_count = blocking_count
        self.severities = severities
        super().__init__(
            f"Period {period_number} has {blocking_count} open exception(s) "
            f"with blocking severity ({', '.join(severities)})"
        )


# Concurrency-related exceptions


class ConcurrencyError(PayrollKernelError):
    """Base exception for concurrency conflicts."""

    code: str = "CONCURRENCY_ERROR"


class CalculationAlreadyRunningError(ConcurrencyError):
    """A calculation run already holds the period's lease."""

    code: str = "CALCULATION_ALREADY_RUNNING"

    def __init__(self, period_number: str, run_id: str | None):
        self.period_number = period_number
        self.run_id = run_id
        super().__init__(
            f"Calculation already running for period {period_number} "
            f"(run: {run_id})"
        )


class LedgerConflictError(ConcurrencyError):
    """Another writer changed the period status first."""

    code: str = "LEDGER_CONFLICT"

    def __init__(self, period_number: str, expected_status: str | None, current_status: str):
        self.period_number = period_number
        self.expected_status = expected_status
        self.current_status = current_status
        super().__init__(
            f"Ledger conflict on period {period_number}: expected status "
            f"{expected_status}, current status is {current_status}"
        )


class StaleCalculationVersionError(ConcurrencyError):
    """The targeted calculation version is no longer current."""

    code: str = "STALE_CALCULATION_VERSION"

    def __init__(self, employee_id: str, target_version: int, current_version: int):
        self.employee_id = employee_id
        self.target_version = target_version
        self.current_version = current_version
        super().__init__(
            f"Calculation for employee {employee_id} is at version "
            f"{current_version}, not {target_version}; re-propose against "
            "the current version"
        )


# Calculation-related exceptions


class CalculationError(PayrollKernelError):
    """Per-employee calculation failure (non-fatal to the run)."""

    code: str = "CALCULATION_ERROR"

    def __init__(self, employee_id: str, reason: str):
        self.employee_id = employee_id
        self.reason = reason
        super().__init__(f"Calculation failed for employee {employee_id}: {reason}")


class MissingSnapshotDataError(CalculationError):
    """A required snapshot input is absent."""

    code: str = "MISSING_SNAPSHOT_DATA"

    def __init__(self, employee_id: str, field_name: str):
        self.field_name = field_name
        super().__init__(employee_id, f"missing required input '{field_name}'")


class CalculationNotFoundError(PayrollKernelError):
    """No calculation matches the given id or employee/period."""

    code: str = "CALCULATION_NOT_FOUND"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Calculation not found: {reference}")


# Configuration-related exceptions


class ConfigurationError(PayrollKernelError):
    """Base exception for configuration errors (fatal to a run)."""

    code: str = "CONFIGURATION_ERROR"


class RateTableNotFoundError(ConfigurationError):
    """No statutory rate table set is effective on the date, or none carries the version."""

    code: str = "RATE_TABLE_NOT_FOUND"

    def __init__(self, as_of: str | None = None, *, version: str | None = None):
        self.as_of = as_of
        self.version = version
        if version is not None:
            message = f"No rate table set with version {version}"
        else:
            message = f"No rate table set effective on {as_of}"
        super().__init__(message)


class CalculationRetriesExhaustedError(ConfigurationError):
    """The period has failed more runs than the configured maximum."""

    code: str = "CALCULATION_RETRIES_EXHAUSTED"

    def __init__(self, period_number: str, retries: int, max_retries: int):
        self.period_number = period_number
        self.retries = retries
        self.max_retries = max_retries
        super().__init__(
            f"Period {period_number} has failed {retries} calculation run(s); "
            f"maximum is {max_retries}"
        )


class InvalidConfigurationError(ConfigurationError):
    """Configuration values are invalid."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid payroll configuration: {reason}")


# Adjustment-related exceptions


class AdjustmentError(PayrollKernelError):
    """Base exception for adjustment errors."""

    code: str = "ADJUSTMENT_ERROR"


class AdjustmentNotFoundError(AdjustmentError):
    """No adjustment with the given id."""

    code: str = "ADJUSTMENT_NOT_FOUND"

    def __init__(self, adjustment_id: str):
        self.adjustment_id = adjustment_id
        super().__init__(f"Adjustment not found: {adjustment_id}")


class InvalidAdjustmentError(AdjustmentError):
    """Adjustment type, component or amount is invalid."""

    code: str = "INVALID_ADJUSTMENT"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid adjustment: {reason}")


class InvalidAdjustmentTransitionError(AdjustmentError):
    """Adjustment status change not allowed."""

    code: str = "INVALID_ADJUSTMENT_TRANSITION"

    def __init__(self, adjustment_id: str, from_status: str, to_status: str):
        self.adjustment_id = adjustment_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Adjustment {adjustment_id} cannot move from {from_status} to {to_status}"
        )


# Payroll exception (detected anomaly) errors


class PayrollExceptionError(PayrollKernelError):
    """Base exception for detected-anomaly record errors."""

    code: str = "PAYROLL_EXCEPTION_ERROR"


class ExceptionNotFoundError(PayrollExceptionError):
    """No payroll exception with the given id."""

    code: str = "PAYROLL_EXCEPTION_NOT_FOUND"

    def __init__(self, exception_id: str):
        self.exception_id = exception_id
        super().__init__(f"Payroll exception not found: {exception_id}")


class InvalidExceptionTransitionError(PayrollExceptionError):
    """Payroll exception resolution status change not allowed."""

    code: str = "INVALID_PAYROLL_EXCEPTION_TRANSITION"

    def __init__(self, exception_id: str, from_status: str, to_status: str):
        self.exception_id = exception_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Payroll exception {exception_id} cannot move from "
            f"{from_status} to {to_status}"
        )


# Immutability-related exceptions


class ImmutabilityError(PayrollKernelError):
    """Base exception for immutability errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Audit-related exceptions


class AuditError(PayrollKernelError):
    """Base exception for audit errors."""

    code: str = "AUDIT_ERROR"


class LedgerChainBrokenError(AuditError):
    """Approval ledger hash chain validation failed."""

    code: str = "LEDGER_CHAIN_BROKEN"

    def __init__(self, entry_id: str, expected_hash: str, actual_hash: str):
        self.entry_id = entry_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Approval ledger chain broken at {entry_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )

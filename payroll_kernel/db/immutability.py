"""
ORM-level immutability enforcement.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners registered here inspect attribute history and
raise ImmutabilityViolationError, aborting the flush, whenever code tries
to rewrite payroll history:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
    [before_delete] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity               | Rule
---------------------|-------------------------------------------------------
EmployeeCalculation  | Never deleted.  After insert only ``status`` changes.
ApprovalLedgerEntry  | Never updated or deleted.
CalculationLog       | Never updated or deleted.
PayrollException     | Never deleted.  Only status and resolution fields
                     | change after insert.
PayrollAdjustment    | Never deleted.  Frozen once ``applied``.
PayrollPeriod        | Not deletable while it owns calculations.  While
                     | locked, only lifecycle fields may change.

``updated_at`` / ``updated_by_id`` are audit metadata and always allowed.

Core ``update()``/``delete()`` statements bypass mapper events; the
approval ledger's hash chain is what detects tampering at that level.

===============================================================================
USAGE
===============================================================================

Registered when ``payroll_kernel.models`` is imported:

    from payroll_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent

To temporarily disable (TESTS ONLY):

    from payroll_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect, text

from payroll_kernel.db.base import AUDIT_METADATA_FIELDS
from payroll_kernel.exceptions import ImmutabilityViolationError
from payroll_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _changed_fields(target) -> list[str]:
    """Names of mapped attributes with pending changes, audit metadata excluded."""
    return [
        attr.key
        for attr in inspect(target).attrs
        if attr.key not in AUDIT_METADATA_FIELDS and attr.history.has_changes()
    ]


def _old_value(target, field: str):
    """Value of ``field`` as loaded from the database (before this flush)."""
    hist = inspect(target).attrs[field].history
    if hist.deleted:
        return hist.deleted[0]
    if hist.unchanged:
        return hist.unchanged[0]
    return getattr(target, field)


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


# =========================================================================
# EmployeeCalculation
# =========================================================================

_CALCULATION_MUTABLE_FIELDS = frozenset({"status"})


def _check_calculation_immutability(mapper, connection, target):
    for field in _changed_fields(target):
        if field not in _CALCULATION_MUTABLE_FIELDS:
            _block(
                "EmployeeCalculation", target, "UPDATE",
                f"Cannot modify field '{field}' on a calculation version; "
                f"recalculate to create a new version",
                field,
            )


def _check_calculation_delete(mapper, connection, target):
    _block(
        "EmployeeCalculation", target, "DELETE",
        "Calculation versions are append-only -- cannot delete",
    )


# =========================================================================
# ApprovalLedgerEntry / CalculationLog (always immutable)
# =========================================================================


def _check_ledger_entry_immutability(mapper, connection, target):
    _block(
        "ApprovalLedgerEntry", target, "UPDATE",
        "Approval ledger entries are immutable -- cannot modify",
    )


def _check_ledger_entry_delete(mapper, connection, target):
    _block(
        "ApprovalLedgerEntry", target, "DELETE",
        "Approval ledger entries are immutable -- cannot delete",
    )


def _check_calculation_log_immutability(mapper, connection, target):
    _block(
        "CalculationLog", target, "UPDATE",
        "Calculation log entries are immutable -- cannot modify",
    )


def _check_calculation_log_delete(mapper, connection, target):
    _block(
        "CalculationLog", target, "DELETE",
        "Calculation log entries are immutable -- cannot delete",
    )


# =========================================================================
# PayrollException
# =========================================================================

_EXCEPTION_MUTABLE_FIELDS = frozenset({
    "status",
    "resolution_notes",
    "resolved_at",
    "resolved_by_id",
})


def _check_exception_immutability(mapper, connection, target):
    for field in _changed_fields(target):
        if field not in _EXCEPTION_MUTABLE_FIELDS:
            _block(
                "PayrollException", target, "UPDATE",
                f"Cannot modify detected field '{field}' on an exception",
                field,
            )


def _check_exception_delete(mapper, connection, target):
    _block(
        "PayrollException", target, "DELETE",
        "Exceptions are never deleted; resolve or ignore them instead",
    )


# =========================================================================
# PayrollAdjustment
# =========================================================================


def _check_adjustment_immutability(mapper, connection, target):
    if _old_value(target, "status") != "applied":
        return
    changed = _changed_fields(target)
    if changed:
        _block(
            "PayrollAdjustment", target, "UPDATE",
            f"Cannot modify field '{changed[0]}' on an applied adjustment",
            changed[0],
        )


def _check_adjustment_delete(mapper, connection, target):
    _block(
        "PayrollAdjustment", target, "DELETE",
        "Adjustments are never deleted; reject them instead",
    )


# =========================================================================
# PayrollPeriod
# =========================================================================

_LOCKED_PERIOD_MUTABLE_FIELDS = frozenset({
    "status",
    "locked",
    "locked_at",
    "locked_by_id",
    "ledger_seq",
    "row_version",
    "rejection_reason",
    "archived_at",
    "notes",
})


def _check_period_immutability(mapper, connection, target):
    # Unlocking (True -> False) is the one way out of the frozen state.
    if not (target.locked and _old_value(target, "locked")):
        return
    for field in _changed_fields(target):
        if field not in _LOCKED_PERIOD_MUTABLE_FIELDS:
            _block(
                "PayrollPeriod", target, "UPDATE",
                f"Cannot modify '{field}' on locked period {target.period_number}",
                field,
            )


def _check_period_delete(mapper, connection, target):
    has_calculations = connection.execute(
        text(
            "SELECT 1 FROM payroll_employee_calculations "
            "WHERE period_id = :period_id LIMIT 1"
        ),
        {"period_id": str(target.id)},
    ).first()
    if has_calculations is not None:
        _block(
            "PayrollPeriod", target, "DELETE",
            f"Period {target.period_number} has calculations; archive it instead",
        )


# =========================================================================
# Registration
# =========================================================================


def _listeners():
    from payroll_kernel.models.adjustment import PayrollAdjustment
    from payroll_kernel.models.calculation import EmployeeCalculation
    from payroll_kernel.models.calculation_log import CalculationLog
    from payroll_kernel.models.exception import PayrollException
    from payroll_kernel.models.ledger import ApprovalLedgerEntry
    from payroll_kernel.models.period import PayrollPeriod

    return (
        (EmployeeCalculation, "before_update", _check_calculation_immutability),
        (EmployeeCalculation, "before_delete", _check_calculation_delete),
        (ApprovalLedgerEntry, "before_update", _check_ledger_entry_immutability),
        (ApprovalLedgerEntry, "before_delete", _check_ledger_entry_delete),
        (CalculationLog, "before_update", _check_calculation_log_immutability),
        (CalculationLog, "before_delete", _check_calculation_log_delete),
        (PayrollException, "before_update", _check_exception_immutability),
        (PayrollException, "before_delete", _check_exception_delete),
        (PayrollAdjustment, "before_update", _check_adjustment_immutability),
        (PayrollAdjustment, "before_delete", _check_adjustment_delete),
        (PayrollPeriod, "before_update", _check_period_immutability),
        (PayrollPeriod, "before_delete", _check_period_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once; already-registered listeners are skipped.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that deliberately violate immutability
    rules to verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)

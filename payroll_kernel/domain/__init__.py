"""
Pure domain layer.

Value objects, closed status enums, transition tables and DTOs with NO
dependencies on the ORM, the database, or I/O (the clock being the one
sanctioned time boundary).
"""

from payroll_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from payroll_kernel.domain.money import round_money, to_decimal
from payroll_kernel.domain.period_lifecycle import (
    LEDGER_TRANSITIONS,
    ActorRole,
    ApprovalStep,
    LedgerAction,
    PayFrequency,
    PeriodStatus,
    PeriodType,
)
from payroll_kernel.domain.results import CalculationResult, PayComponent
from payroll_kernel.domain.snapshot import EmployeeSnapshot, SalaryType
from payroll_kernel.domain.statuses import (
    AdjustmentStatus,
    AdjustmentType,
    CalculationStatus,
    ExceptionSeverity,
    ExceptionStatus,
    ExceptionType,
)

__all__ = [
    "LEDGER_TRANSITIONS",
    "ActorRole",
    "AdjustmentStatus",
    "AdjustmentType",
    "ApprovalStep",
    "CalculationResult",
    "CalculationStatus",
    "Clock",
    "DeterministicClock",
    "EmployeeSnapshot",
    "ExceptionSeverity",
    "ExceptionStatus",
    "ExceptionType",
    "LedgerAction",
    "PayComponent",
    "PayFrequency",
    "PeriodStatus",
    "PeriodType",
    "SalaryType",
    "SystemClock",
    "round_money",
    "to_decimal",
]

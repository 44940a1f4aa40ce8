"""
Payroll Engines - pure calculation and detection functions.

These engines contain no I/O and no database access.  They accept value
objects from ``payroll_kernel.domain`` and return results; services
persist what they return.

Engines:
    - calculation: per-employee earnings, deductions and net pay
    - brackets: contribution and withholding tax table lookups
    - detection: exception rules over a calculation and its history
"""

from payroll_engines.calculation import PayrollCalculator, PeriodContext
from payroll_engines.detection import (
    DetectedException,
    DetectionSubject,
    EmployeeHistory,
    ExceptionDetector,
)
from payroll_engines.tracer import traced_engine

__all__ = [
    "DetectedException",
    "DetectionSubject",
    "EmployeeHistory",
    "ExceptionDetector",
    "PayrollCalculator",
    "PeriodContext",
    "traced_engine",
]

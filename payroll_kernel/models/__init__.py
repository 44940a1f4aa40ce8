"""ORM models for the payroll kernel."""

from payroll_kernel.models.adjustment import PayrollAdjustment
from payroll_kernel.models.calculation import EmployeeCalculation
from payroll_kernel.models.calculation_log import CalculationLog
from payroll_kernel.models.calculation_run import CalculationRun
from payroll_kernel.models.exception import PayrollException
from payroll_kernel.models.ledger import ApprovalLedgerEntry
from payroll_kernel.models.period import PayrollPeriod

from payroll_kernel.db.immutability import register_immutability_listeners

register_immutability_listeners()

__all__ = [
    "ApprovalLedgerEntry",
    "CalculationLog",
    "CalculationRun",
    "EmployeeCalculation",
    "PayrollAdjustment",
    "PayrollException",
    "PayrollPeriod",
]

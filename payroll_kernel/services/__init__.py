"""Services for the payroll kernel (write side)."""

from payroll_kernel.services.adjustment_service import AdjustmentService
from payroll_kernel.services.approval_ledger import ApprovalLedger
from payroll_kernel.services.base import SYSTEM_ACTOR_ID, BaseService
from payroll_kernel.services.calculation_log_service import CalculationLogService
from payroll_kernel.services.calculation_run_service import CalculationRunService
from payroll_kernel.services.calculation_writer import CalculationWriter, period_context
from payroll_kernel.services.exception_service import ExceptionService
from payroll_kernel.services.period_service import PeriodService, generate_period_number
from payroll_kernel.services.rate_provider import (
    EmployeeSnapshotProvider,
    InMemoryEmployeeSnapshotProvider,
    InMemoryRateTableProvider,
    RateTableProvider,
)

__all__ = [
    "SYSTEM_ACTOR_ID",
    "AdjustmentService",
    "ApprovalLedger",
    "BaseService",
    "CalculationLogService",
    "CalculationRunService",
    "CalculationWriter",
    "EmployeeSnapshotProvider",
    "ExceptionService",
    "InMemoryEmployeeSnapshotProvider",
    "InMemoryRateTableProvider",
    "PeriodService",
    "RateTableProvider",
    "generate_period_number",
    "period_context",
]

"""Read-only query selectors returning DTOs."""

from payroll_kernel.selectors.calculation_selector import CalculationSelector
from payroll_kernel.selectors.exception_selector import ExceptionSelector
from payroll_kernel.selectors.ledger_selector import LedgerSelector
from payroll_kernel.selectors.payment_export import PaymentExportSelector

__all__ = [
    "CalculationSelector",
    "ExceptionSelector",
    "LedgerSelector",
    "PaymentExportSelector",
]

"""
Calculation results -- the engine's immutable output for one employee.

Responsibility:
    Frozen value objects for earnings and deduction breakdowns, line items,
    and folded-in adjustment lines, plus ``CalculationResult`` whose
    ``to_dict()`` is the canonical form persisted on the Calculation row
    and hashed into ``result_hash``.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Every amount is a 2-place Decimal (rounded by the engine at each step).
    - ``final_net_pay == net_pay + adjustments_total``.
    - Identical results produce identical ``to_dict()`` and ``result_hash``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from payroll_kernel.domain.statuses import AdjustmentType
from payroll_kernel.utils.hashing import hash_payload


class PayComponent(str, Enum):
    """Computed components that an override adjustment may pin."""

    BASIC_PAY = "basic_pay"
    OVERTIME_PAY = "overtime_pay"
    ALLOWANCES = "allowances"
    BONUSES = "bonuses"
    SSS_CONTRIBUTION = "sss_contribution"
    PHILHEALTH_CONTRIBUTION = "philhealth_contribution"
    PAGIBIG_CONTRIBUTION = "pagibig_contribution"
    WITHHOLDING_TAX = "withholding_tax"
    LOAN_DEDUCTIONS = "loan_deductions"
    OTHER_DEDUCTIONS = "other_deductions"


@dataclass(frozen=True)
class AdjustmentInstruction:
    """An applied adjustment handed to the engine for folding in."""

    adjustment_id: str
    adjustment_type: AdjustmentType
    amount: Decimal
    component: PayComponent | None = None


@dataclass(frozen=True)
class EarningLine:
    code: str
    name: str
    kind: str
    amount: Decimal
    taxable_amount: Decimal
    non_taxable_amount: Decimal


@dataclass(frozen=True)
class DeductionLine:
    code: str
    name: str
    category: str
    amount: Decimal


@dataclass(frozen=True)
class AdjustmentLine:
    """Explicit record of an adjustment folded into this version."""

    adjustment_id: str
    adjustment_type: str
    component: str | None
    amount: Decimal
    impact_on_net_pay: Decimal


@dataclass(frozen=True)
class EarningsBreakdown:
    basic_pay: Decimal
    overtime_regular: Decimal
    overtime_rest_day: Decimal
    overtime_holiday: Decimal
    overtime_night_differential: Decimal
    overtime_pay: Decimal
    allowances_total: Decimal
    bonuses_total: Decimal
    non_taxable_earnings: Decimal
    gross_pay: Decimal


@dataclass(frozen=True)
class DeductionBreakdown:
    sss_contribution: Decimal
    philhealth_contribution: Decimal
    pagibig_contribution: Decimal
    government_contributions: Decimal
    employer_sss: Decimal
    employer_philhealth: Decimal
    employer_pagibig: Decimal
    taxable_income: Decimal
    withholding_tax: Decimal
    loan_deductions: Decimal
    advances: Decimal
    tardiness_deduction: Decimal
    other_deductions: Decimal
    total_deductions: Decimal


@dataclass(frozen=True)
class CalculationResult:
    """
    Deterministic output of one employee computation.

    Contract:
        Produced only by ``payroll_engines.calculation.PayrollCalculator``.
        Persisted verbatim (via ``to_dict()``) on the Calculation row.
    """

    employee_id: str
    rate_table_version: str
    earnings: EarningsBreakdown
    deductions: DeductionBreakdown
    net_pay: Decimal
    adjustments_total: Decimal
    final_net_pay: Decimal
    earning_lines: tuple[EarningLine, ...] = ()
    deduction_lines: tuple[DeductionLine, ...] = ()
    adjustment_lines: tuple[AdjustmentLine, ...] = ()

    @property
    def gross_pay(self) -> Decimal:
        return self.earnings.gross_pay

    @property
    def total_deductions(self) -> Decimal:
        return self.deductions.total_deductions

    def to_dict(self) -> dict[str, Any]:
        return {
            "employee_id": self.employee_id,
            "rate_table_version": self.rate_table_version,
            "earnings": _amounts(self.earnings.__dict__),
            "deductions": _amounts(self.deductions.__dict__),
            "net_pay": f"{self.net_pay:.2f}",
            "adjustments_total": f"{self.adjustments_total:.2f}",
            "final_net_pay": f"{self.final_net_pay:.2f}",
            "earning_lines": [_amounts(line.__dict__) for line in self.earning_lines],
            "deduction_lines": [_amounts(line.__dict__) for line in self.deduction_lines],
            "adjustment_lines": [_amounts(line.__dict__) for line in self.adjustment_lines],
        }

    @property
    def result_hash(self) -> str:
        """SHA-256 over the canonical JSON of ``to_dict()``."""
        return hash_payload(self.to_dict())


def _amounts(values: dict[str, Any]) -> dict[str, Any]:
    """Render Decimals as fixed-point strings so 1.50 and 1.5 hash alike."""
    return {
        key: (f"{val:.2f}" if isinstance(val, Decimal) else val)
        for key, val in values.items()
    }

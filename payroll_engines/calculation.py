"""
Payroll Calculation Engine - compute one employee's pay for one period.

Pure functions with no I/O.  The snapshot, the period context and the
rate table set are provided as parameters; the same inputs always give the
same ``CalculationResult`` (and therefore the same ``result_hash``).

Algorithm (fixed order, every monetary step rounded half-up to centavos):

    1. basic pay           (pro-rated monthly, or daily/hourly x days worked)
    2. overtime pay        hours x hourly rate x category multiplier
    3. allowances/bonuses  taxable / de minimis split per entry
    4. gross pay           basic + overtime + allowances + bonuses
    5. contributions       SSS, PhilHealth, Pag-IBIG bracket lookups
    6. withholding tax     progressive table on taxable income
    7. loans, advances, tardiness and other deductions
    8. net pay             gross - total deductions

Adjustments are folded in as explicit line items.  Additions and
deductions change ``adjustments_total`` (so ``final_net_pay`` moves by
exactly their amount); an override pins one component and everything
downstream of it is recomputed.

Usage:
    from payroll_engines.calculation import PayrollCalculator, PeriodContext

    calculator = PayrollCalculator(PayrollEngineConfig.with_defaults())
    result = calculator.compute(
        snapshot=snapshot,
        period=PeriodContext(
            period_start=date(2026, 1, 1),
            period_end=date(2026, 1, 15),
            payment_date=date(2026, 1, 20),
            pay_frequency=PayFrequency.SEMI_MONTHLY,
        ),
        rates=rate_tables,
    )
    print(result.final_net_pay)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Sequence

from payroll_config.schema import PayrollEngineConfig
from payroll_engines.brackets import ContributionShare, contribution_for, withholding_tax_for
from payroll_engines.tracer import traced_engine
from payroll_kernel.domain.money import ZERO, round_money, sum_money
from payroll_kernel.domain.period_lifecycle import PayFrequency
from payroll_kernel.domain.rates import ContributionAgency, ContributionBasis, RateTableSet
from payroll_kernel.domain.results import (
    AdjustmentInstruction,
    AdjustmentLine,
    CalculationResult,
    DeductionBreakdown,
    DeductionLine,
    EarningLine,
    EarningsBreakdown,
    PayComponent,
)
from payroll_kernel.domain.snapshot import (
    DeductionCategory,
    EarningKind,
    EmployeeSnapshot,
    SalaryConfiguration,
    SalaryType,
)
from payroll_kernel.domain.statuses import AdjustmentType
from payroll_kernel.exceptions import CalculationError, MissingSnapshotDataError
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.calculation")

ENGINE_NAME = "payroll_calculation"
ENGINE_VERSION = "1.0"

_AGENCY_COMPONENTS = {
    ContributionAgency.SSS: PayComponent.SSS_CONTRIBUTION,
    ContributionAgency.PHILHEALTH: PayComponent.PHILHEALTH_CONTRIBUTION,
    ContributionAgency.PAGIBIG: PayComponent.PAGIBIG_CONTRIBUTION,
}

_AGENCY_NAMES = {
    ContributionAgency.SSS: "SSS contribution",
    ContributionAgency.PHILHEALTH: "PhilHealth contribution",
    ContributionAgency.PAGIBIG: "Pag-IBIG contribution",
}


def _override_line(component: PayComponent, category: str, amount: Decimal) -> DeductionLine:
    """A pinned component replaces its itemized lines with one line."""
    return DeductionLine(
        code=component.value,
        name=f"{component.value.replace('_', ' ').capitalize()} (override)",
        category=category,
        amount=amount,
    )


@dataclass(frozen=True)
class PeriodContext:
    """The slice of a payroll period the engine needs."""

    period_start: date
    period_end: date
    payment_date: date
    pay_frequency: PayFrequency

    def __post_init__(self) -> None:
        if self.period_end < self.period_start:
            raise ValueError("period_end before period_start")

    @property
    def periods_per_month(self) -> int:
        return self.pay_frequency.periods_per_month

    def to_dict(self) -> dict[str, Any]:
        return {
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "payment_date": self.payment_date.isoformat(),
            "pay_frequency": self.pay_frequency.value,
        }


@dataclass(frozen=True)
class _Rates:
    daily: Decimal
    hourly: Decimal


@dataclass(frozen=True)
class _CoreResult:
    earnings: EarningsBreakdown
    deductions: DeductionBreakdown
    net_pay: Decimal
    earning_lines: tuple[EarningLine, ...]
    deduction_lines: tuple[DeductionLine, ...]


class PayrollCalculator:
    """
    Compute per-employee pay.

    Pure - no I/O, no database access, no clock.  Overtime multipliers come
    from ``PayrollEngineConfig``; statutory tables from the ``RateTableSet``
    passed to ``compute``.
    """

    def __init__(self, config: PayrollEngineConfig | None = None):
        self.config = config or PayrollEngineConfig()

    @traced_engine(
        ENGINE_NAME,
        ENGINE_VERSION,
        fingerprint_fields=("snapshot", "period", "adjustments"),
    )
    def compute(
        self,
        *,
        snapshot: EmployeeSnapshot,
        period: PeriodContext,
        rates: RateTableSet,
        adjustments: Sequence[AdjustmentInstruction] = (),
    ) -> CalculationResult:
        """
        Compute one employee's result for one period.

        Args:
            snapshot: Frozen inputs for the employee.
            period: Pay frequency and dates of the period.
            rates: Statutory tables effective on the payment date.
            adjustments: Applied adjustments, in application order.

        Raises:
            MissingSnapshotDataError: salary configuration or a required
                rate is missing.
            CalculationError: the snapshot cannot be computed (e.g. a
                monthly employee with no expected working days).
        """
        salary = snapshot.salary
        if salary is None:
            raise MissingSnapshotDataError(snapshot.employee_id, "salary")

        employee_rates = self._resolve_rates(snapshot.employee_id, salary)

        overrides: dict[PayComponent, Decimal] = {}
        override_lines: list[AdjustmentLine] = []
        core = self._compute_core(snapshot, salary, employee_rates, period, rates, overrides)
        base_net = core.net_pay

        # Overrides apply cumulatively in application order; each line's
        # impact is the net-pay change it caused on top of the earlier ones.
        for adj in adjustments:
            if adj.adjustment_type != AdjustmentType.OVERRIDE:
                continue
            if adj.component is None:
                raise CalculationError(
                    snapshot.employee_id,
                    f"override adjustment {adj.adjustment_id} names no component",
                )
            pinned = round_money(adj.amount)
            overrides[adj.component] = pinned
            previous_net = core.net_pay
            core = self._compute_core(snapshot, salary, employee_rates, period, rates, overrides)
            override_lines.append(AdjustmentLine(
                adjustment_id=adj.adjustment_id,
                adjustment_type=adj.adjustment_type.value,
                component=adj.component.value,
                amount=pinned,
                impact_on_net_pay=round_money(core.net_pay - previous_net),
            ))

        adjustment_lines: list[AdjustmentLine] = []
        delta_lines: list[Decimal] = []
        override_iter = iter(override_lines)
        for adj in adjustments:
            if adj.adjustment_type == AdjustmentType.OVERRIDE:
                adjustment_lines.append(next(override_iter))
                continue
            amount = round_money(adj.amount)
            impact = amount if adj.adjustment_type == AdjustmentType.ADDITION else -amount
            delta_lines.append(impact)
            adjustment_lines.append(AdjustmentLine(
                adjustment_id=adj.adjustment_id,
                adjustment_type=adj.adjustment_type.value,
                component=None,
                amount=amount,
                impact_on_net_pay=impact,
            ))

        adjustments_total = sum_money(delta_lines)
        final_net_pay = round_money(core.net_pay + adjustments_total)

        logger.debug(
            "employee_pay_computed",
            extra={
                "employee_id": snapshot.employee_id,
                "rate_table_version": rates.version,
                "gross_pay": str(core.earnings.gross_pay),
                "net_pay": str(core.net_pay),
                "override_impact": str(round_money(core.net_pay - base_net)),
                "adjustments_total": str(adjustments_total),
                "final_net_pay": str(final_net_pay),
            },
        )

        return CalculationResult(
            employee_id=snapshot.employee_id,
            rate_table_version=rates.version,
            earnings=core.earnings,
            deductions=core.deductions,
            net_pay=core.net_pay,
            adjustments_total=adjustments_total,
            final_net_pay=final_net_pay,
            earning_lines=core.earning_lines,
            deduction_lines=core.deduction_lines,
            adjustment_lines=tuple(adjustment_lines),
        )

    # ------------------------------------------------------------------
    # Rates
    # ------------------------------------------------------------------

    def _resolve_rates(self, employee_id: str, salary: SalaryConfiguration) -> _Rates:
        """Daily and hourly rates, derived from the monthly salary when absent."""
        if salary.salary_type == SalaryType.MONTHLY and salary.basic_salary <= 0:
            raise MissingSnapshotDataError(employee_id, "basic_salary")

        daily = salary.daily_rate
        if daily is None and salary.basic_salary > 0:
            daily = round_money(salary.basic_salary / salary.working_days_per_month)

        hourly = salary.hourly_rate
        if hourly is None and daily is not None:
            hourly = round_money(daily / salary.working_hours_per_day)

        if salary.salary_type == SalaryType.DAILY and daily is None:
            raise MissingSnapshotDataError(employee_id, "daily_rate")
        if hourly is None:
            raise MissingSnapshotDataError(employee_id, "hourly_rate")

        return _Rates(daily=daily if daily is not None else ZERO, hourly=hourly)

    # ------------------------------------------------------------------
    # Core pipeline
    # ------------------------------------------------------------------

    def _compute_core(
        self,
        snapshot: EmployeeSnapshot,
        salary: SalaryConfiguration,
        employee_rates: _Rates,
        period: PeriodContext,
        rates: RateTableSet,
        overrides: dict[PayComponent, Decimal],
    ) -> _CoreResult:
        ppm = period.periods_per_month
        attendance = snapshot.attendance

        # 1. Basic pay
        basic_pay = overrides.get(
            PayComponent.BASIC_PAY,
            self._basic_pay(snapshot, salary, employee_rates, ppm),
        )

        # 2. Overtime
        ot: dict[str, Decimal] = {
            "regular": ZERO, "rest_day": ZERO, "holiday": ZERO, "night_differential": ZERO,
        }
        if attendance is not None:
            for category, hours in attendance.overtime.items():
                ot[category] = round_money(
                    hours * employee_rates.hourly * self.config.overtime.for_category(category)
                )
        overtime_pay = overrides.get(PayComponent.OVERTIME_PAY, sum_money(ot.values()))

        # 3. Allowances and bonuses
        earning_lines: list[EarningLine] = []
        totals = {EarningKind.ALLOWANCE: [], EarningKind.BONUS: []}
        non_taxable = {EarningKind.ALLOWANCE: [], EarningKind.BONUS: []}
        for entry in snapshot.earnings:
            amount = round_money(entry.amount)
            exempt = ZERO if entry.taxable else self._non_taxable_portion(entry, amount, ppm)
            earning_lines.append(EarningLine(
                code=entry.code,
                name=entry.name,
                kind=entry.kind.value,
                amount=amount,
                taxable_amount=round_money(amount - exempt),
                non_taxable_amount=exempt,
            ))
            totals[entry.kind].append(amount)
            non_taxable[entry.kind].append(exempt)

        allowances_total = overrides.get(
            PayComponent.ALLOWANCES, sum_money(totals[EarningKind.ALLOWANCE]),
        )
        bonuses_total = overrides.get(
            PayComponent.BONUSES, sum_money(totals[EarningKind.BONUS]),
        )
        # A pinned total can only shrink the non-taxable part, never grow it.
        non_taxable_earnings = sum_money([
            min(sum_money(non_taxable[EarningKind.ALLOWANCE]), max(allowances_total, ZERO)),
            min(sum_money(non_taxable[EarningKind.BONUS]), max(bonuses_total, ZERO)),
        ])

        # 4. Gross
        gross_pay = sum_money([basic_pay, overtime_pay, allowances_total, bonuses_total])

        # 5. Government contributions
        shares: dict[ContributionAgency, ContributionShare] = {}
        for agency in ContributionAgency:
            shares[agency] = self._contribution(
                snapshot, salary, rates, agency, gross_pay, basic_pay, ppm,
            )
        employee_shares = {
            agency: overrides.get(_AGENCY_COMPONENTS[agency], share.employee_share)
            for agency, share in shares.items()
        }
        government_contributions = sum_money(employee_shares.values())

        # 6. Withholding tax
        taxable_income = max(
            round_money(gross_pay - non_taxable_earnings - government_contributions), ZERO,
        )
        withholding_tax = overrides.get(
            PayComponent.WITHHOLDING_TAX,
            withholding_tax_for(rates.withholding, taxable_income, ppm, salary.tax_status),
        )

        # 7. Loans and other deductions
        deduction_lines: list[DeductionLine] = [
            DeductionLine(
                code=agency.value,
                name=_AGENCY_NAMES[agency],
                category="government",
                amount=employee_shares[agency],
            )
            for agency in ContributionAgency
        ]
        deduction_lines.append(DeductionLine(
            code="withholding_tax", name="Withholding tax", category="tax", amount=withholding_tax,
        ))

        loan_amounts: list[Decimal] = []
        loan_lines: list[DeductionLine] = []
        for loan in snapshot.loans:
            if loan.outstanding_balance <= 0:
                amount = ZERO
            else:
                amount = round_money(min(loan.installment_amount, loan.outstanding_balance))
            loan_amounts.append(amount)
            loan_lines.append(DeductionLine(
                code=loan.loan_id, name=loan.loan_type.value, category="loan", amount=amount,
            ))
        if PayComponent.LOAN_DEDUCTIONS in overrides:
            loan_deductions = overrides[PayComponent.LOAN_DEDUCTIONS]
            loan_lines = [_override_line(PayComponent.LOAN_DEDUCTIONS, "loan", loan_deductions)]
        else:
            loan_deductions = sum_money(loan_amounts)
        deduction_lines.extend(loan_lines)

        advances: list[Decimal] = []
        others: list[Decimal] = []
        other_lines: list[DeductionLine] = []
        for entry in snapshot.deductions:
            amount = entry.amount
            if entry.max_amount is not None:
                amount = min(amount, entry.max_amount)
            amount = round_money(amount)
            line = DeductionLine(
                code=entry.code, name=entry.name, category=entry.category.value, amount=amount,
            )
            if entry.category == DeductionCategory.ADVANCE:
                advances.append(amount)
                deduction_lines.append(line)
            else:
                others.append(amount)
                other_lines.append(line)
        if PayComponent.OTHER_DEDUCTIONS in overrides:
            other_deductions = overrides[PayComponent.OTHER_DEDUCTIONS]
            other_lines = [_override_line(PayComponent.OTHER_DEDUCTIONS, "other", other_deductions)]
        else:
            other_deductions = sum_money(others)
        deduction_lines.extend(other_lines)

        tardiness = ZERO
        if attendance is not None:
            minutes = attendance.late_minutes + attendance.undertime_minutes
            if minutes > 0:
                tardiness = round_money(minutes * employee_rates.hourly / 60)
                deduction_lines.append(DeductionLine(
                    code="tardiness", name="Tardiness and undertime",
                    category="attendance", amount=tardiness,
                ))

        advances_total = sum_money(advances)

        total_deductions = sum_money([
            government_contributions,
            withholding_tax,
            loan_deductions,
            advances_total,
            tardiness,
            other_deductions,
        ])

        # 8. Net
        net_pay = round_money(gross_pay - total_deductions)

        earnings = EarningsBreakdown(
            basic_pay=basic_pay,
            overtime_regular=ot["regular"],
            overtime_rest_day=ot["rest_day"],
            overtime_holiday=ot["holiday"],
            overtime_night_differential=ot["night_differential"],
            overtime_pay=overtime_pay,
            allowances_total=allowances_total,
            bonuses_total=bonuses_total,
            non_taxable_earnings=non_taxable_earnings,
            gross_pay=gross_pay,
        )
        deductions = DeductionBreakdown(
            sss_contribution=employee_shares[ContributionAgency.SSS],
            philhealth_contribution=employee_shares[ContributionAgency.PHILHEALTH],
            pagibig_contribution=employee_shares[ContributionAgency.PAGIBIG],
            government_contributions=government_contributions,
            employer_sss=shares[ContributionAgency.SSS].employer_share,
            employer_philhealth=shares[ContributionAgency.PHILHEALTH].employer_share,
            employer_pagibig=shares[ContributionAgency.PAGIBIG].employer_share,
            taxable_income=taxable_income,
            withholding_tax=withholding_tax,
            loan_deductions=loan_deductions,
            advances=advances_total,
            tardiness_deduction=tardiness,
            other_deductions=other_deductions,
            total_deductions=total_deductions,
        )
        return _CoreResult(
            earnings=earnings,
            deductions=deductions,
            net_pay=net_pay,
            earning_lines=tuple(earning_lines),
            deduction_lines=tuple(deduction_lines),
        )

    def _basic_pay(
        self,
        snapshot: EmployeeSnapshot,
        salary: SalaryConfiguration,
        employee_rates: _Rates,
        periods_per_month: int,
    ) -> Decimal:
        attendance = snapshot.attendance
        paid_leave = snapshot.leave.paid_leave_days if snapshot.leave else Decimal("0")

        if salary.salary_type == SalaryType.MONTHLY:
            basis = round_money(salary.basic_salary / periods_per_month)
            if attendance is None:
                return basis
            if attendance.expected_days <= 0:
                raise CalculationError(
                    snapshot.employee_id,
                    "expected_days must be positive for a monthly-salaried employee",
                )
            days_paid = attendance.present_days + paid_leave
            return round_money(basis * days_paid / attendance.expected_days)

        if attendance is None:
            return ZERO
        days_paid = attendance.present_days + paid_leave
        if salary.salary_type == SalaryType.DAILY:
            return round_money(employee_rates.daily * days_paid)
        return round_money(employee_rates.hourly * salary.working_hours_per_day * days_paid)

    @staticmethod
    def _non_taxable_portion(entry, amount: Decimal, periods_per_month: int) -> Decimal:
        """The part of a non-taxable entry within its de minimis caps."""
        cap: Decimal | None = None
        if entry.deminimis_monthly_cap is not None:
            cap = round_money(entry.deminimis_monthly_cap / periods_per_month)
        if entry.deminimis_annual_cap is not None:
            remaining = max(
                round_money(entry.deminimis_annual_cap - entry.year_to_date_amount), ZERO,
            )
            cap = remaining if cap is None else min(cap, remaining)
        if cap is None:
            return amount
        return min(amount, cap)

    @staticmethod
    def _contribution(
        snapshot: EmployeeSnapshot,
        salary: SalaryConfiguration,
        rates: RateTableSet,
        agency: ContributionAgency,
        gross_pay: Decimal,
        basic_pay: Decimal,
        periods_per_month: int,
    ) -> ContributionShare:
        table = rates.contribution_table(agency)
        if not salary.government_ids.for_agency(agency.value):
            return ContributionShare.zero(agency)
        basis = gross_pay if table.basis == ContributionBasis.GROSS else basic_pay
        return contribution_for(table, basis, periods_per_month)

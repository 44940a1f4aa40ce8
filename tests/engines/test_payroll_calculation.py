"""
Tests for the payroll calculation engine.

Covers:
- Basic pay for monthly, daily and hourly employees (pro-rating, no attendance)
- Overtime premiums and tardiness
- Government contributions reducing taxable income; exempt tax status
- De minimis split of non-taxable earnings
- Loans and cash advances
- Adjustments: additions/deductions move final net pay exactly, overrides
  recompute everything downstream
- Overridden loan and other deduction totals listed as a single line
- Missing or unusable inputs raise
- Determinism: same inputs, same result hash
"""

from dataclasses import replace
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from payroll_engines.calculation import PayrollCalculator, PeriodContext
from payroll_kernel.domain.period_lifecycle import PayFrequency
from payroll_kernel.domain.results import AdjustmentInstruction, PayComponent
from payroll_kernel.domain.snapshot import (
    AttendanceAggregate,
    DeductionCategory,
    DeductionEntry,
    EarningEntry,
    EmployeeSnapshot,
    GovernmentIds,
    LeaveSummary,
    LoanInstallment,
    LoanType,
    OvertimeHours,
    SalaryConfiguration,
    SalaryType,
)
from payroll_kernel.domain.statuses import AdjustmentType
from payroll_kernel.exceptions import CalculationError, MissingSnapshotDataError
from payroll_kernel.services.rate_provider import InMemoryRateTableProvider
from tests.factories import (
    E001_NET_PAY,
    PAYMENT_DATE,
    PERIOD_END,
    PERIOD_START,
    daily_snapshot,
    monthly_snapshot,
    overdrawn_snapshot,
)


def hourly_snapshot(employee_id="H001", hourly_rate="150", overtime=None):
    return EmployeeSnapshot(
        employee_id=employee_id,
        salary=SalaryConfiguration(
            salary_type=SalaryType.HOURLY,
            hourly_rate=Decimal(hourly_rate),
            tax_status="Z",
        ),
        attendance=AttendanceAggregate(
            expected_days=Decimal("11"),
            present_days=Decimal("11"),
            overtime=overtime or OvertimeHours(),
        ),
        leave=LeaveSummary(),
    )


class TestBasicPay:
    """Basic pay per salary type."""

    def test_monthly_salary_prorated_by_days_worked(self, calculator, rate_tables, monthly_period):
        snapshot = monthly_snapshot(
            "A001", "30000",
            expected_days="22", present_days="20", absent_days="2",
            tax_status="Z", government_ids=GovernmentIds(), leave=LeaveSummary(),
        )

        result = calculator.compute(snapshot=snapshot, period=monthly_period, rates=rate_tables)

        assert result.earnings.basic_pay == Decimal("27272.73")
        assert result.total_deductions == Decimal("0.00")
        assert result.final_net_pay == Decimal("27272.73")

    def test_paid_leave_counts_as_days_worked(self, calculator, rate_tables, semi_monthly_period):
        snapshot = monthly_snapshot(
            present_days="9", absent_days="2",
            leave=LeaveSummary(paid_leave_days=Decimal("2")),
        )

        result = calculator.compute(snapshot=snapshot, period=semi_monthly_period, rates=rate_tables)

        assert result.earnings.basic_pay == Decimal("15000.00")

    def test_monthly_without_attendance_gets_full_basis(
        self, calculator, rate_tables, semi_monthly_period,
    ):
        snapshot = replace(monthly_snapshot(), attendance=None)

        result = calculator.compute(snapshot=snapshot, period=semi_monthly_period, rates=rate_tables)

        assert result.earnings.basic_pay == Decimal("15000.00")

    def test_daily_rate_times_days(self, calculator, rate_tables, semi_monthly_period):
        result = calculator.compute(
            snapshot=daily_snapshot("D001", "650", "10"),
            period=semi_monthly_period,
            rates=rate_tables,
        )

        assert result.earnings.basic_pay == Decimal("6500.00")

    def test_daily_without_attendance_earns_nothing(
        self, calculator, rate_tables, semi_monthly_period,
    ):
        snapshot = replace(daily_snapshot("D001", "650", "10"), attendance=None)

        result = calculator.compute(snapshot=snapshot, period=semi_monthly_period, rates=rate_tables)

        assert result.earnings.basic_pay == Decimal("0.00")
        assert result.final_net_pay == Decimal("0.00")

    def test_hourly_rate_times_hours_per_day(self, calculator, rate_tables, semi_monthly_period):
        result = calculator.compute(
            snapshot=hourly_snapshot(), period=semi_monthly_period, rates=rate_tables,
        )

        # 150 x 8 hours x 11 days
        assert result.earnings.basic_pay == Decimal("13200.00")


class TestOvertimeAndTardiness:
    """Overtime multipliers and late/undertime deductions."""

    def test_regular_overtime_premium(self, calculator, rate_tables, semi_monthly_period):
        snapshot = hourly_snapshot(overtime=OvertimeHours(regular=Decimal("8")))

        result = calculator.compute(snapshot=snapshot, period=semi_monthly_period, rates=rate_tables)

        assert result.earnings.overtime_regular == Decimal("1500.00")
        assert result.earnings.overtime_pay == Decimal("1500.00")

    def test_each_category_uses_its_multiplier(self, calculator, rate_tables, semi_monthly_period):
        snapshot = hourly_snapshot(overtime=OvertimeHours(
            regular=Decimal("1"),
            rest_day=Decimal("1"),
            holiday=Decimal("1"),
            night_differential=Decimal("10"),
        ))

        result = calculator.compute(snapshot=snapshot, period=semi_monthly_period, rates=rate_tables)

        assert result.earnings.overtime_regular == Decimal("187.50")
        assert result.earnings.overtime_rest_day == Decimal("195.00")
        assert result.earnings.overtime_holiday == Decimal("300.00")
        assert result.earnings.overtime_night_differential == Decimal("150.00")
        assert result.earnings.overtime_pay == Decimal("832.50")

    def test_late_minutes_deducted_at_hourly_rate(
        self, calculator, rate_tables, semi_monthly_period,
    ):
        base = hourly_snapshot()
        snapshot = replace(
            base, attendance=replace(base.attendance, late_minutes=Decimal("30")),
        )

        result = calculator.compute(snapshot=snapshot, period=semi_monthly_period, rates=rate_tables)

        assert result.deductions.tardiness_deduction == Decimal("75.00")
        assert result.final_net_pay == Decimal("13125.00")


class TestStatutoryDeductions:
    """Contributions and withholding on the worked example."""

    def test_worked_example(self, calculator, rate_tables, semi_monthly_period):
        result = calculator.compute(
            snapshot=monthly_snapshot(), period=semi_monthly_period, rates=rate_tables,
        )

        assert result.earnings.gross_pay == Decimal("15000.00")
        assert result.deductions.sss_contribution == Decimal("750.00")
        assert result.deductions.philhealth_contribution == Decimal("375.00")
        assert result.deductions.pagibig_contribution == Decimal("100.00")
        assert result.deductions.government_contributions == Decimal("1225.00")
        assert result.deductions.withholding_tax == Decimal("167.92")
        assert result.net_pay == E001_NET_PAY
        assert result.final_net_pay == E001_NET_PAY

    def test_employer_shares_recorded(self, calculator, rate_tables, semi_monthly_period):
        result = calculator.compute(
            snapshot=monthly_snapshot(), period=semi_monthly_period, rates=rate_tables,
        )

        assert result.deductions.employer_sss == Decimal("1500.00")
        assert result.deductions.employer_philhealth == Decimal("375.00")
        assert result.deductions.employer_pagibig == Decimal("100.00")

    def test_contributions_reduce_taxable_income(
        self, calculator, rate_tables, semi_monthly_period,
    ):
        result = calculator.compute(
            snapshot=monthly_snapshot(), period=semi_monthly_period, rates=rate_tables,
        )

        assert result.deductions.taxable_income == (
            result.earnings.gross_pay - result.deductions.government_contributions
        )

    def test_exempt_status_pays_no_tax(self, calculator, rate_tables, semi_monthly_period):
        result = calculator.compute(
            snapshot=monthly_snapshot(tax_status="Z"),
            period=semi_monthly_period,
            rates=rate_tables,
        )

        assert result.deductions.withholding_tax == Decimal("0.00")
        assert result.deductions.government_contributions == Decimal("1225.00")

    def test_missing_agency_id_skips_that_contribution(
        self, calculator, rate_tables, semi_monthly_period,
    ):
        ids = GovernmentIds(philhealth_number="12-345678901-2", tin="123-456-789-000")

        result = calculator.compute(
            snapshot=monthly_snapshot(government_ids=ids),
            period=semi_monthly_period,
            rates=rate_tables,
        )

        assert result.deductions.sss_contribution == Decimal("0.00")
        assert result.deductions.pagibig_contribution == Decimal("0.00")
        assert result.deductions.philhealth_contribution == Decimal("375.00")

    def test_contribution_lines_listed(self, calculator, rate_tables, semi_monthly_period):
        result = calculator.compute(
            snapshot=monthly_snapshot(), period=semi_monthly_period, rates=rate_tables,
        )

        codes = [line.code for line in result.deduction_lines]
        assert codes[:4] == ["sss", "philhealth", "pagibig", "withholding_tax"]


class TestEarningsAndDeductionEntries:
    """Allowances, de minimis caps, loans and advances."""

    def test_deminimis_cap_splits_taxable_excess(
        self, calculator, rate_tables, semi_monthly_period,
    ):
        rice = EarningEntry(
            code="RICE",
            name="Rice subsidy",
            amount=Decimal("2000"),
            taxable=False,
            deminimis_monthly_cap=Decimal("2000"),
        )
        snapshot = monthly_snapshot(earnings=(rice,))

        result = calculator.compute(snapshot=snapshot, period=semi_monthly_period, rates=rate_tables)

        line = result.earning_lines[0]
        assert line.non_taxable_amount == Decimal("1000.00")
        assert line.taxable_amount == Decimal("1000.00")
        assert result.earnings.allowances_total == Decimal("2000.00")
        assert result.earnings.non_taxable_earnings == Decimal("1000.00")
        assert result.earnings.gross_pay == Decimal("17000.00")
        assert result.deductions.taxable_income == (
            Decimal("17000.00") - Decimal("1000.00")
            - result.deductions.government_contributions
        )

    def test_loan_installment_capped_at_outstanding_balance(
        self, calculator, rate_tables, semi_monthly_period,
    ):
        loan = LoanInstallment(
            loan_id="L-1",
            loan_type=LoanType.COMPANY_LOAN,
            installment_amount=Decimal("2000"),
            outstanding_balance=Decimal("500"),
        )

        result = calculator.compute(
            snapshot=monthly_snapshot(loans=(loan,)),
            period=semi_monthly_period,
            rates=rate_tables,
        )

        assert result.deductions.loan_deductions == Decimal("500.00")
        assert result.final_net_pay == E001_NET_PAY - Decimal("500.00")

    def test_cash_advance_can_drive_net_pay_negative(
        self, calculator, rate_tables, semi_monthly_period,
    ):
        result = calculator.compute(
            snapshot=overdrawn_snapshot(), period=semi_monthly_period, rates=rate_tables,
        )

        assert result.earnings.gross_pay == Decimal("500.00")
        assert result.deductions.advances == Decimal("1000.00")
        assert result.final_net_pay == Decimal("-500.00")


class TestAdjustmentsFolding:
    """Applied adjustments as explicit line items."""

    def test_addition_moves_final_net_pay_exactly(
        self, calculator, rate_tables, semi_monthly_period,
    ):
        addition = AdjustmentInstruction("adj-1", AdjustmentType.ADDITION, Decimal("1000"))

        result = calculator.compute(
            snapshot=monthly_snapshot(),
            period=semi_monthly_period,
            rates=rate_tables,
            adjustments=[addition],
        )

        assert result.net_pay == E001_NET_PAY
        assert result.adjustments_total == Decimal("1000.00")
        assert result.final_net_pay == E001_NET_PAY + Decimal("1000.00")
        assert result.adjustment_lines[0].impact_on_net_pay == Decimal("1000.00")

    def test_deduction_moves_final_net_pay_exactly(
        self, calculator, rate_tables, semi_monthly_period,
    ):
        deduction = AdjustmentInstruction("adj-2", AdjustmentType.DEDUCTION, Decimal("250.50"))

        result = calculator.compute(
            snapshot=monthly_snapshot(),
            period=semi_monthly_period,
            rates=rate_tables,
            adjustments=[deduction],
        )

        assert result.adjustments_total == Decimal("-250.50")
        assert result.final_net_pay == E001_NET_PAY - Decimal("250.50")

    def test_override_recomputes_downstream(self, calculator, rate_tables, semi_monthly_period):
        override = AdjustmentInstruction(
            "adj-3", AdjustmentType.OVERRIDE, Decimal("10000"), PayComponent.BASIC_PAY,
        )

        result = calculator.compute(
            snapshot=monthly_snapshot(),
            period=semi_monthly_period,
            rates=rate_tables,
            adjustments=[override],
        )

        assert result.earnings.basic_pay == Decimal("10000.00")
        assert result.deductions.sss_contribution == Decimal("500.00")
        assert result.deductions.philhealth_contribution == Decimal("250.00")
        # 9,150 x 24 falls in the zero-rate bracket
        assert result.deductions.withholding_tax == Decimal("0.00")
        assert result.final_net_pay == Decimal("9150.00")
        assert result.adjustments_total == Decimal("0.00")
        assert result.adjustment_lines[0].impact_on_net_pay == Decimal("9150.00") - E001_NET_PAY

    def test_override_of_tax_only_changes_tax(self, calculator, rate_tables, semi_monthly_period):
        override = AdjustmentInstruction(
            "adj-4", AdjustmentType.OVERRIDE, Decimal("0"), PayComponent.WITHHOLDING_TAX,
        )

        result = calculator.compute(
            snapshot=monthly_snapshot(),
            period=semi_monthly_period,
            rates=rate_tables,
            adjustments=[override],
        )

        assert result.deductions.government_contributions == Decimal("1225.00")
        assert result.final_net_pay == Decimal("13775.00")

    def test_override_then_addition_compose_in_order(
        self, calculator, rate_tables, semi_monthly_period,
    ):
        adjustments = [
            AdjustmentInstruction(
                "adj-5", AdjustmentType.OVERRIDE, Decimal("0"), PayComponent.WITHHOLDING_TAX,
            ),
            AdjustmentInstruction("adj-6", AdjustmentType.ADDITION, Decimal("25")),
        ]

        result = calculator.compute(
            snapshot=monthly_snapshot(),
            period=semi_monthly_period,
            rates=rate_tables,
            adjustments=adjustments,
        )

        assert [line.adjustment_id for line in result.adjustment_lines] == ["adj-5", "adj-6"]
        assert result.final_net_pay == Decimal("13800.00")

    def test_override_without_component_raises(
        self, calculator, rate_tables, semi_monthly_period,
    ):
        override = AdjustmentInstruction("adj-7", AdjustmentType.OVERRIDE, Decimal("1"))

        with pytest.raises(CalculationError):
            calculator.compute(
                snapshot=monthly_snapshot(),
                period=semi_monthly_period,
                rates=rate_tables,
                adjustments=[override],
            )


class TestPinnedDeductionLines:
    """An overridden deduction total is listed as one line, not itemized."""

    LOANS = (
        LoanInstallment("L-1", LoanType.SSS_LOAN, Decimal("800"), Decimal("5000")),
        LoanInstallment("L-2", LoanType.COMPANY_LOAN, Decimal("700"), Decimal("5000")),
    )
    DEDUCTIONS = (
        DeductionEntry("UNIF", "Uniform", Decimal("300")),
        DeductionEntry("CA-1", "Cash advance", Decimal("200"), DeductionCategory.ADVANCE),
    )

    def compute(self, calculator, rate_tables, period, component, amount):
        override = AdjustmentInstruction("adj-9", AdjustmentType.OVERRIDE, Decimal(amount), component)
        return calculator.compute(
            snapshot=monthly_snapshot(loans=self.LOANS, deductions=self.DEDUCTIONS),
            period=period,
            rates=rate_tables,
            adjustments=[override],
        )

    def test_loan_override_single_line(self, calculator, rate_tables, semi_monthly_period):
        result = self.compute(
            calculator, rate_tables, semi_monthly_period, PayComponent.LOAN_DEDUCTIONS, "600",
        )

        loan_lines = [line for line in result.deduction_lines if line.category == "loan"]
        assert [(line.code, line.amount) for line in loan_lines] == [
            ("loan_deductions", Decimal("600.00")),
        ]
        assert result.deductions.loan_deductions == Decimal("600.00")

    def test_other_override_keeps_advances(self, calculator, rate_tables, semi_monthly_period):
        result = self.compute(
            calculator, rate_tables, semi_monthly_period, PayComponent.OTHER_DEDUCTIONS, "0",
        )

        codes = {line.code: line.amount for line in result.deduction_lines}
        assert "UNIF" not in codes
        assert codes["other_deductions"] == Decimal("0.00")
        assert codes["CA-1"] == Decimal("200.00")
        assert {"L-1", "L-2"} <= codes.keys()

    @pytest.mark.parametrize(
        "component", [PayComponent.LOAN_DEDUCTIONS, PayComponent.OTHER_DEDUCTIONS],
    )
    def test_lines_add_up_to_total(self, calculator, rate_tables, semi_monthly_period, component):
        result = self.compute(calculator, rate_tables, semi_monthly_period, component, "450")

        assert sum(line.amount for line in result.deduction_lines) == (
            result.deductions.total_deductions
        )


class TestInvalidInputs:
    """Snapshots the engine refuses to compute."""

    def test_missing_salary_configuration(self, calculator, rate_tables, semi_monthly_period):
        snapshot = EmployeeSnapshot(employee_id="X001", salary=None)

        with pytest.raises(MissingSnapshotDataError) as exc_info:
            calculator.compute(snapshot=snapshot, period=semi_monthly_period, rates=rate_tables)

        assert exc_info.value.field_name == "salary"

    def test_monthly_with_zero_salary(self, calculator, rate_tables, semi_monthly_period):
        with pytest.raises(MissingSnapshotDataError):
            calculator.compute(
                snapshot=monthly_snapshot(basic_salary="0"),
                period=semi_monthly_period,
                rates=rate_tables,
            )

    def test_monthly_with_no_expected_days(self, calculator, rate_tables, semi_monthly_period):
        snapshot = monthly_snapshot(expected_days="0", present_days="0")

        with pytest.raises(CalculationError) as exc_info:
            calculator.compute(snapshot=snapshot, period=semi_monthly_period, rates=rate_tables)

        assert exc_info.value.employee_id == "E001"


# Module-level so hypothesis examples do not depend on function-scoped fixtures
_CALCULATOR = PayrollCalculator()
_RATES = InMemoryRateTableProvider.from_yaml().tables_for(PAYMENT_DATE)


def _semi_monthly():
    return PeriodContext(PERIOD_START, PERIOD_END, PAYMENT_DATE, PayFrequency.SEMI_MONTHLY)


class TestDeterminism:
    """Same inputs, same result."""

    @settings(max_examples=50, deadline=None)
    @given(
        salary=st.integers(min_value=1000, max_value=400000),
        present=st.integers(min_value=0, max_value=11),
        overtime=st.decimals(min_value=0, max_value=40, places=1),
    )
    def test_recompute_gives_identical_hash(self, salary, present, overtime):
        snapshot = monthly_snapshot(
            basic_salary=str(salary),
            present_days=str(present),
            absent_days=str(11 - present),
            leave=LeaveSummary(),
            overtime=OvertimeHours(regular=overtime),
        )
        period = _semi_monthly()

        first = _CALCULATOR.compute(snapshot=snapshot, period=period, rates=_RATES)
        second = _CALCULATOR.compute(snapshot=snapshot, period=period, rates=_RATES)

        assert first == second
        assert first.result_hash == second.result_hash

    @settings(max_examples=50, deadline=None)
    @given(
        salary=st.integers(min_value=1000, max_value=400000),
        addition=st.decimals(min_value=1, max_value=5000, places=2),
    )
    def test_amounts_are_centavo_exact(self, salary, addition):
        result = _CALCULATOR.compute(
            snapshot=monthly_snapshot(basic_salary=str(salary)),
            period=_semi_monthly(),
            rates=_RATES,
            adjustments=[AdjustmentInstruction("a", AdjustmentType.ADDITION, addition)],
        )

        for amount in (
            result.earnings.gross_pay,
            result.total_deductions,
            result.net_pay,
            result.final_net_pay,
        ):
            assert amount == amount.quantize(Decimal("0.01"))
        assert result.final_net_pay == result.net_pay + result.adjustments_total
        assert result.net_pay == result.earnings.gross_pay - result.total_deductions

    def test_result_hash_changes_with_inputs(self, calculator, rate_tables, semi_monthly_period):
        a = calculator.compute(
            snapshot=monthly_snapshot(), period=semi_monthly_period, rates=rate_tables,
        )
        b = calculator.compute(
            snapshot=monthly_snapshot(basic_salary="30001"),
            period=semi_monthly_period,
            rates=rate_tables,
        )

        assert a.result_hash != b.result_hash

"""
Tests for contribution and withholding bracket lookups.

Covers:
- Monthly-equivalent basis, clamped to the table's floor and ceiling
- Bracket selection by lower bound
- Zero basis pays nothing
- Progressive annual withholding, de-annualized per period
- Exempt tax statuses
- Rate table validation on construction
"""

from datetime import date
from decimal import Decimal

import pytest

from payroll_engines.brackets import annual_tax, contribution_for, withholding_tax_for
from payroll_kernel.domain.rates import (
    ContributionAgency,
    ContributionBasis,
    ContributionBracket,
    ContributionTable,
    RateTableSet,
    TaxBracket,
    WithholdingTaxTable,
)


@pytest.fixture
def sss(rate_tables) -> ContributionTable:
    return rate_tables.contribution_table(ContributionAgency.SSS)


@pytest.fixture
def pagibig(rate_tables) -> ContributionTable:
    return rate_tables.contribution_table(ContributionAgency.PAGIBIG)


class TestContributionLookup:
    """contribution_for on the bundled tables."""

    def test_semi_monthly_pays_half_the_monthly_share(self, sss):
        share = contribution_for(sss, Decimal("15000.00"), periods_per_month=2)

        assert share.monthly_basis == Decimal("30000.00")
        assert share.employee_share == Decimal("750.00")
        assert share.employer_share == Decimal("1500.00")

    def test_basis_clamped_to_maximum(self, sss):
        share = contribution_for(sss, Decimal("100000.00"), periods_per_month=1)

        assert share.monthly_basis == Decimal("35000")
        assert share.employee_share == Decimal("1750.00")

    def test_basis_raised_to_minimum(self, sss):
        share = contribution_for(sss, Decimal("1000.00"), periods_per_month=1)

        assert share.monthly_basis == Decimal("5000")
        assert share.employee_share == Decimal("250.00")

    def test_zero_basis_pays_nothing(self, sss):
        share = contribution_for(sss, Decimal("0"), periods_per_month=2)

        assert share.employee_share == Decimal("0.00")
        assert share.employer_share == Decimal("0.00")

    def test_lower_bracket_selected_below_threshold(self, pagibig):
        share = contribution_for(pagibig, Decimal("1200.00"), periods_per_month=1)

        assert share.employee_share == Decimal("12.00")
        assert share.employer_share == Decimal("24.00")

    def test_upper_bracket_at_threshold(self, pagibig):
        share = contribution_for(pagibig, Decimal("1500.00"), periods_per_month=1)

        assert share.employee_share == Decimal("30.00")

    def test_fixed_amount_brackets(self):
        table = ContributionTable(
            agency=ContributionAgency.SSS,
            basis=ContributionBasis.GROSS,
            brackets=(
                ContributionBracket(lower=Decimal("0"), employee_fixed=Decimal("100")),
                ContributionBracket(lower=Decimal("10000"), employee_fixed=Decimal("400")),
            ),
        )

        assert contribution_for(table, Decimal("9999.99"), 1).employee_share == Decimal("100.00")
        assert contribution_for(table, Decimal("10000"), 1).employee_share == Decimal("400.00")


class TestWithholding:
    """Annualized progressive withholding."""

    def test_worked_example_tax(self, rate_tables):
        tax = withholding_tax_for(rate_tables.withholding, Decimal("13775.00"), 2, "S")

        assert tax == Decimal("167.92")

    def test_income_in_zero_rate_bracket(self, rate_tables):
        tax = withholding_tax_for(rate_tables.withholding, Decimal("10000.00"), 2, "S")

        assert tax == Decimal("0.00")

    def test_annual_tax_uses_base_plus_excess(self, rate_tables):
        assert annual_tax(rate_tables.withholding, Decimal("500000")) == Decimal("17500.00")
        assert annual_tax(rate_tables.withholding, Decimal("2500000")) == Decimal("327500.00")

    def test_exempt_status(self, rate_tables):
        tax = withholding_tax_for(rate_tables.withholding, Decimal("100000.00"), 1, "Z")

        assert tax == Decimal("0.00")

    def test_non_positive_income(self, rate_tables):
        assert withholding_tax_for(rate_tables.withholding, Decimal("0"), 2, "S") == Decimal("0.00")


class TestTableValidation:
    """Rate table value objects reject malformed schedules."""

    def test_unordered_brackets_rejected(self):
        with pytest.raises(ValueError, match="ascending"):
            WithholdingTaxTable(brackets=(
                TaxBracket(lower=Decimal("1000"), base_tax=Decimal("0"), rate=Decimal("0")),
                TaxBracket(lower=Decimal("0"), base_tax=Decimal("0"), rate=Decimal("0")),
            ))

    def test_minimum_above_maximum_rejected(self):
        with pytest.raises(ValueError):
            ContributionTable(
                agency=ContributionAgency.PAGIBIG,
                basis=ContributionBasis.BASIC,
                brackets=(ContributionBracket(lower=Decimal("0")),),
                minimum_basis=Decimal("5000"),
                maximum_basis=Decimal("1000"),
            )

    def test_effective_range_checked(self, rate_tables):
        with pytest.raises(ValueError):
            RateTableSet(
                version="bad",
                effective_from=date(2026, 1, 1),
                effective_to=date(2025, 1, 1),
                contributions=(),
                withholding=rate_tables.withholding,
            )

    def test_every_agency_required(self, rate_tables):
        without_pagibig = tuple(
            t for t in rate_tables.contributions if t.agency != ContributionAgency.PAGIBIG
        )

        with pytest.raises(ValueError, match="pagibig"):
            RateTableSet(
                version="partial",
                effective_from=date(2026, 1, 1),
                contributions=without_pagibig,
                withholding=rate_tables.withholding,
            )

    def test_effective_on(self, rate_tables):
        assert rate_tables.is_effective_on(date(2025, 1, 1))
        assert not rate_tables.is_effective_on(date(2024, 12, 31))

"""
Bracket lookups for government contributions and withholding tax.

Pure functions over the kernel's rate table value objects.  Every monetary
step is rounded half-up to centavos as it is produced.

Contributions are looked up on the monthly-equivalent basis so that a
semi-monthly period pays half of the monthly share:

    monthly_basis = clamp(period_basis * periods_per_month)
    monthly_share = round(fixed + monthly_basis * rate)
    period_share  = round(monthly_share / periods_per_month)

Withholding tax annualizes the period's taxable income, applies the
progressive table, and de-annualizes:

    annual_tax = base_tax + (annual_income - lower) * rate
    period_tax = round(annual_tax / (12 * periods_per_month))
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from payroll_kernel.domain.money import ZERO, round_money
from payroll_kernel.domain.rates import (
    ContributionAgency,
    ContributionTable,
    WithholdingTaxTable,
)

MONTHS_PER_YEAR = 12


@dataclass(frozen=True)
class ContributionShare:
    """Employee and employer share of one agency's contribution for a period."""

    agency: ContributionAgency
    monthly_basis: Decimal
    employee_share: Decimal
    employer_share: Decimal

    @classmethod
    def zero(cls, agency: ContributionAgency) -> ContributionShare:
        return cls(agency=agency, monthly_basis=ZERO, employee_share=ZERO, employer_share=ZERO)


def contribution_for(
    table: ContributionTable,
    period_basis: Decimal,
    periods_per_month: int,
) -> ContributionShare:
    """Compute one agency's contribution on a period's basis amount.

    A non-positive basis pays nothing; the minimum-basis floor applies only
    to employees who actually earned something in the period.
    """
    if period_basis <= 0:
        return ContributionShare.zero(table.agency)

    monthly_basis = table.clamp(round_money(period_basis * periods_per_month))
    bracket = table.bracket_for(monthly_basis)
    if bracket is None:
        return ContributionShare.zero(table.agency)

    employee_monthly = round_money(bracket.employee_fixed + monthly_basis * bracket.employee_rate)
    employer_monthly = round_money(bracket.employer_fixed + monthly_basis * bracket.employer_rate)

    return ContributionShare(
        agency=table.agency,
        monthly_basis=monthly_basis,
        employee_share=round_money(employee_monthly / periods_per_month),
        employer_share=round_money(employer_monthly / periods_per_month),
    )


def annual_tax(table: WithholdingTaxTable, annual_income: Decimal) -> Decimal:
    """Progressive annual tax on ``annual_income``."""
    bracket = table.bracket_for(annual_income)
    if bracket is None:
        return ZERO
    return round_money(bracket.base_tax + (annual_income - bracket.lower) * bracket.rate)


def withholding_tax_for(
    table: WithholdingTaxTable,
    taxable_income: Decimal,
    periods_per_month: int,
    tax_status: str,
) -> Decimal:
    """Per-period withholding on a period's taxable income."""
    if tax_status in table.exempt_statuses or taxable_income <= 0:
        return ZERO
    periods_per_year = MONTHS_PER_YEAR * periods_per_month
    annual_income = round_money(taxable_income * periods_per_year)
    return round_money(annual_tax(table, annual_income) / periods_per_year)

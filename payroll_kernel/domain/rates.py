"""
Statutory rate tables -- versioned, date-effective bracket tables.

Responsibility:
    Value objects for government contribution tables (SSS, PhilHealth,
    Pag-IBIG) and the progressive withholding tax table, bundled into a
    ``RateTableSet`` that is effective over a date range.  Tables are
    supplied as configuration; nothing here derives tax law.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Loaded by ``payroll_config.loader``
    and served by ``payroll_kernel.services.rate_provider``.

Invariants enforced:
    - Brackets are ordered by ``lower`` with no duplicates.
    - A ``RateTableSet`` carries a ``version`` label that is stored on every
      Calculation computed with it, so a recomputation is reproducible.

Failure modes:
    - ValueError on unordered/duplicate brackets, negative rates, or an
      effective range that ends before it starts.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum


class ContributionAgency(str, Enum):
    SSS = "sss"
    PHILHEALTH = "philhealth"
    PAGIBIG = "pagibig"


class ContributionBasis(str, Enum):
    """Which earnings figure a contribution is computed on."""

    GROSS = "gross"
    BASIC = "basic"


@dataclass(frozen=True)
class ContributionBracket:
    """One bracket: share = fixed + basis * rate, for lower <= basis.

    ``upper`` is informational (the next bracket's lower bound governs the
    lookup); when given it must exceed ``lower``.
    """

    lower: Decimal
    upper: Decimal | None = None
    employee_rate: Decimal = Decimal("0")
    employee_fixed: Decimal = Decimal("0")
    employer_rate: Decimal = Decimal("0")
    employer_fixed: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        if self.lower < 0:
            raise ValueError("bracket lower bound cannot be negative")
        if self.upper is not None and self.upper <= self.lower:
            raise ValueError("bracket upper bound must exceed its lower bound")
        if self.employee_rate < 0 or self.employer_rate < 0:
            raise ValueError("contribution rates cannot be negative")


@dataclass(frozen=True)
class ContributionTable:
    """Contribution schedule for one agency.

    The basis is clamped to ``[minimum_basis, maximum_basis]`` before the
    bracket lookup.
    """

    agency: ContributionAgency
    basis: ContributionBasis
    brackets: tuple[ContributionBracket, ...]
    minimum_basis: Decimal | None = None
    maximum_basis: Decimal | None = None

    def __post_init__(self) -> None:
        _check_ordered([b.lower for b in self.brackets], self.agency.value)
        if (
            self.minimum_basis is not None
            and self.maximum_basis is not None
            and self.minimum_basis > self.maximum_basis
        ):
            raise ValueError(f"{self.agency.value}: minimum_basis exceeds maximum_basis")

    def clamp(self, amount: Decimal) -> Decimal:
        if self.minimum_basis is not None and amount < self.minimum_basis:
            amount = self.minimum_basis
        if self.maximum_basis is not None and amount > self.maximum_basis:
            amount = self.maximum_basis
        return amount

    def bracket_for(self, amount: Decimal) -> ContributionBracket | None:
        """Return the highest bracket whose lower bound is <= amount."""
        match = None
        for bracket in self.brackets:
            if bracket.lower <= amount:
                match = bracket
            else:
                break
        return match


@dataclass(frozen=True)
class TaxBracket:
    """Annual tax = base_tax + (income - lower) * rate, for income >= lower."""

    lower: Decimal
    base_tax: Decimal
    rate: Decimal
    upper: Decimal | None = None

    def __post_init__(self) -> None:
        if self.lower < 0 or self.base_tax < 0 or self.rate < 0:
            raise ValueError("tax bracket values cannot be negative")
        if self.upper is not None and self.upper <= self.lower:
            raise ValueError("tax bracket upper bound must exceed its lower bound")


@dataclass(frozen=True)
class WithholdingTaxTable:
    """Progressive annual withholding tax table."""

    brackets: tuple[TaxBracket, ...]
    exempt_statuses: frozenset[str] = frozenset({"Z"})

    def __post_init__(self) -> None:
        _check_ordered([b.lower for b in self.brackets], "withholding")

    def bracket_for(self, annual_income: Decimal) -> TaxBracket | None:
        match = None
        for bracket in self.brackets:
            if bracket.lower <= annual_income:
                match = bracket
            else:
                break
        return match


@dataclass(frozen=True)
class RateTableSet:
    """
    Immutable bundle of statutory tables effective over a date range.

    Contract:
        ``effective_from <= as_of <= effective_to`` (open-ended when
        ``effective_to`` is None) makes the set applicable on ``as_of``.
        Every ``ContributionAgency`` has exactly one table.

    Non-goals:
        Does not choose between overlapping sets; the provider does.
    """

    version: str
    effective_from: date
    contributions: tuple[ContributionTable, ...]
    withholding: WithholdingTaxTable
    effective_to: date | None = None

    def __post_init__(self) -> None:
        if self.effective_to is not None and self.effective_to < self.effective_from:
            raise ValueError(f"rate table {self.version}: effective_to before effective_from")
        agencies = [t.agency for t in self.contributions]
        if len(agencies) != len(set(agencies)):
            raise ValueError(f"rate table {self.version}: duplicate contribution agency")
        missing = [a.value for a in ContributionAgency if a not in agencies]
        if missing:
            raise ValueError(
                f"rate table {self.version}: missing contribution table for {', '.join(missing)}"
            )

    def is_effective_on(self, as_of: date) -> bool:
        if as_of < self.effective_from:
            return False
        return self.effective_to is None or as_of <= self.effective_to

    def contribution_table(self, agency: ContributionAgency) -> ContributionTable:
        for table in self.contributions:
            if table.agency == agency:
                return table
        raise KeyError(agency.value)


def _check_ordered(lowers: list[Decimal], label: str) -> None:
    for prev, cur in zip(lowers, lowers[1:]):
        if cur <= prev:
            raise ValueError(f"{label}: brackets must be strictly ascending by lower bound")

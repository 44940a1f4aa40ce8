"""
Employee snapshot -- immutable inputs to one employee's calculation.

Responsibility:
    Frozen value objects for everything the calculation engine reads about
    an employee: salary configuration, attendance aggregate, leave summary,
    earning entries, deduction entries, and loan installments.  A snapshot
    is copied at calculation time and stored verbatim on the Calculation
    row, so recalculations (adjustments) never re-read live data.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - All amounts are ``Decimal``; counts are ``Decimal`` so half days work.
    - ``to_dict()`` / ``from_dict()`` round-trip losslessly; ``to_dict()``
      output is the canonical form hashed into the calculation fingerprint.

Failure modes:
    - ValueError from ``__post_init__`` on negative amounts where they make
      no sense, or unknown enum values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from payroll_kernel.domain.money import to_decimal


class SalaryType(str, Enum):
    """How basic pay is derived."""

    MONTHLY = "monthly"
    DAILY = "daily"
    HOURLY = "hourly"


class EarningKind(str, Enum):
    """Category of a recurring earning entry."""

    ALLOWANCE = "allowance"
    BONUS = "bonus"


class DeductionCategory(str, Enum):
    """Category of a non-statutory deduction entry."""

    ADVANCE = "advance"
    OTHER = "other"


class LoanType(str, Enum):
    """Loan programs whose installments are deducted from pay."""

    SSS_LOAN = "sss_loan"
    PAGIBIG_LOAN = "pagibig_loan"
    COMPANY_LOAN = "company_loan"
    PERSONAL_LOAN = "personal_loan"
    EMERGENCY_LOAN = "emergency_loan"


@dataclass(frozen=True)
class GovernmentIds:
    """Statutory registration numbers. ``None`` means not on file."""

    sss_number: str | None = None
    philhealth_number: str | None = None
    pagibig_number: str | None = None
    tin: str | None = None

    def for_agency(self, agency: str) -> str | None:
        return {
            "sss": self.sss_number,
            "philhealth": self.philhealth_number,
            "pagibig": self.pagibig_number,
        }.get(agency)

    def missing(self) -> tuple[str, ...]:
        """Names of the ID fields that are not on file."""
        names = ("sss_number", "philhealth_number", "pagibig_number", "tin")
        return tuple(n for n in names if not getattr(self, n))


@dataclass(frozen=True)
class SalaryConfiguration:
    """Salary terms effective for the period."""

    salary_type: SalaryType
    basic_salary: Decimal = Decimal("0")
    daily_rate: Decimal | None = None
    hourly_rate: Decimal | None = None
    working_days_per_month: Decimal = Decimal("22")
    working_hours_per_day: Decimal = Decimal("8")
    tax_status: str = "S"
    government_ids: GovernmentIds = field(default_factory=GovernmentIds)

    def __post_init__(self) -> None:
        if self.basic_salary < 0:
            raise ValueError("basic_salary cannot be negative")
        if self.working_days_per_month <= 0:
            raise ValueError("working_days_per_month must be positive")
        if self.working_hours_per_day <= 0:
            raise ValueError("working_hours_per_day must be positive")


@dataclass(frozen=True)
class OvertimeHours:
    """Overtime hours by premium category."""

    regular: Decimal = Decimal("0")
    rest_day: Decimal = Decimal("0")
    holiday: Decimal = Decimal("0")
    night_differential: Decimal = Decimal("0")

    def items(self) -> tuple[tuple[str, Decimal], ...]:
        return (
            ("regular", self.regular),
            ("rest_day", self.rest_day),
            ("holiday", self.holiday),
            ("night_differential", self.night_differential),
        )


@dataclass(frozen=True)
class AttendanceAggregate:
    """Read-only attendance totals for the period (from timekeeping)."""

    expected_days: Decimal
    present_days: Decimal
    absent_days: Decimal = Decimal("0")
    excused_absences: Decimal = Decimal("0")
    unexcused_absences: Decimal = Decimal("0")
    late_minutes: Decimal = Decimal("0")
    undertime_minutes: Decimal = Decimal("0")
    overtime: OvertimeHours = field(default_factory=OvertimeHours)


@dataclass(frozen=True)
class LeaveSummary:
    """Approved leave within the period."""

    paid_leave_days: Decimal = Decimal("0")
    unpaid_leave_days: Decimal = Decimal("0")


@dataclass(frozen=True)
class EarningEntry:
    """An active allowance or bonus.

    ``deminimis_monthly_cap`` / ``deminimis_annual_cap`` bound the
    non-taxable portion of a non-taxable entry; the excess is taxable.
    ``year_to_date_amount`` is the non-taxable amount already paid this
    year, used against the annual cap.
    """

    code: str
    name: str
    amount: Decimal
    kind: EarningKind = EarningKind.ALLOWANCE
    taxable: bool = True
    deminimis_monthly_cap: Decimal | None = None
    deminimis_annual_cap: Decimal | None = None
    year_to_date_amount: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError(f"Earning {self.code} amount cannot be negative")


@dataclass(frozen=True)
class DeductionEntry:
    """An active non-statutory deduction (cash advance, uniform, ...)."""

    code: str
    name: str
    amount: Decimal
    category: DeductionCategory = DeductionCategory.OTHER
    max_amount: Decimal | None = None

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError(f"Deduction {self.code} amount cannot be negative")


@dataclass(frozen=True)
class LoanInstallment:
    """Next due installment of an active loan."""

    loan_id: str
    loan_type: LoanType
    installment_amount: Decimal
    outstanding_balance: Decimal


@dataclass(frozen=True)
class EmployeeSnapshot:
    """All inputs for one employee in one period, frozen at calculation time.

    ``salary`` and ``attendance`` are optional so that a provider can report
    what it actually has; the engine and detector decide what a missing
    section means.
    """

    employee_id: str
    salary: SalaryConfiguration | None
    attendance: AttendanceAggregate | None = None
    leave: LeaveSummary | None = None
    earnings: tuple[EarningEntry, ...] = ()
    deductions: tuple[DeductionEntry, ...] = ()
    loans: tuple[LoanInstallment, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "employee_id": self.employee_id,
            "salary": _salary_to_dict(self.salary) if self.salary else None,
            "attendance": _attendance_to_dict(self.attendance) if self.attendance else None,
            "leave": {
                "paid_leave_days": str(self.leave.paid_leave_days),
                "unpaid_leave_days": str(self.leave.unpaid_leave_days),
            } if self.leave else None,
            "earnings": [
                {
                    "code": e.code,
                    "name": e.name,
                    "amount": str(e.amount),
                    "kind": e.kind.value,
                    "taxable": e.taxable,
                    "deminimis_monthly_cap": _opt_str(e.deminimis_monthly_cap),
                    "deminimis_annual_cap": _opt_str(e.deminimis_annual_cap),
                    "year_to_date_amount": str(e.year_to_date_amount),
                }
                for e in self.earnings
            ],
            "deductions": [
                {
                    "code": d.code,
                    "name": d.name,
                    "amount": str(d.amount),
                    "category": d.category.value,
                    "max_amount": _opt_str(d.max_amount),
                }
                for d in self.deductions
            ],
            "loans": [
                {
                    "loan_id": ln.loan_id,
                    "loan_type": ln.loan_type.value,
                    "installment_amount": str(ln.installment_amount),
                    "outstanding_balance": str(ln.outstanding_balance),
                }
                for ln in self.loans
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EmployeeSnapshot:
        salary = data.get("salary")
        attendance = data.get("attendance")
        leave = data.get("leave")
        return cls(
            employee_id=data["employee_id"],
            salary=_salary_from_dict(salary) if salary else None,
            attendance=_attendance_from_dict(attendance) if attendance else None,
            leave=LeaveSummary(
                paid_leave_days=to_decimal(leave["paid_leave_days"]),
                unpaid_leave_days=to_decimal(leave["unpaid_leave_days"]),
            ) if leave else None,
            earnings=tuple(
                EarningEntry(
                    code=e["code"],
                    name=e["name"],
                    amount=to_decimal(e["amount"]),
                    kind=EarningKind(e["kind"]),
                    taxable=e["taxable"],
                    deminimis_monthly_cap=_opt_dec(e.get("deminimis_monthly_cap")),
                    deminimis_annual_cap=_opt_dec(e.get("deminimis_annual_cap")),
                    year_to_date_amount=to_decimal(e.get("year_to_date_amount", "0")),
                )
                for e in data.get("earnings", [])
            ),
            deductions=tuple(
                DeductionEntry(
                    code=d["code"],
                    name=d["name"],
                    amount=to_decimal(d["amount"]),
                    category=DeductionCategory(d["category"]),
                    max_amount=_opt_dec(d.get("max_amount")),
                )
                for d in data.get("deductions", [])
            ),
            loans=tuple(
                LoanInstallment(
                    loan_id=ln["loan_id"],
                    loan_type=LoanType(ln["loan_type"]),
                    installment_amount=to_decimal(ln["installment_amount"]),
                    outstanding_balance=to_decimal(ln["outstanding_balance"]),
                )
                for ln in data.get("loans", [])
            ),
        )


def _opt_str(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


def _opt_dec(value: Any) -> Decimal | None:
    return to_decimal(value) if value is not None else None


def _salary_to_dict(salary: SalaryConfiguration) -> dict[str, Any]:
    ids = salary.government_ids
    return {
        "salary_type": salary.salary_type.value,
        "basic_salary": str(salary.basic_salary),
        "daily_rate": _opt_str(salary.daily_rate),
        "hourly_rate": _opt_str(salary.hourly_rate),
        "working_days_per_month": str(salary.working_days_per_month),
        "working_hours_per_day": str(salary.working_hours_per_day),
        "tax_status": salary.tax_status,
        "government_ids": {
            "sss_number": ids.sss_number,
            "philhealth_number": ids.philhealth_number,
            "pagibig_number": ids.pagibig_number,
            "tin": ids.tin,
        },
    }


def _salary_from_dict(data: dict[str, Any]) -> SalaryConfiguration:
    ids = data.get("government_ids") or {}
    return SalaryConfiguration(
        salary_type=SalaryType(data["salary_type"]),
        basic_salary=to_decimal(data["basic_salary"]),
        daily_rate=_opt_dec(data.get("daily_rate")),
        hourly_rate=_opt_dec(data.get("hourly_rate")),
        working_days_per_month=to_decimal(data["working_days_per_month"]),
        working_hours_per_day=to_decimal(data["working_hours_per_day"]),
        tax_status=data["tax_status"],
        government_ids=GovernmentIds(**ids),
    )


def _attendance_to_dict(att: AttendanceAggregate) -> dict[str, Any]:
    return {
        "expected_days": str(att.expected_days),
        "present_days": str(att.present_days),
        "absent_days": str(att.absent_days),
        "excused_absences": str(att.excused_absences),
        "unexcused_absences": str(att.unexcused_absences),
        "late_minutes": str(att.late_minutes),
        "undertime_minutes": str(att.undertime_minutes),
        "overtime": {name: str(hours) for name, hours in att.overtime.items()},
    }


def _attendance_from_dict(data: dict[str, Any]) -> AttendanceAggregate:
    ot = data.get("overtime") or {}
    return AttendanceAggregate(
        expected_days=to_decimal(data["expected_days"]),
        present_days=to_decimal(data["present_days"]),
        absent_days=to_decimal(data.get("absent_days", "0")),
        excused_absences=to_decimal(data.get("excused_absences", "0")),
        unexcused_absences=to_decimal(data.get("unexcused_absences", "0")),
        late_minutes=to_decimal(data.get("late_minutes", "0")),
        undertime_minutes=to_decimal(data.get("undertime_minutes", "0")),
        overtime=OvertimeHours(**{k: to_decimal(v) for k, v in ot.items()}),
    )

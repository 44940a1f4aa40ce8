"""
Exception Detector - flag anomalous calculation results.

Pure functions with no I/O.  Each rule looks at one calculation (its
snapshot and result, or the error that prevented a result) plus the
employee's history, and returns zero or one finding.  Rules are
independent and order-independent; any number may fire on one
calculation.

Rules and severities:

    negative_net_pay       critical   final net pay < 0
    calculation_error      critical   the engine raised for this employee
    low_net_pay            high       0 <= final net pay < low threshold
    high_net_pay           high       final net pay > high threshold
    excessive_deduction    high       total deductions / gross > ratio
    missing_timekeeping    high       no attendance aggregate
    missing_government_id  medium     any statutory ID not on file
    high_variance          medium     |net - previous net| / |previous net| > threshold
    missing_leave_data     medium     absences recorded but no leave summary
    data_inconsistency     medium     present + absent > expected, or negative counts

Thresholds come from ``DetectionThresholds``.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal

from payroll_config.schema import DetectionThresholds
from payroll_engines.tracer import traced_engine
from payroll_kernel.domain.money import round_money
from payroll_kernel.domain.results import CalculationResult
from payroll_kernel.domain.snapshot import EmployeeSnapshot
from payroll_kernel.domain.statuses import ExceptionSeverity, ExceptionType
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.detection")

SEVERITY_BY_TYPE: dict[ExceptionType, ExceptionSeverity] = {
    ExceptionType.NEGATIVE_NET_PAY: ExceptionSeverity.CRITICAL,
    ExceptionType.CALCULATION_ERROR: ExceptionSeverity.CRITICAL,
    ExceptionType.LOW_NET_PAY: ExceptionSeverity.HIGH,
    ExceptionType.HIGH_NET_PAY: ExceptionSeverity.HIGH,
    ExceptionType.EXCESSIVE_DEDUCTION: ExceptionSeverity.HIGH,
    ExceptionType.MISSING_TIMEKEEPING: ExceptionSeverity.HIGH,
    ExceptionType.MISSING_GOVERNMENT_ID: ExceptionSeverity.MEDIUM,
    ExceptionType.HIGH_VARIANCE: ExceptionSeverity.MEDIUM,
    ExceptionType.MISSING_LEAVE_DATA: ExceptionSeverity.MEDIUM,
    ExceptionType.DATA_INCONSISTENCY: ExceptionSeverity.MEDIUM,
}


@dataclass(frozen=True)
class DetectionSubject:
    """What the detector looks at for one calculation version.

    Exactly one of ``result`` / ``error_message`` is normally set.
    """

    employee_id: str
    snapshot: EmployeeSnapshot | None
    result: CalculationResult | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class EmployeeHistory:
    """The employee's current calculation in the most recent earlier period."""

    previous_period_number: str | None = None
    previous_final_net_pay: Decimal | None = None


@dataclass(frozen=True)
class DetectedException:
    exception_type: ExceptionType
    severity: ExceptionSeverity
    title: str
    description: str
    detection_rule: str
    current_value: Decimal | None = None
    expected_value: Decimal | None = None
    variance: Decimal | None = None
    variance_percentage: Decimal | None = None


Rule = Callable[[DetectionSubject, EmployeeHistory, DetectionThresholds], "DetectedException | None"]


def _finding(exception_type: ExceptionType, title: str, description: str, **values) -> DetectedException:
    return DetectedException(
        exception_type=exception_type,
        severity=SEVERITY_BY_TYPE[exception_type],
        title=title,
        description=description,
        detection_rule=f"{exception_type.value}_rule",
        **values,
    )


# ---------------------------------------------------------------------------
# Result rules
# ---------------------------------------------------------------------------


def negative_net_pay_rule(subject, history, thresholds):
    result = subject.result
    if result is None or result.final_net_pay >= 0:
        return None
    return _finding(
        ExceptionType.NEGATIVE_NET_PAY,
        "Negative net pay",
        f"Final net pay is {result.final_net_pay}; deductions exceed earnings.",
        current_value=result.final_net_pay,
        expected_value=Decimal("0.00"),
        variance=result.final_net_pay,
    )


def low_net_pay_rule(subject, history, thresholds):
    result = subject.result
    if result is None:
        return None
    net = result.final_net_pay
    if net < 0 or net >= thresholds.low_net_pay:
        return None
    return _finding(
        ExceptionType.LOW_NET_PAY,
        "Low net pay",
        f"Final net pay {net} is below the {thresholds.low_net_pay} threshold.",
        current_value=net,
        expected_value=thresholds.low_net_pay,
        variance=round_money(net - thresholds.low_net_pay),
    )


def high_net_pay_rule(subject, history, thresholds):
    result = subject.result
    if result is None or result.final_net_pay <= thresholds.high_net_pay:
        return None
    net = result.final_net_pay
    return _finding(
        ExceptionType.HIGH_NET_PAY,
        "High net pay",
        f"Final net pay {net} exceeds the {thresholds.high_net_pay} threshold.",
        current_value=net,
        expected_value=thresholds.high_net_pay,
        variance=round_money(net - thresholds.high_net_pay),
    )


def excessive_deduction_rule(subject, history, thresholds):
    result = subject.result
    if result is None or result.gross_pay <= 0:
        return None
    ratio = result.total_deductions / result.gross_pay
    if ratio <= thresholds.deduction_ratio:
        return None
    return _finding(
        ExceptionType.EXCESSIVE_DEDUCTION,
        "Excessive deductions",
        f"Deductions are {ratio:.2%} of gross pay "
        f"(limit {thresholds.deduction_ratio:.0%}).",
        current_value=result.total_deductions,
        expected_value=round_money(result.gross_pay * thresholds.deduction_ratio),
        variance=round_money(
            result.total_deductions - result.gross_pay * thresholds.deduction_ratio
        ),
        variance_percentage=ratio.quantize(Decimal("0.0001")),
    )


def high_variance_rule(subject, history, thresholds):
    result = subject.result
    previous = history.previous_final_net_pay
    if result is None or previous is None or previous == 0:
        return None
    change = result.final_net_pay - previous
    pct = abs(change) / abs(previous)
    if pct <= thresholds.variance_threshold:
        return None
    return _finding(
        ExceptionType.HIGH_VARIANCE,
        "High variance from previous period",
        f"Net pay changed by {pct:.2%} from {previous} "
        f"in period {history.previous_period_number}.",
        current_value=result.final_net_pay,
        expected_value=previous,
        variance=round_money(change),
        variance_percentage=pct.quantize(Decimal("0.0001")),
    )


def calculation_error_rule(subject, history, thresholds):
    if subject.error_message is None:
        return None
    return _finding(
        ExceptionType.CALCULATION_ERROR,
        "Calculation error",
        subject.error_message,
    )


# ---------------------------------------------------------------------------
# Snapshot rules
# ---------------------------------------------------------------------------


def missing_timekeeping_rule(subject, history, thresholds):
    if subject.snapshot is None or subject.snapshot.attendance is not None:
        return None
    return _finding(
        ExceptionType.MISSING_TIMEKEEPING,
        "Missing timekeeping",
        "No attendance aggregate was available for the period.",
    )


def missing_government_id_rule(subject, history, thresholds):
    snapshot = subject.snapshot
    if snapshot is None or snapshot.salary is None:
        return None
    missing = snapshot.salary.government_ids.missing()
    if not missing:
        return None
    return _finding(
        ExceptionType.MISSING_GOVERNMENT_ID,
        "Missing government ID",
        f"Not on file: {', '.join(missing)}.",
    )


def missing_leave_data_rule(subject, history, thresholds):
    snapshot = subject.snapshot
    if snapshot is None or snapshot.attendance is None or snapshot.leave is not None:
        return None
    if snapshot.attendance.absent_days <= 0:
        return None
    return _finding(
        ExceptionType.MISSING_LEAVE_DATA,
        "Missing leave data",
        f"{snapshot.attendance.absent_days} absent day(s) recorded but no leave summary.",
        current_value=snapshot.attendance.absent_days,
    )


def data_inconsistency_rule(subject, history, thresholds):
    snapshot = subject.snapshot
    if snapshot is None or snapshot.attendance is None:
        return None
    att = snapshot.attendance
    counts = (
        att.expected_days, att.present_days, att.absent_days,
        att.excused_absences, att.unexcused_absences,
        att.late_minutes, att.undertime_minutes,
    )
    if any(c < 0 for c in counts):
        return _finding(
            ExceptionType.DATA_INCONSISTENCY,
            "Inconsistent attendance data",
            "Attendance contains negative counts.",
        )
    accounted = att.present_days + att.absent_days
    if accounted > att.expected_days:
        return _finding(
            ExceptionType.DATA_INCONSISTENCY,
            "Inconsistent attendance data",
            f"Present ({att.present_days}) plus absent ({att.absent_days}) days "
            f"exceed expected days ({att.expected_days}).",
            current_value=accounted,
            expected_value=att.expected_days,
            variance=accounted - att.expected_days,
        )
    return None


RULES: tuple[Rule, ...] = (
    negative_net_pay_rule,
    calculation_error_rule,
    low_net_pay_rule,
    high_net_pay_rule,
    excessive_deduction_rule,
    missing_timekeeping_rule,
    missing_government_id_rule,
    high_variance_rule,
    missing_leave_data_rule,
    data_inconsistency_rule,
)


class ExceptionDetector:
    """
    Run the fixed rule set against one calculation.

    Pure - creates no rows and never mutates the calculation; the exception
    service persists what this returns.
    """

    def __init__(self, thresholds: DetectionThresholds | None = None):
        self.thresholds = thresholds or DetectionThresholds()

    @traced_engine("exception_detection", "1.0", fingerprint_fields=("subject",))
    def detect(
        self,
        *,
        subject: DetectionSubject,
        history: EmployeeHistory | None = None,
    ) -> list[DetectedException]:
        history = history or EmployeeHistory()
        findings = [
            finding
            for rule in RULES
            if (finding := rule(subject, history, self.thresholds)) is not None
        ]
        if findings:
            logger.info(
                "exceptions_detected",
                extra={
                    "employee_id": subject.employee_id,
                    "types": [f.exception_type.value for f in findings],
                },
            )
        return findings

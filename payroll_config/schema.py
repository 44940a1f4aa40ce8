"""
Payroll engine configuration schema (``payroll_config.schema``).

Defines the structure and defaults for engine settings: overtime
multipliers, exception detection thresholds, the approval gate, and run
limits.  Values are loaded from YAML by ``payroll_config.loader`` or built
in code:

    config = PayrollEngineConfig(
        max_workers=8,
        thresholds=DetectionThresholds(low_net_pay=Decimal("1500")),
    )

All dataclasses are frozen and validated in ``__post_init__``; an invalid
value raises ``ValueError`` at construction time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Self

from payroll_kernel.domain.period_lifecycle import PayFrequency
from payroll_kernel.domain.statuses import ExceptionSeverity, ExceptionStatus
from payroll_kernel.logging_config import get_logger

logger = get_logger("config.schema")


def _dec(value: Any) -> Decimal:
    """YAML yields floats for bare numbers; go through str() to keep them exact."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class OvertimeMultipliers:
    """Premium multipliers applied to the hourly rate, per overtime category."""

    regular: Decimal = Decimal("1.25")
    rest_day: Decimal = Decimal("1.30")
    holiday: Decimal = Decimal("2.00")
    night_differential: Decimal = Decimal("0.10")

    def __post_init__(self):
        for name in ("regular", "rest_day", "holiday", "night_differential"):
            if getattr(self, name) < 0:
                raise ValueError(f"overtime multiplier '{name}' cannot be negative")

    def for_category(self, category: str) -> Decimal:
        return getattr(self, category)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(**{k: _dec(v) for k, v in data.items()})


@dataclass(frozen=True)
class DetectionThresholds:
    """Exception detection thresholds.

    ``variance_threshold`` and ``deduction_ratio`` are fractions (0.20 is
    20%); ``low_net_pay`` and ``high_net_pay`` are per-period amounts.
    """

    variance_threshold: Decimal = Decimal("0.20")
    low_net_pay: Decimal = Decimal("1000")
    high_net_pay: Decimal = Decimal("500000")
    deduction_ratio: Decimal = Decimal("0.50")

    def __post_init__(self):
        if self.variance_threshold <= 0:
            raise ValueError("variance_threshold must be positive")
        if not (0 < self.deduction_ratio <= 1):
            raise ValueError("deduction_ratio must be in (0, 1]")
        if self.low_net_pay < 0:
            raise ValueError("low_net_pay cannot be negative")
        if self.high_net_pay <= self.low_net_pay:
            raise ValueError("high_net_pay must exceed low_net_pay")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(**{k: _dec(v) for k, v in data.items()})


@dataclass(frozen=True)
class ApprovalGateConfig:
    """Which open exceptions block submission for approval."""

    blocking_severities: frozenset[ExceptionSeverity] = frozenset({
        ExceptionSeverity.CRITICAL,
        ExceptionSeverity.HIGH,
    })
    acknowledged_blocks: bool = False

    def __post_init__(self):
        for severity in self.blocking_severities:
            if not isinstance(severity, ExceptionSeverity):
                raise ValueError(f"unknown blocking severity {severity!r}")

    def blocking_statuses(self) -> frozenset[ExceptionStatus]:
        if self.acknowledged_blocks:
            return frozenset({ExceptionStatus.OPEN, ExceptionStatus.ACKNOWLEDGED})
        return frozenset({ExceptionStatus.OPEN})

    def blocks(self, severity: ExceptionSeverity, status: ExceptionStatus) -> bool:
        return severity in self.blocking_severities and status in self.blocking_statuses()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        kwargs: dict[str, Any] = {}
        if "blocking_severities" in data:
            kwargs["blocking_severities"] = frozenset(
                ExceptionSeverity(s) for s in data["blocking_severities"]
            )
        if "acknowledged_blocks" in data:
            kwargs["acknowledged_blocks"] = bool(data["acknowledged_blocks"])
        return cls(**kwargs)


@dataclass(frozen=True)
class PayrollEngineConfig:
    """
    Top-level engine configuration.

    Field defaults are the values the engine runs with when no
    configuration file is supplied.
    """

    overtime: OvertimeMultipliers = field(default_factory=OvertimeMultipliers)
    thresholds: DetectionThresholds = field(default_factory=DetectionThresholds)
    gate: ApprovalGateConfig = field(default_factory=ApprovalGateConfig)

    # Failed runs allowed before CalculationRetriesExhaustedError
    max_calculation_retries: int = 3
    # Bound on the compute thread pool
    max_workers: int = 4

    default_pay_frequency: PayFrequency = PayFrequency.SEMI_MONTHLY
    # Default adjustment deadline, counted back from the payment date
    adjustment_deadline_days_before_payment: int = 2

    def __post_init__(self):
        if self.max_calculation_retries < 0:
            raise ValueError("max_calculation_retries cannot be negative")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.adjustment_deadline_days_before_payment < 0:
            raise ValueError("adjustment_deadline_days_before_payment cannot be negative")

        logger.info(
            "payroll_engine_config_initialized",
            extra={
                "max_calculation_retries": self.max_calculation_retries,
                "max_workers": self.max_workers,
                "default_pay_frequency": self.default_pay_frequency.value,
                "blocking_severities": sorted(s.value for s in self.gate.blocking_severities),
                "acknowledged_blocks": self.gate.acknowledged_blocks,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the standard defaults."""
        logger.info("payroll_engine_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create config from a dictionary (e.g. a parsed YAML file)."""
        logger.info(
            "payroll_engine_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        kwargs = dict(data)
        if "overtime" in kwargs:
            kwargs["overtime"] = OvertimeMultipliers.from_dict(kwargs["overtime"])
        if "thresholds" in kwargs:
            kwargs["thresholds"] = DetectionThresholds.from_dict(kwargs["thresholds"])
        if "gate" in kwargs:
            kwargs["gate"] = ApprovalGateConfig.from_dict(kwargs["gate"])
        if "default_pay_frequency" in kwargs:
            kwargs["default_pay_frequency"] = PayFrequency(kwargs["default_pay_frequency"])
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "overtime": {
                "regular": str(self.overtime.regular),
                "rest_day": str(self.overtime.rest_day),
                "holiday": str(self.overtime.holiday),
                "night_differential": str(self.overtime.night_differential),
            },
            "thresholds": {
                "variance_threshold": str(self.thresholds.variance_threshold),
                "low_net_pay": str(self.thresholds.low_net_pay),
                "high_net_pay": str(self.thresholds.high_net_pay),
                "deduction_ratio": str(self.thresholds.deduction_ratio),
            },
            "gate": {
                "blocking_severities": sorted(s.value for s in self.gate.blocking_severities),
                "acknowledged_blocks": self.gate.acknowledged_blocks,
            },
            "max_calculation_retries": self.max_calculation_retries,
            "max_workers": self.max_workers,
            "default_pay_frequency": self.default_pay_frequency.value,
            "adjustment_deadline_days_before_payment": (
                self.adjustment_deadline_days_before_payment
            ),
        }

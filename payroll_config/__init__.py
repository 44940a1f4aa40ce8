"""
Payroll configuration: engine settings schema and the YAML loader for
engine settings and statutory rate tables.
"""

from payroll_config.loader import (
    DEFAULT_RATE_TABLES_PATH,
    compute_checksum,
    load_engine_config,
    load_rate_tables,
)
from payroll_config.schema import (
    ApprovalGateConfig,
    DetectionThresholds,
    OvertimeMultipliers,
    PayrollEngineConfig,
)

__all__ = [
    "DEFAULT_RATE_TABLES_PATH",
    "ApprovalGateConfig",
    "DetectionThresholds",
    "OvertimeMultipliers",
    "PayrollEngineConfig",
    "compute_checksum",
    "load_engine_config",
    "load_rate_tables",
]

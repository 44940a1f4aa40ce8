"""
Tests for the payroll configuration layer.

Covers:
- Bundled rate tables load with exact decimals
- Rate table files with several versions and effective dates
- A rate table set must carry a contribution table for every agency
- Engine settings from YAML, with defaults for absent keys
- Validation of thresholds, gate severities and engine limits
- Deterministic checksums
"""

from datetime import date
from decimal import Decimal

import pytest
import yaml

from payroll_config.loader import (
    compute_checksum,
    load_engine_config,
    load_rate_tables,
    parse_decimal,
)
from payroll_config.schema import (
    ApprovalGateConfig,
    DetectionThresholds,
    OvertimeMultipliers,
    PayrollEngineConfig,
)
from payroll_kernel.domain.period_lifecycle import PayFrequency
from payroll_kernel.domain.rates import ContributionAgency
from payroll_kernel.domain.statuses import ExceptionSeverity, ExceptionStatus
from payroll_kernel.exceptions import RateTableNotFoundError
from payroll_kernel.services.rate_provider import InMemoryRateTableProvider


def write_yaml(path, data) -> None:
    path.write_text(yaml.safe_dump(data))


def minimal_table(version: str, effective_from: str, effective_to: str | None = None) -> dict:
    return {
        "version": version,
        "effective_from": effective_from,
        "effective_to": effective_to,
        "contributions": [
            {"agency": agency.value, "brackets": [{"lower": "0"}]} for agency in ContributionAgency
        ],
        "withholding": {"brackets": [{"lower": "0", "rate": "0"}]},
    }


class TestBundledRateTables:

    def test_loads_current_version(self):
        tables = load_rate_tables()

        assert [t.version for t in tables] == ["PH-2025.1"]
        assert tables[0].effective_from == date(2025, 1, 1)

    def test_amounts_are_exact(self):
        sss = load_rate_tables()[0].contribution_table(ContributionAgency.SSS)

        assert sss.brackets[0].employee_rate == Decimal("0.05")
        assert sss.maximum_basis == Decimal("35000")

    def test_every_agency_present(self):
        tables = load_rate_tables()[0]

        for agency in ContributionAgency:
            assert tables.contribution_table(agency).agency == agency


class TestRateTableFiles:
    """Versioned tables chosen by effective date."""

    def test_provider_picks_effective_version(self, tmp_path):
        path = tmp_path / "rates.yaml"
        write_yaml(path, {"rate_tables": [
            minimal_table("OLD", "2024-01-01", "2025-12-31"),
            minimal_table("NEW", "2026-01-01"),
        ]})
        provider = InMemoryRateTableProvider.from_yaml(path)

        assert provider.tables_for(date(2025, 6, 1)).version == "OLD"
        assert provider.tables_for(date(2026, 1, 20)).version == "NEW"
        assert provider.versions == ("OLD", "NEW")

    def test_no_effective_version(self, tmp_path):
        path = tmp_path / "rates.yaml"
        write_yaml(path, {"rate_tables": [minimal_table("NEW", "2026-01-01")]})
        provider = InMemoryRateTableProvider.from_yaml(path)

        with pytest.raises(RateTableNotFoundError) as exc_info:
            provider.tables_for(date(2025, 12, 31))

        assert exc_info.value.as_of == "2025-12-31"

    def test_missing_version_key(self, tmp_path):
        path = tmp_path / "rates.yaml"
        table = minimal_table("X", "2026-01-01")
        del table["version"]
        write_yaml(path, {"rate_tables": [table]})

        with pytest.raises(KeyError):
            load_rate_tables(path)

    def test_missing_agency_table(self, tmp_path):
        path = tmp_path / "rates.yaml"
        table = minimal_table("X", "2026-01-01")
        table["contributions"] = [
            c for c in table["contributions"] if c["agency"] != ContributionAgency.PHILHEALTH.value
        ]
        write_yaml(path, {"rate_tables": [table]})

        with pytest.raises(ValueError, match="missing contribution table for philhealth"):
            load_rate_tables(path)

    def test_provider_finds_version(self, tmp_path):
        path = tmp_path / "rates.yaml"
        write_yaml(path, {"rate_tables": [
            minimal_table("OLD", "2024-01-01", "2025-12-31"),
            minimal_table("NEW", "2026-01-01"),
        ]})
        provider = InMemoryRateTableProvider.from_yaml(path)

        assert provider.tables_by_version("OLD").effective_from == date(2024, 1, 1)
        with pytest.raises(RateTableNotFoundError) as exc_info:
            provider.tables_by_version("GONE")
        assert exc_info.value.version == "GONE"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_rate_tables(tmp_path / "absent.yaml")


class TestEngineConfig:
    """PayrollEngineConfig from YAML and dicts."""

    def test_defaults(self):
        config = PayrollEngineConfig.with_defaults()

        assert config.max_calculation_retries == 3
        assert config.default_pay_frequency == PayFrequency.SEMI_MONTHLY
        assert config.overtime.regular == Decimal("1.25")
        assert config.gate.blocking_statuses() == frozenset({ExceptionStatus.OPEN})

    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / "engine.yaml"
        write_yaml(path, {"engine": {
            "max_workers": 2,
            "default_pay_frequency": "monthly",
            "overtime": {"regular": 1.5},
            "thresholds": {"low_net_pay": "2500"},
            "gate": {"blocking_severities": ["critical"], "acknowledged_blocks": True},
        }})

        config = load_engine_config(path)

        assert config.max_workers == 2
        assert config.default_pay_frequency == PayFrequency.MONTHLY
        assert config.overtime.regular == Decimal("1.5")
        assert config.overtime.rest_day == Decimal("1.30")
        assert config.thresholds.low_net_pay == Decimal("2500")
        assert config.gate.blocking_severities == frozenset({ExceptionSeverity.CRITICAL})
        assert config.gate.acknowledged_blocks is True

    def test_round_trip_through_dict(self):
        config = PayrollEngineConfig(max_calculation_retries=5)

        assert PayrollEngineConfig.from_dict(config.to_dict()) == config

    def test_unknown_key_rejected(self):
        with pytest.raises(TypeError):
            PayrollEngineConfig.from_dict({"max_retries": 3})


class TestValidation:

    def test_negative_overtime_multiplier(self):
        with pytest.raises(ValueError, match="night_differential"):
            OvertimeMultipliers(night_differential=Decimal("-0.1"))

    def test_deduction_ratio_bounds(self):
        with pytest.raises(ValueError):
            DetectionThresholds(deduction_ratio=Decimal("1.5"))

    def test_high_must_exceed_low(self):
        with pytest.raises(ValueError):
            DetectionThresholds(low_net_pay=Decimal("10000"), high_net_pay=Decimal("5000"))

    def test_unknown_gate_severity(self):
        with pytest.raises(ValueError):
            ApprovalGateConfig.from_dict({"blocking_severities": ["urgent"]})

    def test_gate_blocks(self):
        gate = ApprovalGateConfig(acknowledged_blocks=True)

        assert gate.blocks(ExceptionSeverity.HIGH, ExceptionStatus.ACKNOWLEDGED)
        assert not gate.blocks(ExceptionSeverity.MEDIUM, ExceptionStatus.OPEN)
        assert not gate.blocks(ExceptionSeverity.CRITICAL, ExceptionStatus.RESOLVED)

    def test_max_workers_positive(self):
        with pytest.raises(ValueError):
            PayrollEngineConfig(max_workers=0)

    def test_parse_decimal_rejects_bool(self):
        with pytest.raises(ValueError):
            parse_decimal(True)

    def test_parse_decimal_keeps_float_text(self):
        assert parse_decimal(0.1) == Decimal("0.1")


class TestChecksum:

    def test_key_order_irrelevant(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_content_changes_checksum(self):
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})

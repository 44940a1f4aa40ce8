"""
Configuration Loader (``payroll_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into typed values: ``RateTableSet``
instances for the statutory tables and ``PayrollEngineConfig`` for engine
settings.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Depends on kernel domain value
objects only; no services, no database.

Invariants enforced
-------------------
* Amounts are parsed as exact ``Decimal`` (floats go through ``str()``).
* Missing required keys raise ``KeyError``; no silent defaults for
  versions, dates, or bracket bounds.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid dates, unordered brackets  -> ``ValueError``.

Audit relevance
---------------
The rate table ``version`` parsed here is stamped on every calculation,
and ``compute_checksum`` lets an auditor tie a version label to the exact
file contents it was loaded from.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from payroll_config.schema import PayrollEngineConfig
from payroll_kernel.domain.rates import (
    ContributionAgency,
    ContributionBasis,
    ContributionBracket,
    ContributionTable,
    RateTableSet,
    TaxBracket,
    WithholdingTaxTable,
)
from payroll_kernel.logging_config import get_logger

logger = get_logger("config.loader")

DEFAULT_RATE_TABLES_PATH = Path(__file__).parent / "data" / "ph_rates.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_decimal(value: Any) -> Decimal:
    """Parse an exact Decimal from a YAML scalar."""
    if isinstance(value, bool):
        raise ValueError(f"Cannot parse decimal from {value!r}")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _opt_decimal(value: Any) -> Decimal | None:
    return parse_decimal(value) if value is not None else None


def parse_contribution_table(data: dict[str, Any]) -> ContributionTable:
    brackets = tuple(
        ContributionBracket(
            lower=parse_decimal(b["lower"]),
            upper=_opt_decimal(b.get("upper")),
            employee_rate=parse_decimal(b.get("employee_rate", "0")),
            employee_fixed=parse_decimal(b.get("employee_fixed", "0")),
            employer_rate=parse_decimal(b.get("employer_rate", "0")),
            employer_fixed=parse_decimal(b.get("employer_fixed", "0")),
        )
        for b in data["brackets"]
    )
    return ContributionTable(
        agency=ContributionAgency(data["agency"]),
        basis=ContributionBasis(data.get("basis", "gross")),
        brackets=brackets,
        minimum_basis=_opt_decimal(data.get("minimum_basis")),
        maximum_basis=_opt_decimal(data.get("maximum_basis")),
    )


def parse_withholding_table(data: dict[str, Any]) -> WithholdingTaxTable:
    brackets = tuple(
        TaxBracket(
            lower=parse_decimal(b["lower"]),
            upper=_opt_decimal(b.get("upper")),
            base_tax=parse_decimal(b.get("base_tax", "0")),
            rate=parse_decimal(b["rate"]),
        )
        for b in data["brackets"]
    )
    return WithholdingTaxTable(
        brackets=brackets,
        exempt_statuses=frozenset(data.get("exempt_statuses", ["Z"])),
    )


def parse_rate_table_set(data: dict[str, Any]) -> RateTableSet:
    """
    Parse one ``RateTableSet`` from a dict.

    Raises:
        KeyError: if ``version``, ``effective_from`` or ``withholding`` is
            missing.
        ValueError: if brackets are unordered, dates invalid, or an agency
            has no contribution table.
    """
    return RateTableSet(
        version=str(data["version"]),
        effective_from=parse_date(data["effective_from"]),
        effective_to=parse_date(data["effective_to"]) if data.get("effective_to") else None,
        contributions=tuple(
            parse_contribution_table(c) for c in data.get("contributions", [])
        ),
        withholding=parse_withholding_table(data["withholding"]),
    )


def load_rate_tables(path: Path | None = None) -> tuple[RateTableSet, ...]:
    """
    Load every rate table set from a YAML file.

    ``path`` defaults to the bundled ``data/ph_rates.yaml``.
    """
    source = Path(path) if path is not None else DEFAULT_RATE_TABLES_PATH
    raw = load_yaml_file(source)
    tables = tuple(parse_rate_table_set(t) for t in raw.get("rate_tables", []))
    logger.info(
        "rate_tables_loaded",
        extra={
            "path": str(source),
            "versions": [t.version for t in tables],
            "checksum": compute_checksum(raw),
        },
    )
    return tables


def load_engine_config(path: Path) -> PayrollEngineConfig:
    """Load engine settings from a YAML file (top-level key ``engine``)."""
    raw = load_yaml_file(Path(path))
    return PayrollEngineConfig.from_dict(raw.get("engine", raw))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()

"""
Rate and snapshot providers -- the calculation's external inputs.

Responsibility:
    Two pluggable lookups the calculation run consumes:

    * ``RateTableProvider.tables_for(as_of)`` -- the statutory
      ``RateTableSet`` effective on a date; ``tables_by_version`` fetches
      the set a stored calculation was computed with.
    * ``EmployeeSnapshotProvider`` -- the employees a period covers and
      each one's immutable ``EmployeeSnapshot``.

    In-memory implementations are shipped for embedding and tests; the
    rate tables can be loaded from YAML through ``payroll_config``.

Architecture position:
    Kernel > Services -- pure lookup, no mutation, no session.

Invariants enforced:
    - When several table sets are effective on a date, the one with the
      latest ``effective_from`` wins.
    - Snapshots are returned as frozen value objects; callers cannot
      mutate provider state through them.

Failure modes:
    - RateTableNotFoundError when no set is effective on the date (a
      configuration error, fatal to a run).  Also raised by
      ``tables_by_version`` when the version has been withdrawn.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date
from pathlib import Path
from typing import Protocol

from payroll_config.loader import load_rate_tables
from payroll_kernel.domain.rates import RateTableSet
from payroll_kernel.domain.snapshot import EmployeeSnapshot
from payroll_kernel.exceptions import RateTableNotFoundError
from payroll_kernel.logging_config import get_logger

logger = get_logger("services.rate_provider")


class RateTableProvider(Protocol):
    """Statutory tables by effective date."""

    def tables_for(self, as_of: date) -> RateTableSet:
        """Return the set effective on ``as_of``.

        Raises:
            RateTableNotFoundError: nothing is effective on the date.
        """
        ...

    def tables_by_version(self, version: str) -> RateTableSet:
        """Return the set published as ``version``.

        Raises:
            RateTableNotFoundError: no set carries the version.
        """
        ...


class EmployeeSnapshotProvider(Protocol):
    """Employee inputs for a date range."""

    def employee_ids(self, period_start: date, period_end: date) -> list[str]:
        """Employees covered by the range, in a stable order."""
        ...

    def snapshot(
        self, employee_id: str, period_start: date, period_end: date,
    ) -> EmployeeSnapshot:
        """Frozen inputs for one employee over the range."""
        ...


class InMemoryRateTableProvider:
    """Serve rate tables from a fixed collection of ``RateTableSet``s."""

    def __init__(self, tables: Iterable[RateTableSet]):
        self._tables = tuple(sorted(tables, key=lambda t: t.effective_from))

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> InMemoryRateTableProvider:
        """Load tables from ``path`` (default: the bundled tables)."""
        return cls(load_rate_tables(path))

    @property
    def versions(self) -> tuple[str, ...]:
        return tuple(t.version for t in self._tables)

    def tables_for(self, as_of: date) -> RateTableSet:
        candidates = [t for t in self._tables if t.is_effective_on(as_of)]
        if not candidates:
            logger.warning("rate_table_not_found", extra={"as_of": as_of.isoformat()})
            raise RateTableNotFoundError(as_of.isoformat())
        return max(candidates, key=lambda t: t.effective_from)

    def tables_by_version(self, version: str) -> RateTableSet:
        for tables in self._tables:
            if tables.version == version:
                return tables
        logger.warning("rate_table_version_not_found", extra={"version": version})
        raise RateTableNotFoundError(version=version)


class InMemoryEmployeeSnapshotProvider:
    """
    Serve snapshots from a mapping of employee id to snapshot.

    Every employee is treated as covered by every period; the date range
    is accepted for interface compatibility.
    """

    def __init__(self, snapshots: Mapping[str, EmployeeSnapshot] | Iterable[EmployeeSnapshot]):
        if isinstance(snapshots, Mapping):
            self._snapshots = dict(snapshots)
        else:
            self._snapshots = {s.employee_id: s for s in snapshots}

    def put(self, snapshot: EmployeeSnapshot) -> None:
        """Add or replace an employee's snapshot (live data changing)."""
        self._snapshots[snapshot.employee_id] = snapshot

    def employee_ids(self, period_start: date, period_end: date) -> list[str]:
        return sorted(self._snapshots)

    def snapshot(
        self, employee_id: str, period_start: date, period_end: date,
    ) -> EmployeeSnapshot:
        return self._snapshots[employee_id]

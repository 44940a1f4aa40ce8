"""
CalculationLogService -- append-only trail of work done inside a period.

Responsibility:
    Writes ``CalculationLog`` rows for run starts and completions,
    per-employee outcomes, detected and resolved exceptions, and the
    adjustment lifecycle.  The approval ledger records status changes;
    this log records what happened while the period sat in a status.

Architecture position:
    Kernel > Services -- imperative shell.  Used by the run, exception and
    adjustment services.

Invariants enforced:
    - Rows are insert-only (db/immutability.py blocks UPDATE and DELETE).
    - ``occurred_at`` comes from the injected clock.
"""

import json
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.statuses import CalculationLogType, LogSeverity
from payroll_kernel.models.calculation_log import CalculationLog
from payroll_kernel.services.base import BaseService
from payroll_kernel.utils.hashing import canonicalize_json


class CalculationLogService(BaseService[CalculationLog]):
    """Append and read calculation log lines."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def log(
        self,
        period_id: UUID,
        log_type: CalculationLogType,
        message: str,
        *,
        severity: LogSeverity = LogSeverity.INFO,
        details: dict[str, Any] | None = None,
        run_id: UUID | None = None,
        calculation_id: UUID | None = None,
        employee_id: str | None = None,
        actor_id: UUID | None = None,
    ) -> CalculationLog:
        entry = CalculationLog(
            period_id=period_id,
            run_id=run_id,
            calculation_id=calculation_id,
            employee_id=employee_id,
            log_type=log_type.value,
            severity=severity.value,
            message=message,
            # Decimals and UUIDs rendered the same way the hashes see them
            details=json.loads(canonicalize_json(details or {})),
            actor_id=actor_id,
            occurred_at=self._clock.now(),
        )
        self.session.add(entry)
        self.session.flush()
        return entry

    def entries(
        self,
        period_id: UUID,
        *,
        log_type: CalculationLogType | None = None,
        employee_id: str | None = None,
    ) -> list[CalculationLog]:
        """Log lines for a period, oldest first."""
        query = select(CalculationLog).where(CalculationLog.period_id == period_id)
        if log_type is not None:
            query = query.where(CalculationLog.log_type == log_type.value)
        if employee_id is not None:
            query = query.where(CalculationLog.employee_id == employee_id)
        query = query.order_by(CalculationLog.occurred_at)
        return list(self.session.execute(query).scalars())

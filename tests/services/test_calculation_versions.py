"""
Version chains written by CalculationWriter.

Covers:
- Versions per (period, employee) are gapless from 1
- Each version links to its predecessor; only the newest is current
- Concurrent writers picking the same version number are rejected
- Money columns reload rounded to centavos
"""

from itertools import count

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from payroll_kernel.domain.statuses import CalculationStatus
from payroll_kernel.models.calculation import EmployeeCalculation
from payroll_kernel.models.period import PayrollPeriod
from payroll_kernel.services.calculation_writer import CalculationWriter

_employee_numbers = count(1)


def write_error_version(writer, period, employee_id):
    return writer.write(
        period,
        employee_id,
        snapshot=None,
        result=None,
        status=CalculationStatus.EXCEPTION,
        rate_table_version="PH-2025.1",
        error_message="missing attendance",
    )


class TestVersionChain:

    @settings(
        max_examples=15,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
    )
    @given(writes=st.integers(min_value=1, max_value=6))
    def test_versions_gapless_and_linked(self, writes, active_period, session, deterministic_clock):
        writer = CalculationWriter(session, deterministic_clock)
        period = session.get(PayrollPeriod, active_period.id)
        employee_id = f"V{next(_employee_numbers):04d}"

        for _ in range(writes):
            write_error_version(writer, period, employee_id)

        rows = session.execute(
            select(EmployeeCalculation)
            .where(EmployeeCalculation.employee_id == employee_id)
            .order_by(EmployeeCalculation.version)
        ).scalars().all()

        assert [r.version for r in rows] == list(range(1, writes + 1))
        assert rows[0].previous_version_id is None
        for older, newer in zip(rows, rows[1:]):
            assert newer.previous_version_id == older.id
            assert older.status == CalculationStatus.SUPERSEDED.value
        assert writer.current_version(period.id, employee_id).id == rows[-1].id

    def test_duplicate_version_rejected(self, active_period, session, deterministic_clock):
        writer = CalculationWriter(session, deterministic_clock)
        period = session.get(PayrollPeriod, active_period.id)
        first = write_error_version(writer, period, "E500")

        session.add(EmployeeCalculation(
            period_id=period.id,
            employee_id="E500",
            version=first.version,
            status=CalculationStatus.CALCULATED.value,
            input_snapshot={"employee_id": "E500"},
            calculated_at=deterministic_clock.now(),
            created_by_id=first.created_by_id,
            basic_pay=first.basic_pay,
            overtime_pay=first.overtime_pay,
            allowances_total=first.allowances_total,
            bonuses_total=first.bonuses_total,
            gross_pay=first.gross_pay,
            government_contributions=first.government_contributions,
            withholding_tax=first.withholding_tax,
            loan_deductions=first.loan_deductions,
            other_deductions=first.other_deductions,
            total_deductions=first.total_deductions,
            net_pay=first.net_pay,
            adjustments_total=first.adjustments_total,
            final_net_pay=first.final_net_pay,
        ))

        with pytest.raises(IntegrityError):
            session.flush()
        session.rollback()


class TestMoneyColumns:

    def test_amounts_reload_at_centavo_scale(self, calculated_period, session):
        session.expire_all()
        calc = session.execute(
            select(EmployeeCalculation).where(
                EmployeeCalculation.period_id == calculated_period.id,
                EmployeeCalculation.employee_id == "E001",
            )
        ).scalar_one()

        assert str(calc.final_net_pay) == "13607.08"
        assert str(calc.adjustments_total) == "0.00"

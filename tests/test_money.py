"""Tests for the money helpers (payroll_kernel/domain/money.py)."""

from decimal import Decimal

import pytest

from payroll_kernel.domain.money import round_money, to_decimal


class TestToDecimal:

    def test_none_is_zero(self):
        assert to_decimal(None) == Decimal("0")

    @pytest.mark.parametrize("value", [0.1, True])
    def test_float_and_bool_refused(self, value):
        with pytest.raises(TypeError):
            to_decimal(value)

    @pytest.mark.parametrize(
        "value", ["NaN", "Infinity", "-Infinity", "sNaN", Decimal("NaN"), Decimal("-Infinity")],
    )
    def test_non_finite_refused(self, value):
        with pytest.raises(ValueError, match="finite"):
            to_decimal(value)

    def test_garbage_refused(self):
        with pytest.raises(ValueError, match="Not a decimal"):
            to_decimal("12,000")


class TestRoundMoney:

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("0.005", "0.01"), ("-0.005", "-0.01"), ("1.234", "1.23"), (7, "7.00")],
    )
    def test_half_up(self, value, expected):
        assert str(round_money(value)) == expected

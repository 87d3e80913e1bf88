"""
Decimal precision helper tests
"""
from decimal import Decimal

import pytest

from core.financial_precision import (
    to_decimal, is_finite_number, safe_divide, percentage_of,
    round_percentage, calculate_financial_progress, FinancialPrecisionError
)


class TestToDecimal:

    def test_float_goes_through_string(self):
        assert to_decimal(0.1) == Decimal('0.1')
        assert to_decimal(44.9999) == Decimal('44.9999')

    def test_rejects_bool(self):
        with pytest.raises(FinancialPrecisionError):
            to_decimal(True)

    def test_rejects_garbage_string(self):
        with pytest.raises(FinancialPrecisionError):
            to_decimal("abc")


class TestFiniteNumbers:

    @pytest.mark.parametrize("value", [0, 1.5, Decimal('3')])
    def test_finite(self, value):
        assert is_finite_number(value)

    @pytest.mark.parametrize("value", [None, True, float('nan'), float('inf'), "10"])
    def test_not_finite(self, value):
        assert not is_finite_number(value)


class TestPercentages:

    def test_safe_divide_zero_denominator(self):
        assert safe_divide(10, 0) == Decimal('0')

    def test_percentage_of(self):
        assert percentage_of(5000, 100000) == Decimal('5')

    def test_round_half_up(self):
        assert round_percentage(Decimal('74.5')) == 75
        assert round_percentage(Decimal('74.49')) == 74
        assert round_percentage(0.5) == 1

    def test_financial_progress_derivation(self):
        assert calculate_financial_progress(150000, 200000) == 75
        assert calculate_financial_progress(1, 3) == 33
        assert calculate_financial_progress(100, 0) == 0

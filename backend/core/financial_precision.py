"""
PROGRESS LEDGER - DECIMAL PRECISION UTILITIES

This module provides:
1. Exact Decimal conversion for amounts and percentages
2. Zero-safe division
3. Percentage-of-base calculations used by the bound checks
4. Round-half-up percentage rounding for derived financial progress
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Union
import math
import logging

logger = logging.getLogger(__name__)

PERCENT_QUANTUM = Decimal('1')
HUNDRED = Decimal('100')

Numeric = Union[float, int, str, Decimal]


class FinancialPrecisionError(Exception):
    """Raised when a value cannot be used as a number"""
    pass


def to_decimal(value: Numeric) -> Decimal:
    """
    Convert any numeric value to Decimal.
    Does NOT round - preserves full precision for comparisons.
    """
    if isinstance(value, bool):
        raise FinancialPrecisionError(f"Cannot convert {type(value)} to Decimal")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        # Convert via string to avoid float precision issues
        return Decimal(str(value))
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            raise FinancialPrecisionError(f"Cannot convert {value!r} to Decimal")
    raise FinancialPrecisionError(f"Cannot convert {type(value)} to Decimal")


def is_finite_number(value) -> bool:
    """True for int/float/Decimal values that are neither NaN nor infinite"""
    if value is None or isinstance(value, bool):
        return False
    if isinstance(value, Decimal):
        return value.is_finite()
    if isinstance(value, (int, float)):
        return math.isfinite(value)
    return False


def safe_divide(numerator: Numeric, denominator: Numeric) -> Decimal:
    """Safe division with zero check"""
    denom = to_decimal(denominator)
    if denom == Decimal('0'):
        return Decimal('0')
    return to_decimal(numerator) / denom


def safe_subtract(a: Numeric, b: Numeric) -> Decimal:
    """Safe subtraction preserving precision"""
    return to_decimal(a) - to_decimal(b)


def percentage_of(amount: Numeric, base: Numeric) -> Decimal:
    """
    Express an amount as a percentage of a base, unrounded.
    Example: percentage_of(5000, 100000) = 5
    Returns 0 when base is 0.
    """
    return safe_divide(amount, base) * HUNDRED


def round_percentage(value: Numeric) -> int:
    """
    Round a percentage to a whole number, halves rounding up.
    Example: round_percentage(74.5) = 75
    """
    return int(to_decimal(value).quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_UP))


def calculate_financial_progress(bill_amount: Numeric, work_value: Numeric) -> int:
    """
    LOCKED FORMULA:
    - financial_progress = round(bill_amount / work_value * 100) when work_value > 0
    - financial_progress = 0 otherwise
    """
    if to_decimal(work_value) <= Decimal('0'):
        return 0
    return round_percentage(percentage_of(bill_amount, work_value))


def to_float(value: Decimal) -> float:
    """Convert Decimal back to float for MongoDB storage"""
    return float(value)

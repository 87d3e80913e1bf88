"""
Progress Ledger Core Modules
"""
from .financial_precision import (
    to_decimal,
    to_float,
    safe_divide,
    safe_subtract,
    percentage_of,
    round_percentage,
    calculate_financial_progress,
    FinancialPrecisionError
)

from .progress_ledger import (
    ProjectAggregate,
    ProgressLogEntry,
    FinancialProgressLogEntry,
    UpdateResult,
    RejectionReason,
    LogKind,
    apply_progress_update,
    apply_financial_update,
    apply_combined_update,
    apply_bounded_update,
    set_updates_enabled
)

from .invariant_validator import (
    LedgerInvariantValidator,
    InvariantViolationError
)

from .progress_engine import (
    ProgressLedgerEngine,
    ConcurrentModificationError
)

__all__ = [
    # Decimal Precision
    'to_decimal',
    'to_float',
    'safe_divide',
    'safe_subtract',
    'percentage_of',
    'round_percentage',
    'calculate_financial_progress',
    'FinancialPrecisionError',
    # Ledger Rules
    'ProjectAggregate',
    'ProgressLogEntry',
    'FinancialProgressLogEntry',
    'UpdateResult',
    'RejectionReason',
    'LogKind',
    'apply_progress_update',
    'apply_financial_update',
    'apply_combined_update',
    'apply_bounded_update',
    'set_updates_enabled',
    # Invariant Validator
    'LedgerInvariantValidator',
    'InvariantViolationError',
    # Transaction Engine
    'ProgressLedgerEngine',
    'ConcurrentModificationError',
]

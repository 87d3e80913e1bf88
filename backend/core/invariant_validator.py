"""
PROGRESS LEDGER - INVARIANT VALIDATOR

Enforces the aggregate constraints:
1. 0 <= bill_submitted_amount <= work_value
2. 0 <= physical_progress <= 100, 0 <= financial_progress <= 100
3. financial_progress == round(bill_submitted_amount / work_value * 100), 0 when work_value is 0
4. every log entry: difference == new - previous, previous == value before the append

Blocks transactions if violated.
"""

from decimal import Decimal
from typing import Dict, Any, List, Optional
from datetime import datetime
import logging

from core.financial_precision import to_decimal, to_float, safe_subtract, calculate_financial_progress
from core.progress_ledger import ProjectAggregate

logger = logging.getLogger(__name__)


class InvariantViolationError(Exception):
    """Raised when a ledger invariant is violated"""
    def __init__(self, violation_type: str, message: str, details: dict = None):
        self.violation_type = violation_type
        self.message = message
        self.details = details or {}
        super().__init__(message)


class LedgerInvariantValidator:
    """
    Centralized invariant enforcement.

    Used after EVERY accepted update, before the write is committed.
    """

    def _bounds_violations(self, aggregate: ProjectAggregate) -> List[dict]:
        violations = []
        work_value = to_decimal(aggregate.work_value)
        bill_amount = to_decimal(aggregate.bill_submitted_amount)

        if bill_amount < Decimal('0') or bill_amount > work_value:
            violations.append({
                "type": "BILL_AMOUNT_OUT_OF_RANGE",
                "message": f"bill_submitted_amount ({aggregate.bill_submitted_amount}) outside 0..{aggregate.work_value}",
                "bill_submitted_amount": aggregate.bill_submitted_amount,
                "work_value": aggregate.work_value
            })

        physical = to_decimal(aggregate.physical_progress)
        if physical < Decimal('0') or physical > Decimal('100'):
            violations.append({
                "type": "PHYSICAL_PROGRESS_OUT_OF_RANGE",
                "message": f"physical_progress ({aggregate.physical_progress}) outside 0..100",
                "physical_progress": aggregate.physical_progress
            })

        if not 0 <= aggregate.financial_progress <= 100:
            violations.append({
                "type": "FINANCIAL_PROGRESS_OUT_OF_RANGE",
                "message": f"financial_progress ({aggregate.financial_progress}) outside 0..100",
                "financial_progress": aggregate.financial_progress
            })
        return violations

    def _physical_log_violations(self, aggregate: ProjectAggregate) -> List[dict]:
        violations = []
        entries = aggregate.progress_updates
        for index, entry in enumerate(entries):
            expected = safe_subtract(entry.new_progress, entry.previous_progress)
            if entry.progress_difference != to_float(expected):
                violations.append({
                    "type": "PROGRESS_DIFFERENCE_MISMATCH",
                    "message": f"progress_updates[{index}] difference {entry.progress_difference} != {to_float(expected)}",
                    "index": index
                })
            if index > 0 and to_decimal(entry.previous_progress) != to_decimal(entries[index - 1].new_progress):
                violations.append({
                    "type": "PROGRESS_BASELINE_MISMATCH",
                    "message": f"progress_updates[{index}] previous {entry.previous_progress} != prior new {entries[index - 1].new_progress}",
                    "index": index
                })

        if entries and to_decimal(entries[-1].new_progress) != to_decimal(aggregate.physical_progress):
            violations.append({
                "type": "PROGRESS_HEAD_MISMATCH",
                "message": f"latest progress entry {entries[-1].new_progress} != physical_progress {aggregate.physical_progress}",
            })
        return violations

    def _financial_log_violations(self, aggregate: ProjectAggregate) -> List[dict]:
        violations = []
        entries = aggregate.financial_progress_updates
        for index, entry in enumerate(entries):
            expected = safe_subtract(entry.new_bill_amount, entry.previous_bill_amount)
            if entry.amount_difference != to_float(expected):
                violations.append({
                    "type": "AMOUNT_DIFFERENCE_MISMATCH",
                    "message": f"financial_progress_updates[{index}] difference {entry.amount_difference} != {to_float(expected)}",
                    "index": index
                })
            if entry.progress_difference != entry.new_financial_progress - entry.previous_financial_progress:
                violations.append({
                    "type": "FINANCIAL_PROGRESS_DIFFERENCE_MISMATCH",
                    "message": f"financial_progress_updates[{index}] progress difference inconsistent",
                    "index": index
                })
            if entry.new_financial_progress != calculate_financial_progress(entry.new_bill_amount, aggregate.work_value):
                violations.append({
                    "type": "FINANCIAL_PROGRESS_NOT_DERIVED",
                    "message": f"financial_progress_updates[{index}] new_financial_progress not derived from bill amount",
                    "index": index
                })
            if index > 0 and to_decimal(entry.previous_bill_amount) != to_decimal(entries[index - 1].new_bill_amount):
                violations.append({
                    "type": "AMOUNT_BASELINE_MISMATCH",
                    "message": f"financial_progress_updates[{index}] previous amount != prior new amount",
                    "index": index
                })

        if entries and to_decimal(entries[-1].new_bill_amount) != to_decimal(aggregate.bill_submitted_amount):
            violations.append({
                "type": "AMOUNT_HEAD_MISMATCH",
                "message": f"latest financial entry {entries[-1].new_bill_amount} != bill_submitted_amount {aggregate.bill_submitted_amount}",
            })
        return violations

    def validate_aggregate(self, aggregate: ProjectAggregate, check_logs: bool = True) -> bool:
        """
        Validate all invariants for one aggregate.

        Raises InvariantViolationError listing ALL violations.
        Returns True if all constraints pass.
        """
        violations = self._bounds_violations(aggregate)
        if check_logs:
            violations.extend(self._physical_log_violations(aggregate))
            violations.extend(self._financial_log_violations(aggregate))

        if violations:
            raise InvariantViolationError(
                violation_type="MULTIPLE_VIOLATIONS" if len(violations) > 1 else violations[0]["type"],
                message="Progress ledger invariant violation(s) detected",
                details={
                    "project_id": aggregate.project_id,
                    "violations": violations
                }
            )

        logger.debug(f"Invariants validated for project:{aggregate.project_id}")
        return True

    def check_document(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate a stored project document without raising.
        Also reports a stored financial_progress that drifted from the derived value.
        """
        aggregate = ProjectAggregate.from_document(doc)
        result = {
            "project_id": aggregate.project_id,
            "valid": True,
            "violations": [],
            "validated_at": datetime.utcnow()
        }

        stored: Optional[int] = doc.get("financial_progress")
        if stored is not None and stored != aggregate.financial_progress:
            result["violations"].append({
                "type": "FINANCIAL_PROGRESS_DRIFT",
                "message": f"stored financial_progress {stored} != derived {aggregate.financial_progress}",
            })

        try:
            self.validate_aggregate(aggregate)
        except InvariantViolationError as e:
            result["violations"].extend(e.details["violations"])

        result["valid"] = not result["violations"]
        return result

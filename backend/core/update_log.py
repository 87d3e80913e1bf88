"""
Update log queries: paginated history and whole-log summaries.

Summaries are always computed over the entire log, never over the requested page.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any, List, Sequence
import math

from core.financial_precision import to_decimal, round_percentage, percentage_of
from core.progress_ledger import (
    ProjectAggregate, ProgressLogEntry, FinancialProgressLogEntry
)

DEFAULT_HISTORY_PAGE_SIZE = 10
MAX_HISTORY_PAGE_SIZE = 50


@dataclass
class HistoryPage:
    entries: List[Any] = field(default_factory=list)
    total_count: int = 0
    current_page: int = 1
    total_pages: int = 0
    has_next: bool = False
    has_prev: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "updates": [entry.to_document() for entry in self.entries],
            "total_updates": self.total_count,
            "current_page": self.current_page,
            "total_pages": self.total_pages,
            "has_next_page": self.has_next,
            "has_prev_page": self.has_prev,
        }


def clamp_page_size(page_size: Optional[int]) -> int:
    if not page_size or page_size < 1:
        return DEFAULT_HISTORY_PAGE_SIZE
    return min(page_size, MAX_HISTORY_PAGE_SIZE)


def _created_at_key(entry) -> datetime:
    return entry.created_at or datetime.min


def history(aggregate: ProjectAggregate, log_kind, page: int = 1, page_size: int = DEFAULT_HISTORY_PAGE_SIZE) -> HistoryPage:
    """Newest-first, offset-paginated slice of one log. page is 1-indexed."""
    page = max(int(page or 1), 1)
    page_size = clamp_page_size(page_size)

    # equal timestamps: later appends come first
    ordered = sorted(aggregate.log(log_kind), key=_created_at_key)
    ordered.reverse()

    total = len(ordered)
    total_pages = math.ceil(total / page_size)
    skip = (page - 1) * page_size

    return HistoryPage(
        entries=ordered[skip:skip + page_size],
        total_count=total,
        current_page=page,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )


def _round2(value: float) -> float:
    return round(value * 100) / 100


def most_active_user(entries: Sequence[Any]) -> Optional[Dict[str, Any]]:
    counts: Dict[Any, Dict[str, Any]] = {}
    for entry in entries:
        user_id = entry.updated_by.get("user_id")
        record = counts.setdefault(user_id, {"user_id": user_id, "name": entry.updated_by.get("name"), "count": 0})
        record["count"] += 1

    best = None
    for record in counts.values():
        if best is None or record["count"] > best["count"]:
            best = record
    return best


def _delta_summary(deltas: List[float]) -> Dict[str, Any]:
    return {
        "total_increase": sum(max(0, d) for d in deltas),
        "total_decrease": abs(sum(min(0, d) for d in deltas)),
        "avg_change": _round2(sum(deltas) / len(deltas)) if deltas else 0,
        "largest_jump": max(deltas + [0]),
    }


def summarize_progress_log(aggregate: ProjectAggregate) -> Dict[str, Any]:
    entries: Sequence[ProgressLogEntry] = aggregate.progress_updates
    deltas = [entry.progress_difference for entry in entries]
    deltas_summary = _delta_summary(deltas)

    return {
        "total_updates": len(entries),
        "total_progress_increase": deltas_summary["total_increase"],
        "total_progress_decrease": deltas_summary["total_decrease"],
        "total_files_uploaded": sum(len(entry.supporting_documents) for entry in entries),
        "avg_progress_change": deltas_summary["avg_change"],
        "largest_progress_jump": deltas_summary["largest_jump"],
        "last_update_date": aggregate.last_progress_update,
        "first_update_date": entries[0].created_at if entries else None,
        "most_active_user": most_active_user(entries),
    }


def summarize_financial_log(aggregate: ProjectAggregate) -> Dict[str, Any]:
    entries: Sequence[FinancialProgressLogEntry] = aggregate.financial_progress_updates
    amount_deltas = [entry.amount_difference for entry in entries]
    progress_deltas = [entry.progress_difference for entry in entries]
    amounts = _delta_summary(amount_deltas)

    return {
        "total_updates": len(entries),
        "total_amount_increase": amounts["total_increase"],
        "total_amount_decrease": amounts["total_decrease"],
        "total_files_uploaded": sum(len(entry.supporting_documents) for entry in entries),
        "avg_amount_change": amounts["avg_change"],
        "avg_progress_change": _round2(sum(progress_deltas) / len(progress_deltas)) if progress_deltas else 0,
        "largest_amount_increase": amounts["largest_jump"],
        "bills_submitted": sum(1 for entry in entries if entry.bill_details.get("bill_number")),
        "last_update_date": aggregate.last_financial_progress_update,
        "first_update_date": entries[0].created_at if entries else None,
        "most_active_user": most_active_user(entries),
    }


def budget_trend(aggregate: ProjectAggregate) -> List[Dict[str, Any]]:
    """One point per financial entry, in append order"""
    trend = []
    for number, entry in enumerate(aggregate.financial_progress_updates, start=1):
        utilization = 0
        if to_decimal(aggregate.work_value) > 0:
            utilization = round_percentage(percentage_of(entry.new_bill_amount, aggregate.work_value))
        trend.append({
            "update_number": number,
            "date": entry.created_at,
            "amount": entry.new_bill_amount,
            "percentage": entry.new_financial_progress,
            "utilization_rate": utilization,
        })
    return trend

"""
PROGRESS STATISTICS: READ MODELS

Portfolio-wide aggregation over the project collection.
Reads the persisted current values and the embedded logs only.

NO writes. NO mutations. Pure query projections.

Usage:
    from core.progress_statistics import ProgressStatisticsReporter

    reporter = ProgressStatisticsReporter(db)
    physical = await reporter.progress_statistics({"district": "North Goa"})
    financial = await reporter.financial_progress_statistics({})
"""

from motor.motor_asyncio import AsyncIOMotorDatabase
from datetime import datetime
from typing import Dict, Any, List, Optional
import logging

from core.financial_precision import round_percentage, percentage_of, safe_divide, to_float
from core.progress_ledger import LogKind

logger = logging.getLogger(__name__)

FILTER_FIELDS = {
    "status": "status",
    "district": "district",
    "created_by": "created_by.user_id",
    "fund": "fund",
    "type_of_work": "type_of_work",
    "nature_of_work": "nature_of_work",
}

LAST_UPDATE_FIELDS = {
    LogKind.PHYSICAL: "last_progress_update",
    LogKind.FINANCIAL: "last_financial_progress_update",
}

BREAKDOWN_LIMIT = 10
HIGH_UTILIZATION_PERCENTAGE = 80


# =============================================================================
# UTILITIES
# =============================================================================

def rate(numerator, denominator) -> int:
    """Whole-number percentage, 0 if denominator is 0"""
    if not denominator:
        return 0
    return round_percentage(percentage_of(numerator, denominator))


def ratio(numerator, denominator) -> float:
    """Two-decimal ratio, 0 if denominator is 0"""
    if not denominator:
        return 0
    return round(to_float(safe_divide(numerator, denominator)), 2)


def _parse_date(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def build_project_filter(log_kind, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Translate query filters into a $match document.

    start_date / end_date bound the last update of the given log kind.
    Raises ValueError for an unparseable date.
    """
    filters = filters or {}
    match: Dict[str, Any] = {}

    for key, field_name in FILTER_FIELDS.items():
        if filters.get(key):
            match[field_name] = filters[key]

    start_date = _parse_date(filters.get("start_date"))
    end_date = _parse_date(filters.get("end_date"))
    if start_date or end_date:
        date_range = {}
        if start_date:
            date_range["$gte"] = start_date
        if end_date:
            date_range["$lte"] = end_date
        match[LAST_UPDATE_FIELDS[LogKind(log_kind)]] = date_range

    return match


# =============================================================================
# PIPELINE BUILDERS
# =============================================================================

def _count_when(condition: Dict[str, Any]) -> Dict[str, Any]:
    return {"$sum": {"$cond": [condition, 1, 0]}}


def _log_size(field_name: str) -> Dict[str, Any]:
    return {"$size": {"$ifNull": [f"${field_name}", []]}}


def physical_overview_pipeline(match: Dict[str, Any], now: datetime) -> List[Dict[str, Any]]:
    return [
        {"$match": match},
        {"$group": {
            "_id": None,
            "total_projects": {"$sum": 1},
            "total_work_value": {"$sum": "$work_value"},
            "avg_progress": {"$avg": "$physical_progress"},
            "completed_projects": _count_when({"$eq": ["$physical_progress", 100]}),
            "in_progress_projects": _count_when({"$and": [
                {"$gt": ["$physical_progress", 0]},
                {"$lt": ["$physical_progress", 100]},
            ]}),
            "not_started_projects": _count_when({"$eq": ["$physical_progress", 0]}),
            "total_progress_updates": {"$sum": _log_size("progress_updates")},
            "overdue_projects": _count_when({"$and": [
                {"$lt": ["$physical_progress", 100]},
                {"$ne": [{"$ifNull": ["$project_end_date", None]}, None]},
                {"$lt": ["$project_end_date", now]},
            ]}),
        }},
    ]


def financial_overview_pipeline(match: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [
        {"$match": match},
        {"$group": {
            "_id": None,
            "total_projects": {"$sum": 1},
            "total_work_value": {"$sum": "$work_value"},
            "total_bill_submitted": {"$sum": "$bill_submitted_amount"},
            "avg_financial_progress": {"$avg": "$financial_progress"},
            "financially_completed_projects": _count_when({"$eq": ["$financial_progress", 100]}),
            "financially_in_progress_projects": _count_when({"$and": [
                {"$gt": ["$financial_progress", 0]},
                {"$lt": ["$financial_progress", 100]},
            ]}),
            "financially_not_started_projects": _count_when({"$eq": ["$financial_progress", 0]}),
            "total_financial_progress_updates": {"$sum": _log_size("financial_progress_updates")},
            "high_utilization_projects": _count_when(
                {"$gte": ["$financial_progress", HIGH_UTILIZATION_PERCENTAGE]}
            ),
        }},
    ]


def update_stats_pipeline(log_kind, match: Dict[str, Any]) -> List[Dict[str, Any]]:
    """One row over every entry of the given log across the matched projects"""
    if LogKind(log_kind) is LogKind.PHYSICAL:
        return [
            {"$match": match},
            {"$unwind": "$progress_updates"},
            {"$group": {
                "_id": None,
                "total_updates": {"$sum": 1},
                "avg_progress_increase": {"$avg": "$progress_updates.progress_difference"},
                "max_progress_increase": {"$max": "$progress_updates.progress_difference"},
                "min_progress_increase": {"$min": "$progress_updates.progress_difference"},
                "total_files_uploaded": {"$sum": _log_size("progress_updates.supporting_documents")},
            }},
        ]
    return [
        {"$match": match},
        {"$unwind": "$financial_progress_updates"},
        {"$group": {
            "_id": None,
            "total_updates": {"$sum": 1},
            "avg_progress_increase": {"$avg": "$financial_progress_updates.progress_difference"},
            "avg_amount_increase": {"$avg": "$financial_progress_updates.amount_difference"},
            "total_amount_submitted": {"$sum": "$financial_progress_updates.amount_difference"},
            "max_progress_increase": {"$max": "$financial_progress_updates.progress_difference"},
            "min_progress_increase": {"$min": "$financial_progress_updates.progress_difference"},
            "total_files_uploaded": {"$sum": _log_size("financial_progress_updates.supporting_documents")},
        }},
    ]


def breakdown_pipeline(log_kind, match: Dict[str, Any], group_field: str, sort_field: str) -> List[Dict[str, Any]]:
    """Top projects grouped by district or fund"""
    if LogKind(log_kind) is LogKind.PHYSICAL:
        group = {
            "_id": f"${group_field}",
            "project_count": {"$sum": 1},
            "avg_progress": {"$avg": "$physical_progress"},
            "completed_projects": _count_when({"$eq": ["$physical_progress", 100]}),
            "total_work_value": {"$sum": "$work_value"},
        }
    else:
        group = {
            "_id": f"${group_field}",
            "project_count": {"$sum": 1},
            "total_work_value": {"$sum": "$work_value"},
            "total_bill_submitted": {"$sum": "$bill_submitted_amount"},
            "avg_financial_progress": {"$avg": "$financial_progress"},
            "financially_completed_projects": _count_when({"$eq": ["$financial_progress", 100]}),
        }
    return [
        {"$match": match},
        {"$group": group},
        {"$sort": {sort_field: -1}},
        {"$limit": BREAKDOWN_LIMIT},
    ]


EMPTY_PHYSICAL_OVERVIEW = {
    "total_projects": 0,
    "total_work_value": 0,
    "avg_progress": 0,
    "completed_projects": 0,
    "in_progress_projects": 0,
    "not_started_projects": 0,
    "total_progress_updates": 0,
    "overdue_projects": 0,
}

EMPTY_FINANCIAL_OVERVIEW = {
    "total_projects": 0,
    "total_work_value": 0,
    "total_bill_submitted": 0,
    "avg_financial_progress": 0,
    "financially_completed_projects": 0,
    "financially_in_progress_projects": 0,
    "financially_not_started_projects": 0,
    "total_financial_progress_updates": 0,
    "high_utilization_projects": 0,
}

EMPTY_UPDATE_STATS = {
    LogKind.PHYSICAL: {
        "total_updates": 0,
        "avg_progress_increase": 0,
        "max_progress_increase": 0,
        "min_progress_increase": 0,
        "total_files_uploaded": 0,
    },
    LogKind.FINANCIAL: {
        "total_updates": 0,
        "avg_progress_increase": 0,
        "avg_amount_increase": 0,
        "total_amount_submitted": 0,
        "max_progress_increase": 0,
        "min_progress_increase": 0,
        "total_files_uploaded": 0,
    },
}


# =============================================================================
# DERIVED METRICS
# =============================================================================

def compute_additional_metrics(log_kind, overview: Dict[str, Any], update_stats: Dict[str, Any]) -> Dict[str, Any]:
    total = overview.get("total_projects", 0)
    updates = update_stats.get("total_updates", 0)

    if LogKind(log_kind) is LogKind.PHYSICAL:
        return {
            "completion_rate": rate(overview.get("completed_projects", 0), total),
            "average_updates_per_project": ratio(updates, total),
            "overdue_rate": rate(overview.get("overdue_projects", 0), total),
            "project_distribution": {
                "not_started": overview.get("not_started_projects", 0),
                "in_progress": overview.get("in_progress_projects", 0),
                "completed": overview.get("completed_projects", 0),
                "overdue": overview.get("overdue_projects", 0),
            },
        }

    work_value = overview.get("total_work_value", 0) or 0
    submitted = overview.get("total_bill_submitted", 0) or 0
    return {
        "financial_completion_rate": rate(overview.get("financially_completed_projects", 0), total),
        "bill_submission_rate": rate(submitted, work_value),
        "average_updates_per_project": ratio(updates, total),
        "remaining_budget": round(work_value - submitted, 2),
        "high_utilization_rate": rate(overview.get("high_utilization_projects", 0), total),
        "avg_project_value": round(work_value / total) if total else 0,
        "project_distribution": {
            "not_started": overview.get("financially_not_started_projects", 0),
            "in_progress": overview.get("financially_in_progress_projects", 0),
            "completed": overview.get("financially_completed_projects", 0),
            "high_utilization": overview.get("high_utilization_projects", 0),
        },
    }


def shape_breakdown_row(log_kind, key: str, row: Dict[str, Any]) -> Dict[str, Any]:
    count = row.get("project_count", 0)
    if LogKind(log_kind) is LogKind.PHYSICAL:
        return {
            key: row.get("_id"),
            "project_count": count,
            "avg_progress": round(row.get("avg_progress") or 0, 2),
            "completed_projects": row.get("completed_projects", 0),
            "completion_rate": rate(row.get("completed_projects", 0), count),
            "total_work_value": row.get("total_work_value", 0),
        }
    work_value = row.get("total_work_value", 0) or 0
    submitted = row.get("total_bill_submitted", 0) or 0
    return {
        key: row.get("_id"),
        "project_count": count,
        "total_work_value": work_value,
        "total_bill_submitted": submitted,
        "remaining_budget": round(work_value - submitted, 2),
        "avg_financial_progress": round(row.get("avg_financial_progress") or 0, 2),
        "financially_completed_projects": row.get("financially_completed_projects", 0),
        "financial_completion_rate": rate(row.get("financially_completed_projects", 0), count),
        "utilization_rate": rate(submitted, work_value),
    }


def _strip_id(row: Optional[Dict[str, Any]], default: Dict[str, Any]) -> Dict[str, Any]:
    if not row:
        return dict(default)
    row = dict(row)
    row.pop("_id", None)
    return row


# =============================================================================
# REPORTER
# =============================================================================

class ProgressStatisticsReporter:
    """
    Read-only aggregation over all projects.

    All methods are read-only - no mutations allowed.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def _aggregate(self, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return await self.db.projects.aggregate(pipeline).to_list(length=None)

    async def progress_statistics(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self._statistics(LogKind.PHYSICAL, filters)

    async def financial_progress_statistics(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self._statistics(LogKind.FINANCIAL, filters)

    async def _statistics(self, log_kind: LogKind, filters: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        match = build_project_filter(log_kind, filters)
        logger.debug(f"[READ_MODEL] Building {log_kind.value} progress statistics: {match}")

        if log_kind is LogKind.PHYSICAL:
            overview_rows = await self._aggregate(physical_overview_pipeline(match, datetime.utcnow()))
            overview = _strip_id(overview_rows[0] if overview_rows else None, EMPTY_PHYSICAL_OVERVIEW)
            district_sort, fund_sort = "project_count", "total_work_value"
        else:
            overview_rows = await self._aggregate(financial_overview_pipeline(match))
            overview = _strip_id(overview_rows[0] if overview_rows else None, EMPTY_FINANCIAL_OVERVIEW)
            district_sort, fund_sort = "total_bill_submitted", "total_work_value"

        stats_rows = await self._aggregate(update_stats_pipeline(log_kind, match))
        update_stats = _strip_id(stats_rows[0] if stats_rows else None, EMPTY_UPDATE_STATS[log_kind])

        by_district = await self._aggregate(breakdown_pipeline(log_kind, match, "district", district_sort))
        by_fund = await self._aggregate(breakdown_pipeline(log_kind, match, "fund", fund_sort))

        return {
            "project_overview": overview,
            "update_statistics": update_stats,
            "additional_metrics": compute_additional_metrics(log_kind, overview, update_stats),
            "breakdowns": {
                "by_district": [shape_breakdown_row(log_kind, "district", row) for row in by_district],
                "by_fund": [shape_breakdown_row(log_kind, "fund", row) for row in by_fund],
            },
            "filters": {key: (filters or {}).get(key) for key in list(FILTER_FIELDS) + ["start_date", "end_date"]},
            "generated_at": datetime.utcnow().isoformat(),
        }

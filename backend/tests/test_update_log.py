"""
Update log history and summary tests
"""
from datetime import datetime, timedelta

from core.progress_ledger import ProjectAggregate, LogKind, apply_progress_update, apply_financial_update
from core.update_log import (
    history, clamp_page_size, summarize_progress_log, summarize_financial_log,
    budget_trend, MAX_HISTORY_PAGE_SIZE, DEFAULT_HISTORY_PAGE_SIZE
)

START = datetime(2024, 3, 1, 9, 0)
JE = {"user_id": "je-1", "name": "Asha", "role": "JE"}
OTHER_JE = {"user_id": "je-2", "name": "Ravi", "role": "JE"}
PHOTO = {"stored_name": "s1", "original_name": "p.jpg", "retrieval_locator": "loc", "category": "image"}


def project_with_physical_history(values, actors=None):
    aggregate = ProjectAggregate.create("PRJ-LOG", 100000, status="Ongoing")
    for index, value in enumerate(values):
        actor = (actors or [JE] * len(values))[index]
        result = apply_progress_update(
            aggregate, value, f"update {index}", [PHOTO], actor, START + timedelta(days=index)
        )
        assert result.accepted
    return aggregate


class TestHistory:

    def test_newest_first_pagination(self):
        aggregate = project_with_physical_history([5, 10, 15, 20, 25])

        page = history(aggregate, LogKind.PHYSICAL, page=1, page_size=2)

        assert [entry.new_progress for entry in page.entries] == [25, 20]
        assert page.total_count == 5
        assert page.total_pages == 3
        assert page.has_next
        assert not page.has_prev

    def test_last_page(self):
        aggregate = project_with_physical_history([5, 10, 15, 20, 25])

        page = history(aggregate, LogKind.PHYSICAL, page=3, page_size=2)

        assert [entry.new_progress for entry in page.entries] == [5]
        assert not page.has_next
        assert page.has_prev

    def test_page_past_end_is_empty(self):
        aggregate = project_with_physical_history([5])
        page = history(aggregate, LogKind.PHYSICAL, page=4, page_size=10)
        assert page.entries == []
        assert page.total_count == 1

    def test_empty_log(self):
        aggregate = ProjectAggregate.create("PRJ-EMPTY", 1000)
        page = history(aggregate, LogKind.FINANCIAL)
        assert page.to_dict() == {
            "updates": [],
            "total_updates": 0,
            "current_page": 1,
            "total_pages": 0,
            "has_next_page": False,
            "has_prev_page": False,
        }

    def test_page_size_clamped(self):
        assert clamp_page_size(500) == MAX_HISTORY_PAGE_SIZE
        assert clamp_page_size(0) == DEFAULT_HISTORY_PAGE_SIZE
        assert clamp_page_size(None) == DEFAULT_HISTORY_PAGE_SIZE
        assert clamp_page_size(25) == 25


class TestSummaries:

    def test_physical_summary_covers_whole_log(self):
        aggregate = project_with_physical_history([10, 40, 36, 50], [JE, OTHER_JE, JE, JE])

        summary = summarize_progress_log(aggregate)

        assert summary["total_updates"] == 4
        assert summary["total_progress_increase"] == 54
        assert summary["total_progress_decrease"] == 4
        assert summary["total_files_uploaded"] == 4
        assert summary["avg_progress_change"] == 12.5
        assert summary["largest_progress_jump"] == 30
        assert summary["first_update_date"] == START
        assert summary["last_update_date"] == START + timedelta(days=3)
        assert summary["most_active_user"] == {"user_id": "je-1", "name": "Asha", "count": 3}

    def test_empty_summary(self):
        summary = summarize_progress_log(ProjectAggregate.create("PRJ-EMPTY", 1000))
        assert summary["total_updates"] == 0
        assert summary["avg_progress_change"] == 0
        assert summary["most_active_user"] is None

    def test_financial_summary_and_trend(self):
        aggregate = ProjectAggregate.create("PRJ-FIN", 200000)
        apply_financial_update(aggregate, 50000, bill_details={"bill_number": "RA-1"}, actor=JE, now=START)
        apply_financial_update(aggregate, 120000, actor=JE, now=START + timedelta(days=1))
        apply_financial_update(aggregate, 115000, bill_details={"bill_number": "RA-2"}, actor=JE,
                               now=START + timedelta(days=2))

        summary = summarize_financial_log(aggregate)

        assert summary["total_updates"] == 3
        assert summary["total_amount_increase"] == 120000
        assert summary["total_amount_decrease"] == 5000
        assert summary["avg_amount_change"] == 38333.33
        assert summary["bills_submitted"] == 2
        assert summary["largest_amount_increase"] == 70000

        trend = budget_trend(aggregate)
        assert [point["update_number"] for point in trend] == [1, 2, 3]
        assert [point["percentage"] for point in trend] == [25, 60, 58]
        assert trend[2]["utilization_rate"] == 58

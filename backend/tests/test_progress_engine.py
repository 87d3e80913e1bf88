"""
Progress ledger engine tests

The engine runs against the in-memory motor stand-ins from fake_motor.
"""
import asyncio
import copy
from datetime import datetime

import pytest
from bson import ObjectId
from pymongo.errors import PyMongoError

from audit_service import AuditService
from core.document_discard import DocumentDiscardQueue
from core.progress_engine import ProgressLedgerEngine
from core.progress_ledger import RejectionReason, LogKind
from fake_motor import FakeClient, FakeDB, project_document


JE = {"user_id": "je-1", "name": "Asha", "role": "JE"}
ADMIN = {"user_id": "admin-1", "name": "Admin", "role": "ADMIN"}
PHOTO = {
    "stored_name": "a1b2.jpg",
    "original_name": "site.jpg",
    "retrieval_locator": "https://files.example.com/a1b2.jpg",
    "size_bytes": 2048,
    "mime_type": "image/jpeg",
    "category": "image",
}


@pytest.fixture
def setup():
    def build(**project_kwargs):
        doc = project_document(**project_kwargs)
        db = FakeDB([doc])
        client = FakeClient()
        engine = ProgressLedgerEngine(client, db, AuditService(db))
        return engine, db, client, doc["_id"]
    return build


def stored(db):
    return db.projects.docs[0]


# ============================================
# TESTS
# ============================================

class TestAcceptedUpdates:

    def test_physical_update_persists_entry_and_version(self, setup):
        engine, db, client, oid = setup(progress=20)

        result = asyncio.run(engine.update_physical_progress(oid, 35, "Columns done", [PHOTO], JE))

        assert result.accepted
        assert result.aggregate.ledger_version == 1
        doc = stored(db)
        assert doc["physical_progress"] == 35
        assert doc["ledger_version"] == 1
        assert len(doc["progress_updates"]) == 1
        assert doc["progress_updates"][0]["previous_progress"] == 20
        assert doc["progress_updates"][0]["supporting_documents"] == [PHOTO]
        assert client.sessions[0].committed

        assert len(db.audit_logs.docs) == 1
        assert db.audit_logs.docs[0]["action_type"] == "PROGRESS_UPDATE"

    def test_financial_update_writes_derived_percentage(self, setup):
        engine, db, _, oid = setup(work_value=200000)

        result = asyncio.run(engine.update_financial_progress(
            oid, 100000, "RA bill 1", {"bill_number": "RA-1"}, [], JE
        ))

        assert result.accepted
        doc = stored(db)
        assert doc["bill_submitted_amount"] == 100000
        assert doc["financial_progress"] == 50
        assert doc["bill_number"] == "RA-1"
        assert doc["financial_progress_updates"][0]["new_financial_progress"] == 50

    def test_sequential_updates_chain_baselines(self, setup):
        engine, db, _, oid = setup(progress=0)

        asyncio.run(engine.update_physical_progress(oid, 10, None, [], JE))
        asyncio.run(engine.update_physical_progress(oid, 25, None, [], JE))

        doc = stored(db)
        assert doc["ledger_version"] == 2
        assert [entry["previous_progress"] for entry in doc["progress_updates"]] == [0, 10]

    def test_combined_update_is_one_write(self, setup):
        engine, db, _, oid = setup(progress=10)

        result = asyncio.run(engine.update_combined_progress(oid, 30, 25000, "Week 4", None, [PHOTO], JE))

        assert result.accepted
        doc = stored(db)
        assert doc["ledger_version"] == 1
        assert len(doc["progress_updates"]) == 1
        assert len(doc["financial_progress_updates"]) == 1
        assert doc["financial_progress"] == 25

    def test_high_precision_progress_is_accepted(self, setup):
        engine, db, _, oid = setup(progress=1.1)

        result = asyncio.run(engine.update_physical_progress(oid, 12.345678901234567, None, [], JE))

        assert result.accepted
        assert stored(db)["physical_progress"] == 12.345678901234567

    def test_high_precision_bill_amount_is_accepted(self, setup):
        engine, db, _, oid = setup(bill_amount=0.1 + 0.2)

        result = asyncio.run(engine.update_financial_progress(oid, 1234.5678901234567, None, None, [], JE))

        assert result.accepted
        assert stored(db)["bill_submitted_amount"] == 1234.5678901234567


class TestCompletionStatus:

    def test_ongoing_project_completes_at_100(self, setup):
        engine, db, _, oid = setup(progress=80)

        result = asyncio.run(engine.update_physical_progress(oid, 100, "Handover", [PHOTO], JE))

        doc = stored(db)
        assert doc["status"] == "Completed"
        assert doc["status_history"][0]["previous_status"] == "Ongoing"
        assert isinstance(doc["status_workflow"]["completed_at"], datetime)
        assert result.detail["status_change"]["occurred"]

    def test_other_status_is_left_alone(self, setup):
        engine, db, _, oid = setup(progress=80, status="Submitted for Approval")

        result = asyncio.run(engine.update_physical_progress(oid, 100, "Handover", [PHOTO], JE))

        assert result.accepted
        assert stored(db)["status"] == "Submitted for Approval"
        change = result.detail["status_change"]
        assert not change["occurred"]
        assert "Manual status change" in change["message"]

    def test_financial_update_carries_no_status_message(self, setup):
        engine, _, _, oid = setup(progress=100, status="Submitted for Approval")

        result = asyncio.run(engine.update_financial_progress(oid, 10000, "RA bill 1", None, [], JE))

        assert result.accepted
        assert result.detail["status_change"]["message"] == ""


class TestRejectedUpdates:

    def test_rule_rejection_writes_nothing(self, setup):
        engine, db, client, oid = setup(progress=50)
        before = copy.deepcopy(stored(db))

        result = asyncio.run(engine.update_physical_progress(oid, 30, None, [], JE))

        assert result.reason is RejectionReason.BACKWARD_PROGRESS_NOT_ALLOWED
        assert stored(db) == before
        assert db.audit_logs.docs == []
        assert client.sessions[0].aborted

    def test_missing_project(self, setup):
        engine, _, _, _ = setup()

        result = asyncio.run(engine.update_physical_progress(ObjectId(), 10, None, [], JE))

        assert result.reason is RejectionReason.AGGREGATE_NOT_FOUND

    def test_concurrent_writer_is_detected(self, setup):
        engine, db, _, oid = setup(progress=20)

        def concurrent_commit(collection):
            collection.docs[0]["ledger_version"] += 1
            collection.before_update = None

        db.projects.before_update = concurrent_commit

        result = asyncio.run(engine.update_physical_progress(oid, 30, None, [], JE))

        assert result.reason is RejectionReason.CONCURRENT_MODIFICATION
        doc = stored(db)
        assert doc["physical_progress"] == 20
        assert doc["progress_updates"] == []
        assert doc["ledger_version"] == 1

    def test_transient_transaction_error_maps_to_conflict(self, setup):
        engine, db, _, oid = setup(progress=20)
        db.projects.update_error = PyMongoError("WriteConflict", error_labels=["TransientTransactionError"])

        result = asyncio.run(engine.update_physical_progress(oid, 30, None, [], JE))

        assert result.reason is RejectionReason.CONCURRENT_MODIFICATION

    def test_audit_failure_rolls_back_update(self, setup):
        engine, db, _, oid = setup(progress=20)
        db.audit_logs.insert_error = PyMongoError("disk full")

        result = asyncio.run(engine.update_physical_progress(oid, 30, None, [], JE))

        assert result.reason is RejectionReason.INTERNAL_FAILURE
        doc = stored(db)
        assert doc["physical_progress"] == 20
        assert doc["ledger_version"] == 0
        assert doc["progress_updates"] == []


class TestUpdateGates:

    def test_toggle_persists_and_audits(self, setup):
        engine, db, _, oid = setup()

        aggregate = asyncio.run(engine.set_update_gates(oid, {LogKind.PHYSICAL: False}, ADMIN))

        assert not aggregate.progress_updates_enabled
        assert stored(db)["progress_updates_enabled"] is False
        assert stored(db)["financial_progress_updates_enabled"] is True
        assert db.audit_logs.docs[0]["action_type"] == "TOGGLE_UPDATES"

        result = asyncio.run(engine.update_physical_progress(oid, 10, None, [], JE))
        assert result.reason is RejectionReason.UPDATES_DISABLED

    def test_toggle_missing_project(self, setup):
        engine, _, _, _ = setup()
        assert asyncio.run(engine.set_update_gates(ObjectId(), {LogKind.FINANCIAL: True}, ADMIN)) is None


class TestDocumentDiscard:

    def test_queues_each_document(self):
        db = FakeDB()
        queue = DocumentDiscardQueue(db)

        count = asyncio.run(queue.discard([PHOTO], "PRJ-ENG", "UnrealisticJump", "je-1"))

        assert count == 1
        record = db.discarded_documents.docs[0]
        assert record["retrieval_locator"] == PHOTO["retrieval_locator"]
        assert record["reason"] == "UnrealisticJump"
        assert record["deleted"] is False

    def test_nothing_to_discard(self):
        assert asyncio.run(DocumentDiscardQueue(FakeDB()).discard([], "PRJ-ENG", "InvalidValue")) == 0

    def test_queue_failure_is_reported_not_raised(self):
        db = FakeDB()
        db.discarded_documents.insert_error = PyMongoError("unavailable")

        assert asyncio.run(DocumentDiscardQueue(db).discard([PHOTO], "PRJ-ENG", "InvalidValue")) == 0

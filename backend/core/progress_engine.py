"""
PROGRESS LEDGER ENGINE

Runs the progress rules against stored projects:
1. Transaction Atomicity - read, validate, append, write and audit share one MongoDB transaction
2. No Lost Updates - the write is conditional on the ledger_version that was read
3. Invariant Enforcement - invariants are validated before commit
4. Typed Outcomes - every call returns an UpdateResult, persistence failures included

ALL updates wrapped in MongoDB transactions.
ALL rejections leave the stored project untouched.
"""

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError
from datetime import datetime
from typing import Optional, Dict, Any, Callable
import logging

from core.progress_ledger import (
    ProjectAggregate, UpdateResult, RejectionReason, LogKind,
    apply_progress_update, apply_financial_update, apply_combined_update,
    set_updates_enabled, complete_if_ongoing
)
from core.invariant_validator import LedgerInvariantValidator, InvariantViolationError

logger = logging.getLogger(__name__)

GATE_FIELDS = {
    LogKind.PHYSICAL: "progress_updates_enabled",
    LogKind.FINANCIAL: "financial_progress_updates_enabled",
}

LOG_FIELDS = {
    LogKind.PHYSICAL.value: "progress_updates",
    LogKind.FINANCIAL.value: "financial_progress_updates",
}


class ConcurrentModificationError(Exception):
    """Raised when the project changed between read and write"""
    def __init__(self, project_id, expected_version: int):
        self.project_id = project_id
        self.expected_version = expected_version
        super().__init__(
            f"Project {project_id} was modified concurrently (expected ledger_version {expected_version})"
        )


class ProgressLedgerEngine:
    """
    Progress Ledger Engine with:
    - ACID transactions per project
    - Optimistic version guard
    - Invariant enforcement
    - Audit trail inside the transaction
    """

    def __init__(self, client: AsyncIOMotorClient, db: AsyncIOMotorDatabase, audit_service=None):
        self.client = client
        self.db = db
        self.audit_service = audit_service
        self.invariant_validator = LedgerInvariantValidator()

    async def get_aggregate(self, project_oid) -> Optional[ProjectAggregate]:
        doc = await self.db.projects.find_one({"_id": project_oid})
        if not doc:
            return None
        return ProjectAggregate.from_document(doc)

    # =========================================================================
    # UPDATES
    # =========================================================================

    async def update_physical_progress(
        self,
        project_oid,
        proposed_progress,
        remarks: Optional[str],
        supporting_documents,
        actor: Dict[str, Any]
    ) -> UpdateResult:
        def rule(aggregate, now):
            return apply_progress_update(
                aggregate, proposed_progress, remarks, supporting_documents, actor, now
            )
        return await self._run_update(project_oid, actor, rule, "PROGRESS_UPDATE")

    async def update_financial_progress(
        self,
        project_oid,
        proposed_bill_amount,
        remarks: Optional[str],
        bill_details: Optional[Dict[str, Any]],
        supporting_documents,
        actor: Dict[str, Any]
    ) -> UpdateResult:
        def rule(aggregate, now):
            return apply_financial_update(
                aggregate, proposed_bill_amount, remarks, bill_details, supporting_documents, actor, now
            )
        return await self._run_update(project_oid, actor, rule, "FINANCIAL_PROGRESS_UPDATE")

    async def update_combined_progress(
        self,
        project_oid,
        proposed_progress,
        proposed_bill_amount,
        remarks: Optional[str],
        bill_details: Optional[Dict[str, Any]],
        supporting_documents,
        actor: Dict[str, Any]
    ) -> UpdateResult:
        def rule(aggregate, now):
            return apply_combined_update(
                aggregate, proposed_progress, proposed_bill_amount,
                remarks, bill_details, supporting_documents, actor, now
            )
        return await self._run_update(project_oid, actor, rule, "COMBINED_PROGRESS_UPDATE")

    async def _run_update(
        self,
        project_oid,
        actor: Dict[str, Any],
        rule: Callable[[ProjectAggregate, datetime], UpdateResult],
        action: str
    ) -> UpdateResult:
        """
        TRANSACTION: read -> rule -> invariants -> conditional write -> audit.
        Commits only when the rule accepted; every other path aborts.
        """
        try:
            async with await self.client.start_session() as session:
                async with session.start_transaction():
                    result = await self._apply_in_session(project_oid, actor, rule, action, session)
                    if not result.accepted:
                        await session.abort_transaction()
                    return result

        except ConcurrentModificationError as e:
            logger.warning(f"[CONFLICT] {action}: {str(e)}")
            return UpdateResult.reject(
                RejectionReason.CONCURRENT_MODIFICATION,
                project_id=str(project_oid)
            )
        except InvariantViolationError as e:
            logger.error(f"[INVARIANT VIOLATION] {action} on {project_oid}: {e.message} {e.details}")
            return UpdateResult.reject(
                RejectionReason.INTERNAL_FAILURE,
                project_id=str(project_oid),
                error=e.message
            )
        except PyMongoError as e:
            if e.has_error_label("TransientTransactionError"):
                logger.warning(f"[CONFLICT] {action} on {project_oid}: {str(e)}")
                return UpdateResult.reject(
                    RejectionReason.CONCURRENT_MODIFICATION,
                    project_id=str(project_oid)
                )
            logger.exception(f"[TRANSACTION ERROR] {action} on {project_oid}: {str(e)}")
            return UpdateResult.reject(
                RejectionReason.INTERNAL_FAILURE,
                project_id=str(project_oid),
                error=str(e)
            )

    async def _apply_in_session(self, project_oid, actor, rule, action, session) -> UpdateResult:
        doc = await self.db.projects.find_one({"_id": project_oid}, session=session)
        if not doc:
            return UpdateResult.reject(RejectionReason.AGGREGATE_NOT_FOUND, project_id=str(project_oid))

        aggregate = ProjectAggregate.from_document(doc)
        base_version = aggregate.ledger_version
        previous_status = aggregate.status
        now = datetime.utcnow()

        result = rule(aggregate, now)
        if not result.accepted:
            logger.info(f"{action} rejected for project:{aggregate.project_id}: {result.reason.value}")
            return result

        status_entry = None
        if LogKind.PHYSICAL.value in result.entries:
            status_entry = complete_if_ongoing(aggregate, actor, now)

        self.invariant_validator.validate_aggregate(aggregate)

        write = await self.db.projects.update_one(
            {"_id": project_oid, "ledger_version": base_version},
            self._build_update(aggregate, result, status_entry, now),
            session=session
        )
        if write.modified_count != 1:
            raise ConcurrentModificationError(project_oid, base_version)
        aggregate.ledger_version = base_version + 1

        if self.audit_service:
            await self.audit_service.log_action(
                module_name="PROGRESS",
                entity_type="PROJECT",
                entity_id=str(project_oid),
                action_type=action,
                user_id=actor.get("user_id"),
                project_id=aggregate.project_id,
                new_value={kind: entry.to_document() for kind, entry in result.entries.items()},
                session=session
            )

        result.detail["status_change"] = self._status_change(
            previous_status, aggregate, status_entry, LogKind.PHYSICAL.value in result.entries
        )
        for kind, entry in result.entries.items():
            logger.info(
                f"[TRANSACTION] {kind} progress updated for project:{aggregate.project_id} "
                f"by user:{actor.get('user_id')}: {self._describe_change(entry)}"
            )
        return result

    def _build_update(self, aggregate: ProjectAggregate, result: UpdateResult, status_entry, now) -> Dict[str, Any]:
        set_fields = {"updated_at": now}
        push_fields = {}

        if LogKind.PHYSICAL.value in result.entries:
            set_fields.update(aggregate.physical_fields())
        if LogKind.FINANCIAL.value in result.entries:
            set_fields.update(aggregate.financial_fields())
        for kind, entry in result.entries.items():
            push_fields[LOG_FIELDS[kind]] = entry.to_document()

        if status_entry:
            set_fields["status"] = aggregate.status
            set_fields["status_workflow.completed_at"] = now
            push_fields["status_history"] = status_entry

        return {
            "$set": set_fields,
            "$push": push_fields,
            "$inc": {"ledger_version": 1},
        }

    @staticmethod
    def _status_change(
        previous_status: str,
        aggregate: ProjectAggregate,
        status_entry,
        physical_updated: bool
    ) -> Dict[str, Any]:
        if status_entry:
            message = "Project status automatically changed to 'Completed'"
        elif physical_updated and aggregate.physical_progress == 100 and aggregate.status != "Completed":
            message = (
                f"Progress reached 100%, but project status is '{aggregate.status}' instead of 'Ongoing'. "
                f"Manual status change may be required."
            )
        else:
            message = ""
        return {
            "occurred": status_entry is not None,
            "message": message,
            "previous_status": previous_status,
            "new_status": aggregate.status,
        }

    @staticmethod
    def _describe_change(entry) -> str:
        if hasattr(entry, "new_bill_amount"):
            return (
                f"{entry.previous_bill_amount} -> {entry.new_bill_amount} "
                f"({entry.previous_financial_progress}% -> {entry.new_financial_progress}%)"
            )
        return f"{entry.previous_progress}% -> {entry.new_progress}%"

    # =========================================================================
    # ADMINISTRATIVE TOGGLES
    # =========================================================================

    async def set_update_gates(
        self,
        project_oid,
        gates: Dict[LogKind, bool],
        actor: Dict[str, Any]
    ) -> Optional[ProjectAggregate]:
        """
        Enable/disable progress updates. No business-rule validation.
        Returns the updated aggregate, or None when the project does not exist.
        """
        doc = await self.db.projects.find_one({"_id": project_oid})
        if not doc:
            return None

        aggregate = ProjectAggregate.from_document(doc)
        old_value = {GATE_FIELDS[kind]: getattr(aggregate, GATE_FIELDS[kind]) for kind in gates}
        for kind, enabled in gates.items():
            set_updates_enabled(aggregate, kind, enabled)
        new_value = {GATE_FIELDS[kind]: getattr(aggregate, GATE_FIELDS[kind]) for kind in gates}

        await self.db.projects.update_one(
            {"_id": project_oid},
            {"$set": {**new_value, "updated_at": datetime.utcnow()}}
        )

        if self.audit_service:
            await self.audit_service.log_action(
                module_name="PROGRESS",
                entity_type="PROJECT",
                entity_id=str(project_oid),
                action_type="TOGGLE_UPDATES",
                user_id=actor.get("user_id"),
                project_id=aggregate.project_id,
                old_value=old_value,
                new_value=new_value
            )

        logger.info(f"Progress update gates changed for project:{aggregate.project_id}: {new_value}")
        return aggregate

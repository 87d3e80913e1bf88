# Progress Ledger API Endpoints
#
# Integrated in server.py with:
# from progress_routes import create_progress_routes
# progress_router = create_progress_routes(client, db, audit_service, permission_checker)
# app.include_router(progress_router)

from fastapi import APIRouter, HTTPException, status, Depends, Query
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from bson import ObjectId, Decimal128
from datetime import datetime
from typing import Optional, Dict, Any, List
import logging
import math

from models import (
    ProgressUpdateRequest, FinancialProgressUpdateRequest, CombinedProgressUpdateRequest,
    ToggleRequest, ToggleAllRequest, FileRef,
    PROGRESS_UPDATE_DESIGNATIONS, TOGGLE_DESIGNATIONS
)
from audit_service import AuditService
from permissions import PermissionChecker
from auth import get_current_user
from core.progress_ledger import ProjectAggregate, UpdateResult, RejectionReason, LogKind
from core.progress_engine import ProgressLedgerEngine
from core.progress_statistics import ProgressStatisticsReporter
from core.document_discard import DocumentDiscardQueue
from core.update_log import (
    history, summarize_progress_log, summarize_financial_log, budget_trend,
    clamp_page_size, DEFAULT_HISTORY_PAGE_SIZE
)

logger = logging.getLogger(__name__)


def serialize_doc(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Serialize MongoDB document for JSON response (handles Decimal128, ObjectId, datetime)"""
    if doc is None:
        return None
    result = {}
    for key, value in doc.items():
        result[key] = _serialize_value(value)
    return result


def _serialize_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, Decimal128):
        return float(value.to_decimal())
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return serialize_doc(value)
    if isinstance(value, (list, tuple)):
        return [_serialize_value(item) for item in value]
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    return value


# ============================================
# REJECTION MAPPING
# ============================================

REJECTION_STATUS = {
    RejectionReason.UPDATES_DISABLED: status.HTTP_403_FORBIDDEN,
    RejectionReason.INVALID_VALUE: status.HTTP_400_BAD_REQUEST,
    RejectionReason.BACKWARD_PROGRESS_NOT_ALLOWED: status.HTTP_400_BAD_REQUEST,
    RejectionReason.BACKWARD_FINANCIAL_PROGRESS_NOT_ALLOWED: status.HTTP_400_BAD_REQUEST,
    RejectionReason.UNREALISTIC_JUMP: status.HTTP_400_BAD_REQUEST,
    RejectionReason.UNREALISTIC_FINANCIAL_JUMP: status.HTTP_400_BAD_REQUEST,
    RejectionReason.EXCEEDS_WORK_VALUE: status.HTTP_400_BAD_REQUEST,
    RejectionReason.COMPLETION_REQUIRES_DOCUMENTS: status.HTTP_400_BAD_REQUEST,
    RejectionReason.FINANCIAL_COMPLETION_REQUIRES_DOCUMENTS: status.HTTP_400_BAD_REQUEST,
    RejectionReason.FINAL_BILL_DETAILS_REQUIRED: status.HTTP_400_BAD_REQUEST,
    RejectionReason.AGGREGATE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    RejectionReason.CONCURRENT_MODIFICATION: status.HTTP_409_CONFLICT,
    RejectionReason.INTERNAL_FAILURE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

REJECTION_MESSAGES = {
    RejectionReason.UPDATES_DISABLED: "Updates are disabled for this project",
    RejectionReason.INVALID_VALUE: "Invalid value provided",
    RejectionReason.BACKWARD_PROGRESS_NOT_ALLOWED:
        "Significant backward progress is not allowed. Please contact administrator for corrections greater than 5%",
    RejectionReason.BACKWARD_FINANCIAL_PROGRESS_NOT_ALLOWED:
        "Significant backward financial progress is not allowed. Please contact administrator for corrections greater than 5% of work value",
    RejectionReason.UNREALISTIC_JUMP:
        "Progress increase exceeds reasonable limits. Maximum 50% increase per update",
    RejectionReason.UNREALISTIC_FINANCIAL_JUMP:
        "Bill amount increase exceeds reasonable limits. Maximum 50% of work value per update",
    RejectionReason.EXCEEDS_WORK_VALUE: "Bill submitted amount cannot exceed the work value",
    RejectionReason.COMPLETION_REQUIRES_DOCUMENTS:
        "Project completion (100% progress) requires at least one supporting document",
    RejectionReason.FINANCIAL_COMPLETION_REQUIRES_DOCUMENTS:
        "Financial completion (100%) requires at least one supporting document",
    RejectionReason.FINAL_BILL_DETAILS_REQUIRED:
        "Financial completion (100%) requires a bill number",
    RejectionReason.AGGREGATE_NOT_FOUND: "Project not found",
    RejectionReason.CONCURRENT_MODIFICATION:
        "Project was modified by another update. Please reload and try again",
    RejectionReason.INTERNAL_FAILURE: "Internal server error occurred while updating progress",
}


def rejection_response(result: UpdateResult) -> JSONResponse:
    reason = result.reason
    details = {} if reason is RejectionReason.INTERNAL_FAILURE else result.detail
    return JSONResponse(
        status_code=REJECTION_STATUS[reason],
        content={
            "success": False,
            "reason": reason.value,
            "message": REJECTION_MESSAGES[reason],
            "details": serialize_doc(details),
        }
    )


# ============================================
# RESPONSE SHAPING
# ============================================

def parse_object_id(project_id: str) -> ObjectId:
    if not ObjectId.is_valid(project_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid project ID format"
        )
    return ObjectId(project_id)


def documents_payload(documents: List[FileRef]) -> List[Dict[str, Any]]:
    return [doc.dict() for doc in documents]


def files_uploaded(documents: List[Dict[str, Any]]) -> Dict[str, Any]:
    types: Dict[str, int] = {}
    for doc in documents:
        mime_type = doc.get("mime_type") or "unknown"
        types[mime_type] = types.get(mime_type, 0) + 1
    return {
        "count": len(documents),
        "total_size": sum(doc.get("size_bytes") or 0 for doc in documents),
        "types": types,
    }


def progress_change(previous, new) -> Dict[str, Any]:
    difference = round(new - previous, 2)
    if difference > 0:
        change_type = "increase"
    elif difference < 0:
        change_type = "decrease"
    else:
        change_type = "no change"
    return {"from": previous, "to": new, "difference": difference, "change_type": change_type}


def project_snapshot(aggregate: ProjectAggregate) -> Dict[str, Any]:
    return {
        "id": str(aggregate.id) if aggregate.id is not None else None,
        "project_id": aggregate.project_id,
        "status": aggregate.status,
        "work_value": aggregate.work_value,
        "physical_progress": aggregate.physical_progress,
        "financial_progress": aggregate.financial_progress,
        "bill_submitted_amount": aggregate.bill_submitted_amount,
        "remaining_budget": aggregate.remaining_budget,
        "bill_number": aggregate.bill_number,
        "progress_updates_enabled": aggregate.progress_updates_enabled,
        "financial_progress_updates_enabled": aggregate.financial_progress_updates_enabled,
        "ledger_version": aggregate.ledger_version,
        "progress_summary": aggregate.progress_summary(),
    }


def accepted_response(result: UpdateResult, message: str) -> Dict[str, Any]:
    aggregate = result.aggregate
    data = {
        "project": project_snapshot(aggregate),
        "status_change": result.detail.get("status_change"),
    }

    physical = result.entries.get(LogKind.PHYSICAL.value)
    if physical:
        data["latest_progress_update"] = physical.to_document()
        data["progress_change"] = progress_change(physical.previous_progress, physical.new_progress)

    financial = result.entries.get(LogKind.FINANCIAL.value)
    if financial:
        data["latest_financial_progress_update"] = financial.to_document()
        data["financial_progress_change"] = progress_change(
            financial.previous_financial_progress, financial.new_financial_progress
        )
        data["amount_change"] = progress_change(financial.previous_bill_amount, financial.new_bill_amount)

    documents = []
    for entry in result.entries.values():
        for doc in entry.supporting_documents:
            if doc not in documents:
                documents.append(doc)
    data["files_uploaded"] = files_uploaded(documents)

    return serialize_doc({"success": True, "message": message, "data": data})


def create_progress_routes(
    client: AsyncIOMotorClient,
    db: AsyncIOMotorDatabase,
    audit_service: AuditService,
    permission_checker: PermissionChecker
) -> APIRouter:
    """Create progress ledger API router with update, toggle, history and statistics endpoints"""

    router = APIRouter(prefix="/api/projects", tags=["Progress Ledger"])
    engine = ProgressLedgerEngine(client, db, audit_service)
    reporter = ProgressStatisticsReporter(db)
    discard_queue = DocumentDiscardQueue(db)

    async def finish_update(result: UpdateResult, documents, project_id: str, user: dict, message: str):
        if result.accepted:
            return accepted_response(result, message)

        await discard_queue.discard(documents, project_id, result.reason.value, user["user_id"])
        if result.reason is RejectionReason.INTERNAL_FAILURE:
            logger.error(f"Progress update failed for project:{project_id}: {result.detail}")
        return rejection_response(result)

    async def update_target(project_id: str, documents, user: dict) -> ObjectId:
        try:
            return parse_object_id(project_id)
        except HTTPException:
            await discard_queue.discard(documents, project_id, RejectionReason.INVALID_VALUE.value, user["user_id"])
            raise

    async def load_aggregate(project_oid: ObjectId) -> ProjectAggregate:
        aggregate = await engine.get_aggregate(project_oid)
        if not aggregate:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Project not found"
            )
        return aggregate

    def statistics_filters(status_, district, created_by, fund, type_of_work, nature_of_work, start_date, end_date):
        return {
            "status": status_,
            "district": district,
            "created_by": created_by,
            "fund": fund,
            "type_of_work": type_of_work,
            "nature_of_work": nature_of_work,
            "start_date": start_date,
            "end_date": end_date,
        }

    # ============================================
    # STATISTICS ENDPOINTS
    # ============================================

    @router.get("/progress/statistics")
    async def get_progress_statistics(
        status_filter: Optional[str] = Query(None, alias="status"),
        district: Optional[str] = None,
        created_by: Optional[str] = None,
        fund: Optional[str] = None,
        type_of_work: Optional[str] = None,
        nature_of_work: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        current_user: dict = Depends(get_current_user)
    ):
        """Physical progress statistics across projects"""
        await permission_checker.get_authenticated_user(current_user)
        filters = statistics_filters(
            status_filter, district, created_by, fund, type_of_work, nature_of_work, start_date, end_date
        )
        data = await reporter.progress_statistics(filters)
        return serialize_doc({
            "success": True,
            "message": "Progress statistics retrieved successfully",
            "data": data,
        })

    @router.get("/financial-progress/statistics")
    async def get_financial_progress_statistics(
        status_filter: Optional[str] = Query(None, alias="status"),
        district: Optional[str] = None,
        created_by: Optional[str] = None,
        fund: Optional[str] = None,
        type_of_work: Optional[str] = None,
        nature_of_work: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        current_user: dict = Depends(get_current_user)
    ):
        """Financial progress statistics across projects"""
        await permission_checker.get_authenticated_user(current_user)
        filters = statistics_filters(
            status_filter, district, created_by, fund, type_of_work, nature_of_work, start_date, end_date
        )
        data = await reporter.financial_progress_statistics(filters)
        return serialize_doc({
            "success": True,
            "message": "Financial progress statistics retrieved successfully",
            "data": data,
        })

    # ============================================
    # UPDATE ENDPOINTS
    # ============================================

    @router.put("/{project_id}/progress")
    async def update_progress(
        project_id: str,
        update_data: ProgressUpdateRequest,
        current_user: dict = Depends(get_current_user)
    ):
        """Update physical progress (JE only)"""
        user = await permission_checker.get_authenticated_user(current_user)
        await permission_checker.check_designation(user, PROGRESS_UPDATE_DESIGNATIONS, "update project progress")
        documents = documents_payload(update_data.supporting_documents)
        project_oid = await update_target(project_id, documents, user)

        result = await engine.update_physical_progress(
            project_oid,
            update_data.progress,
            update_data.remarks,
            documents,
            permission_checker.actor_for(user)
        )
        return await finish_update(result, documents, project_id, user, "Project progress updated successfully")

    @router.put("/{project_id}/financial-progress")
    async def update_financial_progress(
        project_id: str,
        update_data: FinancialProgressUpdateRequest,
        current_user: dict = Depends(get_current_user)
    ):
        """Update bill submitted amount and derived financial progress (JE only)"""
        user = await permission_checker.get_authenticated_user(current_user)
        await permission_checker.check_designation(
            user, PROGRESS_UPDATE_DESIGNATIONS, "update project financial progress"
        )
        documents = documents_payload(update_data.supporting_documents)
        project_oid = await update_target(project_id, documents, user)

        result = await engine.update_financial_progress(
            project_oid,
            update_data.new_bill_amount,
            update_data.remarks,
            update_data.bill_details.dict() if update_data.bill_details else None,
            documents,
            permission_checker.actor_for(user)
        )
        return await finish_update(
            result, documents, project_id, user, "Project financial progress updated successfully"
        )

    @router.put("/{project_id}/progress/combined")
    async def update_combined_progress(
        project_id: str,
        update_data: CombinedProgressUpdateRequest,
        current_user: dict = Depends(get_current_user)
    ):
        """Update physical and financial progress together, all or nothing (JE only)"""
        user = await permission_checker.get_authenticated_user(current_user)
        await permission_checker.check_designation(user, PROGRESS_UPDATE_DESIGNATIONS, "update project progress")
        documents = documents_payload(update_data.supporting_documents)
        project_oid = await update_target(project_id, documents, user)

        result = await engine.update_combined_progress(
            project_oid,
            update_data.progress,
            update_data.new_bill_amount,
            update_data.remarks,
            update_data.bill_details.dict() if update_data.bill_details else None,
            documents,
            permission_checker.actor_for(user)
        )
        return await finish_update(result, documents, project_id, user, "Project progress updated successfully")

    # ============================================
    # TOGGLE ENDPOINTS
    # ============================================

    async def toggle(project_id: str, gates: Dict[LogKind, bool], current_user: dict):
        user = await permission_checker.get_authenticated_user(current_user)
        await permission_checker.check_designation(user, TOGGLE_DESIGNATIONS, "toggle progress updates")
        project_oid = parse_object_id(project_id)

        aggregate = await engine.set_update_gates(project_oid, gates, permission_checker.actor_for(user))
        if not aggregate:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Project not found"
            )

        return serialize_doc({
            "success": True,
            "message": "Progress update settings changed successfully",
            "data": {
                "id": project_id,
                "project_id": aggregate.project_id,
                "progress_updates_enabled": aggregate.progress_updates_enabled,
                "financial_progress_updates_enabled": aggregate.financial_progress_updates_enabled,
                "updated_by": permission_checker.actor_for(user),
                "updated_at": datetime.utcnow(),
            }
        })

    @router.patch("/{project_id}/progress/toggle")
    async def toggle_progress_updates(
        project_id: str,
        toggle_data: ToggleRequest,
        current_user: dict = Depends(get_current_user)
    ):
        """Enable/disable physical progress updates (ADMIN, AEE, CE, MD)"""
        return await toggle(project_id, {LogKind.PHYSICAL: toggle_data.enabled}, current_user)

    @router.patch("/{project_id}/financial-progress/toggle")
    async def toggle_financial_progress_updates(
        project_id: str,
        toggle_data: ToggleRequest,
        current_user: dict = Depends(get_current_user)
    ):
        """Enable/disable financial progress updates (ADMIN, AEE, CE, MD)"""
        return await toggle(project_id, {LogKind.FINANCIAL: toggle_data.enabled}, current_user)

    @router.patch("/{project_id}/progress/toggle-all")
    async def toggle_all_progress_updates(
        project_id: str,
        toggle_data: ToggleAllRequest,
        current_user: dict = Depends(get_current_user)
    ):
        """Enable/disable both kinds of progress updates at once (ADMIN, AEE, CE, MD)"""
        gates = {}
        if toggle_data.progress_enabled is not None:
            gates[LogKind.PHYSICAL] = toggle_data.progress_enabled
        if toggle_data.financial_progress_enabled is not None:
            gates[LogKind.FINANCIAL] = toggle_data.financial_progress_enabled
        if not gates:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="At least one of progress_enabled or financial_progress_enabled is required"
            )
        return await toggle(project_id, gates, current_user)

    # ============================================
    # HISTORY ENDPOINTS
    # ============================================

    @router.get("/{project_id}/progress/history")
    async def get_progress_history(
        project_id: str,
        page: int = Query(1, ge=1),
        limit: int = Query(DEFAULT_HISTORY_PAGE_SIZE, ge=1),
        current_user: dict = Depends(get_current_user)
    ):
        """Paginated physical progress log, newest first, with a whole-log summary"""
        await permission_checker.get_authenticated_user(current_user)
        aggregate = await load_aggregate(parse_object_id(project_id))
        page_data = history(aggregate, LogKind.PHYSICAL, page, clamp_page_size(limit))

        return serialize_doc({
            "success": True,
            "message": "Progress history retrieved successfully",
            "data": {
                "project": project_snapshot(aggregate),
                "progress_history": page_data.to_dict(),
                "summary": summarize_progress_log(aggregate),
            }
        })

    @router.get("/{project_id}/financial-progress/history")
    async def get_financial_progress_history(
        project_id: str,
        page: int = Query(1, ge=1),
        limit: int = Query(DEFAULT_HISTORY_PAGE_SIZE, ge=1),
        current_user: dict = Depends(get_current_user)
    ):
        """Paginated financial progress log, newest first, with a whole-log summary"""
        await permission_checker.get_authenticated_user(current_user)
        aggregate = await load_aggregate(parse_object_id(project_id))
        page_data = history(aggregate, LogKind.FINANCIAL, page, clamp_page_size(limit))

        return serialize_doc({
            "success": True,
            "message": "Financial progress history retrieved successfully",
            "data": {
                "project": project_snapshot(aggregate),
                "financial_progress_history": page_data.to_dict(),
                "summary": summarize_financial_log(aggregate),
                "budget_trend": budget_trend(aggregate),
            }
        })

    return router

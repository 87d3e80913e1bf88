from motor.motor_asyncio import AsyncIOMotorDatabase
from datetime import datetime
from typing import Optional, Dict, Any
from fastapi import HTTPException, status
import logging

logger = logging.getLogger(__name__)

# ARCHITECTURAL GUARD: entity types that are never deleted, only soft-disabled
NON_DELETABLE_ENTITY_TYPES = [
    "PROJECT",
    "PROGRESS_UPDATE",
    "FINANCIAL_PROGRESS_UPDATE",
]


class AuditService:
    """Service for immutable audit logging"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db.audit_logs

    def enforce_delete_guard(self, entity_type: str, action_type: str):
        """
        ARCHITECTURAL GUARD: Projects and their progress logs are never deleted.
        Updates are disabled through the progress toggles instead.

        Raises HTTPException if attempting to delete a protected entity.
        """
        if action_type == "DELETE" and entity_type in NON_DELETABLE_ENTITY_TYPES:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"ARCHITECTURAL GUARD: Cannot DELETE {entity_type}. Disable progress updates instead."
            )

    async def log_action(
        self,
        module_name: str,
        entity_type: str,
        entity_id: str,
        action_type: str,
        user_id: str,
        project_id: Optional[str] = None,
        old_value: Optional[Dict[str, Any]] = None,
        new_value: Optional[Dict[str, Any]] = None,
        session=None
    ):
        """
        Log an action to audit trail (INSERT ONLY).

        With a session the insert is part of the caller's transaction and
        failures propagate so the transaction aborts. Without one, a failed
        audit insert is logged and does not fail the main operation.
        """
        self.enforce_delete_guard(entity_type, action_type)

        audit_entry = {
            "project_id": project_id,
            "module_name": module_name,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "action_type": action_type,
            "old_value_json": old_value,
            "new_value_json": new_value,
            "user_id": user_id,
            "timestamp": datetime.utcnow()
        }

        if session is not None:
            await self.collection.insert_one(audit_entry, session=session)
            logger.info(f"Audit log created: {action_type} on {entity_type}:{entity_id} by user:{user_id}")
            return

        try:
            await self.collection.insert_one(audit_entry)
            logger.info(f"Audit log created: {action_type} on {entity_type}:{entity_id} by user:{user_id}")
        except Exception as e:
            logger.error(f"Failed to create audit log: {str(e)}")

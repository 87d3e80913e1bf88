"""
Discard queue for supporting documents of failed update attempts.

Files are uploaded by the storage collaborator before an update is attempted.
When the update is rejected or fails, the caller hands the file references
here; the storage side deletes everything queued in `discarded_documents`.
"""

from motor.motor_asyncio import AsyncIOMotorDatabase
from datetime import datetime
from typing import Optional, Dict, Any, Iterable
import logging

logger = logging.getLogger(__name__)


class DocumentDiscardQueue:

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db.discarded_documents

    async def discard(
        self,
        documents: Iterable[Dict[str, Any]],
        project_id: Optional[str],
        reason: str,
        user_id: Optional[str] = None
    ) -> int:
        """Queue documents for deletion. Returns the number queued."""
        now = datetime.utcnow()
        records = [
            {
                "project_id": project_id,
                "stored_name": doc.get("stored_name"),
                "original_name": doc.get("original_name"),
                "retrieval_locator": doc.get("retrieval_locator"),
                "reason": reason,
                "requested_by": user_id,
                "deleted": False,
                "queued_at": now,
            }
            for doc in documents
        ]
        if not records:
            return 0

        try:
            await self.collection.insert_many(records)
        except Exception as e:
            # orphans are logged for manual cleanup
            logger.error(
                f"Failed to queue {len(records)} document(s) for discard "
                f"(project:{project_id}, reason:{reason}): {str(e)}; "
                f"locators={[r['retrieval_locator'] for r in records]}"
            )
            return 0

        logger.info(f"Queued {len(records)} document(s) for discard: project:{project_id}, reason:{reason}")
        return len(records)

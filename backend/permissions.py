from fastapi import HTTPException, status, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from bson import ObjectId
from typing import List
from auth import get_current_user
import logging

logger = logging.getLogger(__name__)

class PermissionChecker:
    """
    Permission enforcement for progress ledger routes.

    RULES:
    1. User must be authenticated
    2. User must have active_status = TRUE
    3. Designation-based permissions apply (JE updates, ADMIN/AEE/CE/MD toggles)
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def get_authenticated_user(self, current_user: dict = Depends(get_current_user)):
        """Get and validate authenticated user"""
        user_id = current_user.get("user_id")

        if not ObjectId.is_valid(user_id):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authentication credentials"
            )

        # Fetch user from database
        user = await self.db.users.find_one({"_id": ObjectId(user_id)})

        if not user:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="User not found"
            )

        # Check active status
        if not user.get("active_status", False):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="User account is inactive"
            )

        # Convert _id to user_id for consistency
        user["user_id"] = str(user.pop("_id"))

        return user

    async def check_designation(self, user: dict, allowed: List[str], operation: str):
        """Check that the user's designation is one of allowed"""
        if user.get("designation") not in allowed:
            logger.warning(
                f"Permission denied: user:{user.get('user_id')} ({user.get('designation')}) "
                f"attempted {operation}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Only {', '.join(allowed)} can {operation}"
            )
        return True

    @staticmethod
    def actor_for(user: dict) -> dict:
        """Actor snapshot recorded on log entries"""
        return {
            "user_id": user.get("user_id"),
            "name": user.get("name"),
            "role": user.get("designation"),
        }

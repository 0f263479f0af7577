"""
app/services/user_service.py

Purpose: User profile data

- Create or fetch user records by Telegram id
- Persist profile fields and the profile photo
- Profile completion percentage
- Live location with expiry for nearby search
"""

from app.core.exceptions import ValidationError
from app.db.mongo import get_users_collection
from app.core.logging import get_logger, LogContext
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

logger = get_logger(__name__)


# Fields counted towards profile completion
PROFILE_FIELDS = (
    "description",
    "interests",
    "age",
    "gender",
    "min_age_preference",
    "max_age_preference",
    "gender_preference",
    "photo_file_id",
)


def calculate_profile_completion(user: Optional[Dict[str, Any]]) -> int:
    """
    Percentage of PROFILE_FIELDS that are filled in.

    Args:
        user: User document (None counts as empty)

    Returns:
        Integer percentage 0-100
    """
    if not user:
        return 0
    filled = sum(1 for field in PROFILE_FIELDS if user.get(field) not in (None, "", []))
    return int(filled * 100 / len(PROFILE_FIELDS))


class UserService:
    """Profile collaborator backed by the users collection."""

    def __init__(self, collection=None):
        self._collection = collection

    @property
    def users(self):
        return self._collection if self._collection is not None else get_users_collection()

    async def get_user_by_telegram_id(self, telegram_id: int) -> Optional[Dict[str, Any]]:
        return await self.users.find_one({"telegram_id": telegram_id})

    async def get_or_create_user(
        self,
        telegram_id: int,
        username: Optional[str] = None,
        first_name: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Retrieves an existing user or creates a new one.

        Args:
            telegram_id: Telegram user id (equals the private chat id)
            username: Telegram @username, if any
            first_name: Display name

        Returns:
            User document
        """
        with LogContext(chat_id=telegram_id):
            now = datetime.utcnow()
            user = await self.users.find_one({"telegram_id": telegram_id})

            if not user:
                logger.info("Creating new user")
                user = {
                    "telegram_id": telegram_id,
                    "username": username,
                    "first_name": first_name,
                    "description": None,
                    "interests": None,
                    "age": None,
                    "gender": None,
                    "min_age_preference": None,
                    "max_age_preference": None,
                    "gender_preference": None,
                    "photo_file_id": None,
                    "location": None,
                    "location_expires_at": None,
                    "search_radius_km": None,
                    "created_at": now,
                    "last_active": now,
                }
                await self.users.insert_one(user)
                logger.info("✅ New user created")
            else:
                update = {"last_active": now}
                if username and username != user.get("username"):
                    update["username"] = username
                if first_name and first_name != user.get("first_name"):
                    update["first_name"] = first_name
                await self.users.update_one({"telegram_id": telegram_id}, {"$set": update})
                user.update(update)

            return user

    async def update_profile_field(self, telegram_id: int, field: str, value: Any) -> bool:
        """
        Updates a single profile field.

        Raises:
            ValidationError: If the field is not a profile field
        """
        if field not in PROFILE_FIELDS:
            raise ValidationError(f"Unknown profile field: {field}", details={"field": field})

        result = await self.users.update_one(
            {"telegram_id": telegram_id},
            {"$set": {field: value, "last_active": datetime.utcnow()}},
            upsert=True
        )
        success = result.modified_count > 0 or result.upserted_id is not None
        if success:
            logger.info(f"Profile field updated: {field}", extra={"chat_id": telegram_id})
        else:
            logger.debug(f"Profile field unchanged: {field}", extra={"chat_id": telegram_id})
        return success

    async def update_user_photo(self, telegram_id: int, photo_file_id: str) -> bool:
        return await self.update_profile_field(telegram_id, "photo_file_id", photo_file_id)

    async def get_profile_completion_percentage(self, telegram_id: int) -> int:
        user = await self.get_user_by_telegram_id(telegram_id)
        return calculate_profile_completion(user)

    async def update_user_location(
        self,
        telegram_id: int,
        latitude: float,
        longitude: float,
        duration_hours: int,
        radius_km: int
    ) -> bool:
        """
        Stores the user's live location; it stops matching searches once
        `duration_hours` have passed.
        """
        now = datetime.utcnow()
        result = await self.users.update_one(
            {"telegram_id": telegram_id},
            {
                "$set": {
                    "location": {"type": "Point", "coordinates": [longitude, latitude]},
                    "location_expires_at": now + timedelta(hours=duration_hours),
                    "search_radius_km": radius_km,
                    "last_active": now,
                }
            },
            upsert=True
        )
        logger.info(
            f"📍 Location updated for {duration_hours}h, radius {radius_km}km",
            extra={"chat_id": telegram_id}
        )
        return result.modified_count > 0 or result.upserted_id is not None


# Singleton instance
user_service = UserService()

"""
app/services/meeting_service.py

Purpose: Durable meeting requests

- Creates meeting request records (sender, receiver, message, window, photo)
- Finds the pending request between two users
- Moves requests to ACCEPTED / DECLINED / EXPIRED
"""

from bson import ObjectId
from bson.errors import InvalidId
from datetime import datetime
from pymongo import DESCENDING
from pymongo.errors import PyMongoError
from typing import Optional, Dict, Any

from app.core.exceptions import MeetingDomainError
from app.core.logging import get_logger, LogContext
from app.db.mongo import get_meeting_requests_collection
from app.flow.states import MeetingStatus

logger = get_logger(__name__)


class MeetingService:
    """Meeting collaborator backed by the meeting_requests collection."""

    def __init__(self, collection=None):
        self._collection = collection

    @property
    def meetings(self):
        return self._collection if self._collection is not None else get_meeting_requests_collection()

    async def create_meeting_request(
        self,
        sender_id: int,
        receiver_id: int,
        message: str,
        proposed_from: datetime,
        proposed_until: datetime,
        photo_file_id: Optional[str] = None
    ) -> str:
        """
        Persists a new PENDING meeting request.

        Returns:
            The request id

        Raises:
            MeetingDomainError: If the record cannot be stored
        """
        with LogContext(chat_id=sender_id, partner_id=receiver_id):
            if proposed_until <= proposed_from:
                raise MeetingDomainError("Meeting window must end after it starts")

            now = datetime.utcnow()
            document = {
                "sender_id": sender_id,
                "receiver_id": receiver_id,
                "message": message,
                "photo_file_id": photo_file_id,
                "proposed_from": proposed_from,
                "proposed_until": proposed_until,
                "status": MeetingStatus.PENDING.value,
                "created_at": now,
                "updated_at": now,
            }

            try:
                result = await self.meetings.insert_one(document)
            except PyMongoError as e:
                logger.error(f"Failed to store meeting request: {e}", exc_info=True)
                raise MeetingDomainError("Could not store meeting request") from e

            request_id = str(result.inserted_id)
            logger.info("📨 Meeting request stored", extra={"request_id": request_id})
            return request_id

    async def get_pending_request(
        self,
        sender_id: int,
        receiver_id: int,
        now: Optional[datetime] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Latest PENDING request from sender to receiver whose window is still
        open, with "id" as a string.
        """
        now = now or datetime.utcnow()
        try:
            cursor = self.meetings.find(
                {
                    "sender_id": sender_id,
                    "receiver_id": receiver_id,
                    "status": MeetingStatus.PENDING.value,
                    "proposed_until": {"$gt": now},
                }
            ).sort("created_at", DESCENDING).limit(1)
            documents = await cursor.to_list(length=1)
        except PyMongoError as e:
            logger.error(f"Failed to look up meeting request: {e}", exc_info=True)
            raise MeetingDomainError("Could not look up meeting request") from e

        if not documents:
            return None
        document = documents[0]
        document["id"] = str(document.pop("_id"))
        return document

    async def update_status(self, request_id: str, status: MeetingStatus) -> bool:
        """
        Moves a PENDING request to `status`.

        Returns:
            True if a pending request was updated
        """
        try:
            object_id = ObjectId(request_id)
        except (InvalidId, TypeError) as e:
            raise MeetingDomainError(f"Invalid meeting request id: {request_id}") from e

        try:
            result = await self.meetings.update_one(
                {"_id": object_id, "status": MeetingStatus.PENDING.value},
                {"$set": {"status": status.value, "updated_at": datetime.utcnow()}}
            )
        except PyMongoError as e:
            logger.error(f"Failed to update meeting request: {e}", exc_info=True)
            raise MeetingDomainError("Could not update meeting request") from e

        updated = result.modified_count > 0
        if updated:
            logger.info(f"Meeting request -> {status.value}", extra={"request_id": request_id})
        else:
            logger.warning(
                f"Meeting request not pending, status {status.value} not applied",
                extra={"request_id": request_id}
            )
        return updated

    async def expire_overdue_requests(self, now: Optional[datetime] = None) -> int:
        """
        Marks every PENDING request whose window has ended as EXPIRED.

        Returns:
            Number of expired requests
        """
        now = now or datetime.utcnow()
        result = await self.meetings.update_many(
            {"status": MeetingStatus.PENDING.value, "proposed_until": {"$lt": now}},
            {"$set": {"status": MeetingStatus.EXPIRED.value, "updated_at": now}}
        )
        if result.modified_count:
            logger.info(f"⌛ Expired {result.modified_count} meeting requests")
        return result.modified_count


# Singleton instance
meeting_service = MeetingService()

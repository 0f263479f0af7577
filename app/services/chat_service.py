"""
app/services/chat_service.py

Purpose: Chat message log

- Stores messages relayed between the participants of an accepted meeting
"""

from datetime import datetime
from typing import Optional

from app.core.logging import get_logger
from app.db.mongo import get_chat_messages_collection

logger = get_logger(__name__)


class ChatService:
    """Chat-log collaborator backed by the chat_messages collection."""

    def __init__(self, collection=None):
        self._collection = collection

    @property
    def messages(self):
        return self._collection if self._collection is not None else get_chat_messages_collection()

    async def save_message(
        self,
        meeting_request_id: Optional[str],
        sender_id: int,
        receiver_id: int,
        text: Optional[str] = None,
        photo_file_id: Optional[str] = None
    ) -> str:
        result = await self.messages.insert_one({
            "meeting_request_id": meeting_request_id,
            "sender_id": sender_id,
            "receiver_id": receiver_id,
            "text": text,
            "photo_file_id": photo_file_id,
            "sent_at": datetime.utcnow(),
        })
        logger.debug("Chat message stored", extra={"chat_id": sender_id, "request_id": meeting_request_id})
        return str(result.inserted_id)


# Singleton instance
chat_service = ChatService()

"""
app/db/indexes.py

Purpose: Database index management

- Unique user identity
- Geospatial index for nearby search
- Lookup indexes for meeting requests and chat logs
"""

from pymongo import ASCENDING, DESCENDING, GEOSPHERE

from app.db.mongo import (
    get_users_collection,
    get_meeting_requests_collection,
    get_chat_messages_collection
)
from app.core.logging import get_logger

logger = get_logger(__name__)


async def create_indexes():
    """
    Creates all necessary database indexes.
    This function is idempotent - safe to run multiple times.
    """
    try:
        users = get_users_collection()
        meetings = get_meeting_requests_collection()
        messages = get_chat_messages_collection()

        logger.info("Creating database indexes...")

        # ==============================================
        # USERS
        # ==============================================

        await users.create_index("telegram_id", unique=True, name="telegram_id_unique")
        logger.debug("Created unique index on users.telegram_id")

        await users.create_index([("location", GEOSPHERE)], name="location_2dsphere")
        logger.debug("Created 2dsphere index on users.location")

        await users.create_index("location_expires_at", name="location_expires_idx")
        logger.debug("Created index on users.location_expires_at")

        # ==============================================
        # MEETING REQUESTS
        # ==============================================

        await meetings.create_index(
            [("sender_id", ASCENDING), ("receiver_id", ASCENDING), ("status", ASCENDING), ("created_at", DESCENDING)],
            name="sender_receiver_status_idx"
        )
        logger.debug("Created compound index on meeting_requests sender/receiver/status")

        await meetings.create_index(
            [("status", ASCENDING), ("proposed_until", ASCENDING)],
            name="status_expiry_idx"
        )
        logger.debug("Created index on meeting_requests status/proposed_until")

        # ==============================================
        # CHAT MESSAGES
        # ==============================================

        await messages.create_index(
            [("meeting_request_id", ASCENDING), ("sent_at", ASCENDING)],
            name="meeting_messages_idx"
        )
        logger.debug("Created index on chat_messages meeting_request_id/sent_at")

        logger.info("✅ Database indexes created")

    except Exception as e:
        logger.error(f"Error creating indexes: {e}", exc_info=True)
        raise

"""
Database initialization script

Creates the NearMeet indexes and prints what exists:
    python scripts/init_db.py
"""

import asyncio
import sys
from pathlib import Path
from dotenv import load_dotenv

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load environment variables before settings are read
load_dotenv()

from app.core.logging import setup_logging, get_logger
from app.db.indexes import create_indexes
from app.db.mongo import close_mongo_connection, connect_to_mongo, get_database

setup_logging()
logger = get_logger("scripts.init_db")

COLLECTIONS = ("users", "meeting_requests", "chat_messages")


async def main():
    logger.info("=" * 60)
    logger.info("  NearMeet Database Setup")
    logger.info("=" * 60)

    await connect_to_mongo()
    try:
        await create_indexes()

        db = get_database()
        logger.info("🔍 Verifying indexes...")
        for collection_name in COLLECTIONS:
            indexes = await db[collection_name].index_information()
            logger.info(f"  {collection_name}:")
            for index_name in indexes:
                if index_name != "_id_":
                    logger.info(f"    ✅ {index_name}")

        logger.info("📊 Current documents:")
        for collection_name in COLLECTIONS:
            count = await db[collection_name].count_documents({})
            logger.info(f"  {collection_name}: {count}")

        logger.info("✅ Database initialization complete!")
    finally:
        await close_mongo_connection()


if __name__ == "__main__":
    asyncio.run(main())

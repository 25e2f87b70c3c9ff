"""
MongoDB async database connection using Motor.
Provides database instance and collection access.
"""

import logging
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING
from typing import Optional
from .config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

TOKENS = "tokens"
QUEUE_CONFIG = "queue_config"
QUEUE_LANES = "queue_lanes"


class Database:
    """MongoDB database connection manager."""

    client: Optional[AsyncIOMotorClient] = None
    db: Optional[AsyncIOMotorDatabase] = None

    @classmethod
    async def connect(cls):
        """Connect to MongoDB."""
        cls.client = AsyncIOMotorClient(settings.MONGODB_URL)
        cls.db = cls.client[settings.DATABASE_NAME]

        # Verify connection
        await cls.client.admin.command('ping')
        logger.info("Connected to MongoDB: %s", settings.DATABASE_NAME)

        await cls.create_indexes()

    @classmethod
    async def disconnect(cls):
        """Disconnect from MongoDB."""
        if cls.client:
            cls.client.close()
            logger.info("Disconnected from MongoDB")
        cls.client = None
        cls.db = None

    @classmethod
    async def create_indexes(cls):
        """Create the token indexes.

        The unique indexes are the write-time guards of the queue:
        one token per patient per shift and day, one emergency token per
        patient per day, and dense sequence numbers per partition.
        """
        if cls.db is None:
            return

        tokens = cls.db[TOKENS]
        await tokens.create_index(
            [("patient_id", ASCENDING), ("date", ASCENDING), ("shift", ASCENDING)],
            unique=True,
        )
        await tokens.create_index(
            [("patient_id", ASCENDING), ("date", ASCENDING), ("lane", ASCENDING)],
            unique=True,
        )
        await tokens.create_index(
            [
                ("date", ASCENDING),
                ("shift", ASCENDING),
                ("is_emergency", ASCENDING),
                ("sequence_number", ASCENDING),
            ],
            unique=True,
        )
        await tokens.create_index(
            [("date", ASCENDING), ("shift", ASCENDING), ("status", ASCENDING)]
        )
        await tokens.create_index(
            [("is_emergency", ASCENDING), ("date", ASCENDING), ("shift", ASCENDING)]
        )

        logger.debug("Database indexes created")

    @classmethod
    def get_collection(cls, name: str):
        """Get a collection by name."""
        if cls.db is None:
            raise RuntimeError("Database not connected")
        return cls.db[name]


"""Motor client lifecycle for the intake store."""

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from typing import Dict, List, Optional, Tuple
from cardio_intake.config.settings import settings
import logging

logger = logging.getLogger(__name__)

# (field, unique) pairs per collection setting
INDEXES: Dict[str, List[Tuple[str, bool]]] = {
    "mongodb_collection_patients": [("id", True), ("channel_id", False), ("email", False)],
    "mongodb_collection_symptoms": [("name", True)],
    "mongodb_collection_complaints": [("patient_id", False)],
    "mongodb_collection_chat_history": [("patient_id", False)],
}


class Database:
    """Process-wide handle on the MongoDB client and intake database."""

    client: Optional[AsyncIOMotorClient] = None
    database: Optional[AsyncIOMotorDatabase] = None

    @classmethod
    async def connect_db(cls):
        """Open the client, verify it answers and create lookup indexes."""
        cls.client = AsyncIOMotorClient(settings.mongodb_uri)
        cls.database = cls.client[settings.mongodb_database]

        try:
            await cls.ping()
        except Exception as e:
            logger.error(f"❌ MongoDB at {settings.mongodb_database} unreachable: {e}")
            raise

        logger.info(f"🗄️ Using MongoDB database '{settings.mongodb_database}'")
        await cls.ensure_indexes()

    @classmethod
    async def ensure_indexes(cls):
        for setting_name, fields in INDEXES.items():
            collection = cls.get_collection(getattr(settings, setting_name))
            for field, unique in fields:
                await collection.create_index(field, unique=unique)
        logger.debug("Intake indexes in place")

    @classmethod
    async def ping(cls):
        await cls.get_database().command("ping")

    @classmethod
    async def close_db(cls):
        if cls.client is None:
            return
        cls.client.close()
        cls.client = None
        cls.database = None
        logger.info("MongoDB client closed")

    @classmethod
    def get_database(cls) -> AsyncIOMotorDatabase:
        if cls.database is None:
            raise RuntimeError("MongoDB is not connected; call Database.connect_db() first")
        return cls.database

    @classmethod
    def get_collection(cls, collection_name: str):
        return cls.get_database()[collection_name]

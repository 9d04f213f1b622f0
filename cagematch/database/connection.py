"""
Database connection management for CageMatch.
"""

from typing import Optional
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure
import structlog

from ..config import AppConfig, DatabaseConfig

logger = structlog.get_logger(__name__)


class DatabaseManager:
    """Database connection manager."""

    def __init__(self, config: AppConfig, db_config: DatabaseConfig):
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self.config = config
        self.db_config = db_config

    async def connect(self) -> bool:
        """Connect to MongoDB database."""
        try:
            self.client = AsyncIOMotorClient(
                self.config.mongodb_url,
                serverSelectionTimeoutMS=self.db_config.connection_timeout * 1000
            )

            # Test the connection
            await self.client.admin.command('ping')

            self.database = self.client[self.config.database_name]

            if self.db_config.enable_indexes:
                await create_indexes(self.database, self.db_config)

            logger.info("Connected to MongoDB", database=self.config.database_name)
            return True

        except ConnectionFailure as e:
            logger.error("Failed to connect to MongoDB", error=str(e))
            return False

    async def disconnect(self):
        """Disconnect from MongoDB database."""
        if self.client:
            self.client.close()
            self.client = None
            self.database = None
            logger.info("Disconnected from MongoDB")

    def get_database(self) -> AsyncIOMotorDatabase:
        """Get the database instance."""
        if self.database is None:
            raise RuntimeError("Database not connected")
        return self.database


async def create_indexes(database: AsyncIOMotorDatabase, db_config: DatabaseConfig):
    """Create database indexes, including the uniqueness constraints."""
    users_collection = database[db_config.users_collection]
    await users_collection.create_index("username", unique=True)
    await users_collection.create_index("email", unique=True)
    await users_collection.create_index([("role", ASCENDING), ("createdAt", DESCENDING)])

    challenges_collection = database[db_config.challenges_collection]
    await challenges_collection.create_index([("challenger", ASCENDING), ("status", ASCENDING)])
    await challenges_collection.create_index([("challenged", ASCENDING), ("status", ASCENDING)])
    await challenges_collection.create_index([("status", ASCENDING), ("createdAt", DESCENDING)])
    # Only active challenges carry a pairKey
    await challenges_collection.create_index("pairKey", unique=True, sparse=True)

    logger.info("Database indexes created successfully")

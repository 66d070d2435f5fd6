"""
Database connection manager for TalentMatch.

Provides MongoDB connection management with both synchronous (PyMongo)
and asynchronous (Motor) client support.
"""

from typing import Any, Optional
from urllib.parse import quote_plus

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, MongoClient
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

from talentmatch.utils.config import get_settings
from talentmatch.utils.constants import (
    CANDIDATE_MATCHES_COLLECTION,
    CANDIDATES_COLLECTION,
    JOB_MATCHES_COLLECTION,
    JOB_POSTINGS_COLLECTION,
    VECTOR_MODEL_FIELD,
)
from talentmatch.utils.exceptions import IndexUnavailable
from talentmatch.utils.logger import get_logger

logger = get_logger(__name__)


class DatabaseManager:
    """
    Manages MongoDB database connections.

    The sync client serves CLI health checks; everything on the matching
    path goes through the Motor client.
    """

    def __init__(self) -> None:
        settings = get_settings()
        self._db_name = settings.database.name
        self._timeout_ms = settings.database.timeout_ms
        self._uri = self._build_uri()
        self._sync_client: Optional[MongoClient] = None
        self._async_client: Optional[AsyncIOMotorClient] = None

    def _build_uri(self) -> str:
        """Build the MongoDB URI, URL-encoding credentials."""
        db_settings = get_settings().database
        if db_settings.uri:
            return db_settings.uri

        host = db_settings.host.strip()
        if not host or any(c in host for c in [";", "&", "|", "$", "`", "@", "/"]):
            raise ValueError(f"Invalid database host: {host}")

        auth = ""
        if db_settings.username and db_settings.password:
            auth = f"{quote_plus(db_settings.username)}:{quote_plus(db_settings.password)}@"

        return f"mongodb://{auth}{host}:{db_settings.port}"

    @property
    def database_name(self) -> str:
        return self._db_name

    # -------------------------------------------------------------------------
    # Synchronous Client
    # -------------------------------------------------------------------------

    def get_sync_client(self) -> MongoClient:
        """Get or create synchronous MongoDB client."""
        if self._sync_client is None:
            logger.info("Creating synchronous MongoDB client")
            self._sync_client = MongoClient(
                self._uri,
                serverSelectionTimeoutMS=self._timeout_ms,
                connectTimeoutMS=self._timeout_ms,
            )
        return self._sync_client

    def check_sync_connection(self) -> bool:
        """Check if synchronous connection is healthy."""
        try:
            self.get_sync_client().admin.command("ping")
            return True
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.error(f"Sync connection check failed: {e}")
            self.close_sync()
            return False

    # -------------------------------------------------------------------------
    # Asynchronous Client
    # -------------------------------------------------------------------------

    def get_async_client(self) -> AsyncIOMotorClient:
        """Get or create asynchronous MongoDB client."""
        if self._async_client is None:
            logger.info("Creating asynchronous MongoDB client")
            self._async_client = AsyncIOMotorClient(
                self._uri,
                serverSelectionTimeoutMS=self._timeout_ms,
                connectTimeoutMS=self._timeout_ms,
                maxPoolSize=50,
            )
        return self._async_client

    def get_async_database(self) -> AsyncIOMotorDatabase:
        return self.get_async_client()[self._db_name]

    def get_async_collection(self, collection_name: str) -> Any:
        """Get an asynchronous collection by name."""
        return self.get_async_database()[collection_name]

    async def check_async_connection(self) -> bool:
        """Check if asynchronous connection is healthy."""
        try:
            await self.get_async_client().admin.command("ping")
            return True
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.error(f"Async connection check failed: {e}")
            return False

    # -------------------------------------------------------------------------
    # Lifecycle Management
    # -------------------------------------------------------------------------

    def close_sync(self) -> None:
        if self._sync_client:
            logger.info("Closing synchronous MongoDB client")
            self._sync_client.close()
            self._sync_client = None

    def close_async(self) -> None:
        if self._async_client:
            logger.info("Closing asynchronous MongoDB client")
            self._async_client.close()
            self._async_client = None

    def close_all(self) -> None:
        self.close_sync()
        self.close_async()

    # -------------------------------------------------------------------------
    # Index Management
    # -------------------------------------------------------------------------

    async def ensure_indexes(self) -> None:
        """Create the secondary indexes the matcher and batch jobs rely on."""
        logger.info("Ensuring database indexes")
        try:
            candidates = self.get_async_collection(CANDIDATES_COLLECTION)
            await candidates.create_index("email", unique=True, sparse=True)
            await candidates.create_index("experience")
            await candidates.create_index("role")
            await candidates.create_index("is_active")
            await candidates.create_index(VECTOR_MODEL_FIELD)

            jobs = self.get_async_collection(JOB_POSTINGS_COLLECTION)
            await jobs.create_index("created_at")
            await jobs.create_index(VECTOR_MODEL_FIELD)

            matches = self.get_async_collection(JOB_MATCHES_COLLECTION)
            await matches.create_index([("job_id", ASCENDING)], unique=True)
            await matches.create_index("matches.candidate_id")

            candidate_matches = self.get_async_collection(CANDIDATE_MATCHES_COLLECTION)
            await candidate_matches.create_index([("candidate_id", ASCENDING)], unique=True)
            await candidate_matches.create_index("matches.job_id")
        except PyMongoError as e:
            raise IndexUnavailable(f"Could not create indexes: {e}") from e

        logger.info("Database indexes created successfully")


# Global database manager instance
_db_manager: Optional[DatabaseManager] = None


def get_database_manager() -> DatabaseManager:
    """Get the global database manager instance."""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager

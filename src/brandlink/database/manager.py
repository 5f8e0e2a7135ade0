"""
# MongoDB Connection Manager

`DatabaseManager` owns the Motor client for the process. It connects with retry and
exponential backoff, exposes collections, runs health checks and ensures the indexes
every service relies on (uniqueness, TTL expiry, query support).

## Usage

```python
from brandlink.database import db_manager

sessions = db_manager.get_collection("active_sessions")
session = await sessions.find_one({"session_id": session_id, "is_active": True})
```

## TTL Collections

`security_events`, `active_sessions` and `blacklisted_tokens` carry an `expires_at`
field indexed with `expireAfterSeconds=0`, so MongoDB removes them once they lapse.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, TEXT
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

from brandlink.config import settings
from brandlink.managers.logging_manager import get_logger

db_logger = get_logger(prefix="[DATABASE]")
perf_logger = get_logger(prefix="[DB_PERFORMANCE]")
health_logger = get_logger(prefix="[DB_HEALTH]")

MAX_POOL_SIZE = 50
MIN_POOL_SIZE = 5


class DatabaseManager:
    """
    Manages the MongoDB connection lifecycle.

    Attributes:
        client: Motor client, `None` until `connect()` succeeds.
        database: Selected database, `None` until connected.
    """

    def __init__(self):
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self._connection_retries = 3

    def _connection_string(self) -> str:
        if settings.MONGODB_USERNAME and settings.MONGODB_PASSWORD:
            password = settings.MONGODB_PASSWORD.get_secret_value()
            db_logger.debug("Using authenticated connection to MongoDB")
            return f"mongodb://{settings.MONGODB_USERNAME}:{password}@{settings.MONGODB_URL.replace('mongodb://', '')}"
        db_logger.debug("Using unauthenticated connection to MongoDB")
        return settings.MONGODB_URL

    async def connect(self):
        """
        Establish the MongoDB connection, retrying with exponential backoff (1s, 2s).

        Raises:
            ServerSelectionTimeoutError: MongoDB unreachable after all attempts.
            ConnectionFailure: Authentication or connection refused after all attempts.
        """
        start_time = time.time()
        db_logger.info("Starting MongoDB connection process")

        for attempt in range(self._connection_retries):
            attempt_start = time.time()
            try:
                db_logger.info("Connection attempt %d/%d to MongoDB", attempt + 1, self._connection_retries)
                db_logger.info(
                    "MongoDB connection config - Database: %s, MaxPool: %d, MinPool: %d, ServerTimeout: %dms",
                    settings.MONGODB_DATABASE,
                    MAX_POOL_SIZE,
                    MIN_POOL_SIZE,
                    settings.MONGODB_SERVER_SELECTION_TIMEOUT,
                )

                self.client = AsyncIOMotorClient(
                    self._connection_string(),
                    serverSelectionTimeoutMS=settings.MONGODB_SERVER_SELECTION_TIMEOUT,
                    connectTimeoutMS=settings.MONGODB_CONNECTION_TIMEOUT,
                    maxPoolSize=MAX_POOL_SIZE,
                    minPoolSize=MIN_POOL_SIZE,
                    tz_aware=True,
                )
                self.database = self.client[settings.MONGODB_DATABASE]

                ping_start = time.time()
                await self.client.admin.command("ping")
                ping_duration = time.time() - ping_start

                total_duration = time.time() - start_time
                perf_logger.info(
                    "MongoDB connection established successfully in %.3fs (ping: %.3fs)", total_duration, ping_duration
                )
                db_logger.info("Successfully connected to MongoDB database: %s", settings.MONGODB_DATABASE)
                return

            except (ServerSelectionTimeoutError, ConnectionFailure) as e:
                attempt_duration = time.time() - attempt_start
                perf_logger.warning("Connection attempt %d failed after %.3fs", attempt + 1, attempt_duration)
                db_logger.warning(
                    "Failed to connect to MongoDB (attempt %d/%d): %s", attempt + 1, self._connection_retries, e
                )
                if attempt == self._connection_retries - 1:
                    db_logger.error("All connection attempts failed after %.3fs", time.time() - start_time)
                    raise

                backoff_time = 2**attempt
                db_logger.info("Waiting %.1fs before retry (exponential backoff)", backoff_time)
                await asyncio.sleep(backoff_time)

    async def disconnect(self):
        """Close the Motor client. Safe to call when not connected."""
        if not self.client:
            db_logger.warning("Disconnect called but no active MongoDB connection found")
            return

        start_time = time.time()
        self.client.close()
        self.client = None
        self.database = None
        perf_logger.info("MongoDB disconnection completed in %.3fs", time.time() - start_time)
        db_logger.info("Successfully disconnected from MongoDB")

    async def health_check(self) -> bool:
        """Ping the server; `False` instead of raising when unreachable."""
        if not self.client:
            health_logger.warning("Health check failed: no MongoDB client")
            return False
        try:
            start = time.time()
            await self.client.admin.command("ping")
            health_logger.debug("MongoDB ping OK in %.3fs", time.time() - start)
            return True
        except PyMongoError as e:
            health_logger.error("MongoDB health check failed: %s", e)
            return False

    def get_collection(self, collection_name: str) -> AsyncIOMotorCollection:
        """
        Return a collection from the connected database.

        Raises:
            ConnectionError: If `connect()` has not been called.
        """
        if self.database is None:
            db_logger.error("Attempted to get collection '%s' without database connection", collection_name)
            raise ConnectionError("Database not connected. Call connect() first.")

        return self.database[collection_name]

    async def create_indexes(self):
        """Ensure the indexes for every collection."""
        start_time = time.time()
        db_logger.info("Starting database index creation process")

        try:
            await self._create_account_indexes()
            await self._create_security_indexes()
            await self._create_brand_indexes()
            await self._create_notification_indexes()
            await self._create_certificate_indexes()
            await self._create_media_indexes()

            perf_logger.info("Database index creation completed successfully in %.3fs", time.time() - start_time)
        except (ConnectionError, TimeoutError) as e:
            perf_logger.error("Database index creation failed after %.3fs", time.time() - start_time)
            db_logger.error("Failed to create database indexes: %s", e)
            raise

    async def _create_index_if_not_exists(
        self, collection: AsyncIOMotorCollection, field_spec: Any, options: Dict[str, Any]
    ):
        """Create an index, logging instead of failing on conflicts with existing ones."""
        start_time = time.time()
        try:
            await collection.create_index(field_spec, **options)
            perf_logger.debug("Created/ensured index '%s' in %.3fs", field_spec, time.time() - start_time)
        except PyMongoError as e:
            perf_logger.warning("Failed to create/ensure index '%s' after %.3fs", field_spec, time.time() - start_time)
            db_logger.warning("Could not create/ensure index '%s': %s", field_spec, e)

    async def _ensure(self, collection_name: str, specs: List[tuple]):
        collection = self.get_collection(collection_name)
        for field_spec, options in specs:
            await self._create_index_if_not_exists(collection, field_spec, options)

    async def _create_account_indexes(self):
        db_logger.info("Creating indexes for account collections")
        for name in ("businesses", "manufacturers", "users"):
            await self._ensure(
                name,
                [
                    ("email", {"unique": True}),
                    ("created_at", {}),
                    ("lock_until", {"sparse": True}),
                ],
            )
        await self._ensure(
            "businesses",
            [("industry", {}), ([("business_name", TEXT), ("description", TEXT)], {"name": "business_text"})],
        )
        await self._ensure(
            "manufacturers",
            [
                ("industry", {}),
                ("services_offered", {}),
                ("headquarters.country", {}),
                ([("is_active", ASCENDING), ("profile_score", DESCENDING)], {}),
                ([("name", TEXT), ("description", TEXT)], {"name": "manufacturer_text"}),
            ],
        )
        await self._ensure(
            "connections",
            [
                ([("business_id", ASCENDING), ("manufacturer_id", ASCENDING)], {"unique": True}),
                ([("manufacturer_id", ASCENDING), ("status", ASCENDING)], {}),
            ],
        )

    async def _create_security_indexes(self):
        db_logger.info("Creating indexes for security collections")
        await self._ensure(
            "security_events",
            [
                ([("user_id", ASCENDING), ("timestamp", DESCENDING)], {}),
                ([("event_type", ASCENDING), ("timestamp", DESCENDING)], {}),
                ([("ip_address", ASCENDING), ("timestamp", DESCENDING)], {}),
                ("severity", {}),
                ("expires_at", {"expireAfterSeconds": 0}),
            ],
        )
        await self._ensure(
            "active_sessions",
            [
                ("session_id", {"unique": True}),
                ([("user_id", ASCENDING), ("is_active", ASCENDING)], {}),
                ("token_id", {}),
                ("expires_at", {"expireAfterSeconds": 0}),
            ],
        )
        await self._ensure(
            "blacklisted_tokens",
            [
                ("token_id", {"unique": True}),
                ("token_hash", {}),
                ("user_id", {}),
                ("expires_at", {"expireAfterSeconds": 0}),
            ],
        )

    async def _create_brand_indexes(self):
        await self._ensure(
            "brand_settings",
            [
                ("business_id", {"unique": True}),
                ("subdomain", {"unique": True, "sparse": True}),
                ("custom_domain", {"unique": True, "sparse": True}),
            ],
        )

    async def _create_notification_indexes(self):
        await self._ensure(
            "notifications",
            [
                ("notification_id", {"unique": True}),
                ([("recipient_id", ASCENDING), ("read", ASCENDING), ("created_at", DESCENDING)], {}),
                ([("recipient_id", ASCENDING), ("category", ASCENDING)], {}),
                ("expires_at", {"sparse": True}),
            ],
        )

    async def _create_certificate_indexes(self):
        await self._ensure(
            "certificates",
            [
                ("certificate_id", {"unique": True}),
                ([("contract_address", ASCENDING), ("token_id", ASCENDING)], {}),
                ([("business_id", ASCENDING), ("status", ASCENDING)], {}),
                ([("status", ASCENDING), ("next_transfer_attempt", ASCENDING)], {}),
            ],
        )
        await self._ensure(
            "supply_chain_events",
            [
                ("event_id", {"unique": True}),
                ([("business_id", ASCENDING), ("product_id", ASCENDING), ("created_at", DESCENDING)], {}),
            ],
        )

    async def _create_media_indexes(self):
        await self._ensure(
            "media",
            [
                ("media_id", {"unique": True}),
                ([("owner_id", ASCENDING), ("created_at", DESCENDING)], {}),
                ([("owner_id", ASCENDING), ("category", ASCENDING)], {}),
                ([("filename", TEXT), ("description", TEXT), ("tags", TEXT)], {"name": "media_text"}),
            ],
        )


# Global database manager instance
db_manager = DatabaseManager()

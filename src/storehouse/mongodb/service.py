import logging
from typing import Any

from pymongo import AsyncMongoClient

from storehouse.config import MongoConfig
from storehouse.errors import StoreNotReady

logger = logging.getLogger(__name__)


class MongodbService:
    """
    Process-scoped provider of the MongoDB database handle.

    Connects once in on_bootstrap() using the explicit MongoConfig and
    closes the client once in on_close().

    For testing, use set_database_override() to inject a database (e.g. from
    mongomock_motor); the service never closes it.
    """

    def __init__(self, config: MongoConfig):
        self.config = config
        self._client: AsyncMongoClient | None = None
        self._db: Any = None
        self._override: Any = None

    async def on_bootstrap(self) -> None:
        if self._override is not None or self._client is not None:
            return
        logger.info(
            "Connecting to MongoDB at %s (database=%s)", self.config.host, self.config.database
        )
        client = AsyncMongoClient(self.config.connection_string)
        await client.admin.command("ping")
        self._client = client
        self._db = client[self.config.database]

    def database(self) -> Any:
        if self._override is not None:
            return self._override
        if self._db is None:
            raise StoreNotReady("MongoDB is not connected; call on_bootstrap() first")
        return self._db

    def get_collection(self, collection_name: str) -> Any:
        return self.database()[collection_name]

    async def on_close(self) -> None:
        if self._client is None:
            return
        await self._client.close()
        logger.info("Closed MongoDB connection")
        self._client = None
        self._db = None

    def set_database_override(self, db: Any) -> None:
        """Use db for all subsequent operations."""
        self._override = db

    def clear_database_override(self) -> None:
        self._override = None

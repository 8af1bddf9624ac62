import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from storehouse.config import Config
from storehouse.kv.service import KvService
from storehouse.mongodb.service import MongodbService

logger = logging.getLogger(__name__)


class Storehouse:
    """Holds the store providers and drives their lifecycle."""

    def __init__(self, config: Config):
        self.config = config
        self.kv = KvService(config.kv)
        self.mongodb: Optional[MongodbService] = (
            MongodbService(config.mongodb) if config.mongodb else None
        )

    @property
    def providers(self) -> list:
        return [p for p in (self.kv, self.mongodb) if p is not None]

    async def on_bootstrap(self) -> None:
        for provider in self.providers:
            await provider.on_bootstrap()
        logger.info("Storehouse ready (%s)", self.config.environment)

    async def on_close(self) -> None:
        # Reverse order; every provider gets closed even if one fails
        errors = []
        for provider in reversed(self.providers):
            try:
                await provider.on_close()
            except Exception as e:
                logger.error("Error closing %s: %s", type(provider).__name__, e, exc_info=True)
                errors.append(e)
        if errors:
            raise errors[0]

    @asynccontextmanager
    async def running(self) -> AsyncIterator["Storehouse"]:
        """
        Open every provider for the duration of the block.

        Usage:
            async with create_app().running() as app:
                users = KvRepository(app.kv, "users", User)
        """
        try:
            await self.on_bootstrap()
            yield self
        finally:
            await self.on_close()


def create_app(config: Optional[Config] = None) -> Storehouse:
    """Application factory."""
    return Storehouse(config or Config.from_env())

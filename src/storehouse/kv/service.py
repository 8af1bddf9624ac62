import logging

from redis.asyncio import Redis

from storehouse.config import KvConfig
from storehouse.errors import StoreNotReady
from storehouse.kv.store import KvStore

logger = logging.getLogger(__name__)


class KvService:
    """
    Process-scoped provider of the key-value store connection.

    The connection is opened once by on_bootstrap() and released once by
    on_close(). Repositories only ever call client().

    For testing, use set_client_override() to inject a store (e.g. built on
    fakeredis) that will be used instead; the service never closes it.
    """

    def __init__(self, config: KvConfig):
        self.config = config
        self._redis: Redis | None = None
        self._store: KvStore | None = None
        self._override: KvStore | None = None

    async def on_bootstrap(self) -> None:
        if self._override is not None or self._store is not None:
            return
        logger.info("Connecting to key-value store (namespace=%s)", self.config.namespace)
        redis = Redis.from_url(self.config.url, decode_responses=True)
        await redis.ping()
        self._redis = redis
        self._store = KvStore(redis, namespace=self.config.namespace)

    def client(self) -> KvStore:
        if self._override is not None:
            return self._override
        if self._store is None:
            raise StoreNotReady("Key-value store is not connected; call on_bootstrap() first")
        return self._store

    async def on_close(self) -> None:
        if self._redis is None:
            return
        await self._redis.aclose()
        logger.info("Closed key-value store connection")
        self._redis = None
        self._store = None

    def set_client_override(self, store: KvStore) -> None:
        """Use store for all subsequent operations."""
        self._override = store

    def clear_client_override(self) -> None:
        self._override = None

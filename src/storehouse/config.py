import os
from dataclasses import dataclass
from urllib.parse import quote_plus

from dotenv import load_dotenv


def load_env() -> str:
    """Load the .env file for the current STOREHOUSE_ENV and return its name."""
    env = os.environ.get("STOREHOUSE_ENV", "development").lower()
    env_file = f".env.{env}"
    if os.path.exists(env_file):
        load_dotenv(env_file)
    else:
        # Fall back to the default .env file
        load_dotenv()
    return env


@dataclass(frozen=True)
class KvConfig:
    url: str = "redis://localhost:6379/0"
    namespace: str = "storehouse"

    @classmethod
    def from_env(cls) -> "KvConfig":
        return cls(
            url=os.environ.get("KV_URL", os.environ.get("REDIS_URL", cls.url)),
            namespace=os.environ.get("KV_NAMESPACE", cls.namespace),
        )


@dataclass(frozen=True)
class MongoConfig:
    host: str
    database: str
    username: str | None = None
    password: str | None = None
    auth_mechanism: str = "SCRAM-SHA-1"

    @property
    def connection_string(self) -> str:
        """
        Assemble the MongoDB connection URI.

        Credentials are URL-quoted. Without a username the URI carries no
        credentials and no auth mechanism.
        """
        if not self.username:
            return f"mongodb://{self.host}/{self.database}"
        credentials = quote_plus(self.username)
        if self.password:
            credentials += ":" + quote_plus(self.password)
        return (
            f"mongodb://{credentials}@{self.host}/{self.database}"
            f"?authMechanism={self.auth_mechanism}"
        )

    @classmethod
    def from_env(cls) -> "MongoConfig | None":
        host = os.environ.get("DB_HOST")
        if not host:
            return None
        return cls(
            host=host,
            database=os.environ.get("DB_NAME", "storehouse"),
            username=os.environ.get("DB_USERNAME") or None,
            password=os.environ.get("DB_PASSWORD") or None,
            auth_mechanism=os.environ.get("DB_AUTH_MECHANISM", "SCRAM-SHA-1"),
        )


@dataclass(frozen=True)
class Config:
    environment: str
    log_level: str
    kv: KvConfig
    mongodb: MongoConfig | None = None

    @classmethod
    def from_env(cls) -> "Config":
        env = load_env()
        return cls(
            environment=env,
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            kv=KvConfig.from_env(),
            mongodb=MongoConfig.from_env(),
        )

# src/storehouse/conftest.py
"""
Pytest configuration and shared fixtures.

Tests are co-located with implementation files using the *_test.py suffix.
Redis is replaced by fakeredis and MongoDB by mongomock_motor, injected
through the providers' override hooks, so no server is needed.
"""

import os

# Set environment BEFORE importing any app modules
os.environ["STOREHOUSE_ENV"] = "test"

import pytest
from fakeredis import FakeAsyncRedis, FakeServer
from mongomock_motor import AsyncMongoMockClient

from storehouse.config import Config, KvConfig, MongoConfig
from storehouse.kv import KvService, KvStore
from storehouse.mongodb import MongodbService

# =============================================================================
# Key-Value Store Fixtures
# =============================================================================


@pytest.fixture
async def redis():
    """Provide an empty in-memory Redis for a single test."""
    client = FakeAsyncRedis(server=FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def kv_store(redis) -> KvStore:
    return KvStore(redis, namespace="test")


@pytest.fixture
def kv_service(kv_store):
    """Provide a KvService wired to the fake store."""
    service = KvService(KvConfig(namespace="test"))
    service.set_client_override(kv_store)

    yield service

    service.clear_client_override()


# =============================================================================
# MongoDB Fixtures
# =============================================================================


@pytest.fixture
def mongo_db():
    """Provide an empty in-memory MongoDB database."""
    client = AsyncMongoMockClient()
    return client["storehouse_test"]


@pytest.fixture
def mongodb_service(mongo_db):
    """Provide a MongodbService wired to the mock database."""
    service = MongodbService(MongoConfig(host="localhost", database="storehouse_test"))
    service.set_database_override(mongo_db)

    yield service

    service.clear_database_override()


# =============================================================================
# Config Fixtures
# =============================================================================


@pytest.fixture
def test_config() -> Config:
    return Config(
        environment="test",
        log_level="DEBUG",
        kv=KvConfig(namespace="test"),
        mongodb=MongoConfig(host="localhost", database="storehouse_test"),
    )

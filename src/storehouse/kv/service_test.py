"""
Tests for KvService lifecycle.

Run with: pytest src/storehouse/kv/service_test.py -v
"""

from unittest.mock import patch

import pytest
from fakeredis import FakeAsyncRedis, FakeServer

from storehouse.config import KvConfig
from storehouse.errors import StoreNotReady
from storehouse.kv import KvService, KvStore


class TestLifecycle:
    """Tests for KvService.on_bootstrap() / client() / on_close()"""

    def test_client_before_bootstrap_raises(self):
        service = KvService(KvConfig())

        with pytest.raises(StoreNotReady):
            service.client()

    async def test_bootstrap_connects_once(self):
        fake = FakeAsyncRedis(server=FakeServer(), decode_responses=True)
        service = KvService(KvConfig(url="redis://example:6379/1", namespace="app"))

        with patch("storehouse.kv.service.Redis.from_url", return_value=fake) as from_url:
            await service.on_bootstrap()
            await service.on_bootstrap()

        from_url.assert_called_once_with("redis://example:6379/1", decode_responses=True)
        store = service.client()
        assert isinstance(store, KvStore)
        assert store.namespace == "app"

    async def test_close_releases_connection(self):
        fake = FakeAsyncRedis(server=FakeServer(), decode_responses=True)
        service = KvService(KvConfig())

        with patch("storehouse.kv.service.Redis.from_url", return_value=fake):
            await service.on_bootstrap()
        await service.on_close()

        with pytest.raises(StoreNotReady):
            service.client()

    async def test_close_without_bootstrap_is_noop(self):
        await KvService(KvConfig()).on_close()


class TestOverride:
    """Tests for KvService.set_client_override()"""

    def test_override_is_returned(self, kv_store):
        service = KvService(KvConfig())
        service.set_client_override(kv_store)

        assert service.client() is kv_store

    async def test_bootstrap_with_override_does_not_connect(self, kv_store):
        service = KvService(KvConfig())
        service.set_client_override(kv_store)

        with patch("storehouse.kv.service.Redis.from_url") as from_url:
            await service.on_bootstrap()

        from_url.assert_not_called()

    def test_clear_override(self, kv_store):
        service = KvService(KvConfig())
        service.set_client_override(kv_store)
        service.clear_client_override()

        with pytest.raises(StoreNotReady):
            service.client()

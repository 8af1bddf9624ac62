"""
Tests for the Redis-backed ordered key-value store.

Run with: pytest src/storehouse/kv/store_test.py -v
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

import pytest

from storehouse.kv.store import KvStore


async def collect(aiter) -> list:
    return [item async for item in aiter]


class Color(Enum):
    RED = "red"


class TestGet:
    """Tests for KvStore.get()"""

    async def test_get_missing_returns_none(self, kv_store):
        assert await kv_store.get(("users", "nobody")) is None

    async def test_get_after_set(self, kv_store):
        result = await kv_store.atomic().set(("users", "u1"), {"name": "Ada"}).commit()

        entry = await kv_store.get(("users", "u1"))

        assert result.ok is True
        assert entry.key == ("users", "u1")
        assert entry.value == {"name": "Ada"}
        assert entry.versionstamp == result.versionstamp

    async def test_values_are_json_encoded(self, kv_store):
        value = {
            "when": datetime(2024, 1, 2, 3, 4, 5),
            "day": date(2024, 1, 2),
            "amount": Decimal("1.50"),
            "color": Color.RED,
        }
        await kv_store.atomic().set(("things", "t1"), value).commit()

        entry = await kv_store.get(("things", "t1"))

        assert entry.value == {
            "when": "2024-01-02T03:04:05",
            "day": "2024-01-02",
            "amount": 1.5,
            "color": "red",
        }

    async def test_unserializable_value_raises(self, kv_store):
        with pytest.raises(TypeError):
            await kv_store.atomic().set(("things", "t1"), {"obj": object()}).commit()

        assert await kv_store.get(("things", "t1")) is None


class TestAtomic:
    """Tests for AtomicOperation.commit()"""

    async def test_versionstamps_increase(self, kv_store):
        first = await kv_store.atomic().set(("k", "1"), 1).commit()
        second = await kv_store.atomic().set(("k", "2"), 2).commit()

        assert first.versionstamp < second.versionstamp
        assert len(first.versionstamp) == 20

    async def test_check_absent_passes_for_new_key(self, kv_store):
        result = await kv_store.atomic().check(("k", "1"), None).set(("k", "1"), 1).commit()

        assert result.ok is True

    async def test_check_absent_fails_for_existing_key(self, kv_store):
        await kv_store.atomic().set(("k", "1"), "original").commit()

        result = await kv_store.atomic().check(("k", "1"), None).set(("k", "1"), "new").commit()

        assert result.ok is False
        assert (await kv_store.get(("k", "1"))).value == "original"

    async def test_stale_versionstamp_rejects_whole_transaction(self, kv_store):
        await kv_store.atomic().set(("k", "1"), "v1").commit()
        entry = await kv_store.get(("k", "1"))
        # A concurrent writer updates the key after our read
        await kv_store.atomic().set(("k", "1"), "v2").commit()

        result = await (
            kv_store.atomic()
            .check(entry.key, entry.versionstamp)
            .set(("k", "1"), "v3")
            .set(("k", "2"), "side effect")
            .commit()
        )

        assert result.ok is False
        assert (await kv_store.get(("k", "1"))).value == "v2"
        assert await kv_store.get(("k", "2")) is None

    async def test_matching_versionstamp_commits(self, kv_store):
        await kv_store.atomic().set(("k", "1"), "v1").commit()
        entry = await kv_store.get(("k", "1"))

        op = kv_store.atomic().check(entry.key, entry.versionstamp).set(entry.key, "v2")

        result = await op.commit()

        assert result.ok is True
        assert (await kv_store.get(("k", "1"))).value == "v2"

    async def test_delete_removes_entry_and_index(self, kv_store, redis):
        await kv_store.atomic().set(("k", "1"), 1).set(("k", "2"), 2).commit()

        await kv_store.atomic().delete(("k", "1")).commit()

        assert await kv_store.get(("k", "1")) is None
        assert await redis.zrange(kv_store.index_key, 0, -1) == ["k:2"]

    async def test_mutation_count(self, kv_store):
        op = kv_store.atomic().set(("k", "1"), 1).delete(("k", "2")).check(("k", "3"), None)

        assert op.mutation_count == 2


class TestList:
    """Tests for KvStore.list()"""

    async def test_list_is_ordered_and_prefix_scoped(self, kv_store):
        await (
            kv_store.atomic()
            .set(("users", "u2"), 2)
            .set(("users", "u1"), 1)
            .set(("users", "email", "a@x.com"), 1)
            .set(("usersx", "u9"), 9)
            .set(("orders", "o1"), "o")
            .commit()
        )

        entries = await collect(kv_store.list(("users",)))

        assert [e.key for e in entries] == [
            ("users", "email", "a@x.com"),
            ("users", "u1"),
            ("users", "u2"),
        ]

    @pytest.mark.parametrize("batch_size", [1, 2, 3, 100])
    async def test_list_pages_through_everything(self, kv_store, batch_size):
        op = kv_store.atomic()
        for i in range(7):
            op.set(("items", f"{i:02d}"), i)
        await op.commit()

        entries = await collect(kv_store.list(("items",), batch_size=batch_size))

        assert [e.value for e in entries] == list(range(7))

    async def test_list_empty_prefix_lists_namespace(self, kv_store):
        await kv_store.atomic().set(("a", "1"), 1).set(("b", "1"), 2).commit()

        entries = await collect(kv_store.list())

        assert [e.key for e in entries] == [("a", "1"), ("b", "1")]

    async def test_list_survives_deletes_behind_cursor(self, kv_store):
        op = kv_store.atomic()
        for i in range(5):
            op.set(("items", str(i)), i)
        await op.commit()

        seen = []
        async for entry in kv_store.list(("items",), batch_size=2):
            seen.append(entry.value)
            await kv_store.atomic().delete(entry.key).commit()

        assert seen == [0, 1, 2, 3, 4]

    async def test_list_rejects_bad_batch_size(self, kv_store):
        with pytest.raises(ValueError):
            await collect(kv_store.list(("items",), batch_size=0))

    async def test_namespaces_are_isolated(self, kv_store, redis):
        other = KvStore(redis, namespace="other")
        await other.atomic().set(("users", "u1"), "other").commit()

        assert await kv_store.get(("users", "u1")) is None
        assert await collect(kv_store.list(("users",))) == []

"""
Ordered, transactional key-value store on top of Redis.

Layout inside one namespace:

    <ns>:entry:<encoded key>   JSON envelope {"versionstamp": ..., "value": ...}
    <ns>:index                 sorted set of every encoded key (all scores 0)
    <ns>:versionstamp          commit counter

Every write goes through AtomicOperation.commit(), which updates the entry
and the index inside one MULTI/EXEC, so the index never disagrees with the
entries. Checked keys are WATCHed and compared by versionstamp before the
transaction is queued: a mismatch, or a concurrent write caught by WATCH,
aborts the whole commit and nothing is written.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, AsyncIterator, Iterable, Optional

from redis.asyncio import Redis
from redis.exceptions import WatchError

from storehouse.kv.keys import decode_key, encode_key, key_path, prefix_range
from storehouse.repository import KeyPath

logger = logging.getLogger(__name__)

VERSIONSTAMP_WIDTH = 20


@dataclass(frozen=True)
class KvEntry:
    key: KeyPath
    value: Any
    versionstamp: str


@dataclass(frozen=True)
class CommitResult:
    ok: bool
    versionstamp: Optional[str] = None


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def dump_envelope(value: Any, versionstamp: str) -> str:
    return json.dumps({"versionstamp": versionstamp, "value": value}, default=_json_default)


def load_envelope(raw: str | bytes) -> tuple[Any, str]:
    data = json.loads(raw)
    return data["value"], data["versionstamp"]


def to_json_value(value: Any) -> Any:
    """Return value exactly as a read will give it back: in its JSON form."""
    return json.loads(json.dumps(value, default=_json_default))


class KvStore:
    """Async ordered key-value store backed by a redis.asyncio client."""

    def __init__(self, redis: Redis, namespace: str = "storehouse"):
        self.redis = redis
        self.namespace = namespace
        self.index_key = f"{namespace}:index"
        self.counter_key = f"{namespace}:versionstamp"

    def entry_key(self, path: Iterable[object]) -> str:
        return f"{self.namespace}:entry:{encode_key(path)}"

    def _entry_key_for_member(self, member: str | bytes) -> str:
        if isinstance(member, bytes):
            member = member.decode()
        return f"{self.namespace}:entry:{member}"

    async def get(self, path: Iterable[object]) -> Optional[KvEntry]:
        """Return the entry stored at path, or None."""
        path = key_path(path)
        raw = await self.redis.get(self.entry_key(path))
        if raw is None:
            return None
        value, versionstamp = load_envelope(raw)
        return KvEntry(key=path, value=value, versionstamp=versionstamp)

    async def list(
        self, prefix: Iterable[object] = (), *, batch_size: int = 100
    ) -> AsyncIterator[KvEntry]:
        """
        Lazily yield every entry whose key starts with prefix.

        Entries come in lexicographic key order, fetched batch_size keys at a
        time. Each page resumes after the last key seen, so entries deleted
        behind the cursor do not disturb the walk.

        Args:
            prefix: Leading key segments; empty lists the whole namespace
            batch_size: Keys fetched per round-trip
        """
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        lower, upper = prefix_range(prefix)
        while True:
            members = await self.redis.zrangebylex(
                self.index_key, lower, upper, start=0, num=batch_size
            )
            if not members:
                return
            raws = await self.redis.mget([self._entry_key_for_member(m) for m in members])
            for member, raw in zip(members, raws):
                # Deleted between the range read and the value read
                if raw is None:
                    continue
                value, versionstamp = load_envelope(raw)
                yield KvEntry(key=decode_key(member), value=value, versionstamp=versionstamp)
            if len(members) < batch_size:
                return
            last = members[-1].decode() if isinstance(members[-1], bytes) else members[-1]
            lower = f"({last}"

    def atomic(self) -> "AtomicOperation":
        return AtomicOperation(self)

    async def next_versionstamp(self) -> str:
        counter = await self.redis.incr(self.counter_key)
        return str(counter).zfill(VERSIONSTAMP_WIDTH)


class AtomicOperation:
    """
    A batch of checks and mutations committed all-or-nothing.

    Usage:
        result = await (
            store.atomic()
            .check(entry.key, entry.versionstamp)
            .set(("users", "u1"), {...})
            .delete(("users", "email", "old@x.com"))
            .commit()
        )
        if not result.ok:
            ...
    """

    def __init__(self, store: KvStore):
        self._store = store
        self._checks: list[tuple[KeyPath, Optional[str]]] = []
        self._mutations: list[tuple[str, KeyPath, Any]] = []

    def check(self, path: Iterable[object], versionstamp: Optional[str]) -> "AtomicOperation":
        """Require path to still hold versionstamp at commit (None: must be absent)."""
        self._checks.append((key_path(path), versionstamp))
        return self

    def set(self, path: Iterable[object], value: Any) -> "AtomicOperation":
        self._mutations.append(("set", key_path(path), value))
        return self

    def delete(self, path: Iterable[object]) -> "AtomicOperation":
        self._mutations.append(("delete", key_path(path), None))
        return self

    @property
    def mutation_count(self) -> int:
        return len(self._mutations)

    async def commit(self) -> CommitResult:
        """
        Apply every mutation if every check still holds.

        Returns:
            CommitResult with ok=False when a check failed or a watched key
            changed before EXEC; nothing is written in that case.
        """
        store = self._store
        watched = [store.entry_key(path) for path, _ in self._checks]

        async with store.redis.pipeline(transaction=True) as pipe:
            if watched:
                await pipe.watch(*watched)
                current = await pipe.mget(watched)
                for (path, expected), raw in zip(self._checks, current):
                    actual = load_envelope(raw)[1] if raw is not None else None
                    if actual != expected:
                        logger.debug("Check failed for %s: %s != %s", path, actual, expected)
                        return CommitResult(ok=False)

            # Outside the pipeline: the pipeline is in immediate mode only while watching
            versionstamp = await store.next_versionstamp()

            if watched:
                pipe.multi()
            for kind, path, value in self._mutations:
                member = encode_key(path)
                if kind == "set":
                    pipe.set(store.entry_key(path), dump_envelope(value, versionstamp))
                    pipe.zadd(store.index_key, {member: 0})
                else:
                    pipe.delete(store.entry_key(path))
                    pipe.zrem(store.index_key, member)

            try:
                await pipe.execute()
            except WatchError:
                logger.debug("Watched keys changed before commit: %s", watched)
                return CommitResult(ok=False)

        return CommitResult(ok=True, versionstamp=versionstamp)

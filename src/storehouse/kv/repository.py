"""
Key-value repository with atomically maintained secondary indexes.

An entity lives at its primary key (collection, id). Entities implementing
IndexedEntity are also written under each of their secondary keys, e.g.
("users", "email", "a@x.com"), holding the same value as the primary.

Every write touches the primary and all of its secondary keys in one
atomic commit, so readers never see them disagree:

    create      primary + secondaries set; all must be absent beforehand
    update_one  primary + new secondaries set, stale secondaries deleted;
                the primary must be unchanged since it was read
    delete_one  primary + current secondaries deleted
    delete_all  the same, one transaction per page of entities
"""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Mapping, Optional

from storehouse.errors import CreateFailed, DeleteFailed, UpdateFailed
from storehouse.kv.keys import key_path, starts_with
from storehouse.kv.service import KvService
from storehouse.kv.store import AtomicOperation, KvEntry, KvStore, to_json_value
from storehouse.repository import (
    IndexedEntity,
    KeyPath,
    Repository,
    T,
    entity_from_fields,
    entity_to_fields,
)

logger = logging.getLogger(__name__)


class KvRepository(Repository[T]):
    """
    Repository for one collection in the key-value store.

    Usage:
        users = KvRepository(kv_service, "users", User)
        await users.create(User(id="u1", email="a@x.com"))
        await users.get_by_key(("users", "email", "a@x.com"))
    """

    def __init__(self, kv: KvService, collection_name: str, entity_type: type[T]):
        self.kv = kv
        self.collection_name = collection_name
        self.entity_type = entity_type

    @property
    def store(self) -> KvStore:
        return self.kv.client()

    def primary_key(self, entity_id: str) -> KeyPath:
        return key_path((self.collection_name, entity_id))

    def secondary_keys(self, entity: T) -> dict[str, KeyPath]:
        """Secondary key paths for entity; empty unless it is an IndexedEntity."""
        if not isinstance(entity, IndexedEntity):
            return {}
        keys = {name: key_path(path) for name, path in entity.secondary_keys().items()}
        collection = (self.collection_name,)
        for name, path in keys.items():
            # Two-segment paths under the collection are reserved for primaries
            if len(path) <= 2 and starts_with(path, collection):
                raise ValueError(
                    f"Secondary key {name!r} {path!r} collides with primary keys of "
                    f"{self.collection_name!r}"
                )
        return keys

    def _is_primary(self, entry: KvEntry) -> bool:
        return len(entry.key) == 2 and entry.key[0] == self.collection_name

    def _load(self, value: Mapping[str, Any]) -> T:
        return entity_from_fields(self.entity_type, value)

    def _encode(self, entity: T) -> dict[str, Any]:
        return to_json_value(entity_to_fields(entity))

    def _stored_keys(self, value: Mapping[str, Any]) -> set[KeyPath]:
        # From the stored JSON form, never from the caller's live field values
        return set(self.secondary_keys(self._load(value)).values())

    async def iter_all(self, batch_size: int = 100) -> AsyncIterator[T]:
        """Lazily yield every entity in key order."""
        async for entry in self.store.list((self.collection_name,), batch_size=batch_size):
            if self._is_primary(entry):
                yield self._load(entry.value)

    async def get_all(self) -> list[T]:
        return [entity async for entity in self.iter_all()]

    async def get_by_id(self, entity_id: str) -> Optional[T]:
        if not entity_id:
            return None
        entry = await self.store.get(self.primary_key(entity_id))
        if entry is None:
            return None
        return self._load(entry.value)

    async def get_by_key(self, path: KeyPath) -> Optional[T]:
        """Look up an entity by any of its key paths, primary or secondary."""
        entry = await self.store.get(path)
        if entry is None:
            return None
        return self._load(entry.value)

    async def create(self, entity: T) -> T:
        """
        Store a new entity under its primary and secondary keys.

        Raises:
            CreateFailed: The primary key or a secondary key already exists,
                or a concurrent writer got there first
        """
        if not entity.id:
            raise ValueError("Entity id is required")
        primary = self.primary_key(entity.id)
        value = self._encode(entity)

        op = self.store.atomic().check(primary, None).set(primary, value)
        for path in sorted(self._stored_keys(value)):
            op.check(path, None).set(path, value)

        result = await op.commit()
        if not result.ok:
            logger.warning("Create rejected for %s/%s", self.collection_name, entity.id)
            raise CreateFailed("Could not create entity", self.collection_name, entity.id)
        logger.debug("Created %s/%s", self.collection_name, entity.id)
        return entity

    async def update_one(self, entity_id: str, entity: T) -> T:
        """
        Overwrite the entity stored at entity_id.

        The stored fields are overlaid by the fields of entity (last write
        wins per field) and id is forced to entity_id. Secondary keys are
        recomputed from the result; keys the previous version had but the new
        one does not are deleted in the same transaction. A missing entity is
        inserted.

        Raises:
            UpdateFailed: The entity changed since it was read, or a new
                secondary key is held by another entity
        """
        if not entity_id:
            raise ValueError("Entity id is required")
        primary = self.primary_key(entity_id)
        existing = await self.store.get(primary)

        fields = dict(existing.value) if existing else {}
        fields.update(self._encode(entity))
        fields["id"] = entity_id
        merged = self._load(fields)
        value = self._encode(merged)

        old_keys = self._stored_keys(existing.value) if existing else set()
        new_keys = self._stored_keys(value)

        op = self.store.atomic()
        op.check(primary, existing.versionstamp if existing else None)
        op.set(primary, value)
        for path in sorted(new_keys):
            if path not in old_keys:
                op.check(path, None)
            op.set(path, value)
        for path in sorted(old_keys - new_keys):
            op.delete(path)

        result = await op.commit()
        if not result.ok:
            logger.warning("Update rejected for %s/%s", self.collection_name, entity_id)
            raise UpdateFailed("Could not update entity", self.collection_name, entity_id)
        logger.debug(
            "Updated %s/%s (%d stale secondary keys removed)",
            self.collection_name,
            entity_id,
            len(old_keys - new_keys),
        )
        return merged

    def _delete_entry(self, op: AtomicOperation, entry: KvEntry) -> None:
        op.check(entry.key, entry.versionstamp).delete(entry.key)
        for path in sorted(self._stored_keys(entry.value)):
            op.delete(path)

    async def delete_one(self, entity_id: str) -> int:
        """
        Delete an entity and every secondary key derived from its stored value.

        Returns:
            1 if the entity was deleted, 0 if it did not exist

        Raises:
            DeleteFailed: The entity changed between the read and the commit
        """
        if not entity_id:
            return 0
        entry = await self.store.get(self.primary_key(entity_id))
        if entry is None:
            return 0

        op = self.store.atomic()
        self._delete_entry(op, entry)
        result = await op.commit()
        if not result.ok:
            logger.warning("Delete rejected for %s/%s", self.collection_name, entity_id)
            raise DeleteFailed("Could not delete entity", self.collection_name, entity_id)
        logger.debug("Deleted %s/%s", self.collection_name, entity_id)
        return 1

    async def delete_all(self, batch_size: int = 100) -> int:
        """
        Delete every entity in the collection together with its secondary keys.

        Entities are deleted one page at a time; each page is a single atomic
        transaction, so an entity and its secondary keys always go together,
        but the collection as a whole is not deleted atomically.

        Returns:
            Number of entities deleted

        Raises:
            DeleteFailed: A page was rejected; earlier pages stay deleted
        """
        deleted = 0
        while True:
            page: list[KvEntry] = []
            entries = self.store.list((self.collection_name,), batch_size=batch_size)
            async with aclosing(entries):
                async for entry in entries:
                    if self._is_primary(entry):
                        page.append(entry)
                        if len(page) >= batch_size:
                            break
            if not page:
                break

            op = self.store.atomic()
            for entry in page:
                self._delete_entry(op, entry)
            result = await op.commit()
            if not result.ok:
                logger.warning(
                    "Delete-all rejected for %s after %d entities", self.collection_name, deleted
                )
                raise DeleteFailed("Could not delete entities", self.collection_name)
            deleted += len(page)
            if len(page) < batch_size:
                break

        logger.debug("Deleted %d entities from %s", deleted, self.collection_name)
        return deleted

"""
Document repository over a MongoDB collection.

Callers only ever see string identifiers in the entity's ``id`` field; the
documents themselves carry a bson ObjectId in ``_id``. The conversion
happens here and nowhere else.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Mapping, Optional

from bson import ObjectId
from pymongo.results import UpdateResult

from storehouse.errors import InvalidIdentifier
from storehouse.mongodb.service import MongodbService
from storehouse.repository import Repository, T, entity_from_fields, entity_to_fields

logger = logging.getLogger(__name__)

IDENTITY_FIELDS = ("id", "_id")


def to_object_id(value: Any) -> ObjectId:
    """
    Convert a string identifier into an ObjectId.

    Raises:
        InvalidIdentifier: value is not a 24-character hex string or ObjectId
    """
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise InvalidIdentifier(value)
    return ObjectId(value)


class MongodbRepository(Repository[T]):
    """
    Repository for one MongoDB collection.

    Usage:
        notes = MongodbRepository(mongodb_service, "notes", Note)
        note = await notes.create(Note(id=None, title="hello"))
        await notes.update_one(note.id, {"title": "hi"})
    """

    def __init__(self, db_service: MongodbService, collection_name: str, entity_type: type[T]):
        self.db_service = db_service
        self.collection_name = collection_name
        self.entity_type = entity_type

    @property
    def collection(self) -> Any:
        return self.db_service.get_collection(self.collection_name)

    def _to_entity(self, document: Mapping[str, Any]) -> T:
        fields = dict(document)
        fields["id"] = str(fields.pop("_id"))
        return entity_from_fields(self.entity_type, fields)

    def _native_filter(self, filter: Optional[Mapping[str, Any]]) -> dict[str, Any]:
        native = dict(filter or {})
        if "id" in native:
            native["_id"] = to_object_id(native.pop("id"))
        elif isinstance(native.get("_id"), str):
            native["_id"] = to_object_id(native["_id"])
        return native

    async def get_all(self, filter: Optional[Mapping[str, Any]] = None) -> list[T]:
        """Return every document matching filter (all documents by default)."""
        documents = await self.collection.find(self._native_filter(filter)).to_list(length=None)
        return [self._to_entity(d) for d in documents]

    async def get_one(self, filter: Mapping[str, Any]) -> Optional[T]:
        """Return the first document matching filter, or None."""
        document = await self.collection.find_one(self._native_filter(filter))
        if document is None:
            return None
        return self._to_entity(document)

    async def get_by_id(self, entity_id: str) -> Optional[T]:
        return await self.get_one({"_id": to_object_id(entity_id)})

    async def create(self, entity: T) -> T:
        """
        Insert entity under a freshly generated identifier.

        Any id already set on entity is replaced.

        Returns:
            A copy of entity with its new string id
        """
        object_id = ObjectId()
        document = entity_to_fields(entity)
        document.pop("id", None)
        document["_id"] = object_id
        await self.collection.insert_one(document)
        logger.debug("Created %s/%s", self.collection_name, object_id)
        return dataclasses.replace(entity, id=str(object_id))

    async def update_one(self, entity_id: str, partial: Mapping[str, Any]) -> UpdateResult:
        """
        Set only the fields present in partial on the document at entity_id.

        Identity fields in partial are ignored. Callers should check
        matched_count on the result to detect a missing document.

        Raises:
            InvalidIdentifier: entity_id is malformed
            ValueError: partial has no fields to set
        """
        object_id = to_object_id(entity_id)
        changes = {k: v for k, v in partial.items() if k not in IDENTITY_FIELDS}
        if not changes:
            raise ValueError("Nothing to update")
        result = await self.collection.update_one({"_id": object_id}, {"$set": changes})
        logger.debug(
            "Updated %s/%s (matched=%d, modified=%d)",
            self.collection_name,
            entity_id,
            result.matched_count,
            result.modified_count,
        )
        return result

    async def delete_one(self, entity_id: str) -> int:
        result = await self.collection.delete_one({"_id": to_object_id(entity_id)})
        return result.deleted_count

    async def delete_all(self) -> int:
        result = await self.collection.delete_many({})
        logger.debug("Deleted %d documents from %s", result.deleted_count, self.collection_name)
        return result.deleted_count

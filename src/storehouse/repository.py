"""
Repository contract shared by the key-value and document implementations.

Repositories answer "how do I get or store this entity?". They hold no
business rules; they map between entity dataclasses and what the store
keeps, and they own the consistency of everything they write.

Entities are dataclasses with an ``id`` field. Both implementations expose
the same operations: get_all, get_by_id, create, update_one, delete_one,
delete_all.
"""

from __future__ import annotations

import dataclasses
from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from types import UnionType
from typing import (
    Any,
    Generic,
    Mapping,
    Optional,
    Protocol,
    TypeVar,
    Union,
    get_args,
    get_origin,
    get_type_hints,
    runtime_checkable,
)

KeyPath = tuple[str, ...]


class Entity(Protocol):
    id: Optional[str]


@runtime_checkable
class IndexedEntity(Protocol):
    """An entity that can be looked up by derived key paths."""

    id: Optional[str]

    def secondary_keys(self) -> Mapping[str, KeyPath]:
        """Return the named secondary key paths for the current field values."""
        ...


T = TypeVar("T", bound=Entity)


def entity_to_fields(entity: Any) -> dict[str, Any]:
    """Convert an entity dataclass into a plain field mapping."""
    if not dataclasses.is_dataclass(entity) or isinstance(entity, type):
        raise TypeError(f"Expected a dataclass instance, got {type(entity).__name__}")
    return dataclasses.asdict(entity)


def _field_types(entity_type: type) -> dict[str, Any]:
    try:
        return get_type_hints(entity_type)
    except NameError:
        # Unresolvable forward references; keep whatever is not a string
        return {f.name: f.type for f in dataclasses.fields(entity_type)}


def _coerce(annotation: Any, value: Any) -> Any:
    """Rebuild a value stored in its JSON form as the declared field type."""
    if value is None:
        return None
    if get_origin(annotation) in (Union, UnionType):
        members = [a for a in get_args(annotation) if a is not type(None)]
        return _coerce(members[0], value) if len(members) == 1 else value
    if get_origin(annotation) is not None or not isinstance(annotation, type):
        return value
    if isinstance(value, annotation):
        return value
    if issubclass(annotation, Enum):
        return annotation(value)
    if annotation is datetime and isinstance(value, str):
        return datetime.fromisoformat(value)
    if annotation is date and isinstance(value, str):
        return date.fromisoformat(value)
    if annotation is Decimal and isinstance(value, (int, float, str)):
        return Decimal(str(value))
    return value


def entity_from_fields(entity_type: type[T], data: Mapping[str, Any]) -> T:
    """
    Build an entity from a stored field mapping.

    Stored fields the dataclass does not declare are ignored. Fields declared
    as date, datetime, Decimal or an Enum are rebuilt from their JSON forms.
    """
    hints = _field_types(entity_type)
    names = {f.name for f in dataclasses.fields(entity_type)}
    return entity_type(**{k: _coerce(hints.get(k), v) for k, v in data.items() if k in names})


class Repository(ABC, Generic[T]):
    """CRUD contract for a single collection of entities."""

    collection_name: str
    entity_type: type[T]

    @abstractmethod
    async def get_all(self) -> list[T]:
        """Return every entity in the collection."""

    @abstractmethod
    async def get_by_id(self, entity_id: str) -> Optional[T]:
        """Return the entity with this identifier, or None."""

    @abstractmethod
    async def create(self, entity: T) -> T:
        """Persist a new entity."""

    @abstractmethod
    async def update_one(self, entity_id: str, entity: Any) -> Any:
        """Update the entity with this identifier."""

    @abstractmethod
    async def delete_one(self, entity_id: str) -> int:
        """Remove the entity with this identifier; return how many were removed."""

    @abstractmethod
    async def delete_all(self) -> int:
        """Remove every entity in the collection; return how many were removed."""

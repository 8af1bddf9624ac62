"""
storehouse

Repositories over an ordered key-value store (Redis) and a document store
(MongoDB), sharing one CRUD contract.
"""

from storehouse.errors import (
    CreateFailed,
    DeleteFailed,
    InvalidIdentifier,
    StoreNotReady,
    StorehouseError,
    UpdateFailed,
)
from storehouse.repository import Entity, IndexedEntity, KeyPath, Repository

__all__ = [
    "CreateFailed",
    "DeleteFailed",
    "Entity",
    "IndexedEntity",
    "InvalidIdentifier",
    "KeyPath",
    "Repository",
    "StoreNotReady",
    "StorehouseError",
    "UpdateFailed",
]

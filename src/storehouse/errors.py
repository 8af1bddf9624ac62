"""
Exceptions raised by storehouse repositories and store providers.

Driver errors (redis, pymongo) are never wrapped; they reach the caller
unchanged. Only conditions this layer detects itself are represented here.
"""

from typing import Any, Optional


class StorehouseError(Exception):
    """
    Base exception for all storehouse errors.

    Attributes:
        message: Human-readable error message
        details: Additional context (collection, identifier, ...)
    """

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class TransactionFailed(StorehouseError):
    """An atomic transaction did not commit; nothing was written."""

    def __init__(self, message: str, collection: str, entity_id: Optional[str] = None):
        details = {"collection": collection}
        if entity_id is not None:
            details["id"] = entity_id
        super().__init__(message, details=details)
        self.collection = collection
        self.entity_id = entity_id


class CreateFailed(TransactionFailed):
    """The create transaction was rejected (existing key or concurrent write)."""


class UpdateFailed(TransactionFailed):
    """The update transaction was rejected by a conflicting writer."""


class DeleteFailed(TransactionFailed):
    """The delete transaction was rejected by a conflicting writer."""


class InvalidIdentifier(StorehouseError, ValueError):
    """A string cannot be converted to a native document identifier."""

    def __init__(self, value: Any):
        super().__init__(f"Invalid document identifier: {value!r}", details={"id": value})
        self.value = value


class StoreNotReady(StorehouseError, RuntimeError):
    """A store provider was used before on_bootstrap() or after on_close()."""

"""
MongoDB

Document repository with string identifiers at the boundary, and the
provider that owns the MongoDB connection.
"""

from storehouse.mongodb.repository import MongodbRepository, to_object_id
from storehouse.mongodb.service import MongodbService

__all__ = ["MongodbRepository", "MongodbService", "to_object_id"]

"""
Key-value store

Ordered, transactional key-value storage on Redis and the repository that
keeps secondary indexes consistent with their primary records.
"""

from storehouse.kv.repository import KvRepository
from storehouse.kv.service import KvService
from storehouse.kv.store import AtomicOperation, CommitResult, KvEntry, KvStore

__all__ = ["AtomicOperation", "CommitResult", "KvEntry", "KvRepository", "KvService", "KvStore"]

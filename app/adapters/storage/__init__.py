"""Object storage adapters (in-memory and MinIO/S3)."""

from app.adapters.storage.base import ListResult, ObjectMeta, ObjectStore, StoredObject
from app.adapters.storage.in_memory import InMemoryObjectStore

__all__ = ["InMemoryObjectStore", "ListResult", "ObjectMeta", "ObjectStore", "StoredObject"]

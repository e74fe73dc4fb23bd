"""Factory for the configured object storage backend."""

from __future__ import annotations

from app.adapters.storage.base import ObjectStore
from app.adapters.storage.in_memory import InMemoryObjectStore
from app.core.config import Settings, StorageBackend, settings as default_settings
from app.core.errors import BackendAppError


def create_object_store(settings: Settings | None = None) -> ObjectStore:
    """Instantiate the object store selected by ``STORAGE_BACKEND``.

    Raises:
        BackendAppError: If the minio backend is selected without an endpoint.
    """
    cfg = (settings or default_settings).storage

    if cfg.backend == StorageBackend.MINIO:
        if not cfg.endpoint:
            raise BackendAppError(
                code="storage_not_configured",
                message="MinIO storage requires STORAGE_ENDPOINT",
            )
        from app.adapters.storage.minio_store import MinioObjectStore

        return MinioObjectStore.from_endpoint(
            cfg.endpoint,
            bucket=cfg.bucket,
            access_key=cfg.access_key,
            secret_key=cfg.secret_key,
            region=cfg.region,
            timeout_seconds=cfg.timeout_seconds,
        )

    return InMemoryObjectStore()

"""Tests for the MinIO object store adapter and backend factories."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest
from urllib3.exceptions import ProtocolError

from app.adapters.counter_store.factory import create_counter_store
from app.adapters.counter_store.in_memory import InMemoryCounterStore
from app.adapters.counter_store.redis_store import RedisCounterStore
from app.adapters.storage.factory import create_object_store
from app.adapters.storage.in_memory import InMemoryObjectStore
from app.adapters.storage.minio_store import MinioObjectStore
from app.core.config import CounterBackend, StorageBackend
from app.core.errors import BackendAppError


def _listing_item(name: str, size: int = 10) -> Mock:
    return Mock(
        object_name=name,
        size=size,
        etag='"etag-1"',
        last_modified=datetime(2024, 1, 1, tzinfo=timezone.utc),
        content_type=None,
    )


@pytest.fixture
def minio_client() -> Mock:
    return Mock()


@pytest.fixture
def store(minio_client: Mock) -> MinioObjectStore:
    return MinioObjectStore(client=minio_client, bucket="uploads-bucket", timeout_seconds=2.0)


@pytest.mark.asyncio
async def test_get_streams_body_and_releases_connection(store: MinioObjectStore, minio_client: Mock) -> None:
    response = Mock()
    response.headers = {
        "Content-Length": "3",
        "ETag": '"abc"',
        "Last-Modified": "Mon, 01 Jan 2024 00:00:00 GMT",
        "Content-Type": "image/png",
    }
    response.read.side_effect = [b"ab", b"c", b""]
    minio_client.get_object.return_value = response

    stored = await store.get("uploads/a.png")

    assert stored.meta.size == 3
    assert stored.meta.etag == "abc"
    assert stored.meta.content_type == "image/png"
    assert stored.meta.uploaded_at == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert await stored.read() == b"abc"
    minio_client.get_object.assert_called_once_with("uploads-bucket", "uploads/a.png")
    response.close.assert_called_once()
    response.release_conn.assert_called_once()


@pytest.mark.asyncio
async def test_put_records_metadata(store: MinioObjectStore, minio_client: Mock) -> None:
    minio_client.put_object.return_value = Mock(etag='"def"')

    meta = await store.put("uploads/a.png", b"data", "image/png")

    assert meta.etag == "def"
    assert meta.size == 4
    _, kwargs = minio_client.put_object.call_args
    assert kwargs["length"] == 4
    assert kwargs["content_type"] == "image/png"


@pytest.mark.asyncio
async def test_list_honours_limit(store: MinioObjectStore, minio_client: Mock) -> None:
    minio_client.list_objects.return_value = iter(
        [_listing_item("uploads/a.png"), _listing_item("uploads/b.png"), _listing_item("uploads/c.png")]
    )

    result = await store.list("uploads/", limit=2)

    assert [m.key for m in result.objects] == ["uploads/a.png", "uploads/b.png"]
    assert result.truncated is True
    minio_client.list_objects.assert_called_once_with("uploads-bucket", prefix="uploads/", recursive=True)


@pytest.mark.asyncio
async def test_delete_sends_one_batch(store: MinioObjectStore, minio_client: Mock) -> None:
    minio_client.remove_objects.return_value = iter([])

    await store.delete(["uploads/a.png", "uploads/b.png"])
    await store.delete([])

    assert minio_client.remove_objects.call_count == 1
    bucket, batch = minio_client.remove_objects.call_args.args
    assert bucket == "uploads-bucket"
    assert len(batch) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [ConnectionRefusedError("refused"), ProtocolError("connection reset")])
async def test_transport_errors_become_backend_errors(
    store: MinioObjectStore, minio_client: Mock, error: Exception
) -> None:
    minio_client.get_object.side_effect = error

    with pytest.raises(BackendAppError) as exc_info:
        await store.get("uploads/a.png")

    assert exc_info.value.code == "storage_backend_error"
    assert exc_info.value.details == {"backend": "minio", "operation": "get"}


def test_object_store_factory(settings) -> None:
    assert isinstance(create_object_store(settings), InMemoryObjectStore)

    settings.storage.backend = StorageBackend.MINIO
    with pytest.raises(BackendAppError):
        create_object_store(settings)

    settings.storage.endpoint = "http://localhost:9000"
    assert isinstance(create_object_store(settings), MinioObjectStore)


def test_counter_store_factory(settings) -> None:
    assert isinstance(create_counter_store(settings), InMemoryCounterStore)

    settings.counter_store.backend = CounterBackend.REDIS
    assert isinstance(create_counter_store(settings), RedisCounterStore)

    settings.counter_store.backend = CounterBackend.SQL
    with pytest.raises(ValueError):
        create_counter_store(settings)

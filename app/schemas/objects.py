"""Pydantic schemas for object upload and listing responses."""

from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from app.adapters.storage.base import ListResult, ObjectMeta


class StoreObjectResponse(BaseModel):
    """Response for a successful upload."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = Field(default=True, description="Always true on a 200 response.")
    key: str = Field(..., description="Storage key the object was written under.")
    content_type: str = Field(
        ...,
        serialization_alias="contentType",
        description="Content type recorded for the object.",
    )


class ObjectListItem(BaseModel):
    key: str = Field(..., description="Storage key.")
    size: int = Field(..., ge=0, description="Object size in bytes.")
    uploaded: datetime = Field(..., description="Upload time reported by the backend.")
    etag: str = Field(default="", description="Backend entity tag.")

    @classmethod
    def from_meta(cls, meta: ObjectMeta) -> "ObjectListItem":
        return cls(key=meta.key, size=meta.size, uploaded=meta.uploaded_at, etag=meta.etag)


class ObjectListResponse(BaseModel):
    """Debug listing of objects under the served prefix."""

    count: int = Field(..., ge=0, description="Number of objects returned.")
    truncated: bool = Field(
        default=False,
        description="True when the backend had more objects than the requested limit.",
    )
    objects: List[ObjectListItem] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: ListResult) -> "ObjectListResponse":
        items = [ObjectListItem.from_meta(meta) for meta in result.objects]
        return cls(count=len(items), truncated=result.truncated, objects=items)

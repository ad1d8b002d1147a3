from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import BinaryIO, Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, Field, computed_field, field_validator

T = TypeVar("T")


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class FileRecord(BaseModel):
    """Stored file description, identical across providers."""

    id: UUID
    name: str
    original_name: str
    extension: str = ""
    content_type: str = "application/octet-stream"
    size_bytes: int = 0
    created_at_utc: datetime
    updated_at_utc: datetime
    hash: str | None = None
    folder: str | None = None
    storage_path: str = ""
    metadata: dict[str, str] | None = None

    @field_validator("created_at_utc", "updated_at_utc", mode="after")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class PaginatedResult(BaseModel, Generic[T]):
    items: list[T] = Field(default_factory=list)
    page: int = 1
    page_size: int = 100
    total_items: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return math.ceil(self.total_items / self.page_size)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_previous_page(self) -> bool:
        return self.page > 1


class SortField(str, Enum):
    NAME = "name"
    SIZE = "size"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    EXTENSION = "extension"
    CONTENT_TYPE = "content_type"


class SortDirection(str, Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"


class SearchParameters(BaseModel):
    name_pattern: str | None = None
    folder: str | None = None
    folder_starts_with: str | None = None
    include_subfolders: bool = True
    extension: str | None = None
    content_type: str | None = None
    min_size_bytes: int | None = None
    max_size_bytes: int | None = None
    created_after: datetime | None = None
    created_before: datetime | None = None
    updated_after: datetime | None = None
    updated_before: datetime | None = None
    metadata: dict[str, str] | None = None
    # Unknown values are kept as plain strings and sort as a no-op.
    sort_by: SortField | str = SortField.CREATED_AT
    sort_direction: SortDirection = SortDirection.DESCENDING
    page: int = 1
    page_size: int = 100

    @field_validator(
        "created_after",
        "created_before",
        "updated_after",
        "updated_before",
        mode="after",
    )
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)


class ThumbnailSize(IntEnum):
    """Thumbnail size classes, valued by maximum edge length in pixels."""

    SMALL = 150
    MEDIUM = 300
    LARGE = 600

    @property
    def folder_name(self) -> str:
        return self.name.lower()


@dataclass
class BulkSaveItem:
    content: BinaryIO | bytes
    file_name: str
    metadata: dict[str, str] | None = None


class RenameRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class FolderTargetRequest(BaseModel):
    folder: str | None = None


class CreateFolderRequest(BaseModel):
    path: str = Field(min_length=1)


class BulkIdsRequest(BaseModel):
    ids: list[UUID] = Field(default_factory=list)


class BulkMoveRequest(BulkIdsRequest):
    folder: str | None = None


class FileUrls(BaseModel):
    public_url: str | None = None
    signed_url: str | None = None

"""Policy objects configuring each storage provider."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stashkit.schemas.files import FileRecord

DEFAULT_MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024  # 10MB

NamingStrategy = Callable[[str], str]
SubfolderStrategy = Callable[["FileRecord"], str]


@dataclass(frozen=True)
class FileStorageOptions:
    """Validation and naming policy shared by every provider.

    ``naming_strategy`` maps the uploaded file name to the stored file name
    (default ``<id><extension>``). ``subfolder_strategy`` picks a folder for
    saves that do not name one. Both are called synchronously and must not
    keep state.
    """

    max_file_size_bytes: int | None = DEFAULT_MAX_FILE_SIZE_BYTES
    allowed_extensions: tuple[str, ...] = ()
    allowed_content_types: tuple[str, ...] = ()
    compute_hash: bool = False
    overwrite_existing: bool = False
    signed_url_expiry: timedelta = timedelta(hours=1)
    naming_strategy: NamingStrategy | None = None
    subfolder_strategy: SubfolderStrategy | None = None


@dataclass(frozen=True)
class LocalStorageOptions(FileStorageOptions):
    base_path: str = "uploads"
    auto_create_directories: bool = True
    base_url: str = "/api/v1/files/serve"
    public_read: bool = False
    enable_signed_urls: bool = False
    signing_key: str | None = None


@dataclass(frozen=True)
class S3StorageOptions(FileStorageOptions):
    bucket_name: str = ""
    region: str = "us-east-1"
    endpoint_url: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    key_prefix: str | None = None
    public_read: bool = False
    storage_class: str = "STANDARD"
    enable_encryption: bool = True


@dataclass(frozen=True)
class BlobStorageOptions(FileStorageOptions):
    connection_string: str | None = None
    container_name: str = ""
    blob_prefix: str | None = None
    public_access: bool = False
    access_tier: str = "Hot"
    create_container_if_not_exists: bool = True

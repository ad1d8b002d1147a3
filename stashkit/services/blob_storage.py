"""Azure Blob Storage provider.

Blob metadata carries the record fields (see ``BlobMetadataCodec``).
Listings request metadata inline, so a lookup by id is one paged scan of
the container prefix with no per-blob round trip.
"""

from __future__ import annotations

import asyncio
import logging
import tempfile
import threading
import time
import uuid
from collections.abc import Iterator
from datetime import datetime, timedelta, timezone
from typing import Any, BinaryIO

from azure.core.exceptions import AzureError, ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import (
    BlobSasPermissions,
    ContainerClient,
    ContentSettings,
    StandardBlobTier,
    generate_blob_sas,
)

from stashkit.errors import (
    ErrorCode,
    FileAlreadyExistsError,
    ProviderError,
    RecordNotFoundError,
    SignedUrlUnsupportedError,
    StorageError,
)
from stashkit.schemas.files import FileRecord
from stashkit.services.keys import KeyBuilder
from stashkit.services.metadata_codec import FILE_ID_KEYS, BlobMetadataCodec
from stashkit.services.options import BlobStorageOptions
from stashkit.services.storage import SPOOL_MEMORY_LIMIT, CountingReader, FileStorage, MoveState, utcnow

logger = logging.getLogger(__name__)

COPY_POLL_INTERVAL = 0.5
COPY_TIMEOUT_SECONDS = 300


class BlobFileStorage(FileStorage):
    provider_name = "azure_blob"

    def __init__(self, options: BlobStorageOptions, container: Any | None = None) -> None:
        super().__init__(options, KeyBuilder(options.blob_prefix))
        self.options: BlobStorageOptions = options
        self.codec = BlobMetadataCodec()
        if container is not None:
            self.container = container
            return
        if not options.connection_string:
            raise ProviderError("A connection string is required for Azure Blob storage")
        self.container = ContainerClient.from_connection_string(
            options.connection_string,
            container_name=options.container_name,
        )

    def _translate_error(self, exc: Exception) -> StorageError | None:
        if isinstance(exc, ResourceExistsError):
            return StorageError("A file with the same name already exists.", ErrorCode.FILE_ALREADY_EXISTS)
        if isinstance(exc, AzureError):
            return ProviderError(f"Blob storage request failed ({type(exc).__name__}).")
        return None

    def ensure_container(self) -> None:
        """Create the container if missing (safe to call repeatedly)."""
        try:
            self.container.create_container(public_access="blob" if self.options.public_access else None)
            logger.info("Created blob container: %s", self.options.container_name)
        except ResourceExistsError:
            return

    # ------------------------------------------------------------------
    # Low-level blob access
    # ------------------------------------------------------------------

    def _blob(self, name: str) -> Any:
        return self.container.get_blob_client(name)

    def _properties(self, name: str) -> Any | None:
        try:
            return self._blob(name).get_blob_properties()
        except ResourceNotFoundError:
            return None

    def _decode(self, props: Any) -> FileRecord | None:
        settings = getattr(props, "content_settings", None)
        return self.codec.decode(
            props.name,
            props.metadata,
            key_builder=self.keys,
            size=int(props.size or 0),
            content_type=getattr(settings, "content_type", None),
            last_modified=props.last_modified,
        )

    def _iter_records(self, prefix: str) -> Iterator[FileRecord]:
        for props in self.container.list_blobs(name_starts_with=prefix or None, include=["metadata"]):
            if self.keys.is_reserved(props.name):
                continue
            try:
                record = self._decode(props)
            except (ValueError, TypeError) as exc:
                logger.debug("blob_metadata_unreadable name=%s error=%s", props.name, exc)
                continue
            if record is not None:
                yield record

    def _upload_args(self, record: FileRecord) -> dict[str, Any]:
        args: dict[str, Any] = {
            "metadata": self.codec.encode(record),
            "content_settings": ContentSettings(content_type=record.content_type),
        }
        if self.options.access_tier:
            args["standard_blob_tier"] = StandardBlobTier(self.options.access_tier)
        return args

    def _copy(self, source_name: str, record: FileRecord) -> None:
        target = self._blob(record.storage_path)
        source_url = self._blob(source_name).url
        copy = target.start_copy_from_url(source_url, metadata=self.codec.encode(record))
        status = (copy or {}).get("copy_status")
        deadline = time.monotonic() + COPY_TIMEOUT_SECONDS
        while status == "pending":
            if time.monotonic() > deadline:
                target.abort_copy((copy or {}).get("copy_id"))
                raise ProviderError("Timed out waiting for blob copy.")
            time.sleep(COPY_POLL_INTERVAL)
            status = target.get_blob_properties().copy.status
        if status not in (None, "success"):
            raise ProviderError(f"Blob copy finished with status '{status}'.")

    # ------------------------------------------------------------------
    # Substrate primitives
    # ------------------------------------------------------------------

    def _location(self, folder: str | None, file_name: str) -> str:
        return self.keys.build_key(folder, file_name)

    async def _location_exists(self, location: str) -> bool:
        return await asyncio.to_thread(self._properties, location) is not None

    def _resolve_sync(self, file_id: uuid.UUID) -> FileRecord | None:
        for record in self._iter_records(self.keys.list_prefix()):
            if record.id == file_id:
                return record
        return None

    async def _resolve(self, file_id: uuid.UUID) -> FileRecord | None:
        return await asyncio.to_thread(self._resolve_sync, file_id)

    async def _records(self, folder: str | None = None) -> list[FileRecord]:
        prefix = self.keys.list_prefix(folder)
        return await asyncio.to_thread(lambda: list(self._iter_records(prefix)))

    def _write_content(self, record: FileRecord, content: BinaryIO, cancel: threading.Event) -> int:
        reader = CountingReader(content, self.options.max_file_size_bytes, cancel)
        self._blob(record.storage_path).upload_blob(
            reader,
            overwrite=self.options.overwrite_existing,
            **self._upload_args(record),
        )
        return reader.count

    def _delete_blob(self, name: str) -> None:
        try:
            self._blob(name).delete_blob()
        except ResourceNotFoundError:
            return

    async def _discard(self, location: str) -> None:
        await asyncio.to_thread(self._delete_blob, location)

    def _open_sync(self, record: FileRecord) -> BinaryIO:
        try:
            downloader = self._blob(record.storage_path).download_blob()
        except ResourceNotFoundError as exc:
            raise RecordNotFoundError(record.id) from exc
        spooled = tempfile.SpooledTemporaryFile(max_size=SPOOL_MEMORY_LIMIT)
        downloader.readinto(spooled)
        spooled.seek(0)
        return spooled  # type: ignore[return-value]

    async def _open(self, record: FileRecord) -> BinaryIO:
        return await asyncio.to_thread(self._open_sync, record)

    async def _remove(self, record: FileRecord) -> None:
        await self._discard(record.storage_path)

    async def _update_metadata(self, record: FileRecord) -> None:
        await asyncio.to_thread(self._blob(record.storage_path).set_blob_metadata, self.codec.encode(record))

    def _relocate_sync(self, record: FileRecord, moved: FileRecord) -> MoveState:
        state = MoveState.PENDING
        existing = self._properties(moved.storage_path)
        if existing is not None:
            if self._owner_id(existing.metadata) == record.id:
                # An earlier attempt already copied the blob.
                state = MoveState.COPIED
            elif not self.options.overwrite_existing:
                raise FileAlreadyExistsError(moved.storage_path.rsplit("/", 1)[-1])
        if state is MoveState.PENDING:
            self._copy(record.storage_path, moved)
        self._delete_blob(record.storage_path)
        return MoveState.SOURCE_DELETED

    async def _relocate(self, record: FileRecord, moved: FileRecord) -> None:
        state = await asyncio.to_thread(self._relocate_sync, record, moved)
        logger.debug("blob_move file_id=%s state=%s", record.id, state.value)

    @staticmethod
    def _owner_id(metadata: dict | None) -> uuid.UUID | None:
        lowered = {key.lower(): value for key, value in (metadata or {}).items()}
        for name in FILE_ID_KEYS:
            if name in lowered:
                try:
                    return uuid.UUID(lowered[name])
                except ValueError:
                    return None
        return None

    async def _duplicate(self, source: FileRecord, target: FileRecord) -> None:
        await asyncio.to_thread(self._copy, source.storage_path, target)

    # ------------------------------------------------------------------
    # Thumbnail cache
    # ------------------------------------------------------------------

    async def _content_modified_at(self, record: FileRecord) -> datetime:
        props = await asyncio.to_thread(self._properties, record.storage_path)
        if props is None:
            raise RecordNotFoundError(record.id)
        return props.last_modified or datetime.now(timezone.utc)

    def _read_bytes_sync(self, location: str) -> tuple[bytes, datetime] | None:
        blob = self._blob(location)
        try:
            downloader = blob.download_blob()
        except ResourceNotFoundError:
            return None
        data = downloader.readall()
        modified = getattr(downloader.properties, "last_modified", None)
        return data, modified or datetime.now(timezone.utc)

    async def _read_bytes(self, location: str) -> tuple[bytes, datetime] | None:
        return await asyncio.to_thread(self._read_bytes_sync, location)

    async def _write_bytes(self, location: str, data: bytes, content_type: str) -> None:
        await asyncio.to_thread(
            self._blob(location).upload_blob,
            data,
            overwrite=True,
            content_settings=ContentSettings(content_type=content_type),
        )

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    def _public_url(self, record: FileRecord) -> str | None:
        if not self.options.public_access:
            return None
        return self._blob(record.storage_path).url

    async def _signed_url(self, record: FileRecord, expiry: timedelta) -> str:
        account_key = getattr(getattr(self.container, "credential", None), "account_key", None)
        if not account_key:
            raise SignedUrlUnsupportedError("SAS URLs require shared key credentials.")
        token = generate_blob_sas(
            account_name=self.container.account_name,
            container_name=self.container.container_name,
            blob_name=record.storage_path,
            account_key=account_key,
            permission=BlobSasPermissions(read=True),
            expiry=utcnow() + expiry,
        )
        return f"{self._blob(record.storage_path).url}?{token}"

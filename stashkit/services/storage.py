"""
Provider-neutral storage engine.

``FileStorage`` implements the public contract once: validation, id minting,
conflict checks, bulk orchestration, listing/search, folder emulation and the
thumbnail cache. Subclasses only supply substrate primitives (write, open,
remove, relocate, duplicate, enumerate, URL issuance).

Every public operation returns a ``Result``; exceptions never cross the
contract boundary. Concurrent writes to the same id or location are not
coordinated and the last writer wins.
"""

from __future__ import annotations

import asyncio
import errno
import functools
import hashlib
import io
import logging
import tempfile
import threading
import uuid
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable, Mapping
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, BinaryIO, TypeVar

from stashkit.errors import (
    CANCELLED_MESSAGE,
    DISK_FULL_MESSAGE,
    IO_ERROR_MESSAGE,
    MEMORY_ERROR_MESSAGE,
    PERMISSION_DENIED_MESSAGE,
    UNEXPECTED_ERROR_MESSAGE,
    ErrorCode,
    FileAlreadyExistsError,
    FileValidationError,
    InvalidFileTypeError,
    RecordNotFoundError,
    StorageError,
    max_size_message,
)
from stashkit.result import Result
from stashkit.schemas.files import (
    BulkSaveItem,
    FileRecord,
    PaginatedResult,
    SearchParameters,
    ThumbnailSize,
)
from stashkit.services.keys import (
    PLACEHOLDER_CONTENT,
    PLACEHOLDER_NAME,
    RESERVED_PREFIXES,
    SEPARATOR,
    THUMBNAIL_PREFIX,
    KeyBuilder,
    coerce_uuid,
    folder_in_subtree,
    normalize_folder,
    storage_file_name,
)
from stashkit.services.options import FileStorageOptions
from stashkit.services.search import search_records
from stashkit.services.thumbnails import render_thumbnail, supports_thumbnail
from stashkit.services.validation import (
    detect_content_type,
    file_extension,
    validate_file,
    validate_file_name,
)

logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 81920
SPOOL_MEMORY_LIMIT = 1024 * 1024

T = TypeVar("T")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_checksum(content: BinaryIO) -> str:
    """SHA-256 of a seekable stream from its start; position is restored."""
    sha256 = hashlib.sha256()
    position = content.tell()
    try:
        content.seek(0)
        for chunk in iter(lambda: content.read(COPY_CHUNK_SIZE), b""):
            sha256.update(chunk)
    finally:
        content.seek(position)
    return sha256.hexdigest()


class MoveState(str, Enum):
    """Progress of a copy-then-delete move on backends without native rename."""

    PENDING = "pending"
    COPIED = "copied"
    SOURCE_DELETED = "source_deleted"


class TransferCancelled(Exception):
    """Raised inside a worker thread once the awaiting task was cancelled."""


class CountingReader:
    """Read-only wrapper that counts bytes and enforces the size limit mid-stream."""

    def __init__(self, source: BinaryIO, limit: int | None, cancel: threading.Event) -> None:
        self.source = source
        self.limit = limit
        self.cancel = cancel
        self.count = 0

    def read(self, size: int = -1) -> bytes:
        if self.cancel.is_set():
            raise TransferCancelled()
        chunk = self.source.read(size)
        self.count += len(chunk)
        if self.limit and self.count > self.limit:
            raise FileValidationError(max_size_message(self.limit), ErrorCode.MAX_FILE_SIZE_EXCEEDED)
        return chunk

    def readable(self) -> bool:
        return True


def storage_operation(func: Callable[..., Awaitable[Result[T]]]) -> Callable[..., Awaitable[Result[T]]]:
    """Convert anything raised by an engine operation into a failed Result."""

    @functools.wraps(func)
    async def wrapper(self: FileStorage, *args: Any, **kwargs: Any) -> Result[T]:
        try:
            return await func(self, *args, **kwargs)
        except asyncio.CancelledError:
            logger.info("storage_operation_cancelled provider=%s op=%s", self.provider_name, func.__name__)
            return Result.fail(CANCELLED_MESSAGE, ErrorCode.OPERATION_CANCELLED)
        except Exception as exc:
            error = self.to_storage_error(exc)
            if error is exc:
                logger.warning(
                    "storage_operation_failed provider=%s op=%s code=%s message=%s",
                    self.provider_name,
                    func.__name__,
                    error.code.value,
                    error.message,
                )
            else:
                logger.exception(
                    "storage_operation_error provider=%s op=%s code=%s",
                    self.provider_name,
                    func.__name__,
                    error.code.value,
                )
            return Result.fail(error.message, error.code)

    return wrapper


class FileStorage(ABC):
    """Capability contract shared by every storage provider."""

    provider_name = "abstract"

    def __init__(self, options: FileStorageOptions, key_builder: KeyBuilder) -> None:
        self.options = options
        self.keys = key_builder

    # ------------------------------------------------------------------
    # Substrate primitives
    # ------------------------------------------------------------------

    @abstractmethod
    async def _resolve(self, file_id: uuid.UUID) -> FileRecord | None:
        """Find the record for ``file_id`` or return None."""

    @abstractmethod
    def _location(self, folder: str | None, file_name: str) -> str:
        """Provider-native location for a file name inside a folder."""

    @abstractmethod
    async def _location_exists(self, location: str) -> bool: ...

    @abstractmethod
    def _write_content(self, record: FileRecord, content: BinaryIO, cancel: threading.Event) -> int:
        """Blocking upload of ``content`` to ``record.storage_path``; returns bytes written."""

    async def _commit(self, record: FileRecord) -> None:
        """Persist metadata after content is written (no-op when stored with the content)."""

    @abstractmethod
    async def _discard(self, location: str) -> None:
        """Remove a partially written object, ignoring absence."""

    @abstractmethod
    async def _open(self, record: FileRecord) -> BinaryIO: ...

    @abstractmethod
    async def _remove(self, record: FileRecord) -> None: ...

    @abstractmethod
    async def _update_metadata(self, record: FileRecord) -> None: ...

    @abstractmethod
    async def _relocate(self, record: FileRecord, moved: FileRecord) -> None: ...

    @abstractmethod
    async def _duplicate(self, source: FileRecord, target: FileRecord) -> None: ...

    @abstractmethod
    async def _records(self, folder: str | None = None) -> list[FileRecord]:
        """Every record at or below ``folder``, placeholders included."""

    @abstractmethod
    async def _content_modified_at(self, record: FileRecord) -> datetime: ...

    @abstractmethod
    async def _read_bytes(self, location: str) -> tuple[bytes, datetime] | None:
        """Raw bytes and last-modified time at ``location``, or None if absent."""

    @abstractmethod
    async def _write_bytes(self, location: str, data: bytes, content_type: str) -> None: ...

    @abstractmethod
    def _public_url(self, record: FileRecord) -> str | None: ...

    @abstractmethod
    async def _signed_url(self, record: FileRecord, expiry: timedelta) -> str: ...

    def _translate_error(self, exc: Exception) -> StorageError | None:
        """Map provider SDK exceptions; None falls through to generic handling."""
        return None

    def _thumbnail_location(self, file_id: uuid.UUID, size: ThumbnailSize) -> str:
        return self._location(f"{THUMBNAIL_PREFIX}/{size.folder_name}", f"{file_id}.jpg")

    # ------------------------------------------------------------------
    # Error mapping
    # ------------------------------------------------------------------

    def to_storage_error(self, exc: BaseException) -> StorageError:
        if isinstance(exc, StorageError):
            return exc
        if isinstance(exc, Exception):
            translated = self._translate_error(exc)
            if translated is not None:
                return translated
        if isinstance(exc, PermissionError):
            return StorageError(PERMISSION_DENIED_MESSAGE, ErrorCode.PERMISSION_DENIED)
        if isinstance(exc, OSError) and exc.errno in {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}:
            return StorageError(DISK_FULL_MESSAGE, ErrorCode.DISK_FULL)
        if isinstance(exc, MemoryError):
            return StorageError(MEMORY_ERROR_MESSAGE, ErrorCode.MEMORY_ERROR)
        if isinstance(exc, OSError):
            return StorageError(IO_ERROR_MESSAGE, ErrorCode.IO_ERROR)
        return StorageError(UNEXPECTED_ERROR_MESSAGE, ErrorCode.UNEXPECTED_ERROR)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _require(self, file_id: uuid.UUID | str) -> FileRecord:
        try:
            uid = coerce_uuid(file_id)
        except (TypeError, ValueError) as exc:
            raise RecordNotFoundError(file_id) from exc
        record = await self._resolve(uid)
        if record is None:
            raise RecordNotFoundError(uid)
        return record

    @staticmethod
    def _target_folder(folder: str | None) -> str | None:
        normalized = normalize_folder(folder)
        if normalized and normalized.split(SEPARATOR, 1)[0] in RESERVED_PREFIXES:
            raise FileValidationError("Invalid folder path.", ErrorCode.INVALID_FILE_NAME)
        return normalized

    def _resolve_folder(self, folder: str | None, draft: FileRecord) -> str | None:
        explicit = self._target_folder(folder)
        if explicit:
            return explicit
        if self.options.subfolder_strategy is not None:
            return self._target_folder(self.options.subfolder_strategy(draft))
        return None

    def _stored_name(self, file_id: uuid.UUID, file_name: str) -> str:
        if self.options.naming_strategy is not None:
            return validate_file_name(self.options.naming_strategy(file_name))
        return storage_file_name(file_id, file_extension(file_name))

    @staticmethod
    def _basename(location: str) -> str:
        return location.replace("\\", SEPARATOR).rsplit(SEPARATOR, 1)[-1]

    def _spool(self, content: BinaryIO) -> BinaryIO:
        # Read one byte past the limit so validation still reports the size error.
        limit = self.options.max_file_size_bytes
        remaining = limit + 1 if limit else None
        spooled = tempfile.SpooledTemporaryFile(max_size=SPOOL_MEMORY_LIMIT)
        while True:
            size = COPY_CHUNK_SIZE if remaining is None else min(COPY_CHUNK_SIZE, remaining)
            chunk = content.read(size)
            if not chunk:
                break
            spooled.write(chunk)
            if remaining is not None:
                remaining -= len(chunk)
                if remaining <= 0:
                    break
        spooled.seek(0)
        return spooled  # type: ignore[return-value]

    async def _prepare_content(self, content: BinaryIO | bytes) -> tuple[BinaryIO, bool]:
        """Return a seekable stream positioned at 0 and whether we own it."""
        if isinstance(content, (bytes, bytearray, memoryview)):
            return io.BytesIO(bytes(content)), True
        seekable = getattr(content, "seekable", None)
        if callable(seekable) and seekable():
            content.seek(0)
            return content, False
        return await asyncio.to_thread(self._spool, content), True

    async def _transfer(self, record: FileRecord, content: BinaryIO) -> int:
        """Stream content to the backend; partial writes are removed on failure or cancellation."""
        cancel = threading.Event()
        worker = asyncio.ensure_future(asyncio.to_thread(self._write_content, record, content, cancel))
        try:
            return await asyncio.shield(worker)
        except BaseException:
            cancel.set()
            await asyncio.wait({worker})
            if not worker.cancelled() and worker.exception() is not None:
                logger.debug("transfer_aborted key=%s error=%s", record.storage_path, worker.exception())
            await self._discard_quietly(record.storage_path)
            raise

    async def _discard_quietly(self, location: str) -> None:
        try:
            await self._discard(location)
        except Exception:
            logger.warning("partial_cleanup_failed location=%s", location, exc_info=True)

    # ------------------------------------------------------------------
    # Save / read / delete
    # ------------------------------------------------------------------

    async def _save(
        self,
        content: BinaryIO | bytes,
        file_name: str,
        folder: str | None = None,
        metadata: Mapping[str, str] | None = None,
        *,
        validate: bool = True,
    ) -> FileRecord:
        validate_file_name(file_name)
        stream, owned = await self._prepare_content(content)
        try:
            if validate:
                content_type = await asyncio.to_thread(validate_file, stream, file_name, self.options)
            else:
                content_type = detect_content_type(stream, file_name)

            file_id = uuid.uuid4()
            now = utcnow()
            record = FileRecord(
                id=file_id,
                name=file_name,
                original_name=file_name,
                extension=file_extension(file_name),
                content_type=content_type,
                created_at_utc=now,
                updated_at_utc=now,
                metadata=dict(metadata) if metadata else None,
            )
            record.folder = self._resolve_folder(folder, record)
            stored_name = self._stored_name(file_id, file_name)
            record.storage_path = self._location(record.folder, stored_name)

            if not self.options.overwrite_existing and await self._location_exists(record.storage_path):
                raise FileAlreadyExistsError(stored_name)

            if self.options.compute_hash:
                record.hash = await asyncio.to_thread(compute_checksum, stream)

            record.size_bytes = await self._transfer(record, stream)
            try:
                await self._commit(record)
            except BaseException:
                await self._discard_quietly(record.storage_path)
                raise
        finally:
            if owned:
                stream.close()

        logger.info(
            "file_saved provider=%s file_id=%s location=%s size=%d",
            self.provider_name,
            record.id,
            record.storage_path,
            record.size_bytes,
        )
        return record

    @storage_operation
    async def save(
        self,
        content: BinaryIO | bytes,
        file_name: str,
        folder: str | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> Result[FileRecord]:
        """Validate and store ``content``; the stream is read but never closed."""
        return Result.ok(await self._save(content, file_name, folder, metadata))

    @storage_operation
    async def get(self, file_id: uuid.UUID | str) -> Result[BinaryIO]:
        """Open the stored content; the caller closes the returned stream."""
        record = await self._require(file_id)
        return Result.ok(await self._open(record))

    @storage_operation
    async def get_metadata(self, file_id: uuid.UUID | str) -> Result[FileRecord]:
        return Result.ok(await self._require(file_id))

    async def _delete(self, file_id: uuid.UUID | str) -> bool:
        try:
            uid = coerce_uuid(file_id)
        except (TypeError, ValueError):
            return False
        record = await self._resolve(uid)
        if record is None:
            return False
        await self._remove(record)
        await self._remove_thumbnails(record.id)
        logger.info("file_deleted provider=%s file_id=%s", self.provider_name, uid)
        return True

    @storage_operation
    async def delete(self, file_id: uuid.UUID | str) -> Result[bool]:
        """Delete a file. A missing id is a success with ``False``."""
        return Result.ok(await self._delete(file_id))

    async def exists(self, file_id: uuid.UUID | str) -> bool:
        try:
            uid = coerce_uuid(file_id)
            return await self._resolve(uid) is not None
        except Exception:
            logger.debug("exists_check_failed file_id=%s", file_id, exc_info=True)
            return False

    # ------------------------------------------------------------------
    # Rename / move / copy
    # ------------------------------------------------------------------

    @storage_operation
    async def rename(self, file_id: uuid.UUID | str, new_name: str) -> Result[FileRecord]:
        """Change the display name only; the storage location is untouched."""
        validate_file_name(new_name)
        record = await self._require(file_id)
        renamed = record.model_copy(update={"name": new_name, "updated_at_utc": utcnow()})
        await self._update_metadata(renamed)
        logger.info("file_renamed provider=%s file_id=%s name=%s", self.provider_name, record.id, new_name)
        return Result.ok(renamed)

    async def _move(self, file_id: uuid.UUID | str, new_folder: str | None) -> FileRecord:
        target = self._target_folder(new_folder)
        record = await self._require(file_id)
        location = self._location(target, self._basename(record.storage_path))
        if location == record.storage_path:
            return record
        moved = record.model_copy(
            update={"folder": target, "storage_path": location, "updated_at_utc": utcnow()}
        )
        await self._relocate(record, moved)
        logger.info(
            "file_moved provider=%s file_id=%s from=%s to=%s",
            self.provider_name,
            record.id,
            record.folder,
            target,
        )
        return moved

    @storage_operation
    async def move(self, file_id: uuid.UUID | str, new_folder: str | None) -> Result[FileRecord]:
        return Result.ok(await self._move(file_id, new_folder))

    @storage_operation
    async def copy(self, file_id: uuid.UUID | str, new_folder: str | None) -> Result[FileRecord]:
        """Duplicate a file under a fresh id and fresh timestamps."""
        source = await self._require(file_id)
        target = self._target_folder(new_folder)
        new_id = uuid.uuid4()
        stored_name = self._stored_name(new_id, source.original_name)
        location = self._location(target, stored_name)
        if not self.options.overwrite_existing and await self._location_exists(location):
            raise FileAlreadyExistsError(stored_name)
        now = utcnow()
        duplicate = source.model_copy(
            update={
                "id": new_id,
                "folder": target,
                "storage_path": location,
                "created_at_utc": now,
                "updated_at_utc": now,
                "metadata": dict(source.metadata) if source.metadata else None,
            }
        )
        await self._duplicate(source, duplicate)
        logger.info("file_copied provider=%s source=%s copy=%s", self.provider_name, source.id, new_id)
        return Result.ok(duplicate)

    # ------------------------------------------------------------------
    # Bulk operations (sequential, not transactional)
    # ------------------------------------------------------------------

    @storage_operation
    async def bulk_save(self, items: Iterable[BulkSaveItem], folder: str | None = None) -> Result[list[FileRecord]]:
        """Save each item in order. Any failure fails the call; earlier saves are kept."""
        saved: list[FileRecord] = []
        errors: list[str] = []
        for item in items:
            try:
                saved.append(await self._save(item.content, item.file_name, folder, item.metadata))
            except Exception as exc:
                errors.append(self.to_storage_error(exc).message)
        if errors:
            return Result.fail(f"Some files failed to save: {'; '.join(errors)}", ErrorCode.VALIDATION_FAILED)
        return Result.ok(saved)

    @storage_operation
    async def bulk_delete(self, file_ids: Iterable[uuid.UUID | str]) -> Result[list[uuid.UUID]]:
        """Delete each id; only ids actually deleted are returned."""
        deleted: list[uuid.UUID] = []
        for file_id in file_ids:
            try:
                if await self._delete(file_id):
                    deleted.append(coerce_uuid(file_id))
            except Exception as exc:
                logger.warning("bulk_delete_skipped file_id=%s error=%s", file_id, self.to_storage_error(exc).message)
        return Result.ok(deleted)

    @storage_operation
    async def bulk_move(self, file_ids: Iterable[uuid.UUID | str], new_folder: str | None) -> Result[list[FileRecord]]:
        moved: list[FileRecord] = []
        for file_id in file_ids:
            try:
                moved.append(await self._move(file_id, new_folder))
            except Exception as exc:
                logger.warning("bulk_move_skipped file_id=%s error=%s", file_id, self.to_storage_error(exc).message)
        return Result.ok(moved)

    # ------------------------------------------------------------------
    # Listing and search
    # ------------------------------------------------------------------

    async def _visible_records(self, folder: str | None) -> list[FileRecord]:
        return [record for record in await self._records(folder) if record.name != PLACEHOLDER_NAME]

    @storage_operation
    async def list(
        self,
        folder: str | None = None,
        page: int = 1,
        page_size: int = 100,
    ) -> Result[PaginatedResult[FileRecord]]:
        """Page through files in ``folder`` and its subfolders, newest first."""
        params = SearchParameters(folder=folder, page=page, page_size=page_size)
        scope = normalize_folder(folder)
        return Result.ok(search_records(await self._visible_records(scope), params))

    @storage_operation
    async def search(self, params: SearchParameters) -> Result[PaginatedResult[FileRecord]]:
        scope = params.folder if params.folder is not None else params.folder_starts_with
        records = await self._visible_records(normalize_folder(scope))
        return Result.ok(search_records(records, params))

    # ------------------------------------------------------------------
    # Thumbnails
    # ------------------------------------------------------------------

    @storage_operation
    async def get_thumbnail(
        self,
        file_id: uuid.UUID | str,
        size: ThumbnailSize | str = ThumbnailSize.MEDIUM,
    ) -> Result[BinaryIO]:
        """Serve a cached JPEG thumbnail, regenerating it when older than the source."""
        try:
            size = ThumbnailSize[size.upper()] if isinstance(size, str) else ThumbnailSize(size)
        except (KeyError, ValueError) as exc:
            raise FileValidationError(
                f"Unknown thumbnail size '{size}'; expected small, medium or large.",
                ErrorCode.VALIDATION_FAILED,
            ) from exc
        record = await self._require(file_id)
        if not supports_thumbnail(record.content_type):
            raise InvalidFileTypeError(
                f"Thumbnails are not supported for content type '{record.content_type}'."
            )

        location = self._thumbnail_location(record.id, size)
        source_modified = await self._content_modified_at(record)
        cached = await self._read_bytes(location)
        if cached is not None and cached[1] >= source_modified:
            logger.debug("thumbnail_cache_hit file_id=%s size=%s", record.id, size.folder_name)
            return Result.ok(io.BytesIO(cached[0]))

        source = await self._read_bytes(record.storage_path)
        if source is None:
            raise RecordNotFoundError(record.id)
        thumbnail = await asyncio.to_thread(render_thumbnail, source[0], int(size))
        await self._write_bytes(location, thumbnail.data, "image/jpeg")
        logger.info(
            "thumbnail_generated file_id=%s size=%s width=%d height=%d",
            record.id,
            size.folder_name,
            thumbnail.width,
            thumbnail.height,
        )
        return Result.ok(io.BytesIO(thumbnail.data))

    async def _remove_thumbnails(self, file_id: uuid.UUID) -> None:
        for size in ThumbnailSize:
            await self._discard(self._thumbnail_location(file_id, size))

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    async def get_public_url(self, file_id: uuid.UUID | str) -> str | None:
        """Direct URL when the store is publicly readable, else None."""
        try:
            record = await self._resolve(coerce_uuid(file_id))
            return self._public_url(record) if record is not None else None
        except Exception:
            logger.debug("public_url_failed file_id=%s", file_id, exc_info=True)
            return None

    @storage_operation
    async def get_signed_url(self, file_id: uuid.UUID | str, expiry: timedelta | None = None) -> Result[str]:
        record = await self._require(file_id)
        return Result.ok(await self._signed_url(record, expiry or self.options.signed_url_expiry))

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    async def _folders(self, parent: str | None = None) -> list[str]:
        # Provider listings filter by prefix case-sensitively, so match parents here.
        records = await self._records()
        folders = {record.folder for record in records if record.folder}
        if parent is not None:
            wanted = (parent + SEPARATOR).casefold()
            children = set()
            for folder in folders:
                if folder.casefold().startswith(wanted):
                    child = folder[len(parent) + 1 :].split(SEPARATOR, 1)[0]
                    children.add(f"{folder[: len(parent)]}{SEPARATOR}{child}")
            folders = children
        unique: dict[str, str] = {}
        for folder in sorted(folders):
            unique.setdefault(folder.casefold(), folder)
        return sorted(unique.values(), key=str.casefold)

    @storage_operation
    async def list_folders(self, parent: str | None = None) -> Result[list[str]]:
        """All distinct folders, or only the immediate children of ``parent``."""
        if parent is not None and normalize_folder(parent) is None:
            roots = {folder.split(SEPARATOR, 1)[0] for folder in await self._folders()}
            return Result.ok(sorted(roots, key=str.casefold))
        return Result.ok(await self._folders(normalize_folder(parent)))

    @storage_operation
    async def delete_folder(self, folder: str, recursive: bool = True) -> Result[int]:
        """Delete every file in ``folder`` (and below when recursive); returns the count."""
        target = normalize_folder(folder)
        if target is None:
            raise FileValidationError("Folder path cannot be empty.", ErrorCode.VALIDATION_FAILED)
        records = [
            record
            for record in await self._records(target)
            if (folder_in_subtree(record.folder, target) if recursive else record.folder == target)
        ]
        deleted = 0
        for record in records:
            try:
                if await self._delete(record.id) and record.name != PLACEHOLDER_NAME:
                    deleted += 1
            except Exception as exc:
                logger.warning("folder_delete_skipped file_id=%s error=%s", record.id, self.to_storage_error(exc).message)
        logger.info("folder_deleted provider=%s folder=%s recursive=%s count=%d", self.provider_name, target, recursive, deleted)
        return Result.ok(deleted)

    @storage_operation
    async def create_folder(self, folder_path: str) -> Result[str]:
        """Make an empty folder visible by writing a hidden placeholder object."""
        target = self._target_folder(folder_path)
        if target is None:
            raise FileValidationError("Folder path cannot be empty.", ErrorCode.VALIDATION_FAILED)
        existing = {folder.casefold() for folder in await self._folders()}
        if target.casefold() in existing:
            return Result.ok(target)
        await self._save(io.BytesIO(PLACEHOLDER_CONTENT), PLACEHOLDER_NAME, target, validate=False)
        logger.info("folder_created provider=%s folder=%s", self.provider_name, target)
        return Result.ok(target)

"""
Local filesystem storage provider.

Layout under ``base_path``:
- content:    <folder>/<id><extension>
- sidecars:   .metadata/<id>.meta.json
- thumbnails: .thumbnails/<size>/<id>.jpg

Lookups read the sidecar first and fall back to scanning for ``<id>.*``
so content written without a sidecar is still reachable.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import threading
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import BinaryIO

from stashkit.errors import (
    ErrorCode,
    FileAlreadyExistsError,
    FileValidationError,
    SignedUrlUnsupportedError,
)
from stashkit.schemas.files import FileRecord
from stashkit.services.keys import METADATA_PREFIX, RESERVED_PREFIXES, KeyBuilder, folder_in_subtree
from stashkit.services.metadata_codec import SidecarCodec
from stashkit.services.options import LocalStorageOptions
from stashkit.services.signing import build_signed_url, verify_signature
from stashkit.services.storage import COPY_CHUNK_SIZE, CountingReader, FileStorage, utcnow
from stashkit.services.validation import detect_content_type

logger = logging.getLogger(__name__)

SIDECAR_SUFFIX = ".meta.json"


def resolve_safe_path(base_dir: Path, relative_path: str) -> Path:
    """
    Resolve a relative path safely within a base directory.

    Raises FileValidationError if the resolved path would escape base_dir.
    """
    base = base_dir.resolve()
    full_path = (base / relative_path).resolve()
    if base != full_path and base not in full_path.parents:
        raise FileValidationError("Invalid file path: outside storage directory", ErrorCode.INVALID_FILE_NAME)
    return full_path


def _mtime(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


class LocalFileStorage(FileStorage):
    provider_name = "local"

    def __init__(self, options: LocalStorageOptions | None = None) -> None:
        options = options or LocalStorageOptions()
        super().__init__(options, KeyBuilder())
        self.options: LocalStorageOptions = options
        self.base_path = Path(options.base_path).resolve()
        self.codec = SidecarCodec()
        if options.auto_create_directories:
            self.base_path.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _location(self, folder: str | None, file_name: str) -> str:
        return str(resolve_safe_path(self.base_path, self.keys.build_key(folder, file_name)))

    def _content_path(self, record: FileRecord) -> Path:
        return Path(self._location(record.folder, self._basename(record.storage_path)))

    def _sidecar_path(self, file_id: uuid.UUID) -> Path:
        return self.base_path / METADATA_PREFIX / f"{file_id}{SIDECAR_SUFFIX}"

    def _ensure_parent(self, path: Path) -> None:
        if self.options.auto_create_directories:
            path.parent.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Sidecar metadata
    # ------------------------------------------------------------------

    def _write_sidecar(self, record: FileRecord) -> None:
        path = self._sidecar_path(record.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.codec.encode(record), encoding="utf-8")

    def _read_sidecar(self, path: Path) -> FileRecord | None:
        try:
            payload = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        record = self.codec.decode(payload)
        if record is None:
            return None
        content = self._content_path(record)
        if not content.is_file():
            logger.debug("sidecar_orphaned file_id=%s path=%s", record.id, content)
            return None
        record.storage_path = str(content)
        return record

    def _scan_for_content(self, file_id: uuid.UUID) -> FileRecord | None:
        """Slow path: locate ``<id>`` or ``<id>.*`` anywhere outside reserved folders."""
        stem = str(file_id)
        for root, dirs, files in os.walk(self.base_path):
            if Path(root) == self.base_path:
                dirs[:] = [d for d in dirs if d not in RESERVED_PREFIXES]
            for name in files:
                if name == stem or name.startswith(stem + "."):
                    return self._record_from_file(file_id, Path(root) / name)
        return None

    def _record_from_file(self, file_id: uuid.UUID, path: Path) -> FileRecord:
        stat = path.stat()
        relative = path.relative_to(self.base_path).as_posix()
        with open(path, "rb") as handle:
            content_type = detect_content_type(handle, path.name)
        return FileRecord(
            id=file_id,
            name=path.name,
            original_name=path.name,
            extension=path.suffix,
            content_type=content_type,
            size_bytes=stat.st_size,
            created_at_utc=datetime.fromtimestamp(stat.st_ctime, tz=timezone.utc),
            updated_at_utc=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            folder=self.keys.extract_folder(relative),
            storage_path=str(path),
        )

    def _resolve_sync(self, file_id: uuid.UUID) -> FileRecord | None:
        record = self._read_sidecar(self._sidecar_path(file_id))
        if record is not None:
            return record
        return self._scan_for_content(file_id)

    async def _resolve(self, file_id: uuid.UUID) -> FileRecord | None:
        return await asyncio.to_thread(self._resolve_sync, file_id)

    def _load_records(self, folder: str | None) -> list[FileRecord]:
        metadata_dir = self.base_path / METADATA_PREFIX
        if not metadata_dir.is_dir():
            return []
        records = []
        for path in metadata_dir.glob(f"*{SIDECAR_SUFFIX}"):
            record = self._read_sidecar(path)
            if record is not None and folder_in_subtree(record.folder, folder):
                records.append(record)
        return records

    async def _records(self, folder: str | None = None) -> list[FileRecord]:
        return await asyncio.to_thread(self._load_records, folder)

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    async def _location_exists(self, location: str) -> bool:
        return Path(location).exists()

    def _write_content(self, record: FileRecord, content: BinaryIO, cancel: threading.Event) -> int:
        path = Path(record.storage_path)
        self._ensure_parent(path)
        reader = CountingReader(content, self.options.max_file_size_bytes, cancel)
        with open(path, "wb") as handle:
            for chunk in iter(lambda: reader.read(COPY_CHUNK_SIZE), b""):
                handle.write(chunk)
        return reader.count

    async def _commit(self, record: FileRecord) -> None:
        await asyncio.to_thread(self._write_sidecar, record)

    async def _discard(self, location: str) -> None:
        await asyncio.to_thread(Path(location).unlink, True)

    async def _open(self, record: FileRecord) -> BinaryIO:
        return await asyncio.to_thread(open, self._content_path(record), "rb")

    def _remove_sync(self, record: FileRecord) -> None:
        self._content_path(record).unlink(missing_ok=True)
        self._sidecar_path(record.id).unlink(missing_ok=True)

    async def _remove(self, record: FileRecord) -> None:
        await asyncio.to_thread(self._remove_sync, record)

    async def _update_metadata(self, record: FileRecord) -> None:
        await asyncio.to_thread(self._write_sidecar, record)

    def _relocate_sync(self, record: FileRecord, moved: FileRecord) -> None:
        source = self._content_path(record)
        target = Path(moved.storage_path)
        if target.exists() and not self.options.overwrite_existing:
            raise FileAlreadyExistsError(target.name)
        self._ensure_parent(target)
        os.replace(source, target)
        self._write_sidecar(moved)

    async def _relocate(self, record: FileRecord, moved: FileRecord) -> None:
        await asyncio.to_thread(self._relocate_sync, record, moved)

    def _duplicate_sync(self, source: FileRecord, target: FileRecord) -> None:
        destination = Path(target.storage_path)
        self._ensure_parent(destination)
        shutil.copyfile(self._content_path(source), destination)
        try:
            self._write_sidecar(target)
        except BaseException:
            destination.unlink(missing_ok=True)
            raise

    async def _duplicate(self, source: FileRecord, target: FileRecord) -> None:
        await asyncio.to_thread(self._duplicate_sync, source, target)

    # ------------------------------------------------------------------
    # Thumbnail cache
    # ------------------------------------------------------------------

    async def _content_modified_at(self, record: FileRecord) -> datetime:
        return await asyncio.to_thread(_mtime, self._content_path(record))

    def _read_bytes_sync(self, location: str) -> tuple[bytes, datetime] | None:
        path = Path(location)
        if not path.is_file():
            return None
        return path.read_bytes(), _mtime(path)

    async def _read_bytes(self, location: str) -> tuple[bytes, datetime] | None:
        return await asyncio.to_thread(self._read_bytes_sync, location)

    def _write_bytes_sync(self, location: str, data: bytes) -> None:
        path = Path(location)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def _write_bytes(self, location: str, data: bytes, content_type: str) -> None:
        await asyncio.to_thread(self._write_bytes_sync, location, data)

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    def _public_url(self, record: FileRecord) -> str | None:
        if not self.options.public_read:
            return None
        return f"{self.options.base_url.rstrip('/')}/{record.id}"

    async def _signed_url(self, record: FileRecord, expiry: timedelta) -> str:
        if not self.options.enable_signed_urls or not self.options.signing_key:
            raise SignedUrlUnsupportedError("Signed URLs are not enabled for local storage.")
        expires = int((utcnow() + expiry).timestamp())
        return build_signed_url(self.options.base_url, record.id, expires, self.options.signing_key)

    def verify_signed_url(self, file_id: uuid.UUID | str, expires: int | str | None, signature: str | None) -> bool:
        """Validate the ``expires``/``signature`` pair of a URL issued by ``get_signed_url``."""
        if not self.options.enable_signed_urls:
            return False
        return verify_signature(file_id, expires, signature, self.options.signing_key)

"""
S3-compatible object storage provider (AWS S3, MinIO, R2).

Records live entirely in object user metadata, so id lookups scan every
object under the key prefix and read its metadata. This is O(n) per lookup
and stops at the first match; objects with missing or unreadable metadata
are skipped.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from collections.abc import Iterator
from datetime import datetime, timedelta, timezone
from typing import Any, BinaryIO
from urllib.parse import quote

from botocore.exceptions import BotoCoreError

from stashkit.errors import (
    FileAlreadyExistsError,
    ProviderError,
    RecordNotFoundError,
    StorageError,
)
from stashkit.schemas.files import FileRecord
from stashkit.services.keys import KeyBuilder
from stashkit.services.metadata_codec import FILE_ID_KEYS, ObjectMetadataCodec
from stashkit.services.options import S3StorageOptions
from stashkit.services.storage import CountingReader, FileStorage, MoveState

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


class S3FileStorage(FileStorage):
    provider_name = "s3"

    def __init__(self, options: S3StorageOptions, client: Any | None = None) -> None:
        super().__init__(options, KeyBuilder(options.key_prefix))
        self.options: S3StorageOptions = options
        self.bucket_name = options.bucket_name
        self.region = options.region
        self.codec = ObjectMetadataCodec()
        if client is not None:
            self.client = client
            return
        try:
            import boto3
        except ImportError as exc:
            raise ProviderError("boto3 is required for S3 storage") from exc
        self.client = boto3.client(
            "s3",
            endpoint_url=options.endpoint_url,
            aws_access_key_id=options.access_key_id,
            aws_secret_access_key=options.secret_access_key,
            region_name=options.region,
        )

    @staticmethod
    def _error_code(exc: Exception) -> str:
        response = getattr(exc, "response", None)
        if isinstance(response, dict):
            err = response.get("Error", {})
            if isinstance(err, dict):
                return str(err.get("Code", ""))
        return ""

    def _translate_error(self, exc: Exception) -> StorageError | None:
        if isinstance(exc, BotoCoreError) or getattr(exc, "response", None) is not None:
            code = self._error_code(exc) or type(exc).__name__
            return ProviderError(f"Object storage request failed ({code}).")
        return None

    def ensure_bucket(self) -> None:
        """Create bucket if missing (safe to call repeatedly)."""
        try:
            self.client.head_bucket(Bucket=self.bucket_name)
            return
        except Exception as exc:
            code = self._error_code(exc)
            if code not in {"404", "NoSuchBucket"}:
                raise ProviderError("Unable to check storage bucket") from exc

        kwargs: dict = {"Bucket": self.bucket_name}
        if self.region and self.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        self.client.create_bucket(**kwargs)
        logger.info("Created storage bucket: %s", self.bucket_name)

    # ------------------------------------------------------------------
    # Low-level object access
    # ------------------------------------------------------------------

    def _head(self, key: str) -> dict | None:
        try:
            return self.client.head_object(Bucket=self.bucket_name, Key=key)
        except Exception as exc:
            if self._error_code(exc) in NOT_FOUND_CODES:
                return None
            raise

    def _iter_keys(self, prefix: str) -> Iterator[str]:
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
            for obj in page.get("Contents", []) or []:
                key = obj["Key"]
                if not self.keys.is_reserved(key):
                    yield key

    def _decode(self, key: str, head: dict) -> FileRecord | None:
        return self.codec.decode(
            key,
            head.get("Metadata"),
            key_builder=self.keys,
            size=int(head.get("ContentLength") or 0),
            content_type=head.get("ContentType"),
            last_modified=head.get("LastModified"),
        )

    def _iter_records(self, prefix: str) -> Iterator[FileRecord]:
        for key in self._iter_keys(prefix):
            try:
                head = self._head(key)
            except Exception as exc:
                logger.debug("object_metadata_unreadable key=%s error=%s", key, exc)
                continue
            if head is None:
                continue
            record = self._decode(key, head)
            if record is not None:
                yield record

    def _write_args(self, record: FileRecord) -> dict[str, Any]:
        args: dict[str, Any] = {
            "ContentType": record.content_type,
            "Metadata": self.codec.encode(record),
        }
        if self.options.storage_class:
            args["StorageClass"] = self.options.storage_class
        if self.options.enable_encryption:
            args["ServerSideEncryption"] = "AES256"
        if self.options.public_read:
            args["ACL"] = "public-read"
        return args

    def _copy(self, source_key: str, record: FileRecord) -> None:
        self.client.copy_object(
            Bucket=self.bucket_name,
            Key=record.storage_path,
            CopySource={"Bucket": self.bucket_name, "Key": source_key},
            MetadataDirective="REPLACE",
            **self._write_args(record),
        )

    # ------------------------------------------------------------------
    # Substrate primitives
    # ------------------------------------------------------------------

    def _location(self, folder: str | None, file_name: str) -> str:
        return self.keys.build_key(folder, file_name)

    async def _location_exists(self, location: str) -> bool:
        return await asyncio.to_thread(self._head, location) is not None

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
        self.client.upload_fileobj(
            reader,
            self.bucket_name,
            record.storage_path,
            ExtraArgs=self._write_args(record),
        )
        return reader.count

    async def _discard(self, location: str) -> None:
        await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket_name, Key=location)

    def _open_sync(self, record: FileRecord) -> BinaryIO:
        try:
            obj = self.client.get_object(Bucket=self.bucket_name, Key=record.storage_path)
        except Exception as exc:
            if self._error_code(exc) in NOT_FOUND_CODES:
                raise RecordNotFoundError(record.id) from exc
            raise
        return obj["Body"]

    async def _open(self, record: FileRecord) -> BinaryIO:
        return await asyncio.to_thread(self._open_sync, record)

    async def _remove(self, record: FileRecord) -> None:
        await self._discard(record.storage_path)

    async def _update_metadata(self, record: FileRecord) -> None:
        # S3 metadata is immutable; copy the object onto itself with new metadata.
        await asyncio.to_thread(self._copy, record.storage_path, record)

    def _relocate_sync(self, record: FileRecord, moved: FileRecord) -> MoveState:
        state = MoveState.PENDING
        existing = self._head(moved.storage_path)
        if existing is not None:
            if self._owner_id(existing) == record.id:
                # An earlier attempt already copied the object.
                state = MoveState.COPIED
            elif not self.options.overwrite_existing:
                raise FileAlreadyExistsError(moved.storage_path.rsplit("/", 1)[-1])
        if state is MoveState.PENDING:
            self._copy(record.storage_path, moved)
        self.client.delete_object(Bucket=self.bucket_name, Key=record.storage_path)
        return MoveState.SOURCE_DELETED

    async def _relocate(self, record: FileRecord, moved: FileRecord) -> None:
        state = await asyncio.to_thread(self._relocate_sync, record, moved)
        logger.debug("object_move file_id=%s state=%s", record.id, state.value)

    @staticmethod
    def _owner_id(head: dict) -> uuid.UUID | None:
        metadata = {key.lower(): value for key, value in (head.get("Metadata") or {}).items()}
        for name in FILE_ID_KEYS:
            if name in metadata:
                try:
                    return uuid.UUID(metadata[name])
                except ValueError:
                    return None
        return None

    async def _duplicate(self, source: FileRecord, target: FileRecord) -> None:
        await asyncio.to_thread(self._copy, source.storage_path, target)

    # ------------------------------------------------------------------
    # Thumbnail cache
    # ------------------------------------------------------------------

    async def _content_modified_at(self, record: FileRecord) -> datetime:
        head = await asyncio.to_thread(self._head, record.storage_path)
        if head is None:
            raise RecordNotFoundError(record.id)
        return head.get("LastModified") or datetime.now(timezone.utc)

    def _read_bytes_sync(self, location: str) -> tuple[bytes, datetime] | None:
        try:
            obj = self.client.get_object(Bucket=self.bucket_name, Key=location)
        except Exception as exc:
            if self._error_code(exc) in NOT_FOUND_CODES:
                return None
            raise
        body = obj["Body"]
        try:
            data = body.read()
        finally:
            close = getattr(body, "close", None)
            if callable(close):
                close()
        return data, obj.get("LastModified") or datetime.now(timezone.utc)

    async def _read_bytes(self, location: str) -> tuple[bytes, datetime] | None:
        return await asyncio.to_thread(self._read_bytes_sync, location)

    async def _write_bytes(self, location: str, data: bytes, content_type: str) -> None:
        await asyncio.to_thread(
            self.client.put_object,
            Bucket=self.bucket_name,
            Key=location,
            Body=data,
            ContentType=content_type,
        )

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    def _public_url(self, record: FileRecord) -> str | None:
        if not self.options.public_read:
            return None
        key = quote(record.storage_path)
        if self.options.endpoint_url:
            return f"{self.options.endpoint_url.rstrip('/')}/{self.bucket_name}/{key}"
        return f"https://{self.bucket_name}.s3.{self.region}.amazonaws.com/{key}"

    async def _signed_url(self, record: FileRecord, expiry: timedelta) -> str:
        return await asyncio.to_thread(
            self.client.generate_presigned_url,
            "get_object",
            Params={"Bucket": self.bucket_name, "Key": record.storage_path},
            ExpiresIn=int(expiry.total_seconds()),
        )

"""
Per-backend encoding of FileRecord fields.

- Local disk: a JSON sidecar holding the whole record.
- S3: user metadata; keys are lower-cased by the service and values
  must be US-ASCII.
- Azure Blob: metadata names must be valid identifiers, so ``-`` becomes ``_``.

Object and blob values are percent-encoded so non-ASCII names survive.
Caller metadata keys are escaped into ``[a-z0-9_]`` (``_`` plus two hex
digits per UTF-8 byte) so they decode to exactly what the caller saved.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from urllib.parse import quote, unquote

from pydantic.alias_generators import to_pascal, to_snake

from stashkit.schemas.files import FileRecord
from stashkit.services.keys import KeyBuilder

logger = logging.getLogger(__name__)

FILE_ID = "file-id"
ORIGINAL_NAME = "original-name"
DISPLAY_NAME = "display-name"
EXTENSION = "extension"
HASH = "hash"
CREATED_AT = "created-at"
UPDATED_AT = "updated-at"
CUSTOM_PREFIX = "custom-"
FILE_ID_KEYS = (FILE_ID, FILE_ID.replace("-", "_"))

_SAFE_VALUE_CHARS = " !#$&'()*+,/:;=?@[]^`{|}~"
_PLAIN_KEY_CHARS = frozenset("abcdefghijklmnopqrstuvwxyz0123456789")


def encode_custom_key(key: str) -> str:
    """``"Cost-Center"`` -> ``"_43ost_2d_43enter"``."""
    return "".join(
        char if char in _PLAIN_KEY_CHARS else "".join(f"_{byte:02x}" for byte in char.encode("utf-8"))
        for char in key
    )


def decode_custom_key(encoded: str) -> str:
    return unquote(encoded.lower().replace("_", "%"))


class SidecarCodec:
    """Whole-record JSON with PascalCase field names (``Id``, ``SizeBytes``, ...)."""

    @staticmethod
    def encode(record: FileRecord) -> str:
        payload = record.model_dump(mode="json")
        return json.dumps({to_pascal(key): value for key, value in payload.items()})

    @staticmethod
    def decode(payload: str | bytes) -> FileRecord | None:
        try:
            data = json.loads(payload)
            return FileRecord.model_validate({to_snake(key): value for key, value in data.items()})
        except (ValueError, TypeError, AttributeError) as exc:
            logger.debug("sidecar_decode_failed error=%s", exc)
            return None


def _parse_datetime(value: str | None, fallback: datetime) -> datetime:
    if not value:
        return fallback
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return fallback
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class KeyValueMetadataCodec:
    """Encode records as flat string maps for object/blob metadata."""

    separator = "-"

    def name(self, logical: str) -> str:
        return logical.replace("-", self.separator)

    def custom_key(self, key: str) -> str:
        return self.name(CUSTOM_PREFIX) + encode_custom_key(key)

    @staticmethod
    def encode_value(value: str) -> str:
        return quote(value, safe=_SAFE_VALUE_CHARS)

    @staticmethod
    def decode_value(value: str) -> str:
        return unquote(value)

    def encode(self, record: FileRecord) -> dict[str, str]:
        encoded = {
            self.name(FILE_ID): str(record.id),
            self.name(ORIGINAL_NAME): self.encode_value(record.original_name),
            self.name(DISPLAY_NAME): self.encode_value(record.name),
            self.name(EXTENSION): self.encode_value(record.extension),
            self.name(CREATED_AT): record.created_at_utc.isoformat(),
            self.name(UPDATED_AT): record.updated_at_utc.isoformat(),
        }
        if record.hash:
            encoded[self.name(HASH)] = record.hash
        for key, value in (record.metadata or {}).items():
            encoded[self.custom_key(key)] = self.encode_value(value)
        return encoded

    def _normalized(self, metadata: Mapping[str, str]) -> dict[str, str]:
        # Either spelling is accepted so both backends can read each other's keys.
        return {key.lower().replace("_", "-"): key for key in metadata}

    def decode(
        self,
        key: str,
        metadata: Mapping[str, str] | None,
        *,
        key_builder: KeyBuilder,
        size: int,
        content_type: str | None,
        last_modified: datetime | None,
    ) -> FileRecord | None:
        """Rebuild a record, or return None when the object carries no valid file id."""
        if not metadata:
            return None
        lookup = self._normalized(metadata)

        def get(logical: str) -> str | None:
            original_key = lookup.get(logical)
            return metadata[original_key] if original_key is not None else None

        try:
            file_id = uuid.UUID(get(FILE_ID) or "")
        except ValueError:
            return None

        file_name = os.path.basename(key)
        original_name = self.decode_value(get(ORIGINAL_NAME) or file_name)
        display_name = self.decode_value(get(DISPLAY_NAME) or "") or original_name
        extension = get(EXTENSION)
        extension = self.decode_value(extension) if extension is not None else os.path.splitext(file_name)[1]
        modified = last_modified or datetime.now(timezone.utc)

        custom: dict[str, str] = {}
        for stored_key, value in metadata.items():
            prefix = stored_key[: len(CUSTOM_PREFIX)].lower().replace("_", "-")
            if prefix == CUSTOM_PREFIX:
                custom[decode_custom_key(stored_key[len(CUSTOM_PREFIX) :])] = self.decode_value(value)

        return FileRecord(
            id=file_id,
            name=display_name,
            original_name=original_name,
            extension=extension,
            content_type=content_type or "application/octet-stream",
            size_bytes=size,
            created_at_utc=_parse_datetime(get(CREATED_AT), modified),
            updated_at_utc=_parse_datetime(get(UPDATED_AT), modified),
            hash=get(HASH),
            folder=key_builder.extract_folder(key),
            storage_path=key,
            metadata=custom or None,
        )


class ObjectMetadataCodec(KeyValueMetadataCodec):
    separator = "-"


class BlobMetadataCodec(KeyValueMetadataCodec):
    separator = "_"

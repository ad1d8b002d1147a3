"""Mapping between virtual folders, file names and provider keys."""

from __future__ import annotations

import uuid

from stashkit.errors import ErrorCode, FileValidationError

SEPARATOR = "/"
METADATA_PREFIX = ".metadata"
THUMBNAIL_PREFIX = ".thumbnails"
RESERVED_PREFIXES = frozenset({METADATA_PREFIX, THUMBNAIL_PREFIX})
PLACEHOLDER_NAME = ".folder_placeholder"
PLACEHOLDER_CONTENT = b"placeholder"


def normalize_folder(folder: str | None) -> str | None:
    """Canonical folder form: ``a/b``, or ``None`` for the root.

    Backslashes are treated as separators and empty segments dropped.
    Parent references are rejected.
    """
    if folder is None:
        return None
    segments = [seg for seg in folder.replace("\\", SEPARATOR).split(SEPARATOR) if seg.strip()]
    segments = [seg for seg in segments if seg != "."]
    if ".." in segments:
        raise FileValidationError("Invalid folder path.", ErrorCode.INVALID_FILE_NAME)
    return SEPARATOR.join(segments) or None


def folder_in_subtree(folder: str | None, root: str | None) -> bool:
    """True when ``folder`` equals ``root`` or sits anywhere below it."""
    if not root:
        return True
    if not folder:
        return False
    return folder == root or folder.startswith(root + SEPARATOR)


def storage_file_name(file_id: uuid.UUID, extension: str) -> str:
    return f"{file_id}{extension}"


def coerce_uuid(value: str | uuid.UUID) -> uuid.UUID:
    """Convert string to UUID if needed."""
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


class KeyBuilder:
    """Build provider keys as ``<prefix>/<folder>/<file name>``.

    ``extract_folder`` is the inverse for any key built here.
    """

    def __init__(self, prefix: str | None = None) -> None:
        self.prefix = (prefix or "").strip().strip(SEPARATOR)

    def build_key(self, folder: str | None, file_name: str) -> str:
        parts = [self.prefix, normalize_folder(folder) or "", file_name]
        return SEPARATOR.join(part for part in parts if part)

    def strip_prefix(self, key: str) -> str:
        if self.prefix and key.startswith(self.prefix + SEPARATOR):
            return key[len(self.prefix) + 1 :]
        return key

    def extract_folder(self, key: str) -> str | None:
        relative = self.strip_prefix(key)
        if SEPARATOR not in relative:
            return None
        return relative.rsplit(SEPARATOR, 1)[0] or None

    def list_prefix(self, folder: str | None = None) -> str:
        """Listing prefix covering ``folder`` and everything under it."""
        parts = [self.prefix, normalize_folder(folder) or ""]
        joined = SEPARATOR.join(part for part in parts if part)
        return f"{joined}{SEPARATOR}" if joined else ""

    def is_reserved(self, key: str) -> bool:
        head = self.strip_prefix(key).split(SEPARATOR, 1)[0]
        return head in RESERVED_PREFIXES

"""
File validation and content-type sniffing.

Checks run in a fixed order and the first failure wins:
name present, name legal, extension allowed, content non-empty,
size within limit, sniffed content type allowed.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from typing import BinaryIO

from stashkit.errors import (
    EMPTY_FILE_CONTENT_MESSAGE,
    EMPTY_FILE_NAME_MESSAGE,
    INVALID_FILE_NAME_MESSAGE,
    ErrorCode,
    FileValidationError,
    invalid_content_type_message,
    invalid_extension_message,
    max_size_message,
)
from stashkit.services.options import FileStorageOptions

DEFAULT_CONTENT_TYPE = "application/octet-stream"
SNIFF_LENGTH = 512

# Leading-byte signatures checked before falling back to the extension table
MAGIC_BYTES: list[tuple[bytes, str]] = [
    (b"\x89PNG", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF8", "image/gif"),
    (b"%PDF", "application/pdf"),
]

EXTENSION_CONTENT_TYPES: dict[str, str] = {
    # Text
    ".txt": "text/plain",
    ".csv": "text/csv",
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".md": "text/markdown",
    ".xml": "application/xml",
    ".json": "application/json",
    ".js": "application/javascript",
    # Documents
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".ppt": "application/vnd.ms-powerpoint",
    ".pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    # Images
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    # Media
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    # Archives
    ".zip": "application/zip",
    ".gz": "application/gzip",
    ".tar": "application/x-tar",
}

# Characters rejected on at least one supported platform
INVALID_NAME_CHARS = frozenset('<>:"/\\|?*') | frozenset(chr(i) for i in range(32))


def file_extension(file_name: str) -> str:
    return os.path.splitext(file_name)[1]


def normalize_extension(extension: str) -> str:
    ext = extension.strip().lower()
    if ext and not ext.startswith("."):
        ext = f".{ext}"
    return ext


def content_type_matches(content_type: str, pattern: str) -> bool:
    """Exact match, or ``type/*`` wildcard prefix match (case-insensitive)."""
    actual = content_type.lower()
    expected = pattern.strip().lower()
    if expected.endswith("/*"):
        return actual.startswith(expected[:-1])
    return actual == expected


def content_type_allowed(content_type: str, patterns: Iterable[str]) -> bool:
    return any(content_type_matches(content_type, pattern) for pattern in patterns)


def stream_length(content: BinaryIO) -> int:
    """Length of a seekable stream without disturbing its position."""
    position = content.tell()
    try:
        content.seek(0, os.SEEK_END)
        return content.tell()
    finally:
        content.seek(position)


def detect_content_type(content: BinaryIO, file_name: str) -> str:
    """Sniff magic bytes from the start of the stream, then fall back to the extension."""
    position = content.tell()
    try:
        content.seek(0)
        header = content.read(SNIFF_LENGTH) or b""
    finally:
        content.seek(position)
    for signature, content_type in MAGIC_BYTES:
        if header.startswith(signature):
            return content_type
    return EXTENSION_CONTENT_TYPES.get(file_extension(file_name).lower(), DEFAULT_CONTENT_TYPE)


def validate_file_name(file_name: str | None) -> str:
    if file_name is None or not file_name.strip():
        raise FileValidationError(EMPTY_FILE_NAME_MESSAGE, ErrorCode.EMPTY_FILE_NAME)
    if any(ch in INVALID_NAME_CHARS for ch in file_name):
        raise FileValidationError(INVALID_FILE_NAME_MESSAGE, ErrorCode.INVALID_FILE_NAME)
    return file_name


def validate_file(content: BinaryIO, file_name: str, options: FileStorageOptions) -> str:
    """Validate content and name against the storage policy.

    Returns the detected content type. Raises ``FileValidationError`` carrying
    the specific error code of the first failed check. ``content`` must be
    seekable; its position is left unchanged.
    """
    validate_file_name(file_name)

    extension = file_extension(file_name)
    allowed_extensions = [normalize_extension(ext) for ext in options.allowed_extensions]
    if allowed_extensions and extension.lower() not in allowed_extensions:
        raise FileValidationError(
            invalid_extension_message(extension, options.allowed_extensions),
            ErrorCode.INVALID_FILE_EXTENSION,
        )

    size = stream_length(content) - content.tell()
    if size <= 0:
        raise FileValidationError(EMPTY_FILE_CONTENT_MESSAGE, ErrorCode.EMPTY_FILE_CONTENT)
    if options.max_file_size_bytes and size > options.max_file_size_bytes:
        raise FileValidationError(
            max_size_message(options.max_file_size_bytes),
            ErrorCode.MAX_FILE_SIZE_EXCEEDED,
        )

    content_type = detect_content_type(content, file_name)
    if options.allowed_content_types and not content_type_allowed(
        content_type, options.allowed_content_types
    ):
        raise FileValidationError(
            invalid_content_type_message(content_type, options.allowed_content_types),
            ErrorCode.INVALID_CONTENT_TYPE,
        )
    return content_type

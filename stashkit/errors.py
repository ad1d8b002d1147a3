"""Error codes, error kinds and the exception hierarchy raised inside storage engines.

Engines raise ``StorageError`` subclasses internally; the public contract
converts them into failed :class:`stashkit.result.Result` values.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum


class ErrorCode(str, Enum):
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    FILE_ALREADY_EXISTS = "FILE_ALREADY_EXISTS"
    MAX_FILE_SIZE_EXCEEDED = "MAX_FILE_SIZE_EXCEEDED"
    INVALID_FILE_EXTENSION = "INVALID_FILE_EXTENSION"
    INVALID_CONTENT_TYPE = "INVALID_CONTENT_TYPE"
    INVALID_FILE_TYPE = "INVALID_FILE_TYPE"
    EMPTY_FILE_NAME = "EMPTY_FILE_NAME"
    INVALID_FILE_NAME = "INVALID_FILE_NAME"
    EMPTY_FILE_CONTENT = "EMPTY_FILE_CONTENT"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    DISK_FULL = "DISK_FULL"
    IO_ERROR = "IO_ERROR"
    MEMORY_ERROR = "MEMORY_ERROR"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    OPERATION_CANCELLED = "OPERATION_CANCELLED"
    SIGNED_URL_NOT_SUPPORTED = "SIGNED_URL_NOT_SUPPORTED"


class ErrorKind(str, Enum):
    """Coarse error taxonomy callers branch on."""

    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    VALIDATION_FAILED = "validation_failed"
    PERMISSION_DENIED = "permission_denied"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    IO_ERROR = "io_error"
    PROVIDER_ERROR = "provider_error"
    OPERATION_CANCELLED = "operation_cancelled"
    SIGNED_URL_UNSUPPORTED = "signed_url_unsupported"
    UNEXPECTED_ERROR = "unexpected_error"


ERROR_KINDS: dict[ErrorCode, ErrorKind] = {
    ErrorCode.FILE_NOT_FOUND: ErrorKind.NOT_FOUND,
    ErrorCode.FILE_ALREADY_EXISTS: ErrorKind.ALREADY_EXISTS,
    ErrorCode.MAX_FILE_SIZE_EXCEEDED: ErrorKind.VALIDATION_FAILED,
    ErrorCode.INVALID_FILE_EXTENSION: ErrorKind.VALIDATION_FAILED,
    ErrorCode.INVALID_CONTENT_TYPE: ErrorKind.VALIDATION_FAILED,
    ErrorCode.INVALID_FILE_TYPE: ErrorKind.VALIDATION_FAILED,
    ErrorCode.EMPTY_FILE_NAME: ErrorKind.VALIDATION_FAILED,
    ErrorCode.INVALID_FILE_NAME: ErrorKind.VALIDATION_FAILED,
    ErrorCode.EMPTY_FILE_CONTENT: ErrorKind.VALIDATION_FAILED,
    ErrorCode.VALIDATION_FAILED: ErrorKind.VALIDATION_FAILED,
    ErrorCode.PERMISSION_DENIED: ErrorKind.PERMISSION_DENIED,
    ErrorCode.DISK_FULL: ErrorKind.RESOURCE_EXHAUSTED,
    ErrorCode.MEMORY_ERROR: ErrorKind.RESOURCE_EXHAUSTED,
    ErrorCode.IO_ERROR: ErrorKind.IO_ERROR,
    ErrorCode.PROVIDER_ERROR: ErrorKind.PROVIDER_ERROR,
    ErrorCode.OPERATION_CANCELLED: ErrorKind.OPERATION_CANCELLED,
    ErrorCode.SIGNED_URL_NOT_SUPPORTED: ErrorKind.SIGNED_URL_UNSUPPORTED,
    ErrorCode.UNEXPECTED_ERROR: ErrorKind.UNEXPECTED_ERROR,
}


def kind_of(code: ErrorCode | str | None) -> ErrorKind | None:
    if code is None:
        return None
    try:
        return ERROR_KINDS[ErrorCode(code)]
    except ValueError:
        return ErrorKind.UNEXPECTED_ERROR


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_bytes(size: int) -> str:
    """Format a byte count as e.g. ``10 MB`` or ``1.5 KB``."""
    value = float(size)
    order = 0
    while value >= 1024 and order < len(_SIZE_UNITS) - 1:
        order += 1
        value /= 1024
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[order]}"


def file_not_found_message(file_id: object) -> str:
    return f"File with ID '{file_id}' was not found."


def file_already_exists_message(file_name: str) -> str:
    return f"A file named '{file_name}' already exists."


def max_size_message(max_bytes: int) -> str:
    return f"File exceeds maximum allowed size of {format_bytes(max_bytes)}."


def invalid_extension_message(extension: str, allowed: Iterable[str]) -> str:
    return f"File extension '{extension}' is not allowed. Allowed: {', '.join(allowed)}"


def invalid_content_type_message(content_type: str, allowed: Iterable[str]) -> str:
    return f"Content type '{content_type}' is not allowed. Allowed: {', '.join(allowed)}"


EMPTY_FILE_NAME_MESSAGE = "File name cannot be empty."
EMPTY_FILE_CONTENT_MESSAGE = "File content cannot be empty."
INVALID_FILE_NAME_MESSAGE = "Invalid file name."
PERMISSION_DENIED_MESSAGE = "No permission to write file."
DISK_FULL_MESSAGE = "Disk is full."
IO_ERROR_MESSAGE = "An I/O error occurred while saving the file."
MEMORY_ERROR_MESSAGE = "Server ran out of memory."
UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred while saving the file."
CANCELLED_MESSAGE = "Operation was cancelled."


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class StorageError(Exception):
    """Base exception for storage failures."""

    code: ErrorCode = ErrorCode.UNEXPECTED_ERROR

    def __init__(self, message: str, code: ErrorCode | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    @property
    def kind(self) -> ErrorKind:
        return ERROR_KINDS[self.code]


class RecordNotFoundError(StorageError):
    """No record exists for the requested id."""

    code = ErrorCode.FILE_NOT_FOUND

    def __init__(self, file_id: object, message: str | None = None) -> None:
        super().__init__(message or file_not_found_message(file_id))
        self.file_id = file_id


class FileAlreadyExistsError(StorageError):
    """Target location is occupied and overwriting is disabled."""

    code = ErrorCode.FILE_ALREADY_EXISTS

    def __init__(self, file_name: str, message: str | None = None) -> None:
        super().__init__(message or file_already_exists_message(file_name))


class FileValidationError(StorageError):
    """Name, content, size, extension or content type was rejected."""

    code = ErrorCode.VALIDATION_FAILED


class InvalidFileTypeError(StorageError):
    """Content cannot be processed as the required file type."""

    code = ErrorCode.INVALID_FILE_TYPE


class ProviderError(StorageError):
    """Backend SDK failure surfaced opaquely."""

    code = ErrorCode.PROVIDER_ERROR


class SignedUrlUnsupportedError(StorageError):
    code = ErrorCode.SIGNED_URL_NOT_SUPPORTED


def error_for_code(code: ErrorCode, message: str) -> StorageError:
    """Rebuild an exception for a failed result."""
    if code == ErrorCode.FILE_NOT_FOUND:
        return RecordNotFoundError(None, message)
    if code == ErrorCode.FILE_ALREADY_EXISTS:
        return FileAlreadyExistsError("", message)
    if code == ErrorCode.INVALID_FILE_TYPE:
        return InvalidFileTypeError(message)
    if code == ErrorCode.PROVIDER_ERROR:
        return ProviderError(message)
    if code == ErrorCode.SIGNED_URL_NOT_SUPPORTED:
        return SignedUrlUnsupportedError(message)
    if ERROR_KINDS.get(code) == ErrorKind.VALIDATION_FAILED:
        return FileValidationError(message, code)
    return StorageError(message, code)

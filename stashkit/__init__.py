"""Provider-agnostic file storage for local disk, S3 and Azure Blob."""

from stashkit.errors import ErrorCode, ErrorKind, StorageError
from stashkit.result import Result

__all__ = ["ErrorCode", "ErrorKind", "Result", "StorageError"]

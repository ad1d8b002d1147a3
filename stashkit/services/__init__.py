"""Service package exports."""

from __future__ import annotations

import importlib
from typing import Any

_EXPORTS = {
    "LocalFileStorage": "stashkit.services.local_storage",
    "S3FileStorage": "stashkit.services.object_storage",
    "BlobFileStorage": "stashkit.services.blob_storage",
    "FileStorage": "stashkit.services.storage",
    "get_file_storage": "stashkit.services.factory",
}

__all__ = list(_EXPORTS)


def __getattr__(name: str) -> Any:
    # Providers load lazily so boto3/azure are only imported when used.
    module = _EXPORTS.get(name)
    if module is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    return getattr(importlib.import_module(module), name)

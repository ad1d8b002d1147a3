"""HTTP adapter over the storage contract."""

from __future__ import annotations

import json
import re
from collections.abc import Iterator
from datetime import timedelta
from pathlib import Path
from typing import BinaryIO

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import StreamingResponse

from stashkit.errors import ErrorCode, ErrorKind
from stashkit.result import Result
from stashkit.schemas.files import (
    BulkIdsRequest,
    BulkMoveRequest,
    CreateFolderRequest,
    FileRecord,
    FileUrls,
    FolderTargetRequest,
    PaginatedResult,
    RenameRequest,
    SearchParameters,
    ThumbnailSize,
)
from stashkit.services.factory import get_file_storage
from stashkit.services.local_storage import LocalFileStorage
from stashkit.services.storage import FileStorage

router = APIRouter(prefix="/files", tags=["files"])

SAFE_FILENAME_RE = re.compile(r"[^A-Za-z0-9._ -]")
STREAM_CHUNK_SIZE = 1024 * 1024

STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.ALREADY_EXISTS: 409,
    ErrorKind.VALIDATION_FAILED: 400,
    ErrorKind.PERMISSION_DENIED: 403,
    ErrorKind.SIGNED_URL_UNSUPPORTED: 501,
    ErrorKind.RESOURCE_EXHAUSTED: 507,
}


def get_storage() -> FileStorage:
    return get_file_storage()


def _sanitize_filename(filename: str) -> str:
    name = Path(filename).name
    cleaned = SAFE_FILENAME_RE.sub("_", name).strip().strip(".")
    return cleaned[:255] or "file"


def build_content_disposition(filename: str, inline: bool = False) -> str:
    safe = _sanitize_filename(filename)
    quoted = safe.replace('"', "")
    disposition = "inline" if inline else "attachment"
    return f'{disposition}; filename="{quoted}"'


def status_for(result: Result) -> int:
    return STATUS_BY_KIND.get(result.kind, 500)


def unwrap(result: Result):
    if not result.success:
        code = result.error_code or ErrorCode.UNEXPECTED_ERROR
        raise HTTPException(
            status_code=status_for(result),
            detail={"code": code.value, "message": result.error_message},
        )
    return result.data


def _iter_stream(stream: BinaryIO) -> Iterator[bytes]:
    try:
        for chunk in iter(lambda: stream.read(STREAM_CHUNK_SIZE), b""):
            yield chunk
    finally:
        stream.close()


def _stream_response(stream: BinaryIO, record: FileRecord | None, *, media_type: str | None = None, inline: bool = False):
    headers = {}
    if record is not None:
        headers["Content-Disposition"] = build_content_disposition(record.name, inline=inline)
    return StreamingResponse(
        _iter_stream(stream),
        media_type=media_type or (record.content_type if record else None) or "application/octet-stream",
        headers=headers,
    )


# ---------------------------------------------------------------------------
# Collection routes (declared before /{file_id} so they take precedence)
# ---------------------------------------------------------------------------


@router.post("", response_model=FileRecord, status_code=201)
async def upload_file(
    file: UploadFile = File(...),
    folder: str | None = Form(default=None),
    metadata: str | None = Form(default=None),
    storage: FileStorage = Depends(get_storage),
):
    extra = None
    if metadata:
        try:
            extra = {str(k): str(v) for k, v in json.loads(metadata).items()}
        except (ValueError, AttributeError) as exc:
            raise HTTPException(status_code=400, detail="metadata must be a JSON object") from exc
    return unwrap(await storage.save(file.file, file.filename or "", folder, extra))


@router.get("", response_model=PaginatedResult[FileRecord])
async def list_files(
    folder: str | None = None,
    page: int = 1,
    page_size: int = 100,
    storage: FileStorage = Depends(get_storage),
):
    return unwrap(await storage.list(folder, page, page_size))


@router.post("/search", response_model=PaginatedResult[FileRecord])
async def search_files(params: SearchParameters, storage: FileStorage = Depends(get_storage)):
    return unwrap(await storage.search(params))


@router.post("/bulk/delete")
async def bulk_delete(payload: BulkIdsRequest, storage: FileStorage = Depends(get_storage)):
    return {"deleted": unwrap(await storage.bulk_delete(payload.ids))}


@router.post("/bulk/move", response_model=list[FileRecord])
async def bulk_move(payload: BulkMoveRequest, storage: FileStorage = Depends(get_storage)):
    return unwrap(await storage.bulk_move(payload.ids, payload.folder))


@router.get("/folders", response_model=list[str])
async def list_folders(parent: str | None = None, storage: FileStorage = Depends(get_storage)):
    return unwrap(await storage.list_folders(parent))


@router.post("/folders", status_code=201)
async def create_folder(payload: CreateFolderRequest, storage: FileStorage = Depends(get_storage)):
    return {"path": unwrap(await storage.create_folder(payload.path))}


@router.delete("/folders")
async def delete_folder(
    path: str,
    recursive: bool = True,
    storage: FileStorage = Depends(get_storage),
):
    return {"deleted": unwrap(await storage.delete_folder(path, recursive))}


@router.get("/serve/{file_id}")
async def serve_file(
    file_id: str,
    expires: int | None = None,
    signature: str | None = None,
    storage: FileStorage = Depends(get_storage),
):
    """Serve local files by public or signed URL."""
    if not isinstance(storage, LocalFileStorage):
        raise HTTPException(status_code=404, detail="File not found")
    if not storage.options.public_read and not storage.verify_signed_url(file_id, expires, signature):
        raise HTTPException(status_code=403, detail="Invalid or expired signature")
    record = unwrap(await storage.get_metadata(file_id))
    stream = unwrap(await storage.get(file_id))
    return _stream_response(stream, record, inline=True)


# ---------------------------------------------------------------------------
# Single-file routes
# ---------------------------------------------------------------------------


@router.get("/{file_id}", response_model=FileRecord)
async def get_metadata(file_id: str, storage: FileStorage = Depends(get_storage)):
    return unwrap(await storage.get_metadata(file_id))


@router.get("/{file_id}/download")
async def download_file(file_id: str, storage: FileStorage = Depends(get_storage)):
    record = unwrap(await storage.get_metadata(file_id))
    stream = unwrap(await storage.get(file_id))
    return _stream_response(stream, record)


@router.get("/{file_id}/thumbnail")
async def get_thumbnail(
    file_id: str,
    size: str = "medium",
    storage: FileStorage = Depends(get_storage),
):
    try:
        size_class = ThumbnailSize[size.upper()]
    except KeyError as exc:
        raise HTTPException(status_code=400, detail="size must be small, medium or large") from exc
    stream = unwrap(await storage.get_thumbnail(file_id, size_class))
    return _stream_response(stream, None, media_type="image/jpeg")


@router.get("/{file_id}/urls", response_model=FileUrls)
async def get_urls(
    file_id: str,
    expires_in: int | None = Query(default=None, ge=1),
    storage: FileStorage = Depends(get_storage),
):
    unwrap(await storage.get_metadata(file_id))
    public_url = await storage.get_public_url(file_id)
    expiry = timedelta(seconds=expires_in) if expires_in else None
    signed = await storage.get_signed_url(file_id, expiry)
    if not signed.success and signed.kind is not ErrorKind.SIGNED_URL_UNSUPPORTED:
        unwrap(signed)
    return FileUrls(public_url=public_url, signed_url=signed.data)


@router.patch("/{file_id}", response_model=FileRecord)
async def rename_file(file_id: str, payload: RenameRequest, storage: FileStorage = Depends(get_storage)):
    return unwrap(await storage.rename(file_id, payload.name))


@router.post("/{file_id}/move", response_model=FileRecord)
async def move_file(file_id: str, payload: FolderTargetRequest, storage: FileStorage = Depends(get_storage)):
    return unwrap(await storage.move(file_id, payload.folder))


@router.post("/{file_id}/copy", response_model=FileRecord, status_code=201)
async def copy_file(file_id: str, payload: FolderTargetRequest, storage: FileStorage = Depends(get_storage)):
    return unwrap(await storage.copy(file_id, payload.folder))


@router.delete("/{file_id}")
async def delete_file(file_id: str, storage: FileStorage = Depends(get_storage)):
    return {"deleted": unwrap(await storage.delete(file_id))}

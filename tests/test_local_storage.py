from __future__ import annotations

import asyncio
import errno
import hashlib
import io
import os
import threading
import time
import uuid
from dataclasses import replace
from datetime import timedelta
from pathlib import Path
from urllib.parse import parse_qs, urlsplit

import pytest
from PIL import Image

from stashkit.errors import ErrorCode, ErrorKind
from stashkit.schemas.files import BulkSaveItem, SearchParameters, SortDirection, SortField, ThumbnailSize
from stashkit.services.local_storage import LocalFileStorage
from stashkit.services.storage import COPY_CHUNK_SIZE
from tests.mocks import make_image


class _Unseekable:
    """File-like object that only supports read()."""

    def __init__(self, data: bytes):
        self._inner = io.BytesIO(data)

    def read(self, size: int = -1) -> bytes:
        return self._inner.read(size)


class _BlockingStream(io.BytesIO):
    """Blocks on its first full-size chunk read until released."""

    def __init__(self, data: bytes):
        super().__init__(data)
        self.started = threading.Event()
        self.release = threading.Event()

    def read(self, size: int | None = -1) -> bytes:
        if size == COPY_CHUNK_SIZE and not self.started.is_set():
            self.started.set()
            self.release.wait(5)
        return super().read(size)


def _files_under(storage: LocalFileStorage) -> list[Path]:
    return [path for path in Path(storage.base_path).rglob("*") if path.is_file()]


async def _save_text(storage, name="hello.txt", data=b"hello", folder=None, metadata=None):
    result = await storage.save(io.BytesIO(data), name, folder, metadata)
    assert result.success, result.error_message
    return result.data


# ---------------------------------------------------------------------------
# save / get / delete
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_save_and_read_back(local_storage):
    record = await _save_text(local_storage)
    assert record.size_bytes == 5
    assert record.extension == ".txt"
    assert record.content_type == "text/plain"
    assert record.name == record.original_name == "hello.txt"
    assert record.folder is None
    assert record.hash is None
    assert Path(record.storage_path).name == f"{record.id}.txt"

    result = await local_storage.get(record.id)
    with result.data as stream:
        assert stream.read() == b"hello"
    assert await local_storage.exists(record.id)
    assert await local_storage.exists(str(record.id))


@pytest.mark.asyncio
async def test_save_accepts_raw_bytes_and_metadata(local_storage):
    result = await local_storage.save(b"a,b\n1,2\n", "rows.csv", "reports/2024", {"owner": "alice"})
    assert result.success
    stored = (await local_storage.get_metadata(result.data.id)).data
    assert stored.folder == "reports/2024"
    assert stored.metadata == {"owner": "alice"}
    assert stored.content_type == "text/csv"
    assert stored.created_at_utc.tzinfo is not None


@pytest.mark.asyncio
async def test_save_normalizes_folder(local_storage):
    record = await _save_text(local_storage, folder="\\docs//reports/")
    assert record.folder == "docs/reports"


@pytest.mark.asyncio
async def test_unseekable_stream_is_spooled(local_storage):
    result = await local_storage.save(_Unseekable(b"streamed content"), "s.txt")
    assert result.success
    assert result.data.size_bytes == len(b"streamed content")


@pytest.mark.asyncio
async def test_unseekable_oversized_stream_is_rejected(local_options):
    storage = LocalFileStorage(replace(local_options, max_file_size_bytes=10))
    result = await storage.save(_Unseekable(b"x" * 1000), "big.txt")
    assert result.error_code == ErrorCode.MAX_FILE_SIZE_EXCEEDED
    assert _files_under(storage) == []


@pytest.mark.asyncio
async def test_oversized_file_is_rejected(local_options):
    storage = LocalFileStorage(replace(local_options, max_file_size_bytes=10))
    result = await storage.save(io.BytesIO(b"x" * 11), "big.txt")
    assert not result.success
    assert result.error_code == ErrorCode.MAX_FILE_SIZE_EXCEEDED
    assert result.kind == ErrorKind.VALIDATION_FAILED
    assert result.error_message == "File exceeds maximum allowed size of 10 B."
    assert _files_under(storage) == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("name", "data", "code"),
    [
        ("", b"x", ErrorCode.EMPTY_FILE_NAME),
        ("a|b.txt", b"x", ErrorCode.INVALID_FILE_NAME),
        ("empty.txt", b"", ErrorCode.EMPTY_FILE_CONTENT),
    ],
)
async def test_validation_failures(local_storage, name, data, code):
    result = await local_storage.save(io.BytesIO(data), name)
    assert result.error_code == code


@pytest.mark.asyncio
async def test_extension_and_content_type_policy(local_options):
    storage = LocalFileStorage(
        replace(local_options, allowed_extensions=(".png",), allowed_content_types=("image/*",))
    )
    bad_ext = await storage.save(io.BytesIO(b"hi"), "a.txt")
    assert bad_ext.error_code == ErrorCode.INVALID_FILE_EXTENSION
    spoofed = await storage.save(io.BytesIO(b"%PDF-1.4"), "a.png")
    assert spoofed.error_code == ErrorCode.INVALID_CONTENT_TYPE
    ok = await storage.save(io.BytesIO(make_image(10, 10)), "a.png")
    assert ok.success


@pytest.mark.asyncio
async def test_compute_hash(local_options):
    storage = LocalFileStorage(replace(local_options, compute_hash=True))
    record = await _save_text(storage, data=b"hash me")
    assert record.hash == hashlib.sha256(b"hash me").hexdigest()


@pytest.mark.asyncio
async def test_folder_traversal_is_rejected(local_storage):
    result = await local_storage.save(io.BytesIO(b"x"), "a.txt", "../outside")
    assert result.error_code == ErrorCode.INVALID_FILE_NAME
    reserved = await local_storage.save(io.BytesIO(b"x"), "a.txt", ".metadata")
    assert reserved.error_code == ErrorCode.INVALID_FILE_NAME


@pytest.mark.asyncio
async def test_naming_strategy_and_conflicts(local_options):
    storage = LocalFileStorage(replace(local_options, naming_strategy=lambda name: name))
    first = await _save_text(storage, name="same.txt")
    assert Path(first.storage_path).name == "same.txt"
    conflict = await storage.save(io.BytesIO(b"again"), "same.txt")
    assert conflict.error_code == ErrorCode.FILE_ALREADY_EXISTS

    overwriting = LocalFileStorage(
        replace(local_options, naming_strategy=lambda name: name, overwrite_existing=True)
    )
    assert (await overwriting.save(io.BytesIO(b"again"), "same.txt")).success


@pytest.mark.asyncio
async def test_subfolder_strategy_applies_only_without_folder(local_options):
    storage = LocalFileStorage(
        replace(local_options, subfolder_strategy=lambda record: record.created_at_utc.strftime("%Y/%m"))
    )
    automatic = await _save_text(storage)
    assert automatic.folder == automatic.created_at_utc.strftime("%Y/%m")
    explicit = await _save_text(storage, folder="chosen")
    assert explicit.folder == "chosen"


@pytest.mark.asyncio
async def test_get_missing_file(local_storage):
    missing = uuid.uuid4()
    result = await local_storage.get(missing)
    assert result.error_code == ErrorCode.FILE_NOT_FOUND
    assert result.error_message == f"File with ID '{missing}' was not found."
    assert (await local_storage.get_metadata("not-a-uuid")).error_code == ErrorCode.FILE_NOT_FOUND
    assert not await local_storage.exists(missing)
    assert not await local_storage.exists("not-a-uuid")


@pytest.mark.asyncio
async def test_delete_is_idempotent(local_storage):
    record = await _save_text(local_storage)
    first = await local_storage.delete(record.id)
    assert first.success and first.data is True
    second = await local_storage.delete(record.id)
    assert second.success and second.data is False
    assert not await local_storage.exists(record.id)
    assert _files_under(local_storage) == []


@pytest.mark.asyncio
async def test_file_without_sidecar_is_found_by_scan(local_storage):
    file_id = uuid.uuid4()
    target = Path(local_storage.base_path) / "loose" / f"{file_id}.txt"
    target.parent.mkdir(parents=True)
    target.write_bytes(b"orphan")
    record = (await local_storage.get_metadata(file_id)).data
    assert record.folder == "loose"
    assert record.size_bytes == 6
    assert record.content_type == "text/plain"


# ---------------------------------------------------------------------------
# rename / move / copy
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_rename_changes_display_name_only(local_storage):
    record = await _save_text(local_storage)
    renamed = (await local_storage.rename(record.id, "greeting.txt")).data
    assert renamed.name == "greeting.txt"
    assert renamed.original_name == "hello.txt"
    assert renamed.storage_path == record.storage_path
    assert renamed.updated_at_utc >= record.updated_at_utc
    assert (await local_storage.get_metadata(record.id)).data.name == "greeting.txt"
    invalid = await local_storage.rename(record.id, "bad/name")
    assert invalid.error_code == ErrorCode.INVALID_FILE_NAME


@pytest.mark.asyncio
async def test_move_between_folders(local_storage):
    record = await _save_text(local_storage, folder="a")
    moved = (await local_storage.move(record.id, "b")).data
    assert moved.id == record.id
    assert moved.folder == "b"
    assert not Path(record.storage_path).exists()
    assert Path(moved.storage_path).exists()
    with (await local_storage.get(record.id)).data as stream:
        assert stream.read() == b"hello"
    assert (await local_storage.list("a")).data.total_items == 0
    assert (await local_storage.list("b")).data.total_items == 1


@pytest.mark.asyncio
async def test_move_to_same_folder_is_noop(local_storage):
    record = await _save_text(local_storage, folder="a")
    same = (await local_storage.move(record.id, "/a/")).data
    assert same == (await local_storage.get_metadata(record.id)).data


@pytest.mark.asyncio
async def test_move_to_root(local_storage):
    record = await _save_text(local_storage, folder="a")
    moved = (await local_storage.move(record.id, None)).data
    assert moved.folder is None


@pytest.mark.asyncio
async def test_copy_creates_independent_file(local_storage):
    record = await _save_text(local_storage, metadata={"k": "v"})
    copy = (await local_storage.copy(record.id, "copies")).data
    assert copy.id != record.id
    assert copy.folder == "copies"
    assert copy.metadata == {"k": "v"}
    assert copy.created_at_utc >= record.created_at_utc
    await local_storage.delete(record.id)
    with (await local_storage.get(copy.id)).data as stream:
        assert stream.read() == b"hello"


@pytest.mark.asyncio
async def test_move_missing_file(local_storage):
    result = await local_storage.move(uuid.uuid4(), "x")
    assert result.error_code == ErrorCode.FILE_NOT_FOUND


# ---------------------------------------------------------------------------
# bulk
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_bulk_save_all_valid(local_storage):
    items = [BulkSaveItem(b"one", "1.txt"), BulkSaveItem(io.BytesIO(b"two"), "2.txt", {"n": "2"})]
    result = await local_storage.bulk_save(items, "batch")
    assert result.success
    assert [record.name for record in result.data] == ["1.txt", "2.txt"]
    assert all(record.folder == "batch" for record in result.data)


@pytest.mark.asyncio
async def test_bulk_save_reports_failures_and_keeps_successes(local_storage):
    items = [BulkSaveItem(b"ok", "ok.txt"), BulkSaveItem(b"", "empty.txt"), BulkSaveItem(b"x", "")]
    result = await local_storage.bulk_save(items)
    assert result.error_code == ErrorCode.VALIDATION_FAILED
    assert result.error_message == (
        "Some files failed to save: File content cannot be empty.; File name cannot be empty."
    )
    assert (await local_storage.list()).data.total_items == 1


@pytest.mark.asyncio
async def test_bulk_delete_returns_only_deleted_ids(local_storage):
    first = await _save_text(local_storage, name="1.txt")
    second = await _save_text(local_storage, name="2.txt")
    result = await local_storage.bulk_delete([first.id, uuid.uuid4(), "garbage", str(second.id)])
    assert result.success
    assert result.data == [first.id, second.id]


@pytest.mark.asyncio
async def test_bulk_move_skips_missing(local_storage):
    record = await _save_text(local_storage)
    result = await local_storage.bulk_move([uuid.uuid4(), record.id], "archive")
    assert result.success
    assert [moved.id for moved in result.data] == [record.id]
    assert result.data[0].folder == "archive"


# ---------------------------------------------------------------------------
# list / search
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_list_paginates_subtree(local_storage):
    for index in range(4):
        await _save_text(local_storage, name=f"{index}.txt", folder="docs")
    await _save_text(local_storage, name="deep.txt", folder="docs/deep")
    await _save_text(local_storage, name="other.txt", folder="other")

    page = (await local_storage.list("docs", page=2, page_size=2)).data
    assert page.total_items == 5
    assert page.total_pages == 3
    assert len(page.items) == 2
    assert page.has_next_page and page.has_previous_page
    assert (await local_storage.list()).data.total_items == 6
    clamped = (await local_storage.list(page=0, page_size=0)).data
    assert clamped.page == 1 and clamped.page_size == 1


@pytest.mark.asyncio
async def test_list_is_newest_first(local_storage):
    older = await _save_text(local_storage, name="older.txt")
    time.sleep(0.01)
    newer = await _save_text(local_storage, name="newer.txt")
    items = (await local_storage.list()).data.items
    assert [record.id for record in items] == [newer.id, older.id]


@pytest.mark.asyncio
async def test_search_combines_criteria(local_storage):
    await _save_text(local_storage, name="report-1.txt", folder="reports", metadata={"Owner": "Alice"})
    await _save_text(local_storage, name="report-2.txt", folder="reports/old", metadata={"owner": "bob"})
    await _save_text(local_storage, name="summary.csv", data=b"a,b", folder="reports")
    params = SearchParameters(
        name_pattern="REPORT-*",
        folder_starts_with="reports",
        sort_by=SortField.NAME,
        sort_direction=SortDirection.ASCENDING,
    )
    names = [record.name for record in (await local_storage.search(params)).data.items]
    assert names == ["report-1.txt", "report-2.txt"]

    by_owner = await local_storage.search(SearchParameters(metadata={"owner": "ALICE"}))
    assert [record.name for record in by_owner.data.items] == ["report-1.txt"]

    shallow = await local_storage.search(SearchParameters(folder="reports", include_subfolders=False, extension="txt"))
    assert [record.name for record in shallow.data.items] == ["report-1.txt"]


# ---------------------------------------------------------------------------
# folders
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_folder_is_hidden_from_listing(local_storage):
    created = await local_storage.create_folder("/docs/reports/")
    assert created.data == "docs/reports"
    assert (await local_storage.list()).data.total_items == 0
    assert (await local_storage.list_folders()).data == ["docs/reports"]
    assert (await local_storage.list_folders("docs")).data == ["docs/reports"]
    assert (await local_storage.list_folders("/")).data == ["docs"]
    again = await local_storage.create_folder("docs/reports")
    assert again.success
    assert len(_files_under(local_storage)) == 2  # placeholder content and its sidecar


@pytest.mark.asyncio
async def test_create_folder_rejects_bad_paths(local_storage):
    assert (await local_storage.create_folder("")).error_code == ErrorCode.VALIDATION_FAILED
    assert (await local_storage.create_folder(".thumbnails/x")).error_code == ErrorCode.INVALID_FILE_NAME


@pytest.mark.asyncio
async def test_list_folders_lists_immediate_children(local_storage):
    await _save_text(local_storage, name="a.txt", folder="Projects/alpha/src")
    await _save_text(local_storage, name="b.txt", folder="Projects/beta")
    await _save_text(local_storage, name="c.txt", folder="misc")
    assert (await local_storage.list_folders()).data == ["misc", "Projects/alpha/src", "Projects/beta"]
    assert (await local_storage.list_folders("Projects")).data == ["Projects/alpha", "Projects/beta"]
    assert (await local_storage.list_folders("")).data == ["misc", "Projects"]


@pytest.mark.asyncio
async def test_delete_folder_recursive_and_flat(local_storage):
    for name in ("1.txt", "2.txt"):
        await _save_text(local_storage, name=name, folder="x")
    await _save_text(local_storage, name="3.txt", folder="x/y")
    keep = await _save_text(local_storage, name="4.txt", folder="xy")
    await local_storage.create_folder("x/empty")

    flat = await local_storage.delete_folder("x", recursive=False)
    assert flat.data == 2
    recursive = await local_storage.delete_folder("x")
    assert recursive.data == 1
    assert (await local_storage.list_folders()).data == ["xy"]
    assert await local_storage.exists(keep.id)
    assert (await local_storage.delete_folder("/")).error_code == ErrorCode.VALIDATION_FAILED


# ---------------------------------------------------------------------------
# thumbnails
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_thumbnail_generation_and_cache(local_storage, png_bytes):
    record = (await local_storage.save(io.BytesIO(png_bytes), "photo.png")).data
    result = await local_storage.get_thumbnail(record.id, ThumbnailSize.SMALL)
    assert result.success
    with Image.open(result.data) as img:
        assert img.format == "JPEG"
        assert img.size == (150, 75)

    cached = Path(local_storage.base_path) / ".thumbnails" / "small" / f"{record.id}.jpg"
    assert cached.is_file()
    assert (await local_storage.list()).data.total_items == 1

    # A cache entry newer than the source is served as-is.
    cached.write_bytes(b"cached-marker")
    future = time.time() + 60
    os.utime(cached, (future, future))
    served = await local_storage.get_thumbnail(record.id, "small")
    assert served.data.read() == b"cached-marker"

    # Touching the source makes the cache stale.
    os.utime(record.storage_path, (future + 60, future + 60))
    regenerated = await local_storage.get_thumbnail(record.id, ThumbnailSize.SMALL)
    with Image.open(regenerated.data) as img:
        assert img.size == (150, 75)


@pytest.mark.asyncio
async def test_thumbnail_sizes(local_storage, png_bytes):
    record = (await local_storage.save(io.BytesIO(png_bytes), "photo.png")).data
    medium = await local_storage.get_thumbnail(record.id)
    with Image.open(medium.data) as img:
        assert img.size == (300, 150)
    large = await local_storage.get_thumbnail(record.id, "LARGE")
    with Image.open(large.data) as img:
        assert img.size == (600, 300)


@pytest.mark.asyncio
async def test_thumbnail_rejects_non_images(local_storage):
    record = await _save_text(local_storage)
    result = await local_storage.get_thumbnail(record.id)
    assert result.error_code == ErrorCode.INVALID_FILE_TYPE
    missing = await local_storage.get_thumbnail(uuid.uuid4())
    assert missing.error_code == ErrorCode.FILE_NOT_FOUND


@pytest.mark.asyncio
async def test_delete_removes_thumbnails(local_storage, png_bytes):
    record = (await local_storage.save(io.BytesIO(png_bytes), "photo.png")).data
    await local_storage.get_thumbnail(record.id, ThumbnailSize.SMALL)
    await local_storage.get_thumbnail(record.id, ThumbnailSize.LARGE)
    await local_storage.delete(record.id)
    assert _files_under(local_storage) == []


# ---------------------------------------------------------------------------
# URLs
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_public_url_requires_public_read(local_storage, local_options):
    record = await _save_text(local_storage)
    assert await local_storage.get_public_url(record.id) is None

    public = LocalFileStorage(replace(local_options, public_read=True, base_url="https://cdn.test/files/"))
    assert await public.get_public_url(record.id) == f"https://cdn.test/files/{record.id}"
    assert await public.get_public_url(uuid.uuid4()) is None
    assert await public.get_public_url("nope") is None


@pytest.mark.asyncio
async def test_signed_urls(local_options):
    storage = LocalFileStorage(
        replace(local_options, enable_signed_urls=True, signing_key="secret", base_url="https://cdn.test/files")
    )
    record = await _save_text(storage)
    url = (await storage.get_signed_url(record.id)).data
    parts = urlsplit(url)
    assert parts.path == f"/files/{record.id}"
    query = parse_qs(parts.query)
    expires = int(query["expires"][0])
    assert 3500 < expires - time.time() <= 3600
    assert storage.verify_signed_url(record.id, query["expires"][0], query["signature"][0])
    assert not storage.verify_signed_url(uuid.uuid4(), query["expires"][0], query["signature"][0])

    short = (await storage.get_signed_url(record.id, timedelta(minutes=5))).data
    assert int(parse_qs(urlsplit(short).query)["expires"][0]) - time.time() <= 300


@pytest.mark.asyncio
async def test_signed_urls_unsupported_without_key(local_storage):
    record = await _save_text(local_storage)
    result = await local_storage.get_signed_url(record.id)
    assert result.error_code == ErrorCode.SIGNED_URL_NOT_SUPPORTED
    assert result.kind == ErrorKind.SIGNED_URL_UNSUPPORTED
    assert not local_storage.verify_signed_url(record.id, "1", "x")


# ---------------------------------------------------------------------------
# failure mapping and cancellation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("error", "code"),
    [
        (PermissionError("denied"), ErrorCode.PERMISSION_DENIED),
        (OSError(errno.ENOSPC, "No space left on device"), ErrorCode.DISK_FULL),
        (OSError(errno.EIO, "I/O error"), ErrorCode.IO_ERROR),
        (MemoryError(), ErrorCode.MEMORY_ERROR),
        (RuntimeError("boom"), ErrorCode.UNEXPECTED_ERROR),
    ],
)
async def test_write_errors_map_to_codes(local_storage, monkeypatch, error, code):
    def _fail(record, content, cancel):
        raise error

    monkeypatch.setattr(local_storage, "_write_content", _fail)
    result = await local_storage.save(io.BytesIO(b"data"), "a.txt")
    assert result.error_code == code
    assert _files_under(local_storage) == []


@pytest.mark.asyncio
async def test_failed_write_removes_partial_file(local_storage, monkeypatch):
    original = local_storage._write_content

    def _fail_midway(record, content, cancel):
        original(record, io.BytesIO(b"partial"), cancel)
        raise OSError(errno.EIO, "lost connection")

    monkeypatch.setattr(local_storage, "_write_content", _fail_midway)
    result = await local_storage.save(io.BytesIO(b"data"), "a.txt")
    assert result.error_code == ErrorCode.IO_ERROR
    assert _files_under(local_storage) == []


@pytest.mark.asyncio
async def test_cancelled_save_leaves_nothing_behind(local_storage):
    stream = _BlockingStream(b"x" * (COPY_CHUNK_SIZE * 3))
    task = asyncio.create_task(local_storage.save(stream, "big.bin"))
    assert await asyncio.to_thread(stream.started.wait, 5)
    task.cancel()
    stream.release.set()
    result = await task
    assert result.error_code == ErrorCode.OPERATION_CANCELLED
    assert result.kind == ErrorKind.OPERATION_CANCELLED
    assert _files_under(local_storage) == []

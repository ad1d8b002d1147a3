"""In-memory filtering, ordering and paging of file records.

Every provider enumerates its candidate records and hands them here, so
all three backends share one filter grammar.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from typing import Any

from stashkit.schemas.files import (
    FileRecord,
    PaginatedResult,
    SearchParameters,
    SortDirection,
    SortField,
)
from stashkit.services.keys import folder_in_subtree, normalize_folder
from stashkit.services.validation import content_type_matches, normalize_extension

MAX_PAGE_SIZE = 1000
DEFAULT_PAGE_SIZE = 100


def clamp_page(page: int | None) -> int:
    return max(1, page or 1)


def clamp_page_size(page_size: int | None) -> int:
    if page_size is None:
        return DEFAULT_PAGE_SIZE
    return min(MAX_PAGE_SIZE, max(1, page_size))


def compile_name_pattern(pattern: str) -> re.Pattern[str]:
    """Translate a ``*``/``?`` glob into an anchored case-insensitive regex."""
    parts: list[str] = []
    for ch in pattern:
        if ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


def _metadata_matches(record: FileRecord, expected: dict[str, str]) -> bool:
    if not record.metadata:
        return False
    # Keys and values both compare case-insensitively.
    actual = {key.lower(): value for key, value in record.metadata.items()}
    for key, value in expected.items():
        found = actual.get(key.lower())
        if found is None or found.casefold() != value.casefold():
            return False
    return True


def _in_range(value: Any, lower: Any, upper: Any) -> bool:
    if lower is not None and value < lower:
        return False
    if upper is not None and value > upper:
        return False
    return True


def build_matcher(params: SearchParameters) -> Callable[[FileRecord], bool]:
    """Compile search criteria into a predicate (AND across all criteria)."""
    name_re = compile_name_pattern(params.name_pattern) if params.name_pattern else None
    folder = normalize_folder(params.folder) if params.folder is not None else None
    subtree = normalize_folder(params.folder_starts_with) if params.folder_starts_with else None
    extension = normalize_extension(params.extension) if params.extension else None

    def matches(record: FileRecord) -> bool:
        if name_re is not None and not name_re.fullmatch(record.name):
            return False
        if params.folder is not None:
            if params.include_subfolders:
                if not folder_in_subtree(record.folder, folder):
                    return False
            elif (record.folder or None) != folder:
                return False
        if subtree and not folder_in_subtree(record.folder, subtree):
            return False
        if extension and (record.extension or "").lower() != extension:
            return False
        if params.content_type and not content_type_matches(record.content_type, params.content_type):
            return False
        if not _in_range(record.size_bytes, params.min_size_bytes, params.max_size_bytes):
            return False
        if not _in_range(record.created_at_utc, params.created_after, params.created_before):
            return False
        if not _in_range(record.updated_at_utc, params.updated_after, params.updated_before):
            return False
        if params.metadata and not _metadata_matches(record, params.metadata):
            return False
        return True

    return matches


_SORT_KEYS: dict[SortField, Callable[[FileRecord], Any]] = {
    SortField.NAME: lambda r: r.name.casefold(),
    SortField.SIZE: lambda r: r.size_bytes,
    SortField.CREATED_AT: lambda r: r.created_at_utc,
    SortField.UPDATED_AT: lambda r: r.updated_at_utc,
    SortField.EXTENSION: lambda r: (r.extension or "").lower(),
    SortField.CONTENT_TYPE: lambda r: r.content_type.lower(),
}


def sort_records(
    records: list[FileRecord],
    sort_by: SortField | str,
    direction: SortDirection = SortDirection.DESCENDING,
) -> list[FileRecord]:
    try:
        key = _SORT_KEYS[SortField(sort_by)]
    except ValueError:
        return records
    return sorted(records, key=key, reverse=direction == SortDirection.DESCENDING)


def paginate(records: list[FileRecord], page: int | None, page_size: int | None) -> PaginatedResult[FileRecord]:
    page = clamp_page(page)
    page_size = clamp_page_size(page_size)
    start = (page - 1) * page_size
    return PaginatedResult[FileRecord](
        items=records[start : start + page_size],
        page=page,
        page_size=page_size,
        total_items=len(records),
    )


def search_records(records: Iterable[FileRecord], params: SearchParameters) -> PaginatedResult[FileRecord]:
    matcher = build_matcher(params)
    selected = [record for record in records if matcher(record)]
    ordered = sort_records(selected, params.sort_by, params.sort_direction)
    return paginate(ordered, params.page, params.page_size)

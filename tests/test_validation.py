import io

import pytest

from stashkit.errors import ErrorCode, FileValidationError
from stashkit.services.options import FileStorageOptions
from stashkit.services.validation import (
    content_type_allowed,
    content_type_matches,
    detect_content_type,
    file_extension,
    normalize_extension,
    stream_length,
    validate_file,
    validate_file_name,
)
from tests.mocks import make_image


def _code(exc_info) -> ErrorCode:
    return exc_info.value.code


def test_detect_content_type_prefers_magic_bytes():
    png = io.BytesIO(make_image(4, 4))
    assert detect_content_type(png, "photo.txt") == "image/png"
    assert detect_content_type(io.BytesIO(b"%PDF-1.7 ..."), "doc.bin") == "application/pdf"
    assert detect_content_type(io.BytesIO(b"\xff\xd8\xff\xe0rest"), "x") == "image/jpeg"
    assert detect_content_type(io.BytesIO(b"GIF89a"), "x") == "image/gif"


def test_detect_content_type_falls_back_to_extension():
    assert detect_content_type(io.BytesIO(b"hello"), "hello.TXT") == "text/plain"
    assert detect_content_type(io.BytesIO(b"a,b"), "rows.csv") == "text/csv"
    assert detect_content_type(io.BytesIO(b"???"), "blob.unknown") == "application/octet-stream"


def test_detect_content_type_restores_position():
    stream = io.BytesIO(b"hello world")
    stream.seek(3)
    detect_content_type(stream, "a.txt")
    assert stream.tell() == 3


def test_stream_length_keeps_position():
    stream = io.BytesIO(b"0123456789")
    stream.seek(4)
    assert stream_length(stream) == 10
    assert stream.tell() == 4


def test_file_extension_and_normalization():
    assert file_extension("archive.tar.gz") == ".gz"
    assert file_extension("README") == ""
    assert normalize_extension("PDF") == ".pdf"
    assert normalize_extension(".Png ") == ".png"


def test_content_type_wildcards():
    assert content_type_matches("image/png", "image/*")
    assert content_type_matches("IMAGE/PNG", "image/png")
    assert not content_type_matches("text/plain", "image/*")
    assert content_type_allowed("application/pdf", ["image/*", "application/pdf"])
    assert not content_type_allowed("text/csv", ["image/*"])


@pytest.mark.parametrize(
    ("name", "code"),
    [
        ("", ErrorCode.EMPTY_FILE_NAME),
        ("   ", ErrorCode.EMPTY_FILE_NAME),
        (None, ErrorCode.EMPTY_FILE_NAME),
        ("bad<name>.txt", ErrorCode.INVALID_FILE_NAME),
        ("dir/file.txt", ErrorCode.INVALID_FILE_NAME),
        ("tab\tname.txt", ErrorCode.INVALID_FILE_NAME),
    ],
)
def test_validate_file_name_rejects(name, code):
    with pytest.raises(FileValidationError) as exc:
        validate_file_name(name)
    assert _code(exc) == code


def test_validate_file_returns_detected_type():
    assert validate_file(io.BytesIO(b"hello"), "hello.txt", FileStorageOptions()) == "text/plain"


def test_validate_file_checks_extension_before_content():
    options = FileStorageOptions(allowed_extensions=("pdf", ".png"))
    with pytest.raises(FileValidationError) as exc:
        validate_file(io.BytesIO(b""), "notes.txt", options)
    assert _code(exc) == ErrorCode.INVALID_FILE_EXTENSION
    assert "'.txt'" in exc.value.message


def test_validate_file_extension_match_is_case_insensitive():
    options = FileStorageOptions(allowed_extensions=(".png",))
    assert validate_file(io.BytesIO(make_image(2, 2)), "PHOTO.PNG", options) == "image/png"


def test_validate_file_rejects_empty_content():
    with pytest.raises(FileValidationError) as exc:
        validate_file(io.BytesIO(b""), "empty.txt", FileStorageOptions())
    assert _code(exc) == ErrorCode.EMPTY_FILE_CONTENT


def test_validate_file_enforces_size_limit():
    options = FileStorageOptions(max_file_size_bytes=10)
    assert validate_file(io.BytesIO(b"x" * 10), "ok.txt", options) == "text/plain"
    with pytest.raises(FileValidationError) as exc:
        validate_file(io.BytesIO(b"x" * 11), "big.txt", options)
    assert _code(exc) == ErrorCode.MAX_FILE_SIZE_EXCEEDED
    assert exc.value.message == "File exceeds maximum allowed size of 10 B."


def test_validate_file_checks_sniffed_content_type():
    options = FileStorageOptions(allowed_content_types=("image/*",))
    # A PDF renamed to .png is still a PDF.
    with pytest.raises(FileValidationError) as exc:
        validate_file(io.BytesIO(b"%PDF-1.4 body"), "fake.png", options)
    assert _code(exc) == ErrorCode.INVALID_CONTENT_TYPE
    assert validate_file(io.BytesIO(make_image(3, 3)), "real.png", options) == "image/png"

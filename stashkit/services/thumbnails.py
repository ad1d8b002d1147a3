"""JPEG thumbnail rendering."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from stashkit.errors import InvalidFileTypeError

logger = logging.getLogger(__name__)

JPEG_QUALITY = 85
VECTOR_CONTENT_TYPE = "image/svg+xml"


@dataclass
class Thumbnail:
    data: bytes
    width: int
    height: int


def supports_thumbnail(content_type: str | None) -> bool:
    """Raster images only; SVG has no pixel data to scale."""
    if not content_type:
        return False
    lowered = content_type.lower()
    return lowered.startswith("image/") and lowered != VECTOR_CONTENT_TYPE


def thumbnail_dimensions(width: int, height: int, max_size: int) -> tuple[int, int]:
    """Fit (width, height) inside a max_size box, preserving aspect ratio and never upscaling."""
    if width <= max_size and height <= max_size:
        return width, height
    aspect = width / height
    if width > height:
        return max_size, max(1, int(max_size / aspect))
    return max(1, int(max_size * aspect)), max_size


def render_thumbnail(source: bytes, max_size: int) -> Thumbnail:
    """Decode ``source``, scale it down and re-encode as JPEG."""
    try:
        with Image.open(io.BytesIO(source)) as img:
            img.load()
            width, height = thumbnail_dimensions(img.width, img.height, max_size)
            frame = img.convert("RGBA") if img.mode in ("P", "LA") else img
            if frame.mode == "RGBA":
                background = Image.new("RGB", frame.size, (255, 255, 255))
                background.paste(frame, mask=frame.split()[-1])
                frame = background
            elif frame.mode != "RGB":
                frame = frame.convert("RGB")
            if (width, height) != frame.size:
                frame = frame.resize((width, height), Image.Resampling.LANCZOS)
            buffer = io.BytesIO()
            frame.save(buffer, format="JPEG", quality=JPEG_QUALITY)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        logger.warning("thumbnail_decode_failed error=%s", exc)
        raise InvalidFileTypeError("File is not a supported image format.") from exc
    return Thumbnail(data=buffer.getvalue(), width=width, height=height)

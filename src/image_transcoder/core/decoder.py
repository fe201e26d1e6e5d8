"""
decoder.py: Turn compressed source bytes into pixel surfaces.

Only JPEG, PNG and WebP sources are accepted. Decoding is delegated to Pillow.
"""

import io
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from ..config import ALLOWED_TYPES, MAX_FILE_SIZE
from ..utils.format import format_file_size
from ..utils.log_utils import get_logger
from .errors import DecodeError, ValidationError
from .surface import PixelSurface

logger = get_logger(__name__)

PIL_FORMAT_TO_MIME = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
}


def sniff_mime_type(data: bytes) -> Optional[str]:
    """Detect the MIME type from the magic bytes, or None if unknown."""
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def validate_source(name: str, data: bytes, mime_type: Optional[str] = None) -> str:
    """
    Check a source before decoding and return its MIME type.

    Raises ValidationError for unsupported types or sources above MAX_FILE_SIZE.
    """
    mime_type = mime_type or sniff_mime_type(data)
    if mime_type not in ALLOWED_TYPES:
        raise ValidationError(
            f"Unsupported format for '{name}': {mime_type or 'unknown'}. Only JPG, PNG and WebP are supported"
        )
    if len(data) > MAX_FILE_SIZE:
        raise ValidationError(
            f"File too large: '{name}' is {format_file_size(len(data))}, "
            f"maximum is {format_file_size(MAX_FILE_SIZE)}"
        )
    return mime_type


def probe_dimensions(data: bytes) -> Tuple[int, int]:
    """Read (width, height) from the header without decoding the pixels."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.size
    except (UnidentifiedImageError, OSError) as e:
        raise DecodeError(f"Cannot read image header: {e}") from e


def decode_image(data: bytes) -> Tuple[PixelSurface, str]:
    """
    Decode `data` into a PixelSurface.

    Returns:
        Tuple of (surface, mime_type). The caller owns the surface.

    Raises:
        DecodeError: If the bytes are unreadable or not JPEG/PNG/WebP.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            mime_type = PIL_FORMAT_TO_MIME.get(img.format or "")
            if mime_type is None:
                raise DecodeError(f"Unsupported source format: {img.format}")
            img.load()
            surface = PixelSurface.from_image(img)
    except DecodeError:
        raise
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeError(f"Cannot decode image: {e}") from e
    logger.debug("Decoded %s source to %r", mime_type, surface)
    return surface, mime_type

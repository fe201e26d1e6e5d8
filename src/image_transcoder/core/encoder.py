"""
encoder.py: Compress a final pixel surface with Pillow's codecs.

Quality is forwarded to the codec on its own 1-100 scale; it is not
otherwise validated here. PNG is lossless and ignores quality.
"""

import io
from dataclasses import dataclass, field

from PIL import Image

from ..utils.log_utils import get_logger
from .errors import EncodeError
from .surface import PixelSurface

logger = get_logger(__name__)

MIME_TO_PIL_FORMAT = {
    "image/jpeg": "JPEG",
    "image/webp": "WEBP",
    "image/png": "PNG",
}


@dataclass(frozen=True)
class EncodedImage:
    data: bytes = field(repr=False)
    width: int
    height: int
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.data)


def codec_quality(quality: float) -> int:
    """Map quality in [0, 1] to Pillow's 1-100 scale."""
    return max(1, min(100, int(round(quality * 100))))


def _save_options(pil_format: str, quality: float) -> dict:
    if pil_format == "PNG":
        return {"optimize": True}
    return {"quality": codec_quality(quality)}


def encode(surface: PixelSurface, mime_type: str, quality: float) -> EncodedImage:
    """
    Encode `surface` to `mime_type`.

    Raises:
        EncodeError: If the format is unsupported or the codec fails.
    """
    pil_format = MIME_TO_PIL_FORMAT.get(mime_type)
    if pil_format is None:
        raise EncodeError(f"Unsupported output format: {mime_type}")

    img = surface.to_image()
    if pil_format == "JPEG" and img.mode != "RGB":
        img = img.convert("RGB")

    buffer = io.BytesIO()
    try:
        img.save(buffer, format=pil_format, **_save_options(pil_format, quality))
    except (OSError, ValueError, KeyError) as e:
        raise EncodeError(f"{pil_format} encoder failed for {surface.width}x{surface.height}: {e}") from e

    data = buffer.getvalue()
    logger.debug("Encoded %dx%d to %s (%d bytes)", surface.width, surface.height, mime_type, len(data))
    return EncodedImage(data=data, width=surface.width, height=surface.height, mime_type=mime_type)

"""
surface.py: Raw decoded pixel grid with explicit ownership.

A PixelSurface wraps an interleaved, row-major uint8 numpy array of shape
(height, width, channels). Ownership moves between the submitter and the
worker with `transfer()`, which hands the same array to a new surface object
and detaches the old one; whoever holds the surface last calls `close()`.
"""

from typing import Optional

import numpy as np
from PIL import Image

from .errors import SurfaceAllocationError, SurfaceClosedError

WIDE_GRAY_MODES = ("I;16", "I;16L", "I;16B", "I")


class PixelSurface:
    """Decoded pixels of one image, 3 (RGB) or 4 (RGBA) channels."""

    def __init__(self, buffer: np.ndarray):
        if buffer.ndim != 3 or buffer.shape[2] not in (3, 4):
            raise ValueError(f"Expected (height, width, 3|4) buffer, got shape {buffer.shape}")
        if buffer.dtype != np.uint8:
            raise ValueError(f"Expected uint8 buffer, got {buffer.dtype}")
        self._buffer: Optional[np.ndarray] = buffer

    @classmethod
    def allocate(cls, width: int, height: int, channels: int = 4, fill: int = 0) -> "PixelSurface":
        """Allocate a new surface filled with `fill` in every channel."""
        if width < 1 or height < 1:
            raise SurfaceAllocationError(f"Cannot allocate a {width}x{height} surface")
        try:
            buffer = np.full((height, width, channels), fill, dtype=np.uint8)
        except (MemoryError, ValueError) as e:
            raise SurfaceAllocationError(f"Cannot allocate a {width}x{height} surface: {e}") from e
        return cls(buffer)

    @classmethod
    def from_image(cls, img: Image.Image) -> "PixelSurface":
        if img.mode in WIDE_GRAY_MODES:
            # 16-bit grayscale PNG; convert() would clip rather than rescale
            wide = np.asarray(img).astype(np.int64).clip(0, 65535)
            gray = (wide >> 8).astype(np.uint8)
            return cls(np.repeat(gray[..., None], 3, axis=2))
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA" if _has_alpha(img) else "RGB")
        return cls(np.asarray(img, dtype=np.uint8).copy())

    @property
    def buffer(self) -> np.ndarray:
        if self._buffer is None:
            raise SurfaceClosedError("Pixel surface has been closed or transferred")
        return self._buffer

    @property
    def width(self) -> int:
        return self.buffer.shape[1]

    @property
    def height(self) -> int:
        return self.buffer.shape[0]

    @property
    def channels(self) -> int:
        return self.buffer.shape[2]

    @property
    def has_alpha(self) -> bool:
        return self.channels == 4

    @property
    def closed(self) -> bool:
        return self._buffer is None

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.buffer, mode="RGBA" if self.has_alpha else "RGB")

    def transfer(self) -> "PixelSurface":
        """Move the buffer into a new surface without copying; this one becomes detached."""
        moved = PixelSurface(self.buffer)
        self._buffer = None
        return moved

    def close(self) -> None:
        """Release the buffer. Safe to call more than once."""
        self._buffer = None

    def __enter__(self) -> "PixelSurface":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        if self.closed:
            return "PixelSurface(closed)"
        return f"PixelSurface({self.width}x{self.height}x{self.channels})"


def _has_alpha(img: Image.Image) -> bool:
    return img.mode in ("RGBA", "LA", "PA") or (img.mode == "P" and "transparency" in img.info)

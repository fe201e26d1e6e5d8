"""
compositor.py: Flatten transparent surfaces onto white for opaque targets.
"""

from .surface import PixelSurface

OPAQUE_FORMATS = {"image/jpeg"}


def needs_flattening(mime_type: str) -> bool:
    return mime_type in OPAQUE_FORMATS


def composite_over_white(surface: PixelSurface) -> PixelSurface:
    """
    Blend `surface` source-over an opaque white background and return an RGB
    surface. Fully transparent pixels come out as (255, 255, 255).
    """
    if not surface.has_alpha:
        return surface
    # raises SurfaceAllocationError when the background cannot be allocated
    with PixelSurface.allocate(surface.width, surface.height, channels=4, fill=255) as white:
        background = white.to_image()
    background.alpha_composite(surface.to_image())
    return PixelSurface.from_image(background.convert("RGB"))


def composite_for(surface: PixelSurface, mime_type: str) -> PixelSurface:
    """Flatten for opaque targets; pass every other target through unmodified."""
    if needs_flattening(mime_type):
        return composite_over_white(surface)
    return surface

"""
downsampler.py: Shrink pixel surfaces by a scale factor in (0, 1].

The canonical strategy is an area-weighted (box) filter evaluated in source
space: every source pixel's unit cell is mapped into destination space and
its value is split among the up to four destination cells it overlaps, in
proportion to the overlap area. Every source pixel contributes, so fine
detail is averaged rather than aliased as with point or bilinear sampling.

A cheaper `stretch` strategy (Pillow bilinear resize) is kept as an explicit
low-cost fallback. Both produce the same output dimensions.
"""

import math
from typing import Callable, Dict, Optional, Tuple

import numpy as np
from PIL import Image

from ..config import BAND_ROWS
from ..utils.log_utils import get_logger
from .models import ResampleStrategy
from .surface import PixelSurface

logger = get_logger(__name__)

# Absorbs float noise so an exact integer sum is not bumped up by ceil()
_CEIL_EPSILON = 1e-6
_FLOOR_EPSILON = 1e-9


def compute_scale(width: int, max_width: Optional[int]) -> float:
    """Scale needed to fit `width` into `max_width`; 1.0 when no shrinking is needed."""
    if max_width and width > max_width:
        return max_width / width
    return 1.0


def target_size(width: int, height: int, scale: float) -> Tuple[int, int]:
    """Destination dimensions for `scale`, never smaller than 1x1."""
    tw = max(1, math.floor(width * scale + _FLOOR_EPSILON))
    th = max(1, math.floor(height * scale + _FLOOR_EPSILON))
    return tw, th


def _axis_weights(n: int, scale: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    For each of `n` source positions along one axis, return the first
    destination index it overlaps and the weights given to that cell and to
    the next one. A position that does not straddle a boundary gives its
    whole extent (`scale`) to the first cell and 0 to the next.
    """
    pos = np.arange(n, dtype=np.float64) * scale
    first = np.floor(pos).astype(np.int64)
    crosses = first != np.floor(pos + scale).astype(np.int64)
    w_first = np.where(crosses, first + 1 - pos, scale)
    w_next = np.where(crosses, pos + scale - first - 1, 0.0)
    return first, w_first, w_next


def area_downsample(surface: PixelSurface, scale: float) -> PixelSurface:
    """
    Area-weighted downsample of `surface` by `scale` (0 < scale < 1).

    Colors of RGBA surfaces are accumulated premultiplied by alpha, and alpha
    itself is accumulated, so transparency survives the filter without
    transparent pixels bleeding their color into opaque neighbours.
    """
    src = surface.buffer
    sh, sw, channels = src.shape
    tw, th = target_size(sw, sh, scale)
    has_alpha = channels == 4

    x_first, x_w0, x_w1 = _axis_weights(sw, scale)
    y_first, y_w0, y_w1 = _axis_weights(sh, scale)

    acc = np.zeros((th * tw, channels), dtype=np.float64)
    coverage = np.zeros(th * tw, dtype=np.float64)
    corners = ((0, 0), (1, 0), (0, 1), (1, 1))

    for r0 in range(0, sh, BAND_ROWS):
        r1 = min(r0 + BAND_ROWS, sh)
        values = src[r0:r1].astype(np.float64)
        if has_alpha:
            alpha = values[..., 3:4] / 255.0
            values[..., :3] *= alpha

        for dx, dy in corners:
            wx = x_w1 if dx else x_w0
            wy = y_w1[r0:r1] if dy else y_w0[r0:r1]
            ix = x_first + dx
            iy = y_first[r0:r1] + dy

            weights = wy[:, None] * wx[None, :]
            valid = (weights > 0) & (iy < th)[:, None] & (ix < tw)[None, :]
            if not valid.any():
                continue

            flat = (iy[:, None] * tw + ix[None, :])[valid]
            w = weights[valid]
            coverage += np.bincount(flat, weights=w, minlength=th * tw)
            for c in range(channels):
                acc[:, c] += np.bincount(flat, weights=values[..., c][valid] * w, minlength=th * tw)

    # Cells are fully covered (coverage 1) except when the 1x1 minimum
    # clamp kicks in; normalise so those are still true averages.
    partial = (coverage > 0) & (np.abs(coverage - 1.0) > _CEIL_EPSILON)
    acc[partial] /= coverage[partial][:, None]

    if has_alpha:
        alpha_sum = acc[:, 3]
        covered = alpha_sum > 0
        color = np.zeros_like(acc[:, :3])
        color[covered] = acc[covered, :3] * (255.0 / alpha_sum[covered][:, None])
        acc[:, :3] = color

    out = np.clip(np.ceil(acc - _CEIL_EPSILON), 0, 255).astype(np.uint8)
    logger.debug("Area-downsampled %dx%d -> %dx%d (scale %.4f)", sw, sh, tw, th, scale)
    return PixelSurface(out.reshape(th, tw, channels))


def stretch_downsample(surface: PixelSurface, scale: float) -> PixelSurface:
    """Bilinear resize through Pillow. Cheaper than the area filter, but aliases fine detail."""
    tw, th = target_size(surface.width, surface.height, scale)
    resized = surface.to_image().resize((tw, th), resample=Image.Resampling.BILINEAR)
    return PixelSurface.from_image(resized)


STRATEGIES: Dict[ResampleStrategy, Callable[[PixelSurface, float], PixelSurface]] = {
    ResampleStrategy.AREA: area_downsample,
    ResampleStrategy.STRETCH: stretch_downsample,
}


def downsample(
    surface: PixelSurface,
    scale: float,
    strategy: ResampleStrategy = ResampleStrategy.AREA,
) -> PixelSurface:
    """
    Downsample `surface` by `scale` using the named strategy.

    A scale of 1 (or more) returns `surface` itself, untouched.
    """
    if scale >= 1.0:
        return surface
    if scale <= 0.0:
        raise ValueError(f"Scale must be in (0, 1], got {scale}")
    return STRATEGIES[ResampleStrategy(strategy)](surface, scale)

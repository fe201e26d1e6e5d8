#!/usr/bin/env python3
"""
pipeline.py: The per-image transcoding step run inside the worker.

surface -> (scale < 1 ? downsample : passthrough) -> (opaque target ? flatten)
-> encode. Errors are caught at the request boundary and turned into an
ErrorResponse tagged with the request id, so one image never affects another.
"""

import time
from typing import Optional

from ..utils.log_utils import get_logger
from .compositor import composite_for
from .downsampler import compute_scale, downsample
from .encoder import EncodedImage, encode
from .errors import TranscodeError
from .models import CompleteResponse, CompressRequest, ErrorResponse, ResampleStrategy, WorkerResponse
from .surface import PixelSurface

logger = get_logger(__name__)


def transcode_surface(
    surface: PixelSurface,
    quality: float,
    max_width: Optional[int],
    output_format: str,
    strategy: ResampleStrategy = ResampleStrategy.AREA,
) -> EncodedImage:
    """
    Downsize, flatten and encode `surface`. Intermediate surfaces are closed
    before returning; `surface` itself is left to the caller.
    """
    scale = compute_scale(surface.width, max_width)
    resized = downsample(surface, scale, strategy)
    try:
        flattened = composite_for(resized, output_format)
        try:
            return encode(flattened, output_format, quality)
        finally:
            if flattened is not resized:
                flattened.close()
    finally:
        if resized is not surface:
            resized.close()


def handle_request(request: CompressRequest) -> WorkerResponse:
    """
    Process one compress request and always return a response.
    The request's surface is closed on every path.
    """
    start_time = time.time()
    surface = request.surface
    try:
        encoded = transcode_surface(
            surface,
            quality=request.quality,
            max_width=request.max_width,
            output_format=request.output_format,
            strategy=request.strategy,
        )
        logger.debug(
            f"Compressed {request.id} to {encoded.width}x{encoded.height} "
            f"in {time.time() - start_time:.2f}s"
        )
        return CompleteResponse(
            id=request.id,
            generation=request.generation,
            data=encoded.data,
            width=encoded.width,
            height=encoded.height,
        )
    except TranscodeError as e:
        logger.error(f"Failed to compress {request.id}: {e}")
        return ErrorResponse(id=request.id, generation=request.generation, error_kind=e.kind, message=str(e))
    except Exception as e:
        logger.exception(f"Unexpected failure compressing {request.id}")
        return ErrorResponse(
            id=request.id, generation=request.generation, error_kind=type(e).__name__, message=str(e)
        )
    finally:
        surface.close()

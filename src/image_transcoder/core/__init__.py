"""
Core transcoding pipeline: surfaces, filters, codecs and dispatch.
"""

from .errors import (
    TranscodeError,
    ValidationError,
    DecodeError,
    SurfaceAllocationError,
    EncodeError,
    WorkerStartupError,
    WorkerClosedError,
    SurfaceClosedError,
)
from .surface import PixelSurface
from .models import (
    OutputFormat,
    ResampleStrategy,
    ImageStatus,
    Settings,
    CompressionTask,
    CompressRequest,
    CompleteResponse,
    ErrorResponse,
    ImageRecord,
)
from .decoder import decode_image, validate_source, probe_dimensions
from .downsampler import downsample, area_downsample, stretch_downsample, compute_scale, target_size
from .compositor import composite_for, composite_over_white
from .encoder import encode, EncodedImage
from .pipeline import transcode_surface, handle_request
from .image_store import ImageStore, create_record
from .workers import TranscodeWorker
from .dispatcher import TranscodeDispatcher

__all__ = [
    "TranscodeError",
    "ValidationError",
    "DecodeError",
    "SurfaceAllocationError",
    "EncodeError",
    "WorkerStartupError",
    "WorkerClosedError",
    "SurfaceClosedError",
    "PixelSurface",
    "OutputFormat",
    "ResampleStrategy",
    "ImageStatus",
    "Settings",
    "CompressionTask",
    "CompressRequest",
    "CompleteResponse",
    "ErrorResponse",
    "ImageRecord",
    "decode_image",
    "validate_source",
    "probe_dimensions",
    "downsample",
    "area_downsample",
    "stretch_downsample",
    "compute_scale",
    "target_size",
    "composite_for",
    "composite_over_white",
    "encode",
    "EncodedImage",
    "transcode_surface",
    "handle_request",
    "ImageStore",
    "create_record",
    "TranscodeWorker",
    "TranscodeDispatcher",
]

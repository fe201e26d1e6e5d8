"""
Image Transcoder

Re-encode and downsize JPEG, PNG and WebP images with an area-weighted filter.
"""

__version__ = "0.1.0"

from .core import (
    TranscodeDispatcher,
    TranscodeWorker,
    ImageStore,
    Settings,
    OutputFormat,
    ResampleStrategy,
    PixelSurface,
    create_record,
    transcode_surface,
)


def main():
    """Entry point for the image-transcoder command."""
    from .cli import main as cli_main
    cli_main()


__all__ = [
    "TranscodeDispatcher",
    "TranscodeWorker",
    "ImageStore",
    "Settings",
    "OutputFormat",
    "ResampleStrategy",
    "PixelSurface",
    "create_record",
    "transcode_surface",
]

"""
Utility functions and helpers.
"""

from .log_utils import configure_logging, get_logger
from .format import (
    format_file_size,
    format_compression_ratio,
    get_output_extension,
    get_output_file_name,
    iter_image_files,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "format_file_size",
    "format_compression_ratio",
    "get_output_extension",
    "get_output_file_name",
    "iter_image_files",
]

#!/usr/bin/env python3
"""
Main CLI entry point for image-transcoder.

Compresses the given images (directories are walked recursively) with the
requested settings and prints a summary table. Nothing is written to disk.
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List

from pydantic import ValidationError as SettingsValidationError

from .config import DEFAULT_OUTPUT_FORMAT, DEFAULT_QUALITY, WIDTH_PRESETS
from .core.errors import TranscodeError
from .core.image_store import create_record
from .core.models import ImageRecord, ImageStatus, OutputFormat, ResampleStrategy, Settings
from .ui.rich_ui import RichTranscodeUI
from .utils.format import iter_image_files
from .utils.log_utils import configure_logging, get_logger

logger = get_logger(__name__)

FORMAT_CHOICES = {
    "original": OutputFormat.ORIGINAL,
    "webp": OutputFormat.WEBP,
    "jpeg": OutputFormat.JPEG,
}
DEFAULT_FORMAT = next(name for name, fmt in FORMAT_CHOICES.items() if fmt.value == DEFAULT_OUTPUT_FORMAT)
PRESET_HINT = ", ".join(str(w) for w in WIDTH_PRESETS if w)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Compress and downsize JPEG, PNG and WebP images')
    parser.add_argument('inputs', nargs='+', help='Image files or directories to compress')
    parser.add_argument('--quality',
                        type=float,
                        default=DEFAULT_QUALITY,
                        help=f'Encoder quality between 0 and 1 (default: {DEFAULT_QUALITY})')
    parser.add_argument('--max-width',
                        type=int,
                        default=None,
                        help=f'Downsize images wider than this many pixels, e.g. {PRESET_HINT} (default: no limit)')
    parser.add_argument('--format',
                        choices=list(FORMAT_CHOICES),
                        default=DEFAULT_FORMAT,
                        help=f'Output format (default: {DEFAULT_FORMAT})')
    parser.add_argument('--strategy',
                        choices=[s.value for s in ResampleStrategy],
                        default=ResampleStrategy.AREA.value,
                        help='Downsampling strategy (default: area)')
    parser.add_argument('--debug',
                        action='store_true',
                        help='Enable debug logging')
    return parser.parse_args(argv)


def load_records(inputs: List[str]) -> List[ImageRecord]:
    """Validate every input image, logging and skipping the ones that are rejected."""
    records = []
    for raw in inputs:
        root = Path(raw)
        if not root.exists():
            logger.error(f"Path '{root}' does not exist.")
            continue
        for path in iter_image_files(root):
            try:
                records.append(create_record(path.name, path.read_bytes()))
            except (TranscodeError, OSError) as e:
                logger.error(f"Skipping {path}: {e}")
    return records


def main(argv=None):
    args = parse_args(argv)
    configure_logging(logging.DEBUG if args.debug else logging.WARNING)

    try:
        settings = Settings(
            quality=args.quality,
            max_width=args.max_width,
            output_format=FORMAT_CHOICES[args.format],
            strategy=ResampleStrategy(args.strategy),
        )
    except SettingsValidationError as e:
        logger.error(f"Invalid settings: {e}")
        sys.exit(2)

    records = load_records(args.inputs)
    if not records:
        logger.error("No images to compress.")
        sys.exit(1)

    store = asyncio.run(RichTranscodeUI(records, settings).run())
    failed = store.status_counts().get(ImageStatus.ERROR, 0)
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()

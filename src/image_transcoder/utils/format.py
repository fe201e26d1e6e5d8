import os
from pathlib import Path
from typing import Iterator

from ..config import IMAGE_EXTS

SIZE_UNITS = ["B", "KB", "MB", "GB"]

OUTPUT_EXTENSIONS = {
    "image/webp": ".webp",
    "image/jpeg": ".jpg",
    "image/png": ".png",
}


def format_file_size(num_bytes: int) -> str:
    """Human-readable size using 1024-based units, e.g. ``1.5 MB``."""
    if num_bytes <= 0:
        return "0 B"
    i = 0
    value = float(num_bytes)
    while value >= 1024 and i < len(SIZE_UNITS) - 1:
        value /= 1024
        i += 1
    return f"{value:.1f} {SIZE_UNITS[i]}" if i > 0 else f"{value:.0f} {SIZE_UNITS[i]}"


def format_compression_ratio(original: int, compressed: int) -> str:
    """Size reduction as a negative percentage, e.g. ``-63%``."""
    if original == 0:
        return "0%"
    ratio = (original - compressed) / original * 100
    return f"-{ratio:.0f}%"


def get_output_extension(mime_type: str) -> str:
    return OUTPUT_EXTENSIONS.get(mime_type, ".jpg")


def get_output_file_name(original_name: str, output_format: str, original_type: str) -> str:
    """
    Replace the extension of `original_name` with the one matching the output
    format. ``original`` keeps the source type.
    """
    base, _ = os.path.splitext(original_name)
    actual = original_type if output_format == "original" else output_format
    return f"{base}{get_output_extension(actual)}"


def iter_image_files(root: Path) -> Iterator[Path]:
    """
    Yield `root` if it is an image file, or recursively every image under it
    using os.scandir for speed.
    """
    if root.is_file():
        if root.suffix.lower() in IMAGE_EXTS:
            yield root
        return
    stack = [root]
    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                for entry in sorted(it, key=lambda e: e.name):
                    # Skip macOS metadata files
                    if entry.name.startswith("._") or entry.name == ".DS_Store":
                        continue
                    if entry.is_dir(follow_symlinks=False):
                        stack.append(Path(entry.path))
                    elif entry.is_file(follow_symlinks=False):
                        if os.path.splitext(entry.name)[1].lower() in IMAGE_EXTS:
                            yield Path(entry.path)
        except PermissionError:
            continue

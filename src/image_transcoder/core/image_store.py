"""
image_store.py - per-image state shared between the worklist and the dispatcher.

Records are keyed by image id. Each call to `begin()` bumps the record's
generation; responses are applied only when they carry the current
generation, so a slow, superseded task can never overwrite a newer result.

Example:
    store = ImageStore()
    record = create_record("photo.png", data)
    store.add(record)
    generation = store.begin(record.id)
    ...
    store.apply_response(response)
"""

import uuid
from collections import Counter
from typing import Dict, Iterator, List, Optional, Tuple

from ..utils.log_utils import get_logger
from .decoder import probe_dimensions, validate_source
from .models import CompleteResponse, ErrorResponse, ImageRecord, ImageStatus, WorkerResponse

logger = get_logger(__name__)


def generate_id() -> str:
    return uuid.uuid4().hex[:12]


def create_record(name: str, data: bytes, mime_type: Optional[str] = None) -> ImageRecord:
    """
    Validate a source file and build a pending record for it.

    Raises:
        ValidationError: If the type is unsupported or the file too large.
        DecodeError: If the header cannot be read.
    """
    source_type = validate_source(name, data, mime_type)
    width, height = probe_dimensions(data)
    return ImageRecord(
        id=generate_id(),
        name=name,
        source_bytes=data,
        source_type=source_type,
        original_width=width,
        original_height=height,
    )


class ImageStore:
    """In-memory image records with a narrow update interface."""

    def __init__(self) -> None:
        self._records: Dict[str, ImageRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, image_id: str) -> bool:
        return image_id in self._records

    def __iter__(self) -> Iterator[ImageRecord]:
        return iter(list(self._records.values()))

    def add(self, record: ImageRecord) -> None:
        if record.id in self._records:
            raise ValueError(f"Duplicate image id: {record.id}")
        self._records[record.id] = record

    def remove(self, image_id: str) -> Optional[ImageRecord]:
        return self._records.pop(image_id, None)

    def clear(self) -> None:
        self._records.clear()

    def get(self, image_id: str) -> Optional[ImageRecord]:
        return self._records.get(image_id)

    def ids(self) -> List[str]:
        return list(self._records)

    def current_generation(self, image_id: str) -> Optional[int]:
        record = self._records.get(image_id)
        return None if record is None else record.generation

    def begin(self, image_id: str) -> int:
        """Start a new processing generation for `image_id` and return it."""
        record = self._records[image_id]
        record.generation += 1
        record.status = ImageStatus.PROCESSING
        record.compressed_bytes = None
        record.compressed_width = None
        record.compressed_height = None
        record.error = None
        return record.generation

    def apply_response(self, response: WorkerResponse) -> bool:
        """
        Apply a worker response to its record.

        Returns False (and changes nothing) when the image was removed or the
        response belongs to a superseded generation.
        """
        record = self._records.get(response.id)
        if record is None:
            logger.debug("Dropping response for removed image %s", response.id)
            return False
        if response.generation != record.generation:
            logger.debug(
                "Dropping stale response for %s (generation %d, current %d)",
                response.id, response.generation, record.generation,
            )
            return False

        if isinstance(response, CompleteResponse):
            record.status = ImageStatus.DONE
            record.compressed_bytes = response.data
            record.compressed_width = response.width
            record.compressed_height = response.height
            record.error = None
        elif isinstance(response, ErrorResponse):
            record.status = ImageStatus.ERROR
            record.error = response.message or "Compression failed"
        return True

    def mark_error(self, image_id: str, message: str) -> None:
        record = self._records.get(image_id)
        if record is not None:
            record.status = ImageStatus.ERROR
            record.error = message

    def status_counts(self) -> Counter:
        return Counter(record.status for record in self._records.values())

    def total_sizes(self) -> Tuple[int, int]:
        """(original bytes, compressed bytes) over the records that are done."""
        done = [r for r in self._records.values() if r.status is ImageStatus.DONE]
        return sum(r.original_size for r in done), sum(r.compressed_size or 0 for r in done)

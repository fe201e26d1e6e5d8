"""
Data models shared by the dispatcher and the worker.

Settings are validated with pydantic; tasks and protocol messages are plain
dataclasses passed between the dispatcher and the worker thread.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..config import DEFAULT_OUTPUT_FORMAT, DEFAULT_QUALITY
from .surface import PixelSurface


class OutputFormat(str, Enum):
    ORIGINAL = "original"
    WEBP = "image/webp"
    JPEG = "image/jpeg"

    def resolve(self, source_type: str) -> str:
        """MIME type to encode to for a source of type `source_type`."""
        return source_type if self is OutputFormat.ORIGINAL else self.value


class ResampleStrategy(str, Enum):
    AREA = "area"
    STRETCH = "stretch"


class ImageStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


class Settings(BaseModel):
    """Global compression settings shared by every task of a wave."""

    model_config = ConfigDict(frozen=True)

    quality: float = Field(default=DEFAULT_QUALITY, ge=0.0, le=1.0)
    max_width: Optional[int] = Field(default=None, gt=0)
    output_format: OutputFormat = OutputFormat(DEFAULT_OUTPUT_FORMAT)
    strategy: ResampleStrategy = ResampleStrategy.AREA


@dataclass(frozen=True)
class CompressionTask:
    """One image's compression job. The surface is owned by whoever holds the task."""
    id: str
    generation: int
    surface: PixelSurface
    quality: float
    max_width: Optional[int]
    output_format: str
    strategy: ResampleStrategy = ResampleStrategy.AREA


@dataclass(frozen=True)
class CompressRequest:
    id: str
    generation: int
    surface: PixelSurface
    quality: float
    max_width: Optional[int]
    output_format: str
    strategy: ResampleStrategy = ResampleStrategy.AREA
    kind: Literal["compress"] = "compress"

    @classmethod
    def from_task(cls, task: CompressionTask) -> "CompressRequest":
        return cls(
            id=task.id,
            generation=task.generation,
            surface=task.surface.transfer(),
            quality=task.quality,
            max_width=task.max_width,
            output_format=task.output_format,
            strategy=task.strategy,
        )


@dataclass(frozen=True)
class CompleteResponse:
    id: str
    generation: int
    data: bytes = field(repr=False)
    width: int
    height: int
    kind: Literal["complete"] = "complete"


@dataclass(frozen=True)
class ErrorResponse:
    id: str
    generation: int
    error_kind: str
    message: str
    kind: Literal["error"] = "error"


WorkerResponse = Union[CompleteResponse, ErrorResponse]


@dataclass
class ImageRecord:
    """Per-image state held by the image store."""
    id: str
    name: str
    source_bytes: bytes = field(repr=False)
    source_type: str
    original_width: int = 0
    original_height: int = 0
    status: ImageStatus = ImageStatus.PENDING
    generation: int = 0
    compressed_bytes: Optional[bytes] = field(default=None, repr=False)
    compressed_width: Optional[int] = None
    compressed_height: Optional[int] = None
    error: Optional[str] = None

    @property
    def original_size(self) -> int:
        return len(self.source_bytes)

    @property
    def compressed_size(self) -> Optional[int]:
        return None if self.compressed_bytes is None else len(self.compressed_bytes)

"""
Exception hierarchy for the transcoding pipeline.

Per-image errors are raised inside the worker and converted into error
responses at the task boundary; they never escape to sibling tasks.
"""


class TranscodeError(Exception):
    """Base class for all transcoder errors."""

    @property
    def kind(self) -> str:
        return type(self).__name__


class ValidationError(TranscodeError):
    """Source rejected before decoding (type or size)."""


class DecodeError(TranscodeError):
    """Source bytes could not be decoded into a pixel surface."""


class SurfaceAllocationError(TranscodeError):
    """A destination pixel surface could not be allocated."""


class EncodeError(TranscodeError):
    """The codec rejected the requested format, quality or size."""


class WorkerStartupError(TranscodeError):
    """The isolated worker context failed to start."""


class SurfaceClosedError(TranscodeError):
    """A pixel surface was used after being closed or transferred."""


class WorkerClosedError(TranscodeError):
    """A request was posted to a worker that is not running."""

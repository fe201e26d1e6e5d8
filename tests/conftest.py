import io

import numpy as np
import pytest
from PIL import Image

from image_transcoder.core.models import CompleteResponse
from image_transcoder.core.surface import PixelSurface


def make_image_bytes(width, height, fmt="PNG", mode="RGB", color=(200, 100, 50)):
    """Encode a solid-color image in memory."""
    img = Image.new(mode, (width, height), color)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


def uniform_surface(width, height, color):
    buffer = np.empty((height, width, len(color)), dtype=np.uint8)
    buffer[...] = color
    return PixelSurface(buffer)


class FakeWorker:
    """Stands in for TranscodeWorker; records requests and answers on demand."""

    def __init__(self, on_message, max_concurrent=4, auto_respond=False):
        self.on_message = on_message
        self.max_concurrent = max_concurrent
        self.auto_respond = auto_respond
        self.requests = []
        self.terminated = False

    def start(self):
        pass

    def post_message(self, request):
        self.requests.append(request)
        if self.auto_respond:
            self.respond(request)

    def respond(self, request, data=b"compressed", width=None, height=None):
        self.on_message(
            CompleteResponse(
                id=request.id,
                generation=request.generation,
                data=data,
                width=width if width is not None else request.surface.width,
                height=height if height is not None else request.surface.height,
            )
        )

    def terminate(self):
        self.terminated = True


@pytest.fixture
def png_bytes():
    return make_image_bytes(64, 48)

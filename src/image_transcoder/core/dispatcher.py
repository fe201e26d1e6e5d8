#!/usr/bin/env python3
"""
dispatcher.py: Feed images from the store to the worker and reconcile results.

TranscodeDispatcher owns exactly one TranscodeWorker. Submission is
fire-and-forget; responses hop back onto the dispatcher's event loop and are
applied to the ImageStore by image id, dropping any that belong to a
superseded generation. Settings changes are debounced into a single
re-submission wave.
Optional callbacks can be attached to monitor results and waves.
"""

import asyncio
from typing import Callable, Iterable, Optional, Set

from ..config import DEBOUNCE_SECONDS, DEFAULT_MAX_CONCURRENT
from ..utils.log_utils import get_logger
from .decoder import decode_image
from .errors import DecodeError, TranscodeError, WorkerStartupError
from .image_store import ImageStore
from .models import (
    CompressionTask,
    CompressRequest,
    ErrorResponse,
    ImageRecord,
    ImageStatus,
    Settings,
    WorkerResponse,
)
from .workers import TranscodeWorker

logger = get_logger(__name__)


class TranscodeDispatcher:
    """
    Accepts per-image compression work and writes results back to the store.
    Use as an async context manager, or call `start()` / `close()`.
    """

    def __init__(
        self,
        store: Optional[ImageStore] = None,
        settings: Optional[Settings] = None,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        worker_factory: Callable[..., TranscodeWorker] = TranscodeWorker,
    ) -> None:
        self.store = store if store is not None else ImageStore()
        self.settings = settings or Settings()
        self.debounce_seconds = debounce_seconds
        self.max_concurrent = max_concurrent
        self.worker_factory = worker_factory
        self.worker: Optional[TranscodeWorker] = None

        self.stale_count = 0
        self.wave_count = 0
        # on_result(record, response) after a response was applied to the store
        self.on_result: Optional[Callable[[ImageRecord, WorkerResponse], None]] = None
        # on_wave(image_count) when a settings change re-submits every image
        self.on_wave: Optional[Callable[[int], None]] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._startup_error: Optional[WorkerStartupError] = None
        self._in_flight: Set[tuple] = set()
        self._background: Set[asyncio.Task] = set()
        self._debounce_handle: Optional[asyncio.TimerHandle] = None
        self._idle: Optional[asyncio.Event] = None

    async def __aenter__(self) -> "TranscodeDispatcher":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def start(self) -> None:
        """
        Bring up the worker. A startup failure is not raised: it fails every
        pending image and every later submission instead.
        """
        self._loop = asyncio.get_running_loop()
        self._idle = asyncio.Event()
        self._idle.set()
        try:
            self.worker = self.worker_factory(
                on_message=self._on_worker_message, max_concurrent=self.max_concurrent
            )
            await self._loop.run_in_executor(None, self.worker.start)
        except WorkerStartupError as e:
            logger.error(f"Worker failed to start: {e}")
            self._startup_error = e
            self._fail_outstanding(str(e))

    async def close(self) -> None:
        """Tear down the worker; every in-flight task is discarded."""
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None
        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*self._background, return_exceptions=True)
        if self.worker is not None:
            await self._loop.run_in_executor(None, self.worker.terminate)
            self.worker = None
        self._in_flight.clear()
        self._check_idle()

    @property
    def startup_error(self) -> Optional[WorkerStartupError]:
        return self._startup_error

    def submit(self, task: CompressionTask) -> None:
        """
        Enqueue `task` on the worker and return immediately. Ownership of the
        task's surface moves to the worker.
        """
        if self._startup_error is not None or self.worker is None:
            task.surface.close()
            message = str(self._startup_error or "Dispatcher is not running")
            self._apply_response(ErrorResponse(task.id, task.generation, "WorkerStartupError", message))
            return

        request = CompressRequest.from_task(task)
        key = (task.id, task.generation)
        self._in_flight.add(key)
        self._idle.clear()
        try:
            self.worker.post_message(request)
        except TranscodeError as e:
            self._in_flight.discard(key)
            self._apply_response(ErrorResponse(task.id, task.generation, e.kind, str(e)))

    async def process_image(self, image_id: str, settings: Optional[Settings] = None) -> None:
        """Decode the image's source and submit it with `settings` (current settings by default)."""
        self._require_running()
        settings = settings or self.settings
        record = self.store.get(image_id)
        if record is None:
            return

        generation = self.store.begin(image_id)
        try:
            surface, _ = await self._loop.run_in_executor(None, decode_image, record.source_bytes)
        except DecodeError as e:
            logger.error(f"Failed to decode {record.name}: {e}")
            self._apply_response(ErrorResponse(image_id, generation, e.kind, str(e)))
            return
        except Exception as e:
            logger.exception(f"Unexpected error decoding {record.name}")
            self._apply_response(ErrorResponse(image_id, generation, type(e).__name__, str(e)))
            return

        if self.store.current_generation(image_id) != generation:
            # superseded or removed while decoding
            surface.close()
            return

        self.submit(
            CompressionTask(
                id=image_id,
                generation=generation,
                surface=surface,
                quality=settings.quality,
                max_width=settings.max_width,
                output_format=settings.output_format.resolve(record.source_type),
                strategy=settings.strategy,
            )
        )

    async def process_all(self, settings: Optional[Settings] = None) -> None:
        """Submit every image in the store as a fresh wave."""
        self._require_running()
        settings = settings or self.settings
        ids = self.store.ids()
        self.wave_count += 1
        logger.info(f"Submitting {len(ids)} images (quality={settings.quality}, "
                    f"max_width={settings.max_width}, format={settings.output_format.value})")
        if self.on_wave:
            self.on_wave(len(ids))
        await asyncio.gather(*(self.process_image(image_id, settings) for image_id in ids))

    def add_images(self, records: Iterable[ImageRecord]) -> None:
        """Add new images to the store and start processing them right away."""
        self._require_running()
        for record in records:
            self.store.add(record)
            self._spawn(self.process_image(record.id, self.settings))

    def remove_image(self, image_id: str) -> None:
        self.store.remove(image_id)

    def clear(self) -> None:
        self.store.clear()

    def update_settings(self, **changes) -> Settings:
        """
        Replace settings and schedule a debounced re-submission of every image.
        Changes made inside the debounce window collapse into one wave.
        """
        settings = Settings(**{**self.settings.model_dump(), **changes})
        if not len(self.store):
            self.settings = settings
            return settings
        self._require_running()
        self.settings = settings
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
        self._idle.clear()
        self._debounce_handle = self._loop.call_later(self.debounce_seconds, self._flush_settings)
        return self.settings

    async def wait_idle(self) -> None:
        """Wait until no wave is pending and every submitted task has resolved."""
        while not self._is_idle():
            self._idle.clear()
            await self._idle.wait()

    def _flush_settings(self) -> None:
        self._debounce_handle = None
        logger.debug("Debounce window elapsed, re-processing all images")
        self._spawn(self.process_all(self.settings))

    def _spawn(self, coro) -> None:
        task = self._loop.create_task(coro)
        self._background.add(task)
        self._idle.clear()
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Background processing failed: {task.exception()}")
        self._check_idle()

    def _on_worker_message(self, response: WorkerResponse) -> None:
        # Called on the worker thread; hop onto the dispatcher's loop
        try:
            self._loop.call_soon_threadsafe(self._apply_response, response)
        except RuntimeError:
            logger.debug(f"Dispatcher loop closed, dropping response for {response.id}")

    def _apply_response(self, response: WorkerResponse) -> None:
        self._in_flight.discard((response.id, response.generation))
        if self.store.apply_response(response):
            if self.on_result:
                self.on_result(self.store.get(response.id), response)
        else:
            self.stale_count += 1
        self._check_idle()

    def _fail_outstanding(self, message: str) -> None:
        for record in self.store:
            if record.status in (ImageStatus.PENDING, ImageStatus.PROCESSING):
                self.store.mark_error(record.id, message)

    def _require_running(self) -> None:
        if self._loop is None or self._idle is None:
            raise RuntimeError("Dispatcher is not running")

    def _is_idle(self) -> bool:
        return not self._in_flight and not self._background and self._debounce_handle is None

    def _check_idle(self) -> None:
        if self._idle is not None and self._is_idle():
            self._idle.set()

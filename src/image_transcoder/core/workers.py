import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, Set

from ..config import DEFAULT_MAX_CONCURRENT, WORKER_STARTUP_TIMEOUT
from ..utils.log_utils import get_logger
from .errors import WorkerClosedError, WorkerStartupError
from .models import CompressRequest, WorkerResponse
from .pipeline import handle_request

logger = get_logger(__name__)


class TranscodeWorker:
    """
    Isolated execution context that compresses images off the caller's loop.

    Runs a private asyncio event loop on a dedicated thread. Requests are
    posted with `post_message` and consumed from a FIFO queue; each one is
    handled as its own task whose CPU-bound work runs in the worker's thread
    pool, so requests interleave and may complete out of order. Every
    response is passed to `on_message` from the worker thread.

    The only way to cancel work is `terminate()`, which discards everything
    in flight.
    """

    def __init__(
        self,
        on_message: Callable[[WorkerResponse], None],
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        startup_timeout: float = WORKER_STARTUP_TIMEOUT,
        name: str = "transcode-worker",
    ) -> None:
        self.on_message = on_message
        self.max_concurrent = max_concurrent
        self.startup_timeout = startup_timeout
        self.name = name

        self.completed_count = 0

        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._serve_task: Optional[asyncio.Task] = None
        self._ready = threading.Event()
        self._startup_error: Optional[BaseException] = None

    @property
    def running(self) -> bool:
        return (
            self._thread is not None
            and self._thread.is_alive()
            and self._loop is not None
            and not self._loop.is_closed()
        )

    def start(self) -> None:
        """
        Spawn the worker thread and block until its loop accepts requests.

        Raises:
            WorkerStartupError: If the thread or its loop cannot be brought up.
        """
        if self.running:
            return
        self._ready.clear()
        self._startup_error = None
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        try:
            self._thread.start()
        except RuntimeError as e:
            raise WorkerStartupError(f"Cannot start {self.name}: {e}") from e

        if not self._ready.wait(self.startup_timeout):
            raise WorkerStartupError(f"{self.name} did not start within {self.startup_timeout}s")
        if self._startup_error is not None:
            raise WorkerStartupError(f"{self.name} failed to start: {self._startup_error}") from self._startup_error
        logger.info(f"Started {self.name} with max {self.max_concurrent} concurrent requests")

    def post_message(self, request: CompressRequest) -> None:
        """
        Hand `request` (and ownership of its surface) to the worker. Returns
        immediately; the response arrives later through `on_message`.
        """
        if not self.running:
            request.surface.close()
            raise WorkerClosedError(f"{self.name} is not running")
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, request)
        except RuntimeError as e:
            # loop closed between the check and the call
            request.surface.close()
            raise WorkerClosedError(f"{self.name} is not running") from e

    def terminate(self, timeout: float = 5.0) -> None:
        """Tear the worker down, discarding every queued and in-flight request."""
        if self._loop is not None and self._serve_task is not None:
            try:
                self._loop.call_soon_threadsafe(self._serve_task.cancel)
            except RuntimeError:
                pass  # loop already closed
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info(f"Terminated {self.name} after {self.completed_count} requests")

    def _run(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self._serve())
        except Exception as e:
            if not self._ready.is_set():
                self._startup_error = e
            logger.exception(f"{self.name} loop crashed")
        finally:
            loop.close()
            # unblock start() if the loop died before becoming ready
            self._ready.set()

    async def _serve(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._semaphore = asyncio.Semaphore(self.max_concurrent)
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_concurrent, thread_name_prefix=f"{self.name}-codec"
        )
        self._serve_task = asyncio.current_task()
        self._ready.set()

        tasks: Set[asyncio.Task] = set()
        try:
            while True:
                request = await self._queue.get()
                logger.debug(f"Received compress request for {request.id} (generation {request.generation})")
                task = asyncio.create_task(self._handle(request))
                tasks.add(task)
                task.add_done_callback(tasks.discard)
        except asyncio.CancelledError:
            logger.debug(f"{self.name} cancelled with {len(tasks)} requests in flight")
        finally:
            for task in list(tasks):
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            while not self._queue.empty():
                self._queue.get_nowait().surface.close()
            self._executor.shutdown(wait=False, cancel_futures=True)

    async def _handle(self, request: CompressRequest) -> None:
        try:
            async with self._semaphore:
                loop = asyncio.get_running_loop()
                response = await loop.run_in_executor(self._executor, handle_request, request)
        except asyncio.CancelledError:
            request.surface.close()
            raise

        self.completed_count += 1
        try:
            self.on_message(response)
        except Exception:
            logger.exception(f"Response handler failed for {response.id}")

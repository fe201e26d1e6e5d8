"""Tests for the dispatcher: result reconciliation, staleness, debounce, startup failure."""

import asyncio

import pytest

from image_transcoder.core import dispatcher as dispatcher_module
from image_transcoder.core.dispatcher import TranscodeDispatcher
from image_transcoder.core.errors import WorkerStartupError
from image_transcoder.core.image_store import create_record
from image_transcoder.core.models import ImageRecord, ImageStatus, OutputFormat, Settings

from conftest import FakeWorker, make_image_bytes

TIMEOUT = 30


def _fake_factory(created, auto_respond=False):
    def factory(on_message, max_concurrent):
        worker = FakeWorker(on_message, max_concurrent, auto_respond=auto_respond)
        created.append(worker)
        return worker
    return factory


async def test_end_to_end_with_real_worker():
    good = create_record("good.png", make_image_bytes(200, 100))
    transparent = create_record(
        "logo.png", make_image_bytes(50, 50, mode="RGBA", color=(0, 0, 0, 0))
    )
    corrupt = ImageRecord(id="broken", name="broken.png", source_bytes=b"garbage", source_type="image/png")

    settings = Settings(quality=0.7, max_width=100, output_format=OutputFormat.JPEG)
    results = []
    async with TranscodeDispatcher(settings=settings) as dispatcher:
        dispatcher.on_result = lambda record, response: results.append(response.kind)
        dispatcher.add_images([good, transparent, corrupt])
        await asyncio.wait_for(dispatcher.wait_idle(), TIMEOUT)

    assert good.status is ImageStatus.DONE
    assert (good.compressed_width, good.compressed_height) == (100, 50)
    assert good.compressed_bytes[:3] == b"\xff\xd8\xff"
    assert transparent.status is ImageStatus.DONE
    assert corrupt.status is ImageStatus.ERROR
    assert sorted(results) == ["complete", "complete", "error"]


async def test_original_format_keeps_source_type():
    created = []
    record = create_record("a.webp", make_image_bytes(20, 20, fmt="WEBP"))
    settings = Settings(output_format=OutputFormat.ORIGINAL)
    async with TranscodeDispatcher(settings=settings, worker_factory=_fake_factory(created, True)) as dispatcher:
        dispatcher.add_images([record])
        await asyncio.wait_for(dispatcher.wait_idle(), TIMEOUT)
    assert created[0].requests[0].output_format == "image/webp"


async def test_submit_transfers_surface_ownership():
    created = []
    record = create_record("a.png", make_image_bytes(20, 20))
    async with TranscodeDispatcher(worker_factory=_fake_factory(created)) as dispatcher:
        dispatcher.store.add(record)
        await dispatcher.process_image(record.id)
        request = created[0].requests[0]
        assert not request.surface.closed
        assert record.status is ImageStatus.PROCESSING


async def test_stale_result_is_discarded():
    """The newer task resolves first; the older one must not overwrite it."""
    created = []
    record = create_record("a.png", make_image_bytes(40, 40))
    async with TranscodeDispatcher(worker_factory=_fake_factory(created)) as dispatcher:
        dispatcher.store.add(record)
        await dispatcher.process_image(record.id, Settings(max_width=30))
        await dispatcher.process_image(record.id, Settings(max_width=20))
        worker = created[0]
        old, new = worker.requests
        assert (old.generation, new.generation) == (1, 2)

        worker.respond(new, data=b"new", width=20, height=20)
        worker.respond(old, data=b"old", width=30, height=30)
        await asyncio.wait_for(dispatcher.wait_idle(), TIMEOUT)

        assert record.status is ImageStatus.DONE
        assert record.compressed_bytes == b"new"
        assert record.compressed_width == 20
        assert dispatcher.stale_count == 1


async def test_settings_changes_are_debounced_into_one_wave():
    created = []
    waves = []
    records = [create_record(f"{i}.png", make_image_bytes(30, 30)) for i in range(3)]
    dispatcher = TranscodeDispatcher(debounce_seconds=0.05, worker_factory=_fake_factory(created, True))
    async with dispatcher:
        dispatcher.on_wave = waves.append
        for record in records:
            dispatcher.store.add(record)
        dispatcher.update_settings(quality=0.5)
        dispatcher.update_settings(quality=0.6)
        dispatcher.update_settings(quality=0.7, max_width=10)
        await asyncio.wait_for(dispatcher.wait_idle(), TIMEOUT)

    requests = created[0].requests
    assert waves == [3]
    assert dispatcher.wave_count == 1
    assert len(requests) == 3
    assert {r.quality for r in requests} == {0.7}
    assert all(r.max_width == 10 for r in requests)
    assert all(r.status is ImageStatus.DONE for r in records)


async def test_settings_change_without_images_submits_nothing():
    created = []
    async with TranscodeDispatcher(debounce_seconds=0.01, worker_factory=_fake_factory(created, True)) as dispatcher:
        settings = dispatcher.update_settings(quality=0.3)
        await asyncio.wait_for(dispatcher.wait_idle(), TIMEOUT)
    assert settings.quality == 0.3
    assert dispatcher.wave_count == 0


async def test_invalid_settings_rejected():
    async with TranscodeDispatcher(worker_factory=_fake_factory([])) as dispatcher:
        with pytest.raises(ValueError):
            dispatcher.update_settings(quality=1.5)


async def test_removed_image_result_is_dropped():
    created = []
    record = create_record("a.png", make_image_bytes(10, 10))
    async with TranscodeDispatcher(worker_factory=_fake_factory(created)) as dispatcher:
        dispatcher.store.add(record)
        await dispatcher.process_image(record.id)
        dispatcher.remove_image(record.id)
        created[0].respond(created[0].requests[0])
        await asyncio.wait_for(dispatcher.wait_idle(), TIMEOUT)
    assert dispatcher.stale_count == 1
    assert record.id not in dispatcher.store


class _BrokenWorker(FakeWorker):
    def start(self):
        raise WorkerStartupError("no threads available")


async def test_startup_failure_fails_every_task():
    records = [create_record(f"{i}.png", make_image_bytes(10, 10)) for i in range(2)]
    async with TranscodeDispatcher(worker_factory=_BrokenWorker) as dispatcher:
        assert dispatcher.startup_error is not None
        dispatcher.add_images(records)
        await asyncio.wait_for(dispatcher.wait_idle(), TIMEOUT)
    for record in records:
        assert record.status is ImageStatus.ERROR
        assert "no threads available" in record.error


async def test_startup_failure_marks_pending_images():
    record = create_record("a.png", make_image_bytes(10, 10))
    dispatcher = TranscodeDispatcher(worker_factory=_BrokenWorker)
    dispatcher.store.add(record)
    await dispatcher.start()
    assert record.status is ImageStatus.ERROR
    await dispatcher.close()


async def test_close_terminates_worker():
    created = []
    dispatcher = TranscodeDispatcher(worker_factory=_fake_factory(created))
    await dispatcher.start()
    await dispatcher.close()
    assert created[0].terminated
    assert dispatcher.worker is None


async def test_unexpected_decode_failure_becomes_error_result(monkeypatch):
    def explode(data):
        raise MemoryError("cannot allocate pixels")

    monkeypatch.setattr(dispatcher_module, "decode_image", explode)
    created = []
    results = []
    record = create_record("a.png", make_image_bytes(10, 10))
    async with TranscodeDispatcher(worker_factory=_fake_factory(created, True)) as dispatcher:
        dispatcher.on_result = lambda rec, response: results.append(response)
        dispatcher.add_images([record])
        await asyncio.wait_for(dispatcher.wait_idle(), TIMEOUT)

    assert record.status is ImageStatus.ERROR
    assert record.error == "cannot allocate pixels"
    assert [r.error_kind for r in results] == ["MemoryError"]
    assert created[0].requests == []


async def test_add_images_before_start_raises():
    dispatcher = TranscodeDispatcher(worker_factory=_fake_factory([]))
    record = create_record("a.png", make_image_bytes(10, 10))
    with pytest.raises(RuntimeError, match="not running"):
        dispatcher.add_images([record])
    assert len(dispatcher.store) == 0


async def test_update_settings_before_start_with_images_raises():
    dispatcher = TranscodeDispatcher(worker_factory=_fake_factory([]))
    dispatcher.store.add(create_record("a.png", make_image_bytes(10, 10)))
    with pytest.raises(RuntimeError, match="not running"):
        dispatcher.update_settings(quality=0.5)
    assert dispatcher.settings.quality == Settings().quality


async def test_update_settings_before_start_without_images():
    dispatcher = TranscodeDispatcher(worker_factory=_fake_factory([]))
    assert dispatcher.update_settings(quality=0.5).quality == 0.5

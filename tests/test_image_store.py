"""Tests for the image store and its generation counters."""

import pytest

from image_transcoder.core.errors import ValidationError
from image_transcoder.core.image_store import ImageStore, create_record
from image_transcoder.core.models import CompleteResponse, ErrorResponse, ImageStatus

from conftest import make_image_bytes


@pytest.fixture
def store():
    return ImageStore()


@pytest.fixture
def record():
    return create_record("photo.png", make_image_bytes(40, 30))


def test_create_record(record):
    assert record.source_type == "image/png"
    assert (record.original_width, record.original_height) == (40, 30)
    assert record.status is ImageStatus.PENDING
    assert record.original_size == len(record.source_bytes)
    assert record.compressed_size is None


def test_create_record_rejects_unsupported():
    with pytest.raises(ValidationError):
        create_record("anim.gif", make_image_bytes(4, 4, fmt="GIF", mode="P", color=0))


def test_duplicate_id_rejected(store, record):
    store.add(record)
    with pytest.raises(ValueError):
        store.add(record)


def test_begin_bumps_generation_and_resets_output(store, record):
    store.add(record)
    assert store.begin(record.id) == 1
    store.apply_response(CompleteResponse(record.id, 1, b"abc", 4, 3))
    assert record.status is ImageStatus.DONE
    assert store.begin(record.id) == 2
    assert record.status is ImageStatus.PROCESSING
    assert record.compressed_bytes is None


def test_stale_response_is_dropped(store, record):
    store.add(record)
    store.begin(record.id)
    store.begin(record.id)
    assert store.apply_response(CompleteResponse(record.id, 2, b"new", 20, 15))
    assert not store.apply_response(CompleteResponse(record.id, 1, b"old", 40, 30))
    assert record.compressed_bytes == b"new"
    assert record.compressed_width == 20


def test_response_for_removed_image_is_dropped(store, record):
    store.add(record)
    store.begin(record.id)
    store.remove(record.id)
    assert not store.apply_response(CompleteResponse(record.id, 1, b"x", 1, 1))


def test_error_response(store, record):
    store.add(record)
    store.begin(record.id)
    assert store.apply_response(ErrorResponse(record.id, 1, "EncodeError", "boom"))
    assert record.status is ImageStatus.ERROR
    assert record.error == "boom"


def test_totals_and_counts(store):
    done = create_record("a.png", make_image_bytes(10, 10))
    failed = create_record("b.png", make_image_bytes(10, 10))
    store.add(done)
    store.add(failed)
    store.apply_response(CompleteResponse(done.id, 0, b"12345", 5, 5))
    store.mark_error(failed.id, "bad")
    assert store.total_sizes() == (done.original_size, 5)
    counts = store.status_counts()
    assert counts[ImageStatus.DONE] == 1
    assert counts[ImageStatus.ERROR] == 1

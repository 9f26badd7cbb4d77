"""
Tests for DirectUploadService.

Tests cover:
- Whole file stored at its key and recorded on the lesson
- Size limit and key validation before storage is touched
- Storage failures reported, not raised
"""

from __future__ import annotations

import uuid

import pytest

from lessons.models import LessonAudio
from uploads.services import (
    DirectUploadRequest,
    DirectUploadService,
    NullAssetRecorder,
)

pytestmark = pytest.mark.django_db


def _request(owner_id=None, **kwargs) -> DirectUploadRequest:
    owner_id = owner_id or str(uuid.uuid4())
    kwargs.setdefault("target_key", f"audio/{owner_id}/0_1700000000000.mp3")
    return DirectUploadRequest(owner_id=owner_id, **kwargs)


class TestDirectUpload:
    """
    Tests for single-request uploads.

    Why it matters: a small file sent in one request must end up in the
    same place and the same catalog as a chunked one.
    """

    def test_stores_and_records(self, faulty_store, lesson):
        request = _request(
            str(lesson.id), original_filename="Shiur.mp3", sort_order=2
        )

        result = DirectUploadService(store=faulty_store).upload(request, b"ID3-frames")

        assert result.success
        outcome = result.data
        assert outcome.asset.strategy == "direct"
        assert outcome.asset.byte_size == 10
        assert outcome.asset.codec == "mp3"
        assert outcome.recorded is True
        assert faulty_store.get_object(request.target_key) == b"ID3-frames"

        audio = LessonAudio.objects.get(pk=outcome.audio_record_id)
        assert audio.lesson == lesson
        assert audio.sort_order == 2
        assert audio.original_name == "Shiur.mp3"

    def test_unknown_lesson_stores_with_warning(self, faulty_store):
        request = _request()

        result = DirectUploadService(store=faulty_store).upload(request, b"abc")

        assert result.success
        assert result.data.recorded is False
        assert result.data.warning
        assert faulty_store.head_object(request.target_key) is not None

    def test_empty_file(self, faulty_store):
        request = _request()

        result = DirectUploadService(
            store=faulty_store, recorder=NullAssetRecorder()
        ).upload(request, b"")

        assert result.success
        assert faulty_store.get_object(request.target_key) == b""

    def test_too_large(self, faulty_store):
        result = DirectUploadService(store=faulty_store, max_size=4).upload(
            _request(), b"12345"
        )

        assert result.error_code == "VALIDATION_ERROR"
        assert result.details == {"field": "file", "max_size": 4}
        assert faulty_store.calls == []

    def test_invalid_target_key(self, faulty_store):
        result = DirectUploadService(store=faulty_store).upload(
            _request(target_key="../escape.mp3"), b"abc"
        )

        assert result.error_code == "VALIDATION_ERROR"
        assert result.details == {"field": "target_key"}
        assert faulty_store.calls == []

    def test_storage_failure(self, faulty_store):
        faulty_store.fail_on["put_object"] = 1
        request = _request()

        result = DirectUploadService(
            store=faulty_store, recorder=NullAssetRecorder()
        ).upload(request, b"abc")

        assert not result.success
        assert result.error_code == "STORAGE_FAILURE"
        assert result.details["operation"] == "put_object"
        assert LessonAudio.objects.count() == 0

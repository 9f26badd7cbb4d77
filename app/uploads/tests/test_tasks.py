"""
Tests for upload Celery tasks.

Tests cover:
- assemble_upload result payloads
- sweep_orphaned_chunks age and lease rules
- abort_stale_multipart_uploads
"""

from __future__ import annotations

import os
import time
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from freezegun import freeze_time

from lessons.models import LessonAudio
from uploads.exceptions import StorageFailure
from uploads.keys import chunk_key
from uploads.services import SessionLease
from uploads.storage import MultipartUploadInfo
from uploads.tasks import (
    abort_stale_multipart_uploads,
    assemble_upload,
    sweep_orphaned_chunks,
)
from uploads.tests.helpers import seed_chunks

pytestmark = pytest.mark.django_db


def _age(store, key: str, hours: float) -> None:
    """Backdate an object's modification time."""
    then = time.time() - hours * 3600
    os.utime(store.root / key, (then, then))


# =============================================================================
# Assembly Task
# =============================================================================


class TestAssembleUploadTask:
    """Tests for assemble_upload."""

    def test_success_payload(self, configured_store, lesson):
        seed_chunks(configured_store, "session-1", [b"ab", b"cd"])
        target = f"audio/{lesson.id}/0_1700000000000.mp3"

        result = assemble_upload(
            session_id="session-1",
            target_key=target,
            expected_parts=2,
            owner_id=str(lesson.id),
            original_filename="a.mp3",
        )

        assert result["success"] is True
        assert result["asset"]["final_key"] == target
        assert result["asset"]["byte_size"] == 4
        assert result["recorded"] is True
        assert LessonAudio.objects.filter(pk=result["audio_record_id"]).exists()
        assert configured_store.get_object(target) == b"abcd"

    def test_failure_payload(self, configured_store):
        result = assemble_upload(
            session_id="session-1",
            target_key="audio/x/0_1.mp3",
            expected_parts=2,
        )

        assert result["success"] is False
        assert result["error_code"] == "NO_CHUNKS_FOUND"
        assert result["details"] == {"session_id": "session-1"}


# =============================================================================
# Orphan Sweep
# =============================================================================


class TestSweepOrphanedChunks:
    """
    Tests for sweep_orphaned_chunks.

    Why it matters: abandoned uploads would otherwise keep their chunks
    in the bucket forever.
    """

    def test_sweeps_abandoned_sessions(self, configured_store):
        keys = seed_chunks(configured_store, "abandoned", [b"a", b"b"])
        for key in keys:
            _age(configured_store, key, hours=30)

        result = sweep_orphaned_chunks()

        assert result == {"sessions_swept": 1, "deleted_count": 2, "errors": []}
        assert configured_store.list_keys("_chunks/") == []

    def test_keeps_sessions_with_recent_chunk(self, configured_store):
        """A session whose newest chunk is recent is kept whole."""
        keys = seed_chunks(configured_store, "active", [b"a", b"b"])
        _age(configured_store, keys[0], hours=30)

        result = sweep_orphaned_chunks()

        assert result["sessions_swept"] == 0
        assert configured_store.list_keys("_chunks/active/") == keys

    def test_skips_sessions_being_assembled(self, configured_store):
        keys = seed_chunks(configured_store, "assembling", [b"a"])
        _age(configured_store, keys[0], hours=30)
        SessionLease("assembling").acquire()

        result = sweep_orphaned_chunks()

        assert result["sessions_swept"] == 0
        assert configured_store.list_keys("_chunks/") == keys

    def test_max_age_setting(self, configured_store, settings):
        settings.UPLOAD_ORPHAN_CHUNK_MAX_AGE_HOURS = 1
        keys = seed_chunks(configured_store, "short", [b"a"])
        _age(configured_store, keys[0], hours=2)

        result = sweep_orphaned_chunks()

        assert result["deleted_count"] == 1

    def test_mixed_sessions(self, configured_store):
        old = seed_chunks(configured_store, "old", [b"a"])
        _age(configured_store, old[0], hours=48)
        seed_chunks(configured_store, "new", [b"b"])

        sweep_orphaned_chunks()

        assert configured_store.list_keys("_chunks/") == [chunk_key("new", 1)]

    def test_listing_failure(self):
        store = MagicMock()
        store.list_objects.side_effect = StorageFailure("Storage list_objects failed")

        with patch("uploads.tasks.get_chunk_store", return_value=store):
            result = sweep_orphaned_chunks()

        assert result["sessions_swept"] == 0
        assert "error" in result


# =============================================================================
# Stale Multipart Uploads
# =============================================================================


class TestAbortStaleMultipartUploads:
    """Tests for abort_stale_multipart_uploads."""

    def test_aborts_old_uploads(self, configured_store):
        with freeze_time("2024-01-01 03:00:00"):
            stale_id = configured_store.create_multipart_upload(
                "audio/lesson/0_1.mp3", "audio/mpeg"
            )
            configured_store.upload_part("audio/lesson/0_1.mp3", stale_id, 1, b"x")
        fresh_id = configured_store.create_multipart_upload(
            "audio/lesson/1_2.mp3", "audio/mpeg"
        )

        result = abort_stale_multipart_uploads()

        assert result == {"aborted_count": 1, "errors": []}
        remaining = [u.upload_id for u in configured_store.list_multipart_uploads()]
        assert remaining == [fresh_id]

    def test_ignores_other_prefixes(self, configured_store):
        with freeze_time("2024-01-01 03:00:00"):
            configured_store.create_multipart_upload("images/lesson/cover.png", "image/png")

        result = abort_stale_multipart_uploads()

        assert result["aborted_count"] == 0
        assert len(configured_store.list_multipart_uploads()) == 1

    def test_skips_uploads_without_initiation_time(self):
        store = MagicMock()
        store.list_multipart_uploads.return_value = [
            MultipartUploadInfo(key="audio/l/0_1.mp3", upload_id="uid", initiated=None),
        ]

        with patch("uploads.tasks.get_chunk_store", return_value=store):
            result = abort_stale_multipart_uploads()

        assert result["aborted_count"] == 0
        store.abort_multipart_upload.assert_not_called()

    def test_abort_failure_is_reported(self):
        store = MagicMock()
        store.list_multipart_uploads.return_value = [
            MultipartUploadInfo(
                key="audio/l/0_1.mp3",
                upload_id="uid",
                initiated=datetime(2024, 1, 1, tzinfo=timezone.utc),
            ),
        ]
        store.abort_multipart_upload.side_effect = StorageFailure("Access denied")

        with patch("uploads.tasks.get_chunk_store", return_value=store):
            result = abort_stale_multipart_uploads()

        assert result["aborted_count"] == 0
        assert result["errors"] == ["Failed to abort uid: Access denied"]

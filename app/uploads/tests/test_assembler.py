"""
Tests for ChunkAssemblyService.

Tests cover:
- Ordered concatenation regardless of upload order
- Last write wins for re-sent chunks
- Completeness checks that never write or delete
- Strategy selection by size, including both end-to-end scenarios
- Abort and cleanup on failure, including the time budget
- Per-session lease
"""

from __future__ import annotations

import logging
from unittest.mock import patch

import pytest
from django.core.cache import cache

from uploads.keys import chunk_key
from uploads.services import (
    AssemblyRequest,
    ChunkAssemblyService,
    ChunkReceiver,
    Deadline,
    NullAssetRecorder,
    SessionLease,
    cleanup_chunks,
)
from uploads.tests.helpers import MB, distinct_payloads, seed_chunks

TARGET = "audio/lesson-1/0_1700000000000.mp3"


def _service(store, **kwargs) -> ChunkAssemblyService:
    kwargs.setdefault("recorder", NullAssetRecorder())
    return ChunkAssemblyService(store=store, **kwargs)


def _request(session_id="session-1", **kwargs) -> AssemblyRequest:
    return AssemblyRequest(session_id=session_id, target_key=TARGET, **kwargs)


# =============================================================================
# Ordering
# =============================================================================


class TestOrdering:
    """
    Tests for part ordering.

    Why it matters: chunks arrive in any order and the assembled file must
    still be byte-identical to the original.
    """

    def test_out_of_order_upload_assembles_in_part_order(self, faulty_store):
        receiver = ChunkReceiver(store=faulty_store)
        for part in (3, 1, 2):
            receiver.receive("session-1", part, f"<{part}>".encode())

        result = _service(faulty_store).assemble(_request(expected_parts=3))

        assert result.success
        assert faulty_store.get_object(TARGET) == b"<1><2><3>"
        assert result.data.asset.byte_size == 9

    def test_double_digit_part_numbers(self, faulty_store):
        payloads = [f"[{n}]".encode() for n in range(1, 13)]
        seed_chunks(faulty_store, "session-1", payloads)

        result = _service(faulty_store).assemble(_request())

        assert result.success
        assert faulty_store.get_object(TARGET) == b"".join(payloads)

    def test_last_write_wins(self, faulty_store):
        receiver = ChunkReceiver(store=faulty_store)
        receiver.receive("session-1", 1, b"AAA")
        receiver.receive("session-1", 2, b"stale")
        receiver.receive("session-1", 2, b"BBB")

        result = _service(faulty_store).assemble(_request(expected_parts=2))

        assert result.success
        assert faulty_store.get_object(TARGET) == b"AAABBB"

    def test_ignores_foreign_objects_under_prefix(self, faulty_store, caplog):
        seed_chunks(faulty_store, "session-1", [b"a", b"b"])
        faulty_store.put_object("_chunks/session-1/notes.txt", b"junk")

        with caplog.at_level(logging.WARNING):
            result = _service(faulty_store).assemble(_request(expected_parts=2))

        assert result.success
        assert faulty_store.get_object(TARGET) == b"ab"
        assert any(
            getattr(r, "event_type", None) == "unexpected_chunk_object"
            for r in caplog.records
        )


# =============================================================================
# Completeness
# =============================================================================


class TestCompleteness:
    """
    Tests for chunk count checks.

    Why it matters: a client that lost a chunk must be told so while its
    other chunks are still there to resume from.
    """

    def test_part_count_mismatch(self, faulty_store):
        keys = seed_chunks(faulty_store, "session-1", distinct_payloads(3, 100))

        result = _service(faulty_store).assemble(_request(expected_parts=4))

        assert not result.success
        assert result.error_code == "PART_COUNT_MISMATCH"
        assert result.details == {"expected": 4, "found": 3}
        assert faulty_store.head_object(TARGET) is None
        assert faulty_store.list_keys("_chunks/session-1/") == keys
        assert faulty_store.counts["delete_object"] == 0

    def test_more_chunks_than_expected(self, faulty_store):
        seed_chunks(faulty_store, "session-1", distinct_payloads(5, 100))

        result = _service(faulty_store).assemble(_request(expected_parts=4))

        assert result.error_code == "PART_COUNT_MISMATCH"
        assert result.details == {"expected": 4, "found": 5}

    def test_gap_in_part_numbers(self, faulty_store):
        """Three chunks for three parts is not enough if part 3 is absent."""
        receiver = ChunkReceiver(store=faulty_store)
        for part in (1, 2, 4):
            receiver.receive("session-1", part, bytes([part]))

        result = _service(faulty_store).assemble(_request(expected_parts=3))

        assert not result.success
        assert result.error_code == "PART_COUNT_MISMATCH"
        assert result.details == {"expected": 3, "found": 3, "missing": [3]}
        assert faulty_store.head_object(TARGET) is None
        assert len(faulty_store.list_keys("_chunks/session-1/")) == 3

    def test_no_chunks(self, faulty_store):
        result = _service(faulty_store).assemble(_request(expected_parts=2))

        assert not result.success
        assert result.error_code == "NO_CHUNKS_FOUND"
        assert result.details == {"session_id": "session-1"}
        assert faulty_store.counts["put_object"] == 0

    def test_count_check_skipped_without_expected_parts(self, faulty_store):
        seed_chunks(faulty_store, "session-1", distinct_payloads(2, 10))

        result = _service(faulty_store).assemble(_request())

        assert result.success

    def test_sessions_are_isolated(self, faulty_store):
        seed_chunks(faulty_store, "session-1", [b"one"])
        seed_chunks(faulty_store, "session-10", [b"ten"])

        result = _service(faulty_store).assemble(_request(expected_parts=1))

        assert result.success
        assert faulty_store.get_object(TARGET) == b"one"
        assert faulty_store.list_keys("_chunks/session-10/") == [chunk_key("session-10", 1)]


# =============================================================================
# Strategies
# =============================================================================


class TestStrategySelection:
    """Tests for the end-to-end size scenarios."""

    def test_small_file_uses_single_write(self, faulty_store):
        """Three 4 MB chunks under a 16 MB threshold are assembled in one write."""
        payloads = distinct_payloads(3, 4 * MB)
        seed_chunks(faulty_store, "session-1", payloads)

        result = _service(faulty_store, simple_threshold=16 * MB).assemble(
            _request(expected_parts=3)
        )

        assert result.success
        assert result.data.asset.strategy == "concat"
        assert result.data.asset.byte_size == 12 * MB
        assert faulty_store.counts["create_multipart_upload"] == 0
        assert faulty_store.get_object(TARGET) == b"".join(payloads)
        assert faulty_store.list_keys("_chunks/session-1/") == []

    def test_large_file_uses_multipart(self, faulty_store):
        """Five 3 MB chunks with default settings stream through multipart."""
        payloads = distinct_payloads(5, 3 * MB)
        seed_chunks(faulty_store, "session-1", payloads)

        result = _service(faulty_store).assemble(_request(expected_parts=5))

        assert result.success
        assert result.data.asset.strategy == "multipart"
        assert result.data.asset.byte_size == 15 * MB
        assert faulty_store.uploaded_part_sizes == [6 * MB, 6 * MB, 3 * MB]
        assert faulty_store.get_object(TARGET) == b"".join(payloads)
        assert faulty_store.list_keys("_chunks/session-1/") == []
        assert faulty_store.list_multipart_uploads() == []

    def test_declared_size_drives_selection(self, faulty_store):
        seed_chunks(faulty_store, "session-1", distinct_payloads(2, 100))

        result = _service(
            faulty_store, simple_threshold=1000, min_part_size=150
        ).assemble(_request(declared_size=5000))

        assert result.data.asset.strategy == "multipart"

    def test_asset_metadata(self, faulty_store):
        seed_chunks(faulty_store, "session-1", [b"abc"])

        result = _service(faulty_store).assemble(
            _request(content_type="audio/mpeg", original_filename="Shiur.mp3")
        )

        asset = result.data.asset
        assert asset.final_key == TARGET
        assert asset.content_type == "audio/mpeg"
        assert asset.codec == "mp3"
        assert asset.public_url == f"/api/v1/uploads/stream/{TARGET}"
        assert result.data.recorded is False
        assert result.data.warning is None


# =============================================================================
# Failure Handling
# =============================================================================


class TestFailureHandling:
    """
    Tests for storage failures during assembly.

    Why it matters: a failed assembly must not leave orphaned multipart
    parts or chunks behind; the client restarts the upload.
    """

    def test_multipart_failure_aborts_and_cleans_up(self, faulty_store):
        seed_chunks(faulty_store, "session-1", distinct_payloads(6, 600))
        faulty_store.fail_on["upload_part"] = 2

        result = _service(
            faulty_store, simple_threshold=1000, min_part_size=1000
        ).assemble(_request(expected_parts=6))

        assert not result.success
        assert result.error_code == "STORAGE_FAILURE"
        assert faulty_store.counts["abort_multipart_upload"] == 1
        assert faulty_store.list_parts(TARGET, faulty_store.last_upload_id) == []
        assert faulty_store.head_object(TARGET) is None
        assert faulty_store.list_keys("_chunks/session-1/") == []

    def test_single_write_failure_cleans_up(self, faulty_store):
        seed_chunks(faulty_store, "session-1", distinct_payloads(3, 100))
        faulty_store.fail_on["put_object"] = faulty_store.counts["put_object"] + 1

        result = _service(faulty_store, simple_threshold=16 * MB).assemble(
            _request(expected_parts=3)
        )

        assert result.error_code == "STORAGE_FAILURE"
        assert result.details["operation"] == "put_object"
        assert faulty_store.head_object(TARGET) is None
        assert faulty_store.list_keys("_chunks/session-1/") == []

    def test_filesystem_error_is_reported_as_storage_failure(self, faulty_store):
        seed_chunks(faulty_store, "session-1", distinct_payloads(3, 100))
        # Multipart bookkeeping cannot create its directory under a plain file
        (faulty_store.root / ".multipart").write_bytes(b"")

        result = _service(faulty_store, simple_threshold=100).assemble(
            _request(expected_parts=3)
        )

        assert not result.success
        assert result.error_code == "STORAGE_FAILURE"
        assert result.details["operation"] == "create_multipart_upload"
        assert faulty_store.head_object(TARGET) is None
        assert faulty_store.list_keys("_chunks/session-1/") == []

    def test_unexpected_error_is_reported_as_storage_failure(
        self, faulty_store, caplog
    ):
        """
        Errors outside the storage error types still end as a failed result.

        Why it matters: the view must answer with an error payload, not a 500.
        """
        seed_chunks(faulty_store, "session-1", distinct_payloads(2, 10))

        with patch.object(
            faulty_store, "get_object", side_effect=RuntimeError("disk gone")
        ), caplog.at_level(logging.ERROR):
            result = _service(faulty_store, simple_threshold=16 * MB).assemble(
                _request(expected_parts=2)
            )

        assert not result.success
        assert result.error_code == "STORAGE_FAILURE"
        assert result.error == "disk gone"
        assert "Assembly of session-1 failed" in caplog.text
        assert faulty_store.list_keys("_chunks/session-1/") == []
        assert not SessionLease("session-1").is_held()

    def test_deadline_aborts_and_cleans_up(self, faulty_store):
        seed_chunks(faulty_store, "session-1", distinct_payloads(6, 600))
        clock = {"now": 0.0}
        original_upload_part = faulty_store.upload_part

        def slow_upload_part(*args, **kwargs):
            etag = original_upload_part(*args, **kwargs)
            clock["now"] += 120
            return etag

        faulty_store.upload_part = slow_upload_part

        with patch(
            "uploads.services.assembler.Deadline",
            lambda seconds: Deadline(seconds, clock=lambda: clock["now"]),
        ):
            result = _service(
                faulty_store,
                simple_threshold=1000,
                min_part_size=1000,
                timeout_seconds=60,
            ).assemble(_request(expected_parts=6))

        assert not result.success
        assert result.error_code == "ASSEMBLY_TIMEOUT"
        assert result.details == {"timeout_seconds": 60}
        assert faulty_store.list_multipart_uploads() == []
        assert faulty_store.head_object(TARGET) is None
        assert faulty_store.list_keys("_chunks/session-1/") == []

    def test_cleanup_failure_does_not_fail_assembly(self, faulty_store):
        keys = seed_chunks(faulty_store, "session-1", distinct_payloads(3, 100))
        faulty_store.fail_keys.add(keys[0])

        result = _service(faulty_store, simple_threshold=16 * MB).assemble(
            _request(expected_parts=3)
        )

        assert result.success
        cleanup = result.data.cleanup
        assert cleanup.deleted == 2
        assert cleanup.failed == [keys[0]]
        assert not cleanup.complete

    def test_invalid_request_touches_nothing(self, faulty_store):
        result = _service(faulty_store).assemble(
            AssemblyRequest(session_id="session-1", target_key="../outside.mp3")
        )

        assert result.error_code == "VALIDATION_ERROR"
        assert result.details == {"field": "target_key"}
        assert faulty_store.calls == []

    @pytest.mark.parametrize(
        "overrides,field",
        [
            ({"session_id": "bad id"}, "session_id"),
            ({"target_key": " "}, "target_key"),
            ({"content_type": ""}, "content_type"),
            ({"expected_parts": 0}, "expected_parts"),
            ({"declared_size": -1}, "declared_size"),
        ],
    )
    def test_validation(self, faulty_store, overrides, field):
        values = {"session_id": "session-1", "target_key": TARGET}
        values.update(overrides)

        result = _service(faulty_store).assemble(AssemblyRequest(**values))

        assert result.error_code == "VALIDATION_ERROR"
        assert result.details["field"] == field


# =============================================================================
# Lease
# =============================================================================


class TestLease:
    """
    Tests for concurrent completion of one session.

    Why it matters: two completions racing on one session would both write
    the target and delete each other's chunks.
    """

    def test_held_lease_rejects_assembly(self, faulty_store):
        keys = seed_chunks(faulty_store, "session-1", distinct_payloads(2, 10))
        other = SessionLease("session-1")
        assert other.acquire()

        result = _service(faulty_store).assemble(_request(expected_parts=2))

        assert not result.success
        assert result.error_code == "ASSEMBLY_IN_PROGRESS"
        assert faulty_store.list_keys("_chunks/session-1/") == keys
        assert faulty_store.head_object(TARGET) is None
        other.release()

    def test_lease_released_after_success(self, faulty_store):
        seed_chunks(faulty_store, "session-1", [b"x"])

        _service(faulty_store).assemble(_request())

        assert cache.get(SessionLease("session-1").cache_key) is None

    def test_lease_released_after_failure(self, faulty_store):
        _service(faulty_store).assemble(_request())

        assert cache.get(SessionLease("session-1").cache_key) is None

    def test_other_sessions_not_blocked(self, faulty_store):
        seed_chunks(faulty_store, "session-2", [b"x"])
        other = SessionLease("session-1")
        other.acquire()

        result = _service(faulty_store).assemble(_request(session_id="session-2"))

        assert result.success
        other.release()


# =============================================================================
# Cleanup
# =============================================================================


class TestCleanupChunks:
    """Tests for cleanup_chunks()."""

    def test_deletes_session_chunks_only(self, faulty_store):
        seed_chunks(faulty_store, "session-1", distinct_payloads(3, 10))
        seed_chunks(faulty_store, "session-2", distinct_payloads(1, 10))

        report = cleanup_chunks(faulty_store, "session-1")

        assert report.deleted == 3
        assert report.complete
        assert faulty_store.list_keys("_chunks/") == [chunk_key("session-2", 1)]

    def test_outcome_serializes(self, faulty_store):
        seed_chunks(faulty_store, "session-1", [b"x"])

        outcome = _service(faulty_store).assemble(_request()).data.to_dict()

        assert outcome["asset"]["final_key"] == TARGET
        assert outcome["cleanup"] == {"deleted": 1, "failed": [], "errors": []}

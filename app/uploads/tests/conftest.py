"""
Test fixtures for upload tests.

Provides fixtures for:
- Filesystem chunk stores rooted in tmp_path
- A store that records calls and fails on demand
- Lessons to record assembled audio on
- Mock boto3 clients
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import MagicMock

import pytest

from lessons.tests.factories import LessonFactory
from uploads.storage import get_chunk_store, reset_chunk_store
from uploads.storage.local import LocalChunkStore
from uploads.tests.helpers import FaultInjectingStore

if TYPE_CHECKING:
    from lessons.models import Lesson


# =============================================================================
# Store Fixtures
# =============================================================================


@pytest.fixture
def local_store(tmp_path) -> LocalChunkStore:
    """Plain filesystem store in a temp directory."""
    return LocalChunkStore(tmp_path / "store")


@pytest.fixture
def faulty_store(tmp_path) -> FaultInjectingStore:
    """Recording store that fails operations on demand."""
    return FaultInjectingStore(tmp_path / "faulty")


@pytest.fixture
def configured_store(settings, tmp_path):
    """Point the process-wide chunk store at a temp directory."""
    settings.UPLOAD_STORAGE_BACKEND = "local"
    settings.UPLOAD_LOCAL_ROOT = str(tmp_path / "configured")
    reset_chunk_store()
    yield get_chunk_store()
    reset_chunk_store()


# =============================================================================
# Chunk Fixtures
# =============================================================================


@pytest.fixture
def small_payloads() -> list[bytes]:
    """Three short, distinguishable chunks."""
    return [b"first-", b"second-", b"third"]


# =============================================================================
# Catalog Fixtures
# =============================================================================


@pytest.fixture
def lesson(db) -> "Lesson":
    """A lesson to attach assembled audio to."""
    return LessonFactory(title="Parashat Noach")


# =============================================================================
# S3 Fixtures
# =============================================================================


@pytest.fixture
def mock_s3_client():
    """Create a mock boto3 S3 client."""
    client = MagicMock()

    # Default successful responses
    client.create_multipart_upload.return_value = {"UploadId": "mock-upload-id-12345"}
    client.upload_part.return_value = {"ETag": '"part-etag"'}
    client.generate_presigned_url.return_value = (
        "https://bucket.r2.example.com/audio/file.mp3?X-Amz-Signature=abc"
    )
    client.complete_multipart_upload.return_value = {"ETag": '"final-etag"'}
    client.abort_multipart_upload.return_value = {}
    client.delete_objects.return_value = {}

    return client

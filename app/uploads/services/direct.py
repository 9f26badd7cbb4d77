"""
Direct upload: stores a whole file in one request, without chunking.

Small recordings fit in a single request body, so the client can skip the
chunk and assemble round trips. The stored object lands at the same kind of
key and goes through the same catalog recording as an assembled upload.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings

from core.services import BaseService, ServiceResult
from uploads.exceptions import InvalidUploadRequest, StorageFailure
from uploads.keys import detect_codec, file_extension, public_stream_url
from uploads.services.assembler import (
    DEFAULT_CONTENT_TYPE,
    AssembledObject,
    AssemblyOutcome,
)
from uploads.services.recorder import LessonAssetRecorder
from uploads.storage import get_chunk_store

if TYPE_CHECKING:
    from uploads.services.recorder import AssetRecorder
    from uploads.storage.base import ChunkStore


@dataclass
class DirectUploadRequest:
    """
    A whole file to store and record.

    Attributes:
        target_key: Object key to store the file under
        content_type: Content type stored with the file
        owner_id: Lesson the file belongs to (None skips catalog recording)
        original_filename: File name as chosen by the user
        sort_order: Position of the file within the lesson
    """

    target_key: str
    content_type: str = DEFAULT_CONTENT_TYPE
    owner_id: str | None = None
    original_filename: str | None = None
    sort_order: int = 0


class DirectUploadService(BaseService):
    """Stores single-request uploads and records them on their lesson."""

    def __init__(
        self,
        store: ChunkStore | None = None,
        recorder: AssetRecorder | None = None,
        max_size: int | None = None,
    ):
        self.store = store or get_chunk_store()
        self.recorder = recorder or LessonAssetRecorder()
        self.max_size = max_size or getattr(
            settings, "UPLOAD_MAX_CHUNK_SIZE_BYTES", 50 * 1024 * 1024
        )

    def validate(self, request: DirectUploadRequest, data) -> None:
        target = request.target_key
        if not isinstance(target, str) or not target.strip():
            raise InvalidUploadRequest(
                "Target key is required.", details={"field": "target_key"}
            )
        if ".." in target or target.startswith("/"):
            raise InvalidUploadRequest(
                "Target key is not a valid object key.",
                details={"field": "target_key"},
            )
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise InvalidUploadRequest(
                "File data must be binary.", details={"field": "file"}
            )
        if len(data) > self.max_size:
            raise InvalidUploadRequest(
                f"File exceeds the maximum size of {self.max_size} bytes. "
                "Use a chunked upload instead.",
                details={"field": "file", "max_size": self.max_size},
            )

    def upload(
        self, request: DirectUploadRequest, data: bytes
    ) -> ServiceResult[AssemblyOutcome]:
        """
        Store a whole file and record it.

        Returns:
            ServiceResult containing an AssemblyOutcome with strategy
            "direct", or a VALIDATION_ERROR / STORAGE_FAILURE failure.
        """
        logger = self.get_logger()

        try:
            self.validate(request, data)
        except InvalidUploadRequest as e:
            return self.application_failure(e)

        content_type = request.content_type or DEFAULT_CONTENT_TYPE
        try:
            self.store.put_object(request.target_key, data, content_type=content_type)
        except StorageFailure as e:
            logger.error(
                f"Direct upload to {request.target_key} failed: {e}",
                extra={"event_type": "direct_upload_failed", "key": request.target_key},
            )
            return self.application_failure(e)

        asset = AssembledObject(
            final_key=request.target_key,
            byte_size=len(data),
            content_type=content_type,
            codec=detect_codec(content_type, file_extension(request.target_key)),
            strategy="direct",
            public_url=public_stream_url(request.target_key),
        )
        record = self.recorder.record(asset, request)

        logger.info(
            f"Stored direct upload {asset.final_key} ({asset.byte_size} bytes)",
            extra={
                "event_type": "direct_upload_completed",
                "key": asset.final_key,
                "size": asset.byte_size,
                "recorded": record.recorded,
            },
        )
        return ServiceResult.success(
            AssemblyOutcome(
                asset=asset,
                recorded=record.recorded,
                warning=record.warning,
                audio_record_id=record.record_id,
            )
        )

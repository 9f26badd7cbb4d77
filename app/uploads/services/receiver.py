"""
Chunk receiver: stores one chunk of an upload session.

Receiving is stateless. Each call writes exactly one object at the chunk's
key, overwriting any previous copy, so a client may retry a chunk freely and
send chunks in any order or in parallel. Completeness is only checked when
the client asks for assembly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings

from core.services import BaseService, ServiceResult
from uploads.exceptions import InvalidUploadRequest, StorageFailure
from uploads.keys import MAX_PART_NUMBER, chunk_key, is_valid_session_id
from uploads.storage import get_chunk_store

if TYPE_CHECKING:
    from uploads.storage.base import ChunkStore


@dataclass
class ReceivedChunk:
    """
    Acknowledgement of a stored chunk.

    Attributes:
        part_number: Part number the chunk was stored under
        stored_size: Number of bytes written
        stored_key: Object key of the chunk
    """

    part_number: int
    stored_size: int
    stored_key: str


class ChunkReceiver(BaseService):
    """Accepts individual chunks and writes them to the chunk store."""

    def __init__(self, store: ChunkStore | None = None, max_chunk_size: int | None = None):
        self.store = store or get_chunk_store()
        self.max_chunk_size = max_chunk_size or getattr(
            settings, "UPLOAD_MAX_CHUNK_SIZE_BYTES", 50 * 1024 * 1024
        )

    def validate(self, session_id, part_number, data) -> None:
        """
        Check a chunk before anything touches storage.

        Raises:
            InvalidUploadRequest: On a malformed session id, part number or payload
        """
        if not is_valid_session_id(session_id):
            raise InvalidUploadRequest(
                "Invalid upload id.", details={"field": "session_id"}
            )
        if (
            isinstance(part_number, bool)
            or not isinstance(part_number, int)
            or not 1 <= part_number <= MAX_PART_NUMBER
        ):
            raise InvalidUploadRequest(
                f"Part number must be between 1 and {MAX_PART_NUMBER}.",
                details={"field": "part_number"},
            )
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise InvalidUploadRequest(
                "Chunk data must be binary.", details={"field": "chunk"}
            )
        if len(data) > self.max_chunk_size:
            raise InvalidUploadRequest(
                f"Chunk exceeds the maximum size of {self.max_chunk_size} bytes.",
                details={"field": "chunk", "max_size": self.max_chunk_size},
            )

    def receive(
        self, session_id: str, part_number: int, data: bytes
    ) -> ServiceResult[ReceivedChunk]:
        """
        Store one chunk.

        Args:
            session_id: Caller-generated upload id
            part_number: 1-based position of the chunk
            data: Chunk payload

        Returns:
            ServiceResult containing the ReceivedChunk acknowledgement, or a
            VALIDATION_ERROR / STORAGE_FAILURE failure.
        """
        logger = self.get_logger()

        try:
            self.validate(session_id, part_number, data)
        except InvalidUploadRequest as e:
            return self.application_failure(e)

        key = chunk_key(session_id, part_number)
        try:
            self.store.put_object(
                key, bytes(data), content_type="application/octet-stream"
            )
        except StorageFailure as e:
            logger.error(
                f"Failed to store chunk {part_number} of {session_id}: {e}",
                extra={
                    "event_type": "chunk_receive_failed",
                    "session_id": session_id,
                    "part_number": part_number,
                },
            )
            return self.application_failure(e)

        logger.debug(
            f"Stored chunk {part_number} of {session_id} ({len(data)} bytes)",
            extra={
                "event_type": "chunk_received",
                "session_id": session_id,
                "part_number": part_number,
                "size": len(data),
            },
        )
        return ServiceResult.success(
            ReceivedChunk(
                part_number=part_number,
                stored_size=len(data),
                stored_key=key,
            )
        )

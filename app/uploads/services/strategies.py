"""
Reconstruction strategies for assembling chunks into one object.

Both strategies take the same inputs and leave the store in the same state
on success: one object at target_key whose bytes are the chunks
concatenated in part order. They differ only in memory profile:

- ConcatStrategy: reads every chunk into one buffer and writes once.
  O(file size) memory, two round trips per chunk. Used for small files.
- MultipartStrategy: streams chunks into a multipart upload, holding at
  most one minimum-size part plus one chunk (and one prefetched chunk).
  Used for files at or above the single-write threshold.

Which one ran is never visible to callers beyond the logs.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING

from uploads.exceptions import StorageFailure
from uploads.storage.base import MultipartPart

if TYPE_CHECKING:
    from uploads.services.deadline import Deadline
    from uploads.storage.base import ChunkStore

logger = logging.getLogger(__name__)

MIN_PART_SIZE = 5 * 1024 * 1024


@dataclass
class ReconstructionResult:
    """
    Outcome of a successful reconstruction.

    Attributes:
        byte_size: Size of the assembled object
        part_count: Number of writes (1 for the single-write path)
    """

    byte_size: int
    part_count: int


class ReconstructionStrategy(ABC):
    """Turns an ordered list of chunk keys into one object."""

    name: str = ""

    @abstractmethod
    def reconstruct(
        self,
        store: ChunkStore,
        chunk_keys: list[str],
        target_key: str,
        content_type: str,
        deadline: Deadline,
    ) -> ReconstructionResult:
        """
        Assemble chunk_keys, in the given order, into target_key.

        Raises:
            StorageFailure: On any store error or when the deadline expires.
                No partial object is left at target_key.
        """


class ConcatStrategy(ReconstructionStrategy):
    """Download all chunks into memory and write the result in one request."""

    name = "concat"

    def reconstruct(self, store, chunk_keys, target_key, content_type, deadline):
        buffer = bytearray()
        for key in chunk_keys:
            deadline.check()
            buffer.extend(store.get_object(key))

        deadline.check()
        store.put_object(target_key, buffer, content_type=content_type)
        return ReconstructionResult(byte_size=len(buffer), part_count=1)


class MultipartStrategy(ReconstructionStrategy):
    """
    Stream chunks into a multipart upload with a bounded accumulator.

    Each chunk is deleted as soon as it has been copied into the accumulator.
    The accumulator is flushed as a part once it reaches min_part_size, and
    unconditionally after the last chunk, so every part but the last meets
    the backend's minimum part size.

    On any failure the multipart upload is aborted before the error is
    re-raised, so no orphaned parts keep accruing storage cost.

    Attributes:
        peak_buffer_size: Largest accumulator size seen during the last run
    """

    name = "multipart"

    def __init__(self, min_part_size: int = MIN_PART_SIZE, prefetch: bool = True):
        self.min_part_size = min_part_size
        self.prefetch = prefetch
        self.peak_buffer_size = 0

    def reconstruct(self, store, chunk_keys, target_key, content_type, deadline):
        deadline.check()
        upload_id = store.create_multipart_upload(target_key, content_type)

        try:
            parts, total = self._stream_parts(
                store, chunk_keys, target_key, upload_id, deadline
            )
            deadline.check()
            store.complete_multipart_upload(target_key, upload_id, parts)
        except Exception:
            self._abort(store, target_key, upload_id)
            raise

        return ReconstructionResult(byte_size=total, part_count=len(parts))

    def _stream_parts(self, store, chunk_keys, target_key, upload_id, deadline):
        parts: list[MultipartPart] = []
        buffer = bytearray()
        total = 0
        self.peak_buffer_size = 0
        last_index = len(chunk_keys) - 1

        executor = ThreadPoolExecutor(max_workers=1) if self.prefetch else None
        pending = None
        try:
            if executor is not None:
                pending = executor.submit(store.get_object, chunk_keys[0])

            for index, key in enumerate(chunk_keys):
                is_last = index == last_index
                deadline.check()
                data = pending.result() if pending is not None else store.get_object(key)

                # Fetch the next chunk while this one is appended and uploaded
                pending = None
                if executor is not None and not is_last:
                    pending = executor.submit(store.get_object, chunk_keys[index + 1])

                buffer.extend(data)
                total += len(data)
                self.peak_buffer_size = max(self.peak_buffer_size, len(buffer))
                self._delete_chunk(store, key)

                if len(buffer) >= self.min_part_size or is_last:
                    deadline.check()
                    part_number = len(parts) + 1
                    etag = store.upload_part(
                        target_key, upload_id, part_number, bytes(buffer)
                    )
                    parts.append(
                        MultipartPart(part_number=part_number, etag=etag, size=len(buffer))
                    )
                    logger.debug(
                        f"Uploaded part {part_number} of {target_key} ({len(buffer)} bytes)",
                        extra={
                            "event_type": "multipart_part_uploaded",
                            "key": target_key,
                            "part_number": part_number,
                            "size": len(buffer),
                        },
                    )
                    buffer = bytearray()
        finally:
            if executor is not None:
                if pending is not None:
                    pending.cancel()
                executor.shutdown(wait=True)

        return parts, total

    @staticmethod
    def _delete_chunk(store, key: str) -> None:
        try:
            store.delete_object(key)
        except StorageFailure as e:
            logger.warning(
                f"Failed to delete chunk {key} during assembly: {e}",
                extra={"event_type": "chunk_cleanup_failed", "key": key},
            )

    @staticmethod
    def _abort(store, target_key: str, upload_id: str) -> None:
        try:
            store.abort_multipart_upload(target_key, upload_id)
            logger.warning(
                f"Aborted multipart upload {upload_id} for {target_key}",
                extra={
                    "event_type": "multipart_aborted",
                    "key": target_key,
                    "upload_id": upload_id,
                },
            )
        except StorageFailure as e:
            logger.error(
                f"Failed to abort multipart upload {upload_id} for {target_key}: {e}",
                extra={
                    "event_type": "multipart_abort_failed",
                    "key": target_key,
                    "upload_id": upload_id,
                },
            )


def estimate_total_size(
    declared_size: int | None, chunk_count: int, nominal_chunk_size: int
) -> int:
    """
    Size used to pick a strategy.

    The declared size wins when the client sent one; otherwise every chunk
    is assumed to be of nominal size.
    """
    if declared_size:
        return declared_size
    return int(chunk_count * nominal_chunk_size)


def select_strategy(
    estimated_size: int,
    threshold: int,
    min_part_size: int = MIN_PART_SIZE,
    prefetch: bool = True,
) -> ReconstructionStrategy:
    """Single write below the threshold, multipart at or above it."""
    if estimated_size < threshold:
        return ConcatStrategy()
    return MultipartStrategy(min_part_size=min_part_size, prefetch=prefetch)

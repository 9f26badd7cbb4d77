"""
Chunk assembly: turns a session's stored chunks into one durable object.

Flow for one completion request:
1. Validate the request (caller errors never touch storage)
2. Take the per-session lease
3. List the session's chunks; none -> NoChunksFound, wrong count ->
   PartCountMismatch (nothing written, chunks kept for the client)
4. Pick a reconstruction strategy from the estimated size and run it
5. Delete whatever chunks remain, after success and after failure alike
6. Record the object in the catalog (failures become a warning)

Usage:
    from uploads.services import AssemblyRequest, ChunkAssemblyService

    service = ChunkAssemblyService()
    result = service.assemble(
        AssemblyRequest(
            session_id="a1b2c3",
            target_key="audio/<lesson_id>/0_1700000000000.mp3",
            expected_parts=4,
            owner_id=lesson_id,
            original_filename="shiur.mp3",
        )
    )
    if result.success:
        outcome = result.data
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING

from django.conf import settings

from core.services import BaseService, ServiceResult
from uploads.exceptions import (
    AssemblyInProgress,
    InvalidUploadRequest,
    NoChunksFound,
    PartCountMismatch,
    StorageFailure,
)
from uploads.keys import (
    MAX_PART_NUMBER,
    chunk_prefix,
    detect_codec,
    file_extension,
    is_valid_session_id,
    part_number_from_key,
    public_stream_url,
)
from uploads.services.deadline import Deadline
from uploads.services.lease import SessionLease
from uploads.services.recorder import LessonAssetRecorder
from uploads.services.strategies import estimate_total_size, select_strategy
from uploads.storage import get_chunk_store

if TYPE_CHECKING:
    from uploads.services.recorder import AssetRecorder
    from uploads.storage.base import ChunkStore

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "audio/mpeg"


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class AssemblyRequest:
    """
    A request to assemble one upload session.

    Attributes:
        session_id: Caller-generated upload id the chunks were stored under
        target_key: Object key of the assembled file
        content_type: Content type stored with the assembled file
        expected_parts: Number of chunks the client sent, if it says
        declared_size: Total size the client announced, in bytes
        owner_id: Lesson the file belongs to (None skips catalog recording)
        original_filename: File name as chosen by the user
        sort_order: Position of the file within the lesson
    """

    session_id: str
    target_key: str
    content_type: str = DEFAULT_CONTENT_TYPE
    expected_parts: int | None = None
    declared_size: int | None = None
    owner_id: str | None = None
    original_filename: str | None = None
    sort_order: int = 0


@dataclass
class AssembledObject:
    """The durable object produced by an assembly."""

    final_key: str
    byte_size: int
    content_type: str
    codec: str
    strategy: str
    public_url: str


@dataclass
class CleanupReport:
    """
    What chunk cleanup managed to delete.

    Cleanup never fails an assembly; keys it could not delete are listed
    here and left for the orphan sweep.
    """

    deleted: int = 0
    failed: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed and not self.errors


@dataclass
class AssemblyOutcome:
    """
    Result of a successful assembly.

    Attributes:
        asset: The assembled object
        recorded: Whether the catalog row was written
        warning: Message for the client when recording failed
        audio_record_id: Id of the LessonAudio row, when recorded
        cleanup: Chunk cleanup report
    """

    asset: AssembledObject
    recorded: bool
    warning: str | None = None
    audio_record_id: str | None = None
    cleanup: CleanupReport = field(default_factory=CleanupReport)

    def to_dict(self) -> dict:
        return asdict(self)


# =============================================================================
# Cleanup
# =============================================================================


def cleanup_chunks(store: ChunkStore, session_id: str) -> CleanupReport:
    """
    Delete every chunk still stored for a session.

    Failures are collected into the report and logged, never raised.
    """
    report = CleanupReport()
    prefix = chunk_prefix(session_id)

    try:
        keys = store.list_keys(prefix)
    except StorageFailure as e:
        report.errors.append(e.message)
        logger.warning(
            f"Could not list chunks of {session_id} for cleanup: {e}",
            extra={"event_type": "chunk_cleanup_failed", "session_id": session_id},
        )
        return report

    for key in keys:
        try:
            store.delete_object(key)
            report.deleted += 1
        except StorageFailure as e:
            report.failed.append(key)
            report.errors.append(e.message)
            logger.warning(
                f"Failed to delete chunk {key}: {e}",
                extra={
                    "event_type": "chunk_cleanup_failed",
                    "session_id": session_id,
                    "key": key,
                },
            )
    return report


# =============================================================================
# Service
# =============================================================================


class ChunkAssemblyService(BaseService):
    """
    Assembles upload sessions into durable objects.

    All tuning knobs default to the UPLOAD_* settings and can be overridden
    per instance (tests use small thresholds to exercise both strategies).
    """

    def __init__(
        self,
        store: ChunkStore | None = None,
        recorder: AssetRecorder | None = None,
        simple_threshold: int | None = None,
        min_part_size: int | None = None,
        nominal_chunk_size: int | None = None,
        timeout_seconds: float | None = None,
        lease_seconds: int | None = None,
        prefetch: bool = True,
    ):
        self.store = store or get_chunk_store()
        self.recorder = recorder or LessonAssetRecorder()
        self.simple_threshold = simple_threshold or getattr(
            settings, "UPLOAD_SIMPLE_THRESHOLD_BYTES", 10 * 1024 * 1024
        )
        self.min_part_size = min_part_size or getattr(
            settings, "UPLOAD_MIN_PART_SIZE_BYTES", 5 * 1024 * 1024
        )
        self.nominal_chunk_size = nominal_chunk_size or getattr(
            settings, "UPLOAD_NOMINAL_CHUNK_SIZE_BYTES", int(3.5 * 1024 * 1024)
        )
        self.timeout_seconds = (
            timeout_seconds
            if timeout_seconds is not None
            else getattr(settings, "UPLOAD_ASSEMBLY_TIMEOUT_SECONDS", 300)
        )
        self.lease_seconds = lease_seconds
        self.prefetch = prefetch

    @staticmethod
    def validate(request: AssemblyRequest) -> None:
        """
        Raises:
            InvalidUploadRequest: If the request is malformed
        """
        if not is_valid_session_id(request.session_id):
            raise InvalidUploadRequest(
                "Invalid upload id.", details={"field": "session_id"}
            )
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
        if not isinstance(request.content_type, str) or not request.content_type:
            raise InvalidUploadRequest(
                "Content type is required.", details={"field": "content_type"}
            )
        if request.expected_parts is not None and (
            not isinstance(request.expected_parts, int)
            or not 1 <= request.expected_parts <= MAX_PART_NUMBER
        ):
            raise InvalidUploadRequest(
                f"Total parts must be between 1 and {MAX_PART_NUMBER}.",
                details={"field": "expected_parts"},
            )
        if request.declared_size is not None and (
            not isinstance(request.declared_size, int) or request.declared_size < 0
        ):
            raise InvalidUploadRequest(
                "File size cannot be negative.", details={"field": "declared_size"}
            )

    def assemble(self, request: AssemblyRequest) -> ServiceResult[AssemblyOutcome]:
        """
        Assemble a session's chunks into request.target_key.

        Args:
            request: What to assemble and where to put it

        Returns:
            ServiceResult containing the AssemblyOutcome, or a failure with
            one of VALIDATION_ERROR, ASSEMBLY_IN_PROGRESS, NO_CHUNKS_FOUND,
            PART_COUNT_MISMATCH, STORAGE_FAILURE, ASSEMBLY_TIMEOUT.
        """
        logger = self.get_logger()

        try:
            self.validate(request)
        except InvalidUploadRequest as e:
            return self.application_failure(e)

        deadline = Deadline(self.timeout_seconds)
        try:
            with SessionLease(request.session_id, ttl=self.lease_seconds):
                asset, cleanup = self._assemble_locked(request, deadline)
        except (AssemblyInProgress, NoChunksFound, PartCountMismatch) as e:
            logger.info(
                f"Assembly of {request.session_id} rejected: {e}",
                extra={
                    "event_type": "assembly_failed",
                    "session_id": request.session_id,
                    "error_code": e.error_code,
                },
            )
            return self.application_failure(e)
        except StorageFailure as e:
            logger.error(
                f"Assembly of {request.session_id} failed: {e}",
                extra={
                    "event_type": "assembly_failed",
                    "session_id": request.session_id,
                    "error_code": e.error_code,
                },
            )
            return self.application_failure(e)
        except Exception as e:
            return self.handle_exception(
                e,
                f"Assembly of {request.session_id} failed",
                error_code="STORAGE_FAILURE",
            )

        record = self.recorder.record(asset, request)

        logger.info(
            f"Assembled {request.session_id} into {asset.final_key} "
            f"({asset.byte_size} bytes, {asset.strategy})",
            extra={
                "event_type": "assembly_completed",
                "session_id": request.session_id,
                "key": asset.final_key,
                "size": asset.byte_size,
                "strategy": asset.strategy,
                "recorded": record.recorded,
                "chunks_left": len(cleanup.failed),
            },
        )

        return ServiceResult.success(
            AssemblyOutcome(
                asset=asset,
                recorded=record.recorded,
                warning=record.warning,
                audio_record_id=record.record_id,
                cleanup=cleanup,
            )
        )

    def _list_chunks(self, session_id: str, expected_parts: int | None) -> list[str]:
        """Ordered chunk keys of a session, after the completeness check."""
        keys = []
        for key in self.store.list_keys(chunk_prefix(session_id)):
            try:
                part_number_from_key(key)
            except ValueError:
                self.get_logger().warning(
                    f"Ignoring unexpected object {key} under chunk prefix",
                    extra={"event_type": "unexpected_chunk_object", "session_id": session_id},
                )
                continue
            keys.append(key)

        if not keys:
            raise NoChunksFound(session_id)
        if expected_parts is not None:
            if len(keys) != expected_parts:
                raise PartCountMismatch(expected=expected_parts, found=len(keys))
            # Right count but a gap, e.g. parts 1, 2, 4 of 3
            present = {part_number_from_key(key) for key in keys}
            missing = sorted(set(range(1, expected_parts + 1)) - present)
            if missing:
                raise PartCountMismatch(
                    expected=expected_parts, found=len(keys), missing=missing
                )

        return sorted(keys, key=part_number_from_key)

    def _assemble_locked(
        self, request: AssemblyRequest, deadline: Deadline
    ) -> tuple[AssembledObject, CleanupReport]:
        logger = self.get_logger()
        session_id = request.session_id

        logger.info(
            f"Assembling upload {session_id} into {request.target_key}",
            extra={
                "event_type": "assembly_started",
                "session_id": session_id,
                "key": request.target_key,
            },
        )

        deadline.check()
        keys = self._list_chunks(session_id, request.expected_parts)

        estimated = estimate_total_size(
            request.declared_size, len(keys), self.nominal_chunk_size
        )
        strategy = select_strategy(
            estimated,
            self.simple_threshold,
            min_part_size=self.min_part_size,
            prefetch=self.prefetch,
        )
        logger.info(
            f"Using {strategy.name} strategy for {session_id} "
            f"({len(keys)} chunks, ~{estimated} bytes)",
            extra={
                "event_type": "assembly_strategy_selected",
                "session_id": session_id,
                "strategy": strategy.name,
                "chunk_count": len(keys),
                "estimated_size": estimated,
            },
        )

        try:
            result = strategy.reconstruct(
                self.store, keys, request.target_key, request.content_type, deadline
            )
        except Exception:
            cleanup_chunks(self.store, session_id)
            raise

        cleanup = cleanup_chunks(self.store, session_id)

        asset = AssembledObject(
            final_key=request.target_key,
            byte_size=result.byte_size,
            content_type=request.content_type,
            codec=detect_codec(request.content_type, file_extension(request.target_key)),
            strategy=strategy.name,
            public_url=public_stream_url(request.target_key),
        )
        return asset, cleanup

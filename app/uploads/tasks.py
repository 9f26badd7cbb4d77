"""
Celery tasks for chunked upload assembly and storage maintenance.

This module provides async tasks for:
- Assembling an upload in a worker instead of the request cycle
- Sweeping chunk objects of sessions that were never completed
- Aborting multipart uploads left open by crashed workers

Usage:
    from uploads.tasks import assemble_upload, sweep_orphaned_chunks

    assemble_upload.delay(
        session_id="a1b2c3",
        target_key="audio/<lesson_id>/0_1700000000000.mp3",
        expected_parts=4,
        owner_id=str(lesson.id),
    )

    # Maintenance (typically via celery-beat)
    sweep_orphaned_chunks.delay()
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import timedelta
from datetime import timezone as dt_timezone

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from uploads.exceptions import StorageFailure
from uploads.keys import audio_root, chunk_root
from uploads.services import AssemblyRequest, ChunkAssemblyService, SessionLease
from uploads.storage import get_chunk_store

logger = logging.getLogger(__name__)


def _age_threshold():
    max_age_hours = getattr(settings, "UPLOAD_ORPHAN_CHUNK_MAX_AGE_HOURS", 24)
    return timezone.now() - timedelta(hours=max_age_hours)


def _as_aware(value):
    if value is not None and timezone.is_naive(value):
        return value.replace(tzinfo=dt_timezone.utc)
    return value


# =============================================================================
# Assembly Task
# =============================================================================


@shared_task(acks_late=True)
def assemble_upload(
    session_id: str,
    target_key: str,
    content_type: str = "audio/mpeg",
    expected_parts: int | None = None,
    declared_size: int | None = None,
    owner_id: str | None = None,
    original_filename: str | None = None,
    sort_order: int = 0,
) -> dict:
    """
    Assemble an upload session in a worker.

    Same contract as ChunkAssemblyService.assemble(); not retried
    automatically because a failed assembly has already removed its chunks.

    Returns:
        Dict with success flag and either the outcome or the error details.
    """
    request = AssemblyRequest(
        session_id=session_id,
        target_key=target_key,
        content_type=content_type,
        expected_parts=expected_parts,
        declared_size=declared_size,
        owner_id=owner_id,
        original_filename=original_filename,
        sort_order=sort_order,
    )
    result = ChunkAssemblyService().assemble(request)

    if not result.success:
        return result.to_response()
    return {"success": True, **result.data.to_dict()}


# =============================================================================
# Cleanup Tasks
# =============================================================================


@shared_task
def sweep_orphaned_chunks() -> dict:
    """
    Delete chunks of upload sessions that were abandoned.

    A session counts as abandoned when its most recent chunk is older than
    UPLOAD_ORPHAN_CHUNK_MAX_AGE_HOURS and no assembly currently holds its
    lease. Sessions still receiving chunks are never partially deleted.

    Schedule via celery-beat, e.g., hourly.

    Returns:
        Dict with counts of swept sessions and deleted chunks.
    """
    store = get_chunk_store()
    threshold = _age_threshold()

    try:
        objects = store.list_objects(f"{chunk_root()}/")
    except StorageFailure as e:
        logger.error(
            "Failed to list chunks for orphan sweep",
            extra={"event_type": "orphaned_chunk_sweep_error", "error": str(e)},
        )
        return {"sessions_swept": 0, "deleted_count": 0, "error": str(e)}

    sessions = defaultdict(list)
    for obj in objects:
        parts = obj.key.split("/")
        if len(parts) >= 3:
            sessions[parts[1]].append(obj)

    sessions_swept = 0
    deleted_count = 0
    errors = []

    for session_id, chunks in sessions.items():
        newest = max(
            (_as_aware(c.last_modified) for c in chunks if c.last_modified),
            default=None,
        )
        if newest is None or newest > threshold:
            continue
        if SessionLease(session_id).is_held():
            continue

        sessions_swept += 1
        for chunk in chunks:
            try:
                store.delete_object(chunk.key)
                deleted_count += 1
            except StorageFailure as e:
                errors.append(f"Failed to delete {chunk.key}: {e.message}")

        logger.info(
            f"Swept orphaned upload session {session_id}",
            extra={
                "event_type": "orphaned_chunk_sweep",
                "session_id": session_id,
                "chunk_count": len(chunks),
            },
        )

    logger.info(
        "Orphaned chunk sweep complete",
        extra={
            "event_type": "orphaned_chunk_sweep_complete",
            "sessions_swept": sessions_swept,
            "deleted_count": deleted_count,
            "error_count": len(errors),
        },
    )

    return {
        "sessions_swept": sessions_swept,
        "deleted_count": deleted_count,
        "errors": errors,
    }


@shared_task
def abort_stale_multipart_uploads() -> dict:
    """
    Abort multipart uploads under the audio prefix that were never finished.

    Assembly always completes or aborts its multipart upload; this only
    catches uploads orphaned by a worker that died mid-assembly.

    Schedule via celery-beat, e.g., daily.

    Returns:
        Dict with count of uploads aborted.
    """
    store = get_chunk_store()
    threshold = _age_threshold()

    try:
        uploads = store.list_multipart_uploads(f"{audio_root()}/")
    except StorageFailure as e:
        logger.error(
            "Failed to list multipart uploads",
            extra={"event_type": "stale_multipart_abort_error", "error": str(e)},
        )
        return {"aborted_count": 0, "error": str(e)}

    aborted_count = 0
    errors = []

    for upload in uploads:
        initiated = _as_aware(upload.initiated)
        if initiated is None or initiated > threshold:
            continue

        try:
            store.abort_multipart_upload(upload.key, upload.upload_id)
            aborted_count += 1
            logger.info(
                "Aborted stale multipart upload",
                extra={
                    "event_type": "stale_multipart_abort",
                    "upload_id": upload.upload_id,
                    "key": upload.key,
                },
            )
        except StorageFailure as e:
            errors.append(f"Failed to abort {upload.upload_id}: {e.message}")

    logger.info(
        "Stale multipart upload cleanup complete",
        extra={
            "event_type": "stale_multipart_abort_complete",
            "aborted_count": aborted_count,
            "error_count": len(errors),
        },
    )

    return {
        "aborted_count": aborted_count,
        "errors": errors,
    }

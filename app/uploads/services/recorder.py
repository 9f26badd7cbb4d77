"""
Asset recorders: persist an assembled object in the catalog.

Recording happens after the object is durable in storage. A recording
failure never fails the upload; the file exists and is playable, so the
caller gets success with a warning and the catalog can be repaired later.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.core.exceptions import ObjectDoesNotExist, ValidationError
from django.db import DatabaseError, transaction

from lessons.models import Lesson, LessonAudio
from uploads.keys import detect_codec, file_extension, original_object_key

if TYPE_CHECKING:
    from uploads.services.assembler import AssembledObject, AssemblyRequest
    from uploads.services.direct import DirectUploadRequest

logger = logging.getLogger(__name__)

RECORD_FAILED_WARNING = (
    "File uploaded, but the lesson record could not be updated. "
    "It may need to be linked manually."
)


@dataclass
class RecordResult:
    """
    Outcome of recording an asset.

    Attributes:
        recorded: True when the primary catalog row was written
        record_id: Id of the written row
        warning: Non-fatal message for the caller when recording failed
    """

    recorded: bool
    record_id: str | None = None
    warning: str | None = None


class AssetRecorder:
    """Interface for catalog integrations."""

    def record(
        self, asset: AssembledObject, request: AssemblyRequest | DirectUploadRequest
    ) -> RecordResult:
        raise NotImplementedError


class NullAssetRecorder(AssetRecorder):
    """Recorder for callers without a catalog; records nothing."""

    def record(self, asset, request):
        return RecordResult(recorded=False)


class LessonAssetRecorder(AssetRecorder):
    """
    Records assembled audio as a LessonAudio row of the owning lesson.

    When that insert fails (missing lesson, database error), falls back to
    writing the file straight onto the Lesson's own audio columns so the
    lesson still points at playable audio. Either way the result reports
    recorded=False with a warning.
    """

    def record(self, asset, request):
        if not request.owner_id:
            return RecordResult(recorded=False)

        extension = file_extension(request.original_filename or asset.final_key)
        codec = detect_codec(asset.content_type, extension)

        try:
            with transaction.atomic():
                lesson = Lesson.objects.get(pk=request.owner_id)
                audio = LessonAudio.objects.create(
                    lesson=lesson,
                    file_key=asset.final_key,
                    audio_url=asset.public_url,
                    original_name=request.original_filename or "",
                    file_size=asset.byte_size,
                    codec=codec,
                    sort_order=request.sort_order,
                )
        except (DatabaseError, ObjectDoesNotExist, ValidationError, ValueError) as e:
            logger.error(
                f"Failed to record audio for lesson {request.owner_id}: {e}",
                extra={
                    "event_type": "asset_record_failed",
                    "lesson_id": str(request.owner_id),
                    "key": asset.final_key,
                },
            )
            self._fallback(asset, request, codec)
            return RecordResult(recorded=False, warning=RECORD_FAILED_WARNING)

        return RecordResult(recorded=True, record_id=str(audio.id))

    def _fallback(self, asset, request, codec: str) -> None:
        """Best-effort update of the lesson's primary audio columns."""
        try:
            with transaction.atomic():
                updated = Lesson.objects.filter(pk=request.owner_id).update(
                    audio_url=asset.public_url,
                    audio_url_original=original_object_key(
                        request.owner_id, request.original_filename or asset.final_key
                    ),
                    file_size=asset.byte_size,
                    codec=codec,
                )
        except (DatabaseError, ValidationError, ValueError) as e:
            logger.error(
                f"Fallback lesson update failed for {request.owner_id}: {e}",
                extra={
                    "event_type": "asset_fallback_failed",
                    "lesson_id": str(request.owner_id),
                    "key": asset.final_key,
                },
            )
            return

        if not updated:
            logger.error(
                f"Fallback lesson update found no lesson {request.owner_id}",
                extra={
                    "event_type": "asset_fallback_failed",
                    "lesson_id": str(request.owner_id),
                    "key": asset.final_key,
                },
            )

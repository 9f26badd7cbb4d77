"""
Catalog models written by the upload pipeline.

Provides:
- Lesson: a catalog entry with a denormalised "primary audio" reference
- LessonAudio: one assembled audio object attached to a lesson

The assembler records each finished upload as a LessonAudio row. When that
insert fails it falls back to updating the Lesson's own audio columns, so a
lesson always ends up pointing at the durable object even in degraded mode.
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class Lesson(UUIDPrimaryKeyMixin, BaseModel):
    """
    A single lesson in the catalog.

    Attributes:
        title: Display title
        hebrew_title: Optional Hebrew display title
        date: Date the lesson was given
        audio_url: Playback URL of the primary audio file
        audio_url_original: Object key of the originally uploaded file
        file_size: Size of the primary audio file in bytes
        codec: Codec of the primary audio file
        source_type: How the lesson entered the catalog
        is_published: Whether the lesson is visible to listeners
    """

    class SourceType(models.TextChoices):
        """How a lesson entered the catalog."""

        UPLOAD = "upload", "Upload"
        URL_IMPORT = "url_import", "URL Import"
        WHATSAPP = "whatsapp", "WhatsApp"

    title = models.CharField(
        max_length=500,
        help_text="Display title of the lesson",
    )
    hebrew_title = models.CharField(
        max_length=500,
        blank=True,
        default="",
        help_text="Hebrew display title",
    )
    date = models.DateField(
        default=timezone.localdate,
        db_index=True,
        help_text="Date the lesson was given",
    )

    # Primary audio reference (denormalised; also the degraded-mode target)
    audio_url = models.CharField(
        max_length=1024,
        blank=True,
        default="",
        help_text="Playback URL of the primary audio file",
    )
    audio_url_original = models.CharField(
        max_length=1024,
        blank=True,
        default="",
        help_text="Object key of the original uploaded file",
    )
    file_size = models.BigIntegerField(
        default=0,
        help_text="Size of the primary audio file in bytes",
    )
    codec = models.CharField(
        max_length=20,
        default="opus",
        help_text="Codec of the primary audio file",
    )

    source_type = models.CharField(
        max_length=20,
        choices=SourceType.choices,
        default=SourceType.UPLOAD,
        help_text="How the lesson entered the catalog",
    )
    is_published = models.BooleanField(
        default=True,
        help_text="Whether the lesson is visible to listeners",
    )

    class Meta:
        ordering = ["-date", "-created_at"]

    def __str__(self) -> str:
        return f"Lesson({self.title})"


class LessonAudio(UUIDPrimaryKeyMixin, BaseModel):
    """
    One audio file belonging to a lesson.

    Multi-part lessons have several rows ordered by sort_order.

    Attributes:
        lesson: Owning lesson
        file_key: Object key of the assembled file in storage
        audio_url: Playback URL (streaming proxy path)
        original_name: File name as uploaded by the client
        file_size: Size in bytes
        duration: Duration in seconds (0 until known)
        codec: Codec detected from content type / extension
        sort_order: Position within the lesson
    """

    lesson = models.ForeignKey(
        Lesson,
        on_delete=models.CASCADE,
        related_name="audio_files",
        help_text="Lesson this audio file belongs to",
    )
    file_key = models.CharField(
        max_length=1024,
        help_text="Object key of the assembled file",
    )
    audio_url = models.CharField(
        max_length=1024,
        help_text="Playback URL of the file",
    )
    original_name = models.CharField(
        max_length=500,
        blank=True,
        default="",
        help_text="Original file name",
    )
    file_size = models.BigIntegerField(
        default=0,
        help_text="File size in bytes",
    )
    duration = models.PositiveIntegerField(
        default=0,
        help_text="Duration in seconds",
    )
    codec = models.CharField(
        max_length=20,
        default="mp3",
        help_text="Audio codec",
    )
    sort_order = models.IntegerField(
        default=0,
        help_text="Position within the lesson",
    )

    class Meta:
        ordering = ["lesson", "sort_order"]
        indexes = [
            models.Index(
                fields=["lesson", "sort_order"],
                name="idx_lesson_audio_sort",
            ),
        ]

    def __str__(self) -> str:
        return f"LessonAudio({self.file_key})"

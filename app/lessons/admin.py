"""Django admin configuration for lessons app."""

from django.contrib import admin

from lessons.models import Lesson, LessonAudio


class LessonAudioInline(admin.TabularInline):
    """Audio files attached to a lesson, in playback order."""

    model = LessonAudio
    extra = 0
    fields = ["sort_order", "original_name", "file_key", "file_size", "codec"]
    readonly_fields = ["file_key", "file_size", "codec"]
    ordering = ["sort_order"]


@admin.register(Lesson)
class LessonAdmin(admin.ModelAdmin):
    """Admin configuration for Lesson model."""

    list_display = [
        "id",
        "title",
        "date",
        "codec",
        "file_size",
        "is_published",
        "created_at",
    ]
    list_filter = ["is_published", "codec", "source_type"]
    search_fields = ["title", "hebrew_title"]
    readonly_fields = ["id", "created_at", "updated_at"]
    date_hierarchy = "date"
    ordering = ["-date"]
    inlines = [LessonAudioInline]


@admin.register(LessonAudio)
class LessonAudioAdmin(admin.ModelAdmin):
    """Admin configuration for LessonAudio model."""

    list_display = [
        "id",
        "lesson",
        "sort_order",
        "original_name",
        "codec",
        "file_size",
        "created_at",
    ]
    list_filter = ["codec"]
    search_fields = ["original_name", "file_key", "lesson__title"]
    raw_id_fields = ["lesson"]
    readonly_fields = ["id", "created_at", "updated_at"]

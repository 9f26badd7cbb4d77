"""
Serializers for the chunked upload API.

Provides:
- ChunkUploadSerializer: multipart form carrying one chunk
- ChunkReceivedSerializer: acknowledgement of a stored chunk
- CompleteUploadSerializer: request to assemble an upload
- AssemblyResultSerializer: the assembled file
- PresignUploadSerializer / PresignResultSerializer: direct uploads to storage
- DirectUploadSerializer: whole file sent in one request
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiExample, extend_schema_serializer
from rest_framework import serializers

from uploads.keys import MAX_PART_NUMBER, SESSION_ID_PATTERN

UPLOAD_ID_HELP = "Client-generated upload id (letters, digits, '-' and '_')"


# =============================================================================
# Chunk Serializers
# =============================================================================


class ChunkUploadSerializer(serializers.Serializer):
    """Form fields of POST /chunks/."""

    upload_id = serializers.RegexField(
        SESSION_ID_PATTERN, max_length=128, help_text=UPLOAD_ID_HELP
    )
    part_number = serializers.IntegerField(
        min_value=1,
        max_value=MAX_PART_NUMBER,
        help_text="Part number (1-indexed)",
    )
    chunk = serializers.FileField(
        allow_empty_file=True, help_text="Chunk payload (may be empty)"
    )


@extend_schema_serializer(
    examples=[
        OpenApiExample(
            "Chunk stored",
            value={"success": True, "part_number": 3, "size": 3670016},
            response_only=True,
        ),
    ]
)
class ChunkReceivedSerializer(serializers.Serializer):
    """Acknowledgement returned after a chunk is stored."""

    success = serializers.BooleanField(default=True)
    part_number = serializers.IntegerField()
    size = serializers.IntegerField(source="stored_size")


# =============================================================================
# Assembly Serializers
# =============================================================================


@extend_schema_serializer(
    examples=[
        OpenApiExample(
            "Four chunk lesson recording",
            value={
                "upload_id": "k3j2h1-1700000000000",
                "total_parts": 4,
                "lesson_id": "0c9d8e7f-6a5b-4c3d-2e1f-0a9b8c7d6e5f",
                "file_name": "shiur_bereshit.mp3",
                "content_type": "audio/mpeg",
                "file_size": 13631488,
                "sort_order": 0,
            },
            request_only=True,
        ),
    ]
)
class CompleteUploadSerializer(serializers.Serializer):
    """Body of POST /complete/."""

    upload_id = serializers.RegexField(
        SESSION_ID_PATTERN, max_length=128, help_text=UPLOAD_ID_HELP
    )
    total_parts = serializers.IntegerField(
        min_value=1,
        max_value=MAX_PART_NUMBER,
        required=False,
        allow_null=True,
        help_text="Number of chunks the client sent",
    )
    lesson_id = serializers.UUIDField(help_text="Lesson the audio belongs to")
    file_name = serializers.CharField(max_length=500, help_text="Original file name")
    content_type = serializers.CharField(
        max_length=100,
        required=False,
        default="audio/mpeg",
        help_text="Content type of the assembled file",
    )
    file_size = serializers.IntegerField(
        min_value=0,
        required=False,
        allow_null=True,
        help_text="Total file size in bytes",
    )
    sort_order = serializers.IntegerField(
        min_value=0,
        required=False,
        default=0,
        help_text="Position of the file within the lesson",
    )

    def validate_content_type(self, value: str) -> str:
        """Normalize and sanity check the content type."""
        if "/" not in value:
            raise serializers.ValidationError("Invalid content type format.")
        return value.lower()


@extend_schema_serializer(
    examples=[
        OpenApiExample(
            "Recorded in catalog",
            value={
                "success": True,
                "file_key": "audio/0c9d8e7f-6a5b-4c3d-2e1f-0a9b8c7d6e5f/0_1700000000000.mp3",
                "public_url": "/api/v1/uploads/stream/audio/0c9d8e7f-6a5b-4c3d-2e1f-0a9b8c7d6e5f/0_1700000000000.mp3",
                "byte_size": 13631488,
                "content_type": "audio/mpeg",
                "audio_record_id": "5e4d3c2b-1a09-4f8e-9d7c-6b5a4f3e2d1c",
                "warning": None,
            },
            response_only=True,
        ),
    ]
)
class AssemblyResultSerializer(serializers.Serializer):
    """Response of a successful assembly."""

    success = serializers.BooleanField(default=True)
    file_key = serializers.CharField()
    public_url = serializers.CharField()
    byte_size = serializers.IntegerField()
    content_type = serializers.CharField()
    audio_record_id = serializers.UUIDField(allow_null=True)
    warning = serializers.CharField(allow_null=True)


# =============================================================================
# Direct Upload Serializers
# =============================================================================


class PresignUploadSerializer(serializers.Serializer):
    """Body of POST /presign/."""

    lesson_id = serializers.UUIDField(help_text="Lesson the audio belongs to")
    file_name = serializers.CharField(max_length=500, help_text="Original file name")
    content_type = serializers.CharField(
        max_length=100, required=False, default="audio/mpeg"
    )
    sort_order = serializers.IntegerField(min_value=0, required=False, default=0)


class PresignResultSerializer(serializers.Serializer):
    """Where and how to upload a file directly to storage."""

    upload_url = serializers.CharField(help_text="Presigned URL to PUT the file to")
    file_key = serializers.CharField()
    public_url = serializers.CharField()
    method = serializers.CharField(default="PUT")
    expires_in = serializers.IntegerField(help_text="Seconds until the URL expires")
    headers = serializers.DictField(child=serializers.CharField())


class DirectUploadSerializer(serializers.Serializer):
    """Form fields of POST /direct/."""

    file = serializers.FileField(allow_empty_file=True, help_text="Whole audio file")
    lesson_id = serializers.UUIDField(help_text="Lesson the audio belongs to")
    file_name = serializers.CharField(max_length=500, help_text="Original file name")
    content_type = serializers.CharField(
        max_length=100,
        required=False,
        allow_blank=True,
        default="",
        help_text="Content type of the file (defaults to the upload's own type)",
    )
    file_size = serializers.IntegerField(
        min_value=0,
        required=False,
        allow_null=True,
        help_text="File size in bytes, informational",
    )
    sort_order = serializers.IntegerField(
        min_value=0,
        required=False,
        default=0,
        help_text="Position of the file within the lesson",
    )

    def validate_content_type(self, value: str) -> str:
        if value and "/" not in value:
            raise serializers.ValidationError("Invalid content type format.")
        return value.lower()

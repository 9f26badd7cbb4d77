"""
URL configuration for uploads app.

API Documentation Groups (following [App Name] - [Group Name] pattern):

Uploads - Chunked:
    POST /chunks/                                 - Upload chunk (form data)
    PUT /sessions/{id}/parts/{num}/               - Upload chunk (raw body)
    POST /complete/                               - Assemble upload
    POST /direct/                                 - Upload whole file (form data)
    POST /presign/                                - Get direct upload URL

Uploads - Streaming:
    GET /stream/{file_key}                        - Stream audio with Range support
"""

from django.urls import path

from uploads.views import (
    ChunkPartView,
    ChunkUploadView,
    CompleteUploadView,
    DirectUploadView,
    PresignUploadView,
    StreamAudioView,
)

app_name = "uploads"

urlpatterns = [
    # Chunked upload
    path("chunks/", ChunkUploadView.as_view(), name="chunk-upload"),
    path(
        "sessions/<str:session_id>/parts/<int:part_number>/",
        ChunkPartView.as_view(),
        name="chunk-part",
    ),
    path("complete/", CompleteUploadView.as_view(), name="complete"),
    path("direct/", DirectUploadView.as_view(), name="direct-upload"),
    path("presign/", PresignUploadView.as_view(), name="presign"),
    # Playback
    path("stream/<path:file_key>", StreamAudioView.as_view(), name="stream"),
]

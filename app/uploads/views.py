"""
API views for chunked audio uploads and playback streaming.

Provides:
- ChunkUploadView: receive one chunk as multipart form data
- ChunkPartView: receive one chunk as a raw request body
- CompleteUploadView: assemble an upload and record it on its lesson
- DirectUploadView: store a whole small file sent in one request
- PresignUploadView: presigned URL for uploading small files directly
- StreamAudioView: range-aware playback proxy
"""

from __future__ import annotations

from django.conf import settings
from django.http import HttpResponse, StreamingHttpResponse
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from core.services import ServiceResult
from uploads.exceptions import (
    InvalidUploadRequest,
    StorageFailure,
    StreamNotFound,
)
from uploads.keys import final_object_key, public_stream_url
from uploads.serializers import (
    AssemblyResultSerializer,
    ChunkReceivedSerializer,
    ChunkUploadSerializer,
    CompleteUploadSerializer,
    DirectUploadSerializer,
    PresignResultSerializer,
    PresignUploadSerializer,
)
from uploads.services import (
    AssemblyOutcome,
    AssemblyRequest,
    ChunkAssemblyService,
    ChunkReceiver,
    DirectUploadRequest,
    DirectUploadService,
    StreamingProxyService,
)
from uploads.storage import get_chunk_store

ERROR_STATUS = {
    "VALIDATION_ERROR": status.HTTP_400_BAD_REQUEST,
    "PART_COUNT_MISMATCH": status.HTTP_400_BAD_REQUEST,
    "NO_CHUNKS_FOUND": status.HTTP_404_NOT_FOUND,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "ASSEMBLY_IN_PROGRESS": status.HTTP_409_CONFLICT,
    "ASSEMBLY_TIMEOUT": status.HTTP_504_GATEWAY_TIMEOUT,
    "STORAGE_FAILURE": status.HTTP_502_BAD_GATEWAY,
}

CHUNK_TAGS = ["Uploads - Chunked"]
STREAM_TAGS = ["Uploads - Streaming"]


def failure_response(result: ServiceResult) -> Response:
    """Translate a failed ServiceResult to an error response."""
    body = {"error": result.error, "error_code": result.error_code}
    if result.details:
        body["details"] = result.details
    if result.errors:
        body["errors"] = result.errors
    return Response(
        body,
        status=ERROR_STATUS.get(result.error_code, status.HTTP_400_BAD_REQUEST),
    )


def invalid_request_response(errors) -> Response:
    """Error response for serializer validation failures."""
    return Response(
        {
            "error": "Invalid request.",
            "error_code": "VALIDATION_ERROR",
            "details": errors,
        },
        status=status.HTTP_400_BAD_REQUEST,
    )


def created_response(outcome: AssemblyOutcome) -> Response:
    """201 response describing a stored and recorded file."""
    output = {
        "success": True,
        "file_key": outcome.asset.final_key,
        "public_url": outcome.asset.public_url,
        "byte_size": outcome.asset.byte_size,
        "content_type": outcome.asset.content_type,
        "audio_record_id": outcome.audio_record_id,
        "warning": outcome.warning,
    }
    return Response(
        AssemblyResultSerializer(output).data,
        status=status.HTTP_201_CREATED,
    )


class ChunkUploadView(APIView):
    """
    Receive one chunk of an upload.

    POST /api/v1/uploads/chunks/
        Multipart form with upload_id, part_number and the chunk file.

    Chunks may arrive in any order and may be re-sent; a re-sent chunk
    replaces the stored one.
    """

    permission_classes = [AllowAny]
    parser_classes = [MultiPartParser, FormParser]

    @extend_schema(
        operation_id="upload_chunk",
        summary="Upload chunk",
        description=(
            "Store one chunk of a chunked upload. The upload id is generated by "
            "the client and shared by every chunk of the same file."
        ),
        request={"multipart/form-data": ChunkUploadSerializer},
        responses={
            200: OpenApiResponse(
                response=ChunkReceivedSerializer, description="Chunk stored"
            ),
            400: OpenApiResponse(description="Missing fields or invalid part number"),
            502: OpenApiResponse(description="Storage backend error"),
        },
        tags=CHUNK_TAGS,
    )
    def post(self, request):
        """Upload a chunk."""
        serializer = ChunkUploadSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_request_response(serializer.errors)

        data = serializer.validated_data
        result = ChunkReceiver().receive(
            data["upload_id"], data["part_number"], data["chunk"].read()
        )
        if not result.success:
            return failure_response(result)

        return Response(ChunkReceivedSerializer(result.data).data)


class ChunkPartView(APIView):
    """
    Receive one chunk as a raw request body.

    PUT /api/v1/uploads/sessions/{session_id}/parts/{part_number}/
        Raw binary chunk data.
    """

    permission_classes = [AllowAny]

    @extend_schema(
        operation_id="put_chunk",
        summary="Upload chunk (raw body)",
        description="Store one chunk sent as the raw request body.",
        request={"application/octet-stream": {"type": "string", "format": "binary"}},
        responses={
            200: OpenApiResponse(
                response=ChunkReceivedSerializer, description="Chunk stored"
            ),
            400: OpenApiResponse(description="Invalid upload id or part number"),
            502: OpenApiResponse(description="Storage backend error"),
        },
        tags=CHUNK_TAGS,
    )
    def put(self, request, session_id, part_number):
        """Upload a chunk."""
        result = ChunkReceiver().receive(session_id, part_number, request.body)
        if not result.success:
            return failure_response(result)

        return Response(ChunkReceivedSerializer(result.data).data)


class CompleteUploadView(APIView):
    """
    Assemble a chunked upload.

    POST /api/v1/uploads/complete/
        Verify all chunks are present, assemble them into the final audio
        object, record it on the lesson and remove the chunks.

    A catalog failure does not fail the request: the file is stored and the
    response carries a warning instead.
    """

    permission_classes = [AllowAny]
    parser_classes = [JSONParser]

    @extend_schema(
        operation_id="complete_chunked_upload",
        summary="Complete chunked upload",
        description=(
            "Assemble every stored chunk of the upload into one audio file, "
            "attach it to the lesson and delete the chunks. When total_parts "
            "is given, the stored chunk count must match it."
        ),
        request=CompleteUploadSerializer,
        responses={
            201: OpenApiResponse(
                response=AssemblyResultSerializer, description="File assembled"
            ),
            400: OpenApiResponse(description="Invalid request or part count mismatch"),
            404: OpenApiResponse(description="No chunks found, restart the upload"),
            409: OpenApiResponse(description="Upload already being assembled"),
            502: OpenApiResponse(description="Storage backend error"),
            504: OpenApiResponse(description="Assembly timed out"),
        },
        tags=CHUNK_TAGS,
    )
    def post(self, request):
        """Assemble the upload."""
        serializer = CompleteUploadSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_request_response(serializer.errors)

        data = serializer.validated_data
        lesson_id = str(data["lesson_id"])
        assembly_request = AssemblyRequest(
            session_id=data["upload_id"],
            target_key=final_object_key(lesson_id, data["sort_order"], data["file_name"]),
            content_type=data["content_type"],
            expected_parts=data.get("total_parts"),
            declared_size=data.get("file_size"),
            owner_id=lesson_id,
            original_filename=data["file_name"],
            sort_order=data["sort_order"],
        )

        result = ChunkAssemblyService().assemble(assembly_request)
        if not result.success:
            return failure_response(result)

        return created_response(result.data)


class DirectUploadView(APIView):
    """
    Upload a whole file in one request.

    POST /api/v1/uploads/direct/
        Multipart form with the file and its lesson. The file is stored and
        recorded on the lesson exactly like an assembled upload.
    """

    permission_classes = [AllowAny]
    parser_classes = [MultiPartParser, FormParser]

    @extend_schema(
        operation_id="direct_upload",
        summary="Upload whole file",
        description=(
            "Store a small audio file sent in a single request and attach it "
            "to the lesson. Files larger than the chunk limit must use the "
            "chunked upload."
        ),
        request={"multipart/form-data": DirectUploadSerializer},
        responses={
            201: OpenApiResponse(
                response=AssemblyResultSerializer, description="File stored"
            ),
            400: OpenApiResponse(description="Missing fields or file too large"),
            502: OpenApiResponse(description="Storage backend error"),
        },
        tags=CHUNK_TAGS,
    )
    def post(self, request):
        """Upload a file."""
        serializer = DirectUploadSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_request_response(serializer.errors)

        data = serializer.validated_data
        upload = data["file"]
        lesson_id = str(data["lesson_id"])
        content_type = (
            data["content_type"]
            or (upload.content_type or "").lower()
            or "audio/mpeg"
        )
        direct_request = DirectUploadRequest(
            target_key=final_object_key(lesson_id, data["sort_order"], data["file_name"]),
            content_type=content_type,
            owner_id=lesson_id,
            original_filename=data["file_name"],
            sort_order=data["sort_order"],
        )

        result = DirectUploadService().upload(direct_request, upload.read())
        if not result.success:
            return failure_response(result)

        return created_response(result.data)


class PresignUploadView(APIView):
    """
    Presigned URL for uploading a whole file directly to storage.

    POST /api/v1/uploads/presign/
        Small files can skip chunking and PUT straight to the bucket.
    """

    permission_classes = [AllowAny]
    parser_classes = [JSONParser]

    @extend_schema(
        operation_id="presign_upload",
        summary="Get direct upload URL",
        description=(
            "Return a short-lived presigned PUT URL and the object key the file "
            "will live under."
        ),
        request=PresignUploadSerializer,
        responses={
            200: OpenApiResponse(
                response=PresignResultSerializer, description="Upload URL issued"
            ),
            400: OpenApiResponse(description="Invalid request"),
            502: OpenApiResponse(description="Storage backend error"),
        },
        tags=CHUNK_TAGS,
    )
    def post(self, request):
        """Issue a presigned upload URL."""
        serializer = PresignUploadSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_request_response(serializer.errors)

        data = serializer.validated_data
        key = final_object_key(str(data["lesson_id"]), data["sort_order"], data["file_name"])
        expires_in = getattr(settings, "UPLOAD_PRESIGNED_URL_EXPIRY", 3600)

        try:
            url = get_chunk_store().generate_presigned_url(key, expires_in, method="put")
        except StorageFailure as e:
            return Response(e.to_dict(), status=status.HTTP_502_BAD_GATEWAY)

        output = {
            "upload_url": url,
            "file_key": key,
            "public_url": public_stream_url(key),
            "method": "PUT",
            "expires_in": expires_in,
            "headers": {"Content-Type": data["content_type"]},
        }
        return Response(PresignResultSerializer(output).data)


class StreamAudioView(APIView):
    """
    Stream a stored audio file with HTTP Range support.

    GET /api/v1/uploads/stream/{file_key}
        Relays the object from storage; Range requests return 206.
    """

    permission_classes = [AllowAny]

    @extend_schema(
        operation_id="stream_audio",
        summary="Stream audio",
        description=(
            "Relay an assembled audio file (or cover image) from storage. "
            "Supports Range requests for seeking."
        ),
        parameters=[
            OpenApiParameter(
                name="Range",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.HEADER,
                required=False,
                description="Byte range, e.g. bytes=0-1023",
            ),
        ],
        responses={
            200: OpenApiResponse(description="Full file"),
            206: OpenApiResponse(description="Requested byte range"),
            400: OpenApiResponse(description="Invalid file key"),
            404: OpenApiResponse(description="File not found"),
            416: OpenApiResponse(description="Range not satisfiable"),
            502: OpenApiResponse(description="Storage backend error"),
        },
        tags=STREAM_TAGS,
    )
    def get(self, request, file_key):
        """Stream the file."""
        try:
            stream = StreamingProxyService().open(
                file_key, request.headers.get("Range")
            )
        except InvalidUploadRequest as e:
            return Response(e.to_dict(), status=status.HTTP_400_BAD_REQUEST)
        except StreamNotFound as e:
            return Response(e.to_dict(), status=status.HTTP_404_NOT_FOUND)
        except StorageFailure as e:
            return Response(e.to_dict(), status=status.HTTP_502_BAD_GATEWAY)

        if stream.status == status.HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE:
            stream.close()
            response = HttpResponse(status=stream.status)
        else:
            response = StreamingHttpResponse(stream, status=stream.status)

        for header, value in stream.headers.items():
            response[header] = value
        return response

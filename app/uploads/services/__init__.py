"""
Upload services package.

Usage:
    from uploads.services import ChunkReceiver, ChunkAssemblyService, AssemblyRequest

    ChunkReceiver().receive("a1b2c3", 1, data)

    result = ChunkAssemblyService().assemble(
        AssemblyRequest(session_id="a1b2c3", target_key=key, expected_parts=4)
    )
"""

from uploads.services.assembler import (
    AssembledObject,
    AssemblyOutcome,
    AssemblyRequest,
    ChunkAssemblyService,
    CleanupReport,
    cleanup_chunks,
)
from uploads.services.deadline import Deadline
from uploads.services.direct import DirectUploadRequest, DirectUploadService
from uploads.services.lease import SessionLease
from uploads.services.receiver import ChunkReceiver, ReceivedChunk
from uploads.services.recorder import (
    AssetRecorder,
    LessonAssetRecorder,
    NullAssetRecorder,
    RecordResult,
)
from uploads.services.strategies import (
    ConcatStrategy,
    MultipartStrategy,
    ReconstructionResult,
    ReconstructionStrategy,
    estimate_total_size,
    select_strategy,
)
from uploads.services.streaming import StreamedObject, StreamingProxyService

__all__ = [
    "AssembledObject",
    "AssemblyOutcome",
    "AssemblyRequest",
    "AssetRecorder",
    "ChunkAssemblyService",
    "ChunkReceiver",
    "CleanupReport",
    "ConcatStrategy",
    "Deadline",
    "DirectUploadRequest",
    "DirectUploadService",
    "LessonAssetRecorder",
    "MultipartStrategy",
    "NullAssetRecorder",
    "ReceivedChunk",
    "ReconstructionResult",
    "ReconstructionStrategy",
    "RecordResult",
    "SessionLease",
    "StreamedObject",
    "StreamingProxyService",
    "cleanup_chunks",
    "estimate_total_size",
    "select_strategy",
]

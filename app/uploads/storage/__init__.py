"""
Chunk store package.

Usage:
    from uploads.storage import get_chunk_store

    store = get_chunk_store()
    store.put_object("_chunks/abc/part_0001", data)
    keys = store.list_keys("_chunks/abc/")
"""

from uploads.storage.base import (
    ChunkStore,
    MultipartPart,
    MultipartUploadInfo,
    ObjectInfo,
    RangedObject,
)
from uploads.storage.factory import get_chunk_store, reset_chunk_store
from uploads.storage.local import LocalChunkStore
from uploads.storage.s3 import S3ChunkStore

__all__ = [
    "ChunkStore",
    "LocalChunkStore",
    "MultipartPart",
    "MultipartUploadInfo",
    "ObjectInfo",
    "RangedObject",
    "S3ChunkStore",
    "get_chunk_store",
    "reset_chunk_store",
]

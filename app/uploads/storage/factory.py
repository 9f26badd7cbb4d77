"""
Factory function for chunk store backend selection.

Provides a single function to get the configured chunk store, selected by
the UPLOAD_STORAGE_BACKEND setting ("s3" or "local").
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings

if TYPE_CHECKING:
    from uploads.storage.base import ChunkStore

_store: ChunkStore | None = None


def get_chunk_store() -> "ChunkStore":
    """
    Get the chunk store for the configured backend.

    The instance is cached per process so the boto3 client and its
    connection pool are shared by every request.

    Returns:
        S3ChunkStore for "s3", LocalChunkStore for "local"

    Raises:
        ValueError: If UPLOAD_STORAGE_BACKEND names an unknown backend

    Usage:
        store = get_chunk_store()
        store.put_object("_chunks/abc/part_0001", data)
    """
    global _store
    if _store is not None:
        return _store

    backend = getattr(settings, "UPLOAD_STORAGE_BACKEND", "s3").lower()
    if backend == "s3":
        from uploads.storage.s3 import S3ChunkStore

        _store = S3ChunkStore()
    elif backend == "local":
        from uploads.storage.local import LocalChunkStore

        _store = LocalChunkStore()
    else:
        raise ValueError(f"Unknown UPLOAD_STORAGE_BACKEND: {backend!r}")
    return _store


def reset_chunk_store() -> None:
    """Drop the cached store so the next call re-reads settings."""
    global _store
    _store = None

"""
Streaming proxy: range-aware reads of stored audio for in-browser playback.

Players seek by sending Range requests. The proxy forwards the range to the
store and relays status, length and content range back, so seeking works
without the object ever being buffered by the server. Serving from the API
origin also avoids exposing bucket URLs and their CORS rules to clients.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings

from core.services import BaseService
from uploads.exceptions import InvalidUploadRequest
from uploads.keys import content_type_for_key, is_streamable_key
from uploads.storage import get_chunk_store

if TYPE_CHECKING:
    from collections.abc import Iterator

    from uploads.storage.base import ChunkStore, RangedObject


@dataclass
class StreamedObject:
    """
    An open proxied read, ready to become an HTTP response.

    Attributes:
        status: 200, 206 or 416
        body: Iterator of byte chunks
        headers: Response headers to relay
    """

    status: int
    body: Iterator[bytes]
    headers: dict[str, str]
    ranged: RangedObject

    def __iter__(self):
        return iter(self.body)

    def close(self) -> None:
        self.ranged.close()


class StreamingProxyService(BaseService):
    """Opens objects from the chunk store for relaying to clients."""

    def __init__(self, store: ChunkStore | None = None, cache_seconds: int | None = None):
        self.store = store or get_chunk_store()
        self.cache_seconds = (
            cache_seconds
            if cache_seconds is not None
            else getattr(settings, "UPLOAD_STREAM_CACHE_SECONDS", 3600)
        )

    def open(self, key: str, range_header: str | None = None) -> StreamedObject:
        """
        Open key for streaming.

        Args:
            key: Object key (already URL-decoded)
            range_header: Client's Range header, forwarded as-is

        Returns:
            StreamedObject with status, headers and lazy body

        Raises:
            InvalidUploadRequest: If the key is outside the streamable prefixes
            StreamNotFound: If the object does not exist
            StorageFailure: If the store cannot be read
        """
        if not is_streamable_key(key):
            raise InvalidUploadRequest("Invalid file key.", details={"key": key})

        ranged = self.store.open_range(key, range_header)

        headers = {
            "Content-Type": content_type_for_key(key),
            "Accept-Ranges": "bytes",
            "Cache-Control": f"public, max-age={self.cache_seconds}",
        }
        if ranged.content_length is not None:
            headers["Content-Length"] = str(ranged.content_length)
        if ranged.content_range:
            headers["Content-Range"] = ranged.content_range
        if ranged.etag:
            headers["ETag"] = ranged.etag

        self.get_logger().debug(
            f"Streaming {key} ({ranged.status})",
            extra={
                "event_type": "stream_opened",
                "key": key,
                "status": ranged.status,
                "range": range_header,
            },
        )
        return StreamedObject(
            status=ranged.status, body=ranged.body, headers=headers, ranged=ranged
        )

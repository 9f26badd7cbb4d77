"""
Base types and abstract base class for chunk stores.

A chunk store is a flat object store addressed by string keys. It holds
both the temporary chunk objects and the assembled files, and exposes the
multipart primitives the large-file reconstruction path relies on.

Every implementation raises StorageFailure for backend errors so callers
never see boto3 or OS exceptions.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import datetime

STREAM_CHUNK_SIZE = 64 * 1024

RANGE_PATTERN = re.compile(r"^bytes=(\d*)-(\d*)$")


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class ObjectInfo:
    """
    Metadata of a stored object.

    Attributes:
        key: Object key
        size: Size in bytes
        last_modified: Last write time (timezone aware)
        etag: Backend entity tag, without quotes
        content_type: Stored content type if the backend tracks one
    """

    key: str
    size: int
    last_modified: datetime | None = None
    etag: str | None = None
    content_type: str | None = None


@dataclass
class MultipartPart:
    """One uploaded part of a multipart upload."""

    part_number: int
    etag: str
    size: int = 0


@dataclass
class MultipartUploadInfo:
    """An in-progress multipart upload as reported by the store."""

    key: str
    upload_id: str
    initiated: datetime | None = None


@dataclass
class RangedObject:
    """
    An open, possibly partial, read of a stored object.

    The body is consumed lazily; call close() when done so the underlying
    file or connection is released.

    Attributes:
        status: 200 for a full read, 206 for a range, 416 when unsatisfiable
        content_length: Number of bytes the body will yield
        content_range: Content-Range header value for partial reads
        etag: Entity tag of the object
        content_type: Content type stored with the object, if any
    """

    status: int
    body: Iterator[bytes]
    content_length: int | None = None
    content_range: str | None = None
    etag: str | None = None
    content_type: str | None = None
    _closer: Callable[[], None] | None = field(default=None, repr=False)

    def close(self) -> None:
        if self._closer is not None:
            closer, self._closer = self._closer, None
            closer()


def parse_range_header(range_header: str | None, size: int) -> tuple[int, int] | None:
    """
    Resolve a single-range "bytes=" header against an object size.

    Args:
        range_header: Raw Range header value, or None
        size: Object size in bytes

    Returns:
        Inclusive (start, end) byte positions, or None for a full read

    Raises:
        ValueError: If the range cannot be satisfied
    """
    if not range_header:
        return None

    match = RANGE_PATTERN.match(range_header.strip())
    if not match:
        # Multi-range and other units are served as a full read
        return None

    start_text, end_text = match.groups()
    if not start_text and not end_text:
        return None

    if not start_text:
        suffix = int(end_text)
        if suffix == 0:
            raise ValueError("Empty suffix range")
        start = max(size - suffix, 0)
        end = size - 1
    else:
        start = int(start_text)
        end = int(end_text) if end_text else size - 1
        end = min(end, size - 1)

    if start >= size or start > end:
        raise ValueError(f"Range {range_header} not satisfiable for size {size}")
    return start, end


# =============================================================================
# Abstract Base Class
# =============================================================================


class ChunkStore(ABC):
    """
    Abstract object store used by the upload pipeline.

    Implementations:
        S3ChunkStore: any S3-compatible service (AWS, R2, MinIO)
        LocalChunkStore: local filesystem, for development and tests
    """

    @abstractmethod
    def put_object(
        self,
        key: str,
        data: bytes | bytearray,
        content_type: str | None = None,
        cache_control: str | None = None,
    ) -> None:
        """Write an object, replacing any existing object at the key."""

    @abstractmethod
    def get_object(self, key: str) -> bytes:
        """
        Read an object fully into memory.

        Raises:
            StorageFailure: If the object is missing or the read fails
        """

    @abstractmethod
    def head_object(self, key: str) -> ObjectInfo | None:
        """Return object metadata, or None when the key does not exist."""

    @abstractmethod
    def list_objects(self, prefix: str) -> list[ObjectInfo]:
        """List every object under a prefix, sorted by key."""

    def list_keys(self, prefix: str) -> list[str]:
        """List every key under a prefix, sorted."""
        return [obj.key for obj in self.list_objects(prefix)]

    @abstractmethod
    def delete_object(self, key: str) -> None:
        """Delete an object. Deleting a missing key is not an error."""

    @abstractmethod
    def delete_prefix(self, prefix: str) -> int:
        """
        Delete every object under a prefix.

        Returns:
            Number of objects deleted
        """

    @abstractmethod
    def generate_presigned_url(
        self, key: str, expires_in: int, method: str = "get"
    ) -> str:
        """
        Create a short-lived URL granting direct access to one object.

        Args:
            key: Object key
            expires_in: Seconds until the URL expires
            method: "get" for download or "put" for direct upload
        """

    @abstractmethod
    def open_range(self, key: str, range_header: str | None = None) -> RangedObject:
        """
        Open a streaming read of an object, honouring an HTTP Range header.

        Raises:
            StreamNotFound: If the object does not exist
            StorageFailure: If the read cannot be started
        """

    # -------------------------------------------------------------------------
    # Multipart primitives
    # -------------------------------------------------------------------------

    @abstractmethod
    def create_multipart_upload(self, key: str, content_type: str) -> str:
        """Start a multipart upload and return its upload id."""

    @abstractmethod
    def upload_part(
        self, key: str, upload_id: str, part_number: int, data: bytes
    ) -> str:
        """Upload one part and return its etag."""

    @abstractmethod
    def complete_multipart_upload(
        self, key: str, upload_id: str, parts: list[MultipartPart]
    ) -> None:
        """Stitch the uploaded parts (in increasing part order) into one object."""

    @abstractmethod
    def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        """Discard a multipart upload and every part uploaded so far."""

    @abstractmethod
    def list_parts(self, key: str, upload_id: str) -> list[MultipartPart]:
        """Parts of an open multipart upload; empty once aborted or unknown."""

    @abstractmethod
    def list_multipart_uploads(self, prefix: str = "") -> list[MultipartUploadInfo]:
        """In-progress multipart uploads whose key starts with prefix."""

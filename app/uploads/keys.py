"""
Object key layout for chunked uploads.

Chunks:     <chunk prefix>/<session_id>/part_0001
Assembled:  <audio prefix>/<lesson_id>/<sort_order>_<epoch ms>.<ext>
Originals:  originals/<lesson_id>/original.<ext>

Part numbers are zero padded to four digits, so the lexicographic order
the store lists keys in is also the numeric part order. This is why part
numbers are capped at MAX_PART_NUMBER.
"""

from __future__ import annotations

import mimetypes
import re
import time
from urllib.parse import quote

from django.conf import settings

# =============================================================================
# Constants
# =============================================================================

MAX_PART_NUMBER = 9999
DEFAULT_AUDIO_EXTENSION = "mp3"
ORIGINALS_PREFIX = "originals"
IMAGE_PREFIX = "images"
STREAM_URL_PREFIX = "/api/v1/uploads/stream/"

SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")
PART_KEY_PATTERN = re.compile(r"part_(\d{4})$")

CONTENT_TYPES_BY_EXTENSION = {
    "mp3": "audio/mpeg",
    "m4a": "audio/mp4",
    "aac": "audio/aac",
    "ogg": "audio/ogg",
    "opus": "audio/ogg",
    "wav": "audio/wav",
    "flac": "audio/flac",
    "webm": "audio/webm",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
}


def chunk_root() -> str:
    """Top-level prefix all chunk objects live under."""
    return getattr(settings, "UPLOAD_CHUNK_PREFIX", "_chunks").strip("/")


def audio_root() -> str:
    """Top-level prefix of assembled audio objects."""
    return getattr(settings, "UPLOAD_AUDIO_PREFIX", "audio").strip("/")


def is_valid_session_id(session_id) -> bool:
    """Check a caller-supplied session id against the allowed alphabet."""
    return isinstance(session_id, str) and bool(SESSION_ID_PATTERN.match(session_id))


def chunk_prefix(session_id: str) -> str:
    """Prefix holding every chunk of one upload session (with trailing slash)."""
    return f"{chunk_root()}/{session_id}/"


def chunk_key(session_id: str, part_number: int) -> str:
    """
    Object key of one chunk.

    Example:
        chunk_key("abc", 1) -> "_chunks/abc/part_0001"
    """
    return f"{chunk_prefix(session_id)}part_{part_number:04d}"


def part_number_from_key(key: str) -> int:
    """
    Parse the part number back out of a chunk key.

    Raises:
        ValueError: If the key does not end in part_NNNN
    """
    match = PART_KEY_PATTERN.search(key)
    if not match:
        raise ValueError(f"Not a chunk key: {key!r}")
    return int(match.group(1))


def file_extension(filename: str | None, default: str = DEFAULT_AUDIO_EXTENSION) -> str:
    """Lower-cased extension of a file name, or the default."""
    if filename and "." in filename:
        ext = filename.rsplit(".", 1)[1].strip().lower()
        if ext and re.fullmatch(r"[a-z0-9]{1,10}", ext):
            return ext
    return default


def final_object_key(
    owner_id,
    sort_order: int,
    filename: str | None,
    timestamp_ms: int | None = None,
) -> str:
    """
    Key of the assembled audio object.

    Args:
        owner_id: Lesson the audio belongs to
        sort_order: Position of the file within the lesson
        filename: Original file name (extension source)
        timestamp_ms: Epoch milliseconds, defaults to now

    Returns:
        Key like "audio/<lesson_id>/0_1700000000000.mp3"
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    ext = file_extension(filename)
    return f"{audio_root()}/{owner_id}/{sort_order}_{timestamp_ms}.{ext}"


def original_object_key(owner_id, filename: str | None) -> str:
    """Key recorded as a lesson's original upload in the degraded fallback."""
    return f"{ORIGINALS_PREFIX}/{owner_id}/original.{file_extension(filename)}"


def detect_codec(content_type: str | None, extension: str | None) -> str:
    """
    Guess the audio codec from content type and file extension.

    Returns:
        One of "mp3", "aac", "opus", "wav", "flac" or "unknown"
    """
    ct = (content_type or "").lower()
    ext = (extension or "").lower().lstrip(".")

    if "mp3" in ct or "mpeg" in ct or ext == "mp3":
        return "mp3"
    if "mp4" in ct or "m4a" in ct or ext == "m4a":
        return "aac"
    if "ogg" in ct or "opus" in ct or ext in ("opus", "ogg"):
        return "opus"
    if "wav" in ct or ext == "wav":
        return "wav"
    if "flac" in ct or ext == "flac":
        return "flac"
    return "unknown"


def content_type_for_key(key: str) -> str:
    """Playback content type inferred from the key's extension."""
    ext = file_extension(key, default="")
    if ext in CONTENT_TYPES_BY_EXTENSION:
        return CONTENT_TYPES_BY_EXTENSION[ext]
    guessed, _ = mimetypes.guess_type(key)
    return guessed or "application/octet-stream"


def is_streamable_key(key: str) -> bool:
    """Only assembled audio and cover images may be read through the proxy."""
    if not key or ".." in key or key.startswith("/"):
        return False
    allowed = (f"{audio_root()}/", f"{IMAGE_PREFIX}/")
    return key.startswith(allowed)


def public_stream_url(key: str) -> str:
    """Same-origin playback URL served by the streaming proxy."""
    return f"{STREAM_URL_PREFIX}{quote(key, safe='/')}"

"""
Tests for object key layout helpers.

Tests cover:
- Chunk keys sort in part order
- Session id and part number parsing
- Final object keys and content type detection
- Which keys the streaming proxy will serve
"""

import pytest

from uploads.keys import (
    chunk_key,
    chunk_prefix,
    content_type_for_key,
    detect_codec,
    file_extension,
    final_object_key,
    is_streamable_key,
    is_valid_session_id,
    original_object_key,
    part_number_from_key,
    public_stream_url,
)


class TestChunkKeys:
    """
    Tests for chunk key construction.

    Why it matters: assembly relies on lexicographic key order matching
    numeric part order.
    """

    def test_chunk_key_is_zero_padded(self):
        """Part numbers are padded to four digits."""
        assert chunk_key("abc", 1) == "_chunks/abc/part_0001"
        assert chunk_key("abc", 9999) == "_chunks/abc/part_9999"

    def test_lexicographic_order_matches_numeric_order(self):
        """Sorting keys as strings yields part order."""
        keys = [chunk_key("s", n) for n in (10, 2, 1, 100, 9)]

        assert [part_number_from_key(k) for k in sorted(keys)] == [1, 2, 9, 10, 100]

    def test_prefix_has_trailing_slash(self):
        """Prefix of one session never matches a longer session id."""
        assert chunk_prefix("abc") == "_chunks/abc/"
        assert not chunk_key("abcd", 1).startswith(chunk_prefix("abc"))

    def test_prefix_follows_setting(self, settings):
        """Chunk root comes from UPLOAD_CHUNK_PREFIX."""
        settings.UPLOAD_CHUNK_PREFIX = "/tmp-chunks/"

        assert chunk_key("abc", 3) == "tmp-chunks/abc/part_0003"

    def test_part_number_from_key_rejects_other_objects(self):
        """Keys not ending in part_NNNN are not chunks."""
        with pytest.raises(ValueError):
            part_number_from_key("_chunks/abc/manifest.json")


class TestSessionIds:
    """Tests for session id validation."""

    @pytest.mark.parametrize(
        "session_id",
        ["abc", "k3j2h1-1700000000000", "A_b-9", "x" * 128],
    )
    def test_valid_ids(self, session_id):
        assert is_valid_session_id(session_id)

    @pytest.mark.parametrize(
        "session_id",
        ["", "../etc", "a/b", "has space", "x" * 129, None, 123],
    )
    def test_invalid_ids(self, session_id):
        assert not is_valid_session_id(session_id)


class TestFinalKeys:
    """Tests for assembled object keys."""

    def test_final_object_key_layout(self):
        """Key is audio/<owner>/<sort>_<timestamp>.<ext>."""
        key = final_object_key("lesson-1", 2, "Shiur.MP3", timestamp_ms=1700000000000)

        assert key == "audio/lesson-1/2_1700000000000.mp3"

    def test_final_object_key_defaults_extension(self):
        """Files without a usable extension are stored as mp3."""
        key = final_object_key("lesson-1", 0, "recording", timestamp_ms=1)

        assert key.endswith(".mp3")

    def test_final_object_key_uses_current_time(self):
        """Two keys built at different times differ."""
        key = final_object_key("lesson-1", 0, "a.m4a")

        assert key.startswith("audio/lesson-1/0_")
        assert key.endswith(".m4a")

    def test_original_object_key(self):
        assert original_object_key("lesson-1", "a.wav") == "originals/lesson-1/original.wav"

    @pytest.mark.parametrize(
        "filename,expected",
        [
            ("a.mp3", "mp3"),
            ("a.tar.OGG", "ogg"),
            ("a.", "mp3"),
            ("a.bad ext", "mp3"),
            (None, "mp3"),
        ],
    )
    def test_file_extension(self, filename, expected):
        assert file_extension(filename) == expected


class TestContentTypes:
    """Tests for codec and content type detection."""

    @pytest.mark.parametrize(
        "content_type,extension,expected",
        [
            ("audio/mpeg", "mp3", "mp3"),
            ("audio/mp4", "m4a", "aac"),
            ("audio/ogg", "opus", "opus"),
            ("", "wav", "wav"),
            ("audio/flac", None, "flac"),
            ("application/octet-stream", "xyz", "unknown"),
        ],
    )
    def test_detect_codec(self, content_type, extension, expected):
        assert detect_codec(content_type, extension) == expected

    def test_content_type_for_key(self):
        assert content_type_for_key("audio/x/0_1.mp3") == "audio/mpeg"
        assert content_type_for_key("images/x/cover.png") == "image/png"
        assert content_type_for_key("audio/x/blob") == "application/octet-stream"


class TestStreamableKeys:
    """
    Tests for the streaming proxy allow list.

    Why it matters: the proxy must never serve chunk objects or escape
    the bucket layout.
    """

    @pytest.mark.parametrize(
        "key",
        ["audio/lesson/0_1.mp3", "images/lesson/cover.jpg"],
    )
    def test_allowed(self, key):
        assert is_streamable_key(key)

    @pytest.mark.parametrize(
        "key",
        [
            "",
            "_chunks/abc/part_0001",
            "originals/lesson/original.mp3",
            "audio/../_chunks/abc/part_0001",
            "/audio/lesson/0_1.mp3",
        ],
    )
    def test_rejected(self, key):
        assert not is_streamable_key(key)

    def test_public_stream_url_quotes_key(self):
        url = public_stream_url("audio/lesson/my file.mp3")

        assert url == "/api/v1/uploads/stream/audio/lesson/my%20file.mp3"

"""
Shared helpers for upload tests.

- FaultInjectingStore: LocalChunkStore that records calls and fails on demand
- seed_chunks / distinct_payloads: build chunk sessions
"""

from __future__ import annotations

from collections import Counter

from uploads.exceptions import StorageFailure
from uploads.keys import chunk_key
from uploads.storage.local import LocalChunkStore

MB = 1024 * 1024


class FaultInjectingStore(LocalChunkStore):
    """
    LocalChunkStore that records every call and can fail selected operations.

    Usage:
        store.fail_on["upload_part"] = 2   # second upload_part raises
        store.fail_keys.add(key)           # delete_object(key) raises
    """

    def __init__(self, root):
        super().__init__(root)
        self.calls: list[tuple[str, str]] = []
        self.counts: Counter = Counter()
        self.fail_on: dict[str, int] = {}
        self.fail_keys: set[str] = set()
        self.uploaded_part_sizes: list[int] = []
        self.last_upload_id: str | None = None

    def _track(self, operation: str, key: str) -> None:
        self.calls.append((operation, key))
        self.counts[operation] += 1
        if self.fail_on.get(operation) == self.counts[operation]:
            raise StorageFailure(
                f"Injected {operation} failure",
                details={"operation": operation, "key": key, "code": "Injected"},
            )

    def put_object(self, key, data, content_type=None, cache_control=None):
        self._track("put_object", key)
        return super().put_object(key, data, content_type, cache_control)

    def get_object(self, key):
        self._track("get_object", key)
        return super().get_object(key)

    def delete_object(self, key):
        self._track("delete_object", key)
        if key in self.fail_keys:
            raise StorageFailure(
                f"Injected delete failure for {key}",
                details={"operation": "delete_object", "key": key, "code": "Injected"},
            )
        return super().delete_object(key)

    def create_multipart_upload(self, key, content_type):
        self._track("create_multipart_upload", key)
        self.last_upload_id = super().create_multipart_upload(key, content_type)
        return self.last_upload_id

    def upload_part(self, key, upload_id, part_number, data):
        self._track("upload_part", key)
        self.uploaded_part_sizes.append(len(data))
        return super().upload_part(key, upload_id, part_number, data)

    def complete_multipart_upload(self, key, upload_id, parts):
        self._track("complete_multipart_upload", key)
        return super().complete_multipart_upload(key, upload_id, parts)

    def abort_multipart_upload(self, key, upload_id):
        self._track("abort_multipart_upload", key)
        return super().abort_multipart_upload(key, upload_id)

    def operations(self, name: str) -> list[str]:
        """Keys passed to every call of one operation, in order."""
        return [key for op, key in self.calls if op == name]


def seed_chunks(store, session_id: str, payloads: list[bytes]) -> list[str]:
    """Store payloads as parts 1..n of a session and return their keys."""
    keys = []
    for index, payload in enumerate(payloads, start=1):
        key = chunk_key(session_id, index)
        store.put_object(key, payload, content_type="application/octet-stream")
        keys.append(key)
    return keys


def distinct_payloads(count: int, size: int) -> list[bytes]:
    """Payloads of equal size whose bytes identify their part."""
    return [bytes([65 + index % 26]) * size for index in range(count)]

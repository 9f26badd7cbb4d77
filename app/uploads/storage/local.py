"""
Local filesystem implementation of the chunk store.

Objects are plain files under UPLOAD_LOCAL_ROOT, with the object key as the
relative path. Multipart uploads are emulated in a hidden directory:

    <root>/.multipart/<upload_id>/manifest.json
    <root>/.multipart/<upload_id>/part_00001

Completion concatenates the part files into the target with bounded memory.
Used for development and tests; production deployments use S3ChunkStore.
"""

from __future__ import annotations

import hashlib
import json
import os
import shutil
import tempfile
import uuid
from datetime import datetime, timezone
from pathlib import Path

from django.conf import settings

from uploads.exceptions import StorageFailure, StreamNotFound
from uploads.storage.base import (
    STREAM_CHUNK_SIZE,
    ChunkStore,
    MultipartPart,
    MultipartUploadInfo,
    ObjectInfo,
    RangedObject,
    parse_range_header,
)

MULTIPART_DIR = ".multipart"
MANIFEST_NAME = "manifest.json"


def _failure(operation: str, key: str, code: str, message: str) -> StorageFailure:
    return StorageFailure(
        message,
        details={"operation": operation, "key": key, "code": code},
    )


class LocalChunkStore(ChunkStore):
    """Chunk store backed by a directory on the local filesystem."""

    def __init__(self, root: str | Path | None = None) -> None:
        """
        Initialize the local chunk store.

        Args:
            root: Base directory. Defaults to UPLOAD_LOCAL_ROOT.
        """
        root = root or getattr(settings, "UPLOAD_LOCAL_ROOT", None)
        if not root:
            root = Path(settings.BASE_DIR) / "uploads"
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    # -------------------------------------------------------------------------
    # Path helpers
    # -------------------------------------------------------------------------

    def _path(self, key: str) -> Path:
        """Resolve a key to a path, refusing anything outside the root."""
        path = (self.root / key).resolve()
        if path == self.root or self.root not in path.parents:
            raise _failure("resolve", key, "InvalidKey", f"Invalid object key: {key}")
        if MULTIPART_DIR in path.relative_to(self.root).parts:
            raise _failure("resolve", key, "InvalidKey", f"Invalid object key: {key}")
        return path

    def _upload_dir(self, upload_id: str) -> Path:
        return self.root / MULTIPART_DIR / upload_id

    @staticmethod
    def _etag(data: bytes) -> str:
        return hashlib.md5(data).hexdigest()

    def _write_atomic(self, path: Path, data: bytes) -> None:
        """Write via a temp file and rename so readers never see partial data."""
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as tmp:
                tmp.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _info(self, path: Path) -> ObjectInfo:
        stat = path.stat()
        return ObjectInfo(
            key=path.relative_to(self.root).as_posix(),
            size=stat.st_size,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            etag=f"{stat.st_size:x}-{stat.st_mtime_ns:x}",
        )

    # -------------------------------------------------------------------------
    # Objects
    # -------------------------------------------------------------------------

    def put_object(
        self,
        key: str,
        data: bytes | bytearray,
        content_type: str | None = None,
        cache_control: str | None = None,
    ) -> None:
        path = self._path(key)
        try:
            self._write_atomic(path, data)
        except OSError as e:
            raise _failure("put_object", key, e.__class__.__name__, str(e)) from e

    def get_object(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise _failure(
                "get_object", key, "OBJECT_NOT_FOUND", f"Object not found: {key}"
            ) from e
        except OSError as e:
            raise _failure("get_object", key, e.__class__.__name__, str(e)) from e

    def head_object(self, key: str) -> ObjectInfo | None:
        path = self._path(key)
        if not path.is_file():
            return None
        try:
            return self._info(path)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise _failure("head_object", key, e.__class__.__name__, str(e)) from e

    def list_objects(self, prefix: str) -> list[ObjectInfo]:
        objects = []
        multipart_root = self.root / MULTIPART_DIR
        for dirpath, dirnames, filenames in os.walk(self.root):
            current = Path(dirpath)
            if current == multipart_root:
                dirnames[:] = []
                continue
            for name in filenames:
                if name.startswith(".tmp-"):
                    continue
                path = current / name
                key = path.relative_to(self.root).as_posix()
                if not key.startswith(prefix):
                    continue
                try:
                    objects.append(self._info(path))
                except FileNotFoundError:
                    # Deleted while walking
                    continue
                except OSError as e:
                    raise _failure(
                        "list_objects", key, e.__class__.__name__, str(e)
                    ) from e
        objects.sort(key=lambda obj: obj.key)
        return objects

    def delete_object(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise _failure("delete_object", key, e.__class__.__name__, str(e)) from e
        self._prune_empty_dirs(path.parent)

    def delete_prefix(self, prefix: str) -> int:
        deleted = 0
        for obj in self.list_objects(prefix):
            self.delete_object(obj.key)
            deleted += 1
        return deleted

    def _prune_empty_dirs(self, directory: Path) -> None:
        while directory != self.root and self.root in directory.parents:
            try:
                directory.rmdir()
            except OSError:
                return
            directory = directory.parent

    def generate_presigned_url(
        self, key: str, expires_in: int, method: str = "get"
    ) -> str:
        if method.lower() not in ("get", "put"):
            raise ValueError(f"Unsupported presign method: {method}")
        # No signing on local disk: hand back the file location itself
        return self._path(key).as_uri()

    def open_range(self, key: str, range_header: str | None = None) -> RangedObject:
        path = self._path(key)
        if not path.is_file():
            raise StreamNotFound("File not found", details={"key": key})

        info = self._info(path)
        size = info.size
        try:
            byte_range = parse_range_header(range_header, size)
        except ValueError:
            return RangedObject(
                status=416,
                body=iter(()),
                content_length=0,
                content_range=f"bytes */{size}",
                etag=f'"{info.etag}"',
            )

        if byte_range is None:
            start, end, status, content_range = 0, size - 1, 200, None
        else:
            start, end = byte_range
            status = 206
            content_range = f"bytes {start}-{end}/{size}"

        length = max(end - start + 1, 0)
        try:
            handle = path.open("rb")
            handle.seek(start)
        except OSError as e:
            raise _failure("open_range", key, e.__class__.__name__, str(e)) from e

        def body():
            remaining = length
            while remaining > 0:
                data = handle.read(min(STREAM_CHUNK_SIZE, remaining))
                if not data:
                    break
                remaining -= len(data)
                yield data

        return RangedObject(
            status=status,
            body=body(),
            content_length=length,
            content_range=content_range,
            etag=f'"{info.etag}"',
            _closer=handle.close,
        )

    # -------------------------------------------------------------------------
    # Multipart
    # -------------------------------------------------------------------------

    def _manifest(self, upload_id: str, key: str, operation: str) -> dict:
        manifest_path = self._upload_dir(upload_id) / MANIFEST_NAME
        try:
            manifest = json.loads(manifest_path.read_text())
        except FileNotFoundError as e:
            raise _failure(
                operation, key, "NoSuchUpload", f"Unknown multipart upload: {upload_id}"
            ) from e
        except (OSError, ValueError) as e:
            raise _failure(operation, key, e.__class__.__name__, str(e)) from e
        if manifest["key"] != key:
            raise _failure(
                operation, key, "NoSuchUpload", f"Upload {upload_id} is not for {key}"
            )
        return manifest

    def create_multipart_upload(self, key: str, content_type: str) -> str:
        self._path(key)
        upload_id = uuid.uuid4().hex
        upload_dir = self._upload_dir(upload_id)
        manifest = {
            "key": key,
            "content_type": content_type,
            "initiated": datetime.now(tz=timezone.utc).isoformat(),
        }
        try:
            upload_dir.mkdir(parents=True)
            (upload_dir / MANIFEST_NAME).write_text(json.dumps(manifest))
        except OSError as e:
            raise _failure(
                "create_multipart_upload", key, e.__class__.__name__, str(e)
            ) from e
        return upload_id

    def upload_part(
        self, key: str, upload_id: str, part_number: int, data: bytes
    ) -> str:
        self._manifest(upload_id, key, "upload_part")
        part_path = self._upload_dir(upload_id) / f"part_{part_number:05d}"
        try:
            self._write_atomic(part_path, data)
        except OSError as e:
            raise _failure("upload_part", key, e.__class__.__name__, str(e)) from e
        return self._etag(data)

    def complete_multipart_upload(
        self, key: str, upload_id: str, parts: list[MultipartPart]
    ) -> None:
        self._manifest(upload_id, key, "complete_multipart_upload")
        upload_dir = self._upload_dir(upload_id)

        numbers = [part.part_number for part in parts]
        if not parts or numbers != sorted(set(numbers)):
            raise _failure(
                "complete_multipart_upload",
                key,
                "InvalidPartOrder",
                "Parts must be listed in increasing part order",
            )

        uploaded = {part.part_number: part for part in self.list_parts(key, upload_id)}
        for part in parts:
            stored = uploaded.get(part.part_number)
            if stored is None or stored.etag != part.etag.strip('"'):
                raise _failure(
                    "complete_multipart_upload",
                    key,
                    "InvalidPart",
                    f"Part {part.part_number} is missing or has a different etag",
                )

        target = self._path(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as out:
                for part in parts:
                    part_path = upload_dir / f"part_{part.part_number:05d}"
                    with part_path.open("rb") as src:
                        shutil.copyfileobj(src, out, STREAM_CHUNK_SIZE)
            os.replace(tmp_name, target)
        except OSError as e:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise _failure(
                "complete_multipart_upload", key, e.__class__.__name__, str(e)
            ) from e

        shutil.rmtree(upload_dir, ignore_errors=True)

    def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        self._manifest(upload_id, key, "abort_multipart_upload")
        shutil.rmtree(self._upload_dir(upload_id), ignore_errors=True)

    def list_parts(self, key: str, upload_id: str) -> list[MultipartPart]:
        upload_dir = self._upload_dir(upload_id)
        if not (upload_dir / MANIFEST_NAME).is_file():
            return []
        parts = []
        try:
            for part_path in sorted(upload_dir.glob("part_*")):
                data = part_path.read_bytes()
                parts.append(
                    MultipartPart(
                        part_number=int(part_path.name.split("_", 1)[1]),
                        etag=self._etag(data),
                        size=len(data),
                    )
                )
        except OSError as e:
            raise _failure("list_parts", key, e.__class__.__name__, str(e)) from e
        return parts

    def list_multipart_uploads(self, prefix: str = "") -> list[MultipartUploadInfo]:
        uploads = []
        multipart_root = self.root / MULTIPART_DIR
        if not multipart_root.is_dir():
            return uploads
        try:
            for upload_dir in sorted(multipart_root.iterdir()):
                manifest_path = upload_dir / MANIFEST_NAME
                if not manifest_path.is_file():
                    continue
                manifest = json.loads(manifest_path.read_text())
                if not manifest["key"].startswith(prefix):
                    continue
                uploads.append(
                    MultipartUploadInfo(
                        key=manifest["key"],
                        upload_id=upload_dir.name,
                        initiated=datetime.fromisoformat(manifest["initiated"]),
                    )
                )
        except (OSError, ValueError) as e:
            raise _failure(
                "list_multipart_uploads", prefix, e.__class__.__name__, str(e)
            ) from e
        return uploads

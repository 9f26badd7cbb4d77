"""
S3 implementation of the chunk store.

Works against any S3-compatible service (AWS S3, Cloudflare R2, MinIO):
- Chunk and assembled objects via PutObject/GetObject/ListObjectsV2
- Batched prefix deletion via DeleteObjects (1000 keys per request)
- Multipart upload primitives for large-file reconstruction
- Range reads through a presigned GET URL, relayed with requests

Every botocore or requests error is converted to StorageFailure with the
operation, key and backend error code in its details.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager

import boto3
import requests
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

from uploads.exceptions import StorageFailure, StreamNotFound
from uploads.storage.base import (
    STREAM_CHUNK_SIZE,
    ChunkStore,
    MultipartPart,
    MultipartUploadInfo,
    ObjectInfo,
    RangedObject,
)

logger = logging.getLogger(__name__)

DELETE_BATCH_SIZE = 1000
NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
STREAM_CONNECT_TIMEOUT = 10
STREAM_READ_TIMEOUT = 60


def _error_code(exc: Exception) -> str:
    if isinstance(exc, ClientError):
        return str(exc.response.get("Error", {}).get("Code", "Unknown"))
    return exc.__class__.__name__


class S3ChunkStore(ChunkStore):
    """
    Chunk store backed by an S3 bucket.

    The boto3 client is created on first use so the store can be built at
    import time without credentials being present.
    """

    def __init__(
        self,
        bucket_name: str | None = None,
        endpoint_url: str | None = None,
        region_name: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        client=None,
    ) -> None:
        """
        Initialize the S3 chunk store.

        Args:
            bucket_name: Bucket name. Defaults to AWS_STORAGE_BUCKET_NAME.
            endpoint_url: Custom endpoint (R2, MinIO). Defaults to AWS_S3_ENDPOINT_URL.
            region_name: Region. Defaults to AWS_S3_REGION_NAME ("auto" for R2).
            access_key_id: Access key. Defaults to AWS_ACCESS_KEY_ID.
            secret_access_key: Secret key. Defaults to AWS_SECRET_ACCESS_KEY.
            client: Pre-built boto3 client (tests)
        """
        self.bucket_name = bucket_name or getattr(
            settings, "AWS_STORAGE_BUCKET_NAME", ""
        )
        self.endpoint_url = endpoint_url or getattr(settings, "AWS_S3_ENDPOINT_URL", None)
        self.region_name = region_name or getattr(settings, "AWS_S3_REGION_NAME", None)
        self.access_key_id = access_key_id or getattr(settings, "AWS_ACCESS_KEY_ID", None)
        self.secret_access_key = secret_access_key or getattr(
            settings, "AWS_SECRET_ACCESS_KEY", None
        )
        self._s3_client = client

    @property
    def s3_client(self):
        """Get or create S3 client."""
        if self._s3_client is None:
            self._s3_client = boto3.client(
                "s3",
                endpoint_url=self.endpoint_url or None,
                region_name=self.region_name or None,
                aws_access_key_id=self.access_key_id or None,
                aws_secret_access_key=self.secret_access_key or None,
                config=Config(
                    signature_version="s3v4",
                    retries={"max_attempts": 3, "mode": "standard"},
                ),
            )
        return self._s3_client

    @contextmanager
    def _translate_errors(self, operation: str, key: str = ""):
        """Convert backend exceptions raised inside the block to StorageFailure."""
        try:
            yield
        except (ClientError, BotoCoreError, requests.RequestException) as e:
            code = _error_code(e)
            logger.warning(
                f"S3 {operation} failed for {key!r}: {code}",
                extra={
                    "event_type": "storage_operation_failed",
                    "operation": operation,
                    "key": key,
                    "code": code,
                },
            )
            raise StorageFailure(
                f"Storage {operation} failed: {code}",
                details={"operation": operation, "key": key, "code": code},
            ) from e

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
        params = {"Bucket": self.bucket_name, "Key": key, "Body": data}
        if content_type:
            params["ContentType"] = content_type
        if cache_control:
            params["CacheControl"] = cache_control
        with self._translate_errors("put_object", key):
            self.s3_client.put_object(**params)

    def get_object(self, key: str) -> bytes:
        with self._translate_errors("get_object", key):
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
            body = response["Body"]
            try:
                return body.read()
            finally:
                body.close()

    def head_object(self, key: str) -> ObjectInfo | None:
        try:
            response = self.s3_client.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return None
            with self._translate_errors("head_object", key):
                raise
        except BotoCoreError:
            with self._translate_errors("head_object", key):
                raise

        return ObjectInfo(
            key=key,
            size=response.get("ContentLength", 0),
            last_modified=response.get("LastModified"),
            etag=(response.get("ETag") or "").strip('"') or None,
            content_type=response.get("ContentType"),
        )

    def list_objects(self, prefix: str) -> list[ObjectInfo]:
        objects = []
        with self._translate_errors("list_objects", prefix):
            paginator = self.s3_client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                for item in page.get("Contents", []):
                    objects.append(
                        ObjectInfo(
                            key=item["Key"],
                            size=item.get("Size", 0),
                            last_modified=item.get("LastModified"),
                            etag=(item.get("ETag") or "").strip('"') or None,
                        )
                    )
        objects.sort(key=lambda obj: obj.key)
        return objects

    def delete_object(self, key: str) -> None:
        with self._translate_errors("delete_object", key):
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)

    def delete_prefix(self, prefix: str) -> int:
        keys = self.list_keys(prefix)
        deleted = 0
        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[start : start + DELETE_BATCH_SIZE]
            with self._translate_errors("delete_prefix", prefix):
                response = self.s3_client.delete_objects(
                    Bucket=self.bucket_name,
                    Delete={
                        "Objects": [{"Key": key} for key in batch],
                        "Quiet": True,
                    },
                )
            errors = response.get("Errors", [])
            if errors:
                raise StorageFailure(
                    f"Failed to delete {len(errors)} objects under {prefix}",
                    details={
                        "operation": "delete_prefix",
                        "key": prefix,
                        "failed": [err.get("Key") for err in errors],
                    },
                )
            deleted += len(batch)
        return deleted

    def generate_presigned_url(
        self, key: str, expires_in: int, method: str = "get"
    ) -> str:
        client_method = {"get": "get_object", "put": "put_object"}.get(method.lower())
        if client_method is None:
            raise ValueError(f"Unsupported presign method: {method}")
        with self._translate_errors("generate_presigned_url", key):
            return self.s3_client.generate_presigned_url(
                client_method,
                Params={"Bucket": self.bucket_name, "Key": key},
                ExpiresIn=expires_in,
            )

    def open_range(self, key: str, range_header: str | None = None) -> RangedObject:
        expiry = getattr(settings, "UPLOAD_STREAM_URL_EXPIRY", 7200)
        url = self.generate_presigned_url(key, expiry, method="get")
        headers = {"Range": range_header} if range_header else {}

        with self._translate_errors("open_range", key):
            response = requests.get(
                url,
                headers=headers,
                stream=True,
                timeout=(STREAM_CONNECT_TIMEOUT, STREAM_READ_TIMEOUT),
            )

        if response.status_code == 404:
            response.close()
            raise StreamNotFound("File not found", details={"key": key})

        if response.status_code == 416:
            content_range = response.headers.get("Content-Range")
            response.close()
            return RangedObject(
                status=416,
                body=iter(()),
                content_length=0,
                content_range=content_range,
            )

        if response.status_code not in (200, 206):
            status = response.status_code
            response.close()
            raise StorageFailure(
                f"Storage read failed with status {status}",
                details={"operation": "open_range", "key": key, "code": str(status)},
            )

        length = response.headers.get("Content-Length")
        return RangedObject(
            status=response.status_code,
            body=response.iter_content(chunk_size=STREAM_CHUNK_SIZE),
            content_length=int(length) if length is not None else None,
            content_range=response.headers.get("Content-Range"),
            etag=response.headers.get("ETag"),
            content_type=response.headers.get("Content-Type"),
            _closer=response.close,
        )

    # -------------------------------------------------------------------------
    # Multipart
    # -------------------------------------------------------------------------

    def create_multipart_upload(self, key: str, content_type: str) -> str:
        with self._translate_errors("create_multipart_upload", key):
            response = self.s3_client.create_multipart_upload(
                Bucket=self.bucket_name,
                Key=key,
                ContentType=content_type,
            )
        return response["UploadId"]

    def upload_part(
        self, key: str, upload_id: str, part_number: int, data: bytes
    ) -> str:
        with self._translate_errors("upload_part", key):
            response = self.s3_client.upload_part(
                Bucket=self.bucket_name,
                Key=key,
                UploadId=upload_id,
                PartNumber=part_number,
                Body=data,
            )
        return response["ETag"]

    def complete_multipart_upload(
        self, key: str, upload_id: str, parts: list[MultipartPart]
    ) -> None:
        with self._translate_errors("complete_multipart_upload", key):
            self.s3_client.complete_multipart_upload(
                Bucket=self.bucket_name,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={
                    "Parts": [
                        {"PartNumber": part.part_number, "ETag": part.etag}
                        for part in parts
                    ]
                },
            )

    def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        with self._translate_errors("abort_multipart_upload", key):
            self.s3_client.abort_multipart_upload(
                Bucket=self.bucket_name,
                Key=key,
                UploadId=upload_id,
            )

    def list_parts(self, key: str, upload_id: str) -> list[MultipartPart]:
        parts = []
        try:
            paginator = self.s3_client.get_paginator("list_parts")
            for page in paginator.paginate(
                Bucket=self.bucket_name, Key=key, UploadId=upload_id
            ):
                for item in page.get("Parts", []):
                    parts.append(
                        MultipartPart(
                            part_number=item["PartNumber"],
                            etag=item["ETag"],
                            size=item.get("Size", 0),
                        )
                    )
        except ClientError as e:
            if _error_code(e) == "NoSuchUpload":
                return []
            with self._translate_errors("list_parts", key):
                raise
        except BotoCoreError:
            with self._translate_errors("list_parts", key):
                raise
        return parts

    def list_multipart_uploads(self, prefix: str = "") -> list[MultipartUploadInfo]:
        uploads = []
        with self._translate_errors("list_multipart_uploads", prefix):
            paginator = self.s3_client.get_paginator("list_multipart_uploads")
            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                for item in page.get("Uploads", []):
                    uploads.append(
                        MultipartUploadInfo(
                            key=item["Key"],
                            upload_id=item["UploadId"],
                            initiated=item.get("Initiated"),
                        )
                    )
        return uploads

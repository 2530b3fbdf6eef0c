"""S3-compatible storage provider.

This module provides a storage provider that works with AWS S3, MinIO and
other S3-compatible object storage services.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any, BinaryIO

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from storage_archiver.common.errors import ObjectNotFoundError, StorageOperationError
from storage_archiver.infra.storage.provider import (
    DEFAULT_CONTENT_TYPE,
    StorageObject,
    UploadResult,
)

if TYPE_CHECKING:
    from storage_archiver.common.config import Settings

logger = logging.getLogger("storage_archiver.storage.s3")

DEFAULT_PART_SIZE = 5 * 1024 * 1024
DEFAULT_QUEUE_SIZE = 1
DEFAULT_UPLOAD_TIMEOUT = 60 * 60
DEFAULT_URL_EXPIRES_IN = 3600
LIST_PAGE_SIZE = 1000

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


def build_s3_client(settings: "Settings") -> Any:
    """Create a boto3 S3 client from settings."""
    addressing_style = "path" if settings.S3_FORCE_PATH_STYLE else "auto"
    config = Config(
        s3={"addressing_style": addressing_style},
        signature_version="s3v4",
    )
    if settings.AWS_ENDPOINT_URL:
        logger.info("Using custom S3 endpoint: %s", settings.AWS_ENDPOINT_URL)

    return boto3.client(
        "s3",
        endpoint_url=settings.AWS_ENDPOINT_URL,
        region_name=settings.AWS_REGION,
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
        use_ssl=bool(settings.S3_USE_SSL),
        config=config,
    )


def _is_not_found(exc: ClientError) -> bool:
    error = exc.response.get("Error", {})
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return str(error.get("Code")) in _NOT_FOUND_CODES or status == 404


class _DeadlineReader:
    """File-like wrapper that fails reads once the upload deadline has passed."""

    def __init__(self, stream: BinaryIO, timeout: float) -> None:
        self._stream = stream
        self._timeout = timeout
        self._deadline = time.monotonic() + timeout
        self.bytes_read = 0

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    def read(self, size: int = -1) -> bytes:
        if time.monotonic() > self._deadline:
            raise StorageOperationError(
                f"Upload timed out after {self._timeout:g} seconds"
            )
        data = self._stream.read(size)
        self.bytes_read += len(data)
        return data


class S3StorageProvider:
    """S3-compatible storage provider.

    The boto3 client is created by the caller and passed in, so one client
    can be shared by several providers or replaced in tests.
    """

    name = "S3"

    def __init__(
        self,
        client: Any,
        *,
        part_size: int = DEFAULT_PART_SIZE,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        upload_timeout: float = DEFAULT_UPLOAD_TIMEOUT,
    ) -> None:
        self._client = client
        self._part_size = int(part_size)
        self._queue_size = max(1, int(queue_size))
        self._upload_timeout = upload_timeout

    @classmethod
    def from_settings(
        cls, settings: "Settings", *, client: Any | None = None
    ) -> "S3StorageProvider":
        return cls(
            client if client is not None else build_s3_client(settings),
            part_size=settings.UPLOAD_PART_SIZE,
            queue_size=settings.UPLOAD_QUEUE_SIZE,
            upload_timeout=settings.UPLOAD_TIMEOUT,
        )

    def _transfer_config(self) -> TransferConfig:
        return TransferConfig(
            multipart_threshold=self._part_size,
            multipart_chunksize=self._part_size,
            max_concurrency=self._queue_size,
            max_in_memory_upload_chunks=self._queue_size,
        )

    def list_objects(
        self,
        *,
        container: str,
        prefix: str = "",
        max_keys: int | None = None,
    ) -> list[StorageObject]:
        """List objects, following continuation tokens across pages."""
        logger.info("Listing objects in s3://%s/%s", container, prefix)
        pagination: dict[str, int] = {"PageSize": LIST_PAGE_SIZE}
        if max_keys:
            pagination["MaxItems"] = int(max_keys)

        objects: list[StorageObject] = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            pages = paginator.paginate(
                Bucket=container,
                Prefix=prefix or "",
                PaginationConfig=pagination,
            )
            for page in pages:
                for item in page.get("Contents", []) or []:
                    objects.append(
                        StorageObject(
                            key=item.get("Key", ""),
                            size=item.get("Size"),
                            last_modified=item.get("LastModified"),
                            etag=item.get("ETag"),
                        )
                    )
        except (ClientError, BotoCoreError) as exc:
            raise StorageOperationError(f"Failed to list objects: {exc}") from exc

        logger.info("Found %d objects", len(objects))
        return objects

    def get_object_stream(self, *, container: str, key: str) -> BinaryIO:
        logger.debug("Fetching s3://%s/%s", container, key)
        try:
            response = self._client.get_object(Bucket=container, Key=key)
        except ClientError as exc:
            if _is_not_found(exc):
                raise ObjectNotFoundError(f"Object not found: {key}") from exc
            raise StorageOperationError(f"Failed to fetch {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageOperationError(f"Failed to fetch {key}: {exc}") from exc

        body = response.get("Body")
        if body is None:
            raise StorageOperationError(f"No body in response for {key}")
        return body

    def upload_object(
        self,
        *,
        container: str,
        key: str,
        stream: BinaryIO,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> UploadResult:
        """Stream ``stream`` into S3 using a managed multipart upload.

        Parts of ``part_size`` bytes are sent with at most ``queue_size`` in
        flight. Streams shorter than one part are sent with a single PUT. A
        failing read aborts the multipart upload, so nothing is committed.
        """
        logger.info("Starting upload to s3://%s/%s", container, key)
        extra_args: dict[str, Any] = {
            "ContentType": content_type or DEFAULT_CONTENT_TYPE,
        }
        if metadata:
            extra_args["Metadata"] = metadata

        reader = _DeadlineReader(stream, self._upload_timeout)
        try:
            self._client.upload_fileobj(
                reader,
                container,
                key,
                ExtraArgs=extra_args,
                Config=self._transfer_config(),
            )
        except StorageOperationError:
            raise
        except Exception as exc:
            raise StorageOperationError(f"Upload failed: {exc}") from exc

        try:
            head = self._client.head_object(Bucket=container, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise StorageOperationError(
                f"Failed to get object metadata: {exc}"
            ) from exc

        logger.info(
            "Upload completed: s3://%s/%s (%d bytes)", container, key, reader.bytes_read
        )
        return UploadResult(
            key=key,
            location=f"s3://{container}/{key}",
            etag=head.get("ETag"),
            version_id=head.get("VersionId"),
        )

    def delete_object(self, *, container: str, key: str) -> None:
        try:
            self._client.delete_object(Bucket=container, Key=key)
        except ClientError as exc:
            if _is_not_found(exc):
                return
            raise StorageOperationError(f"Failed to delete {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageOperationError(f"Failed to delete {key}: {exc}") from exc
        logger.info("Deleted s3://%s/%s", container, key)

    def object_exists(self, *, container: str, key: str) -> bool:
        try:
            self._client.head_object(Bucket=container, Key=key)
        except ClientError as exc:
            if _is_not_found(exc):
                return False
            raise StorageOperationError(f"Failed to check {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageOperationError(f"Failed to check {key}: {exc}") from exc
        return True

    def get_object_url(
        self,
        *,
        container: str,
        key: str,
        expires_in: int | None = None,
    ) -> str:
        """Generate a presigned URL for downloading an object."""
        try:
            url = self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": container, "Key": key},
                ExpiresIn=int(expires_in or DEFAULT_URL_EXPIRES_IN),
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageOperationError(
                f"Failed to generate signed URL: {exc}"
            ) from exc

        if not url:
            raise StorageOperationError("Generated presigned URL is empty")
        return str(url)

    def create_container(self, *, container: str) -> None:
        # Buckets are provisioned out of band.
        logger.info("Container %s assumed to exist", container)

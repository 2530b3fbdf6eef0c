"""Streaming archive pipeline.

This module provides the application service that lists the objects under a
source location, streams each of them into an incremental ZIP encoder and
concurrently uploads the encoded bytes to a target location, so neither the
source files nor the archive are ever held in memory as a whole.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial

from storage_archiver.common.config import Settings
from storage_archiver.common.errors import (
    ArchiveError,
    ArchiveOutputClosedError,
    ConfigurationError,
)
from storage_archiver.common.uri import parse_uri
from storage_archiver.infra.observability.metrics import (
    ARCHIVE_DURATION,
    ARCHIVE_FILES,
    ARCHIVE_RUNS,
)
from storage_archiver.infra.storage.factory import StorageProviderFactory
from storage_archiver.infra.storage.provider import (
    DEFAULT_CONTENT_TYPE,
    StorageObject,
    StorageProvider,
    UploadResult,
)
from storage_archiver.services.encoder import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_COMPRESSION_LEVEL,
    ArchiveEncoder,
)

logger = logging.getLogger("storage_archiver.archiver")

# 24 hours
DEFAULT_SIGNED_URL_EXPIRATION = 24 * 60 * 60


@dataclass(frozen=True, slots=True)
class ArchiveResult:
    """Outcome of a successful archive run."""

    upload: UploadResult
    source_uri: str
    target_uri: str
    compression_level: int
    files_count: int
    failed_keys: tuple[str, ...]
    duration_seconds: float

    @property
    def failed_count(self) -> int:
        return len(self.failed_keys)

    @property
    def listed_count(self) -> int:
        return self.files_count + self.failed_count

    @property
    def key(self) -> str:
        return self.upload.key

    @property
    def location(self) -> str:
        return self.upload.location

    @property
    def url(self) -> str | None:
        return self.upload.url


def entry_name(key: str, prefix: str) -> str:
    """Name of ``key`` inside the archive, relative to the listing prefix."""
    name = key[len(prefix) :] if prefix and key.startswith(prefix) else key
    name = name.lstrip("/")
    return name or key.rpartition("/")[2]


def _abort_on_upload_failure(encoder: ArchiveEncoder, future: Future) -> None:
    exc = future.exception()
    if exc is not None:
        encoder.abort(exc)


class Archiver:
    """Application service running one archive operation per call.

    Provider instances come from ``providers`` and may be reused across
    runs; nothing else is shared between calls.
    """

    def __init__(
        self,
        providers: StorageProviderFactory,
        *,
        queue_size: int = 1,
        url_expires_in: int = DEFAULT_SIGNED_URL_EXPIRATION,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._providers = providers
        self._queue_size = max(1, int(queue_size))
        self._url_expires_in = int(url_expires_in)
        self._chunk_size = chunk_size

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        providers: StorageProviderFactory | None = None,
    ) -> "Archiver":
        return cls(
            providers or StorageProviderFactory(settings),
            queue_size=settings.UPLOAD_QUEUE_SIZE,
            url_expires_in=settings.SIGNED_URL_EXPIRES_SECONDS,
        )

    def archive(
        self,
        source_uri: str,
        target_uri: str,
        compression_level: int = DEFAULT_COMPRESSION_LEVEL,
    ) -> ArchiveResult:
        """Archive every file under ``source_uri`` into the ZIP at ``target_uri``.

        Args:
            source_uri: ``s3://bucket/prefix`` or ``file://directory``.
            target_uri: ``s3://bucket/key.zip`` or ``file://path/key.zip``.
            compression_level: 0 stores entries, 1-9 deflates them.

        Returns:
            ArchiveResult with the upload details, the access URL and the
            number of archived and skipped files.

        Raises:
            ConfigurationError: If a URI or the compression level is invalid.
            ArchiveError: If no files are found or none could be archived.
            StorageOperationError: If listing, uploading or URL signing fails.
        """
        started = time.perf_counter()
        try:
            result = self._run(source_uri, target_uri, compression_level, started)
        except Exception:
            ARCHIVE_RUNS.labels("failure").inc()
            raise
        ARCHIVE_RUNS.labels("success").inc()
        ARCHIVE_FILES.labels("archived").inc(result.files_count)
        ARCHIVE_FILES.labels("failed").inc(result.failed_count)
        ARCHIVE_DURATION.observe(result.duration_seconds)
        return result

    def _run(
        self,
        source_uri: str,
        target_uri: str,
        compression_level: int,
        started: float,
    ) -> ArchiveResult:
        if not 0 <= compression_level <= 9:
            raise ConfigurationError(
                f"Compression level must be between 0 and 9, got {compression_level}"
            )
        source = parse_uri(source_uri)
        target = parse_uri(target_uri)
        source_container, prefix = source.listing_target()
        target_container, target_key = target.object_target()

        source_provider = self._providers.for_scheme(source.scheme)
        target_provider = self._providers.for_scheme(target.scheme)
        logger.info(
            "Archiving %s -> %s (source provider: %s, target provider: %s)",
            source_uri,
            target_uri,
            source_provider.name,
            target_provider.name,
        )

        objects = source_provider.list_objects(container=source_container, prefix=prefix)
        if not objects:
            raise ArchiveError(f"No files found in {source_uri}")
        files = [obj for obj in objects if not obj.is_directory_marker]
        if not files:
            raise ArchiveError(f"No files found (only directories) in {source_uri}")
        logger.info("Archiving %d files to %s", len(files), target_uri)

        target_provider.create_container(container=target_container)

        encoder = ArchiveEncoder(
            compression_level=compression_level,
            queue_size=self._queue_size,
            chunk_size=self._chunk_size,
        )
        open_failures: list[str] = []
        with ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="archive-upload"
        ) as executor:
            upload_future = executor.submit(
                target_provider.upload_object,
                container=target_container,
                key=target_key,
                stream=encoder.output,
                content_type=DEFAULT_CONTENT_TYPE,
            )
            upload_future.add_done_callback(partial(_abort_on_upload_failure, encoder))
            try:
                for obj in files:
                    self._dispatch(
                        encoder,
                        source_provider,
                        source_container,
                        prefix,
                        obj,
                        open_failures,
                    )
                summary = encoder.finalize()
            except ArchiveOutputClosedError as exc:
                encoder.abort(exc)
                upload_exc = upload_future.exception()
                if upload_exc is not None:
                    raise upload_exc from None
                raise
            except BaseException as exc:
                encoder.abort(exc)
                raise
            finally:
                encoder.close()
            upload = upload_future.result()

        url = target_provider.get_object_url(
            container=target_container,
            key=target_key,
            expires_in=self._url_expires_in,
        )
        duration = time.perf_counter() - started
        result = ArchiveResult(
            upload=UploadResult(
                key=upload.key,
                location=upload.location,
                etag=upload.etag,
                version_id=upload.version_id,
                url=url,
            ),
            source_uri=source_uri,
            target_uri=target_uri,
            compression_level=compression_level,
            files_count=summary.files_count,
            failed_keys=tuple(open_failures) + summary.failed,
            duration_seconds=duration,
        )
        logger.info(
            "Archive completed: %s (%d files, %d failed, %.2fs)",
            result.location,
            result.files_count,
            result.failed_count,
            duration,
            extra={
                "extra": {
                    "location": result.location,
                    "files_count": result.files_count,
                    "failed_count": result.failed_count,
                    "duration_ms": round(duration * 1000, 3),
                }
            },
        )
        return result

    @staticmethod
    def _dispatch(
        encoder: ArchiveEncoder,
        provider: StorageProvider,
        container: str,
        prefix: str,
        obj: StorageObject,
        open_failures: list[str],
    ) -> None:
        name = entry_name(obj.key, prefix)
        try:
            stream = provider.get_object_stream(container=container, key=obj.key)
        except Exception as exc:
            logger.warning("Failed to add %s: %s", obj.key, exc)
            open_failures.append(obj.key)
            return
        encoder.append(name, stream, source_key=obj.key, size=obj.size)
        logger.debug("Queued %s as %s", obj.key, name)

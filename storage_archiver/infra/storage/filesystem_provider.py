"""Local filesystem storage provider.

Containers are directories below a base directory and keys are
``/``-separated paths relative to their container.
"""

from __future__ import annotations

import logging
import os
import shutil
import uuid
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import BinaryIO

from storage_archiver.common.errors import ObjectNotFoundError, StorageOperationError
from storage_archiver.infra.storage.provider import StorageObject, UploadResult

logger = logging.getLogger("storage_archiver.storage.filesystem")

COPY_CHUNK_SIZE = 1024 * 1024
_TEMP_PREFIX = ".upload-"


def _raise_walk_error(search_root: Path, exc: OSError) -> None:
    # A missing listing root is an empty listing.
    if isinstance(exc, FileNotFoundError) and exc.filename is not None:
        if Path(exc.filename) == search_root:
            return
    raise exc


class FilesystemStorageProvider:
    """Storage provider backed by the local filesystem."""

    name = "Filesystem"

    def __init__(self, base_dir: str | Path = ".") -> None:
        self._base_dir = Path(base_dir).resolve()

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _full_path(self, container: str, key: str = "") -> Path:
        return (self._base_dir / container / key).resolve()

    def list_objects(
        self,
        *,
        container: str,
        prefix: str = "",
        max_keys: int | None = None,
    ) -> list[StorageObject]:
        root = self._full_path(container)
        # Only the directory part of the prefix can narrow the walk.
        search_root = root / prefix.rpartition("/")[0] if "/" in prefix else root
        logger.info("Listing objects in %s (prefix=%r)", root, prefix)

        objects: list[StorageObject] = []
        try:
            for directory, dirnames, filenames in os.walk(
                search_root, onerror=partial(_raise_walk_error, search_root)
            ):
                dirnames.sort()
                for filename in sorted(filenames):
                    if filename.startswith(_TEMP_PREFIX):
                        continue
                    path = Path(directory) / filename
                    key = path.relative_to(root).as_posix()
                    if prefix and not key.startswith(prefix):
                        continue
                    stats = path.stat()
                    objects.append(
                        StorageObject(
                            key=key,
                            size=stats.st_size,
                            last_modified=datetime.fromtimestamp(
                                stats.st_mtime, tz=timezone.utc
                            ),
                        )
                    )
                    if max_keys and len(objects) >= max_keys:
                        logger.info("Found %d objects (max_keys reached)", len(objects))
                        return objects
        except OSError as exc:
            raise StorageOperationError(f"Failed to list objects: {exc}") from exc

        logger.info("Found %d objects", len(objects))
        return objects

    def get_object_stream(self, *, container: str, key: str) -> BinaryIO:
        path = self._full_path(container, key)
        logger.debug("Opening %s", path)
        try:
            return path.open("rb")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as exc:
            raise ObjectNotFoundError(f"File not found: {key}") from exc
        except OSError as exc:
            raise StorageOperationError(f"Failed to fetch {key}: {exc}") from exc

    def upload_object(
        self,
        *,
        container: str,
        key: str,
        stream: BinaryIO,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> UploadResult:
        target = self._full_path(container, key)
        temp_path = target.with_name(f"{_TEMP_PREFIX}{uuid.uuid4().hex}-{target.name}")
        logger.info("Starting upload to %s", target.as_uri())

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with temp_path.open("wb") as handle:
                shutil.copyfileobj(stream, handle, COPY_CHUNK_SIZE)
            os.replace(temp_path, target)
        except Exception as exc:
            temp_path.unlink(missing_ok=True)
            raise StorageOperationError(f"Upload failed: {exc}") from exc

        logger.info(
            "Upload completed: %s (%d bytes)",
            target.as_uri(),
            target.stat().st_size,
        )
        return UploadResult(key=key, location=target.as_uri())

    def delete_object(self, *, container: str, key: str) -> None:
        path = self._full_path(container, key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageOperationError(f"Failed to delete {key}: {exc}") from exc
        logger.info("Deleted %s", path.as_uri())

    def object_exists(self, *, container: str, key: str) -> bool:
        try:
            return self._full_path(container, key).is_file()
        except OSError as exc:
            raise StorageOperationError(f"Failed to check {key}: {exc}") from exc

    def get_object_url(
        self,
        *,
        container: str,
        key: str,
        expires_in: int | None = None,
    ) -> str:
        if not self.object_exists(container=container, key=key):
            raise ObjectNotFoundError(f"File not found: {key}")
        return self._full_path(container, key).as_uri()

    def create_container(self, *, container: str) -> None:
        path = self._full_path(container)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageOperationError(
                f"Failed to create container {container}: {exc}"
            ) from exc
        logger.info("Container directory ready: %s", path)

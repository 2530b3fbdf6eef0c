"""Storage provider protocol and data types.

This module defines the capability every storage backend implements so the
archiver can list, read and write objects without knowing whether it talks to
a local directory or an S3-compatible object store.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import BinaryIO, Protocol

DEFAULT_CONTENT_TYPE = "application/zip"


@dataclass(frozen=True, slots=True)
class StorageObject:
    """An object discovered by listing a container."""

    key: str
    size: int | None = None
    last_modified: datetime | None = None
    etag: str | None = None

    @property
    def is_directory_marker(self) -> bool:
        return not self.key or self.key.endswith("/")


@dataclass(frozen=True, slots=True)
class UploadResult:
    """Result of committing an uploaded object."""

    key: str
    location: str
    etag: str | None = None
    version_id: str | None = None
    url: str | None = None


class StorageProvider(Protocol):
    """Protocol defining the interface for storage backends.

    Implementations wrap every backend failure into StorageOperationError,
    keeping the backend message, and raise ObjectNotFoundError when a
    requested object does not exist.
    """

    name: str

    def list_objects(
        self,
        *,
        container: str,
        prefix: str = "",
        max_keys: int | None = None,
    ) -> list[StorageObject]:
        """List objects whose key starts with ``prefix``.

        Directory markers (keys ending in ``/``) may be returned; callers
        decide whether to treat them as files.

        Raises:
            StorageOperationError: If the listing fails.
        """
        ...

    def get_object_stream(self, *, container: str, key: str) -> BinaryIO:
        """Open an object for sequential reading.

        The caller owns the returned stream and must close it.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            StorageOperationError: If the object cannot be opened.
        """
        ...

    def upload_object(
        self,
        *,
        container: str,
        key: str,
        stream: BinaryIO,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> UploadResult:
        """Consume ``stream`` to completion and commit it as ``key``.

        The stream length is not known in advance. A failure while reading
        the stream leaves no committed object behind.

        Raises:
            StorageOperationError: If the upload fails.
        """
        ...

    def delete_object(self, *, container: str, key: str) -> None:
        """Delete an object. Deleting a missing object is not an error."""
        ...

    def object_exists(self, *, container: str, key: str) -> bool:
        """Return whether the object exists."""
        ...

    def get_object_url(
        self,
        *,
        container: str,
        key: str,
        expires_in: int | None = None,
    ) -> str:
        """Return a URL giving read access to the object.

        Object stores return a time-limited signed URL; the filesystem returns
        a ``file://`` URL and ignores ``expires_in``.
        """
        ...

    def create_container(self, *, container: str) -> None:
        """Create the container if it does not exist."""
        ...

"""Storage location URIs.

Two literal forms are understood:

* ``s3://bucket/key/or/prefix`` - an object-store bucket followed by an
  optional key or prefix (an empty path is the bucket root).
* ``file://path`` - a filesystem path taken verbatim, relative (``./out``) or
  absolute (``/srv/out``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from storage_archiver.common.errors import ConfigurationError

_DUPLICATE_SLASHES = re.compile(r"/+")


class StorageScheme(str, Enum):
    FILESYSTEM = "file"
    OBJECT_STORE = "s3"

    @property
    def prefix(self) -> str:
        return f"{self.value}://"


@dataclass(frozen=True, slots=True)
class ParsedLocation:
    """A storage URI split into scheme, container and path."""

    scheme: StorageScheme
    container: str
    path: str
    uri: str

    def listing_target(self) -> tuple[str, str]:
        """Return the ``(container, prefix)`` pair to list when used as a source.

        A filesystem path names the directory to archive, so it becomes the
        container and everything below it is listed.
        """
        if self.scheme is StorageScheme.OBJECT_STORE:
            return self.container, self.path
        return self.path, ""

    def object_target(self) -> tuple[str, str]:
        """Return the ``(container, key)`` pair of a single object."""
        if self.scheme is StorageScheme.OBJECT_STORE:
            container, key = self.container, self.path
        else:
            container, key = _split_directory(self.path)
        if not key or key.endswith("/"):
            raise ConfigurationError(
                f"Invalid target URI: {self.uri} (an object key is required)"
            )
        return container, key


def parse_uri(uri: str) -> ParsedLocation:
    """Parse ``s3://bucket/path`` or ``file://path`` into a ParsedLocation.

    Raises:
        ConfigurationError: If the URI is empty, uses an unsupported scheme,
            lacks a bucket (s3) or lacks a path (file).
    """
    if not uri:
        raise ConfigurationError("URI cannot be empty")

    if uri.startswith(StorageScheme.OBJECT_STORE.prefix):
        remainder = uri[len(StorageScheme.OBJECT_STORE.prefix) :]
        bucket, _, path = remainder.partition("/")
        if not bucket:
            raise ConfigurationError(f"Invalid S3 URI: {uri} (missing bucket)")
        return ParsedLocation(
            scheme=StorageScheme.OBJECT_STORE,
            container=bucket,
            path=path,
            uri=uri,
        )

    if uri.startswith(StorageScheme.FILESYSTEM.prefix):
        path = uri[len(StorageScheme.FILESYSTEM.prefix) :]
        if not path:
            raise ConfigurationError(f"Invalid file URI: {uri} (missing path)")
        return ParsedLocation(
            scheme=StorageScheme.FILESYSTEM,
            container="",
            path=path,
            uri=uri,
        )

    raise ConfigurationError(
        f"Unsupported URI scheme: {uri} (supported: s3://, file://)"
    )


def _split_directory(path: str) -> tuple[str, str]:
    directory, slash, filename = path.rpartition("/")
    if not slash:
        return "", path
    return directory + slash, filename


def get_uri_directory(uri: str) -> str:
    """``s3://bucket/path/to/file.zip`` -> ``path/to/``; ``""`` when there is no slash."""
    return _split_directory(parse_uri(uri).path)[0]


def get_uri_filename(uri: str) -> str:
    """``s3://bucket/path/to/file.zip`` -> ``file.zip``."""
    return _split_directory(parse_uri(uri).path)[1]


def join_uri(base: str, *segments: str) -> str:
    """Append path segments to a URI.

    ``join_uri("s3://bucket/base/", "sub/file.txt")`` returns
    ``s3://bucket/base/sub/file.txt``.
    """
    parsed = parse_uri(base)
    joined = "/".join(part for part in (parsed.path, *segments) if part)
    joined = _DUPLICATE_SLASHES.sub("/", joined)
    if parsed.scheme is StorageScheme.OBJECT_STORE:
        return f"{parsed.scheme.prefix}{parsed.container}/{joined}"
    return f"{parsed.scheme.prefix}{joined}"

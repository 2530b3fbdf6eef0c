"""Error taxonomy shared by the archiver, the storage providers and the entry points."""

from __future__ import annotations


class ArchiverError(RuntimeError):
    """Base class for every error the archiver reports to its callers."""

    code = "ARCHIVER_ERROR"
    status_code = 500

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ConfigurationError(ArchiverError):
    """Raised for a bad or missing URI or parameter, before any I/O happens."""

    code = "CONFIGURATION_ERROR"
    status_code = 400


class StorageOperationError(ArchiverError):
    """Raised when a list, read, write, delete or exists call fails on a backend."""

    code = "STORAGE_OPERATION_ERROR"
    status_code = 502


class ObjectNotFoundError(StorageOperationError):
    """Raised when the requested object does not exist."""

    code = "OBJECT_NOT_FOUND"
    status_code = 404


class ArchiveError(ArchiverError):
    """Raised when no files can be archived or the encoder fails fatally."""

    code = "ARCHIVE_ERROR"
    status_code = 422


class ArchiveOutputClosedError(ArchiveError):
    """Raised when the archive output is closed before encoding finished."""


INTERNAL_ERROR_CODE = "INTERNAL_ERROR"

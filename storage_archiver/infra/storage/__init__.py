"""Storage provider layer.

This package provides a protocol-based abstraction over the storage backends
the archiver reads from and writes to: a local filesystem directory and
S3-compatible object stores (AWS S3, MinIO).
"""

from .factory import StorageProviderFactory
from .filesystem_provider import FilesystemStorageProvider
from .provider import StorageObject, StorageProvider, UploadResult
from .s3_provider import S3StorageProvider, build_s3_client

__all__ = [
    "FilesystemStorageProvider",
    "S3StorageProvider",
    "StorageObject",
    "StorageProvider",
    "StorageProviderFactory",
    "UploadResult",
    "build_s3_client",
]

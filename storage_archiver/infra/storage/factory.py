from __future__ import annotations

import logging
from typing import Any, Mapping

from storage_archiver.common.config import Settings
from storage_archiver.common.errors import ConfigurationError
from storage_archiver.common.uri import StorageScheme
from storage_archiver.infra.storage.filesystem_provider import FilesystemStorageProvider
from storage_archiver.infra.storage.provider import StorageProvider
from storage_archiver.infra.storage.s3_provider import S3StorageProvider, build_s3_client

logger = logging.getLogger("storage_archiver.storage.factory")


class StorageProviderFactory:
    """Builds one storage provider per scheme and keeps it for reuse.

    The boto3 client is created on first use of the object store and owned
    by the factory. ``providers`` pre-registers instances, which tests use to
    inject doubles.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        s3_client: Any | None = None,
        providers: Mapping[StorageScheme, StorageProvider] | None = None,
    ) -> None:
        self._settings = settings
        self._s3_client = s3_client
        self._providers: dict[StorageScheme, StorageProvider] = dict(providers or {})

    def for_scheme(self, scheme: StorageScheme) -> StorageProvider:
        provider = self._providers.get(scheme)
        if provider is None:
            provider = self._build(scheme)
            self._providers[scheme] = provider
        return provider

    def _build(self, scheme: StorageScheme) -> StorageProvider:
        if scheme is StorageScheme.OBJECT_STORE:
            logger.info("Creating S3 storage provider")
            if self._s3_client is None:
                self._s3_client = build_s3_client(self._settings)
            return S3StorageProvider.from_settings(
                self._settings, client=self._s3_client
            )
        if scheme is StorageScheme.FILESYSTEM:
            logger.info(
                "Creating filesystem storage provider (base: %s)",
                self._settings.FILESYSTEM_BASE_DIR,
            )
            return FilesystemStorageProvider(self._settings.FILESYSTEM_BASE_DIR)
        raise ConfigurationError(f"Unsupported storage scheme: {scheme}")

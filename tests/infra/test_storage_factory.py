from unittest.mock import MagicMock, patch

from storage_archiver.common.config import Settings
from storage_archiver.common.uri import StorageScheme
from storage_archiver.infra.storage import (
    FilesystemStorageProvider,
    S3StorageProvider,
    StorageProviderFactory,
)


def test_builds_filesystem_provider_from_base_dir(tmp_path):
    factory = StorageProviderFactory(Settings(FILESYSTEM_BASE_DIR=str(tmp_path)))
    provider = factory.for_scheme(StorageScheme.FILESYSTEM)
    assert isinstance(provider, FilesystemStorageProvider)
    assert provider.base_dir == tmp_path.resolve()


def test_reuses_providers_per_scheme():
    client = MagicMock()
    factory = StorageProviderFactory(Settings(), s3_client=client)
    first = factory.for_scheme(StorageScheme.OBJECT_STORE)
    assert isinstance(first, S3StorageProvider)
    assert factory.for_scheme(StorageScheme.OBJECT_STORE) is first


def test_builds_s3_client_lazily():
    with patch(
        "storage_archiver.infra.storage.factory.build_s3_client"
    ) as build_client:
        factory = StorageProviderFactory(Settings())
        build_client.assert_not_called()
        factory.for_scheme(StorageScheme.FILESYSTEM)
        build_client.assert_not_called()
        factory.for_scheme(StorageScheme.OBJECT_STORE)
        build_client.assert_called_once()


def test_registered_providers_take_precedence():
    double = MagicMock()
    factory = StorageProviderFactory(
        Settings(), providers={StorageScheme.OBJECT_STORE: double}
    )
    assert factory.for_scheme(StorageScheme.OBJECT_STORE) is double

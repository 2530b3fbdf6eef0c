"""Tests for S3 storage provider."""

import io
from unittest.mock import MagicMock, patch

import pytest
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import ClientError, EndpointConnectionError

from storage_archiver.common.config import Settings
from storage_archiver.common.errors import ObjectNotFoundError, StorageOperationError
from storage_archiver.infra.storage.s3_provider import (
    S3StorageProvider,
    build_s3_client,
)


def _client_error(code: str, operation: str, status: int = 400) -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": code},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


class TestBuildS3Client:
    """Test boto3 client construction from settings."""

    def test_passes_endpoint_credentials_and_addressing_style(self):
        settings = Settings(
            AWS_REGION="eu-west-1",
            AWS_ENDPOINT_URL="http://localhost:9000",
            AWS_ACCESS_KEY_ID="test-key",
            AWS_SECRET_ACCESS_KEY="test-secret",
            S3_FORCE_PATH_STYLE=True,
            S3_USE_SSL=False,
        )
        with patch("storage_archiver.infra.storage.s3_provider.boto3.client") as factory:
            build_s3_client(settings)

        args, kwargs = factory.call_args
        assert args == ("s3",)
        assert kwargs["endpoint_url"] == "http://localhost:9000"
        assert kwargs["region_name"] == "eu-west-1"
        assert kwargs["aws_access_key_id"] == "test-key"
        assert kwargs["aws_secret_access_key"] == "test-secret"
        assert kwargs["use_ssl"] is False
        assert kwargs["config"].s3 == {"addressing_style": "path"}
        assert kwargs["config"].signature_version == "s3v4"


class TestS3StorageProvider:
    """Test S3StorageProvider implementation."""

    @pytest.fixture
    def mock_s3(self):
        """Mock boto3 S3 client."""
        return MagicMock()

    @pytest.fixture
    def provider(self, mock_s3):
        return S3StorageProvider(
            mock_s3, part_size=8 * 1024 * 1024, queue_size=3, upload_timeout=60
        )

    def test_from_settings_uses_upload_tuning(self, mock_s3):
        settings = Settings(UPLOAD_PART_SIZE=6 * 1024 * 1024, UPLOAD_QUEUE_SIZE=2)
        provider = S3StorageProvider.from_settings(settings, client=mock_s3)
        config = provider._transfer_config()
        assert config.multipart_chunksize == 6 * 1024 * 1024
        assert config.multipart_threshold == 6 * 1024 * 1024
        assert config.max_request_concurrency == 2

    def test_list_objects_follows_pages(self, provider, mock_s3):
        paginator = mock_s3.get_paginator.return_value
        paginator.paginate.return_value = [
            {"Contents": [{"Key": "data/a.txt", "Size": 1, "ETag": '"e1"'}]},
            {"Contents": [{"Key": "data/b/", "Size": 0}, {"Key": "data/b/c.txt", "Size": 3}]},
            {},
        ]

        objects = provider.list_objects(container="src", prefix="data/")

        assert [obj.key for obj in objects] == ["data/a.txt", "data/b/", "data/b/c.txt"]
        assert objects[0].etag == '"e1"'
        assert objects[1].is_directory_marker
        mock_s3.get_paginator.assert_called_once_with("list_objects_v2")
        paginator.paginate.assert_called_once_with(
            Bucket="src",
            Prefix="data/",
            PaginationConfig={"PageSize": 1000},
        )

    def test_list_objects_honours_max_keys(self, provider, mock_s3):
        paginator = mock_s3.get_paginator.return_value
        paginator.paginate.return_value = []
        provider.list_objects(container="src", max_keys=5)
        assert paginator.paginate.call_args[1]["PaginationConfig"] == {
            "PageSize": 1000,
            "MaxItems": 5,
        }

    def test_list_objects_wraps_errors(self, provider, mock_s3):
        mock_s3.get_paginator.return_value.paginate.side_effect = _client_error(
            "AccessDenied", "ListObjectsV2", 403
        )
        with pytest.raises(StorageOperationError) as exc_info:
            provider.list_objects(container="src")
        assert "Failed to list objects" in exc_info.value.message
        assert "AccessDenied" in exc_info.value.message

    def test_get_object_stream_returns_body(self, provider, mock_s3):
        body = io.BytesIO(b"hello")
        mock_s3.get_object.return_value = {"Body": body}
        assert provider.get_object_stream(container="src", key="a.txt") is body
        mock_s3.get_object.assert_called_once_with(Bucket="src", Key="a.txt")

    def test_get_object_stream_not_found(self, provider, mock_s3):
        mock_s3.get_object.side_effect = _client_error("NoSuchKey", "GetObject", 404)
        with pytest.raises(ObjectNotFoundError):
            provider.get_object_stream(container="src", key="missing.txt")

    def test_get_object_stream_other_error(self, provider, mock_s3):
        mock_s3.get_object.side_effect = EndpointConnectionError(
            endpoint_url="http://localhost:9000"
        )
        with pytest.raises(StorageOperationError) as exc_info:
            provider.get_object_stream(container="src", key="a.txt")
        assert not isinstance(exc_info.value, ObjectNotFoundError)

    def test_upload_object_streams_with_transfer_config(self, provider, mock_s3):
        received = {}

        def fake_upload(fileobj, bucket, key, ExtraArgs=None, Config=None):
            received["data"] = fileobj.read()
            received["extra_args"] = ExtraArgs
            received["config"] = Config

        mock_s3.upload_fileobj.side_effect = fake_upload
        mock_s3.head_object.return_value = {"ETag": '"abc"', "VersionId": "v1"}

        result = provider.upload_object(
            container="dst",
            key="out/archive.zip",
            stream=io.BytesIO(b"zip-bytes"),
            content_type="application/zip",
            metadata={"source": "s3://src/data/"},
        )

        assert received["data"] == b"zip-bytes"
        assert received["extra_args"] == {
            "ContentType": "application/zip",
            "Metadata": {"source": "s3://src/data/"},
        }
        assert isinstance(received["config"], TransferConfig)
        assert received["config"].multipart_chunksize == 8 * 1024 * 1024
        assert received["config"].max_request_concurrency == 3
        assert result.key == "out/archive.zip"
        assert result.location == "s3://dst/out/archive.zip"
        assert result.etag == '"abc"'
        assert result.version_id == "v1"
        mock_s3.head_object.assert_called_once_with(Bucket="dst", Key="out/archive.zip")

    def test_upload_object_wraps_failures(self, provider, mock_s3):
        mock_s3.upload_fileobj.side_effect = _client_error("InternalError", "UploadPart", 500)
        with pytest.raises(StorageOperationError) as exc_info:
            provider.upload_object(container="dst", key="a.zip", stream=io.BytesIO(b"x"))
        assert exc_info.value.message.startswith("Upload failed:")
        mock_s3.head_object.assert_not_called()

    def test_upload_object_times_out(self, mock_s3):
        provider = S3StorageProvider(mock_s3, upload_timeout=-1)
        mock_s3.upload_fileobj.side_effect = lambda fileobj, *args, **kwargs: fileobj.read(1)
        with pytest.raises(StorageOperationError) as exc_info:
            provider.upload_object(container="dst", key="a.zip", stream=io.BytesIO(b"x"))
        assert "timed out" in exc_info.value.message

    def test_delete_object_ignores_missing(self, provider, mock_s3):
        mock_s3.delete_object.side_effect = _client_error("NoSuchKey", "DeleteObject", 404)
        provider.delete_object(container="dst", key="gone.zip")

    def test_object_exists(self, provider, mock_s3):
        assert provider.object_exists(container="dst", key="a.zip") is True
        mock_s3.head_object.side_effect = _client_error("404", "HeadObject", 404)
        assert provider.object_exists(container="dst", key="a.zip") is False

    def test_object_exists_propagates_other_errors(self, provider, mock_s3):
        mock_s3.head_object.side_effect = _client_error("AccessDenied", "HeadObject", 403)
        with pytest.raises(StorageOperationError):
            provider.object_exists(container="dst", key="a.zip")

    def test_get_object_url(self, provider, mock_s3):
        mock_s3.generate_presigned_url.return_value = "https://signed"
        url = provider.get_object_url(container="dst", key="a.zip", expires_in=900)
        assert url == "https://signed"
        mock_s3.generate_presigned_url.assert_called_once_with(
            "get_object",
            Params={"Bucket": "dst", "Key": "a.zip"},
            ExpiresIn=900,
        )

    def test_get_object_url_empty(self, provider, mock_s3):
        mock_s3.generate_presigned_url.return_value = ""
        with pytest.raises(StorageOperationError) as exc_info:
            provider.get_object_url(container="dst", key="a.zip")
        assert exc_info.value.message == "Generated presigned URL is empty"

    def test_get_object_url_wraps_errors(self, provider, mock_s3):
        mock_s3.generate_presigned_url.side_effect = _client_error(
            "AccessDenied", "GetObject", 403
        )
        with pytest.raises(StorageOperationError) as exc_info:
            provider.get_object_url(container="dst", key="a.zip")
        assert exc_info.value.message.startswith("Failed to generate signed URL:")

    def test_create_container_is_a_no_op(self, provider, mock_s3):
        provider.create_container(container="dst")
        mock_s3.create_bucket.assert_not_called()

from __future__ import annotations

import pytest

from storage_archiver.common import config
from storage_archiver.common.config import get_settings

_SETTINGS_ENV = (
    "SOURCE_URI",
    "TARGET_URI",
    "COMPRESSION_LEVEL",
    "FILESYSTEM_BASE_DIR",
    "AWS_REGION",
    "AWS_ENDPOINT_URL",
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "S3_FORCE_PATH_STYLE",
    "S3_USE_SSL",
    "UPLOAD_PART_SIZE",
    "UPLOAD_QUEUE_SIZE",
    "UPLOAD_TIMEOUT",
    "SIGNED_URL_EXPIRES_SECONDS",
    "LOG_LEVEL",
    "LOG_FORMAT",
    "ENABLE_METRICS",
    "API_KEY_ENABLED",
    "API_KEY",
    "ENVIRONMENT",
)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Every test starts from default settings and ignores any local .env file."""
    for name in _SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setattr(config, "ENV_FILE", tmp_path / "missing.env")
    get_settings.cache_clear()  # type: ignore[attr-defined]
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]

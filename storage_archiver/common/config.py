from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from storage_archiver.common.errors import ConfigurationError

ENV_FILE = Path(".env")

MIN_UPLOAD_PART_SIZE = 5 * 1024 * 1024
ENVIRONMENTS: tuple[str, ...] = ("development", "production", "test")
LOG_FORMATS: tuple[str, ...] = ("json", "plain")


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _as_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass
class Settings:
    SOURCE_URI: str | None = None
    TARGET_URI: str | None = None
    COMPRESSION_LEVEL: int = 9
    FILESYSTEM_BASE_DIR: str = "."
    AWS_REGION: str = "us-east-1"
    AWS_ENDPOINT_URL: str | None = None
    AWS_ACCESS_KEY_ID: str | None = None
    AWS_SECRET_ACCESS_KEY: str | None = None
    S3_FORCE_PATH_STYLE: bool = False
    S3_USE_SSL: bool = True
    UPLOAD_PART_SIZE: int = MIN_UPLOAD_PART_SIZE
    UPLOAD_QUEUE_SIZE: int = 1
    UPLOAD_TIMEOUT: int = 60 * 60
    SIGNED_URL_EXPIRES_SECONDS: int = 24 * 60 * 60
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"
    ENABLE_METRICS: bool = True
    API_KEY_ENABLED: bool = False
    API_KEY: str | None = None
    ENVIRONMENT: str = "production"

    def __post_init__(self) -> None:
        if not 0 <= self.COMPRESSION_LEVEL <= 9:
            raise ConfigurationError(
                f"COMPRESSION_LEVEL must be between 0 and 9, got {self.COMPRESSION_LEVEL}"
            )
        if self.UPLOAD_PART_SIZE < MIN_UPLOAD_PART_SIZE:
            raise ConfigurationError(
                f"UPLOAD_PART_SIZE must be at least {MIN_UPLOAD_PART_SIZE} bytes"
            )
        for name in ("UPLOAD_QUEUE_SIZE", "UPLOAD_TIMEOUT", "SIGNED_URL_EXPIRES_SECONDS"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if self.ENVIRONMENT not in ENVIRONMENTS:
            raise ConfigurationError(
                f"ENVIRONMENT must be one of {', '.join(ENVIRONMENTS)}"
            )
        if self.LOG_FORMAT not in LOG_FORMATS:
            raise ConfigurationError(
                f"LOG_FORMAT must be one of {', '.join(LOG_FORMATS)}"
            )
        if self.API_KEY_ENABLED and not self.API_KEY:
            raise ConfigurationError("API_KEY is required when API_KEY_ENABLED is set")

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        return cls(
            SOURCE_URI=_as_optional(os.environ.get("SOURCE_URI")),
            TARGET_URI=_as_optional(os.environ.get("TARGET_URI")),
            COMPRESSION_LEVEL=_as_int("COMPRESSION_LEVEL", cls.COMPRESSION_LEVEL),
            FILESYSTEM_BASE_DIR=os.environ.get(
                "FILESYSTEM_BASE_DIR", cls.FILESYSTEM_BASE_DIR
            ),
            AWS_REGION=os.environ.get("AWS_REGION", cls.AWS_REGION),
            AWS_ENDPOINT_URL=_as_optional(os.environ.get("AWS_ENDPOINT_URL")),
            AWS_ACCESS_KEY_ID=_as_optional(os.environ.get("AWS_ACCESS_KEY_ID")),
            AWS_SECRET_ACCESS_KEY=_as_optional(
                os.environ.get("AWS_SECRET_ACCESS_KEY")
            ),
            S3_FORCE_PATH_STYLE=_as_bool(
                os.environ.get("S3_FORCE_PATH_STYLE"), cls.S3_FORCE_PATH_STYLE
            ),
            S3_USE_SSL=_as_bool(os.environ.get("S3_USE_SSL"), cls.S3_USE_SSL),
            UPLOAD_PART_SIZE=_as_int("UPLOAD_PART_SIZE", cls.UPLOAD_PART_SIZE),
            UPLOAD_QUEUE_SIZE=_as_int("UPLOAD_QUEUE_SIZE", cls.UPLOAD_QUEUE_SIZE),
            UPLOAD_TIMEOUT=_as_int("UPLOAD_TIMEOUT", cls.UPLOAD_TIMEOUT),
            SIGNED_URL_EXPIRES_SECONDS=_as_int(
                "SIGNED_URL_EXPIRES_SECONDS", cls.SIGNED_URL_EXPIRES_SECONDS
            ),
            LOG_LEVEL=os.environ.get("LOG_LEVEL", cls.LOG_LEVEL).upper(),
            LOG_FORMAT=os.environ.get("LOG_FORMAT", cls.LOG_FORMAT).lower(),
            ENABLE_METRICS=_as_bool(
                os.environ.get("ENABLE_METRICS"), cls.ENABLE_METRICS
            ),
            API_KEY_ENABLED=_as_bool(
                os.environ.get("API_KEY_ENABLED"), cls.API_KEY_ENABLED
            ),
            API_KEY=_as_optional(os.environ.get("API_KEY")),
            ENVIRONMENT=os.environ.get("ENVIRONMENT", cls.ENVIRONMENT).lower(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()

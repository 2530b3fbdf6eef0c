"""Pydantic schemas for the archive API endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field

from storage_archiver.services.archiver import ArchiveResult


class ArchiveCreate(BaseModel):
    """Request body for running an archive operation."""

    source_uri: str = Field(min_length=1, examples=["s3://source-bucket/data/"])
    target_uri: str = Field(min_length=1, examples=["s3://target-bucket/archive.zip"])
    compression_level: int | None = Field(default=None, ge=0, le=9)


class ArchiveOut(BaseModel):
    """Response model for a completed archive operation."""

    key: str
    location: str
    etag: str | None = None
    version_id: str | None = None
    url: str | None = None
    source_uri: str
    target_uri: str
    compression_level: int
    files_count: int
    failed_count: int
    failed_keys: list[str]
    duration_ms: float

    @classmethod
    def from_result(cls, result: ArchiveResult) -> "ArchiveOut":
        return cls(
            key=result.key,
            location=result.location,
            etag=result.upload.etag,
            version_id=result.upload.version_id,
            url=result.url,
            source_uri=result.source_uri,
            target_uri=result.target_uri,
            compression_level=result.compression_level,
            files_count=result.files_count,
            failed_count=result.failed_count,
            failed_keys=list(result.failed_keys),
            duration_ms=round(result.duration_seconds * 1000, 3),
        )

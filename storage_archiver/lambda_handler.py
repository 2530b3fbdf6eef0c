"""AWS Lambda entry point.

Supported invocation payloads:

1. Direct invocation with ``sourceBucket``/``sourcePrefix``/``targetBucket``/
   ``targetKey`` (S3 only) or ``sourceUri``/``targetUri`` (any scheme).
2. S3 event notifications: the bucket and key of the first record become the
   source; the target comes from ``TARGET_URI``.
3. API Gateway proxy events carrying one of the direct payloads as JSON body.

Anything else falls back to ``SOURCE_URI``/``TARGET_URI`` from the environment.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import unquote_plus

from storage_archiver.common.config import Settings, get_settings
from storage_archiver.common.errors import (
    INTERNAL_ERROR_CODE,
    ArchiverError,
    ConfigurationError,
)
from storage_archiver.common.logging import setup_logging
from storage_archiver.services.archiver import Archiver

logger = logging.getLogger("storage_archiver.lambda")


@dataclass(frozen=True, slots=True)
class ArchiveRequest:
    source_uri: str
    target_uri: str
    compression_level: int


def _compression_level(value: Any, settings: Settings) -> int:
    if value is None:
        return settings.COMPRESSION_LEVEL
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid compressionLevel: {value!r}") from exc


def _from_payload(payload: Mapping[str, Any], settings: Settings) -> ArchiveRequest | None:
    level = _compression_level(payload.get("compressionLevel"), settings)
    if payload.get("sourceUri") and payload.get("targetUri"):
        return ArchiveRequest(
            source_uri=str(payload["sourceUri"]),
            target_uri=str(payload["targetUri"]),
            compression_level=level,
        )
    if payload.get("sourceBucket") and payload.get("targetBucket"):
        if not payload.get("targetKey"):
            raise ConfigurationError("targetKey is required")
        return ArchiveRequest(
            source_uri=f"s3://{payload['sourceBucket']}/{payload.get('sourcePrefix') or ''}",
            target_uri=f"s3://{payload['targetBucket']}/{payload['targetKey']}",
            compression_level=level,
        )
    return None


def _require_target(settings: Settings) -> str:
    if not settings.TARGET_URI:
        raise ConfigurationError("TARGET_URI is required")
    return settings.TARGET_URI


def parse_event(event: Any, settings: Settings) -> ArchiveRequest:
    """Extract the archive request from a Lambda event."""
    if isinstance(event, Mapping):
        request = _from_payload(event, settings)
        if request is not None:
            return request

        records = event.get("Records") or []
        if records and isinstance(records[0], Mapping) and "s3" in records[0]:
            s3_record = records[0]["s3"]
            bucket = s3_record["bucket"]["name"]
            key = unquote_plus(s3_record["object"]["key"])
            return ArchiveRequest(
                source_uri=f"s3://{bucket}/{key}",
                target_uri=_require_target(settings),
                compression_level=settings.COMPRESSION_LEVEL,
            )

        body = event.get("body")
        if body:
            try:
                payload = json.loads(body) if isinstance(body, str) else body
            except json.JSONDecodeError as exc:
                raise ConfigurationError(f"Invalid JSON body: {exc}") from exc
            request = _from_payload(payload, settings) if isinstance(payload, Mapping) else None
            if request is None:
                raise ConfigurationError(
                    "Request body must contain sourceUri/targetUri or sourceBucket/targetBucket"
                )
            return request

    if not settings.SOURCE_URI:
        raise ConfigurationError("SOURCE_URI is required")
    return ArchiveRequest(
        source_uri=settings.SOURCE_URI,
        target_uri=_require_target(settings),
        compression_level=settings.COMPRESSION_LEVEL,
    )


def handler(event: Any, context: Any) -> dict[str, Any]:
    started = time.perf_counter()
    try:
        settings = get_settings()
        setup_logging(settings)
        logger.info(
            "Execution started",
            extra={
                "extra": {
                    "request_id": getattr(context, "aws_request_id", None),
                    "function_name": getattr(context, "function_name", None),
                    "memory_limit": getattr(context, "memory_limit_in_mb", None),
                }
            },
        )
        request = parse_event(event, settings)
        result = Archiver.from_settings(settings).archive(
            request.source_uri, request.target_uri, request.compression_level
        )
    except ArchiverError as exc:
        logger.error(
            "Execution failed: %s",
            exc,
            extra={"extra": {"duration_ms": _elapsed_ms(started), "code": exc.code}},
        )
        return {
            "success": False,
            "message": exc.message,
            "error": {"code": exc.code, "message": exc.message},
        }
    except Exception as exc:
        logger.exception(
            "Execution failed",
            extra={"extra": {"duration_ms": _elapsed_ms(started)}},
        )
        return {
            "success": False,
            "message": "Internal server error",
            "error": {"code": INTERNAL_ERROR_CODE, "message": str(exc)},
        }

    logger.info(
        "Execution completed",
        extra={
            "extra": {
                "duration_ms": _elapsed_ms(started),
                "file_count": result.files_count,
                "failed_count": result.failed_count,
            }
        },
    )
    return {
        "success": True,
        "message": f"Successfully archived {result.files_count} files",
        "data": {
            "key": result.key,
            "location": result.location,
            "etag": result.upload.etag,
            "fileCount": result.files_count,
            "failedCount": result.failed_count,
            "failedKeys": list(result.failed_keys),
            "signedUrl": result.url,
        },
    }


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)

"""Archive every file under a source location into a ZIP at a target location.

Usage:
  storage-archiver --source s3://bucket/data/ --target s3://bucket/out/archive.zip
  storage-archiver --source file://./storage/input --target file://./storage/out.zip -l 0

Options not given on the command line are read from the environment
(SOURCE_URI, TARGET_URI, COMPRESSION_LEVEL, ...), optionally via a .env file.
"""

from __future__ import annotations

import argparse
import logging
import sys
import traceback
from collections.abc import Sequence

from storage_archiver.common.config import Settings, get_settings
from storage_archiver.common.errors import ArchiverError, ConfigurationError
from storage_archiver.common.logging import setup_logging
from storage_archiver.services.archiver import ArchiveResult, Archiver

logger = logging.getLogger("storage_archiver.cli")

RULE = "=" * 60


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="storage-archiver",
        description="Stream files from a storage location into a ZIP archive",
    )
    parser.add_argument("--source", help="Source URI (default: $SOURCE_URI)")
    parser.add_argument("--target", help="Target URI (default: $TARGET_URI)")
    parser.add_argument(
        "-l",
        "--compression-level",
        type=int,
        choices=range(0, 10),
        metavar="{0-9}",
        default=None,
        help="ZIP compression level, 0 stores (default: $COMPRESSION_LEVEL or 9)",
    )
    return parser


def _print_summary(result: ArchiveResult) -> None:
    print()
    print(RULE)
    print("Archive operation completed successfully")
    print(RULE)
    print(f"Duration: {result.duration_seconds:.2f} seconds")
    print(f"Location: {result.location}")
    print(f"Key: {result.key}")
    if result.upload.etag:
        print(f"ETag: {result.upload.etag}")
    print(f"Files archived: {result.files_count}")
    if result.failed_count:
        print(f"Files failed: {result.failed_count}")
        for key in result.failed_keys:
            print(f"  - {key}")
    print()
    print("Access URL:")
    print(result.url)


def _print_failure(exc: BaseException, settings: Settings | None) -> None:
    print(file=sys.stderr)
    print(RULE, file=sys.stderr)
    print("Archive operation failed", file=sys.stderr)
    print(RULE, file=sys.stderr)
    if isinstance(exc, ArchiverError):
        print(f"Error Code: {exc.code}", file=sys.stderr)
        print(f"Message: {exc.message}", file=sys.stderr)
    else:
        print(f"Error: {exc}", file=sys.stderr)
        if settings is not None and settings.is_development:
            print(file=sys.stderr)
            traceback.print_exception(exc, file=sys.stderr)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings: Settings | None = None
    try:
        settings = get_settings()
        setup_logging(settings)
        source_uri = args.source or settings.SOURCE_URI
        target_uri = args.target or settings.TARGET_URI
        if not source_uri:
            raise ConfigurationError("A source URI is required (--source or SOURCE_URI)")
        if not target_uri:
            raise ConfigurationError("A target URI is required (--target or TARGET_URI)")
        level = (
            args.compression_level
            if args.compression_level is not None
            else settings.COMPRESSION_LEVEL
        )

        print(RULE)
        print("Storage Archiver - Archive Files to ZIP")
        print(RULE)
        print(f"  Source: {source_uri}")
        print(f"  Target: {target_uri}")
        print(f"  Compression Level: {level}")
        if settings.AWS_ENDPOINT_URL:
            print(f"  Custom Endpoint: {settings.AWS_ENDPOINT_URL}")

        archiver = Archiver.from_settings(settings)
        result = archiver.archive(source_uri, target_uri, level)
    except Exception as exc:
        logger.debug("Archive operation failed", exc_info=True)
        _print_failure(exc, settings)
        return 1

    _print_summary(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""Incremental ZIP encoder.

The encoder accepts ``(name, stream)`` entries and turns them into a single
ZIP byte stream exposed through :attr:`ArchiveEncoder.output`. Entries are
queued on a bounded queue and encoded one at a time, in order, by a dedicated
thread using the standard library ``zipfile`` codec on an unseekable output.
"""

from __future__ import annotations

import logging
import queue
import threading
import zipfile
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO

from storage_archiver.common.errors import (
    ArchiveError,
    ArchiverError,
    ConfigurationError,
)
from storage_archiver.services.pipe import DEFAULT_MAX_BUFFERED_BYTES, ArchivePipe

logger = logging.getLogger("storage_archiver.encoder")

DEFAULT_COMPRESSION_LEVEL = 9
DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_QUEUE_SIZE = 1


class EncoderState(str, Enum):
    OPEN = "open"
    FINALIZING = "finalizing"
    CLOSED = "closed"
    FAILED = "failed"


@dataclass(slots=True)
class ArchiveEntry:
    """A source stream waiting to be written under ``name``."""

    name: str
    stream: BinaryIO
    source_key: str
    size: int | None = None


@dataclass(frozen=True, slots=True)
class EncoderSummary:
    appended: tuple[str, ...]
    failed: tuple[str, ...]

    @property
    def files_count(self) -> int:
        return len(self.appended)

    @property
    def failed_count(self) -> int:
        return len(self.failed)


def _should_log_progress(processed: int) -> bool:
    return processed <= 10 or processed % 100 == 0


def _close_quietly(stream: BinaryIO, name: str) -> None:
    try:
        stream.close()
    except Exception:
        logger.warning("Failed to close source stream for %s", name, exc_info=True)


class ArchiveEncoder:
    """ZIP encoder with an ``OPEN -> FINALIZING -> CLOSED`` lifecycle.

    A read failure on one entry's source stream skips that entry and keeps
    the archive valid. A failure to write the output is fatal: the output is
    aborted and every queued stream is closed.
    """

    def __init__(
        self,
        *,
        compression_level: int = DEFAULT_COMPRESSION_LEVEL,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_buffered_bytes: int = DEFAULT_MAX_BUFFERED_BYTES,
    ) -> None:
        if not 0 <= compression_level <= 9:
            raise ConfigurationError(
                f"Compression level must be between 0 and 9, got {compression_level}"
            )
        if compression_level == 0:
            self._compression = zipfile.ZIP_STORED
            self._compress_level: int | None = None
        else:
            self._compression = zipfile.ZIP_DEFLATED
            self._compress_level = compression_level
        self._chunk_size = chunk_size
        self._entries: queue.Queue[ArchiveEntry | None] = queue.Queue(
            maxsize=max(1, queue_size)
        )
        self._pipe = ArchivePipe(max_buffered_bytes)
        self._lock = threading.Lock()
        self._state = EncoderState.OPEN
        self._fatal: ArchiverError | None = None
        self._stopping = False
        self._appended: list[str] = []
        self._failed: list[str] = []
        self._worker = threading.Thread(
            target=self._run, name="archive-encoder", daemon=True
        )
        self._worker.start()

    @property
    def output(self) -> ArchivePipe:
        """Readable, unseekable stream of encoded archive bytes."""
        return self._pipe

    @property
    def state(self) -> EncoderState:
        return self._state

    @property
    def summary(self) -> EncoderSummary:
        with self._lock:
            return EncoderSummary(
                appended=tuple(self._appended), failed=tuple(self._failed)
            )

    def append(
        self,
        name: str,
        stream: BinaryIO,
        *,
        source_key: str | None = None,
        size: int | None = None,
    ) -> None:
        """Queue ``stream`` to be written as ``name``.

        Blocks while the queue is full. The encoder owns ``stream`` from now
        on and closes it once consumed, even when this call raises.
        """
        with self._lock:
            fatal, state = self._fatal, self._state
        if fatal is not None:
            _close_quietly(stream, name)
            raise fatal
        if state is not EncoderState.OPEN:
            _close_quietly(stream, name)
            raise ArchiveError(f"Cannot append {name!r}: encoder is {state.value}")
        self._entries.put(
            ArchiveEntry(
                name=name, stream=stream, source_key=source_key or name, size=size
            )
        )

    def finalize(self) -> EncoderSummary:
        """Write the central directory and wait for the output to be drained."""
        with self._lock:
            if self._fatal is not None:
                self._state = EncoderState.FAILED
                raise self._fatal
            if self._state is not EncoderState.OPEN:
                raise ArchiveError(f"Cannot finalize: encoder is {self._state.value}")
            self._state = EncoderState.FINALIZING

        self.close()
        if self._fatal is None:
            try:
                self._pipe.wait_drained()
            except ArchiverError as exc:
                self._record_fatal(exc)

        with self._lock:
            if self._fatal is not None:
                self._state = EncoderState.FAILED
                raise self._fatal
            self._state = EncoderState.CLOSED

        summary = self.summary
        logger.info(
            "Archive finalized: %d entries, %d skipped, %d bytes",
            summary.files_count,
            summary.failed_count,
            self._pipe.bytes_written,
        )
        return summary

    def abort(self, exc: BaseException | None = None) -> None:
        """Fail the archive without waiting: the output raises on both sides.

        Safe to call from any thread; call :meth:`close` afterwards to wait
        for queued streams to be released.
        """
        error = self._record_fatal(exc or ArchiveError("Archive aborted"))
        self._pipe.abort(error)
        with self._lock:
            if self._state in (EncoderState.OPEN, EncoderState.FINALIZING):
                self._state = EncoderState.FAILED

    def close(self) -> None:
        """Stop accepting entries and wait for the encoder thread to exit."""
        with self._lock:
            send_sentinel = not self._stopping
            self._stopping = True
        if send_sentinel:
            self._entries.put(None)
        self._worker.join()

    def _record_fatal(self, exc: BaseException) -> ArchiverError:
        with self._lock:
            if self._fatal is None:
                if isinstance(exc, ArchiverError):
                    self._fatal = exc
                else:
                    error = ArchiveError(f"Archive encoding failed: {exc}")
                    error.__cause__ = exc
                    self._fatal = error
            return self._fatal

    def _run(self) -> None:
        archive: zipfile.ZipFile | None = None
        stopped = False
        try:
            archive = zipfile.ZipFile(
                self._pipe.writer,
                mode="w",
                compression=self._compression,
                compresslevel=self._compress_level,
                allowZip64=True,
            )
            while True:
                entry = self._entries.get()
                if entry is None:
                    stopped = True
                    break
                self._encode(archive, entry)
            if not self._appended:
                raise ArchiveError("No files could be added to the archive")
            archive.close()
            archive = None
            self._pipe.close_writer()
        except Exception as exc:
            error = self._record_fatal(exc)
            logger.error("Archive encoding failed: %s", error)
            self._pipe.abort(error)
            if not stopped:
                self._drain()
        finally:
            if archive is not None:
                self._pipe.discard_writes()
                archive.close()

    def _drain(self) -> None:
        while True:
            entry = self._entries.get()
            if entry is None:
                return
            _close_quietly(entry.stream, entry.name)

    def _encode(self, archive: zipfile.ZipFile, entry: ArchiveEntry) -> None:
        if self._fatal is not None:
            _close_quietly(entry.stream, entry.name)
            raise self._fatal
        try:
            try:
                first = entry.stream.read(self._chunk_size)
            except Exception as exc:
                self._skip(entry, exc)
                return

            force_zip64 = (
                entry.size is None or entry.size * 1.05 > zipfile.ZIP64_LIMIT
            )
            read_error: Exception | None = None
            with archive.open(entry.name, mode="w", force_zip64=force_zip64) as dest:
                chunk = first
                while chunk:
                    dest.write(chunk)
                    try:
                        chunk = entry.stream.read(self._chunk_size)
                    except Exception as exc:
                        read_error = exc
                        break

            if read_error is not None:
                # The local header and partial data stay in the byte stream,
                # but the entry never reaches the central directory.
                self._forget_last_entry(archive)
                self._skip(entry, read_error)
                return

            with self._lock:
                self._appended.append(entry.name)
                processed = len(self._appended)
            if _should_log_progress(processed):
                logger.info("Progress: %d files added (%s)", processed, entry.name)
        finally:
            _close_quietly(entry.stream, entry.name)

    @staticmethod
    def _forget_last_entry(archive: zipfile.ZipFile) -> None:
        info = archive.filelist.pop()
        if archive.NameToInfo.get(info.filename) is info:
            del archive.NameToInfo[info.filename]
            for previous in reversed(archive.filelist):
                if previous.filename == info.filename:
                    archive.NameToInfo[info.filename] = previous
                    break

    def _skip(self, entry: ArchiveEntry, exc: Exception) -> None:
        logger.warning(
            "Skipping %s: failed to read source stream: %s",
            entry.source_key,
            exc,
            extra={"extra": {"source_key": entry.source_key, "entry": entry.name}},
        )
        with self._lock:
            self._failed.append(entry.source_key)

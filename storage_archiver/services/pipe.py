"""Bounded in-memory byte channel between the archive encoder and the upload."""

from __future__ import annotations

import threading
from collections import deque

from storage_archiver.common.errors import ArchiveOutputClosedError, ArchiverError

DEFAULT_MAX_BUFFERED_BYTES = 1024 * 1024


class _PipeWriter:
    """Write side handed to ``zipfile``.

    It has no ``tell``/``seek``, so ``zipfile`` treats the output
    as unseekable and emits data descriptors.
    """

    def __init__(self, pipe: "ArchivePipe") -> None:
        self._pipe = pipe

    def write(self, data: bytes) -> int:
        return self._pipe.write(data)

    def flush(self) -> None:
        pass


class ArchivePipe:
    """Single-producer, single-consumer byte pipe with a buffered-bytes limit.

    ``write`` blocks while the buffer is full, which is how a slow upload
    slows the encoder down. ``read(n)`` blocks until ``n`` bytes are
    available or the writer has finished, so consumers that size multipart
    parts from read lengths get full parts.
    """

    def __init__(self, max_buffered_bytes: int = DEFAULT_MAX_BUFFERED_BYTES) -> None:
        if max_buffered_bytes <= 0:
            raise ValueError("max_buffered_bytes must be positive")
        self._max_buffered = max_buffered_bytes
        self._cond = threading.Condition()
        self._chunks: deque[bytes] = deque()
        self._buffered = 0
        self._eof = False
        self._error: ArchiverError | None = None
        self._reader_closed = False
        self._discarding = False
        self.bytes_written = 0
        self.bytes_read = 0
        self.writer = _PipeWriter(self)

    # write side

    def write(self, data: bytes) -> int:
        chunk = bytes(data)
        if not chunk:
            return 0
        with self._cond:
            while True:
                if self._discarding:
                    return len(chunk)
                if self._error is not None or self._reader_closed:
                    raise ArchiveOutputClosedError(
                        "Archive output closed before the archive was complete"
                    )
                if self._eof:
                    raise ArchiveOutputClosedError("Archive output already finished")
                if not self._buffered or self._buffered + len(chunk) <= self._max_buffered:
                    break
                self._cond.wait()
            self._chunks.append(chunk)
            self._buffered += len(chunk)
            self.bytes_written += len(chunk)
            self._cond.notify_all()
        return len(chunk)

    def close_writer(self) -> None:
        """Signal end of stream to the reader."""
        with self._cond:
            self._eof = True
            self._cond.notify_all()

    def abort(self, error: ArchiverError) -> None:
        """Fail the pipe: pending data is dropped and both sides raise."""
        with self._cond:
            if self._error is None:
                self._error = error
            self._chunks.clear()
            self._buffered = 0
            self._cond.notify_all()

    def discard_writes(self) -> None:
        """Silently drop every later write, used while tearing down a failed archive."""
        with self._cond:
            self._discarding = True
            self._cond.notify_all()

    def wait_drained(self) -> None:
        """Block until the reader consumed everything written before EOF."""
        with self._cond:
            while not (self._eof and not self._chunks):
                if self._error is not None or self._reader_closed:
                    raise ArchiveOutputClosedError(
                        "Archive output was not fully consumed"
                    )
                self._cond.wait()

    # read side

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    def writable(self) -> bool:
        return False

    @property
    def closed(self) -> bool:
        return self._reader_closed

    def read(self, size: int | None = -1) -> bytes:
        if size is None:
            size = -1
        out = bytearray()
        with self._cond:
            while size < 0 or len(out) < size:
                if self._error is not None:
                    raise self._error
                if self._reader_closed:
                    raise ValueError("read from closed archive pipe")
                if self._chunks:
                    chunk = self._chunks.popleft()
                    wanted = len(chunk) if size < 0 else size - len(out)
                    if len(chunk) > wanted:
                        self._chunks.appendleft(chunk[wanted:])
                        chunk = chunk[:wanted]
                    out += chunk
                    self._buffered -= len(chunk)
                    self._cond.notify_all()
                    continue
                if self._eof:
                    break
                self._cond.wait()
            self.bytes_read += len(out)
        return bytes(out)

    def close(self) -> None:
        """Close the read side; later writes fail."""
        with self._cond:
            self._reader_closed = True
            self._chunks.clear()
            self._buffered = 0
            self._cond.notify_all()

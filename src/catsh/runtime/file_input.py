"""Multiplexer variant that streams stdin from a file descriptor.

Input is read from the source one bounded chunk per stdin readiness instead
of being loaded up front, and a progress callback is notified after every
loop iteration. When the run is over the callback receives PROGRESS_DONE so
a renderer can finish its display.
"""

from __future__ import annotations

import logging
import os
import stat
from collections.abc import Callable

from .launcher import ChildProcess, PipeEnds
from .multiplexer import InputSource, Multiplexer
from .result import ExecResult

__all__ = [
    "PROGRESS_DONE",
    "ProgressCallback",
    "FileSource",
    "FileInputMultiplexer",
    "estimate_source_size",
]

logger = logging.getLogger(__name__)

# Fraction passed to the progress callback once the transfer is over
PROGRESS_DONE = -1.0

ProgressCallback = Callable[[float, int], None]


def estimate_source_size(fd: int) -> int:
    """Best guess of how many bytes ``fd`` will yield.

    Regular files and FIFOs report a usable size; anything else (or a zero
    size) counts as 1 so the progress fraction never divides by zero.
    """
    try:
        st = os.fstat(fd)
    except OSError:
        return 1
    if (stat.S_ISREG(st.st_mode) or stat.S_ISFIFO(st.st_mode)) and st.st_size > 0:
        return st.st_size
    return 1


class FileSource(InputSource):
    """Input read incrementally from a descriptor owned by the caller.

    Bytes read but not yet accepted by the child stay pending until they
    are written; a new read only happens once the pending bytes are gone.
    """

    def __init__(self, fd: int) -> None:
        self.fd = fd
        self.estimated_size = estimate_source_size(fd)
        self.total_written = 0
        self._pending = b""
        self._offset = 0
        self._eof = False

    def peek(self, size: int) -> bytes | memoryview | None:
        if self._offset < len(self._pending):
            return memoryview(self._pending)[self._offset:]
        if self._eof:
            return None
        try:
            data = os.read(self.fd, size)
        except BlockingIOError:
            return b""
        except OSError as e:
            logger.debug(f"Input read failed on fd={self.fd}: {e}")
            self._eof = True
            return None
        if not data:
            self._eof = True
            return None
        self._pending = data
        self._offset = 0
        return data

    def consume(self, count: int) -> None:
        self._offset += count
        self.total_written += count
        if self._offset >= len(self._pending):
            self._pending = b""
            self._offset = 0

    @property
    def exhausted(self) -> bool:
        return self._eof and not self._pending

    def fileno(self) -> int:
        return self.fd

    @property
    def fraction(self) -> float:
        return min(self.total_written / self.estimated_size, 1.0)


class FileInputMultiplexer(Multiplexer):
    """Multiplexer fed from a FileSource, reporting progress.

    Args:
        child: The launched child
        pipes: Parent-side pipe ends (ownership is taken)
        source: Descriptor-backed input
        progress: Callback receiving (fraction, slot), or None
        slot: Opaque slot number handed back to the callback
    """

    def __init__(
        self,
        child: ChildProcess,
        pipes: PipeEnds,
        source: FileSource,
        *,
        progress: ProgressCallback | None = None,
        slot: int = 0,
        **kwargs,
    ) -> None:
        super().__init__(child, pipes, source, **kwargs)
        self.progress = progress
        self.slot = slot

    def run(self) -> ExecResult:
        try:
            return super().run()
        finally:
            self._notify(PROGRESS_DONE)

    def _after_iteration(self) -> None:
        self._notify(self.source.fraction)

    def _notify(self, fraction: float) -> None:
        if self.progress is None:
            return
        try:
            self.progress(fraction, self.slot)
        except Exception as e:
            logger.warning(f"Error in progress callback: {e}")

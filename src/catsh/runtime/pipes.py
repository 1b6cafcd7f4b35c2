"""Pipe capacity tuning and descriptor helpers.

The chunk size used for transfers follows the kernel's pipe buffer size.
Raising the buffer is fire-and-forget; querying it is a plain read. Neither
is needed for correctness: when nothing can be discovered the transfer loop
falls back to FALLBACK_CHUNK_SIZE.
"""

from __future__ import annotations

import fcntl
import logging
import os
from collections.abc import Iterable
from pathlib import Path

__all__ = [
    "FALLBACK_CHUNK_SIZE",
    "PIPE_MAX_SIZE_PATH",
    "read_pipe_max_size",
    "raise_pipe_capacity",
    "query_pipe_capacity",
    "tune_chunk_size",
    "set_nonblocking",
]

logger = logging.getLogger(__name__)

FALLBACK_CHUNK_SIZE = 4096
PIPE_MAX_SIZE_PATH = Path("/proc/sys/fs/pipe-max-size")

# Linux only; None elsewhere
F_SETPIPE_SZ: int | None = getattr(fcntl, "F_SETPIPE_SZ", None)
F_GETPIPE_SZ: int | None = getattr(fcntl, "F_GETPIPE_SZ", None)


def read_pipe_max_size(path: Path = PIPE_MAX_SIZE_PATH) -> int | None:
    """Read the system-wide pipe size limit.

    Returns:
        The limit in bytes, or None if it is unavailable
    """
    try:
        value = int(path.read_text().split()[0])
    except (OSError, ValueError, IndexError):
        return None
    return value if value > 0 else None


def raise_pipe_capacity(fd: int, max_size: int | None = None) -> None:
    """Try to grow the pipe buffer of ``fd`` to the system maximum.

    Errors are ignored: the limit may be lower for unprivileged users, or
    the platform may not support resizing at all.
    """
    if F_SETPIPE_SZ is None:
        return
    if max_size is None:
        max_size = read_pipe_max_size()
    if max_size is None:
        return
    try:
        fcntl.fcntl(fd, F_SETPIPE_SZ, max_size)
    except OSError as e:
        logger.debug(f"F_SETPIPE_SZ({max_size}) failed on fd={fd}: {e}")


def query_pipe_capacity(fd: int) -> int | None:
    """Return the current buffer size of the pipe behind ``fd``, or None."""
    if F_GETPIPE_SZ is None:
        return None
    try:
        size = fcntl.fcntl(fd, F_GETPIPE_SZ)
    except OSError:
        return None
    return size if size > 0 else None


def tune_chunk_size(fds: Iterable[int], *, tune: bool = True) -> int:
    """Pick the transfer chunk size for a set of pipes.

    Args:
        fds: Parent-side pipe descriptors of one execution
        tune: Whether to try raising each pipe's capacity first

    Returns:
        The smallest capacity among the pipes, or FALLBACK_CHUNK_SIZE
    """
    max_size = read_pipe_max_size() if tune else None
    sizes = []
    for fd in fds:
        if tune:
            raise_pipe_capacity(fd, max_size)
        size = query_pipe_capacity(fd)
        if size is not None:
            sizes.append(size)
    return min(sizes) if sizes else FALLBACK_CHUNK_SIZE


def set_nonblocking(fd: int) -> None:
    """Set O_NONBLOCK on ``fd``."""
    flags = fcntl.fcntl(fd, fcntl.F_GETFL)
    fcntl.fcntl(fd, fcntl.F_SETFL, flags | os.O_NONBLOCK)

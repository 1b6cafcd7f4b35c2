"""Readiness-driven transfer loop between the parent and one child.

One poll() call covers every open stream: the stdin write end waits for
POLLOUT, the stdout/stderr read ends wait for POLLIN. No stream is ever
allowed to block the others, so a child that fills its output pipe while we
are still feeding it input cannot deadlock the exchange.

Each loop iteration:
1. Check (without blocking) whether the child has terminated. If so, drain
   whatever the output pipes already hold, close everything and stop.
2. Wait until at least one open stream is ready.
3. Feed the next chunk of input to a writable stdin.
4. Read the next chunk from each readable output stream into its capture.

A stream that reaches EOF, hits an error or hangs up is closed and leaves
the active set for good. The loop ends when the active set is empty; the
child is then reaped and the result is finalized.
"""

from __future__ import annotations

import logging
import os
import select
from abc import ABC, abstractmethod
from enum import Enum

from .launcher import ChildProcess, PipeEnds
from .pipes import FALLBACK_CHUNK_SIZE, set_nonblocking
from .result import ExecResult, finalize

__all__ = [
    "Role",
    "Channel",
    "CaptureBuffer",
    "InputSource",
    "BufferSource",
    "Multiplexer",
]

logger = logging.getLogger(__name__)

_HANGUP = select.POLLHUP | select.POLLERR | select.POLLNVAL


class Role(str, Enum):
    """Stream role of a channel."""

    STDIN = "stdin"
    STDOUT = "stdout"
    STDERR = "stderr"


class Channel:
    """One parent-side pipe end. Closing is final and happens once."""

    def __init__(self, role: Role, fd: int) -> None:
        self.role = role
        self.fd: int | None = fd

    @property
    def is_open(self) -> bool:
        return self.fd is not None

    @property
    def events(self) -> int:
        return select.POLLOUT if self.role is Role.STDIN else select.POLLIN

    def close(self) -> None:
        fd, self.fd = self.fd, None
        if fd is None:
            return
        try:
            os.close(fd)
        except OSError as e:
            logger.debug(f"close({self.role.value} fd={fd}) failed: {e}")

    def __repr__(self) -> str:
        state = f"fd={self.fd}" if self.is_open else "closed"
        return f"Channel({self.role.value}, {state})"


class CaptureBuffer:
    """Growable byte buffer filled straight from a descriptor.

    Capacity doubles (starting at one chunk) whenever less than one chunk of
    room is left, and reads land directly in the spare capacity.
    """

    def __init__(self, chunk_size: int) -> None:
        self.chunk_size = chunk_size
        self._buf = bytearray()
        self.size = 0

    @property
    def capacity(self) -> int:
        return len(self._buf)

    def _reserve(self) -> None:
        if self.capacity - self.size >= self.chunk_size:
            return
        new_capacity = self.capacity * 2 if self.capacity else self.chunk_size
        while new_capacity - self.size < self.chunk_size:
            new_capacity *= 2
        self._buf.extend(bytes(new_capacity - self.capacity))

    def read_from(self, fd: int) -> int:
        """Read at most one chunk from ``fd``; returns the byte count (0 = EOF).

        Raises:
            BlockingIOError: If nothing is available on a non-blocking fd
            OSError: On read errors
        """
        self._reserve()
        with memoryview(self._buf) as view:
            n = os.readv(fd, [view[self.size:self.size + self.chunk_size]])
        self.size += n
        return n

    def getvalue(self) -> bytes:
        return bytes(self._buf[:self.size])


class InputSource(ABC):
    """Data fed to the child's stdin.

    Subclasses implement:
    - peek(): the next pending bytes (up to ``size``), an empty bytes object
      when nothing is available right now, or None once the source is
      exhausted
    - consume(): acknowledge what the child accepted
    - exhausted: True once everything has been handed over

    A source that can run dry without being exhausted returns its own
    descriptor from fileno(); the multiplexer then waits for it to become
    readable instead of polling stdin for writability.
    """

    @abstractmethod
    def peek(self, size: int) -> bytes | memoryview | None:
        ...

    @abstractmethod
    def consume(self, count: int) -> None:
        ...

    @property
    @abstractmethod
    def exhausted(self) -> bool:
        ...

    def fileno(self) -> int | None:
        return None


class BufferSource(InputSource):
    """Input held entirely in memory."""

    def __init__(self, data: bytes | bytearray | memoryview) -> None:
        self._view = memoryview(data).cast("B")
        self._pos = 0
        self.total_written = 0

    def peek(self, size: int) -> memoryview | None:
        if self.exhausted:
            return None
        return self._view[self._pos:self._pos + size]

    def consume(self, count: int) -> None:
        self._pos += count
        self.total_written = self._pos

    @property
    def exhausted(self) -> bool:
        return self._pos >= len(self._view)


class Multiplexer:
    """Drives one execution from fork to reaped child.

    Takes ownership of the parent-side pipe ends: they are closed exactly
    once, whatever happens inside run().

    Example:
        child, pipes = launch(["cat"], want_stdin=True, want_output=True)
        result = Multiplexer(child, pipes, BufferSource(b"hello")).run()
        assert result.stdout == b"hello"
    """

    def __init__(
        self,
        child: ChildProcess,
        pipes: PipeEnds,
        source: InputSource | None = None,
        *,
        chunk_size: int = FALLBACK_CHUNK_SIZE,
        poll_interval: float | None = None,
    ) -> None:
        self.child = child
        self.source = source
        self.chunk_size = max(1, chunk_size)
        self._timeout_ms = None if poll_interval is None else max(1, int(poll_interval * 1000))

        if pipes.stdin is not None and source is None:
            raise ValueError("a stdin pipe needs an input source")

        owned = pipes.detach()
        self._channels = {Role(name): Channel(Role(name), fd) for name, fd in owned.items()}
        # Active set, keyed by role; a channel leaves it exactly once
        self._active: dict[Role, Channel] = dict(self._channels)
        self._captures = {
            role: CaptureBuffer(self.chunk_size)
            for role in (Role.STDOUT, Role.STDERR)
            if role in self._channels
        }
        self._poller = select.poll()
        # Source descriptor watched while stdin waits for input to arrive
        self._source_fd: int | None = None

    @property
    def active_roles(self) -> set[Role]:
        return set(self._active)

    def run(self) -> ExecResult:
        """Transfer data until every stream is closed, then reap the child."""
        try:
            for channel in self._active.values():
                if channel.role is not Role.STDIN:
                    set_nonblocking(channel.fd)
                self._poller.register(channel.fd, channel.events)

            while self._active:
                if self.child.poll():
                    logger.debug(f"Child pid={self.child.pid} exited with streams open, draining")
                    self._drain_after_exit()
                    break
                self._step()
                self._after_iteration()
        finally:
            self._close_all()

        status = self.child.wait()
        result = finalize(
            self.child.pid,
            status,
            exited=self.child.exited,
            stdout=self._capture_value(Role.STDOUT),
            stderr=self._capture_value(Role.STDERR),
        )
        logger.debug(f"Subprocess completed: {result!r}")
        return result

    def _step(self) -> None:
        # poll() retries by itself when interrupted by a signal
        events = dict(self._poller.poll(self._timeout_ms))
        if not events:
            return
        if self._source_fd is not None and events.pop(self._source_fd, 0):
            self._resume_stdin()
        for role in (Role.STDIN, Role.STDOUT, Role.STDERR):
            channel = self._active.get(role)
            if channel is None:
                continue
            revents = events.get(channel.fd)
            if not revents:
                continue
            if role is Role.STDIN:
                self._service_stdin(channel, revents)
            else:
                self._service_reader(channel, revents)

    def _service_stdin(self, channel: Channel, revents: int) -> None:
        if revents & select.POLLOUT:
            self._write_input(channel)
        if channel.is_open and revents & _HANGUP:
            logger.debug("stdin hung up by the child")
            self._retire(channel)

    def _write_input(self, channel: Channel) -> None:
        chunk = self.source.peek(self.chunk_size)
        if chunk is None:
            self._retire(channel)
            return
        if not chunk:
            self._park_stdin(channel)
            return
        try:
            written = os.write(channel.fd, chunk)
        except BlockingIOError:
            return
        except OSError as e:
            # Typically EPIPE: the child stopped reading
            logger.debug(f"stdin write failed: {e}")
            self._retire(channel)
            return
        self.source.consume(written)
        if self.source.exhausted:
            self._retire(channel)

    def _park_stdin(self, channel: Channel) -> None:
        """Stop asking for POLLOUT until the source has data again."""
        fd = self.source.fileno()
        if fd is None or self._source_fd is not None:
            return
        # Mask 0 still reports POLLHUP/POLLERR for stdin
        self._poller.modify(channel.fd, 0)
        self._poller.register(fd, select.POLLIN)
        self._source_fd = fd
        logger.debug(f"Input source fd={fd} is empty, waiting for data")

    def _resume_stdin(self) -> None:
        self._forget_source()
        channel = self._active.get(Role.STDIN)
        if channel is not None:
            self._poller.modify(channel.fd, channel.events)

    def _forget_source(self) -> None:
        fd, self._source_fd = self._source_fd, None
        if fd is None:
            return
        try:
            self._poller.unregister(fd)
        except (KeyError, ValueError):
            pass

    def _service_reader(self, channel: Channel, revents: int) -> None:
        # A hang-up can arrive together with unread data: keep reading until EOF
        capture = self._captures[channel.role]
        try:
            n = capture.read_from(channel.fd)
        except BlockingIOError:
            if revents & (select.POLLERR | select.POLLNVAL):
                self._retire(channel)
            return
        except OSError as e:
            logger.debug(f"{channel.role.value} read failed: {e}")
            self._retire(channel)
            return
        if n == 0:
            self._retire(channel)

    def _drain_after_exit(self) -> None:
        """Collect output already queued in the pipes, without blocking."""
        for role in (Role.STDOUT, Role.STDERR):
            channel = self._active.get(role)
            if channel is None:
                continue
            capture = self._captures[role]
            while True:
                try:
                    if capture.read_from(channel.fd) == 0:
                        break
                except BlockingIOError:
                    # A descendant still holds the pipe open
                    break
                except OSError as e:
                    logger.debug(f"{role.value} drain failed: {e}")
                    break

    def _after_iteration(self) -> None:
        """Hook run after every completed loop iteration."""

    def _retire(self, channel: Channel) -> None:
        if self._active.pop(channel.role, None) is None:
            return
        if channel.role is Role.STDIN:
            self._forget_source()
        try:
            self._poller.unregister(channel.fd)
        except (KeyError, ValueError):
            pass
        channel.close()

    def _close_all(self) -> None:
        for channel in list(self._active.values()):
            self._retire(channel)
        for channel in self._channels.values():
            channel.close()

    def _capture_value(self, role: Role) -> bytes | None:
        capture = self._captures.get(role)
        return capture.getvalue() if capture is not None else None

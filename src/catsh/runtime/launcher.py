"""Process launcher: fork, rewire standard streams, exec.

Redirection policy:
- Streams that are not piped go to the null device. A launched command never
  inherits the caller's terminal.
- stdin is piped only when there is input to feed; stdout and stderr are
  piped together when output is captured.

The parent keeps the write end of the stdin pipe (non-blocking) and the read
ends of the output pipes. The child halves are closed in the parent right
after fork. If the child cannot start the command it exits with EXIT_FAILURE.
"""

from __future__ import annotations

import logging
import os
import signal
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from ..errors import InvalidCommandError, LaunchError
from .pipes import set_nonblocking

__all__ = [
    "EXIT_FAILURE",
    "Arg",
    "ChildProcess",
    "PipeEnds",
    "validate_argv",
    "launch",
    "spawn_inherited",
]

logger = logging.getLogger(__name__)

# Reserved exit status of a child that could not start the command
EXIT_FAILURE = 114

Arg = Union[str, bytes]

STDIN_FILENO = 0
STDOUT_FILENO = 1
STDERR_FILENO = 2


def validate_argv(argv: Sequence[Arg]) -> list[Arg]:
    """Check the command before any OS resource is touched.

    Raises:
        InvalidCommandError: If argv is empty or its executable is empty
    """
    if argv is None or isinstance(argv, (str, bytes)):
        raise InvalidCommandError("argv must be a sequence of arguments")
    args = list(argv)
    if not args:
        raise InvalidCommandError("argv must contain at least the executable")
    for arg in args:
        if not isinstance(arg, (str, bytes)):
            raise InvalidCommandError(f"argv items must be str or bytes, got {type(arg).__name__}")
    if not args[0]:
        raise InvalidCommandError("the executable name must not be empty")
    return args


def _argv0(argv: Sequence[Arg]) -> str:
    arg = argv[0]
    return os.fsdecode(arg)


@dataclass
class ChildProcess:
    """Handle on a forked child.

    The raw wait status is kept once the child has been reaped, so polling
    and waiting can be mixed freely. ``reaped`` means there is nothing left
    to wait for; ``exited`` means a termination status was actually seen.
    """

    pid: int
    argv0: str = ""
    status: int | None = None
    reaped: bool = False

    @property
    def exited(self) -> bool:
        return self.reaped and self.status is not None

    def poll(self) -> bool:
        """Reap the child if it has terminated, without blocking.

        Returns:
            True once the child has been reaped
        """
        if self.reaped:
            return True
        try:
            pid, status = os.waitpid(self.pid, os.WNOHANG)
        except ChildProcessError:
            # Reaped elsewhere (e.g. SIGCHLD ignored); status is lost
            logger.debug(f"Child pid={self.pid} already reaped elsewhere")
            self.reaped = True
            return True
        if pid == 0:
            return False
        self.status = status
        self.reaped = True
        return True

    def wait(self) -> int | None:
        """Block until the child terminates; returns the raw wait status."""
        if self.reaped:
            return self.status
        # os.waitpid retries on EINTR by itself
        try:
            _, status = os.waitpid(self.pid, 0)
        except ChildProcessError:
            logger.debug(f"Child pid={self.pid} already reaped elsewhere")
            status = None
        self.status = status
        self.reaped = True
        return status


@dataclass
class PipeEnds:
    """Parent-side pipe descriptors of one execution (None = not piped)."""

    stdin: int | None = None
    stdout: int | None = None
    stderr: int | None = None

    def fds(self) -> list[int]:
        return [fd for fd in (self.stdin, self.stdout, self.stderr) if fd is not None]

    def detach(self) -> dict[str, int]:
        """Hand the descriptors over to a new owner.

        Returns:
            Mapping of stream name to descriptor; this object is left empty
        """
        owned = {
            name: fd
            for name, fd in (("stdin", self.stdin), ("stdout", self.stdout), ("stderr", self.stderr))
            if fd is not None
        }
        self.stdin = self.stdout = self.stderr = None
        return owned

    def close(self) -> None:
        """Close any descriptor still owned (idempotent)."""
        for name in ("stdin", "stdout", "stderr"):
            fd = getattr(self, name)
            if fd is not None:
                setattr(self, name, None)
                _close_quietly(fd)


def _close_quietly(fd: int) -> None:
    try:
        os.close(fd)
    except OSError as e:
        logger.debug(f"close(fd={fd}) failed: {e}")


def _restore_signals() -> None:
    """Undo Python's SIG_IGN dispositions, which exec would otherwise keep."""
    for name in ("SIGPIPE", "SIGXFSZ"):
        sig = getattr(signal, name, None)
        if sig is not None:
            signal.signal(sig, signal.SIG_DFL)


def _exec_child(
    argv: list[Arg],
    child_fds: dict[int, int | None],
    parent_fds: list[int],
    null_device: str,
    cwd: str | os.PathLike[str] | None,
    env: Mapping[str, str] | None,
) -> None:
    """Runs in the forked child. Only returns (or raises) on failure."""
    _restore_signals()

    for fd in parent_fds:
        os.close(fd)

    null_fd = None
    for target, fd in child_fds.items():
        if fd is None:
            if null_fd is None:
                null_fd = os.open(null_device, os.O_RDWR)
            fd = null_fd
        os.dup2(fd, target)

    for fd in set(child_fds.values()) | {null_fd}:
        if fd is not None and fd > STDERR_FILENO:
            os.close(fd)

    if cwd is not None:
        os.chdir(cwd)

    if env is None:
        os.execvp(argv[0], argv)
    else:
        os.execvpe(argv[0], argv, dict(env))


def launch(
    argv: Sequence[Arg],
    *,
    want_stdin: bool,
    want_output: bool,
    null_device: str = os.devnull,
    cwd: str | os.PathLike[str] | None = None,
    env: Mapping[str, str] | None = None,
) -> tuple[ChildProcess, PipeEnds]:
    """Fork and exec a command with the requested streams piped.

    Args:
        argv: Command line (first element is the executable, looked up in PATH)
        want_stdin: Pipe stdin (the parent gets a non-blocking write end)
        want_output: Pipe stdout and stderr (the parent gets the read ends)
        null_device: Device used for every stream that is not piped
        cwd: Working directory of the child
        env: Environment of the child (None = inherit)

    Returns:
        The child handle and the parent-side pipe ends

    Raises:
        InvalidCommandError: If argv is empty
        LaunchError: If a pipe or the process could not be created
    """
    args = validate_argv(argv)
    argv0 = _argv0(args)
    if cwd is not None:
        cwd = Path(cwd)

    created: list[int] = []
    parent = PipeEnds()
    child_fds: dict[int, int | None] = {
        STDIN_FILENO: None,
        STDOUT_FILENO: None,
        STDERR_FILENO: None,
    }

    try:
        if want_stdin:
            read_end, write_end = os.pipe()
            created += [read_end, write_end]
            child_fds[STDIN_FILENO] = read_end
            parent.stdin = write_end
            set_nonblocking(write_end)
        if want_output:
            for target in (STDOUT_FILENO, STDERR_FILENO):
                read_end, write_end = os.pipe()
                created += [read_end, write_end]
                child_fds[target] = write_end
                if target == STDOUT_FILENO:
                    parent.stdout = read_end
                else:
                    parent.stderr = read_end
    except OSError as e:
        for fd in created:
            _close_quietly(fd)
        raise LaunchError("pipe", argv0, e) from e

    try:
        pid = os.fork()
    except OSError as e:
        for fd in created:
            _close_quietly(fd)
        raise LaunchError("fork", argv0, e) from e

    if pid == 0:
        try:
            _exec_child(args, child_fds, parent.fds(), null_device, cwd, env)
        finally:
            os._exit(EXIT_FAILURE)

    for fd in child_fds.values():
        if fd is not None:
            os.close(fd)

    logger.debug(
        f"Started subprocess pid={pid} argv0={argv0} "
        f"stdin={'pipe' if want_stdin else 'null'} "
        f"output={'pipe' if want_output else 'null'}"
    )
    return ChildProcess(pid=pid, argv0=argv0), parent


def spawn_inherited(executable: str, argv: Sequence[Arg]) -> ChildProcess:
    """Fork and exec ``executable`` with the caller's own standard streams.

    No pipes, no redirection. Used by the re-exec helper.

    Raises:
        LaunchError: If the process could not be created
    """
    args = validate_argv(argv)
    try:
        pid = os.fork()
    except OSError as e:
        raise LaunchError("fork", executable, e) from e

    if pid == 0:
        try:
            _restore_signals()
            os.execv(executable, args)
        finally:
            os._exit(EXIT_FAILURE)

    logger.debug(f"Started subprocess pid={pid} executable={executable} (inherited stdio)")
    return ChildProcess(pid=pid, argv0=executable)

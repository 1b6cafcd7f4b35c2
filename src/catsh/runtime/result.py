"""Result type and termination status reconciliation."""

from __future__ import annotations

import os
from dataclasses import dataclass

__all__ = [
    "ExecResult",
    "exit_code_from_status",
    "finalize",
]

# Exit code reported when no termination status could be interpreted
INDETERMINATE_EXIT_CODE = -1


@dataclass(frozen=True)
class ExecResult:
    """Outcome of one execution.

    Attributes:
        pid: Process id of the launched command
        exited: Whether a termination status was observed
        exit_code: Exit status, 128 + signal number, or -1 if indeterminate
        stdout: Captured stdout (None when capture was not requested)
        stderr: Captured stderr (None when capture was not requested)
    """

    pid: int
    exited: bool = False
    exit_code: int = INDETERMINATE_EXIT_CODE
    stdout: bytes | None = None
    stderr: bytes | None = None

    @property
    def ok(self) -> bool:
        return self.exited and self.exit_code == 0

    def __repr__(self) -> str:
        def _size(data: bytes | None) -> str:
            return "None" if data is None else f"<{len(data)} bytes>"

        return (
            f"ExecResult(pid={self.pid}, exited={self.exited}, "
            f"exit_code={self.exit_code}, stdout={_size(self.stdout)}, "
            f"stderr={_size(self.stderr)})"
        )


def exit_code_from_status(status: int | None) -> int:
    """Map a raw wait status to a shell-style exit code.

    Normal exit gives the process's own status, death by signal gives
    128 + signal number, anything else (or no status at all) gives -1.
    """
    if status is None:
        return INDETERMINATE_EXIT_CODE
    if os.WIFEXITED(status):
        return os.WEXITSTATUS(status)
    if os.WIFSIGNALED(status):
        return 128 + os.WTERMSIG(status)
    return INDETERMINATE_EXIT_CODE


def finalize(
    pid: int,
    status: int | None,
    *,
    exited: bool,
    stdout: bytes | None = None,
    stderr: bytes | None = None,
) -> ExecResult:
    """Build the immutable result of an execution.

    Args:
        pid: Process id of the child
        status: Raw wait status, or None if it could not be collected
        exited: Whether the child was reaped
        stdout: Final stdout capture, None when not captured
        stderr: Final stderr capture, None when not captured
    """
    return ExecResult(
        pid=pid,
        exited=exited,
        exit_code=exit_code_from_status(status),
        stdout=stdout,
        stderr=stderr,
    )

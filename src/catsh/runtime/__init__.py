"""Runtime module: process launch and deadlock-free stream transfer.

This module provides the launcher, the poll-driven multiplexer that feeds
stdin while draining stdout/stderr, and the result reconciliation.
"""

from __future__ import annotations

from .file_input import PROGRESS_DONE, FileInputMultiplexer, FileSource
from .launcher import EXIT_FAILURE, ChildProcess, PipeEnds, launch
from .multiplexer import BufferSource, Multiplexer
from .result import ExecResult, exit_code_from_status

__all__ = [
    "EXIT_FAILURE",
    "PROGRESS_DONE",
    "BufferSource",
    "ChildProcess",
    "ExecResult",
    "FileInputMultiplexer",
    "FileSource",
    "Multiplexer",
    "PipeEnds",
    "exit_code_from_status",
    "launch",
]

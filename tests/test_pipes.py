"""Pipe capacity tuner tests."""

from __future__ import annotations

import fcntl
import os
from pathlib import Path
from unittest import mock

import pytest

from catsh.runtime import pipes
from catsh.runtime.pipes import (
    FALLBACK_CHUNK_SIZE,
    query_pipe_capacity,
    raise_pipe_capacity,
    read_pipe_max_size,
    set_nonblocking,
    tune_chunk_size,
)

HAS_PIPE_SZ = pipes.F_GETPIPE_SZ is not None


@pytest.fixture
def pipe_fds():
    """A fresh pipe, closed after the test."""
    read_end, write_end = os.pipe()
    yield read_end, write_end
    for fd in (read_end, write_end):
        try:
            os.close(fd)
        except OSError:
            pass


class TestReadPipeMaxSize:
    """Reading the system-wide limit."""

    def test_reads_value(self, tmp_path: Path):
        path = tmp_path / "pipe-max-size"
        path.write_text("1048576\n")
        assert read_pipe_max_size(path) == 1048576

    def test_missing_file(self, tmp_path: Path):
        assert read_pipe_max_size(tmp_path / "missing") is None

    @pytest.mark.parametrize("content", ["", "garbage\n", "0\n", "-5\n"])
    def test_unusable_content(self, tmp_path: Path, content: str):
        path = tmp_path / "pipe-max-size"
        path.write_text(content)
        assert read_pipe_max_size(path) is None


class TestQueryCapacity:
    """Querying a pipe's buffer size."""

    @pytest.mark.skipif(not HAS_PIPE_SZ, reason="F_GETPIPE_SZ is Linux-only")
    def test_real_pipe(self, pipe_fds):
        size = query_pipe_capacity(pipe_fds[0])
        assert size is not None
        assert size >= 4096

    def test_bad_descriptor(self):
        """A closed descriptor yields None instead of raising."""
        read_end, write_end = os.pipe()
        os.close(read_end)
        os.close(write_end)
        assert query_pipe_capacity(read_end) is None

    def test_unsupported_platform(self, pipe_fds):
        with mock.patch.object(pipes, "F_GETPIPE_SZ", None):
            assert query_pipe_capacity(pipe_fds[0]) is None


class TestRaiseCapacity:
    """Best-effort capacity increase."""

    @pytest.mark.skipif(not HAS_PIPE_SZ, reason="F_SETPIPE_SZ is Linux-only")
    def test_errors_are_ignored(self, pipe_fds):
        """A refused resize is swallowed."""
        with mock.patch.object(pipes.fcntl, "fcntl", side_effect=PermissionError(1, "EPERM")):
            raise_pipe_capacity(pipe_fds[0], max_size=1048576)

    def test_no_limit_available(self, pipe_fds):
        with mock.patch.object(pipes, "read_pipe_max_size", return_value=None):
            with mock.patch.object(pipes.fcntl, "fcntl") as fake_fcntl:
                raise_pipe_capacity(pipe_fds[0])
        fake_fcntl.assert_not_called()

    @pytest.mark.skipif(not HAS_PIPE_SZ, reason="F_SETPIPE_SZ is Linux-only")
    def test_grows_pipe(self, pipe_fds):
        """Asking for a modest size (below any default limit) takes effect."""
        before = query_pipe_capacity(pipe_fds[0])
        raise_pipe_capacity(pipe_fds[0], max_size=before * 2)
        assert query_pipe_capacity(pipe_fds[0]) >= before


class TestTuneChunkSize:
    """Chunk size selection."""

    def test_no_fds_falls_back(self):
        assert tune_chunk_size([]) == FALLBACK_CHUNK_SIZE

    def test_discovery_failure_falls_back(self, pipe_fds):
        with mock.patch.object(pipes, "query_pipe_capacity", return_value=None):
            assert tune_chunk_size(pipe_fds, tune=False) == FALLBACK_CHUNK_SIZE

    def test_smallest_capacity_wins(self):
        sizes = {10: 65536, 11: 8192, 12: 1048576}
        with mock.patch.object(pipes, "query_pipe_capacity", side_effect=sizes.get):
            assert tune_chunk_size([10, 11, 12], tune=False) == 8192

    def test_tune_false_does_not_raise_capacity(self, pipe_fds):
        with mock.patch.object(pipes, "raise_pipe_capacity") as fake_raise:
            tune_chunk_size(pipe_fds, tune=False)
        fake_raise.assert_not_called()

    def test_tune_true_raises_each_pipe(self, pipe_fds):
        with mock.patch.object(pipes, "read_pipe_max_size", return_value=131072):
            with mock.patch.object(pipes, "raise_pipe_capacity") as fake_raise:
                tune_chunk_size(pipe_fds, tune=True)
        assert [c.args for c in fake_raise.call_args_list] == [
            (pipe_fds[0], 131072),
            (pipe_fds[1], 131072),
        ]

    @pytest.mark.skipif(not HAS_PIPE_SZ, reason="F_GETPIPE_SZ is Linux-only")
    def test_real_pipes(self, pipe_fds):
        assert tune_chunk_size(pipe_fds) >= 4096


class TestSetNonblocking:

    def test_sets_flag(self, pipe_fds):
        set_nonblocking(pipe_fds[1])
        assert fcntl.fcntl(pipe_fds[1], fcntl.F_GETFL) & os.O_NONBLOCK
        assert not fcntl.fcntl(pipe_fds[0], fcntl.F_GETFL) & os.O_NONBLOCK

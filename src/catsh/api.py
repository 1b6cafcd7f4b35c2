"""阻塞式执行 API。

使用示例:
    result = execute(
        ["sh", "-c", "cat; echo hello; echo error >&2; exit 42"],
        b"catsh stdin ",
        capture_output=True,
    )
    result.exit_code  # 42
    result.stdout     # b"catsh stdin hello\\n"
    result.stderr     # b"error\\n"
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping, Sequence
from typing import IO, Union

from .config import get_config
from .errors import LaunchError
from .runtime.file_input import FileInputMultiplexer, FileSource, ProgressCallback
from .runtime.launcher import Arg, launch, validate_argv
from .runtime.multiplexer import BufferSource, Multiplexer
from .runtime.pipes import tune_chunk_size
from .runtime.result import ExecResult

__all__ = [
    "execute",
    "execute_command",
    "execute_with_file_input",
]

logger = logging.getLogger(__name__)

BufferData = Union[bytes, bytearray, memoryview, str]
InputData = Union[BufferData, int, IO[bytes]]
PathArg = Union[str, os.PathLike]


def _is_descriptor(data: object) -> bool:
    """整数 fd 或带 fileno() 的对象（bool 不算）。"""
    if isinstance(data, bool):
        return False
    if isinstance(data, int):
        return True
    return not isinstance(data, (bytes, bytearray, memoryview, str)) and hasattr(data, "fileno")


def _as_bytes(data: BufferData) -> bytes:
    """把内存中的输入转成 bytes。

    Raises:
        TypeError: 不是 bytes/bytearray/memoryview/str
    """
    if isinstance(data, str):
        return data.encode("utf-8")
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    raise TypeError(
        f"input must be bytes, bytearray, memoryview, str or a file descriptor, "
        f"got {type(data).__name__}"
    )


def _as_fd(source: int | IO[bytes]) -> int:
    if isinstance(source, int):
        return source
    return source.fileno()


def execute(
    argv: Sequence[Arg],
    input: InputData | None = None,
    *,
    capture_output: bool = False,
    cwd: PathArg | None = None,
    env: Mapping[str, str] | None = None,
) -> ExecResult:
    """运行命令直到结束，写入输入并收集输出。

    既没有输入也不捕获输出时，命令的三个标准流全部接到空设备。
    input 是文件描述符（或带 fileno() 的对象）时，转交给
    execute_with_file_input() 按块流式写入，不读入内存。

    Args:
        argv: 命令行，argv[0] 在 PATH 中查找
        input: 写入 stdin 的字节（str 按 UTF-8 编码），或可读的文件描述符
        capture_output: 是否捕获 stdout 和 stderr
        cwd: 命令的工作目录
        env: 命令的环境变量（None = 继承）

    Returns:
        执行结果。命令无法启动时退出码为 EXIT_FAILURE (114)。

    Raises:
        InvalidCommandError: argv 为空
        TypeError: input 类型不支持
        LaunchError: 管道或进程创建失败
    """
    args = validate_argv(argv)
    if input is not None and _is_descriptor(input):
        return execute_with_file_input(
            args, input, capture_output=capture_output, cwd=cwd, env=env
        )
    data = _as_bytes(input) if input is not None else None
    config = get_config()

    child, pipes = launch(
        args,
        want_stdin=data is not None,
        want_output=capture_output,
        null_device=config.null_device,
        cwd=cwd,
        env=env,
    )
    chunk_size = tune_chunk_size(pipes.fds(), tune=config.tune_pipes)
    source = BufferSource(data) if data is not None else None
    return Multiplexer(
        child,
        pipes,
        source,
        chunk_size=chunk_size,
        poll_interval=config.poll_interval,
    ).run()


def execute_with_file_input(
    argv: Sequence[Arg],
    source: int | IO[bytes],
    *,
    capture_output: bool = False,
    progress: ProgressCallback | None = None,
    slot: int = 0,
    cwd: PathArg | None = None,
    env: Mapping[str, str] | None = None,
) -> ExecResult:
    """运行命令，stdin 从可读描述符流式写入。

    描述符归调用方所有，不会被关闭。非阻塞描述符暂时无数据时，
    等待它变为可读，不会空转。

    Args:
        argv: 命令行，argv[0] 在 PATH 中查找
        source: 可读的文件描述符，或带 fileno() 的对象
        capture_output: 是否捕获 stdout 和 stderr
        progress: 每轮传输后以 progress(fraction, slot) 回调，
            结束时再以 PROGRESS_DONE (-1.0) 回调一次
        slot: 原样传回回调的第二个参数
        cwd: 命令的工作目录
        env: 命令的环境变量（None = 继承）

    Raises:
        InvalidCommandError: argv 为空
        LaunchError: 管道或进程创建失败
    """
    args = validate_argv(argv)
    fd = _as_fd(source)
    config = get_config()

    file_source = FileSource(fd)
    child, pipes = launch(
        args,
        want_stdin=True,
        want_output=capture_output,
        null_device=config.null_device,
        cwd=cwd,
        env=env,
    )
    chunk_size = tune_chunk_size(pipes.fds(), tune=config.tune_pipes)
    logger.debug(
        f"Streaming fd={fd} (~{file_source.estimated_size} bytes) "
        f"to pid={child.pid} in {chunk_size}-byte chunks"
    )
    return FileInputMultiplexer(
        child,
        pipes,
        file_source,
        progress=progress,
        slot=slot,
        chunk_size=chunk_size,
        poll_interval=config.poll_interval,
    ).run()


def execute_command(argv: Sequence[Arg]) -> int:
    """运行命令（无输入、不捕获），返回退出码。

    Returns:
        映射后的退出码；进程无法创建时返回 -1
    """
    try:
        result = execute(argv)
    except LaunchError as e:
        logger.warning(f"Launch failed: {e}")
        return -1
    return result.exit_code

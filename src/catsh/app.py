"""catsh 命令行入口。

用法:
    catsh [--capture] [--input TEXT | --input-file PATH] [--progress]
          [--cwd DIR] command [args...]

进程以命令的退出码退出（命令完全无法启动时为 1）。
"""

from __future__ import annotations

import argparse
import contextlib
import logging
import sys

from rich.console import Console

from . import __version__
from .api import execute, execute_with_file_input
from .config import get_config
from .errors import CatshError
from .progress import ProgressDisplay
from .runtime.result import ExecResult

__all__ = ["build_parser", "run", "main"]

logger = logging.getLogger(__name__)

LAUNCH_FAILED_EXIT_CODE = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="catsh",
        description="Run a command, feed it input and collect its output without deadlocks.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-c", "--capture",
        action="store_true",
        help="capture stdout/stderr and echo them after the command finishes",
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument("-i", "--input", help="text written to the command's stdin")
    source.add_argument("-f", "--input-file", help="file streamed to the command's stdin")
    parser.add_argument(
        "-p", "--progress",
        action="store_true",
        help="show a progress bar while streaming --input-file",
    )
    parser.add_argument("--cwd", help="working directory of the command")
    parser.add_argument("command", nargs=argparse.REMAINDER, help="command and its arguments")
    return parser


def _write_captures(result: ExecResult) -> None:
    if result.stdout:
        sys.stdout.buffer.write(result.stdout)
        sys.stdout.buffer.flush()
    if result.stderr:
        sys.stderr.buffer.write(result.stderr)
        sys.stderr.buffer.flush()


def run(args: argparse.Namespace) -> int:
    """执行解析后的命令行，返回退出码。"""
    command = list(args.command)
    if command and command[0] == "--":
        command = command[1:]

    try:
        if args.input_file is not None:
            with open(args.input_file, "rb") as f, contextlib.ExitStack() as stack:
                display = None
                if args.progress:
                    display = stack.enter_context(
                        ProgressDisplay(Console(stderr=True), description=args.input_file)
                    )
                result = execute_with_file_input(
                    command,
                    f,
                    capture_output=args.capture,
                    progress=display,
                    cwd=args.cwd,
                )
        else:
            result = execute(
                command,
                args.input,
                capture_output=args.capture,
                cwd=args.cwd,
            )
    except (CatshError, OSError) as e:
        logger.error(f"catsh: {e}")
        return LAUNCH_FAILED_EXIT_CODE

    logger.debug(f"Command finished: {result!r}")
    if args.capture:
        _write_captures(result)
    return result.exit_code


def _configure_logging() -> None:
    config = get_config()

    log_handlers: list[logging.Handler] = []
    if config.log_debug and config.log_file:
        # LOG_DEBUG 模式：输出到临时文件
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # 第三方库保持 WARNING 级别
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    logging.getLogger("catsh").setLevel(log_level)


def main(argv: list[str] | None = None) -> int:
    """主入口。"""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command or args.command == ["--"]:
        parser.error("a command is required")
    if args.progress and args.input_file is None:
        parser.error("--progress requires --input-file")

    _configure_logging()
    return run(args)


if __name__ == "__main__":
    sys.exit(main())

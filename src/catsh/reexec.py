"""以子进程方式重新运行当前解释器。

子进程与调用方共用终端：不建管道，也不重定向。
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Sequence

from .errors import LaunchError
from .runtime.launcher import Arg, spawn_inherited
from .runtime.result import exit_code_from_status

__all__ = ["reexec_self"]

logger = logging.getLogger(__name__)


def reexec_self(args: Sequence[Arg]) -> int:
    """fork 并以 ``args`` exec ``sys.executable``，然后等待其结束。

    Args:
        args: 解释器路径之后的参数

    Returns:
        映射后的退出码；进程无法创建时返回 -1。
        exec 失败表现为 EXIT_FAILURE (114)。
    """
    executable = sys.executable
    try:
        child = spawn_inherited(executable, [executable, *args])
    except LaunchError as e:
        logger.warning(f"Re-exec failed: {e}")
        return -1
    return exit_code_from_status(child.wait())

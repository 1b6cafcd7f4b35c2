"""catsh 异常类。"""

from __future__ import annotations

__all__ = [
    "CatshError",
    "InvalidCommandError",
    "LaunchError",
]


class CatshError(Exception):
    """catsh 错误基类。"""
    pass


class InvalidCommandError(CatshError, ValueError):
    """命令为空或格式错误，未启动任何进程。"""
    pass


class LaunchError(CatshError):
    """管道或进程创建失败。

    失败之前创建的描述符都已关闭。

    Attributes:
        stage: 失败的步骤（"pipe" 或 "fork"）
        argv0: 正在启动的可执行文件
    """

    def __init__(self, stage: str, argv0: str, cause: OSError) -> None:
        self.stage = stage
        self.argv0 = argv0
        super().__init__(f"{stage} failed while launching {argv0!r}: {cause}")
        self.__cause__ = cause

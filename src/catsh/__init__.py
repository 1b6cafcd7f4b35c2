"""catsh - 运行外部命令，通过管道收发数据且不会死锁。

用法:
    from catsh import execute
    result = execute(["cat"], b"hello", capture_output=True)
"""

__version__ = "0.5.0"

from .api import execute, execute_command, execute_with_file_input
from .errors import CatshError, InvalidCommandError, LaunchError
from .reexec import reexec_self
from .runtime import EXIT_FAILURE, PROGRESS_DONE, ExecResult

__all__ = [
    "__version__",
    "EXIT_FAILURE",
    "PROGRESS_DONE",
    "CatshError",
    "ExecResult",
    "InvalidCommandError",
    "LaunchError",
    "execute",
    "execute_command",
    "execute_with_file_input",
    "reexec_self",
]

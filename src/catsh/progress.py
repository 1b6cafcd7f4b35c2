"""文件输入传输的终端进度显示。

ProgressDisplay 本身就是进度回调：作为 ``progress=`` 传给
execute_with_file_input()。每个 slot 一条进度条；负数进度表示该 slot 结束。

手动刷新：自动刷新线程会在引擎 fork 时仍在运行，
所以只在显示的百分比变化时重绘。
"""

from __future__ import annotations

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

__all__ = ["ProgressDisplay"]


class ProgressDisplay:
    """把 (fraction, slot) 通知渲染为每个 slot 一条 rich 进度条。

    使用示例:
        with ProgressDisplay(description="extracting") as display:
            execute_with_file_input(["tar", "-xJf", "-"], fd, progress=display)
    """

    def __init__(
        self,
        console: Console | None = None,
        description: str = "transfer",
    ) -> None:
        self.description = description
        self._progress = Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=console,
            auto_refresh=False,
        )
        self._tasks: dict[int, TaskID] = {}
        self._shown: dict[int, int] = {}
        self._finished: set[int] = set()
        self._started = False

    @property
    def finished_slots(self) -> set[int]:
        return set(self._finished)

    def percent(self, slot: int) -> int | None:
        """``slot`` 最近一次绘制的百分比（从未绘制时为 None）。"""
        return self._shown.get(slot)

    def __call__(self, fraction: float, slot: int) -> None:
        if not self._started:
            self._progress.start()
            self._started = True

        task = self._tasks.get(slot)
        if task is None:
            label = self.description if slot == 0 else f"{self.description} #{slot}"
            task = self._progress.add_task(label, total=100)
            self._tasks[slot] = task
            self._finished.discard(slot)

        if fraction < 0:
            self._progress.update(task, completed=100)
            self._shown[slot] = 100
            self._finished.add(slot)
            self._progress.refresh()
            if self._finished >= set(self._tasks):
                self.close()
            return

        percent = int(min(fraction, 1.0) * 100)
        if self._shown.get(slot) == percent:
            return
        self._shown[slot] = percent
        self._progress.update(task, completed=percent)
        self._progress.refresh()

    def close(self) -> None:
        if self._started:
            self._progress.stop()
            self._started = False

    def __enter__(self) -> "ProgressDisplay":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

"""Progress display tests."""

from __future__ import annotations

import io

import pytest
from rich.console import Console

from catsh import PROGRESS_DONE
from catsh.progress import ProgressDisplay


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=80, force_terminal=False)


class TestProgressDisplay:
    """Slot bookkeeping and finishing."""

    def test_percent_tracking(self, console):
        display = ProgressDisplay(console)
        display(0.25, 0)
        assert display.percent(0) == 25
        display(0.251, 0)
        assert display.percent(0) == 25
        display(1.5, 0)
        assert display.percent(0) == 100
        display.close()

    def test_unknown_slot(self, console):
        display = ProgressDisplay(console)
        assert display.percent(7) is None

    def test_done_finishes_slot(self, console):
        display = ProgressDisplay(console)
        display(0.5, 0)
        display(PROGRESS_DONE, 0)
        assert display.finished_slots == {0}
        assert display.percent(0) == 100
        assert display._started is False

    def test_stays_open_until_all_slots_done(self, console):
        display = ProgressDisplay(console, description="copy")
        display(0.1, 1)
        display(0.2, 2)
        display(PROGRESS_DONE, 1)
        assert display._started is True
        display(PROGRESS_DONE, 2)
        assert display.finished_slots == {1, 2}
        assert display._started is False

    def test_slot_labels(self, console):
        display = ProgressDisplay(console, description="copy")
        display(0.0, 0)
        display(0.0, 4)
        labels = [task.description for task in display._progress.tasks]
        assert labels == ["copy", "copy #4"]
        display.close()

    def test_context_manager_closes(self, console):
        with ProgressDisplay(console) as display:
            display(0.3, 0)
            assert display._started is True
        assert display._started is False

    def test_close_without_start(self, console):
        display = ProgressDisplay(console)
        display.close()
        display.close()

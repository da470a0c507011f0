from __future__ import annotations

import io

import pytest
from rich.console import Console

from jobbank_crawler.ui import ProgressActivity, ProgressReporter


def test_progress_reporter_counts() -> None:
    reporter = ProgressReporter(enabled=False)
    reporter.start(total=3)
    reporter.advance(1, jobs=25)
    reporter.advance(3, failed=True)
    reporter.advance(2, jobs=10)
    reporter.close()

    state = reporter.state
    assert (state.completed, state.failed, state.jobs) == (3, 1, 35)
    assert state.last_page == 2


def test_progress_requires_start() -> None:
    reporter = ProgressReporter(enabled=False)
    with pytest.raises(RuntimeError):
        reporter.advance(1)
    assert reporter.state is None


def test_progress_disables_itself_off_terminal() -> None:
    console = Console(file=io.StringIO(), force_terminal=False)
    reporter = ProgressReporter(enabled=True, console=console)
    reporter.start(total=2)
    reporter.advance(1, jobs=5)
    reporter.close()

    assert reporter.enabled is False
    assert reporter.state.jobs == 5
    assert console.file.getvalue() == ""


def test_progress_renders_on_terminal() -> None:
    console = Console(file=io.StringIO(), force_terminal=True, width=120)
    reporter = ProgressReporter(enabled=True, console=console)
    reporter.start(total=2)
    reporter.advance(1, jobs=5)
    reporter.advance(2, jobs=7)
    reporter.close()

    assert reporter.enabled is True
    assert (reporter.state.completed, reporter.state.failed, reporter.state.jobs) == (2, 0, 12)


def test_activity_is_silent_when_disabled() -> None:
    console = Console(file=io.StringIO(), force_terminal=True)
    activity = ProgressActivity(enabled=False, console=console)
    activity.start("Discovering total job count")
    activity.close()
    assert console.file.getvalue() == ""

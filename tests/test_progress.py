import threading

import pytest

from pipeline.progress import ProgressReporter, run_with_progress


def test_tick_advances_by_a_twentieth_and_clamps():
    reporter = ProgressReporter(45)
    assert reporter.step == 3
    assert reporter.tick().current == 3
    for _ in range(30):
        state = reporter.tick()
    assert state.current == 45
    assert state.estimated


def test_small_batches_still_move():
    reporter = ProgressReporter(3)
    assert reporter.tick().current == 1


def test_finish_jumps_to_total_and_stops_estimating():
    reporter = ProgressReporter(10)
    reporter.tick()
    state = reporter.finish()
    assert (state.current, state.total, state.estimated) == (10, 10, False)
    assert state.estimated_progress == 1.0
    assert reporter.tick().current == 10


def test_empty_batch_reports_zero_progress():
    reporter = ProgressReporter(0)
    assert reporter.tick().current == 0
    assert reporter.snapshot().estimated_progress == 0.0


def test_snapshots_are_independent_copies():
    reporter = ProgressReporter(20)
    first = reporter.snapshot()
    reporter.tick()
    assert first.current == 0


def test_processing_label_is_cleared_on_finish():
    reporter = ProgressReporter(2)
    assert reporter.set_processing("a@x.com").processing == "a@x.com"
    assert reporter.finish().processing is None


def test_run_with_progress_reports_start_finish_and_clear():
    updates = []
    sleeps = []

    result = run_with_progress(lambda: "done", 4, updates.append, sleep=sleeps.append)

    assert result == "done"
    assert updates[0].current == 0
    assert updates[-2].current == 4
    assert updates[-2].estimated is False
    assert updates[-1] is None
    assert sleeps == [1.0]


def test_run_with_progress_ticks_while_task_runs():
    release = threading.Event()
    updates = []

    def on_update(state):
        updates.append(state)
        if sum(1 for u in updates if u is not None and u.estimated and u.current > 0) >= 2:
            release.set()

    def task():
        assert release.wait(timeout=5)
        return 42

    result = run_with_progress(task, 40, on_update, interval=0.01, sleep=lambda s: None)

    assert result == 42
    ticks = [u.current for u in updates if u is not None and u.estimated and u.current > 0]
    assert ticks[:2] == [2, 4]


def test_run_with_progress_clears_and_reraises_on_failure():
    updates = []

    def task():
        raise RuntimeError("endpoint down")

    with pytest.raises(RuntimeError, match="endpoint down"):
        run_with_progress(task, 5, updates.append, sleep=lambda s: None)

    assert updates[0].current == 0
    assert updates[-1] is None


def test_run_with_progress_propagates_timeout_raised_by_task():
    updates = []

    def task():
        raise TimeoutError("upstream timed out")

    with pytest.raises(TimeoutError, match="upstream timed out"):
        run_with_progress(task, 5, updates.append, interval=0.01, sleep=lambda s: None)

    assert updates[-1] is None
    assert len(updates) < 100

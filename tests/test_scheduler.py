"""
Tests for the virtual and canvas-backed schedulers.
"""

from unittest.mock import MagicMock

import pytest

from pipeTree.workflows.scheduler import CanvasScheduler, VirtualScheduler


class TestVirtualScheduler:
    def test_call_later_runs_once_when_due(self):
        scheduler = VirtualScheduler()
        calls = []

        scheduler.call_later(5, lambda: calls.append(scheduler.now()))
        scheduler.advance(4)
        assert calls == []

        scheduler.advance(10)
        assert calls == [5.0]
        assert scheduler.now() == 14.0
        assert scheduler.scheduled == 0

    def test_cancelled_task_never_runs(self):
        scheduler = VirtualScheduler()
        calls = []

        handle = scheduler.call_every(1, lambda: calls.append(1))
        scheduler.advance(2)
        handle.cancel()
        scheduler.advance(5)

        assert calls == [1, 1]
        assert handle.cancelled

    def test_failing_task_keeps_repeating(self):
        scheduler = VirtualScheduler()
        calls = []

        def flaky():
            calls.append(1)
            raise RuntimeError("boom")

        scheduler.call_every(1, flaky, name="flaky")
        scheduler.advance(3)

        assert len(calls) == 3

    def test_threadsafe_callbacks_wait_for_run_pending(self):
        scheduler = VirtualScheduler()
        calls = []

        scheduler.call_soon_threadsafe(lambda: calls.append("done"))
        assert calls == []

        assert scheduler.run_pending() == 1
        assert calls == ["done"]

    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            VirtualScheduler().call_every(0, lambda: None)


class TestCanvasScheduler:
    def test_timers_are_created_and_stopped(self):
        canvas = MagicMock()
        scheduler = CanvasScheduler(canvas, poll_interval=0.1)

        handle = scheduler.call_every(60, lambda: None, name="auto-refresh")
        timer = canvas.new_timer.return_value

        canvas.new_timer.assert_any_call(interval=100)
        canvas.new_timer.assert_any_call(interval=60000)
        handle.cancel()
        timer.stop.assert_called()

        scheduler.close()

    def test_pending_callbacks_drain_on_the_poller(self):
        canvas = MagicMock()
        scheduler = CanvasScheduler(canvas)
        poll_callback = canvas.new_timer.return_value.add_callback.call_args.args[0]
        calls = []

        scheduler.call_soon_threadsafe(lambda: calls.append("ui"))
        poll_callback()

        assert calls == ["ui"]

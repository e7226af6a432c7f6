"""Unit tests for the periodic scheduler."""

import threading
import time

import pytest

from src.sync.scheduler import PeriodicScheduler


class TestPeriodicScheduler:
    """Tests for start/stop behavior."""

    def test_runs_immediately_then_repeats(self) -> None:
        """Test the task fires on start and again on each interval."""
        calls: list[float] = []
        third_call = threading.Event()

        def task() -> None:
            calls.append(time.monotonic())
            if len(calls) >= 3:
                third_call.set()

        scheduler = PeriodicScheduler(task, interval_seconds=0.02)
        scheduler.start()
        try:
            assert third_call.wait(timeout=5)
        finally:
            scheduler.stop()

        assert len(calls) >= 3

    def test_start_is_idempotent(self) -> None:
        """Test a second start does not spawn another runner."""
        scheduler = PeriodicScheduler(lambda: None, interval_seconds=3600)

        assert scheduler.start() is True
        assert scheduler.start() is False
        scheduler.stop()

    def test_stop_is_idempotent(self) -> None:
        """Test stop can be called repeatedly and before start."""
        scheduler = PeriodicScheduler(lambda: None, interval_seconds=3600)
        assert scheduler.stop() is False

        scheduler.start()
        assert scheduler.stop() is True
        assert scheduler.stop() is False
        assert not scheduler.is_running

    def test_stop_lets_in_flight_run_finish(self) -> None:
        """Test stopping waits for the current run instead of interrupting it."""
        started = threading.Event()
        finished: list[bool] = []

        def task() -> None:
            started.set()
            time.sleep(0.1)
            finished.append(True)

        scheduler = PeriodicScheduler(task, interval_seconds=3600)
        scheduler.start()
        assert started.wait(timeout=5)

        scheduler.stop()

        assert finished == [True]

    def test_task_errors_do_not_stop_ticking(self) -> None:
        """Test an exception in one run does not kill the scheduler."""
        calls: list[int] = []
        second_call = threading.Event()

        def task() -> None:
            calls.append(1)
            if len(calls) >= 2:
                second_call.set()
            raise RuntimeError("boom")

        scheduler = PeriodicScheduler(task, interval_seconds=0.02)
        scheduler.start()
        try:
            assert second_call.wait(timeout=5)
        finally:
            scheduler.stop()

    def test_rejects_non_positive_interval(self) -> None:
        """Test an invalid interval is rejected."""
        with pytest.raises(ValueError, match="positive"):
            PeriodicScheduler(lambda: None, interval_seconds=0)

    def test_restart_after_stop_timeout_does_not_revive_old_runner(self) -> None:
        """Test a runner left behind by a timed-out stop still exits."""
        first_run = threading.Event()
        release = threading.Event()
        calls: list[int] = []

        def task() -> None:
            calls.append(1)
            if len(calls) == 1:
                first_run.set()
                release.wait(timeout=5)

        scheduler = PeriodicScheduler(task, interval_seconds=0.02)
        scheduler.start()
        assert first_run.wait(timeout=5)
        old_thread = scheduler._thread
        assert old_thread is not None

        scheduler.stop(timeout=0.01)
        assert old_thread.is_alive()
        try:
            assert scheduler.start() is True
            release.set()
            old_thread.join(timeout=5)

            assert not old_thread.is_alive()
            assert scheduler.is_running
        finally:
            scheduler.stop()

"""Unit tests for the expiry sweep scheduler.

Tests the SweepScheduler including:
- Job registration with correct configuration
- Immediate first run (next_run_time set to now)
- Prevents overlapping runs (max_instances=1)
- Start/shutdown lifecycle
- Sweep failures are logged and do not stop the schedule
"""

import threading
import time
from datetime import datetime
from unittest.mock import Mock

from liftout.scheduler import SweepScheduler


class TestSweepScheduler:
    """Test suite for SweepScheduler."""

    def test_scheduler_initialization(self):
        """Test that scheduler initializes with correct parameters."""
        mock_callable = Mock(return_value=0)
        shutdown_event = threading.Event()

        scheduler = SweepScheduler(
            sweep_callable=mock_callable,
            interval_seconds=60,
            shutdown_event=shutdown_event,
        )

        assert scheduler.interval_seconds == 60
        assert scheduler.sweep_callable == mock_callable
        assert scheduler.shutdown_event == shutdown_event
        assert not scheduler.is_running()

    def test_scheduler_start_and_shutdown(self):
        """Test scheduler start and shutdown lifecycle."""
        shutdown_event = threading.Event()
        scheduler = SweepScheduler(
            sweep_callable=Mock(return_value=0),
            interval_seconds=300,
            shutdown_event=shutdown_event,
        )

        scheduler.start()
        assert scheduler.is_running()

        time.sleep(0.1)

        scheduler.shutdown(wait=False)
        assert not scheduler.is_running()
        assert shutdown_event.is_set()

    def test_scheduler_registers_job_with_correct_config(self):
        """Test that job defaults forbid overlap and coalesce missed runs."""
        scheduler = SweepScheduler(sweep_callable=Mock(), interval_seconds=60)

        assert scheduler.scheduler._job_defaults["max_instances"] == 1
        assert scheduler.scheduler._job_defaults["coalesce"] is True
        assert scheduler.scheduler._job_defaults["misfire_grace_time"] == 60

    def test_scheduler_immediate_first_run(self):
        """Test that the first sweep runs right after start."""
        ran = threading.Event()

        scheduler = SweepScheduler(sweep_callable=lambda: ran.set() or 0, interval_seconds=3600)
        scheduler.start()

        assert ran.wait(timeout=2)
        scheduler.shutdown(wait=True)

    def test_scheduler_prevents_concurrent_runs(self):
        """Test that max_instances=1 prevents overlapping sweeps."""
        active = [0]
        overlaps = [0]
        lock = threading.Lock()

        def slow_sweep():
            with lock:
                active[0] += 1
                if active[0] > 1:
                    overlaps[0] += 1
            time.sleep(1.5)
            with lock:
                active[0] -= 1
            return 0

        scheduler = SweepScheduler(sweep_callable=slow_sweep, interval_seconds=1)
        scheduler.start()
        time.sleep(2.5)
        scheduler.shutdown(wait=True)

        assert overlaps[0] == 0

    def test_run_sweep_returns_count(self):
        """Test that run_sweep executes synchronously and passes the count through."""
        scheduler = SweepScheduler(sweep_callable=Mock(return_value=4), interval_seconds=3600)

        assert scheduler.run_sweep() == 4

    def test_run_sweep_swallows_failures(self):
        """Test that a failing sweep is logged and reported as None."""
        scheduler = SweepScheduler(
            sweep_callable=Mock(side_effect=RuntimeError("database is locked")),
            interval_seconds=3600,
        )

        assert scheduler.run_sweep() is None

    def test_get_next_run_time(self):
        """Test getting the next scheduled run time."""
        scheduler = SweepScheduler(sweep_callable=Mock(return_value=0), interval_seconds=60)

        assert scheduler.get_next_run_time() is None

        scheduler.start()
        time.sleep(0.1)

        next_run = scheduler.get_next_run_time()
        assert isinstance(next_run, datetime)

        scheduler.shutdown(wait=False)

    def test_multiple_start_calls_safe(self):
        """Test that calling start twice keeps a single running scheduler."""
        scheduler = SweepScheduler(sweep_callable=Mock(return_value=0), interval_seconds=60)

        scheduler.start()
        scheduler.start()
        assert scheduler.is_running()
        assert len(scheduler.scheduler.get_jobs()) == 1

        scheduler.shutdown(wait=False)

    def test_failures_dont_stop_scheduler(self):
        """Test that an exception in one sweep does not stop later ones."""
        call_count = [0]

        def failing_sweep():
            call_count[0] += 1
            if call_count[0] == 1:
                raise Exception("Intentional error")
            return 0

        scheduler = SweepScheduler(sweep_callable=failing_sweep, interval_seconds=1)
        scheduler.start()
        time.sleep(2.5)
        scheduler.shutdown(wait=True)

        assert call_count[0] >= 2

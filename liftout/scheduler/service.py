"""Periodic sweep that persists lazily expired EOIs."""

import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from liftout.logging import get_logger

logger = get_logger(__name__, component="scheduler")

SWEEP_JOB_ID = "eoi-expiry-sweep"


class SweepScheduler:
    """
    Runs the expiry sweep on a BackgroundScheduler.

    Readers already see overdue EOIs as expired; the sweep only brings the
    stored status in line, so a missed or delayed run is harmless.
    """

    def __init__(
        self,
        sweep_callable: Callable[[], int],
        interval_seconds: int,
        shutdown_event: Optional[threading.Event] = None,
    ):
        """
        Args:
            sweep_callable: Function run on each tick, e.g. InterestService.expire_stale
            interval_seconds: Seconds between runs
            shutdown_event: Set on shutdown so the main thread can stop waiting
        """
        self.sweep_callable = sweep_callable
        self.interval_seconds = interval_seconds
        self.shutdown_event = shutdown_event

        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,
                "coalesce": True,
                "misfire_grace_time": interval_seconds,
            },
            timezone=timezone.utc,
        )

    def start(self) -> None:
        """Register the sweep job, first run immediately, and start the scheduler."""
        if self.scheduler.running:
            logger.warning("Scheduler already running", extra={"event": "scheduler.already_running"})
            return

        trigger = IntervalTrigger(seconds=self.interval_seconds, timezone=timezone.utc)

        next_run = datetime.now(timezone.utc)
        self.scheduler.add_job(
            func=self.run_sweep,
            trigger=trigger,
            id=SWEEP_JOB_ID,
            name="EOI expiry sweep",
            replace_existing=True,
            next_run_time=next_run,
        )
        self.scheduler.start()

        logger.info(
            f"Scheduler started with interval: {self.interval_seconds} seconds",
            extra={
                "event": "scheduler.started",
                "interval_seconds": self.interval_seconds,
                "next_run_time": next_run.isoformat(),
            },
        )

    def run_sweep(self) -> Optional[int]:
        """Run one sweep. Failures are logged and the next tick retries."""
        try:
            return self.sweep_callable()
        except Exception as e:
            logger.error(
                f"Expiry sweep failed: {e}",
                exc_info=True,
                extra={"event": "scheduler.sweep.failed", "error_type": type(e).__name__},
            )
            return None

    def shutdown(self, wait: bool = False) -> None:
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self) -> Optional[datetime]:
        job = self.scheduler.get_job(SWEEP_JOB_ID)
        return job.next_run_time if job else None

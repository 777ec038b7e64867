"""Scheduler service for the periodic reconciliation cycle."""

import threading
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from listing_alerts.config.interval import MAX_RECONCILIATION_SECONDS, MIN_RECONCILIATION_SECONDS
from listing_alerts.logging import get_logger

logger = get_logger(__name__, component="scheduler")

RECONCILIATION_JOB_ID = "reconciliation"
DEFAULT_INTERVAL_SECONDS = 30


class SchedulerService:
    """
    Wraps APScheduler to trigger reconciliation cycles at a fixed interval.

    Uses BackgroundScheduler so the main thread stays free for signal
    handling. max_instances=1 keeps ticks from overlapping; a tick that comes
    due while the previous one runs is dropped, and a backlog of missed ticks
    collapses into one run.
    """

    def __init__(
        self,
        cycle_callable: Callable[[], Any],
        interval_seconds: int = DEFAULT_INTERVAL_SECONDS,
        shutdown_event: Optional[threading.Event] = None,
    ):
        """
        Initialize the scheduler service.

        Args:
            cycle_callable: Function to call on each tick (e.g. reconciliation.run_cycle)
            interval_seconds: Interval between ticks in seconds (10 to 86400)
            shutdown_event: Optional event to set on shutdown for coordination

        Raises:
            ValueError: If interval_seconds is outside the allowed range
        """
        if not MIN_RECONCILIATION_SECONDS <= interval_seconds <= MAX_RECONCILIATION_SECONDS:
            raise ValueError(
                f"interval_seconds must be between {MIN_RECONCILIATION_SECONDS} and "
                f"{MAX_RECONCILIATION_SECONDS}, got {interval_seconds}"
            )

        self.cycle_callable = cycle_callable
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
        """
        Start the scheduler and register the reconciliation job.

        The first cycle runs immediately; later cycles follow the interval.
        """
        trigger = IntervalTrigger(seconds=self.interval_seconds, timezone=timezone.utc)

        next_run = datetime.now(timezone.utc)
        self.scheduler.add_job(
            func=self.cycle_callable,
            trigger=trigger,
            id=RECONCILIATION_JOB_ID,
            name="Offer reconciliation",
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

    def shutdown(self, wait: bool = False) -> None:
        """
        Shutdown the scheduler.

        Args:
            wait: If True, wait for a running cycle to complete before returning
        """
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def trigger_now(self) -> Any:
        """Run one cycle synchronously in the current thread."""
        logger.info("Triggering immediate reconciliation cycle", extra={"event": "scheduler.trigger_now"})
        return self.cycle_callable()

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self) -> Optional[datetime]:
        job = self.scheduler.get_job(RECONCILIATION_JOB_ID)
        return job.next_run_time if job else None

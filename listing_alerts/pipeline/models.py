"""Data models for sweep execution tracking and reporting."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass
class OfferRunStats:
    """
    Statistics for one offer evaluated within a sweep.

    Attributes:
        offer_id: Offer that was evaluated
        alerts_evaluated: Number of alerts the offer was checked against
        matched_count: Number of alerts the offer satisfied
        matches_created: Matches newly written to the ledger
        matches_existing: Matches the ledger already held (no notification)
        notifications_sent: Matches whose notification reached at least one channel
        notifications_failed: Matches whose notification failed on every channel
        error_count: Number of errors encountered
        duration_seconds: Time spent processing this offer
        error_message: Last error message, if any
    """

    offer_id: Optional[int]
    alerts_evaluated: int = 0
    matched_count: int = 0
    matches_created: int = 0
    matches_existing: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    error_count: int = 0
    duration_seconds: float = 0.0
    error_message: Optional[str] = None

    @property
    def had_errors(self) -> bool:
        return self.error_count > 0

    def record_error(self, message: str) -> None:
        self.error_count += 1
        self.error_message = message


@dataclass
class SweepResult:
    """
    Aggregate results of one sweep (all offers, or all offers for one alert).

    Attributes:
        run_id: Identifier carried in the logging context of the sweep
        kind: "process_all_offers" or "reprocess_alert"
        run_started_at: UTC timestamp when the sweep began
        run_finished_at: UTC timestamp when the sweep completed
        total_duration_seconds: Total time for the sweep
        offers_evaluated: Offers processed (including ones that errored)
        total_matched: Alert/offer pairs the predicate accepted
        matches_created: New ledger entries
        matches_existing: Pairs already in the ledger
        notifications_sent: Deliveries that reached at least one channel
        notifications_failed: Deliveries that failed on every channel
        total_errors: Errors encountered across offers
        offer_stats: Per-offer statistics
        had_errors: Whether any error occurred, including enumeration failure
        error_message: Sweep-level error (e.g. offers could not be enumerated)
        skipped: True when the sweep had nothing to do (e.g. alert not ACTIVE)
    """

    run_id: str
    kind: str
    run_started_at: datetime
    run_finished_at: datetime
    total_duration_seconds: float = 0.0
    offers_evaluated: int = 0
    total_matched: int = 0
    matches_created: int = 0
    matches_existing: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    total_errors: int = 0
    offer_stats: List[OfferRunStats] = field(default_factory=list)
    had_errors: bool = False
    error_message: Optional[str] = None
    skipped: bool = False

    def __post_init__(self):
        """Compute aggregate statistics from offer stats."""
        if self.offer_stats:
            self.offers_evaluated = len(self.offer_stats)
            self.total_matched = sum(s.matched_count for s in self.offer_stats)
            self.matches_created = sum(s.matches_created for s in self.offer_stats)
            self.matches_existing = sum(s.matches_existing for s in self.offer_stats)
            self.notifications_sent = sum(s.notifications_sent for s in self.offer_stats)
            self.notifications_failed = sum(s.notifications_failed for s in self.offer_stats)
            self.total_errors = sum(s.error_count for s in self.offer_stats)

        if self.error_message is not None:
            self.total_errors += 1

        self.had_errors = self.had_errors or self.total_errors > 0

        if self.total_duration_seconds == 0.0:
            delta = self.run_finished_at - self.run_started_at
            self.total_duration_seconds = delta.total_seconds()


@dataclass
class ReconciliationResult:
    """
    Outcome of one reconciliation cycle (fetch, persist, maybe trigger a sweep).

    Attributes:
        run_id: Identifier carried in the logging context of the cycle
        run_started_at: UTC timestamp when the cycle began
        run_finished_at: UTC timestamp when the cycle completed
        fetched_count: Offers received from the source
        saved_count: Offers that were new
        updated_count: Offers that already existed and were refreshed
        failed_count: Offers that could not be persisted
        sweep_triggered: Whether a process-all-offers sweep was started
        sweep_result: Result of the sweep when it ran inline
        skipped: True when a previous cycle was still running
        error_message: Cycle-level error (e.g. the feed could not be fetched)
    """

    run_id: str
    run_started_at: datetime
    run_finished_at: Optional[datetime] = None
    fetched_count: int = 0
    saved_count: int = 0
    updated_count: int = 0
    failed_count: int = 0
    sweep_triggered: bool = False
    sweep_result: Optional[SweepResult] = None
    skipped: bool = False
    error_message: Optional[str] = None

    @property
    def had_errors(self) -> bool:
        return self.error_message is not None or self.failed_count > 0

    @property
    def duration_seconds(self) -> float:
        if self.run_finished_at is None:
            return 0.0
        return (self.run_finished_at - self.run_started_at).total_seconds()

"""Matching orchestration: evaluate offers, record matches, dispatch notifications."""

import time
from typing import Callable, ContextManager, List, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from listing_alerts.domain.models import Alert, Offer
from listing_alerts.logging import get_logger
from listing_alerts.logging.context import log_context
from listing_alerts.matching.engine import AlertMatcher
from listing_alerts.notifications.service import NotificationDispatcher
from listing_alerts.persistence.database import get_session
from listing_alerts.persistence.exceptions import PersistenceError
from listing_alerts.persistence.repositories import (
    AlertRepository,
    MatchRepository,
    OfferRepository,
)
from listing_alerts.utils.timestamps import utc_now

from .models import OfferRunStats, SweepResult

logger = get_logger(__name__, component="orchestrator")

SessionFactory = Callable[[], ContextManager[Session]]


class MatchingOrchestrator:
    """
    Drives offers through matching, the match ledger and notification.

    For each (alert, offer) pair the predicate accepts, the ledger's
    create-if-absent call decides whether this caller owns the match; only
    the caller that created it dispatches the notification. Sweeps may run
    concurrently with each other.
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        matcher: Optional[AlertMatcher] = None,
        session_factory: SessionFactory = get_session,
    ):
        """
        Initialize the orchestrator.

        Args:
            dispatcher: Notification dispatcher for newly created matches
            matcher: Predicate evaluator (default AlertMatcher())
            session_factory: Context manager factory yielding committed sessions
        """
        self.dispatcher = dispatcher
        self.matcher = matcher or AlertMatcher()
        self.session_factory = session_factory

    def process_offer(self, offer: Offer) -> OfferRunStats:
        """
        Match one offer against every ACTIVE alert.

        Args:
            offer: Persisted offer

        Returns:
            OfferRunStats; failures are recorded there, never raised
        """
        with log_context(run_id=uuid4().hex, offer_id=offer.id):
            try:
                alerts = self._load_active_alerts()
            except Exception as e:
                stats = OfferRunStats(offer_id=offer.id)
                stats.record_error(f"Could not load active alerts: {e}")
                logger.error(
                    f"Could not load active alerts for offer {offer.id}: {e}",
                    extra={"event": "orchestrator.alerts.load_failed", "error_type": type(e).__name__},
                )
                return stats

            return self._process_loaded_offer(offer, alerts)

    def process_all_offers(self) -> SweepResult:
        """
        Match every currently valid offer against every ACTIVE alert.

        Offers are processed sequentially and the ACTIVE alerts are re-read
        for each one, so an alert paused or deleted mid-sweep stops matching
        from the next offer on. A failure on one offer is logged and the sweep
        moves on. If offers cannot be enumerated the sweep ends early with the
        error recorded in the result.

        Returns:
            SweepResult with aggregate and per-offer statistics
        """
        run_started_at = utc_now()
        run_id = uuid4().hex

        with log_context(run_id=run_id, sweep="process_all_offers"):
            logger.info("Sweep started", extra={"event": "orchestrator.sweep.started"})

            try:
                offer_ids = self._load_valid_offer_ids()
            except Exception as e:
                return self._abort_sweep(run_id, "process_all_offers", run_started_at, e)

            offer_stats = [
                self._process_offer_by_id(offer_id, self._load_active_alerts)
                for offer_id in offer_ids
            ]

            return self._finish_sweep(run_id, "process_all_offers", run_started_at, offer_stats)

    def reprocess_alert(self, alert_id: int) -> SweepResult:
        """
        Re-evaluate all currently valid offers against one alert.

        Used after an alert's criteria change: pairs that now qualify get a
        match and a notification; pairs already matched are left alone. A
        missing, PAUSED or DELETED alert makes this a logged no-op. The alert
        is re-read for every offer, so a status change mid-sweep takes effect
        from the next offer on.

        Args:
            alert_id: Alert to reprocess

        Returns:
            SweepResult (skipped=True when the alert is not ACTIVE)
        """
        run_started_at = utc_now()
        run_id = uuid4().hex

        with log_context(run_id=run_id, sweep="reprocess_alert", alert_id=alert_id):
            try:
                alert = self._load_alert(alert_id)
            except Exception as e:
                return self._abort_sweep(run_id, "reprocess_alert", run_started_at, e)

            if alert is None or not alert.is_active:
                reason = "not_found" if alert is None else f"status_{alert.status.value.lower()}"
                logger.info(
                    f"Reprocess skipped for alert {alert_id}: {reason}",
                    extra={"event": "orchestrator.reprocess.skipped", "reason": reason},
                )
                return SweepResult(
                    run_id=run_id,
                    kind="reprocess_alert",
                    run_started_at=run_started_at,
                    run_finished_at=utc_now(),
                    skipped=True,
                )

            logger.info("Reprocess started", extra={"event": "orchestrator.reprocess.started"})

            try:
                offer_ids = self._load_valid_offer_ids()
            except Exception as e:
                return self._abort_sweep(run_id, "reprocess_alert", run_started_at, e)

            def load_target() -> List[Alert]:
                current = self._load_alert(alert_id)
                return [current] if current is not None and current.is_active else []

            offer_stats = [self._process_offer_by_id(offer_id, load_target) for offer_id in offer_ids]

            return self._finish_sweep(run_id, "reprocess_alert", run_started_at, offer_stats)

    def _load_active_alerts(self) -> List[Alert]:
        with self.session_factory() as session:
            return AlertRepository(session).list_active()

    def _load_alert(self, alert_id: int) -> Optional[Alert]:
        with self.session_factory() as session:
            return AlertRepository(session).get_with_owner(alert_id)

    def _load_valid_offer_ids(self) -> List[int]:
        with self.session_factory() as session:
            return OfferRepository(session).list_valid_ids(utc_now())

    def _process_offer_by_id(
        self, offer_id: int, load_alerts: Callable[[], List[Alert]]
    ) -> OfferRunStats:
        with log_context(offer_id=offer_id):
            try:
                with self.session_factory() as session:
                    offer = OfferRepository(session).get_by_id(offer_id)

                if offer is None:
                    logger.debug(f"Offer {offer_id} disappeared before processing")
                    return OfferRunStats(offer_id=offer_id)

                return self._process_loaded_offer(offer, load_alerts())

            except Exception as e:
                # One bad offer must not end the sweep
                stats = OfferRunStats(offer_id=offer_id)
                stats.record_error(str(e))
                logger.error(
                    f"Error processing offer {offer_id}: {e}",
                    exc_info=True,
                    extra={"event": "orchestrator.offer.failed", "error_type": type(e).__name__},
                )
                return stats

    def _process_loaded_offer(self, offer: Offer, alerts: List[Alert]) -> OfferRunStats:
        offer_start = time.time()
        stats = OfferRunStats(offer_id=offer.id, alerts_evaluated=len(alerts))

        logger.debug(
            f"Processing offer {offer.id}: {offer.city} - {offer.price} PLN",
            extra={"event": "orchestrator.offer.started", "alert_count": len(alerts)},
        )

        matching = self.matcher.matching_alerts(offer, alerts)
        stats.matched_count = len(matching)

        for alert in matching:
            self._handle_match(alert, offer, stats)

        stats.duration_seconds = time.time() - offer_start

        if matching:
            logger.info(
                f"Offer {offer.id} matched {len(matching)} alert(s)",
                extra={
                    "event": "matching.offer.matched",
                    "matched_count": stats.matched_count,
                    "matches_created": stats.matches_created,
                    "matches_existing": stats.matches_existing,
                },
            )

        return stats

    def _handle_match(self, alert: Alert, offer: Offer, stats: OfferRunStats) -> None:
        with log_context(alert_id=alert.id):
            try:
                with self.session_factory() as session:
                    outcome = MatchRepository(session).record_match_if_absent(alert.id, offer.id)
            except Exception as e:
                stats.record_error(f"alert {alert.id}: {e}")
                logger.error(
                    f"Error creating match for alert {alert.id} and offer {offer.id}: {e}",
                    exc_info=not isinstance(e, PersistenceError),
                    extra={"event": "ledger.match.failed", "error_type": type(e).__name__},
                )
                return

            if not outcome.created:
                stats.matches_existing += 1
                return

            stats.matches_created += 1
            logger.info(
                f"Match {outcome.match.id} created for alert {alert.id} and offer {offer.id}",
                extra={"event": "ledger.match.created", "match_id": outcome.match.id},
            )

            try:
                delivery = self.dispatcher.dispatch(outcome.match, alert, offer)
            except Exception as e:
                stats.notifications_failed += 1
                stats.record_error(f"match {outcome.match.id}: {e}")
                logger.error(
                    f"Dispatch failed for match {outcome.match.id}: {e}",
                    exc_info=True,
                    extra={"event": "notification.dispatch.failed", "match_id": outcome.match.id},
                )
                return

            if delivery.delivered:
                stats.notifications_sent += 1
            else:
                stats.notifications_failed += 1

    def _abort_sweep(
        self, run_id: str, kind: str, run_started_at, error: Exception
    ) -> SweepResult:
        logger.error(
            f"Sweep aborted: {error}",
            extra={"event": "orchestrator.sweep.aborted", "error_type": type(error).__name__},
        )
        return SweepResult(
            run_id=run_id,
            kind=kind,
            run_started_at=run_started_at,
            run_finished_at=utc_now(),
            error_message=str(error),
        )

    def _finish_sweep(
        self, run_id: str, kind: str, run_started_at, offer_stats: List[OfferRunStats]
    ) -> SweepResult:
        result = SweepResult(
            run_id=run_id,
            kind=kind,
            run_started_at=run_started_at,
            run_finished_at=utc_now(),
            offer_stats=offer_stats,
        )

        logger.info(
            "Sweep completed",
            extra={
                "event": "orchestrator.sweep.completed",
                "kind": kind,
                "duration_ms": int(result.total_duration_seconds * 1000),
                "offers_evaluated": result.offers_evaluated,
                "matches_created": result.matches_created,
                "matches_existing": result.matches_existing,
                "notifications_sent": result.notifications_sent,
                "notifications_failed": result.notifications_failed,
                "total_errors": result.total_errors,
            },
        )
        return result

"""Reconciliation cycle: pull offers, persist them, trigger matching.

The cycle runs on a fixed interval. When at least one new offer was saved it
starts a process-all-offers sweep without waiting for it; cycles with only
updated offers skip the sweep (alert edits are covered by reprocess_alert).
"""

import threading
from typing import Callable, ContextManager, List, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from listing_alerts.domain.models import OfferInput
from listing_alerts.ingestion.base import OfferSource
from listing_alerts.ingestion.exceptions import IngestionError
from listing_alerts.logging import get_logger
from listing_alerts.logging.context import log_context
from listing_alerts.persistence.database import get_session
from listing_alerts.persistence.exceptions import PersistenceError
from listing_alerts.persistence.repositories import OfferRepository
from listing_alerts.utils.timestamps import utc_now

from .models import OfferRunStats, ReconciliationResult
from .runner import MatchingOrchestrator

logger = get_logger(__name__, component="reconciliation")

SessionFactory = Callable[[], ContextManager[Session]]


class ReconciliationService:
    """
    Periodic ingestion trigger for the matching core.

    Cycles are non-reentrant: a cycle that starts while another is still
    running returns immediately with skipped=True. Sweeps started by cycles
    run on daemon threads and may overlap each other.
    """

    def __init__(
        self,
        source: OfferSource,
        orchestrator: MatchingOrchestrator,
        session_factory: SessionFactory = get_session,
    ):
        """
        Initialize the reconciliation service.

        Args:
            source: Offer source queried once per cycle
            orchestrator: Orchestrator whose process_all_offers/process_offer is triggered
            session_factory: Context manager factory yielding committed sessions
        """
        self.source = source
        self.orchestrator = orchestrator
        self.session_factory = session_factory
        self._lock = threading.Lock()
        self._sweep_threads: List[threading.Thread] = []
        self._threads_lock = threading.Lock()

    def run_cycle(self, background_sweep: bool = True) -> ReconciliationResult:
        """
        Execute one reconciliation cycle.

        Args:
            background_sweep: Start the sweep on a daemon thread (True) or run
                it inline before returning (False)

        Returns:
            ReconciliationResult; failures are recorded there, never raised
        """
        run_id = uuid4().hex
        result = ReconciliationResult(run_id=run_id, run_started_at=utc_now())

        if not self._lock.acquire(blocking=False):
            with log_context(run_id=run_id):
                logger.warning(
                    "Reconciliation cycle skipped: previous cycle still in progress",
                    extra={"event": "reconciliation.cycle.skipped", "reason": "lock_held"},
                )
            result.skipped = True
            result.run_finished_at = utc_now()
            return result

        try:
            with log_context(run_id=run_id):
                logger.info("Reconciliation cycle started", extra={"event": "reconciliation.cycle.started"})

                try:
                    offers = self.source.fetch_offers()
                except IngestionError as e:
                    result.error_message = str(e)
                    result.run_finished_at = utc_now()
                    logger.error(
                        f"Reconciliation cycle failed to fetch offers: {e}",
                        extra={"event": "reconciliation.cycle.failed", "error_type": type(e).__name__},
                    )
                    return result

                result.fetched_count = len(offers)
                for offer_input in offers:
                    self._save_offer(offer_input, result)

                if result.saved_count > 0:
                    result.sweep_triggered = True
                    if background_sweep:
                        self._start_background_sweep(run_id)
                    else:
                        result.sweep_result = self.orchestrator.process_all_offers()

                result.run_finished_at = utc_now()
                logger.info(
                    f"Saved {result.saved_count} new offers and updated {result.updated_count} existing offers",
                    extra={
                        "event": "reconciliation.cycle.completed",
                        "fetched_count": result.fetched_count,
                        "saved_count": result.saved_count,
                        "updated_count": result.updated_count,
                        "failed_count": result.failed_count,
                        "sweep_triggered": result.sweep_triggered,
                        "duration_ms": int(result.duration_seconds * 1000),
                    },
                )
                return result
        finally:
            self._lock.release()

    def ingest_offer(self, offer_input: OfferInput) -> Optional[OfferRunStats]:
        """
        Persist a single offer and match it immediately if it is new.

        Args:
            offer_input: Normalized offer

        Returns:
            OfferRunStats for a new offer, None for an update

        Raises:
            PersistenceError: If the offer could not be stored
        """
        with self.session_factory() as session:
            offer, is_new = OfferRepository(session).upsert_by_link(offer_input)

        if not is_new:
            logger.debug(
                f"Updated existing offer: {offer.link}",
                extra={"event": "reconciliation.offer.updated", "offer_id": offer.id},
            )
            return None

        logger.info(
            f"Saved new offer {offer.id}, matching it now",
            extra={"event": "reconciliation.offer.saved", "offer_id": offer.id},
        )
        return self.orchestrator.process_offer(offer)

    def wait_for_sweeps(self, timeout: Optional[float] = None) -> bool:
        """
        Block until background sweeps started by this service have finished.

        Returns:
            True if every sweep finished within timeout
        """
        with self._threads_lock:
            threads = list(self._sweep_threads)

        for thread in threads:
            thread.join(timeout)

        with self._threads_lock:
            self._sweep_threads = [t for t in self._sweep_threads if t.is_alive()]
            return not self._sweep_threads

    def _save_offer(self, offer_input: OfferInput, result: ReconciliationResult) -> None:
        try:
            with self.session_factory() as session:
                offer, is_new = OfferRepository(session).upsert_by_link(offer_input)
        except PersistenceError as e:
            result.failed_count += 1
            logger.error(
                f"Failed to save/update offer {offer_input.link}: {e}",
                extra={"event": "reconciliation.offer.failed"},
            )
            return

        if is_new:
            result.saved_count += 1
            logger.debug(f"Saved new offer: {offer.link}", extra={"offer_id": offer.id})
        else:
            result.updated_count += 1
            logger.debug(f"Updated existing offer: {offer.link}", extra={"offer_id": offer.id})

    def _start_background_sweep(self, run_id: str) -> None:
        thread = threading.Thread(
            target=self._run_sweep,
            args=(run_id,),
            name=f"sweep-{run_id[:8]}",
            daemon=True,
        )
        with self._threads_lock:
            self._sweep_threads = [t for t in self._sweep_threads if t.is_alive()]
            self._sweep_threads.append(thread)
        thread.start()

        logger.info(
            "Triggered matching sweep for new offers",
            extra={"event": "reconciliation.sweep.triggered"},
        )

    def _run_sweep(self, cycle_run_id: str) -> None:
        with log_context(cycle_run_id=cycle_run_id):
            try:
                self.orchestrator.process_all_offers()
            except Exception as e:
                # Nobody joins this thread; the error has to be logged here
                logger.error(
                    f"Background sweep failed: {e}",
                    exc_info=True,
                    extra={"event": "reconciliation.sweep.failed", "error_type": type(e).__name__},
                )

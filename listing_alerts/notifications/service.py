"""Notification dispatcher for match alerts.

This module provides the NotificationDispatcher class that takes a newly
created match through rendering, audit persistence, channel delivery and
outcome recording. Delivery is attempted exactly once per match; failures
are recorded, never retried and never raised.
"""

import logging
from typing import Callable, ContextManager, List, Mapping, Optional, Tuple

from sqlalchemy.orm import Session

from listing_alerts.domain.models import (
    Alert,
    DeliveryChannel,
    Match,
    Notification,
    Offer,
)
from listing_alerts.logging import get_logger
from listing_alerts.logging.context import log_context
from listing_alerts.persistence.database import get_session
from listing_alerts.persistence.exceptions import PersistenceError
from listing_alerts.persistence.repositories import MatchRepository, NotificationRepository
from listing_alerts.utils.timestamps import utc_now

from .models import (
    ChannelResult,
    DeliveryError,
    DeliveryOutcome,
    NotificationError,
    RenderedNotification,
)
from .payloads import build_notification_context
from .sinks import NotificationSink
from .templates import TemplateRenderer

logger = get_logger(__name__, component="notification")

SessionFactory = Callable[[], ContextManager[Session]]


class NotificationDispatcher:
    """Delivers the notification for a newly created match.

    Flow per match:
    1. Render title and bodies from the alert and offer
    2. Persist the Notification unsent and commit (audit trail)
    3. Send on each channel the alert's method selects, independently
    4. Record the outcome on the Notification and on the Match

    Each persistence step runs in its own session from session_factory.
    """

    def __init__(
        self,
        sinks: Mapping[DeliveryChannel, NotificationSink],
        template_renderer: Optional[TemplateRenderer] = None,
        session_factory: SessionFactory = get_session,
        logger_instance: Optional[logging.Logger] = None,
    ):
        """Initialize notification dispatcher.

        Args:
            sinks: Sink per delivery channel (a channel without a sink fails delivery)
            template_renderer: Template renderer instance (creates default if None)
            session_factory: Context manager factory yielding committed sessions
            logger_instance: Logger instance (uses module logger if None)
        """
        self.sinks = dict(sinks)
        self.template_renderer = template_renderer or TemplateRenderer()
        self.session_factory = session_factory
        self.logger = logger_instance or logger

    def dispatch(self, match: Match, alert: Alert, offer: Offer) -> DeliveryOutcome:
        """Deliver and record the notification for one match.

        Args:
            match: Newly created match
            alert: Matched alert, with owner contact attached
            offer: Matched offer

        Returns:
            DeliveryOutcome describing what happened on each channel
        """
        outcome = DeliveryOutcome(match_id=match.id)

        with log_context(match_id=match.id, alert_id=alert.id, offer_id=offer.id):
            try:
                rendered = self.template_renderer.render(
                    build_notification_context(alert, offer, match)
                )
            except Exception as e:
                outcome.error = f"Rendering failed: {e}"
                self.logger.error(
                    f"Could not render notification for match {match.id}: {e}",
                    exc_info=not isinstance(e, NotificationError),
                    extra={"event": "notification.render.failure", "error_type": type(e).__name__},
                )
                self._record_match_failure(match.id, outcome.error)
                return outcome

            try:
                with self.session_factory() as session:
                    notification = NotificationRepository(session).create(
                        Notification(
                            user_id=alert.user_id,
                            alert_id=alert.id,
                            match_id=match.id,
                            title=rendered.title,
                            message=rendered.text_body,
                            method=alert.notification_method,
                            sent=False,
                            created_at=utc_now(),
                        )
                    )
                outcome.notification_id = notification.id
            except Exception as e:
                outcome.error = f"Could not store notification: {e}"
                self.logger.error(
                    f"Could not store notification for match {match.id}: {e}",
                    exc_info=not isinstance(e, PersistenceError),
                    extra={"event": "notification.persist.failure", "error_type": type(e).__name__},
                )
                self._record_match_failure(match.id, outcome.error)
                return outcome

            for channel, target in self._channel_targets(alert):
                outcome.channel_results.append(self._send(channel, target, rendered))

            errors = [r.describe_error() for r in outcome.channel_results if not r.success]
            outcome.error = "; ".join(e for e in errors if e) or None

            self._record_outcome(outcome)

        return outcome

    def _channel_targets(self, alert: Alert) -> List[Tuple[DeliveryChannel, Optional[str]]]:
        targets = []
        method = alert.notification_method
        if method.uses_email:
            targets.append((DeliveryChannel.EMAIL, alert.owner.email if alert.owner else None))
        if method.uses_webhook:
            targets.append((DeliveryChannel.WEBHOOK, alert.webhook_url))
        return targets

    def _send(
        self, channel: DeliveryChannel, target: Optional[str], message: RenderedNotification
    ) -> ChannelResult:
        sink = self.sinks.get(channel)
        if sink is None:
            error = f"No sink configured for channel {channel.value}"
        elif not target:
            error = "No delivery target"
        else:
            try:
                sink.send(channel, target, message)
                self.logger.info(
                    f"Notification sent via {channel.value}",
                    extra={"event": "notification.send.success", "channel": channel.value},
                )
                return ChannelResult(channel=channel, target=target, success=True)
            except DeliveryError as e:
                error = str(e)
            except Exception as e:
                error = f"Unexpected {type(e).__name__}: {e}"
                self.logger.error(
                    f"Unexpected error from {channel.value} sink: {e}",
                    exc_info=True,
                    extra={"event": "notification.send.failure", "channel": channel.value},
                )
                return ChannelResult(channel=channel, target=target, success=False, error=error)

        self.logger.warning(
            f"Notification delivery via {channel.value} failed: {error}",
            extra={
                "event": "notification.send.failure",
                "channel": channel.value,
                "error": error,
            },
        )
        return ChannelResult(channel=channel, target=target, success=False, error=error)

    def _record_outcome(self, outcome: DeliveryOutcome) -> None:
        try:
            with self.session_factory() as session:
                notifications = NotificationRepository(session)
                matches = MatchRepository(session)
                if outcome.delivered:
                    notifications.mark_sent(outcome.notification_id, utc_now(), error=outcome.error)
                    matches.mark_delivered(outcome.match_id, partial_error=outcome.error)
                else:
                    notifications.mark_failed(outcome.notification_id, outcome.error or "Delivery failed")
                    matches.mark_delivery_failed(outcome.match_id, outcome.error or "Delivery failed")
        except Exception as e:
            self.logger.error(
                f"Could not record delivery outcome for match {outcome.match_id}: {e}",
                exc_info=not isinstance(e, PersistenceError),
                extra={"event": "notification.record.failure", "error_type": type(e).__name__},
            )
            outcome.error = "; ".join(filter(None, [outcome.error, f"Outcome not recorded: {e}"]))
            return

        self.logger.info(
            f"Notification for match {outcome.match_id} {outcome.status}",
            extra={
                "event": "notification.dispatched",
                "status": outcome.status,
                "channels": [r.channel.value for r in outcome.channel_results],
            },
        )

    def _record_match_failure(self, match_id: int, reason: str) -> None:
        try:
            with self.session_factory() as session:
                MatchRepository(session).mark_delivery_failed(match_id, reason)
        except Exception as e:
            self.logger.error(
                f"Could not record failure on match {match_id}: {e}",
                exc_info=not isinstance(e, PersistenceError),
                extra={"event": "notification.record.failure", "error_type": type(e).__name__},
            )

"""Predicate evaluator for matching offers against alerts.

This module implements the matching logic that:
1. Skips alerts that are not ACTIVE
2. Checks every criterion the alert sets (unset criteria always pass)
3. ANDs the results; there is no scoring and no partial match
"""

import logging
from typing import Callable, Iterable, List, Optional, Tuple

from listing_alerts.domain.models import Alert, Offer

from .models import MatchResult

logger = logging.getLogger(__name__)


def _normalize_city(value: Optional[str]) -> str:
    return (value or "").strip().casefold()


def price_within_max(alert: Alert, offer: Offer) -> bool:
    return alert.max_price is None or offer.price <= alert.max_price


def price_within_min(alert: Alert, offer: Offer) -> bool:
    return alert.min_price is None or offer.price >= alert.min_price


def city_matches(alert: Alert, offer: Offer) -> bool:
    """Case-insensitive: the alert's city must contain the offer's city.

    Alert "Kraków, Podgórze" matches offer "kraków"; alert "Kraków" does not
    match offer "Kraków-Podgórze". An offer without a city never satisfies
    an alert that names one.
    """
    if alert.city is None:
        return True

    wanted = _normalize_city(alert.city)
    actual = _normalize_city(offer.city)
    if not actual:
        return False
    return actual in wanted


def rooms_match(alert: Alert, offer: Offer) -> bool:
    if alert.rooms is None:
        return True
    return offer.rooms is not None and offer.rooms == alert.rooms


def footage_within_bounds(alert: Alert, offer: Offer) -> bool:
    """Apply whichever footage bounds are set; skip both if the offer's footage is unknown."""
    # Feeds report missing footage as 0
    if offer.footage is None or offer.footage <= 0:
        return True
    if alert.min_footage is not None and offer.footage < alert.min_footage:
        return False
    if alert.max_footage is not None and offer.footage > alert.max_footage:
        return False
    return True


def type_matches(alert: Alert, offer: Offer) -> bool:
    if alert.type is None:
        return True
    return offer.type is not None and offer.type == alert.type


def _flag_matches(wanted: Optional[bool], actual: Optional[bool]) -> bool:
    # Compared only when both sides report a value
    if wanted is None or actual is None:
        return True
    return wanted == actual


def furniture_matches(alert: Alert, offer: Offer) -> bool:
    return _flag_matches(alert.furniture, offer.furniture)


def pets_match(alert: Alert, offer: Offer) -> bool:
    return _flag_matches(alert.pets, offer.pets_allowed)


def elevator_matches(alert: Alert, offer: Offer) -> bool:
    return _flag_matches(alert.elevator, offer.elevator)


CRITERIA: Tuple[Tuple[str, Callable[[Alert, Offer], bool]], ...] = (
    ("max_price", price_within_max),
    ("min_price", price_within_min),
    ("city", city_matches),
    ("rooms", rooms_match),
    ("footage", footage_within_bounds),
    ("type", type_matches),
    ("furniture", furniture_matches),
    ("pets", pets_match),
    ("elevator", elevator_matches),
)


class AlertMatcher:
    """Evaluates offers against alert criteria.

    Responsibilities:
    - Reject alerts that are PAUSED or DELETED
    - Run each criterion check independently
    - Record which criteria failed, for debug logging
    """

    def __init__(self, logger_instance: logging.Logger = None):
        """Initialize AlertMatcher.

        Args:
            logger_instance: Optional logger instance (defaults to module logger)
        """
        self.logger = logger_instance or logger

    def evaluate(self, alert: Alert, offer: Offer) -> MatchResult:
        """Evaluate one offer against one alert.

        Args:
            alert: Alert whose criteria are applied
            offer: Offer to test

        Returns:
            MatchResult with the decision and the failed criteria
        """
        offer_id = getattr(offer, "id", None)

        if not alert.is_active:
            return MatchResult(
                alert_id=alert.id,
                offer_id=offer_id,
                is_match=False,
                failed_criteria=["status"],
            )

        failed = [name for name, check in CRITERIA if not check(alert, offer)]
        result = MatchResult(
            alert_id=alert.id,
            offer_id=offer_id,
            is_match=not failed,
            failed_criteria=failed,
        )

        if not result.is_match:
            self.logger.debug(
                f"Offer {offer_id} rejected by alert {alert.id}: {result.reason}",
                extra={
                    "event": "matching.offer.rejected",
                    "alert_id": alert.id,
                    "offer_id": offer_id,
                    "failed_criteria": failed,
                },
            )

        return result

    def matching_alerts(self, offer: Offer, alerts: Iterable[Alert]) -> List[Alert]:
        """Return the alerts in the given collection that the offer satisfies."""
        return [alert for alert in alerts if self.evaluate(alert, offer).is_match]


_default_matcher = AlertMatcher()


def matches(alert: Alert, offer: Offer) -> bool:
    """True if offer satisfies every criterion of an ACTIVE alert."""
    return _default_matcher.evaluate(alert, offer).is_match


def matching_alerts(offer: Offer, alerts: Iterable[Alert]) -> List[Alert]:
    """Select every alert in alerts that offer satisfies, preserving order."""
    return _default_matcher.matching_alerts(offer, alerts)

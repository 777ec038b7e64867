"""Domain models for the listing alerts service."""

from .models import (
    Alert,
    AlertStatus,
    DeliveryChannel,
    ListingType,
    Match,
    MatchRecordOutcome,
    Notification,
    NotificationMethod,
    Offer,
    OfferInput,
    UserContact,
)

__all__ = [
    "Alert",
    "AlertStatus",
    "DeliveryChannel",
    "ListingType",
    "Match",
    "MatchRecordOutcome",
    "Notification",
    "NotificationMethod",
    "Offer",
    "OfferInput",
    "UserContact",
]

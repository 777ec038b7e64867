"""Offer ingestion: sources that produce normalized offers for reconciliation."""

from .base import HttpOfferSource, OfferSource
from .exceptions import (
    IngestionError,
    IngestionHTTPError,
    IngestionResponseError,
    IngestionTimeoutError,
)
from .http_feed import HttpFeedOfferSource, parse_offer_record

__all__ = [
    "OfferSource",
    "HttpOfferSource",
    "HttpFeedOfferSource",
    "parse_offer_record",
    "IngestionError",
    "IngestionHTTPError",
    "IngestionTimeoutError",
    "IngestionResponseError",
]

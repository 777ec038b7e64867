"""Offer source for a JSON feed of normalized listings.

The feed is queried with offset/limit paging and an upper price bound
(priceTo). It answers either with a JSON array of offers or with an object
holding the array under "offers", "data" or "results".
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from listing_alerts.config.models import IngestionConfig
from listing_alerts.domain.models import ListingType, OfferInput

from .base import HttpOfferSource
from .exceptions import IngestionResponseError

logger = logging.getLogger(__name__)

_ENVELOPE_KEYS = ("offers", "data", "results")
_LISTING_TYPES = {t.value for t in ListingType}


class HttpFeedOfferSource(HttpOfferSource):
    """Fetches one page of offers per reconciliation cycle."""

    def __init__(
        self,
        feed_url: str,
        page_limit: int = 40,
        max_price: Optional[float] = 15000,
        offset: int = 0,
        timeout: int = 30,
        user_agent: str = "ListingAlerts/1.0",
    ) -> None:
        super().__init__(timeout=timeout, user_agent=user_agent)
        self.feed_url = feed_url
        self.page_limit = page_limit
        self.max_price = max_price
        self.offset = offset

    @classmethod
    def from_config(cls, config: IngestionConfig) -> "HttpFeedOfferSource":
        return cls(
            feed_url=str(config.feed_url),
            page_limit=config.page_limit,
            max_price=config.max_price,
            timeout=config.request_timeout,
            user_agent=config.user_agent,
        )

    def build_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {"offset": self.offset, "limit": self.page_limit}
        if self.max_price is not None:
            params["priceTo"] = _format_price(self.max_price)
        return params

    def fetch_offers(self) -> List[OfferInput]:
        payload = self._get_json(self.feed_url, params=self.build_params())
        records = _unwrap_records(payload)

        offers = []
        for index, record in enumerate(records):
            offer = parse_offer_record(record)
            if offer is None:
                logger.warning(
                    f"Skipping invalid offer record at position {index}",
                    extra={"event": "ingestion.record.invalid", "position": index},
                )
                continue
            offers.append(offer)

        logger.info(
            f"Fetched {len(offers)} offers from feed",
            extra={
                "event": "ingestion.fetch.completed",
                "received_count": len(records),
                "valid_count": len(offers),
            },
        )
        return offers


def parse_offer_record(record: Any) -> Optional[OfferInput]:
    """Validate one feed record; return None if it is unusable."""
    if not isinstance(record, dict):
        return None

    data = dict(record)
    listing_type = data.get("type")
    if isinstance(listing_type, str):
        normalized = listing_type.strip().upper()
        data["type"] = normalized if normalized in _LISTING_TYPES else None

    try:
        return OfferInput.model_validate(data)
    except ValidationError as e:
        logger.debug(f"Offer record failed validation: {e.error_count()} error(s)")
        return None


def _unwrap_records(payload: Any) -> List[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in _ENVELOPE_KEYS:
            if isinstance(payload.get(key), list):
                return payload[key]
    raise IngestionResponseError(
        f"Unexpected feed payload: expected a list or an object with one of {', '.join(_ENVELOPE_KEYS)}"
    )


def _format_price(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)

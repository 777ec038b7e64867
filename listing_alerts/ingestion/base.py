"""Base class for offer sources.

An offer source yields normalized OfferInput records; the reconciliation
cycle persists them and decides whether a sweep is needed.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests

from listing_alerts.domain.models import OfferInput

from .exceptions import (
    IngestionError,
    IngestionHTTPError,
    IngestionResponseError,
    IngestionTimeoutError,
)

logger = logging.getLogger(__name__)


class OfferSource(ABC):
    """Produces normalized offers for one reconciliation cycle."""

    @abstractmethod
    def fetch_offers(self) -> List[OfferInput]:
        """Fetch the current batch of offers.

        Returns:
            List of OfferInput records. Records that fail validation are
            skipped by the source, never returned.

        Raises:
            IngestionError: If the batch could not be fetched at all
        """


class HttpOfferSource(OfferSource):
    """Offer source backed by an HTTP JSON API.

    Holds a requests.Session with the configured User-Agent and provides
    request handling that maps transport failures to IngestionError
    subclasses.
    """

    def __init__(self, timeout: int = 30, user_agent: str = "ListingAlerts/1.0") -> None:
        """Initialize HTTP source.

        Args:
            timeout: HTTP request timeout in seconds (range 5-300)
            user_agent: User-Agent header for requests

        Raises:
            IngestionError: If timeout is outside valid range or user_agent is empty
        """
        if not 5 <= timeout <= 300:
            raise IngestionError(f"Timeout must be between 5 and 300 seconds, got: {timeout}")
        if not user_agent or not user_agent.strip():
            raise IngestionError("user_agent cannot be empty")

        self.timeout = timeout
        self.user_agent = user_agent.strip()

        self._session = requests.Session()
        self._session.headers.update({"User-Agent": self.user_agent, "Accept": "application/json"})

    def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET url and return the decoded JSON body.

        Raises:
            IngestionHTTPError: On 4xx or 5xx HTTP status or connection failure
            IngestionTimeoutError: On request timeout
            IngestionResponseError: On invalid JSON
        """
        try:
            logger.debug(
                f"HTTP GET request to {url}",
                extra={
                    "event": "ingestion.fetch.request",
                    "url": url,
                    "timeout": self.timeout,
                },
            )
            response = self._session.get(url, params=params, timeout=self.timeout)

        except requests.exceptions.Timeout as e:
            logger.warning(
                f"Request to {url} timed out after {self.timeout} seconds",
                extra={"event": "ingestion.fetch.timeout", "url": url},
            )
            raise IngestionTimeoutError(
                f"Request to {url} timed out after {self.timeout} seconds", url=url
            ) from e
        except requests.exceptions.RequestException as e:
            logger.error(
                f"Request to {url} failed: {e}",
                extra={"event": "ingestion.fetch.error", "error_type": type(e).__name__, "url": url},
            )
            raise IngestionHTTPError(f"Request to {url} failed: {e}", status_code=0, url=url) from e

        if response.status_code >= 400:
            is_retryable = response.status_code >= 500
            logger.log(
                logging.WARNING if is_retryable else logging.ERROR,
                f"HTTP {response.status_code} error from {url}",
                extra={
                    "event": "ingestion.fetch.retryable_error" if is_retryable else "ingestion.fetch.error",
                    "status_code": response.status_code,
                    "url": url,
                },
            )
            raise IngestionHTTPError(
                f"HTTP {response.status_code}: {response.reason}",
                status_code=response.status_code,
                url=url,
            )

        try:
            return response.json()
        except ValueError as e:
            logger.error(
                f"Failed to parse JSON response from {url}",
                extra={"event": "ingestion.fetch.error", "error_type": "JSONDecodeError", "url": url},
            )
            raise IngestionResponseError(f"Failed to parse JSON response from {url}: {e}") from e

    def close(self) -> None:
        self._session.close()

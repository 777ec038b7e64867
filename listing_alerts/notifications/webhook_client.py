"""HTTP client for webhook delivery.

Posts Discord-compatible JSON payloads with a shared requests.Session.
"""

import logging
from typing import Any, Dict, Optional

import requests

from listing_alerts.domain.models import DeliveryChannel

from .models import DeliveryError, RenderedNotification

logger = logging.getLogger(__name__)

# Discord rejects content longer than this
MAX_CONTENT_LENGTH = 2000
EMBED_COLOR = 0x2E86DE


def build_webhook_payload(message: RenderedNotification, username: str) -> Dict[str, Any]:
    """Build a Discord-compatible webhook payload.

    Args:
        message: Rendered notification
        username: Display name for the posting bot

    Returns:
        JSON-serializable payload with a single embed linking to the offer
    """
    description = message.text_body
    if len(description) > MAX_CONTENT_LENGTH:
        description = description[: MAX_CONTENT_LENGTH - 1] + "…"

    return {
        "username": username,
        "content": message.title,
        "embeds": [
            {
                "title": message.title,
                "description": description,
                "url": message.link,
                "color": EMBED_COLOR,
            }
        ],
    }


class WebhookClient:
    """Posts JSON payloads to webhook URLs.

    Any non-2xx response counts as a delivery failure.
    """

    def __init__(self, timeout: int = 10, session: Optional[requests.Session] = None):
        """Initialize webhook client.

        Args:
            timeout: Request timeout in seconds
            session: Optional requests session (for connection reuse and mocking)
        """
        self.timeout = timeout
        self._session = session or requests.Session()

    def post(self, url: str, payload: Dict[str, Any]) -> None:
        """POST payload to url.

        Raises:
            DeliveryError: On timeout, connection error or HTTP error status
        """
        try:
            logger.debug(
                "Posting webhook payload",
                extra={"event": "notification.webhook.request", "timeout": self.timeout},
            )
            response = self._session.post(url, json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise DeliveryError(
                f"Webhook request timed out after {self.timeout} seconds",
                channel=DeliveryChannel.WEBHOOK,
            ) from e
        except requests.exceptions.RequestException as e:
            raise DeliveryError(
                f"Webhook request failed: {e}", channel=DeliveryChannel.WEBHOOK
            ) from e

        if response.status_code >= 400:
            raise DeliveryError(
                f"Webhook returned HTTP {response.status_code}: {response.reason}",
                channel=DeliveryChannel.WEBHOOK,
            )

        logger.debug(
            f"Webhook accepted payload with HTTP {response.status_code}",
            extra={"event": "notification.webhook.accepted", "status_code": response.status_code},
        )

    def close(self) -> None:
        self._session.close()

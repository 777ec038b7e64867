"""Data models and exceptions for the notification dispatcher.

This module defines result types and custom exceptions used throughout
the notification path.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from listing_alerts.domain.models import DeliveryChannel


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


class NotificationTemplateError(NotificationError):
    """Raised when template rendering fails due to configuration or missing variables."""

    pass


class DeliveryError(NotificationError):
    """Raised by a sink when a message could not be delivered on its channel."""

    def __init__(self, message: str, channel: Optional[DeliveryChannel] = None):
        self.channel = channel
        super().__init__(message)


@dataclass
class RenderedNotification:
    """Title and bodies rendered for one match.

    Attributes:
        title: Single-line title (email subject, webhook heading)
        text_body: Plain text body (stored on the Notification record)
        html_body: HTML body for email
        link: Offer link
    """

    title: str
    text_body: str
    html_body: str
    link: str


@dataclass
class ChannelResult:
    """Outcome of one delivery attempt on one channel."""

    channel: DeliveryChannel
    target: Optional[str]
    success: bool
    error: Optional[str] = None

    def describe_error(self) -> Optional[str]:
        if self.success or not self.error:
            return None
        return f"{self.channel.value}: {self.error}"


@dataclass
class DeliveryOutcome:
    """Result of dispatching the notification for one match.

    A notification counts as delivered when at least one channel succeeded;
    errors of the channels that failed are still reported in error.

    Attributes:
        match_id: Match the notification belongs to
        notification_id: Audit record id (None if it could not be written)
        channel_results: One entry per attempted channel
        error: Combined error text, None when every step succeeded
    """

    match_id: int
    notification_id: Optional[int] = None
    channel_results: List[ChannelResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return any(result.success for result in self.channel_results)

    @property
    def status(self) -> str:
        """'sent' if at least one channel delivered, otherwise 'failed'."""
        return "sent" if self.delivered else "failed"

    def is_success(self) -> bool:
        return self.delivered

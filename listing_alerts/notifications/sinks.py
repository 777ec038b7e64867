"""Notification sinks: one delivery transport per channel.

A sink sends a rendered notification to a target (an email address or a
webhook URL) and raises DeliveryError when it cannot.
"""

from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import Optional

from listing_alerts.config.environment import EnvironmentConfig
from listing_alerts.config.models import EmailConfig, WebhookConfig
from listing_alerts.domain.models import DeliveryChannel

from .models import DeliveryError, RenderedNotification
from .smtp_client import SMTPClient, build_sender_address, parse_recipient
from .webhook_client import WebhookClient, build_webhook_payload


class NotificationSink(ABC):
    """Delivery transport for one or more channels."""

    @abstractmethod
    def send(self, channel: DeliveryChannel, target: str, message: RenderedNotification) -> None:
        """Deliver message to target on channel.

        Raises:
            DeliveryError: If the message could not be delivered
        """


class EmailSink(NotificationSink):
    """Sends notifications as multipart (text + HTML) email over SMTP."""

    def __init__(
        self,
        env_config: EnvironmentConfig,
        email_config: Optional[EmailConfig] = None,
        smtp_client: Optional[SMTPClient] = None,
    ):
        self.env_config = env_config
        self.email_config = email_config or EmailConfig()
        self.smtp_client = smtp_client or SMTPClient()

    def send(self, channel: DeliveryChannel, target: str, message: RenderedNotification) -> None:
        try:
            recipient = parse_recipient(target)
        except ValueError as e:
            raise DeliveryError(str(e), channel=DeliveryChannel.EMAIL) from e

        email = EmailMessage()
        email["Subject"] = message.title
        email["From"] = build_sender_address(self.env_config)
        email["To"] = recipient
        email.set_content(message.text_body)
        email.add_alternative(message.html_body, subtype="html")

        self.smtp_client.send(
            email,
            self.env_config,
            use_tls=self.email_config.use_tls,
            timeout=self.email_config.timeout,
        )


class WebhookSink(NotificationSink):
    """Posts notifications to the alert's webhook URL."""

    def __init__(
        self,
        webhook_config: Optional[WebhookConfig] = None,
        client: Optional[WebhookClient] = None,
    ):
        self.webhook_config = webhook_config or WebhookConfig()
        self.client = client or WebhookClient(timeout=self.webhook_config.timeout)

    def send(self, channel: DeliveryChannel, target: str, message: RenderedNotification) -> None:
        if not target:
            raise DeliveryError("Webhook URL is missing", channel=DeliveryChannel.WEBHOOK)

        payload = build_webhook_payload(message, username=self.webhook_config.username)
        self.client.post(target, payload)

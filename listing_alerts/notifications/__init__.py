"""Notification dispatch for matched alerts.

This module provides the complete notification path:
- NotificationDispatcher: Renders, records and delivers one match notification
- NotificationSink, EmailSink, WebhookSink: Per-channel delivery transports
- TemplateRenderer: Jinja2-based title/body rendering
- SMTPClient, WebhookClient: Low-level transports with injectable factories
- DeliveryOutcome, ChannelResult: Result structures
"""

from .models import (
    ChannelResult,
    DeliveryError,
    DeliveryOutcome,
    NotificationError,
    NotificationTemplateError,
    RenderedNotification,
)
from .payloads import build_notification_context
from .service import NotificationDispatcher
from .sinks import EmailSink, NotificationSink, WebhookSink
from .smtp_client import SMTPClient, build_sender_address, parse_recipient
from .templates import TemplateRenderer
from .webhook_client import WebhookClient, build_webhook_payload

__all__ = [
    # Main service
    "NotificationDispatcher",
    # Sinks
    "NotificationSink",
    "EmailSink",
    "WebhookSink",
    # Models and results
    "DeliveryOutcome",
    "ChannelResult",
    "RenderedNotification",
    # Exceptions
    "NotificationError",
    "NotificationTemplateError",
    "DeliveryError",
    # Components
    "TemplateRenderer",
    "SMTPClient",
    "WebhookClient",
    # Utilities
    "build_notification_context",
    "build_sender_address",
    "build_webhook_payload",
    "parse_recipient",
]

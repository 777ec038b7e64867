"""Unit tests for delivery transports.

Tests the SMTPClient, WebhookClient and the channel sinks for:
- Connection handling (SMTP and SMTP_SSL)
- TLS/STARTTLS negotiation and authentication
- Error mapping to DeliveryError
- Recipient parsing and sender address building
- Webhook payload shape and HTTP status handling
"""

import smtplib
from email.message import EmailMessage
from unittest.mock import MagicMock, Mock

import pytest
import requests

from listing_alerts.config.environment import EnvironmentConfig
from listing_alerts.config.models import EmailConfig, WebhookConfig
from listing_alerts.domain.models import DeliveryChannel
from listing_alerts.notifications.models import DeliveryError, RenderedNotification
from listing_alerts.notifications.sinks import EmailSink, WebhookSink
from listing_alerts.notifications.smtp_client import (
    SMTPClient,
    build_sender_address,
    parse_recipient,
)
from listing_alerts.notifications.webhook_client import (
    MAX_CONTENT_LENGTH,
    WebhookClient,
    build_webhook_payload,
)


@pytest.fixture
def env_config_with_auth():
    """Environment config with SMTP authentication."""
    return EnvironmentConfig(
        smtp_host="smtp.example.com",
        smtp_port=587,
        smtp_user="alerts@example.com",
        smtp_pass="secret123",
        smtp_sender_name="Listing Alerts",
    )


@pytest.fixture
def env_config_without_auth():
    """Environment config without SMTP authentication."""
    return EnvironmentConfig(smtp_host="smtp.example.com", smtp_port=25)


@pytest.fixture
def env_config_implicit_tls():
    """Environment config for implicit TLS (port 465)."""
    return EnvironmentConfig(
        smtp_host="smtp.gmail.com",
        smtp_port=465,
        smtp_user="alerts@gmail.com",
        smtp_pass="apppassword",
    )


@pytest.fixture
def sample_message():
    msg = EmailMessage()
    msg["Subject"] = "Test Subject"
    msg["From"] = "sender@example.com"
    msg["To"] = "recipient@example.com"
    msg.set_content("Test body")
    return msg


@pytest.fixture
def rendered():
    return RenderedNotification(
        title='New match for "Kraków flats"',
        text_body="A new property has been found",
        html_body="<p>A new property has been found</p>",
        link="https://listings.example.com/offers/1",
    )


class TestSMTPClient:
    """Tests for SMTPClient.send."""

    def test_starttls_and_login(self, env_config_with_auth, sample_message):
        smtp = MagicMock()
        factory = Mock(return_value=smtp)
        client = SMTPClient(smtp_factory=factory)

        client.send(sample_message, env_config_with_auth, use_tls=True, timeout=15)

        factory.assert_called_once_with("smtp.example.com", 587, timeout=15)
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("alerts@example.com", "secret123")
        smtp.send_message.assert_called_once_with(sample_message)
        smtp.quit.assert_called_once()

    def test_no_tls_no_auth(self, env_config_without_auth, sample_message):
        smtp = MagicMock()
        client = SMTPClient(smtp_factory=Mock(return_value=smtp))

        client.send(sample_message, env_config_without_auth, use_tls=False)

        smtp.starttls.assert_not_called()
        smtp.login.assert_not_called()
        smtp.send_message.assert_called_once()

    def test_port_465_uses_ssl(self, env_config_implicit_tls, sample_message):
        smtp = MagicMock()
        plain_factory = Mock()
        ssl_factory = Mock(return_value=smtp)
        client = SMTPClient(smtp_factory=plain_factory, smtp_ssl_factory=ssl_factory)

        client.send(sample_message, env_config_implicit_tls)

        plain_factory.assert_not_called()
        assert ssl_factory.call_args.args == ("smtp.gmail.com", 465)
        smtp.starttls.assert_not_called()
        smtp.login.assert_called_once()

    def test_smtp_exception_becomes_delivery_error(self, env_config_with_auth, sample_message):
        smtp = MagicMock()
        smtp.send_message.side_effect = smtplib.SMTPRecipientsRefused({})
        client = SMTPClient(smtp_factory=Mock(return_value=smtp))

        with pytest.raises(DeliveryError, match="SMTP error") as exc_info:
            client.send(sample_message, env_config_with_auth)

        assert exc_info.value.channel == DeliveryChannel.EMAIL
        smtp.quit.assert_called_once()

    def test_connection_error_becomes_delivery_error(self, env_config_with_auth, sample_message):
        client = SMTPClient(smtp_factory=Mock(side_effect=ConnectionRefusedError("refused")))

        with pytest.raises(DeliveryError, match="Network error"):
            client.send(sample_message, env_config_with_auth)

    def test_unconfigured_smtp_fails_delivery(self, sample_message):
        factory = Mock()
        client = SMTPClient(smtp_factory=factory)

        with pytest.raises(DeliveryError, match="SMTP_HOST is not configured"):
            client.send(sample_message, EnvironmentConfig())

        factory.assert_not_called()

    def test_quit_error_is_ignored(self, env_config_with_auth, sample_message):
        smtp = MagicMock()
        smtp.quit.side_effect = smtplib.SMTPServerDisconnected("gone")
        client = SMTPClient(smtp_factory=Mock(return_value=smtp))

        client.send(sample_message, env_config_with_auth)

        smtp.send_message.assert_called_once()


class TestAddressHelpers:
    """Tests for parse_recipient and build_sender_address."""

    def test_parse_recipient_normalizes(self):
        assert parse_recipient("  anna@Example.com ") == "anna@example.com"

    @pytest.mark.parametrize("address", [None, "", "   "])
    def test_parse_recipient_missing(self, address):
        with pytest.raises(ValueError, match="missing"):
            parse_recipient(address)

    def test_parse_recipient_invalid(self):
        with pytest.raises(ValueError, match="Invalid recipient"):
            parse_recipient("not-an-email")

    def test_sender_with_user(self, env_config_with_auth):
        assert build_sender_address(env_config_with_auth) == "Listing Alerts <alerts@example.com>"

    def test_sender_without_user(self, env_config_without_auth):
        assert build_sender_address(env_config_without_auth) == "Listing Alerts <noreply@smtp.example.com>"


class TestWebhookClient:
    """Tests for WebhookClient and payload building."""

    def test_payload_shape(self, rendered):
        payload = build_webhook_payload(rendered, username="Listing Alerts")

        assert payload["username"] == "Listing Alerts"
        assert payload["content"] == 'New match for "Kraków flats"'
        embed = payload["embeds"][0]
        assert embed["title"] == rendered.title
        assert embed["description"] == rendered.text_body
        assert embed["url"] == rendered.link

    def test_payload_truncates_long_body(self, rendered):
        rendered.text_body = "x" * (MAX_CONTENT_LENGTH + 500)

        description = build_webhook_payload(rendered, username="u")["embeds"][0]["description"]

        assert len(description) == MAX_CONTENT_LENGTH
        assert description.endswith("…")

    def test_post_success(self):
        session = Mock()
        session.post.return_value = Mock(status_code=204, reason="No Content")
        client = WebhookClient(timeout=5, session=session)

        client.post("https://hooks.example.com/abc", {"content": "hi"})

        session.post.assert_called_once_with(
            "https://hooks.example.com/abc", json={"content": "hi"}, timeout=5
        )

    def test_post_http_error(self):
        session = Mock()
        session.post.return_value = Mock(status_code=500, reason="Internal Server Error")
        client = WebhookClient(session=session)

        with pytest.raises(DeliveryError, match="HTTP 500") as exc_info:
            client.post("https://hooks.example.com/abc", {})

        assert exc_info.value.channel == DeliveryChannel.WEBHOOK

    def test_post_timeout(self):
        session = Mock()
        session.post.side_effect = requests.exceptions.Timeout()
        client = WebhookClient(timeout=3, session=session)

        with pytest.raises(DeliveryError, match="timed out after 3 seconds"):
            client.post("https://hooks.example.com/abc", {})

    def test_post_connection_error(self):
        session = Mock()
        session.post.side_effect = requests.exceptions.ConnectionError("dns")
        client = WebhookClient(session=session)

        with pytest.raises(DeliveryError, match="Webhook request failed"):
            client.post("https://hooks.example.com/abc", {})

    def test_close_closes_session(self):
        session = Mock()
        WebhookClient(session=session).close()
        session.close.assert_called_once()


class TestSinks:
    """Tests for EmailSink and WebhookSink."""

    def test_email_sink_builds_multipart_message(self, env_config_with_auth, rendered):
        smtp_client = Mock()
        sink = EmailSink(env_config_with_auth, EmailConfig(use_tls=False, timeout=12), smtp_client)

        sink.send(DeliveryChannel.EMAIL, "anna@example.com", rendered)

        message, env_config = smtp_client.send.call_args.args
        assert env_config is env_config_with_auth
        assert smtp_client.send.call_args.kwargs == {"use_tls": False, "timeout": 12}
        assert message["To"] == "anna@example.com"
        assert message["Subject"] == rendered.title
        assert message["From"] == "Listing Alerts <alerts@example.com>"
        assert message.is_multipart()
        assert message.get_body(preferencelist=("html",)).get_content().strip() == rendered.html_body

    def test_email_sink_invalid_recipient(self, env_config_with_auth, rendered):
        smtp_client = Mock()
        sink = EmailSink(env_config_with_auth, smtp_client=smtp_client)

        with pytest.raises(DeliveryError) as exc_info:
            sink.send(DeliveryChannel.EMAIL, "broken", rendered)

        assert exc_info.value.channel == DeliveryChannel.EMAIL
        smtp_client.send.assert_not_called()

    def test_webhook_sink_posts_payload(self, rendered):
        client = Mock()
        sink = WebhookSink(WebhookConfig(username="Bot"), client=client)

        sink.send(DeliveryChannel.WEBHOOK, "https://hooks.example.com/abc", rendered)

        url, payload = client.post.call_args.args
        assert url == "https://hooks.example.com/abc"
        assert payload["username"] == "Bot"

    def test_webhook_sink_requires_target(self, rendered):
        sink = WebhookSink(client=Mock())

        with pytest.raises(DeliveryError, match="missing"):
            sink.send(DeliveryChannel.WEBHOOK, "", rendered)

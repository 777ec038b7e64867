"""SMTP client wrapper for email delivery.

This module provides a thin wrapper around Python's smtplib with support
for TLS/SSL, authentication, and proper connection lifecycle management.
"""

import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Callable, Optional

from email_validator import EmailNotValidError, validate_email

from listing_alerts.config.environment import EnvironmentConfig
from listing_alerts.domain.models import DeliveryChannel

from .models import DeliveryError

logger = logging.getLogger(__name__)


class SMTPClient:
    """Wrapper around smtplib for sending email messages.

    Handles connection lifecycle, TLS/SSL negotiation and authentication.
    Factories are injectable so tests never open sockets.
    """

    def __init__(
        self,
        smtp_factory: Optional[Callable] = None,
        smtp_ssl_factory: Optional[Callable] = None,
    ):
        """Initialize SMTP client with optional factory injection.

        Args:
            smtp_factory: Factory function for creating SMTP instances (for mocking)
            smtp_ssl_factory: Factory function for creating SMTP_SSL instances (for mocking)
        """
        self.smtp_factory = smtp_factory or smtplib.SMTP
        self.smtp_ssl_factory = smtp_ssl_factory or smtplib.SMTP_SSL

    def send(
        self,
        message: EmailMessage,
        env_config: EnvironmentConfig,
        use_tls: bool = True,
        timeout: int = 30,
    ) -> None:
        """Send an email message via SMTP.

        Args:
            message: Fully constructed EmailMessage to send
            env_config: Environment configuration with SMTP settings
            use_tls: Whether to use TLS (STARTTLS or implicit SSL)
            timeout: Socket timeout in seconds

        Raises:
            DeliveryError: If message delivery fails
        """
        if not env_config.smtp_configured:
            raise DeliveryError("SMTP_HOST is not configured", channel=DeliveryChannel.EMAIL)

        smtp = None
        try:
            if env_config.smtp_port == 465:
                # Port 465: Implicit TLS (SMTP_SSL)
                logger.debug(
                    f"Connecting to {env_config.smtp_host}:{env_config.smtp_port} with implicit TLS"
                )
                context = ssl.create_default_context()
                smtp = self.smtp_ssl_factory(
                    env_config.smtp_host, env_config.smtp_port, context=context, timeout=timeout
                )
            else:
                logger.debug(f"Connecting to {env_config.smtp_host}:{env_config.smtp_port}")
                smtp = self.smtp_factory(env_config.smtp_host, env_config.smtp_port, timeout=timeout)

                if use_tls:
                    logger.debug("Upgrading connection with STARTTLS")
                    context = ssl.create_default_context()
                    smtp.starttls(context=context)

            if env_config.smtp_user and env_config.smtp_pass:
                logger.debug(f"Authenticating as {env_config.smtp_user}")
                smtp.login(env_config.smtp_user, env_config.smtp_pass)

            smtp.send_message(message)
            logger.debug(f"Message sent successfully to {message['To']}")

        except smtplib.SMTPException as e:
            raise DeliveryError(
                f"SMTP error during message delivery: {e}", channel=DeliveryChannel.EMAIL
            ) from e
        except OSError as e:
            raise DeliveryError(
                f"Network error during SMTP connection: {e}", channel=DeliveryChannel.EMAIL
            ) from e
        finally:
            if smtp is not None:
                try:
                    smtp.quit()
                except (smtplib.SMTPException, OSError) as e:
                    logger.warning(f"Error closing SMTP connection: {e}")


def parse_recipient(address: Optional[str]) -> str:
    """Validate and normalize one recipient email address.

    Raises:
        ValueError: If the address is missing or invalid
    """
    if not address or not address.strip():
        raise ValueError("Recipient email address is missing")

    try:
        validated = validate_email(address.strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise ValueError(f"Invalid recipient email address '{address}': {e}") from e

    return validated.normalized


def build_sender_address(env_config: EnvironmentConfig) -> str:
    """Build the 'From' address for outgoing emails.

    Uses SMTP_SENDER_NAME with SMTP_USER if available, otherwise falls back
    to a noreply address at the SMTP host.

    Returns:
        Formatted sender address (e.g., "Listing Alerts <alerts@example.com>")
    """
    if env_config.smtp_user:
        sender_email = env_config.smtp_user
    else:
        sender_email = f"noreply@{env_config.smtp_host}"

    return f"{env_config.smtp_sender_name} <{sender_email}>"

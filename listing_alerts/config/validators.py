"""Additional validation utilities for configuration."""

import warnings
from typing import Any, Dict, List

from .interval import IntervalError, parse_interval


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Check configuration for potential issues and return warnings.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages = []

    # Very short intervals hammer the offer feed
    reconciliation = config_dict.get("reconciliation", {})
    if isinstance(reconciliation, dict):
        interval = reconciliation.get("interval")
        if isinstance(interval, str):
            try:
                if parse_interval(interval) < 30:
                    warning_messages.append(
                        f"Short reconciliation interval ({interval}) may trigger feed rate limits"
                    )
            except IntervalError:
                pass  # reported by model validation

    ingestion = config_dict.get("ingestion", {})
    if isinstance(ingestion, dict):
        page_limit = ingestion.get("page_limit", 40)
        if isinstance(page_limit, int) and page_limit > 200:
            warning_messages.append(
                f"Large ingestion.page_limit ({page_limit}) may slow down reconciliation cycles"
            )

        if "max_price" in ingestion and ingestion.get("max_price") is None:
            warning_messages.append(
                "ingestion.max_price is null; the feed will be queried without a price bound"
            )

    notifications = config_dict.get("notifications", {})
    if isinstance(notifications, dict):
        email = notifications.get("email", {})
        if isinstance(email, dict) and email.get("use_tls") is False:
            warning_messages.append(
                "notifications.email.use_tls is false; credentials will be sent in clear text"
            )

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """
    Emit warning messages using Python's warnings module.

    Args:
        warning_messages: List of warning messages to emit
    """
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)

"""Test helper utilities for listing alerts tests."""

from .factories import (
    RecordingSink,
    create_alert,
    create_offer,
    create_user,
    make_alert,
    make_offer,
    make_offer_input,
)

__all__ = [
    "RecordingSink",
    "create_alert",
    "create_offer",
    "create_user",
    "make_alert",
    "make_offer",
    "make_offer_input",
]

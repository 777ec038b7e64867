"""Template context for match notifications.

Builds the dictionary the Jinja2 templates render from an alert, an offer
and (optionally) the match record.
"""

from typing import Dict, Optional

from listing_alerts.domain.models import Alert, Match, Offer

NOT_SPECIFIED = "Not specified"


def format_number(value: float) -> str:
    """Render 3500.0 as "3500" and 3500.5 as "3500.5"."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}".rstrip("0").rstrip(".")


def format_flag(value: Optional[bool]) -> str:
    if value is None:
        return NOT_SPECIFIED
    return "Yes" if value else "No"


def format_location(offer: Offer) -> str:
    parts = [offer.city]
    if offer.district:
        parts.append(offer.district)
    if offer.address:
        parts.append(offer.address)
    return ", ".join(parts)


def build_notification_context(alert: Alert, offer: Offer, match: Optional[Match] = None) -> Dict:
    """Build template context for a match notification.

    Args:
        alert: Alert the offer matched (its name heads the notification)
        offer: Matched offer
        match: Match record, when available

    Returns:
        Dictionary with all required template context keys:
        - alert_name, recipient_name: Alert label and owner display name
        - location, price, type, footage, rooms: Display strings
        - furniture, pets, elevator: "Yes", "No" or "Not specified"
        - link: Offer URL
        - matched_at: ISO timestamp of the match (empty if unknown)
    """
    owner = alert.owner
    return {
        "alert_name": alert.name,
        "recipient_name": owner.display_name if owner else "",
        "location": format_location(offer),
        "price": format_number(offer.price),
        "type": offer.type.value.title() if offer.type else NOT_SPECIFIED,
        "footage": f"{format_number(offer.footage)} m²" if offer.footage is not None else NOT_SPECIFIED,
        "rooms": str(offer.rooms) if offer.rooms is not None else NOT_SPECIFIED,
        "furniture": format_flag(offer.furniture),
        "pets": format_flag(offer.pets_allowed),
        "elevator": format_flag(offer.elevator),
        "link": offer.link,
        "matched_at": match.matched_at.isoformat() if match else "",
    }

"""Core domain models for alerts, offers, matches and notifications.

This module defines the data structures used throughout the application:
- Alert: a saved search with optional criteria and a notification preference
- Offer: a normalized listing produced by the ingestion feed
- OfferInput: an offer as received from ingestion, before it has an identity
- Match: the unique (alert, offer) record proving the alert is satisfied
- Notification: one delivery attempt log entry for a match
- MatchRecordOutcome: result of the ledger's create-if-absent operation
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import AnyHttpUrl, BaseModel, Field, TypeAdapter, ValidationError, field_validator, model_validator

from listing_alerts.utils.timestamps import ensure_utc as _to_utc

_http_url_adapter = TypeAdapter(AnyHttpUrl)


class AlertStatus(str, Enum):
    """Alert lifecycle status. DELETED is terminal (soft delete)."""

    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    DELETED = "DELETED"


class NotificationMethod(str, Enum):
    """How an alert owner wants to be notified."""

    EMAIL = "EMAIL"
    WEBHOOK = "WEBHOOK"
    BOTH = "BOTH"

    @property
    def uses_email(self) -> bool:
        return self in (NotificationMethod.EMAIL, NotificationMethod.BOTH)

    @property
    def uses_webhook(self) -> bool:
        return self in (NotificationMethod.WEBHOOK, NotificationMethod.BOTH)


class DeliveryChannel(str, Enum):
    """A single notification transport."""

    EMAIL = "EMAIL"
    WEBHOOK = "WEBHOOK"


class ListingType(str, Enum):
    """Property type of a listing."""

    APARTMENT = "APARTMENT"
    HOUSE = "HOUSE"
    ROOM = "ROOM"
    STUDIO = "STUDIO"


class UserContact(BaseModel):
    """Contact information of an alert owner."""

    id: int
    email: str = Field(..., min_length=3)
    name: Optional[str] = None
    surname: Optional[str] = None

    @property
    def display_name(self) -> str:
        parts = [p for p in (self.name, self.surname) if p]
        return " ".join(parts) if parts else self.email


class Alert(BaseModel):
    """A saved search.

    Every criterion is optional; an unset criterion places no constraint on
    offers. Bounds are validated so that min < max when both are set, and
    webhook-based notification methods require a well-formed webhook URL.
    """

    id: Optional[int] = Field(None, description="Database identity (None before insert)")
    user_id: int = Field(..., description="Owning user id")
    name: str = Field(..., min_length=1, max_length=100, description="Human label")

    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    min_footage: Optional[float] = Field(None, ge=0)
    max_footage: Optional[float] = Field(None, ge=0)
    rooms: Optional[int] = Field(None, ge=1)

    city: Optional[str] = None
    district: Optional[str] = None
    type: Optional[ListingType] = None
    furniture: Optional[bool] = None
    pets: Optional[bool] = None
    elevator: Optional[bool] = None

    notification_method: NotificationMethod = NotificationMethod.EMAIL
    webhook_url: Optional[str] = None
    status: AlertStatus = AlertStatus.ACTIVE

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    owner: Optional[UserContact] = Field(None, description="Owner contact, when loaded")

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("Alert name cannot be empty or whitespace-only")
        return stripped

    @field_validator("city", "district", "webhook_url")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        stripped = v.strip()
        return stripped if stripped else None

    @field_validator("created_at", "updated_at")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _to_utc(v)

    @model_validator(mode="after")
    def validate_bounds_and_channel(self):
        if self.min_price is not None and self.max_price is not None:
            if self.min_price >= self.max_price:
                raise ValueError("Minimum price must be less than maximum price")

        if self.min_footage is not None and self.max_footage is not None:
            if self.min_footage >= self.max_footage:
                raise ValueError("Minimum footage must be less than maximum footage")

        if self.notification_method.uses_webhook:
            if not self.webhook_url:
                raise ValueError(
                    f"webhook_url is required for notification method {self.notification_method.value}"
                )
            try:
                _http_url_adapter.validate_python(self.webhook_url)
            except ValidationError as e:
                raise ValueError(f"webhook_url is not a valid http(s) URL: {self.webhook_url}") from e

        return self

    @property
    def is_active(self) -> bool:
        return self.status == AlertStatus.ACTIVE

    model_config = {"json_schema_extra": {"example": {
        "id": 1,
        "user_id": 2,
        "name": "Mieszkanie w Krakowie",
        "city": "Kraków",
        "min_price": 2000,
        "max_price": 4000,
        "min_footage": 30,
        "max_footage": 70,
        "notification_method": "EMAIL",
        "status": "ACTIVE",
    }}}


class OfferInput(BaseModel):
    """A normalized listing as delivered by the ingestion feed.

    The link identifies the listing across feed pulls.
    """

    link: str = Field(..., min_length=1, description="Source link (unique)")
    price: float = Field(..., ge=0)
    city: str = Field(..., description="City name")
    district: Optional[str] = None
    address: Optional[str] = None
    footage: Optional[float] = Field(None, ge=0)
    rooms: Optional[int] = Field(None, ge=0)
    type: Optional[ListingType] = None
    furniture: Optional[bool] = None
    pets_allowed: Optional[bool] = None
    elevator: Optional[bool] = None
    negotiable: Optional[bool] = None
    floor: Optional[int] = None
    available: bool = True
    valid_to: Optional[datetime] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @field_validator("link", "city")
    @classmethod
    def strip_required(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("Field cannot be empty or whitespace-only")
        return stripped

    @field_validator("valid_to")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _to_utc(v)


class Offer(OfferInput):
    """A persisted listing. Read-only to the matching core."""

    id: int
    views: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("created_at", "updated_at")
    @classmethod
    def ensure_utc_tracking(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _to_utc(v)

    def is_valid_at(self, moment: datetime) -> bool:
        """True if the offer's validity window extends past moment."""
        return self.valid_to is not None and self.valid_to > _to_utc(moment)


class Match(BaseModel):
    """Join record proving an offer satisfies an alert.

    Unique per (alert_id, offer_id). Only the delivery fields change after
    creation.
    """

    id: int
    alert_id: int
    offer_id: int
    matched_at: datetime
    notification_sent: bool = False
    error: Optional[str] = None

    @field_validator("matched_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        return _to_utc(v)


class Notification(BaseModel):
    """Delivery attempt log entry for one match."""

    id: Optional[int] = None
    user_id: int
    alert_id: int
    match_id: Optional[int] = None
    type: str = "ALERT_MATCH"
    title: str
    message: str
    method: NotificationMethod
    sent: bool = False
    sent_at: Optional[datetime] = None
    error: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_validator("sent_at", "created_at")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _to_utc(v)


class MatchRecordOutcome(BaseModel):
    """Result of the ledger's create-if-absent call.

    created is False when the pair was already matched, in which case match
    is the record that won.
    """

    match: Match
    created: bool

    @property
    def existing(self) -> bool:
        return not self.created

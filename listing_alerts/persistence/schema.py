"""Database schema definition and ORM models.

This module defines SQLAlchemy ORM models for the database schema and provides
conversion methods between ORM models and domain models.

Timestamps are stored as ISO 8601 strings with a Z suffix so that
lexicographic comparison in SQL equals chronological comparison.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship

from listing_alerts.domain.models import (
    Alert,
    AlertStatus,
    ListingType,
    Match,
    Notification,
    NotificationMethod,
    Offer,
    OfferInput,
    UserContact,
)

logger = logging.getLogger(__name__)

Base = declarative_base()

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class UserModel(Base):
    """ORM model for users table.

    Only the contact fields the notification path needs; accounts and
    credentials live with the authentication collaborator.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(100), nullable=True)
    surname = Column(String(100), nullable=True)

    alerts = relationship("AlertModel", back_populates="user")

    def to_domain(self) -> UserContact:
        return UserContact(id=self.id, email=self.email, name=self.name, surname=self.surname)


class AlertModel(Base):
    """ORM model for alerts table (saved searches)."""

    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=False)

    # Bounds
    min_price = Column(Float, nullable=True)
    max_price = Column(Float, nullable=True)
    min_footage = Column(Float, nullable=True)
    max_footage = Column(Float, nullable=True)
    rooms = Column(Integer, nullable=True)

    # Categorical filters
    city = Column(String(100), nullable=True)
    district = Column(String(100), nullable=True)
    type = Column(String(20), nullable=True)
    furniture = Column(Boolean, nullable=True)
    pets = Column(Boolean, nullable=True)
    elevator = Column(Boolean, nullable=True)

    notification_method = Column(String(20), nullable=False, default=NotificationMethod.EMAIL.value)
    webhook_url = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=AlertStatus.ACTIVE.value)

    created_at = Column(String(50), nullable=False)
    updated_at = Column(String(50), nullable=False)

    user = relationship("UserModel", back_populates="alerts")

    __table_args__ = (
        Index("idx_alerts_status", "status"),
        Index("idx_alerts_user", "user_id"),
    )

    def to_domain(self, include_owner: bool = False) -> Alert:
        """Convert ORM model to domain model.

        Args:
            include_owner: Attach the owner's contact info (triggers a lazy load)

        Returns:
            Alert: Domain model instance
        """
        return Alert(
            id=self.id,
            user_id=self.user_id,
            name=self.name,
            min_price=self.min_price,
            max_price=self.max_price,
            min_footage=self.min_footage,
            max_footage=self.max_footage,
            rooms=self.rooms,
            city=self.city,
            district=self.district,
            type=ListingType(self.type) if self.type else None,
            furniture=self.furniture,
            pets=self.pets,
            elevator=self.elevator,
            notification_method=NotificationMethod(self.notification_method),
            webhook_url=self.webhook_url,
            status=AlertStatus(self.status),
            created_at=_parse_datetime(self.created_at),
            updated_at=_parse_datetime(self.updated_at),
            owner=self.user.to_domain() if include_owner and self.user is not None else None,
        )

    def apply(self, alert: Alert) -> None:
        """Copy criteria and preferences from a domain model onto this row."""
        self.user_id = alert.user_id
        self.name = alert.name
        self.min_price = alert.min_price
        self.max_price = alert.max_price
        self.min_footage = alert.min_footage
        self.max_footage = alert.max_footage
        self.rooms = alert.rooms
        self.city = alert.city
        self.district = alert.district
        self.type = alert.type.value if alert.type else None
        self.furniture = alert.furniture
        self.pets = alert.pets
        self.elevator = alert.elevator
        self.notification_method = alert.notification_method.value
        self.webhook_url = alert.webhook_url
        self.status = alert.status.value


class OfferModel(Base):
    """ORM model for offers table (normalized listings)."""

    __tablename__ = "offers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    link = Column(Text, nullable=False, unique=True)
    price = Column(Float, nullable=False)
    city = Column(String(100), nullable=False)
    district = Column(String(100), nullable=True)
    address = Column(String(255), nullable=True)
    footage = Column(Float, nullable=True)
    rooms = Column(Integer, nullable=True)
    type = Column(String(20), nullable=True)
    furniture = Column(Boolean, nullable=True)
    pets_allowed = Column(Boolean, nullable=True)
    elevator = Column(Boolean, nullable=True)
    negotiable = Column(Boolean, nullable=True)
    floor = Column(Integer, nullable=True)
    available = Column(Boolean, nullable=False, default=True)
    valid_to = Column(String(50), nullable=True)
    views = Column(Integer, nullable=False, default=0)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    created_at = Column(String(50), nullable=False)
    updated_at = Column(String(50), nullable=False)

    __table_args__ = (Index("idx_offers_valid_to", "valid_to"),)

    def to_domain(self) -> Offer:
        return Offer(
            id=self.id,
            link=self.link,
            price=self.price,
            city=self.city,
            district=self.district,
            address=self.address,
            footage=self.footage,
            rooms=self.rooms,
            type=ListingType(self.type) if self.type else None,
            furniture=self.furniture,
            pets_allowed=self.pets_allowed,
            elevator=self.elevator,
            negotiable=self.negotiable,
            floor=self.floor,
            available=self.available,
            valid_to=_parse_datetime(self.valid_to),
            views=self.views,
            latitude=self.latitude,
            longitude=self.longitude,
            created_at=_parse_datetime(self.created_at),
            updated_at=_parse_datetime(self.updated_at),
        )

    def apply(self, offer: OfferInput) -> None:
        """Copy listing fields from an ingestion record onto this row."""
        self.link = offer.link
        self.price = offer.price
        self.city = offer.city
        self.district = offer.district
        self.address = offer.address
        self.footage = offer.footage
        self.rooms = offer.rooms
        self.type = offer.type.value if offer.type else None
        self.furniture = offer.furniture
        self.pets_allowed = offer.pets_allowed
        self.elevator = offer.elevator
        self.negotiable = offer.negotiable
        self.floor = offer.floor
        self.available = offer.available
        self.valid_to = _format_datetime(offer.valid_to)
        self.latitude = offer.latitude
        self.longitude = offer.longitude


class AlertMatchModel(Base):
    """ORM model for alert_matches table.

    The (alert_id, offer_id) unique constraint is what makes match creation
    exactly-once under concurrent sweeps.
    """

    __tablename__ = "alert_matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    alert_id = Column(Integer, ForeignKey("alerts.id", ondelete="CASCADE"), nullable=False)
    offer_id = Column(Integer, ForeignKey("offers.id", ondelete="CASCADE"), nullable=False)
    matched_at = Column(String(50), nullable=False)
    notification_sent = Column(Boolean, nullable=False, default=False)
    error = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("alert_id", "offer_id", name="uq_alert_matches_alert_offer"),
        Index("idx_alert_matches_matched_at", "matched_at"),
    )

    def to_domain(self) -> Match:
        return Match(
            id=self.id,
            alert_id=self.alert_id,
            offer_id=self.offer_id,
            matched_at=_parse_datetime(self.matched_at),
            notification_sent=bool(self.notification_sent),
            error=self.error,
        )


class NotificationModel(Base):
    """ORM model for notifications table (delivery audit log)."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    alert_id = Column(Integer, ForeignKey("alerts.id", ondelete="CASCADE"), nullable=False)
    match_id = Column(Integer, ForeignKey("alert_matches.id", ondelete="SET NULL"), nullable=True)
    type = Column(String(50), nullable=False)
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    method = Column(String(20), nullable=False)
    sent = Column(Boolean, nullable=False, default=False)
    sent_at = Column(String(50), nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_notifications_user", "user_id"),
        Index("idx_notifications_match", "match_id"),
    )

    def to_domain(self) -> Notification:
        return Notification(
            id=self.id,
            user_id=self.user_id,
            alert_id=self.alert_id,
            match_id=self.match_id,
            type=self.type,
            title=self.title,
            message=self.message,
            method=NotificationMethod(self.method),
            sent=bool(self.sent),
            sent_at=_parse_datetime(self.sent_at),
            error=self.error,
            created_at=_parse_datetime(self.created_at),
        )

    @classmethod
    def from_domain(cls, notification: Notification) -> "NotificationModel":
        return cls(
            user_id=notification.user_id,
            alert_id=notification.alert_id,
            match_id=notification.match_id,
            type=notification.type,
            title=notification.title,
            message=notification.message,
            method=notification.method.value,
            sent=notification.sent,
            sent_at=_format_datetime(notification.sent_at),
            error=notification.error,
            created_at=_format_datetime(notification.created_at or datetime.now(timezone.utc)),
        )


def _format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format datetime as ISO 8601 string for database storage.

    Args:
        dt: Datetime object (naive values are treated as UTC)

    Returns:
        ISO 8601 formatted string or None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    return dt.strftime(TIMESTAMP_FORMAT)


def _parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """Parse a stored ISO 8601 string back into an aware UTC datetime."""
    if dt_str is None or dt_str == "":
        return None

    dt_str = dt_str.rstrip("Z")

    try:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S")

    return dt.replace(tzinfo=timezone.utc)


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent).

    Args:
        engine: SQLAlchemy engine instance
    """
    logger.info("Creating database schema if not exists")

    try:
        Base.metadata.create_all(engine, checkfirst=True)

        from sqlalchemy import inspect

        tables = inspect(engine).get_table_names()
        logger.info(f"Database schema ready. Tables: {', '.join(tables)}")

    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise

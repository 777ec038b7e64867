"""Data access layer (repositories) for persistence operations.

This module provides repository classes for users, alerts, offers, matches and
notifications. Repositories encapsulate database operations, operate inside
the caller's session (the caller commits) and return domain models rather
than ORM models.

MatchRepository is the match ledger: it owns the create-if-absent operation
that keeps at most one match per (alert, offer) pair.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from listing_alerts.domain.models import (
    Alert,
    AlertStatus,
    Match,
    MatchRecordOutcome,
    Notification,
    Offer,
    OfferInput,
    UserContact,
)
from listing_alerts.utils.timestamps import utc_now

from .exceptions import DataIntegrityError, PersistenceError, RecordNotFoundError
from .schema import (
    AlertMatchModel,
    AlertModel,
    NotificationModel,
    OfferModel,
    UserModel,
    _format_datetime,
)

logger = logging.getLogger(__name__)

_CONFLICT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}


class UserRepository:
    """Repository for alert owner contact records."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, email: str, name: Optional[str] = None, surname: Optional[str] = None) -> UserContact:
        """Insert a user contact record.

        Raises:
            DataIntegrityError: If the email is already registered
            PersistenceError: If database error occurs
        """
        try:
            user_model = UserModel(email=email, name=name, surname=surname)
            self.session.add(user_model)
            self.session.flush()
            return user_model.to_domain()

        except IntegrityError as e:
            logger.error(f"Integrity error creating user {email}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to create user due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error creating user {email}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to create user: {e}") from e

    def get_by_id(self, user_id: int) -> Optional[UserContact]:
        try:
            user_model = self.session.get(UserModel, user_id)
            return user_model.to_domain() if user_model else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving user {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve user: {e}") from e


class AlertRepository:
    """Repository for alert (saved search) operations.

    Every read excludes DELETED alerts.
    """

    def __init__(self, session: Session):
        self.session = session

    def create(self, alert: Alert) -> Alert:
        """Insert a new alert.

        Args:
            alert: Validated Alert domain model (id is ignored)

        Returns:
            Persisted Alert with its id and timestamps

        Raises:
            DataIntegrityError: If the owner does not exist
            PersistenceError: If database error occurs
        """
        try:
            now = _format_datetime(utc_now())
            alert_model = AlertModel(created_at=now, updated_at=now)
            alert_model.apply(alert)
            self.session.add(alert_model)
            self.session.flush()
            return alert_model.to_domain()

        except IntegrityError as e:
            logger.error(f"Integrity error creating alert '{alert.name}': {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to create alert due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error creating alert '{alert.name}': {e}", exc_info=True)
            raise PersistenceError(f"Failed to create alert: {e}") from e

    def get_by_id(self, alert_id: int) -> Optional[Alert]:
        """Retrieve a non-deleted alert by id, without owner info."""
        model = self._get_live_model(alert_id)
        return model.to_domain() if model else None

    def get_with_owner(self, alert_id: int) -> Optional[Alert]:
        """Retrieve a non-deleted alert by id with the owner's contact attached.

        Returns:
            Alert with owner populated, or None if missing or soft-deleted

        Raises:
            PersistenceError: If database error occurs
        """
        model = self._get_live_model(alert_id, with_owner=True)
        return model.to_domain(include_owner=True) if model else None

    def list_active(self) -> List[Alert]:
        """Retrieve all ACTIVE alerts with owner contact info attached.

        Returns:
            List of Alert domain models ordered by id

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            stmt = (
                select(AlertModel)
                .where(AlertModel.status == AlertStatus.ACTIVE.value)
                .options(selectinload(AlertModel.user))
                .order_by(AlertModel.id)
            )
            alert_models = self.session.execute(stmt).scalars().all()
            return [model.to_domain(include_owner=True) for model in alert_models]

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving active alerts: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve active alerts: {e}") from e

    def list_by_user(self, user_id: int) -> List[Alert]:
        """Retrieve a user's non-deleted alerts, newest first."""
        try:
            stmt = (
                select(AlertModel)
                .where(
                    AlertModel.user_id == user_id,
                    AlertModel.status != AlertStatus.DELETED.value,
                )
                .order_by(AlertModel.created_at.desc(), AlertModel.id.desc())
            )
            return [model.to_domain() for model in self.session.execute(stmt).scalars().all()]

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving alerts for user {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve alerts: {e}") from e

    def update(self, alert: Alert) -> Alert:
        """Replace the criteria and preferences of an existing alert.

        Raises:
            RecordNotFoundError: If the alert is missing or soft-deleted
            PersistenceError: If database error occurs
        """
        if alert.id is None:
            raise RecordNotFoundError("Cannot update an alert without an id")

        model = self._get_live_model(alert.id)
        if model is None:
            raise RecordNotFoundError(f"Alert {alert.id} not found")

        try:
            model.apply(alert)
            model.updated_at = _format_datetime(utc_now())
            self.session.flush()
            return model.to_domain()

        except SQLAlchemyError as e:
            logger.error(f"Error updating alert {alert.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update alert: {e}") from e

    def update_status(self, alert_id: int, status: AlertStatus) -> Alert:
        """Move an alert between ACTIVE, PAUSED and DELETED.

        DELETED is terminal: a soft-deleted alert is not found by this method.

        Raises:
            RecordNotFoundError: If the alert is missing or soft-deleted
            PersistenceError: If database error occurs
        """
        model = self._get_live_model(alert_id)
        if model is None:
            raise RecordNotFoundError(f"Alert {alert_id} not found")

        try:
            model.status = AlertStatus(status).value
            model.updated_at = _format_datetime(utc_now())
            self.session.flush()
            logger.info(f"Alert {alert_id} status set to {model.status}")
            return model.to_domain()

        except SQLAlchemyError as e:
            logger.error(f"Error updating status for alert {alert_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update alert status: {e}") from e

    def _get_live_model(self, alert_id: int, with_owner: bool = False) -> Optional[AlertModel]:
        try:
            stmt = select(AlertModel).where(
                AlertModel.id == alert_id,
                AlertModel.status != AlertStatus.DELETED.value,
            )
            if with_owner:
                stmt = stmt.options(selectinload(AlertModel.user))
            return self.session.execute(stmt).scalar_one_or_none()

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving alert {alert_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve alert: {e}") from e


class OfferRepository:
    """Repository for offers (normalized listings).

    Writes belong to the ingestion path; the matching core only reads.
    """

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, offer_id: int) -> Optional[Offer]:
        try:
            offer_model = self.session.get(OfferModel, offer_id)
            return offer_model.to_domain() if offer_model else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving offer {offer_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve offer: {e}") from e

    def get_by_link(self, link: str) -> Optional[Offer]:
        try:
            stmt = select(OfferModel).where(OfferModel.link == link)
            offer_model = self.session.execute(stmt).scalar_one_or_none()
            return offer_model.to_domain() if offer_model else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving offer by link {link}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve offer: {e}") from e

    def upsert_by_link(self, offer: OfferInput) -> Tuple[Offer, bool]:
        """Insert a new offer or update the existing one with the same link.

        Args:
            offer: Normalized offer from the ingestion feed

        Returns:
            Tuple of (persisted Offer, True if a new row was created)

        Raises:
            DataIntegrityError: On constraint violation
            PersistenceError: If database error occurs
        """
        try:
            now = _format_datetime(utc_now())
            stmt = select(OfferModel).where(OfferModel.link == offer.link)
            existing = self.session.execute(stmt).scalar_one_or_none()

            if existing:
                existing.apply(offer)
                existing.updated_at = now
                self.session.flush()
                return existing.to_domain(), False

            offer_model = OfferModel(created_at=now, updated_at=now, views=0)
            offer_model.apply(offer)
            self.session.add(offer_model)
            self.session.flush()
            return offer_model.to_domain(), True

        except IntegrityError as e:
            logger.error(f"Integrity error upserting offer {offer.link}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to upsert offer due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error upserting offer {offer.link}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to upsert offer: {e}") from e

    def list_valid_ids(self, now: Optional[datetime] = None) -> List[int]:
        """List ids of offers whose validity window ends after now.

        Offers without a valid_to are not considered valid.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            cutoff = _format_datetime(now or utc_now())
            stmt = (
                select(OfferModel.id)
                .where(OfferModel.valid_to.is_not(None), OfferModel.valid_to > cutoff)
                .order_by(OfferModel.id)
            )
            return list(self.session.execute(stmt).scalars().all())

        except SQLAlchemyError as e:
            logger.error(f"Error listing valid offers: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list valid offers: {e}") from e

    def list_valid(self, now: Optional[datetime] = None) -> List[Offer]:
        """Retrieve offers whose validity window ends after now, ordered by id."""
        try:
            cutoff = _format_datetime(now or utc_now())
            stmt = (
                select(OfferModel)
                .where(OfferModel.valid_to.is_not(None), OfferModel.valid_to > cutoff)
                .order_by(OfferModel.id)
            )
            return [model.to_domain() for model in self.session.execute(stmt).scalars().all()]

        except SQLAlchemyError as e:
            logger.error(f"Error listing valid offers: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list valid offers: {e}") from e


class MatchRepository:
    """Match ledger: at most one match per (alert, offer) pair.

    Creation is a single conditional insert guarded by the pair's unique
    constraint, never a read-then-write. Delivery-state updates are
    idempotent and last write wins.
    """

    def __init__(self, session: Session):
        self.session = session

    def record_match_if_absent(
        self, alert_id: int, offer_id: int, matched_at: Optional[datetime] = None
    ) -> MatchRecordOutcome:
        """Create the match for (alert_id, offer_id) unless it already exists.

        A conflict on the unique constraint means another sweep already
        matched the pair; the existing record is returned instead of an error.

        Args:
            alert_id: Alert identifier
            offer_id: Offer identifier
            matched_at: Match timestamp (defaults to now)

        Returns:
            MatchRecordOutcome with created=True for a new record

        Raises:
            DataIntegrityError: If alert or offer does not exist
            PersistenceError: If database error occurs
        """
        values = {
            "alert_id": alert_id,
            "offer_id": offer_id,
            "matched_at": _format_datetime(matched_at or utc_now()),
            "notification_sent": False,
            "error": None,
        }

        try:
            created = self._insert_ignoring_conflict(values)

            stmt = select(AlertMatchModel).where(
                AlertMatchModel.alert_id == alert_id,
                AlertMatchModel.offer_id == offer_id,
            )
            match_model = self.session.execute(stmt).scalar_one()

        except IntegrityError as e:
            logger.error(
                f"Integrity error recording match for alert {alert_id}, offer {offer_id}: {e}",
                exc_info=True,
            )
            raise DataIntegrityError(f"Failed to record match: {e}") from e
        except SQLAlchemyError as e:
            logger.error(
                f"Error recording match for alert {alert_id}, offer {offer_id}: {e}",
                exc_info=True,
            )
            raise PersistenceError(f"Failed to record match: {e}") from e

        if not created:
            logger.debug(
                f"Match already recorded for alert {alert_id}, offer {offer_id} "
                "(expected when sweeps overlap)"
            )

        return MatchRecordOutcome(match=match_model.to_domain(), created=created)

    def _insert_ignoring_conflict(self, values: dict) -> bool:
        """Insert a match row; return False if the pair already existed."""
        dialect = self.session.get_bind().dialect.name
        insert_factory = _CONFLICT_INSERTS.get(dialect)

        if insert_factory is not None:
            stmt = (
                insert_factory(AlertMatchModel.__table__)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["alert_id", "offer_id"])
            )
            result = self.session.connection().execute(stmt)
            return result.rowcount == 1

        # Other backends: the savepoint confines a duplicate-key failure to this insert
        try:
            with self.session.begin_nested():
                self.session.add(AlertMatchModel(**values))
            return True
        except IntegrityError as e:
            if self._get_model(values["alert_id"], values["offer_id"]) is None:
                raise
            logger.debug(f"Unique constraint rejected duplicate match: {e}")
            return False

    def get_by_id(self, match_id: int) -> Optional[Match]:
        try:
            match_model = self.session.get(AlertMatchModel, match_id)
            return match_model.to_domain() if match_model else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving match {match_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve match: {e}") from e

    def get_by_pair(self, alert_id: int, offer_id: int) -> Optional[Match]:
        try:
            match_model = self._get_model(alert_id, offer_id)
            return match_model.to_domain() if match_model else None

        except SQLAlchemyError as e:
            logger.error(
                f"Error retrieving match for alert {alert_id}, offer {offer_id}: {e}", exc_info=True
            )
            raise PersistenceError(f"Failed to retrieve match: {e}") from e

    def mark_delivered(self, match_id: int, partial_error: Optional[str] = None) -> None:
        """Set notification_sent on a match.

        Args:
            match_id: Match identifier
            partial_error: Error from a channel that failed while another succeeded

        Raises:
            RecordNotFoundError: If match_id doesn't exist
            PersistenceError: If database error occurs
        """
        self._update_delivery(match_id, notification_sent=True, error=partial_error)

    def mark_delivery_failed(self, match_id: int, reason: str) -> None:
        """Record a delivery failure on a match. The match itself stays.

        Raises:
            RecordNotFoundError: If match_id doesn't exist
            PersistenceError: If database error occurs
        """
        self._update_delivery(match_id, notification_sent=False, error=reason)

    def get_for_alert(self, alert_id: int, user_id: int) -> List[Match]:
        """Retrieve matches of one alert owned by user_id, newest first.

        Raises:
            RecordNotFoundError: If the alert is missing, soft-deleted or not owned by user_id
            PersistenceError: If database error occurs
        """
        try:
            owner_stmt = select(AlertModel.id).where(
                AlertModel.id == alert_id,
                AlertModel.user_id == user_id,
                AlertModel.status != AlertStatus.DELETED.value,
            )
            if self.session.execute(owner_stmt).scalar_one_or_none() is None:
                raise RecordNotFoundError(f"Alert {alert_id} not found")

            stmt = (
                select(AlertMatchModel)
                .where(AlertMatchModel.alert_id == alert_id)
                .order_by(AlertMatchModel.matched_at.desc(), AlertMatchModel.id.desc())
            )
            return [model.to_domain() for model in self.session.execute(stmt).scalars().all()]

        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving matches for alert {alert_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve matches: {e}") from e

    def get_for_user(self, user_id: int) -> List[Match]:
        """Retrieve matches across all of a user's non-deleted alerts, newest first."""
        try:
            stmt = (
                select(AlertMatchModel)
                .join(AlertModel, AlertModel.id == AlertMatchModel.alert_id)
                .where(
                    AlertModel.user_id == user_id,
                    AlertModel.status != AlertStatus.DELETED.value,
                )
                .order_by(AlertMatchModel.matched_at.desc(), AlertMatchModel.id.desc())
            )
            return [model.to_domain() for model in self.session.execute(stmt).scalars().all()]

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving matches for user {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve matches: {e}") from e

    def _get_model(self, alert_id: int, offer_id: int) -> Optional[AlertMatchModel]:
        stmt = select(AlertMatchModel).where(
            AlertMatchModel.alert_id == alert_id,
            AlertMatchModel.offer_id == offer_id,
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def _update_delivery(self, match_id: int, notification_sent: bool, error: Optional[str]) -> None:
        try:
            stmt = (
                update(AlertMatchModel)
                .where(AlertMatchModel.id == match_id)
                .values(notification_sent=notification_sent, error=error)
                .execution_options(synchronize_session=False)
            )
            result = self.session.execute(stmt)
            self.session.flush()

            if result.rowcount == 0:
                raise RecordNotFoundError(f"Match {match_id} not found")

        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error updating delivery state for match {match_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update match delivery state: {e}") from e


class NotificationRepository:
    """Repository for the notification delivery log."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, notification: Notification) -> Notification:
        """Insert a notification record (normally in the unsent state).

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            model = NotificationModel.from_domain(notification)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()

        except SQLAlchemyError as e:
            logger.error(
                f"Error creating notification for alert {notification.alert_id}: {e}", exc_info=True
            )
            raise PersistenceError(f"Failed to create notification: {e}") from e

    def get_by_id(self, notification_id: int) -> Optional[Notification]:
        try:
            model = self.session.get(NotificationModel, notification_id)
            return model.to_domain() if model else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving notification {notification_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve notification: {e}") from e

    def list_for_match(self, match_id: int) -> List[Notification]:
        try:
            stmt = (
                select(NotificationModel)
                .where(NotificationModel.match_id == match_id)
                .order_by(NotificationModel.id)
            )
            return [model.to_domain() for model in self.session.execute(stmt).scalars().all()]

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving notifications for match {match_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve notifications: {e}") from e

    def mark_sent(self, notification_id: int, sent_at: datetime, error: Optional[str] = None) -> None:
        """Mark a notification delivered.

        Raises:
            RecordNotFoundError: If notification_id doesn't exist
        """
        self._update(notification_id, sent=True, sent_at=_format_datetime(sent_at), error=error)

    def mark_failed(self, notification_id: int, error: str) -> None:
        """Record the delivery error on a notification that was not delivered.

        Raises:
            RecordNotFoundError: If notification_id doesn't exist
        """
        self._update(notification_id, sent=False, sent_at=None, error=error)

    def _update(self, notification_id: int, **values) -> None:
        try:
            stmt = (
                update(NotificationModel)
                .where(NotificationModel.id == notification_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = self.session.execute(stmt)
            self.session.flush()

            if result.rowcount == 0:
                raise RecordNotFoundError(f"Notification {notification_id} not found")

        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error updating notification {notification_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update notification: {e}") from e

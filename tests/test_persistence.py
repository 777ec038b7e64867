"""Unit tests for persistence layer."""

import threading
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import func, select, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from listing_alerts.domain.models import AlertStatus, Notification, NotificationMethod
from listing_alerts.persistence import (
    AlertRepository,
    DatabaseConnectionError,
    DataIntegrityError,
    MatchRepository,
    NotificationRepository,
    OfferRepository,
    PersistenceError,
    RecordNotFoundError,
    UserRepository,
    close_database,
    get_engine,
    get_session,
    init_database,
)
from listing_alerts.persistence.database import _redact_url
from listing_alerts.persistence.schema import AlertMatchModel
from listing_alerts.utils.timestamps import utc_now
from tests.helpers import create_alert, create_offer, create_user, make_alert, make_offer_input


@pytest.fixture
def temp_database():
    """Create an in-memory database for each test."""
    init_database("sqlite:///:memory:")
    yield
    close_database()


@pytest.fixture
def file_database(tmp_path):
    """File-backed database shared by several threads."""
    init_database(f"sqlite:///{tmp_path / 'ledger.db'}")
    yield
    close_database()


@pytest.fixture
def alert_and_offer(temp_database):
    with get_session() as session:
        user = create_user(session)
        alert = create_alert(session, user.id)
        offer = create_offer(session)
    return user, alert, offer


class TestDatabaseInitialization:
    """Tests for database initialization."""

    def test_init_database_success(self, tmp_path):
        """Test successful database initialization."""
        db_file = tmp_path / "test.db"

        init_database(f"sqlite:///{db_file}")

        assert db_file.exists()
        with get_session() as session:
            assert session is not None

        close_database()

    def test_init_database_creates_parent_directories(self, tmp_path):
        """Test initialization creates parent directories if missing."""
        db_file = tmp_path / "subdir" / "nested" / "test.db"

        init_database(f"sqlite:///{db_file}")

        assert db_file.exists()
        close_database()

    def test_init_database_invalid_url_raises_error(self):
        """Test initialization with invalid URL raises DatabaseConnectionError."""
        with pytest.raises(DatabaseConnectionError):
            init_database("")

        with pytest.raises(DatabaseConnectionError):
            init_database(None)

    def test_schema_creation_is_idempotent(self, tmp_path):
        """Test schema creation can run multiple times."""
        db_url = f"sqlite:///{tmp_path / 'test.db'}"

        init_database(db_url)
        close_database()
        init_database(db_url)

        with get_session() as session:
            tables = session.execute(
                text("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
            ).scalars().all()

        assert {"users", "alerts", "offers", "alert_matches", "notifications"} <= set(tables)
        close_database()

    def test_foreign_keys_enabled(self, temp_database):
        with get_session() as session:
            assert session.execute(text("PRAGMA foreign_keys")).scalar() == 1

    def test_get_session_before_init_raises(self):
        close_database()
        with pytest.raises(DatabaseConnectionError, match="not initialized"):
            with get_session():
                pass

    def test_get_engine_before_init_raises(self):
        close_database()
        with pytest.raises(DatabaseConnectionError):
            get_engine()

    def test_session_rolls_back_on_error(self, temp_database):
        with pytest.raises(RuntimeError):
            with get_session() as session:
                create_user(session, email="rollback@example.com")
                raise RuntimeError("boom")

        with get_session() as session:
            assert session.execute(text("SELECT COUNT(*) FROM users")).scalar() == 0

    def test_commit_failure_raised_as_persistence_error(self, temp_database):
        locked = OperationalError("COMMIT", {}, Exception("database is locked"))

        with patch.object(Session, "commit", side_effect=locked):
            with pytest.raises(PersistenceError, match="database is locked") as exc_info:
                with get_session() as session:
                    create_user(session, email="locked@example.com")

        assert isinstance(exc_info.value.__cause__, OperationalError)
        with get_session() as session:
            assert session.execute(text("SELECT COUNT(*) FROM users")).scalar() == 0

    def test_redact_url(self):
        assert _redact_url("postgresql://app:secret@db:5432/alerts") == "postgresql://app:***@db:5432/alerts"
        assert _redact_url("sqlite:///./data/x.db") == "sqlite:///./data/x.db"


class TestUserRepository:
    """Tests for UserRepository."""

    def test_create_and_get(self, temp_database):
        with get_session() as session:
            user = create_user(session)

        with get_session() as session:
            loaded = UserRepository(session).get_by_id(user.id)

        assert loaded.email == "anna@example.com"
        assert loaded.display_name == "Anna Nowak"

    def test_duplicate_email_raises(self, temp_database):
        with get_session() as session:
            create_user(session)

        with pytest.raises(DataIntegrityError):
            with get_session() as session:
                create_user(session)

    def test_missing_user_returns_none(self, temp_database):
        with get_session() as session:
            assert UserRepository(session).get_by_id(999) is None


class TestAlertRepository:
    """Tests for AlertRepository."""

    def test_create_assigns_id_and_timestamps(self, temp_database):
        with get_session() as session:
            user = create_user(session)
            alert = create_alert(session, user.id)

        assert alert.id is not None
        assert alert.created_at is not None
        assert alert.status == AlertStatus.ACTIVE

    def test_create_for_missing_user_raises(self, temp_database):
        with pytest.raises(DataIntegrityError):
            with get_session() as session:
                create_alert(session, user_id=999)

    def test_get_with_owner_attaches_contact(self, alert_and_offer):
        user, alert, _ = alert_and_offer

        with get_session() as session:
            loaded = AlertRepository(session).get_with_owner(alert.id)

        assert loaded.owner is not None
        assert loaded.owner.email == user.email

    def test_list_active_excludes_paused_and_deleted(self, temp_database):
        with get_session() as session:
            user = create_user(session)
            active = create_alert(session, user.id, name="active")
            paused = create_alert(session, user.id, name="paused")
            deleted = create_alert(session, user.id, name="deleted")
            repo = AlertRepository(session)
            repo.update_status(paused.id, AlertStatus.PAUSED)
            repo.update_status(deleted.id, AlertStatus.DELETED)

        with get_session() as session:
            alerts = AlertRepository(session).list_active()

        assert [a.id for a in alerts] == [active.id]
        assert alerts[0].owner.email == "anna@example.com"

    def test_deleted_is_terminal(self, alert_and_offer):
        _, alert, _ = alert_and_offer

        with get_session() as session:
            AlertRepository(session).update_status(alert.id, AlertStatus.DELETED)

        with get_session() as session:
            repo = AlertRepository(session)
            assert repo.get_by_id(alert.id) is None
            with pytest.raises(RecordNotFoundError):
                repo.update_status(alert.id, AlertStatus.ACTIVE)

    def test_update_replaces_criteria(self, alert_and_offer):
        _, alert, _ = alert_and_offer

        with get_session() as session:
            updated = AlertRepository(session).update(alert.model_copy(update={"max_price": 4500}))

        assert updated.max_price == 4500
        with get_session() as session:
            assert AlertRepository(session).get_by_id(alert.id).max_price == 4500

    def test_update_missing_alert_raises(self, temp_database):
        with pytest.raises(RecordNotFoundError):
            with get_session() as session:
                AlertRepository(session).update(make_alert(alert_id=42))

    def test_list_by_user_excludes_deleted(self, temp_database):
        with get_session() as session:
            user = create_user(session)
            other = create_user(session, email="other@example.com")
            kept = create_alert(session, user.id)
            gone = create_alert(session, user.id)
            create_alert(session, other.id)
            AlertRepository(session).update_status(gone.id, AlertStatus.DELETED)

        with get_session() as session:
            alerts = AlertRepository(session).list_by_user(user.id)

        assert [a.id for a in alerts] == [kept.id]


class TestOfferRepository:
    """Tests for OfferRepository."""

    def test_upsert_inserts_then_updates(self, temp_database):
        offer_input = make_offer_input(price=3000)

        with get_session() as session:
            first, first_new = OfferRepository(session).upsert_by_link(offer_input)

        with get_session() as session:
            second, second_new = OfferRepository(session).upsert_by_link(
                offer_input.model_copy(update={"price": 3200})
            )

        assert first_new is True
        assert second_new is False
        assert first.id == second.id
        assert second.price == 3200

    def test_get_by_link(self, temp_database):
        with get_session() as session:
            offer = create_offer(session)

        with get_session() as session:
            assert OfferRepository(session).get_by_link(offer.link).id == offer.id
            assert OfferRepository(session).get_by_link("https://nope.example") is None

    def test_list_valid_ids_excludes_expired_and_open_ended(self, temp_database):
        now = utc_now()
        with get_session() as session:
            valid = create_offer(session, valid_to=now + timedelta(days=1))
            create_offer(session, valid_to=now - timedelta(days=1))
            create_offer(session, valid_to=None)

        with get_session() as session:
            repo = OfferRepository(session)
            assert repo.list_valid_ids(now) == [valid.id]
            assert [o.id for o in repo.list_valid(now)] == [valid.id]

    def test_offer_round_trips_fields(self, temp_database):
        with get_session() as session:
            offer = create_offer(session, footage=None, pets_allowed=None)

        with get_session() as session:
            loaded = OfferRepository(session).get_by_id(offer.id)

        assert loaded.footage is None
        assert loaded.pets_allowed is None
        assert loaded.city == "Kraków"
        assert loaded.valid_to.tzinfo is not None


class TestMatchLedger:
    """Tests for MatchRepository create-if-absent semantics."""

    def test_first_record_creates(self, alert_and_offer):
        _, alert, offer = alert_and_offer

        with get_session() as session:
            outcome = MatchRepository(session).record_match_if_absent(alert.id, offer.id)

        assert outcome.created
        assert outcome.match.alert_id == alert.id
        assert outcome.match.offer_id == offer.id
        assert outcome.match.notification_sent is False
        assert outcome.match.error is None

    def test_second_record_returns_existing(self, alert_and_offer):
        _, alert, offer = alert_and_offer

        with get_session() as session:
            first = MatchRepository(session).record_match_if_absent(alert.id, offer.id)
        with get_session() as session:
            second = MatchRepository(session).record_match_if_absent(alert.id, offer.id)

        assert second.created is False
        assert second.existing
        assert second.match.id == first.match.id

        with get_session() as session:
            count = session.execute(select(func.count()).select_from(AlertMatchModel)).scalar()
        assert count == 1

    def test_missing_offer_raises_integrity_error(self, alert_and_offer):
        _, alert, _ = alert_and_offer

        with pytest.raises(DataIntegrityError):
            with get_session() as session:
                MatchRepository(session).record_match_if_absent(alert.id, 9999)

    def test_concurrent_record_creates_exactly_one(self, file_database):
        with get_session() as session:
            user = create_user(session)
            alert = create_alert(session, user.id)
            offer = create_offer(session)

        workers = 8
        barrier = threading.Barrier(workers)
        outcomes = []
        errors = []
        lock = threading.Lock()

        def record():
            try:
                barrier.wait(timeout=10)
                with get_session() as session:
                    outcome = MatchRepository(session).record_match_if_absent(alert.id, offer.id)
                with lock:
                    outcomes.append(outcome)
            except Exception as e:
                with lock:
                    errors.append(e)

        threads = [threading.Thread(target=record) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        assert errors == []
        assert len(outcomes) == workers
        assert sum(1 for o in outcomes if o.created) == 1
        assert len({o.match.id for o in outcomes}) == 1

        with get_session() as session:
            count = session.execute(select(func.count()).select_from(AlertMatchModel)).scalar()
        assert count == 1

    def test_mark_delivered_and_failed(self, alert_and_offer):
        _, alert, offer = alert_and_offer

        with get_session() as session:
            repo = MatchRepository(session)
            match = repo.record_match_if_absent(alert.id, offer.id).match
            repo.mark_delivery_failed(match.id, "EMAIL: smtp down")

        with get_session() as session:
            failed = MatchRepository(session).get_by_id(match.id)
        assert failed.notification_sent is False
        assert failed.error == "EMAIL: smtp down"

        with get_session() as session:
            MatchRepository(session).mark_delivered(match.id, partial_error="WEBHOOK: 500")
        with get_session() as session:
            delivered = MatchRepository(session).get_by_pair(alert.id, offer.id)
        assert delivered.notification_sent is True
        assert delivered.error == "WEBHOOK: 500"

    def test_mark_unknown_match_raises(self, temp_database):
        with pytest.raises(RecordNotFoundError):
            with get_session() as session:
                MatchRepository(session).mark_delivered(12345)

    def test_get_for_alert_checks_owner(self, alert_and_offer):
        user, alert, offer = alert_and_offer

        with get_session() as session:
            MatchRepository(session).record_match_if_absent(alert.id, offer.id)
            other = create_user(session, email="other@example.com")

        with get_session() as session:
            repo = MatchRepository(session)
            assert len(repo.get_for_alert(alert.id, user.id)) == 1
            with pytest.raises(RecordNotFoundError):
                repo.get_for_alert(alert.id, other.id)

    def test_get_for_alert_deleted_alert_raises(self, alert_and_offer):
        user, alert, _ = alert_and_offer

        with get_session() as session:
            AlertRepository(session).update_status(alert.id, AlertStatus.DELETED)

        with pytest.raises(RecordNotFoundError):
            with get_session() as session:
                MatchRepository(session).get_for_alert(alert.id, user.id)

    def test_get_for_user_newest_first(self, alert_and_offer):
        user, alert, first_offer = alert_and_offer
        now = utc_now()

        with get_session() as session:
            second_offer = create_offer(session)
            repo = MatchRepository(session)
            repo.record_match_if_absent(alert.id, first_offer.id, matched_at=now - timedelta(hours=1))
            repo.record_match_if_absent(alert.id, second_offer.id, matched_at=now)

        with get_session() as session:
            matches = MatchRepository(session).get_for_user(user.id)

        assert [m.offer_id for m in matches] == [second_offer.id, first_offer.id]


class TestNotificationRepository:
    """Tests for the notification delivery log."""

    def _create(self, alert_and_offer):
        user, alert, offer = alert_and_offer
        with get_session() as session:
            match = MatchRepository(session).record_match_if_absent(alert.id, offer.id).match
            notification = NotificationRepository(session).create(
                Notification(
                    user_id=user.id,
                    alert_id=alert.id,
                    match_id=match.id,
                    title="New match",
                    message="body",
                    method=NotificationMethod.EMAIL,
                )
            )
        return match, notification

    def test_create_unsent(self, alert_and_offer):
        match, notification = self._create(alert_and_offer)

        assert notification.id is not None
        assert notification.sent is False
        assert notification.sent_at is None
        assert notification.type == "ALERT_MATCH"

        with get_session() as session:
            assert [n.id for n in NotificationRepository(session).list_for_match(match.id)] == [
                notification.id
            ]

    def test_mark_sent(self, alert_and_offer):
        _, notification = self._create(alert_and_offer)

        with get_session() as session:
            NotificationRepository(session).mark_sent(notification.id, utc_now())

        with get_session() as session:
            loaded = NotificationRepository(session).get_by_id(notification.id)
        assert loaded.sent is True
        assert loaded.sent_at is not None
        assert loaded.error is None

    def test_mark_failed(self, alert_and_offer):
        _, notification = self._create(alert_and_offer)

        with get_session() as session:
            NotificationRepository(session).mark_failed(notification.id, "EMAIL: refused")

        with get_session() as session:
            loaded = NotificationRepository(session).get_by_id(notification.id)
        assert loaded.sent is False
        assert loaded.error == "EMAIL: refused"

    def test_mark_unknown_notification_raises(self, temp_database):
        with pytest.raises(RecordNotFoundError):
            with get_session() as session:
                NotificationRepository(session).mark_failed(777, "x")

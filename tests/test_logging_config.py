"""Tests for logging configuration and the two output formats."""

import json
import logging
import re
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

from listing_alerts.logging import ComponentLoggerAdapter, get_logger
from listing_alerts.logging.config import (
    SERVICE_NAME,
    ContextualFilter,
    JSONFormatter,
    KeyValueFormatter,
    configure_logging,
)
from listing_alerts.logging.context import clear_log_context, log_context

KEY_VALUE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@pytest.fixture(autouse=True)
def clean_context():
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    scheduler_level = logging.getLogger("apscheduler").level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("apscheduler").setLevel(scheduler_level)


def _record(message, level=logging.INFO, exc_info=None, **extra):
    return logging.getLogger("listing_alerts.pipeline.runner").makeRecord(
        "listing_alerts.pipeline.runner", level, "runner.py", 1, message, (), exc_info, extra=extra
    )


class TestJSONFormatter:
    """One JSON object per record, extras flattened into it."""

    def test_match_created_record(self):
        record = _record(
            "Match 3 created for alert 7 and offer 42",
            event="ledger.match.created",
            match_id=3,
            component="orchestrator",
        )

        log_obj = json.loads(JSONFormatter().format(record))

        assert log_obj["level"] == "INFO"
        assert log_obj["message"] == "Match 3 created for alert 7 and offer 42"
        assert log_obj["event"] == "ledger.match.created"
        assert log_obj["match_id"] == 3
        assert log_obj["component"] == "orchestrator"
        assert "name" not in log_obj
        assert "lineno" not in log_obj

    def test_timestamp_is_utc_millis(self):
        log_obj = json.loads(JSONFormatter().format(_record("Sweep started")))

        assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d\.\d{3}Z", log_obj["timestamp"])

    def test_values_made_serialisable(self):
        record = _record(
            "Sweep completed",
            event="orchestrator.sweep.completed",
            run_started_at=datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
            channels=["email", "webhook"],
            database=Path("/var/lib/alerts.db"),
        )

        log_obj = json.loads(JSONFormatter().format(record))

        assert log_obj["run_started_at"] == "2026-03-01T12:00:00+00:00"
        assert log_obj["channels"] == ["email", "webhook"]
        assert log_obj["database"] == str(Path("/var/lib/alerts.db"))

    def test_exception_text_included(self):
        try:
            raise RuntimeError("database is locked")
        except RuntimeError:
            record = _record(
                "Error creating match",
                level=logging.ERROR,
                exc_info=sys.exc_info(),
                event="ledger.match.failed",
                error_type="RuntimeError",
            )

        log_obj = json.loads(JSONFormatter().format(record))

        assert log_obj["error_type"] == "RuntimeError"
        assert "RuntimeError: database is locked" in log_obj["exc_info"]


class TestKeyValueFormatter:
    """Human-readable line followed by sorted key=value pairs."""

    def test_delivery_failure_line(self):
        formatter = KeyValueFormatter(KEY_VALUE_FORMAT)
        record = _record(
            "Notification delivery via webhook failed",
            level=logging.WARNING,
            event="notification.send.failure",
            channel="webhook",
            error="HTTP 503 from endpoint",
            match_id=3,
        )

        output = formatter.format(record)

        head, _, tail = output.partition("failed ")
        assert "[WARNING] listing_alerts.pipeline.runner: Notification delivery via webhook" in head
        assert tail == 'channel=webhook error="HTTP 503 from endpoint" event=notification.send.failure match_id=3'

    def test_value_rendering(self):
        formatter = KeyValueFormatter(KEY_VALUE_FORMAT)
        record = _record(
            "Manual run completed",
            had_errors=False,
            alert_id=None,
            reason="status=PAUSED",
        )

        output = formatter.format(record)

        assert "had_errors=false" in output
        assert "alert_id=null" in output
        assert 'reason="status=PAUSED"' in output

    def test_static_fields_left_out(self):
        formatter = KeyValueFormatter(KEY_VALUE_FORMAT)
        record = _record("Sweep started", event="orchestrator.sweep.started")
        ContextualFilter(environment="production").filter(record)

        output = formatter.format(record)

        assert "service=" not in output
        assert "environment=" not in output
        assert output.endswith("event=orchestrator.sweep.started")


class TestContextualFilter:
    """Static fields and the active run context merged onto each record."""

    def test_adds_service_and_environment(self):
        record = _record("Scheduler started")

        assert ContextualFilter(environment="staging").filter(record) is True
        assert record.service == SERVICE_NAME
        assert record.environment == "staging"

    def test_adds_active_identifiers(self):
        with log_context(run_id="run-1", offer_id=42, alert_id=7):
            record = _record("Match created", event="ledger.match.created", match_id=3)
            ContextualFilter().filter(record)

        assert (record.run_id, record.offer_id, record.alert_id, record.match_id) == ("run-1", 42, 7, 3)

    def test_explicit_extra_wins_over_context(self):
        with log_context(offer_id=42):
            record = _record("Offer updated", event="reconciliation.offer.updated", offer_id=43)
            ContextualFilter().filter(record)

        assert record.offer_id == 43


class TestConfigureLogging:
    """Root logger setup."""

    def test_rejects_unknown_level(self, restore_root_logger):
        with pytest.raises(ValueError, match="Invalid log level"):
            configure_logging(level="LOUD")

    def test_rejects_unknown_format(self, restore_root_logger):
        with pytest.raises(ValueError, match="Invalid log format"):
            configure_logging(format_type="xml")

    def test_json_output_on_stdout(self, restore_root_logger, capsys):
        configure_logging(level="INFO", format_type="json", environment="test")

        with log_context(run_id="run-1"):
            logging.getLogger("listing_alerts.pipeline.runner").info(
                "Sweep started", extra={"event": "orchestrator.sweep.started"}
            )

        lines = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
        assert lines[0]["event"] == "logging.configured"
        assert lines[0]["log_format"] == "json"
        assert lines[1]["event"] == "orchestrator.sweep.started"
        assert lines[1]["run_id"] == "run-1"
        assert lines[1]["service"] == SERVICE_NAME
        assert lines[1]["environment"] == "test"

    def test_reconfiguring_replaces_handler(self, restore_root_logger):
        configure_logging(format_type="json")
        configure_logging(format_type="key-value")

        assert len(restore_root_logger.handlers) == 1
        assert isinstance(restore_root_logger.handlers[0].formatter, KeyValueFormatter)

    def test_level_applied_and_scheduler_quietened(self, restore_root_logger):
        configure_logging(level="debug")

        assert restore_root_logger.level == logging.DEBUG
        assert logging.getLogger("apscheduler").level == logging.WARNING

        configure_logging(level="ERROR")

        assert logging.getLogger("apscheduler").level == logging.ERROR


class TestGetLogger:
    """Component-tagged loggers."""

    def test_component_merged_with_call_extras(self):
        adapter = get_logger("listing_alerts.notifications.service", component="dispatcher")
        assert isinstance(adapter, ComponentLoggerAdapter)

        _, kwargs = adapter.process("sent", {"extra": {"event": "notification.send.success"}})
        assert kwargs["extra"] == {"component": "dispatcher", "event": "notification.send.success"}

        _, kwargs = adapter.process("sent", {"extra": {"component": "reconciliation"}})
        assert kwargs["extra"]["component"] == "reconciliation"

    def test_plain_logger_without_component(self):
        assert isinstance(get_logger("listing_alerts.persistence.database"), logging.Logger)

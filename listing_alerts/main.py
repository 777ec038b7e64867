"""Main entry point for the listing alerts service."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import os
import signal
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple

from listing_alerts.config.environment import EnvironmentConfig
from listing_alerts.config.exceptions import ConfigurationError
from listing_alerts.config.loader import load_config
from listing_alerts.config.models import AppConfig
from listing_alerts.domain.models import DeliveryChannel
from listing_alerts.ingestion.http_feed import HttpFeedOfferSource
from listing_alerts.logging import get_logger
from listing_alerts.logging.config import configure_logging
from listing_alerts.notifications.service import NotificationDispatcher
from listing_alerts.notifications.sinks import EmailSink, WebhookSink
from listing_alerts.persistence.database import close_database, init_database
from listing_alerts.pipeline import MatchingOrchestrator, ReconciliationService, SweepResult
from listing_alerts.scheduler import SchedulerService
from listing_alerts.utils.timestamps import format_timestamp

logger = get_logger(__name__, component="cli")


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and resolve the effective log level.

    Log level priority: CLI > LOG_LEVEL environment variable > config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level or "INFO"

    return app_config, env_config


def build_services(
    app_config: AppConfig, env_config: EnvironmentConfig
) -> Tuple[MatchingOrchestrator, ReconciliationService]:
    """Wire sinks, dispatcher, orchestrator and reconciliation from configuration."""
    sinks = {
        DeliveryChannel.EMAIL: EmailSink(env_config, app_config.notifications.email),
        DeliveryChannel.WEBHOOK: WebhookSink(app_config.notifications.webhook),
    }
    orchestrator = MatchingOrchestrator(dispatcher=NotificationDispatcher(sinks))
    reconciliation = ReconciliationService(
        source=HttpFeedOfferSource.from_config(app_config.ingestion),
        orchestrator=orchestrator,
    )
    return orchestrator, reconciliation


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Listing alerts - match property offers against saved searches and notify owners"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml, then config/config.yaml)",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--manual-run",
        action="store_true",
        help="Run one reconciliation cycle (sweep inline) and exit",
    )
    mode.add_argument(
        "--process-all",
        action="store_true",
        help="Match every valid offer against every active alert and exit",
    )
    mode.add_argument(
        "--reprocess-alert",
        type=int,
        metavar="ALERT_ID",
        default=None,
        help="Re-evaluate all valid offers against one alert and exit",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )
    return parser


def _log_sweep(result: SweepResult) -> None:
    logger.info(
        f"Sweep {result.kind} completed: "
        f"{result.offers_evaluated} offers, "
        f"{result.matches_created} new matches, "
        f"{result.notifications_sent} notified, "
        f"{result.notifications_failed} failed",
        extra={
            "event": "service.sweep.completed",
            "duration_seconds": result.total_duration_seconds,
            "had_errors": result.had_errors,
            "skipped": result.skipped,
        },
    )


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the listing alerts service.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        environment = os.environ.get("ENVIRONMENT", "local")
        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=environment,
        )

        logger.info(
            "Listing alerts service starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
                "email_enabled": env_config.smtp_configured,
            },
        )

        init_database(env_config.database_url)
        orchestrator, reconciliation = build_services(app_config, env_config)

        if args.manual_run:
            cycle = reconciliation.run_cycle(background_sweep=False)
            logger.info(
                f"Manual cycle completed: {cycle.fetched_count} fetched, "
                f"{cycle.saved_count} new, {cycle.updated_count} updated",
                extra={"event": "service.manual_run.completed", "had_errors": cycle.had_errors},
            )
            had_errors = cycle.had_errors
            if cycle.sweep_result is not None:
                _log_sweep(cycle.sweep_result)
                had_errors = had_errors or cycle.sweep_result.had_errors
            close_database()
            return 1 if had_errors else 0

        if args.process_all or args.reprocess_alert is not None:
            if args.process_all:
                result = orchestrator.process_all_offers()
            else:
                result = orchestrator.reprocess_alert(args.reprocess_alert)
            _log_sweep(result)
            close_database()
            return 1 if result.had_errors else 0

        # Daemon mode
        shutdown_event = threading.Event()
        scheduler_service = SchedulerService(
            cycle_callable=reconciliation.run_cycle,
            interval_seconds=app_config.reconciliation_interval_seconds,
            shutdown_event=shutdown_event,
        )

        def signal_handler(signum, frame):
            logger.info(
                f"Received signal {signum}, shutting down",
                extra={"event": "service.signal_received", "signal": signum},
            )
            scheduler_service.shutdown(wait=False)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        scheduler_service.start()
        next_run = scheduler_service.get_next_run_time()
        logger.info(
            "Scheduler started. Press Ctrl+C to stop",
            extra={
                "event": "service.daemon_mode.started",
                "next_run_time": format_timestamp(next_run) if next_run else None,
            },
        )

        try:
            shutdown_event.wait()
        except KeyboardInterrupt:
            scheduler_service.shutdown(wait=False)

        reconciliation.wait_for_sweeps(timeout=30)
        close_database()

        logger.info(
            "Listing alerts service stopped",
            extra={
                "event": "service.stopping",
                "uptime_seconds": round(time.time() - start_time, 2),
            },
        )
        return 0

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error during startup",
            extra={
                "event": "service.startup.failed",
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())

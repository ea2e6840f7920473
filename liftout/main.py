"""Command-line entry point: run the EOI expiry sweep once or on a schedule."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import signal
import sys
import threading
import time
from pathlib import Path
from typing import Optional, Tuple

from liftout.api.handlers import ApiHandlers
from liftout.config.environment import EnvironmentConfig
from liftout.config.exceptions import ConfigurationError
from liftout.config.loader import load_config
from liftout.config.models import AppConfig
from liftout.interest.service import InterestService
from liftout.logging import get_logger
from liftout.logging.config import configure_logging
from liftout.notifications.dispatcher import NotificationDispatcher
from liftout.notifications.email import EmailSender
from liftout.persistence.database import close_database, init_database
from liftout.scheduler import SweepScheduler

logger = get_logger(__name__, component="cli")


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and settle the effective log level.

    Priority for the log level: CLI, then LOG_LEVEL, then the config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level or "INFO"

    return app_config, env_config


def build_handlers(app_config: AppConfig, env_config: EnvironmentConfig) -> ApiHandlers:
    """Wire the services, the notification pool and SMTP delivery for an embedding application.

    The database must already be initialised with init_database().
    """
    email_sender = EmailSender(env_config, app_config.email) if app_config.notifications.email_enabled else None
    dispatcher = NotificationDispatcher(
        email_sender=email_sender,
        max_workers=app_config.notifications.max_workers,
        email_enabled=app_config.notifications.email_enabled,
    )
    return ApiHandlers.from_config(app_config, dispatcher=dispatcher)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Liftout matching engine - background maintenance for expressions of interest"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml or config/config.yaml)",
    )
    parser.add_argument(
        "--sweep-once",
        action="store_true",
        help="Expire overdue expressions of interest once and exit",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )
    return parser


def main(argv=None) -> int:
    """
    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)
        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=env_config.environment,
        )

        logger.info(
            "Liftout engine starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
                "sweep_once": args.sweep_once,
            },
        )

        init_database(env_config.database_url)
        interests = InterestService(config=app_config.interest)

        if args.sweep_once:
            expired = interests.expire_stale()
            close_database()
            logger.info(
                f"Sweep completed: {expired} expressions of interest expired",
                extra={
                    "event": "service.sweep_once.completed",
                    "expired_count": expired,
                    "uptime_seconds": round(time.time() - start_time, 2),
                },
            )
            return 0

        shutdown_event = threading.Event()
        scheduler = SweepScheduler(
            sweep_callable=interests.expire_stale,
            interval_seconds=app_config.interest.sweep_interval_seconds,
            shutdown_event=shutdown_event,
        )

        def signal_handler(signum, frame):
            logger.info(
                f"Received signal {signum}, shutting down",
                extra={"event": "service.signal_received", "signal": signum},
            )
            scheduler.shutdown(wait=False)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        scheduler.start()
        logger.info("Scheduler started. Press Ctrl+C to stop", extra={"event": "service.daemon_mode.started"})

        try:
            shutdown_event.wait()
        except KeyboardInterrupt:
            scheduler.shutdown(wait=False)
        finally:
            close_database()

        logger.info(
            "Liftout engine stopped",
            extra={"event": "service.stopping", "uptime_seconds": round(time.time() - start_time, 2)},
        )
        return 0

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error during startup",
            extra={"event": "service.startup.failed", "error_type": type(e).__name__, "error": str(e)},
            exc_info=True,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())

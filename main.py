"""CLI entry point: python main.py sweep --loop"""

import argparse
import sys
import time

from src.animal_status import SmtpEmailSender, StatusEngine, StatusEngineConfig, StatusSweeper
from src.animal_status.repository import SqlStatusStore
from src.db import Base, get_sync_engine
from src.logging_config import configure_logging
from src.settings import get_settings


def build_sweeper() -> StatusSweeper:
    """Wire the engine, database store, and email sender from settings."""
    settings = get_settings()
    config = StatusEngineConfig.from_settings(settings)
    store = SqlStatusStore()
    sender = SmtpEmailSender(config.email) if config.email.is_configured else None
    engine = StatusEngine(store, email_sender=sender, config=config)
    return StatusSweeper(engine, store, max_workers=settings.sweep_max_workers)


def run_sweep(sweeper: StatusSweeper, loop: bool, interval: int) -> int:
    while True:
        result = sweeper.sweep_all()
        print(
            f"  Checked {result.entities_checked} animals for {result.owners_checked} users, "
            f"created {result.notifications_created} notifications ({result.failures} failures)"
        )
        if not loop:
            return 1 if result.failures else 0
        time.sleep(interval)


def run_cleanup(sweeper: StatusSweeper) -> int:
    settings = get_settings()
    notifications = sweeper.cleanup_notifications(settings.notification_retention_days)
    snapshots = sweeper.cleanup_stat_history(settings.stat_history_retention_days)
    print(f"  Removed {notifications} notifications and {snapshots} stat snapshots")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Farmheart - animal status notifications"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sweep = sub.add_parser("sweep", help="Check every active animal and notify owners")
    sweep.add_argument(
        "--loop", action="store_true",
        help="Keep sweeping every FARMHEART_SWEEP_INTERVAL_SECONDS"
    )
    sub.add_parser("cleanup", help="Delete old notifications and stat history")
    sub.add_parser("init-db", help="Create database tables")

    args = parser.parse_args(argv)
    configure_logging()

    if args.command == "init-db":
        Base.metadata.create_all(get_sync_engine())
        print("Database tables created")
        return 0

    sweeper = build_sweeper()
    if args.command == "sweep":
        return run_sweep(sweeper, args.loop, get_settings().sweep_interval_seconds)
    return run_cleanup(sweeper)


if __name__ == "__main__":
    sys.exit(main())

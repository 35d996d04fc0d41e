#!/usr/bin/env python3
"""
Scheduled synchronization script for docsync.

This script runs sync passes against the configured Confluence space:
- Imports new records and updates changed ones
- Reconciles records deleted at the source
- Logs pass statistics

Designed to be run on a schedule (e.g., via cron or Airflow), as a long-running
loop with --interval, or to replay a webhook payload with --webhook-payload.

Usage:
    python scripts/scheduled_sync.py [--config CONFIG_PATH] [--full-sync] [--force-refresh]
                                     [--no-deletions] [--interval SECONDS]
                                     [--webhook-payload FILE]
"""

import argparse
import json
import signal
import sys
import threading

import structlog

from docsync.errors import FatalSyncError, SyncInProgressError
from docsync.providers import build_sync_triggers
from docsync.sync.models import SyncPassResult
from docsync.sync.triggers import SyncTriggers
from docsync.utils.config_loader import ConfigLoader, ConfigurationError
from docsync.utils.logging_config import configure_logging_from_config

log = structlog.stdlib.get_logger()


def print_summary(result: SyncPassResult) -> None:
    print("\n" + "=" * 60)
    print("SYNCHRONIZATION SUMMARY")
    print("=" * 60)

    if result.success:
        print("Status: ✓ SUCCESS")
    else:
        print("Status: ✗ FAILED")
        print(f"Error: {result.error or 'Unknown error'}")

    print(f"Space: {result.container_id}")
    print(f"Records Selected: {result.total}")
    print(f"Imported: {result.imported}")
    print(f"Updated: {result.updated}")
    print(f"Skipped: {result.skipped}")
    print(f"Failed: {result.failed}")
    print(f"Deleted: {result.deleted}")
    if result.stopped_early:
        print("Stopped early: time budget exhausted, watermark not advanced")
    print(f"Duration: {result.elapsed_time:.2f} seconds")

    if result.errors:
        print("\nErrors:")
        for error in result.errors[:10]:
            print(f"  - {error}")
        if len(result.errors) > 10:
            print(f"  ... and {len(result.errors) - 10} more")

    print("=" * 60)


def run_periodic(triggers: SyncTriggers, interval_seconds: float) -> int:
    """Run scheduled passes until SIGINT or SIGTERM."""
    stop_event = threading.Event()

    def _stop(signum, frame):
        log.info("shutdown_signal_received", signal=signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)

    triggers.run_periodically(interval_seconds, stop_event)
    return 0


def replay_webhook(triggers: SyncTriggers, payload_path: str) -> int:
    with open(payload_path, "r", encoding="utf-8") as f:
        payload = json.load(f)

    result = triggers.handle_webhook(payload)
    print(json.dumps(result.model_dump(mode="json", exclude={"pass_result"}), indent=2))
    if result.pass_result is not None:
        print_summary(result.pass_result)
    return 0 if result.success or result.action == "ignored" else 1


def main() -> None:
    """Main entry point for scheduled sync script."""
    parser = argparse.ArgumentParser(description="Scheduled synchronization for docsync")
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration file",
        default=None,
    )
    parser.add_argument(
        "--full-sync",
        action="store_true",
        help="List every record instead of only those changed since the last pass",
    )
    parser.add_argument(
        "--force-refresh",
        action="store_true",
        help="Rewrite every record even if it looks unchanged",
    )
    parser.add_argument(
        "--no-deletions",
        action="store_true",
        help="Skip reconciliation of records deleted at the source",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Keep running, one scheduled pass every INTERVAL seconds",
    )
    parser.add_argument(
        "--webhook-payload",
        type=str,
        default=None,
        help="Dispatch the webhook event stored in this JSON file",
    )

    args = parser.parse_args()

    try:
        config = ConfigLoader().load_config(args.config)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    configure_logging_from_config(config.logging)
    triggers = build_sync_triggers(config)

    try:
        if args.webhook_payload:
            sys.exit(replay_webhook(triggers, args.webhook_payload))

        if args.interval is not None:
            sys.exit(run_periodic(triggers, args.interval))

        result = triggers.manual(
            incremental=not args.full_sync,
            check_deletions=not args.no_deletions,
            force_refresh=args.force_refresh,
        )
    except SyncInProgressError as e:
        log.warning("sync_skipped_busy", error=str(e))
        print(f"Another sync is running: {e}", file=sys.stderr)
        sys.exit(3)
    except FatalSyncError as e:
        log.error("sync_crashed", error=str(e))
        print(f"Sync crashed: {e}", file=sys.stderr)
        sys.exit(1)

    print_summary(result)

    # Exit with appropriate code
    sys.exit(0 if result.success else 1)


if __name__ == "__main__":
    main()

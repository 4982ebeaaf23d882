"""
Weekly cycle script: advance the allocation period from a scheduler.

Usage:
    # Close ended periods and open the current one
    python scripts/advance_cycle.py

    # Pretend today is another date (backfill / testing)
    python scripts/advance_cycle.py --date 2026-03-02

    # Also send payment reminders for delivered, unpaid orders
    python scripts/advance_cycle.py --reminders

    # Show how subscriptions would be rationed against a stock figure
    python scripts/advance_cycle.py --preview 150
"""

import argparse
import json
import os
import sys
from datetime import date

import structlog

# Allow imports from the project root when running as a script
_root_dir = os.path.join(os.path.dirname(__file__), "..")
sys.path.insert(0, _root_dir)

from dotenv import load_dotenv
load_dotenv(os.path.join(_root_dir, ".env"))

from exceptions import AppError  # noqa: E402
from services.cycle_service import get_cycle_service  # noqa: E402
from services.materialization_service import get_materialization_service  # noqa: E402
from services.notification_service import get_notifier  # noqa: E402

structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
)

logger = structlog.get_logger("advance_cycle")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Advance the weekly allocation cycle"
    )
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Reference date YYYY-MM-DD (default: today)"
    )
    parser.add_argument(
        "--reminders",
        action="store_true",
        help="Send payment reminders after advancing"
    )
    parser.add_argument(
        "--preview",
        type=int,
        default=None,
        metavar="STOCK",
        help="Print a materialization preview for STOCK and exit"
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        if args.preview is not None:
            preview = get_materialization_service().preview(args.preview)
            print(json.dumps(preview.model_dump(mode="json"), indent=2))
            return 0

        period = get_cycle_service().advance(args.date)
        logger.info(
            "current_period",
            period_id=period.id,
            week_start=period.week_start.isoformat(),
            week_end=period.week_end.isoformat(),
            is_ordering_open=period.is_ordering_open
        )

        if args.reminders:
            result = get_notifier().notify_payment_reminder()
            logger.info("reminders_done", sent=result.sent, failed=result.failed)

    except AppError as e:
        logger.error("advance_cycle_failed", code=e.code, error=e.message, retryable=e.retryable)
        return 2 if e.retryable else 1

    return 0


if __name__ == "__main__":
    sys.exit(main())

import argparse
import random
import sys
from datetime import date
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app import create_app
from app.notifications import (
    RotationConflictError,
    load_rotation_state,
    run_daily_notifications,
    run_notification_rotation,
)


def main():
    parser = argparse.ArgumentParser(
        description="Generate user notifications (run from cron)."
    )
    parser.add_argument(
        "mode",
        choices=("rotation", "daily"),
        help="rotation: one category per run, cycling meal -> system. daily: every category once per day.",
    )
    parser.add_argument(
        "--date",
        default=None,
        help="Override the calendar day for daily mode (YYYY-MM-DD, default: today in UTC).",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for template selection (default: unseeded).",
    )
    args = parser.parse_args()

    rng = random.Random(args.seed)

    app = create_app()
    with app.app_context():
        if args.mode == "rotation":
            state = load_rotation_state()
            try:
                result = run_notification_rotation(state, rng=rng)
            except RotationConflictError as exc:
                print(f"Skipped: {exc}")
                sys.exit(1)
            print(
                f'Generated {result.count} notifications of type "{result.sent_type}". '
                f'Next type will be "{result.state.current_type}".'
            )
            return

        day = date.fromisoformat(args.date) if args.date else None
        result = run_daily_notifications(today=day, rng=rng)
        if not result.sent:
            print(f"No notifications sent for {result.notification_date} (already sent or no users).")
            return
        print(f"Generated {result.count} notifications for {result.notification_date}.")


if __name__ == "__main__":
    main()
